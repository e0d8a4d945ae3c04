#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ******************************************************************************
# Project: GeoTIFF Raster Kit (GTRK)
# Author: Eric Robeck <robeckgeo@gmail.com>
#
# Copyright (c) 2025, Eric Robeck
# Licensed under the MIT License
# ******************************************************************************

"""
TIFF Structure Validator.

Confirms that a byte buffer is a syntactically valid TIFF or BigTIFF container
before any decoding is attempted. Only the header and the first IFD's entry
table are inspected; pixel data is never touched.

Checks, in order:
    1. The buffer holds at least 8 bytes
    2. The byte-order marker is 'II' (little-endian) or 'MM' (big-endian)
    3. The magic number is 42 (classic TIFF) or 43 (BigTIFF)
    4. The first IFD offset is >= 8 and inside the buffer
    5. The IFD entry count is in 1..65535 and the entry table fits in the buffer
"""

import logging
import struct
from dataclasses import dataclass
from typing import Union

from gtrk.utils.exceptions import MalformedTiffError, MalformedTiffReason

logger = logging.getLogger(__name__)

LITTLE_ENDIAN_MARKER = b'II'
BIG_ENDIAN_MARKER = b'MM'
CLASSIC_TIFF_MAGIC = 42
BIG_TIFF_MAGIC = 43
MIN_HEADER_SIZE = 8
MAX_IFD_ENTRIES = 65535

# Entry sizes and header layout per container flavour
CLASSIC_ENTRY_SIZE = 12
BIG_TIFF_ENTRY_SIZE = 20
BIG_TIFF_HEADER_SIZE = 16


@dataclass(frozen=True)
class TiffHeader:
    """
    The structural facts established by a successful validation.

    Attributes:
        byte_order: '<' for little-endian, '>' for big-endian (struct notation)
        is_big_tiff: True for BigTIFF (magic 43)
        ifd_offset: Byte offset of the first IFD
        entry_count: Number of entries in the first IFD
    """
    byte_order: str
    is_big_tiff: bool
    ifd_offset: int
    entry_count: int

    @property
    def is_little_endian(self) -> bool:
        return self.byte_order == '<'


def validate_tiff_structure(buffer: Union[bytes, bytearray, memoryview]) -> TiffHeader:
    """
    Validate the TIFF header and first IFD of a byte buffer.

    Args:
        buffer: The complete file contents.

    Returns:
        TiffHeader describing the container.

    Raises:
        MalformedTiffError: With the reason of the first failed check.
    """
    data = bytes(buffer) if not isinstance(buffer, bytes) else buffer
    size = len(data)

    if size < MIN_HEADER_SIZE:
        raise MalformedTiffError(
            MalformedTiffReason.TOO_SMALL,
            f"File too small to be a valid TIFF ({size} bytes)",
            offset=0,
        )

    marker = data[0:2]
    if marker == LITTLE_ENDIAN_MARKER:
        byte_order = '<'
    elif marker == BIG_ENDIAN_MARKER:
        byte_order = '>'
    else:
        raise MalformedTiffError(
            MalformedTiffReason.INVALID_BYTE_ORDER,
            f"Invalid byte order marker: 0x{marker.hex()}",
            offset=0,
        )

    (magic,) = struct.unpack_from(f'{byte_order}H', data, 2)
    if magic not in (CLASSIC_TIFF_MAGIC, BIG_TIFF_MAGIC):
        raise MalformedTiffError(
            MalformedTiffReason.INVALID_MAGIC_NUMBER,
            f"Invalid TIFF magic number: {magic}",
            offset=2,
        )

    is_big_tiff = magic == BIG_TIFF_MAGIC
    if is_big_tiff:
        ifd_offset, entry_count = _read_big_tiff_ifd(data, byte_order)
        entry_size = BIG_TIFF_ENTRY_SIZE
        count_size = 8
    else:
        (ifd_offset,) = struct.unpack_from(f'{byte_order}I', data, 4)
        if ifd_offset < MIN_HEADER_SIZE or ifd_offset >= size:
            raise MalformedTiffError(
                MalformedTiffReason.INVALID_IFD_OFFSET,
                f"Invalid IFD offset: {ifd_offset}",
                offset=4,
            )
        if ifd_offset + 2 > size:
            raise MalformedTiffError(
                MalformedTiffReason.INVALID_IFD_ENTRIES,
                "IFD entry count extends beyond buffer",
                offset=ifd_offset,
            )
        (entry_count,) = struct.unpack_from(f'{byte_order}H', data, ifd_offset)
        entry_size = CLASSIC_ENTRY_SIZE
        count_size = 2

    if entry_count == 0:
        raise MalformedTiffError(
            MalformedTiffReason.INVALID_IFD_ENTRIES,
            "TIFF contains no IFD entries",
            offset=ifd_offset,
        )
    if entry_count > MAX_IFD_ENTRIES:
        raise MalformedTiffError(
            MalformedTiffReason.INVALID_IFD_ENTRIES,
            f"Too many IFD entries: {entry_count}",
            offset=ifd_offset,
        )

    entries_end = ifd_offset + count_size + entry_count * entry_size
    if entries_end > size:
        raise MalformedTiffError(
            MalformedTiffReason.INVALID_IFD_ENTRIES,
            f"IFD entries extend beyond buffer ({entries_end} > {size})",
            offset=ifd_offset,
        )

    logger.debug(
        f"TIFF structure valid: byte_order={'II' if byte_order == '<' else 'MM'}, "
        f"big_tiff={is_big_tiff}, ifd_offset={ifd_offset}, entries={entry_count}, size={size}"
    )
    return TiffHeader(
        byte_order=byte_order,
        is_big_tiff=is_big_tiff,
        ifd_offset=ifd_offset,
        entry_count=entry_count,
    )


def _read_big_tiff_ifd(data: bytes, byte_order: str) -> tuple:
    """Read the first IFD offset and entry count of a BigTIFF buffer."""
    size = len(data)
    if size < BIG_TIFF_HEADER_SIZE:
        raise MalformedTiffError(
            MalformedTiffReason.INVALID_IFD_OFFSET,
            f"BigTIFF header truncated ({size} bytes)",
            offset=4,
        )
    (ifd_offset,) = struct.unpack_from(f'{byte_order}Q', data, 8)
    if ifd_offset < BIG_TIFF_HEADER_SIZE or ifd_offset >= size:
        raise MalformedTiffError(
            MalformedTiffReason.INVALID_IFD_OFFSET,
            f"Invalid IFD offset: {ifd_offset}",
            offset=8,
        )
    if ifd_offset + 8 > size:
        raise MalformedTiffError(
            MalformedTiffReason.INVALID_IFD_ENTRIES,
            "IFD entry count extends beyond buffer",
            offset=ifd_offset,
        )
    (entry_count,) = struct.unpack_from(f'{byte_order}Q', data, ifd_offset)
    return ifd_offset, entry_count


def is_valid_tiff(buffer: Union[bytes, bytearray, memoryview]) -> bool:
    """Check whether a buffer passes structural validation."""
    try:
        validate_tiff_structure(buffer)
        return True
    except MalformedTiffError:
        return False
