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
TIFF Tag Parser.

Decodes an in-memory TIFF with tifffile and exposes:
- A strongly typed ImageDirectory for the first IFD
- The first band's samples as a RasterDataset
- The GDAL_NODATA and GDAL_METADATA values GDAL writes into GeoTIFFs

Tag lookups fail closed: a missing or unreadable tag becomes None rather
than an exception. Decoding failures are reported as UnsupportedEncodingError.
"""

import io
import logging
import re
from typing import Any, Dict, Optional, Tuple, Union

import lxml.etree as etree
import numpy as np
import tifffile

from gtrk.utils.data_models import BoundingBox, ImageDirectory, RasterDataset
from gtrk.utils.exceptions import UnsupportedEncodingError

logger = logging.getLogger(__name__)

# Baseline and GeoTIFF tag codes consumed by the pipeline
TAG_IMAGE_WIDTH = 256
TAG_IMAGE_LENGTH = 257
TAG_BITS_PER_SAMPLE = 258
TAG_COMPRESSION = 259
TAG_PHOTOMETRIC = 262
TAG_SAMPLES_PER_PIXEL = 277
TAG_SAMPLE_FORMAT = 339
TAG_MODEL_PIXEL_SCALE = 33550
TAG_MODEL_TIEPOINT = 33922
TAG_MODEL_TRANSFORMATION = 34264
TAG_GEO_KEY_DIRECTORY = 34735
TAG_GEO_DOUBLE_PARAMS = 34736
TAG_GEO_ASCII_PARAMS = 34737
TAG_GDAL_METADATA = 42112
TAG_GDAL_NODATA = 42113

TIFF_TAG_NAMES = {
    TAG_IMAGE_WIDTH: 'ImageWidth',
    TAG_IMAGE_LENGTH: 'ImageLength',
    TAG_BITS_PER_SAMPLE: 'BitsPerSample',
    TAG_COMPRESSION: 'Compression',
    TAG_PHOTOMETRIC: 'PhotometricInterpretation',
    TAG_SAMPLES_PER_PIXEL: 'SamplesPerPixel',
    TAG_SAMPLE_FORMAT: 'SampleFormat',
    TAG_MODEL_PIXEL_SCALE: 'ModelPixelScaleTag',
    TAG_MODEL_TIEPOINT: 'ModelTiepointTag',
    TAG_MODEL_TRANSFORMATION: 'ModelTransformationTag',
    TAG_GEO_KEY_DIRECTORY: 'GeoKeyDirectoryTag',
    TAG_GEO_DOUBLE_PARAMS: 'GeoDoubleParamsTag',
    TAG_GEO_ASCII_PARAMS: 'GeoAsciiParamsTag',
    TAG_GDAL_METADATA: 'GDAL_METADATA',
    TAG_GDAL_NODATA: 'GDAL_NODATA',
}

# Number of samples inspected for the pixel-uniformity warnings
UNIFORMITY_SAMPLE_SIZE = 1000


class TiffDecoder:
    """Decoder for an in-memory TIFF, built on tifffile."""

    def __init__(self, data: Union[bytes, bytearray, memoryview], source: Optional[str] = None):
        """
        Initialize the decoder.

        Args:
            data: The complete TIFF file contents.
            source: URL or label used in log and error messages.
        """
        self.source = source or '<memory>'
        try:
            self.tif = tifffile.TiffFile(io.BytesIO(bytes(data)))
        except Exception as e:
            raise UnsupportedEncodingError(
                f"Cannot read TIFF structure: {e}", {'source': self.source}
            ) from e

        if not self.tif.pages or not hasattr(self.tif.pages[0], 'tags'):
            self.tif.close()
            raise UnsupportedEncodingError("No valid TIFF pages or tags found", {'source': self.source})

        self.page = self.tif.pages[0]
        self._ifd: Optional[ImageDirectory] = None

    def __enter__(self):
        """Enter the context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit the context manager and close the file."""
        self.close()

    def _sanitize_value(self, value: Any) -> Any:
        """Recursively convert tifffile enums to their integer base values."""
        if hasattr(value, 'name') and 'tifffile' in type(value).__module__:
            return int(value)
        if isinstance(value, (list, tuple)):
            return tuple(self._sanitize_value(v) for v in value)
        if isinstance(value, bytes):
            return value.decode('utf-8', errors='replace')
        return value

    def _raw_tags(self) -> Dict[int, Any]:
        tags: Dict[int, Any] = {}
        for tag in self.page.tags:
            try:
                tags[tag.code] = self._sanitize_value(tag.value)
            except Exception as e:
                logger.warning(f"Skipping tag {tag.code} ({TIFF_TAG_NAMES.get(tag.code, 'Unknown')}) due to parsing error: {e}")
        return tags

    def get_image_directory(self) -> ImageDirectory:
        """
        Build the typed ImageDirectory of the first IFD.

        Returns:
            ImageDirectory with every known tag converted (or None when absent).
        """
        if self._ifd is not None:
            return self._ifd

        tags = self._raw_tags()
        self._ifd = ImageDirectory(
            image_width=_as_int(tags.get(TAG_IMAGE_WIDTH)),
            image_length=_as_int(tags.get(TAG_IMAGE_LENGTH)),
            bits_per_sample=_as_int_tuple(tags.get(TAG_BITS_PER_SAMPLE)),
            compression=_as_int(tags.get(TAG_COMPRESSION)),
            photometric=_as_int(tags.get(TAG_PHOTOMETRIC)),
            samples_per_pixel=_as_int(tags.get(TAG_SAMPLES_PER_PIXEL)),
            sample_format=_as_int_tuple(tags.get(TAG_SAMPLE_FORMAT)),
            model_pixel_scale=_as_float_tuple(tags.get(TAG_MODEL_PIXEL_SCALE)),
            model_tiepoint=_as_float_tuple(tags.get(TAG_MODEL_TIEPOINT)),
            model_transformation=_as_float_tuple(tags.get(TAG_MODEL_TRANSFORMATION)),
            geokey_directory=_as_int_tuple(tags.get(TAG_GEO_KEY_DIRECTORY)),
            geo_double_params=_as_float_tuple(tags.get(TAG_GEO_DOUBLE_PARAMS)),
            geo_ascii_params=_as_str(tags.get(TAG_GEO_ASCII_PARAMS)),
            gdal_metadata=_as_str(tags.get(TAG_GDAL_METADATA)),
            gdal_nodata=_as_str(tags.get(TAG_GDAL_NODATA)),
            tags=tags,
        )
        logger.debug(
            f"Decoded IFD for {self.source}: {self._ifd.image_width}x{self._ifd.image_length}, "
            f"bits={self._ifd.bits_per_sample}, compression={self._ifd.compression}, "
            f"samples={self._ifd.samples_per_pixel}"
        )
        return self._ifd

    @property
    def width(self) -> int:
        return int(self.page.imagewidth)

    @property
    def height(self) -> int:
        return int(self.page.imagelength)

    def read_raster(self, nodata_value: Optional[float] = None) -> RasterDataset:
        """
        Decode the first band of the first page.

        Args:
            nodata_value: The no-data sentinel to attach to the dataset.

        Returns:
            RasterDataset with flattened row-major samples.

        Raises:
            UnsupportedEncodingError: If tifffile cannot decode the pixel data.
        """
        try:
            data = self.page.asarray()
        except Exception as e:
            ifd = self.get_image_directory()
            raise UnsupportedEncodingError(
                f"Cannot decode raster data: {e}",
                {'source': self.source, 'tag': 'Compression', 'compression': ifd.compression},
            ) from e

        band = _first_band(np.asarray(data), self.height, self.width)
        if band is None:
            raise UnsupportedEncodingError(
                f"Unexpected raster shape {np.shape(data)} for {self.width}x{self.height} image",
                {'source': self.source, 'tag': 'SamplesPerPixel'},
            )

        _warn_on_uniform_pixels(band, self.source)
        return RasterDataset(
            width=self.width,
            height=self.height,
            samples=band.reshape(-1),
            nodata_value=nodata_value,
        )

    def bounding_box(self) -> Optional[BoundingBox]:
        """
        Bounding box implied by multiple tiepoints (ground control points).

        Only used when neither a transformation matrix nor a single tiepoint
        with a pixel scale is available.
        """
        tiepoint = self.get_image_directory().model_tiepoint
        if not tiepoint or len(tiepoint) < 12:
            return None
        xs = [tiepoint[i + 3] for i in range(0, len(tiepoint) - 5, 6)]
        ys = [tiepoint[i + 4] for i in range(0, len(tiepoint) - 5, 6)]
        return BoundingBox(west=min(xs), south=min(ys), east=max(xs), north=max(ys))

    def close(self):
        """Close the TIFF file."""
        if hasattr(self, 'tif') and self.tif:
            self.tif.close()


def parse_nodata(raw: Optional[str]) -> Optional[float]:
    """
    Parse a GDAL_NODATA string.

    A trailing null byte is trimmed before the value is parsed as a number.
    Unparsable values are logged and treated as absent.

    Example:
        >>> parse_nodata('-9999\\x00')
        -9999.0
    """
    if raw is None:
        return None
    text = str(raw).replace('\x00', '').strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        logger.warning(f"Could not parse GDAL_NODATA value {text!r}; ignoring it")
        return None


def parse_gdal_metadata(xml: Optional[str]) -> Dict[str, str]:
    """
    Extract the 'units' and 'description' items from a GDAL_METADATA string.

    Well-formed XML is read with lxml; anything else falls back to a pattern
    match on the raw text.

    Returns:
        Dictionary with 'units' and 'description' keys (empty strings when absent).
    """
    result = {'units': '', 'description': ''}
    if not xml:
        return result

    text = xml.replace('\x00', '').strip()
    if _is_xml(text):
        try:
            root = etree.fromstring(text.encode('utf-8'))
            for item in root.iter('Item'):
                name = (item.get('name') or '').lower()
                if name in result and not result[name]:
                    result[name] = (item.text or '').strip()
            return result
        except etree.XMLSyntaxError as e:
            logger.debug(f"GDAL_METADATA is malformed XML, using pattern match: {e}")

    for name in result:
        match = re.search(rf'<Item name="{name}"[^>]*>(.*?)</Item>', text, re.IGNORECASE | re.DOTALL)
        if match:
            result[name] = match.group(1).strip()
    return result


def _first_band(data: np.ndarray, height: int, width: int) -> Optional[np.ndarray]:
    """Select the first sample plane from a decoded page array."""
    if data.ndim == 2 and data.shape == (height, width):
        return data
    if data.ndim == 3:
        if data.shape[:2] == (height, width):
            return data[..., 0]
        if data.shape[1:] == (height, width):
            return data[0]
    if data.size == height * width:
        return data.reshape(height, width)
    return None


def _warn_on_uniform_pixels(band: np.ndarray, source: str) -> None:
    """Log warnings when a sample of pixels looks suspicious."""
    flat = band.reshape(-1)
    if flat.size == 0:
        return
    step = max(1, flat.size // UNIFORMITY_SAMPLE_SIZE)
    sample = flat[::step]
    unique_count = len(np.unique(sample))
    zero_percent = float(np.count_nonzero(sample == 0)) / sample.size * 100

    if unique_count == 1:
        logger.warning(f"All sampled pixels in {source} have the same value")
    if zero_percent > 95:
        logger.warning(f"More than 95% of sampled pixels in {source} are zero ({zero_percent:.2f}%)")
    if unique_count < 10:
        logger.debug(f"Very low variety in pixel values for {source} ({unique_count} unique values)")


def _is_xml(value: str) -> bool:
    """Check if a string is likely XML."""
    if not isinstance(value, str):
        return False
    return value.strip().startswith('<') and value.strip().endswith('>')


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, tuple):
        value = value[0] if value else None
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _as_int_tuple(value: Any) -> Optional[Tuple[int, ...]]:
    if value is None:
        return None
    values = value if isinstance(value, (tuple, list, np.ndarray)) else (value,)
    try:
        return tuple(int(v) for v in values)
    except (TypeError, ValueError):
        return None


def _as_float_tuple(value: Any) -> Optional[Tuple[float, ...]]:
    if value is None:
        return None
    values = value if isinstance(value, (tuple, list, np.ndarray)) else (value,)
    try:
        return tuple(float(v) for v in values)
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, tuple):
        value = ''.join(str(v) for v in value)
    return str(value)
