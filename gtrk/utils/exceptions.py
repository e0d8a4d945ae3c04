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
Custom Exceptions Module.

A centralized module for custom exceptions used throughout the GeoTIFF Raster Kit.
Every pipeline failure derives from GeoTiffPipelineError and carries a context
dictionary (URL, byte offset, tag name) for diagnosis.
"""

from enum import Enum
from typing import Any, Dict, Optional


class GeoTiffPipelineError(RuntimeError):
    """Base exception for errors raised while ingesting or rendering a GeoTIFF."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    def with_context(self, **context: Any) -> 'GeoTiffPipelineError':
        """Attach additional diagnostic context and return the same exception."""
        for key, value in context.items():
            self.context.setdefault(key, value)
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ', '.join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class NetworkFailureError(GeoTiffPipelineError):
    """Raised for non-2xx HTTP responses, zero content length or transport errors."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        context: Dict[str, Any] = {}
        if url is not None:
            context['url'] = url
        if status_code is not None:
            context['status_code'] = status_code
        super().__init__(message, context)
        self.url = url
        self.status_code = status_code


class MalformedTiffReason(Enum):
    """Structural validation failures, in the order they are checked."""
    TOO_SMALL = 'TooSmall'
    INVALID_BYTE_ORDER = 'InvalidByteOrder'
    INVALID_MAGIC_NUMBER = 'InvalidMagicNumber'
    INVALID_IFD_OFFSET = 'InvalidIfdOffset'
    INVALID_IFD_ENTRIES = 'InvalidIfdEntries'


class MalformedTiffError(GeoTiffPipelineError):
    """Raised when a buffer is not a syntactically valid TIFF/BigTIFF container."""

    def __init__(self, reason: MalformedTiffReason, message: str, offset: Optional[int] = None):
        context: Dict[str, Any] = {'reason': reason.value}
        if offset is not None:
            context['offset'] = offset
        super().__init__(message, context)
        self.reason = reason
        self.offset = offset


class UnsupportedEncodingError(GeoTiffPipelineError):
    """Raised when the decoder cannot interpret a tag combination."""
    pass


class GeoReferencingError(GeoTiffPipelineError):
    """Base exception for georeferencing failures."""
    pass


class MissingGeoreferencingError(GeoReferencingError):
    """Raised when no transform, tiepoint/scale pair or bounding box is available."""
    pass


class ReprojectionFailedError(GeoReferencingError):
    """Raised when corner reprojection to the canonical CRS fails."""

    def __init__(self, message: str, source_crs: Optional[str] = None):
        super().__init__(message, {'source_crs': source_crs} if source_crs else None)
        self.source_crs = source_crs


class DegenerateBoundsError(GeoReferencingError):
    """Raised when the resolved bounding box has zero width or height."""
    pass


class InvalidMetadataError(GeoTiffPipelineError):
    """Raised when extracted metadata fails its sanity checks."""
    pass


class EmptyRasterError(GeoTiffPipelineError):
    """Raised when a raster contains no valid samples."""
    pass


class NoColorSchemeError(GeoTiffPipelineError):
    """Raised when a requested color scheme name is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Color scheme '{name}' is not registered", {'scheme': name})
        self.name = name
