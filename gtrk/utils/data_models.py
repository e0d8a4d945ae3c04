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
Data Models for GeoTIFF Raster Kit.

This module defines strongly-typed data classes for the values that flow
through the ingestion pipeline. These classes provide type safety,
self-documentation, and clear contracts between modules.

Buffer and directory classes:
    RawBuffer: Immutable byte buffer fetched for a URL
    ImageDirectory: Typed record of the first Image File Directory (IFD)
    GeoKey: A single parsed GeoTIFF key
    GeoKeys: The parsed GeoKey directory with name-based lookup

Domain model classes:
    BoundingBox: Geographic or native bounding box extents
    GeoReference: Resolved bounding box and source CRS
    RasterDataset: Decoded single-band samples with their no-data value
    RasterStatistics: Single-pass statistics over a RasterDataset
    ColorScheme: Ordered color stops with an optional value domain
    Circle: A circle on the Earth's surface (center in lat/lng, radius in meters)
    BufferCircle: An AOI buffer derived from a minimum enclosing circle

Result classes:
    GeoTiffMetadata: Everything extracted from a GeoTIFF apart from the samples
    RenderedRaster: RGBA pixels plus the geographic extent they cover
    GeoTiffData: Decoded metadata together with the samples
    CacheEntry: Immutable cache record for a single URL
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

# GeoTIFF 1.1 key names mapped to their 1.0 equivalents
GEOKEY_v1_0_MAP = {
    'GeodeticCRSGeoKey': 'GeographicTypeGeoKey',
    'GeodeticCitationGeoKey': 'GeogCitationGeoKey',
    'GeodeticDatumGeoKey': 'GeogGeodeticDatumGeoKey',
    'EllipsoidGeoKey': 'GeogEllipsoidGeoKey',
    'ProjectedCRSGeoKey': 'ProjectedCSTypeGeoKey',
    'ProjectedCitationGeoKey': 'PCSCitationGeoKey',
    'ProjMethodGeoKey': 'ProjCoordTransGeoKey',
    'VerticalGeoKey': 'VerticalCSTypeGeoKey',
}


# ============================================================================
# Buffer and directory classes
# ============================================================================

@dataclass(frozen=True)
class RawBuffer:
    """
    An immutable byte buffer holding a complete TIFF file.

    Attributes:
        data: The raw file bytes
        source: Where the bytes came from (URL or a descriptive label)
    """
    data: bytes
    source: Optional[str] = None

    @property
    def length(self) -> int:
        """Total number of bytes in the buffer."""
        return len(self.data)


@dataclass(frozen=True)
class ImageDirectory:
    """
    Typed record of the tags decoded from the first IFD.

    Every known tag is exposed as an optional field populated by an explicit
    lookup-and-convert step; a missing tag is simply None. The complete
    decoded tag map stays available in `tags`.

    Attributes:
        image_width: ImageWidth (256)
        image_length: ImageLength (257)
        bits_per_sample: BitsPerSample (258), one entry per sample
        compression: Compression (259)
        photometric: PhotometricInterpretation (262)
        samples_per_pixel: SamplesPerPixel (277)
        sample_format: SampleFormat (339), one entry per sample
        model_pixel_scale: ModelPixelScaleTag (33550)
        model_tiepoint: ModelTiepointTag (33922)
        model_transformation: ModelTransformationTag (34264), 16 values
        geokey_directory: GeoKeyDirectoryTag (34735)
        geo_double_params: GeoDoubleParamsTag (34736)
        geo_ascii_params: GeoAsciiParamsTag (34737)
        gdal_metadata: GDAL_METADATA (42112) XML string
        gdal_nodata: GDAL_NODATA (42113) raw string
        tags: All decoded tags keyed by numeric code
    """
    image_width: Optional[int] = None
    image_length: Optional[int] = None
    bits_per_sample: Optional[Tuple[int, ...]] = None
    compression: Optional[int] = None
    photometric: Optional[int] = None
    samples_per_pixel: Optional[int] = None
    sample_format: Optional[Tuple[int, ...]] = None
    model_pixel_scale: Optional[Tuple[float, ...]] = None
    model_tiepoint: Optional[Tuple[float, ...]] = None
    model_transformation: Optional[Tuple[float, ...]] = None
    geokey_directory: Optional[Tuple[int, ...]] = None
    geo_double_params: Optional[Tuple[float, ...]] = None
    geo_ascii_params: Optional[str] = None
    gdal_metadata: Optional[str] = None
    gdal_nodata: Optional[str] = None
    tags: Dict[int, Any] = field(default_factory=dict)

    def get(self, code: int, default: Any = None) -> Any:
        """Return the decoded value of a tag by code, or `default` if absent."""
        return self.tags.get(code, default)

    def has_geotiff_tags(self) -> bool:
        """Check whether any georeferencing tag is present."""
        return any(v is not None for v in (
            self.model_transformation, self.model_tiepoint,
            self.model_pixel_scale, self.geokey_directory))


@dataclass
class GeoKey:
    """
    Represents a GeoTIFF key with its value and metadata.

    Attributes:
        id: The numeric GeoKey ID (e.g., 1024 for GTModelTypeGeoKey)
        name: The GeoKey name as written by the file's GeoTIFF version
        value: The raw GeoKey value (int, float, tuple or str)
        is_citation: Whether this is a citation key (text description)
        location: The TIFF tag where the value is stored (0, 34736, or 34737)
        count: The number of values for this key
    """
    id: int
    name: str
    value: Any
    is_citation: bool = False
    location: Optional[int] = None
    count: Optional[int] = None

    def is_stored_in_doubles(self) -> bool:
        """Check if the value is stored in the GeoDoubleParams tag (34736)."""
        return self.location == 34736

    def is_stored_in_ascii(self) -> bool:
        """Check if the value is stored in the GeoAsciiParams tag (34737)."""
        return self.location == 34737


@dataclass
class GeoKeys:
    """
    The parsed GeoKey directory.

    Keys can be looked up by numeric id or by name; GeoTIFF 1.1 names and their
    1.0 equivalents (e.g. ProjectedCRSGeoKey / ProjectedCSTypeGeoKey) are
    interchangeable.

    Example:
        >>> keys = GeoKeys(version='1.0', keys=[GeoKey(3072, 'ProjectedCSTypeGeoKey', 32613)])
        >>> keys.get('ProjectedCRSGeoKey')
        32613
    """
    version: Optional[str] = None
    keys: List[GeoKey] = field(default_factory=list)

    def _find(self, key: Any) -> Optional[GeoKey]:
        if isinstance(key, int):
            return next((k for k in self.keys if k.id == key), None)
        names = {key, GEOKEY_v1_0_MAP.get(key, key)}
        names.update(n for n, alias in GEOKEY_v1_0_MAP.items() if alias == key)
        return next((k for k in self.keys if k.name.strip() in names), None)

    def get(self, key: Any, default: Any = None) -> Any:
        """Return a key's value by id or name, or `default` when absent."""
        found = self._find(key)
        return found.value if found is not None else default

    def __contains__(self, key: Any) -> bool:
        return self._find(key) is not None

    def __len__(self) -> int:
        return len(self.keys)

    def as_dict(self) -> Dict[str, Any]:
        """Return a {name: value} mapping of all keys."""
        return {k.name.strip(): k.value for k in self.keys}


# ============================================================================
# Domain model classes
# ============================================================================

@dataclass(frozen=True)
class BoundingBox:
    """
    Represents bounding box extents.

    In the canonical CRS (EPSG:4326) west/east are longitudes and
    south/north latitudes; native boxes use the source CRS units.

    Example:
        >>> bbox = BoundingBox(west=-105.0, south=39.0, east=-104.0, north=40.0)
        >>> bbox.width()
        1.0
        >>> bbox.as_leaflet()
        [[39.0, -105.0], [40.0, -104.0]]
    """
    west: float
    south: float
    east: float
    north: float

    def width(self) -> float:
        """The difference between east and west coordinates."""
        return self.east - self.west

    def height(self) -> float:
        """The difference between north and south coordinates."""
        return self.north - self.south

    def center(self) -> Tuple[float, float]:
        """Center as (x, y), i.e. (lng, lat) in the canonical CRS."""
        return ((self.west + self.east) / 2, (self.south + self.north) / 2)

    def corners(self) -> List[Tuple[float, float]]:
        """The four corners as (x, y): SW, SE, NE, NW."""
        return [
            (self.west, self.south),
            (self.east, self.south),
            (self.east, self.north),
            (self.west, self.north),
        ]

    def as_list(self) -> List[float]:
        """[south, west, north, east]"""
        return [self.south, self.west, self.north, self.east]

    def as_leaflet(self) -> List[List[float]]:
        """[[south, west], [north, east]]"""
        return [[self.south, self.west], [self.north, self.east]]


@dataclass(frozen=True)
class GeoReference:
    """
    Represents the resolved geographic extent of a raster.

    Attributes:
        bounding_box: Extent in the canonical geographic CRS
        source_crs: Source CRS as an 'EPSG:<code>' string
        raw_bounding_box: Extent in the source CRS before reprojection
        transform: ModelTransformationTag values, if present
        tiepoint: ModelTiepointTag values, if present
        pixel_scale: ModelPixelScaleTag values, if present
        degraded: True when a regional fallback box replaced a failed reprojection
    """
    bounding_box: BoundingBox
    source_crs: str
    raw_bounding_box: Optional[BoundingBox] = None
    transform: Optional[Tuple[float, ...]] = None
    tiepoint: Optional[Tuple[float, ...]] = None
    pixel_scale: Optional[Tuple[float, ...]] = None
    degraded: bool = False

    def is_reprojected(self) -> bool:
        """Check whether the source CRS differs from the canonical CRS."""
        return self.source_crs != 'EPSG:4326'


@dataclass
class RasterDataset:
    """
    Decoded samples of the first band, flattened in row-major order.

    Attributes:
        width: Raster width in pixels
        height: Raster height in pixels
        samples: 1-D numpy array of length width * height
        nodata_value: The no-data sentinel, or None
    """
    width: int
    height: int
    samples: np.ndarray
    nodata_value: Optional[float] = None

    def __post_init__(self):
        self.samples = np.asarray(self.samples).reshape(-1)
        if self.samples.size != self.width * self.height:
            raise ValueError(
                f"Sample count {self.samples.size} does not match "
                f"{self.width}x{self.height} raster"
            )

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    def as_grid(self) -> np.ndarray:
        """Samples reshaped to (height, width)."""
        return self.samples.reshape(self.height, self.width)


@dataclass(frozen=True)
class RasterStatistics:
    """
    Statistics collected in a single pass over a raster's samples.

    NaN and infinite samples are counted separately from no-data samples;
    all three are excluded from minimum, maximum and mean.

    Attributes:
        minimum: Smallest valid sample, None when there are no valid samples
        maximum: Largest valid sample, None when there are no valid samples
        mean: Mean of valid samples, 0.0 when there are none
        total_pixels: Number of samples examined
        valid_count: Samples that are finite and not equal to the no-data value
        nodata_count: Samples equal to the no-data value
        zero_count: Valid samples exactly equal to 0
        nan_count: NaN samples
        infinite_count: +/- infinity samples
    """
    minimum: Optional[float]
    maximum: Optional[float]
    mean: float
    total_pixels: int
    valid_count: int
    nodata_count: int
    zero_count: int
    nan_count: int = 0
    infinite_count: int = 0

    @property
    def valid_percent(self) -> float:
        return (self.valid_count / self.total_pixels) * 100 if self.total_pixels else 0.0

    def range(self) -> Optional[float]:
        """The range (max - min) of valid samples, or None."""
        if self.minimum is not None and self.maximum is not None:
            return self.maximum - self.minimum
        return None

    def has_valid_data(self) -> bool:
        return self.valid_count > 0


@dataclass(frozen=True)
class ColorScheme:
    """
    Ordered color stops plus an optional value domain.

    Attributes:
        name: Registry key (e.g., 'fireIntensity')
        display_name: Human-readable name
        description: Short description for legends
        colors: Hex color stops, lowest value first
        scheme_type: 'sequential', 'diverging' or 'qualitative'
        domain: Optional (min, max) the scheme was designed for
        discrete: Use equal-interval buckets instead of continuous interpolation
    """
    name: str
    colors: Tuple[str, ...]
    display_name: str = ''
    description: str = ''
    scheme_type: str = 'sequential'
    domain: Optional[Tuple[float, float]] = None
    discrete: bool = False

    @property
    def buckets(self) -> int:
        return len(self.colors)


@dataclass(frozen=True)
class Circle:
    """
    A circle on the Earth's surface.

    Attributes:
        center: (lat, lng) in degrees
        radius: Radius in meters
    """
    center: Tuple[float, float]
    radius: float


@dataclass(frozen=True)
class BufferCircle:
    """
    An area-of-interest buffer.

    Attributes:
        center: (lat, lng) of the buffer
        radius: Buffered radius in meters
        boundary_circle: The minimum enclosing circle of the boundary, if any
        bounds: Approximate lat/lng bounding box of the buffered circle
    """
    center: Tuple[float, float]
    radius: float
    boundary_circle: Optional[Circle] = None
    bounds: Optional[BoundingBox] = None


# ============================================================================
# Result classes
# ============================================================================

@dataclass(frozen=True)
class GeoTiffMetadata:
    """
    Everything extracted from a GeoTIFF apart from the sample array.

    Attributes:
        width: Raster width in pixels
        height: Raster height in pixels
        bits_per_sample: BitsPerSample values
        compression: Compression code, if present
        nodata_value: Parsed GDAL_NODATA value, or None
        resolution: Pixel size (x, y) in source units (meters for geographic sources)
        origin: Upper-left (x, y) in the source CRS
        crs: Numeric CRS code as a string, or 'Unknown'
        projection_name: Projection name from the citation GeoKey
        datum: Datum name from the geographic citation GeoKey
        units: GDAL_METADATA 'units' item
        description: GDAL_METADATA 'description' item
        georeference: The resolved GeoReference
        statistics: The collected RasterStatistics
    """
    width: int
    height: int
    bits_per_sample: Tuple[int, ...]
    compression: Optional[int]
    nodata_value: Optional[float]
    resolution: Tuple[float, float]
    origin: Optional[Tuple[float, float]]
    crs: str
    projection_name: str
    datum: str
    units: str
    description: str
    georeference: GeoReference
    statistics: RasterStatistics

    @property
    def bounding_box(self) -> BoundingBox:
        return self.georeference.bounding_box

    @property
    def total_pixels(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class RenderedRaster:
    """
    A colorized raster ready for display.

    Attributes:
        rgba: uint8 array of shape (height, width, 4)
        bounding_box: Geographic extent of the image
        domain: Value domain used for color anchoring
        value_range: Visible value range
    """
    rgba: np.ndarray
    bounding_box: BoundingBox
    domain: Tuple[float, float]
    value_range: Tuple[float, float]

    @property
    def width(self) -> int:
        return int(self.rgba.shape[1])

    @property
    def height(self) -> int:
        return int(self.rgba.shape[0])


@dataclass(frozen=True)
class GeoTiffData:
    """
    A fully decoded GeoTIFF: metadata plus the first band's samples.

    Attributes:
        metadata: The extracted GeoTiffMetadata
        dataset: The decoded RasterDataset
        source: URL or label the bytes came from
    """
    metadata: GeoTiffMetadata
    dataset: RasterDataset
    source: Optional[str] = None


@dataclass(frozen=True)
class CacheEntry:
    """
    Immutable cache record for a URL. Replaced wholesale on refresh.

    Attributes:
        raw_buffer: The fetched bytes
        metadata: Metadata decoded from the bytes, once requested
        fetched_at: Clock reading when the bytes were fetched
        dataset: Decoded samples, kept alongside the metadata
    """
    raw_buffer: Optional[RawBuffer]
    metadata: Optional[GeoTiffMetadata]
    fetched_at: float
    dataset: Optional[RasterDataset] = None

    def is_stale(self, now: float, ttl_seconds: float) -> bool:
        """An entry is stale once its age exceeds the TTL."""
        return now - self.fetched_at > ttl_seconds
