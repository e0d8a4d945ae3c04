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
GeoTIFF Processor.

The ingestion and render pipeline:

    bytes -> structure validation -> decode -> {georeference, statistics}
          -> metadata -> (domain, clamp, fill) -> colorize -> RenderedRaster

load_geotiff_bytes turns an in-memory buffer into GeoTiffData;
render_geotiff turns GeoTiffData into RGBA pixels with a geographic extent.
"""

import logging
import math
from typing import List, Optional, Tuple, Union

from gtrk.utils.colors import get_color_scheme
from gtrk.utils.config_loader import config
from gtrk.utils.data_models import (
    BoundingBox,
    ColorScheme,
    GeoReference,
    GeoTiffData,
    GeoTiffMetadata,
    ImageDirectory,
    RawBuffer,
    RenderedRaster,
)
from gtrk.utils.exceptions import GeoTiffPipelineError, InvalidMetadataError, ReprojectionFailedError
from gtrk.utils.geokey_parser import (
    CANONICAL_CRS,
    crs_code_from_geokeys,
    parse_geokeys,
    projection_details,
    source_crs_from_geokeys,
)
from gtrk.utils.georeference import native_bounding_box, resolve_georeference
from gtrk.utils.raster_colorizer import (
    clamp_raster_to_domain,
    colorize_raster,
    fill_nodata_focal_mean,
    resolve_domain,
)
from gtrk.utils.statistics_calculator import collect_statistics, require_valid_statistics
from gtrk.utils.tiff_tag_parser import TiffDecoder, parse_gdal_metadata, parse_nodata
from gtrk.utils.tiff_validator import validate_tiff_structure

logger = logging.getLogger(__name__)

# Meters per degree of latitude (and of longitude at the equator)
METERS_PER_DEGREE = 111319.5


def load_geotiff_bytes(data: Union[bytes, RawBuffer], source: Optional[str] = None,
                       regional_fallback: Union[bool, BoundingBox] = False) -> GeoTiffData:
    """
    Decode an in-memory GeoTIFF into metadata and samples.

    Args:
        data: The complete file contents, as bytes or a RawBuffer.
        source: URL or label used in logs and error context.
        regional_fallback: When True (or a BoundingBox), a failed reprojection
            is replaced by the configured (or given) regional box and the
            result is marked degraded. Other failures always propagate.

    Returns:
        GeoTiffData with metadata and the first band's samples.

    Raises:
        MalformedTiffError: The buffer is not a structurally valid TIFF.
        UnsupportedEncodingError: tifffile cannot decode the image.
        GeoReferencingError: The raster cannot be placed on the map.
        InvalidMetadataError: The extracted metadata fails sanity checks.
    """
    if isinstance(data, RawBuffer):
        source = source or data.source
        data = data.data
    source = source or '<memory>'

    try:
        validate_tiff_structure(data)
        with TiffDecoder(data, source) as decoder:
            ifd = decoder.get_image_directory()
            nodata_value = parse_nodata(ifd.gdal_nodata)
            dataset = decoder.read_raster(nodata_value)
            fallback_bounds = decoder.bounding_box()

        geokeys = parse_geokeys(ifd)
        georeference = _resolve_with_fallback(
            ifd, geokeys, dataset.width, dataset.height, fallback_bounds, regional_fallback)
        statistics = collect_statistics(dataset)

        gdal_items = parse_gdal_metadata(ifd.gdal_metadata)
        projection_name, datum = projection_details(geokeys)
        is_geographic = georeference.source_crs == CANONICAL_CRS

        metadata = GeoTiffMetadata(
            width=dataset.width,
            height=dataset.height,
            bits_per_sample=ifd.bits_per_sample or (),
            compression=ifd.compression,
            nodata_value=nodata_value,
            resolution=calculate_resolution(ifd, georeference.raw_bounding_box, dataset.width,
                                            dataset.height, is_geographic),
            origin=calculate_origin(ifd, georeference.raw_bounding_box),
            crs=crs_code_from_geokeys(geokeys),
            projection_name=projection_name,
            datum=datum,
            units=gdal_items['units'],
            description=gdal_items['description'],
            georeference=georeference,
            statistics=statistics,
        )
        validate_metadata(metadata)
    except GeoTiffPipelineError as e:
        raise e.with_context(url=source)

    logger.info(
        f"Loaded {source}: {metadata.width}x{metadata.height}, {georeference.source_crs}, "
        f"bounds={georeference.bounding_box.as_list()}"
        f"{' (degraded)' if georeference.degraded else ''}"
    )
    return GeoTiffData(metadata=metadata, dataset=dataset, source=source)


def _resolve_with_fallback(ifd: ImageDirectory, geokeys, width: int, height: int,
                           fallback_bounds: Optional[BoundingBox],
                           regional_fallback: Union[bool, BoundingBox]) -> GeoReference:
    try:
        return resolve_georeference(
            ifd, geokeys, width, height, fallback_bounds,
            square_tolerance=config.get("georeference.square_tolerance", 0.05),
        )
    except ReprojectionFailedError as e:
        if regional_fallback is False or regional_fallback is None:
            raise
        regional = regional_fallback if isinstance(regional_fallback, BoundingBox) else regional_bounds()
        logger.warning(
            f"Reprojection failed ({e}); substituting regional bounds {regional.as_list()}. "
            "Output is degraded and may be misplaced."
        )
        return GeoReference(
            bounding_box=regional,
            source_crs=source_crs_from_geokeys(geokeys),
            raw_bounding_box=native_bounding_box(ifd, width, height, fallback_bounds),
            transform=ifd.model_transformation,
            tiepoint=ifd.model_tiepoint,
            pixel_scale=ifd.model_pixel_scale,
            degraded=True,
        )


def regional_bounds() -> BoundingBox:
    """The configured regional fallback box ([west, south, east, north])."""
    west, south, east, north = config.get("georeference.regional_fallback_bounds", [-125.0, 24.0, -66.0, 50.0])
    return BoundingBox(west=float(west), south=float(south), east=float(east), north=float(north))


def calculate_resolution(ifd: ImageDirectory, raw_bounds: Optional[BoundingBox], width: int, height: int,
                         is_geographic: bool) -> Tuple[float, float]:
    """
    Pixel size (x, y).

    Taken from ModelPixelScaleTag, else from the transformation matrix, else
    derived from the native bounds. Bounds in degrees are converted to meters
    with a cos(latitude) correction for the x axis.
    """
    scale = ifd.model_pixel_scale
    if scale and len(scale) >= 2:
        return (abs(scale[0]), abs(scale[1]))

    m = ifd.model_transformation
    if m and len(m) >= 6:
        return (math.hypot(m[0], m[1]), math.hypot(m[4], m[5]))

    if raw_bounds is None or width <= 0 or height <= 0:
        return (math.nan, math.nan)

    lng_span = abs(raw_bounds.width())
    lat_span = abs(raw_bounds.height())
    if is_geographic:
        center_lat = (raw_bounds.south + raw_bounds.north) / 2
        correction = math.cos(math.radians(center_lat))
        return (lng_span * METERS_PER_DEGREE * correction / width, lat_span * METERS_PER_DEGREE / height)
    return (lng_span / width, lat_span / height)


def calculate_origin(ifd: ImageDirectory, raw_bounds: Optional[BoundingBox]) -> Optional[Tuple[float, float]]:
    """Upper-left (x, y) in the source CRS."""
    m = ifd.model_transformation
    if m and len(m) >= 8:
        return (m[3], m[7])
    tiepoint = ifd.model_tiepoint
    if tiepoint and len(tiepoint) >= 5:
        return (tiepoint[3], tiepoint[4])
    if raw_bounds is not None:
        return (raw_bounds.west, raw_bounds.north)
    return None


def validate_metadata(metadata: GeoTiffMetadata) -> GeoTiffMetadata:
    """
    Sanity-check extracted metadata.

    Raises:
        InvalidMetadataError: Listing every failed check.
    """
    errors: List[str] = []

    if not isinstance(metadata.width, int) or metadata.width <= 0:
        errors.append(f"width must be a positive integer, got {metadata.width}")
    if not isinstance(metadata.height, int) or metadata.height <= 0:
        errors.append(f"height must be a positive integer, got {metadata.height}")
    if metadata.nodata_value is not None and not isinstance(metadata.nodata_value, (int, float)):
        errors.append(f"nodata_value must be a number or None, got {metadata.nodata_value!r}")
    if (not metadata.resolution or len(metadata.resolution) != 2
            or not all(isinstance(v, (int, float)) for v in metadata.resolution)):
        errors.append(f"resolution must be (x, y) numbers, got {metadata.resolution}")
    if not isinstance(metadata.georeference.source_crs, str):
        errors.append(f"source_crs must be a string, got {metadata.georeference.source_crs!r}")
    if metadata.origin is not None and len(metadata.origin) != 2:
        errors.append(f"origin must be (x, y), got {metadata.origin}")

    raw = metadata.georeference.raw_bounding_box
    if raw is None or not all(isinstance(v, (int, float)) for v in (raw.west, raw.south, raw.east, raw.north)):
        errors.append(f"raw bounds must be [west, south, east, north] numbers, got {raw}")

    if errors:
        raise InvalidMetadataError("Invalid metadata: " + "; ".join(errors))
    return metadata


def render_geotiff(geotiff: GeoTiffData, scheme: Union[ColorScheme, str, None] = None,
                   domain: Optional[Tuple[float, float]] = None,
                   value_range: Optional[Tuple[float, float]] = None,
                   fill_nodata: bool = False, fill_radius: int = 1) -> RenderedRaster:
    """
    Colorize a decoded GeoTIFF.

    Steps:
        1. Require at least one valid sample
        2. Resolve the domain (explicit, else the scheme's, else the data range),
           replacing no-data endpoints with real statistics
        3. Clamp samples into the domain
        4. Optionally fill no-data holes with a focal mean
        5. Colorize

    Args:
        geotiff: Output of load_geotiff_bytes.
        scheme: ColorScheme or registered name; defaults to render.default_color_scheme.
        domain: (min, max) anchoring the color ramp.
        value_range: (min, max) of values to draw; defaults to the domain.
        fill_nodata: Fill no-data pixels from their neighbours before coloring.
        fill_radius: Window half-size for the fill.

    Raises:
        EmptyRasterError: The raster has no valid samples.
        NoColorSchemeError: The scheme name is not registered.
    """
    metadata, dataset = geotiff.metadata, geotiff.dataset
    stats = require_valid_statistics(metadata.statistics, geotiff.source)

    if scheme is None:
        scheme = config.get("render.default_color_scheme", "fireIntensity")
    if isinstance(scheme, str):
        scheme = get_color_scheme(scheme)

    raw_domain = domain or scheme.domain or (stats.minimum, stats.maximum)
    domain_min, domain_max = resolve_domain(raw_domain, stats.minimum, stats.maximum, dataset.nodata_value)

    samples = clamp_raster_to_domain(dataset.samples, domain_min, domain_max, dataset.nodata_value)
    if fill_nodata and dataset.nodata_value is not None:
        samples = fill_nodata_focal_mean(samples, dataset.width, dataset.height,
                                         dataset.nodata_value, fill_radius)

    visible = value_range or (domain_min, domain_max)
    rgba = colorize_raster(samples, dataset.width, dataset.height, scheme,
                           (domain_min, domain_max), visible, dataset.nodata_value)
    return RenderedRaster(
        rgba=rgba,
        bounding_box=metadata.bounding_box,
        domain=(domain_min, domain_max),
        value_range=visible,
    )
