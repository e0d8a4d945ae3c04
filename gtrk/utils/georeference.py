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
GeoReference Resolver.

Computes the geographic bounding box of a raster in the canonical CRS
(EPSG:4326, lon/lat) from the georeferencing tags of its first IFD.

Sources are tried in order:
    1. ModelTransformationTag (affine matrix)
    2. ModelTiepointTag + ModelPixelScaleTag
    3. A bounding box supplied by the decoder

Projected sources are reprojected corner by corner through GDAL/OSR. The
result is validated, clamped to valid lat/lng ranges and normalized so that
south < north and west < east. Square rasters additionally get an aspect
correction so they do not render stretched on a lat/lng map.

Known limitation: boxes that span the antimeridian or a pole are not split;
their enclosing box is returned as-is.
"""

import logging
import math
from typing import List, Optional, Tuple

from osgeo import osr

from gtrk.utils.data_models import BoundingBox, GeoKeys, GeoReference, ImageDirectory
from gtrk.utils.exceptions import (
    DegenerateBoundsError,
    MissingGeoreferencingError,
    ReprojectionFailedError,
)
from gtrk.utils.geokey_parser import CANONICAL_CRS, source_crs_from_geokeys

osr.UseExceptions()

logger = logging.getLogger(__name__)

DEFAULT_SQUARE_TOLERANCE = 0.05


def resolve_georeference(ifd: ImageDirectory, geokeys: GeoKeys, width: int, height: int,
                         fallback_bounds: Optional[BoundingBox] = None,
                         square_tolerance: float = DEFAULT_SQUARE_TOLERANCE) -> GeoReference:
    """
    Resolve the canonical-CRS bounding box of a raster.

    Args:
        ifd: The decoded ImageDirectory.
        geokeys: Parsed GeoKeys (used for the source CRS).
        width: Raster width in pixels.
        height: Raster height in pixels.
        fallback_bounds: Bounding box from the decoder, used when neither a
            transformation matrix nor a tiepoint/scale pair is present.
        square_tolerance: Allowed deviation of the ground aspect ratio from 1
            before a square raster's box is expanded.

    Returns:
        GeoReference with the validated, clamped bounding box.

    Raises:
        MissingGeoreferencingError: No georeferencing source is available.
        ReprojectionFailedError: Corner reprojection failed.
        DegenerateBoundsError: The box has zero width or height.
    """
    native = native_bounding_box(ifd, width, height, fallback_bounds)
    source_crs = source_crs_from_geokeys(geokeys)
    logger.debug(f"Native bounds in {source_crs}: {native}")

    if source_crs != CANONICAL_CRS:
        bbox = reproject_bounding_box(native, source_crs)
    else:
        bbox = native

    bbox = normalize_bounding_box(bbox)

    if width == height:
        bbox = square_correct(bbox, square_tolerance)

    spans_globe = bbox.west <= -180 and bbox.east >= 180
    if spans_globe or bbox.north >= 90 or bbox.south <= -90:
        logger.warning(
            f"Bounds {bbox.as_list()} reach the antimeridian or a pole; "
            "antimeridian-spanning extents are not split and may render incorrectly"
        )

    return GeoReference(
        bounding_box=bbox,
        source_crs=source_crs,
        raw_bounding_box=native,
        transform=ifd.model_transformation,
        tiepoint=ifd.model_tiepoint,
        pixel_scale=ifd.model_pixel_scale,
    )


def native_bounding_box(ifd: ImageDirectory, width: int, height: int,
                        fallback_bounds: Optional[BoundingBox] = None) -> BoundingBox:
    """
    Bounding box in the source CRS, before any reprojection.

    Raises:
        MissingGeoreferencingError: If no georeferencing source is present.
    """
    m = ifd.model_transformation
    if m and len(m) >= 8:
        west = m[3]
        north = m[7]
        east = west + width * m[0]
        south = north + height * m[5]
        logger.debug("Bounds derived from ModelTransformationTag")
        return BoundingBox(west=west, south=south, east=east, north=north)

    tiepoint = ifd.model_tiepoint
    scale = ifd.model_pixel_scale
    if tiepoint and len(tiepoint) >= 6 and scale and len(scale) >= 2:
        sx, sy = abs(scale[0]), abs(scale[1])
        # Tiepoint maps raster (i, j) to world (x, y)
        west = tiepoint[3] - tiepoint[0] * sx
        north = tiepoint[4] + tiepoint[1] * sy
        logger.debug("Bounds derived from ModelTiepointTag and ModelPixelScaleTag")
        return BoundingBox(
            west=west,
            south=north - height * sy,
            east=west + width * sx,
            north=north,
        )

    if fallback_bounds is not None:
        logger.debug("Bounds taken from decoder bounding box")
        return fallback_bounds

    raise MissingGeoreferencingError(
        "No georeferencing information found (no transformation, tiepoint/scale or bounding box)",
        {'tag': 'ModelTiepointTag'},
    )


def reproject_bounding_box(bbox: BoundingBox, source_crs: str,
                           target_crs: str = CANONICAL_CRS) -> BoundingBox:
    """
    Reproject the four corners of a box and return their enclosing box.

    Raises:
        ReprojectionFailedError: If the CRS is unknown or a corner cannot be
            transformed.
    """
    try:
        source_srs = _srs_from_code(source_crs)
        target_srs = _srs_from_code(target_crs)
        source_srs.SetAxisMappingStrategy(osr.OAMS_TRADITIONAL_GIS_ORDER)
        target_srs.SetAxisMappingStrategy(osr.OAMS_TRADITIONAL_GIS_ORDER)
        transform = osr.CoordinateTransformation(source_srs, target_srs)
        corners: List[Tuple[float, float]] = []
        for x, y in bbox.corners():
            lon, lat, _ = transform.TransformPoint(x, y)
            corners.append((lon, lat))
    except (RuntimeError, ValueError, TypeError) as e:
        raise ReprojectionFailedError(
            f"Failed to reproject bounds from {source_crs} to {target_crs}: {e}",
            source_crs=source_crs,
        ) from e

    if any(not math.isfinite(v) for corner in corners for v in corner):
        raise ReprojectionFailedError(
            f"Reprojection from {source_crs} produced non-finite coordinates",
            source_crs=source_crs,
        )

    lons = [c[0] for c in corners]
    lats = [c[1] for c in corners]
    result = BoundingBox(west=min(lons), south=min(lats), east=max(lons), north=max(lats))
    logger.debug(f"Reprojected {source_crs} bounds to {target_crs}: {result}")
    return result


def normalize_bounding_box(bbox: BoundingBox) -> BoundingBox:
    """
    Validate, clamp and order a canonical-CRS box.

    Raises:
        ReprojectionFailedError: If any coordinate is NaN.
        DegenerateBoundsError: If the box has zero width or height.
    """
    values = (bbox.west, bbox.south, bbox.east, bbox.north)
    if any(math.isnan(v) for v in values):
        raise ReprojectionFailedError(f"Bounds contain NaN values: {list(values)}")

    if bbox.west == bbox.east or bbox.south == bbox.north:
        raise DegenerateBoundsError(
            f"Degenerate bounds: {bbox.as_list()}",
            {'west': bbox.west, 'south': bbox.south, 'east': bbox.east, 'north': bbox.north},
        )

    west, east = _clamp(bbox.west, -180, 180), _clamp(bbox.east, -180, 180)
    south, north = _clamp(bbox.south, -90, 90), _clamp(bbox.north, -90, 90)
    if west > east:
        west, east = east, west
    if south > north:
        south, north = north, south

    if west == east or south == north:
        raise DegenerateBoundsError(f"Bounds collapse after clamping: {[south, west, north, east]}")

    return BoundingBox(west=west, south=south, east=east, north=north)


def ground_aspect_ratio(bbox: BoundingBox) -> float:
    """Ground width over ground height of a lat/lng box at its center latitude."""
    center_lat = math.radians((bbox.south + bbox.north) / 2)
    return (bbox.width() * math.cos(center_lat)) / bbox.height()


def square_correct(bbox: BoundingBox, tolerance: float = DEFAULT_SQUARE_TOLERANCE) -> BoundingBox:
    """
    Expand the narrower dimension of a box so its ground footprint is square.

    The box is expanded symmetrically about its center and only when the
    ground aspect ratio deviates from 1 by more than `tolerance`. The expanded
    box is clamped to valid lat/lng ranges.

    Example:
        >>> box = square_correct(BoundingBox(-105.0, 40.0, -104.0, 40.5))
        >>> round(ground_aspect_ratio(box), 6)
        1.0
    """
    cos_lat = math.cos(math.radians((bbox.south + bbox.north) / 2))
    if cos_lat <= 1e-12:
        return bbox

    ratio = ground_aspect_ratio(bbox)
    if abs(ratio - 1) <= tolerance:
        return bbox

    center_x, center_y = bbox.center()
    if ratio > 1:
        half_height = bbox.width() * cos_lat / 2
        corrected = BoundingBox(
            west=bbox.west,
            south=center_y - half_height,
            east=bbox.east,
            north=center_y + half_height,
        )
    else:
        half_width = bbox.height() / cos_lat / 2
        corrected = BoundingBox(
            west=center_x - half_width,
            south=bbox.south,
            east=center_x + half_width,
            north=bbox.north,
        )

    # Expansion must not leave the valid lat/lng ranges
    corrected = BoundingBox(
        west=_clamp(corrected.west, -180, 180),
        south=_clamp(corrected.south, -90, 90),
        east=_clamp(corrected.east, -180, 180),
        north=_clamp(corrected.north, -90, 90),
    )

    logger.debug(f"Square raster aspect ratio {ratio:.4f} corrected: {bbox.as_list()} -> {corrected.as_list()}")
    return corrected


def _srs_from_code(code: str) -> osr.SpatialReference:
    srs = osr.SpatialReference()
    if code.upper().startswith('EPSG:'):
        srs.ImportFromEPSG(int(code.split(':', 1)[1]))
    else:
        srs.SetFromUserInput(code)
    return srs


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
