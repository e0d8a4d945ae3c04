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
GeoKey Parser.

Extracts GeoKeys from the GeoKeyDirectoryTag (34735) of a decoded
ImageDirectory, resolving values stored in GeoDoubleParamsTag (34736) and
GeoAsciiParamsTag (34737), and derives the source CRS identifier used for
reprojection.

The parser supports both GeoTIFF 1.0 and 1.1 key names.
"""

import logging
import os
import re
from typing import Any, Optional, Tuple

from osgeo import osr

from gtrk.utils.data_models import GEOKEY_v1_0_MAP, GeoKey, GeoKeys, ImageDirectory

# Configure environment and logging
os.environ.setdefault('PROJ_NETWORK', 'OFF')  # Disable PROJ network access

logger = logging.getLogger(__name__)

# --- Lookup Tables ---
# GeoTIFF Standard v1.1: https://docs.ogc.org/is/19-008r4/19-008r4.html#_summary_of_geokey_ids_and_names

GEOKEY_NAMES = {
    # GeoTIFF Configuration Keys
    1024: 'GTModelTypeGeoKey',
    1025: 'GTRasterTypeGeoKey',
    1026: 'GTCitationGeoKey',
    # Geographic CRS Parameter Keys
    2048: 'GeodeticCRSGeoKey',
    2049: 'GeodeticCitationGeoKey',
    2050: 'GeodeticDatumGeoKey',
    2051: 'PrimeMeridianGeoKey',
    2052: 'GeogLinearUnitsGeoKey',
    2054: 'GeogAngularUnitsGeoKey',
    2056: 'EllipsoidGeoKey',
    2057: 'EllipsoidSemiMajorAxisGeoKey',
    2058: 'EllipsoidSemiMinorAxisGeoKey',
    2059: 'EllipsoidInvFlatteningGeoKey',
    # Projected CRS Parameter Keys
    3072: 'ProjectedCRSGeoKey',
    3073: 'ProjectedCitationGeoKey',
    3074: 'ProjectionGeoKey',
    3075: 'ProjMethodGeoKey',
    3076: 'ProjLinearUnitsGeoKey',
    # Vertical CRS Parameter Keys
    4096: 'VerticalGeoKey',
    4097: 'VerticalCitationGeoKey',
    4098: 'VerticalDatumGeoKey',
    4099: 'VerticalUnitsGeoKey',
}

# Keys that hold free text
CITATION_KEYS = {
    1026,  # GTCitationGeoKey
    2049,  # GeodeticCitationGeoKey
    3073,  # ProjectedCitationGeoKey
    4097,  # VerticalCitationGeoKey
}

GEO_KEY_DIRECTORY_TAG = 34735
GEO_DOUBLE_TAG = 34736
GEO_ASCII_TAG = 34737

PROJECTED_CRS_KEY = 3072
GEOGRAPHIC_CRS_KEY = 2048

CANONICAL_CRS = 'EPSG:4326'

# GeoTIFF "User-Defined" value
KvUserDefined = 32767

# Names for CRS codes that are common in fire-behaviour and elevation products
KNOWN_CRS_NAMES = {
    'EPSG:4326': 'WGS 84',
    'EPSG:3857': 'Web Mercator',
    'EPSG:4269': 'NAD83',
}
for _zone in range(1, 61):
    KNOWN_CRS_NAMES[f'EPSG:{32600 + _zone}'] = f'WGS 84 / UTM zone {_zone}N'
    KNOWN_CRS_NAMES[f'EPSG:{32700 + _zone}'] = f'WGS 84 / UTM zone {_zone}S'
    if _zone <= 23:
        KNOWN_CRS_NAMES[f'EPSG:{26900 + _zone}'] = f'NAD83 / UTM zone {_zone}N'


def parse_geokeys(ifd: ImageDirectory) -> GeoKeys:
    """
    Parse GeoKeyDirectoryTag (34735) and related tags to extract GeoKeys.

    Reads TIFF tags:
        - 34735: GeoKeyDirectoryTag (key IDs and storage locations)
        - 34736: GeoDoubleParamsTag (floating-point values)
        - 34737: GeoAsciiParamsTag (string values)

    A missing or truncated directory yields an empty GeoKeys; malformed
    individual keys are skipped.

    Args:
        ifd: The decoded ImageDirectory.

    Returns:
        GeoKeys with the GeoTIFF version and parsed keys.

    Example:
        >>> keys = parse_geokeys(ifd)
        >>> keys.version, keys.get('GeographicTypeGeoKey')
        ('1.0', 4326)
    """
    geokey_dir = ifd.geokey_directory
    if not geokey_dir or len(geokey_dir) < 4:
        return GeoKeys()

    _, key_revision, minor_revision, num_keys = (int(v) for v in geokey_dir[:4])
    version_info = f"{key_revision}.{minor_revision}"
    use_v1_0_names = version_info == "1.0"

    keys = []
    for i in range(num_keys):
        offset = 4 + (i * 4)
        key_data = geokey_dir[offset:offset + 4]
        if len(key_data) < 4:
            logger.debug(f"Skipping malformed GeoKey at index {i}")
            continue

        key_id, tag_loc, count, value_offset = (int(v) for v in key_data)
        key = _process_geokey(key_id, tag_loc, count, value_offset, ifd, use_v1_0_names)
        if key:
            keys.append(key)

    return GeoKeys(version=version_info, keys=keys)


def _process_geokey(key_id: int, tag_loc: int, count: int, value_offset: int,
                    ifd: ImageDirectory, use_v1_0_names: bool) -> Optional[GeoKey]:
    """Processes a single GeoKey and returns a GeoKey object."""
    key_name = GEOKEY_NAMES.get(key_id, f"UnknownGeoKey ({key_id})")
    if use_v1_0_names:
        key_name = GEOKEY_v1_0_MAP.get(key_name, key_name)

    value = _get_geokey_value(tag_loc, value_offset, count, ifd)
    if value is None:
        return None

    return GeoKey(
        id=key_id,
        name=key_name,
        value=value,
        is_citation=key_id in CITATION_KEYS,
        location=tag_loc,
        count=count,
    )


def _get_geokey_value(tag_loc: int, value_offset: int, count: int, ifd: ImageDirectory) -> Optional[Any]:
    """Extracts a GeoKey value from the appropriate tag."""
    if tag_loc == 0:
        return value_offset

    if tag_loc == GEO_DOUBLE_TAG and ifd.geo_double_params:
        value = ifd.geo_double_params[value_offset:value_offset + count]
        if not value:
            return None
        return float(value[0]) if len(value) == 1 else tuple(float(v) for v in value)

    if tag_loc == GEO_ASCII_TAG and ifd.geo_ascii_params:
        return ifd.geo_ascii_params[value_offset:value_offset + count].rstrip('\x00|')

    logger.debug(f"GeoKey value location {tag_loc} unavailable")
    return None


def source_crs_from_geokeys(geokeys: GeoKeys) -> str:
    """
    Determine the source CRS as an 'EPSG:<code>' string.

    ProjectedCSTypeGeoKey wins over GeographicTypeGeoKey; with neither (or a
    user-defined code) the canonical geographic CRS is assumed.
    """
    for key_id in (PROJECTED_CRS_KEY, GEOGRAPHIC_CRS_KEY):
        code = geokeys.get(key_id)
        if isinstance(code, int) and code not in (0, KvUserDefined):
            return f"EPSG:{code}"
    return CANONICAL_CRS


def crs_code_from_geokeys(geokeys: GeoKeys) -> str:
    """The bare numeric CRS code as a string, or 'Unknown'."""
    for key_id in (PROJECTED_CRS_KEY, GEOGRAPHIC_CRS_KEY):
        code = geokeys.get(key_id)
        if code:
            return str(code)
    return 'Unknown'


def projection_details(geokeys: GeoKeys) -> Tuple[str, str]:
    """
    Extract the projection name and datum from citation keys.

    Returns:
        Tuple of (projection_name, datum); empty strings where not available.
    """
    projection_name, datum = '', ''
    if geokeys.get(PROJECTED_CRS_KEY):
        citation = str(geokeys.get('GTCitationGeoKey', '') or '')
        projection_name = re.sub(r'^PCS Name = ', '', citation)
    elif geokeys.get(GEOGRAPHIC_CRS_KEY):
        citation = str(geokeys.get('GeogCitationGeoKey', '') or '')
        match = re.search(r'Datum = ([^|]+)', citation)
        datum = match.group(1).strip() if match else ''
    return projection_name, datum


def crs_name(code: str) -> str:
    """
    Human-readable name for an 'EPSG:<code>' string.

    Known codes are answered from a static table; anything else is looked up
    through OSR and falls back to the code itself.

    Example:
        >>> crs_name('EPSG:32613')
        'WGS 84 / UTM zone 13N'
    """
    if code in KNOWN_CRS_NAMES:
        return KNOWN_CRS_NAMES[code]
    if not code.upper().startswith('EPSG:'):
        return code
    srs = osr.SpatialReference()
    try:
        if srs.ImportFromEPSG(int(code.split(':', 1)[1])) == 0:
            name = srs.GetName()
            if name and name != code:
                return name
    except (RuntimeError, TypeError, ValueError) as e:
        logger.debug(f"OSR lookup failed for {code}: {e}")
    return code
