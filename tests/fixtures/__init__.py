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
Test fixtures and mock data factories for GTRK tests.

This package contains:
- MockGeoTIFF: Factory for creating in-memory test GeoTIFF bytes with GDAL
- build_tiff_bytes: Writes TIFFs with hand-picked tags through tifffile
"""

from tests.fixtures.mock_geotiff_factory import MockGeoTIFF, build_tiff_bytes

__all__ = ['MockGeoTIFF', 'build_tiff_bytes']
