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
Pytest configuration and shared fixtures for GTRK test suite.

This module provides:
- Shared fixtures for common test data (GeoTIFF bytes, raster datasets)
- A controllable clock for cache expiry tests
- Test utility functions

Fixtures are organized by scope:
- session: Created once per test session (expensive setup)
- function: Created for each test function (default)

Example:
    >>> def test_using_fixture(geographic_geotiff_bytes):
    ...     '''Test using the geographic_geotiff_bytes fixture.'''
    ...     assert geographic_geotiff_bytes[:2] == b'II'
"""

import random

import numpy as np
import pytest
from osgeo import gdal

# pythonpath is configured in pyproject.toml to include project root
from gtrk.utils.config_loader import config
from gtrk.utils.data_models import RasterDataset
from tests.fixtures.mock_geotiff_factory import MockGeoTIFF

GEOGRAPHIC_TRANSFORM = (-105.0, 0.01, 0.0, 40.0, 0.0, -0.01)
UTM_TRANSFORM = (500000.0, 30.0, 0.0, 4400000.0, 0.0, -30.0)


# =============================================================================
# Helper Classes
# =============================================================================

class FakeClock:
    """A monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# =============================================================================
# Session-scope Fixtures (Created once per test session)
# =============================================================================

@pytest.fixture(scope="session")
def graded_pixels():
    """
    A 10x20 grid whose value is the column index, with the bottom-right pixel as no-data.

    Returns:
        np.ndarray: float32 array of shape (10, 20)
    """
    data = np.tile(np.arange(20, dtype=np.float32), (10, 1))
    data[9, 19] = -9999.0
    return data


@pytest.fixture(scope="session")
def geographic_geotiff_bytes(graded_pixels):
    """
    EPSG:4326 GeoTIFF covering lng -105..-104.8, lat 39.9..40.0.

    Returns:
        bytes: Complete GeoTIFF file written by GDAL
    """
    mock = MockGeoTIFF(
        width=20,
        height=10,
        crs='EPSG:4326',
        geo_transform=GEOGRAPHIC_TRANSFORM,
        nodata_value=-9999.0,
        pixel_data=graded_pixels,
        metadata={'units': 'percent', 'description': 'Fire intensity'},
    )
    return mock.to_bytes()


@pytest.fixture(scope="session")
def utm_geotiff_bytes():
    """
    EPSG:32613 (UTM zone 13N) GeoTIFF of 20x20 pixels at 30 m.

    Returns:
        bytes: Complete GeoTIFF file written by GDAL
    """
    mock = MockGeoTIFF(
        width=20,
        height=20,
        data_type=gdal.GDT_Float32,
        crs='EPSG:32613',
        geo_transform=UTM_TRANSFORM,
        nodata_value=-9999.0,
        compression='DEFLATE',
    )
    return mock.to_bytes()


# =============================================================================
# Function-scope Fixtures (Created for each test)
# =============================================================================

@pytest.fixture
def nodata_grid_dataset():
    """
    A 100x100 raster whose value is the row index.

    Row 0 is all 1 except the pixel (0, 0), which is 0; the last row is
    no-data (-9999). Expected statistics: 9900 valid, 100 no-data,
    min 0, max 98, one zero.

    Returns:
        RasterDataset
    """
    grid = np.repeat(np.arange(100, dtype=np.float32)[:, None], 100, axis=1)
    grid[0, :] = 1.0
    grid[0, 0] = 0.0
    grid[99, :] = -9999.0
    return RasterDataset(width=100, height=100, samples=grid, nodata_value=-9999.0)


@pytest.fixture
def fake_clock():
    """A FakeClock starting at t=1000 s."""
    return FakeClock()


@pytest.fixture
def seeded_rng():
    """A reproducible random.Random for enclosing-circle shuffles."""
    return random.Random(42)


@pytest.fixture
def restore_config():
    """
    Reload the configuration after a test that changes it.

    Example:
        >>> def test_override(restore_config):
        ...     config.set("cache.ttl_seconds", 1)
    """
    yield config
    config.reload()


# =============================================================================
# Helper Functions
# =============================================================================

def assert_bbox_close(bbox, expected, abs_tol: float = 1e-9):
    """
    Assert that a BoundingBox matches (west, south, east, north).

    Args:
        bbox: BoundingBox to check
        expected: Tuple of (west, south, east, north)
        abs_tol: Absolute tolerance per coordinate
    """
    actual = (bbox.west, bbox.south, bbox.east, bbox.north)
    assert actual == pytest.approx(expected, abs=abs_tol), f"{actual} != {expected}"
