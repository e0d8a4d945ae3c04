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
Integration tests for the ingestion and render pipeline.

These tests verify that validation, decoding, georeferencing, statistics
and colorization work together on complete GeoTIFF files.
"""

import dataclasses

import numpy as np
import pytest

from gtrk.utils import geotiff_processor
from gtrk.utils.colors import hex_to_rgb
from gtrk.utils.data_models import BoundingBox, RawBuffer
from gtrk.utils.exceptions import (
    EmptyRasterError,
    InvalidMetadataError,
    MalformedTiffError,
    MissingGeoreferencingError,
    NoColorSchemeError,
    ReprojectionFailedError,
)
from gtrk.utils.geotiff_processor import (
    load_geotiff_bytes,
    regional_bounds,
    render_geotiff,
    validate_metadata,
)
from gtrk.utils.raster_colorizer import NODATA_COLOR
from tests.conftest import assert_bbox_close
from tests.fixtures.mock_geotiff_factory import (
    GEOGRAPHIC_GEOKEYS,
    build_tiff_bytes,
    projected_geokeys,
)

URL = 'https://example.com/data/fire.tif'


# =============================================================================
# Loading
# =============================================================================

@pytest.mark.integration
class TestLoadGeoTiff:
    """Test load_geotiff_bytes on complete files."""

    def test_geographic_geotiff(self, geographic_geotiff_bytes):
        """Test metadata, bounds and statistics of the EPSG:4326 fixture."""
        geotiff = load_geotiff_bytes(geographic_geotiff_bytes, URL)
        metadata = geotiff.metadata

        assert (metadata.width, metadata.height) == (20, 10)
        assert metadata.total_pixels == 200
        assert metadata.bits_per_sample == (32,)
        assert metadata.crs == '4326'
        assert metadata.nodata_value == -9999.0
        assert metadata.units == 'percent'
        assert metadata.description == 'Fire intensity'
        assert metadata.resolution == pytest.approx((0.01, 0.01))
        assert metadata.origin == pytest.approx((-105.0, 40.0))
        assert metadata.georeference.source_crs == 'EPSG:4326'
        assert not metadata.georeference.degraded
        assert_bbox_close(metadata.bounding_box, (-105.0, 39.9, -104.8, 40.0))

        stats = metadata.statistics
        assert stats.valid_count == 199
        assert stats.nodata_count == 1
        assert (stats.minimum, stats.maximum) == (0.0, 19.0)
        assert stats.zero_count == 10
        assert stats.mean == pytest.approx((10 * 190 - 19) / 199)

        assert geotiff.source == URL
        assert geotiff.dataset.total_pixels == 200

    @pytest.mark.parametrize("fixture_name", ['geographic_geotiff_bytes', 'utm_geotiff_bytes'])
    def test_decoding_is_deterministic(self, fixture_name, request):
        """Test that decoding the same bytes twice gives identical statistics and georeference."""
        data = request.getfixturevalue(fixture_name)
        first = load_geotiff_bytes(data, URL).metadata
        second = load_geotiff_bytes(bytes(data), URL).metadata

        assert first.statistics == second.statistics
        assert first.georeference == second.georeference
        assert first == second

    def test_raw_buffer_source(self, geographic_geotiff_bytes):
        """Test that a RawBuffer supplies its own source label."""
        geotiff = load_geotiff_bytes(RawBuffer(geographic_geotiff_bytes, URL))
        assert geotiff.source == URL

    def test_projected_geotiff(self, utm_geotiff_bytes):
        """Test that a UTM zone 13N raster is reprojected near -105 degrees."""
        metadata = load_geotiff_bytes(utm_geotiff_bytes, URL).metadata

        assert metadata.crs == '32613'
        assert metadata.georeference.source_crs == 'EPSG:32613'
        assert metadata.resolution == pytest.approx((30.0, 30.0))
        assert metadata.origin == pytest.approx((500000.0, 4400000.0))
        assert_bbox_close(metadata.georeference.raw_bounding_box,
                          (500000.0, 4399400.0, 500600.0, 4400000.0))
        bbox = metadata.bounding_box
        assert -105.01 < bbox.west < bbox.east < -104.98
        assert 39.7 < bbox.south < bbox.north < 39.8

    def test_transformation_matrix(self):
        """Test a raster georeferenced only by ModelTransformationTag."""
        matrix = (0.01, 0.0, 0.0, -105.0, 0.0, -0.01, 0.0, 40.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.0)
        data = build_tiff_bytes(np.ones((10, 30), dtype=np.float32), model_transformation=matrix,
                                geokeys=GEOGRAPHIC_GEOKEYS)
        metadata = load_geotiff_bytes(data, URL).metadata

        assert_bbox_close(metadata.bounding_box, (-105.0, 39.9, -104.7, 40.0))
        assert metadata.resolution == pytest.approx((0.01, 0.01))
        assert metadata.origin == (-105.0, 40.0)

    def test_control_point_bounds(self):
        """Test that multiple tiepoints without a pixel scale bound the raster."""
        tiepoints = (0, 0, 0, -106.0, 41.0, 0,
                     19, 9, 0, -105.0, 40.0, 0)
        data = build_tiff_bytes(np.ones((10, 20), dtype=np.float32), model_tiepoint=tiepoints,
                                geokeys=GEOGRAPHIC_GEOKEYS)
        metadata = load_geotiff_bytes(data, URL).metadata

        assert_bbox_close(metadata.bounding_box, (-106.0, 40.0, -105.0, 41.0))
        assert all(r > 0 for r in metadata.resolution)

    def test_gdal_nodata_with_null_terminator(self):
        """Test that a GDAL_NODATA string is parsed and applied to statistics."""
        pixels = np.array([[1.0, -32768.0], [3.0, 5.0]], dtype=np.float32)
        data = build_tiff_bytes(pixels, model_tiepoint=(0, 0, 0, -105.0, 40.0, 0),
                                model_pixel_scale=(0.1, 0.1, 0.0), geokeys=GEOGRAPHIC_GEOKEYS,
                                gdal_nodata='-32768')
        metadata = load_geotiff_bytes(data, URL).metadata
        assert metadata.nodata_value == -32768.0
        assert metadata.statistics.nodata_count == 1
        assert metadata.statistics.minimum == 1.0


@pytest.mark.integration
class TestLoadFailures:
    """Test that each failure is reported with its URL."""

    def test_malformed_bytes(self):
        """Test that a non-TIFF buffer fails structural validation."""
        with pytest.raises(MalformedTiffError) as exc_info:
            load_geotiff_bytes(b'<html>not found</html>', URL)
        assert exc_info.value.context['url'] == URL

    def test_missing_georeferencing(self):
        """Test that a plain TIFF without georeferencing is rejected."""
        data = build_tiff_bytes(np.ones((4, 4), dtype=np.float32))
        with pytest.raises(MissingGeoreferencingError) as exc_info:
            load_geotiff_bytes(data, URL)
        assert exc_info.value.context['url'] == URL

    def test_unknown_crs_fails_without_fallback(self):
        """Test that an unknown projected CRS raises ReprojectionFailedError."""
        data = build_tiff_bytes(np.ones((4, 8), dtype=np.float32),
                                model_tiepoint=(0, 0, 0, 1000.0, 2000.0, 0),
                                model_pixel_scale=(10.0, 10.0, 0.0),
                                geokeys=projected_geokeys(2))
        with pytest.raises(ReprojectionFailedError) as exc_info:
            load_geotiff_bytes(data, URL)
        assert exc_info.value.context['url'] == URL

    def test_unknown_crs_with_regional_fallback(self, caplog):
        """Test that the regional fallback yields a degraded result and a warning."""
        data = build_tiff_bytes(np.ones((4, 8), dtype=np.float32),
                                model_tiepoint=(0, 0, 0, 1000.0, 2000.0, 0),
                                model_pixel_scale=(10.0, 10.0, 0.0),
                                geokeys=projected_geokeys(2))
        with caplog.at_level('WARNING'):
            metadata = load_geotiff_bytes(data, URL, regional_fallback=True).metadata

        assert metadata.georeference.degraded
        assert metadata.bounding_box == regional_bounds()
        assert_bbox_close(metadata.georeference.raw_bounding_box, (1000.0, 1960.0, 1080.0, 2000.0))
        assert 'degraded' in caplog.text

    def test_custom_regional_box(self):
        """Test that an explicit fallback box is used as given."""
        data = build_tiff_bytes(np.ones((4, 8), dtype=np.float32),
                                model_tiepoint=(0, 0, 0, 1000.0, 2000.0, 0),
                                model_pixel_scale=(10.0, 10.0, 0.0),
                                geokeys=projected_geokeys(2))
        box = BoundingBox(west=-110.0, south=35.0, east=-100.0, north=45.0)
        assert load_geotiff_bytes(data, URL, regional_fallback=box).metadata.bounding_box == box

    def test_invalid_metadata_carries_url(self, geographic_geotiff_bytes, monkeypatch):
        """Test that metadata rejected while loading is reported with its URL."""
        monkeypatch.setattr(geotiff_processor, "calculate_resolution", lambda *args: (1.0,))
        with pytest.raises(InvalidMetadataError) as exc_info:
            load_geotiff_bytes(geographic_geotiff_bytes, URL)
        assert exc_info.value.context["url"] == URL
        assert "resolution" in str(exc_info.value)

    def test_invalid_metadata(self, geographic_geotiff_bytes):
        """Test that sanity checks list every failure."""
        metadata = load_geotiff_bytes(geographic_geotiff_bytes, URL).metadata
        broken = dataclasses.replace(metadata, width=0, resolution=(1.0,))
        with pytest.raises(InvalidMetadataError) as exc_info:
            validate_metadata(broken)
        assert 'width' in str(exc_info.value)
        assert 'resolution' in str(exc_info.value)


# =============================================================================
# Rendering
# =============================================================================

@pytest.mark.integration
class TestRenderGeoTiff:
    """Test render_geotiff on decoded files."""

    def test_render_with_scheme_domain(self, geographic_geotiff_bytes):
        """Test that a scheme's own domain anchors the ramp."""
        rendered = render_geotiff(load_geotiff_bytes(geographic_geotiff_bytes, URL), 'fireIntensity')

        assert rendered.rgba.shape == (10, 20, 4)
        assert (rendered.width, rendered.height) == (20, 10)
        assert rendered.domain == (0.0, 100.0)
        assert tuple(rendered.rgba[0, 0]) == hex_to_rgb('#ffeda0') + (255,)
        assert tuple(rendered.rgba[9, 19]) == NODATA_COLOR
        assert rendered.bounding_box.west == pytest.approx(-105.0)

    def test_render_with_data_domain(self, geographic_geotiff_bytes):
        """Test that a scheme without a domain is anchored to the data range."""
        rendered = render_geotiff(load_geotiff_bytes(geographic_geotiff_bytes, URL), 'greenYellowRed')
        assert rendered.domain == (0.0, 19.0)
        assert tuple(rendered.rgba[0, 19]) == hex_to_rgb('#d73027') + (255,)

    def test_explicit_domain_and_range(self, geographic_geotiff_bytes):
        """Test that an explicit domain and a narrower visible range are honored."""
        geotiff = load_geotiff_bytes(geographic_geotiff_bytes, URL)
        rendered = render_geotiff(geotiff, 'fireIntensity', domain=(0, 19), value_range=(5, 10))

        assert rendered.value_range == (5, 10)
        assert tuple(rendered.rgba[0, 0]) == NODATA_COLOR
        assert rendered.rgba[0, 5, 3] == 255
        assert tuple(rendered.rgba[0, 11]) == NODATA_COLOR

    def test_default_scheme_from_config(self, geographic_geotiff_bytes):
        """Test that the configured default scheme is used when none is given."""
        geotiff = load_geotiff_bytes(geographic_geotiff_bytes, URL)
        np.testing.assert_array_equal(render_geotiff(geotiff).rgba,
                                      render_geotiff(geotiff, 'fireIntensity').rgba)

    def test_render_is_deterministic(self, geographic_geotiff_bytes):
        """Test that loading and rendering twice gives identical pixels."""
        first = render_geotiff(load_geotiff_bytes(geographic_geotiff_bytes, URL), 'canopyCover')
        second = render_geotiff(load_geotiff_bytes(geographic_geotiff_bytes, URL), 'canopyCover')
        np.testing.assert_array_equal(first.rgba, second.rgba)

    def test_fill_nodata(self, geographic_geotiff_bytes):
        """Test that filling makes the no-data corner opaque."""
        geotiff = load_geotiff_bytes(geographic_geotiff_bytes, URL)
        rendered = render_geotiff(geotiff, 'fireIntensity', fill_nodata=True)
        assert rendered.rgba[9, 19, 3] == 255

    def test_empty_raster(self):
        """Test that a raster of only no-data loads but cannot be rendered."""
        data = build_tiff_bytes(np.full((4, 4), -9999.0, dtype=np.float32),
                                model_tiepoint=(0, 0, 0, -105.0, 40.0, 0),
                                model_pixel_scale=(0.1, 0.05, 0.0), geokeys=GEOGRAPHIC_GEOKEYS,
                                gdal_nodata='-9999')
        geotiff = load_geotiff_bytes(data, URL)
        assert geotiff.metadata.statistics.valid_count == 0

        with pytest.raises(EmptyRasterError) as exc_info:
            render_geotiff(geotiff)
        assert exc_info.value.context['url'] == URL

    def test_unknown_scheme(self, geographic_geotiff_bytes):
        """Test that an unknown scheme name raises NoColorSchemeError."""
        with pytest.raises(NoColorSchemeError):
            render_geotiff(load_geotiff_bytes(geographic_geotiff_bytes, URL), 'sunset')
