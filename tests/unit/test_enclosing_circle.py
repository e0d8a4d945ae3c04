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
Unit tests for the minimum enclosing circle and AOI buffer circle.
"""

import itertools
import random

import pytest

from gtrk.utils import enclosing_circle
from gtrk.utils.config_loader import config
from gtrk.utils.enclosing_circle import (
    DEFAULT_BUFFER_MILES,
    METERS_PER_MILE,
    approximate_bounding_box,
    calculate_buffer_circle,
    extract_boundary_points,
    haversine_distance,
    minimum_enclosing_circle,
    planar_enclosing_circle,
)

DEFAULT_RADIUS = DEFAULT_BUFFER_MILES * METERS_PER_MILE


def random_points(rng: random.Random, count: int, lat: float = 40.0, lng: float = -105.0, spread: float = 0.2):
    return [(lat + rng.uniform(-spread, spread), lng + rng.uniform(-spread, spread)) for _ in range(count)]


def square_polygon(lat: float, lng: float, half_size: float) -> dict:
    ring = [
        [lng - half_size, lat - half_size],
        [lng + half_size, lat - half_size],
        [lng + half_size, lat + half_size],
        [lng - half_size, lat + half_size],
        [lng - half_size, lat - half_size],
    ]
    return {'type': 'Polygon', 'coordinates': [ring]}


# =============================================================================
# Minimum Enclosing Circle
# =============================================================================

@pytest.mark.unit
class TestPlanarEnclosingCircle:
    """Test the construction on planar coordinates."""

    def test_right_triangle(self):
        """Test that a 3-4-5 triangle is enclosed by the hypotenuse circle."""
        for seed in range(5):
            circle = planar_enclosing_circle([(0, 0), (3, 0), (0, 4)], rng=random.Random(seed))
            assert circle.center == pytest.approx((1.5, 2.0))
            assert circle.radius == pytest.approx(2.5)

    def test_equilateral_triangle(self):
        """Test that an acute triangle is enclosed by its circumcircle."""
        points = [(0.0, 0.0), (2.0, 0.0), (1.0, 3 ** 0.5)]
        circle = planar_enclosing_circle(points, rng=random.Random(1))
        assert circle.radius == pytest.approx(2 / 3 ** 0.5)

    def test_interior_points_do_not_matter(self):
        """Test that points inside the circle leave it unchanged."""
        points = [(0, 0), (3, 0), (0, 4), (1, 1), (1.5, 2.0), (0.5, 3.0)]
        circle = planar_enclosing_circle(points, rng=random.Random(3))
        assert circle.radius == pytest.approx(2.5)

    def test_collinear_points(self):
        """Test that collinear points use the farthest pair."""
        circle = planar_enclosing_circle([(0, 0), (1, 0), (4, 0)], rng=random.Random(0))
        assert circle.center == pytest.approx((2.0, 0.0))
        assert circle.radius == pytest.approx(2.0)


@pytest.mark.unit
class TestMinimumEnclosingCircle:
    """Test the geographic construction."""

    def test_no_points(self):
        """Test that no points give a zero circle at (0, 0)."""
        circle = minimum_enclosing_circle([])
        assert circle.center == (0.0, 0.0)
        assert circle.radius == 0.0

    def test_single_point(self):
        """Test that one point gives a zero-radius circle on it."""
        circle = minimum_enclosing_circle([(40.0, -105.0)])
        assert circle.center == (40.0, -105.0)
        assert circle.radius == 0.0

    def test_two_points(self):
        """Test that two points give the circle on their midpoint."""
        a, b = (40.0, -105.0), (40.0, -104.9)
        circle = minimum_enclosing_circle([a, b], rng=random.Random(1))
        assert circle.center == pytest.approx((40.0, -104.95))
        assert circle.radius == pytest.approx(haversine_distance(a, b) / 2, rel=1e-3)

    def test_duplicate_points(self):
        """Test that repeated points do not disturb the result."""
        points = [(40.0, -105.0)] * 5 + [(40.1, -105.0)]
        circle = minimum_enclosing_circle(points, rng=random.Random(2))
        assert circle.radius == pytest.approx(haversine_distance(points[0], points[-1]) / 2, rel=1e-3)

    def test_contains_all_points(self, seeded_rng):
        """Test that every input point lies within the circle plus tolerance."""
        points = random_points(seeded_rng, 200)
        circle = minimum_enclosing_circle(points, rng=random.Random(5))
        for p in points:
            assert haversine_distance(circle.center, p) <= circle.radius + 1.0

    def test_radius_bounds(self, seeded_rng):
        """Test that the radius lies between half the diameter and the diameter over sqrt(3)."""
        points = random_points(seeded_rng, 50)
        circle = minimum_enclosing_circle(points, rng=random.Random(5))
        diameter = max(haversine_distance(a, b) for a, b in itertools.combinations(points, 2))
        assert diameter / 2 - 1.0 <= circle.radius <= diameter / 3 ** 0.5 + 1.0

    def test_adding_points_never_shrinks(self, seeded_rng):
        """Test that the radius does not decrease as points are added."""
        points = random_points(seeded_rng, 40, spread=0.02)
        previous = 0.0
        for n in range(2, len(points) + 1):
            radius = minimum_enclosing_circle(points[:n], rng=random.Random(n)).radius
            assert radius >= previous - max(1.0, previous * 1e-3)
            previous = max(previous, radius)

    def test_reproducible_with_seed(self, seeded_rng):
        """Test that the same seed gives the same circle."""
        points = random_points(seeded_rng, 30)
        first = minimum_enclosing_circle(points, rng=random.Random(9))
        second = minimum_enclosing_circle(points, rng=random.Random(9))
        assert first == second

    def test_haversine_one_degree(self):
        """Test one degree of longitude at the equator."""
        assert round(haversine_distance((0.0, 0.0), (0.0, 1.0))) == 111195


# =============================================================================
# AOI Buffer
# =============================================================================

@pytest.mark.unit
class TestExtractBoundaryPoints:
    """Test GeoJSON vertex extraction."""

    def test_polygon_and_multipolygon(self):
        """Test that vertices are returned as (lat, lng) from both polygon types."""
        polygon = square_polygon(40.0, -105.0, 0.1)
        multi = {'type': 'MultiPolygon', 'coordinates': [square_polygon(41.0, -106.0, 0.1)['coordinates']]}
        collection = {'type': 'FeatureCollection', 'features': [
            {'type': 'Feature', 'geometry': polygon},
            {'type': 'Feature', 'geometry': multi},
            {'type': 'Feature', 'geometry': {'type': 'Point', 'coordinates': [0.0, 0.0]}},
        ]}
        points = extract_boundary_points(collection)

        assert len(points) == 10
        assert points[0] == pytest.approx((39.9, -105.1))
        assert points[5] == pytest.approx((40.9, -106.1))

    @pytest.mark.parametrize("collection", [None, {}, {'features': []}, {'features': [{'geometry': None}]}])
    def test_empty(self, collection):
        """Test that missing features or geometries give no points."""
        assert extract_boundary_points(collection) == []


@pytest.mark.unit
class TestBufferCircle:
    """Test the buffer radius rule max(radius * margin, default)."""

    def test_no_boundary_uses_default(self):
        """Test that an empty boundary gives exactly the default radius at the center."""
        buffer = calculate_buffer_circle((40.0, -105.0), None)
        assert buffer.center == (40.0, -105.0)
        assert buffer.radius == DEFAULT_RADIUS
        assert buffer.boundary_circle is None

    def test_empty_feature_collection_uses_default(self):
        """Test that a collection without polygons behaves like no boundary."""
        buffer = calculate_buffer_circle((40.0, -105.0), {'type': 'FeatureCollection', 'features': []})
        assert buffer.radius == DEFAULT_RADIUS

    def test_small_boundary_uses_default(self):
        """Test that a small AOI is buffered to the default radius around its circle."""
        collection = {'features': [{'geometry': square_polygon(40.0, -105.0, 0.01)}]}
        buffer = calculate_buffer_circle((0.0, 0.0), collection, rng=random.Random(1))

        assert buffer.radius == DEFAULT_RADIUS
        assert buffer.center == pytest.approx((40.0, -105.0), abs=1e-6)
        assert buffer.boundary_circle.radius < DEFAULT_RADIUS

    def test_large_boundary_uses_margin(self):
        """Test that a large AOI is buffered to its enclosing radius times the margin."""
        collection = {'features': [{'geometry': square_polygon(40.0, -105.0, 0.3)}]}
        buffer = calculate_buffer_circle((0.0, 0.0), collection, margin=1.2, rng=random.Random(1))

        assert buffer.radius == pytest.approx(buffer.boundary_circle.radius * 1.2)
        assert buffer.radius > DEFAULT_RADIUS

    def test_radius_law_holds(self, seeded_rng):
        """Test the radius rule across AOIs of increasing size."""
        for spread in (0.001, 0.05, 0.5):
            points = random_points(seeded_rng, 20, spread=spread)
            buffer = calculate_buffer_circle((40.0, -105.0), points, rng=random.Random(4))
            expected = max(buffer.boundary_circle.radius * 1.2, DEFAULT_RADIUS)
            assert buffer.radius == pytest.approx(expected)
            assert buffer.radius >= DEFAULT_RADIUS

    def test_bounds_enclose_circle(self):
        """Test that the approximate bounds contain the buffered circle."""
        buffer = calculate_buffer_circle((40.0, -105.0), None)
        bounds = buffer.bounds
        north_point = (bounds.north, -105.0)
        east_point = (40.0, bounds.east)
        assert haversine_distance((40.0, -105.0), north_point) == pytest.approx(DEFAULT_RADIUS, rel=1e-6)
        assert haversine_distance((40.0, -105.0), east_point) >= DEFAULT_RADIUS * 0.999

    def test_approximate_bounding_box_is_symmetric(self):
        """Test that the box is centered on the circle."""
        bbox = approximate_bounding_box((10.0, 20.0), 1000.0)
        assert bbox.center() == pytest.approx((20.0, 10.0))


@pytest.mark.unit
class TestBufferSettings:
    """Test that AOI buffer defaults come from the [aoi] configuration section."""

    def test_default_radius_from_config(self, restore_config):
        """Test that aoi.default_buffer_miles sets the empty-boundary radius."""
        config.set("aoi.default_buffer_miles", 2.0)
        buffer = calculate_buffer_circle((40.0, -105.0), None)
        assert buffer.radius == 2.0 * METERS_PER_MILE

    def test_margin_from_config(self, restore_config):
        """Test that aoi.buffer_margin scales the enclosing radius."""
        config.set("aoi.buffer_margin", 2.0)
        collection = {'features': [{'geometry': square_polygon(40.0, -105.0, 0.3)}]}
        buffer = calculate_buffer_circle((0.0, 0.0), collection, rng=random.Random(1))
        assert buffer.radius == pytest.approx(buffer.boundary_circle.radius * 2.0)

    def test_explicit_arguments_override_config(self, restore_config):
        """Test that explicit arguments win over configured values."""
        config.set("aoi.default_buffer_miles", 2.0)
        buffer = calculate_buffer_circle((40.0, -105.0), None, default_miles=3.0)
        assert buffer.radius == 3.0 * METERS_PER_MILE

    def test_containment_tolerance_from_config(self, restore_config, monkeypatch):
        """Test that aoi.containment_tolerance_m is the default containment slack."""
        seen = []
        real = enclosing_circle._enclosing_circle

        def spy(points, distance, circle_from_2, circle_from_3, tolerance, rng):
            seen.append(tolerance)
            return real(points, distance, circle_from_2, circle_from_3, tolerance, rng)

        monkeypatch.setattr(enclosing_circle, "_enclosing_circle", spy)
        config.set("aoi.containment_tolerance_m", 5.0)
        minimum_enclosing_circle([(40.0, -105.0), (40.1, -105.0)], rng=random.Random(1))
        minimum_enclosing_circle([(40.0, -105.0), (40.1, -105.0)], rng=random.Random(1), tolerance=0.1)
        assert seen == [5.0, 0.1]
