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
Minimum Enclosing Circle.

Computes the smallest circle containing a set of geographic points with an
incremental (Welzl-style) construction, and derives the buffered
area-of-interest circle drawn around an AOI boundary.

Geographic circles use great-circle (haversine) distances for containment
and a local equirectangular plane for the three-point circumcenter, which is
accurate for AOI-sized extents. The same construction is available on plain
planar coordinates through planar_enclosing_circle.

Points are (lat, lng) tuples in degrees; radii and distances are in meters.
"""

import logging
import math
import random
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from gtrk.utils.config_loader import config
from gtrk.utils.data_models import BoundingBox, BufferCircle, Circle

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0
METERS_PER_MILE = 1609.34
DEFAULT_BUFFER_MILES = 8.0
DEFAULT_BUFFER_MARGIN = 1.2
DEFAULT_CONTAINMENT_TOLERANCE_M = 0.5

Point = Tuple[float, float]


# === Distance helpers ===

def haversine_distance(a: Point, b: Point) -> float:
    """
    Great-circle distance in meters between two (lat, lng) points.

    Example:
        >>> round(haversine_distance((0.0, 0.0), (0.0, 1.0)))
        111195
    """
    lat_a, lat_b = math.radians(a[0]), math.radians(b[0])
    d_lat = lat_b - lat_a
    d_lng = math.radians(b[1] - a[1])
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat_a) * math.cos(lat_b) * math.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1 - h)))


def _planar_distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


# === Circle constructions ===

def _planar_circle_from_2(p1: Point, p2: Point) -> Circle:
    center = ((p1[0] + p2[0]) / 2, (p1[1] + p2[1]) / 2)
    return Circle(center=center, radius=_planar_distance(center, p1))


def _planar_circle_from_3(p1: Point, p2: Point, p3: Point) -> Circle:
    ax, ay = p1
    bx, by = p2
    cx, cy = p3
    d = 2 * (ax * (by - cy) + bx * (cy - ay) + cx * (ay - by))
    if abs(d) < 1e-12:
        return _circle_from_farthest_pair((p1, p2, p3), _planar_circle_from_2, _planar_distance)

    a2, b2, c2 = ax * ax + ay * ay, bx * bx + by * by, cx * cx + cy * cy
    ux = (a2 * (by - cy) + b2 * (cy - ay) + c2 * (ay - by)) / d
    uy = (a2 * (cx - bx) + b2 * (ax - cx) + c2 * (bx - ax)) / d
    center = (ux, uy)
    radius = max(_planar_distance(center, p) for p in (p1, p2, p3))
    return Circle(center=center, radius=radius)


def _geo_circle_from_2(p1: Point, p2: Point) -> Circle:
    center = ((p1[0] + p2[0]) / 2, (p1[1] + p2[1]) / 2)
    radius = max(haversine_distance(center, p1), haversine_distance(center, p2))
    return Circle(center=center, radius=radius)


def _geo_circle_from_3(p1: Point, p2: Point, p3: Point) -> Circle:
    """Circumcircle of three (lat, lng) points via a local equirectangular plane."""
    lat0 = (p1[0] + p2[0] + p3[0]) / 3
    lng0 = (p1[1] + p2[1] + p3[1]) / 3
    cos_lat0 = math.cos(math.radians(lat0))

    def to_plane(p: Point) -> Point:
        x = math.radians(p[1] - lng0) * cos_lat0 * EARTH_RADIUS_M
        y = math.radians(p[0] - lat0) * EARTH_RADIUS_M
        return (x, y)

    planar = _planar_circle_from_3(to_plane(p1), to_plane(p2), to_plane(p3))
    x, y = planar.center
    center_lat = lat0 + math.degrees(y / EARTH_RADIUS_M)
    center_lng = lng0 + (math.degrees(x / (EARTH_RADIUS_M * cos_lat0)) if cos_lat0 > 1e-12 else 0.0)
    center = (center_lat, center_lng)
    radius = max(haversine_distance(center, p) for p in (p1, p2, p3))
    return Circle(center=center, radius=radius)


def _circle_from_farthest_pair(points: Sequence[Point], circle_from_2: Callable[[Point, Point], Circle],
                               distance: Callable[[Point, Point], float]) -> Circle:
    pairs = [(points[i], points[j]) for i in range(len(points)) for j in range(i + 1, len(points))]
    a, b = max(pairs, key=lambda pair: distance(pair[0], pair[1]))
    return circle_from_2(a, b)


def _centroid_circle(points: Sequence[Point], distance: Callable[[Point, Point], float]) -> Circle:
    """Approximate enclosing circle: centroid plus farthest-point distance."""
    center = (
        sum(p[0] for p in points) / len(points),
        sum(p[1] for p in points) / len(points),
    )
    return Circle(center=center, radius=max(distance(center, p) for p in points))


# === Incremental construction ===

def _enclosing_circle(points: Iterable[Point], distance: Callable[[Point, Point], float],
                      circle_from_2: Callable[[Point, Point], Circle],
                      circle_from_3: Callable[[Point, Point, Point], Circle],
                      tolerance: float, rng: Optional[random.Random]) -> Circle:
    shuffled: List[Point] = [(float(p[0]), float(p[1])) for p in points]
    (rng or random.Random()).shuffle(shuffled)

    if not shuffled:
        return Circle(center=(0.0, 0.0), radius=0.0)
    if len(shuffled) == 1:
        return Circle(center=shuffled[0], radius=0.0)

    def contains(circle: Circle, p: Point) -> bool:
        return distance(circle.center, p) <= circle.radius + tolerance

    circle = circle_from_2(shuffled[0], shuffled[1])
    for i in range(2, len(shuffled)):
        p = shuffled[i]
        if contains(circle, p):
            continue
        # p lies on the boundary of the circle enclosing shuffled[:i + 1]
        circle = Circle(center=p, radius=0.0)
        for j in range(i):
            q = shuffled[j]
            if contains(circle, q):
                continue
            # p and q both lie on the boundary
            circle = circle_from_2(p, q)
            for k in range(j):
                r = shuffled[k]
                if not contains(circle, r):
                    circle = circle_from_3(p, q, r)

    outside = [p for p in shuffled if not contains(circle, p)]
    if outside:
        logger.warning(
            f"Enclosing circle excludes {len(outside)} of {len(shuffled)} points; "
            "falling back to centroid approximation"
        )
        circle = _centroid_circle(shuffled, distance)
    return circle


def minimum_enclosing_circle(points: Iterable[Point], rng: Optional[random.Random] = None,
                             tolerance: Optional[float] = None) -> Circle:
    """
    Smallest circle containing a set of (lat, lng) points.

    Args:
        points: Geographic points as (lat, lng) in degrees.
        rng: Random generator used to shuffle the input; pass a seeded
            random.Random for reproducible results.
        tolerance: Containment slack in meters. Defaults to
            aoi.containment_tolerance_m.

    Returns:
        Circle with a (lat, lng) center and radius in meters. No points give
        a zero circle at (0, 0); one point gives a zero-radius circle there.

    Example:
        >>> c = minimum_enclosing_circle([(40.0, -105.0), (40.0, -104.9)], rng=random.Random(1))
        >>> round(c.center[1], 2), round(c.radius)
        (-104.95, 4259)
    """
    if tolerance is None:
        tolerance = config.get("aoi.containment_tolerance_m", DEFAULT_CONTAINMENT_TOLERANCE_M)
    return _enclosing_circle(points, haversine_distance, _geo_circle_from_2, _geo_circle_from_3,
                             tolerance, rng)


def planar_enclosing_circle(points: Iterable[Point], rng: Optional[random.Random] = None,
                            tolerance: float = 1e-9) -> Circle:
    """
    Smallest circle containing a set of planar (x, y) points.

    Example:
        >>> c = planar_enclosing_circle([(0, 0), (3, 0), (0, 4)], rng=random.Random(0))
        >>> c.center, c.radius
        ((1.5, 2.0), 2.5)
    """
    return _enclosing_circle(points, _planar_distance, _planar_circle_from_2, _planar_circle_from_3,
                             tolerance, rng)


# === AOI buffer ===

def extract_boundary_points(feature_collection: Optional[Dict[str, Any]]) -> List[Point]:
    """
    Collect (lat, lng) vertices from the polygon rings of a GeoJSON FeatureCollection.

    GeoJSON positions are [lng, lat]; Polygon and MultiPolygon geometries are
    read, other geometry types are ignored.
    """
    points: List[Point] = []
    if not feature_collection:
        return points

    for feature in feature_collection.get('features') or []:
        geometry = (feature or {}).get('geometry') or {}
        geometry_type = geometry.get('type')
        coordinates = geometry.get('coordinates') or []
        if geometry_type == 'Polygon':
            polygons = [coordinates]
        elif geometry_type == 'MultiPolygon':
            polygons = coordinates
        else:
            continue
        for polygon in polygons:
            for ring in polygon:
                for coord in ring:
                    points.append((float(coord[1]), float(coord[0])))
    return points


def approximate_bounding_box(center: Point, radius: float) -> BoundingBox:
    """
    Lat/lng box enclosing a circle, using a spherical degrees-per-meter approximation.

    Args:
        center: (lat, lng) in degrees.
        radius: Radius in meters.
    """
    lat, lng = center
    delta_lat = math.degrees(radius / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(lat))
    delta_lng = math.degrees(radius / (EARTH_RADIUS_M * cos_lat)) if cos_lat > 1e-12 else 180.0
    return BoundingBox(
        west=lng - delta_lng,
        south=lat - delta_lat,
        east=lng + delta_lng,
        north=lat + delta_lat,
    )


def calculate_buffer_circle(center: Point,
                            boundary: Union[Dict[str, Any], Sequence[Point], None] = None,
                            default_miles: Optional[float] = None,
                            margin: Optional[float] = None,
                            rng: Optional[random.Random] = None) -> BufferCircle:
    """
    Buffer circle around an AOI boundary.

    The buffer radius is max(enclosing radius * margin, default_miles in
    meters). Without boundary points the buffer is centered on `center` with
    exactly the default radius; otherwise it is centered on the boundary's
    minimum enclosing circle.

    Args:
        center: (lat, lng) used when there is no boundary.
        boundary: A GeoJSON FeatureCollection or a sequence of (lat, lng) points.
        default_miles: Minimum buffer radius in miles. Defaults to aoi.default_buffer_miles.
        margin: Multiplier applied to the enclosing radius. Defaults to aoi.buffer_margin.
        rng: Random generator forwarded to minimum_enclosing_circle.

    Returns:
        BufferCircle with the boundary circle (if any) and approximate bounds.
    """
    if default_miles is None:
        default_miles = config.get("aoi.default_buffer_miles", DEFAULT_BUFFER_MILES)
    if margin is None:
        margin = config.get("aoi.buffer_margin", DEFAULT_BUFFER_MARGIN)
    default_radius = default_miles * METERS_PER_MILE
    if isinstance(boundary, dict):
        points = extract_boundary_points(boundary)
    else:
        points = list(boundary or [])

    if not points:
        return BufferCircle(
            center=center,
            radius=default_radius,
            bounds=approximate_bounding_box(center, default_radius),
        )

    enclosing = minimum_enclosing_circle(points, rng=rng)
    radius = max(enclosing.radius * margin, default_radius)
    logger.debug(
        f"Minimum enclosing circle: center={enclosing.center}, radius={enclosing.radius:.1f} m; "
        f"buffer radius={radius:.1f} m"
    )
    return BufferCircle(
        center=enclosing.center,
        radius=radius,
        boundary_circle=enclosing,
        bounds=approximate_bounding_box(enclosing.center, radius),
    )
