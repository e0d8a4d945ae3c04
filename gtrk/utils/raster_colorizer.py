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
Raster Colorizer.

Maps raster samples to RGBA pixels through a color scheme.

Every pixel is classified independently:
    - NaN, infinite, no-data or outside the visible value range:
      transparent (0, 0, 0, 0)
    - otherwise: normalized against the domain, clamped to [0, 1] and looked
      up in the scheme's matplotlib colormap, fully opaque

Domain preparation helpers (resolve_domain, clamp_raster_to_domain,
fill_nodata_focal_mean) run before colorization in the render pipeline.
"""

import logging
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from gtrk.utils.colors import build_colormap, get_color_scheme
from gtrk.utils.data_models import ColorScheme

logger = logging.getLogger(__name__)

NODATA_COLOR = (0, 0, 0, 0)


def colorize_raster(samples: Union[np.ndarray, Sequence[float]], width: int, height: int,
                    scheme: Union[ColorScheme, str], domain: Tuple[float, float],
                    value_range: Tuple[float, float],
                    nodata_value: Optional[float] = None) -> np.ndarray:
    """
    Colorize raster samples.

    Args:
        samples: width * height samples in row-major order.
        width: Raster width in pixels.
        height: Raster height in pixels.
        scheme: A ColorScheme or the name of a registered one.
        domain: (min, max) values anchoring the first and last colors.
        value_range: (min, max) of values to draw; others are transparent.
        nodata_value: The no-data sentinel, or None.

    Returns:
        uint8 array of shape (height, width, 4).

    Raises:
        NoColorSchemeError: If `scheme` names an unregistered scheme.
        ValueError: If the sample count does not match width * height.
    """
    if isinstance(scheme, str):
        scheme = get_color_scheme(scheme)

    values = np.asarray(samples, dtype=np.float64).reshape(-1)
    if values.size != width * height:
        raise ValueError(f"Sample count {values.size} does not match {width}x{height} raster")

    domain_min, domain_max = float(domain[0]), float(domain[1])
    range_min, range_max = float(value_range[0]), float(value_range[1])

    drawable = np.isfinite(values)
    if nodata_value is not None:
        drawable &= values != nodata_value
    drawable &= (values >= range_min) & (values <= range_max)

    span = domain_max - domain_min
    if span == 0 or not np.isfinite(span):
        t = np.zeros_like(values)
    else:
        with np.errstate(invalid='ignore'):
            t = np.clip((values - domain_min) / span, 0.0, 1.0)
    t = np.where(drawable, t, 0.0)

    colormap = build_colormap(scheme)
    rgba = np.round(colormap(t) * 255).astype(np.uint8)
    rgba[:, 3] = 255
    rgba[~drawable] = NODATA_COLOR

    logger.debug(
        f"Colorized {values.size} pixels with '{scheme.name}' "
        f"(domain={domain_min}..{domain_max}, range={range_min}..{range_max}, "
        f"transparent={int(np.count_nonzero(~drawable))})"
    )
    return rgba.reshape(height, width, 4)


def resolve_domain(domain: Tuple[float, float], stats_min: Optional[float], stats_max: Optional[float],
                   nodata_value: Optional[float]) -> Tuple[float, float]:
    """
    Replace domain endpoints that equal the no-data value with real statistics.

    Example:
        >>> resolve_domain((-9999, 100), 0.5, 98.0, -9999)
        (0.5, 100)
    """
    low, high = domain
    if nodata_value is not None:
        if low == nodata_value and stats_min is not None:
            low = stats_min
        if high == nodata_value and stats_max is not None:
            high = stats_max
    return (low, high)


def clamp_raster_to_domain(samples: np.ndarray, domain_min: float, domain_max: float,
                           nodata_value: Optional[float] = None) -> np.ndarray:
    """
    Clamp samples into [domain_min, domain_max], leaving no-data samples untouched.

    Returns:
        A new float64 array; the input is not modified.
    """
    values = np.asarray(samples, dtype=np.float64)
    out = np.clip(values, domain_min, domain_max)
    if nodata_value is not None:
        out = np.where(values == nodata_value, values, out)
    # NaN passes through np.clip unchanged
    return out


def fill_nodata_focal_mean(samples: np.ndarray, width: int, height: int, nodata_value: float,
                           window_radius: int = 1) -> np.ndarray:
    """
    Fill no-data holes with the mean of valid neighbours in a square window.

    Pixels without any valid neighbour keep the no-data value.

    Args:
        samples: width * height samples in row-major order.
        width: Raster width in pixels.
        height: Raster height in pixels.
        nodata_value: The no-data sentinel.
        window_radius: Window half-size (1 means 3x3).

    Returns:
        A new flattened float64 array.
    """
    grid = np.asarray(samples, dtype=np.float64).reshape(height, width)
    holes = grid == nodata_value
    valid = ~holes & np.isfinite(grid)

    size = 2 * window_radius + 1
    sums = _window_sum(np.where(valid, grid, 0.0), window_radius, size)
    counts = _window_sum(valid.astype(np.int64), window_radius, size)

    filled = grid.copy()
    fillable = holes & (counts > 0)
    filled[fillable] = sums[fillable] / counts[fillable]
    logger.debug(f"Filled {int(np.count_nonzero(fillable))} of {int(np.count_nonzero(holes))} no-data pixels")
    return filled.reshape(-1)


def _window_sum(values: np.ndarray, radius: int, size: int) -> np.ndarray:
    """Sum over a (size x size) window centered on each cell, via an integral image."""
    h, w = values.shape
    padded = np.pad(values, radius)
    integral = np.zeros((padded.shape[0] + 1, padded.shape[1] + 1), dtype=values.dtype)
    integral[1:, 1:] = padded.cumsum(axis=0).cumsum(axis=1)
    return (integral[size:size + h, size:size + w]
            - integral[0:h, size:size + w]
            - integral[size:size + h, 0:w]
            + integral[0:h, 0:w])
