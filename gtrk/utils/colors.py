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
Color Schemes and Logic.

This module provides a centralized registry of the color schemes used to
render rasters and legends, and the helpers that turn a scheme into a
matplotlib colormap.
"""

from typing import Dict, List, Optional, Tuple

from matplotlib.colors import Colormap, LinearSegmentedColormap, ListedColormap, to_rgb

from gtrk.utils.data_models import ColorScheme
from gtrk.utils.exceptions import NoColorSchemeError

# Diverging stops shared by the blue/red schemes
_RED_BLUE = (
    '#67001f', '#b2182b', '#d6604d', '#f4a582', '#fddbc7', '#f7f7f7',
    '#d1e5f0', '#92c5de', '#4393c3', '#2166ac', '#053061',
)

# Green (low) to red (high)
_GREEN_TO_RED = (
    '#1a9850', '#66bd63', '#a6d96a', '#d9ef8b', '#ffffbf',
    '#fee08b', '#fdae61', '#f46d43', '#d73027',
)

COLOR_SCHEMES: Dict[str, ColorScheme] = {
    scheme.name: scheme for scheme in (
        # Sequential schemes (low to high)
        ColorScheme(
            name='redYellowGreen',
            display_name='Red-Yellow-Green',
            description='Red (high) to yellow to green (low)',
            colors=_GREEN_TO_RED,
        ),
        ColorScheme(
            name='greenYellowRed',
            display_name='Green-Yellow-Red',
            description='Green (low) to yellow to red (high)',
            colors=_GREEN_TO_RED,
        ),
        ColorScheme(
            name='blueToRed',
            display_name='Blue to Red',
            description='Blue (low) to red (high)',
            colors=('#2166ac', '#4393c3', '#92c5de', '#f7f7f7', '#fddbc7', '#d6604d', '#b2182b'),
        ),
        # Diverging schemes (centered around a middle value)
        ColorScheme(
            name='redBlue',
            display_name='Red-Blue',
            description='Red (negative) to white to blue (positive)',
            colors=_RED_BLUE,
            scheme_type='diverging',
        ),
        ColorScheme(
            name='brownTeal',
            display_name='Brown-Teal',
            description='Brown (negative) to white to teal (positive)',
            colors=(
                '#543005', '#8c510a', '#bf812d', '#dfc27d', '#f6e8c3', '#f5f5f5',
                '#c7eae5', '#80cdc1', '#35978f', '#01665e', '#003c30',
            ),
            scheme_type='diverging',
        ),
        # Qualitative schemes (for categorical data)
        ColorScheme(
            name='category10',
            display_name='Category 10',
            description='Distinct colors for categorical data',
            colors=(
                '#1f77b4', '#ff7f0e', '#2ca02c', '#d62728', '#9467bd',
                '#8c564b', '#e377c2', '#7f7f7f', '#bcbd22', '#17becf',
            ),
            scheme_type='qualitative',
            discrete=True,
        ),
        # Fire-specific schemes
        ColorScheme(
            name='fireIntensity',
            display_name='Fire Intensity',
            description='Yellow to orange to red for fire intensity',
            colors=('#ffeda0', '#fed976', '#feb24c', '#fd8d3c', '#fc4e2a', '#e31a1c', '#b10026'),
            domain=(0.0, 100.0),
        ),
        ColorScheme(
            name='burnProbability',
            display_name='Burn Probability',
            description='Yellow to red for burn probability',
            colors=('#ffeda0', '#feb24c', '#fd8d3c', '#f03b20', '#bd0026'),
            domain=(0.0, 1.0),
        ),
        ColorScheme(
            name='canopyCover',
            display_name='Canopy Cover',
            description='Light to dark green for canopy cover',
            colors=('#edf8e9', '#bae4b3', '#74c476', '#31a354', '#006d2c'),
            domain=(0.0, 100.0),
        ),
    )
}


def get_color_scheme(name: str) -> ColorScheme:
    """
    Get a color scheme by name.

    Raises:
        NoColorSchemeError: If no scheme is registered under `name`.
    """
    try:
        return COLOR_SCHEMES[name]
    except KeyError:
        raise NoColorSchemeError(name) from None


def list_color_schemes(scheme_type: Optional[str] = None) -> List[ColorScheme]:
    """All registered schemes, optionally filtered by type."""
    return [s for s in COLOR_SCHEMES.values() if scheme_type is None or s.scheme_type == scheme_type]


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    """
    Convert a hex color to 0-255 RGB components.

    Example:
        >>> hex_to_rgb('#ff7f0e')
        (255, 127, 14)
    """
    r, g, b = to_rgb(hex_color if hex_color.startswith('#') else f"#{hex_color}")
    return (round(r * 255), round(g * 255), round(b * 255))


def build_colormap(scheme: ColorScheme) -> Colormap:
    """
    Build a matplotlib colormap from a scheme.

    Discrete schemes map to a ListedColormap with one bucket per color;
    all others interpolate linearly between evenly spaced stops.
    """
    if scheme.discrete or len(scheme.colors) == 1:
        return ListedColormap(list(scheme.colors), name=scheme.name)
    return LinearSegmentedColormap.from_list(scheme.name, list(scheme.colors), N=256)


def color_from_scheme(scheme: ColorScheme, normalized_value: float) -> str:
    """
    Pick the bucket color for a normalized value in [0, 1].

    Values outside [0, 1] are clamped.
    """
    value = max(0.0, min(1.0, normalized_value))
    index = min(int(value * len(scheme.colors)), len(scheme.colors) - 1)
    return scheme.colors[index]


def color_for_value(scheme: ColorScheme, value: float) -> str:
    """
    Pick the bucket color for a raw value using the scheme's own domain.

    Raises:
        ValueError: If the scheme has no domain.
    """
    if not scheme.domain:
        raise ValueError(f"Color scheme {scheme.name} does not have a domain defined")
    low, high = scheme.domain
    span = high - low
    return color_from_scheme(scheme, (value - low) / span if span else 0.0)


def gradient_css(scheme: ColorScheme) -> str:
    """CSS linear-gradient string for a legend bar."""
    return f"linear-gradient(to right, {', '.join(scheme.colors)})"
