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
Statistics Calculator.

Collects summary statistics for a decoded raster in a single linear pass over
its samples. The pass is vectorized with numpy; nothing is sorted and no
intermediate copy of the valid samples is kept, so time and memory stay
linear in the raster size.

Samples that are NaN, infinite or equal to the no-data value are excluded
from minimum, maximum and mean, and counted separately.
"""

import logging
from typing import Optional

import numpy as np

from gtrk.utils.data_models import RasterDataset, RasterStatistics
from gtrk.utils.exceptions import EmptyRasterError

# Configure logging
logger = logging.getLogger(__name__)


def format_number(num: float, decimals: int = 4) -> str:
    """Format a number with thousand separators and specified decimals."""
    if isinstance(num, int) or (isinstance(num, float) and num.is_integer()):
        return f"{int(num):,}"
    return f"{num:,.{decimals}f}"


def collect_statistics(dataset: RasterDataset) -> RasterStatistics:
    """
    Collect statistics over a raster's samples.

    Classification of each sample, in order:
        - NaN: counted in nan_count
        - +/- infinity: counted in infinite_count
        - equal to the no-data value: counted in nodata_count
        - otherwise valid; an exact 0 also increments zero_count

    Args:
        dataset: The decoded RasterDataset.

    Returns:
        RasterStatistics. With no valid samples, minimum and maximum are None
        and mean is 0.

    Example:
        >>> ds = RasterDataset(2, 2, np.array([0.0, 5.0, -9999.0, np.nan]), nodata_value=-9999)
        >>> stats = collect_statistics(ds)
        >>> stats.valid_count, stats.nodata_count, stats.nan_count, stats.maximum
        (2, 1, 1, 5.0)
    """
    data = np.asarray(dataset.samples, dtype=np.float64)
    total = int(data.size)

    nan_mask = np.isnan(data)
    inf_mask = np.isinf(data)
    finite_mask = ~(nan_mask | inf_mask)

    nodata_mask = _nodata_mask(data, finite_mask, dataset.nodata_value)
    valid_mask = finite_mask & ~nodata_mask

    valid_count = int(np.count_nonzero(valid_mask))
    nodata_count = int(np.count_nonzero(nodata_mask))
    nan_count = int(np.count_nonzero(nan_mask))
    infinite_count = int(np.count_nonzero(inf_mask))

    if valid_count > 0:
        minimum = float(np.min(data, where=valid_mask, initial=np.inf))
        maximum = float(np.max(data, where=valid_mask, initial=-np.inf))
        mean = float(np.sum(data, where=valid_mask)) / valid_count
        zero_count = int(np.count_nonzero(valid_mask & (data == 0)))
    else:
        minimum, maximum, mean, zero_count = None, None, 0.0, 0
        logger.warning("Raster contains no valid data after excluding no-data and non-finite samples.")

    stats = RasterStatistics(
        minimum=minimum,
        maximum=maximum,
        mean=mean,
        total_pixels=total,
        valid_count=valid_count,
        nodata_count=nodata_count,
        zero_count=zero_count,
        nan_count=nan_count,
        infinite_count=infinite_count,
    )
    logger.debug(
        f"Statistics: valid={format_number(valid_count)}/{format_number(total)}, "
        f"nodata={format_number(nodata_count)}, nan={nan_count}, inf={infinite_count}, "
        f"zeros={format_number(zero_count)}, min={minimum}, max={maximum}, mean={mean:.4f}"
    )
    return stats


def require_valid_statistics(stats: RasterStatistics, source: Optional[str] = None) -> RasterStatistics:
    """
    Ensure a raster has at least one valid sample.

    Raises:
        EmptyRasterError: If valid_count is 0.
    """
    if not stats.has_valid_data():
        context = {'url': source} if source else None
        raise EmptyRasterError(
            f"Raster has no valid samples ({stats.total_pixels} pixels, "
            f"{stats.nodata_count} no-data, {stats.nan_count} NaN, {stats.infinite_count} infinite)",
            context,
        )
    return stats


def _nodata_mask(data: np.ndarray, finite_mask: np.ndarray, nodata_value: Optional[float]) -> np.ndarray:
    if nodata_value is None or np.isnan(nodata_value):
        return np.zeros(data.shape, dtype=bool)
    return finite_mask & (data == nodata_value)
