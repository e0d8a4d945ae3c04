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
This module provides logging helpers for the GeoTIFF Raster Kit.
"""

import logging
import os
import sys
from typing import Optional, Union

from gtrk.utils.config_loader import config

# Third-party loggers that are too chatty at INFO/DEBUG
NOISY_LOGGERS = ('httpx', 'httpcore', 'matplotlib')


def resolve_level(level: Union[int, str]) -> int:
    """Convert a level name such as 'DEBUG' to its numeric value."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(log_file: Optional[str] = None, level: Union[int, str, None] = None) -> logging.Logger:
    """
    Set up and configure the root logger.

    Args:
        log_file (str, optional): The full path to the log file. Defaults to
            logging.file; pass an empty string for console output only.
        level (int | str, optional): The logging level. Defaults to logging.level.

    Returns:
        logging.Logger: The configured root logger instance.
    """
    if log_file is None:
        log_file = config.get("logging.file")
    if level is None:
        level = config.get("logging.level", "INFO")

    logger = logging.getLogger()
    logger.setLevel(resolve_level(level))

    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter('%(message)s')
    file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def shutdown_logger(logger: logging.Logger):
    """
    Safely shuts down a logger by removing and closing its handlers.
    This is crucial for releasing file locks.
    """
    if not logger:
        return
    handlers = logger.handlers[:]
    for handler in handlers:
        handler.flush()
        handler.close()
        logger.removeHandler(handler)
