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
Configuration Management for the GeoTIFF Raster Kit.

This module provides a singleton configuration manager (`Config`) that loads,
parses, and provides access to settings from a central `config.toml` file.
It ensures that configuration values are loaded only once and are available
throughout the application.

Classes:
    Config: A singleton class for managing application-wide configuration.
"""
import copy
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.toml"

_DEFAULTS: Dict[str, Any] = {
    "cache": {
        "ttl_seconds": 300,
    },
    "network": {
        "timeout_seconds": 60.0,
        "chunk_size": 65536,
        "accept": "image/tiff, application/octet-stream",
    },
    "georeference": {
        "square_tolerance": 0.05,
        "regional_fallback_bounds": [-125.0, 24.0, -66.0, 50.0],
    },
    "aoi": {
        "default_buffer_miles": 8.0,
        "buffer_margin": 1.2,
        "containment_tolerance_m": 0.5,
    },
    "render": {
        "default_color_scheme": "fireIntensity",
    },
    "logging": {
        "level": "INFO",
        "file": "gtrk.log",
    },
}


class Config:
    """Singleton configuration manager"""
    _instance = None
    _config: Dict[str, Any] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_config()
        return cls._instance

    def _load_config(self, config_path: Optional[Path] = None):
        """Load configuration from config.toml, layered over the built-in defaults"""
        config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._config = self._default_config()
        if not config_path.exists():
            logger.debug(f"No config file at {config_path}; using defaults")
            return
        try:
            with open(config_path, "rb") as f:
                loaded = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Could not load {config_path}: {e}")
            return
        for section, values in loaded.items():
            if isinstance(values, dict):
                self._config.setdefault(section, {}).update(values)
            else:
                self._config[section] = values

    def _default_config(self) -> Dict[str, Any]:
        """Default configuration if config.toml doesn't exist"""
        return copy.deepcopy(_DEFAULTS)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation

        Args:
            key: Configuration key in dot notation (e.g., "cache.ttl_seconds")
            default: Default value if key is not found

        Returns:
            Configuration value or default

        Example:
            >>> config.get("cache.ttl_seconds")
            300
            >>> config.get("georeference.regional_fallback_bounds")
            [-125.0, 24.0, -66.0, 50.0]
        """
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section

        Args:
            section: Section name (e.g., "cache", "network", "aoi")

        Returns:
            Dictionary containing the section configuration
        """
        return self._config.get(section, {})

    def set(self, key: str, value: Any):
        """Set configuration value using dot notation

        Args:
            key: Configuration key in dot notation
            value: Value to set

        Note:
            This only modifies the in-memory configuration.
            Changes are not persisted to config.toml.
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def reload(self, config_path: Optional[Path] = None):
        """Reload configuration from config.toml (or another TOML file)"""
        self._load_config(config_path)

# Singleton instance
config = Config()
