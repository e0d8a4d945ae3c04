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
GeoTIFF Raster Kit Test Suite.

This package contains tests for GTRK components including:
- Unit tests for individual functions and classes
- Integration tests for the ingestion pipeline, byte source and cache service
"""
