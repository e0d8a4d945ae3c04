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
Integration tests for GTRK.

These tests run several components together: bytes through the full
ingestion pipeline, the HTTP byte source against a mock transport and the
cache service on top of both.
"""
