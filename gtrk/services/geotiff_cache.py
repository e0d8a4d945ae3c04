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
GeoTIFF Cache Service.

Memoizes fetched bytes and decoded GeoTIFFs per URL and deduplicates
concurrent requests for the same URL.

- Completed entries live for a fixed TTL and are then re-fetched.
- While a retrieval is running, further callers await the same task instead
  of starting another one.
- A caller that is cancelled stops waiting, but the retrieval itself keeps
  running and still populates the cache.
- Entries are immutable and replaced wholesale.

Usage:
    service = GeoTiffCacheService(HttpByteSource())
    metadata = await service.get_metadata(url)
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional, Protocol, Tuple

from gtrk.utils.config_loader import config
from gtrk.utils.data_models import CacheEntry, GeoTiffData, GeoTiffMetadata, RawBuffer
from gtrk.utils.geotiff_processor import load_geotiff_bytes

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class ByteSource(Protocol):
    """Anything that can fetch the complete bytes of a URL."""

    def fetch(self, url: str, on_progress: Optional[ProgressCallback] = None) -> Awaitable[RawBuffer]:
        ...


class GeoTiffCacheService:
    """Per-URL cache of raw buffers and decoded GeoTIFFs."""

    def __init__(self, byte_source: ByteSource, ttl_seconds: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic,
                 decoder: Callable[..., GeoTiffData] = load_geotiff_bytes,
                 regional_fallback: bool = False):
        """
        Initialize the service.

        Args:
            byte_source: Fetches bytes for a URL.
            ttl_seconds: Entry lifetime. Defaults to cache.ttl_seconds (300).
            clock: Returns the current time in seconds.
            decoder: Turns bytes into GeoTiffData; runs in a worker thread.
            regional_fallback: Passed to the decoder for failed reprojections.
        """
        self.byte_source = byte_source
        self.ttl_seconds = float(ttl_seconds if ttl_seconds is not None else config.get("cache.ttl_seconds", 300))
        self.clock = clock
        self.decoder = decoder
        self.regional_fallback = regional_fallback
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[Tuple[str, str], asyncio.Task] = {}
        # Created on first use so the lock belongs to the running event loop
        self._guard: Optional[asyncio.Lock] = None
        self._guard_loop: Optional[asyncio.AbstractEventLoop] = None

    # === Public API ===

    async def get_buffer(self, url: str, on_progress: Optional[ProgressCallback] = None) -> RawBuffer:
        """
        The raw bytes of a URL, fetched at most once per TTL.

        `on_progress` only receives updates when this call starts the download.
        """
        entry = await self._get_or_start(url, 'buffer', on_progress)
        return entry.raw_buffer

    async def get_geotiff(self, url: str, on_progress: Optional[ProgressCallback] = None) -> GeoTiffData:
        """The decoded GeoTIFF (metadata plus samples) of a URL."""
        entry = await self._get_or_start(url, 'decoded', on_progress)
        return GeoTiffData(metadata=entry.metadata, dataset=entry.dataset, source=url)

    async def get_metadata(self, url: str, on_progress: Optional[ProgressCallback] = None) -> GeoTiffMetadata:
        """The decoded metadata of a URL."""
        entry = await self._get_or_start(url, 'decoded', on_progress)
        return entry.metadata

    async def get_entry(self, url: str) -> Optional[CacheEntry]:
        """The current entry for a URL, stale or not, without fetching."""
        async with self._lock:
            return self._entries.get(url)

    async def invalidate(self, url: str) -> None:
        """Drop the entry for a URL. A running retrieval is not affected."""
        async with self._lock:
            self._entries.pop(url, None)

    async def clear(self) -> None:
        """Drop all entries."""
        async with self._lock:
            self._entries.clear()

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # === Internals ===

    @property
    def _lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._guard is None or self._guard_loop is not loop:
            self._guard = asyncio.Lock()
            self._guard_loop = loop
        return self._guard

    def _is_usable(self, entry: Optional[CacheEntry], kind: str) -> bool:
        if entry is None or entry.is_stale(self.clock(), self.ttl_seconds):
            return False
        return kind == 'buffer' or entry.metadata is not None

    async def _get_or_start(self, url: str, kind: str, on_progress: Optional[ProgressCallback]) -> CacheEntry:
        key = (url, kind)
        async with self._lock:
            entry = self._entries.get(url)
            if self._is_usable(entry, kind):
                logger.debug(f"Cache hit ({kind}) for {url}")
                return entry

            task = self._in_flight.get(key)
            if task is None:
                logger.debug(f"Cache miss ({kind}) for {url}; starting retrieval")
                coroutine = self._retrieve(url, on_progress) if kind == 'buffer' else self._decode(url, on_progress)
                task = asyncio.get_running_loop().create_task(coroutine)
                task.add_done_callback(_log_unawaited_failure)
                self._in_flight[key] = task
            else:
                logger.debug(f"Joining in-flight retrieval ({kind}) for {url}")

        # Cancelling this caller must not cancel the shared retrieval
        return await asyncio.shield(task)

    async def _retrieve(self, url: str, on_progress: Optional[ProgressCallback]) -> CacheEntry:
        key = (url, 'buffer')
        try:
            raw = await self.byte_source.fetch(url, on_progress)
            entry = CacheEntry(raw_buffer=raw, metadata=None, fetched_at=self.clock())
            async with self._lock:
                self._entries[url] = entry
                self._in_flight.pop(key, None)
            return entry
        except BaseException:
            async with self._lock:
                self._in_flight.pop(key, None)
            raise

    async def _decode(self, url: str, on_progress: Optional[ProgressCallback]) -> CacheEntry:
        key = (url, 'decoded')
        try:
            buffer_entry = await self._get_or_start(url, 'buffer', on_progress)
            geotiff = await asyncio.to_thread(
                self.decoder, buffer_entry.raw_buffer, url, self.regional_fallback)
            entry = CacheEntry(
                raw_buffer=buffer_entry.raw_buffer,
                metadata=geotiff.metadata,
                fetched_at=buffer_entry.fetched_at,
                dataset=geotiff.dataset,
            )
            async with self._lock:
                current = self._entries.get(url)
                # Only replace the entry built from the same download
                if current is None or current.raw_buffer is buffer_entry.raw_buffer:
                    self._entries[url] = entry
                self._in_flight.pop(key, None)
            return entry
        except BaseException:
            async with self._lock:
                self._in_flight.pop(key, None)
            raise


def _log_unawaited_failure(task: asyncio.Task) -> None:
    """Retrieve a failed task's exception so it is logged once, not reported as unhandled."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Retrieval failed: {exc}")
