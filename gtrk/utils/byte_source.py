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
Byte Source.

Retrieves the complete bytes of a remote GeoTIFF over HTTP(S) with httpx.

A HEAD request learns the total size for progress reporting; the GET
response is then streamed in chunks that are concatenated into a single
immutable RawBuffer. Decoding never starts on partial data.

Usage:
    source = HttpByteSource()
    raw = await source.fetch(url, on_progress=lambda pct: print(pct))
    await source.close()
"""

import logging
from typing import Callable, Optional

import httpx

from gtrk.utils.config_loader import config
from gtrk.utils.data_models import RawBuffer
from gtrk.utils.exceptions import NetworkFailureError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class HttpByteSource:
    """
    Streaming HTTP byte source.

    The cache service depends only on the `fetch(url, on_progress)` coroutine,
    so any object providing it can stand in for this class.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 timeout: Optional[float] = None,
                 chunk_size: Optional[int] = None,
                 accept: Optional[str] = None):
        """
        Initialize the byte source.

        Args:
            client: An existing AsyncClient to use. It is not closed by close().
            timeout: Request timeout in seconds. Defaults to network.timeout_seconds.
            chunk_size: Streaming chunk size in bytes. Defaults to network.chunk_size.
            accept: Accept header value. Defaults to network.accept.
        """
        self.timeout = float(timeout if timeout is not None else config.get("network.timeout_seconds", 60.0))
        self.chunk_size = int(chunk_size or config.get("network.chunk_size", 65536))
        self.accept = accept or config.get("network.accept", "image/tiff, application/octet-stream")
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True
            )
            self._owns_client = True
        return self._client

    async def close(self):
        """Close the HTTP client if this source created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def content_length(self, url: str) -> int:
        """
        Total size of the resource, from a HEAD request.

        Raises:
            NetworkFailureError: On a non-2xx status or a zero/missing content-length.
        """
        client = await self._get_client()
        try:
            response = await client.head(url, headers={"Accept": self.accept})
        except httpx.TimeoutException as e:
            raise NetworkFailureError(f"HEAD request timed out after {self.timeout}s", url=url) from e
        except httpx.RequestError as e:
            raise NetworkFailureError(f"HEAD request failed: {e}", url=url) from e

        if not response.is_success:
            raise NetworkFailureError(
                f"Failed to fetch file info: {response.status_code} {response.reason_phrase}",
                url=url, status_code=response.status_code,
            )

        try:
            total = int(response.headers.get("content-length", "0"))
        except ValueError:
            total = 0
        if total <= 0:
            raise NetworkFailureError("File size is 0 bytes", url=url, status_code=response.status_code)

        logger.debug(f"{url}: {total} bytes, content-type={response.headers.get('content-type')}")
        return total

    async def fetch(self, url: str, on_progress: Optional[ProgressCallback] = None) -> RawBuffer:
        """
        Download the complete resource.

        Args:
            url: HTTP(S) URL of the GeoTIFF.
            on_progress: Called with the integer download percentage after each chunk.

        Returns:
            RawBuffer holding every byte of the response body.

        Raises:
            NetworkFailureError: On HTTP errors, transport errors or an empty body.
        """
        total = await self.content_length(url)
        client = await self._get_client()

        chunks = []
        received = 0
        try:
            async with client.stream("GET", url, headers={"Accept": self.accept}) as response:
                if not response.is_success:
                    raise NetworkFailureError(
                        f"Failed to fetch file: {response.status_code} {response.reason_phrase}",
                        url=url, status_code=response.status_code,
                    )
                async for chunk in response.aiter_bytes(self.chunk_size):
                    chunks.append(chunk)
                    received += len(chunk)
                    if on_progress:
                        on_progress(round(received / total * 100))
        except httpx.TimeoutException as e:
            raise NetworkFailureError(f"Download timed out after {self.timeout}s", url=url) from e
        except httpx.RequestError as e:
            raise NetworkFailureError(f"Download failed: {e}", url=url) from e

        if received == 0:
            raise NetworkFailureError("Response body is empty", url=url)
        if received != total:
            logger.debug(f"{url}: received {received} bytes, content-length announced {total}")

        logger.info(f"Downloaded {received:,} bytes from {url}")
        return RawBuffer(data=b"".join(chunks), source=url)
