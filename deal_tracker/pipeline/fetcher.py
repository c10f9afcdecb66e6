"""
Deal Tracker — Bulk Fetcher

Downloads gzip-compressed MTGJSON snapshots straight to disk:
response body → zlib decompressor → ``<destination>.part`` → atomic rename.
Peak memory is one network chunk plus the decompressor window, whatever the
file size.

Transport errors, non-2xx responses and corrupt/truncated gzip streams are
retried with exponential backoff. Local write failures (``OSError``) are not:
a full disk or a read-only cache directory will not fix itself in 4 seconds.
"""

from __future__ import annotations

import asyncio
import os
import zlib
from pathlib import Path
from typing import Any

import httpx
import structlog

from deal_tracker.config import settings
from deal_tracker.errors import FetchError

logger = structlog.get_logger(__name__)

# gzip container (header + trailer), not raw deflate.
_GZIP_WBITS = zlib.MAX_WBITS | 16

_CHUNK_SIZE = 1024 * 1024


class TruncatedDownloadError(Exception):
    """The body ended before the gzip stream did."""


class BulkFetcher:
    """
    Async client for MTGJSON bulk downloads.

    Usage:
        async with BulkFetcher() as fetcher:
            await fetcher.download_gz(settings.ALL_PRICES_TODAY_URL, cache_path)
    """

    def __init__(
        self,
        max_retries: int | None = None,
        base_backoff: float | None = None,
        timeout: float = 300.0,
    ):
        self._max_retries = max_retries if max_retries is not None else settings.FETCH_MAX_RETRIES
        self._base_backoff = (
            base_backoff if base_backoff is not None else settings.FETCH_BASE_BACKOFF_SECONDS
        )
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> BulkFetcher:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout, connect=30.0),
            follow_redirects=True,
            headers={"Accept": "application/gzip, application/octet-stream"},
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def download_gz(self, url: str, destination: str | Path) -> Path:
        """
        Download ``url`` and write its gunzipped body to ``destination``.

        The destination is replaced only after a complete, clean stream; a
        failed attempt leaves any previous file at ``destination`` untouched.

        Returns:
            The destination path.

        Raises:
            FetchError: every attempt failed with a retryable error.
            OSError: the local file could not be written (not retried).
        """
        assert self._client is not None, "Client not initialized. Use 'async with'."

        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")

        last_error: Exception | None = None

        for attempt in range(1, self._max_retries + 1):
            logger.info("fetch_started", url=url, attempt=attempt, destination=str(destination))
            try:
                written = await self._stream_to(url, partial)
            except (httpx.HTTPError, zlib.error, TruncatedDownloadError) as e:
                last_error = e
                partial.unlink(missing_ok=True)
                logger.warning(
                    "fetch_attempt_failed",
                    url=url,
                    attempt=attempt,
                    max_retries=self._max_retries,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._base_backoff * (2 ** (attempt - 1)))
                continue
            except OSError:
                partial.unlink(missing_ok=True)
                logger.error("fetch_write_failed", url=url, destination=str(destination))
                raise

            os.replace(partial, destination)
            logger.info("fetch_complete", url=url, bytes_written=written, attempt=attempt)
            return destination

        logger.error("fetch_retries_exhausted", url=url, attempts=self._max_retries)
        raise FetchError(
            f"Download of {url} failed after {self._max_retries} attempts: {last_error}"
        ) from last_error

    async def _stream_to(self, url: str, partial: Path) -> int:
        assert self._client is not None

        decompressor = zlib.decompressobj(_GZIP_WBITS)
        written = 0

        async with self._client.stream("GET", url) as response:
            response.raise_for_status()
            with partial.open("wb") as out:
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    data = decompressor.decompress(chunk)
                    if data:
                        out.write(data)
                        written += len(data)
                tail = decompressor.flush()
                if tail:
                    out.write(tail)
                    written += len(tail)

        if not decompressor.eof:
            raise TruncatedDownloadError(f"{url}: gzip stream ended early ({written} bytes)")
        return written
