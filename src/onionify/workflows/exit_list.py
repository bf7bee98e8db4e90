"""Opt-in exit-address list lookup, cached and best-effort.

The list is fetched at most once per TTL (24h). Concurrent requests that find
a refresh already in flight skip the signal rather than wait, and a failed
fetch starts a cool-down so an unreachable endpoint is not hammered. No error
from here ever reaches the caller.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from ..core.keys import K_EXIT_LIST_BLOB
from .onionify_config import (
    DEFAULT_CACHE_PATH,
    ENV_CACHE_PATH,
    EXIT_LIST_FAILURE_COOLDOWN_SECONDS,
    EXIT_LIST_MARKER,
    EXIT_LIST_MAX_BYTES,
    EXIT_LIST_TIMEOUT_MAX,
    EXIT_LIST_TTL_SECONDS,
    EXIT_LIST_URL,
    USER_AGENT,
)
from .storage import CacheStore, JsonFileCache, MemoryCache

logger = logging.getLogger(__name__)

FetchFunc = Callable[[str, float], Optional[str]]


def _default_fetch(url: str, timeout: float) -> Optional[str]:
    """Stream the list under a total deadline and a size cap.

    ``requests`` timeouts bound each socket operation, not the whole body, so a
    slowly dripping server is cut off here once ``timeout`` seconds have passed.
    """

    deadline = time.monotonic() + timeout
    with requests.get(
        url,
        timeout=timeout,
        verify=True,
        allow_redirects=False,
        stream=True,
        headers={"User-Agent": USER_AGENT},
    ) as resp:
        resp.raise_for_status()
        chunks = []
        received = 0
        for chunk in resp.iter_content(chunk_size=64 * 1024):
            if time.monotonic() > deadline:
                raise TimeoutError(f"exit list download exceeded {timeout:.1f}s")
            if not chunk:
                continue
            received += len(chunk)
            if received > EXIT_LIST_MAX_BYTES:
                raise ValueError(f"exit list larger than {EXIT_LIST_MAX_BYTES} bytes")
            chunks.append(chunk)
        return b"".join(chunks).decode(resp.encoding or "utf-8", errors="replace")


def fetch_exit_list(
    *,
    fetch: Optional[FetchFunc] = None,
    timeout: float = EXIT_LIST_TIMEOUT_MAX,
) -> Optional[str]:
    """Fetch the advisory list once; ``None`` on any failure or bogus body."""

    fetcher = fetch or _default_fetch
    timeout = max(0.1, min(float(timeout), EXIT_LIST_TIMEOUT_MAX))
    try:
        body = fetcher(EXIT_LIST_URL, timeout)
    except Exception as exc:
        logger.debug("Exit list fetch failed: %s", exc)
        return None
    if not isinstance(body, str) or not body:
        return None
    # A real list carries many "ExitAddress <ip> <timestamp>" lines
    if EXIT_LIST_MARKER not in body:
        logger.debug("Exit list response did not look like an exit list (%d chars)", len(body))
        return None
    return body


def blob_contains(blob: str, ip: str) -> bool:
    return bool(blob) and bool(ip) and f"{EXIT_LIST_MARKER}{ip} " in blob


class ExitListChecker:
    """Membership test against a cached copy of the exit list."""

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        *,
        fetch: Optional[FetchFunc] = None,
        timeout: float = EXIT_LIST_TIMEOUT_MAX,
        ttl_seconds: int = EXIT_LIST_TTL_SECONDS,
        cooldown_seconds: int = EXIT_LIST_FAILURE_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache: CacheStore = cache if cache is not None else MemoryCache()
        self._fetch = fetch
        self.timeout = timeout
        self.ttl_seconds = ttl_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._refresh_lock = threading.Lock()
        self._retry_after = 0.0
        self.fetch_attempts = 0

    def _blob(self) -> Optional[str]:
        blob = self.cache.get(K_EXIT_LIST_BLOB)
        if isinstance(blob, str) and blob:
            return blob
        if self._clock() < self._retry_after:
            return None
        # Single flight: whoever loses the race skips the signal this time
        if not self._refresh_lock.acquire(blocking=False):
            logger.debug("Exit list refresh already in flight; skipping signal")
            return None
        try:
            blob = self.cache.get(K_EXIT_LIST_BLOB)
            if isinstance(blob, str) and blob:
                return blob
            self.fetch_attempts += 1
            blob = fetch_exit_list(fetch=self._fetch, timeout=self.timeout)
            if blob is None:
                self._retry_after = self._clock() + self.cooldown_seconds
                logger.warning(
                    "Exit list unavailable; skipping exit-list signal for %ss",
                    self.cooldown_seconds,
                )
                return None
            self.cache.set(K_EXIT_LIST_BLOB, blob, self.ttl_seconds)
            logger.info("Cached exit list (%d chars) for %ss", len(blob), self.ttl_seconds)
            return blob
        finally:
            self._refresh_lock.release()

    def is_exit_node(self, ip: str) -> bool:
        try:
            blob = self._blob()
        except Exception as exc:
            logger.debug("Exit list lookup failed: %s", exc)
            return False
        return blob_contains(blob or "", ip)


def default_exit_list_checker(timeout: float = EXIT_LIST_TIMEOUT_MAX) -> ExitListChecker:
    """Checker backed by the on-disk cache that `onionify-exit-list` primes."""

    path = Path(os.getenv(ENV_CACHE_PATH) or DEFAULT_CACHE_PATH)
    return ExitListChecker(JsonFileCache(path), timeout=timeout)


__all__ = ["ExitListChecker", "default_exit_list_checker", "fetch_exit_list", "blob_contains"]
