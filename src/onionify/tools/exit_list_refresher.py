"""Exit-list refresher CLI: prime the on-disk cache used by the detector."""

from __future__ import annotations

import argparse
import hashlib
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from ..core.keys import K_EXIT_LIST_BLOB
from ..workflows.exit_list import FetchFunc, fetch_exit_list
from ..workflows.onionify_config import (
    DEFAULT_CACHE_PATH,
    ENV_CACHE_PATH,
    EXIT_LIST_MARKER,
    EXIT_LIST_TIMEOUT_MAX,
    EXIT_LIST_TTL_SECONDS,
    EXIT_LIST_URL,
)
from ..workflows.storage import JsonFileCache

logger = logging.getLogger(__name__)


def refresh_exit_list(
    cache_path: Path,
    *,
    fetch: Optional[FetchFunc] = None,
    dry_run: bool = False,
    timeout: float = EXIT_LIST_TIMEOUT_MAX,
    ttl_seconds: int = EXIT_LIST_TTL_SECONDS,
) -> Dict[str, str]:
    if dry_run:
        logger.info("dry-run: would refresh %s -> %s", EXIT_LIST_URL, cache_path)
        return {"url": EXIT_LIST_URL, "path": str(cache_path), "status": "skipped"}
    blob = fetch_exit_list(fetch=fetch, timeout=timeout)
    if blob is None:
        logger.warning("exit list unavailable; cache %s left untouched", cache_path)
        return {"url": EXIT_LIST_URL, "path": str(cache_path), "status": "failed"}
    JsonFileCache(cache_path).set(K_EXIT_LIST_BLOB, blob, ttl_seconds)
    entries = blob.count(EXIT_LIST_MARKER)
    logger.info("refreshed %s (%d exit addresses) -> %s", EXIT_LIST_URL, entries, cache_path)
    return {
        "url": EXIT_LIST_URL,
        "path": str(cache_path),
        "status": "ok",
        "entries": str(entries),
        "sha256": hashlib.sha256(blob.encode("utf-8")).hexdigest(),
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Refresh the cached Tor exit-address list")
    parser.add_argument(
        "--cache",
        default=Path(os.getenv(ENV_CACHE_PATH) or DEFAULT_CACHE_PATH),
        type=Path,
        help=f"Path to the JSON cache file (default: ${ENV_CACHE_PATH} or {DEFAULT_CACHE_PATH})",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print actions without downloading")
    parser.add_argument("--timeout", type=float, default=EXIT_LIST_TIMEOUT_MAX, help="HTTP timeout (seconds, max 5)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    result = refresh_exit_list(args.cache, dry_run=args.dry_run, timeout=args.timeout)
    if result.get("status") == "failed":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
