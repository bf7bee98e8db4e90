"""Option and cache stores consumed by the resolver, settings and exit list.

The engine only reads options through :class:`OptionStore`; the CLI is the
only writer. The JSON-backed variants persist the same shape the in-memory
ones hold so operators can inspect them by hand.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class OptionStore(Protocol):
    def get_site_option(self, site_id: int, key: str, default: Any = None) -> Any: ...

    def get_network_option(self, key: str, default: Any = None) -> Any: ...

    def set_site_option(self, site_id: int, key: str, value: Any) -> None: ...

    def set_network_option(self, key: str, value: Any) -> None: ...

    def site_ids(self) -> List[int]: ...


class CacheStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, text: str, ttl_seconds: int) -> None: ...


class MemoryOptionStore:
    """Dict-backed option store for embedding and tests."""

    def __init__(
        self,
        sites: Optional[Dict[int, Dict[str, Any]]] = None,
        network: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._sites: Dict[int, Dict[str, Any]] = {int(k): dict(v) for k, v in (sites or {}).items()}
        self._network: Dict[str, Any] = dict(network or {})

    def get_site_option(self, site_id: int, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._sites.get(int(site_id), {}).get(key, default)

    def get_network_option(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._network.get(key, default)

    def set_site_option(self, site_id: int, key: str, value: Any) -> None:
        with self._lock:
            self._sites.setdefault(int(site_id), {})[key] = value

    def set_network_option(self, key: str, value: Any) -> None:
        with self._lock:
            self._network[key] = value

    def site_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._sites)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "network": dict(self._network),
                "sites": {str(k): dict(v) for k, v in sorted(self._sites.items())},
            }


class JsonOptionStore(MemoryOptionStore):
    """Option store persisted as ``{"network": {...}, "sites": {"<id>": {...}}}``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        sites: Dict[int, Dict[str, Any]] = {}
        network: Dict[str, Any] = {}
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Ignoring unreadable option store %s: %s", self.path, exc)
                data = {}
            if isinstance(data, dict):
                raw_sites = data.get("sites") or {}
                if isinstance(raw_sites, dict):
                    for key, value in raw_sites.items():
                        try:
                            site_id = int(key)
                        except (TypeError, ValueError):
                            continue
                        if isinstance(value, dict):
                            sites[site_id] = value
                raw_network = data.get("network") or {}
                if isinstance(raw_network, dict):
                    network = raw_network
        super().__init__(sites=sites, network=network)

    def set_site_option(self, site_id: int, key: str, value: Any) -> None:
        super().set_site_option(site_id, key, value)
        self.flush()

    def set_network_option(self, key: str, value: Any) -> None:
        super().set_network_option(key, value)
        self.flush()

    def flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.snapshot(), ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)


class MemoryCache:
    """Thread-safe in-memory TTL cache."""

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if not entry:
                return None
            if entry["expires_at"] <= self._clock():
                self._entries.pop(key, None)
                return None
            return entry["text"]

    def set(self, key: str, text: str, ttl_seconds: int) -> None:
        now = self._clock()
        with self._lock:
            self._entries[key] = {
                "text": text,
                "fetched_at": now,
                "expires_at": now + max(0, int(ttl_seconds)),
            }

    def fetched_at(self, key: str) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(key)
            return entry["fetched_at"] if entry else None


class JsonFileCache(MemoryCache):
    """TTL cache persisted to a JSON file (bounded to what callers store).

    The file is re-read whenever it changes on disk, so entries written by
    another process (the exit-list refresher) are picked up.
    """

    def __init__(self, path: Path, clock=time.time) -> None:
        super().__init__(clock=clock)
        self.path = Path(path)
        self._signature: Optional[Tuple[int, int]] = None
        self._reload_if_changed()

    def _stat_signature(self) -> Optional[Tuple[int, int]]:
        try:
            st = self.path.stat()
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def _read_entries(self) -> Dict[str, Dict[str, Any]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable cache file %s: %s", self.path, exc)
            return {}
        entries: Dict[str, Dict[str, Any]] = {}
        if not isinstance(data, dict):
            return entries
        for key, entry in data.items():
            if isinstance(entry, dict) and isinstance(entry.get("text"), str):
                try:
                    entries[key] = {
                        "text": entry["text"],
                        "fetched_at": float(entry.get("fetched_at", 0)),
                        "expires_at": float(entry.get("expires_at", 0)),
                    }
                except (TypeError, ValueError):
                    continue
        return entries

    def _reload_if_changed(self) -> None:
        signature = self._stat_signature()
        if signature is None or signature == self._signature:
            return
        entries = self._read_entries()
        with self._lock:
            self._entries = entries
            self._signature = signature

    def get(self, key: str) -> Optional[str]:
        self._reload_if_changed()
        return super().get(key)

    def set(self, key: str, text: str, ttl_seconds: int) -> None:
        self._reload_if_changed()
        super().set(key, text, ttl_seconds)
        with self._lock:
            payload = {k: dict(v) for k, v in self._entries.items()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)
        self._signature = self._stat_signature()


__all__ = [
    "OptionStore",
    "CacheStore",
    "MemoryOptionStore",
    "JsonOptionStore",
    "MemoryCache",
    "JsonFileCache",
]
