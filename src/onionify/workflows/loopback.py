"""Reroute internal HTTP (cron, REST, ajax) from the onion alias to clearnet.

Loopback calls made while serving an onion request would otherwise target the
.onion host, which the server itself usually cannot resolve.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import requests

from ..core.keys import K_LOOPBACK_REROUTE
from .detector import ClassificationVerdict
from .mapping import AliasResolver
from .onionify_config import HDR_LOOPBACK_GUARD, REST_PREFIX
from .rewrite import InternalPaths, build_internal_paths, rebuild_url
from .settings import resolve_option

logger = logging.getLogger(__name__)


class LoopbackRerouter:
    def __init__(
        self,
        resolver: AliasResolver,
        *,
        session: Optional[requests.Session] = None,
        rest_prefix: str = REST_PREFIX,
    ) -> None:
        self.resolver = resolver
        self.session = session
        self.rest_prefix = rest_prefix

    def _enabled(self, site_id: int) -> bool:
        return bool(resolve_option(self.resolver.store, site_id, K_LOOPBACK_REROUTE, multisite=self.resolver.multisite))

    def _internal_paths(self, site_id: int) -> InternalPaths:
        return build_internal_paths(self.resolver.resolve_base_path(site_id), self.rest_prefix)

    def _to_clearnet(self, url: str, site_id: int, *, internal_only: bool) -> Optional[str]:
        onion = self.resolver.resolve_alias(site_id)
        clear = self.resolver.resolve_clearnet_host(site_id)
        if not onion or not clear:
            return None
        try:
            parts = urlsplit(url or "")
            host = (parts.hostname or "").lower()
        except ValueError:
            return None
        if host != onion:
            return None
        if internal_only and not self._internal_paths(site_id).matches(parts.path or "/"):
            return None
        scheme = self.resolver.resolve_clearnet_scheme(site_id)
        # Credentials and the onion port are never carried over
        rebuilt = rebuild_url(scheme, clear, parts.path, parts.query, parts.fragment)
        return rebuilt or None

    def reroute_url(self, url: str, verdict: ClassificationVerdict, site_id: int = 0) -> str:
        """Clearnet equivalent of an internal endpoint on the alias, else ``url``."""

        if not verdict.is_anonymous_network or not self._enabled(site_id):
            return url
        return self._to_clearnet(url, site_id, internal_only=True) or url

    def reroute_cron_request(self, cron: Dict[str, Any], verdict: ClassificationVerdict, site_id: int = 0) -> Dict[str, Any]:
        if not verdict.is_anonymous_network or not self._enabled(site_id):
            return cron
        url = cron.get("url")
        if not isinstance(url, str) or not url:
            return cron
        new = self._to_clearnet(url, site_id, internal_only=False)
        if not new:
            return cron
        return {**cron, "url": new}

    def send(
        self,
        method: str,
        url: str,
        verdict: ClassificationVerdict,
        site_id: int = 0,
        **kwargs: Any,
    ) -> Optional[requests.Response]:
        """Perform the rerouted request; ``None`` when no reroute applies."""

        headers = dict(kwargs.pop("headers", None) or {})
        if headers.get(HDR_LOOPBACK_GUARD):
            return None
        target = self.reroute_url(url, verdict, site_id)
        if target == url:
            return None
        headers[HDR_LOOPBACK_GUARD] = "1"
        kwargs.setdefault("verify", True)
        kwargs.setdefault("timeout", 10)
        http = self.session or requests
        logger.debug("Rerouting loopback %s %s -> %s", method, url, target)
        return http.request(method, target, headers=headers, **kwargs)


__all__ = ["LoopbackRerouter"]
