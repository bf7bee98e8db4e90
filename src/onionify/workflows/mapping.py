"""Resolve the clearnet and .onion hostnames configured for a site."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from ..core.keys import K_HOME, K_ONION_DOMAIN
from .onionify_utils import sanitize_clearnet_host, sanitize_onion_host
from .storage import OptionStore


@dataclass(frozen=True)
class SiteAliasConfig:
    anonymous_host: Optional[str]
    clearnet_host: Optional[str]


class AliasResolver:
    """Look up hostnames from an injected option store.

    ``multisite`` enables the network-wide default alias; on a single-site
    deployment only the per-site value is consulted.
    """

    def __init__(self, store: OptionStore, *, multisite: bool = False) -> None:
        self.store = store
        self.multisite = multisite

    def resolve_alias(self, site_id: int = 0) -> Optional[str]:
        raw = self.store.get_site_option(site_id, K_ONION_DOMAIN, "")
        value = raw.strip() if isinstance(raw, str) else ""
        if not value and self.multisite:
            net = self.store.get_network_option(K_ONION_DOMAIN, "")
            value = net.strip() if isinstance(net, str) else ""
        host = sanitize_onion_host(value)
        return host or None

    def _home_parts(self, site_id: int):
        home = self.store.get_site_option(site_id, K_HOME, "")
        if not isinstance(home, str) or not home.strip():
            return None
        try:
            return urlparse(home.strip())
        except ValueError:
            return None

    def resolve_clearnet_host(self, site_id: int = 0) -> Optional[str]:
        parts = self._home_parts(site_id)
        if parts is None:
            return None
        try:
            host = parts.hostname
        except ValueError:
            return None
        return sanitize_clearnet_host(host) or None

    def resolve_clearnet_scheme(self, site_id: int = 0) -> str:
        parts = self._home_parts(site_id)
        scheme = (parts.scheme or "").lower() if parts is not None else ""
        return scheme if scheme in {"http", "https"} else "https"

    def resolve_base_path(self, site_id: int = 0) -> str:
        """Path component of the site's base URL (``/`` for root installs)."""

        parts = self._home_parts(site_id)
        path = (parts.path or "") if parts is not None else ""
        return "/" + path.strip("/") + "/" if path.strip("/") else "/"

    def site_config(self, site_id: int = 0) -> SiteAliasConfig:
        return SiteAliasConfig(
            anonymous_host=self.resolve_alias(site_id),
            clearnet_host=self.resolve_clearnet_host(site_id),
        )


__all__ = ["AliasResolver", "SiteAliasConfig"]
