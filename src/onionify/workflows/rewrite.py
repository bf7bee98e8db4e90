"""Rewrite URLs to the .onion alias and veto cross-host canonical redirects.

Everything here is a pure function of (verdict, alias, input). Malformed input
comes back unchanged; nothing raises for data-shape reasons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import SplitResult, urlsplit, urlunsplit

from .detector import ClassificationVerdict
from .onionify_config import (
    ADMIN_DIR,
    AJAX_PATH,
    CRON_PATH,
    LOGIN_PATH,
    ONION_SCHEME,
    REST_PREFIX,
    XMLRPC_PATH,
)
from .onionify_utils import (
    encode_fragment,
    encode_path,
    encode_query,
    is_onion_host,
    is_valid_host,
)

logger = logging.getLogger(__name__)

_REWRITABLE_SCHEMES = {"http", "https", ""}


@dataclass(frozen=True)
class InternalPaths:
    """Sensitive endpoints, as lowercase URL paths (no scheme/host)."""

    exact: Tuple[str, ...]
    prefixes: Tuple[str, ...]

    def matches(self, path: str) -> bool:
        p = (path or "").lower()
        if not p:
            return False
        if not p.startswith("/"):
            p = "/" + p
        for candidate in self.exact:
            if p.rstrip("/") == candidate.rstrip("/"):
                return True
        for prefix in self.prefixes:
            if p.startswith(prefix) or p == prefix.rstrip("/"):
                return True
        return False


def build_internal_paths(base_path: str = "/", rest_prefix: str = REST_PREFIX) -> InternalPaths:
    """Internal endpoints for a site installed under ``base_path``."""

    base = "/" + (base_path or "").strip("/").lower()
    base = base.rstrip("/") + "/"
    rest = (rest_prefix or REST_PREFIX).strip("/").lower() or REST_PREFIX
    admin_root = f"{base}{ADMIN_DIR}/"
    exact = (
        f"{base}{LOGIN_PATH}",
        f"{base}{CRON_PATH}",
        f"{base}{XMLRPC_PATH}",
        f"{admin_root}{AJAX_PATH}",
    )
    return InternalPaths(exact=exact, prefixes=(admin_root, f"{base}{rest}/"))


DEFAULT_INTERNAL_PATHS = build_internal_paths()


def _split(url: str) -> Optional[SplitResult]:
    try:
        return urlsplit((url or "").strip())
    except ValueError:
        return None


def _hostname(parts: SplitResult) -> str:
    try:
        return (parts.hostname or "").lower()
    except ValueError:
        return ""


def rebuild_url(scheme: str, host: str, path: str, query: str, fragment: str, port: Optional[int] = None) -> str:
    """Assemble a URL from already-split parts, re-encoding path/query/fragment.

    Returns "" when the host does not validate.
    """

    host = (host or "").strip().lower()
    if not is_valid_host(host):
        return ""
    netloc = host
    if port is not None and 0 < int(port) < 65536:
        netloc = f"{host}:{int(port)}"
    return urlunsplit((scheme, netloc, encode_path(path), encode_query(query), encode_fragment(fragment)))


def rewrite_absolute_url(url: str, verdict: Optional[ClassificationVerdict], alias: Optional[str]) -> str:
    """Point ``url`` at the alias over plain http when the verdict is anonymous."""

    if verdict is None or not verdict.is_anonymous_network or not alias:
        return url
    parts = _split(url)
    if parts is None or not parts.netloc:
        return url
    if parts.scheme.lower() not in _REWRITABLE_SCHEMES or not _hostname(parts):
        return url
    # Port and userinfo are dropped by construction: only the alias is used as netloc
    rebuilt = rebuild_url(ONION_SCHEME, alias, parts.path, parts.query, parts.fragment)
    if not rebuilt:
        logger.debug("Alias %r failed host validation; leaving URL unchanged", alias)
        return url
    return rebuilt


def should_suppress_redirect(
    target_url: Optional[str],
    requested_url: Optional[str],
    verdict: Optional[ClassificationVerdict],
    alias: Optional[str] = None,
    internal_paths: InternalPaths = DEFAULT_INTERNAL_PATHS,
) -> bool:
    """True when a canonical redirect would strand an onion visitor.

    Without a known alias, any non-.onion target counts as leaving the alias.
    """

    if verdict is None or not verdict.is_anonymous_network:
        return False
    target = _split(target_url or "")
    target_host = _hostname(target) if target is not None else ""
    if target_host:
        if alias and target_host != alias.lower():
            return True
        if not alias and not is_onion_host(target_host):
            return True
    requested = _split(requested_url or "")
    if requested is not None and internal_paths.matches(requested.path):
        return True
    return False


def should_force_insecure_scheme(verdict: Optional[ClassificationVerdict]) -> bool:
    return bool(verdict is not None and verdict.is_anonymous_network)


def filter_redirect(
    target_url: Optional[str],
    requested_url: Optional[str],
    verdict: Optional[ClassificationVerdict],
    alias: Optional[str] = None,
    internal_paths: InternalPaths = DEFAULT_INTERNAL_PATHS,
) -> Optional[str]:
    """Return the redirect target, or ``None`` when it must be suppressed."""

    if should_suppress_redirect(target_url, requested_url, verdict, alias, internal_paths):
        return None
    return target_url


def home_url_override(verdict: Optional[ClassificationVerdict], alias: Optional[str]) -> Optional[str]:
    """Replacement for the site's base URL option, or ``None`` to keep it."""

    if verdict is None or not verdict.is_anonymous_network or not alias:
        return None
    if not is_valid_host(alias):
        return None
    return f"{ONION_SCHEME}://{alias}"


def is_https(verdict: Optional[ClassificationVerdict], is_https_flag: bool) -> bool:
    """Inside Tor report the connection as plain http to avoid mixed-content enforcement."""

    if should_force_insecure_scheme(verdict):
        return False
    return is_https_flag


@dataclass(frozen=True)
class RequestRewriter:
    """One request's verdict and alias, bound for repeated call sites."""

    verdict: ClassificationVerdict
    alias: Optional[str] = None
    internal_paths: InternalPaths = DEFAULT_INTERNAL_PATHS

    @property
    def active(self) -> bool:
        return self.verdict.is_anonymous_network and bool(self.alias)

    def url(self, url: str) -> str:
        return rewrite_absolute_url(url, self.verdict, self.alias)

    def redirect(self, target_url: Optional[str], requested_url: Optional[str]) -> Optional[str]:
        return filter_redirect(target_url, requested_url, self.verdict, self.alias, self.internal_paths)

    def home_url(self, configured: str) -> str:
        return home_url_override(self.verdict, self.alias) or configured

    def is_https(self, is_https_flag: bool) -> bool:
        return is_https(self.verdict, is_https_flag)


__all__ = [
    "InternalPaths",
    "RequestRewriter",
    "DEFAULT_INTERNAL_PATHS",
    "build_internal_paths",
    "rebuild_url",
    "rewrite_absolute_url",
    "should_suppress_redirect",
    "should_force_insecure_scheme",
    "filter_redirect",
    "home_url_override",
    "is_https",
]
