"""Onion-Location advertisement and onion-only security headers."""

from __future__ import annotations

from typing import List, Optional, Tuple

from .detector import ClassificationVerdict
from .onionify_config import (
    CSP_POLICIES,
    HDR_ONION_LOCATION,
    ISOLATION_HEADERS,
    ONION_SCHEME,
    PERMISSIONS_POLICY,
    VARY_VALUE,
)
from .onionify_utils import is_valid_host, sanitize_request_uri, scrub_header_value
from .settings import SiteSettings, sanitize_csp_mode, sanitize_csp_string

Header = Tuple[str, str]


def content_security_policy(mode: str, custom: str = "") -> str:
    """CSP text for a named mode; "" means do not send the header."""

    mode = sanitize_csp_mode(mode)
    if mode == "off":
        return ""
    if mode == "custom":
        return sanitize_csp_string(custom)
    return CSP_POLICIES.get(mode, "")


def onion_location(alias: Optional[str], request_uri: Optional[str]) -> Optional[str]:
    if not alias or not is_valid_host(alias):
        return None
    return f"{ONION_SCHEME}://{alias}{sanitize_request_uri(request_uri)}"


class ResponseAdvertiser:
    """Decide which response headers a request gets.

    Clearnet visitors may be pointed at the alias with ``Onion-Location``;
    onion visitors get isolation, CSP and permissions headers when hardening
    is enabled. ``Vary`` is always added so caches keep the variants apart.
    """

    def __init__(self, settings: SiteSettings) -> None:
        self.settings = settings

    def headers_for(
        self,
        verdict: ClassificationVerdict,
        alias: Optional[str],
        request_uri: Optional[str] = "/",
    ) -> List[Header]:
        headers: List[Header] = []
        if not verdict.is_anonymous_network and self.settings.send_onion_location:
            location = onion_location(alias, request_uri)
            if location:
                headers.append((HDR_ONION_LOCATION, location))

        if verdict.is_anonymous_network and self.settings.enable_hardening:
            headers.extend(ISOLATION_HEADERS)
            csp = content_security_policy(
                self.settings.hardening_csp_mode,
                self.settings.hardening_csp_custom,
            )
            if csp:
                headers.append(("Content-Security-Policy", csp))
            headers.append(("Permissions-Policy", PERMISSIONS_POLICY))

        headers.append(("Vary", VARY_VALUE))
        return [(name, scrub_header_value(value)) for name, value in headers]


def merge_headers(existing: List[Header], extra: List[Header]) -> List[Header]:
    """Add ``extra`` to a WSGI header list; Vary values are appended, never replaced.

    Other headers already set by the application win over ours.
    """

    merged = list(existing)
    present = {name.lower() for name, _ in merged}
    for name, value in extra:
        lower = name.lower()
        if lower == "vary":
            merged.append((name, value))
            continue
        if lower in present:
            continue
        merged.append((name, value))
        present.add(lower)
    return merged


__all__ = [
    "ResponseAdvertiser",
    "content_security_policy",
    "onion_location",
    "merge_headers",
]
