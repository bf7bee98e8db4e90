"""Shared host and URL-encoding helpers used by the onionify workflow."""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import quote, unquote_to_bytes

from .onionify_config import ONION_SUFFIX

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_CONTROL_BYTES = re.compile(rb"[\x00-\x1f\x7f]")
_HOST_CHARS = re.compile(r"^[a-z0-9.\-]+$")
_ONION_HOST = re.compile(r"^[a-z0-9.\-]+" + re.escape(ONION_SUFFIX) + r"$")

# RFC 3986 fragment characters kept literal (pchar / "/" / "?")
_FRAGMENT_SAFE = "/?:@!$&'()*+,;="


def strip_controls(value: str) -> str:
    """Remove ASCII control characters (including CR/LF and DEL)."""

    return _CONTROL_CHARS.sub("", value or "")


def scrub_header_value(value: str) -> str:
    """Return a header value with CR/LF removed; newlines collapse to spaces."""

    text = (value or "").replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\n", " ")
    return text.replace("\r", "").replace("\n", "").strip()


def split_host_port(host: str) -> str:
    """Lowercase/trim a Host header value and drop any port suffix."""

    h = (host or "").strip().lower()
    if not h:
        return ""
    if h.startswith("["):
        end = h.find("]")
        return h[: end + 1] if end != -1 else h
    if h.count(":") == 1:
        h = h.split(":", 1)[0]
    return h.rstrip(".")


def is_valid_host(host: str) -> bool:
    """True when ``host`` only uses ``[a-z0-9.-]`` and is non-empty."""

    return bool(host) and bool(_HOST_CHARS.match(host))


def is_onion_host(host: str) -> bool:
    return (host or "").endswith(ONION_SUFFIX)


def sanitize_onion_host(raw: Optional[str]) -> str:
    """Validate an operator-supplied alias; return "" when it is not acceptable.

    Lowercases and trims first, so sanitizing is idempotent.
    """

    host = (raw or "").strip().lower()
    if not host:
        return ""
    if not host.endswith(ONION_SUFFIX):
        return ""
    if not _ONION_HOST.match(host):
        return ""
    return host


def sanitize_clearnet_host(raw: Optional[str]) -> str:
    host = (raw or "").strip().lower()
    if not is_valid_host(host):
        return ""
    return host


def _decode_bytes(text: str) -> bytes:
    # Raw bytes, so non-UTF-8 escapes such as %E9 survive re-encoding
    return _CONTROL_BYTES.sub(b"", unquote_to_bytes(text))


def encode_path(path: str) -> str:
    """Percent-encode each path segment, keeping ``/`` boundaries.

    Segments are decoded before encoding so already-encoded input is stable.
    """

    if not path:
        return ""
    encoded = []
    for seg in path.split("/"):
        if seg == "":
            encoded.append(seg)
            continue
        encoded.append(quote(_decode_bytes(seg), safe=""))
    return "/".join(encoded)


def encode_query(query: str) -> str:
    """Split a query string into pairs and rebuild it with RFC 3986 encoding.

    ``+`` is read as a space, as form encoding does. Pairs with an empty key
    are dropped.
    """

    if not query:
        return ""
    pairs = []
    for part in query.split("&"):
        if not part:
            continue
        key, _, value = part.partition("=")
        key_bytes = _decode_bytes(key.replace("+", " "))
        if not key_bytes:
            continue
        value_bytes = _decode_bytes(value.replace("+", " "))
        pairs.append(f"{quote(key_bytes, safe='')}={quote(value_bytes, safe='')}")
    return "&".join(pairs)


def encode_fragment(fragment: str) -> str:
    if not fragment:
        return ""
    return quote(_decode_bytes(fragment), safe=_FRAGMENT_SAFE)


def sanitize_request_uri(raw: Optional[str]) -> str:
    """Sanitize a request URI (path + query + fragment) for reuse in a URL.

    Always returns something starting with ``/``.
    """

    uri = strip_controls(raw if isinstance(raw, str) else "/")
    if not uri.startswith("/"):
        uri = "/" + uri.lstrip(" \t/")
    head, _, fragment = uri.partition("#")
    path, _, query = head.partition("?")
    rebuilt = encode_path(path) or "/"
    query = encode_query(query)
    fragment = encode_fragment(fragment)
    if query:
        rebuilt += "?" + query
    if fragment:
        rebuilt += "#" + fragment
    return rebuilt


def sanity_check() -> None:
    assert sanitize_onion_host(" ABC234xyz567.ONION ") == "abc234xyz567.onion"
    assert sanitize_onion_host("example.com") == ""
    assert sanitize_onion_host("bad_host.onion") == ""
    assert split_host_port("Example.COM:8080") == "example.com"
    assert encode_path("/a b/c") == "/a%20b/c"
    assert encode_query("x=1&y=a b") == "x=1&y=a%20b"
    assert encode_path("/caf%E9") == "/caf%E9"
    assert scrub_header_value("a\r\nb") == "a b"


sanity_check()

__all__ = [
    "strip_controls",
    "scrub_header_value",
    "split_host_port",
    "is_valid_host",
    "is_onion_host",
    "sanitize_onion_host",
    "sanitize_clearnet_host",
    "encode_path",
    "encode_query",
    "encode_fragment",
    "sanitize_request_uri",
    "sanity_check",
]
