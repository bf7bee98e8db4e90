"""Tor / .onion request detection that is safe behind CDNs and proxies.

Signals, in order (the first positive one wins):

1. the Host header ends in ``.onion``;
2. a proxy-injected Tor marker header is present;
3. the best-effort client IP either falls in a coarse IPv4 block heuristic or,
   when the policy opts in, appears on the cached exit-address list.

The result then passes through ``DetectionPolicy.override``. Any fault yields
a clearnet verdict: under-detecting never breaks clearnet delivery.
"""

from __future__ import annotations

import ipaddress
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, Mapping, Optional

from requests.structures import CaseInsensitiveDict

from .exit_list import ExitListChecker, default_exit_list_checker
from .onionify_config import (
    EXIT_LIST_HOST,
    EXIT_LIST_TIMEOUT_MAX,
    HDR_CF_CONNECTING_IP,
    HDR_FORWARDED_FOR,
    HDR_REAL_IP,
    HDR_TRUE_CLIENT_IP,
    ONION_SUFFIX,
    PRIVATE_NETWORKS,
    TOR_IPV4_FIRST_OCTETS,
    TOR_MARKER_HEADERS,
)
from .onionify_utils import split_host_port

logger = logging.getLogger(__name__)

EVIDENCE_HOST_SUFFIX = "host-suffix"
EVIDENCE_HEADER = "header-signal"
EVIDENCE_IP_HEURISTIC = "ip-heuristic"
EVIDENCE_EXIT_LIST = "ip-exit-list"

OverrideFunc = Callable[[bool, FrozenSet[str]], bool]

_PRIVATE_NETWORKS = tuple(ipaddress.ip_network(net) for net in PRIVATE_NETWORKS)


def _env_bool(name: str, default: str = "0") -> bool:
    raw = os.getenv(name, default)
    return str(raw).strip().lower() not in {"0", "false", "no", "off", ""}


def _env_float(name: str, default: float) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _normalize_headers(headers: Optional[Mapping[str, Any]]) -> CaseInsensitiveDict:
    out: CaseInsensitiveDict = CaseInsensitiveDict()
    for key, value in (headers or {}).items():
        if not isinstance(key, str):
            continue
        # CGI-style names (X_FORWARDED_FOR) and HTTP-style names are equivalent
        out[key.replace("_", "-")] = "" if value is None else str(value)
    return out


@dataclass(frozen=True)
class RequestContext:
    """Immutable snapshot of the request metadata the detector looks at."""

    host_header: str = ""
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    peer_address: str = ""
    request_uri: str = "/"

    @classmethod
    def build(
        cls,
        host_header: str = "",
        headers: Optional[Mapping[str, Any]] = None,
        peer_address: str = "",
        request_uri: str = "/",
    ) -> "RequestContext":
        return cls(
            host_header=host_header or "",
            headers=_normalize_headers(headers),
            peer_address=peer_address or "",
            request_uri=request_uri or "/",
        )

    @classmethod
    def from_environ(cls, environ: Mapping[str, Any]) -> "RequestContext":
        """Build a context from a WSGI environ."""

        headers = {}
        for key, value in environ.items():
            if isinstance(key, str) and key.startswith("HTTP_"):
                headers[key[5:]] = value
        host = environ.get("HTTP_HOST") or environ.get("SERVER_NAME") or ""
        uri = environ.get("REQUEST_URI") or environ.get("RAW_URI")
        if not uri:
            uri = (environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")) or "/"
            query = environ.get("QUERY_STRING", "")
            if query:
                uri = f"{uri}?{query}"
        return cls.build(
            host_header=str(host),
            headers=headers,
            peer_address=str(environ.get("REMOTE_ADDR") or ""),
            request_uri=str(uri),
        )

    @property
    def host(self) -> str:
        return split_host_port(self.host_header)


@dataclass(frozen=True)
class ClassificationVerdict:
    is_anonymous_network: bool
    evidence: FrozenSet[str] = frozenset()
    client_ip: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "is_anonymous_network": self.is_anonymous_network,
            "evidence": sorted(self.evidence),
            "client_ip": self.client_ip,
        }


CLEARNET = ClassificationVerdict(False)
ANONYMOUS = ClassificationVerdict(True)


@dataclass(frozen=True)
class DetectionPolicy:
    """Runtime knobs for :class:`HostClassifier`.

    ``verify_exit_list`` opts into the network-backed exit-list signal.
    ``allow_external_http`` lets operators block the outbound fetch entirely.
    ``override`` receives the verdict and evidence and returns the final verdict.
    """

    verify_exit_list: bool = False
    allow_external_http: bool = True
    exit_list_timeout: float = EXIT_LIST_TIMEOUT_MAX
    override: Optional[OverrideFunc] = None

    @classmethod
    def from_env(cls, override: Optional[OverrideFunc] = None) -> "DetectionPolicy":
        allow = True
        if _env_bool("ONIONIFY_BLOCK_EXTERNAL_HTTP", "0"):
            accessible = {h.strip().lower() for h in os.getenv("ONIONIFY_ACCESSIBLE_HOSTS", "").split(",")}
            allow = EXIT_LIST_HOST in accessible
        timeout = _env_float("ONIONIFY_EXIT_LIST_TIMEOUT", EXIT_LIST_TIMEOUT_MAX)
        return cls(
            verify_exit_list=_env_bool("ONIONIFY_VERIFY_EXIT_LIST", "0"),
            allow_external_http=allow,
            exit_list_timeout=max(1.0, min(timeout, EXIT_LIST_TIMEOUT_MAX)),
            override=override,
        )


def parse_ip(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def is_private_ip(ip: str) -> bool:
    """Private/loopback/link-local check; unparseable input counts as private."""

    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return True
    if getattr(addr, "ipv4_mapped", None) is not None:
        addr = addr.ipv4_mapped
    return any(addr in net for net in _PRIVATE_NETWORKS if net.version == addr.version)


def first_public_from_forwarded(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value:
        return None
    for part in value.split(","):
        ip = parse_ip(part)
        if ip and not is_private_ip(ip):
            return ip
    return None


def extract_client_ip(ctx: RequestContext) -> Optional[str]:
    """Best-effort client IP: the first valid candidate wins, even if private."""

    headers = ctx.headers
    candidates = (
        headers.get(HDR_CF_CONNECTING_IP),
        headers.get(HDR_TRUE_CLIENT_IP),
        first_public_from_forwarded(headers.get(HDR_FORWARDED_FOR)),
        headers.get(HDR_REAL_IP),
        ctx.peer_address,
    )
    for candidate in candidates:
        ip = parse_ip(candidate)
        if ip:
            return ip
    return None


def is_likely_tor_ip(ip: str) -> bool:
    """Coarse first-octet heuristic. Low confidence; IPv4 only."""

    if ":" in ip:
        return False
    head = ip.split(".", 1)[0]
    try:
        return int(head) in TOR_IPV4_FIRST_OCTETS
    except ValueError:
        return False


def has_marker_header(ctx: RequestContext) -> bool:
    return any(name in ctx.headers for name in TOR_MARKER_HEADERS)


class HostClassifier:
    """Classify requests as anonymous-network or clearnet."""

    def __init__(
        self,
        exit_list: Optional[ExitListChecker] = None,
        policy: Optional[DetectionPolicy] = None,
    ) -> None:
        self.policy = policy or DetectionPolicy()
        # Built once so concurrent first requests share one single-flight refresh
        self.exit_list = exit_list if exit_list is not None else default_exit_list_checker(self.policy.exit_list_timeout)

    def classify(self, ctx: RequestContext, policy: Optional[DetectionPolicy] = None) -> ClassificationVerdict:
        policy = policy or self.policy
        try:
            return self._classify(ctx, policy)
        except Exception as exc:
            logger.debug("Classification failed, treating request as clearnet: %s", exc)
            return CLEARNET

    def _exit_list_hit(self, ip: str, policy: DetectionPolicy) -> bool:
        if not policy.verify_exit_list or not policy.allow_external_http:
            return False
        try:
            return self.exit_list.is_exit_node(ip)
        except Exception as exc:
            logger.debug("Exit list signal skipped for %s: %s", ip, exc)
            return False

    def _classify(self, ctx: RequestContext, policy: DetectionPolicy) -> ClassificationVerdict:
        evidence = set()
        host = ctx.host
        if host and host.endswith(ONION_SUFFIX):
            evidence.add(EVIDENCE_HOST_SUFFIX)
        elif has_marker_header(ctx):
            evidence.add(EVIDENCE_HEADER)

        client_ip = extract_client_ip(ctx)
        if not evidence and client_ip and not is_private_ip(client_ip):
            if is_likely_tor_ip(client_ip):
                evidence.add(EVIDENCE_IP_HEURISTIC)
            elif self._exit_list_hit(client_ip, policy):
                evidence.add(EVIDENCE_EXIT_LIST)

        frozen = frozenset(evidence)
        is_tor = bool(frozen)
        if policy.override is not None:
            is_tor = bool(policy.override(is_tor, frozen))
        return ClassificationVerdict(is_anonymous_network=is_tor, evidence=frozen, client_ip=client_ip)

    def is_onion_request(self, ctx: RequestContext) -> bool:
        return self.classify(ctx).is_anonymous_network

    def is_clearnet_request(self, ctx: RequestContext) -> bool:
        return not self.is_onion_request(ctx)


__all__ = [
    "RequestContext",
    "ClassificationVerdict",
    "DetectionPolicy",
    "HostClassifier",
    "CLEARNET",
    "ANONYMOUS",
    "EVIDENCE_HOST_SUFFIX",
    "EVIDENCE_HEADER",
    "EVIDENCE_IP_HEURISTIC",
    "EVIDENCE_EXIT_LIST",
    "extract_client_ip",
    "first_public_from_forwarded",
    "is_private_ip",
    "is_likely_tor_ip",
    "parse_ip",
]
