"""Site settings with network-default inheritance.

Each setting has a per-site value and a network-wide default. A per-site value
of ``None`` (or a missing key) means "inherit": the network default applies,
and failing that the hard default. For the alias string an empty value also
means inherit. Booleans never treat ``False`` as inherit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.keys import (
    K_CSP_CUSTOM,
    K_CSP_MODE,
    K_DISABLE_EXTERNAL_AVATARS,
    K_DISABLE_OEMBED,
    K_ENABLE_HARDENING,
    K_LOOPBACK_REROUTE,
    K_ONION_DOMAIN,
    K_SEND_ONION_LOCATION,
)
from .onionify_config import CSP_DEFAULT_MODE, CSP_MODES
from .onionify_utils import sanitize_onion_host, scrub_header_value
from .storage import OptionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettingDef:
    key: str
    kind: str
    default: Any
    inherits: bool = True


SETTING_DEFS: Dict[str, SettingDef] = {
    K_ONION_DOMAIN: SettingDef(K_ONION_DOMAIN, "string", ""),
    K_SEND_ONION_LOCATION: SettingDef(K_SEND_ONION_LOCATION, "boolean", True),
    K_ENABLE_HARDENING: SettingDef(K_ENABLE_HARDENING, "boolean", False),
    K_DISABLE_OEMBED: SettingDef(K_DISABLE_OEMBED, "boolean", True),
    K_CSP_MODE: SettingDef(K_CSP_MODE, "string", CSP_DEFAULT_MODE),
    K_CSP_CUSTOM: SettingDef(K_CSP_CUSTOM, "string", ""),
    K_LOOPBACK_REROUTE: SettingDef(K_LOOPBACK_REROUTE, "boolean", True, inherits=False),
    K_DISABLE_EXTERNAL_AVATARS: SettingDef(K_DISABLE_EXTERNAL_AVATARS, "boolean", False, inherits=False),
}


def sanitize_bool(value: Any) -> bool:
    """Normalize on/off style toggles; anything unrecognized is False."""

    if value is True or value == 1:
        return True
    if isinstance(value, str):
        return value.strip().lower() in {"on", "1", "true", "yes"}
    return False


def sanitize_tristate(value: Any) -> Optional[bool]:
    """Like :func:`sanitize_bool` but keeps ``None``/"" / "inherit" as ``None``."""

    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in {"", "inherit", "default"}:
        return None
    return sanitize_bool(value)


def sanitize_csp_mode(value: Any) -> str:
    mode = value.strip().lower() if isinstance(value, str) else ""
    return mode if mode in CSP_MODES else CSP_DEFAULT_MODE


def sanitize_csp_string(value: Any) -> str:
    """Collapse newlines to spaces so custom policy text fits on one header line."""

    if not isinstance(value, str):
        return ""
    return scrub_header_value(value)


def _sanitize(defn: SettingDef, value: Any) -> Any:
    if defn.kind == "boolean":
        return sanitize_bool(value)
    if defn.key == K_ONION_DOMAIN:
        return sanitize_onion_host(value)
    if defn.key == K_CSP_MODE:
        return sanitize_csp_mode(value)
    if defn.key == K_CSP_CUSTOM:
        return sanitize_csp_string(value)
    return value if isinstance(value, str) else ""


def _is_inherit(defn: SettingDef, value: Any) -> bool:
    if value is None:
        return True
    if defn.kind == "string":
        return isinstance(value, str) and value.strip() == ""
    return isinstance(value, str) and value.strip().lower() in {"", "inherit", "default"}


def resolve_option(store: OptionStore, site_id: int, key: str, *, multisite: bool = True) -> Any:
    """Resolve one setting: site value, then network default, then hard default."""

    defn = SETTING_DEFS[key]
    site_value = store.get_site_option(site_id, key, None)
    if not _is_inherit(defn, site_value):
        return _sanitize(defn, site_value)
    if multisite and defn.inherits:
        network_value = store.get_network_option(key, None)
        if not _is_inherit(defn, network_value):
            return _sanitize(defn, network_value)
    return defn.default


@dataclass(frozen=True)
class SiteSettings:
    onion_domain: str = ""
    send_onion_location: bool = True
    enable_hardening: bool = False
    disable_oembed: bool = True
    hardening_csp_mode: str = CSP_DEFAULT_MODE
    hardening_csp_custom: str = ""
    loopback_reroute: bool = True
    disable_external_avatars: bool = False


def resolve_site_settings(store: OptionStore, site_id: int, *, multisite: bool = True) -> SiteSettings:
    values = {key: resolve_option(store, site_id, key, multisite=multisite) for key in SETTING_DEFS}
    return SiteSettings(**values)


def store_site_option(store: OptionStore, site_id: int, key: str, value: Any) -> Any:
    """Sanitize and persist a per-site value; ``None`` clears it.

    A cleared value inherits the network default, or falls back to the hard
    default for site-only keys.

    Returns the stored value.
    """

    defn = SETTING_DEFS[key]
    if defn.kind == "boolean":
        stored: Any = sanitize_tristate(value)
    elif value is None:
        stored = ""
    else:
        stored = _sanitize(defn, value)
        if key == K_ONION_DOMAIN and value and not stored:
            logger.warning("Rejected invalid onion host for site %s: %r", site_id, value)
    store.set_site_option(site_id, key, stored)
    return stored


def store_network_option(store: OptionStore, key: str, value: Any) -> Any:
    defn = SETTING_DEFS[key]
    if defn.kind == "boolean":
        stored: Any = sanitize_tristate(value)
    elif value is None:
        stored = ""
    else:
        stored = _sanitize(defn, value)
        if key == K_ONION_DOMAIN and value and not stored:
            logger.warning("Rejected invalid network default onion host: %r", value)
    store.set_network_option(key, stored)
    return stored


__all__ = [
    "SETTING_DEFS",
    "SettingDef",
    "SiteSettings",
    "resolve_option",
    "resolve_site_settings",
    "store_site_option",
    "store_network_option",
    "sanitize_bool",
    "sanitize_tristate",
    "sanitize_csp_mode",
    "sanitize_csp_string",
]
