from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.keys import K_HOME, K_ONION_DOMAIN
from .detector import DetectionPolicy
from .mapping import AliasResolver
from .onionify_config import DEFAULT_CACHE_PATH, DEFAULT_STORE_PATH, ENV_CACHE_PATH, ENV_STORE_PATH
from .settings import resolve_site_settings


def _check_writable(path: Path) -> bool:
    try:
        if path.exists():
            return os.access(path, os.W_OK)
        parent = path.parent
        if not parent.exists():
            return False
        return os.access(parent, os.W_OK)
    except Exception:
        return False


def build_doctor_report(
    resolver: AliasResolver,
    *,
    site_id: int = 0,
    store_path: Optional[Path] = None,
    cache_path: Optional[Path] = None,
    policy: Optional[DetectionPolicy] = None,
) -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "site_id": site_id,
        "ok": True,
        "checks": [],
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
        value: Optional[str] = None,
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        if value is not None:
            entry["value"] = value
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    store = Path(store_path or os.getenv(ENV_STORE_PATH) or DEFAULT_STORE_PATH)
    add_check(
        ENV_STORE_PATH,
        _check_writable(store),
        detail=str(store),
        remedy=f"Create the directory or set {ENV_STORE_PATH} to a writable JSON file.",
        level="warn",
    )

    raw_alias = resolver.store.get_site_option(site_id, K_ONION_DOMAIN, "")
    alias = resolver.resolve_alias(site_id)
    if alias:
        add_check("onion_domain", True, detail="Onion alias configured", level="info", value=alias)
    elif isinstance(raw_alias, str) and raw_alias.strip():
        add_check(
            "onion_domain",
            False,
            detail=f"Configured alias is invalid: {raw_alias!r}",
            remedy="Use `onionify map <site_id> <host>.onion` with a lowercase [a-z0-9.-] host.",
            level="warn",
        )
    else:
        add_check(
            "onion_domain",
            False,
            detail="No onion alias; requests will not be rewritten",
            remedy="Use `onionify map <site_id> <host>.onion` or `onionify set-default <host>.onion`.",
            level="info",
        )

    clear = resolver.resolve_clearnet_host(site_id)
    add_check(
        "home",
        bool(clear),
        detail=f"Clearnet host {clear}" if clear else "Site base URL missing or unparseable",
        remedy=f"Set the site's '{K_HOME}' option to its canonical https:// URL.",
        level="warn",
        value=clear,
    )

    settings = resolve_site_settings(resolver.store, site_id, multisite=resolver.multisite)
    add_check(
        "hardening",
        settings.enable_hardening,
        detail=f"CSP mode {settings.hardening_csp_mode}" if settings.enable_hardening else "Hardening headers disabled",
        level="info",
    )

    policy = policy or DetectionPolicy.from_env()
    if policy.verify_exit_list:
        add_check(
            "ONIONIFY_VERIFY_EXIT_LIST",
            policy.allow_external_http,
            detail="Exit-list signal enabled" if policy.allow_external_http else "Exit-list signal blocked by external HTTP policy",
            remedy="Add check.torproject.org to ONIONIFY_ACCESSIBLE_HOSTS.",
            level="warn",
        )
        cache = Path(cache_path or os.getenv(ENV_CACHE_PATH) or DEFAULT_CACHE_PATH)
        add_check(
            ENV_CACHE_PATH,
            _check_writable(cache),
            detail=str(cache),
            remedy=f"Create the cache directory or set {ENV_CACHE_PATH} to a writable location.",
            level="warn",
        )
    else:
        add_check("ONIONIFY_VERIFY_EXIT_LIST", False, detail="Exit-list signal disabled (heuristics only)", level="info")

    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("Onionify doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append(f"Site: {report.get('site_id')}")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        detail = check.get("detail")
        value = check.get("value")
        label = f"{name}: {status}"
        if value:
            label = f"{label} ({value})"
        lines.append(f"- [{level}] {label}")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy:
            lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"
