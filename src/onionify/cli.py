from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv

from .core.keys import (
    K_CSP_CUSTOM,
    K_CSP_MODE,
    K_DISABLE_EXTERNAL_AVATARS,
    K_DISABLE_OEMBED,
    K_ENABLE_HARDENING,
    K_HOME,
    K_LOOPBACK_REROUTE,
    K_ONION_DOMAIN,
    K_SEND_ONION_LOCATION,
)
from .workflows.detector import ANONYMOUS, DetectionPolicy, HostClassifier, RequestContext
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.mapping import AliasResolver
from .workflows.onionify_config import (
    CSP_MODES,
    DEFAULT_STORE_PATH,
    ENV_STORE_PATH,
)
from .workflows.onionify_utils import sanitize_onion_host
from .workflows.rewrite import rewrite_absolute_url
from .workflows.settings import sanitize_bool, store_network_option, store_site_option
from .workflows.storage import JsonOptionStore

load_dotenv()

app = typer.Typer(add_help_option=False, no_args_is_help=False)


def _minimal_help() -> str:
    return """Onionify (alias management CLI)

Usage:
  onionify list [--json]
  onionify map <site_id> <host.onion>
  onionify set-default [<host.onion>]
  onionify set [--site N] [--hardening on|off] [--oembed on|off] [--csp MODE] [--onion-location on|off]
  onionify classify [--host H] [--header 'Name: value'] [--peer IP] [--json]
  onionify rewrite <url> [--site N]
  onionify doctor

Discoverability:
  --help-full     Expanded help + env vars.
  --find <query>  Search commands, flags, env vars.
  --doctor        Run configuration diagnostics and exit.
"""


def _help_full() -> str:
    return """Onionify CLI

Commands:
  list           Show clearnet and onion hosts per site.
  map            Set a site's onion alias (site 0 on single-site installs).
  set-default    Set or clear the network-wide default alias (multisite).
  set            Toggle hardening, oEmbed, CSP mode and Onion-Location.
  classify       Classify a synthetic request and print the verdict.
  rewrite        Show how a URL is rewritten for onion visitors.
  doctor         Print configuration diagnostics.

Important env vars:
  ONIONIFY_STORE_PATH           JSON option store (default: onionify.json).
  ONIONIFY_CACHE_PATH           JSON cache for the exit list.
  ONIONIFY_MULTISITE            Enable network-default inheritance.
  ONIONIFY_VERIFY_EXIT_LIST     Consult the Tor exit list (opt-in).
  ONIONIFY_EXIT_LIST_TIMEOUT    Exit-list fetch timeout, 1-5 seconds.
  ONIONIFY_BLOCK_EXTERNAL_HTTP  Block outbound HTTP unless allowed below.
  ONIONIFY_ACCESSIBLE_HOSTS     Hosts allowed while external HTTP is blocked.

Exit codes:
  0 ok, 2 invalid input or failed doctor checks, 3 unexpected failure.
"""


_FIND_INDEX = [
    ("command", "list", "Show clearnet and onion hosts per site."),
    ("command", "map", "Set a site's onion alias."),
    ("command", "set-default", "Set or clear the network default alias."),
    ("command", "set", "Toggle hardening, oEmbed, CSP mode and Onion-Location."),
    ("command", "classify", "Classify a synthetic request."),
    ("command", "rewrite", "Rewrite a URL for onion visitors."),
    ("command", "doctor", "Print configuration diagnostics."),
    ("flag", "--site", "Site id (0 on single-site installs)."),
    ("flag", "--json", "Print JSON to stdout."),
    ("flag", "--help-full", "Expanded help and env vars."),
    ("flag", "--find", "Search commands, flags, env vars."),
    ("flag", "--doctor", "Run configuration diagnostics and exit."),
    ("env", "ONIONIFY_STORE_PATH", "JSON option store path."),
    ("env", "ONIONIFY_CACHE_PATH", "Exit-list cache path."),
    ("env", "ONIONIFY_MULTISITE", "Enable network-default inheritance."),
    ("env", "ONIONIFY_VERIFY_EXIT_LIST", "Consult the Tor exit list."),
    ("env", "ONIONIFY_BLOCK_EXTERNAL_HTTP", "Block outbound HTTP."),
    ("env", "ONIONIFY_ACCESSIBLE_HOSTS", "Allowed hosts while blocked."),
]


def _run_find(query: str) -> str:
    needle = (query or "").strip().lower()
    if not needle:
        return ""
    lines = []
    for category, name, desc in _FIND_INDEX:
        haystack = f"{category} {name} {desc}".lower()
        if needle in haystack:
            lines.append(f"{category} {name} - {desc}")
    return "\n".join(lines)


def _multisite() -> bool:
    return str(os.getenv("ONIONIFY_MULTISITE", "0")).strip().lower() not in {"0", "false", "no", "off", ""}


def _store_path() -> Path:
    return Path(os.getenv(ENV_STORE_PATH) or DEFAULT_STORE_PATH)


def _resolver() -> AliasResolver:
    return AliasResolver(JsonOptionStore(_store_path()), multisite=_multisite())


def _doctor_exit() -> None:
    report = build_doctor_report(_resolver(), store_path=_store_path())
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


def _parse_toggle(value: Optional[str], name: str) -> Optional[bool]:
    if value is None:
        return None
    token = value.strip().lower()
    if token not in {"on", "off", "1", "0", "true", "false", "yes", "no"}:
        raise typer.BadParameter(f"{name} expects on|off, got {value!r}")
    return sanitize_bool(token)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars."),
    doctor: bool = typer.Option(False, "--doctor", is_eager=True, help="Run configuration diagnostics and exit."),
) -> None:
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=0)
    if doctor:
        _doctor_exit()
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Print configuration diagnostics."""
    _doctor_exit()


@app.command("list", add_help_option=True)
def list_sites(json_out: bool = typer.Option(False, "--json", help="Print JSON to stdout.")) -> None:
    """Show clearnet and onion hosts per site."""
    resolver = _resolver()
    site_ids = resolver.store.site_ids() or [0]
    items = []
    for site_id in site_ids:
        items.append({
            "site_id": site_id,
            "home": resolver.store.get_site_option(site_id, K_HOME, "") or "",
            "onion": resolver.resolve_alias(site_id) or "",
        })
    if json_out:
        sys.stdout.write(json.dumps(items, ensure_ascii=False) + "\n")
        return
    if resolver.multisite:
        default = resolver.store.get_network_option(K_ONION_DOMAIN, "") or "(not set)"
        typer.echo(f"Network default onion: {default}")
    for item in items:
        typer.echo(f"{item['site_id']}\t{item['home'] or '(no home)'}\t{item['onion'] or '(not set)'}")


@app.command("map", add_help_option=True)
def map_site(
    site_id: int = typer.Argument(..., help="Site id (use 0 for single-site)."),
    host: str = typer.Argument(..., help="Onion host, e.g. exampleonionaddress.onion"),
) -> None:
    """Map a site to an onion host."""
    clean = sanitize_onion_host(host)
    if not clean:
        typer.echo("error: invalid onion host. Expected something like exampleonionaddress.onion", err=True)
        raise typer.Exit(code=2)
    if site_id < 0:
        typer.echo(f"error: invalid site id: {site_id}", err=True)
        raise typer.Exit(code=2)
    resolver = _resolver()
    if site_id != 0 and not resolver.multisite:
        typer.echo("error: multisite not enabled. Use site_id=0 for single-site.", err=True)
        raise typer.Exit(code=2)
    try:
        store_site_option(resolver.store, site_id, K_ONION_DOMAIN, clean)
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    typer.echo(f"Mapped site {site_id} to onion host: {clean}")


@app.command("set-default", add_help_option=True)
def set_default(host: Optional[str] = typer.Argument(None, help="Network default onion host; omit to clear.")) -> None:
    """Set or clear the network-wide default onion host."""
    clean = ""
    if host:
        clean = sanitize_onion_host(host)
        if not clean:
            typer.echo("error: invalid onion host. Expected something like exampleonionaddress.onion", err=True)
            raise typer.Exit(code=2)
    resolver = _resolver()
    if not resolver.multisite:
        typer.echo("warning: ONIONIFY_MULTISITE is off; the network default is ignored.", err=True)
    try:
        store_network_option(resolver.store, K_ONION_DOMAIN, clean)
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    typer.echo(f"Network default onion host: {clean or '(cleared)'}")


@app.command("set", add_help_option=True)
def set_options(
    site_id: int = typer.Option(0, "--site", help="Site id."),
    hardening: Optional[str] = typer.Option(None, "--hardening", help="on|off"),
    oembed: Optional[str] = typer.Option(None, "--oembed", help="on|off (off disables embeds)"),
    csp: Optional[str] = typer.Option(None, "--csp", help="strict|relaxed|off|custom"),
    csp_custom: Optional[str] = typer.Option(None, "--csp-custom", help="Policy text for --csp custom."),
    onion_location: Optional[str] = typer.Option(None, "--onion-location", help="on|off"),
    loopback: Optional[str] = typer.Option(None, "--loopback", help="on|off"),
    avatars: Optional[str] = typer.Option(None, "--avatars", help="on|off (off replaces external avatars)"),
) -> None:
    """Quick-toggle hardening settings."""
    if csp is not None and csp.strip().lower() not in CSP_MODES:
        raise typer.BadParameter(f"--csp must be one of {', '.join(CSP_MODES)}")
    updates = []
    toggles = (
        (K_ENABLE_HARDENING, _parse_toggle(hardening, "--hardening"), False),
        (K_DISABLE_OEMBED, _parse_toggle(oembed, "--oembed"), True),
        (K_SEND_ONION_LOCATION, _parse_toggle(onion_location, "--onion-location"), False),
        (K_LOOPBACK_REROUTE, _parse_toggle(loopback, "--loopback"), False),
        (K_DISABLE_EXTERNAL_AVATARS, _parse_toggle(avatars, "--avatars"), True),
    )
    resolver = _resolver()
    try:
        for key, value, inverted in toggles:
            if value is None:
                continue
            stored = store_site_option(resolver.store, site_id, key, (not value) if inverted else value)
            updates.append(f"{key}={stored}")
        if csp is not None:
            updates.append(f"{K_CSP_MODE}={store_site_option(resolver.store, site_id, K_CSP_MODE, csp)}")
        if csp_custom is not None:
            store_site_option(resolver.store, site_id, K_CSP_CUSTOM, csp_custom)
            updates.append(f"{K_CSP_CUSTOM}=<{len(csp_custom)} chars>")
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    typer.echo("Settings updated: " + (", ".join(updates) if updates else "(nothing)"))


def _parse_headers(values: List[str]) -> dict:
    headers = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Header must look like 'Name: value', got {raw!r}")
        headers[name.strip()] = value.strip()
    return headers


@app.command("classify", add_help_option=True)
def classify_cmd(
    host: str = typer.Option("", "--host", help="Host header value."),
    header: List[str] = typer.Option([], "--header", help="Extra header 'Name: value' (repeatable)."),
    peer: str = typer.Option("", "--peer", help="Peer (socket) address."),
    verify_exit_list: bool = typer.Option(False, "--verify-exit-list", help="Consult the Tor exit list."),
    json_out: bool = typer.Option(False, "--json", help="Print JSON to stdout."),
) -> None:
    """Classify a synthetic request and print the verdict."""
    headers = _parse_headers(header)
    policy = DetectionPolicy.from_env()
    if verify_exit_list:
        policy = DetectionPolicy(
            verify_exit_list=True,
            allow_external_http=policy.allow_external_http,
            exit_list_timeout=policy.exit_list_timeout,
        )
    classifier = HostClassifier(policy=policy)
    verdict = classifier.classify(RequestContext.build(host_header=host, headers=headers, peer_address=peer))
    if json_out:
        sys.stdout.write(json.dumps(verdict.to_dict(), ensure_ascii=False) + "\n")
        return
    label = "onion" if verdict.is_anonymous_network else "clearnet"
    typer.echo(f"{label} (evidence: {', '.join(sorted(verdict.evidence)) or 'none'}; client ip: {verdict.client_ip or '-'})")


@app.command("rewrite", add_help_option=True)
def rewrite_cmd(
    url: str = typer.Argument(..., help="Absolute URL to rewrite."),
    site_id: int = typer.Option(0, "--site", help="Site id."),
) -> None:
    """Show how a URL is rewritten for onion visitors of a site."""
    alias = _resolver().resolve_alias(site_id)
    if not alias:
        typer.echo(f"error: site {site_id} has no valid onion alias", err=True)
        raise typer.Exit(code=2)
    typer.echo(rewrite_absolute_url(url, ANONYMOUS, alias))
