"""Shared option keys to avoid magic strings across Onionify modules."""

from __future__ import annotations

# Per-site option keys (network defaults use the same key under the network scope)
K_ONION_DOMAIN = "onion_domain"
K_SEND_ONION_LOCATION = "send_onion_location"
K_ENABLE_HARDENING = "enable_hardening"
K_DISABLE_OEMBED = "disable_oembed"
K_CSP_MODE = "hardening_csp_mode"
K_CSP_CUSTOM = "hardening_csp_custom"
K_LOOPBACK_REROUTE = "loopback_reroute"
K_DISABLE_EXTERNAL_AVATARS = "disable_external_avatars"

# Canonical base URL of a site (clearnet)
K_HOME = "home"

# Cache keys
K_EXIT_LIST_BLOB = "onion_exit_list_blob"

# WSGI environ keys published by the middleware
K_ENV_VERDICT = "onionify.verdict"
K_ENV_REWRITER = "onionify.rewriter"
