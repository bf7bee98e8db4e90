"""Onionify defaults (suffix, headers, endpoints, policies, paths).

Centralizes static defaults so the detector, rewriter and header builder have
no embedded magic strings. Callers can inject their own DetectionPolicy or
settings store to override the runtime knobs.
"""

from __future__ import annotations

# Reserved hidden-service suffix
ONION_SUFFIX = ".onion"

# Hidden services are not expected to terminate TLS
ONION_SCHEME = "http"

# Proxy-injected anonymity markers (presence alone is a signal)
TOR_MARKER_HEADERS = (
    "X-Tor-Exit-Node",
    "X-Tor2web",
    "X-Tor-User",
    "X-Tor-Origin",
)

# Client IP provider headers, in priority order
HDR_CF_CONNECTING_IP = "CF-Connecting-IP"  # Cloudflare
HDR_TRUE_CLIENT_IP = "True-Client-IP"  # Akamai
HDR_FORWARDED_FOR = "X-Forwarded-For"
HDR_REAL_IP = "X-Real-IP"

# Coarse first-octet heuristic for exit blocks (low confidence, IPv4 only)
TOR_IPV4_FIRST_OCTETS = frozenset({
    91, 94, 95, 104, 109, 130, 142, 144, 145, 151, 152, 153, 171, 176, 178,
    179, 185, 188, 193, 194, 195, 198, 204, 207, 208, 212, 213, 217,
})

# Private, loopback and link-local networks skipped by the IP signals
PRIVATE_NETWORKS = (
    "10.0.0.0/8",
    "127.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "169.254.0.0/16",
    "::1/128",
    "fc00::/7",
    "fe80::/10",
)

# Exit list advisory
EXIT_LIST_URL = "https://check.torproject.org/exit-addresses"
EXIT_LIST_HOST = "check.torproject.org"
EXIT_LIST_TTL_SECONDS = 24 * 60 * 60
EXIT_LIST_TIMEOUT_MAX = 5.0
EXIT_LIST_FAILURE_COOLDOWN_SECONDS = 300
EXIT_LIST_MARKER = "ExitAddress "
EXIT_LIST_MAX_BYTES = 8 * 1024 * 1024
USER_AGENT = "Onionify/1.2 (+https://github.com/onionify/onionify)"

# Response headers
HDR_ONION_LOCATION = "Onion-Location"
HDR_LOOPBACK_GUARD = "X-Onionify-Loopback"
VARY_VALUE = "Accept-Encoding, Cookie, Host"
PERMISSIONS_POLICY = "geolocation=(), microphone=(), camera=(), interest-cohort=(), browsing-topics=()"
ISOLATION_HEADERS = (
    ("Cross-Origin-Embedder-Policy", "same-origin"),
    ("Cross-Origin-Resource-Policy", "same-origin"),
    ("X-Frame-Options", "SAMEORIGIN"),
)

CSP_MODES = ("strict", "relaxed", "off", "custom")
CSP_DEFAULT_MODE = "strict"
CSP_POLICIES = {
    # Only self + data: images; inline styles allowed for themes
    "strict": (
        "default-src 'self'; img-src 'self' data:; media-src 'self'; font-src 'self' data:; "
        "style-src 'self' 'unsafe-inline'; script-src 'self'; frame-ancestors 'self'; "
        "base-uri 'self'; form-action 'self'"
    ),
    # Inline scripts too, for legacy themes/plugins
    "relaxed": (
        "default-src 'self'; img-src 'self' data:; media-src 'self'; font-src 'self' data:; "
        "style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'; frame-ancestors 'self'; "
        "base-uri 'self'; form-action 'self'"
    ),
}

# Internal endpoints that must never be canonicalized away from the alias
LOGIN_PATH = "wp-login.php"
CRON_PATH = "wp-cron.php"
XMLRPC_PATH = "xmlrpc.php"
ADMIN_DIR = "wp-admin"
AJAX_PATH = "admin-ajax.php"
REST_PREFIX = "wp-json"

# Transparent 1x1 GIF served instead of external avatars
AVATAR_PLACEHOLDER = "data:image/gif;base64,R0lGODlhAQABAIAAAAAAAP///ywAAAAAAQABAAACAUwAOw=="
RESOURCE_HINTS_STRIPPED = ("dns-prefetch", "preconnect")

# Paths / env
ENV_STORE_PATH = "ONIONIFY_STORE_PATH"
ENV_CACHE_PATH = "ONIONIFY_CACHE_PATH"
DEFAULT_STORE_PATH = "onionify.json"
DEFAULT_CACHE_PATH = "run/onionify_cache.json"
