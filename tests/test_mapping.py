from onionify.core.keys import K_HOME, K_ONION_DOMAIN
from onionify.workflows.mapping import AliasResolver
from onionify.workflows.onionify_utils import sanitize_onion_host
from onionify.workflows.settings import store_network_option, store_site_option
from onionify.workflows.storage import MemoryOptionStore


def test_sanitized_alias_round_trips():
    store = MemoryOptionStore()
    stored = store_site_option(store, 0, K_ONION_DOMAIN, "  ABC234XYZ567DEFGHI.onion ")
    assert stored == "abc234xyz567defghi.onion"
    assert AliasResolver(store).resolve_alias(0) == "abc234xyz567defghi.onion"
    assert sanitize_onion_host(stored) == stored


def test_invalid_alias_is_stored_empty_and_resolves_none():
    store = MemoryOptionStore()
    for bad in ("example.com", "bad host.onion", "under_score.onion", ".onion", "abc.onion/path"):
        assert store_site_option(store, 0, K_ONION_DOMAIN, bad) == ""
        assert AliasResolver(store).resolve_alias(0) is None


def test_invalid_raw_value_in_store_resolves_none():
    store = MemoryOptionStore(sites={0: {K_ONION_DOMAIN: "https://abc.onion"}})
    assert AliasResolver(store).resolve_alias(0) is None


def test_network_default_only_in_multisite():
    store = MemoryOptionStore(sites={3: {K_ONION_DOMAIN: ""}})
    store_network_option(store, K_ONION_DOMAIN, "netdefault.onion")

    assert AliasResolver(store, multisite=True).resolve_alias(3) == "netdefault.onion"
    assert AliasResolver(store, multisite=True).resolve_alias(99) == "netdefault.onion"
    assert AliasResolver(store, multisite=False).resolve_alias(3) is None


def test_site_override_wins_over_network_default():
    store = MemoryOptionStore(sites={2: {K_ONION_DOMAIN: "siteonly.onion"}}, network={K_ONION_DOMAIN: "netdefault.onion"})
    assert AliasResolver(store, multisite=True).resolve_alias(2) == "siteonly.onion"


def test_clearnet_host_from_home():
    store = MemoryOptionStore(sites={
        0: {K_HOME: "https://Example.COM:8443/blog"},
        1: {K_HOME: ""},
        2: {K_HOME: "not a url"},
        3: {K_HOME: "https://exa_mple.com"},
        4: {K_HOME: "http://[::1"},
    })
    resolver = AliasResolver(store)
    assert resolver.resolve_clearnet_host(0) == "example.com"
    assert resolver.resolve_clearnet_host(1) is None
    assert resolver.resolve_clearnet_host(2) is None
    assert resolver.resolve_clearnet_host(3) is None
    assert resolver.resolve_clearnet_host(4) is None
    assert resolver.resolve_clearnet_host(42) is None


def test_clearnet_scheme_and_base_path():
    store = MemoryOptionStore(sites={0: {K_HOME: "http://example.com/blog/"}, 1: {K_HOME: "ftp://example.com"}})
    resolver = AliasResolver(store)
    assert resolver.resolve_clearnet_scheme(0) == "http"
    assert resolver.resolve_clearnet_scheme(1) == "https"
    assert resolver.resolve_clearnet_scheme(7) == "https"
    assert resolver.resolve_base_path(0) == "/blog/"
    assert resolver.resolve_base_path(1) == "/"


def test_site_config_bundle():
    store = MemoryOptionStore(sites={0: {K_HOME: "https://example.com", K_ONION_DOMAIN: "abc.onion"}})
    config = AliasResolver(store).site_config(0)
    assert config.anonymous_host == "abc.onion"
    assert config.clearnet_host == "example.com"
