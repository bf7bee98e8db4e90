from onionify.core.keys import K_HOME, K_ONION_DOMAIN
from onionify.workflows.detector import DetectionPolicy
from onionify.workflows.doctor import build_doctor_report, format_doctor_report
from onionify.workflows.mapping import AliasResolver
from onionify.workflows.storage import MemoryOptionStore


def _checks(report):
    return {check["name"]: check for check in report["checks"]}


def test_healthy_site_reports_ok(tmp_path):
    store = MemoryOptionStore(sites={0: {K_ONION_DOMAIN: "abc.onion", K_HOME: "https://example.com"}})
    report = build_doctor_report(
        AliasResolver(store),
        store_path=tmp_path / "onionify.json",
        policy=DetectionPolicy(),
    )
    assert report["ok"] is True
    checks = _checks(report)
    assert checks["onion_domain"]["value"] == "abc.onion"
    assert checks["home"]["value"] == "example.com"
    assert checks["ONIONIFY_VERIFY_EXIT_LIST"]["level"] == "info"


def test_invalid_alias_and_missing_home_are_warnings(tmp_path):
    store = MemoryOptionStore(sites={0: {K_ONION_DOMAIN: "example.com"}})
    report = build_doctor_report(AliasResolver(store), store_path=tmp_path / "s.json", policy=DetectionPolicy())
    assert report["ok"] is False
    checks = _checks(report)
    assert checks["onion_domain"]["status"] == "missing"
    assert checks["onion_domain"]["level"] == "warn"
    assert checks["home"]["status"] == "missing"


def test_exit_list_policy_checks(tmp_path):
    store = MemoryOptionStore(sites={0: {K_HOME: "https://example.com"}})
    policy = DetectionPolicy(verify_exit_list=True, allow_external_http=False)
    report = build_doctor_report(
        AliasResolver(store),
        store_path=tmp_path / "s.json",
        cache_path=tmp_path / "missing-dir" / "cache.json",
        policy=policy,
    )
    checks = _checks(report)
    assert checks["ONIONIFY_VERIFY_EXIT_LIST"]["status"] == "missing"
    assert checks["ONIONIFY_CACHE_PATH"]["status"] == "missing"
    assert report["ok"] is False

    text = format_doctor_report(report)
    assert text.startswith("Onionify doctor\n")
    assert "remedy: Add check.torproject.org to ONIONIFY_ACCESSIBLE_HOSTS." in text
