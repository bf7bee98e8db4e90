from onionify.workflows.detector import ANONYMOUS, CLEARNET
from onionify.workflows.hardening import (
    NO_HARDENING,
    HardeningPlan,
    avatar_url,
    build_hardening_plan,
    filter_resource_hints,
)
from onionify.workflows.onionify_config import AVATAR_PLACEHOLDER
from onionify.workflows.settings import SiteSettings


def test_plan_requires_onion_request_and_hardening():
    settings = SiteSettings(enable_hardening=True)
    assert build_hardening_plan(CLEARNET, settings) is NO_HARDENING
    assert build_hardening_plan(ANONYMOUS, SiteSettings()) is NO_HARDENING
    assert NO_HARDENING.active is False

    plan = build_hardening_plan(ANONYMOUS, settings)
    assert plan.active is True
    assert plan.disable_embeds is True
    assert plan.strip_resource_hints is True
    assert plan.disable_emojis is True
    assert plan.replace_avatars is False


def test_plan_follows_embed_and_avatar_settings():
    plan = build_hardening_plan(ANONYMOUS, SiteSettings(enable_hardening=True, disable_oembed=False, disable_external_avatars=True))
    assert plan.disable_embeds is False
    assert plan.replace_avatars is True


def test_resource_hints_filtered():
    hints = ["https://fonts.example.com", "//cdn.example.com", 42]
    assert filter_resource_hints(hints, "dns-prefetch") == []
    assert filter_resource_hints(hints, " PreConnect ") == []
    assert filter_resource_hints(hints, "prefetch") == ["https://fonts.example.com", "//cdn.example.com"]
    assert filter_resource_hints(None, None) == []


def test_avatar_placeholder_reflects_nothing():
    url = "https://secure.gravatar.com/avatar/abc?s=96"
    assert avatar_url(HardeningPlan(replace_avatars=True), url) == AVATAR_PLACEHOLDER
    assert avatar_url(NO_HARDENING, url) == url
