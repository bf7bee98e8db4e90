"""Onion-only privacy measures: which clearnet leaks to switch off.

Only engages for onion requests with hardening enabled. The plan is data;
the hosting application applies it (drop embed discovery, emoji CDN scripts,
resource hints, external avatars).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .detector import ClassificationVerdict
from .onionify_config import AVATAR_PLACEHOLDER, RESOURCE_HINTS_STRIPPED
from .settings import SiteSettings


@dataclass(frozen=True)
class HardeningPlan:
    disable_embeds: bool = False
    strip_resource_hints: bool = False
    disable_emojis: bool = False
    replace_avatars: bool = False

    @property
    def active(self) -> bool:
        return any((self.disable_embeds, self.strip_resource_hints, self.disable_emojis, self.replace_avatars))


NO_HARDENING = HardeningPlan()


def build_hardening_plan(verdict: ClassificationVerdict, settings: SiteSettings) -> HardeningPlan:
    if not verdict.is_anonymous_network or not settings.enable_hardening:
        return NO_HARDENING
    return HardeningPlan(
        disable_embeds=settings.disable_oembed,
        strip_resource_hints=True,
        disable_emojis=True,
        replace_avatars=settings.disable_external_avatars,
    )


def filter_resource_hints(hints: Optional[Iterable[str]], relation_type: Optional[str]) -> List[str]:
    """Drop dns-prefetch/preconnect hints, which may target clearnet CDNs."""

    items = [h for h in (hints or []) if isinstance(h, str)]
    relation = relation_type.strip().lower() if isinstance(relation_type, str) else ""
    if relation in RESOURCE_HINTS_STRIPPED:
        return []
    return items


def avatar_url(plan: HardeningPlan, url: str) -> str:
    """Constant data URI instead of an external avatar; nothing is reflected."""

    return AVATAR_PLACEHOLDER if plan.replace_avatars else url


__all__ = [
    "HardeningPlan",
    "NO_HARDENING",
    "build_hardening_plan",
    "filter_resource_hints",
    "avatar_url",
]
