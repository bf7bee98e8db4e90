"""High-level exports for the onionify workflows."""

from .detector import (
    ANONYMOUS,
    CLEARNET,
    ClassificationVerdict,
    DetectionPolicy,
    HostClassifier,
    RequestContext,
)
from .exit_list import ExitListChecker
from .headers import ResponseAdvertiser
from .mapping import AliasResolver, SiteAliasConfig
from .middleware import OnionifyMiddleware
from .rewrite import (
    RequestRewriter,
    rewrite_absolute_url,
    should_force_insecure_scheme,
    should_suppress_redirect,
)
from .settings import SiteSettings, resolve_site_settings
from .storage import JsonFileCache, JsonOptionStore, MemoryCache, MemoryOptionStore

__all__ = [
    "ANONYMOUS",
    "CLEARNET",
    "ClassificationVerdict",
    "DetectionPolicy",
    "HostClassifier",
    "RequestContext",
    "ExitListChecker",
    "ResponseAdvertiser",
    "AliasResolver",
    "SiteAliasConfig",
    "OnionifyMiddleware",
    "RequestRewriter",
    "rewrite_absolute_url",
    "should_force_insecure_scheme",
    "should_suppress_redirect",
    "SiteSettings",
    "resolve_site_settings",
    "JsonFileCache",
    "JsonOptionStore",
    "MemoryCache",
    "MemoryOptionStore",
]
