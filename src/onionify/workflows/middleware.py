"""WSGI middleware wiring classification, rewriting and response headers."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..core.keys import K_ENV_REWRITER, K_ENV_VERDICT
from .detector import DetectionPolicy, HostClassifier, RequestContext
from .headers import ResponseAdvertiser, merge_headers
from .mapping import AliasResolver
from .rewrite import RequestRewriter, build_internal_paths, should_force_insecure_scheme
from .settings import resolve_site_settings

logger = logging.getLogger(__name__)

StartResponse = Callable[..., Any]


class OnionifyMiddleware:
    """Classify every request and publish the verdict to the wrapped app.

    The app finds ``onionify.verdict`` and ``onionify.rewriter`` in the
    environ. Anonymous requests see ``wsgi.url_scheme == "http"``.
    """

    def __init__(
        self,
        app: Callable[[Dict[str, Any], StartResponse], Iterable[bytes]],
        resolver: AliasResolver,
        *,
        site_id: int = 0,
        classifier: Optional[HostClassifier] = None,
        policy: Optional[DetectionPolicy] = None,
    ) -> None:
        self.app = app
        self.resolver = resolver
        self.site_id = site_id
        self.classifier = classifier or HostClassifier(policy=policy or DetectionPolicy.from_env())

    def __call__(self, environ: Dict[str, Any], start_response: StartResponse) -> Iterable[bytes]:
        ctx = RequestContext.from_environ(environ)
        verdict = self.classifier.classify(ctx)
        alias = self.resolver.resolve_alias(self.site_id)
        settings = resolve_site_settings(self.resolver.store, self.site_id, multisite=self.resolver.multisite)
        rewriter = RequestRewriter(
            verdict=verdict,
            alias=alias,
            internal_paths=build_internal_paths(self.resolver.resolve_base_path(self.site_id)),
        )
        environ[K_ENV_VERDICT] = verdict
        environ[K_ENV_REWRITER] = rewriter
        if should_force_insecure_scheme(verdict):
            environ["wsgi.url_scheme"] = "http"
            environ.pop("HTTPS", None)
        if verdict.is_anonymous_network:
            logger.debug("Onion request %s (evidence=%s)", ctx.request_uri, sorted(verdict.evidence))

        extra = ResponseAdvertiser(settings).headers_for(verdict, alias, ctx.request_uri)

        def _start_response(status: str, headers: List[Tuple[str, str]], exc_info: Any = None) -> Any:
            merged = merge_headers(list(headers), extra)
            if exc_info is not None:
                return start_response(status, merged, exc_info)
            return start_response(status, merged)

        return self.app(environ, _start_response)


__all__ = ["OnionifyMiddleware"]
