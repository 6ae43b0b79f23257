"""
Components sub-package for the Prerender Service.

This package contains the building blocks of a render: target validation,
the browser session and per-page rendering machinery, and the crawler
classifier that routes requests into the render path.

The `__all__` variable defines the public API of this sub-package,
making key components directly importable from `prerender_service.components`.
"""

# Re-export key components for easier access.
from .security.url_validator import SecurityPolicy, validate_target_url
from .renderer.session_manager import SessionManager
from .renderer.request_interceptor import RequestInterceptor
from .renderer.readiness import ReadinessDetector
from .renderer.response_synthesizer import ResponseSynthesizer
from .classifier.crawler_detector import PrerenderRoutingMiddleware

__all__ = [
    "SecurityPolicy",
    "validate_target_url",
    "SessionManager",
    "RequestInterceptor",
    "ReadinessDetector",
    "ResponseSynthesizer",
    "PrerenderRoutingMiddleware",
]
