"""
Crawler classifier for the Prerender Service.

Decides which inbound page requests need a rendered snapshot and, when enabled,
routes them onto the render endpoint.
"""
from .crawler_detector import (
    PrerenderRoutingMiddleware,
    is_crawler,
    is_prerender_request,
    should_prerender,
    strip_prerender_params,
)

__all__ = [
    "PrerenderRoutingMiddleware",
    "is_crawler",
    "is_prerender_request",
    "should_prerender",
    "strip_prerender_params",
]
