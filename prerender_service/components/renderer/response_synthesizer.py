"""
Turns a render result into the HTTP response served to the crawler.

The page controls its own status code and redirects through meta-tag markers; the
synthesizer validates those markers, then picks a two-tier cache policy (edge/CDN
and client) so that failures are never cached, redirects and 404s are cached
briefly, and normal pages are cached at the edge for a long time.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, TYPE_CHECKING

from prerender_service.components.renderer.markup import parse_location
from prerender_service.core.logger import get_logger

if TYPE_CHECKING:
    from prerender_service.core.config import ConfigurationManager
    from prerender_service.core.models import RenderResult

logger = get_logger(__name__)

DEFAULT_STATUS = 200
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
PRERENDER_MARKER_HEADER = "X-Prerendered"
PRERENDER_TIMESTAMP_HEADER = "X-Prerender-Timestamp"


@dataclass(frozen=True)
class CacheSettings:
    """
    Cache header names and lifetimes (seconds).
    """
    disabled: bool = False
    cdn_header: str = "CDN-Cache-Control"
    tag_header: str = "Cache-Tag"
    tag: Optional[str] = "prerender"
    long_cdn_max_age: int = 86400
    stale_while_revalidate: int = 604800
    short_cdn_max_age: int = 300
    short_client_max_age: int = 60

    @classmethod
    def from_config(cls, config: Optional['ConfigurationManager']) -> 'CacheSettings':
        if config is None:
            return cls()
        defaults = cls()
        return cls(
            disabled=bool(config.get("cache.disabled", defaults.disabled)),
            cdn_header=config.get("cache.cdn_header", defaults.cdn_header),
            tag_header=config.get("cache.tag_header", defaults.tag_header),
            tag=config.get("cache.tag", defaults.tag),
            long_cdn_max_age=int(config.get("cache.long_cdn_max_age", defaults.long_cdn_max_age)),
            stale_while_revalidate=int(config.get("cache.stale_while_revalidate", defaults.stale_while_revalidate)),
            short_cdn_max_age=int(config.get("cache.short_cdn_max_age", defaults.short_cdn_max_age)),
            short_client_max_age=int(config.get("cache.short_client_max_age", defaults.short_client_max_age)),
        )


@dataclass(frozen=True)
class CachePolicy:
    """
    Attributes:
        client (str): Cache-Control value for the client/browser tier.
        cdn (Optional[str]): Cache-Control value for the edge/CDN tier; omitted when None.
        tag (Optional[str]): Cache tag for targeted purges; omitted when None.
    """
    client: str
    cdn: Optional[str] = None
    tag: Optional[str] = None

    def headers(self, settings: CacheSettings) -> Dict[str, str]:
        headers = {"Cache-Control": self.client}
        if self.cdn is not None:
            headers[settings.cdn_header] = self.cdn
        if self.tag:
            headers[settings.tag_header] = self.tag
        return headers


@dataclass(frozen=True)
class SynthesizedResponse:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""


def parse_status(marker: Optional[str]) -> Optional[int]:
    """
    Returns the status override if the marker is an integer in [100, 600), else None.
    """
    if marker is None:
        return None
    try:
        status = int(marker.strip())
    except ValueError:
        return None
    if 100 <= status < 600:
        return status
    return None


def decide_cache_policy(status_code: int, has_redirect: bool, disable_cache: bool, settings: CacheSettings) -> CachePolicy:
    """
    Picks the cache policy; the first matching rule wins.

    Args:
        status_code (int): Final response status.
        has_redirect (bool): A Location header will be sent.
        disable_cache (bool): Caching is turned off for this response.
        settings (CacheSettings): Lifetimes and header names.

    Returns:
        CachePolicy: The policy for both cache tiers.
    """
    if disable_cache or settings.disabled:
        return CachePolicy(client="no-store")
    if status_code >= 500:
        return CachePolicy(client="no-cache, no-store, must-revalidate", cdn="no-cache, no-store")
    short_cdn = f"public, max-age={settings.short_cdn_max_age}"
    short_client = f"public, max-age={settings.short_client_max_age}"
    if 300 <= status_code < 400 and has_redirect:
        return CachePolicy(client=short_client, cdn=short_cdn, tag=settings.tag)
    if status_code == 404:
        return CachePolicy(client=short_client, cdn=short_cdn, tag=settings.tag)
    return CachePolicy(
        client="public, max-age=0, must-revalidate",
        cdn=f"public, max-age={settings.long_cdn_max_age}, stale-while-revalidate={settings.stale_while_revalidate}",
        tag=settings.tag,
    )


class ResponseSynthesizer:
    """
    Builds the final status, headers and body of a rendered page.
    """
    def __init__(self, settings: Optional[CacheSettings] = None, clock=None):
        self.settings = settings or CacheSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def synthesize(self, result: 'RenderResult', disable_cache: bool = False) -> SynthesizedResponse:
        """
        Args:
            result (RenderResult): The completed render.
            disable_cache (bool): Per-request override forcing a no-store policy.

        Returns:
            SynthesizedResponse: Status code, headers and HTML body.
        """
        status_code = parse_status(result.status_marker)
        if status_code is None:
            if result.status_marker is not None:
                logger.warning(f"Ignoring invalid status-code marker: {result.status_marker!r}")
            status_code = DEFAULT_STATUS

        location = None
        if 300 <= status_code < 400:
            location = parse_location(result.redirect_marker)

        policy = decide_cache_policy(status_code, location is not None, disable_cache, self.settings)

        headers = {
            "Content-Type": HTML_CONTENT_TYPE,
            "Vary": "User-Agent",
            PRERENDER_MARKER_HEADER: "true",
            PRERENDER_TIMESTAMP_HEADER: self._clock().isoformat(),
            "X-Prerender-Render-Time": str(int(result.render_time * 1000)),
            "X-Prerender-Blocked-Requests": str(result.blocked_requests),
        }
        if result.ready_reason is not None:
            headers["X-Prerender-Ready"] = result.ready_reason.value
        headers.update(policy.headers(self.settings))
        if location is not None:
            headers["Location"] = location

        return SynthesizedResponse(status_code=status_code, headers=headers, body=result.html)
