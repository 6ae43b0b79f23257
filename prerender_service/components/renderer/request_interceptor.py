"""
Per-page request interception and in-flight accounting.

The `RequestInterceptor` is attached to a page before navigation. Every outbound
request is either aborted (tracking, analytics and consent-management resources
that add nothing to a crawlable snapshot) or allowed and recorded in a
`RequestTracker`, whose in-flight count and last-activity timestamp drive the
idle-network mode of the readiness detector.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Hashable, Iterable, List, Optional, TYPE_CHECKING
from urllib.parse import urlsplit

from playwright.async_api import Page, Request, Route

from prerender_service.core.logger import get_logger

if TYPE_CHECKING:
    from prerender_service.core.config import ConfigurationManager

logger = get_logger(__name__)

DEFAULT_BLOCKED_DOMAINS = (
    # Analytics and tag managers
    "google-analytics.com",
    "googletagmanager.com",
    "analytics.google.com",
    "doubleclick.net",
    "googlesyndication.com",
    "googleadservices.com",
    "connect.facebook.net",
    "hotjar.com",
    "clarity.ms",
    "segment.io",
    "cdn.segment.com",
    "mixpanel.com",
    "amplitude.com",
    "fullstory.com",
    "heap.io",
    "nr-data.net",
    "bat.bing.com",
    "snap.licdn.com",
    "static.ads-twitter.com",
    # Consent management platforms
    "cookiebot.com",
    "consent.cookiebot.com",
    "cookielaw.org",
    "onetrust.com",
    "trustarc.com",
    "consensu.org",
    "usercentrics.eu",
    "quantcast.com",
)

TRACKING_PIXEL_MARKERS = ("track", "pixel", "beacon")
CONSENT_SCRIPT_MARKERS = ("cookie", "consent")


class RequestState(str, Enum):
    PENDING = "pending"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass
class TrackedRequest:
    request_id: Hashable
    url: str
    state: RequestState = RequestState.PENDING


def request_key(request: Request) -> Hashable:
    """
    Identifier of a Playwright request within the tracking table.

    Playwright hands out the same `Request` object to the route handler and to the
    `requestfinished`/`requestfailed` events. The object itself is the key: it hashes
    by identity and the table keeps it alive while the request is pending.
    """
    return request


class RequestTracker:
    """
    Idempotent table of allowed, unfinished requests.

    Starting an identifier that is already pending and finishing one that is not
    pending are both no-ops, since the browser may deliver an event twice.
    """
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._pending: Dict[Hashable, TrackedRequest] = {}
        self.last_activity: float = clock()
        self.blocked_count = 0
        self.finished_count = 0
        self.failed_count = 0

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def start(self, request_id: Hashable, url: str) -> bool:
        """Records a newly allowed request. Returns False if it was already pending."""
        if request_id in self._pending:
            return False
        self._pending[request_id] = TrackedRequest(request_id, url)
        return True

    def finish(self, request_id: Hashable, failed: bool = False) -> Optional[TrackedRequest]:
        """
        Removes a pending request and stamps the last-activity time.

        Returns:
            Optional[TrackedRequest]: The removed entry, or None if the identifier was not pending.
        """
        tracked = self._pending.pop(request_id, None)
        if tracked is None:
            return None
        tracked.state = RequestState.FAILED if failed else RequestState.FINISHED
        if failed:
            self.failed_count += 1
        else:
            self.finished_count += 1
        self.last_activity = self._clock()
        return tracked

    def record_blocked(self) -> None:
        self.blocked_count += 1

    def pending_urls(self) -> List[str]:
        return [tracked.url for tracked in self._pending.values()]


def _matches_domain(hostname: str, url: str, entry: str) -> bool:
    if "/" in entry:
        return entry in url
    return hostname == entry or hostname.endswith("." + entry)


class RequestInterceptor:
    """
    Blocks unwanted sub-resources and tracks the rest for one page.

    Attributes:
        blocked_domains (tuple): Built-in blocklist plus configured additions.
        tracker (RequestTracker): In-flight accounting for allowed requests.
    """
    def __init__(self, extra_blocked_domains: Iterable[str] = (), clock: Callable[[], float] = time.monotonic):
        extras = tuple(d.strip().lower() for d in extra_blocked_domains if d and d.strip())
        self.blocked_domains = DEFAULT_BLOCKED_DOMAINS + tuple(d for d in extras if d not in DEFAULT_BLOCKED_DOMAINS)
        self.tracker = RequestTracker(clock)

    @classmethod
    def from_config(cls, config: Optional['ConfigurationManager'], clock: Callable[[], float] = time.monotonic) -> 'RequestInterceptor':
        extras = config.get("interceptor.extra_blocked_domains", []) if config else []
        return cls(extras or (), clock=clock)

    def should_block(self, url: str, resource_type: str) -> bool:
        """
        Decides whether a request is aborted.

        Blocked when the URL's host is on the blocklist, when an image URL looks like a
        tracking pixel, or when a script URL looks like a consent banner.
        """
        lowered = url.lower()
        try:
            hostname = (urlsplit(lowered).hostname or "")
        except ValueError:
            hostname = ""
        if any(_matches_domain(hostname, lowered, entry) for entry in self.blocked_domains):
            return True
        if resource_type == "image" and any(marker in lowered for marker in TRACKING_PIXEL_MARKERS):
            return True
        if resource_type == "script" and any(marker in lowered for marker in CONSENT_SCRIPT_MARKERS):
            return True
        return False

    async def attach(self, page: Page) -> None:
        """Installs the route handler and completion listeners. Must run before navigation."""
        await page.route("**/*", self._handle_route)
        page.on("requestfinished", self._on_request_finished)
        page.on("requestfailed", self._on_request_failed)

    async def _handle_route(self, route: Route) -> None:
        request = route.request
        if self.should_block(request.url, request.resource_type):
            self.tracker.record_blocked()
            logger.debug(f"Blocked {request.resource_type} request: {request.url}")
            await route.abort("blockedbyclient")
            return

        key = request_key(request)
        self.tracker.start(key, request.url)
        try:
            await route.continue_()
        except Exception as e:
            # The page is usually being torn down; the request will never complete.
            logger.debug(f"Could not continue request {request.url}: {e}")
            self.tracker.finish(key, failed=True)

    def _on_request_finished(self, request: Request) -> None:
        self.tracker.finish(request_key(request))

    def _on_request_failed(self, request: Request) -> None:
        self.tracker.finish(request_key(request), failed=True)
