import gc
import weakref

import pytest
from unittest.mock import AsyncMock, MagicMock

from prerender_service.components.renderer.request_interceptor import (
    RequestInterceptor,
    RequestState,
    RequestTracker,
    request_key,
)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def make_route(url, resource_type="script"):
    route = MagicMock(name="route")
    route.request = MagicMock(name="request")
    route.request.url = url
    route.request.resource_type = resource_type
    route.abort = AsyncMock()
    route.continue_ = AsyncMock()
    return route


# --- RequestTracker ---

def test_duplicate_start_is_counted_once():
    tracker = RequestTracker(FakeClock())
    assert tracker.start("req-1", "https://example.com/app.js") is True
    assert tracker.start("req-1", "https://example.com/app.js") is False
    assert tracker.in_flight == 1


def test_finish_updates_last_activity():
    clock = FakeClock(1.0)
    tracker = RequestTracker(clock)
    tracker.start("req-1", "https://example.com/data.json")

    clock.now = 2.5
    finished = tracker.finish("req-1")

    assert finished.state == RequestState.FINISHED
    assert tracker.in_flight == 0
    assert tracker.last_activity == 2.5
    assert tracker.finished_count == 1


def test_finishing_unknown_request_is_a_no_op():
    clock = FakeClock(1.0)
    tracker = RequestTracker(clock)
    tracker.start("req-1", "https://example.com/a")
    tracker.finish("req-1")

    clock.now = 5.0
    assert tracker.finish("req-1") is None
    assert tracker.finish("never-started") is None
    assert tracker.in_flight == 0
    assert tracker.last_activity == 1.0


def test_failed_request_is_counted_separately():
    tracker = RequestTracker(FakeClock())
    tracker.start("req-1", "https://example.com/a")
    tracker.finish("req-1", failed=True)
    assert tracker.failed_count == 1
    assert tracker.finished_count == 0


def test_pending_urls():
    tracker = RequestTracker(FakeClock())
    tracker.start(1, "https://example.com/a")
    tracker.start(2, "https://example.com/b")
    tracker.finish(1)
    assert tracker.pending_urls() == ["https://example.com/b"]


# --- Blocking rules ---

@pytest.mark.parametrize("url, resource_type", [
    ("https://www.google-analytics.com/analytics.js", "script"),
    ("https://www.googletagmanager.com/gtm.js?id=GTM-XYZ", "script"),
    ("https://consent.cookiebot.com/uc.js", "script"),
    ("https://cdn.example.com/img/tracking-pixel.gif", "image"),
    ("https://example.com/beacon.png", "image"),
    ("https://example.com/js/cookie-banner.js", "script"),
])
def test_unwanted_resources_are_blocked(url, resource_type):
    assert RequestInterceptor().should_block(url, resource_type) is True


@pytest.mark.parametrize("url, resource_type", [
    ("https://example.com/static/app.js", "script"),
    ("https://api.example.com/products?page=1", "fetch"),
    ("https://example.com/img/hero.jpg", "image"),
    ("https://example.com/cookie-policy", "document"),
    ("https://notgoogle-analytics.com/lib.js", "script"),
])
def test_regular_resources_are_allowed(url, resource_type):
    assert RequestInterceptor().should_block(url, resource_type) is False


def test_configured_domains_extend_the_blocklist():
    interceptor = RequestInterceptor(extra_blocked_domains=["Ads.Example.net", " ", "google-analytics.com"])
    assert interceptor.should_block("https://cdn.ads.example.net/x.js", "script") is True
    assert interceptor.blocked_domains.count("google-analytics.com") == 1


def test_from_config_without_config_uses_defaults():
    interceptor = RequestInterceptor.from_config(None)
    assert interceptor.should_block("https://example.com/app.js", "script") is False


# --- Route handling ---

@pytest.mark.asyncio
async def test_blocked_request_is_aborted_and_not_tracked():
    interceptor = RequestInterceptor()
    route = make_route("https://www.google-analytics.com/collect", "xhr")

    await interceptor._handle_route(route)

    route.abort.assert_awaited_once_with("blockedbyclient")
    route.continue_.assert_not_awaited()
    assert interceptor.tracker.in_flight == 0
    assert interceptor.tracker.blocked_count == 1


@pytest.mark.asyncio
async def test_allowed_request_is_tracked_until_finished():
    clock = FakeClock()
    interceptor = RequestInterceptor(clock=clock)
    route = make_route("https://example.com/api/items", "fetch")

    await interceptor._handle_route(route)
    route.continue_.assert_awaited_once()
    assert interceptor.tracker.in_flight == 1

    clock.now = 0.75
    interceptor._on_request_finished(route.request)
    interceptor._on_request_finished(route.request)  # duplicate event
    assert interceptor.tracker.in_flight == 0
    assert interceptor.tracker.last_activity == 0.75


@pytest.mark.asyncio
async def test_failed_request_leaves_the_table():
    interceptor = RequestInterceptor()
    route = make_route("https://example.com/broken.js")

    await interceptor._handle_route(route)
    interceptor._on_request_failed(route.request)

    assert interceptor.tracker.in_flight == 0
    assert interceptor.tracker.failed_count == 1


@pytest.mark.asyncio
async def test_continue_failure_releases_the_request():
    interceptor = RequestInterceptor()
    route = make_route("https://example.com/late.js")
    route.continue_.side_effect = Exception("Target page, context or browser has been closed")

    await interceptor._handle_route(route)

    assert interceptor.tracker.in_flight == 0


@pytest.mark.asyncio
async def test_attach_installs_route_and_listeners():
    interceptor = RequestInterceptor()
    page = MagicMock(name="page")
    page.route = AsyncMock()

    await interceptor.attach(page)

    page.route.assert_awaited_once_with("**/*", interceptor._handle_route)
    events = [c.args[0] for c in page.on.call_args_list]
    assert events == ["requestfinished", "requestfailed"]


def test_request_key_is_stable_per_request_object():
    request = MagicMock()
    assert request_key(request) is request
    assert request_key(request) != request_key(MagicMock())


def test_pending_request_stays_referenced_until_finished():
    class Request:
        pass

    tracker = RequestTracker(FakeClock())
    request = Request()
    request_ref = weakref.ref(request)
    tracker.start(request_key(request), "https://example.com/api/slow")
    del request
    gc.collect()

    assert request_ref() is not None
    assert tracker.start(request_key(Request()), "https://example.com/api/other") is True
    assert tracker.in_flight == 2

    tracker.finish(request_key(request_ref()))
    assert tracker.pending_urls() == ["https://example.com/api/other"]
