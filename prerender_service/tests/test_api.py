import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

# Import the FastAPI app instance from your application
from prerender_service.api.main import app
from prerender_service.api.routes.render_routes import get_render_manager
from prerender_service.components.renderer.session_manager import SessionManager
from prerender_service.core.exceptions import SessionError
from prerender_service.core.manager import RenderManager

RENDERED_HTML = (
    '<html><head><meta name="prerender-status-code" content="{status}">{extra}'
    '<script src="/app.js"></script></head><body><h1>Hello crawler</h1></body></html>'
)


def make_render_page(html, goto_error=None):
    page = MagicMock(name="page")
    page.route = AsyncMock()
    page.goto = AsyncMock(side_effect=goto_error)
    page.evaluate = AsyncMock(return_value=True)
    page.content = AsyncMock(return_value=html)
    render_page = MagicMock(name="render_page")
    render_page.page = page
    render_page.close = AsyncMock()
    return render_page


@pytest.fixture
def session_manager_mock():
    manager = MagicMock(spec=SessionManager)
    manager.acquire = AsyncMock(return_value=MagicMock(name="browser_session"))
    manager.new_page = AsyncMock(return_value=make_render_page(RENDERED_HTML.format(status=200, extra="")))
    manager.close = AsyncMock()
    manager.status = MagicMock(return_value={
        "browser_type": "chromium", "active": False, "connected": False, "created_at": None,
    })
    return manager


@pytest.fixture
def client(session_manager_mock):
    """
    TestClient wired to a RenderManager with a mocked browser session.

    The client is not used as a context manager, so the lifespan hook (which would
    build a real session manager) does not run.
    """
    render_manager = RenderManager(config=None, session_manager=session_manager_mock)
    app.dependency_overrides[get_render_manager] = lambda: render_manager
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def test_root_endpoint(client):
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Prerender Service"
    assert body["render_endpoint"].startswith("/render")


def test_render_success(client):
    # TestClient sends "Host: testserver", so same-origin targets use that host.
    response = client.get("/render", params={"url": "http://testserver/products/42"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/html; charset=utf-8"
    assert response.headers["x-prerendered"] == "true"
    assert response.headers["vary"] == "User-Agent"
    assert response.headers["cdn-cache-control"] == "public, max-age=86400, stale-while-revalidate=604800"
    assert "<h1>Hello crawler</h1>" in response.text
    assert "/app.js" not in response.text


def test_render_page_controlled_not_found(client, session_manager_mock):
    session_manager_mock.new_page = AsyncMock(return_value=make_render_page(RENDERED_HTML.format(status=404, extra="")))

    response = client.get("/render", params={"url": "http://testserver/gone"})

    assert response.status_code == 404
    assert response.headers["cache-control"] == "public, max-age=60"


def test_render_page_controlled_redirect(client, session_manager_mock):
    html = RENDERED_HTML.format(status=301, extra='<meta name="prerender-header" content="Location: /new-home">')
    session_manager_mock.new_page = AsyncMock(return_value=make_render_page(html))

    response = client.get("/render", params={"url": "http://testserver/old-home"}, follow_redirects=False)

    assert response.status_code == 301
    assert response.headers["location"] == "/new-home"


def test_render_redirect_to_non_ascii_path(client, session_manager_mock):
    html = RENDERED_HTML.format(status=302, extra='<meta name="prerender-header" content="Location: /文章/1">')
    session_manager_mock.new_page = AsyncMock(return_value=make_render_page(html))

    response = client.get("/render", params={"url": "http://testserver/old"}, follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "/%E6%96%87%E7%AB%A0/1"


def test_render_redirect_with_line_break_is_not_forwarded(client, session_manager_mock):
    html = RENDERED_HTML.format(
        status=302, extra='<meta name="prerender-header" content="Location: /a&#13;&#10;Set-Cookie: session=1">'
    )
    session_manager_mock.new_page = AsyncMock(return_value=make_render_page(html))

    response = client.get("/render", params={"url": "http://testserver/old"}, follow_redirects=False)

    assert response.status_code == 302
    assert "location" not in response.headers
    assert "set-cookie" not in response.headers


def test_missing_url_is_bad_request(client, session_manager_mock):
    response = client.get("/render")
    assert response.status_code == 400
    session_manager_mock.acquire.assert_not_awaited()


def test_relative_url_is_bad_request(client):
    response = client.get("/render", params={"url": "/products/42"})
    assert response.status_code == 400


def test_cross_origin_url_is_forbidden(client, session_manager_mock):
    response = client.get("/render", params={"url": "https://evil.example.org/"})
    assert response.status_code == 403
    session_manager_mock.acquire.assert_not_awaited()


def test_unsupported_protocol_is_forbidden(client):
    response = client.get("/render", params={"url": "file:///etc/passwd"})
    assert response.status_code == 403


def test_navigation_failure_has_generic_body(client, session_manager_mock):
    failing_page = make_render_page("", goto_error=Exception("net::ERR_CONNECTION_REFUSED at http://testserver/"))
    session_manager_mock.new_page = AsyncMock(return_value=failing_page)

    response = client.get("/render", params={"url": "http://testserver/"})

    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to render the requested page."}
    assert "ERR_CONNECTION_REFUSED" not in response.text
    assert response.headers["cache-control"] == "no-store"


def test_session_failure_is_server_error(client, session_manager_mock):
    session_manager_mock.acquire = AsyncMock(side_effect=SessionError("Executable doesn't exist"))

    response = client.get("/render", params={"url": "http://testserver/"})

    assert response.status_code == 500
    assert "Executable" not in response.text


def test_health_without_session(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["session"]["active"] is False


def test_health_with_disconnected_session(client, session_manager_mock):
    session_manager_mock.status.return_value = {
        "browser_type": "chromium", "active": True, "connected": False, "created_at": 1700000000.0,
    }
    response = client.get("/health")
    assert response.json()["status"] == "degraded"
