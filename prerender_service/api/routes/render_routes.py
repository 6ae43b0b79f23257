"""
API routes for rendering pages.

`GET /render?url=...` is the only rendering entry point. Errors are not handled
here: `RenderManager.handle()` raises the service's exception taxonomy and the
global handlers in `api/main.py` map it onto 400/403/500 responses.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from prerender_service.api.models import ErrorResponse, HealthResponse, SessionStatus
from prerender_service.core.config import config_manager
from prerender_service.core.logger import get_logger
from prerender_service.core.manager import RenderManager
from prerender_service.components.classifier.crawler_detector import ORIGINAL_USER_AGENT_HEADER

logger = get_logger(__name__)

RENDER_PATH = config_manager.get("classifier.render_path", "/render")

router = APIRouter()


def get_render_manager(request: Request) -> RenderManager:
    """
    Dependency provider returning the process-wide `RenderManager` created in the
    application lifespan. Tests override it through `app.dependency_overrides`.
    """
    return request.app.state.render_manager


def client_identity(request: Request) -> str:
    """
    Builds a log-friendly client identifier from the forwarded address and user agent.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        address = forwarded.split(",")[0].strip()
    elif request.client:
        address = request.client.host
    else:
        address = "unknown"
    user_agent = request.headers.get(ORIGINAL_USER_AGENT_HEADER) or request.headers.get("user-agent") or "-"
    return f"{address} ({user_agent})"


@router.get(
    RENDER_PATH,
    response_class=Response,
    summary="Render a page to static HTML",
    description="Loads the target URL in a headless browser, waits until the page reports it is ready "
                "(or the network goes idle, or the deadline passes) and returns the rendered markup. "
                "The page may override the status code and send a redirect through meta tags.",
    responses={
        200: {"content": {"text/html": {}}, "description": "The rendered page."},
        400: {"model": ErrorResponse, "description": "Missing or malformed `url`."},
        403: {"model": ErrorResponse, "description": "Target refused by the security policy."},
        500: {"model": ErrorResponse, "description": "The render failed."},
    },
)
async def render_endpoint(
    request: Request,
    url: Optional[str] = Query(None, description="Absolute URL of the page to render."),
    manager: RenderManager = Depends(get_render_manager),
):
    """
    Handles one render request.

    Args:
        request (Request): The inbound request; its Host header scopes cross-origin checks.
        url (Optional[str]): The target URL. Missing values are reported as 400, not 422.
        manager (RenderManager): The shared render orchestrator.

    Returns:
        Response: The rendered HTML with the synthesized status and headers.
    """
    request_host = request.headers.get("host") or (request.url.hostname or "")
    synthesized = await manager.handle(url, request_host, client_identity(request))
    return Response(
        content=synthesized.body,
        status_code=synthesized.status_code,
        headers=synthesized.headers,
    )


@router.get("/health", response_model=HealthResponse, summary="Browser session status")
async def health_endpoint(manager: RenderManager = Depends(get_render_manager)):
    session = SessionStatus(**manager.session_manager.status())
    # No session yet is fine: it is launched lazily on the first render.
    healthy = not session.active or session.connected
    return HealthResponse(status="ok" if healthy else "degraded", session=session)
