"""
Main application file for the Prerender Service API.

This file initializes the FastAPI application, sets up logging, owns the
render manager (and with it the shared browser session) through the
lifespan hook, registers global exception handlers, and includes API routers.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

# Import project-specific modules
from prerender_service.api.models import ServiceInfoResponse
from prerender_service.api.routes import render_router
from prerender_service.api.routes.render_routes import RENDER_PATH
from prerender_service.components.classifier.crawler_detector import PrerenderRoutingMiddleware
from prerender_service.core.exceptions import PrerenderServiceError, RenderFailedError
from prerender_service.core.logger import setup_logging, get_logger
from prerender_service.core.config import config_manager
from prerender_service.core.manager import RenderManager

# --- Logging Setup ---
# Initialize centralized logging as early as possible. The global `config_manager`
# has already loaded the configuration selected by APP_ENV (default 'development').
try:
    setup_logging(config_manager)
    logger = get_logger(__name__)
    logger.info("Logging successfully initialized for FastAPI application.")
except Exception as e:
    # Fallback to Python's basic logging so that startup errors stay visible.
    import logging as py_logging
    py_logging.basicConfig(level=py_logging.WARNING, format="%(asctime)s - %(levelname)s - CRITICAL - Failed to setup custom logging: %(message)s")
    py_logging.critical(f"Failed to initialize custom logging via ConfigurationManager: {e}", exc_info=True)
    logger = py_logging.getLogger(__name__)

GENERIC_RENDER_FAILURE = "Failed to render the requested page."


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates the render manager on startup and shuts the browser down on exit.

    The browser itself is launched lazily by the first render.
    """
    logger.info(f"Starting Prerender Service (environment: '{config_manager.current_environment}')")
    app.state.render_manager = RenderManager(config_manager)
    try:
        yield
    finally:
        logger.info("Shutting down Prerender Service")
        await app.state.render_manager.close()


# --- FastAPI Application Initialization ---
app = FastAPI(
    title="Prerender Service API",
    description="Renders JavaScript-driven pages in a headless browser and serves the resulting "
                "static HTML to crawlers, with page-controlled status codes, redirects and caching.",
    version="0.1.0",
    lifespan=lifespan,
)

# Crawler requests for ordinary page paths are rewritten onto the render route.
app.add_middleware(
    PrerenderRoutingMiddleware,
    render_path=RENDER_PATH,
    enabled=bool(config_manager.get("classifier.enabled", False)),
)

# --- Global Exception Handlers ---

@app.exception_handler(PrerenderServiceError)
async def prerender_service_exception_handler(request: Request, exc: PrerenderServiceError):
    """
    Handles all custom exceptions derived from `PrerenderServiceError`.

    Client errors (invalid input, security rejections) are answered with their
    message. Server errors get a generic body; the details go to the log only.

    Args:
        request (Request): The incoming request that caused the exception.
        exc (PrerenderServiceError): The instance of the caught application exception.

    Returns:
        JSONResponse: A JSON error response with the status code carried by the exception.
    """
    if exc.status_code >= 500:
        if isinstance(exc, RenderFailedError):
            elapsed = f"{exc.elapsed:.2f}s" if exc.elapsed is not None else "n/a"
            logger.error(
                f"{exc.__class__.__name__} for target {exc.target_url!r} after {elapsed}: {exc.message} "
                f"(request: {request.method} {request.url})"
            )
        else:
            logger.error(
                f"PrerenderServiceError caught: {exc.__class__.__name__} - {exc.message} "
                f"for request: {request.method} {request.url}",
                exc_info=True,
            )
        detail = GENERIC_RENDER_FAILURE
    else:
        logger.warning(f"{exc.__class__.__name__} for request {request.method} {request.url}: {exc.message}")
        detail = exc.message

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail},
        headers={"Cache-Control": "no-store"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Handles any other unhandled Python exceptions.

    Returns:
        JSONResponse: A generic HTTP 500 response; the stack trace is logged.
    """
    logger.critical(
        f"Generic unhandled exception caught: {exc.__class__.__name__} - {str(exc)} "
        f"for request: {request.method} {request.url}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": GENERIC_RENDER_FAILURE},
        headers={"Cache-Control": "no-store"},
    )


# --- API Router Inclusion ---
app.include_router(render_router, tags=["Rendering"])


# --- Root Endpoint ---
@app.get("/", tags=["General"], summary="API Root Endpoint", response_model=ServiceInfoResponse)
async def read_root():
    """
    Provides basic information about the service and where to send render requests.
    """
    return ServiceInfoResponse(
        message="Prerender Service",
        version=app.version,
        environment=config_manager.current_environment,
        render_endpoint=f"{RENDER_PATH}?url=<absolute-url>",
        documentation_url=app.docs_url,
    )


# --- Main Execution Block (for development) ---
if __name__ == "__main__":
    # Local development only; deployments run uvicorn (or gunicorn with uvicorn workers) directly.
    # APP_ENV selects the configuration file, e.g. `APP_ENV=production`.
    import uvicorn

    logger.info("Starting Uvicorn server directly for local development/testing (not for production)...")
    uvicorn.run(app, host="0.0.0.0", port=8000)
