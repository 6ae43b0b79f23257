from typing import Optional
from pydantic import BaseModel


# --- Response Models ---

class ServiceInfoResponse(BaseModel):
    """
    Response model for the root endpoint.
    """
    message: str
    version: str
    environment: str
    render_endpoint: str
    documentation_url: Optional[str] = None


class SessionStatus(BaseModel):
    """
    State of the shared browser session as seen by the session manager.
    """
    browser_type: str
    active: bool
    connected: bool
    created_at: Optional[float] = None  # Epoch seconds


class HealthResponse(BaseModel):
    """
    Response model for `/health`. Reading it never launches or probes a browser.
    """
    status: str  # "ok" or "degraded"
    session: SessionStatus


class ErrorResponse(BaseModel):
    """
    Body of every error response produced by the global exception handlers.
    """
    detail: str
