"""
Immutable records passed between the render components.
"""
from dataclasses import dataclass
from typing import Optional

from prerender_service.components.renderer.readiness import DoneReason


@dataclass(frozen=True)
class RenderRequest:
    """
    One request to produce a static snapshot.

    Attributes:
        target_url (str): Absolute URL that already passed security validation.
        client_id (str): Identifies the originating client in logs.
        disable_cache (bool): Forces a no-store cache policy on the response.
    """
    target_url: str
    client_id: str = "unknown"
    disable_cache: bool = False


@dataclass(frozen=True)
class RenderResult:
    """
    Outcome of one successful render.

    Attributes:
        html (str): Rendered markup after cleanup.
        size (int): Size of `html` in bytes (UTF-8).
        status_marker (Optional[str]): Raw status-code override found in the page.
        redirect_marker (Optional[str]): Raw "Location: ..." header found in the page.
        removed_elements (int): DOM elements removed during cleanup.
        ready_reason (Optional[DoneReason]): Which condition ended the readiness wait.
        render_time (float): Seconds from page creation to markup extraction.
        blocked_requests (int): Requests aborted by the interceptor.
    """
    html: str
    size: int
    status_marker: Optional[str] = None
    redirect_marker: Optional[str] = None
    removed_elements: int = 0
    ready_reason: Optional[DoneReason] = None
    render_time: float = 0.0
    blocked_requests: int = 0
