"""
Custom exception classes for the Prerender Service.

Every exception carries the HTTP status code the API layer should answer with,
so route handlers and the global exception handlers never have to guess.
"""
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from prerender_service.components.security.url_validator import RejectionReason


class PrerenderServiceError(Exception):
    """
    Base class for all custom exceptions in the Prerender Service.

    Attributes:
        message (str): A human-readable description of the error.
        status_code (int): HTTP status code associated with this error class.
    """
    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


# --- Configuration Related Exceptions ---
class ConfigurationError(PrerenderServiceError):
    """
    Raised for errors related to application configuration, such as a value
    that is present but cannot be interpreted.
    """
    def __init__(self, message: str):
        super().__init__(message)


# --- Component Related Exceptions ---
class ComponentError(PrerenderServiceError):
    """
    A general base class for errors originating from within a specific component
    (e.g., Renderer, Session, Security).

    Attributes:
        component_name (str): Name of the component where the error originated.
    """
    def __init__(self, component_name: str, message: str):
        full_message = f"Error in component '{component_name}': {message}"
        super().__init__(full_message)
        self.component_name = component_name


class RendererError(ComponentError):
    """Raised for errors specific to the Renderer component (page lifecycle, script evaluation)."""
    def __init__(self, message: str):
        super().__init__(component_name="Renderer", message=message)


class SessionError(ComponentError):
    """Raised when the browser session cannot be launched or recovered."""
    def __init__(self, message: str):
        super().__init__(component_name="Session", message=message)


# --- Render Request Taxonomy ---
class InvalidInputError(PrerenderServiceError):
    """Raised when the target URL is missing or malformed. Terminal, never retried."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)


class SecurityRejectedError(PrerenderServiceError):
    """
    Raised when the security validator refuses a target URL (unsupported protocol,
    cross-origin target, or private network address).

    Attributes:
        reason (RejectionReason): The first check that failed.
    """
    status_code = 403

    def __init__(self, reason: "RejectionReason", message: str):
        super().__init__(message)
        self.reason = reason


class RenderFailedError(PrerenderServiceError):
    """
    Catch-all for failures during the page lifecycle. The message is for the
    operational log only; the API answers with a generic body.

    Attributes:
        target_url (Optional[str]): The URL being rendered when the failure happened.
        elapsed (Optional[float]): Seconds spent on the render before it failed.
        original_exception (Optional[Exception]): The underlying error, if any.
    """
    status_code = 500

    def __init__(
        self,
        message: str,
        target_url: Optional[str] = None,
        elapsed: Optional[float] = None,
        original_exception: Optional[Exception] = None,
    ):
        self.target_url = target_url
        self.elapsed = elapsed
        self.original_exception = original_exception
        full_message = message
        if original_exception:
            full_message += f" (Original exception: {original_exception})"
        super().__init__(full_message)


class NavigationFailedError(RenderFailedError):
    """Raised when the target is unreachable or navigation exceeds its timeout."""
