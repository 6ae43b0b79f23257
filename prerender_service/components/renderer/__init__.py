"""
Renderer component for the Prerender Service.

This sub-package owns everything that touches the browser: the shared session,
per-page request interception, readiness detection, markup post-processing and
the synthesis of the final HTTP response.
"""
from .readiness import DoneReason, ReadinessDetector, ReadinessSettings, ReadinessState, ReadyFlag, evaluate, is_done
from .request_interceptor import RequestInterceptor, RequestTracker
from .session_manager import BrowserSession, RenderPage, SessionManager
from .markup import MarkupProcessor
from .response_synthesizer import CachePolicy, CacheSettings, ResponseSynthesizer, SynthesizedResponse

__all__ = [
    "BrowserSession",
    "CachePolicy",
    "CacheSettings",
    "DoneReason",
    "MarkupProcessor",
    "ReadinessDetector",
    "ReadinessSettings",
    "ReadinessState",
    "ReadyFlag",
    "RenderPage",
    "RequestInterceptor",
    "RequestTracker",
    "ResponseSynthesizer",
    "SessionManager",
    "SynthesizedResponse",
    "evaluate",
    "is_done",
]
