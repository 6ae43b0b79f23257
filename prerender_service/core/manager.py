import time
from typing import Optional, TYPE_CHECKING

from prerender_service.core.logger import get_logger
from prerender_service.components.security.url_validator import SecurityPolicy, validate_target_url
from prerender_service.components.renderer.session_manager import SessionManager
from prerender_service.components.renderer.request_interceptor import RequestInterceptor
from prerender_service.components.renderer.readiness import ReadinessDetector, ReadinessSettings
from prerender_service.components.renderer.markup import MarkupProcessor, DEFAULT_HEADER_META_NAME, DEFAULT_STATUS_META_NAME
from prerender_service.components.renderer.response_synthesizer import CacheSettings, ResponseSynthesizer, SynthesizedResponse
from prerender_service.core.exceptions import NavigationFailedError, RenderFailedError, SessionError
from prerender_service.core.models import RenderRequest, RenderResult

if TYPE_CHECKING:
    from prerender_service.core.config import ConfigurationManager

logger = get_logger(__name__)


class RenderManager:
    """
    Orchestrates one render from validated URL to synthesized HTTP response.

    The manager holds the process-wide `SessionManager`; everything else (the page,
    its interceptor, the readiness loop) is created per render and discarded with it.
    Concurrent renders of the same URL are independent: nothing is coalesced.
    """
    DEFAULT_NAVIGATION_TIMEOUT = 20.0  # Seconds

    def __init__(self, config: Optional['ConfigurationManager'], session_manager: Optional[SessionManager] = None):
        """
        Initializes the RenderManager and its settings.

        Args:
            config (Optional[ConfigurationManager]): The application's configuration manager.
            session_manager (Optional[SessionManager]): Session provider to use; one is built
                from `config` if omitted.

        Raises:
            RendererError: If the session manager cannot be configured (e.g. unsupported browser type).
            ConfigurationError: If the security policy in the configuration is invalid.
        """
        self.config = config
        self.session_manager = session_manager or SessionManager(config=config)
        self.security_policy = SecurityPolicy.from_config(config)
        self.readiness_settings = ReadinessSettings.from_config(config)
        self.synthesizer = ResponseSynthesizer(CacheSettings.from_config(config))

        get = config.get if config else (lambda key, default=None: default)
        self.user_agent: Optional[str] = get('renderer.user_agent')
        self.navigation_timeout = float(get('renderer.navigation_timeout', self.DEFAULT_NAVIGATION_TIMEOUT))
        self.remove_scripts = bool(get('cleanup.remove_scripts', True))
        self.status_meta_name = get('markers.status_meta_name', DEFAULT_STATUS_META_NAME)
        self.header_meta_name = get('markers.header_meta_name', DEFAULT_HEADER_META_NAME)
        self.disable_cache = bool(get('cache.disabled', False))

        logger.info(
            f"RenderManager initialized: remote_hosts={self.security_policy.allow_remote_hosts}, "
            f"max_wait={self.readiness_settings.max_wait}s, navigation_timeout={self.navigation_timeout}s"
        )

    async def handle(self, target_url: Optional[str], request_host: str, client_id: str = "unknown") -> SynthesizedResponse:
        """
        Validates, renders and synthesizes the response for one render request.

        Args:
            target_url (Optional[str]): The `url` query parameter as received.
            request_host (str): Host header of the inbound request.
            client_id (str): Identifies the caller in logs.

        Returns:
            SynthesizedResponse: Status, headers and body to send back.

        Raises:
            InvalidInputError: Missing or malformed URL.
            SecurityRejectedError: Target refused by the security policy.
            RenderFailedError: Navigation or any other failure during the render.
        """
        validation = validate_target_url(target_url, request_host, self.security_policy)
        if not validation.approved:
            logger.warning(f"Rejected render target {target_url!r} from {client_id}: {validation.reason.value} ({validation.detail})")
            validation.raise_for_rejection()

        request = RenderRequest(target_url=target_url.strip(), client_id=client_id, disable_cache=self.disable_cache)
        result = await self.render(request)
        response = self.synthesizer.synthesize(result, disable_cache=request.disable_cache)
        logger.info(
            f"Served {request.target_url} to {client_id}: status={response.status_code}, "
            f"bytes={result.size}, ready={result.ready_reason.value if result.ready_reason else 'n/a'}"
        )
        return response

    async def render(self, request: RenderRequest) -> RenderResult:
        """
        Renders one page in a fresh tab of the shared browser session.

        Navigation waits for the DOM to be parsed only; the readiness detector then
        decides when asynchronous rendering is finished. Its deadline never fails the
        render, while a navigation failure or timeout does.

        Args:
            request (RenderRequest): The validated render request.

        Returns:
            RenderResult: Cleaned markup, markers and render statistics.

        Raises:
            NavigationFailedError: The target was unreachable or navigation timed out.
            RenderFailedError: The session could not be obtained, or anything else failed.
        """
        url = request.target_url
        started = time.monotonic()
        logger.info(f"Rendering {url} for {request.client_id}")

        try:
            session = await self.session_manager.acquire()
            render_page = await self.session_manager.new_page(session, self.user_agent)
        except SessionError as e:
            raise RenderFailedError("Browser session unavailable", url, time.monotonic() - started, e)
        except Exception as e:
            logger.error(f"Failed to open a page for {url}: {e}", exc_info=True)
            raise RenderFailedError("Failed to open a browser page", url, time.monotonic() - started, e)

        try:
            page = render_page.page
            interceptor = RequestInterceptor.from_config(self.config)
            await interceptor.attach(page)

            try:
                await page.goto(url, wait_until='domcontentloaded', timeout=self.navigation_timeout * 1000)
            except Exception as e:
                elapsed = time.monotonic() - started
                logger.error(f"Navigation failed for {url} after {elapsed:.2f}s: {e}")
                raise NavigationFailedError("Navigation failed", url, elapsed, e)

            outcome = await ReadinessDetector(self.readiness_settings).wait(page, interceptor.tracker, url)
            html = await page.content()

            processor = MarkupProcessor(html, self.status_meta_name, self.header_meta_name)
            status_marker = processor.status_marker()
            redirect_marker = processor.redirect_marker()
            removed = 0
            if self.remove_scripts:
                html, removed = processor.strip_scripts()

            render_time = time.monotonic() - started
            result = RenderResult(
                html=html,
                size=len(html.encode('utf-8')),
                status_marker=status_marker,
                redirect_marker=redirect_marker,
                removed_elements=removed,
                ready_reason=outcome.reason,
                render_time=render_time,
                blocked_requests=interceptor.tracker.blocked_count,
            )
            logger.info(
                f"Rendered {url} in {render_time:.2f}s: {result.size} bytes, "
                f"{removed} element(s) removed, {result.blocked_requests} request(s) blocked"
            )
            return result
        except RenderFailedError:
            raise
        except Exception as e:
            elapsed = time.monotonic() - started
            logger.error(f"Render failed for {url} after {elapsed:.2f}s: {e}", exc_info=True)
            raise RenderFailedError("Unexpected failure while rendering", url, elapsed, e)
        finally:
            await render_page.close()

    async def close(self) -> None:
        """Shuts down the browser session."""
        await self.session_manager.close()
