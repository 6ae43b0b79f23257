"""
Manages the long-lived Playwright browser session used for rendering.

This module provides the `SessionManager` class, which owns exactly one browser
session for the whole process, health-checks it before handing it out, recreates
it when it has died, and isolates every render in a fresh browser context and tab
(`RenderPage`). Acquisition is serialized with an `asyncio.Lock`, so concurrent
requests arriving while a browser is being launched wait for and share that
browser instead of each launching their own.
"""
import asyncio
import time
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from prerender_service.core.exceptions import RendererError, SessionError
from prerender_service.core.logger import get_logger

if TYPE_CHECKING:
    from prerender_service.core.config import ConfigurationManager

logger = get_logger(__name__)

SUPPORTED_BROWSER_TYPES = ('chromium', 'firefox', 'webkit')

# Flags for constrained hosts (containers, serverless sandboxes) where the
# Chromium sandbox and /dev/shm are unavailable.
PRODUCTION_CHROMIUM_ARGS: List[str] = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--single-process',
    '--no-zygote',
]


class BrowserSession:
    """
    Handle to one running browser engine instance.

    A session is never repaired in place: when it fails a health check the
    `SessionManager` closes it and creates a new one.

    Attributes:
        playwright (Playwright): The Playwright driver that launched the browser.
        browser (Browser): The launched browser.
        browser_type (str): 'chromium', 'firefox' or 'webkit'.
        created_at (float): Epoch seconds when the session was created.
    """
    def __init__(self, playwright: Playwright, browser: Browser, browser_type: str):
        self.playwright = playwright
        self.browser = browser
        self.browser_type = browser_type
        self.created_at = time.time()

    @property
    def is_connected(self) -> bool:
        return self.browser.is_connected()

    async def probe(self) -> None:
        """
        Performs a lightweight round trip to the browser process.

        Chromium is asked for its list of open targets over CDP; other engines open
        and close an empty context.
        """
        if self.browser_type == 'chromium':
            cdp_session = await self.browser.new_browser_cdp_session()
            try:
                await cdp_session.send("Target.getTargets")
            finally:
                await cdp_session.detach()
        else:
            context = await self.browser.new_context()
            await context.close()

    async def close(self) -> None:
        """Closes the browser and stops the Playwright driver, logging (not raising) errors."""
        try:
            await self.browser.close()
            logger.info(f"{self.browser_type} browser closed.")
        except Exception as e:
            logger.warning(f"Error closing {self.browser_type} browser (ignored): {e}")
        try:
            await self.playwright.stop()
        except Exception as e:
            logger.warning(f"Error stopping Playwright (ignored): {e}")


class RenderPage:
    """
    A single isolated tab used for exactly one render.

    Each page lives in its own browser context, so cookies and storage never leak
    between renders.
    """
    def __init__(self, context: BrowserContext, page: Page):
        self.context = context
        self.page = page

    async def close(self) -> None:
        try:
            await self.context.close()
        except Exception as e:
            logger.warning(f"Error closing render page context: {e}")


class SessionManager:
    """
    Owner of the process-wide browser session.

    Usable as an asynchronous context manager: entering warms up the browser,
    exiting closes it.

    Attributes:
        browser_type (str): The type of browser to launch.
        production (bool): True selects the constrained production launch profile.
        executable_path (Optional[str]): Browser binary to launch instead of Playwright's bundled one.
        debug_visible (bool): Launch a visible window in the development profile.
        skip_health_check (bool): Only check transport connectivity, never probe the browser.
        probe_timeout (float): Seconds allowed for the health probe.
    """
    DEFAULT_BROWSER_TYPE = 'chromium'
    DEFAULT_PROBE_TIMEOUT = 2.0

    def __init__(self, config: Optional['ConfigurationManager'] = None):
        """
        Initializes the SessionManager. No browser is launched until `acquire()`.

        Args:
            config (Optional[ConfigurationManager]): Source of the `session.*` settings
                and of the deployment mode. If None, development defaults are used.

        Raises:
            RendererError: If an unsupported browser type is configured.
        """
        if config:
            self.browser_type = config.get('session.browser_type', self.DEFAULT_BROWSER_TYPE)
            self.production = config.is_production
            self.executable_path = config.get('session.executable_path')
            self.debug_visible = bool(config.get('session.debug_visible', False))
            self.skip_health_check = bool(config.get('session.skip_health_check', False))
            self.probe_timeout = float(config.get('session.probe_timeout', self.DEFAULT_PROBE_TIMEOUT))
        else:
            self.browser_type = self.DEFAULT_BROWSER_TYPE
            self.production = False
            self.executable_path = None
            self.debug_visible = False
            self.skip_health_check = False
            self.probe_timeout = self.DEFAULT_PROBE_TIMEOUT

        if self.browser_type not in SUPPORTED_BROWSER_TYPES:
            logger.error(f"Unsupported browser type configured: {self.browser_type}")
            raise RendererError(f"Unsupported browser type: {self.browser_type}. Must be 'chromium', 'firefox', or 'webkit'.")

        self._session: Optional[BrowserSession] = None
        self._lock = asyncio.Lock()
        logger.info(
            f"SessionManager configured: browser={self.browser_type}, "
            f"profile={'production' if self.production else 'development'}, "
            f"skip_health_check={self.skip_health_check}"
        )

    async def __aenter__(self) -> 'SessionManager':
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def launch_options(self) -> Dict[str, Any]:
        """
        Returns the keyword arguments for `BrowserType.launch()` of the active profile.
        """
        if self.production:
            options: Dict[str, Any] = {"headless": True}
            if self.browser_type == 'chromium':
                options["args"] = list(PRODUCTION_CHROMIUM_ARGS)
        else:
            options = {"headless": not self.debug_visible}
        if self.executable_path:
            options["executable_path"] = self.executable_path
        return options

    async def acquire(self) -> BrowserSession:
        """
        Returns a healthy browser session, launching or replacing it as needed.

        Raises:
            SessionError: If a new browser cannot be launched. Creation is attempted
                          once per call; the caller treats this as a failed render.
        """
        async with self._lock:
            session = self._session
            if session is not None:
                if await self._is_healthy(session):
                    return session
                logger.warning("Browser session failed its health check; recreating it.")
                self._session = None
                await session.close()

            self._session = await self._create_session()
            return self._session

    async def new_page(self, session: BrowserSession, user_agent: Optional[str] = None) -> RenderPage:
        """
        Opens a fresh, isolated tab inside the given session.

        Service workers are blocked so that every sub-resource request passes through
        the page's request interception.

        Args:
            session (BrowserSession): The session returned by `acquire()`.
            user_agent (Optional[str]): User agent for outbound navigation; browser default if None.

        Returns:
            RenderPage: The new page. The caller must `close()` it.
        """
        context_options: Dict[str, Any] = {"service_workers": "block"}
        if user_agent:
            context_options["user_agent"] = user_agent
        context = await session.browser.new_context(**context_options)
        try:
            page = await context.new_page()
        except Exception:
            await context.close()
            raise
        return RenderPage(context, page)

    async def close(self) -> None:
        """Closes the current session, if any. Safe to call more than once."""
        async with self._lock:
            session, self._session = self._session, None
        if session is not None:
            await session.close()

    def status(self) -> Dict[str, Any]:
        """Reports the current session state without launching or probing anything."""
        session = self._session
        if session is None:
            return {"browser_type": self.browser_type, "active": False, "connected": False, "created_at": None}
        return {
            "browser_type": self.browser_type,
            "active": True,
            "connected": session.is_connected,
            "created_at": session.created_at,
        }

    async def _is_healthy(self, session: BrowserSession) -> bool:
        if not session.is_connected:
            logger.warning("Browser session reports itself disconnected.")
            return False
        if self.skip_health_check:
            return True
        try:
            await asyncio.wait_for(session.probe(), timeout=self.probe_timeout)
        except Exception as e:
            logger.warning(f"Browser health probe failed within {self.probe_timeout}s: {e!r}")
            return False
        return True

    async def _create_session(self) -> BrowserSession:
        options = self.launch_options()
        logger.info(f"Launching {self.browser_type} browser (headless={options.get('headless')}).")
        playwright: Optional[Playwright] = None
        try:
            playwright = await async_playwright().start()
            browser_launcher = getattr(playwright, self.browser_type)
            browser = await browser_launcher.launch(**options)
        except Exception as e:
            logger.error(f"Failed to initialize Playwright or launch browser {self.browser_type}: {e}", exc_info=True)
            if playwright:
                try:
                    await playwright.stop()
                except Exception as stop_e:
                    logger.error(f"Error stopping Playwright after failed launch: {stop_e}", exc_info=True)
            raise SessionError(f"Failed to initialize Playwright or launch browser {self.browser_type}: {e}")
        logger.info(f"{self.browser_type} browser launched successfully.")
        return BrowserSession(playwright, browser, self.browser_type)
