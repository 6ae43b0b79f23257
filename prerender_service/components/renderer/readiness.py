"""
Readiness detection for asynchronously rendered pages.

After navigation returns, the `ReadinessDetector` polls the page until one of three
conditions ends the wait:

- the hard deadline elapsed (always wins);
- the page declared a boolean readiness flag and set it to true (explicit-ready mode);
- the page never touched the flag, nothing is in flight and the network has been
  quiet for the settle time (idle-network mode).

Once a page has set the flag at all, network settlement no longer counts: a page
that sets the flag to false and never to true waits for the full deadline.

The decision itself is the pure function `evaluate()`; the detector only feeds it
fresh observations on a timer.
"""
import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

from playwright.async_api import Page

from prerender_service.components.renderer.request_interceptor import RequestTracker
from prerender_service.core.logger import get_logger

if TYPE_CHECKING:
    from prerender_service.core.config import ConfigurationManager

logger = get_logger(__name__)


class ReadyFlag(Enum):
    """Result of evaluating the in-page readiness flag."""
    UNUSED = "unused"
    FALSE = "false"
    TRUE = "true"

    @classmethod
    def from_js(cls, value: Any) -> 'ReadyFlag':
        if value is True:
            return cls.TRUE
        if value is False:
            return cls.FALSE
        return cls.UNUSED


class DoneReason(str, Enum):
    DEADLINE = "deadline"
    EXPLICIT_READY = "explicit-ready"
    NETWORK_IDLE = "network-idle"


@dataclass(frozen=True)
class ReadinessSettings:
    """
    Timing knobs of the readiness wait, all in seconds.

    Attributes:
        max_wait (float): Hard deadline for the whole wait.
        settle_time (float): Quiet period required by idle-network mode.
        poll_interval (float): Delay between evaluations.
        report_after (float): Start logging pending requests after this long.
        report_every (float): Interval between pending-request reports.
        flag_name (str): Global variable the page uses as its readiness flag.
    """
    max_wait: float = 10.0
    settle_time: float = 0.5
    poll_interval: float = 0.1
    report_after: float = 2.0
    report_every: float = 1.0
    flag_name: str = "prerenderReady"

    @classmethod
    def from_config(cls, config: Optional['ConfigurationManager']) -> 'ReadinessSettings':
        if config is None:
            return cls()
        defaults = cls()
        return cls(
            max_wait=float(config.get("readiness.max_wait", defaults.max_wait)),
            settle_time=float(config.get("readiness.settle_time", defaults.settle_time)),
            poll_interval=float(config.get("readiness.poll_interval", defaults.poll_interval)),
            report_after=float(config.get("readiness.report_after", defaults.report_after)),
            report_every=float(config.get("readiness.report_every", defaults.report_every)),
            flag_name=str(config.get("readiness.flag_name", defaults.flag_name)),
        )


@dataclass
class ReadinessState:
    """
    Observations accumulated across the polling loop.

    Attributes:
        ready_flag (ReadyFlag): Sticky: never returns to UNUSED once the page engaged with the flag.
        in_flight (int): Allowed requests that have not finished or failed.
        last_activity (float): Clock time of the most recent request completion.
        now (float): Clock time of the current observation.
        elapsed (float): Seconds since polling started.
    """
    ready_flag: ReadyFlag = ReadyFlag.UNUSED
    in_flight: int = 0
    last_activity: float = 0.0
    now: float = 0.0
    elapsed: float = 0.0

    def observe_flag(self, flag: ReadyFlag) -> None:
        if flag is ReadyFlag.UNUSED and self.ready_flag is not ReadyFlag.UNUSED:
            return
        self.ready_flag = flag

    @property
    def quiet_for(self) -> float:
        return self.now - self.last_activity


@dataclass(frozen=True)
class ReadinessOutcome:
    reason: DoneReason
    elapsed: float
    ready_flag: ReadyFlag


def evaluate(state: ReadinessState, settings: ReadinessSettings) -> Optional[DoneReason]:
    """
    Decides whether the wait is over.

    Returns:
        Optional[DoneReason]: Why the wait ended, or None to keep polling.
    """
    if state.elapsed >= settings.max_wait:
        return DoneReason.DEADLINE
    if state.ready_flag is ReadyFlag.TRUE:
        return DoneReason.EXPLICIT_READY
    if state.ready_flag is ReadyFlag.FALSE:
        return None
    if state.in_flight == 0 and state.quiet_for >= settings.settle_time:
        return DoneReason.NETWORK_IDLE
    return None


def is_done(state: ReadinessState, settings: ReadinessSettings) -> bool:
    return evaluate(state, settings) is not None


class ReadinessDetector:
    """
    Runs the polling loop for one page.

    The clock and sleep functions are injectable so the loop can be driven by a fake
    clock in tests.
    """
    def __init__(
        self,
        settings: ReadinessSettings,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self._clock = clock
        self._sleep = sleep
        self._flag_script = (
            f"() => {{ const v = window[{settings.flag_name!r}]; "
            f"return typeof v === 'boolean' ? v : null; }}"
        )

    async def probe_flag(self, page: Page, timeout: float) -> Optional[ReadyFlag]:
        """
        Evaluates the readiness flag in the page.

        Returns:
            Optional[ReadyFlag]: The flag state, or None if the page could not be evaluated
                                 (navigating, context destroyed, or too slow).
        """
        try:
            value = await asyncio.wait_for(page.evaluate(self._flag_script), timeout=max(timeout, 0.001))
        except Exception as e:
            logger.debug(f"Readiness flag probe failed: {e!r}")
            return None
        return ReadyFlag.from_js(value)

    async def wait(self, page: Page, tracker: RequestTracker, url: str = "") -> ReadinessOutcome:
        """
        Polls until the page is ready or the deadline passes. Never raises on timeout.

        Args:
            page (Page): The page being rendered; navigation has already returned.
            tracker (RequestTracker): The interceptor's accounting for this page.
            url (str): Target URL, for log messages only.

        Returns:
            ReadinessOutcome: Which condition ended the wait and after how long.
        """
        settings = self.settings
        started = self._clock()
        state = ReadinessState()
        next_report = settings.report_after

        while True:
            remaining = settings.max_wait - (self._clock() - started)
            flag = await self.probe_flag(page, remaining)
            if flag is not None:
                state.observe_flag(flag)

            state.now = self._clock()
            state.elapsed = state.now - started
            state.in_flight = tracker.in_flight
            state.last_activity = tracker.last_activity

            reason = evaluate(state, settings)
            if reason is not None:
                logger.info(
                    f"Page ready ({reason.value}) after {state.elapsed:.2f}s: {url} "
                    f"[flag={state.ready_flag.value}, in_flight={state.in_flight}, blocked={tracker.blocked_count}]"
                )
                return ReadinessOutcome(reason, state.elapsed, state.ready_flag)

            if state.in_flight > 0 and state.elapsed >= next_report:
                logger.info(
                    f"Still waiting on {state.in_flight} request(s) after {state.elapsed:.1f}s for {url}: "
                    f"{tracker.pending_urls()}"
                )
                next_report = state.elapsed + settings.report_every

            await self._sleep(min(settings.poll_interval, settings.max_wait - state.elapsed))
