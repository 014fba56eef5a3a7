"""Capture completion orchestration.

This module provides the CompletionOrchestrator, the state machine that
decides the single moment at which a loading page is serialized. It reacts
to two independent readiness signals from the engine (initial layout done,
load finished) and two timers (post-readiness delay, absolute timeout), and
triggers the SerializationDispatcher exactly once.

All callbacks run on the asyncio event loop thread, one at a time, so the
``fired`` flag is a plain sequential guard.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..models.capture import CaptureRequest, FireTrigger
from .dispatcher import SerializationDispatcher

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    """Orchestrator states."""
    LOADING = "loading"
    BOTH_READY = "both_ready"
    DELAY_PENDING = "delay_pending"
    FIRED = "fired"


@dataclass
class CaptureSession:
    """Mutable runtime state for one in-flight capture."""
    page: Any
    state: CaptureState = CaptureState.LOADING
    layout_ready: bool = False
    load_complete: bool = False
    load_ok: Optional[bool] = None
    fired: bool = False
    trigger: Optional[FireTrigger] = None
    delay_timer: Optional[asyncio.TimerHandle] = None
    timeout_timer: Optional[asyncio.TimerHandle] = None


class CompletionOrchestrator:
    """Decides when to snapshot a page and drives the export once."""

    def __init__(
        self,
        page: Any,
        request: CaptureRequest,
        dispatcher: Optional[SerializationDispatcher] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """Initialize orchestrator.

        Args:
            page: Page handle passed to the dispatcher when the snapshot fires
            request: Capture request (delay, timeout, output format and path)
            dispatcher: Export dispatcher (defaults to one using the request's min width)
            loop: Event loop for timers (defaults to the running loop at start())
        """
        self.request = request
        self.dispatcher = dispatcher or SerializationDispatcher(min_width=request.min_width)
        self.session = CaptureSession(page=page)
        self._loop = loop
        self._done: Optional[asyncio.Future] = None
        self._export_task: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None
        self._fired_at: Optional[float] = None

    @property
    def state(self) -> CaptureState:
        return self.session.state

    @property
    def fired(self) -> bool:
        return self.session.fired

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def start(self) -> None:
        """Begin the session and arm the absolute timeout, if any."""
        if self._done is not None:
            logger.warning("Orchestrator already started")
            return

        self._done = self.loop.create_future()
        self._started_at = self.loop.time()

        if self.request.timeout_enabled:
            self.session.timeout_timer = self.loop.call_later(
                self.request.max_wait_ms / 1000.0,
                self._on_timeout,
            )
            logger.debug(f"Timeout armed for {self.request.max_wait_ms}ms")

    def on_layout_ready(self, *_: Any) -> None:
        """Engine reports that the initial layout is complete."""
        if self.session.fired:
            return
        self.session.layout_ready = True
        logger.debug("Initial layout completed")
        self._check_both_ready()

    def on_load_complete(self, success: bool = True) -> None:
        """Engine reports that loading finished, successfully or not.

        The success flag is recorded but does not gate the capture.
        """
        if self.session.fired:
            return
        self.session.load_complete = True
        if self.session.load_ok is None or not success:
            self.session.load_ok = success
        if success:
            logger.debug("Document load completed")
        else:
            logger.warning(f"Load of {self.request.url} did not succeed; capturing what rendered")
        self._check_both_ready()

    def _check_both_ready(self) -> None:
        if self.session.state != CaptureState.LOADING:
            return
        if self.session.layout_ready and self.session.load_complete:
            self.session.state = CaptureState.BOTH_READY
            self.try_advance()

    def try_advance(self) -> None:
        """Fire now, or after the configured delay."""
        if self.session.fired:
            return

        if self.request.delay_ms <= 0:
            self.fire_snapshot(FireTrigger.READY)
            return

        self.session.delay_timer = self.loop.call_later(
            self.request.delay_ms / 1000.0,
            self._on_delay,
        )
        self.session.state = CaptureState.DELAY_PENDING
        logger.debug(f"Snapshot delayed by {self.request.delay_ms}ms")

    def _on_delay(self) -> None:
        self.session.delay_timer = None
        self.fire_snapshot(FireTrigger.DELAY)

    def _on_timeout(self) -> None:
        self.session.timeout_timer = None
        if not self.session.fired:
            logger.warning(f"Load did not settle within {self.request.max_wait_ms}ms; capturing current state")
        self.fire_snapshot(FireTrigger.TIMEOUT)

    def fire_snapshot(self, trigger: FireTrigger = FireTrigger.READY) -> None:
        """Start the export; every call after the first is a no-op."""
        if self.session.fired:
            return

        self.session.fired = True
        self.session.trigger = trigger
        self.session.state = CaptureState.FIRED
        self._fired_at = self.loop.time()
        self._cancel_timers()

        if self._done is None:
            self._done = self.loop.create_future()

        logger.info(f"Taking snapshot ({trigger.value})")
        self._export_task = self.loop.create_task(
            self.dispatcher.export(
                self.session.page,
                self.request.output_format,
                self.request.output_path,
            )
        )
        self._export_task.add_done_callback(self._on_export_done)

    def _cancel_timers(self) -> None:
        for name in ('delay_timer', 'timeout_timer'):
            handle = getattr(self.session, name)
            if handle is not None:
                handle.cancel()
                setattr(self.session, name, None)

    def _on_export_done(self, task: asyncio.Task) -> None:
        if self._done is None or self._done.done():
            return
        if task.cancelled():
            self._done.cancel()
        elif task.exception() is not None:
            self._done.set_exception(task.exception())
        else:
            self._done.set_result(self.session.trigger)

    async def wait(self) -> FireTrigger:
        """Wait until the snapshot has been written.

        Returns:
            The trigger that fired the snapshot

        Raises:
            ExportFailed: If the export failed
        """
        if self._done is None:
            raise RuntimeError("Orchestrator not started. Call start() first.")
        return await self._done

    def cancel(self) -> None:
        """Abandon the session; pending timers and exports are dropped."""
        self._cancel_timers()
        if self._export_task is not None and not self._export_task.done():
            self._export_task.cancel()
        if self._done is not None and not self._done.done():
            self._done.cancel()

    def elapsed_ms(self) -> Optional[float]:
        """Milliseconds from start() to the snapshot firing."""
        if self._started_at is None or self._fired_at is None:
            return None
        return (self._fired_at - self._started_at) * 1000

    def __repr__(self) -> str:
        return (
            f"CompletionOrchestrator(url={self.request.url}, "
            f"state={self.session.state.value}, fired={self.session.fired})"
        )
