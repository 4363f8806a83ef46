"""Session controller binding a recording session and its scheduler to one tab."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Optional

from ...data.models import (
    SegmentFailure,
    SessionConfig,
    SessionState,
    SessionStatus,
    TabContext,
    TranscriptionResult,
)
from ...logging import get_logger
from ...services.transcription.base import Dispatcher
from ..audio.base import CaptureError, CapturePermissionError, NoAudioError, TabAudioSource
from .recorder import Sleep
from .scheduler import ChunkScheduler
from .session import RecordingSession

LOGGER = get_logger(__name__)


class StartFailure(str, Enum):
    NO_AUDIO = "no_audio"
    PERMISSION_DENIED = "permission_denied"
    ALREADY_CAPTURING = "already_capturing"
    CAPTURE_FAILED = "capture_failed"


class SessionStartError(RuntimeError):
    """Raised when a session cannot be started; ``kind`` tells why."""

    def __init__(self, kind: StartFailure, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class SessionController:
    """High-level coordinator exposing start/stop/status for one tab at a time."""

    def __init__(
        self,
        source: TabAudioSource,
        dispatcher: Dispatcher,
        config: Optional[SessionConfig] = None,
        *,
        on_result: Optional[Callable[[TranscriptionResult], None]] = None,
        on_error: Optional[Callable[[SegmentFailure], None]] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.source = source
        self.dispatcher = dispatcher
        self.config = config or SessionConfig()
        self._on_result = on_result
        self._on_error = on_error
        self._sleep = sleep
        self._session: Optional[RecordingSession] = None
        self._scheduler: Optional[ChunkScheduler] = None
        self._last_error: Optional[str] = None
        self._last_status = SessionStatus(tab_id=None, state=SessionState.IDLE)

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    async def start(self, tab_id: str | int, tab: Optional[TabContext] = None) -> RecordingSession:
        tab = tab or TabContext(tab_id=str(tab_id))
        current = self._session
        if current is not None and current.state is not SessionState.IDLE:
            if current.tab_id == tab.tab_id and current.state is SessionState.CAPTURING:
                LOGGER.info("Tab %s is already capturing; returning the existing session", tab.tab_id)
                return current
            raise self._start_failed(
                StartFailure.ALREADY_CAPTURING,
                f"Already capturing tab {current.tab_id}",
            )

        self._last_error = None
        scheduler = ChunkScheduler(
            self.dispatcher,
            self.config,
            on_result=self._on_result,
            on_error=self._handle_failure,
            sleep=self._sleep,
        )
        session = RecordingSession(
            tab,
            self.source,
            scheduler,
            fragment_seconds=self.config.fragment_seconds,
            sleep=self._sleep,
        )
        try:
            await session.start()
        except CaptureError as exc:
            self._session = None
            self._scheduler = None
            self._last_status = SessionStatus(tab_id=tab.tab_id, state=session.state, last_error=str(exc))
            if isinstance(exc, NoAudioError):
                kind = StartFailure.NO_AUDIO
            elif isinstance(exc, CapturePermissionError):
                kind = StartFailure.PERMISSION_DENIED
            else:
                kind = StartFailure.CAPTURE_FAILED
            raise self._start_failed(kind, str(exc)) from exc

        self._session = session
        self._scheduler = scheduler
        return session

    async def stop(self, *, drain: bool = True) -> SessionStatus:
        """Drive the session to IDLE and report what it produced.

        With ``drain`` the call also waits for in-flight dispatches so the
        report counts their results and failures.
        """

        session, scheduler = self._session, self._scheduler
        if session is None or scheduler is None:
            return self._last_status

        await session.stop()
        if drain:
            await scheduler.wait_for_pending()
        self._last_status = self._snapshot(session, scheduler)
        self._session = None
        self._scheduler = None
        LOGGER.info(
            "Session for tab %s stopped: %s segment(s), %s result(s), %s failure(s)",
            session.tab_id,
            self._last_status.segments_dispatched,
            self._last_status.results_received,
            len(self._last_status.failures),
        )
        return self._last_status

    def status(self) -> SessionStatus:
        if self._session is None or self._scheduler is None:
            return self._last_status
        return self._snapshot(self._session, self._scheduler)

    def _snapshot(self, session: RecordingSession, scheduler: ChunkScheduler) -> SessionStatus:
        return SessionStatus(
            tab_id=session.tab_id,
            state=session.state,
            started_at=session.started_at,
            segments_dispatched=scheduler.segments_dispatched,
            results_received=scheduler.results_received,
            failures=list(scheduler.failures),
            last_error=session.last_error or self._last_error,
        )

    def _handle_failure(self, failure: SegmentFailure) -> None:
        self._last_error = failure.message
        self._notify(failure)

    def _start_failed(self, kind: StartFailure, message: str) -> SessionStartError:
        LOGGER.error("Could not start capture (%s): %s", kind.value, message)
        self._notify(SegmentFailure(sequence_number=None, message=message, details=kind.value))
        return SessionStartError(kind, message)

    def _notify(self, failure: SegmentFailure) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(failure)
        except Exception:  # pragma: no cover - callbacks should not break pipeline
            LOGGER.exception("Failure callback raised an exception")


__all__ = [
    "SessionController",
    "SessionStartError",
    "StartFailure",
]
