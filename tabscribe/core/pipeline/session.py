"""Recording session state machine owning the tab stream, recorder and passthrough."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, List, Optional

import numpy as np

from ...data.models import SessionState, TabContext
from ...logging import get_logger
from ..audio.base import AudioCapture, AudioPassthrough, CaptureInfo, NoAudioError, TabAudioSource
from .recorder import FragmentRecorder, Sleep

if TYPE_CHECKING:  # pragma: no cover
    from .scheduler import ChunkScheduler

LOGGER = get_logger(__name__)


def _release(action: Callable[[], None], what: str) -> None:
    try:
        action()
    except Exception as exc:
        LOGGER.warning("Ignoring failure while releasing %s: %s", what, exc)


class RecordingSession:
    """One capture of one tab.

    IDLE -> STARTING -> CAPTURING -> STOPPING -> IDLE. Failures while starting
    or capturing return to IDLE through :meth:`cleanup`.
    """

    def __init__(
        self,
        tab: TabContext,
        source: TabAudioSource,
        scheduler: "ChunkScheduler",
        *,
        fragment_seconds: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.tab = tab
        self.state = SessionState.IDLE
        self.started_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.capture_info: Optional[CaptureInfo] = None
        self.fragment_seconds = fragment_seconds
        self._source = source
        self._scheduler = scheduler
        self._sleep = sleep
        self._capture: Optional[AudioCapture] = None
        self._recorder: Optional[FragmentRecorder] = None
        self._passthrough: Optional[AudioPassthrough] = None
        self._buffer: List[np.ndarray] = []
        self._stop_task: Optional[asyncio.Task] = None

    @property
    def tab_id(self) -> str:
        return self.tab.tab_id

    @property
    def sample_rate(self) -> int:
        return self.capture_info.sample_rate if self.capture_info else 0

    @property
    def channels(self) -> int:
        return self.capture_info.channels if self.capture_info else 0

    @property
    def buffered_fragments(self) -> int:
        return len(self._buffer)

    def _transition(self, state: SessionState) -> None:
        if state is not self.state:
            LOGGER.debug("Session for tab %s: %s -> %s", self.tab_id, self.state.value, state.value)
            self.state = state

    async def start(self) -> None:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"Cannot start a session in state {self.state.value}")

        self._transition(SessionState.STARTING)
        LOGGER.info("Requesting tab capture for tab %s", self.tab_id)
        try:
            capture = self._source.open(self.tab)
            self._capture = capture
            capture.start()
            if not capture.info.channels:
                raise NoAudioError("No audio stream captured - tab may not have audio")
        except Exception as exc:
            self.last_error = str(exc)
            LOGGER.error("Failed to start capture for tab %s: %s", self.tab_id, exc)
            self.cleanup()
            raise

        self.capture_info = CaptureInfo(
            name=capture.info.name,
            sample_rate=capture.info.sample_rate,
            channels=capture.info.channels,
            device=capture.info.device,
        )
        self._open_passthrough(capture)
        self._recorder = FragmentRecorder(
            capture,
            self._on_fragment,
            timeslice=self.fragment_seconds,
            on_error=self._on_recorder_error,
            sleep=self._sleep,
        )
        self.started_at = datetime.now(timezone.utc)
        self._transition(SessionState.CAPTURING)
        self._recorder.start()
        self._scheduler.start(self)
        LOGGER.info(
            "Capturing tab %s at %s Hz, %s channel(s)",
            self.tab_id,
            self.capture_info.sample_rate,
            self.capture_info.channels,
        )

    def _open_passthrough(self, capture: AudioCapture) -> None:
        try:
            passthrough = self._source.passthrough_for(capture)
            if passthrough is not None:
                passthrough.start()
        except Exception as exc:
            LOGGER.warning("Could not set up audio passthrough: %s", exc)
            return
        self._passthrough = passthrough

    def _close_passthrough(self) -> None:
        passthrough, self._passthrough = self._passthrough, None
        if passthrough is not None:
            _release(passthrough.close, "audio passthrough")

    def _on_fragment(self, fragment: np.ndarray) -> None:
        self._buffer.append(fragment)
        if self._passthrough is None:
            return
        try:
            self._passthrough.feed(fragment)
        except Exception as exc:
            LOGGER.warning("Audio passthrough failed; disabling it: %s", exc)
            self._close_passthrough()

    def _on_recorder_error(self, exc: Exception) -> None:
        self.last_error = f"Recorder error: {exc}"
        if self.state is SessionState.CAPTURING and self._stop_task is None:
            self._stop_task = asyncio.get_running_loop().create_task(self.stop())
            self._stop_task.add_done_callback(self._log_stop_outcome)

    def _log_stop_outcome(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Stopping tab %s after a recorder error failed: %s", self.tab_id, exc)

    def take_buffer(self) -> List[np.ndarray]:
        """Return the fragments gathered since the last cut and clear the buffer."""

        fragments, self._buffer = self._buffer, []
        return fragments

    async def stop(self) -> None:
        if self.state is not SessionState.CAPTURING:
            self.cleanup()
            return

        self._transition(SessionState.STOPPING)
        LOGGER.info("Stopping capture for tab %s", self.tab_id)
        try:
            self._scheduler.cancel()
            if self._recorder is not None:
                await self._recorder.stop()
            self._finalize()
        finally:
            self.cleanup()

    def _finalize(self) -> None:
        segment = self._scheduler.finish()
        if segment is None:
            LOGGER.info("No buffered audio left for tab %s", self.tab_id)
        else:
            LOGGER.info("Final segment %s cut for tab %s", segment.sequence_number, self.tab_id)

    def cleanup(self) -> None:
        """Release every handle and return to IDLE; safe to call repeatedly."""

        _release(self._scheduler.cancel, "chunk timer")
        recorder, self._recorder = self._recorder, None
        if recorder is not None:
            _release(recorder.abort, "recorder")
        self._close_passthrough()
        capture, self._capture = self._capture, None
        if capture is not None:
            _release(capture.stop, "capture tracks")
            _release(capture.close, "capture stream")
        self._buffer = []
        self._transition(SessionState.IDLE)


__all__ = ["RecordingSession"]
