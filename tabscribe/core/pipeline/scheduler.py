"""Chunk scheduler cutting the session buffer into sequenced segments."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, List, Optional, Set, TypeVar

from ...data.models import AudioSegment, SegmentFailure, SessionConfig, TranscriptionResult
from ...logging import get_logger
from ...services.transcription.base import Dispatcher
from ..audio.writers import encode_wav
from .recorder import Sleep

if TYPE_CHECKING:  # pragma: no cover
    from .session import RecordingSession

LOGGER = get_logger(__name__)

T = TypeVar("T")


class ChunkScheduler:
    """Cut the session buffer every ``config.chunk_seconds`` and dispatch it.

    Segments are cut and dispatched in strictly increasing sequence order;
    results complete in whatever order the dispatcher answers.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        config: SessionConfig,
        *,
        on_result: Optional[Callable[[TranscriptionResult], None]] = None,
        on_error: Optional[Callable[[SegmentFailure], None]] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.dispatcher = dispatcher
        self.config = config
        self.interval = config.chunk_seconds
        self.segments_dispatched = 0
        self.results_received = 0
        self.failures: List[SegmentFailure] = []
        self._on_result = on_result
        self._on_error = on_error
        self._sleep = sleep
        self._next_sequence = config.start_sequence
        self._session: Optional["RecordingSession"] = None
        self._timer: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._window = asyncio.Semaphore(config.max_in_flight) if config.max_in_flight > 0 else None

    @property
    def active(self) -> bool:
        return self._timer is not None

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def start(self, session: "RecordingSession") -> None:
        if self._timer is not None:
            return
        self._session = session
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    async def _run_timer(self) -> None:
        while True:
            await self._sleep(self.interval)
            if self._timer is None:
                return
            try:
                self.cut()
            except Exception:
                LOGGER.exception("Periodic cut failed; keeping the chunk timer running")

    def cancel(self) -> None:
        """Stop periodic cuts immediately; in-flight dispatches keep running."""

        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()

    def cut(self) -> Optional[AudioSegment]:
        """Turn the buffered fragments into the next segment, or do nothing if empty."""

        session = self._session
        if session is None:
            return None
        fragments = session.take_buffer()
        if not fragments or sum(len(fragment) for fragment in fragments) == 0:
            LOGGER.debug("Nothing buffered for tab %s; skipping cut", session.tab_id)
            return None

        segment = AudioSegment(
            payload=encode_wav(fragments, session.sample_rate, session.channels),
            sequence_number=self._next_sequence,
            captured_at=datetime.now(timezone.utc),
            tab=session.tab,
        )
        self._next_sequence += 1
        LOGGER.info(
            "Cut segment %s for tab %s (%s fragment(s), %s bytes)",
            segment.sequence_number,
            session.tab_id,
            len(fragments),
            segment.size,
        )
        self._launch(segment)
        return segment

    def finish(self) -> Optional[AudioSegment]:
        """Cancel the timer and cut whatever partial audio remains."""

        self.cancel()
        return self.cut()

    def _launch(self, segment: AudioSegment) -> None:
        self.segments_dispatched += 1
        task = asyncio.get_running_loop().create_task(self._dispatch(segment))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _dispatch(self, segment: AudioSegment) -> None:
        if self._window is None:
            await self._dispatch_now(segment)
            return
        async with self._window:
            await self._dispatch_now(segment)

    async def _dispatch_now(self, segment: AudioSegment) -> None:
        try:
            result = await self.dispatcher.dispatch(segment, self.config)
        except Exception as exc:
            failure = SegmentFailure(
                sequence_number=segment.sequence_number,
                message=str(exc),
                details=getattr(exc, "details", None),
            )
            self.failures.append(failure)
            LOGGER.warning("Segment %s failed: %s", segment.sequence_number, exc)
            self._notify(self._on_error, failure)
            return
        self.results_received += 1
        self._notify(self._on_result, result)

    def _notify(self, callback: Optional[Callable[[T], None]], payload: T) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:  # pragma: no cover - callbacks should not break pipeline
            LOGGER.exception("Segment callback raised an exception")

    async def wait_for_pending(self) -> None:
        """Wait until every dispatched segment has a result or a failure."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = ["ChunkScheduler"]
