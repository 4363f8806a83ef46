"""Fragment recorder draining a live capture on the event loop."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

import numpy as np

from ...logging import get_logger
from ..audio.base import AudioCapture

LOGGER = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class FragmentRecorder:
    """Emit buffered capture data as fragments every ``timeslice`` seconds.

    The capture fills a thread-safe queue from its audio callback; the
    recorder only ever reads it from the event loop, so fragment delivery
    never races with timer-driven cuts.
    """

    def __init__(
        self,
        capture: AudioCapture,
        on_fragment: Callable[[np.ndarray], None],
        *,
        timeslice: float = 1.0,
        on_error: Optional[Callable[[Exception], None]] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.capture = capture
        self.timeslice = timeslice
        self._on_fragment = on_fragment
        self._on_error = on_error
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def recording(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            while True:
                await self._sleep(self.timeslice)
                self.flush()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.exception("Recorder failed while reading %s", self.capture.info.name)
            if self._on_error is not None:
                self._on_error(exc)

    def flush(self) -> int:
        """Deliver every fragment currently available and return how many."""

        delivered = 0
        while True:
            fragment = self.capture.read(timeout=0)
            if fragment is None:
                break
            data = np.asarray(fragment, dtype=np.float32)
            if data.size == 0:
                continue
            self._on_fragment(data)
            delivered += 1
        return delivered

    async def stop(self) -> None:
        """Stop the drain loop and deliver whatever the capture still holds."""

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        try:
            delivered = self.flush()
        except Exception as exc:
            LOGGER.warning("Final drain of %s failed: %s", self.capture.info.name, exc)
        else:
            LOGGER.debug("Final drain delivered %s fragment(s)", delivered)

    def abort(self) -> None:
        """Cancel the drain loop without a final drain."""

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()


__all__ = ["FragmentRecorder"]
