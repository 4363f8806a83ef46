"""Shared fixtures: a manual clock and fake tab audio plumbing."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import os
from collections import deque
from typing import Deque, List, Optional

import numpy as np
import pytest

from tabscribe import config
from tabscribe.core.audio.base import AudioCapture, AudioPassthrough, CaptureInfo, TabAudioSource
from tabscribe.data.models import TabContext


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Ensure each test starts with a clean configuration environment."""

    for key in list(os.environ):
        if key.startswith("TABSCRIBE_"):
            monkeypatch.delenv(key, raising=False)
    config.reset_settings()
    yield
    config.reset_settings()


class ManualClock:
    """Deterministic replacement for ``asyncio.sleep``.

    Sleepers wake in order of due time, then in the order they went to sleep.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list = []
        self._order = itertools.count()

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self.now + delay, next(self._order), future))
        await future

    async def settle(self, rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target + 1e-9:
            due, _, future = heapq.heappop(self._sleepers)
            self.now = due
            if not future.done():
                future.set_result(None)
            await self.settle()
        self.now = target

    def wake(self, seconds: float) -> None:
        """Resolve every sleeper due within ``seconds`` without letting the loop run."""

        target = self.now + seconds
        while self._sleepers and self._sleepers[0][0] <= target + 1e-9:
            _, _, future = heapq.heappop(self._sleepers)
            if not future.done():
                future.set_result(None)
        self.now = target


class FakeCapture(AudioCapture):
    def __init__(
        self,
        events: List[str],
        *,
        channels: int = 1,
        sample_rate: int = 16_000,
        start_error: Optional[Exception] = None,
    ) -> None:
        self.info = CaptureInfo(name="fake-tab", sample_rate=sample_rate, channels=channels)
        self.events = events
        self.start_error = start_error
        self._queue: Deque[np.ndarray] = deque()

    def push(self, fragment: np.ndarray) -> None:
        self._queue.append(fragment)

    def start(self) -> None:
        self.events.append("capture.start")
        if self.start_error is not None:
            raise self.start_error

    def stop(self) -> None:
        self.events.append("capture.stop")

    def close(self) -> None:
        self.events.append("capture.close")

    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        if self._queue:
            return self._queue.popleft()
        return None


class FakePassthrough(AudioPassthrough):
    def __init__(self, events: List[str]) -> None:
        self.events = events
        self.fed: List[np.ndarray] = []

    def start(self) -> None:
        self.events.append("passthrough.start")

    def feed(self, fragment: np.ndarray) -> None:
        self.fed.append(fragment)

    def close(self) -> None:
        self.events.append("passthrough.close")


class FakeSource(TabAudioSource):
    def __init__(self, *, channels: int = 1, open_error: Optional[Exception] = None,
                 start_error: Optional[Exception] = None, passthrough: bool = True) -> None:
        self.events: List[str] = []
        self.channels = channels
        self.open_error = open_error
        self.start_error = start_error
        self.with_passthrough = passthrough
        self.opened: List[TabContext] = []
        self.captures: List[FakeCapture] = []
        self.passthroughs: List[FakePassthrough] = []

    @property
    def capture(self) -> FakeCapture:
        return self.captures[-1]

    def open(self, tab: TabContext) -> AudioCapture:
        self.opened.append(tab)
        if self.open_error is not None:
            raise self.open_error
        capture = FakeCapture(self.events, channels=self.channels, start_error=self.start_error)
        self.captures.append(capture)
        return capture

    def passthrough_for(self, capture: AudioCapture) -> Optional[AudioPassthrough]:
        if not self.with_passthrough:
            return None
        passthrough = FakePassthrough(self.events)
        self.passthroughs.append(passthrough)
        return passthrough


def tone(value: float, frames: int = 1600, channels: int = 1) -> np.ndarray:
    """Constant-valued fragment so segment contents can be traced after encoding."""

    return np.full((frames, channels), value, dtype=np.float32)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def make_source():
    return FakeSource


@pytest.fixture
def make_tone():
    return tone
