"""Audio capture abstractions."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ...data.models import TabContext


@dataclass
class CaptureInfo:
    """Metadata about a capture stream."""

    name: str
    sample_rate: int
    channels: int
    device: Optional[str] = None


class AudioCapture(abc.ABC):
    """Live audio stream for one tab that yields numpy fragments."""

    info: CaptureInfo

    @abc.abstractmethod
    def start(self) -> None:
        """Start the underlying capture stream."""

    @abc.abstractmethod
    def stop(self) -> None:
        """Stop every track of the underlying stream."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release all resources associated with the stream."""

    @abc.abstractmethod
    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        """Return the next available fragment or ``None`` if none ready."""


class AudioPassthrough(abc.ABC):
    """Routes captured audio back to an output device so the tab stays audible."""

    @abc.abstractmethod
    def start(self) -> None:
        """Open the output path."""

    @abc.abstractmethod
    def feed(self, fragment: np.ndarray) -> None:
        """Queue a captured fragment for playback."""

    @abc.abstractmethod
    def close(self) -> None:
        """Disconnect and close the output path."""


class TabAudioSource(abc.ABC):
    """Platform entry point that grants audio capture for a tab."""

    @abc.abstractmethod
    def open(self, tab: TabContext) -> AudioCapture:
        """Return an unstarted capture for ``tab`` or raise :class:`CaptureError`."""

    def passthrough_for(self, capture: AudioCapture) -> Optional[AudioPassthrough]:
        """Return the passthrough matching ``capture`` or ``None`` to stay silent."""

        return None


class CaptureError(RuntimeError):
    """Raised when audio capture cannot be initialised."""


class NoAudioError(CaptureError):
    """Raised when the tab yields no audio stream."""


class CapturePermissionError(CaptureError):
    """Raised when the platform denies access to the tab's audio."""


__all__ = [
    "AudioCapture",
    "AudioPassthrough",
    "CaptureError",
    "CaptureInfo",
    "CapturePermissionError",
    "NoAudioError",
    "TabAudioSource",
]
