"""Audio capture package."""

from .base import (
    AudioCapture,
    AudioPassthrough,
    CaptureError,
    CaptureInfo,
    CapturePermissionError,
    NoAudioError,
    TabAudioSource,
)

__all__ = [
    "AudioCapture",
    "AudioPassthrough",
    "CaptureError",
    "CaptureInfo",
    "CapturePermissionError",
    "NoAudioError",
    "TabAudioSource",
]
