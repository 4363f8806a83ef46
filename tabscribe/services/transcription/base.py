"""Transcription service abstractions."""

from __future__ import annotations

import abc
from typing import Optional

from ...data.models import AudioSegment, SessionConfig, TranscriptionRequest, TranscriptionResult


def normalise_target(value: Optional[str]) -> Optional[str]:
    """Lower-case a language code, mapping blank values to ``None``."""

    if value is None:
        return None
    value = value.strip().lower()
    return value or None


class GatewayError(RuntimeError):
    """Non-success status or transport failure reported by the speech engine."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TranscriptionGateway(abc.ABC):
    """Turn one normalized request into text by calling the speech engine."""

    @abc.abstractmethod
    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources held by the gateway."""


class Dispatcher(abc.ABC):
    """Validate an audio segment and obtain its transcription result."""

    @abc.abstractmethod
    async def dispatch(self, segment: AudioSegment, config: SessionConfig) -> TranscriptionResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources held by the dispatcher."""


__all__ = ["Dispatcher", "GatewayError", "TranscriptionGateway", "normalise_target"]
