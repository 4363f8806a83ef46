"""Segment dispatcher: validation, timing and result enrichment around a gateway."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional

from ...config import get_settings
from ...data.models import AudioSegment, SessionConfig, TranscriptionRequest, TranscriptionResult
from ...logging import get_logger
from .base import Dispatcher, GatewayError, TranscriptionGateway

LOGGER = get_logger(__name__)


class SegmentValidationError(ValueError):
    """Raised before any network call when a segment payload is unusable."""

    code = "INVALID_FILE"


class EmptyFileError(SegmentValidationError):
    code = "INVALID_FILE"

    def __init__(self, message: str = "Audio file is required and cannot be empty") -> None:
        super().__init__(message)


class FileTooLargeError(SegmentValidationError):
    code = "FILE_TOO_LARGE"

    def __init__(self, limit: int, size: Optional[int] = None) -> None:
        megabytes = limit / (1024 * 1024)
        super().__init__(f"Audio file must be smaller than {megabytes:g}MB")
        self.limit = limit
        self.size = size


class TranscriptionError(RuntimeError):
    """Any failure of the gateway while transcribing one segment."""

    code = "TRANSCRIPTION_ERROR"

    def __init__(
        self,
        message: str = "An error occurred while processing the transcription",
        *,
        details: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code


def validate_payload(payload: Optional[bytes], max_bytes: int) -> None:
    """Reject empty payloads first, then payloads above ``max_bytes``."""

    if not payload:
        raise EmptyFileError()
    if len(payload) > max_bytes:
        raise FileTooLargeError(max_bytes, len(payload))


class SegmentDispatcher(Dispatcher):
    """Validate segments, call the gateway and stamp dispatcher-owned fields."""

    def __init__(self, gateway: TranscriptionGateway, max_upload_bytes: Optional[int] = None) -> None:
        self.gateway = gateway
        if max_upload_bytes is None:
            max_upload_bytes = get_settings().max_upload_bytes
        self.max_upload_bytes = max_upload_bytes

    async def dispatch(self, segment: AudioSegment, config: SessionConfig) -> TranscriptionResult:
        validate_payload(segment.payload, self.max_upload_bytes)

        request = TranscriptionRequest.from_segment(segment, config)
        started = time.perf_counter()
        try:
            result = await self.gateway.transcribe(request)
        except Exception as exc:
            LOGGER.error("Transcription failed for sequence %s: %s", segment.sequence_number, exc)
            status = exc.status_code if isinstance(exc, GatewayError) else None
            raise TranscriptionError(details=str(exc), status_code=status) from exc
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        LOGGER.info(
            "Transcription completed in %.0fms for sequence %s",
            elapsed_ms,
            segment.sequence_number,
        )
        return result.model_copy(
            update={
                "processing_time_ms": elapsed_ms,
                "sequence_number": segment.sequence_number,
                "audio_file_size": segment.size,
                "processed_at": datetime.now(timezone.utc),
            }
        )

    async def aclose(self) -> None:
        await self.gateway.aclose()


__all__ = [
    "EmptyFileError",
    "FileTooLargeError",
    "SegmentDispatcher",
    "SegmentValidationError",
    "TranscriptionError",
    "validate_payload",
]
