"""Transcription services."""

from .base import Dispatcher, GatewayError, TranscriptionGateway
from .dispatcher import (
    EmptyFileError,
    FileTooLargeError,
    SegmentDispatcher,
    SegmentValidationError,
    TranscriptionError,
)
from .dummy import DummyGateway

__all__ = [
    "Dispatcher",
    "DummyGateway",
    "EmptyFileError",
    "FileTooLargeError",
    "GatewayError",
    "SegmentDispatcher",
    "SegmentValidationError",
    "TranscriptionError",
    "TranscriptionGateway",
]
