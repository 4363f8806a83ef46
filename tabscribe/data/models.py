"""Data models used by tabscribe."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

WAV_CONTENT_TYPE = "audio/wav"

_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
}

SUPPORTED_LANGUAGES = [
    {"code": "auto", "name": "Auto-detect"},
    {"code": "en", "name": "English"},
    {"code": "es", "name": "Spanish"},
    {"code": "fr", "name": "French"},
    {"code": "de", "name": "German"},
    {"code": "it", "name": "Italian"},
    {"code": "pt", "name": "Portuguese"},
    {"code": "ru", "name": "Russian"},
    {"code": "ja", "name": "Japanese"},
    {"code": "ko", "name": "Korean"},
    {"code": "zh", "name": "Chinese"},
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    CAPTURING = "capturing"
    STOPPING = "stopping"


@dataclass(frozen=True)
class TabContext:
    """Identity of the captured tab plus optional metadata for correlation."""

    tab_id: str
    title: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class SessionConfig:
    """Per-session language preferences and timing."""

    language: Optional[str] = "auto"
    translate_to: Optional[str] = None
    chunk_seconds: float = 10.0
    fragment_seconds: float = 1.0
    max_in_flight: int = 0
    start_sequence: int = 0


@dataclass(frozen=True)
class AudioSegment:
    """One finalized slice of captured audio."""

    payload: bytes
    content_type: str = WAV_CONTENT_TYPE
    sequence_number: Optional[int] = None
    captured_at: datetime = field(default_factory=_utcnow)
    tab: Optional[TabContext] = None
    source_name: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def file_name(self) -> str:
        if self.source_name:
            return self.source_name
        mime = self.content_type.split(";", 1)[0].strip().lower()
        extension = _EXTENSIONS.get(mime, "wav")
        if self.sequence_number is None:
            return f"segment.{extension}"
        return f"segment-{self.sequence_number:05d}.{extension}"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class TranscriptionRequest:
    """Normalized input handed to a transcription gateway."""

    audio: bytes
    content_type: str
    file_name: str
    language: Optional[str] = None
    translate_to: Optional[str] = None
    sequence_number: Optional[int] = None
    tab_title: Optional[str] = None
    tab_url: Optional[str] = None
    captured_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_segment(cls, segment: AudioSegment, config: SessionConfig) -> "TranscriptionRequest":
        tab = segment.tab
        return cls(
            audio=segment.payload,
            content_type=segment.content_type,
            file_name=segment.file_name,
            language=_clean(config.language),
            translate_to=_clean(config.translate_to),
            sequence_number=segment.sequence_number,
            tab_title=tab.title if tab else None,
            tab_url=tab.url if tab else None,
            captured_at=segment.captured_at,
        )

    @property
    def auto_detect(self) -> bool:
        return self.language is None or self.language.lower() == "auto"


class TranscriptionResult(BaseModel):
    """Text produced for one segment, serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str = ""
    is_translation: bool = False
    language: Optional[str] = None
    processed_at: datetime = Field(default_factory=_utcnow)
    processing_time_ms: float = 0.0
    sequence_number: Optional[int] = None
    audio_file_size: int = 0


@dataclass
class SegmentFailure:
    """One failure notification: a segment that could not be transcribed or a failed start."""

    sequence_number: Optional[int]
    message: str
    details: Optional[str] = None


@dataclass
class SessionStatus:
    tab_id: Optional[str]
    state: SessionState
    started_at: Optional[datetime] = None
    segments_dispatched: int = 0
    results_received: int = 0
    failures: List[SegmentFailure] = field(default_factory=list)
    last_error: Optional[str] = None


__all__ = [
    "AudioSegment",
    "SUPPORTED_LANGUAGES",
    "SegmentFailure",
    "SessionConfig",
    "SessionState",
    "SessionStatus",
    "TabContext",
    "TranscriptionRequest",
    "TranscriptionResult",
    "WAV_CONTENT_TYPE",
]
