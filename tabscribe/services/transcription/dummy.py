"""Dummy transcription gateway for testing or offline usage."""

from __future__ import annotations

import wave

from ...config import get_settings
from ...core.audio.writers import wav_duration
from ...data.models import TranscriptionRequest, TranscriptionResult
from .base import TranscriptionGateway, normalise_target


class DummyGateway(TranscriptionGateway):
    """Answer every request locally, applying the same translate/transcribe policy."""

    def __init__(self, translation_target: str | None = None) -> None:
        self.translation_target = normalise_target(translation_target or get_settings().translation_target)
        self.requests: list[TranscriptionRequest] = []

    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        self.requests.append(request)
        try:
            seconds = f"{wav_duration(request.audio):.1f}s"
        except (wave.Error, EOFError, ValueError):
            seconds = f"{len(request.audio)} bytes"

        translate = normalise_target(request.translate_to) == self.translation_target
        if translate:
            language = self.translation_target
        else:
            language = None if request.auto_detect else request.language
        label = request.sequence_number if request.sequence_number is not None else "-"
        return TranscriptionResult(
            text=f"Dummy {'translation' if translate else 'transcript'} #{label} for {seconds} of audio.",
            is_translation=translate,
            language=language,
            sequence_number=request.sequence_number,
            audio_file_size=len(request.audio),
        )


__all__ = ["DummyGateway"]
