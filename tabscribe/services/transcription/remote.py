"""HTTP client that sends segments to a running tabscribe service."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ...config import get_settings
from ...data.models import AudioSegment, SessionConfig, TranscriptionResult
from ...logging import get_logger
from .base import Dispatcher
from .dispatcher import (
    EmptyFileError,
    FileTooLargeError,
    TranscriptionError,
    validate_payload,
)

LOGGER = get_logger(__name__)

TRANSCRIBE_PATH = "/api/transcription/transcribe"


class RemoteDispatcher(Dispatcher):
    """Post each segment as multipart form data to ``/api/transcription/transcribe``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_upload_bytes: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.server_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.gateway_timeout_seconds
        self.max_upload_bytes = settings.max_upload_bytes if max_upload_bytes is None else max_upload_bytes
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    def _form(self, segment: AudioSegment, config: SessionConfig) -> Dict[str, str]:
        form: Dict[str, str] = {}
        if config.language:
            form["language"] = config.language
        if config.translate_to:
            form["translateTo"] = config.translate_to
        if segment.sequence_number is not None:
            form["sequenceNumber"] = str(segment.sequence_number)
        if segment.tab is not None:
            if segment.tab.title:
                form["tabTitle"] = segment.tab.title
            if segment.tab.url:
                form["tabUrl"] = segment.tab.url
        return form

    async def dispatch(self, segment: AudioSegment, config: SessionConfig) -> TranscriptionResult:
        validate_payload(segment.payload, self.max_upload_bytes)

        files = {"file": (segment.file_name, segment.payload, segment.content_type)}
        try:
            response = await self._client.post(
                f"{self.base_url}{TRANSCRIBE_PATH}",
                data=self._form(segment, config),
                files=files,
            )
        except httpx.HTTPError as exc:
            LOGGER.error("Upload of sequence %s failed: %s", segment.sequence_number, exc)
            raise TranscriptionError(
                "Transcription service is unreachable",
                details=str(exc),
            ) from exc

        if response.status_code == 200:
            return TranscriptionResult.model_validate(response.json())

        payload = self._error_payload(response)
        code = payload.get("code")
        message = payload.get("message") or response.reason_phrase
        if response.status_code == 400 and code == FileTooLargeError.code:
            raise FileTooLargeError(self.max_upload_bytes, segment.size)
        if response.status_code == 400 and code == EmptyFileError.code:
            raise EmptyFileError(message)
        raise TranscriptionError(
            message,
            details=payload.get("details") or response.text,
            status_code=response.status_code,
        )

    def _error_payload(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["RemoteDispatcher", "TRANSCRIBE_PATH"]
