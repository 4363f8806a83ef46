"""OpenAI powered transcription gateway."""

from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional, Tuple

from ...config import get_settings
from ...data.models import TranscriptionRequest, TranscriptionResult
from ...logging import get_logger
from .base import GatewayError, TranscriptionGateway, normalise_target

LOGGER = get_logger(__name__)


def _lookup(data: Dict[str, Any], key: str) -> Any:
    """Return ``data[key]`` matching the key case-insensitively."""

    if key in data:
        return data[key]
    lowered = key.lower()
    for candidate, value in data.items():
        if isinstance(candidate, str) and candidate.lower() == lowered:
            return value
    return None


class OpenAIGateway(TranscriptionGateway):
    """Call the OpenAI audio API in transcription or translation mode.

    Only one translation target is available from the engine; any other
    ``translate_to`` value falls back to a plain transcription in the source
    language. The call is never retried.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        translation_target: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.model = model or settings.openai_transcription_model
        self.translation_target = normalise_target(translation_target or settings.translation_target)
        try:
            from openai import APIStatusError, AsyncOpenAI, OpenAIError  # type: ignore
        except ImportError as exc:  # pragma: no cover - runtime dependency guard
            raise RuntimeError("openai package is required for OpenAIGateway") from exc

        client_kwargs: Dict[str, Any] = {
            "timeout": timeout if timeout is not None else settings.gateway_timeout_seconds,
            "max_retries": 0,
        }
        if settings.openai_api_key:
            client_kwargs["api_key"] = settings.openai_api_key
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        try:
            self.client = AsyncOpenAI(**client_kwargs)
        except OpenAIError as exc:
            message = str(exc)
            if "api_key" in message.lower():
                raise RuntimeError(
                    "OpenAI API key not configured. Set the OPENAI_API_KEY environment variable "
                    "or TABSCRIBE_OPENAI_API_KEY."
                ) from exc
            raise RuntimeError(f"Failed to initialise OpenAI client: {message}") from exc
        self._openai_error_cls = OpenAIError
        self._status_error_cls = APIStatusError

    def wants_translation(self, request: TranscriptionRequest) -> bool:
        target = normalise_target(request.translate_to)
        if target is None:
            return False
        if target == self.translation_target:
            return True
        LOGGER.info(
            "Translation to %s is not supported by the engine; using transcription instead",
            request.translate_to,
        )
        return False

    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        started = time.perf_counter()
        translate = self.wants_translation(request)
        LOGGER.info(
            "Requesting OpenAI %s for %s (%s bytes)",
            "translation" if translate else "transcription",
            request.file_name,
            len(request.audio),
        )
        upload = (request.file_name, request.audio, request.content_type)

        if translate:
            response = await self._call(
                self.client.audio.translations,
                model=self.model,
                file=upload,
                response_format="json",
            )
            text, _ = self._parse_transcription_response(response)
            language: Optional[str] = self.translation_target
            is_translation = True
        else:
            kwargs: Dict[str, Any] = {
                "model": self.model,
                "file": upload,
                "response_format": "json",
            }
            if not request.auto_detect:
                kwargs["language"] = request.language
            response = await self._call(self.client.audio.transcriptions, **kwargs)
            text, detected = self._parse_transcription_response(response)
            language = detected if request.auto_detect else request.language
            is_translation = False

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        LOGGER.info("Engine responded in %.0fms for %s", elapsed_ms, request.file_name)
        return TranscriptionResult(
            text=text,
            is_translation=is_translation,
            language=language,
            processing_time_ms=elapsed_ms,
            sequence_number=request.sequence_number,
            audio_file_size=len(request.audio),
        )

    async def _call(self, endpoint: Any, **kwargs: Any) -> Any:
        try:
            return await endpoint.create(**kwargs)
        except self._status_error_cls as exc:
            status = getattr(exc, "status_code", None)
            body = self._error_body(exc)
            raise GatewayError(
                f"OpenAI API error: {status} - {self._error_message(exc, body)}",
                status_code=status,
                body=body,
            ) from exc
        except self._openai_error_cls as exc:
            raise GatewayError(f"OpenAI request failed: {exc}") from exc

    async def aclose(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()

    def _error_body(self, exc: Exception) -> Optional[str]:
        body = getattr(exc, "body", None)
        if body is not None:
            if isinstance(body, (dict, list)):
                return json.dumps(body)
            return str(body)
        response = getattr(exc, "response", None)
        text = getattr(response, "text", None)
        return str(text) if text is not None else None

    def _error_message(self, exc: Exception, body: Optional[str]) -> str:
        if body:
            try:
                payload = json.loads(body)
            except ValueError:
                return body
            if isinstance(payload, dict):
                error = _lookup(payload, "error")
                if isinstance(error, dict) and _lookup(error, "message"):
                    return str(_lookup(error, "message"))
                if _lookup(payload, "message"):
                    return str(_lookup(payload, "message"))
            return body
        return str(getattr(exc, "message", None) or exc)

    def _parse_transcription_response(self, response: Any) -> Tuple[str, Optional[str]]:
        """Return ``(text, detected_language)``; missing text yields ``""``."""

        if response is None:
            return "", None

        data: Optional[Dict[str, Any]] = None
        if isinstance(response, dict):
            data = response
        elif isinstance(response, str):
            stripped = response.strip()
            if stripped.startswith("{"):
                try:
                    decoded = json.loads(stripped)
                except ValueError:
                    decoded = None
                if isinstance(decoded, dict):
                    data = decoded
            if data is None:
                return response, None
        elif hasattr(response, "model_dump"):
            try:
                data = response.model_dump()
            except Exception:  # pragma: no cover - defensive
                data = None

        if data is None:
            text = getattr(response, "text", None)
            language = getattr(response, "language", None)
            return str(text or ""), (str(language) if language else None)

        text = _lookup(data, "text")
        language = _lookup(data, "language")
        return str(text or ""), (str(language) if language else None)


__all__ = ["OpenAIGateway"]
