"""Factories for runtime service selection."""

from __future__ import annotations

from typing import Optional

from ..config import get_settings
from .transcription.base import Dispatcher, TranscriptionGateway
from .transcription.dispatcher import SegmentDispatcher
from .transcription.dummy import DummyGateway


class ServiceConfigurationError(ValueError):
    """Raised when an unknown backend is requested."""


def _normalise(name: Optional[str]) -> str:
    if not name:
        return get_settings().transcription_backend.strip().lower()
    return name.strip().lower()


def resolve_gateway(name: Optional[str] = None) -> TranscriptionGateway:
    backend = _normalise(name)
    if backend == "dummy":
        return DummyGateway()
    if backend == "openai":
        from .transcription.openai_client import OpenAIGateway

        return OpenAIGateway()
    raise ServiceConfigurationError(f"Unknown transcription backend: {name}")


def resolve_dispatcher(name: Optional[str] = None, *, server_url: Optional[str] = None) -> Dispatcher:
    """Return a dispatcher for ``dummy``/``openai`` (in-process) or ``remote`` (HTTP)."""

    backend = _normalise(name)
    if backend == "remote":
        from .transcription.remote import RemoteDispatcher

        return RemoteDispatcher(server_url)
    return SegmentDispatcher(resolve_gateway(backend))


__all__ = [
    "ServiceConfigurationError",
    "resolve_dispatcher",
    "resolve_gateway",
]
