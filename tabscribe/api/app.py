"""
FastAPI application exposing segment transcription over HTTP.

``create_app()`` assembles the routes and error handlers; the module-level
``app`` allows ``uvicorn tabscribe.api.app:app``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from ..data.models import (
    SUPPORTED_LANGUAGES,
    AudioSegment,
    SessionConfig,
    TabContext,
    TranscriptionResult,
)
from ..logging import get_logger
from ..services.factory import resolve_gateway
from ..services.transcription.base import Dispatcher
from ..services.transcription.dispatcher import (
    EmptyFileError,
    SegmentDispatcher,
    SegmentValidationError,
    TranscriptionError,
)

LOGGER = get_logger(__name__)

API_VERSION = "0.1.0"

router = APIRouter(prefix="/api/transcription", tags=["transcription"])


@lru_cache()
def get_dispatcher() -> Dispatcher:
    return SegmentDispatcher(resolve_gateway())


def _error_body(code: str, message: str, details: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "code": code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details is not None:
        body["details"] = details
    return body


@router.post("/transcribe", response_model=TranscriptionResult)
async def transcribe(
    file: Optional[UploadFile] = File(None),
    language: Optional[str] = Form(None),
    translate_to: Optional[str] = Form(None, alias="translateTo"),
    sequence_number: Optional[int] = Form(None, alias="sequenceNumber"),
    tab_title: Optional[str] = Form(None, alias="tabTitle"),
    tab_url: Optional[str] = Form(None, alias="tabUrl"),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> TranscriptionResult:
    if file is None:
        raise EmptyFileError()

    LOGGER.info("Received transcription request for file: %s", file.filename)
    payload = await file.read()
    tab = None
    if tab_title or tab_url:
        tab = TabContext(tab_id="remote", title=tab_title, url=tab_url)
    segment = AudioSegment(
        payload=payload,
        content_type=file.content_type or "application/octet-stream",
        sequence_number=sequence_number,
        tab=tab,
        source_name=file.filename or None,
    )
    config = SessionConfig(language=language, translate_to=translate_to)
    return await dispatcher.dispatch(segment, config)


@router.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "Healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": API_VERSION,
    }


@router.get("/languages")
async def languages() -> List[Dict[str, str]]:
    return SUPPORTED_LANGUAGES


def register_error_handlers(app: FastAPI) -> None:
    """Map validation failures to 400 and transcription failures to 500."""

    @app.exception_handler(SegmentValidationError)
    async def validation_error_handler(_request: Request, exc: SegmentValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body(exc.code, str(exc)))

    @app.exception_handler(TranscriptionError)
    async def transcription_error_handler(_request: Request, exc: TranscriptionError) -> JSONResponse:
        LOGGER.error("Error processing transcription request: %s", exc.details)
        return JSONResponse(
            status_code=500,
            content=_error_body(exc.code, exc.message, exc.details),
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    if get_dispatcher.cache_info().currsize:
        await get_dispatcher().aclose()
        get_dispatcher.cache_clear()


def create_app() -> FastAPI:
    app = FastAPI(
        title="tabscribe",
        description="Transcribe or translate captured tab audio segments.",
        version=API_VERSION,
        lifespan=lifespan,
    )
    register_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


__all__ = ["API_VERSION", "app", "create_app", "get_dispatcher", "router"]
