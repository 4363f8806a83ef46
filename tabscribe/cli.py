"""Typer CLI entry point for tabscribe."""

from __future__ import annotations

import asyncio
import signal
from contextlib import suppress
from typing import Optional

import typer

from .config import get_settings
from .core.audio.factory import DeviceTabSource
from .core.pipeline.assembler import TranscriptAssembler
from .core.pipeline.orchestrator import SessionController, SessionStartError
from .data.models import SUPPORTED_LANGUAGES, SegmentFailure, SessionConfig, SessionStatus, TabContext, TranscriptionResult
from .logging import configure_logging, get_logger
from .services.factory import ServiceConfigurationError, resolve_dispatcher

app = typer.Typer(help="tabscribe tab audio transcriber")
LOGGER = get_logger(__name__)


class TranscriptPrinter:
    """Echo results in sequence order as they become contiguous."""

    def __init__(self, start_sequence: int = 0) -> None:
        self.assembler = TranscriptAssembler(start_sequence=start_sequence)

    def on_result(self, result: TranscriptionResult) -> None:
        for ready in self.assembler.add(result):
            self._echo(ready)

    def on_error(self, failure: SegmentFailure) -> None:
        label = "start" if failure.sequence_number is None else f"#{failure.sequence_number}"
        typer.secho(f"[{label}] failed: {failure.message}", fg=typer.colors.RED, err=True)
        for ready in self.assembler.skip(failure.sequence_number):
            self._echo(ready)

    @staticmethod
    def _echo(result: TranscriptionResult) -> None:
        tag = "translation" if result.is_translation else (result.language or "auto")
        typer.echo(f"[#{result.sequence_number} {tag}] {result.text}")


def _build_config(
    language: Optional[str],
    translate_to: Optional[str],
    chunk_seconds: Optional[float],
    fragment_seconds: Optional[float],
) -> SessionConfig:
    settings = get_settings()
    config = SessionConfig(
        language=language if language is not None else settings.default_language,
        translate_to=translate_to if translate_to is not None else settings.default_translate_to,
        chunk_seconds=chunk_seconds or settings.chunk_seconds,
        fragment_seconds=fragment_seconds or settings.fragment_seconds,
        max_in_flight=settings.max_in_flight_dispatches,
    )
    if config.chunk_seconds <= 0 or config.fragment_seconds <= 0:
        raise typer.BadParameter("Chunk and fragment durations must be positive")
    return config


async def _wait_for_stop(duration: Optional[float]) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    # add_signal_handler is unavailable on Windows event loops
    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, stop.set)
    try:
        if duration is None:
            await stop.wait()
        else:
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=duration)
    finally:
        with suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


async def _record(
    tab: TabContext,
    source: DeviceTabSource,
    backend: Optional[str],
    server_url: Optional[str],
    config: SessionConfig,
    duration: Optional[float],
) -> SessionStatus:
    dispatcher = resolve_dispatcher(backend, server_url=server_url)
    printer = TranscriptPrinter(config.start_sequence)
    controller = SessionController(
        source,
        dispatcher,
        config,
        on_result=printer.on_result,
        on_error=printer.on_error,
    )
    try:
        await controller.start(tab.tab_id, tab)
        typer.echo(f"Capturing tab {tab.tab_id}; press Ctrl+C to stop")
        await _wait_for_stop(duration)
        return await controller.stop()
    finally:
        await controller.stop(drain=False)
        await dispatcher.aclose()


@app.command()
def devices() -> None:
    """List input devices usable as tab capture sources."""

    configure_logging()
    from .core.audio.sounddevice_backend import format_device_table

    typer.echo(format_device_table())


@app.command()
def languages() -> None:
    """List the language codes offered for transcription hints."""

    for entry in SUPPORTED_LANGUAGES:
        typer.echo(f"{entry['code']:<5} {entry['name']}")


@app.command()
def record(
    tab_id: str = typer.Argument(..., help="Identifier of the tab to capture"),
    title: Optional[str] = typer.Option(None, help="Tab title sent with each segment"),
    url: Optional[str] = typer.Option(None, help="Tab URL sent with each segment"),
    language: Optional[str] = typer.Option(None, help="Spoken language hint, 'auto' to detect"),
    translate_to: Optional[str] = typer.Option(None, help="Translate segments into this language"),
    chunk_seconds: Optional[float] = typer.Option(None, help="Seconds of audio per segment"),
    fragment_seconds: Optional[float] = typer.Option(None, help="Recorder timeslice in seconds"),
    duration: Optional[float] = typer.Option(None, help="Duration in seconds; default waits for Ctrl+C"),
    backend: Optional[str] = typer.Option(None, help="Transcription backend: dummy/openai/remote"),
    server_url: Optional[str] = typer.Option(None, help="Transcription service URL for the remote backend"),
    device: Optional[str] = typer.Option(None, help="Loopback/monitor input device id or name"),
    output_device: Optional[str] = typer.Option(None, help="Playback device for passthrough"),
    passthrough: Optional[bool] = typer.Option(
        None, "--passthrough/--no-passthrough", help="Keep the captured audio audible"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Capture one tab and print its transcript segment by segment."""

    configure_logging(verbose=verbose)
    config = _build_config(language, translate_to, chunk_seconds, fragment_seconds)
    source = DeviceTabSource(device, output_device=output_device, passthrough=passthrough)
    tab = TabContext(tab_id=tab_id, title=title, url=url)

    try:
        status = asyncio.run(_record(tab, source, backend, server_url, config, duration))
    except ServiceConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except SessionStartError as exc:
        typer.secho(f"Could not start capture ({exc.kind.value}): {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"Stopped tab {tab_id}: {status.segments_dispatched} segment(s), "
        f"{status.results_received} result(s), {len(status.failures)} failure(s)"
    )
    if status.failures:
        raise typer.Exit(code=2)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run the HTTP transcription service."""

    configure_logging(verbose=verbose)
    import uvicorn

    from .api.app import create_app

    settings = get_settings()
    uvicorn.run(create_app(), host=host or settings.api_host, port=port or settings.api_port)


if __name__ == "__main__":  # pragma: no cover
    app()
