from __future__ import annotations

import asyncio

import numpy as np
import pytest

from tabscribe.core.audio.base import CaptureError, CapturePermissionError
from tabscribe.core.audio.writers import decode_wav
from tabscribe.core.pipeline.assembler import TranscriptAssembler
from tabscribe.core.pipeline.orchestrator import SessionController, SessionStartError, StartFailure
from tabscribe.data.models import SessionConfig, SessionState, TabContext, TranscriptionResult
from tabscribe.services.transcription.base import TranscriptionGateway
from tabscribe.services.transcription.dispatcher import SegmentDispatcher
from tabscribe.services.transcription.dummy import DummyGateway


def _levels(payload: bytes) -> list[int]:
    """Recover the fragment markers written as constant levels."""

    frames, _ = decode_wav(payload)
    markers = np.round(frames[:, 0] * 100).astype(int)
    ordered: list[int] = []
    for marker in markers:
        if not ordered or ordered[-1] != marker:
            ordered.append(int(marker))
    return ordered


@pytest.mark.asyncio
async def test_capture_of_tab_42_produces_three_contiguous_segments(source, clock, make_tone):
    gateway = DummyGateway()
    results: list[TranscriptionResult] = []
    controller = SessionController(
        source,
        SegmentDispatcher(gateway),
        SessionConfig(language="auto", chunk_seconds=10.0, fragment_seconds=1.0),
        on_result=results.append,
        sleep=clock.sleep,
    )

    await controller.start(42)
    for second in range(25):
        source.capture.push(make_tone((second + 1) / 100))
        await clock.advance(1.0)
    status = await controller.stop()

    sequences = [request.sequence_number for request in gateway.requests]
    assert sequences == [0, 1, 2]
    contents = [_levels(request.audio) for request in gateway.requests]
    assert [level for content in contents for level in content] == list(range(1, 26))
    assert len(gateway.requests[2].audio) < len(gateway.requests[0].audio)

    assert sorted(r.sequence_number for r in results) == [0, 1, 2]
    assert all(not r.is_translation for r in results)
    assert status.state is SessionState.IDLE
    assert status.segments_dispatched == 3
    assert status.results_received == 3
    assert status.failures == []
    assert controller.session is None
    assert source.opened[0].tab_id == "42"


class OutOfOrderGateway(TranscriptionGateway):
    """Answers later segments first."""

    def __init__(self) -> None:
        self.gates: dict[int, asyncio.Event] = {}

    async def transcribe(self, request):
        gate = self.gates.setdefault(request.sequence_number, asyncio.Event())
        await gate.wait()
        return TranscriptionResult(text=f"part {request.sequence_number}", sequence_number=request.sequence_number)


@pytest.mark.asyncio
async def test_results_are_reassembled_in_sequence_order(source, clock, make_tone):
    gateway = OutOfOrderGateway()
    assembler = TranscriptAssembler()
    released: list[int] = []

    def on_result(result):
        released.extend(r.sequence_number for r in assembler.add(result))

    controller = SessionController(
        source,
        SegmentDispatcher(gateway),
        SessionConfig(chunk_seconds=2.0),
        on_result=on_result,
        sleep=clock.sleep,
    )
    await controller.start("7")
    for second in range(6):
        source.capture.push(make_tone(0.5))
        await clock.advance(1.0)

    for seq in (2, 1):
        gateway.gates.setdefault(seq, asyncio.Event()).set()
    await clock.settle()
    assert released == []

    gateway.gates.setdefault(0, asyncio.Event()).set()
    await clock.settle()
    assert released == [0, 1, 2]

    for seq in range(3, 6):
        gateway.gates.setdefault(seq, asyncio.Event()).set()
    await controller.stop()
    assert assembler.text.startswith("part 0 part 1 part 2")


@pytest.mark.asyncio
async def test_start_on_same_tab_returns_existing_session(source, clock):
    controller = SessionController(source, SegmentDispatcher(DummyGateway()), sleep=clock.sleep)

    first = await controller.start("42", TabContext("42", title="Talk"))
    second = await controller.start("42")

    assert first is second
    assert len(source.opened) == 1
    await controller.stop()


@pytest.mark.asyncio
async def test_start_on_other_tab_while_capturing_is_rejected(source, clock):
    failures: list = []
    controller = SessionController(
        source, SegmentDispatcher(DummyGateway()), on_error=failures.append, sleep=clock.sleep
    )
    await controller.start("1")

    with pytest.raises(SessionStartError) as excinfo:
        await controller.start("2")

    assert excinfo.value.kind is StartFailure.ALREADY_CAPTURING
    assert failures[0].details == "already_capturing"
    assert controller.status().tab_id == "1"
    assert controller.status().state is SessionState.CAPTURING
    assert controller.status().last_error is None
    await controller.stop()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("kwargs", "kind"),
    [
        ({"channels": 0}, StartFailure.NO_AUDIO),
        ({"start_error": CapturePermissionError("Permission dismissed")}, StartFailure.PERMISSION_DENIED),
        ({"open_error": CaptureError("Capture is disabled for tab 3")}, StartFailure.CAPTURE_FAILED),
    ],
)
async def test_start_failures_leave_controller_idle(make_source, clock, kwargs, kind):
    source = make_source(**kwargs)
    failures: list = []
    controller = SessionController(
        source, SegmentDispatcher(DummyGateway()), on_error=failures.append, sleep=clock.sleep
    )

    with pytest.raises(SessionStartError) as excinfo:
        await controller.start("3")

    assert excinfo.value.kind is kind
    assert controller.session is None
    status = controller.status()
    assert status.state is SessionState.IDLE
    assert status.last_error
    assert failures[0].sequence_number is None

    after_stop = await controller.stop()
    assert after_stop.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_failed_segment_is_reported_and_session_continues(source, clock, make_tone):
    class FlakyGateway(TranscriptionGateway):
        async def transcribe(self, request):
            if request.sequence_number == 0:
                raise RuntimeError("engine hiccup")
            return TranscriptionResult(text="ok", sequence_number=request.sequence_number)

    failures: list = []
    controller = SessionController(
        source,
        SegmentDispatcher(FlakyGateway()),
        SessionConfig(chunk_seconds=1.0),
        on_error=failures.append,
        sleep=clock.sleep,
    )
    await controller.start("5")
    for _ in range(2):
        source.capture.push(make_tone(0.2))
        await clock.advance(1.0)
    source.capture.push(make_tone(0.2))
    status = await controller.stop()

    assert [f.sequence_number for f in failures] == [0]
    assert "engine hiccup" in failures[0].details
    assert status.results_received >= 1
    assert status.last_error == failures[0].message
