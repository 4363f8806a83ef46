from __future__ import annotations

import pytest

from tabscribe.core.audio.base import CaptureError
from tabscribe.core.audio.factory import DeviceTabSource
from tabscribe.data.models import TabContext
from tabscribe.services.factory import ServiceConfigurationError, resolve_dispatcher, resolve_gateway
from tabscribe.services.transcription.dispatcher import SegmentDispatcher
from tabscribe.services.transcription.dummy import DummyGateway
from tabscribe.services.transcription.remote import RemoteDispatcher


def test_backend_defaults_to_settings(monkeypatch):
    monkeypatch.setenv("TABSCRIBE_TRANSCRIPTION_BACKEND", "Dummy")

    assert isinstance(resolve_gateway(), DummyGateway)


def test_unknown_backend_is_rejected():
    with pytest.raises(ServiceConfigurationError):
        resolve_gateway("carrier-pigeon")


@pytest.mark.asyncio
async def test_remote_backend_uses_server_url():
    dispatcher = resolve_dispatcher("remote", server_url="http://localhost:9000/")

    assert isinstance(dispatcher, RemoteDispatcher)
    assert dispatcher.base_url == "http://localhost:9000"
    await dispatcher.aclose()


def test_in_process_backend_wraps_gateway():
    dispatcher = resolve_dispatcher("dummy")

    assert isinstance(dispatcher, SegmentDispatcher)
    assert isinstance(dispatcher.gateway, DummyGateway)


def test_disabled_device_refuses_capture():
    source = DeviceTabSource("off", tab_devices={"7": "2"}, passthrough=False)

    with pytest.raises(CaptureError):
        source.open(TabContext("1"))
    assert source.passthrough_for(object()) is None


def test_passthrough_disabled_by_output_keyword():
    source = DeviceTabSource(output_device="none", passthrough=True)

    assert source.passthrough_for(object()) is None
