"""Factory helpers for constructing tab capture sources."""

from __future__ import annotations

from typing import Dict, Optional

from ...config import get_settings
from ...data.models import TabContext
from ...logging import get_logger
from .base import AudioCapture, AudioPassthrough, CaptureError, CaptureInfo, TabAudioSource

LOGGER = get_logger(__name__)

DISABLE_DEVICE_KEYWORDS = {"skip", "none", "off", "disabled"}


def _parse_device(device: Optional[str]) -> Optional[int | str]:
    if device is None:
        return None
    device = device.strip()
    if not device:
        return None
    if device.isdigit():
        return int(device)
    return device


class DeviceTabSource(TabAudioSource):
    """Grant tab audio by opening a loopback/monitor input device.

    ``tab_devices`` maps tab identifiers to devices; tabs without an entry use
    ``default_device``.
    """

    def __init__(
        self,
        default_device: Optional[str] = None,
        *,
        tab_devices: Optional[Dict[str, str]] = None,
        sample_rate: Optional[int] = None,
        channels: Optional[int] = None,
        output_device: Optional[str] = None,
        passthrough: Optional[bool] = None,
    ) -> None:
        settings = get_settings()
        self.default_device = default_device if default_device is not None else settings.capture_device
        self.tab_devices = dict(tab_devices or {})
        self.sample_rate = sample_rate or settings.sample_rate
        self.channels = channels or settings.channels
        self.output_device = output_device if output_device is not None else settings.output_device
        self.passthrough = settings.passthrough_enabled if passthrough is None else passthrough

    def open(self, tab: TabContext) -> AudioCapture:
        raw_device = self.tab_devices.get(tab.tab_id, self.default_device)
        if raw_device is not None and raw_device.strip().lower() in DISABLE_DEVICE_KEYWORDS:
            raise CaptureError(f"Capture is disabled for tab {tab.tab_id}")

        from .sounddevice_backend import SoundDeviceCapture

        device = _parse_device(raw_device)
        info = CaptureInfo(
            name=f"tab-{tab.tab_id}",
            sample_rate=self.sample_rate,
            channels=self.channels,
            device="default" if device is None else str(device),
        )
        LOGGER.debug("Opening capture for tab %s on %s", tab.tab_id, info.device)
        return SoundDeviceCapture(info=info, device=device)

    def passthrough_for(self, capture: AudioCapture) -> Optional[AudioPassthrough]:
        if not self.passthrough:
            return None
        if self.output_device and self.output_device.strip().lower() in DISABLE_DEVICE_KEYWORDS:
            return None

        from .sounddevice_backend import SoundDevicePassthrough

        return SoundDevicePassthrough(
            sample_rate=capture.info.sample_rate,
            channels=capture.info.channels,
            device=_parse_device(self.output_device),
        )


__all__ = ["DISABLE_DEVICE_KEYWORDS", "DeviceTabSource"]
