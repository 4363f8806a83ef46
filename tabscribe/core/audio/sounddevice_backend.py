"""Audio capture and passthrough powered by sounddevice/PortAudio."""

from __future__ import annotations

import contextlib
import queue
import threading
from typing import List, Optional

import numpy as np

from .base import (
    AudioCapture,
    AudioPassthrough,
    CaptureError,
    CaptureInfo,
    CapturePermissionError,
    NoAudioError,
)
from ...logging import get_logger

LOGGER = get_logger(__name__)

_PERMISSION_MARKERS = ("permission", "denied", "not authorized", "not permitted")
_FALLBACK_RATES = (48_000, 44_100, 32_000, 24_000, 22_050, 16_000)


def _import_sounddevice():
    try:
        import sounddevice as sd
    except ImportError as exc:  # pragma: no cover - handled in tests
        raise CaptureError(
            "sounddevice dependency is required for capture; install tabscribe[audio]"
        ) from exc
    return sd


def _classify(message: str) -> type[CaptureError]:
    lowered = message.lower()
    if any(marker in lowered for marker in _PERMISSION_MARKERS):
        return CapturePermissionError
    return CaptureError


class SoundDeviceCapture(AudioCapture):
    """Capture the tab's audio from a PortAudio input (loopback/monitor) device."""

    def __init__(
        self,
        info: CaptureInfo,
        device: Optional[int | str] = None,
        block_size: int = 1024,
        dtype: str = "float32",
    ) -> None:
        self._sd = _import_sounddevice()
        self.info = info
        self._device = device
        self._block_size = block_size
        self._dtype = dtype
        self._queue: queue.Queue[np.ndarray] = queue.Queue()
        self._stream = None
        self._device_info: Optional[dict] = None

    def _callback(self, indata, frames, time_info, status) -> None:  # pragma: no cover - executed in runtime
        if status:
            LOGGER.warning("sounddevice status: %s", status)
        self._queue.put(indata.copy())

    def start(self) -> None:
        if self._stream is not None:
            return
        LOGGER.info("Starting tab capture %s on device %s", self.info.name, self._device)

        channels = self._resolve_channels()
        last_error: Optional[Exception] = None
        for sample_rate in self._resolve_sample_rate_candidates():
            try:
                stream = self._sd.InputStream(
                    samplerate=sample_rate,
                    channels=channels,
                    dtype=self._dtype,
                    blocksize=self._block_size,
                    device=self._device,
                    callback=self._callback,
                )
                stream.start()
            except (self._sd.PortAudioError, ValueError) as exc:
                # sounddevice raises ValueError for device names matching no PortAudio device
                last_error = exc
                message = str(exc)
                if "sample rate" in message.lower():
                    LOGGER.warning("Device %s rejected %s Hz: %s", self._device, sample_rate, message)
                    continue
                raise _classify(message)(message) from exc

            self._stream = stream
            if sample_rate != self.info.sample_rate:
                LOGGER.warning(
                    "Adjusted sample rate for %s from %s Hz to %s Hz",
                    self.info.name,
                    self.info.sample_rate,
                    sample_rate,
                )
            self.info.sample_rate = sample_rate
            self.info.channels = channels
            return

        message = f"Failed to open audio stream for {self.info.name} on {self._device}"
        if last_error is not None:
            message = f"{message} ({last_error})"
        raise CaptureError(message) from last_error

    def stop(self) -> None:
        if self._stream is not None:
            LOGGER.info("Stopping capture for %s", self.info.name)
            self._stream.stop()

    def close(self) -> None:
        if self._stream is not None:
            LOGGER.debug("Closing capture stream for %s", self.info.name)
            self._stream.close()
            self._stream = None
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except queue.Empty:  # pragma: no cover - defensive
                break

    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        try:
            if timeout is None or timeout <= 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def _resolve_channels(self) -> int:
        requested = int(self.info.channels or 0)
        info = self._query_device_info()
        if info is None:
            return requested or 1
        available = int(info.get("max_input_channels") or 0)
        if available <= 0:
            raise NoAudioError(f"Device {self._device} exposes no audio input for tab capture")
        if requested <= 0 or requested > available:
            LOGGER.warning(
                "Requested %s channel(s) for %s; using device capability of %s",
                requested,
                self.info.name,
                available,
            )
            return available
        return requested

    def _resolve_sample_rate_candidates(self) -> List[int]:
        candidates: List[int] = []
        if self.info.sample_rate:
            candidates.append(int(self.info.sample_rate))
        info = self._query_device_info()
        if info and info.get("default_samplerate"):
            default_rate = int(float(info["default_samplerate"]))
            if default_rate not in candidates:
                candidates.append(default_rate)
        candidates.extend(rate for rate in _FALLBACK_RATES if rate not in candidates)
        return candidates

    def _query_device_info(self) -> Optional[dict]:
        if self._device_info is not None:
            return self._device_info
        try:  # pragma: no cover - depends on runtime availability
            self._device_info = self._sd.query_devices(self._device, kind="input" if self._device is None else None)
        except Exception as exc:  # pragma: no cover - depends on runtime availability
            message = str(exc)
            if _classify(message) is CapturePermissionError:
                raise CapturePermissionError(message) from exc
            LOGGER.debug("Failed to query device info for %s: %s", self._device, exc)
            return None
        return self._device_info


class SoundDevicePassthrough(AudioPassthrough):
    """Play captured fragments on an output device through a callback stream."""

    def __init__(self, sample_rate: int, channels: int, device: Optional[int | str] = None) -> None:
        self._sd = _import_sounddevice()
        self.sample_rate = sample_rate
        self.channels = channels
        self._device = device
        self._queue: queue.Queue[np.ndarray] = queue.Queue()
        self._pending: Optional[np.ndarray] = None
        self._offset = 0
        self._stream = None
        self._lock = threading.Lock()

    def start(self) -> None:
        if self._stream is not None:
            return
        self._stream = self._sd.OutputStream(
            samplerate=self.sample_rate,
            channels=self.channels,
            dtype="float32",
            device=self._device,
            callback=self._callback,
        )
        self._stream.start()
        LOGGER.info("Audio passthrough enabled on %s", self._device or "default output")

    def feed(self, fragment: np.ndarray) -> None:
        if self._stream is None:
            return
        data = np.asarray(fragment, dtype=np.float32)
        if data.ndim == 1:
            data = data[:, np.newaxis]
        self._queue.put(data)

    def _callback(self, outdata, frames, time_info, status) -> None:  # pragma: no cover - executed in runtime
        filled = 0
        with self._lock:
            while filled < frames:
                if self._pending is None or self._offset >= len(self._pending):
                    try:
                        self._pending = self._queue.get_nowait()
                    except queue.Empty:
                        outdata[filled:] = 0
                        return
                    self._offset = 0
                take = min(frames - filled, len(self._pending) - self._offset)
                chunk = self._pending[self._offset : self._offset + take]
                outdata[filled : filled + take] = chunk[:, : outdata.shape[1]]
                self._offset += take
                filled += take

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            with contextlib.suppress(Exception):
                stream.stop()
            stream.close()
            LOGGER.debug("Audio passthrough closed")
        with self._lock:
            self._pending = None
            self._offset = 0
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except queue.Empty:  # pragma: no cover - defensive
                break


def format_device_table() -> str:
    """Return a table of input devices usable as tab capture sources."""

    try:
        sd = _import_sounddevice()
    except CaptureError as exc:
        return str(exc)

    hostapis = sd.query_hostapis()
    header = f"{'ID':>3} | {'Name':<40} | {'In':>2} | {'Rate':>7} | Host API | Loopback"
    lines = [header, "-" * len(header)]
    for idx, info in enumerate(sd.query_devices()):
        max_input = int(info.get("max_input_channels") or 0)
        if max_input <= 0:
            continue
        name = info["name"]
        hostapi = hostapis[info["hostapi"]]["name"] if hostapis else "unknown"
        is_loopback = "loopback" in name.lower() or "monitor" in name.lower()
        lines.append(
            f"{idx:>3} | {name:<40.40} | {max_input:>2} | "
            f"{int(info['default_samplerate']):>7} | {hostapi:<8} | {('yes' if is_loopback else 'no'):>8}"
        )
    if len(lines) == 2:
        return "No input devices detected. Ensure a loopback or monitor device is available."
    return "\n".join(lines)


__all__ = ["SoundDeviceCapture", "SoundDevicePassthrough", "format_device_table"]
