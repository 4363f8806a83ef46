"""Encoding of captured fragments into WAV segment payloads."""

from __future__ import annotations

import io
import wave
from typing import Sequence, Tuple

import numpy as np


def _as_frames(data: np.ndarray, channels: int) -> np.ndarray:
    if data.ndim == 1:
        data = data[:, np.newaxis]
    if data.shape[1] != channels:
        if data.shape[1] == 1 and channels == 2:
            data = np.repeat(data, 2, axis=1)
        elif channels == 1:
            data = data.mean(axis=1, keepdims=True)
        else:
            raise ValueError("Channel mismatch when encoding audio")
    return data


def encode_wav(fragments: Sequence[np.ndarray], sample_rate: int, channels: int) -> bytes:
    """Concatenate floating point fragments into a 16-bit PCM WAV payload."""

    if not fragments:
        return b""
    frames = np.concatenate([_as_frames(np.asarray(f, dtype=np.float32), channels) for f in fragments])
    clipped = np.clip(frames, -1.0, 1.0)
    as_int16 = (clipped * 32767.0).astype(np.int16)

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)  # 16-bit PCM
        wf.setframerate(sample_rate)
        wf.writeframes(as_int16.tobytes())
    return buffer.getvalue()


def decode_wav(payload: bytes) -> Tuple[np.ndarray, int]:
    """Return ``(frames, sample_rate)`` with frames shaped ``(n, channels)``."""

    with wave.open(io.BytesIO(payload), "rb") as wf:
        raw = wf.readframes(wf.getnframes())
        channels = wf.getnchannels()
        sample_rate = wf.getframerate()
    data = np.frombuffer(raw, dtype=np.int16).astype(np.float32)
    data = data.reshape(-1, channels)
    data /= 32767.0
    return data, sample_rate


def wav_duration(payload: bytes) -> float:
    frames, sample_rate = decode_wav(payload)
    if sample_rate == 0:
        return 0.0
    return frames.shape[0] / float(sample_rate)


__all__ = ["decode_wav", "encode_wav", "wav_duration"]
