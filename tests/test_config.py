"""Tests for settings loading."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from tabscribe import config
from tabscribe.logging import configure_logging


def test_defaults_match_upload_limit_and_timing():
    settings = config.get_settings()

    assert settings.max_upload_bytes == 25 * 1024 * 1024
    assert settings.chunk_seconds == 10.0
    assert settings.fragment_seconds == 1.0
    assert settings.translation_target == "en"
    assert settings.default_language == "auto"


def test_environment_overrides_are_read_once(monkeypatch):
    monkeypatch.setenv("TABSCRIBE_CHUNK_SECONDS", "5")
    monkeypatch.setenv("TABSCRIBE_TRANSCRIPTION_BACKEND", "dummy")

    settings = config.get_settings()
    assert settings.chunk_seconds == 5.0
    assert settings.transcription_backend == "dummy"

    monkeypatch.setenv("TABSCRIBE_CHUNK_SECONDS", "7")
    assert config.get_settings() is settings

    config.reset_settings()
    assert config.get_settings().chunk_seconds == 7.0


def test_negative_dispatch_window_is_rejected(monkeypatch):
    monkeypatch.setenv("TABSCRIBE_MAX_IN_FLIGHT_DISPATCHES", "-1")

    with pytest.raises(ValidationError):
        config.Settings()


def test_verbose_logging_lowers_levels():
    configure_logging()
    configure_logging(verbose=True)

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.DEBUG

    configure_logging(logging.INFO, verbose=False)
    # plain calls after the first configuration leave levels alone
    assert logging.getLogger().level == logging.DEBUG
    logging.getLogger().setLevel(logging.INFO)
