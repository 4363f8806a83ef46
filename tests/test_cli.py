"""Tests for the command line interface."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from tabscribe import cli

runner = CliRunner()


@pytest.fixture
def preloaded_source(make_source, make_tone, monkeypatch):
    source = make_source(passthrough=False)
    original_open = source.open

    def open_with_audio(tab):
        capture = original_open(tab)
        capture.push(make_tone(0.25))
        return capture

    source.open = open_with_audio
    monkeypatch.setattr(cli, "DeviceTabSource", lambda *args, **kwargs: source)
    return source


def test_languages_lists_codes():
    result = runner.invoke(cli.app, ["languages"])

    assert result.exit_code == 0
    assert "auto" in result.stdout
    assert "English" in result.stdout


def test_record_prints_transcript_and_summary(preloaded_source):
    result = runner.invoke(cli.app, ["record", "42", "--backend", "dummy", "--duration", "0"])

    assert result.exit_code == 0, result.stdout
    assert "Dummy transcript #0" in result.stdout
    assert "Stopped tab 42: 1 segment(s), 1 result(s), 0 failure(s)" in result.stdout
    assert preloaded_source.opened[0].tab_id == "42"


def test_record_reports_start_failure(make_source, monkeypatch):
    source = make_source(channels=0)
    monkeypatch.setattr(cli, "DeviceTabSource", lambda *args, **kwargs: source)

    result = runner.invoke(cli.app, ["record", "42", "--backend", "dummy", "--duration", "0"])

    assert result.exit_code == 1


def test_record_rejects_unknown_backend(preloaded_source):
    result = runner.invoke(cli.app, ["record", "42", "--backend", "carrier-pigeon", "--duration", "0"])

    assert result.exit_code != 0
