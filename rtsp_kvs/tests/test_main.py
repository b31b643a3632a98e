"""Launcher argument handling and wiring tests."""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import pytest

from rtsp_kvs.media.controller import RtspMediaSource
from rtsp_kvs.service import main as launcher
from rtsp_kvs.storage import FrameJournal


def test_missing_arguments_exit_with_usage(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        launcher.main(["only-a-name"])

    assert excinfo.value.code == 2
    assert "usage:" in capsys.readouterr().err


def test_invalid_uri_returns_failure(tmp_path: Path, capsys) -> None:
    args = launcher.parse_args(["cam", "http://camera/stream", "--journal", str(tmp_path / "j.db")])

    assert launcher.run(args) == launcher.EXIT_FAILURE
    assert "rtsp-kvs: error:" in capsys.readouterr().err


def test_missing_config_returns_failure(tmp_path: Path) -> None:
    args = launcher.parse_args(
        ["cam", "rtsp://camera/stream", "--config", str(tmp_path / "absent.json")]
    )

    assert launcher.run(args) == launcher.EXIT_FAILURE


def test_parse_args_defaults() -> None:
    args = launcher.parse_args(["cam", "rtsp://camera/stream"])

    assert args.stream_name == "cam"
    assert args.rtsp_uri == "rtsp://camera/stream"
    assert args.log_level == "INFO"
    assert not args.web
    assert not args.store_payloads


def test_run_registers_stream_and_shuts_down(tmp_path: Path, monkeypatch, runner_factory) -> None:
    def _build(config, rtsp_uri, event_bus):
        return RtspMediaSource(
            rtsp_uri,
            config.stream.retention,
            config.stream.tags,
            event_bus=event_bus,
            runner_factory=runner_factory,
        )

    monkeypatch.setattr(launcher, "build_media_source", _build)
    journal_path = tmp_path / "journal.db"
    args = launcher.parse_args(["cam", "rtsp://camera/stream", "--journal", str(journal_path)])

    assert launcher.run(args) == launcher.EXIT_OK

    runner = runner_factory.latest
    assert runner.has_started
    assert runner.stop_calls == 1
    journal = FrameJournal(str(journal_path), ensure_fsync=False)
    try:
        assert journal.stream_summary("cam")["registered"]
    finally:
        journal.close()


def test_build_media_source_uses_stream_settings() -> None:
    from rtsp_kvs.service.config import BridgeConfig
    from rtsp_kvs.storage import EventBus

    config = BridgeConfig.from_dict({"stream": {"retention": 600, "frame_rate": 15}})
    source = launcher.build_media_source(config, "rtsp://camera/stream", EventBus())

    descriptor = source.describe("cam")
    assert descriptor.retention == timedelta(minutes=10)
    assert descriptor.frame_rate == 15


def test_unusable_journal_path_returns_failure(tmp_path: Path, capsys) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("not a directory", encoding="utf-8")
    args = launcher.parse_args(["cam", "rtsp://camera/stream", "--journal", str(blocker / "j.db")])

    assert launcher.run(args) == launcher.EXIT_FAILURE
    err = capsys.readouterr().err
    assert err.startswith("rtsp-kvs: error: cannot open journal")
    assert len(err.strip().splitlines()) == 1


def test_missing_gstreamer_bindings_return_failure(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setitem(sys.modules, "rtsp_kvs.pipeline", None)
    monkeypatch.setitem(sys.modules, "rtsp_kvs.pipeline.runner", None)
    args = launcher.parse_args(["cam", "rtsp://camera/stream", "--journal", str(tmp_path / "j.db")])

    assert launcher.run(args) == launcher.EXIT_FAILURE
    assert "GStreamer Python bindings are unavailable" in capsys.readouterr().err
