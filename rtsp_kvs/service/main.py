"""Launcher wiring the RTSP media source to the journal producer."""

from __future__ import annotations

import argparse
import logging
import os
import sqlite3
import sys
import threading
from typing import Optional, Sequence

from rtsp_kvs.media.controller import BridgeRunner, BridgeState, RtspMediaSource, RunnerFactory
from rtsp_kvs.media.errors import BridgeError
from rtsp_kvs.media.frame import MediaSourceSink
from rtsp_kvs.service.config import BridgeConfig, resolve_config, validate_rtsp_uri
from rtsp_kvs.service.producer import JournalProducer
from rtsp_kvs.storage import (
    EventBus,
    EventMessage,
    EventSubscription,
    EventType,
    FrameJournal,
    PipelineErrorRecord,
)

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class EventProcessor:
    """Persists pipeline errors published on the event bus."""

    def __init__(self, stream_name: str, event_bus: EventBus, journal: FrameJournal) -> None:
        self._stream_name = stream_name
        self._journal = journal
        self._subscription: EventSubscription = event_bus.subscribe()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="event-processor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._subscription.close()
        self._thread.join(timeout=2.0)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            message = self._subscription.get(timeout=0.5)
            if not message:
                continue
            self._handle_event(message)

    def _handle_event(self, message: EventMessage) -> None:
        if message.type == EventType.PIPELINE_ERROR and isinstance(message.payload, dict):
            payload = message.payload
            self._journal.record_pipeline_error(
                PipelineErrorRecord(
                    stream_name=self._stream_name,
                    source=payload.get("source", "unknown"),
                    code=payload.get("code", 0),
                    message=payload.get("message", ""),
                    debug=payload.get("debug"),
                )
            )
        elif message.type == EventType.STATE_CHANGED:
            LOGGER.info("Media source state: %s", message.payload.get("state"))


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rtsp-kvs",
        description="Publish an H.264 RTSP stream as timestamped frames",
    )
    parser.add_argument("stream_name", help="Name of the destination stream")
    parser.add_argument("rtsp_uri", help="RTSP URL of the camera (rtsp://host[:port]/path)")
    parser.add_argument("--config", help="Path to bridge configuration JSON")
    parser.add_argument("--journal", help="Override the journal database path")
    parser.add_argument(
        "--store-payloads",
        action="store_true",
        help="Keep a copy of every access unit in the journal",
    )
    parser.add_argument("--web", action="store_true", help="Serve the status API")
    parser.add_argument(
        "--gst-debug",
        help="Set GST_DEBUG for detailed GStreamer logging (e.g. '3' or 'rtspsrc:5')",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def gst_runner_factory(stop_timeout: float) -> RunnerFactory:
    """Runner factory building GStreamer runners with the configured stop timeout."""

    def _factory(rtsp_uri: str, sink: MediaSourceSink, event_bus: Optional[EventBus]) -> BridgeRunner:
        try:
            from rtsp_kvs.pipeline.runner import GstRunner
        except ValueError as exc:
            # gi.require_version reports a missing typelib as ValueError.
            raise ImportError(str(exc)) from exc

        return GstRunner(rtsp_uri, sink, event_bus=event_bus, stop_timeout=stop_timeout)

    return _factory


def build_media_source(config: BridgeConfig, rtsp_uri: str, event_bus: EventBus) -> RtspMediaSource:
    stream = config.stream
    return RtspMediaSource(
        rtsp_uri,
        stream.retention,
        [tuple(tag) for tag in stream.tags],
        fragment_duration=stream.fragment_duration,
        frame_rate=stream.frame_rate,
        avg_bandwidth_bps=stream.avg_bandwidth_bps,
        event_bus=event_bus,
        runner_factory=gst_runner_factory(config.stop_timeout_seconds),
    )


def run_web_server(
    config: BridgeConfig,
    stream_name: str,
    media_source: RtspMediaSource,
    journal: FrameJournal,
    event_bus: EventBus,
) -> threading.Thread:
    from rtsp_kvs.web import create_app

    app = create_app(stream_name, media_source, journal, event_bus)

    def _serve() -> None:
        LOGGER.info("Starting status API on %s:%s", config.web.host, config.web.port)
        app.run(
            host=config.web.host,
            port=config.web.port,
            debug=False,
            use_reloader=False,
            threaded=True,
        )

    thread = threading.Thread(target=_serve, name="status-api", daemon=True)
    thread.start()
    return thread


def _fail(message: str) -> int:
    print(f"rtsp-kvs: error: {message}", file=sys.stderr)
    return EXIT_FAILURE


def run(args: argparse.Namespace) -> int:
    if args.gst_debug:
        os.environ["GST_DEBUG"] = args.gst_debug
    configure_logging(args.log_level)

    try:
        config = resolve_config(args.config)
        rtsp_uri = validate_rtsp_uri(args.rtsp_uri)
    except (BridgeError, FileNotFoundError, ValueError) as exc:
        return _fail(str(exc))

    journal_path = args.journal or config.journal.database_path
    try:
        journal = FrameJournal(journal_path, ensure_fsync=config.journal.ensure_fsync)
    except (OSError, sqlite3.Error) as exc:
        return _fail(f"cannot open journal {journal_path}: {exc}")

    event_bus = EventBus()
    producer = JournalProducer(
        journal,
        event_bus=event_bus,
        store_payloads=args.store_payloads or config.journal.store_payloads,
    )
    event_processor = EventProcessor(args.stream_name, event_bus, journal)
    media_source = build_media_source(config, rtsp_uri, event_bus)
    LOGGER.info("Attaching stream %s to %s", args.stream_name, rtsp_uri)

    exit_code = EXIT_OK
    try:
        producer.register_media_source(args.stream_name, media_source)
        if args.web or config.web.enabled:
            run_web_server(config, args.stream_name, media_source, journal, event_bus)
        loop_thread = media_source.start_in_background()
        while loop_thread.is_alive():
            loop_thread.join(timeout=1.0)
            if media_source.state() == BridgeState.STOPPED:
                LOGGER.error("Pipeline stopped after a fatal error")
                exit_code = _fail("pipeline stopped after a fatal error; see log for details")
                break
    except ImportError as exc:
        exit_code = _fail(f"GStreamer Python bindings are unavailable: {exc}")
    except BridgeError as exc:
        exit_code = _fail(str(exc))
    except sqlite3.Error as exc:
        exit_code = _fail(f"journal write failed: {exc}")
    except KeyboardInterrupt:

        LOGGER.info("Shutdown requested")
    finally:
        producer.close()
        media_source.stop()
        event_processor.stop()
        event_bus.stop()
        journal.close()
        LOGGER.info("Shutdown complete")
    return exit_code


def main(argv: Optional[Sequence[str]] = None) -> None:
    raise SystemExit(run(parse_args(argv)))


if __name__ == "__main__":  # pragma: no cover - entry point guard
    main()
