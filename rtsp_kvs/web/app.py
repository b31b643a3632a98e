"""Flask application exposing bridge status, journal contents and live events."""

from __future__ import annotations

import datetime as dt
import json
import logging
from typing import Optional

from flask import Flask, Response, jsonify, request

from rtsp_kvs.media.controller import RtspMediaSource
from rtsp_kvs.storage import EventBus, EventType, FrameJournal

LOGGER = logging.getLogger(__name__)

STREAMED_EVENTS = (
    EventType.STATE_CHANGED,
    EventType.CODEC_PRIVATE_DATA,
    EventType.SINK_ERROR,
    EventType.PIPELINE_ERROR,
)


def _row_to_dict(row) -> dict:
    return {key: row[key] for key in row.keys()}


def _clamp_limit(raw: Optional[str], default: int, maximum: int) -> int:
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return max(1, min(value, maximum))


def create_app(
    stream_name: str,
    media_source: RtspMediaSource,
    journal: FrameJournal,
    event_bus: Optional[EventBus] = None,
) -> Flask:
    app = Flask(__name__)

    @app.route("/api/status")
    def status():
        errors = list(journal.fetch_errors(stream_name, limit=1))
        payload = {
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            "stream_name": stream_name,
            "bridge": media_source.statistics(),
            "journal": journal.stream_summary(stream_name),
            "latest_error": _row_to_dict(errors[0]) if errors else None,
        }
        return jsonify(payload)

    @app.route("/api/frames")
    def frames():
        limit = _clamp_limit(request.args.get("limit"), default=50, maximum=1000)
        rows = [_row_to_dict(row) for row in journal.fetch_frames(stream_name, limit=limit)]
        for row in rows:
            row["key_frame"] = bool(row["key_frame"])
        return jsonify({"stream_name": stream_name, "frames": rows})

    @app.route("/api/errors")
    def errors():
        limit = _clamp_limit(request.args.get("limit"), default=20, maximum=500)
        rows = [_row_to_dict(row) for row in journal.fetch_errors(stream_name, limit=limit)]
        return jsonify({"stream_name": stream_name, "errors": rows})

    @app.route("/api/events/stream")
    def event_stream():
        """Server-Sent Events feed of state changes and errors."""
        if not event_bus:
            return jsonify({"error": "Event bus not available"}), 503

        def generate():
            subscription = event_bus.subscribe(maxsize=50)
            try:
                yield "data: %s\n\n" % json.dumps({"type": "connected", "stream_name": stream_name})
                while True:
                    event = subscription.get(timeout=15.0)
                    if event is None:
                        yield ": keepalive\n\n"
                        continue
                    if event.type not in STREAMED_EVENTS:
                        continue
                    event_data = {
                        "type": event.type.name.lower(),
                        "timestamp": event.timestamp,
                        "payload": event.payload if isinstance(event.payload, dict) else {},
                    }
                    yield "data: %s\n\n" % json.dumps(event_data, default=str)
            finally:
                subscription.close()

        return Response(generate(), mimetype="text/event-stream")

    return app


__all__ = ["create_app"]
