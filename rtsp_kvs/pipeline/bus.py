"""Error reporter watching the pipeline bus."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import gi

gi.require_version("Gst", "1.0")

from gi.repository import GLib, Gst  # type: ignore

from rtsp_kvs.media.errors import BusError
from rtsp_kvs.storage import EventBus, EventType

LOGGER = logging.getLogger(__name__)


class BusErrorReporter:
    """Log asynchronous pipeline faults and forward them to the runner.

    The reporter never changes pipeline state; the runner decides what a
    fault means for ``is_running``.
    """

    def __init__(
        self,
        on_error: Callable[[BusError], None],
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self._on_error = on_error
        self._event_bus = event_bus
        self._pipeline: Optional[Gst.Pipeline] = None
        self._watch_id: Optional[int] = None

    def attach(self, pipeline: Gst.Pipeline) -> None:
        if self._watch_id is not None:
            return
        self._pipeline = pipeline
        bus = pipeline.get_bus()
        self._watch_id = bus.add_watch(GLib.PRIORITY_DEFAULT, self._on_bus_message, None)

    def detach(self) -> None:
        if self._watch_id is not None:
            GLib.source_remove(self._watch_id)
            self._watch_id = None
        self._pipeline = None

    def _on_bus_message(self, bus, message, _user_data) -> bool:
        msg_type = message.type
        if msg_type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            record = BusError(
                source=message.src.get_name() if message.src is not None else "unknown",
                code=err.code,
                message=err.message,
                debug=debug,
            )
            LOGGER.error("Pipeline error from %s (code %d): %s", record.source, record.code, record.message)
            if debug:
                LOGGER.debug("Debug info: %s", debug)
            if self._event_bus is not None:
                self._event_bus.emit(
                    EventType.PIPELINE_ERROR,
                    {
                        "source": record.source,
                        "code": record.code,
                        "message": record.message,
                        "debug": record.debug,
                    },
                )
            self._on_error(record)
        elif msg_type == Gst.MessageType.WARNING:
            warn, debug = message.parse_warning()
            LOGGER.warning("Pipeline warning: %s (%s)", warn.message, debug)
        elif msg_type == Gst.MessageType.EOS:
            LOGGER.info("Pipeline received EOS")
        elif msg_type == Gst.MessageType.STATE_CHANGED:
            if message.src == self._pipeline:
                old_state, new_state, _pending = message.parse_state_changed()
                LOGGER.debug(
                    "Pipeline state changed: %s -> %s",
                    Gst.Element.state_get_name(old_state),
                    Gst.Element.state_get_name(new_state),
                )
        return True


__all__ = ["BusErrorReporter"]
