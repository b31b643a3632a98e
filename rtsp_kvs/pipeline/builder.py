"""Construction of the RTSP → AVC access-unit element graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import gi

gi.require_version("Gst", "1.0")

from gi.repository import Gst  # type: ignore

from rtsp_kvs.media.errors import BusError, LinkFailed, PipelineConstructionFailed
from rtsp_kvs.pipeline.bus import BusErrorReporter
from rtsp_kvs.media.uri import validate_rtsp_uri
from rtsp_kvs.storage import EventBus

LOGGER = logging.getLogger(__name__)

PIPELINE_NAME = "rtsp-kinesis-pipeline"
AVC_CAPS = "video/x-h264,stream-format=avc,alignment=au"

SOURCE_NAME = "source"
DEPAY_NAME = "depay"
FILTER_NAME = "encoder_filter"
APPSINK_NAME = "appsink"

PadAddedListener = Callable[[Gst.Element, Gst.Pad], None]
NewSampleListener = Callable[[Gst.Element], Gst.FlowReturn]
BusErrorListener = Callable[[BusError], None]


@dataclass
class PipelineListeners:
    """Callbacks registered on the graph, with the handler ids needed to undo them."""

    pad_added: PadAddedListener
    new_sample: NewSampleListener
    bus_error: BusErrorListener
    signal_ids: List[Tuple[Gst.Element, int]] = field(default_factory=list)


@dataclass
class PipelineHandle:
    """Sole owner of the pipeline and its elements."""

    pipeline: Gst.Pipeline
    elements: Dict[str, Gst.Element]
    listeners: PipelineListeners
    reporter: BusErrorReporter
    disposed: bool = False

    def element(self, name: str) -> Gst.Element:
        return self.elements[name]

    def attach_bus(self) -> None:
        self.reporter.attach(self.pipeline)

    def set_state(self, state: Gst.State) -> Gst.StateChangeReturn:
        return self.pipeline.set_state(state)

    def is_playing(self) -> bool:
        if self.disposed:
            return False
        _ret, current, pending = self.pipeline.get_state(0)
        return current == Gst.State.PLAYING or pending == Gst.State.PLAYING

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        for element, handler_id in self.listeners.signal_ids:
            try:
                element.disconnect(handler_id)
            except Exception:
                LOGGER.debug("Failed to disconnect handler %d", handler_id, exc_info=True)
        self.listeners.signal_ids.clear()
        self.reporter.detach()
        if self.pipeline.set_state(Gst.State.NULL) == Gst.StateChangeReturn.FAILURE:
            LOGGER.warning("Pipeline refused transition to NULL during dispose")
        for element in self.elements.values():
            self.pipeline.remove(element)
        self.elements.clear()
        LOGGER.debug("Pipeline %s disposed", PIPELINE_NAME)


def _make_element(factory_name: str, name: str) -> Gst.Element:
    element = Gst.ElementFactory.make(factory_name, name)
    if not element:
        raise PipelineConstructionFailed(f"Failed to create element {factory_name} ({name})")
    return element


def _is_video_pad(pad: Gst.Pad) -> bool:
    caps = pad.get_current_caps() or pad.query_caps(None)
    if caps is None or caps.get_size() == 0:
        # No caps yet; let the link attempt decide.
        return True
    structure = caps.get_structure(0)
    media = structure.get_string("media")
    return media is None or media == "video"


def _make_pad_added_handler(depay: Gst.Element) -> PadAddedListener:
    def _on_pad_added(source: Gst.Element, pad: Gst.Pad) -> None:
        if not _is_video_pad(pad):
            LOGGER.info("Ignoring non-video pad %s from %s", pad.get_name(), source.get_name())
            return
        sink_pad = depay.get_static_pad("sink")
        if sink_pad is None or sink_pad.is_linked():
            LOGGER.debug("Depayloader already linked; ignoring pad %s", pad.get_name())
            return
        result = pad.link(sink_pad)
        if result == Gst.PadLinkReturn.OK:
            LOGGER.info("Linked %s:%s to %s", source.get_name(), pad.get_name(), DEPAY_NAME)
            return
        failure = LinkFailed(f"Failed to link {source.get_name()}:{pad.get_name()} to {DEPAY_NAME}: {result.value_nick}")
        LOGGER.error("%s", failure)
        # Streaming-thread failures surface through the bus, where the reporter picks them up.
        source.message_full(
            Gst.MessageType.ERROR,
            Gst.core_error_quark(),
            Gst.CoreError.NEGOTIATION,
            failure.reason,
            None,
            __file__,
            "_on_pad_added",
            0,
        )

    return _on_pad_added


def build_pipeline(
    rtsp_uri: str,
    on_sample: NewSampleListener,
    on_error: BusErrorListener,
    event_bus: Optional[EventBus] = None,
) -> PipelineHandle:
    """Build ``rtspsrc ╌► rtph264depay → capsfilter(avc/au) → appsink``.

    Raises ``PipelineConstructionFailed`` (or ``LinkFailed``) when an element
    cannot be created or statically linked.
    """

    location = validate_rtsp_uri(rtsp_uri)
    if not Gst.is_initialized():
        Gst.init(None)

    LOGGER.info("Building pipeline %s for %s", PIPELINE_NAME, location)
    pipeline = Gst.Pipeline.new(PIPELINE_NAME)
    if pipeline is None:
        raise PipelineConstructionFailed("Failed to create pipeline")

    source = _make_element("rtspsrc", SOURCE_NAME)
    source.set_property("location", location)
    # Some cameras reject the long RTSP headers rtspsrc sends by default.
    source.set_property("short-header", True)

    depay = _make_element("rtph264depay", DEPAY_NAME)

    caps_filter = _make_element("capsfilter", FILTER_NAME)
    caps_filter.set_property("caps", Gst.Caps.from_string(AVC_CAPS))

    appsink = _make_element("appsink", APPSINK_NAME)
    appsink.set_property("emit-signals", True)

    elements = {
        SOURCE_NAME: source,
        DEPAY_NAME: depay,
        FILTER_NAME: caps_filter,
        APPSINK_NAME: appsink,
    }
    for element in elements.values():
        if not pipeline.add(element):
            raise PipelineConstructionFailed(f"Failed to add {element.get_name()} to pipeline")

    chain = [depay, caps_filter, appsink]
    for upstream, downstream in zip(chain, chain[1:]):
        if not upstream.link(downstream):
            raise LinkFailed(f"Failed to link {upstream.get_name()} to {downstream.get_name()}")

    listeners = PipelineListeners(
        pad_added=_make_pad_added_handler(depay),
        new_sample=on_sample,
        bus_error=on_error,
    )
    listeners.signal_ids.append((source, source.connect("pad-added", listeners.pad_added)))
    listeners.signal_ids.append((appsink, appsink.connect("new-sample", listeners.new_sample)))

    handle = PipelineHandle(
        pipeline=pipeline,
        elements=elements,
        listeners=listeners,
        reporter=BusErrorReporter(listeners.bus_error, event_bus=event_bus),
    )
    LOGGER.debug(
        "Pipeline elements: %s ~> %s",
        SOURCE_NAME,
        " -> ".join(element.get_name() for element in chain),
    )
    return handle


__all__ = [
    "AVC_CAPS",
    "PIPELINE_NAME",
    "PipelineHandle",
    "PipelineListeners",
    "build_pipeline",
]
