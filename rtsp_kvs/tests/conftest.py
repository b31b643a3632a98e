"""Shared fakes standing in for GStreamer samples, sinks and runners."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional, Set, Tuple

import pytest

from rtsp_kvs.media.adapter import SampleAdapter
from rtsp_kvs.media.errors import SinkError
from rtsp_kvs.media.frame import Frame


class FakeSample:
    """In-memory sample that records how it was mapped and released."""

    def __init__(
        self,
        payload: bytes,
        pts: Optional[int] = None,
        dts: Optional[int] = None,
        delta: bool = False,
        codec_data: Optional[bytes] = None,
    ) -> None:
        self._payload = payload
        self._pts = pts
        self._dts = dts
        self._delta = delta
        self._codec_data = codec_data
        self.map_count = 0
        self.unmap_count = 0
        self.released = False

    @property
    def pts(self) -> Optional[int]:
        return self._pts

    @property
    def dts(self) -> Optional[int]:
        return self._dts

    @property
    def is_delta_unit(self) -> bool:
        return self._delta

    @property
    def mapped(self) -> bool:
        return self.map_count > self.unmap_count

    def codec_data(self) -> Optional[bytes]:
        return self._codec_data

    @contextmanager
    def map_payload(self) -> Iterator[memoryview]:
        self.map_count += 1
        view = memoryview(self._payload)
        try:
            yield view
        finally:
            view.release()
            self.unmap_count += 1

    def release(self) -> None:
        self.released = True


FrameSnapshot = Tuple[int, int, int, int, int, bytes]


class RecordingSink:
    """Sink that keeps an ordered log of what it received."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, object]] = []
        self.reject_indices: Set[int] = set()
        self.reject_cpd = False
        self.on_frame_hook = None

    @property
    def frames(self) -> List[FrameSnapshot]:
        return [payload for kind, payload in self.events if kind == "frame"]

    @property
    def cpds(self) -> List[bytes]:
        return [payload for kind, payload in self.events if kind == "cpd"]

    def on_codec_private_data(self, data: bytes) -> None:
        if self.reject_cpd:
            raise SinkError("codec private data refused")
        self.events.append(("cpd", bytes(data)))

    def on_frame(self, frame: Frame) -> None:
        if self.on_frame_hook is not None:
            self.on_frame_hook(frame)
        if frame.index in self.reject_indices:
            raise SinkError(f"frame {frame.index} refused")
        self.events.append(
            (
                "frame",
                (
                    frame.index,
                    int(frame.flags),
                    frame.decode_ts,
                    frame.presentation_ts,
                    frame.duration,
                    frame.payload.tobytes(),
                ),
            )
        )


class FakeRunner:
    """Runner double whose ``start`` returns immediately."""

    def __init__(self, rtsp_uri: str, sink, event_bus=None) -> None:
        self.rtsp_uri = rtsp_uri
        self.sink = sink
        self.event_bus = event_bus
        self.adapter = SampleAdapter(sink)
        self.running = False
        self.stop_calls = 0
        self._started = False

    @property
    def has_started(self) -> bool:
        return self._started

    def start(self) -> None:
        self._started = True
        self.running = True

    def stop(self) -> None:
        self.stop_calls += 1
        self.running = False

    def is_running(self) -> bool:
        return self.running


class RunnerRecorder:
    """Runner factory that remembers every runner it built."""

    def __init__(self) -> None:
        self.runners: List[FakeRunner] = []

    def __call__(self, rtsp_uri: str, sink, event_bus=None) -> FakeRunner:
        runner = FakeRunner(rtsp_uri, sink, event_bus)
        self.runners.append(runner)
        return runner

    @property
    def latest(self) -> FakeRunner:
        return self.runners[-1]


@pytest.fixture
def sample_factory():
    return FakeSample


@pytest.fixture
def sink_factory():
    return RecordingSink


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def runner_factory() -> RunnerRecorder:
    return RunnerRecorder()
