"""Media source lifecycle tests using a fake runner."""

from __future__ import annotations

from datetime import timedelta

import pytest

from rtsp_kvs.media.controller import BridgeState, RtspMediaSource
from rtsp_kvs.media.errors import AlreadyInitialized, NotInitialized, PipelineStartFailed
from rtsp_kvs.media.frame import FlowResult
from rtsp_kvs.storage import EventBus, EventType

URI = "rtsp://camera.local:554/stream1"


def _media_source(runner_factory, **kwargs) -> RtspMediaSource:
    return RtspMediaSource(URI, timedelta(hours=1), runner_factory=runner_factory, **kwargs)


def test_lifecycle_walks_through_every_state(runner_factory, recording_sink) -> None:
    source = _media_source(runner_factory)
    assert source.state() == BridgeState.UNINITIALIZED
    assert not source.is_stopped()

    source.initialize(recording_sink)
    assert source.state() == BridgeState.READY
    assert runner_factory.latest.rtsp_uri == URI

    source.start()
    assert source.state() == BridgeState.RUNNING

    source.stop()
    assert source.state() == BridgeState.STOPPED
    assert source.is_stopped()


def test_start_before_initialize_fails(runner_factory) -> None:
    with pytest.raises(NotInitialized):
        _media_source(runner_factory).start()


@pytest.mark.parametrize("started", [False, True])
def test_initialize_twice_fails(runner_factory, recording_sink, started) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)
    if started:
        source.start()

    with pytest.raises(AlreadyInitialized):
        source.initialize(recording_sink)
    assert len(runner_factory.runners) == 1


def test_start_twice_fails(runner_factory, recording_sink) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)
    source.start()

    with pytest.raises(PipelineStartFailed):
        source.start()


def test_stop_is_idempotent(runner_factory, recording_sink) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)
    source.start()
    runner = runner_factory.latest

    for _ in range(5):
        source.stop()

    assert source.state() == BridgeState.STOPPED
    assert runner.stop_calls == 1


def test_stop_and_free_before_initialize_are_no_ops(runner_factory) -> None:
    source = _media_source(runner_factory)
    source.stop()
    source.free()
    assert source.state() == BridgeState.UNINITIALIZED
    assert runner_factory.runners == []


def test_free_is_an_alias_for_stop(runner_factory, recording_sink) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)
    source.start()

    source.free()

    assert source.is_stopped()
    assert runner_factory.latest.stop_calls == 1


def test_reinitialize_after_stop_builds_fresh_runner(runner_factory, recording_sink, sample_factory) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)
    source.start()
    runner_factory.latest.adapter.handle(sample_factory(b"\x65", pts=0))
    source.stop()

    source.initialize(recording_sink)

    assert len(runner_factory.runners) == 2
    assert runner_factory.runners[0] is not runner_factory.runners[1]
    assert runner_factory.latest.adapter.frame_index == 0
    assert source.state() == BridgeState.READY


def test_faulted_pipeline_reads_as_stopped(runner_factory, recording_sink) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)
    source.start()

    # Pipeline left PLAYING on its own (e.g. after a bus error).
    runner_factory.latest.running = False

    assert source.state() == BridgeState.STOPPED
    source.initialize(recording_sink)
    assert runner_factory.runners[0].stop_calls == 1
    assert source.state() == BridgeState.READY


def test_describe_uses_bridge_configuration(runner_factory) -> None:
    source = _media_source(
        runner_factory,
        tags=[("Produced-By", "tests")],
        frame_rate=25,
    )

    descriptor = source.describe("front-door")

    assert descriptor.stream_name == "front-door"
    assert descriptor.retention == timedelta(hours=1)
    assert descriptor.tags == (("Produced-By", "tests"),)
    assert descriptor.frame_rate == 25
    assert descriptor.codec_private_data is None
    assert descriptor.max_latency == timedelta(0)


def test_non_positive_retention_is_rejected(runner_factory) -> None:
    with pytest.raises(ValueError):
        RtspMediaSource(URI, timedelta(0), runner_factory=runner_factory)


def test_stop_during_sample_callback(runner_factory, recording_sink, sample_factory) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)
    source.start()
    runner = runner_factory.latest
    sample = sample_factory(b"\x65" * 64, pts=0)

    def _stop_mid_frame(_frame) -> None:
        assert sample.mapped
        source.stop()

    recording_sink.on_frame_hook = _stop_mid_frame

    assert runner.adapter.handle(sample) == FlowResult.OK
    assert not sample.mapped
    assert sample.released
    assert source.state() == BridgeState.STOPPED

    source.stop()
    assert runner.stop_calls == 1


def test_start_in_background_returns_thread(runner_factory, recording_sink) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)

    thread = source.start_in_background()
    thread.join(timeout=1.0)

    assert runner_factory.latest.has_started
    assert source.state() == BridgeState.RUNNING


def test_state_changes_are_published(runner_factory, recording_sink) -> None:
    bus = EventBus()
    subscription = bus.subscribe()
    source = _media_source(runner_factory, event_bus=bus)

    source.initialize(recording_sink)
    source.stop()

    states = []
    while True:
        message = subscription.get(timeout=0.05)
        if message is None:
            break
        assert message.type == EventType.STATE_CHANGED
        states.append(message.payload["state"])
    assert states == ["READY", "STOPPED"]
    bus.stop()


def test_statistics_reflect_session_counters(runner_factory, recording_sink, sample_factory) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)
    source.start()
    runner_factory.latest.adapter.handle(sample_factory(b"\x65", pts=0, codec_data=b"\x01"))

    stats = source.statistics()

    assert stats["state"] == "RUNNING"
    assert stats["cpd_delivered"] is True
    assert stats["frames_delivered"] == 1
    assert stats["next_frame_index"] == 1


def test_start_after_fault_requires_reinitialise(runner_factory, recording_sink) -> None:
    source = _media_source(runner_factory)
    source.initialize(recording_sink)
    source.start()
    runner_factory.latest.running = False

    with pytest.raises(PipelineStartFailed):
        source.start()
    assert source.state() == BridgeState.STOPPED
