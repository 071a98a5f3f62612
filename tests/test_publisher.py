import asyncio
import logging
from dataclasses import replace

from conftest import EMU1, RecordingChannel, RecordingStore
from weather_bridge.domain.fanout import fan_out
from weather_bridge.domain.models import PipelineStats
from weather_bridge.services.encoder import PointEncoder
from weather_bridge.services.publisher import DualSinkPublisher, reading_payload


def _records(canonical, n: int = 5):
    return [replace(canonical, temperature=float(i)) for i in range(n)]


def _publish_all(publisher, records, stats) -> None:
    async def go():
        lanes = publisher.open_lanes("/dev/ttyUSB0", stats)
        for r in records:
            lanes.submit(r)
        await lanes.drain()
    asyncio.run(go())


def test_store_receives_every_record_when_broadcast_always_fails(canonical, caplog) -> None:
    channel, store, stats = RecordingChannel(fail=True), RecordingStore(), PipelineStats()
    publisher = DualSinkPublisher(channel, store, PointEncoder())
    records = _records(canonical)

    with caplog.at_level(logging.WARNING):
        _publish_all(publisher, records, stats)

    encoder = PointEncoder()
    assert store.points == [encoder.encode(r) for r in records]
    assert stats.broadcast_failures == len(records)
    assert stats.store_failures == 0
    assert stats.records_published == len(records)
    assert "Broadcast failed" in caplog.text


def test_broadcast_receives_every_record_when_store_always_fails(canonical) -> None:
    channel, store, stats = RecordingChannel(), RecordingStore(fail=True), PipelineStats()
    publisher = DualSinkPublisher(channel, store, PointEncoder())
    records = _records(canonical)

    _publish_all(publisher, records, stats)

    temps = [p["values"][p["keys"].index("temperature")] for p in channel.topic("reading")]
    assert temps == [float(i) for i in range(len(records))]
    assert stats.store_failures == len(records)
    assert stats.broadcast_failures == 0


def test_slow_failing_store_never_holds_back_later_broadcasts(canonical) -> None:
    channel, store, stats = RecordingChannel(), RecordingStore(fail=True, delay_s=0.2), PipelineStats()
    publisher = DualSinkPublisher(channel, store, PointEncoder())
    records = _records(canonical, 4)

    async def go():
        lanes = publisher.open_lanes("/dev/ttyUSB0", stats)
        for r in records:
            lanes.submit(r)
        await asyncio.sleep(0.05)
        broadcast_before_store = len(channel.topic("reading"))
        await lanes.drain()
        return broadcast_before_store

    assert asyncio.run(go()) == len(records)
    assert stats.store_failures == len(records)
    assert stats.broadcast_failures == 0


def test_slow_store_keeps_its_own_order(canonical) -> None:
    channel, store, stats = RecordingChannel(), RecordingStore(delay_s=0.02), PipelineStats()
    publisher = DualSinkPublisher(channel, store, PointEncoder())
    records = _records(canonical, 3)

    _publish_all(publisher, records, stats)

    assert [p.fields["temperature"] for p in store.points] == [0.0, 1.0, 2.0]
    assert stats.records_published == len(records)


def test_without_store_only_broadcasts(canonical) -> None:
    channel, stats = RecordingChannel(), PipelineStats()
    publisher = DualSinkPublisher(channel, None, PointEncoder())

    _publish_all(publisher, [canonical], stats)

    assert len(channel.messages) == 1
    assert stats.store_failures == 0


def test_payload_forwards_raw_fields_for_the_device_reading(canonical) -> None:
    raw = {"temperature": 20, "extra": "kept", "sensorId": "DEV1"}
    payload = reading_payload("/dev/ttyUSB0", canonical, raw)

    assert payload["device"] == "/dev/ttyUSB0"
    assert payload["keys"] == ["temperature", "extra", "sensorId"]
    assert payload["values"] == [20, "kept", "DEV1"]


def test_payload_for_emulated_reading_uses_record_fields(canonical) -> None:
    emu = fan_out(canonical, [EMU1])[1]
    payload = reading_payload("/dev/ttyUSB0", emu)

    fields = dict(zip(payload["keys"], payload["values"]))
    assert payload["sensorId"] == "EMU1"
    assert fields["sensorId"] == "EMU1"
    assert fields["location"] == [2.0, 3.0]
    assert fields["pressure"] == 950.0
