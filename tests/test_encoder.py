from dataclasses import replace

import pytest

from weather_bridge.services.encoder import PointEncoder, PointPolicy


def test_shared_mode_uses_common_measurement_and_sensor_tag(canonical) -> None:
    point = PointEncoder().encode(canonical)

    assert point.measurement == "weather-data"
    assert point.tags == {"crop": "grapes", "plot": "1", "region": "west", "sensor": "DEV1"}


def test_per_sensor_mode_keys_measurement_by_sensor(canonical) -> None:
    encoder = PointEncoder(PointPolicy(mode="per_sensor", static_tags={"site": "north"}))
    point = encoder.encode(canonical)

    assert point.measurement == "DEV1"
    assert point.tags == {"site": "north"}


def test_field_set(canonical) -> None:
    fields = PointEncoder().encode(canonical).fields

    assert fields == {
        "temperature": 20.0,
        "humidity": 55.0,
        "pressure": 1000.0,
        "weatherDesc": "clear",
        "sensorId": "DEV1",
        "latitude": 1.0,
        "longitude": 2.0,
        "battery": 90.0,
        "timestamp": 1000.0,
    }
    assert isinstance(fields["timestamp"], float)


def test_string_timestamps_stay_strings(canonical) -> None:
    point = PointEncoder().encode(replace(canonical, timestamp="2024-05-01T10:00:00Z"))
    assert point.fields["timestamp"] == "2024-05-01T10:00:00Z"


def test_mac_is_written_when_present(canonical) -> None:
    point = PointEncoder().encode(replace(canonical, mac="AA:BB"))
    assert point.fields["mac"] == "AA:BB"


def test_encoding_is_deterministic(canonical) -> None:
    encoder = PointEncoder()
    first, second = encoder.encode(canonical), encoder.encode(canonical)

    assert first == second
    assert list(first.tags.items()) == list(second.tags.items())
    assert list(first.fields.items()) == list(second.fields.items())


def test_unknown_measurement_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        PointPolicy(mode="per_device")


def test_encoded_point_cannot_be_modified(canonical) -> None:
    point = PointEncoder().encode(canonical)

    with pytest.raises(TypeError):
        point.tags["sensor"] = "OTHER"
    with pytest.raises(TypeError):
        point.fields["temperature"] = 0.0
    assert point.tags["sensor"] == "DEV1"
