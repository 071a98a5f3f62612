from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from ..domain.models import FieldValue, ReadingRecord, TimeSeriesPoint

MEASUREMENT_MODES = ("shared", "per_sensor")


@dataclass(frozen=True)
class PointPolicy:
    mode: str = "shared"
    measurement_name: str = "weather-data"
    static_tags: Mapping[str, str] = field(
        default_factory=lambda: {"crop": "grapes", "plot": "1", "region": "west"}
    )

    def __post_init__(self) -> None:
        if self.mode not in MEASUREMENT_MODES:
            raise ValueError(f"Unknown measurement mode: {self.mode!r}")


def _timestamp_field(ts) -> FieldValue:
    # numeric timestamps are written as floats, string ones verbatim
    if isinstance(ts, str):
        return ts
    return float(ts)


class PointEncoder:
    def __init__(self, policy: PointPolicy | None = None) -> None:
        self.policy = policy or PointPolicy()

    def encode(self, r: ReadingRecord) -> TimeSeriesPoint:
        p = self.policy
        tags = {k: str(v) for k, v in sorted(p.static_tags.items())}
        if p.mode == "shared":
            measurement = p.measurement_name
            tags["sensor"] = r.sensor_id
        else:
            measurement = r.sensor_id

        fields: dict[str, FieldValue] = {
            "temperature": float(r.temperature),
            "humidity": float(r.humidity),
            "pressure": float(r.pressure),
            "weatherDesc": r.weather_desc,
            "sensorId": r.sensor_id,
            "latitude": float(r.location[0]),
            "longitude": float(r.location[1]),
            "battery": float(r.battery),
            "timestamp": _timestamp_field(r.timestamp),
        }
        if r.mac is not None:
            fields["mac"] = r.mac

        return TimeSeriesPoint(measurement=measurement, tags=tags, fields=fields)
