from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Union


Timestamp = Union[int, float, str]
FieldValue = Union[float, str]


@dataclass(frozen=True)
class LinkParameters:
    baud_rate: int = 9600
    data_bits: int = 8
    stop_bits: float = 1
    parity: str = "none"  # "none" | "even" | "odd" | "mark" | "space"


@dataclass(frozen=True)
class ReadingRecord:
    temperature: float
    humidity: float
    pressure: float
    weather_desc: str
    sensor_id: str
    location: tuple[float, float]
    battery: float
    timestamp: Timestamp  # passed through as sent by the device
    mac: Optional[str] = None  # only present in the "device" schema

    def as_fields(self) -> dict[str, object]:
        """Ordered wire-named mapping, used when no raw payload is available."""
        out: dict[str, object] = {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "pressure": self.pressure,
            "weatherDesc": self.weather_desc,
            "sensorId": self.sensor_id,
            "location": list(self.location),
            "battery": self.battery,
            "timestamp": self.timestamp,
        }
        if self.mac is not None:
            out["mac"] = self.mac
        return out


@dataclass(frozen=True)
class SensorProfile:
    sensor_id: str
    temp_offset: float = 0.0
    humidity_offset: float = 0.0
    pressure_offset: float = 0.0
    battery_offset: float = 0.0
    loc_offset: tuple[float, float] = (0.0, 0.0)

    def apply(self, r: ReadingRecord) -> ReadingRecord:
        return replace(
            r,
            temperature=r.temperature + self.temp_offset,
            humidity=r.humidity + self.humidity_offset,
            pressure=r.pressure + self.pressure_offset,
            battery=r.battery + self.battery_offset,
            location=(r.location[0] + self.loc_offset[0], r.location[1] + self.loc_offset[1]),
            sensor_id=self.sensor_id,
            mac=None,  # hardware address belongs to the real device only
        )


@dataclass(frozen=True)
class TimeSeriesPoint:
    measurement: str
    tags: Mapping[str, str] = field(default_factory=dict)
    fields: Mapping[str, FieldValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))


@dataclass(frozen=True)
class DecodedLine:
    record: ReadingRecord
    raw: Mapping[str, object]  # fields exactly as they arrived, in arrival order


class SessionState(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


@dataclass
class PipelineStats:
    bytes_received: int = 0
    lines_framed: int = 0
    records_decoded: int = 0
    decode_failures: int = 0
    records_published: int = 0
    broadcast_failures: int = 0
    store_failures: int = 0
    last_record_at: Optional[str] = None

    def to_dict(self) -> dict:
        return dict(self.__dict__)
