"""Versioned wire schemas for one line of device output.

Historical firmware builds disagree on the identifier fields, so the schema
is selected explicitly by configuration instead of being guessed per line.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr

from ..domain.models import ReadingRecord

RecordSchema = Literal["sensor", "device"]

# booleans and numeric strings are rejected, not coerced
Number = Union[StrictInt, StrictFloat]


class _WeatherPayload(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    temperature: Number
    humidity: Number
    pressure: Number
    weatherDesc: StrictStr
    location: tuple[Number, Number]
    battery: Number
    timestamp: Union[StrictInt, StrictFloat, StrictStr]

    @abstractmethod
    def to_record(self) -> ReadingRecord:
        ...

    def _measurements(self) -> dict:
        return {
            "temperature": float(self.temperature),
            "humidity": float(self.humidity),
            "pressure": float(self.pressure),
            "weather_desc": self.weatherDesc,
            "location": (float(self.location[0]), float(self.location[1])),
            "battery": float(self.battery),
            "timestamp": self.timestamp,
        }


class SensorPayload(_WeatherPayload):
    sensorId: StrictStr

    def to_record(self) -> ReadingRecord:
        return ReadingRecord(sensor_id=self.sensorId, **self._measurements())


class DevicePayload(_WeatherPayload):
    deviceID: StrictStr
    mac: StrictStr

    def to_record(self) -> ReadingRecord:
        return ReadingRecord(sensor_id=self.deviceID, mac=self.mac, **self._measurements())


PAYLOAD_MODELS: dict[str, type[_WeatherPayload]] = {
    "sensor": SensorPayload,
    "device": DevicePayload,
}


def payload_model(schema: str) -> type[_WeatherPayload]:
    try:
        return PAYLOAD_MODELS[schema]
    except KeyError:
        raise ValueError(f"Unknown record schema: {schema!r} (expected one of {sorted(PAYLOAD_MODELS)})")
