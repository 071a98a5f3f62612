from __future__ import annotations
import asyncio
import json
import logging
import math
import random
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from ..core.timeutil import epoch_ms
from ..domain.errors import DeviceUnavailable, WriteError
from ..domain.models import LinkParameters

logger = logging.getLogger(__name__)


@dataclass
class PatternConfig:
    temp_baseline: float = 21.0
    temp_amplitude: float = 4.0
    humidity_baseline: float = 55.0
    humidity_amplitude: float = 10.0
    pressure_baseline: float = 1013.0
    pressure_amplitude: float = 6.0
    period_s: float = 600.0
    noise: float = 0.2
    battery_start: float = 100.0
    battery_drain_per_line: float = 0.01
    location: tuple[float, float] = (45.0, -122.0)


@dataclass
class SimHandle:
    path: str
    link: LinkParameters
    closed: asyncio.Event = field(default_factory=asyncio.Event)
    lines_sent: int = 0
    commands: list[bytes] = field(default_factory=list)


class SimulatedWeatherStation:
    """
    Development transport that behaves like a weather station on a serial line:
    one JSON object per CRLF-terminated line every `interval_s` seconds.
    """

    def __init__(
        self,
        interval_s: float = 2.0,
        schema: str = "sensor",
        pattern: Optional[PatternConfig] = None,
        unavailable: tuple[str, ...] = (),
    ) -> None:
        self._interval_s = interval_s
        self._schema = schema
        self._pattern = pattern or PatternConfig()
        self._unavailable = set(unavailable)
        self._held: dict[str, SimHandle] = {}

    def _line(self, handle: SimHandle) -> bytes:
        p = self._pattern
        t = handle.lines_sent * self._interval_s
        phase = 2 * math.pi * t / max(p.period_s, 1.0)
        temp = p.temp_baseline + p.temp_amplitude * math.sin(phase) + random.uniform(-p.noise, p.noise)
        hum = p.humidity_baseline - p.humidity_amplitude * math.sin(phase) + random.uniform(-p.noise, p.noise)
        pres = p.pressure_baseline + p.pressure_amplitude * math.cos(phase) + random.uniform(-p.noise, p.noise)
        payload: dict = {
            "temperature": round(temp, 2),
            "humidity": round(max(0.0, min(100.0, hum)), 2),
            "pressure": round(pres, 2),
            "weatherDesc": "clear" if math.sin(phase) >= 0 else "cloudy",
        }
        ident = "SIM-" + handle.path.rsplit("/", 1)[-1]
        if self._schema == "device":
            payload["deviceID"] = ident
            payload["mac"] = "02:00:00:00:00:01"
        else:
            payload["sensorId"] = ident
        payload["location"] = list(p.location)
        payload["battery"] = round(max(0.0, p.battery_start - p.battery_drain_per_line * handle.lines_sent), 2)
        payload["timestamp"] = epoch_ms()
        return json.dumps(payload).encode("utf-8") + b"\r\n"

    async def open(self, path: str, link: LinkParameters) -> SimHandle:
        if path in self._unavailable:
            raise DeviceUnavailable(path, "no such device")
        if path in self._held:
            raise DeviceUnavailable(path, "device busy")
        handle = SimHandle(path=path, link=link)
        self._held[path] = handle
        logger.info("Simulated station %s opened", path)
        return handle

    async def read_stream(self, handle: SimHandle) -> AsyncIterator[bytes]:
        while not handle.closed.is_set():
            yield self._line(handle)
            handle.lines_sent += 1
            try:
                await asyncio.wait_for(handle.closed.wait(), timeout=self._interval_s)
            except asyncio.TimeoutError:
                pass

    async def write(self, handle: SimHandle, data: bytes) -> int:
        if handle.closed.is_set():
            raise WriteError(handle.path, "port is closed")
        handle.commands.append(bytes(data))
        logger.info("Simulated station %s received command %r", handle.path, data)
        return len(data)

    async def close(self, handle: SimHandle) -> None:
        if handle is None:
            return
        handle.closed.set()
        self._held.pop(handle.path, None)
        logger.info("Simulated station %s closed", handle.path)
