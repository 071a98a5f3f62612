import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import pytest

from weather_bridge.domain.errors import DeviceUnavailable, FatalDeviceError, WriteError
from weather_bridge.domain.models import LinkParameters, ReadingRecord, SensorProfile


DEV1_LINE = (
    b'{"temperature":20,"humidity":55,"pressure":1000,"weatherDesc":"clear",'
    b'"sensorId":"DEV1","location":[1,2],"battery":90,"timestamp":1000}'
)

EMU1 = SensorProfile(
    "EMU1",
    temp_offset=1.0,
    humidity_offset=2.0,
    pressure_offset=-50.0,
    battery_offset=-20.0,
    loc_offset=(1.0, 1.0),
)


def weather_line(**overrides) -> bytes:
    payload = {
        "temperature": 20,
        "humidity": 55,
        "pressure": 1000,
        "weatherDesc": "clear",
        "sensorId": "DEV1",
        "location": [1, 2],
        "battery": 90,
        "timestamp": 1000,
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return json.dumps(payload).encode("utf-8")


@pytest.fixture
def canonical() -> ReadingRecord:
    return ReadingRecord(
        temperature=20.0,
        humidity=55.0,
        pressure=1000.0,
        weather_desc="clear",
        sensor_id="DEV1",
        location=(1.0, 2.0),
        battery=90.0,
        timestamp=1000,
    )


@dataclass
class FakeHandle:
    path: str
    link: LinkParameters
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    written: list[bytes] = field(default_factory=list)
    closed: bool = False
    fail_writes: bool = False


class FakeTransport:
    """In-memory device transport. Tests push chunks or errors per path."""

    _END = object()

    def __init__(self, unavailable: tuple[str, ...] = (), script: Mapping[str, list] | None = None) -> None:
        self.unavailable = set(unavailable)
        self.script = dict(script or {})
        self.handles: dict[str, FakeHandle] = {}
        self.closed_paths: list[str] = []

    async def open(self, path: str, link: LinkParameters) -> FakeHandle:
        if path in self.unavailable:
            raise DeviceUnavailable(path, "no such file or directory")
        handle = FakeHandle(path=path, link=link)
        for chunk in self.script.get(path, []):
            handle.queue.put_nowait(chunk)
        self.handles[path] = handle
        return handle

    def feed(self, path: str, data: bytes) -> None:
        self.handles[path].queue.put_nowait(data)

    def unplug(self, path: str, reason: str = "device disconnected") -> None:
        self.handles[path].queue.put_nowait(FatalDeviceError(path, reason))

    def end(self, path: str) -> None:
        self.handles[path].queue.put_nowait(self._END)

    async def read_stream(self, handle: FakeHandle):
        while True:
            item = await handle.queue.get()
            if item is self._END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def write(self, handle: FakeHandle, data: bytes) -> int:
        if handle.fail_writes:
            raise WriteError(handle.path, "device not writable")
        handle.written.append(data)
        return len(data)

    async def close(self, handle: FakeHandle) -> None:
        handle.closed = True
        self.closed_paths.append(handle.path)


class RecordingChannel:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[tuple[str, dict]] = []

    async def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        if self.fail and topic == "reading":
            raise ConnectionError("viewer transport hiccup")
        self.messages.append((topic, dict(payload)))

    def topic(self, name: str) -> list[dict]:
        return [p for t, p in self.messages if t == name]


class RecordingStore:
    name = "memory"

    def __init__(self, fail: bool = False, delay_s: float = 0.0) -> None:
        self.fail = fail
        self.delay_s = delay_s
        self.points: list = []

    async def init(self) -> None:
        return None

    async def append_point(self, point) -> None:
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.fail:
            raise OSError("connection refused")
        self.points.append(point)

    async def close(self) -> None:
        return None


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.001)
