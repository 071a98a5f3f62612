from __future__ import annotations
from typing import Any, AsyncIterator, Mapping, Protocol, runtime_checkable
from .models import LinkParameters, TimeSeriesPoint


@runtime_checkable
class DeviceTransport(Protocol):
    async def open(self, path: str, link: LinkParameters) -> Any:
        """Return an opaque handle. Raise DeviceUnavailable on failure."""
        ...

    def read_stream(self, handle: Any) -> AsyncIterator[bytes]:
        """Yield chunks as they arrive. Raise FatalDeviceError when the link drops."""
        ...

    async def write(self, handle: Any, data: bytes) -> int:
        ...

    async def close(self, handle: Any) -> None:
        ...


@runtime_checkable
class BroadcastChannel(Protocol):
    async def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        ...


@runtime_checkable
class PointStore(Protocol):
    name: str

    async def init(self) -> None:
        ...

    async def append_point(self, point: TimeSeriesPoint) -> None:
        ...

    async def close(self) -> None:
        ...
