from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..core.timeutil import now_utc
from ..domain.errors import SinkFailure
from ..domain.interfaces import BroadcastChannel, PointStore
from ..domain.models import PipelineStats, ReadingRecord
from .encoder import PointEncoder

logger = logging.getLogger(__name__)

READING_TOPIC = "reading"


def reading_payload(device: str, record: ReadingRecord, raw: Optional[Mapping[str, Any]] = None) -> dict:
    fields = dict(raw) if raw is not None else record.as_fields()
    return {
        "device": device,
        "sensorId": record.sensor_id,
        "keys": list(fields.keys()),
        "values": list(fields.values()),
    }


class SinkWorker:
    """Delivers submitted items to one sink, in submission order, on its own task."""

    def __init__(self, name: str, deliver: Callable[..., Awaitable[None]]) -> None:
        self.name = name
        self._deliver = deliver
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"sink:{self.name}")

    def submit(self, *args: Any) -> None:
        self._queue.put_nowait(args)

    async def _run(self) -> None:
        while True:
            args = await self._queue.get()
            try:
                await self._deliver(*args)
            except Exception:
                logger.exception("Sink %s: delivery raised", self.name)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait for everything already submitted, then stop the worker."""
        if self._task is None:
            return
        await self._queue.join()
        self._task.cancel()
        await asyncio.wait({self._task})
        self._task = None


class DeviceLanes:
    """
    Per-device delivery paths, one worker per sink.
    Each sink sees readings in the order they were submitted; neither sink
    ever waits for the other, however slow or broken it is.
    """

    def __init__(self, publisher: "DualSinkPublisher", device: str, stats: PipelineStats) -> None:
        self.device = device
        self._stats = stats
        self._broadcast = SinkWorker(
            f"{device}:broadcast",
            lambda record, raw: publisher.broadcast(device, record, stats, raw),
        )
        self._store: Optional[SinkWorker] = None
        if publisher.has_store:
            self._store = SinkWorker(
                f"{device}:store",
                lambda record: publisher.append(device, record, stats),
            )

    def start(self) -> None:
        self._broadcast.start()
        if self._store is not None:
            self._store.start()

    def submit(self, record: ReadingRecord, raw: Optional[Mapping[str, Any]] = None) -> None:
        self._broadcast.submit(record, raw)
        if self._store is not None:
            self._store.submit(record)
        self._stats.records_published += 1
        self._stats.last_record_at = now_utc().isoformat()

    async def drain(self) -> None:
        workers = [self._broadcast] + ([self._store] if self._store is not None else [])
        await asyncio.gather(*(w.drain() for w in workers))


class DualSinkPublisher:
    """
    Delivers readings to the broadcast channel and the point store.
    Failures on either side are logged and counted, never raised.
    """

    def __init__(
        self,
        channel: BroadcastChannel,
        store: Optional[PointStore],
        encoder: PointEncoder,
    ) -> None:
        self._channel = channel
        self._store = store
        self._encoder = encoder

    @property
    def has_store(self) -> bool:
        return self._store is not None

    def open_lanes(self, device: str, stats: PipelineStats) -> DeviceLanes:
        lanes = DeviceLanes(self, device, stats)
        lanes.start()
        return lanes

    async def broadcast(
        self,
        device: str,
        record: ReadingRecord,
        stats: PipelineStats,
        raw: Optional[Mapping[str, Any]] = None,
    ) -> None:
        try:
            await self._channel.publish(READING_TOPIC, reading_payload(device, record, raw))
        except Exception as e:
            stats.broadcast_failures += 1
            failure = e if isinstance(e, SinkFailure) else SinkFailure("broadcast", str(e))
            logger.warning("Broadcast failed: device=%s sensor=%s: %s", device, record.sensor_id, failure)

    async def append(self, device: str, record: ReadingRecord, stats: PipelineStats) -> None:
        if self._store is None:
            return
        try:
            point = self._encoder.encode(record)
            await self._store.append_point(point)
        except Exception as e:
            stats.store_failures += 1
            failure = e if isinstance(e, SinkFailure) else SinkFailure(self._store.name, str(e))
            logger.warning("Store append failed: device=%s sensor=%s: %s", device, record.sensor_id, failure)
