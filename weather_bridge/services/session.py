from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Sequence

from ..domain.errors import (
    DecodeFailure,
    DeviceUnavailable,
    FatalDeviceError,
    SessionNotOpen,
    WriteError,
)
from ..domain.fanout import fan_out
from ..domain.interfaces import BroadcastChannel, DeviceTransport
from ..domain.models import (
    DecodedLine,
    LinkParameters,
    PipelineStats,
    SensorProfile,
    SessionState,
)
from .decoder import RecordDecoder
from .publisher import DeviceLanes, DualSinkPublisher

logger = logging.getLogger(__name__)

SESSION_TOPIC = "session"

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.CLOSED: frozenset({SessionState.OPENING}),
    SessionState.OPENING: frozenset({SessionState.OPEN, SessionState.CLOSED}),
    SessionState.OPEN: frozenset({SessionState.CLOSING}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED}),
}


class Session:
    """
    One open device connection, end to end.
    Owns the transport handle, the decoder (and its partial-line buffer),
    and the decode loop task that feeds fan-out and the publisher.
    """

    def __init__(
        self,
        path: str,
        link: LinkParameters,
        transport: DeviceTransport,
        decoder: RecordDecoder,
        profiles: Sequence[SensorProfile],
        publisher: DualSinkPublisher,
        channel: BroadcastChannel,
        on_closed: Optional[Callable[["Session"], None]] = None,
    ) -> None:
        self.path = path
        self.link = link
        self.state = SessionState.CLOSED
        self.stats = PipelineStats()

        self._transport = transport
        self._decoder = decoder
        self._profiles = tuple(profiles)
        self._publisher = publisher
        self._channel = channel
        self._on_closed = on_closed

        self._handle: Any = None
        self._lanes: Optional[DeviceLanes] = None
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._awaiting_bytes = False
        self._close_requested = False
        self._write_lock = asyncio.Lock()

    def _transition(self, to: SessionState) -> None:
        if to not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Session {self.path}: illegal transition {self.state.value} -> {to.value}")
        logger.info("Session %s: %s -> %s", self.path, self.state.value, to.value)
        self.state = to

    async def open(self) -> None:
        self._transition(SessionState.OPENING)
        try:
            self._handle = await self._transport.open(self.path, self.link)
        except DeviceUnavailable:
            self._transition(SessionState.CLOSED)
            raise
        except Exception as e:
            self._transition(SessionState.CLOSED)
            raise DeviceUnavailable(self.path, str(e)) from e

        self._transition(SessionState.OPEN)
        self._stop.clear()
        self._lanes = self._publisher.open_lanes(self.path, self.stats)
        self._task = asyncio.create_task(self._run(), name=f"session:{self.path}")
        await self._notify("opened", link=self.link.__dict__)

        if self._close_requested:
            await self.close()

    async def send(self, data: bytes) -> int:
        if self.state is not SessionState.OPEN:
            raise SessionNotOpen(self.path)
        async with self._write_lock:
            try:
                written = await self._transport.write(self._handle, data)
            except WriteError:
                raise
            except Exception as e:
                raise WriteError(self.path, str(e)) from e
        logger.info("Session %s: wrote %d byte(s)", self.path, written)
        return written

    async def close(self) -> None:
        if self.state is SessionState.OPENING:
            # honoured as soon as the transport confirms
            self._close_requested = True
            return
        if self.state is not SessionState.OPEN:
            return

        self._transition(SessionState.CLOSING)
        self._stop.set()
        task = self._task
        if task is not None and task is not asyncio.current_task():
            if self._awaiting_bytes:
                task.cancel()
            await asyncio.wait({task})

        # readings already handed to the sinks are delivered before "closed"
        await self._drain_lanes()
        await self._release()
        await self._notify("closed")
        if self._on_closed is not None:
            self._on_closed(self)

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.wait({self._task})

    async def _drain_lanes(self) -> None:
        lanes, self._lanes = self._lanes, None
        if lanes is not None:
            await lanes.drain()

    async def _release(self) -> None:
        try:
            await self._transport.close(self._handle)
        except Exception:
            logger.warning("Session %s: error releasing device handle", self.path, exc_info=True)
        finally:
            self._handle = None
            self._task = None
            self._transition(SessionState.CLOSED)

    async def _fail(self, error: FatalDeviceError) -> None:
        if self.state is not SessionState.OPEN:
            return
        logger.error("Session %s: %s", self.path, error)
        self._transition(SessionState.CLOSING)
        self._stop.set()
        await self._drain_lanes()
        await self._release()
        await self._notify("failed", reason=error.reason)
        if self._on_closed is not None:
            self._on_closed(self)

    async def _run(self) -> None:
        stream = self._transport.read_stream(self._handle)
        try:
            while not self._stop.is_set():
                self._awaiting_bytes = True
                try:
                    chunk = await anext(stream)
                except StopAsyncIteration:
                    raise FatalDeviceError(self.path, "device stream ended")
                finally:
                    self._awaiting_bytes = False

                self.stats.bytes_received += len(chunk)
                for item in self._decoder.feed(chunk):
                    self._handle_line(item)
        except FatalDeviceError as e:
            await self._fail(e)
        except Exception as e:
            await self._fail(FatalDeviceError(self.path, str(e)))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception:
                    logger.debug("Session %s: error closing read stream", self.path, exc_info=True)

    def _handle_line(self, item: DecodedLine | DecodeFailure) -> None:
        self.stats.lines_framed += 1
        if isinstance(item, DecodeFailure):
            self.stats.decode_failures += 1
            logger.warning("Session %s: dropped line: %s", self.path, item.reason)
            return

        self.stats.records_decoded += 1
        for i, record in enumerate(fan_out(item.record, self._profiles)):
            raw = item.raw if i == 0 else None
            self._lanes.submit(record, raw=raw)

    async def _notify(self, event: str, **extra: Any) -> None:
        try:
            await self._channel.publish(
                SESSION_TOPIC, {"event": event, "device": self.path, "state": self.state.value, **extra}
            )
        except Exception:
            logger.warning("Session %s: %s notification not delivered", self.path, event, exc_info=True)

    def describe(self) -> dict:
        return {
            "path": self.path,
            "state": self.state.value,
            "link": dict(self.link.__dict__),
            "stats": self.stats.to_dict(),
        }


class SessionManager:
    """
    Owns the path -> Session map. Only this object mutates the map, and only in
    synchronous sections on the event loop, so check-and-reserve is atomic.
    """

    def __init__(
        self,
        transport: DeviceTransport,
        channel: BroadcastChannel,
        publisher: DualSinkPublisher,
        profiles: Sequence[SensorProfile],
        schema: str = "sensor",
    ) -> None:
        self._transport = transport
        self._channel = channel
        self._publisher = publisher
        self._profiles = tuple(profiles)
        self._schema = schema
        self._sessions: dict[str, Session] = {}

    def get(self, path: str) -> Optional[Session]:
        return self._sessions.get(path)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    async def open(self, path: str, link: LinkParameters) -> Session:
        if path in self._sessions:
            raise DeviceUnavailable(path, "already open", already_open=True)

        session = Session(
            path=path,
            link=link,
            transport=self._transport,
            decoder=RecordDecoder(self._schema),
            profiles=self._profiles,
            publisher=self._publisher,
            channel=self._channel,
            on_closed=self._forget,
        )
        self._sessions[path] = session
        try:
            await session.open()
        except BaseException:
            self._forget(session)
            raise
        return session

    async def send(self, path: str, data: bytes) -> int:
        session = self._sessions.get(path)
        if session is None:
            raise SessionNotOpen(path)
        return await session.send(data)

    async def close(self, path: str) -> None:
        session = self._sessions.get(path)
        if session is None:
            return
        await session.close()

    async def close_all(self) -> None:
        for session in list(self._sessions.values()):
            await session.close()

    def _forget(self, session: Session) -> None:
        if self._sessions.get(session.path) is session:
            del self._sessions[session.path]
