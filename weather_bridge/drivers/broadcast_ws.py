from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class WebSocketHub:
    """
    Fire-and-forget broadcast channel for live viewers.

    Every subscriber gets a bounded queue; when a slow viewer's queue is full
    the oldest message is dropped, so publishers never wait on viewers.
    """

    def __init__(self, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue] = set()
        self.published = 0
        self.dropped = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subscribers.discard(q)

    async def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        message = {"topic": topic, "data": dict(payload)}
        for q in list(self._subscribers):
            if q.full():
                q.get_nowait()
                self.dropped += 1
            q.put_nowait(message)
        self.published += 1

    async def _pump(self, websocket: WebSocket, q: asyncio.Queue) -> None:
        try:
            while True:
                message = await q.get()
                await websocket.send_json(message)
        except Exception as e:
            logger.info("Viewer send failed, dropping subscription: %s", e)
        finally:
            self.unsubscribe(q)

    async def serve(self, websocket: WebSocket) -> None:
        await websocket.accept()
        q = self.subscribe()
        sender = asyncio.create_task(self._pump(websocket, q), name="ws_pump")
        logger.info("Viewer connected (%d subscriber(s))", self.subscriber_count)
        try:
            while True:
                # inbound frames are ignored; receiving is how a disconnect is noticed
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            await asyncio.wait({sender})
            self.unsubscribe(q)
            logger.info("Viewer disconnected (%d subscriber(s))", self.subscriber_count)
