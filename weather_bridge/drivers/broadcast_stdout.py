from __future__ import annotations

import json
import sys
from typing import Any, Mapping, TextIO


class JsonLinesChannel:
    """Broadcast channel writing one JSON document per line, for headless runs."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    async def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        self._stream.write(json.dumps({"topic": topic, "data": dict(payload)}) + "\n")
        self._stream.flush()
