from __future__ import annotations

import json
from typing import Iterator, Union

from pydantic import ValidationError

from ..domain.errors import DecodeFailure
from ..domain.models import DecodedLine
from .payloads import payload_model

TERMINATOR = b"\r\n"

DecodeResult = Union[DecodedLine, DecodeFailure]


class LineFramer:
    """
    Splits an arbitrary chunked byte stream on CRLF.
    Holds the partial trailing line between chunks. No length limit is applied.
    """

    def __init__(self, terminator: bytes = TERMINATOR) -> None:
        self._terminator = terminator
        self._buf = bytearray()

    @property
    def pending(self) -> int:
        return len(self._buf)

    def feed(self, chunk: bytes) -> Iterator[bytes]:
        self._buf.extend(chunk)
        while True:
            idx = self._buf.find(self._terminator)
            if idx < 0:
                return
            line = bytes(self._buf[:idx])
            del self._buf[: idx + len(self._terminator)]
            yield line

    def reset(self) -> None:
        self._buf.clear()


class RecordDecoder:
    """Frames and parses device output into records, isolating bad lines."""

    def __init__(self, schema: str = "sensor") -> None:
        self.schema = schema
        self._model = payload_model(schema)
        self._framer = LineFramer()

    @property
    def framer(self) -> LineFramer:
        return self._framer

    def decode_line(self, line: bytes) -> DecodedLine:
        try:
            raw = json.loads(line.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise DecodeFailure(line, f"not utf-8: {e.reason}") from e
        except json.JSONDecodeError as e:
            raise DecodeFailure(line, f"invalid JSON: {e.msg}") from e

        if not isinstance(raw, dict):
            raise DecodeFailure(line, f"expected an object, got {type(raw).__name__}")

        try:
            payload = self._model.model_validate(raw)
        except ValidationError as e:
            problems = ", ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            )
            raise DecodeFailure(line, problems) from e

        return DecodedLine(record=payload.to_record(), raw=raw)

    def feed(self, chunk: bytes) -> Iterator[DecodeResult]:
        """Yield one result per complete line in arrival order; failures are yielded, not raised."""
        for line in self._framer.feed(chunk):
            try:
                yield self.decode_line(line)
            except DecodeFailure as failure:
                yield failure

    def iter_stream(self, chunks) -> Iterator[DecodeResult]:
        for chunk in chunks:
            yield from self.feed(chunk)
