from __future__ import annotations


class BridgeError(Exception):
    """Base class for every failure raised by the ingestion pipeline."""


class DeviceUnavailable(BridgeError):
    def __init__(self, path: str, reason: str, already_open: bool = False) -> None:
        super().__init__(f"Device {path} unavailable: {reason}")
        self.path = path
        self.reason = reason
        self.already_open = already_open


class WriteError(BridgeError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Write to {path} failed: {reason}")
        self.path = path
        self.reason = reason


class SessionNotOpen(WriteError):
    def __init__(self, path: str) -> None:
        super().__init__(path, "no open session")


class DecodeFailure(BridgeError):
    def __init__(self, line: bytes, reason: str) -> None:
        super().__init__(f"Undecodable line ({reason}): {line[:120]!r}")
        self.line = line
        self.reason = reason


class SinkFailure(BridgeError):
    def __init__(self, sink: str, reason: str) -> None:
        super().__init__(f"{sink} sink failed: {reason}")
        self.sink = sink
        self.reason = reason


class FatalDeviceError(BridgeError):
    """The transport reports the connection is gone; the session must close."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Device {path} lost: {reason}")
        self.path = path
        self.reason = reason
