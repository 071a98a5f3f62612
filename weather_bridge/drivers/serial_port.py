from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator

import serial
from serial.tools import list_ports

from ..domain.errors import DeviceUnavailable, FatalDeviceError, WriteError
from ..domain.models import LinkParameters

logger = logging.getLogger(__name__)

PARITIES = {
    "none": serial.PARITY_NONE,
    "even": serial.PARITY_EVEN,
    "odd": serial.PARITY_ODD,
    "mark": serial.PARITY_MARK,
    "space": serial.PARITY_SPACE,
}

STOPBITS = {
    1: serial.STOPBITS_ONE,
    1.5: serial.STOPBITS_ONE_POINT_FIVE,
    2: serial.STOPBITS_TWO,
}

BYTESIZES = {
    5: serial.FIVEBITS,
    6: serial.SIXBITS,
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}


@dataclass
class SerialHandle:
    path: str
    port: serial.Serial


class PySerialTransport:
    """
    Serial/USB device transport.
    Blocking pyserial calls run in the default executor; reads block for at
    most one read timeout, so a closing session is never stuck on the port.
    """

    def __init__(self, read_timeout_s: float = 0.5, write_timeout_s: float = 2.0) -> None:
        self._read_timeout_s = read_timeout_s
        self._write_timeout_s = write_timeout_s

    def _open_port(self, path: str, link: LinkParameters) -> serial.Serial:
        try:
            parity = PARITIES[link.parity.lower()]
            stopbits = STOPBITS[link.stop_bits]
            bytesize = BYTESIZES[link.data_bits]
        except KeyError as e:
            raise ValueError(f"Unsupported link parameter: {e.args[0]!r}")
        return serial.Serial(
            port=path,
            baudrate=link.baud_rate,
            bytesize=bytesize,
            parity=parity,
            stopbits=stopbits,
            timeout=self._read_timeout_s,
            write_timeout=self._write_timeout_s,
        )

    async def open(self, path: str, link: LinkParameters) -> SerialHandle:
        loop = asyncio.get_running_loop()
        try:
            port = await loop.run_in_executor(None, self._open_port, path, link)
        except (serial.SerialException, OSError, ValueError) as e:
            raise DeviceUnavailable(path, str(e)) from e
        logger.info("Serial port %s opened (baud=%s %s%s%s)", path, link.baud_rate,
                    link.data_bits, link.parity[:1].upper(), link.stop_bits)
        return SerialHandle(path=path, port=port)

    @staticmethod
    def _read_chunk(port: serial.Serial) -> bytes:
        return port.read(port.in_waiting or 1)

    async def read_stream(self, handle: SerialHandle) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        while True:
            try:
                chunk = await loop.run_in_executor(None, self._read_chunk, handle.port)
            except (serial.SerialException, OSError, TypeError) as e:
                # pyserial raises these once the device is unplugged
                raise FatalDeviceError(handle.path, str(e) or type(e).__name__) from e
            if chunk:
                yield chunk

    async def write(self, handle: SerialHandle, data: bytes) -> int:
        loop = asyncio.get_running_loop()
        try:
            written = await loop.run_in_executor(None, handle.port.write, data)
        except (serial.SerialException, OSError) as e:
            raise WriteError(handle.path, str(e) or type(e).__name__) from e
        return int(written or 0)

    async def close(self, handle: SerialHandle) -> None:
        if handle is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, handle.port.close)
        logger.info("Serial port %s closed", handle.path)


def list_serial_ports() -> list[dict]:
    """Enumerate serial ports, adding /dev/cu.* call-out aliases for /dev/tty.* devices."""
    ports = [
        {
            "path": p.device,
            "description": p.description,
            "hwid": p.hwid,
            "manufacturer": p.manufacturer,
            "serialNumber": p.serial_number,
            "vendorId": p.vid,
            "productId": p.pid,
        }
        for p in list_ports.comports()
    ]
    aliases = [
        {**p, "path": p["path"].replace("/dev/tty.", "/dev/cu.", 1)}
        for p in ports
        if p["path"].startswith("/dev/tty.")
    ]
    return ports + aliases
