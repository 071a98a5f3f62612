#!/usr/bin/env python3
"""
Standalone weather bridge.

Opens one weather station on a serial port, replicates every reading to the
configured emulated sensors, prints each reading as a JSON line on stdout and
appends it to the configured time-series store. No HTTP server involved.

Usage:
    python headless_bridge.py                                # defaults
    python headless_bridge.py --port /dev/ttyUSB0 --baud 115200
    python headless_bridge.py --store sqlite --sqlite-path weather.db

Store credentials (INFLUXDB_URL, INFLUXDB_TOKEN, ...) come from the
environment or .env, exactly as for the web service.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from weather_bridge.core.config import settings
from weather_bridge.domain.models import LinkParameters
from weather_bridge.drivers.broadcast_stdout import JsonLinesChannel
from weather_bridge.wiring import build_encoder, build_store, build_transport
from weather_bridge.services.profiles import load_profiles
from weather_bridge.services.publisher import DualSinkPublisher
from weather_bridge.services.session import SessionManager


async def run(args: argparse.Namespace) -> int:
    log = logging.getLogger("bridge")
    channel = JsonLinesChannel()
    store = build_store(settings)
    manager = SessionManager(
        transport=build_transport(settings),
        channel=channel,
        publisher=DualSinkPublisher(channel=channel, store=store, encoder=build_encoder(settings)),
        profiles=load_profiles(args.profiles or settings.sensor_profiles_path or None),
        schema=args.schema,
    )
    link = LinkParameters(
        baud_rate=args.baud,
        data_bits=args.data_bits,
        stop_bits=args.stop_bits,
        parity=args.parity,
    )

    if store is not None:
        await store.init()

    log.info("Starting weather bridge")
    log.info("  Port:    %s @ %d baud (%d%s%g)", args.port, link.baud_rate,
             link.data_bits, link.parity[:1].upper(), link.stop_bits)
    log.info("  Schema:  %s", args.schema)
    log.info("  Store:   %s", settings.store_backend)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # Windows event loops
            pass

    try:
        session = await manager.open(args.port, link)
        closed = asyncio.create_task(session.wait_closed())
        stopping = asyncio.create_task(stop.wait())
        await asyncio.wait({closed, stopping}, return_when=asyncio.FIRST_COMPLETED)
        stopping.cancel()
        if closed.done():
            log.error("Device connection lost; exiting")
            return 1
        log.info("Shutting down")
        return 0
    finally:
        await manager.close_all()
        if store is not None:
            await store.close()


def main() -> None:
    p = argparse.ArgumentParser(description="Standalone serial weather station bridge")

    p.add_argument("--port", default="/dev/ttyUSB0", help="Serial port (default: /dev/ttyUSB0)")
    p.add_argument("--baud", type=int, default=9600)
    p.add_argument("--data-bits", type=int, default=8, choices=[5, 6, 7, 8])
    p.add_argument("--stop-bits", type=float, default=1, choices=[1, 1.5, 2])
    p.add_argument("--parity", default="none", choices=["none", "even", "odd", "mark", "space"])

    p.add_argument("--schema", default=settings.record_schema, choices=["sensor", "device"],
                   help="Record schema sent by the firmware")
    p.add_argument("--profiles", default="", help="JSON file with emulated sensor profiles")
    p.add_argument("--store", choices=["influx", "sqlite", "none"], help="Override STORE_BACKEND")
    p.add_argument("--sqlite-path", help="Override SQLITE_PATH")
    p.add_argument("--sim", action="store_true", help="Use the simulated station instead of a serial port")

    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = p.parse_args()

    # stdout carries the readings, so logs go to stderr only
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-5s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.store:
        settings.store_backend = args.store
    if args.sqlite_path:
        settings.sqlite_path = args.sqlite_path
    if args.sim:
        settings.device_mode = "sim"
    settings.record_schema = args.schema

    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
