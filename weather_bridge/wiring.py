"""Builders that turn Settings into concrete collaborators. Importing this module has no side effects."""

from __future__ import annotations

from typing import Optional

from .core.config import Settings
from .domain.interfaces import DeviceTransport, PointStore
from .drivers.serial_port import PySerialTransport
from .drivers.station_sim import SimulatedWeatherStation
from .services.encoder import PointEncoder, PointPolicy
from .storage.influx_store import InfluxPointStore
from .storage.sqlite_store import SQLitePointStore


def build_transport(cfg: Settings) -> DeviceTransport:
    if cfg.device_mode.lower() == "sim":
        return SimulatedWeatherStation(interval_s=cfg.sim_interval_s, schema=cfg.record_schema)
    return PySerialTransport(read_timeout_s=cfg.serial_read_timeout_s)


def build_store(cfg: Settings) -> Optional[PointStore]:
    backend = cfg.store_backend.lower()
    if backend == "influx":
        return InfluxPointStore(
            url=cfg.influxdb_url,
            token=cfg.influxdb_token,
            org=cfg.influxdb_org,
            bucket=cfg.influxdb_bucket,
            timeout_ms=cfg.influxdb_timeout_ms,
        )
    if backend == "sqlite":
        return SQLitePointStore(cfg.sqlite_path)
    if backend == "none":
        return None
    raise ValueError(f"Unknown store backend: {cfg.store_backend!r}")


def build_encoder(cfg: Settings) -> PointEncoder:
    return PointEncoder(PointPolicy(
        mode=cfg.measurement_mode,
        measurement_name=cfg.measurement_name,
        static_tags=dict(cfg.point_tags),
    ))
