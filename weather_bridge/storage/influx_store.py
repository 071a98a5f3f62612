from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Optional

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS, WriteApi
from influxdb_client.rest import ApiException

from ..domain.errors import SinkFailure
from ..domain.models import TimeSeriesPoint

logger = logging.getLogger(__name__)


def to_influx_point(point: TimeSeriesPoint) -> Point:
    p = Point(point.measurement)
    for key, value in point.tags.items():
        p = p.tag(key, value)
    for key, value in point.fields.items():
        p = p.field(key, value)
    return p


class InfluxPointStore:
    """
    InfluxDB v2 point store.
    Writes are synchronous per point (run in the executor) so that a failed
    append surfaces on the point that caused it.
    """

    name = "influxdb"

    def __init__(self, url: str, token: str, org: str, bucket: str, timeout_ms: int = 10_000) -> None:
        self._url = url
        self._token = token
        self._org = org
        self._bucket = bucket
        self._timeout_ms = timeout_ms
        self._client: Optional[InfluxDBClient] = None
        self._write_api: Optional[WriteApi] = None

    async def init(self) -> None:
        self._client = InfluxDBClient(
            url=self._url, token=self._token, org=self._org, timeout=self._timeout_ms
        )
        self._write_api = self._client.write_api(write_options=SYNCHRONOUS)
        logger.info("InfluxDB store ready (url=%s org=%s bucket=%s)", self._url, self._org, self._bucket)

    async def append_point(self, point: TimeSeriesPoint) -> None:
        if self._write_api is None:
            raise SinkFailure(self.name, "store not initialised")
        write = partial(
            self._write_api.write,
            bucket=self._bucket,
            org=self._org,
            record=to_influx_point(point),
            write_precision=WritePrecision.NS,
        )
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, write)
        except ApiException as e:
            raise SinkFailure(self.name, f"HTTP {e.status}: {e.reason}") from e
        except Exception as e:
            raise SinkFailure(self.name, str(e) or type(e).__name__) from e

    async def close(self) -> None:
        if self._write_api is not None:
            self._write_api.close()
            self._write_api = None
        if self._client is not None:
            self._client.close()
            self._client = None
