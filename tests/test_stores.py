import asyncio
import json
from unittest.mock import MagicMock

import aiosqlite
import pytest
from influxdb_client.rest import ApiException

from weather_bridge.domain.errors import SinkFailure
from weather_bridge.services.encoder import PointEncoder, PointPolicy
from weather_bridge.storage.influx_store import InfluxPointStore, to_influx_point
from weather_bridge.storage.sqlite_store import SQLitePointStore


def test_sqlite_store_appends_points_in_order(tmp_path, canonical) -> None:
    store = SQLitePointStore(str(tmp_path / "points.db"))
    encoder = PointEncoder()

    async def go():
        await store.init()
        await store.append_point(encoder.encode(canonical))
        await store.append_point(PointEncoder(PointPolicy(mode="per_sensor")).encode(canonical))
        async with aiosqlite.connect(store._path) as db:
            cur = await db.execute("SELECT measurement, tags, fields FROM points ORDER BY rowid")
            return await cur.fetchall()

    rows = asyncio.run(go())
    assert [r[0] for r in rows] == ["weather-data", "DEV1"]
    assert json.loads(rows[0][1])["sensor"] == "DEV1"
    assert json.loads(rows[0][2])["temperature"] == 20.0


def test_sqlite_store_failure_is_a_sink_failure(tmp_path, canonical) -> None:
    store = SQLitePointStore(str(tmp_path / "never-initialised.db"))

    async def go():
        await store.append_point(PointEncoder().encode(canonical))

    with pytest.raises(SinkFailure) as exc:
        asyncio.run(go())
    assert exc.value.sink == "sqlite"


def test_influx_point_conversion(canonical) -> None:
    line = to_influx_point(PointEncoder().encode(canonical)).to_line_protocol()

    assert line.startswith("weather-data,")
    assert "crop=grapes" in line
    assert "sensor=DEV1" in line
    assert 'weatherDesc="clear"' in line


def test_influx_append_before_init_fails_per_point(canonical) -> None:
    store = InfluxPointStore(url="http://localhost:8086", token="t", org="o", bucket="b")

    with pytest.raises(SinkFailure):
        asyncio.run(store.append_point(PointEncoder().encode(canonical)))


def test_influx_api_errors_become_sink_failures(canonical) -> None:
    store = InfluxPointStore(url="http://localhost:8086", token="t", org="o", bucket="b")
    store._write_api = MagicMock()
    store._write_api.write.side_effect = ApiException(status=401, reason="Unauthorized")

    with pytest.raises(SinkFailure) as exc:
        asyncio.run(store.append_point(PointEncoder().encode(canonical)))
    assert "401" in exc.value.reason


def test_influx_append_writes_to_configured_bucket(canonical) -> None:
    store = InfluxPointStore(url="http://localhost:8086", token="t", org="acme", bucket="weather")
    store._write_api = MagicMock()

    asyncio.run(store.append_point(PointEncoder().encode(canonical)))

    kwargs = store._write_api.write.call_args.kwargs
    assert kwargs["bucket"] == "weather"
    assert kwargs["org"] == "acme"
