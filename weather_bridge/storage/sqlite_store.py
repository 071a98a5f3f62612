from __future__ import annotations
import json

import aiosqlite

from ..core.timeutil import now_utc
from ..domain.errors import SinkFailure
from ..domain.models import TimeSeriesPoint


class SQLitePointStore:
    """Append-only local point store, for deployments without InfluxDB."""

    name = "sqlite"

    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS points (
                    written_at TEXT NOT NULL,
                    measurement TEXT NOT NULL,
                    tags TEXT NOT NULL,
                    fields TEXT NOT NULL
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS idx_points_written ON points(written_at)")
            await db.commit()

    async def append_point(self, p: TimeSeriesPoint) -> None:
        try:
            async with aiosqlite.connect(self._path) as db:
                await db.execute(
                    "INSERT INTO points(written_at,measurement,tags,fields) VALUES (?,?,?,?)",
                    (now_utc().isoformat(), p.measurement, json.dumps(dict(p.tags)), json.dumps(dict(p.fields))),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise SinkFailure(self.name, str(e)) from e

    async def close(self) -> None:
        return None
