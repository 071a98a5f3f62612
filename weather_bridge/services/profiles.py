from __future__ import annotations

import json
import logging
from pathlib import Path

from ..domain.models import SensorProfile

logger = logging.getLogger(__name__)

DEFAULT_PROFILES_PATH = Path(__file__).resolve().parent.parent / "config" / "sensor_profiles.json"

_FALLBACK_PROFILES: tuple[SensorProfile, ...] = (
    SensorProfile("EMU1", temp_offset=1.0, humidity_offset=2.0, pressure_offset=-50.0,
                  battery_offset=-20.0, loc_offset=(1.0, 1.0)),
    SensorProfile("EMU2", temp_offset=-1.5, humidity_offset=-3.0, pressure_offset=12.0,
                  battery_offset=-5.0, loc_offset=(-0.5, 0.25)),
)


def parse_profiles(data: dict) -> tuple[SensorProfile, ...]:
    profiles = []
    seen: set[str] = set()
    for p in data["profiles"]:
        sid = str(p["id"])
        if sid in seen:
            raise ValueError(f"Duplicate sensor profile id: {sid}")
        seen.add(sid)
        loc = p.get("locOffset", [0.0, 0.0])
        if len(loc) != 2:
            raise ValueError(f"Profile {sid}: locOffset must have two coordinates")
        profiles.append(SensorProfile(
            sensor_id=sid,
            temp_offset=float(p.get("tempOffset", 0.0)),
            humidity_offset=float(p.get("humidityOffset", 0.0)),
            pressure_offset=float(p.get("pressureOffset", 0.0)),
            battery_offset=float(p.get("batteryOffset", 0.0)),
            loc_offset=(float(loc[0]), float(loc[1])),
        ))
    return tuple(profiles)


def load_profiles(path: str | Path | None = None) -> tuple[SensorProfile, ...]:
    """Load the ordered emulated-sensor list. Falls back to built-in profiles."""
    source = Path(path) if path else DEFAULT_PROFILES_PATH
    try:
        profiles = parse_profiles(json.loads(source.read_text()))
    except Exception as e:
        logger.warning("Failed to load sensor profiles from %s, using built-in defaults: %s", source, e)
        return _FALLBACK_PROFILES
    logger.info("Loaded %d sensor profile(s) from %s", len(profiles), source)
    return profiles
