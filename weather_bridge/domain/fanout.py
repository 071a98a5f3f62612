from __future__ import annotations
from typing import Sequence
from .models import ReadingRecord, SensorProfile


def fan_out(canonical: ReadingRecord, profiles: Sequence[SensorProfile]) -> list[ReadingRecord]:
    """Expand one device reading into the device reading plus one per emulated peer.

    The canonical reading comes first and is returned as-is; derived readings
    follow in profile order. Weather description and timestamp are copied,
    the identifier always comes from the profile.
    """
    out = [canonical]
    for p in profiles:
        out.append(p.apply(canonical))
    return out
