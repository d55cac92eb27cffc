from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

from folio.core.orchestration.cache import DiskTTLCache
from folio.core.orchestration.time_utils import parse_iso, utc_date


def test_cache_set_get_and_ttl(tmp_path: Path) -> None:
    cache = DiskTTLCache(base_dir=str(tmp_path))

    key = "close-series:AAPL:1D:1d:5m"
    payload = {"points": [{"ts": "2026-02-11T14:00:00+00:00", "close": 1.0}]}
    cache.set(key=key, payload=payload, ttl_seconds=2)

    assert cache.get(key) == payload

    with cache.path_for_key(key).open("r", encoding="utf-8") as f:
        record = json.load(f)

    future_iso = (parse_iso(record["cached_at"]) + timedelta(seconds=3)).isoformat()

    assert cache.get(key, now_iso=future_iso) is None
    assert cache.get_stale(key) == payload

    cache.delete(key)
    assert cache.get_stale(key) is None


def test_corrupt_record_is_a_miss(tmp_path: Path) -> None:
    cache = DiskTTLCache(base_dir=str(tmp_path))
    cache.path_for_key("broken").write_text("{not json", encoding="utf-8")
    assert cache.get("broken") is None
    assert cache.get_stale("broken") is None


def test_parse_iso_and_utc_date() -> None:
    assert parse_iso("2026-02-11T14:00:00Z").utcoffset() == timedelta(0)
    assert utc_date(parse_iso("2026-02-11T23:30:00-05:00")).isoformat() == "2026-02-12"
    assert utc_date(0).isoformat() == "1970-01-01"
