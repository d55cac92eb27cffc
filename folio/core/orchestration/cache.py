from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

from folio.core.orchestration import time_utils

logger = logging.getLogger(__name__)


class DiskTTLCache:
    """JSON file cache keyed by sha256 of the key; each record carries its own TTL."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for_key(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.base_dir / f"{digest}.json"

    def get(self, key: str, now_iso: str | None = None) -> dict[str, Any] | None:
        """Return the payload only while it is younger than its TTL."""
        record = self._read_record(key)
        if record is None:
            return None
        age = time_utils.seconds_between(record["cached_at"], now_iso or time_utils.now_iso())
        if age > record["ttl_seconds"]:
            return None
        return record["payload"]

    def get_stale(self, key: str) -> dict[str, Any] | None:
        """Return the payload regardless of age."""
        record = self._read_record(key)
        return None if record is None else record["payload"]

    def set(self, key: str, payload: dict[str, Any], ttl_seconds: int) -> None:
        record = {
            "cached_at": time_utils.now_iso(),
            "ttl_seconds": int(ttl_seconds),
            "payload": payload,
        }
        try:
            with self.path_for_key(key).open("w", encoding="utf-8") as f:
                json.dump(record, f, ensure_ascii=True, sort_keys=True)
        except OSError as exc:
            logger.warning("cache write failed for %s: %s", key, exc)

    def delete(self, key: str) -> None:
        try:
            self.path_for_key(key).unlink(missing_ok=True)
        except OSError:
            return

    def _read_record(self, key: str) -> dict[str, Any] | None:
        path = self.path_for_key(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, json.JSONDecodeError):
            return None
        if not isinstance(record, dict):
            return None
        if not isinstance(record.get("cached_at"), str) or not isinstance(record.get("ttl_seconds"), int):
            return None
        if not isinstance(record.get("payload"), dict):
            return None
        return record
