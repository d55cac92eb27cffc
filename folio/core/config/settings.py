from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


class SettingsError(ValueError):
    """Raised when the YAML settings file is malformed."""


_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    backend_url: str = ""
    cache_dir: str = ".cache/charts"
    request_timeout: float = 10.0
    max_workers: int = 8
    import_delay_seconds: float = 0.3
    cache_only: bool = False
    log_level: str = "INFO"

    @staticmethod
    def load(env: Mapping[str, str] | None = None) -> Settings:
        """Environment variables, layered over the YAML file named by FOLIO_CONFIG."""
        base_env = dict(os.environ if env is None else env)
        file_values = _load_yaml(base_env.get("FOLIO_CONFIG", ""))
        merged = {**file_values, **{k: v for k, v in base_env.items() if k.startswith(("FOLIO_", "MARKETDATA_"))}}

        return Settings(
            backend_url=str(merged.get("FOLIO_BACKEND_URL", "") or "").strip().rstrip("/"),
            cache_dir=str(merged.get("FOLIO_CACHE_DIR", "") or ".cache/charts").strip(),
            request_timeout=_safe_float(merged.get("FOLIO_REQUEST_TIMEOUT"), 10.0, minimum=1.0),
            max_workers=int(_safe_float(merged.get("FOLIO_MAX_WORKERS"), 8, minimum=1)),
            import_delay_seconds=_safe_float(merged.get("FOLIO_IMPORT_DELAY_SECONDS"), 0.3, minimum=0.0),
            cache_only=str(merged.get("MARKETDATA_CACHE_ONLY", "0")).strip().lower() in _TRUE_VALUES,
            log_level=str(merged.get("FOLIO_LOG_LEVEL", "") or "INFO").strip().upper(),
        )


def _load_yaml(path: str) -> dict[str, Any]:
    if not str(path or "").strip():
        return {}
    config_path = Path(path)
    if not config_path.exists():
        raise SettingsError(f"Config file not found: {path}")
    with config_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise SettingsError("Config root must be a mapping")
    # YAML keys may be written as backend_url or FOLIO_BACKEND_URL.
    values: dict[str, Any] = {}
    for key, value in raw.items():
        name = str(key).strip().upper()
        if not name.startswith(("FOLIO_", "MARKETDATA_")):
            name = "MARKETDATA_CACHE_ONLY" if name == "CACHE_ONLY" else f"FOLIO_{name}"
        values[name] = value
    return values


def _safe_float(value: Any, default: float, *, minimum: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return max(minimum, parsed)
