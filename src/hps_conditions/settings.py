from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.getenv(name, "")
    if raw.strip() == "":
        return default
    return raw.strip()


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name, "")
    if raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in {"none", "null", "nil"}:
        return None
    try:
        return int(lowered)
    except ValueError:
        return default


def _env_paths(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(part for part in raw.split(os.pathsep) if part.strip())


@dataclass(frozen=True)
class ConditionsSettings:
    config_path: Optional[str] = None
    properties_path: Optional[str] = None
    detector_paths: Tuple[str, ...] = field(default_factory=tuple)
    log_level: str = "WARNING"
    detector_name: Optional[str] = None
    run_number: Optional[int] = None

    @classmethod
    def from_env(cls) -> "ConditionsSettings":
        return cls(
            config_path=_env_str("HPS_CONDITIONS_CONFIG", None),
            properties_path=_env_str("HPS_CONDITIONS_PROPERTIES", None),
            detector_paths=_env_paths("HPS_CONDITIONS_DETECTOR_PATH"),
            log_level=(_env_str("HPS_CONDITIONS_LOG_LEVEL", "WARNING") or "WARNING").upper(),
            detector_name=_env_str("HPS_CONDITIONS_DETECTOR", None),
            run_number=_env_int("HPS_CONDITIONS_RUN", None),
        )
