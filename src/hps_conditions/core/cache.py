from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[type, str]


@dataclass(frozen=True)
class CachedConditions:
    """One materialized payload and the detector/run it was produced for."""

    conditions_type: type
    name: str
    detector_name: str
    run_number: int
    payload: Any


class ConditionsCache:
    """
    Flat cache of conditions payloads keyed by ``(type, name)``.

    Entries belong to one ``(detector name, run number)`` context. Switching to a
    different context drops every entry; there is no size limit or partial
    eviction, so conditions can never straddle two runs or detectors.
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, CachedConditions] = {}
        self.detector_name: Optional[str] = None
        self.run_number: Optional[int] = None

    def set_context(self, detector_name: str, run_number: int) -> bool:
        """Switch context; returns True if cached entries were invalidated."""
        if detector_name == self.detector_name and run_number == self.run_number:
            return False
        dropped = len(self._entries)
        self._entries.clear()
        self.detector_name = detector_name
        self.run_number = run_number
        logger.debug(
            "conditions context is now detector %s run %d; dropped %d cached entries",
            detector_name,
            run_number,
            dropped,
        )
        return True

    def get(self, conditions_type: type, name: str) -> Optional[CachedConditions]:
        entry = self._entries.get((conditions_type, name))
        if entry is None:
            return None
        if entry.detector_name != self.detector_name or entry.run_number != self.run_number:
            del self._entries[(conditions_type, name)]
            return None
        return entry

    def put(self, conditions_type: type, name: str, payload: Any) -> CachedConditions:
        if self.detector_name is None or self.run_number is None:
            raise RuntimeError("Cannot cache conditions before a detector and run are set.")
        entry = CachedConditions(
            conditions_type=conditions_type,
            name=name,
            detector_name=self.detector_name,
            run_number=self.run_number,
            payload=payload,
        )
        self._entries[(conditions_type, name)] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[CacheKey]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
