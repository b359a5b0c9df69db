"""
Non-database resources: embedded package files and per-detector files.

Detector descriptions such as ``compact.xml`` are not kept in the database. They
are looked up in ``<base dir>/<detector name>/<resource>`` for each configured base
directory, after which the embedded ``hps_conditions.resources.detectors`` package
data is tried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import resources as importlib_resources
from pathlib import Path
from typing import List, Optional, Sequence, Union

from hps_conditions.errors import ResourceError

logger = logging.getLogger(__name__)

RESOURCE_PACKAGE = "hps_conditions.resources"


def read_resource_text(name: str, package: str = RESOURCE_PACKAGE) -> str:
    """Read an embedded resource, raising ``ResourceError`` if it is missing."""
    resource = importlib_resources.files(package)
    for part in name.strip("/").split("/"):
        resource = resource / part
    if not resource.is_file():
        raise ResourceError(f"The resource does not exist: {package}/{name}")
    return resource.read_text(encoding="utf-8")


def read_file_text(path: Union[str, Path], what: str = "file") -> str:
    resolved = Path(path)
    if not resolved.is_file():
        raise ResourceError(f"The {what} does not exist: {resolved}")
    return resolved.read_text(encoding="utf-8")


@dataclass(frozen=True)
class DetectorDescription:
    """The compact description of a detector, as read from its resource file."""

    detector_name: str
    resource_name: str
    source: str
    text: str


class ResourceReader:
    """Resolves named resources relative to the current detector."""

    def __init__(self, base_dirs: Optional[Sequence[Union[str, Path]]] = None):
        self.base_dirs: List[Path] = [Path(p) for p in base_dirs or []]
        self.resource_path: Optional[str] = None

    def set_resource_path(self, detector_name: str) -> None:
        self.resource_path = detector_name
        logger.debug("set resource path to %s on conditions reader", detector_name)

    def add_base_dir(self, path: Union[str, Path]) -> None:
        self.base_dirs.append(Path(path))

    def _candidates(self, name: str) -> List[Path]:
        if self.resource_path is None:
            return [base / name for base in self.base_dirs]
        return [base / self.resource_path / name for base in self.base_dirs]

    def read_text(self, name: str) -> tuple[str, str]:
        """
        Returns ``(source, text)`` for the named resource of the current detector.

        Raises ``ResourceError`` when no base directory or embedded resource has it.
        """
        for candidate in self._candidates(name):
            if candidate.is_file():
                return str(candidate), candidate.read_text(encoding="utf-8")
        if self.resource_path is not None:
            embedded = f"detectors/{self.resource_path}/{name}"
            try:
                return f"{RESOURCE_PACKAGE}/{embedded}", read_resource_text(embedded)
            except (ResourceError, ModuleNotFoundError):
                pass
        raise ResourceError(
            f"Resource '{name}' not found for detector '{self.resource_path}' "
            f"in {[str(p) for p in self.base_dirs]}"
        )
