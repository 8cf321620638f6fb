"""Storage for collected evidence packages, keyed by ISO timestamp."""

from __future__ import annotations

import json
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from releasegate.logging_config import get_logger

from .models import EvidencePackage

logger = get_logger(__name__)


class EvidenceStorage(ABC):
    """Key-value store for evidence packages."""

    @abstractmethod
    def store(self, timestamp: str, package: EvidencePackage) -> None:
        ...

    @abstractmethod
    def retrieve(self, timestamp: str) -> Optional[EvidencePackage]:
        ...


class InMemoryEvidenceStorage(EvidenceStorage):
    def __init__(self) -> None:
        self._packages: dict[str, EvidencePackage] = {}
        self._lock = threading.Lock()

    def store(self, timestamp: str, package: EvidencePackage) -> None:
        with self._lock:
            self._packages[timestamp] = package

    def retrieve(self, timestamp: str) -> Optional[EvidencePackage]:
        with self._lock:
            return self._packages.get(timestamp)

    def timestamps(self) -> list[str]:
        with self._lock:
            return sorted(self._packages)


class FileEvidenceStorage(EvidenceStorage):
    """One JSON document per package in a directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path_for(self, timestamp: str) -> Path:
        safe = re.sub(r"[^0-9A-Za-z._-]", "_", timestamp)
        return self.directory / f"evidence-{safe}.json"

    def store(self, timestamp: str, package: EvidencePackage) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(timestamp)
        payload = {"timestamp": timestamp, "package": package.to_dict()}
        path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        logger.debug(f"Evidence package stored: {path}")

    def retrieve(self, timestamp: str) -> Optional[EvidencePackage]:
        path = self._path_for(timestamp)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Cannot read evidence package {path}: {e}")
            return None
        return EvidencePackage.from_dict(data.get("package", {}))
