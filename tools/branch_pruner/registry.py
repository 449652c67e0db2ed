"""Persistence of per-repository prune state."""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from shared.logger import get_logger

from .errors import RegistryReadFailed, RegistryWriteFailed
from .models import PruneState

logger = get_logger(__name__)


class RepositoryRegistry(ABC):
    """Store of repository metadata used by the pruner."""

    @abstractmethod
    def get_prune_state(self, repository_id: str) -> PruneState:
        """Return the prune state, creating an empty one if needed."""

    @abstractmethod
    def set_last_prune_timestamp(self, repository_id: str, timestamp: datetime) -> None:
        """Record the end of a successful run."""


def _parse_timestamp(value: Any) -> datetime:
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


class JsonRepositoryRegistry(RepositoryRegistry):
    """
    Registry kept in a single JSON file.

    Layout::

        {"repositories": {"<id>": {"last_prune_timestamp": "<iso-8601>"}}}

    Stored timestamps never move backwards.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"repositories": {}}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise RegistryReadFailed(f"Cannot read registry {self.path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("repositories"), dict):
            raise RegistryReadFailed(f"Malformed registry {self.path}")
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(temp_path, self.path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def get_prune_state(self, repository_id: str) -> PruneState:
        with self._lock:
            entry = self._read()["repositories"].get(repository_id) or {}

        raw = entry.get("last_prune_timestamp")
        if raw is None:
            return PruneState(repository_id=repository_id)
        try:
            return PruneState(repository_id=repository_id, last_prune_timestamp=_parse_timestamp(raw))
        except ValueError as e:
            raise RegistryReadFailed(f"Bad timestamp for {repository_id}: {raw!r}") from e

    def set_last_prune_timestamp(self, repository_id: str, timestamp: datetime) -> None:
        with self._lock:
            try:
                data = self._read()
            except RegistryReadFailed as e:
                raise RegistryWriteFailed(str(e)) from e

            entry = data["repositories"].setdefault(repository_id, {})
            previous = entry.get("last_prune_timestamp")
            if previous is not None:
                try:
                    if _parse_timestamp(previous) >= timestamp:
                        logger.debug(f"Keeping newer prune timestamp for {repository_id}")
                        return
                except ValueError:
                    logger.warning(f"Overwriting bad timestamp for {repository_id}: {previous!r}")

            entry["last_prune_timestamp"] = timestamp.isoformat()
            try:
                self._write(data)
            except OSError as e:
                raise RegistryWriteFailed(f"Cannot write registry {self.path}: {e}") from e

        logger.debug(f"Recorded prune of {repository_id} at {timestamp.isoformat()}")
