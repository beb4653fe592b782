"""Source id to target id mapping built during a migration run."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from .exceptions import DuplicateMappingError, MigrationError

if TYPE_CHECKING:
    from collections.abc import ItemsView, Iterator

logger: logging.Logger = logging.getLogger(__name__)


class IdentityMap:
    """Maps Redmine issue ids to Azure DevOps work item ids.

    A source id is inserted at most once per run. Writes happen from the
    single node-creation loop and are serialized by a lock; reads are plain
    dict lookups and safe from worker threads.
    """

    def __init__(self, initial: dict[int, int] | None = None) -> None:
        self._mapping: dict[int, int] = dict(initial or {})
        self._write_lock: threading.Lock = threading.Lock()

    def put(self, source_id: int, target_id: int) -> None:
        """Record that ``source_id`` was migrated to ``target_id``.

        Raises:
            DuplicateMappingError: If ``source_id`` is already mapped
        """
        with self._write_lock:
            existing = self._mapping.get(source_id)
            if existing is not None:
                raise DuplicateMappingError(source_id, existing, target_id)
            self._mapping[source_id] = target_id

    def get(self, source_id: int) -> int | None:
        return self._mapping.get(source_id)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)

    def __iter__(self) -> Iterator[int]:
        return iter(self._mapping)

    def items(self) -> ItemsView[int, int]:
        return self._mapping.items()

    def to_dict(self) -> dict[str, int]:
        """Return the mapping as a JSON-ready object (string keys)."""
        return {str(source_id): target_id for source_id, target_id in self._mapping.items()}

    def save(self, path: str | Path) -> Path:
        """Write the mapping as a flat JSON object, replacing the file atomically."""
        target_path = Path(path)
        target_path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(prefix=".mapping_", suffix=".json", dir=target_path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
                f.write("\n")
            Path(temp_name).replace(target_path)
        except OSError as e:
            Path(temp_name).unlink(missing_ok=True)
            msg = f"Failed to write identity mapping to {target_path}: {e}"
            raise MigrationError(msg) from e

        logger.info(f"Saved {len(self._mapping)} id mappings to {target_path}")
        return target_path

    @classmethod
    def load(cls, path: str | Path) -> IdentityMap:
        """Load a mapping written by :meth:`save`."""
        source_path = Path(path)
        try:
            raw = json.loads(source_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            msg = f"Failed to read identity mapping from {source_path}: {e}"
            raise MigrationError(msg) from e

        if not isinstance(raw, dict):
            msg = f"Identity mapping {source_path} must be a JSON object"
            raise MigrationError(msg)

        try:
            mapping = {int(source_id): int(target_id) for source_id, target_id in raw.items()}
        except (TypeError, ValueError) as e:
            msg = f"Identity mapping {source_path} contains non-integer ids: {e}"
            raise MigrationError(msg) from e

        logger.info(f"Loaded {len(mapping)} id mappings from {source_path}")
        return cls(mapping)
