"""
Run-scoped bookkeeping for the record cache.

Tracks which cache roots were visited and which record files are still
backed by a live dependency, then removes every other record file once a
run has completed successfully.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Set

from .error_handling import RecordStoreError
from .record import EXTENSION, PathLike, record_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheKey:
    """Identity of a cached dependency record."""

    cache_root: Path
    source_type: str
    name: str

    def __str__(self) -> str:
        return f"{self.source_type}:{self.name}"

    def to_path(self) -> Path:
        """Location of the record file for this key."""
        return record_path(self.cache_root, self.source_type, self.name)


class CacheStats:
    """Counters for a single cache run."""

    def __init__(self):
        self.written = 0
        self.unchanged = 0
        self.failed = 0
        self.removed = 0

    def record_write(self) -> None:
        self.written += 1

    def record_unchanged(self) -> None:
        self.unchanged += 1

    def record_failure(self) -> None:
        self.failed += 1

    def record_removal(self, count: int = 1) -> None:
        self.removed += count

    @property
    def evaluated(self) -> int:
        return self.written + self.unchanged + self.failed

    def get_stats(self) -> Dict[str, Any]:
        """Get run statistics as a dictionary."""
        return {
            "evaluated": self.evaluated,
            "written": self.written,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "removed": self.removed,
        }


@dataclass
class CacheRunContext:
    """
    Accumulates the cache roots and record files touched during one run.

    Record files added here survive the stale sweep.
    """

    cache_roots: Set[Path] = field(default_factory=set)
    live_files: Set[Path] = field(default_factory=set)
    stats: CacheStats = field(default_factory=CacheStats)

    def record_touch(self, cache_root: PathLike) -> None:
        """Remember a cache root visited by the run."""
        self.cache_roots.add(Path(cache_root))

    def record_file(self, path: PathLike) -> None:
        """Mark a record file as backed by a live dependency."""
        self.live_files.add(Path(path))

    def sweep(self) -> List[Path]:
        """Remove stale record files from every visited cache root."""
        removed = sweep_stale_records(self.cache_roots, self.live_files)
        self.stats.record_removal(len(removed))
        return removed


def find_record_files(cache_root: PathLike) -> List[Path]:
    """Recursively list record files under a cache root."""
    root = Path(cache_root)
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob(f"*.{EXTENSION}") if p.is_file())


def sweep_stale_records(
    cache_roots: Iterable[PathLike], live_files: Iterable[PathLike]
) -> List[Path]:
    """
    Delete record files that were not touched during the run.

    Args:
        cache_roots: Cache roots visited by the run
        live_files: Record files backed by a live dependency

    Returns:
        Paths of the deleted files

    Raises:
        RecordStoreError: If a stale file cannot be deleted
    """
    live = {Path(p) for p in live_files}
    removed: List[Path] = []

    for cache_root in sorted({Path(r) for r in cache_roots}):
        for file_path in find_record_files(cache_root):
            if file_path in live:
                continue

            try:
                file_path.unlink()
            except OSError as e:
                raise RecordStoreError(
                    f"Failed to remove stale record {file_path}: {e}", str(file_path)
                ) from e

            logger.debug("Removed stale record %s", file_path)
            removed.append(file_path)

    return removed
