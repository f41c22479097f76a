"""
Dependency records and their on-disk YAML storage.

A record is an ordered key/value document describing the license state of a
single dependency. Records live at
``<cache_root>/<source_type>/<dependency_name>.dep.yml``.
"""

from pathlib import Path
from typing import Any, Dict, Iterator, List, MutableMapping, Optional, Union

import yaml

from .error_handling import RecordStoreError

EXTENSION = "dep.yml"

LICENSE_KEY = "license"
VERSION_KEY = "version"
REVIEW_CHANGED_KEY = "review_changed_license"

# Annotations written by the cache pass itself; not part of record content.
ANNOTATION_KEYS = frozenset({REVIEW_CHANGED_KEY})

PathLike = Union[str, Path]


def record_path(cache_root: PathLike, source_type: str, name: str) -> Path:
    """Build the cache file path for a dependency."""
    return Path(cache_root) / source_type / f"{name}.{EXTENSION}"


class DependencyRecord(MutableMapping[str, Any]):
    """
    Key/value document describing one dependency's license state.

    ``errors`` and ``warnings`` collect messages while the record is being
    evaluated and are never written to disk.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(data or {})
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"DependencyRecord({self._data!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain copy of the persisted content."""
        return dict(self._data)

    def content(self) -> Dict[str, Any]:
        """Record content used for comparisons (license text and annotations removed)."""
        return {
            key: value
            for key, value in self._data.items()
            if key != LICENSE_KEY and key not in ANNOTATION_KEYS
        }

    @classmethod
    def read(cls, path: PathLike) -> Optional["DependencyRecord"]:
        """
        Load a record from disk.

        Args:
            path: Record file location

        Returns:
            The loaded record, or None when the file is missing or empty

        Raises:
            RecordStoreError: If the file cannot be read or is not a mapping
        """
        path = Path(path)
        if not path.is_file():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise RecordStoreError(f"Failed to read record {path}: {e}", str(path)) from e

        if not data:
            return None
        if not isinstance(data, dict):
            raise RecordStoreError(
                f"Record {path} does not contain a mapping", str(path)
            )

        return cls(data)

    def save(self, path: PathLike) -> None:
        """
        Write the record to disk, creating parent directories.

        Raises:
            RecordStoreError: If the file cannot be written
        """
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(
                    self._data,
                    f,
                    explicit_start=True,
                    sort_keys=False,
                    allow_unicode=True,
                    default_flow_style=False,
                )
        except (OSError, yaml.YAMLError) as e:
            raise RecordStoreError(f"Failed to write record {path}: {e}", str(path)) from e


def records_match(
    candidate: Optional[DependencyRecord], cached: Optional[DependencyRecord]
) -> bool:
    """
    Check whether two records are equivalent apart from license text.

    Both records must exist. Every key other than ``license`` and the cache
    annotations must be present in both with equal values.
    """
    if candidate is None or cached is None:
        return False
    return candidate.content() == cached.content()
