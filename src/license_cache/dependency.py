from dataclasses import dataclass, field
from pathlib import Path

from .record import DependencyRecord


@dataclass
class Dependency:
    """A third-party package observed during a cache run."""

    name: str
    version: str
    path: str
    record: DependencyRecord = field(default_factory=DependencyRecord)

    def exists(self) -> bool:
        """Check whether the dependency's path is present on disk."""
        return bool(self.path) and Path(self.path).exists()
