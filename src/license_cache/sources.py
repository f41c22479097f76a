"""
Dependency sources.

A source enumerates the dependencies of one application for a single
package ecosystem. The manifest source reads dependencies declared by hand
in a TOML file; it does not inspect any package manager.
"""

from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Type

import toml

from .cli_config import AppConfiguration
from .dependency import Dependency
from .error_handling import ErrorCategory, SourceError, get_error_handler
from .record import DependencyRecord


def _escapes_cache_root(name: str) -> bool:
    """Whether a dependency name would address a record outside its cache root."""
    path = PurePosixPath(name.replace("\\", "/"))
    return path.is_absolute() or ".." in path.parts


class Source(ABC):
    """Base class for dependency sources."""

    type: str = ""

    def __init__(self, app: AppConfiguration):
        self.app = app

    def enabled(self) -> bool:
        return self.app.enabled_source(self.type)

    @abstractmethod
    def enumerate_dependencies(self) -> List[Dependency]:
        """
        List the dependencies of the application.

        Raises:
            SourceError: If the dependencies cannot be enumerated
        """


class ManifestSource(Source):
    """Dependencies declared in a TOML manifest as ``[[dependency]]`` tables."""

    type = "manifest"

    def enabled(self) -> bool:
        return super().enabled() and self.app.manifest_path().is_file()

    def _load_manifest(self) -> Dict[str, Any]:
        manifest_path = self.app.manifest_path()
        try:
            content = manifest_path.read_text(encoding="utf-8")
            return toml.loads(content)
        except toml.TomlDecodeError as e:
            get_error_handler().error(
                ErrorCategory.SOURCE,
                f"Invalid TOML format in manifest: {e}",
                "sources",
                "_load_manifest",
                exception=e,
                details={"file_path": str(manifest_path)},
            )
            raise SourceError(f"Invalid TOML format in {manifest_path}: {e}") from e
        except OSError as e:
            raise SourceError(f"Unable to read manifest {manifest_path}: {e}") from e

    def _resolve(self, path: str) -> str:
        if not path:
            return ""
        return str((self.app.source_path / path).resolve())

    def _build_record(self, name: str, entry: Dict[str, Any]) -> DependencyRecord:
        record = DependencyRecord(
            {
                "name": name,
                "version": str(entry.get("version", "")),
                "type": self.type,
                "summary": entry.get("summary"),
                "homepage": entry.get("homepage"),
            }
        )

        license_text = entry.get("license")
        license_file = entry.get("license_file")
        if license_file:
            license_path = Path(self._resolve(license_file))
            if license_path.is_file():
                try:
                    license_text = license_path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    record.errors.append(f"unable to read license file {license_file}: {e}")
            else:
                record.warnings.append(f"license file {license_file} does not exist")

        record["license"] = license_text
        record["notices"] = list(entry.get("notices") or [])
        return record

    def enumerate_dependencies(self) -> List[Dependency]:
        data = self._load_manifest()
        entries = data.get("dependency", [])
        if not isinstance(entries, list):
            raise SourceError("'dependency' must be an array of tables")

        dependencies = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict) or not str(entry.get("name", "")).strip():
                raise SourceError(f"dependency #{index + 1} is missing a name")

            name = str(entry["name"]).strip()
            if _escapes_cache_root(name):
                raise SourceError(f"dependency name {name!r} must stay inside the cache path")
            dependencies.append(
                Dependency(
                    name=name,
                    version=str(entry.get("version", "")),
                    path=self._resolve(str(entry.get("path", ""))),
                    record=self._build_record(name, entry),
                )
            )

        return dependencies


SOURCE_TYPES: Dict[str, Type[Source]] = {
    ManifestSource.type: ManifestSource,
}


def get_sources(app: AppConfiguration) -> List[Source]:
    """Instantiate every registered source for an application."""
    return [source_class(app) for source_class in SOURCE_TYPES.values()]
