"""
Configuration management for license-cache.

Loads project settings and application configurations from a YAML or JSON
file, applies environment overrides and validates the result.
"""

import fnmatch
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

from .error_handling import ConfigurationError
from .record import DependencyRecord

console = Console(stderr=True)

DEFAULT_CACHE_PATH = ".licenses"
DEFAULT_MANIFEST = "license-manifest.toml"

CONFIG_FILE_NAMES = [
    ".license-cache.yml",
    ".license-cache.yaml",
    ".license-cache.json",
]

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class AppConfiguration:
    """Configuration for a single application whose dependencies are cached."""

    name: str
    source_path: Path
    cache_path: Path
    sources: Dict[str, bool] = field(default_factory=dict)
    reviewed_patterns: Dict[str, List[str]] = field(default_factory=dict)
    manifest: Optional[str] = None

    def enabled_source(self, source_type: str) -> bool:
        """Sources are enabled unless explicitly switched off."""
        return bool(self.sources.get(source_type, True))

    def manifest_path(self) -> Path:
        return self.source_path / (self.manifest or DEFAULT_MANIFEST)

    def reviewed(self, record: DependencyRecord) -> bool:
        """
        Check whether a record's content was previously approved.

        A record is reviewed when its ``name`` or ``name@version`` matches one
        of the patterns listed under ``reviewed`` for the record's type.
        """
        patterns = self.reviewed_patterns.get(str(record.get("type", "")), [])
        name = str(record.get("name", ""))
        if not name:
            return False

        candidates = [name]
        version = record.get("version")
        if version:
            candidates.append(f"{name}@{version}")

        return any(
            fnmatch.fnmatchcase(candidate, pattern)
            for pattern in patterns
            for candidate in candidates
        )


@dataclass
class CacheSettings:
    """Cache behaviour settings."""

    cache_path: str = DEFAULT_CACHE_PATH
    force: bool = False


@dataclass
class LoggingConfig:
    """Logging configuration."""

    log_level: str = "WARNING"
    structured_events: bool = True


@dataclass
class LicenseCacheConfig:
    """Main configuration containing all subsections and applications."""

    root: Path = field(default_factory=Path.cwd)
    cache: CacheSettings = field(default_factory=CacheSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    apps: List[AppConfiguration] = field(default_factory=list)
    config_file: Optional[Path] = None

    @property
    def log_level(self) -> int:
        return getattr(logging, self.logging.log_level.upper(), logging.WARNING)


# Global configuration instance
_global_config: Optional[LicenseCacheConfig] = None


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """
    Load raw configuration data from a YAML or JSON file.

    Returns:
        The parsed mapping, or None when the file does not exist

    Raises:
        ConfigurationError: If the file cannot be parsed
    """
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Error loading config from {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return data


def find_config_file(directory: Optional[Path] = None) -> Optional[Path]:
    """Find config file in the given directory (defaults to cwd)."""
    directory = directory or Path.cwd()
    for name in CONFIG_FILE_NAMES:
        location = directory / name
        if location.exists():
            return location
    return None


def _app_name(data: Dict[str, Any], source_path: Path) -> str:
    return str(data.get("name") or source_path.resolve().name)


def build_app_configs(
    data: Dict[str, Any], root: Path, default_cache_path: str
) -> List[AppConfiguration]:
    """
    Build application configurations from raw config data.

    Entries under ``apps`` inherit the top-level settings. With more than one
    app, each app's default cache path is ``<cache_path>/<app name>``.
    """
    base = {key: value for key, value in data.items() if key != "apps"}
    raw_apps = data.get("apps") or [{}]
    if not isinstance(raw_apps, list):
        raise ConfigurationError("'apps' must be a list")

    apps = []
    for raw_app in raw_apps:
        if not isinstance(raw_app, dict):
            raise ConfigurationError("each entry in 'apps' must be a mapping")

        merged = {**base, **raw_app}
        source_path = (root / str(merged.get("source_path", "."))).resolve()
        name = _app_name(raw_app if len(raw_apps) > 1 else merged, source_path)

        if "cache_path" in raw_app:
            cache_path = root / str(raw_app["cache_path"])
        elif len(raw_apps) > 1:
            cache_path = root / default_cache_path / name
        else:
            cache_path = root / default_cache_path

        sources = merged.get("sources") or {}
        reviewed = merged.get("reviewed") or {}
        if not isinstance(sources, dict) or not isinstance(reviewed, dict):
            raise ConfigurationError("'sources' and 'reviewed' must be mappings")

        apps.append(
            AppConfiguration(
                name=name,
                source_path=source_path,
                cache_path=cache_path.resolve(),
                sources={str(k): bool(v) for k, v in sources.items()},
                reviewed_patterns={
                    str(k): [str(p) for p in (v or [])] for k, v in reviewed.items()
                },
                manifest=merged.get("manifest"),
            )
        )

    return apps


def load_environment_overrides(config: LicenseCacheConfig) -> None:
    """Apply LICENSE_CACHE_* environment variable overrides."""

    def get_env_bool(key: str, default: bool = False) -> bool:
        value = os.environ.get(key, "").lower()
        return value in ["true", "1", "yes", "on"] if value else default

    if cache_path := os.environ.get("LICENSE_CACHE_PATH"):
        config.cache.cache_path = cache_path
    if log_level := os.environ.get("LICENSE_CACHE_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()

    config.cache.force = get_env_bool("LICENSE_CACHE_FORCE", config.cache.force)


def apply_config_section(
    config: Any, section_data: Dict[str, Any], section_name: str
) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            console.print(
                f"⚠️  Unknown config key in {section_name}: {key}", style="yellow"
            )


def validate_config_values(config: LicenseCacheConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    from .sources import SOURCE_TYPES

    errors = []

    if config.logging.log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"logging.log_level must be one of {', '.join(VALID_LOG_LEVELS)}"
        )

    if not config.apps:
        errors.append("at least one app must be configured")

    seen_names = set()
    seen_cache_paths = set()
    for app in config.apps:
        if app.name in seen_names:
            errors.append(f"duplicate app name: {app.name}")
        seen_names.add(app.name)

        if app.cache_path in seen_cache_paths:
            errors.append(f"apps share cache path: {app.cache_path}")
        seen_cache_paths.add(app.cache_path)

        for source_type in list(app.sources) + list(app.reviewed_patterns):
            if source_type not in SOURCE_TYPES:
                errors.append(f"{app.name}: unknown source type '{source_type}'")

    return errors


def load_config(
    config_path: Optional[Path] = None, cwd: Optional[Path] = None
) -> LicenseCacheConfig:
    """
    Load configuration from file and environment.

    Args:
        config_path: Explicit config file; searched for in ``cwd`` when omitted
        cwd: Directory used for the search and as default root

    Raises:
        ConfigurationError: If the file is unreadable or fails validation
    """
    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")
    else:
        config_path = find_config_file(cwd)

    root = (config_path.parent if config_path else (cwd or Path.cwd())).resolve()
    config = LicenseCacheConfig(root=root, config_file=config_path)

    data: Dict[str, Any] = {}
    if config_path:
        data = load_config_file(config_path) or {}

    if "cache_path" in data:
        config.cache.cache_path = str(data["cache_path"])
    if isinstance(data.get("logging"), dict):
        apply_config_section(config.logging, data["logging"], "logging")

    load_environment_overrides(config)

    app_data = {key: value for key, value in data.items() if key != "logging"}
    config.apps = build_app_configs(app_data, root, config.cache.cache_path)

    validation_errors = validate_config_values(config)
    if validation_errors:
        raise ConfigurationError(
            "Configuration validation errors:\n"
            + "\n".join(f"  • {error}" for error in validation_errors)
        )

    return config


def get_config() -> LicenseCacheConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: LicenseCacheConfig) -> None:
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate a sample YAML configuration."""
    sample_config = {
        "cache_path": DEFAULT_CACHE_PATH,
        "sources": {"manifest": True},
        "manifest": DEFAULT_MANIFEST,
        "reviewed": {"manifest": ["example-package", "another-package@1.2.*"]},
        "logging": {"log_level": "WARNING", "structured_events": True},
        "apps": [{"name": "app", "source_path": "."}],
    }
    return yaml.safe_dump(sample_config, sort_keys=False)
