"""
Shared fixtures for license-cache tests.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import toml

from license_cache.cli_config import AppConfiguration, LicenseCacheConfig, reset_config


@pytest.fixture(autouse=True)
def _reset_global_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_dir(tmp_path) -> Path:
    return tmp_path


def write_manifest(source_path: Path, dependencies: List[Dict[str, Any]]) -> Path:
    """Write a license manifest, creating each dependency's directory."""
    source_path.mkdir(parents=True, exist_ok=True)
    for dep in dependencies:
        if dep.get("path") and not dep.pop("_missing", False):
            (source_path / dep["path"]).mkdir(parents=True, exist_ok=True)
        dep.pop("_missing", None)

    manifest = source_path / "license-manifest.toml"
    manifest.write_text(toml.dumps({"dependency": dependencies}), encoding="utf-8")
    return manifest


def make_app(
    root: Path,
    name: str = "app",
    reviewed: Optional[Dict[str, List[str]]] = None,
) -> AppConfiguration:
    return AppConfiguration(
        name=name,
        source_path=root / name,
        cache_path=root / ".licenses" / name,
        reviewed_patterns=reviewed or {},
    )


def make_config(root: Path, *apps: AppConfiguration) -> LicenseCacheConfig:
    return LicenseCacheConfig(root=root, apps=list(apps))


@pytest.fixture
def app(temp_dir) -> AppConfiguration:
    return make_app(temp_dir)


@pytest.fixture
def three_dependencies() -> List[Dict[str, Any]]:
    return [
        {"name": "alpha", "version": "1.0.0", "path": "vendor/alpha", "license": "MIT text"},
        {"name": "beta", "version": "2.1.0", "path": "vendor/beta", "license": "BSD text"},
        {
            "name": "@scope/gamma",
            "version": "0.3.0",
            "path": "vendor/gamma",
            "license": "Apache text",
            "notices": ["Copyright Gamma Authors"],
        },
    ]
