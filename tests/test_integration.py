"""
Integration tests for license-cache.
Tests complete cache runs over manifest sources and real cache directories.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from license_cache.cache_command import CacheCommand
from license_cache.cache_manager import CacheRunContext, find_record_files
from license_cache.dependency import Dependency
from license_cache.error_handling import ErrorCategory, RecordStoreError, setup_error_handling
from license_cache.record import DependencyRecord
from license_cache.reporting import Report
from license_cache.sources import ManifestSource

from conftest import make_app, make_config, write_manifest


def _record_file(app, name: str) -> Path:
    return app.cache_path / "manifest" / f"{name}.dep.yml"


def _run(config, **kwargs):
    command = CacheCommand(config)
    return command.run(**kwargs), command.report


def _dependency_reports(report):
    return {r.name: r for r in report.walk() if r.kind == "dependency"}


class TestCacheRun:
    """Test complete cache runs."""

    def test_empty_cache_creates_one_record_per_dependency(self, temp_dir, app, three_dependencies):
        """Test a first run against an empty cache."""
        write_manifest(app.source_path, three_dependencies)

        success, report = _run(make_config(temp_dir, app))

        assert success
        files = find_record_files(app.cache_path)
        assert len(files) == 3
        assert _record_file(app, "@scope/gamma") in files
        assert report["stats"]["written"] == 3
        assert report["stats"]["removed"] == 0
        assert all(r.get("cached") for r in _dependency_reports(report).values())

        gamma = DependencyRecord.read(_record_file(app, "@scope/gamma"))
        assert gamma["version"] == "0.3.0"
        assert gamma["license"] == "Apache text"
        assert gamma["notices"] == ["Copyright Gamma Authors"]

    def test_unchanged_version_is_not_rewritten(self, temp_dir, app, three_dependencies):
        """Test that unchanged records are not rewritten."""
        write_manifest(app.source_path, three_dependencies)
        config = make_config(temp_dir, app)
        _run(config)

        alpha_file = _record_file(app, "alpha")
        edited = DependencyRecord.read(alpha_file)
        edited["custom"] = "kept"
        edited.save(alpha_file)

        with patch.object(DependencyRecord, "save") as mock_save:
            success, report = _run(config)

        assert success
        mock_save.assert_not_called()
        assert DependencyRecord.read(alpha_file)["custom"] == "kept"
        assert not any(r.get("cached") for r in _dependency_reports(report).values())
        assert report["stats"]["unchanged"] == 3
        assert len(find_record_files(app.cache_path)) == 3

    def test_version_change_rewrites_record(self, temp_dir, app, three_dependencies):
        """Test rewriting a record after a version change."""
        write_manifest(app.source_path, three_dependencies)
        config = make_config(temp_dir, app)
        _run(config)

        three_dependencies[0]["version"] = "1.1.0"
        write_manifest(app.source_path, three_dependencies)
        success, report = _run(config)

        assert success
        assert DependencyRecord.read(_record_file(app, "alpha"))["version"] == "1.1.0"
        assert _dependency_reports(report)["alpha"].get("cached") is True
        assert _dependency_reports(report)["beta"].get("cached") is None

    def test_cached_record_without_version_is_rewritten(self, temp_dir, app, three_dependencies):
        """Test rewriting a cached record that has no version."""
        write_manifest(app.source_path, three_dependencies)
        DependencyRecord({"name": "alpha", "license": "MIT text"}).save(_record_file(app, "alpha"))

        success, _ = _run(make_config(temp_dir, app))

        assert success
        assert DependencyRecord.read(_record_file(app, "alpha"))["version"] == "1.0.0"

    def test_force_rewrites_unchanged_records(self, temp_dir, app, three_dependencies):
        """Test forced rewrites of unchanged records."""
        write_manifest(app.source_path, three_dependencies)
        config = make_config(temp_dir, app)
        _run(config)

        alpha_file = _record_file(app, "alpha")
        edited = DependencyRecord.read(alpha_file)
        edited["custom"] = "dropped"
        edited.save(alpha_file)

        success, report = _run(config, force=True)

        assert success
        assert "custom" not in DependencyRecord.read(alpha_file)
        assert report["stats"]["written"] == 3

    def test_force_from_configuration(self, temp_dir, app, three_dependencies):
        """Test force enabled through configuration."""
        write_manifest(app.source_path, three_dependencies)
        config = make_config(temp_dir, app)
        _run(config)

        config.cache.force = True
        _, report = _run(config)

        assert report["stats"]["written"] == 3

    def test_stale_record_removed_after_successful_run(self, temp_dir, app, three_dependencies):
        """Test stale record removal after a successful run."""
        write_manifest(app.source_path, three_dependencies)
        stale = _record_file(app, "removed-package")
        DependencyRecord({"name": "removed-package", "version": "9.9.9"}).save(stale)

        success, report = _run(make_config(temp_dir, app))

        assert success
        assert not stale.exists()
        assert report["stats"]["removed"] == 1

    def test_second_run_deletes_nothing(self, temp_dir, app, three_dependencies):
        """Test that a repeated run removes nothing."""
        write_manifest(app.source_path, three_dependencies)
        DependencyRecord({"name": "old"}).save(_record_file(app, "old"))
        config = make_config(temp_dir, app)

        _, first = _run(config)
        _, second = _run(config)

        assert first["stats"]["removed"] == 1
        assert second["stats"]["removed"] == 0


class TestCacheRunFailures:
    """Test failure handling and the sweep safety gate."""

    def test_missing_path_fails_dependency_and_skips_sweep(self, temp_dir, app, three_dependencies):
        """Test that a dependency without a path fails the run and skips the sweep."""
        three_dependencies[1]["path"] = ""
        write_manifest(app.source_path, three_dependencies)
        stale = _record_file(app, "removed-package")
        DependencyRecord({"name": "removed-package", "version": "1"}).save(stale)

        success, report = _run(make_config(temp_dir, app))

        assert not success
        assert stale.exists()
        beta = _dependency_reports(report)["beta"]
        assert beta.errors == ["dependency path not found"]
        assert not _record_file(app, "beta").exists()
        assert _record_file(app, "alpha").exists()
        assert report["stats"]["failed"] == 1

    def test_missing_on_disk_warns_but_caches(self, temp_dir, app):
        """Test caching a dependency whose path is absent on disk."""
        write_manifest(
            app.source_path,
            [{"name": "ghost", "version": "1.0", "path": "vendor/ghost", "_missing": True}],
        )

        success, report = _run(make_config(temp_dir, app))

        assert success
        ghost = _dependency_reports(report)["ghost"]
        assert ghost.get("cached") is True
        assert len(ghost.warnings) == 1
        assert "does not exist" in ghost.warnings[0]
        assert _record_file(app, "ghost").exists()

    def test_failure_in_one_app_protects_every_app(self, temp_dir, three_dependencies):
        """Test that one failing application protects every cache root."""
        good = make_app(temp_dir, "good")
        bad = make_app(temp_dir, "bad")
        write_manifest(good.source_path, [dict(d) for d in three_dependencies])
        write_manifest(bad.source_path, [{"name": "nopath", "version": "1.0", "path": ""}])

        good_stale = _record_file(good, "stale")
        bad_stale = _record_file(bad, "stale")
        DependencyRecord({"name": "stale"}).save(good_stale)
        DependencyRecord({"name": "stale"}).save(bad_stale)

        success, report = _run(make_config(temp_dir, bad, good))

        assert not success
        assert good_stale.exists()
        assert bad_stale.exists()
        # later apps still run after an earlier failure
        assert len(find_record_files(good.cache_path)) == 4

    def test_invalid_manifest_fails_source(self, temp_dir, app):
        """Test handling of an invalid manifest."""
        app.source_path.mkdir(parents=True)
        app.manifest_path().write_text("[[dependency]\nname = ")

        success, report = _run(make_config(temp_dir, app))

        assert not success
        source_report = next(r for r in report.walk() if r.kind == "source")
        assert "Invalid TOML" in source_report.errors[0]

    def test_app_without_sources_fails(self, temp_dir, app):
        """Test an application with no enabled sources."""
        stale = _record_file(app, "stale")
        DependencyRecord({"name": "stale"}).save(stale)

        success, report = _run(make_config(temp_dir, app))

        assert not success
        assert stale.exists()
        assert report.children[0].errors == ["no enabled sources found"]

    def test_corrupt_cached_record_fails_dependency(self, temp_dir, app, three_dependencies):
        """Test handling of a corrupt cached record."""
        write_manifest(app.source_path, three_dependencies)
        corrupt = _record_file(app, "alpha")
        corrupt.parent.mkdir(parents=True)
        corrupt.write_text("- not\n- a mapping\n")

        success, report = _run(make_config(temp_dir, app))

        assert not success
        assert "does not contain a mapping" in _dependency_reports(report)["alpha"].errors[0]

    def test_missing_license_file_is_reported_as_warning(self, temp_dir, app):
        """Test a manifest entry whose license file is missing."""
        write_manifest(
            app.source_path,
            [{"name": "alpha", "version": "1.0", "path": "vendor/alpha", "license_file": "vendor/alpha/LICENSE"}],
        )

        success, report = _run(make_config(temp_dir, app))

        assert success
        alpha = _dependency_reports(report)["alpha"]
        assert alpha.warnings == ["license file vendor/alpha/LICENSE does not exist"]

    def test_undecodable_license_file_fails_only_that_dependency(self, temp_dir, app, three_dependencies):
        """Test that an unreadable license file is a dependency error, not a crash."""
        license_file = app.source_path / "vendor" / "delta" / "LICENSE"
        license_file.parent.mkdir(parents=True)
        license_file.write_bytes(b"\xff\xfe\x00bad")
        write_manifest(
            app.source_path,
            three_dependencies
            + [{"name": "delta", "version": "1.0", "path": "vendor/delta", "license_file": "vendor/delta/LICENSE"}],
        )

        success, report = _run(make_config(temp_dir, app))

        assert not success
        dependencies = _dependency_reports(report)
        assert "unable to read license file vendor/delta/LICENSE" in dependencies["delta"].errors[0]
        assert dependencies["alpha"].errors == []
        assert not _record_file(app, "delta").exists()
        assert _record_file(app, "alpha").exists()

    @pytest.mark.parametrize("name", ["../../outside", "nested/../../escape", "/etc/owned"])
    def test_names_leaving_the_cache_path_are_rejected(self, temp_dir, app, name):
        """Test that a manifest cannot address records outside the cache path."""
        write_manifest(app.source_path, [{"name": name, "version": "1.0", "path": "vendor/x"}])

        success, report = _run(make_config(temp_dir, app))

        assert not success
        source_report = next(r for r in report.walk() if r.kind == "source")
        assert "must stay inside the cache path" in source_report.errors[0]
        assert not (temp_dir / "outside.dep.yml").exists()
        assert not (app.cache_path.parent / "outside.dep.yml").exists()

    def test_record_outside_cache_path_fails_evaluation(self, temp_dir, app):
        """Test that evaluation refuses a record path that resolves outside the cache path."""
        handler = setup_error_handling()
        seen = []
        handler.register_callback(seen.append, ErrorCategory.EVALUATION)
        vendor = temp_dir / "vendor" / "x"
        vendor.mkdir(parents=True)

        command = CacheCommand(make_config(temp_dir, app))
        command.context = CacheRunContext()
        report = Report(name="outside", kind="dependency")
        dependency = Dependency(name="../../outside", version="1.0", path=str(vendor))

        assert not command.evaluate_dependency(app, ManifestSource(app), dependency, report)
        assert "is outside" in report.errors[0]
        assert command.context.live_files == set()
        assert [ctx.category for ctx in seen] == [ErrorCategory.EVALUATION]
        assert not (app.cache_path.parent / "outside.dep.yml").exists()

    def test_sweep_errors_propagate(self, temp_dir, app, three_dependencies):
        """Test that a failed stale record deletion is raised to the caller."""
        write_manifest(app.source_path, three_dependencies)

        with patch(
            "license_cache.cache_manager.sweep_stale_records",
            side_effect=RecordStoreError("disk gone"),
        ):
            with pytest.raises(RecordStoreError):
                _run(make_config(temp_dir, app))


class TestLicenseReview:
    """Test license carry-over and review invalidation during a run."""

    def test_license_text_carried_over_on_forced_refresh(self, temp_dir, app):
        """Test license carry-over during a forced refresh."""
        write_manifest(
            app.source_path,
            [{"name": "alpha", "version": "1.0.0", "path": "vendor/alpha", "license": "MIT text"}],
        )
        config = make_config(temp_dir, app)
        _run(config)

        write_manifest(
            app.source_path,
            [{"name": "alpha", "version": "1.0.0", "path": "vendor/alpha", "license": "MIT   text\n"}],
        )
        success, _ = _run(config, force=True)

        assert success
        assert DependencyRecord.read(_record_file(app, "alpha"))["license"] == "MIT text"

    def test_reviewed_dependency_with_new_license_is_flagged(self, temp_dir):
        """Test flagging a reviewed dependency whose license changed."""
        app = make_app(temp_dir, reviewed={"manifest": ["alpha@1.0.0"]})
        write_manifest(
            app.source_path,
            [{"name": "alpha", "version": "1.0.0", "path": "vendor/alpha", "license": "MIT text"}],
        )
        config = make_config(temp_dir, app)
        _run(config)

        write_manifest(
            app.source_path,
            [{"name": "alpha", "version": "2.0.0", "path": "vendor/alpha", "license": "GPL text"}],
        )
        success, _ = _run(config)

        assert success
        saved = yaml.safe_load(_record_file(app, "alpha").read_text())
        assert saved["license"] == "GPL text"
        assert saved["review_changed_license"] is True

    def test_unreviewed_dependency_is_not_flagged(self, temp_dir, app):
        """Test that unreviewed dependencies are not flagged."""
        write_manifest(
            app.source_path,
            [{"name": "alpha", "version": "1.0.0", "path": "vendor/alpha", "license": "MIT text"}],
        )
        config = make_config(temp_dir, app)
        _run(config)

        write_manifest(
            app.source_path,
            [{"name": "alpha", "version": "2.0.0", "path": "vendor/alpha", "license": "GPL text"}],
        )
        _run(config)

        assert "review_changed_license" not in DependencyRecord.read(_record_file(app, "alpha"))
