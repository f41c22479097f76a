"""
The cache command.

Evaluates every dependency of every configured application, refreshes the
cached records that are out of date, and removes records that no longer
belong to any dependency once the whole run has succeeded.
"""

import uuid
from typing import Iterable, List, Optional

from .cache_manager import CacheKey, CacheRunContext
from .cli_config import AppConfiguration, LicenseCacheConfig
from .dependency import Dependency
from .error_handling import (
    ErrorCategory,
    RecordStoreError,
    SourceError,
    get_error_handler,
    log_store_error,
)
from .record import DependencyRecord
from .refresh_policy import apply_refresh_adjustments, should_refresh
from .reporting import CacheReporter, Report
from .sources import Source, get_sources
from .structured_logging import (
    get_cache_logger,
    log_dependency_failure,
    log_dependency_result,
    log_run_complete,
    log_run_start,
    log_stale_record_removed,
    log_sweep_skipped,
)


class CacheCommand:
    """Caches dependency records for all configured applications."""

    def __init__(
        self, config: LicenseCacheConfig, reporter: Optional[CacheReporter] = None
    ):
        self.config = config
        self.reporter = reporter
        self.force = False
        self.source_types: Optional[List[str]] = None
        self.context: Optional[CacheRunContext] = None
        self.report: Optional[Report] = None
        self.run_id: Optional[str] = None

    def run(self, force: bool = False, source_types: Optional[Iterable[str]] = None) -> bool:
        """
        Run the command.

        Stale records are removed only when every application succeeded.

        Args:
            force: Rewrite every record regardless of the cached version
            source_types: Restrict the run to these source types

        Returns:
            Whether the command was a success

        Raises:
            RecordStoreError: If a stale record cannot be removed
        """
        self.force = force or self.config.cache.force
        self.source_types = list(source_types) if source_types else None
        self.context = CacheRunContext()
        self.report = Report(name="license-cache", kind="run")

        self.run_id = uuid.uuid4().hex[:12]
        log_run_start(self.run_id, len(self.config.apps), self.force)

        try:
            results = [self.run_app(app) for app in self.config.apps]
            success = all(results)

            if success:
                for removed in self.context.sweep():
                    log_stale_record_removed(str(removed))
            else:
                log_sweep_skipped("one or more applications failed")

            self.report["stats"] = self.context.stats.get_stats()
            log_run_complete(self.run_id, success, self.context.stats.get_stats())

            if self.reporter:
                self.reporter.print_results(self.report)

            return success
        finally:
            self.context = None

    def run_app(self, app: AppConfiguration) -> bool:
        """Run the command for all enabled sources of an application."""
        app_report = self.report.child(app.name, "app")
        app_report["cache_path"] = str(app.cache_path)
        get_cache_logger().set_run_context(self.run_id, app=app.name)
        if self.reporter:
            self.reporter.begin_app(app_report)

        sources = [source for source in get_sources(app) if self._source_selected(source)]
        if not sources:
            app_report.errors.append("no enabled sources found")
            result = False
        else:
            result = all([self.run_source(app, source, app_report) for source in sources])

        self.context.record_touch(app.cache_path)
        return result

    def _source_selected(self, source: Source) -> bool:
        if self.source_types is not None and source.type not in self.source_types:
            return False
        return source.enabled()

    def run_source(self, app: AppConfiguration, source: Source, app_report: Report) -> bool:
        """Evaluate every dependency enumerated by a source."""
        source_report = app_report.child(source.type, "source")

        try:
            dependencies = source.enumerate_dependencies()
        except SourceError as e:
            get_error_handler().error(
                ErrorCategory.SOURCE,
                f"Failed to enumerate dependencies: {e}",
                "cache_command",
                "run_source",
                exception=e,
                details={"app": app.name, "source": source.type},
            )
            source_report.errors.append(str(e))
            return False

        results = [
            self.run_dependency(app, source, dependency, source_report)
            for dependency in dependencies
        ]

        if self.reporter:
            self.reporter.end_source(source_report)
        return all(results)

    def run_dependency(
        self,
        app: AppConfiguration,
        source: Source,
        dependency: Dependency,
        source_report: Report,
    ) -> bool:
        report = source_report.child(dependency.name, "dependency")
        report["version"] = dependency.version
        report.warnings.extend(dependency.record.warnings)

        if dependency.record.errors:
            report.errors.extend(dependency.record.errors)
            result = False
        else:
            try:
                result = self.evaluate_dependency(app, source, dependency, report)
            except RecordStoreError as e:
                log_store_error(
                    f"Failed to cache dependency {dependency.name}",
                    "cache_command",
                    "evaluate_dependency",
                    file_path=e.path,
                    exception=e,
                )
                report.errors.append(str(e))
                result = False

        if not result:
            self.context.stats.record_failure()
            log_dependency_failure(dependency.name, report.errors)
        return result

    def evaluate_dependency(
        self,
        app: AppConfiguration,
        source: Source,
        dependency: Dependency,
        report: Report,
    ) -> bool:
        """
        Cache a dependency's record.

        Args:
            app: The application configuration for the dependency
            source: The source that enumerated the dependency
            dependency: An application dependency
            report: Report for the dependency

        Returns:
            Whether the dependency was evaluated successfully
        """
        if not dependency.path:
            report.errors.append("dependency path not found")
            return False

        filename = CacheKey(app.cache_path, source.type, dependency.name).to_path()
        if not filename.resolve().is_relative_to(app.cache_path.resolve()):
            get_error_handler().error(
                ErrorCategory.EVALUATION,
                f"Record for {dependency.name} resolves outside the cache path",
                "cache_command",
                "evaluate_dependency",
                details={"record_file": str(filename), "cache_path": str(app.cache_path)},
            )
            report.errors.append(f"record path {filename} is outside {app.cache_path}")
            return False
        self.context.record_file(filename)

        cached_record = DependencyRecord.read(filename)
        cached = should_refresh(dependency, cached_record, force=self.force)
        if cached:
            apply_refresh_adjustments(dependency.record, cached_record, app.reviewed)
            dependency.record.save(filename)
            report["cached"] = True
            self.context.stats.record_write()
        else:
            self.context.stats.record_unchanged()
        log_dependency_result(dependency.name, dependency.version, str(filename), cached)

        if not dependency.exists():
            report.warnings.append(
                f"expected dependency path {dependency.path} does not exist"
            )

        return True
