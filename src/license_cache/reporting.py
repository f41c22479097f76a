"""
Run reports and console output for cache runs.

Reports form a tree (run → app → source → dependency). Each node carries
ordered errors and warnings plus free-form annotations such as ``cached``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


@dataclass
class Report:
    """Outcome of evaluating one node of a cache run."""

    name: str
    kind: str
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    annotations: Dict[str, Any] = field(default_factory=dict)
    children: List["Report"] = field(default_factory=list)

    def __getitem__(self, key: str) -> Any:
        return self.annotations[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.annotations.get(key, default)

    def child(self, name: str, kind: str) -> "Report":
        """Create and attach a child report."""
        report = Report(name=name, kind=kind)
        self.children.append(report)
        return report

    @property
    def success(self) -> bool:
        return not self.errors and all(child.success for child in self.children)

    def walk(self) -> Iterator["Report"]:
        """Iterate over this report and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "success": self.success,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            **self.annotations,
            "children": [child.to_dict() for child in self.children],
        }


class CacheReporter:
    """Formats and displays cache run results."""

    def __init__(self, console: Optional[Console] = None, quiet: bool = False):
        self.console = console or Console()
        self.quiet = quiet

    def begin_app(self, app_report: Report) -> None:
        if not self.quiet:
            self.console.print(
                f"[bold blue]Caching dependency records for {app_report.name}[/bold blue]"
            )

    def end_source(self, source_report: Report) -> None:
        if self.quiet:
            return
        count = len(source_report.children)
        cached = sum(1 for dep in source_report.children if dep.get("cached"))
        self.console.print(
            f"  {source_report.name}: {count} dependencies ({cached} cached)"
        )

    def print_results(self, run_report: Report) -> None:
        """Print warnings, errors and a summary table for a finished run."""
        self.console.print()
        self._print_messages(run_report, "warnings", "yellow", "⚠️  Warnings")
        self._print_messages(run_report, "errors", "red", "❌ Errors")
        self._print_summary(run_report)

    def _print_messages(
        self, run_report: Report, attribute: str, color: str, title: str
    ) -> None:
        lines = []
        for report in run_report.walk():
            for message in getattr(report, attribute):
                lines.append(f"• {report.name}: {message}")

        if not lines:
            return

        self.console.print(
            Panel(
                "\n".join(lines),
                title=f"[bold {color}]{title}[/bold {color}]",
                border_style=color,
            )
        )

    def _print_summary(self, run_report: Report) -> None:
        stats = run_report.get("stats", {})

        table = Table(title="📊 Cache Summary", box=box.ROUNDED, title_style="bold cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Count", justify="center")

        table.add_row("Dependencies evaluated", str(stats.get("evaluated", 0)))
        table.add_row("Records written", f"[green]{stats.get('written', 0)}[/green]")
        table.add_row("Records unchanged", str(stats.get("unchanged", 0)))
        table.add_row("Failed", f"[red]{stats.get('failed', 0)}[/red]")
        table.add_row("Stale records removed", str(stats.get("removed", 0)))

        self.console.print(table)

        if run_report.success:
            self.console.print("\n[bold green]✅ Dependency records cached.[/bold green]")
        else:
            self.console.print(
                "\n[bold red]❌ Caching failed; stale records were left in place.[/bold red]"
            )
