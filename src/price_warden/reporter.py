"""Aggregate findings at the end of a run and decide whether it passed."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .models import RunReport, UnitOutcome
from .progress import ProgressStore, slugify

console = Console()


class ErrorReport(BaseModel):
    """The durable artifact external alerting consumes."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime
    target_identity: str = Field(alias="targetIdentity")
    error_count: int = Field(alias="errorCount")
    errors: list[str]
    status: Literal["FAILED"] = "FAILED"


class ErrorReporter:
    """Write the error report for failed runs; clear progress after clean ones."""

    def __init__(self, report_dir: Path, store: ProgressStore):
        self.report_dir = report_dir
        self.store = store

    def finalize(self, run: RunReport) -> Path | None:
        """
        Close out a run.

        Returns:
            Path of the written error report, or None for a clean run.
        """
        if run.passed:
            self.store.clear()
            console.print("\n[bold green]✅ All price checks passed; progress cleared[/]")
            return None

        path = self.write(run)
        console.print(f"\n[bold red]✗ {len(run.findings)} errors; report written to {path}[/]")
        return path

    def write(self, run: RunReport) -> Path:
        now = datetime.now(timezone.utc)
        report = ErrorReport(
            timestamp=now,
            target_identity=run.target.identity,
            error_count=len(run.findings),
            errors=[f.message for f in run.findings],
        )

        self.report_dir.mkdir(parents=True, exist_ok=True)
        stamp = now.strftime("%Y%m%dT%H%M%S%fZ")
        path = self.report_dir / f"error-report-{slugify(run.target.identity)}-{stamp}.json"
        path.write_text(report.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        return path


def render(run: RunReport, out: Console | None = None) -> None:
    """Print a summary of a run."""
    out = out or console

    table = Table(title=f"Price check: {run.target.base_url}")
    table.add_column("Unit", style="cyan")
    table.add_column("Tab", max_width=24)
    table.add_column("Card", max_width=32)
    table.add_column("Price", style="dim")
    table.add_column("Checkout", style="magenta")
    table.add_column("Result")

    styles = {
        UnitOutcome.PASSED: "green",
        UnitOutcome.NO_CHECKOUT_LINK: "green",
        UnitOutcome.SKIPPED: "dim",
        UnitOutcome.FILTERED: "dim",
        UnitOutcome.FAILED: "red",
        UnitOutcome.ERROR: "red",
    }
    for unit in run.units:
        style = styles[unit.outcome]
        table.add_row(
            unit.unit.key,
            escape(unit.tab_title),
            escape(unit.product_name),
            escape(unit.card_price or "N/A"),
            unit.surface or "-",
            f"[{style}]{unit.outcome.value}[/]",
        )
    out.print(table)

    options = sum(len(u.options) for u in run.units)
    out.print("\n[bold]Summary:[/]")
    out.print(f"  • Tabs tested: {len(run.tabs)}")
    out.print(f"  • Cards tested: {len(run.units) - run.count(UnitOutcome.SKIPPED) - run.count(UnitOutcome.FILTERED)}")
    out.print(f"  • Cards skipped (already passed): {run.count(UnitOutcome.SKIPPED)}")
    out.print(f"  • Price options tested: {options}")
    out.print(f"  • Errors found: [{'red' if run.findings else 'green'}]{len(run.findings)}[/]")

    for index, finding in enumerate(run.findings, 1):
        out.print(f"\n{index}. {escape(str(finding))}")
