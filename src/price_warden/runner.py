"""Run harness: wire the components together and re-invoke the verifier on failure."""

from rich.console import Console

from .adapters.base import NavigableDocument
from .checkout import ConsistencyVerifier
from .config import Config
from .models import RunReport, Target
from .progress import ProgressStore
from .reporter import ErrorReporter, render
from .tracing import TracingClient

console = Console()


async def verify_target(
    document: NavigableDocument,
    config: Config,
    tracing: TracingClient | None = None,
) -> RunReport:
    """
    Verify a target, retrying up to ``config.retries`` times.

    Each attempt reloads progress from disk, so units that passed in an earlier
    attempt are skipped. The error report is written only for the last attempt.
    """
    target = Target.from_url(config.target_url, config.country)
    store = ProgressStore(config.state_dir)
    reporter = ErrorReporter(config.report_dir, store)

    attempts = max(0, config.retries) + 1
    report = None
    for attempt in range(1, attempts + 1):
        console.print(f"\n[bold blue]🎯 Checking prices on:[/] {target.base_url} [dim](attempt {attempt}/{attempts})[/]")
        verifier = ConsistencyVerifier(document, target, store, config, tracing)
        report = await verifier.run()
        if report.passed:
            break
        console.print(f"[yellow]{len(report.findings)} findings in attempt {attempt}[/]")

    render(report)
    reporter.finalize(report)
    if tracing:
        tracing.flush()
    return report


async def run_monitor(config: Config, tracing: TracingClient | None = None) -> RunReport:
    """Open a browser on the configured target and verify it."""
    from .adapters.playwright import open_document

    target = Target.from_url(config.target_url, config.country)
    async with open_document(config, target) as document:
        return await verify_target(document, config, tracing)
