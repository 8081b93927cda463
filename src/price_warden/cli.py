"""CLI entry point for Price Warden."""

import asyncio
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .checkout import TargetLoadError
from .config import Config, load_config
from .models import CheckoutUnit, Target
from .progress import ProgressStore
from .tracing import init_tracing

console = Console()


@click.group()
@click.version_option()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config file path")
@click.option("--url", "-u", "target_url", help="Plans page to check (overrides config)")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, target_url: str | None) -> None:
    """Price Warden - price consistency monitoring for plans pages."""
    ctx.ensure_object(dict)

    config = load_config(Path(config_path) if config_path else None)
    if target_url:
        config.target_url = target_url
    ctx.obj["config"] = config


@main.command()
@click.option("--tabs", help="Comma-separated tab titles or indices to check")
@click.option("--cards", help="Comma-separated card names or indices to check")
@click.option("--retries", type=int, help="Extra attempts for units that did not pass")
@click.option("--screenshots", type=click.Path(file_okay=False), help="Directory for screenshots")
@click.option("--headed", is_flag=True, help="Show the browser window")
@click.pass_context
def run(
    ctx: click.Context,
    tabs: str | None,
    cards: str | None,
    retries: int | None,
    screenshots: str | None,
    headed: bool,
) -> None:
    """Check card, checkout and cart prices on every tab."""
    from .runner import run_monitor

    config: Config = ctx.obj["config"]
    if tabs:
        config.tabs = [t.strip() for t in tabs.split(",") if t.strip()]
    if cards:
        config.cards = [c.strip() for c in cards.split(",") if c.strip()]
    if retries is not None:
        config.retries = retries
    if screenshots:
        config.screenshot_dir = Path(screenshots)
    if headed:
        config.headless = False

    tracing = init_tracing(config)
    if config.langfuse.enabled:
        console.print("[dim]Langfuse tracing enabled[/]")

    try:
        report = asyncio.run(run_monitor(config, tracing))
    except TargetLoadError as e:
        console.print(f"[bold red]✗ {escape(str(e))}[/]")
        sys.exit(2)

    sys.exit(0 if report.passed else 1)


@main.command()
@click.pass_context
def pageload(ctx: click.Context) -> None:
    """Check console errors and link status of the target page."""
    from .adapters.playwright import open_document
    from .health import check_page

    config: Config = ctx.obj["config"]
    target = Target.from_url(config.target_url, config.country)

    async def _check():
        async with open_document(config, target) as document:
            return await check_page(document, target.base_url, config)

    console.print(f"\n[bold blue]🔍 Checking page load:[/] {target.base_url}\n")
    health = asyncio.run(_check())

    console.print(f"Status: {health.status}")
    console.print(f"Console errors: {len(health.console_errors)} ({len(health.critical_errors)} critical)")
    for error in health.critical_errors:
        console.print(f"  [red]• {escape(error)}[/]")
    console.print(f"Links: {len(health.links)} checked, {health.valid_links} OK")
    for link in health.unreachable:
        console.print(f"  [yellow]• {escape(str(link))}[/]")
    for link in health.broken:
        console.print(f"  [red]• {escape(str(link))}[/]")
    if health.known_issues_filtered:
        console.print(f"[dim]{health.known_issues_filtered} known 404s ignored[/]")

    if health.passed:
        console.print("\n[bold green]✓ Page is healthy[/]\n")
    else:
        console.print("\n[bold red]✗ Page health check failed[/]\n")
    sys.exit(0 if health.passed else 1)


@main.group()
def progress() -> None:
    """Inspect or reset saved progress for the target."""


@progress.command("show")
@click.pass_context
def progress_show(ctx: click.Context) -> None:
    """List units already passed for the target."""
    config: Config = ctx.obj["config"]
    store = ProgressStore(config.state_dir)
    record = store.load(config.target_url)

    if not record.passed_units:
        console.print(f"[dim]No saved progress for {config.target_url}[/]")
        return

    table = Table(title=f"Passed units ({store.path})")
    table.add_column("Unit", style="cyan")
    table.add_column("Tab")
    table.add_column("Card")
    for key in record.passed_units:
        unit = CheckoutUnit.parse(key)
        table.add_row(key, str(unit.tab), str(unit.card))
    console.print(table)
    console.print(f"[dim]Started {record.timestamp.isoformat()}[/]")


@progress.command("clear")
@click.pass_context
def progress_clear(ctx: click.Context) -> None:
    """Forget saved progress so the next run checks every unit."""
    config: Config = ctx.obj["config"]
    store = ProgressStore(config.state_dir)
    store.load(config.target_url)
    store.clear()
    console.print(f"[green]✓ Progress cleared for {config.target_url}[/]")


if __name__ == "__main__":
    main()
