"""
urlpurifier CLI - Command Line Interface

Entry point for cleaning URLs, rewriting them to alternative instances,
and managing the local rule database.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from urlpurifier.core.config import PurifierSettings, load_ruleset_file, load_settings
from urlpurifier.core.constants import InstancePickMode
from urlpurifier.core.exceptions import ConfigError, URLPurifierError
from urlpurifier.engine.pipeline import CleaningPipeline
from urlpurifier.sync.synchronizer import RulesetSynchronizer

# Version
__version__ = "0.1.0"

# Create CLI app
app = typer.Typer(
    name="urlpurifier",
    help="urlpurifier - Remove tracking from URLs",
    add_completion=False,
    no_args_is_help=True,
)

# Create sub-apps for command groups
rules_app = typer.Typer(help="Manage the rule database")

# Register sub-apps
app.add_typer(rules_app, name="rules")

# Rich consoles for output
console = Console()
err_console = Console(stderr=True)

BLOCKED_MARKER = "blocked"


# ============================================================================
# Helpers
# ============================================================================

def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_settings(config: Optional[Path]) -> PurifierSettings:
    try:
        return load_settings(config)
    except ConfigError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


def _build_pipeline(settings: PurifierSettings, rules: Optional[Path]) -> CleaningPipeline:
    if rules is not None:
        ruleset = load_ruleset_file(rules)
    else:
        ruleset = RulesetSynchronizer(settings).load_cached()
        if ruleset is None:
            raise ConfigError(
                "No rules available. Run 'urlpurifier rules sync' or pass --rules"
            )

    return CleaningPipeline(
        ruleset,
        settings.services,
        pick_mode=settings.instance_pick_mode,
        max_passes=settings.max_passes,
    )


def _read_urls(urls: Optional[List[str]]) -> list[str]:
    if urls:
        return list(urls)
    if sys.stdin.isatty():
        return []
    return [line.strip() for line in sys.stdin if line.strip()]


# ============================================================================
# Main Commands
# ============================================================================

@app.command()
def clean(
    urls: Optional[List[str]] = typer.Argument(
        None,
        help="URLs to clean (read from stdin when omitted)",
    ),
    rules: Optional[Path] = typer.Option(
        None,
        "--rules",
        "-r",
        help="Rule database JSON file (defaults to the synced cache)",
        exists=True,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Settings YAML file",
        exists=True,
    ),
    redirect: Optional[bool] = typer.Option(
        None,
        "--redirect/--no-redirect",
        help="Rewrite to alternative instances after cleaning",
    ),
    exclude_referral_marketing: Optional[bool] = typer.Option(
        None,
        "--exclude-referral-marketing/--allow-referral-marketing",
        help="Also strip referral marketing fields",
    ),
    domain_blocking: Optional[bool] = typer.Option(
        None,
        "--domain-blocking/--no-domain-blocking",
        help="Block URLs of tracking-only domains",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show which providers fired",
    ),
) -> None:
    """
    Remove tracking fields and unwrap redirect links.

    Prints one cleaned URL per input URL. URLs that should be blocked
    entirely print as "blocked".
    """
    _configure_logging(verbose)
    settings = _load_settings(config)

    overrides = {}
    if redirect is not None:
        overrides["apply_redirect_providers"] = redirect
    if exclude_referral_marketing is not None:
        overrides["referral_marketing_excluded"] = exclude_referral_marketing
    if domain_blocking is not None:
        overrides["domain_blocking"] = domain_blocking
    options = settings.clean_options(**overrides)

    inputs = _read_urls(urls)
    if not inputs:
        err_console.print("[red]Error:[/red] No URLs given")
        raise typer.Exit(code=1)

    try:
        pipeline = _build_pipeline(settings, rules)
    except URLPurifierError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    failed = 0
    for url in inputs:
        try:
            result = pipeline.clean(url, options)
        except URLPurifierError as e:
            err_console.print(f"[red]Error:[/red] {e}")
            failed += 1
            continue

        typer.echo(BLOCKED_MARKER if result.cancelled else result.url)

        if verbose and result.matched_providers:
            err_console.print(
                f"[dim]{len(result.matched_providers)} rule hits in "
                f"{result.passes} passes: {', '.join(result.matched_providers)}[/dim]"
            )

    if failed:
        err_console.print(f"[yellow]{failed} of {len(inputs)} URLs could not be cleaned[/yellow]")
        raise typer.Exit(code=1)


@app.command()
def redirect(
    url: str = typer.Argument(..., help="URL to rewrite"),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Settings YAML file",
        exists=True,
    ),
    pick_mode: Optional[InstancePickMode] = typer.Option(
        None,
        "--pick-mode",
        "-m",
        help="Instance pick mode",
        case_sensitive=False,
    ),
) -> None:
    """Rewrite a URL to an alternative front-end instance."""
    settings = _load_settings(config)

    try:
        pipeline = CleaningPipeline(
            services=settings.services,
            pick_mode=pick_mode or settings.instance_pick_mode,
        )
        result = pipeline.redirect_single(url)
    except URLPurifierError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    typer.echo(result.url)
    if not result.changed:
        err_console.print("[yellow]No alternative instance configured for this URL[/yellow]")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"[bold cyan]urlpurifier[/bold cyan] version [yellow]{__version__}[/yellow]")


# ============================================================================
# Rules Commands
# ============================================================================

@rules_app.command("sync")
def rules_sync(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Settings YAML file",
        exists=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Download the rule database if it changed."""
    _configure_logging(verbose)
    settings = _load_settings(config)
    synchronizer = RulesetSynchronizer(settings)

    try:
        with console.status("[cyan]Checking for rule updates...[/cyan]"):
            result = asyncio.run(synchronizer.sync())
    except URLPurifierError as e:
        err_console.print(f"[red]Error syncing rules:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] {result.status.name.replace('_', ' ').lower()}")
    console.print(f"[blue]Providers:[/blue] {len(result.ruleset)}")
    console.print(f"[blue]Cache:[/blue] {synchronizer.rules_path}")


@rules_app.command("info")
def rules_info(
    rules: Optional[Path] = typer.Option(
        None,
        "--rules",
        "-r",
        help="Rule database JSON file (defaults to the synced cache)",
        exists=True,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Settings YAML file",
        exists=True,
    ),
) -> None:
    """List providers in the rule database."""
    settings = _load_settings(config)

    try:
        pipeline = _build_pipeline(settings, rules)
    except URLPurifierError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Rules", style="green", justify="right")
    table.add_column("Raw", justify="right")
    table.add_column("Referral", justify="right")
    table.add_column("Redirections", justify="right")
    table.add_column("Exceptions", justify="right")
    table.add_column("Blocks", style="red")

    for provider in pipeline.providers:
        definition = provider.definition
        table.add_row(
            provider.name,
            str(len(definition.rules)),
            str(len(definition.raw_rules)),
            str(len(definition.referral_marketing)),
            str(len(definition.redirections)),
            str(len(definition.exceptions)),
            "Yes" if definition.complete_provider else "",
        )

    console.print(table)

    redirecting = [rp for rp in pipeline.redirect_providers if rp.instances]
    console.print(
        f"[blue]Redirect providers with instances:[/blue] {len(redirecting)}"
        f"/{len(pipeline.redirect_providers)}"
    )


def main() -> None:
    """Main entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
