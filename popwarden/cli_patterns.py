"""CLI commands for learning pattern management.

Groups:
    patterns_group  -- list, stats, suggest, clear
"""

import json
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from popwarden.cli_helpers import (
    confidence_style,
    console,
    format_ms,
    load_cli_config,
    print_error,
    print_success,
    run,
)
from popwarden.errors import InvalidInputError, StorageError

# =========================================================================
# Pattern commands
# =========================================================================


async def _load_store(config):
    from popwarden.learning.store import PatternStore
    from popwarden.service import build_storage

    store = PatternStore(build_storage(config), config=config.learning)
    await store.load()
    return store


@click.group("patterns")
def patterns_group():
    """Learned close/keep patterns.

    Inspect, query and reset the patterns popwarden has generalized from
    your decisions.
    """
    pass


@patterns_group.command("list")
@click.option("--domain", default=None, help="Only patterns first seen on this domain")
@click.option("--sort", "sort_by", default="confidence",
              type=click.Choice(["confidence", "occurrences", "recent"]),
              help="Sort order")
@click.pass_context
def patterns_list(ctx: click.Context, domain: Optional[str], sort_by: str):
    """Show stored learning patterns."""
    config = load_cli_config(ctx)
    store = run(_load_store(config))
    patterns = store.patterns(domain)

    if not patterns:
        console.print("[white]No learning patterns recorded yet.[/white]")
        return

    sort_keys = {
        "confidence": lambda p: p.confidence,
        "occurrences": lambda p: p.occurrences,
        "recent": lambda p: p.last_seen,
    }
    patterns.sort(key=sort_keys[sort_by], reverse=True)

    table = Table(title="Learning Patterns")
    table.add_column("Pattern", style="bold")
    table.add_column("Decision")
    table.add_column("Confidence", justify="right")
    table.add_column("Seen", justify="right")
    table.add_column("Domain", max_width=30)
    table.add_column("Last Seen", max_width=19)

    for p in patterns:
        style = confidence_style(p.confidence)
        table.add_row(
            p.pattern_id,
            p.user_decision,
            f"[{style}]{p.confidence:.2f}[/{style}]",
            str(p.occurrences),
            p.domain or "[white]-[/white]",
            format_ms(p.last_seen),
        )

    console.print(table)


@patterns_group.command("stats")
@click.pass_context
def patterns_stats(ctx: click.Context):
    """Show learning statistics."""
    config = load_cli_config(ctx)
    store = run(_load_store(config))
    stats = store.statistics()

    table = Table(title="Learning Statistics")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for key in ("totalPatterns", "highConfidencePatterns", "closePatterns",
                "keepPatterns", "averageConfidence", "totalOccurrences"):
        table.add_row(key, str(stats[key]))
    console.print(table)


@patterns_group.command("suggest")
@click.argument("characteristics_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--domain", default=None, help="Domain the popup appeared on")
@click.pass_context
def patterns_suggest(ctx: click.Context, characteristics_file: Path, domain: Optional[str]):
    """Show the suggestion for characteristics in a JSON file."""
    config = load_cli_config(ctx)
    try:
        data = json.loads(characteristics_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON in {characteristics_file}: {e}")
        ctx.exit(1)

    store = run(_load_store(config))
    try:
        suggestion = store.suggest(data, domain)
    except InvalidInputError as e:
        print_error(str(e))
        ctx.exit(1)

    if suggestion is None:
        console.print("[white]No similar pattern found.[/white]")
        return

    style = confidence_style(suggestion.confidence)
    console.print(f"  Suggestion:  [bold]{suggestion.suggestion}[/bold]")
    console.print(f"  Confidence:  [{style}]{suggestion.confidence:.2f}[/{style}]")
    console.print(f"  Similarity:  {suggestion.similarity:.2f}")
    console.print(f"  Pattern:     {suggestion.pattern_id} ({suggestion.occurrences} seen)")
    if suggestion.auto_apply:
        console.print("  [green]Would be applied automatically[/green]")
    elif suggestion.actionable:
        console.print("  [yellow]Offered to the user as a suggestion[/yellow]")
    else:
        console.print("  [white]Below the suggestion confidence floor[/white]")


@patterns_group.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def patterns_clear(ctx: click.Context, yes: bool):
    """Delete all learning patterns."""
    config = load_cli_config(ctx)
    if not yes:
        click.confirm("Delete all learning patterns?", abort=True)

    async def _clear():
        store = await _load_store(config)
        count = len(store)
        await store.clear()
        return count

    try:
        count = run(_clear())
    except StorageError as e:
        print_error(f"Could not clear patterns: {e}")
        ctx.exit(1)
    print_success(f"Cleared {count} learning patterns")
