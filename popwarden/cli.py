#!/usr/bin/env python3
"""
popwarden CLI

Inspect and exercise the popup blocker's reasoning core from a terminal:
    popwarden analyze candidate.json
    popwarden patterns list
    popwarden decisions history --choice close
    popwarden stats
    popwarden logs --limit 20
    popwarden config validate
"""

import json
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from popwarden import __version__
from popwarden.cli_config import config_group
from popwarden.cli_decisions import decisions_group
from popwarden.cli_helpers import (
    confidence_style,
    console,
    format_ms,
    load_cli_config,
    print_error,
    run,
)
from popwarden.cli_patterns import patterns_group
from popwarden.errors import InvalidInputError

SNAPSHOT_KEYS = frozenset({"style", "tagName", "children", "viewportWidth", "className"})


@click.group()
@click.version_option(version=__version__, prog_name="popwarden")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Config file (default: ~/.popwarden/config.yaml)")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path]):
    """popwarden - Intrusive popup blocking that learns."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the analysis as JSON")
@click.pass_context
def analyze(ctx: click.Context, path: Path, as_json: bool):
    """Score a candidate popup.

    PATH is a JSON file holding either normalized characteristics or a raw
    element snapshot (computed style, size, text and children).
    """
    from popwarden.scoring import ConfidenceScorer, extract_characteristics

    config = load_cli_config(ctx)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON in {path}: {e}")
        ctx.exit(1)

    scorer = ConfidenceScorer(threshold=config.scoring.likely_popup_threshold)
    try:
        if isinstance(data, dict) and SNAPSHOT_KEYS & set(data):
            data = extract_characteristics(data)
        result = scorer.analyze(data)
    except InvalidInputError as e:
        print_error(str(e))
        ctx.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    table = Table(title="Rubric Signals")
    table.add_column("Signal", style="bold")
    table.add_column("Points", justify="right")
    for signal in result.signals:
        table.add_row(signal["name"], f"+{signal['points']}")
    console.print(table)

    style = confidence_style(result.confidence)
    verdict = "[red]likely popup[/red]" if result.is_likely_popup else "[green]not a popup[/green]"
    console.print(f"  Score:      {result.score}/100")
    console.print(f"  Confidence: [{style}]{result.confidence:.2f}[/{style}]")
    console.print(f"  Verdict:    {verdict}")


@main.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show detection and decision statistics."""
    from popwarden.service import build_storage
    from popwarden.statistics import PreferencesStore

    config = load_cli_config(ctx)
    preferences = PreferencesStore(build_storage(config))
    prefs = run(preferences.get_preferences())
    s = prefs.statistics

    table = Table(title="popwarden Statistics")
    table.add_column("Counter", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Detected", str(s.total_popups_detected))
    table.add_row("Closed", str(s.total_popups_closed))
    table.add_row("Kept", str(s.total_popups_kept))
    table.add_row("Dismissed", str(s.total_dismissed))
    table.add_row("Timed out", str(s.total_timeouts))
    table.add_row("Expired", str(s.total_expired))
    table.add_row("Auto-applied", str(s.total_auto_applied))
    console.print(table)
    console.print(f"  Since: {format_ms(s.last_reset_date)}")

    if s.domain_stats:
        domains = Table(title="Top Domains")
        domains.add_column("Domain", style="bold")
        domains.add_column("Detected", justify="right")
        domains.add_column("Closed", justify="right")
        domains.add_column("Kept", justify="right")
        domains.add_column("Last Activity", max_width=19)
        top = sorted(s.domain_stats.items(), key=lambda item: item[1].detected, reverse=True)[:10]
        for domain, counters in top:
            domains.add_row(
                domain,
                str(counters.detected),
                str(counters.closed),
                str(counters.kept),
                format_ms(counters.last_activity),
            )
        console.print(domains)


@main.command()
@click.option("--limit", default=20, type=int, help="Maximum events to show")
@click.option("--type", "event_type", default=None, help="Filter by event type (e.g. decision_resolved)")
@click.option("--popup", "popup_id", default=None, help="Filter by popup id")
@click.option("--summary", is_flag=True, help="Show counts per event type instead")
@click.option("--days", default=7, type=int, help="Period for --summary")
@click.pass_context
def logs(ctx: click.Context, limit: int, event_type: Optional[str], popup_id: Optional[str],
         summary: bool, days: int):
    """Show the audit event log."""
    from popwarden.logging.event_log import EventType
    from popwarden.service import build_event_log

    config = load_cli_config(ctx)
    event_log = build_event_log(config)
    if event_log is None:
        console.print("[white]Audit logging is disabled in configuration.[/white]")
        return

    if summary:
        data = event_log.get_stats(days=days)
        table = Table(title=f"Events (last {days} days)")
        table.add_column("Type", style="bold")
        table.add_column("Count", justify="right")
        for name, count in data["by_type"].items():
            table.add_row(name, str(count))
        console.print(table)
        console.print(f"  Total: {data['total_events']}")
        return

    type_filter = None
    if event_type:
        try:
            type_filter = EventType(event_type)
        except ValueError:
            valid = ", ".join(t.value for t in EventType)
            print_error(f"Unknown event type: {event_type}", fix_hint=f"One of: {valid}")
            ctx.exit(1)

    events = event_log.get_recent_events(limit=limit, event_type=type_filter, popup_id=popup_id)
    if not events:
        console.print("[white]No events recorded.[/white]")
        return

    table = Table(title="Audit Events")
    table.add_column("Time", max_width=23)
    table.add_column("Type", style="bold")
    table.add_column("Popup")
    table.add_column("Pattern")
    table.add_column("Domain", max_width=30)
    table.add_column("Decision")
    for e in events:
        table.add_row(
            e["timestamp"],
            e["event_type"],
            e["popup_id"] or "",
            e["pattern_id"] or "",
            e["domain"] or "",
            e["decision"] or "",
        )
    console.print(table)


main.add_command(patterns_group)
main.add_command(decisions_group)
main.add_command(config_group)


if __name__ == "__main__":
    main()
