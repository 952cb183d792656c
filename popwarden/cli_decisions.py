"""CLI commands for pending and completed decisions.

Groups:
    decisions_group  -- pending, history, cleanup
"""

from typing import Optional

import click
from rich.table import Table

from popwarden.cli_helpers import console, format_ms, load_cli_config, print_success, run
from popwarden.decisions.models import USER_CHOICES, UserChoice

# =========================================================================
# Decision commands
# =========================================================================


@click.group("decisions")
def decisions_group():
    """Pending and completed popup decisions."""
    pass


@decisions_group.command("pending")
@click.option("--tab", "tab_id", type=int, default=None, help="Only decisions for this tab")
@click.pass_context
def decisions_pending(ctx: click.Context, tab_id: Optional[int]):
    """Show decisions still waiting for the user (as persisted)."""
    from popwarden.decisions.models import PendingDecision
    from popwarden.service import build_storage
    from popwarden.storage.base import PENDING_DECISIONS_KEY

    config = load_cli_config(ctx)
    storage = build_storage(config)
    stored = run(storage.get([PENDING_DECISIONS_KEY])).get(PENDING_DECISIONS_KEY) or {}

    decisions = []
    for record in stored.values():
        try:
            decisions.append(PendingDecision.from_dict(record))
        except (KeyError, TypeError, ValueError):
            continue
    if tab_id is not None:
        decisions = [d for d in decisions if d.tab_id == tab_id]

    if not decisions:
        console.print("[white]No pending decisions.[/white]")
        return

    table = Table(title="Pending Decisions")
    table.add_column("Popup", style="bold")
    table.add_column("Tab", justify="right")
    table.add_column("Domain", max_width=30)
    table.add_column("Reminders", justify="right")
    table.add_column("Started", max_width=19)
    table.add_column("Deadline", max_width=19)

    for d in sorted(decisions, key=lambda d: d.timestamp):
        table.add_row(
            d.popup_id,
            str(d.tab_id),
            d.domain or "[white]-[/white]",
            str(d.reminder_count),
            format_ms(d.timestamp),
            format_ms(d.deadline),
        )
    console.print(table)


@decisions_group.command("history")
@click.option("--domain", default=None, help="Filter by domain")
@click.option("--choice", "user_choice", default=None,
              type=click.Choice([c.value for c in UserChoice]),
              help="Filter by final choice")
@click.option("--limit", default=20, type=int, help="Maximum rows to show")
@click.pass_context
def decisions_history(ctx: click.Context, domain: Optional[str], user_choice: Optional[str], limit: int):
    """Show completed decisions, newest first."""
    from popwarden.decisions.coordinator import DecisionCoordinator
    from popwarden.service import build_storage

    config = load_cli_config(ctx)
    coordinator = DecisionCoordinator(build_storage(config), config=config.decisions)

    async def _history():
        history = await coordinator.history(domain=domain, user_choice=user_choice)
        stats = await coordinator.decision_statistics()
        return history, stats

    history, stats = run(_history())
    if not history:
        console.print("[white]No completed decisions.[/white]")
        return

    table = Table(title="Decision History")
    table.add_column("Popup", style="bold")
    table.add_column("Choice")
    table.add_column("Auto", justify="center")
    table.add_column("Response", justify="right")
    table.add_column("Domain", max_width=30)
    table.add_column("Completed", max_width=19)

    for d in history[:limit]:
        choice_style = "green" if d.user_choice in USER_CHOICES else "yellow"
        table.add_row(
            d.popup_id,
            f"[{choice_style}]{d.user_choice}[/{choice_style}]",
            "✓" if d.auto_applied else "",
            f"{d.response_time / 1000:.1f}s",
            d.domain or "[white]-[/white]",
            format_ms(d.completed_timestamp),
        )
    console.print(table)
    console.print(
        f"  {stats['totalDecisions']} total, "
        f"average response {stats['averageResponseTime'] / 1000:.1f}s"
    )


@decisions_group.command("cleanup")
@click.pass_context
def decisions_cleanup(ctx: click.Context):
    """Drop stale pending decisions and expire old ones."""
    from popwarden.service import PopupBlockerService
    from popwarden.storage.base import PENDING_DECISIONS_KEY

    config = load_cli_config(ctx)

    async def _cleanup():
        service = PopupBlockerService.from_config(config)
        before = (await service.storage.get([PENDING_DECISIONS_KEY])).get(PENDING_DECISIONS_KEY) or {}
        await service.start(sweep=False)
        expired = await service.coordinator.expire()
        remaining = len(service.coordinator.pending())
        await service.stop()
        return len(before), expired, remaining

    before, expired, remaining = run(_cleanup())
    print_success(
        f"Removed {before - remaining} of {before} pending decisions "
        f"({expired} expired, {remaining} still pending)"
    )
