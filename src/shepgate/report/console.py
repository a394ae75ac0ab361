"""
Console report generator for ShepGate.

Renders the approval queue, the audit log and the dashboard counters as
Rich tables for the CLI.

Design Principles:
    - Status at a glance: icons and colors per decision
    - Names over ids: tool and agent names are shown when known
    - Progressive detail: arguments only with verbose=True
"""

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from shepgate.gateway import ExecutionOutcome
from shepgate.schema import (
    ActionLog,
    ActionStatus,
    DashboardStats,
    PendingAction,
    PendingStatus,
    PolicyReason,
    ToolPermission,
)

# Status icons
ICON_SUCCESS = "[green]✓[/green]"
ICON_ERROR = "[red]✗[/red]"
ICON_DENIED = "[yellow]⊘[/yellow]"
ICON_PENDING = "[dim]○[/dim]"


def print_pending_actions(
    console: Console,
    actions: list[PendingAction],
    tool_names: dict[str, str] | None = None,
    agent_names: dict[str, str] | None = None,
    verbose: bool = False,
) -> None:
    """Print the approval queue."""
    if not actions:
        console.print("[dim]No pending actions.[/dim]")
        return

    tool_names = tool_names or {}
    agent_names = agent_names or {}

    table = Table(show_header=True, header_style="bold", show_lines=verbose)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Agent")
    table.add_column("Tool", style="cyan")
    table.add_column("Created", style="dim")
    if verbose:
        table.add_column("Arguments", overflow="fold")

    for action in actions:
        row = [
            action.id,
            _pending_icon(action.status),
            agent_names.get(action.agent_id, action.agent_id),
            tool_names.get(action.tool_id, action.tool_id),
            action.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        ]
        if verbose:
            row.append(_truncate(action.arguments_json, 100))
        table.add_row(*row)

    console.print(table)


def print_audit_log(
    console: Console,
    entries: list[ActionLog],
    tool_names: dict[str, str] | None = None,
    agent_names: dict[str, str] | None = None,
    verbose: bool = False,
) -> None:
    """Print audit entries, most recent first."""
    if not entries:
        console.print("[dim]No audit entries.[/dim]")
        return

    tool_names = tool_names or {}
    agent_names = agent_names or {}

    table = Table(show_header=True, header_style="bold", show_lines=verbose)
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Agent")
    table.add_column("Tool", style="cyan")
    table.add_column("Reason")
    if verbose:
        table.add_column("Arguments", overflow="fold")

    for entry in entries:
        icon = ICON_SUCCESS if entry.status == ActionStatus.EXECUTED else ICON_DENIED
        reason = entry.reason.value
        if entry.detail:
            reason = f"{reason} [dim]({entry.detail})[/dim]"
        row = [
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            icon,
            agent_names.get(entry.agent_id, entry.agent_id),
            tool_names.get(entry.tool_id, entry.tool_id),
            reason,
        ]
        if verbose:
            row.append(_truncate(entry.arguments_json, 100))
        table.add_row(*row)

    console.print(table)


def print_permissions(
    console: Console,
    permissions: list[ToolPermission],
    tool_names: dict[str, str] | None = None,
    tool_risks: dict[str, str] | None = None,
) -> None:
    """Print the permission matrix row of one agent."""
    if not permissions:
        console.print("[dim]No tools registered.[/dim]")
        return

    tool_names = tool_names or {}
    tool_risks = tool_risks or {}

    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Risk")
    table.add_column("Allowed", justify="center")

    for permission in permissions:
        table.add_row(
            tool_names.get(permission.tool_id, permission.tool_id),
            _risk_text(tool_risks.get(permission.tool_id, "")),
            ICON_SUCCESS if permission.allowed else ICON_ERROR,
        )

    console.print(table)


def print_stats(console: Console, stats: DashboardStats) -> None:
    """Print dashboard counters."""
    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column("Metric", style="dim")
    stats_table.add_column("Value")

    stats_table.add_row("Servers", str(stats.servers))
    stats_table.add_row("Agents", str(stats.agents))
    stats_table.add_row("Tools", str(stats.tools))
    stats_table.add_row(
        "Pending",
        f"[yellow]{stats.pending}[/yellow]" if stats.pending > 0 else "0",
    )
    stats_table.add_row("Actions Today", str(stats.actions_today))

    console.print(Panel(stats_table, title="ShepGate", expand=False))


def print_outcome(console: Console, outcome: ExecutionOutcome, tool_name: str = "") -> None:
    """Print the result of a gated call."""
    label = tool_name or outcome.tool_id

    header = Text()
    header.append(" ", style="bold")
    header.append(label, style="bold cyan")
    header.append(" │ ", style="dim")

    if outcome.reason == PolicyReason.NEEDS_APPROVAL:
        header.append("PENDING APPROVAL", style="bold yellow")
        console.print(Panel(header, expand=False))
        console.print(f"  [dim]Pending action:[/dim] {outcome.pending_action_id}")
        return

    if not outcome.allowed:
        header.append("DENIED", style="bold yellow")
        console.print(Panel(header, expand=False))
        console.print(f"  [dim]Reason:[/dim] {outcome.reason.value}")
        if outcome.rule_matched:
            console.print(f"  [dim]Rule:[/dim] {outcome.rule_matched}")
        return

    if outcome.result is None:
        header.append("APPROVED", style="bold green")
        console.print(Panel(header, expand=False))
        return

    if outcome.result.success:
        header.append("EXECUTED", style="bold green")
        console.print(Panel(header, expand=False))
        console.print(f"  [dim]Result:[/dim] {_truncate(str(outcome.result.result), 200)}")
    else:
        header.append("EXECUTION FAILED", style="bold red")
        console.print(Panel(header, expand=False))
        console.print(f"  [red]{outcome.result.error}[/red]")


def _pending_icon(status: PendingStatus) -> str:
    if status == PendingStatus.APPROVED:
        return ICON_SUCCESS
    if status == PendingStatus.DENIED:
        return ICON_DENIED
    return ICON_PENDING


def _risk_text(risk: str) -> str:
    styles: dict[str, Any] = {
        "safe": "green",
        "needs_approval": "yellow",
        "blocked": "red",
    }
    style = styles.get(risk)
    return f"[{style}]{risk}[/{style}]" if style else risk


def _truncate(s: str, max_len: int) -> str:
    """Truncate string with ellipsis."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."
