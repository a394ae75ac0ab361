"""
CLI entry point for ShepGate.

This module provides the Typer-based command-line interface for ShepGate.
All administrative interactions flow through these commands.

Commands:
    server      Register, list, remove and sync downstream servers
    agent       Manage agent profiles and their tool permissions
    tool        Register tools and set their risk tier
    execute     Gate a tool call on behalf of an agent
    approvals   Inspect and resolve the approval queue
    log         Show the audit log
    stats       Show dashboard counters

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to the
    Gateway for actual work. This separation allows the core logic to be
    used programmatically without the CLI.
"""

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Any, Iterator, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shepgate import __version__
from shepgate.config import GateConfig, load_config, load_tool_specs
from shepgate.errors import ShepGateError
from shepgate.gateway import Gateway
from shepgate.report import (
    print_audit_log,
    print_outcome,
    print_pending_actions,
    print_permissions,
    print_stats,
)
from shepgate.schema import BatchResult, PendingStatus, RiskLevel, ServerType

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

# Initialize Typer app with metadata
app = typer.Typer(
    name="shepgate",
    help="Gate agent tool calls behind risk tiers, permissions and human approval.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

# Options shared by every command, set by the main callback
_state: dict[str, Any] = {"config": None, "db": None}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]shepgate[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to shepgate.yaml. Defaults to $SHEPGATE_CONFIG or ./shepgate.yaml.",
        ),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option(
            "--db",
            help="Path to the SQLite database. Overrides database.path from the config.",
        ),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option(
            "--log-level",
            help="Logging level (DEBUG, INFO, WARNING, ERROR).",
        ),
    ] = None,
) -> None:
    """
    ShepGate - Policy gateway between AI agents and their tools.

    Every call is allowed, queued for human approval, or refused, and every
    decision is recorded in an append-only audit log.
    """
    try:
        config = load_config(config_path)
    except ShepGateError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    level = (log_level or config.logging.level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format=LOG_FORMAT)

    _state["config"] = config
    _state["db"] = db


@contextmanager
def _gateway(json_output: bool = False) -> Iterator[Gateway]:
    """Open a Gateway for one command and report ShepGate errors."""
    config: GateConfig = _state["config"] or GateConfig()
    try:
        with Gateway(db_path=_state["db"], config=config) as gateway:
            yield gateway
    except ShepGateError as e:
        _exit_with_error(e, json_output)


def _exit_with_error(error: ShepGateError, json_output: bool) -> None:
    if json_output:
        output = {"error": True}
        output.update(error.to_dict())
        print(json.dumps(output, indent=2))
    else:
        console.print(f"[red]{escape(str(error))}[/red]")
    raise typer.Exit(code=1)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _print_batch(result: BatchResult, verb: str, json_output: bool) -> None:
    if json_output:
        _print_json(result.model_dump(mode="json"))
        return
    console.print(f"[green]{verb} {result.succeeded}[/green], [red]failed {result.failed}[/red]")
    for item in result.outcomes:
        if not item.ok:
            console.print(f"  [red]✗[/red] {item.id}: {escape(item.error or '')}")
        elif item.result is not None and not item.result["success"]:
            error = escape(item.result["error"] or "")
            console.print(f"  [red]✗[/red] {item.id}: execution failed: {error}")
        elif item.result is not None:
            console.print(f"  [green]✓[/green] {item.id}: executed")


def _execution_failed(result: BatchResult) -> bool:
    return any(item.result is not None and not item.result["success"] for item in result.outcomes)


JsonOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Output results in JSON format.",
    ),
]


# =============================================================================
# Server Subcommand Group
# =============================================================================

server_app = typer.Typer(
    name="server",
    help="Manage downstream tool servers.",
    no_args_is_help=True,
)
app.add_typer(server_app, name="server")


@server_app.command("add")
def server_add(
    name: Annotated[str, typer.Argument(help="Display name of the server.")],
    server_type: Annotated[
        ServerType,
        typer.Option("--type", "-t", help="Server type."),
    ] = ServerType.MCP,
    command: Annotated[
        Optional[str],
        typer.Option("--command", help="Launch command (mcp servers)."),
    ] = None,
    base_url: Annotated[
        Optional[str],
        typer.Option("--base-url", help="Base URL (http servers)."),
    ] = None,
    auth_secret: Annotated[
        Optional[str],
        typer.Option("--auth-secret", help="Name of the secret holding the bearer token."),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """
    Register a downstream server.

    Example:
        $ shepgate server add github --type http --base-url https://api.github.com
    """
    if server_type == ServerType.HTTP and not base_url:
        console.print("[red]HTTP servers need --base-url[/red]")
        raise typer.Exit(code=1)

    with _gateway(json_output) as gateway:
        server = gateway.catalog.add_server(
            name=name,
            type=server_type,
            command=command,
            base_url=base_url,
            auth_secret=auth_secret,
        )
        if json_output:
            _print_json(server.model_dump(mode="json"))
        else:
            console.print(f"[green]✓[/green] Added server [cyan]{server.name}[/cyan] ({server.id})")


@server_app.command("list")
def server_list(json_output: JsonOption = False) -> None:
    """List registered servers."""
    with _gateway(json_output) as gateway:
        servers = gateway.catalog.list_servers()
        if json_output:
            _print_json([s.model_dump(mode="json") for s in servers])
            return
        if not servers:
            console.print("[dim]No servers registered.[/dim]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Type", width=6)
        table.add_column("Endpoint")
        for s in servers:
            table.add_row(s.id, s.name, s.type.value, s.base_url or s.command or "")
        console.print(table)


@server_app.command("remove")
def server_remove(
    server_id: Annotated[str, typer.Argument(help="Server ID.")],
) -> None:
    """Remove a server and all of its tools."""
    with _gateway() as gateway:
        gateway.catalog.remove_server(server_id)
        console.print(f"[green]✓[/green] Removed server {server_id}")


@server_app.command("sync")
def server_sync(
    server_id: Annotated[str, typer.Argument(help="Server ID.")],
    manifest: Annotated[
        Path,
        typer.Option(
            "--manifest",
            "-m",
            help="YAML file listing the tools the server advertises.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    json_output: JsonOption = False,
) -> None:
    """
    Add newly discovered tools to a server.

    New tools start at needs_approval and are denied to every agent until
    granted.

    Example:
        $ shepgate server sync <server_id> --manifest github-tools.yaml
    """
    with _gateway(json_output) as gateway:
        specs = load_tool_specs(manifest)
        created = gateway.catalog.sync_tools(server_id, specs)
        if json_output:
            _print_json([t.model_dump(mode="json") for t in created])
            return
        console.print(f"[green]✓[/green] Synced {len(created)} new tool(s)")
        for tool in created:
            console.print(f"    • {tool.name}")


# =============================================================================
# Agent Subcommand Group
# =============================================================================

agent_app = typer.Typer(
    name="agent",
    help="Manage agent profiles and their permissions.",
    no_args_is_help=True,
)
app.add_typer(agent_app, name="agent")


@agent_app.command("create")
def agent_create(
    name: Annotated[str, typer.Argument(help="Display name of the agent.")],
    host_type: Annotated[
        str,
        typer.Option("--host", help="AI host the agent runs in (e.g. claude-desktop)."),
    ] = "generic",
    description: Annotated[
        Optional[str],
        typer.Option("--description", "-d", help="Free-form description."),
    ] = None,
    api_key: Annotated[
        Optional[str],
        typer.Option("--api-key", help="Key the agent presents to the gateway."),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """
    Create an agent. It starts with every existing tool denied.

    Example:
        $ shepgate agent create "Claude" --host claude-desktop
    """
    with _gateway(json_output) as gateway:
        agent = gateway.catalog.create_agent(
            name=name,
            host_type=host_type,
            description=description,
            api_key=api_key,
        )
        if json_output:
            _print_json(agent.model_dump(mode="json", exclude={"api_key"}))
        else:
            console.print(f"[green]✓[/green] Created agent [cyan]{agent.name}[/cyan] ({agent.id})")


@agent_app.command("list")
def agent_list(json_output: JsonOption = False) -> None:
    """List agent profiles."""
    with _gateway(json_output) as gateway:
        agents = gateway.catalog.list_agents()
        if json_output:
            _print_json([a.model_dump(mode="json", exclude={"api_key"}) for a in agents])
            return
        if not agents:
            console.print("[dim]No agents registered.[/dim]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Host")
        table.add_column("Created", style="dim")
        for a in agents:
            table.add_row(a.id, a.name, a.host_type, a.created_at.strftime("%Y-%m-%d %H:%M:%S"))
        console.print(table)


@agent_app.command("delete")
def agent_delete(
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Delete an agent with its permissions, pending actions and audit entries."""
    with _gateway() as gateway:
        gateway.catalog.delete_agent(agent_id)
        console.print(f"[green]✓[/green] Deleted agent {agent_id}")


@agent_app.command("permissions")
def agent_permissions(
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
    json_output: JsonOption = False,
) -> None:
    """Show which tools an agent may use."""
    with _gateway(json_output) as gateway:
        permissions = gateway.permissions.list_permissions(agent_id)
        if json_output:
            _print_json([p.model_dump(mode="json") for p in permissions])
            return
        tools = gateway.catalog.list_tools()
        print_permissions(
            console,
            permissions,
            tool_names={t.id: t.name for t in tools},
            tool_risks={t.id: t.risk_level for t in tools},
        )


@agent_app.command("grant")
def agent_grant(
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
    tool: Annotated[str, typer.Argument(help="Tool ID or name.")],
) -> None:
    """Allow an agent to use a tool."""
    with _gateway() as gateway:
        resolved = gateway.catalog.find_tool(tool)
        gateway.permissions.grant_permission(agent_id, resolved.id)
        console.print(f"[green]✓[/green] Granted [cyan]{resolved.name}[/cyan] to {agent_id}")


@agent_app.command("revoke")
def agent_revoke(
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
    tool: Annotated[str, typer.Argument(help="Tool ID or name.")],
) -> None:
    """Forbid an agent from using a tool."""
    with _gateway() as gateway:
        resolved = gateway.catalog.find_tool(tool)
        gateway.permissions.revoke_permission(agent_id, resolved.id)
        console.print(f"[green]✓[/green] Revoked [cyan]{resolved.name}[/cyan] from {agent_id}")


@agent_app.command("grant-all")
def agent_grant_all(
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Allow an agent to use every registered tool."""
    with _gateway() as gateway:
        count = gateway.permissions.grant_all(agent_id)
        console.print(f"[green]✓[/green] Granted {count} tool(s) to {agent_id}")


@agent_app.command("revoke-all")
def agent_revoke_all(
    agent_id: Annotated[str, typer.Argument(help="Agent ID.")],
) -> None:
    """Deny an agent every tool."""
    with _gateway() as gateway:
        count = gateway.permissions.revoke_all(agent_id)
        console.print(f"[green]✓[/green] Revoked {count} tool(s) from {agent_id}")


# =============================================================================
# Tool Subcommand Group
# =============================================================================

tool_app = typer.Typer(
    name="tool",
    help="Register tools and set their risk tier.",
    no_args_is_help=True,
)
app.add_typer(tool_app, name="tool")


@tool_app.command("add")
def tool_add(
    server_id: Annotated[str, typer.Argument(help="Owning server ID.")],
    name: Annotated[str, typer.Argument(help="Tool name (unique per server).")],
    description: Annotated[
        Optional[str],
        typer.Option("--description", "-d", help="What the tool does."),
    ] = None,
    risk: Annotated[
        RiskLevel,
        typer.Option("--risk", "-r", help="Risk tier."),
    ] = RiskLevel.NEEDS_APPROVAL,
    json_output: JsonOption = False,
) -> None:
    """
    Register a tool. It starts denied to every agent.

    Example:
        $ shepgate tool add <server_id> github_list_repos --risk safe
    """
    with _gateway(json_output) as gateway:
        tool = gateway.catalog.add_tool(server_id, name, description=description, risk_level=risk)
        if json_output:
            _print_json(tool.model_dump(mode="json"))
        else:
            console.print(
                f"[green]✓[/green] Added tool [cyan]{tool.name}[/cyan] ({tool.id}) as {tool.risk_level}"
            )


@tool_app.command("list")
def tool_list(
    server_id: Annotated[
        Optional[str],
        typer.Option("--server", "-s", help="Only tools of this server."),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """List registered tools."""
    with _gateway(json_output) as gateway:
        tools = gateway.catalog.list_tools(server_id)
        if json_output:
            _print_json([t.model_dump(mode="json") for t in tools])
            return
        if not tools:
            console.print("[dim]No tools registered.[/dim]")
            return

        servers = {s.id: s.name for s in gateway.catalog.list_servers()}
        table = Table(show_header=True, header_style="bold")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Server")
        table.add_column("Risk")
        for t in tools:
            table.add_row(t.id, t.name, servers.get(t.server_id, t.server_id), t.risk_level)
        console.print(table)


@tool_app.command("set-risk")
def tool_set_risk(
    tool: Annotated[str, typer.Argument(help="Tool ID or name.")],
    risk: Annotated[RiskLevel, typer.Argument(help="New risk tier.")],
) -> None:
    """Change the risk tier of a tool. Applies to the next call."""
    with _gateway() as gateway:
        resolved = gateway.catalog.find_tool(tool)
        gateway.permissions.set_risk_level(resolved.id, risk)
        console.print(f"[green]✓[/green] {resolved.name} is now {risk.value}")


# =============================================================================
# Execution
# =============================================================================


@app.command()
def execute(
    agent_id: Annotated[str, typer.Argument(help="Calling agent ID.")],
    tool: Annotated[str, typer.Argument(help="Tool ID or name.")],
    args: Annotated[
        str,
        typer.Option("--args", "-a", help="Call arguments as a JSON object."),
    ] = "{}",
    server_id: Annotated[
        Optional[str],
        typer.Option("--server", "-s", help="Server ID, when several servers share a tool name."),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """
    Gate a tool call on behalf of an agent.

    Exits 0 when the call ran or was queued for approval, 1 when it was
    denied or the executor failed.

    Example:
        $ shepgate execute <agent_id> github_list_repos --args '{"org": "acme"}'
    """
    try:
        arguments = json.loads(args)
    except json.JSONDecodeError as e:
        console.print(f"[red]--args is not valid JSON: {e}[/red]")
        raise typer.Exit(code=1)
    if not isinstance(arguments, dict):
        console.print("[red]--args must be a JSON object[/red]")
        raise typer.Exit(code=1)

    with _gateway(json_output) as gateway:
        outcome = gateway.execute(agent_id, tool, arguments, server_id=server_id)
        if json_output:
            _print_json(outcome.to_dict())
        else:
            print_outcome(console, outcome, tool_name=tool)

    if outcome.requires_approval or outcome.success:
        raise typer.Exit(code=0)
    raise typer.Exit(code=1)


# =============================================================================
# Approvals Subcommand Group
# =============================================================================

approvals_app = typer.Typer(
    name="approvals",
    help="Inspect and resolve the approval queue.",
    no_args_is_help=True,
)
app.add_typer(approvals_app, name="approvals")


@approvals_app.command("list")
def approvals_list(
    show_all: Annotated[
        bool,
        typer.Option("--all", help="Include approved and denied actions."),
    ] = False,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of actions to show."),
    ] = 50,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show call arguments."),
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """List pending actions, most recent first."""
    with _gateway(json_output) as gateway:
        status = None if show_all else PendingStatus.PENDING
        actions = gateway.list_pending(status=status, limit=limit)
        if json_output:
            _print_json([a.model_dump(mode="json") for a in actions])
            return
        print_pending_actions(
            console,
            actions,
            tool_names={t.id: t.name for t in gateway.catalog.list_tools()},
            agent_names={a.id: a.name for a in gateway.catalog.list_agents()},
            verbose=verbose,
        )


@approvals_app.command("approve")
def approvals_approve(
    pending_id: Annotated[str, typer.Argument(help="Pending action ID.")],
    no_execute: Annotated[
        bool,
        typer.Option("--no-execute", help="Approve without running the tool."),
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """Approve a pending action and run it."""
    with _gateway(json_output) as gateway:
        outcome = gateway.approve(pending_id, execute=not no_execute)
        if json_output:
            _print_json(outcome.to_dict())
        else:
            print_outcome(console, outcome)


@approvals_app.command("deny")
def approvals_deny(
    pending_id: Annotated[str, typer.Argument(help="Pending action ID.")],
    json_output: JsonOption = False,
) -> None:
    """Deny a pending action."""
    with _gateway(json_output) as gateway:
        action = gateway.deny(pending_id)
        if json_output:
            _print_json(action.model_dump(mode="json"))
        else:
            console.print(f"[yellow]⊘[/yellow] Denied {action.id}")


@approvals_app.command("approve-batch")
def approvals_approve_batch(
    pending_ids: Annotated[list[str], typer.Argument(help="Pending action IDs.")],
    no_execute: Annotated[
        bool,
        typer.Option("--no-execute", help="Approve without running the tools."),
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """
    Approve several pending actions. Failures do not stop the others.

    Exits 1 when an id could not be approved or an approved tool failed.
    """
    with _gateway(json_output) as gateway:
        result = gateway.batch_approve(pending_ids, execute=not no_execute)
    _print_batch(result, "Approved", json_output)
    if result.failed or _execution_failed(result):
        raise typer.Exit(code=1)


@approvals_app.command("deny-batch")
def approvals_deny_batch(
    pending_ids: Annotated[list[str], typer.Argument(help="Pending action IDs.")],
    json_output: JsonOption = False,
) -> None:
    """Deny several pending actions. Failures do not stop the others."""
    with _gateway(json_output) as gateway:
        result = gateway.batch_deny(pending_ids)
    _print_batch(result, "Denied", json_output)
    if result.failed:
        raise typer.Exit(code=1)


# =============================================================================
# Audit & Stats
# =============================================================================


@app.command("log")
def audit_log(
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of entries to show."),
    ] = 50,
    agent_id: Annotated[
        Optional[str],
        typer.Option("--agent", help="Only entries for this agent."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show call arguments."),
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """Show the audit log, most recent first."""
    with _gateway(json_output) as gateway:
        entries = gateway.list_audit_log(limit=limit, agent_id=agent_id)
        if json_output:
            _print_json([e.model_dump(mode="json") for e in entries])
            return
        print_audit_log(
            console,
            entries,
            tool_names={t.id: t.name for t in gateway.catalog.list_tools()},
            agent_names={a.id: a.name for a in gateway.catalog.list_agents()},
            verbose=verbose,
        )


@app.command()
def stats(json_output: JsonOption = False) -> None:
    """Show servers, agents, tools, pending approvals and today's actions."""
    with _gateway(json_output) as gateway:
        counters = gateway.stats()
        if json_output:
            _print_json(counters.model_dump(mode="json"))
        else:
            print_stats(console, counters)


if __name__ == "__main__":
    app()
