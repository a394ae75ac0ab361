"""
Gateway for ShepGate.

The Gateway is the orchestration layer agents talk to. It coordinates:
- Catalog: Resolves tool references and owning servers
- Policy Engine: Decides whether a call runs, waits, or is refused
- Approval Resolver: Settles queued calls
- Executors: Invoke authorized calls on the downstream server

Execution Flow:
    1. Resolve the tool (by id or name)
    2. Evaluate policy; the decision is recorded by the engine
    3. Allowed: invoke the executor and surface its result
       Needs approval: surface the pending action id
       Denied: surface the reason
    4. When a pending action is later approved, the Gateway invokes the
       executor with the stored arguments

Executor failures are reported in the outcome. They are never retried and
never rewrite the audit entry the policy layer already committed.
"""

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterable

from shepgate.catalog import Catalog
from shepgate.config import GateConfig
from shepgate.errors import ShepGateError
from shepgate.execution import (
    EnvSecretProvider,
    ExecutionResult,
    ExecutorRegistry,
    HttpExecutor,
    MockExecutor,
    SecretProvider,
)
from shepgate.permissions import PermissionService
from shepgate.policy import ApprovalResolver, PolicyEngine
from shepgate.schema import (
    ActionLog,
    BatchResult,
    DashboardStats,
    PendingAction,
    PendingStatus,
    PolicyReason,
    ResolveOutcome,
    ServerType,
    Tool,
)
from shepgate.store import GateDB

logger = logging.getLogger(__name__)


@dataclass
class ExecutionOutcome:
    """
    Result of a gated tool call.

    Attributes:
        agent_id: Calling agent
        tool_id: Tool that was requested
        allowed: Whether the call was authorized to run
        reason: Policy reason (allowed, needs_approval, blocked_*, approved)
        pending_action_id: Set when the call is waiting for approval
        action_log_id: Audit entry written for the decision, if any
        rule_matched: Policy rule that produced the decision
        result: Executor output when the call ran
    """

    agent_id: str
    tool_id: str
    allowed: bool
    reason: PolicyReason
    pending_action_id: str | None = None
    action_log_id: str | None = None
    rule_matched: str | None = None
    result: ExecutionResult | None = None

    @property
    def executed(self) -> bool:
        """Whether the executor was invoked."""
        return self.result is not None

    @property
    def success(self) -> bool:
        """Whether the call ran and the executor reported success."""
        return self.result is not None and self.result.success

    @property
    def requires_approval(self) -> bool:
        return self.reason == PolicyReason.NEEDS_APPROVAL

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "agent_id": self.agent_id,
            "tool_id": self.tool_id,
            "allowed": self.allowed,
            "reason": self.reason.value,
            "pending_action_id": self.pending_action_id,
            "action_log_id": self.action_log_id,
            "rule_matched": self.rule_matched,
            "result": self.result.to_dict() if self.result else None,
        }


def default_executors(
    config: GateConfig,
    secrets: SecretProvider | None = None,
) -> ExecutorRegistry:
    """Registry with the HTTP executor and the mock executor for mcp servers."""
    registry = ExecutorRegistry()
    registry.register(
        ServerType.HTTP,
        HttpExecutor(
            secrets=secrets,
            timeout_seconds=config.execution.http_timeout_seconds,
            idle_timeout=config.execution.pool_idle_timeout_seconds,
        ),
    )
    registry.register(ServerType.MCP, MockExecutor())
    return registry


class Gateway:
    """
    Gated tool execution for agents.

    Usage:
        with Gateway(db_path="shepgate.db") as gateway:
            outcome = gateway.execute(agent_id, "github_list_repos", {"org": "acme"})
            if outcome.requires_approval:
                gateway.approve(outcome.pending_action_id)

    Attributes:
        db: Store shared by every component
        catalog: Servers, agents and tools
        permissions: Permission and risk administration
        engine: Policy engine
        resolver: Approval resolver
        executors: Executor registry
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        executors: ExecutorRegistry | None = None,
        secrets: SecretProvider | None = None,
        config: GateConfig | None = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            db_path: SQLite database path (defaults to config.database.path)
            executors: Executor registry (defaults to HTTP + mock executors)
            secrets: Secret lookup for executors (defaults to environment)
            config: Loaded configuration (defaults to GateConfig())
        """
        self.config = config or GateConfig()
        self.db = GateDB(db_path or self.config.database.path)
        self.catalog = Catalog(self.db)
        self.permissions = PermissionService(self.db)
        self.engine = PolicyEngine(self.db)
        self.resolver = ApprovalResolver(self.db, max_workers=self.config.approvals.batch_workers)
        if secrets is None:
            secrets = EnvSecretProvider(prefix=self.config.execution.secret_prefix)
        if executors is None:
            executors = default_executors(self.config, secrets)
        self.executors = executors

    def close(self) -> None:
        """Close executors and the database connection."""
        self.executors.close()
        self.db.close()

    def __enter__(self) -> "Gateway":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(
        self,
        agent_id: str,
        tool_ref: str,
        arguments: dict[str, Any] | None = None,
        server_id: str | None = None,
    ) -> ExecutionOutcome:
        """
        Gate a tool call and run it if allowed.

        Args:
            agent_id: Calling agent
            tool_ref: Tool id or name
            arguments: Call arguments
            server_id: Disambiguates tool names shared by several servers

        Returns:
            ExecutionOutcome describing the decision and any executor result

        Raises:
            ToolNotFoundError: If the tool does not resolve
            AmbiguousToolError: If a bare tool name exists on several servers
            AgentNotFoundError: If the agent does not exist
            StorageError: If the decision could not be recorded
        """
        arguments = arguments or {}
        tool = self.catalog.find_tool(tool_ref, server_id=server_id)
        policy = self.engine.evaluate(agent_id, tool.id, json.dumps(arguments, sort_keys=True))

        outcome = ExecutionOutcome(
            agent_id=agent_id,
            tool_id=tool.id,
            allowed=policy.allowed,
            reason=policy.reason,
            pending_action_id=policy.pending_action_id,
            action_log_id=policy.action_log_id,
            rule_matched=policy.rule_matched,
        )
        if policy.allowed:
            outcome.result = self._invoke(tool, arguments)
        return outcome

    def _invoke(self, tool: Tool, arguments: dict[str, Any]) -> ExecutionResult:
        try:
            server = self.catalog.get_server(tool.server_id)
            return self.executors.invoke(server, tool, arguments)
        except ShepGateError as e:
            logger.warning("Could not execute %s: %s", tool.name, e.message)
            return ExecutionResult.fail(e.message)
        except Exception as e:
            logger.exception("Executor failed for tool %s", tool.name)
            return ExecutionResult.fail(f"{type(e).__name__}: {e}")

    # =========================================================================
    # Approvals
    # =========================================================================

    def approve(self, pending_action_id: str, execute: bool = True) -> ExecutionOutcome:
        """
        Approve a pending action and, by default, run it.

        Raises:
            PendingActionNotFoundError: If the id is unknown
            InvalidStateTransitionError: If the action was already resolved
        """
        action = self.resolver.approve(pending_action_id)
        outcome = ExecutionOutcome(
            agent_id=action.agent_id,
            tool_id=action.tool_id,
            allowed=True,
            reason=PolicyReason.APPROVED,
            pending_action_id=action.id,
        )
        if execute:
            outcome.result = self._run_approved(action)
        return outcome

    def deny(self, pending_action_id: str) -> PendingAction:
        """Deny a pending action."""
        return self.resolver.deny(pending_action_id)

    def batch_approve(self, ids: Iterable[str], execute: bool = True) -> BatchResult:
        """
        Approve several pending actions; each one is independent.

        Approved actions are run afterwards when ``execute`` is set, and each
        approved item carries its executor result. Executor failures do not
        turn an approval into a failed batch item.
        """
        result = self.resolver.batch_resolve(ids, ResolveOutcome.APPROVE)
        if not execute:
            return result

        outcomes = []
        for item in result.outcomes:
            if item.ok:
                run = self._run_approved_id(item.id)
                item = item.model_copy(update={"result": run.to_dict()})
            outcomes.append(item)
        return result.model_copy(update={"outcomes": outcomes})

    def batch_deny(self, ids: Iterable[str]) -> BatchResult:
        """Deny several pending actions; each one is independent."""
        return self.resolver.batch_resolve(ids, ResolveOutcome.DENY)

    def _run_approved_id(self, pending_action_id: str) -> ExecutionResult:
        action = self.db.get_pending_action(pending_action_id)
        if action is None:
            return ExecutionResult.fail(f"Pending action {pending_action_id} no longer exists")
        return self._run_approved(action)

    def _run_approved(self, action: PendingAction) -> ExecutionResult:
        tool = self.db.get_tool(action.tool_id)
        if tool is None:
            return ExecutionResult.fail(f"Tool {action.tool_id} no longer exists")
        try:
            arguments = json.loads(action.arguments_json or "{}")
        except json.JSONDecodeError as e:
            return ExecutionResult.fail(f"Stored arguments are not valid JSON: {e}")
        return self._invoke(tool, arguments)

    # =========================================================================
    # Queries
    # =========================================================================

    def list_pending(
        self,
        status: PendingStatus | None = PendingStatus.PENDING,
        limit: int = 100,
    ) -> list[PendingAction]:
        return self.resolver.list_pending_actions(status=status, limit=limit)

    def list_audit_log(self, limit: int = 100, agent_id: str | None = None) -> list[ActionLog]:
        return self.db.list_action_logs(limit=limit, agent_id=agent_id)

    def stats(self, now: datetime | None = None) -> DashboardStats:
        """Dashboard counters; "today" starts at midnight UTC."""
        now = now or datetime.now(UTC)
        midnight = now.astimezone(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
        return self.db.get_stats(since=midnight)

    def connection_status(self) -> list[tuple[str, float]]:
        """(server_id, idle seconds) for every pooled downstream connection."""
        return self.executors.connections()
