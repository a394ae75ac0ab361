"""
Schema definitions for ShepGate.

This module defines the Pydantic models used throughout ShepGate:
- Server/AgentProfile/Tool/ToolPermission: the administrative catalog
- PendingAction/ActionLog: deferred decisions and the audit trail
- PolicyResult: the result of evaluating an execution request
- BatchResult: per-item outcomes of a batch resolution

Design Decisions:
    - Stored records are frozen; mutations go through the store
    - Tool.risk_level is kept as raw text so the engine can recognise a tier
      it does not know and deny it
    - Arguments travel as serialized JSON text; the core never inspects them
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class RiskLevel(str, Enum):
    """
    Administrator-assigned risk tier of a tool.

    SAFE runs immediately for permitted agents, NEEDS_APPROVAL is deferred
    to a human, BLOCKED is denied for everyone.
    """

    SAFE = "safe"
    NEEDS_APPROVAL = "needs_approval"
    BLOCKED = "blocked"


class PendingStatus(str, Enum):
    """Lifecycle of a pending action. APPROVED and DENIED are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class ActionStatus(str, Enum):
    """Terminal status recorded in the audit log."""

    EXECUTED = "executed"
    DENIED = "denied"


class PolicyReason(str, Enum):
    """Reason codes for policy results and audit entries."""

    ALLOWED = "allowed"
    NEEDS_APPROVAL = "needs_approval"
    BLOCKED_RISK = "blocked_risk"
    BLOCKED_PERMISSION = "blocked_permission"
    APPROVED = "approved"
    DENIED_BY_USER = "denied_by_user"


class ResolveOutcome(str, Enum):
    """What a reviewer decided for a pending action."""

    APPROVE = "approve"
    DENY = "deny"


class ServerType(str, Enum):
    """How the downstream server is reached."""

    MCP = "mcp"
    HTTP = "http"


def utcnow() -> datetime:
    """Get the current UTC time."""
    return datetime.now(UTC)


# =============================================================================
# Catalog Models
# =============================================================================


class Server(BaseModel):
    """
    A downstream server exposing tools.

    Attributes:
        id: Unique identifier
        name: Display name
        type: mcp (spawned command) or http (base URL)
        command: Command line used to start an mcp server
        base_url: Base URL of an http server
        auth_secret: Name of the secret used to authenticate, if any
        created_at: When the server was registered
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Unique identifier")
    name: str = Field(..., min_length=1, description="Display name")
    type: ServerType = Field(..., description="Server transport type")
    command: str | None = Field(default=None, description="Command for mcp servers")
    base_url: str | None = Field(default=None, description="Base URL for http servers")
    auth_secret: str | None = Field(default=None, description="Secret name for auth")
    created_at: datetime = Field(default_factory=utcnow)


class AgentProfile(BaseModel):
    """
    A calling principal whose tool access is governed by permissions.

    Attributes:
        id: Unique identifier
        name: Display name
        description: Optional free text
        host_type: Free-form classification of the AI host (e.g. claude-desktop)
        api_key: Optional credential the agent presents
        created_at: When the profile was created
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Unique identifier")
    name: str = Field(..., min_length=1, description="Display name")
    description: str | None = Field(default=None)
    host_type: str = Field(..., min_length=1, description="AI host classification")
    api_key: str | None = Field(default=None, repr=False)
    created_at: datetime = Field(default_factory=utcnow)


class Tool(BaseModel):
    """
    A callable capability exposed by a server.

    Attributes:
        id: Unique identifier
        server_id: Owning server
        name: Tool name, unique within its server
        description: Optional description
        input_schema: Optional JSON-schema-like descriptor of the arguments
        risk_level: Raw risk tier text (normally a RiskLevel value)
        created_at: When the tool was registered
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Unique identifier")
    server_id: str = Field(..., description="Owning server id")
    name: str = Field(..., min_length=1, description="Tool name")
    description: str | None = Field(default=None)
    input_schema: dict[str, Any] | None = Field(default=None)
    risk_level: str = Field(default=RiskLevel.NEEDS_APPROVAL.value)
    created_at: datetime = Field(default_factory=utcnow)


class ToolSpec(BaseModel):
    """A tool definition as reported by discovery, before it has an id."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    description: str | None = None
    input_schema: dict[str, Any] | None = None


class ToolPermission(BaseModel):
    """Per-agent-per-tool grant. At most one exists per (agent_id, tool_id)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    agent_id: str
    tool_id: str
    allowed: bool = False


# =============================================================================
# Decision Records
# =============================================================================


class PendingAction(BaseModel):
    """
    A deferred decision awaiting human approve/deny.

    Never deleted; ``status`` is the terminal marker.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    agent_id: str
    tool_id: str
    arguments_json: str = "{}"
    status: PendingStatus = PendingStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: datetime | None = None


class ActionLog(BaseModel):
    """Immutable audit record of a terminal decision."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    agent_id: str
    tool_id: str
    arguments_json: str = "{}"
    status: ActionStatus
    reason: PolicyReason
    detail: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class PolicyResult(BaseModel):
    """
    Result of evaluating an execution request.

    A deny is a successful evaluation with ``allowed=False``. Exactly one of
    ``action_log_id`` / ``pending_action_id`` is set.

    Attributes:
        allowed: Whether the call may run immediately
        reason: Reason code
        pending_action_id: Set when the call was deferred for approval
        action_log_id: Set when a terminal audit entry was written
        rule_matched: Which rule of the decision procedure fired
        detail: Human-readable explanation
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool
    reason: PolicyReason
    pending_action_id: str | None = None
    action_log_id: str | None = None
    rule_matched: str | None = None
    detail: str | None = None

    @property
    def requires_approval(self) -> bool:
        """Whether the call is waiting on a human reviewer."""
        return self.reason == PolicyReason.NEEDS_APPROVAL


class ItemOutcome(BaseModel):
    """
    Outcome of one id inside a batch resolution.

    ``ok`` reports the resolution itself. ``result`` holds the executor
    output when an approved action was also run.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    ok: bool
    error: str | None = None
    result: dict[str, Any] | None = None


class BatchResult(BaseModel):
    """Totals and per-item outcomes of a batch resolution."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    succeeded: int = 0
    failed: int = 0
    outcomes: list[ItemOutcome] = Field(default_factory=list)


class DashboardStats(BaseModel):
    """Counters shown on the overview screen."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    servers: int = 0
    agents: int = 0
    tools: int = 0
    pending: int = 0
    actions_today: int = 0
