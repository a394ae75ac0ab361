"""
Exception hierarchy for ShepGate.

All ShepGate exceptions inherit from ShepGateError, allowing callers to catch
all ShepGate-specific exceptions with a single except clause.

Exception Categories:
    - Lookup errors: a referenced tool, agent or server does not exist
    - Approval errors: unknown pending action or an illegal state transition
    - ExecutionError: the downstream tool invocation could not be dispatched
    - ConfigError: configuration file is missing values or malformed
    - StorageError: the database is unavailable or a write failed

A policy denial is NOT an exception. ``evaluate`` returns a PolicyResult with
``allowed=False``; exceptions mean the evaluation itself did not happen.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Lookup / policy errors: 1xxx
ERROR_TOOL_NOT_FOUND = 1001
ERROR_AGENT_NOT_FOUND = 1002
ERROR_SERVER_NOT_FOUND = 1003
ERROR_INVALID_RISK_LEVEL = 1004
ERROR_DUPLICATE_TOOL = 1005
ERROR_AMBIGUOUS_TOOL = 1006

# Approval errors: 2xxx
ERROR_PENDING_ACTION_NOT_FOUND = 2001
ERROR_INVALID_STATE_TRANSITION = 2002

# Execution errors: 3xxx
ERROR_EXECUTION_FAILED = 3001
ERROR_EXECUTOR_NOT_CONFIGURED = 3002

# Config errors: 4xxx
ERROR_CONFIG_INVALID = 4001

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class ShepGateError(Exception):
    """
    Base exception for all ShepGate errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Lookup Errors
# =============================================================================


@dataclass
class ToolNotFoundError(ShepGateError):
    """Raised when a referenced tool id (or name) does not resolve."""

    tool_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool not found: {self.tool_id}"
        if self.code == 0:
            self.code = ERROR_TOOL_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Run 'shepgate tool list' to see registered tools"
        self.context["tool_id"] = self.tool_id


@dataclass
class AgentNotFoundError(ShepGateError):
    """Raised when a referenced agent profile does not exist."""

    agent_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Agent not found: {self.agent_id}"
        if self.code == 0:
            self.code = ERROR_AGENT_NOT_FOUND
        self.context["agent_id"] = self.agent_id


@dataclass
class ServerNotFoundError(ShepGateError):
    """Raised when a referenced server does not exist."""

    server_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Server not found: {self.server_id}"
        if self.code == 0:
            self.code = ERROR_SERVER_NOT_FOUND
        self.context["server_id"] = self.server_id


@dataclass
class InvalidRiskLevelError(ShepGateError):
    """Raised when an administrator sets a risk level outside the known tiers."""

    risk_level: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid risk level: {self.risk_level!r}"
        if self.code == 0:
            self.code = ERROR_INVALID_RISK_LEVEL
        if not self.suggestion:
            self.suggestion = "Use one of: safe, needs_approval, blocked"
        self.context["risk_level"] = self.risk_level


@dataclass
class DuplicateToolError(ShepGateError):
    """Raised when a tool name is already taken on the same server."""

    server_id: str = ""
    name: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool {self.name!r} already exists on server {self.server_id}"
        if self.code == 0:
            self.code = ERROR_DUPLICATE_TOOL
        self.context.update({"server_id": self.server_id, "name": self.name})


@dataclass
class AmbiguousToolError(ShepGateError):
    """Raised when a tool name matches tools on more than one server."""

    name: str = ""
    server_ids: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Tool name {self.name!r} exists on {len(self.server_ids)} servers"
        if self.code == 0:
            self.code = ERROR_AMBIGUOUS_TOOL
        if not self.suggestion:
            self.suggestion = "Use the tool id, or pass --server to pick one"
        self.context.update({"name": self.name, "server_ids": self.server_ids})


# =============================================================================
# Approval Errors
# =============================================================================


@dataclass
class ApprovalError(ShepGateError):
    """
    Base class for pending-approval errors.

    Attributes:
        pending_action_id: ID of the pending action involved
    """

    pending_action_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["pending_action_id"] = self.pending_action_id


@dataclass
class PendingActionNotFoundError(ApprovalError):
    """Raised when resolve() is called with an unknown pending action id."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Pending action not found: {self.pending_action_id}"
        if self.code == 0:
            self.code = ERROR_PENDING_ACTION_NOT_FOUND
        super().__post_init__()


@dataclass
class InvalidStateTransitionError(ApprovalError):
    """
    Raised when a pending action is resolved a second time.

    Re-approving, or approving after a denial, must fail loudly so an
    action can never be executed twice or carry conflicting audit rows.
    """

    current_status: str = ""
    requested: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Cannot {self.requested} pending action {self.pending_action_id}: "
                f"already {self.current_status}"
            )
        if self.code == 0:
            self.code = ERROR_INVALID_STATE_TRANSITION
        super().__post_init__()
        self.context.update({
            "current_status": self.current_status,
            "requested": self.requested,
        })


# =============================================================================
# Execution Errors
# =============================================================================


@dataclass
class ExecutionError(ShepGateError):
    """Raised when an authorized tool call cannot be dispatched downstream."""

    tool: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Execution of {self.tool} failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_EXECUTION_FAILED
        self.context.update({
            "tool": self.tool,
            "underlying_error": self.underlying_error,
        })


@dataclass
class ExecutorNotConfiguredError(ExecutionError):
    """Raised when no executor is registered for a server type."""

    server_type: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"No executor configured for server type: {self.server_type}"
        if self.code == 0:
            self.code = ERROR_EXECUTOR_NOT_CONFIGURED
        super().__post_init__()
        self.context["server_type"] = self.server_type


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(ShepGateError):
    """Raised on configuration loading or validation errors."""

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["path"] = self.path


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(ShepGateError):
    """
    Base class for storage/database errors.

    A StorageError from any core operation means the operation had no
    effect: the surrounding transaction was rolled back.

    Attributes:
        operation: The operation that failed (e.g., "insert_action_log")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error
