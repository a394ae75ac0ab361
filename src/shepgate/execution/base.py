"""
Base classes for the execution capability.

The policy core never invokes tools itself. Once a call is authorized, the
gateway hands it to an Executor, which talks to the downstream server and
returns an ExecutionResult.

Design Principles:
    - Executors return ExecutionResult for expected failures (server down,
      non-2xx response); they raise only for programming errors
    - Executors see secret values, the policy core never does
    - One executor per server type; the registry handles lookup
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from shepgate.schema import Server, Tool


@dataclass(frozen=True)
class ExecutionResult:
    """
    Standardized output from a downstream invocation.

    Attributes:
        success: Whether the tool executed successfully
        result: The output data from the tool
        error: Error message if success is False
        metadata: Additional metadata about the execution
    """

    success: bool
    result: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, result: Any, **metadata: Any) -> "ExecutionResult":
        """Create a successful result."""
        return cls(success=True, result=result, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "ExecutionResult":
        """Create a failed result."""
        return cls(success=False, error=error, metadata=metadata)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "result": self.result,
            "error": self.error,
        }


class Executor(ABC):
    """
    Abstract base class for downstream tool invocation.

    Example:
        class EchoExecutor(Executor):
            def invoke(self, server, tool, arguments):
                return ExecutionResult.ok(arguments)
    """

    @abstractmethod
    def invoke(self, server: Server, tool: Tool, arguments: dict[str, Any]) -> ExecutionResult:
        """
        Invoke a tool on its server.

        Args:
            server: The server that owns the tool
            tool: The tool to call
            arguments: Deserialized call arguments

        Returns:
            ExecutionResult indicating success or failure
        """
        ...

    def connections(self) -> list[tuple[str, float]]:
        """(server_id, idle seconds) for each open connection."""
        return []

    def close(self) -> None:
        """Release any held connections."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
