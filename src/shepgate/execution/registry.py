"""
Executor registry: routes invocations by server type.
"""

from typing import Any

from shepgate.errors import ExecutorNotConfiguredError
from shepgate.execution.base import ExecutionResult, Executor
from shepgate.schema import Server, ServerType, Tool


class ExecutorRegistry:
    """
    Maps each ServerType to the Executor that handles it.

    Usage:
        registry = ExecutorRegistry()
        registry.register(ServerType.HTTP, HttpExecutor())
        result = registry.invoke(server, tool, {"endpoint": "/issues"})
    """

    def __init__(self) -> None:
        self._executors: dict[ServerType, Executor] = {}

    def register(self, server_type: ServerType | str, executor: Executor) -> None:
        """Register (or replace) the executor for a server type."""
        self._executors[ServerType(server_type)] = executor

    def get(self, server_type: ServerType | str) -> Executor:
        """
        Get the executor for a server type.

        Raises:
            ExecutorNotConfiguredError: If none is registered
        """
        key = ServerType(server_type)
        if key not in self._executors:
            raise ExecutorNotConfiguredError(server_type=key.value)
        return self._executors[key]

    def invoke(self, server: Server, tool: Tool, arguments: dict[str, Any]) -> ExecutionResult:
        """Route a call to the executor for the server's type."""
        return self.get(server.type).invoke(server, tool, arguments)

    def connections(self) -> list[tuple[str, float]]:
        """Open connections across every registered executor."""
        return [entry for executor in self._executors.values() for entry in executor.connections()]

    def close(self) -> None:
        """Close every registered executor."""
        for executor in self._executors.values():
            executor.close()

    def __len__(self) -> int:
        return len(self._executors)

    def __contains__(self, server_type: object) -> bool:
        try:
            return ServerType(server_type) in self._executors
        except ValueError:
            return False
