"""
Mock executor used for MCP servers.

Speaking the MCP transport is outside ShepGate's core; calls routed to an
MCP server are echoed back so the approval flow can be exercised end to end.
"""

import logging
from typing import Any

from shepgate.execution.base import ExecutionResult, Executor
from shepgate.schema import Server, Tool

logger = logging.getLogger(__name__)


class MockExecutor(Executor):
    """
    Records every call and returns a canned echo result.

    Attributes:
        calls: (server_id, tool_name, arguments) for each invocation
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def invoke(self, server: Server, tool: Tool, arguments: dict[str, Any]) -> ExecutionResult:
        self.calls.append((server.id, tool.name, dict(arguments)))
        logger.debug("Mock invocation of %s on %s", tool.name, server.name)
        return ExecutionResult.ok(
            {
                "mock": True,
                "server": server.name,
                "tool": tool.name,
                "arguments": arguments,
            }
        )
