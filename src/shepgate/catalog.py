"""
Tool catalog administration for ShepGate.

Creating an agent or a tool is followed, in the same transaction, by the
default-deny backfill: every new (agent, tool) pair gets an explicit
``allowed=False`` permission row. The backfill uses INSERT OR IGNORE, so a
grant that raced in first is never overwritten.
"""

import logging
from typing import Any, Iterable

from shepgate.errors import (
    AgentNotFoundError,
    AmbiguousToolError,
    InvalidRiskLevelError,
    ServerNotFoundError,
    ToolNotFoundError,
)
from shepgate.schema import (
    AgentProfile,
    RiskLevel,
    Server,
    ServerType,
    Tool,
    ToolSpec,
)
from shepgate.store import GateDB

logger = logging.getLogger(__name__)


class Catalog:
    """
    Manages servers, agents and tools.

    Usage:
        catalog = Catalog(db)
        server = catalog.add_server("github", ServerType.MCP, command="npx gh-mcp")
        tool = catalog.add_tool(server.id, "github_list_repos", risk_level="safe")
        agent = catalog.create_agent("Claude", host_type="claude-desktop")
    """

    def __init__(self, db: GateDB) -> None:
        self.db = db

    # -------------------------------------------------------------------------
    # Servers
    # -------------------------------------------------------------------------

    def add_server(
        self,
        name: str,
        type: ServerType | str,
        command: str | None = None,
        base_url: str | None = None,
        auth_secret: str | None = None,
    ) -> Server:
        """Register a downstream server."""
        server = self.db.create_server(
            name=name,
            type=ServerType(type),
            command=command,
            base_url=base_url,
            auth_secret=auth_secret,
        )
        logger.info("Added %s server %s (%s)", server.type.value, server.name, server.id)
        return server

    def get_server(self, server_id: str) -> Server:
        """Get a server or raise ServerNotFoundError."""
        server = self.db.get_server(server_id)
        if server is None:
            raise ServerNotFoundError(server_id=server_id)
        return server

    def list_servers(self) -> list[Server]:
        return self.db.list_servers()

    def remove_server(self, server_id: str) -> None:
        """Delete a server together with its tools."""
        if not self.db.delete_server(server_id):
            raise ServerNotFoundError(server_id=server_id)
        logger.info("Removed server %s", server_id)

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    def create_agent(
        self,
        name: str,
        host_type: str,
        description: str | None = None,
        api_key: str | None = None,
    ) -> AgentProfile:
        """Create an agent with an explicit deny row for every existing tool."""
        with self.db.transaction():
            agent = self.db.create_agent(
                name=name,
                host_type=host_type,
                description=description,
                api_key=api_key,
            )
            created = self.db.insert_missing_permissions(
                (agent.id, tool_id) for tool_id in self.db.list_tool_ids()
            )
        logger.info("Created agent %s (%s) with %d denied tools", agent.name, agent.id, created)
        return agent

    def get_agent(self, agent_id: str) -> AgentProfile:
        """Get an agent or raise AgentNotFoundError."""
        agent = self.db.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id=agent_id)
        return agent

    def list_agents(self) -> list[AgentProfile]:
        return self.db.list_agents()

    def delete_agent(self, agent_id: str) -> None:
        """Delete an agent with its permissions, pending actions and audit entries."""
        if not self.db.delete_agent(agent_id):
            raise AgentNotFoundError(agent_id=agent_id)
        logger.info("Deleted agent %s", agent_id)

    # -------------------------------------------------------------------------
    # Tools
    # -------------------------------------------------------------------------

    def add_tool(
        self,
        server_id: str,
        name: str,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
        risk_level: RiskLevel | str = RiskLevel.NEEDS_APPROVAL,
    ) -> Tool:
        """
        Register a tool and deny it to every existing agent.

        Raises:
            ServerNotFoundError: If the server does not exist
            DuplicateToolError: If the server already has a tool with this name
            InvalidRiskLevelError: If the risk tier is unknown
        """
        try:
            tier = RiskLevel(risk_level)
        except ValueError:
            raise InvalidRiskLevelError(risk_level=str(risk_level)) from None

        with self.db.transaction():
            self.get_server(server_id)
            tool = self.db.create_tool(
                server_id=server_id,
                name=name,
                description=description,
                input_schema=input_schema,
                risk_level=tier.value,
            )
            self._backfill_tools([tool.id])
        logger.info("Added tool %s (%s) as %s", tool.name, tool.id, tier.value)
        return tool

    def sync_tools(self, server_id: str, discovered: Iterable[ToolSpec]) -> list[Tool]:
        """
        Add the discovered tools a server does not have yet.

        New tools start at needs_approval and are denied to every agent.
        Existing tools (matched by name) are left unchanged.

        Returns:
            The newly created tools
        """
        with self.db.transaction():
            self.get_server(server_id)
            existing = {tool.name for tool in self.db.list_tools(server_id)}
            created: list[Tool] = []
            for spec in discovered:
                if spec.name in existing:
                    continue
                existing.add(spec.name)
                created.append(
                    self.db.create_tool(
                        server_id=server_id,
                        name=spec.name,
                        description=spec.description,
                        input_schema=spec.input_schema,
                    )
                )
            self._backfill_tools([tool.id for tool in created])
        logger.info("Synced %d new tools on server %s", len(created), server_id)
        return created

    def find_tool(self, ref: str, server_id: str | None = None) -> Tool:
        """
        Resolve a tool by id, falling back to name.

        A bare name must be unique across servers unless ``server_id`` is given.

        Raises:
            ToolNotFoundError: If neither matches
            AmbiguousToolError: If the name exists on several servers
        """
        tool = self.db.get_tool(ref)
        if tool is not None:
            return tool
        if server_id is not None:
            tool = self.db.get_tool_by_name(ref, server_id)
            if tool is None:
                raise ToolNotFoundError(tool_id=ref)
            return tool

        matches = self.db.list_tools_by_name(ref)
        if not matches:
            raise ToolNotFoundError(tool_id=ref)
        if len(matches) > 1:
            raise AmbiguousToolError(name=ref, server_ids=[t.server_id for t in matches])
        return matches[0]

    def list_tools(self, server_id: str | None = None) -> list[Tool]:
        return self.db.list_tools(server_id)

    def remove_tool(self, tool_id: str) -> None:
        """Delete a tool and everything that references it."""
        if not self.db.delete_tool(tool_id):
            raise ToolNotFoundError(tool_id=tool_id)
        logger.info("Removed tool %s", tool_id)

    def _backfill_tools(self, tool_ids: list[str]) -> int:
        if not tool_ids:
            return 0
        agent_ids = self.db.list_agent_ids()
        return self.db.insert_missing_permissions(
            (agent_id, tool_id) for agent_id in agent_ids for tool_id in tool_ids
        )
