"""
Permission and risk administration for ShepGate.

Read model used by the policy engine:
    - get_permission(agent, tool) -> True / False / None (no row)
    - get_risk_level(tool) -> raw tier text

Administrative mutators (all idempotent upserts on the unique
(agent_id, tool_id) pair):
    - grant_permission / revoke_permission / set_permission
    - grant_all / revoke_all
    - set_risk_level
"""

import logging

from shepgate.errors import AgentNotFoundError, InvalidRiskLevelError, ToolNotFoundError
from shepgate.schema import RiskLevel, ToolPermission
from shepgate.store import GateDB

logger = logging.getLogger(__name__)


class PermissionService:
    """Reads and administers permissions and risk tiers."""

    def __init__(self, db: GateDB) -> None:
        self.db = db

    # -------------------------------------------------------------------------
    # Read model
    # -------------------------------------------------------------------------

    def get_permission(self, agent_id: str, tool_id: str) -> bool | None:
        """Permission flag for (agent, tool); None when no row exists."""
        return self.db.get_permission(agent_id, tool_id)

    def get_risk_level(self, tool_id: str) -> str:
        """
        Risk tier of a tool.

        Raises:
            ToolNotFoundError: If the tool does not exist
        """
        risk = self.db.get_risk_level(tool_id)
        if risk is None:
            raise ToolNotFoundError(tool_id=tool_id)
        return risk

    def list_permissions(self, agent_id: str) -> list[ToolPermission]:
        """All permission rows of an agent, ordered by tool name."""
        self._require_agent(agent_id)
        return self.db.list_permissions(agent_id)

    # -------------------------------------------------------------------------
    # Mutators
    # -------------------------------------------------------------------------

    def set_permission(self, agent_id: str, tool_id: str, allowed: bool) -> None:
        """Upsert the (agent, tool) permission to ``allowed``."""
        with self.db.transaction():
            self._require_agent(agent_id)
            if self.db.get_tool(tool_id) is None:
                raise ToolNotFoundError(tool_id=tool_id)
            self.db.upsert_permission(agent_id, tool_id, allowed)
        logger.info(
            "Permission %s for agent %s on tool %s",
            "granted" if allowed else "revoked",
            agent_id,
            tool_id,
        )

    def grant_permission(self, agent_id: str, tool_id: str) -> None:
        """Allow an agent to use a tool. Granting twice is a no-op."""
        self.set_permission(agent_id, tool_id, True)

    def revoke_permission(self, agent_id: str, tool_id: str) -> None:
        """Forbid an agent from using a tool. Revoking twice is a no-op."""
        self.set_permission(agent_id, tool_id, False)

    def grant_all(self, agent_id: str) -> int:
        """
        Allow an agent to use every existing tool.

        Returns:
            Number of tools granted
        """
        with self.db.transaction():
            self._require_agent(agent_id)
            count = self.db.grant_all_for_agent(agent_id)
        logger.info("Granted %d tools to agent %s", count, agent_id)
        return count

    def revoke_all(self, agent_id: str) -> int:
        """
        Set every permission row of an agent to denied.

        Returns:
            Number of permission rows revoked
        """
        with self.db.transaction():
            self._require_agent(agent_id)
            count = self.db.revoke_all_for_agent(agent_id)
        logger.info("Revoked %d tools from agent %s", count, agent_id)
        return count

    def set_risk_level(self, tool_id: str, risk_level: RiskLevel | str) -> None:
        """
        Change the risk tier of a tool.

        Takes effect on the next evaluation; existing pending actions are
        not touched.

        Raises:
            InvalidRiskLevelError: If the tier is not safe/needs_approval/blocked
            ToolNotFoundError: If the tool does not exist
        """
        try:
            tier = RiskLevel(risk_level)
        except ValueError:
            raise InvalidRiskLevelError(risk_level=str(risk_level)) from None
        if not self.db.update_tool_risk(tool_id, tier.value):
            raise ToolNotFoundError(tool_id=tool_id)
        logger.info("Tool %s risk level set to %s", tool_id, tier.value)

    def _require_agent(self, agent_id: str) -> None:
        if self.db.get_agent(agent_id) is None:
            raise AgentNotFoundError(agent_id=agent_id)
