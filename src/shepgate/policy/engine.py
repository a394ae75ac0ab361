"""
Policy Engine for ShepGate.

The Policy Engine is the security boundary of ShepGate. Every tool call an
agent requests passes through ``evaluate`` before anything runs.

Decision procedure (first matching rule wins):
    1. risk == blocked                       -> deny  (blocked_risk)
    2. no permission row, or allowed=false   -> deny  (blocked_permission)
    3. risk == safe                          -> allow (allowed)
    4. risk == needs_approval                -> defer (needs_approval)
    5. any other tier                        -> deny  (blocked_risk)

Risk blocking is checked before permissions so no grant can bypass the
kill-switch. Permissions are checked before the safe/approval split so an
agent without access learns nothing about how a tool is classified.

Side effects:
    Every successful evaluate() writes exactly one row: an action_logs entry
    for rules 1, 2, 3 and 5, or a pending_actions entry for rule 4. The
    lookups and the write share one transaction.
"""

import logging
from dataclasses import dataclass

from shepgate.errors import AgentNotFoundError, ToolNotFoundError
from shepgate.schema import (
    ActionStatus,
    PolicyReason,
    PolicyResult,
    RiskLevel,
)
from shepgate.store import GateDB

logger = logging.getLogger(__name__)

RULE_BLOCKED_RISK = "risk_level=blocked"
RULE_NO_PERMISSION = "permission_missing_or_denied"
RULE_SAFE = "risk_level=safe"
RULE_NEEDS_APPROVAL = "risk_level=needs_approval"
RULE_UNKNOWN_RISK = "unrecognized_risk_level"


@dataclass(frozen=True)
class Decision:
    """
    Outcome of the pure decision procedure, before any side effect.

    Attributes:
        allowed: Whether the call may run now
        reason: Reason code
        rule: Which rule fired
        defer: Whether a pending action must be created instead of an audit row
        detail: Human-readable explanation
    """

    allowed: bool
    reason: PolicyReason
    rule: str
    defer: bool = False
    detail: str = ""

    @property
    def audit_status(self) -> ActionStatus:
        """Audit status recorded for a terminal decision."""
        return ActionStatus.EXECUTED if self.allowed else ActionStatus.DENIED


def decide(risk_level: str, permission: bool | None) -> Decision:
    """
    Map (risk tier, permission) to exactly one decision.

    Args:
        risk_level: Raw risk tier text as stored on the tool
        permission: True/False from the permission row, None if there is none

    Returns:
        Decision for the first matching rule
    """
    if risk_level == RiskLevel.BLOCKED.value:
        return Decision(
            allowed=False,
            reason=PolicyReason.BLOCKED_RISK,
            rule=RULE_BLOCKED_RISK,
            detail="Tool is blocked by its risk level",
        )

    if not permission:
        return Decision(
            allowed=False,
            reason=PolicyReason.BLOCKED_PERMISSION,
            rule=RULE_NO_PERMISSION,
            detail="Agent does not have permission to use this tool",
        )

    if risk_level == RiskLevel.SAFE.value:
        return Decision(
            allowed=True,
            reason=PolicyReason.ALLOWED,
            rule=RULE_SAFE,
            detail="Tool is safe and agent is permitted",
        )

    if risk_level == RiskLevel.NEEDS_APPROVAL.value:
        return Decision(
            allowed=False,
            reason=PolicyReason.NEEDS_APPROVAL,
            rule=RULE_NEEDS_APPROVAL,
            defer=True,
            detail="Tool requires human approval",
        )

    # Fail closed on tiers this engine does not know
    return Decision(
        allowed=False,
        reason=PolicyReason.BLOCKED_RISK,
        rule=RULE_UNKNOWN_RISK,
        detail=f"Unrecognized risk level: {risk_level!r}",
    )


class PolicyEngine:
    """
    Evaluates execution requests against risk tiers and permissions.

    Usage:
        engine = PolicyEngine(db)
        result = engine.evaluate(agent_id, tool_id, '{"path": "README.md"}')
        if result.allowed:
            # caller invokes the tool
        elif result.requires_approval:
            # surface result.pending_action_id
        else:
            # surface result.reason
    """

    def __init__(self, db: GateDB) -> None:
        """
        Initialize the policy engine.

        Args:
            db: Store holding permissions, risk tiers and decision records
        """
        self.db = db

    def evaluate(self, agent_id: str, tool_id: str, arguments_json: str = "{}") -> PolicyResult:
        """
        Evaluate a tool call and record the decision.

        Args:
            agent_id: The calling agent profile
            tool_id: The tool being called
            arguments_json: Serialized arguments, stored as-is

        Returns:
            PolicyResult (a deny is a result, not an exception)

        Raises:
            ToolNotFoundError: If the tool does not exist
            AgentNotFoundError: If the agent does not exist
            StorageError: If the store fails; nothing was recorded
        """
        with self.db.transaction():
            risk_level = self.db.get_risk_level(tool_id)
            if risk_level is None:
                raise ToolNotFoundError(tool_id=tool_id)
            if self.db.get_agent(agent_id) is None:
                raise AgentNotFoundError(agent_id=agent_id)

            permission = self.db.get_permission(agent_id, tool_id)
            decision = decide(risk_level, permission)

            if decision.defer:
                pending = self.db.insert_pending_action(agent_id, tool_id, arguments_json)
                result = PolicyResult(
                    allowed=False,
                    reason=decision.reason,
                    pending_action_id=pending.id,
                    rule_matched=decision.rule,
                    detail=decision.detail,
                )
            else:
                entry = self.db.insert_action_log(
                    agent_id=agent_id,
                    tool_id=tool_id,
                    arguments_json=arguments_json,
                    status=decision.audit_status,
                    reason=decision.reason,
                    detail=decision.rule if decision.rule == RULE_UNKNOWN_RISK else None,
                )
                result = PolicyResult(
                    allowed=decision.allowed,
                    reason=decision.reason,
                    action_log_id=entry.id,
                    rule_matched=decision.rule,
                    detail=decision.detail,
                )

        if decision.rule == RULE_UNKNOWN_RISK:
            logger.warning(
                "Denied %s -> %s: unrecognized risk level %r",
                agent_id,
                tool_id,
                risk_level,
            )
        else:
            logger.info(
                "Policy decision %s -> %s: %s",
                agent_id,
                tool_id,
                decision.reason.value,
            )
        return result
