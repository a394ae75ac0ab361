"""
Approval Resolver for ShepGate.

Pending actions follow a two-branch state machine:

    pending --approve--> approved   (terminal)
    pending --deny-----> denied     (terminal)

The resolver performs the transition and writes the terminal audit entry in
one transaction. It only authorizes: invoking the tool after an approval is
the caller's job (see shepgate.gateway.Gateway.approve).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

from shepgate.errors import (
    InvalidStateTransitionError,
    PendingActionNotFoundError,
    ShepGateError,
)
from shepgate.schema import (
    ActionStatus,
    BatchResult,
    ItemOutcome,
    PendingAction,
    PendingStatus,
    PolicyReason,
    ResolveOutcome,
)
from shepgate.store import GateDB

logger = logging.getLogger(__name__)

# outcome -> (new pending status, audit status, audit reason)
_TRANSITIONS: dict[ResolveOutcome, tuple[PendingStatus, ActionStatus, PolicyReason]] = {
    ResolveOutcome.APPROVE: (PendingStatus.APPROVED, ActionStatus.EXECUTED, PolicyReason.APPROVED),
    ResolveOutcome.DENY: (PendingStatus.DENIED, ActionStatus.DENIED, PolicyReason.DENIED_BY_USER),
}


class ApprovalResolver:
    """
    Resolves pending actions exactly once.

    Usage:
        resolver = ApprovalResolver(db)
        action = resolver.approve(pending_id)
        result = resolver.batch_resolve([id1, id2], ResolveOutcome.APPROVE)

    Attributes:
        db: Store holding pending actions and the audit log
        max_workers: Thread count used by batch_resolve
    """

    def __init__(self, db: GateDB, max_workers: int = 4) -> None:
        self.db = db
        self.max_workers = max_workers

    def resolve(self, pending_action_id: str, outcome: ResolveOutcome) -> PendingAction:
        """
        Move a pending action to its terminal state and audit it.

        Args:
            pending_action_id: The pending action to resolve
            outcome: approve or deny

        Returns:
            The resolved PendingAction

        Raises:
            PendingActionNotFoundError: If the id does not exist
            InvalidStateTransitionError: If the action is no longer pending
            StorageError: If the store fails; nothing was changed
        """
        outcome = ResolveOutcome(outcome)
        new_status, audit_status, audit_reason = _TRANSITIONS[outcome]

        with self.db.transaction():
            action = self.db.get_pending_action(pending_action_id)
            if action is None:
                raise PendingActionNotFoundError(pending_action_id=pending_action_id)

            if not self.db.transition_pending_action(pending_action_id, new_status):
                current = self.db.get_pending_action(pending_action_id)
                raise InvalidStateTransitionError(
                    pending_action_id=pending_action_id,
                    current_status=current.status.value if current else action.status.value,
                    requested=outcome.value,
                )

            self.db.insert_action_log(
                agent_id=action.agent_id,
                tool_id=action.tool_id,
                arguments_json=action.arguments_json,
                status=audit_status,
                reason=audit_reason,
            )
            resolved = self.db.get_pending_action(pending_action_id)

        logger.info("Pending action %s %s", pending_action_id, new_status.value)
        return resolved

    def approve(self, pending_action_id: str) -> PendingAction:
        """Approve a pending action."""
        return self.resolve(pending_action_id, ResolveOutcome.APPROVE)

    def deny(self, pending_action_id: str) -> PendingAction:
        """Deny a pending action."""
        return self.resolve(pending_action_id, ResolveOutcome.DENY)

    def batch_resolve(self, ids: Iterable[str], outcome: ResolveOutcome) -> BatchResult:
        """
        Resolve several pending actions independently, in parallel.

        One failing id never aborts the others; each outcome is reported.

        Args:
            ids: Pending action ids
            outcome: approve or deny, applied to every id

        Returns:
            BatchResult with totals and per-id outcomes (in input order)
        """
        ids = list(ids)
        if not ids:
            return BatchResult()

        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(ids)))) as pool:
            outcomes = list(pool.map(lambda i: self._resolve_one(i, outcome), ids))

        succeeded = sum(1 for o in outcomes if o.ok)
        logger.info(
            "Batch %s: %d succeeded, %d failed",
            ResolveOutcome(outcome).value,
            succeeded,
            len(outcomes) - succeeded,
        )
        return BatchResult(
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            outcomes=outcomes,
        )

    def _resolve_one(self, pending_action_id: str, outcome: ResolveOutcome) -> ItemOutcome:
        try:
            self.resolve(pending_action_id, outcome)
        except ShepGateError as e:
            logger.warning("Could not resolve %s: %s", pending_action_id, e.message)
            return ItemOutcome(id=pending_action_id, ok=False, error=e.message)
        return ItemOutcome(id=pending_action_id, ok=True)

    def list_pending_actions(
        self,
        status: PendingStatus | None = PendingStatus.PENDING,
        limit: int = 100,
    ) -> list[PendingAction]:
        """Read-only projection of the approval queue."""
        return self.db.list_pending_actions(status=status, limit=limit)
