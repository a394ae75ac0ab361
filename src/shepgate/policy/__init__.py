"""
Policy module for ShepGate.

This module implements the core security model: every tool call is classified
as allowed, needs_approval, blocked_risk or blocked_permission, and the
decision is recorded before anything runs.

Key concepts:
    - PolicyEngine: evaluates a request and writes one audit row or one pending action
    - decide: the pure (risk tier, permission) -> Decision function
    - ApprovalResolver: moves pending actions to approved/denied exactly once
"""

from shepgate.policy.approvals import ApprovalResolver
from shepgate.policy.engine import Decision, PolicyEngine, decide

__all__ = [
    "ApprovalResolver",
    "Decision",
    "PolicyEngine",
    "decide",
]
