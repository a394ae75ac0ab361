"""
Storage module for ShepGate.

This module provides SQLite-based persistence for the tool catalog,
permissions, pending approvals and the audit log.

Tables:
    - servers / agents / tools: administrative catalog
    - tool_permissions: one (agent, tool) -> allowed row per pair
    - pending_actions: deferred decisions (pending, approved, denied)
    - action_logs: append-only record of terminal decisions
"""

from shepgate.store.db import GateDB, generate_id

__all__ = [
    "GateDB",
    "generate_id",
]
