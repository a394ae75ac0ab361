"""
Reporting module for ShepGate.

Console tables for the approval queue, the audit log, an agent's
permissions and the dashboard counters.

Example:
    from rich.console import Console
    from shepgate.report import print_audit_log

    print_audit_log(Console(), gateway.list_audit_log(limit=20))
"""

from shepgate.report.console import (
    print_audit_log,
    print_outcome,
    print_pending_actions,
    print_permissions,
    print_stats,
)

__all__ = [
    "print_audit_log",
    "print_outcome",
    "print_pending_actions",
    "print_permissions",
    "print_stats",
]
