"""
ShepGate - Policy gateway between AI agents and the tools they call.

Every tool call an agent makes is classified against the tool's risk tier
and the agent's permission:
- Allowed calls run immediately
- Risky calls wait in an approval queue for a human
- Blocked or unpermitted calls are refused
Every decision lands in an append-only SQLite audit log.

Example usage:
    $ shepgate agent create "Claude" --host claude-desktop
    $ shepgate execute <agent_id> github_list_repos --args '{"org": "acme"}'
    $ shepgate approvals list
"""

__version__ = "0.1.0"
__author__ = "ShepGate Contributors"

__all__ = [
    "__version__",
    "__author__",
]
