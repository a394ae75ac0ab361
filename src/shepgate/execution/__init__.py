"""
Downstream execution for ShepGate.

Executors invoke authorized tools on their servers. The policy core never
imports this package; the Gateway wires the two together.
"""

from shepgate.execution.base import ExecutionResult, Executor
from shepgate.execution.http import HttpExecutor
from shepgate.execution.mock import MockExecutor
from shepgate.execution.pool import ConnectionPool
from shepgate.execution.registry import ExecutorRegistry
from shepgate.execution.secrets import EnvSecretProvider, SecretProvider, StaticSecretProvider

__all__ = [
    "ConnectionPool",
    "EnvSecretProvider",
    "ExecutionResult",
    "Executor",
    "ExecutorRegistry",
    "HttpExecutor",
    "MockExecutor",
    "SecretProvider",
    "StaticSecretProvider",
]
