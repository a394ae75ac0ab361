"""
Pytest configuration and fixtures for ShepGate tests.

This module provides shared fixtures used across unit and integration
tests: a temporary database, the core services built on it, and a small
catalog (one server, one agent) to gate calls against.
"""

import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

from shepgate.catalog import Catalog
from shepgate.permissions import PermissionService
from shepgate.policy import ApprovalResolver, PolicyEngine
from shepgate.schema import AgentProfile, Server, ServerType, Tool
from shepgate.store import GateDB


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """Path for a fresh SQLite database."""
    return temp_dir / "shepgate.db"


@pytest.fixture
def db(db_path: Path) -> Generator[GateDB, None, None]:
    """Create a database instance."""
    database = GateDB(db_path)
    yield database
    database.close()


@pytest.fixture
def catalog(db: GateDB) -> Catalog:
    return Catalog(db)


@pytest.fixture
def permissions(db: GateDB) -> PermissionService:
    return PermissionService(db)


@pytest.fixture
def engine(db: GateDB) -> PolicyEngine:
    return PolicyEngine(db)


@pytest.fixture
def resolver(db: GateDB) -> ApprovalResolver:
    return ApprovalResolver(db, max_workers=4)


@pytest.fixture
def server(catalog: Catalog) -> Server:
    """An mcp server to hang tools on."""
    return catalog.add_server("github", ServerType.MCP, command="npx github-mcp")


@pytest.fixture
def agent(catalog: Catalog) -> AgentProfile:
    """An agent profile."""
    return catalog.create_agent("Claude", host_type="claude-desktop")


@pytest.fixture
def make_tool(catalog: Catalog, server: Server) -> Callable[..., Tool]:
    """Factory registering a tool on the fixture server."""

    def _make(name: str, risk_level: str = "needs_approval") -> Tool:
        return catalog.add_tool(server.id, name, risk_level=risk_level)

    return _make


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a full configuration YAML for testing."""
    return """
database:
  path: gate.db
approvals:
  batch_workers: 8
execution:
  http_timeout_seconds: 5
  pool_idle_timeout_seconds: 60
  secret_prefix: SHEPGATE_SECRET_
logging:
  level: debug
"""


@pytest.fixture
def sample_manifest_yaml() -> str:
    """Return a tool manifest YAML for testing."""
    return """
tools:
  - name: github_list_repos
    description: List repositories
  - name: github_delete_repo
    description: Delete a repository
    input_schema:
      type: object
      properties:
        repo:
          type: string
"""
