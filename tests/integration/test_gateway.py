"""
Integration tests for the Gateway.

Tests cover:
- Allowed calls run on the executor
- Needs-approval calls run only after approval, with stored arguments
- Denied calls never reach the executor
- Executor failures are reported without touching the audit entry
- Batch approval with execution
- Dashboard counters
"""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Generator

import httpx
import pytest

from shepgate.config import GateConfig, load_config_from_dict
from shepgate.errors import (
    AgentNotFoundError,
    InvalidStateTransitionError,
    ToolNotFoundError,
)
from shepgate.execution import ExecutorRegistry, HttpExecutor, MockExecutor
from shepgate.gateway import Gateway, default_executors
from shepgate.schema import ActionStatus, PendingStatus, PolicyReason, ServerType


@pytest.fixture
def mock_executor() -> MockExecutor:
    return MockExecutor()


@pytest.fixture
def http_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def gateway(
    db_path: Path,
    mock_executor: MockExecutor,
    http_requests: list[httpx.Request],
) -> Generator[Gateway, None, None]:
    def handler(request: httpx.Request) -> httpx.Response:
        http_requests.append(request)
        if request.url.path == "/fail":
            return httpx.Response(500, json={"error": "internal"})
        return httpx.Response(200, json={"path": request.url.path})

    registry = ExecutorRegistry()
    registry.register(ServerType.MCP, mock_executor)
    registry.register(ServerType.HTTP, HttpExecutor(transport=httpx.MockTransport(handler)))

    gw = Gateway(db_path=db_path, executors=registry)
    yield gw
    gw.close()


@pytest.fixture
def setup(gateway: Gateway) -> dict[str, str]:
    """An agent with one safe, one gated and one blocked tool, all granted."""
    server = gateway.catalog.add_server("github", ServerType.MCP, command="npx gh")
    api = gateway.catalog.add_server("api", ServerType.HTTP, base_url="https://api.example.com")
    agent = gateway.catalog.create_agent("Claude", host_type="claude-desktop")
    safe = gateway.catalog.add_tool(server.id, "github_list_repos", risk_level="safe")
    gated = gateway.catalog.add_tool(server.id, "github_create_issue")
    blocked = gateway.catalog.add_tool(server.id, "github_delete_repo", risk_level="blocked")
    http_get = gateway.catalog.add_tool(api.id, "http_get", risk_level="safe")
    gateway.permissions.grant_all(agent.id)
    return {
        "agent": agent.id,
        "safe": safe.id,
        "gated": gated.id,
        "blocked": blocked.id,
        "http_get": http_get.id,
    }


class TestExecute:
    """Tests for Gateway.execute."""

    def test_safe_runs_immediately(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        mock_executor: MockExecutor,
    ) -> None:
        outcome = gateway.execute(setup["agent"], "github_list_repos", {"org": "acme"})

        assert outcome.allowed
        assert outcome.success
        assert outcome.reason == PolicyReason.ALLOWED
        assert mock_executor.calls[0][1:] == ("github_list_repos", {"org": "acme"})
        assert outcome.result.result["server"] == "github"
        assert gateway.db.get_action_log(outcome.action_log_id).status == ActionStatus.EXECUTED

    def test_gated_waits(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        mock_executor: MockExecutor,
    ) -> None:
        outcome = gateway.execute(setup["agent"], setup["gated"], {"title": "bug"})

        assert not outcome.allowed
        assert outcome.requires_approval
        assert not outcome.executed
        assert mock_executor.calls == []
        assert [a.id for a in gateway.list_pending()] == [outcome.pending_action_id]

    def test_blocked_never_runs(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        mock_executor: MockExecutor,
    ) -> None:
        outcome = gateway.execute(setup["agent"], "github_delete_repo")

        assert not outcome.allowed
        assert outcome.reason == PolicyReason.BLOCKED_RISK
        assert mock_executor.calls == []

    def test_revoked_never_runs(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        mock_executor: MockExecutor,
    ) -> None:
        gateway.permissions.revoke_permission(setup["agent"], setup["safe"])
        outcome = gateway.execute(setup["agent"], setup["safe"])
        assert outcome.reason == PolicyReason.BLOCKED_PERMISSION
        assert mock_executor.calls == []

    def test_http_tool(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        http_requests: list[httpx.Request],
    ) -> None:
        outcome = gateway.execute(setup["agent"], "http_get", {"endpoint": "/repos"})
        assert outcome.success
        assert outcome.result.result == {"path": "/repos"}
        assert http_requests[0].method == "GET"

    def test_connection_status(self, gateway: Gateway, setup: dict[str, str]) -> None:
        assert gateway.connection_status() == []
        gateway.execute(setup["agent"], "http_get", {"endpoint": "/repos"})

        [(server_id, idle)] = gateway.connection_status()

        assert server_id == gateway.db.get_tool(setup["http_get"]).server_id
        assert idle >= 0

    def test_executor_failure_keeps_audit(
        self,
        gateway: Gateway,
        setup: dict[str, str],
    ) -> None:
        """A downstream failure is reported, the audit row stays as written."""
        outcome = gateway.execute(setup["agent"], "http_get", {"endpoint": "/fail"})

        assert outcome.allowed
        assert outcome.executed
        assert not outcome.success
        assert outcome.result.error == "HTTP 500"
        entry = gateway.db.get_action_log(outcome.action_log_id)
        assert entry.status == ActionStatus.EXECUTED
        assert entry.reason == PolicyReason.ALLOWED

    def test_unconfigured_executor(self, db_path: Path, setup: dict[str, str]) -> None:
        """A missing executor is an execution failure, not a crash."""
        with Gateway(db_path=db_path, executors=ExecutorRegistry()) as bare:
            assert len(bare.executors) == 0
            outcome = bare.execute(setup["agent"], setup["safe"])
        assert outcome.allowed
        assert not outcome.success
        assert "No executor" in outcome.result.error

    def test_unknown_tool(self, gateway: Gateway, setup: dict[str, str]) -> None:
        with pytest.raises(ToolNotFoundError):
            gateway.execute(setup["agent"], "nothing")

    def test_unknown_agent(self, gateway: Gateway, setup: dict[str, str]) -> None:
        with pytest.raises(AgentNotFoundError):
            gateway.execute("nobody", setup["safe"])
        assert gateway.list_audit_log() == []

    def test_to_dict(self, gateway: Gateway, setup: dict[str, str]) -> None:
        data = gateway.execute(setup["agent"], setup["gated"]).to_dict()
        assert data["reason"] == "needs_approval"
        assert data["pending_action_id"]
        assert data["result"] is None


class TestApprovals:
    """Tests for approve/deny through the Gateway."""

    def test_approve_runs_with_stored_arguments(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        mock_executor: MockExecutor,
    ) -> None:
        pending_id = gateway.execute(setup["agent"], setup["gated"], {"title": "bug"}).pending_action_id

        outcome = gateway.approve(pending_id)

        assert outcome.reason == PolicyReason.APPROVED
        assert outcome.success
        assert mock_executor.calls[0][1:] == ("github_create_issue", {"title": "bug"})
        entries = gateway.list_audit_log()
        assert [(e.status, e.reason) for e in entries] == [
            (ActionStatus.EXECUTED, PolicyReason.APPROVED)
        ]

    def test_approve_without_execute(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        mock_executor: MockExecutor,
    ) -> None:
        pending_id = gateway.execute(setup["agent"], setup["gated"]).pending_action_id
        outcome = gateway.approve(pending_id, execute=False)
        assert not outcome.executed
        assert mock_executor.calls == []

    def test_approve_twice_runs_once(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        mock_executor: MockExecutor,
    ) -> None:
        pending_id = gateway.execute(setup["agent"], setup["gated"]).pending_action_id
        gateway.approve(pending_id)
        with pytest.raises(InvalidStateTransitionError):
            gateway.approve(pending_id)
        assert len(mock_executor.calls) == 1

    def test_deny(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        mock_executor: MockExecutor,
    ) -> None:
        pending_id = gateway.execute(setup["agent"], setup["gated"]).pending_action_id
        action = gateway.deny(pending_id)

        assert action.status == PendingStatus.DENIED
        assert mock_executor.calls == []
        assert gateway.list_audit_log()[0].reason == PolicyReason.DENIED_BY_USER

    def test_batch_approve(
        self,
        gateway: Gateway,
        setup: dict[str, str],
        mock_executor: MockExecutor,
    ) -> None:
        ids = [
            gateway.execute(setup["agent"], setup["gated"], {"n": i}).pending_action_id
            for i in range(3)
        ]

        result = gateway.batch_approve([ids[0], "nonexistent", ids[1], ids[2]])

        assert result.succeeded == 3
        assert result.failed == 1
        assert sorted(call[2]["n"] for call in mock_executor.calls) == [0, 1, 2]
        assert gateway.list_pending() == []

    def test_batch_approve_carries_results(
        self,
        gateway: Gateway,
        setup: dict[str, str],
    ) -> None:
        """Each approved item reports what its executor returned."""
        api_id = gateway.db.get_tool(setup["http_get"]).server_id
        post = gateway.catalog.add_tool(api_id, "http_post")
        gateway.permissions.grant_permission(setup["agent"], post.id)
        failing = gateway.execute(setup["agent"], post.id, {"endpoint": "/fail"}).pending_action_id
        working = gateway.execute(setup["agent"], setup["gated"]).pending_action_id

        result = gateway.batch_approve([failing, working])

        assert result.succeeded == 2
        assert result.failed == 0
        by_id = {item.id: item for item in result.outcomes}
        assert by_id[failing].result["success"] is False
        assert by_id[failing].result["error"] == "HTTP 500"
        assert by_id[working].result["success"] is True

    def test_batch_approve_without_execute(self, gateway: Gateway, setup: dict[str, str]) -> None:
        pending_id = gateway.execute(setup["agent"], setup["gated"]).pending_action_id
        result = gateway.batch_approve([pending_id], execute=False)
        assert result.outcomes[0].result is None

    def test_batch_deny(self, gateway: Gateway, setup: dict[str, str]) -> None:
        ids = [gateway.execute(setup["agent"], setup["gated"]).pending_action_id for _ in range(2)]
        result = gateway.batch_deny(ids)
        assert result.succeeded == 2
        assert len(gateway.list_pending(status=PendingStatus.DENIED)) == 2


class TestStats:
    """Tests for Gateway.stats."""

    def test_counts(self, gateway: Gateway, setup: dict[str, str]) -> None:
        gateway.execute(setup["agent"], setup["safe"])
        gateway.execute(setup["agent"], setup["gated"])
        gateway.execute(setup["agent"], setup["blocked"])

        stats = gateway.stats()

        assert stats.servers == 2
        assert stats.agents == 1
        assert stats.tools == 4
        assert stats.pending == 1
        assert stats.actions_today == 2

    def test_tomorrow_has_no_actions(self, gateway: Gateway, setup: dict[str, str]) -> None:
        gateway.execute(setup["agent"], setup["safe"])
        tomorrow = datetime.now(UTC) + timedelta(days=1)
        assert gateway.stats(now=tomorrow).actions_today == 0


class TestConfiguration:
    """Tests for config-driven construction."""

    def test_db_path_from_config(self, temp_dir: Path) -> None:
        config = load_config_from_dict({"database": {"path": str(temp_dir / "from-config.db")}})
        with Gateway(config=config):
            pass
        assert (temp_dir / "from-config.db").exists()

    def test_default_executors(self) -> None:
        registry = default_executors(GateConfig())
        assert isinstance(registry.get(ServerType.MCP), MockExecutor)
        assert isinstance(registry.get(ServerType.HTTP), HttpExecutor)
        registry.close()
