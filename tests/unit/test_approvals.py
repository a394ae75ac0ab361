"""
Unit tests for the Approval Resolver.

Tests cover:
- Approve and deny transitions with their audit entries
- Second resolution fails without side effects
- Unknown ids
- Batch resolution with partial failure
- Concurrent resolution of one action happens exactly once
- Store failures roll back the status change and propagate
"""

import sqlite3
import threading
from pathlib import Path
from typing import Callable

import pytest

from shepgate.errors import (
    InvalidStateTransitionError,
    PendingActionNotFoundError,
    ShepGateError,
    StorageWriteError,
)
from shepgate.permissions import PermissionService
from shepgate.policy import ApprovalResolver, PolicyEngine
from shepgate.schema import (
    ActionStatus,
    AgentProfile,
    PendingStatus,
    PolicyReason,
    ResolveOutcome,
    Tool,
)
from shepgate.store import GateDB


@pytest.fixture
def queue(
    engine: PolicyEngine,
    permissions: PermissionService,
    agent: AgentProfile,
    make_tool: Callable[..., Tool],
) -> Callable[[], str]:
    """Factory creating a fresh pending action and returning its id."""
    tool = make_tool("github_create_issue")
    permissions.grant_permission(agent.id, tool.id)

    def _queue() -> str:
        return engine.evaluate(agent.id, tool.id, '{"title": "bug"}').pending_action_id

    return _queue


def _audit_rows(db_path: Path) -> list[tuple[str, str]]:
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute("SELECT status, reason FROM action_logs").fetchall()
    finally:
        conn.close()


class TestResolve:
    """Tests for single resolutions."""

    def test_approve(
        self,
        db_path: Path,
        resolver: ApprovalResolver,
        queue: Callable[[], str],
    ) -> None:
        pending_id = queue()
        action = resolver.approve(pending_id)

        assert action.status == PendingStatus.APPROVED
        assert action.resolved_at is not None
        assert _audit_rows(db_path) == [("executed", "approved")]

    def test_deny(
        self,
        db: GateDB,
        resolver: ApprovalResolver,
        queue: Callable[[], str],
    ) -> None:
        pending_id = queue()
        action = resolver.deny(pending_id)

        assert action.status == PendingStatus.DENIED
        entries = db.list_action_logs()
        assert len(entries) == 1
        assert entries[0].status == ActionStatus.DENIED
        assert entries[0].reason == PolicyReason.DENIED_BY_USER
        assert entries[0].arguments_json == '{"title": "bug"}'

    def test_approve_twice_fails(
        self,
        db_path: Path,
        resolver: ApprovalResolver,
        queue: Callable[[], str],
    ) -> None:
        """A second resolution is refused and writes nothing."""
        pending_id = queue()
        resolver.approve(pending_id)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            resolver.approve(pending_id)

        assert exc_info.value.current_status == "approved"
        assert len(_audit_rows(db_path)) == 1

    def test_deny_after_approve_fails(
        self,
        db: GateDB,
        resolver: ApprovalResolver,
        queue: Callable[[], str],
    ) -> None:
        pending_id = queue()
        resolver.approve(pending_id)

        with pytest.raises(InvalidStateTransitionError):
            resolver.deny(pending_id)

        assert db.get_pending_action(pending_id).status == PendingStatus.APPROVED

    def test_unknown_id(self, db_path: Path, resolver: ApprovalResolver) -> None:
        with pytest.raises(PendingActionNotFoundError):
            resolver.resolve("missing", ResolveOutcome.APPROVE)
        assert _audit_rows(db_path) == []

    def test_outcome_accepts_text(self, resolver: ApprovalResolver, queue: Callable[[], str]) -> None:
        action = resolver.resolve(queue(), "deny")  # type: ignore[arg-type]
        assert action.status == PendingStatus.DENIED


class TestBatchResolve:
    """Tests for batch resolution."""

    def test_partial_failure(
        self,
        db: GateDB,
        resolver: ApprovalResolver,
        queue: Callable[[], str],
    ) -> None:
        """One bad id never aborts the others."""
        first, second = queue(), queue()

        result = resolver.batch_resolve([first, "nonexistent", second], ResolveOutcome.APPROVE)

        assert result.succeeded == 2
        assert result.failed == 1
        assert [o.id for o in result.outcomes] == [first, "nonexistent", second]
        assert [o.ok for o in result.outcomes] == [True, False, True]
        assert result.outcomes[1].error
        assert db.get_pending_action(first).status == PendingStatus.APPROVED
        assert db.get_pending_action(second).status == PendingStatus.APPROVED

    def test_batch_deny(self, resolver: ApprovalResolver, queue: Callable[[], str]) -> None:
        ids = [queue() for _ in range(5)]
        result = resolver.batch_resolve(ids, ResolveOutcome.DENY)
        assert result.succeeded == 5
        assert result.failed == 0

    def test_duplicate_id_in_batch(
        self,
        db_path: Path,
        resolver: ApprovalResolver,
        queue: Callable[[], str],
    ) -> None:
        """The same id twice in one batch resolves once."""
        pending_id = queue()
        result = resolver.batch_resolve([pending_id, pending_id], ResolveOutcome.APPROVE)
        assert result.succeeded == 1
        assert result.failed == 1
        assert len(_audit_rows(db_path)) == 1

    def test_empty_batch(self, resolver: ApprovalResolver) -> None:
        result = resolver.batch_resolve([], ResolveOutcome.APPROVE)
        assert result.succeeded == 0
        assert result.failed == 0


class TestConcurrency:
    """Tests for racing resolutions."""

    def test_concurrent_resolve_exactly_once(
        self,
        db_path: Path,
        resolver: ApprovalResolver,
        queue: Callable[[], str],
    ) -> None:
        pending_id = queue()
        barrier = threading.Barrier(8)
        wins: list[str] = []
        losses: list[ShepGateError] = []

        def worker(outcome: ResolveOutcome) -> None:
            barrier.wait()
            try:
                resolver.resolve(pending_id, outcome)
                wins.append(outcome.value)
            except InvalidStateTransitionError as e:
                losses.append(e)

        threads = [
            threading.Thread(
                target=worker,
                args=(ResolveOutcome.APPROVE if i % 2 else ResolveOutcome.DENY,),
            )
            for i in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(wins) == 1
        assert len(losses) == 7
        assert len(_audit_rows(db_path)) == 1

    def test_separate_connections(
        self,
        db_path: Path,
        queue: Callable[[], str],
    ) -> None:
        """Two processes' worth of connections still resolve once."""
        pending_id = queue()
        with GateDB(db_path) as other_db:
            ApprovalResolver(other_db).approve(pending_id)
            with pytest.raises(InvalidStateTransitionError):
                ApprovalResolver(other_db).deny(pending_id)
        assert len(_audit_rows(db_path)) == 1


class TestListPending:
    """Tests for the queue projection."""

    def test_only_pending_by_default(self, resolver: ApprovalResolver, queue: Callable[[], str]) -> None:
        first, second = queue(), queue()
        resolver.deny(first)

        assert [a.id for a in resolver.list_pending_actions()] == [second]
        assert len(resolver.list_pending_actions(status=None)) == 2


class TestStorageFailure:
    """Tests for a store failure part-way through a resolution."""

    @pytest.fixture
    def broken_audit(self, db: GateDB, monkeypatch: pytest.MonkeyPatch) -> None:
        """Make every audit write fail after the status update has run."""

        def fail(*args, **kwargs):
            raise StorageWriteError(operation="insert_action_log", underlying_error="disk I/O error")

        monkeypatch.setattr(db, "insert_action_log", fail)

    def test_status_change_rolled_back(
        self,
        db: GateDB,
        db_path: Path,
        resolver: ApprovalResolver,
        queue: Callable[[], str],
        broken_audit: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        pending_id = queue()

        with pytest.raises(StorageWriteError):
            resolver.approve(pending_id)

        assert db.get_pending_action(pending_id).status == PendingStatus.PENDING
        assert _audit_rows(db_path) == []

        monkeypatch.undo()
        assert resolver.approve(pending_id).status == PendingStatus.APPROVED

    def test_batch_reports_storage_failure(
        self,
        db: GateDB,
        resolver: ApprovalResolver,
        queue: Callable[[], str],
        broken_audit: None,
    ) -> None:
        ids = [queue(), queue()]

        result = resolver.batch_resolve(ids, ResolveOutcome.DENY)

        assert result.failed == 2
        assert all("disk I/O error" in item.error for item in result.outcomes)
        assert all(db.get_pending_action(i).status == PendingStatus.PENDING for i in ids)
