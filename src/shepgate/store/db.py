"""
SQLite storage for ShepGate.

This module provides persistent storage for the tool catalog, permissions,
pending approvals and the audit log. Everything lives in a single SQLite
database file.

Design Principles:
    - Append-only audit: action_logs rows are never updated or deleted here
    - One permission row per (agent, tool): enforced by a UNIQUE constraint,
      written with upserts
    - Exactly-once resolution: a pending action leaves 'pending' through a
      conditional UPDATE, never through read-then-write
    - Atomic units: transaction() wraps a read and the resulting write in a
      single BEGIN IMMEDIATE transaction

Tables:
    - servers, agents, tools: the administrative catalog
    - tool_permissions: (agent, tool) -> allowed
    - pending_actions: deferred decisions
    - action_logs: terminal decisions
"""

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator, Iterable

from shepgate.errors import (
    DuplicateToolError,
    StorageConnectionError,
    StorageReadError,
    StorageWriteError,
)
from shepgate.schema import (
    ActionLog,
    ActionStatus,
    AgentProfile,
    DashboardStats,
    PendingAction,
    PendingStatus,
    PolicyReason,
    RiskLevel,
    Server,
    ServerType,
    Tool,
    ToolPermission,
    utcnow,
)

# Schema version for migrations
SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS servers (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    command TEXT,
    base_url TEXT,
    auth_secret TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    host_type TEXT NOT NULL,
    api_key TEXT,
    created_at TEXT NOT NULL
);

-- risk_level carries no CHECK constraint: the policy engine owns the
-- interpretation of unknown tiers
CREATE TABLE IF NOT EXISTS tools (
    id TEXT PRIMARY KEY,
    server_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    input_schema_json TEXT,
    risk_level TEXT NOT NULL DEFAULT 'needs_approval',
    created_at TEXT NOT NULL,
    UNIQUE (server_id, name),
    FOREIGN KEY (server_id) REFERENCES servers(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tool_permissions (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    tool_id TEXT NOT NULL,
    allowed INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL,
    UNIQUE (agent_id, tool_id),
    FOREIGN KEY (agent_id) REFERENCES agents(id) ON DELETE CASCADE,
    FOREIGN KEY (tool_id) REFERENCES tools(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS pending_actions (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    tool_id TEXT NOT NULL,
    arguments_json TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    resolved_at TEXT,
    FOREIGN KEY (agent_id) REFERENCES agents(id) ON DELETE CASCADE,
    FOREIGN KEY (tool_id) REFERENCES tools(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS action_logs (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    tool_id TEXT NOT NULL,
    arguments_json TEXT NOT NULL,
    status TEXT NOT NULL,
    reason TEXT NOT NULL,
    detail TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (agent_id) REFERENCES agents(id) ON DELETE CASCADE,
    FOREIGN KEY (tool_id) REFERENCES tools(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_tools_server_id ON tools(server_id);
CREATE INDEX IF NOT EXISTS idx_permissions_agent_id ON tool_permissions(agent_id);
CREATE INDEX IF NOT EXISTS idx_pending_status ON pending_actions(status);
CREATE INDEX IF NOT EXISTS idx_action_logs_created_at ON action_logs(created_at);
"""


def generate_id() -> str:
    """Generate a unique ID for stored records."""
    return uuid.uuid4().hex


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return utcnow().isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class GateDB:
    """
    SQLite database for ShepGate storage.

    One connection is shared by every caller; a re-entrant lock serializes
    threads so the batch resolver can fan out safely.

    Usage:
        with GateDB("shepgate.db") as db:
            with db.transaction():
                tool = db.get_tool(tool_id)
                db.insert_action_log(...)
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
                     Will be created if it doesn't exist.
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            # Autocommit mode: transactions are opened explicitly by transaction()
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level=None,
                timeout=30.0,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            with self._lock:
                self._conn.executescript(CREATE_TABLES_SQL)
                row = self._conn.execute(
                    "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
                ).fetchone()
                if row is None:
                    self._conn.execute(
                        "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                        (SCHEMA_VERSION, now_iso()),
                    )
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """
        Run the enclosed reads and writes as one atomic unit.

        Opens a BEGIN IMMEDIATE transaction so the write lock is taken up
        front. Nested use joins the outer transaction. Any exception rolls
        everything back.
        """
        with self._lock:
            if self._conn.in_transaction:
                yield
                return
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageWriteError(
                    operation="begin_transaction",
                    underlying_error=str(e),
                ) from e
            try:
                yield
            except BaseException:
                self._conn.rollback()
                raise
            try:
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StorageWriteError(
                    operation="commit",
                    underlying_error=str(e),
                ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "GateDB":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Low-level helpers
    # =========================================================================

    def _write(self, operation: str, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        try:
            with self._lock:
                return self._conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StorageWriteError(operation=operation, underlying_error=str(e)) from e

    def _fetchone(self, operation: str, sql: str, params: Iterable[Any] = ()) -> sqlite3.Row | None:
        try:
            with self._lock:
                return self._conn.execute(sql, tuple(params)).fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(operation=operation, underlying_error=str(e)) from e

    def _fetchall(self, operation: str, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        try:
            with self._lock:
                return self._conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise StorageReadError(operation=operation, underlying_error=str(e)) from e

    # =========================================================================
    # Server Operations
    # =========================================================================

    def create_server(
        self,
        name: str,
        type: ServerType,
        command: str | None = None,
        base_url: str | None = None,
        auth_secret: str | None = None,
    ) -> Server:
        """Register a downstream server."""
        server = Server(
            id=generate_id(),
            name=name,
            type=type,
            command=command,
            base_url=base_url,
            auth_secret=auth_secret,
        )
        self._write(
            "create_server",
            """
            INSERT INTO servers (id, name, type, command, base_url, auth_secret, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                server.id,
                server.name,
                server.type.value,
                server.command,
                server.base_url,
                server.auth_secret,
                server.created_at.isoformat(),
            ),
        )
        return server

    def get_server(self, server_id: str) -> Server | None:
        """Get a server by ID."""
        row = self._fetchone("get_server", "SELECT * FROM servers WHERE id = ?", (server_id,))
        return self._row_to_server(row) if row else None

    def list_servers(self) -> list[Server]:
        """List all servers by name."""
        rows = self._fetchall("list_servers", "SELECT * FROM servers ORDER BY name")
        return [self._row_to_server(row) for row in rows]

    def delete_server(self, server_id: str) -> bool:
        """Delete a server and, by cascade, its tools."""
        cursor = self._write("delete_server", "DELETE FROM servers WHERE id = ?", (server_id,))
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_server(row: sqlite3.Row) -> Server:
        return Server(
            id=row["id"],
            name=row["name"],
            type=ServerType(row["type"]),
            command=row["command"],
            base_url=row["base_url"],
            auth_secret=row["auth_secret"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # =========================================================================
    # Agent Operations
    # =========================================================================

    def create_agent(
        self,
        name: str,
        host_type: str,
        description: str | None = None,
        api_key: str | None = None,
    ) -> AgentProfile:
        """Insert a new agent profile (no permission rows)."""
        agent = AgentProfile(
            id=generate_id(),
            name=name,
            host_type=host_type,
            description=description,
            api_key=api_key,
        )
        self._write(
            "create_agent",
            """
            INSERT INTO agents (id, name, description, host_type, api_key, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                agent.id,
                agent.name,
                agent.description,
                agent.host_type,
                agent.api_key,
                agent.created_at.isoformat(),
            ),
        )
        return agent

    def get_agent(self, agent_id: str) -> AgentProfile | None:
        """Get an agent profile by ID."""
        row = self._fetchone("get_agent", "SELECT * FROM agents WHERE id = ?", (agent_id,))
        return self._row_to_agent(row) if row else None

    def list_agents(self) -> list[AgentProfile]:
        """List all agent profiles by name."""
        rows = self._fetchall("list_agents", "SELECT * FROM agents ORDER BY name")
        return [self._row_to_agent(row) for row in rows]

    def list_agent_ids(self) -> list[str]:
        """IDs of every agent profile."""
        rows = self._fetchall("list_agent_ids", "SELECT id FROM agents")
        return [row["id"] for row in rows]

    def delete_agent(self, agent_id: str) -> bool:
        """Delete an agent and, by cascade, its permissions, pending actions and logs."""
        cursor = self._write("delete_agent", "DELETE FROM agents WHERE id = ?", (agent_id,))
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_agent(row: sqlite3.Row) -> AgentProfile:
        return AgentProfile(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            host_type=row["host_type"],
            api_key=row["api_key"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # =========================================================================
    # Tool Operations
    # =========================================================================

    def create_tool(
        self,
        server_id: str,
        name: str,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
        risk_level: str = RiskLevel.NEEDS_APPROVAL.value,
    ) -> Tool:
        """
        Insert a tool (no permission rows).

        Raises:
            DuplicateToolError: If the server already has a tool with this name
        """
        tool = Tool(
            id=generate_id(),
            server_id=server_id,
            name=name,
            description=description,
            input_schema=input_schema,
            risk_level=risk_level,
        )
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO tools (
                        id, server_id, name, description,
                        input_schema_json, risk_level, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        tool.id,
                        tool.server_id,
                        tool.name,
                        tool.description,
                        json.dumps(input_schema) if input_schema is not None else None,
                        tool.risk_level,
                        tool.created_at.isoformat(),
                    ),
                )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise DuplicateToolError(server_id=server_id, name=name) from e
            raise StorageWriteError(operation="create_tool", underlying_error=str(e)) from e
        except sqlite3.Error as e:
            raise StorageWriteError(operation="create_tool", underlying_error=str(e)) from e
        return tool

    def get_tool(self, tool_id: str) -> Tool | None:
        """Get a tool by ID."""
        row = self._fetchone("get_tool", "SELECT * FROM tools WHERE id = ?", (tool_id,))
        return self._row_to_tool(row) if row else None

    def get_tool_by_name(self, name: str, server_id: str) -> Tool | None:
        """Get the tool with this name on a server."""
        row = self._fetchone(
            "get_tool_by_name",
            "SELECT * FROM tools WHERE name = ? AND server_id = ?",
            (name, server_id),
        )
        return self._row_to_tool(row) if row else None

    def list_tools_by_name(self, name: str) -> list[Tool]:
        """All tools with this name, across servers."""
        rows = self._fetchall(
            "list_tools_by_name",
            "SELECT * FROM tools WHERE name = ? ORDER BY created_at",
            (name,),
        )
        return [self._row_to_tool(row) for row in rows]

    def list_tools(self, server_id: str | None = None) -> list[Tool]:
        """List tools, optionally filtered by server."""
        if server_id is None:
            rows = self._fetchall("list_tools", "SELECT * FROM tools ORDER BY name")
        else:
            rows = self._fetchall(
                "list_tools",
                "SELECT * FROM tools WHERE server_id = ? ORDER BY name",
                (server_id,),
            )
        return [self._row_to_tool(row) for row in rows]

    def list_tool_ids(self) -> list[str]:
        """IDs of every tool."""
        rows = self._fetchall("list_tool_ids", "SELECT id FROM tools")
        return [row["id"] for row in rows]

    def get_risk_level(self, tool_id: str) -> str | None:
        """Raw risk tier text of a tool, or None if the tool does not exist."""
        row = self._fetchone(
            "get_risk_level",
            "SELECT risk_level FROM tools WHERE id = ?",
            (tool_id,),
        )
        return row["risk_level"] if row else None

    def update_tool_risk(self, tool_id: str, risk_level: str) -> bool:
        """Set the risk tier of a tool. Returns False if the tool does not exist."""
        cursor = self._write(
            "update_tool_risk",
            "UPDATE tools SET risk_level = ? WHERE id = ?",
            (risk_level, tool_id),
        )
        return cursor.rowcount > 0

    def delete_tool(self, tool_id: str) -> bool:
        """Delete a tool and, by cascade, everything that references it."""
        cursor = self._write("delete_tool", "DELETE FROM tools WHERE id = ?", (tool_id,))
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_tool(row: sqlite3.Row) -> Tool:
        return Tool(
            id=row["id"],
            server_id=row["server_id"],
            name=row["name"],
            description=row["description"],
            input_schema=(
                json.loads(row["input_schema_json"])
                if row["input_schema_json"]
                else None
            ),
            risk_level=row["risk_level"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # =========================================================================
    # Permission Operations
    # =========================================================================

    def get_permission(self, agent_id: str, tool_id: str) -> bool | None:
        """
        Look up the permission flag for (agent, tool).

        Returns:
            True/False from the permission row, or None if no row exists
        """
        row = self._fetchone(
            "get_permission",
            "SELECT allowed FROM tool_permissions WHERE agent_id = ? AND tool_id = ?",
            (agent_id, tool_id),
        )
        return bool(row["allowed"]) if row else None

    def list_permissions(self, agent_id: str) -> list[ToolPermission]:
        """All permission rows of an agent."""
        rows = self._fetchall(
            "list_permissions",
            """
            SELECT p.* FROM tool_permissions p
            JOIN tools t ON t.id = p.tool_id
            WHERE p.agent_id = ?
            ORDER BY t.name
            """,
            (agent_id,),
        )
        return [
            ToolPermission(
                id=row["id"],
                agent_id=row["agent_id"],
                tool_id=row["tool_id"],
                allowed=bool(row["allowed"]),
            )
            for row in rows
        ]

    def upsert_permission(self, agent_id: str, tool_id: str, allowed: bool) -> None:
        """Create or update the single permission row for (agent, tool)."""
        self._write(
            "upsert_permission",
            """
            INSERT INTO tool_permissions (id, agent_id, tool_id, allowed, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (agent_id, tool_id)
            DO UPDATE SET allowed = excluded.allowed, updated_at = excluded.updated_at
            """,
            (generate_id(), agent_id, tool_id, int(allowed), now_iso()),
        )

    def grant_all_for_agent(self, agent_id: str) -> int:
        """
        Upsert allowed=1 for every existing tool.

        Returns:
            Number of tools the agent is now permitted to use
        """
        with self.transaction():
            # "WHERE true" keeps SQLite from parsing ON CONFLICT as a join clause
            self._write(
                "grant_all_for_agent",
                """
                INSERT INTO tool_permissions (id, agent_id, tool_id, allowed, updated_at)
                SELECT lower(hex(randomblob(16))), ?, id, 1, ? FROM tools WHERE true
                ON CONFLICT (agent_id, tool_id)
                DO UPDATE SET allowed = 1, updated_at = excluded.updated_at
                """,
                (agent_id, now_iso()),
            )
            row = self._fetchone("grant_all_for_agent", "SELECT COUNT(*) AS n FROM tools")
        return row["n"]

    def revoke_all_for_agent(self, agent_id: str) -> int:
        """
        Set allowed=0 on every existing permission row of an agent.

        Returns:
            Number of permission rows touched
        """
        cursor = self._write(
            "revoke_all_for_agent",
            "UPDATE tool_permissions SET allowed = 0, updated_at = ? WHERE agent_id = ?",
            (now_iso(), agent_id),
        )
        return cursor.rowcount

    def insert_missing_permissions(self, pairs: Iterable[tuple[str, str]]) -> int:
        """
        Insert allowed=0 rows for (agent_id, tool_id) pairs that have none.

        Existing rows are left untouched, so a concurrent grant is never undone.

        Returns:
            Number of rows inserted
        """
        stamp = now_iso()
        params = [(generate_id(), agent_id, tool_id, stamp) for agent_id, tool_id in pairs]
        if not params:
            return 0
        try:
            with self._lock:
                cursor = self._conn.executemany(
                    """
                    INSERT OR IGNORE INTO tool_permissions (id, agent_id, tool_id, allowed, updated_at)
                    VALUES (?, ?, ?, 0, ?)
                    """,
                    params,
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="insert_missing_permissions",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Pending Action Operations
    # =========================================================================

    def insert_pending_action(self, agent_id: str, tool_id: str, arguments_json: str) -> PendingAction:
        """Create a pending action in state 'pending'."""
        action = PendingAction(
            id=generate_id(),
            agent_id=agent_id,
            tool_id=tool_id,
            arguments_json=arguments_json,
        )
        self._write(
            "insert_pending_action",
            """
            INSERT INTO pending_actions (id, agent_id, tool_id, arguments_json, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                action.id,
                action.agent_id,
                action.tool_id,
                action.arguments_json,
                action.status.value,
                action.created_at.isoformat(),
            ),
        )
        return action

    def get_pending_action(self, action_id: str) -> PendingAction | None:
        """Get a pending action by ID, whatever its status."""
        row = self._fetchone(
            "get_pending_action",
            "SELECT * FROM pending_actions WHERE id = ?",
            (action_id,),
        )
        return self._row_to_pending(row) if row else None

    def list_pending_actions(
        self,
        status: PendingStatus | None = PendingStatus.PENDING,
        limit: int = 100,
    ) -> list[PendingAction]:
        """
        List pending actions, most recent first.

        Args:
            status: Only return actions in this state (None for all)
            limit: Maximum number of rows to return
        """
        if status is None:
            rows = self._fetchall(
                "list_pending_actions",
                "SELECT * FROM pending_actions ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            )
        else:
            rows = self._fetchall(
                "list_pending_actions",
                """
                SELECT * FROM pending_actions WHERE status = ?
                ORDER BY created_at DESC, rowid DESC LIMIT ?
                """,
                (status.value, limit),
            )
        return [self._row_to_pending(row) for row in rows]

    def transition_pending_action(self, action_id: str, new_status: PendingStatus) -> bool:
        """
        Move a pending action out of 'pending'.

        The UPDATE only matches rows still in 'pending', so of two racing
        callers exactly one sees True.

        Returns:
            True if this call performed the transition
        """
        cursor = self._write(
            "transition_pending_action",
            """
            UPDATE pending_actions SET status = ?, resolved_at = ?
            WHERE id = ? AND status = ?
            """,
            (new_status.value, now_iso(), action_id, PendingStatus.PENDING.value),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_pending(row: sqlite3.Row) -> PendingAction:
        return PendingAction(
            id=row["id"],
            agent_id=row["agent_id"],
            tool_id=row["tool_id"],
            arguments_json=row["arguments_json"],
            status=PendingStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            resolved_at=_parse_ts(row["resolved_at"]),
        )

    # =========================================================================
    # Action Log Operations
    # =========================================================================

    def insert_action_log(
        self,
        agent_id: str,
        tool_id: str,
        arguments_json: str,
        status: ActionStatus,
        reason: PolicyReason,
        detail: str | None = None,
    ) -> ActionLog:
        """Append a terminal decision to the audit log."""
        entry = ActionLog(
            id=generate_id(),
            agent_id=agent_id,
            tool_id=tool_id,
            arguments_json=arguments_json,
            status=status,
            reason=reason,
            detail=detail,
        )
        self._write(
            "insert_action_log",
            """
            INSERT INTO action_logs (
                id, agent_id, tool_id, arguments_json, status, reason, detail, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.agent_id,
                entry.tool_id,
                entry.arguments_json,
                entry.status.value,
                entry.reason.value,
                entry.detail,
                entry.created_at.isoformat(),
            ),
        )
        return entry

    def get_action_log(self, log_id: str) -> ActionLog | None:
        """Get an audit entry by ID."""
        row = self._fetchone("get_action_log", "SELECT * FROM action_logs WHERE id = ?", (log_id,))
        return self._row_to_log(row) if row else None

    def list_action_logs(
        self,
        limit: int = 100,
        agent_id: str | None = None,
    ) -> list[ActionLog]:
        """
        List audit entries, most recent first.

        Args:
            limit: Maximum number of rows to return
            agent_id: Only return entries for this agent
        """
        if agent_id is None:
            rows = self._fetchall(
                "list_action_logs",
                "SELECT * FROM action_logs ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            )
        else:
            rows = self._fetchall(
                "list_action_logs",
                """
                SELECT * FROM action_logs WHERE agent_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT ?
                """,
                (agent_id, limit),
            )
        return [self._row_to_log(row) for row in rows]

    @staticmethod
    def _row_to_log(row: sqlite3.Row) -> ActionLog:
        return ActionLog(
            id=row["id"],
            agent_id=row["agent_id"],
            tool_id=row["tool_id"],
            arguments_json=row["arguments_json"],
            status=ActionStatus(row["status"]),
            reason=PolicyReason(row["reason"]),
            detail=row["detail"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # =========================================================================
    # Utility Operations
    # =========================================================================

    def get_stats(self, since: datetime) -> DashboardStats:
        """
        Counters for the overview screen.

        Args:
            since: Count audit entries created at or after this instant
        """
        row = self._fetchone(
            "get_stats",
            """
            SELECT
                (SELECT COUNT(*) FROM servers) AS servers,
                (SELECT COUNT(*) FROM agents) AS agents,
                (SELECT COUNT(*) FROM tools) AS tools,
                (SELECT COUNT(*) FROM pending_actions WHERE status = 'pending') AS pending,
                (SELECT COUNT(*) FROM action_logs WHERE created_at >= ?) AS actions_today
            """,
            (since.isoformat(),),
        )
        return DashboardStats(
            servers=row["servers"],
            agents=row["agents"],
            tools=row["tools"],
            pending=row["pending"],
            actions_today=row["actions_today"],
        )
