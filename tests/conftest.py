"""Pytest fixtures for backend tests."""

from __future__ import annotations

import copy
import os
import uuid
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient
from postgrest import APIError


def _set_default_env() -> None:
    os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
    os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")
    os.environ.setdefault("ENABLE_SCHEDULER", "false")
    os.environ.setdefault("USER_CACHE_TTL_SECONDS", "0")
    os.environ.setdefault("ROLE_CACHE_TTL_SECONDS", "0")


# Settings are read when ``app.config`` is first imported.
_set_default_env()

UNIQUE_KEYS = {
    "election_ballots": [("election_id", "voter_id")],
    "election_candidates": [("election_id", "user_id")],
    "member_roles": [("user_id", "role")],
}
NO_ID_TABLES = {"election_candidates", "member_roles"}
CASCADES = {"elections": [("election_candidates", "election_id"), ("election_ballots", "election_id")]}


def _norm(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value
    return str(value)


class FakeQuery:
    """Subset of the PostgREST query builder backed by in-memory rows."""

    def __init__(self, store: FakeSupabase, table: str) -> None:
        self.store = store
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters: list[tuple[str, str, Any]] = []
        self.order_by: tuple[str, bool] | None = None
        self.row_limit: int | None = None
        self.row_offset = 0
        self.count_mode: str | None = None
        self.head = False

    def select(self, columns: str = "*", count: str | None = None, head: bool = False):
        self.action, self.columns, self.count_mode, self.head = "select", columns, count, head
        return self

    def insert(self, payload: Any):
        self.action, self.payload = "insert", payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column: str, value: Any):
        self.filters.append((column, "eq", value))
        return self

    def in_(self, column: str, values: list[Any]):
        self.filters.append((column, "in", values))
        return self

    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, size: int):
        self.row_limit = size
        return self

    def offset(self, size: int):
        self.row_offset = size
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        for column, op, value in self.filters:
            current = _norm(row.get(column))
            if op == "eq" and current != _norm(value):
                return False
            if op == "in" and current not in {_norm(item) for item in value}:
                return False
        return True

    def _project(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.columns.strip() == "*":
            return dict(row)
        wanted = [column.strip() for column in self.columns.split(",")]
        return {column: row.get(column) for column in wanted}

    def execute(self) -> SimpleNamespace:
        self.store.calls.append((self.action, self.table))
        rows = self.store.tables.setdefault(self.table, [])

        if self.action == "insert":
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.store.insert_row(self.table, dict(p)) for p in payloads]
            return SimpleNamespace(data=[dict(row) for row in inserted], count=None)

        matched = [row for row in rows if self._matches(row)]
        if self.action == "delete":
            self.store.tables[self.table] = [row for row in rows if row not in matched]
            removed = {_norm(row.get("id")) for row in matched}
            for child, column in CASCADES.get(self.table, []):
                self.store.tables[child] = [
                    row
                    for row in self.store.tables.get(child, [])
                    if _norm(row.get(column)) not in removed
                ]
            return SimpleNamespace(data=[dict(row) for row in matched], count=None)

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda row: str(row.get(column)), reverse=desc)
        matched = matched[self.row_offset :]
        if self.row_limit is not None:
            matched = matched[: self.row_limit]
        count = len(matched) if self.count_mode else None
        data = [] if self.head else [self._project(row) for row in matched]
        return SimpleNamespace(data=data, count=count)


class FakeRpc:
    """Stored-function call that runs atomically against the fake store."""

    def __init__(self, store: FakeSupabase, name: str, params: dict[str, Any]) -> None:
        self.store = store
        self.name = name
        self.params = params

    def execute(self) -> SimpleNamespace:
        self.store.calls.append(("rpc", self.name))
        handler = getattr(self.store, f"rpc_{self.name}")
        snapshot = copy.deepcopy(self.store.tables)
        try:
            data = handler(**self.params)
        except Exception:
            self.store.tables = snapshot
            raise
        return SimpleNamespace(data=data, count=None)


class FakeSupabase:
    """In-memory stand-in for the Supabase client with unique indexes."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    def election_row(self, election_id: str) -> dict[str, Any] | None:
        for row in self.tables.get("elections", []):
            if _norm(row["id"]) == _norm(election_id):
                return row
        return None

    def rpc_create_election(
        self,
        p_title: str,
        p_description: str | None,
        p_start_date: str,
        p_end_date: str,
        p_created_by: str,
        p_candidate_ids: list[str],
    ) -> list[dict[str, Any]]:
        election = self.insert_row(
            "elections",
            {
                "title": p_title,
                "description": p_description,
                "start_date": p_start_date,
                "end_date": p_end_date,
                "is_finalized": False,
                "finalized_at": None,
                "finalized_by": None,
                "created_by": p_created_by,
            },
        )
        for user_id in p_candidate_ids:
            self.insert_row("election_candidates", {"election_id": election["id"], "user_id": user_id})
        return [dict(election)]

    def rpc_update_election(
        self,
        p_election_id: str,
        p_start_date: str,
        p_end_date: str,
        p_candidate_ids: list[str] | None = None,
        p_require_no_ballots: bool = False,
    ) -> list[dict[str, Any]]:
        election = self.election_row(p_election_id)
        if election is None:
            return [{"success": False, "reason": "election_not_found"}]
        if election["is_finalized"]:
            return [{"success": False, "reason": "election_finalized"}]
        has_ballots = any(
            _norm(row["election_id"]) == _norm(p_election_id)
            for row in self.tables.get("election_ballots", [])
        )
        if p_require_no_ballots and has_ballots:
            return [{"success": False, "reason": "election_locked"}]

        election.update(start_date=p_start_date, end_date=p_end_date)
        if p_candidate_ids is not None:
            self.tables["election_candidates"] = [
                row
                for row in self.tables.get("election_candidates", [])
                if _norm(row["election_id"]) != _norm(p_election_id)
            ]
            for user_id in p_candidate_ids:
                self.insert_row(
                    "election_candidates", {"election_id": p_election_id, "user_id": user_id}
                )
        return [{"success": True, "reason": "updated"}]

    def rpc_finalize_election(
        self,
        p_election_id: str,
        p_actor_id: str | None,
        p_promotions: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        election = self.election_row(p_election_id)
        if election is None:
            return [{"success": False, "reason": "election_not_found", "finalized_at": None}]
        if election["is_finalized"]:
            return [{"success": False, "reason": "already_finalized", "finalized_at": None}]
        finalized_at = datetime.now(tz=UTC)
        if datetime.fromisoformat(election["end_date"]) > finalized_at:
            return [{"success": False, "reason": "election_not_completed", "finalized_at": None}]

        election.update(
            is_finalized=True, finalized_at=finalized_at.isoformat(), finalized_by=p_actor_id
        )
        for promotion in p_promotions:
            user_id = promotion["user_id"]
            for role in promotion["roles"]:
                try:
                    self.insert_row("member_roles", {"user_id": user_id, "role": role})
                except APIError as exc:
                    if exc.code != "23505":
                        raise
            self.tables["member_roles"] = [
                row
                for row in self.tables["member_roles"]
                if not (row["user_id"] == user_id and row["role"] == "Full Member")
            ]
        return [{"success": True, "reason": "finalized", "finalized_at": finalized_at.isoformat()}]

    def insert_row(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        rows = self.tables.setdefault(table, [])
        for key in UNIQUE_KEYS.get(table, []):
            values = tuple(_norm(row.get(column)) for column in key)
            if any(tuple(_norm(other.get(c)) for c in key) == values for other in rows):
                raise APIError(
                    {
                        "message": f'duplicate key value violates unique constraint "{table}"',
                        "code": "23505",
                        "hint": None,
                        "details": None,
                    }
                )
        if table not in NO_ID_TABLES:
            row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(tz=UTC).isoformat())
        rows.append(row)
        return row

    def add_member(self, user_id: str, first: str, last: str, *roles: str) -> None:
        self.insert_row(
            "users",
            {"id": user_id, "first_name": first, "last_name": last, "biography": None},
        )
        for role in roles:
            self.insert_row("member_roles", {"user_id": user_id, "role": role})

    def roles_of(self, user_id: str) -> set[str]:
        return {
            row["role"] for row in self.tables.get("member_roles", []) if row["user_id"] == user_id
        }

    def add_election(
        self,
        start: datetime,
        end: datetime,
        candidate_ids: list[str],
        ballots: list[tuple[str, list[str]]] | None = None,
        **extra: Any,
    ) -> str:
        """Insert an election directly, bypassing service validation."""
        election = self.insert_row(
            "elections",
            {
                "title": extra.pop("title", "Board election"),
                "description": None,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "is_finalized": extra.pop("is_finalized", False),
                "finalized_at": None,
                "finalized_by": None,
                "created_by": "admin",
                **extra,
            },
        )
        election_id = election["id"]
        for user_id in candidate_ids:
            self.insert_row("election_candidates", {"election_id": election_id, "user_id": user_id})
        for voter_id, choices in ballots or []:
            self.insert_row(
                "election_ballots",
                {
                    "election_id": election_id,
                    "voter_id": voter_id,
                    "candidate_ids": choices,
                    "cast_at": datetime.now(tz=UTC).isoformat(),
                },
            )
        return election_id


CANDIDATES = ["alice", "bob", "carol", "dave", "erin"]


@pytest.fixture
def fake_db() -> FakeSupabase:
    """Store seeded with an admin, five eligible members and a guest."""
    db = FakeSupabase()
    db.add_member("admin", "Ada", "Admin", "Admin")
    db.add_member("alice", "Alice", "Anders", "Full Member")
    db.add_member("bob", "Bob", "Berg", "Full Member")
    db.add_member("carol", "Carol", "Cruz", "Full Member")
    db.add_member("dave", "Dave", "Diaz", "Full Member")
    db.add_member("erin", "Erin", "Eng", "Admin")
    db.add_member("guest", "Gus", "Guest")
    return db


@pytest.fixture
def candidate_ids() -> list[str]:
    return list(CANDIDATES)


@pytest.fixture
def now() -> datetime:
    return datetime.now(tz=UTC)


@pytest.fixture
def active_election(fake_db: FakeSupabase, now: datetime) -> str:
    return fake_db.add_election(now - timedelta(days=1), now + timedelta(days=1), CANDIDATES)


@pytest.fixture
def completed_election(fake_db: FakeSupabase, now: datetime) -> str:
    """Closed election tallied alice 5, bob 4, carol 3, dave 2, erin 1."""
    return fake_db.add_election(
        now - timedelta(days=7),
        now - timedelta(hours=1),
        CANDIDATES,
        ballots=[
            ("admin", ["alice", "bob", "carol"]),
            ("guest", ["alice", "bob", "carol"]),
            ("dave", ["alice", "bob", "carol"]),
            ("erin", ["alice", "bob", "dave"]),
            ("carol", ["alice", "dave", "erin"]),
        ],
    )


@pytest.fixture(scope="session")
def client() -> TestClient:
    """Create a FastAPI test client."""
    from app.main import app

    return TestClient(app)


@pytest.fixture
def api(client: TestClient, fake_db: FakeSupabase):
    """Test client wired to ``fake_db``; ``api.login(user_id)`` switches identity."""
    from app.dependencies import get_current_user, get_db_client
    from app.main import app

    identity = {"id": "admin"}
    app.dependency_overrides[get_db_client] = lambda: fake_db
    app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=identity["id"])

    def login(user_id: str) -> None:
        identity["id"] = user_id

    client.login = login  # type: ignore[attr-defined]
    yield client
    app.dependency_overrides.clear()
