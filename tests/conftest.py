"""Shared fixtures: an in-memory Supabase stand-in, seeded users and an HTTP client."""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from swapseva.core import supabase as supabase_module
from swapseva.core.realtime import manager
from swapseva.api.endpoints.users import create_access_token


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Mimics the subset of the PostgREST query builder the app uses."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.operation = "select"
        self.payload: Any = None
        self.columns = "*"
        self.count_mode: Optional[str] = None
        self.predicates: List[Callable[[Dict[str, Any]], bool]] = []
        self.ordering: List[tuple] = []
        self.window: Optional[tuple] = None

    # Operations
    def select(self, columns="*", count=None):
        self.operation, self.columns, self.count_mode = "select", columns, count
        return self

    def insert(self, data):
        self.operation, self.payload = "insert", data
        return self

    def update(self, data):
        self.operation, self.payload = "update", data
        return self

    def delete(self):
        self.operation = "delete"
        return self

    # Filters
    def eq(self, column, value):
        self.predicates.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.predicates.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        self.predicates.append(lambda row: row.get(column) in values)
        return self

    def contains(self, column, values):
        if isinstance(values, dict):
            self.predicates.append(
                lambda row: all((row.get(column) or {}).get(k) == v for k, v in values.items())
            )
        else:
            self.predicates.append(lambda row: all(v in (row.get(column) or []) for v in values))
        return self

    def gt(self, column, value):
        self.predicates.append(lambda row: row.get(column) is not None and row.get(column) > value)
        return self

    def lt(self, column, value):
        self.predicates.append(lambda row: row.get(column) is not None and row.get(column) < value)
        return self

    # Modifiers
    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def range(self, start, end):
        self.window = (start, end + 1)
        return self

    def limit(self, size):
        self.window = (0, size)
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self.db.tables.setdefault(self.table_name, []) if all(p(row) for p in self.predicates)]

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table_name, self.operation))
        if self.db.fail_on and self.db.fail_on == (self.table_name, self.operation):
            raise RuntimeError(f"simulated failure on {self.table_name}.{self.operation}")

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.operation == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            new_rows = [copy.deepcopy(row) for row in new_rows]
            for row in new_rows:
                row.setdefault("id", str(uuid.uuid4()))
            rows.extend(new_rows)
            return FakeResponse(copy.deepcopy(new_rows))

        matching = self._matching()

        if self.operation == "update":
            for row in matching:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matching))

        if self.operation == "delete":
            self.db.tables[self.table_name] = [row for row in rows if row not in matching]
            return FakeResponse(copy.deepcopy(matching))

        total = len(matching)
        for column, desc in reversed(self.ordering):
            matching.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
        if self.window:
            matching = matching[self.window[0]:self.window[1]]
        if self.columns != "*":
            wanted = [c.strip() for c in self.columns.split(",")]
            matching = [{c: row.get(c) for c in wanted} for row in matching]
        return FakeResponse(copy.deepcopy(matching), total if self.count_mode else None)


class FakeAuth:
    def __init__(self):
        self.accepted: Dict[str, str] = {}

    def sign_in_with_password(self, credentials):
        if self.accepted.get(credentials["email"]) != credentials["password"]:
            raise RuntimeError("Invalid login credentials")
        return type("AuthResponse", (), {"user": {"email": credentials["email"]}})()


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.fail_on: Optional[tuple] = None
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, table, **filters) -> List[Dict[str, Any]]:
        return [
            row for row in self.tables.get(table, [])
            if all(row.get(k) == v for k, v in filters.items())
        ]


def make_offering(type: str, title: str, **extra) -> Dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "type": type,
        "title": title,
        "description": extra.pop("description", f"{title} for trade"),
        "category": extra.pop("category", None),
        "isApproved": True,
        "isRejected": False,
        **extra,
    }


@pytest.fixture(autouse=True)
def fake_db(monkeypatch):
    """Route every query through an in-memory database."""
    db = FakeSupabase()
    monkeypatch.setattr(supabase_module, "get_supabase_client", lambda: db)
    manager.rooms.clear()
    yield db
    manager.rooms.clear()


@pytest.fixture
def seed_user(fake_db):
    def _seed(name: str, offerings: Optional[List[Dict[str, Any]]] = None, role: str = "user", **extra):
        now = datetime.now(timezone.utc).isoformat()
        user = {
            "id": str(uuid.uuid4()),
            "email": f"{name.lower().replace(' ', '.')}@example.com",
            "name": name,
            "avatar": None,
            "role": role,
            "offerings": offerings or [],
            "created_at": now,
            "updated_at": now,
            **extra,
        }
        fake_db.tables.setdefault("users", []).append(copy.deepcopy(user))
        return copy.deepcopy(user)
    return _seed


@pytest.fixture
def guitar_lessons():
    return make_offering("skill", "Guitar Lessons", category="Music", skillLevel="advanced")


@pytest.fixture
def iphone():
    return make_offering("good", "iPhone 13 Pro", category="Electronics", condition="good")


@pytest.fixture
def python_tutoring():
    return make_offering("skill", "Python Tutoring", category="Education", skillLevel="intermediate")


@pytest.fixture
def road_bike():
    return make_offering("good", "Road Bike", category="Sports", condition="used")


@pytest.fixture
def alice(seed_user, guitar_lessons, road_bike):
    return seed_user("Alice", [guitar_lessons, road_bike])


@pytest.fixture
def bob(seed_user, iphone, python_tutoring):
    return seed_user("Bob", [iphone, python_tutoring])


@pytest.fixture
def client():
    from swapseva.main import app
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token({'sub': user['id']})}"}
    return _headers


class RecordingSocket:
    """Stands in for a WebSocket and records what the relay sends it."""

    def __init__(self, fail=False):
        self.frames: List[Dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, frame):
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(frame)


@pytest.fixture
def recording_socket():
    return RecordingSocket
