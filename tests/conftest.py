"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests,
including an in-memory fake of the SIAKAD REST API served through
``httpx.MockTransport``.
"""
import json
import sys
from datetime import datetime
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from siakad.api.client import SiakadClient  # noqa: E402
from siakad.reminders.notifier import LocalNotifier  # noqa: E402
from siakad.storage.local_store import USER_KEY, LocalStore  # noqa: E402
from siakad.storage.observable import Observable  # noqa: E402

BASE_URL = "http://siakad.test/api"

# Monday 2026-01-12, 07:00
MONDAY_MORNING = datetime(2026, 1, 12, 7, 0)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (fake API server)")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Fake API server
# =============================================================================


class FakeSiakadServer:
    """
    In-memory stand-in for the SIAKAD REST API.

    ``online = False`` makes every request fail at the transport level;
    ``fail_status`` makes every request answer with that status.
    """

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.passwords: dict[str, str] = {}
        self.tasks: list[dict] = []
        self.messages: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.online = True
        self.fail_status: int | None = None
        self._next_id = 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # -- seeding ---------------------------------------------------------------

    def _id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def add_user(self, nim: str, name: str, password: str = "secret", **extra) -> dict:
        user = {"id": self._id(), "nim": nim, "name": name, "email": extra.pop("email", None), **extra}
        self.users[nim] = user
        self.passwords[nim] = password
        return user

    def add_task(self, user_nim: str, title: str, done: bool = False) -> dict:
        task = {"id": self._id(), "user_nim": user_nim, "title": title, "done": int(done)}
        self.tasks.append(task)
        return task

    def add_message(self, user_nim: str, sender: str, text: str, read: bool = False) -> dict:
        message = {"id": self._id(), "user_nim": user_nim, "from": sender, "text": text, "read": int(read)}
        self.messages.append(message)
        return message

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == "/api" + path]

    # -- routing ---------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.online:
            raise httpx.ConnectError("Network request failed", request=request)
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"message": "Server error"})

        method = request.method
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else {}
        parts = path.strip("/").split("/")

        if method == "POST" and path == "/login":
            nim = body.get("nim")
            if nim not in self.users or self.passwords.get(nim) != body.get("password"):
                return httpx.Response(401, json={"message": "Login gagal"})
            return httpx.Response(200, json={"message": "Login berhasil", "user": self.users[nim]})

        if method == "POST" and path == "/register":
            if body.get("nim") in self.users:
                return httpx.Response(409, json={"message": "NIM already registered"})
            # the backend does not store the registration type
            user = self.add_user(body["nim"], body["name"], body["password"], email=body.get("email"))
            return httpx.Response(200, json={"message": "Registered", "user": user})

        if method == "POST" and path == "/user/change-password":
            nim = body.get("nim")
            if nim not in self.users:
                return httpx.Response(404, json={"message": "User not found"})
            if self.passwords[nim] != body.get("old_password"):
                return httpx.Response(403, json={"message": "Old password is incorrect"})
            self.passwords[nim] = body["new_password"]
            return httpx.Response(200, json={"message": "Password updated successfully"})

        if method == "POST" and path == "/user/fcm-token":
            nim = body.get("nim")
            if nim not in self.users:
                return httpx.Response(404, json={"message": "User not found"})
            self.users[nim]["fcm_token"] = body["fcm_token"]
            return httpx.Response(200, json={"message": "FCM token saved", "user": self.users[nim]})

        if method == "GET" and path == "/debug/users":
            return httpx.Response(200, json=list(self.users.values()))

        if method == "GET" and parts[:2] == ["debug", "user"]:
            user = self.users.get(parts[2])
            if user is None:
                return httpx.Response(404, json={"message": "not found"})
            return httpx.Response(200, json=user)

        if parts[0] == "tasks":
            return self._collection(request, body, parts, self.tasks, ("title", "done"))
        if parts[0] == "messages":
            return self._collection(request, body, parts, self.messages, ("read",))

        return httpx.Response(404, json={"message": "Not Found"})

    def _collection(self, request, body, parts, rows, updatable):
        if len(parts) == 1 and request.method == "GET":
            nim = request.url.params.get("nim")
            if not nim:
                return httpx.Response(400, json=[])
            found = [r for r in reversed(rows) if r["user_nim"] == nim]
            if "limit" in request.url.params:
                found = found[: int(request.url.params["limit"])]
            return httpx.Response(200, json=found)

        if len(parts) == 1 and request.method == "POST":
            row = {"id": self._id(), **body}
            rows.append(row)
            return httpx.Response(201, json=row)

        row = next((r for r in rows if str(r["id"]) == parts[1]), None)
        if row is None:
            return httpx.Response(404, json={"message": "No query results for model"})
        if request.method == "PUT":
            row.update({k: v for k, v in body.items() if k in updatable})
            return httpx.Response(200, json=row)
        if request.method == "DELETE":
            rows.remove(row)
            return httpx.Response(200, json={"deleted": True})
        return httpx.Response(405, json={"message": "Method not allowed"})


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def server():
    """Fresh fake API with one registered student."""
    fake = FakeSiakadServer()
    fake.add_user("2021001", "Budi Santoso", "secret", email="budi@example.com")
    return fake


@pytest_asyncio.fixture
async def client(server):
    """SiakadClient wired to the fake server."""
    api = SiakadClient(BASE_URL, timeout=5.0, transport=server.transport())
    yield api
    await api.close()


@pytest.fixture
def store():
    """In-memory store with its own observable."""
    local = LocalStore(LocalStore.MEMORY, observable=Observable())
    yield local
    local.close()


@pytest.fixture
def signed_in(store, server):
    """Store with the fake server's student signed in."""
    store.set(USER_KEY, server.users["2021001"])
    return store


@pytest.fixture
def notifier():
    return LocalNotifier()


@pytest.fixture
def now():
    return MONDAY_MORNING


@pytest.fixture
def clock(now):
    """A clock frozen at ``now``; reassign ``clock.now`` to move it."""

    class FrozenClock:
        def __init__(self, moment):
            self.now = moment

        def __call__(self):
            return self.now

    return FrozenClock(now)
