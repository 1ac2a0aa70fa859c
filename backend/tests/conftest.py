"""Pytest configuration and fixtures for onboarding tests.

Provides a fake onboarding backend (served through httpx.MockTransport),
in-memory progress stores, the wizard/admin/viewer services, and an HTTP
client bound to the FastAPI app.
"""

import asyncio
import json
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from onboarding.main import configure_services, create_app
from onboarding.services.admin_editor import AdminConfigEditor
from onboarding.services.api_client import BackendClient
from onboarding.services.config_resolver import ConfigResolver
from onboarding.services.data_viewer import UserListViewer
from onboarding.services.progress_store import InMemoryProgressStore
from onboarding.services.wizard import OnboardingWizard

BACKEND_URL = "http://backend.test/api"
TEST_SESSION_ID = "test-session-0123456789abcdef"


# ── Fake onboarding backend ─────────────────────────────────

class FakeBackend:
    """In-process stand-in for the remote onboarding API.

    `fail` holds operation names that answer 500, `timeout` those that
    raise a transport timeout.
    """

    def __init__(self):
        self.existing_emails: set[str] = set()
        self.users: list[dict] = []
        self.users_payload = None  # overrides the /users body when set
        self.config: object = {"2": ["ABOUT_ME", "ADDRESS"], "3": ["BIRTHDATE"]}
        self.saved_page_maps: list[dict] = []
        self.registrations: list[dict] = []
        self.register_error: tuple[int, object] | None = None
        self.register_delay = 0.0
        self.email_delay = 0.0
        self.config_delay = 0.0
        self.next_id = 42
        self.fail: set[str] = set()
        self.timeout: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def count(self, method: str, path_prefix: str) -> int:
        return sum(1 for m, p in self.calls if m == method and p.startswith(path_prefix))

    def _guard(self, op: str, request: httpx.Request) -> httpx.Response | None:
        if op in self.timeout:
            raise httpx.ConnectTimeout("timed out", request=request)
        if op in self.fail:
            return httpx.Response(500, json={"message": f"{op} exploded"})
        return None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        method = request.method
        self.calls.append((method, path))

        if path.startswith("/users/email/"):
            if self.email_delay:
                await asyncio.sleep(self.email_delay)
            if (failed := self._guard("email", request)) is not None:
                return failed
            email = path[len("/users/email/"):]
            if email in self.existing_emails:
                return httpx.Response(200, json={"email": email})
            return httpx.Response(404, json={"message": "not found"})

        if path == "/users/register-complete" and method == "POST":
            if self.register_delay:
                await asyncio.sleep(self.register_delay)
            if (failed := self._guard("register", request)) is not None:
                return failed
            if self.register_error is not None:
                status, body = self.register_error
                if isinstance(body, str):
                    return httpx.Response(status, text=body)
                return httpx.Response(status, json=body)
            payload = json.loads(request.content)
            self.registrations.append(payload)
            user = {"id": self.next_id, **{k: v for k, v in payload.items() if k != "password"}}
            self.next_id += 1
            self.users.append(user)
            self.existing_emails.add(payload["email"])
            return httpx.Response(201, json=user)

        if path == "/users" and method == "GET":
            if (failed := self._guard("users", request)) is not None:
                return failed
            body = self.users if self.users_payload is None else self.users_payload
            return httpx.Response(200, json=body)

        if path == "/data/users" and method == "GET":
            if (failed := self._guard("data_users", request)) is not None:
                return failed
            return httpx.Response(200, json=self.users)

        if path == "/admin/config":
            if method == "GET":
                if self.config_delay:
                    await asyncio.sleep(self.config_delay)
                if (failed := self._guard("config", request)) is not None:
                    return failed
                return httpx.Response(200, json=self.config)
            if method == "PUT":
                if (failed := self._guard("save_config", request)) is not None:
                    return failed
                self.saved_page_maps.append(json.loads(request.content)["componentPageMap"])
                return httpx.Response(200, json={"success": True})

        if path == "/users/test":
            return httpx.Response(200, json={"status": "ok"})

        return httpx.Response(404, json={"message": "no such route"})


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def backend_client(fake_backend: FakeBackend) -> AsyncGenerator[BackendClient, None]:
    client = BackendClient(
        base_url=BACKEND_URL,
        timeout=5.0,
        transport=httpx.MockTransport(fake_backend.handler),
    )
    yield client
    await client.aclose()


# ── Services ────────────────────────────────────────────────

@pytest.fixture
def progress_store() -> InMemoryProgressStore:
    return InMemoryProgressStore(session_id=TEST_SESSION_ID)


@pytest.fixture
def resolver(backend_client: BackendClient) -> ConfigResolver:
    return ConfigResolver(backend_client)


@pytest.fixture
def wizard(
    backend_client: BackendClient,
    resolver: ConfigResolver,
    progress_store: InMemoryProgressStore,
) -> OnboardingWizard:
    """Unmounted wizard; tests call mount() when they need it."""
    return OnboardingWizard(backend_client, resolver, progress_store)


@pytest.fixture
def editor(resolver: ConfigResolver) -> AdminConfigEditor:
    return AdminConfigEditor(resolver)


@pytest_asyncio.fixture
async def viewer(backend_client: BackendClient) -> AsyncGenerator[UserListViewer, None]:
    v = UserListViewer(backend_client, interval=0.01)
    yield v
    await v.stop()


# ── HTTP app ────────────────────────────────────────────────

@pytest.fixture
def stores() -> dict[str, InMemoryProgressStore]:
    """Progress stores by session id, shared across app requests."""
    return {}


@pytest.fixture
def app(backend_client: BackendClient, stores: dict[str, InMemoryProgressStore]) -> FastAPI:
    """App wired to the fake backend and in-memory stores (lifespan not run)."""
    application = create_app(use_lifespan=False)

    def store_factory(session_id: str) -> InMemoryProgressStore:
        return stores.setdefault(session_id, InMemoryProgressStore(session_id))

    configure_services(application, backend_client, store_factory)
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app, pinned to one wizard session."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Session-ID": TEST_SESSION_ID},
    ) as ac:
        yield ac


# ── Test Markers ─────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP endpoint tests")
    config.addinivalue_line("markers", "wizard: Wizard state machine tests")
    config.addinivalue_line("markers", "admin: Admin layout editor tests")
    config.addinivalue_line("markers", "redis: Tests against a Redis client")
