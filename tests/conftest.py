import asyncio
import json
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from bulkdesk import main
from bulkdesk.dependencies import ServiceContainer
from bulkdesk.events.emitter import serialize_payload
from bulkdesk.jobs.bulk_job_runner import BulkJobRunner
from bulkdesk.jobs.job_registry import JobRegistry
from bulkdesk.jobs.verification_worker import VerificationPool
from bulkdesk.models.domain.profile_domain import Profile
from bulkdesk.services.errors import ProfileValidationError
from bulkdesk.services.profile_store import ProfileStore
from bulkdesk.services.ticket_log import TicketLog
from bulkdesk.services.ticket_service import TicketService
from bulkdesk.services.token_cache import TokenCache
from bulkdesk.services.zoho_desk_service import ZohoDeskService
from bulkdesk.services.zoho_oauth_service import TokenResponse

DESK_BASE_URL = "https://desk.test"

PROFILE_DATA = {
    "profileName": "acme",
    "orgId": "111",
    "defaultDepartmentId": "222",
    "fromEmailAddress": "support@acme.test",
    "mailReplyAddressId": "333",
    "clientId": "client-id-acme",
    "clientSecret": "client-secret-acme",
    "refreshToken": "refresh-token-acme",
}

NO_REPLY_PROFILE_DATA = {
    "profileName": "bare",
    "orgId": "444",
    "defaultDepartmentId": "555",
    "clientId": "client-id-bare",
    "clientSecret": "client-secret-bare",
    "refreshToken": "refresh-token-bare",
}


class RecordingEmitter:
    """Collects emitted events as (name, wire payload) pairs."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []
        self.closed = False

    def emit(self, event, data) -> None:
        if self.closed:
            return
        self.events.append((str(getattr(event, "value", event)), serialize_payload(data)))

    def close(self) -> None:
        self.closed = True

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def named(self, name: str) -> list[dict]:
        return [data for event, data in self.events if event == name]


class FakeOAuthService:
    def __init__(self, expires_in: int = 3600):
        self.calls = 0
        self.expires_in = expires_in
        self.error: Exception | None = None
        # Raised once each, before `error`
        self.errors: list[Exception] = []

    async def refresh_access_token(self, profile):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        if self.error is not None:
            raise self.error
        return TokenResponse(
            {
                "access_token": f"access-{self.calls}",
                "expires_in": self.expires_in,
                "api_domain": "https://www.zohoapis.com",
                "token_type": "Bearer",
            }
        )


class FakeDeskService:
    """In-memory stand-in for ZohoDeskService."""

    def __init__(self):
        self.created: list[str] = []
        self.replies: list[str] = []
        self.create_results: list = []
        self.reply_error: Exception | None = None
        self.history: dict[str, dict] = {}
        self.history_error: Exception | None = None
        self.failure_alerts: dict = {"data": []}
        self.history_calls = 0
        self.cleared = 0
        self.connection_error: Exception | None = None
        self.on_create = None

    async def create_ticket(self, profile, email, subject, description):
        self.created.append(email)
        if self.on_create is not None:
            self.on_create(email)
        if self.create_results:
            result = self.create_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        number = 100 + len(self.created) - 1
        return {"id": f"id-{number}", "ticketNumber": str(number)}

    async def send_reply(self, profile, ticket_id, to, content):
        if self.reply_error is not None:
            raise self.reply_error
        self.replies.append(ticket_id)
        return {"status": "sent", "ticketId": ticket_id}

    async def get_ticket_history(self, profile, ticket_id, event_filter):
        self.history_calls += 1
        if self.history_error is not None:
            raise self.history_error
        return self.history.get(event_filter, {"data": []})

    async def get_email_failure_alerts(self, profile, limit=None):
        return self.failure_alerts

    async def clear_email_failure_alerts(self, profile):
        self.cleared += 1
        return {}

    async def get_mail_reply_address(self, profile):
        return {"id": profile.mail_reply_address_id, "displayName": "Acme Support"}

    async def update_mail_reply_address(self, profile, display_name):
        if not profile.mail_reply_address_id:
            raise ProfileValidationError("Mail Reply Address ID is not configured for this profile.")
        return {"id": profile.mail_reply_address_id, "displayName": display_name}

    async def check_connection(self, profile):
        if self.connection_error is not None:
            raise self.connection_error
        return {"expires_in": 3600, "api_domain": "https://www.zohoapis.com"}


@pytest.fixture
def profile() -> Profile:
    return Profile.model_validate(PROFILE_DATA)


@pytest.fixture
def bare_profile() -> Profile:
    return Profile.model_validate(NO_REPLY_PROFILE_DATA)


@pytest.fixture
def profiles_file(tmp_path) -> Path:
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps([PROFILE_DATA, NO_REPLY_PROFILE_DATA]), encoding="utf-8")
    return path


@pytest.fixture
def ticket_log(tmp_path) -> TicketLog:
    return TicketLog(tmp_path / "ticket-log.json")


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def fake_oauth() -> FakeOAuthService:
    return FakeOAuthService()


@pytest.fixture
def fake_desk() -> FakeDeskService:
    return FakeDeskService()


@pytest.fixture
def make_desk_service(fake_oauth):
    """Real ZohoDeskService talking to an httpx.MockTransport handler."""

    def _make(handler) -> ZohoDeskService:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ZohoDeskService(TokenCache(fake_oauth), client, base_url=DESK_BASE_URL)

    return _make


@pytest.fixture
def make_runner(profiles_file, ticket_log):
    """BulkJobRunner over the given desk service with no verification settle delay."""

    def _make(desk, *, settle_delay_seconds: float = 0, cancel_verification_on_end=True):
        pool = VerificationPool(desk, settle_delay_seconds=settle_delay_seconds)
        return BulkJobRunner(
            JobRegistry(),
            ProfileStore(profiles_file),
            TicketService(desk, ticket_log),
            pool,
            cancel_verification_on_end=cancel_verification_on_end,
        )

    return _make


@pytest.fixture
def eventually():
    """Await until ``predicate()`` is true, failing after ``timeout`` seconds."""

    async def _wait(predicate, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
def make_container(profiles_file, ticket_log, fake_oauth):
    """ServiceContainer wired around a fake desk service."""

    def _make(desk, *, settle_delay_seconds: float = 0) -> ServiceContainer:
        registry = JobRegistry()
        profile_store = ProfileStore(profiles_file)
        ticket_service = TicketService(desk, ticket_log)
        pool = VerificationPool(desk, settle_delay_seconds=settle_delay_seconds)
        return ServiceContainer(
            http_client=httpx.AsyncClient(),
            profile_store=profile_store,
            ticket_log=ticket_log,
            token_cache=TokenCache(fake_oauth),
            desk_service=desk,
            ticket_service=ticket_service,
            registry=registry,
            verification_pool=pool,
            runner=BulkJobRunner(registry, profile_store, ticket_service, pool),
        )

    return _make


@pytest.fixture
def container(make_container, fake_desk) -> ServiceContainer:
    return make_container(fake_desk)


@pytest.fixture
def client(monkeypatch, container):
    """TestClient running the real app around the fake-backed container."""
    monkeypatch.setattr(main, "build_container", lambda: container)
    with TestClient(main.app) as test_client:
        yield test_client
