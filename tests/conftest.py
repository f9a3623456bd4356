"""Shared fixtures: an in-memory SQLite store, a controllable clock, and fake collaborators."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from paysync.agents.base import ExtractionOracle
from paysync.core.db import init_db, make_session_factory
from paysync.core.errors import CredentialError, ExtractionError, ProviderError
from paysync.core.models import MailMessage, MessagePage, PaymentCandidate, TokenRefreshResult
from paysync.services.base import CredentialProvider, MessageSource
from paysync.services.credentials import CredentialResolver
from paysync.store import (
    AccountJobRepository,
    AccountRepository,
    DiscoveryJobRepository,
    ExtractionJobRepository,
    PaymentRepository,
)

START = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when told to; every read advances one second so timestamps stay distinct."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


class FakeCredentialProvider(CredentialProvider):
    """Refresh succeeds with a predictable token unless the refresh token is listed as revoked."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.revoked: set[str] = set()
        self.refreshed: list[str] = []

    def is_expired(self, expires_at: datetime | None, now: datetime | None = None) -> bool:
        return super().is_expired(expires_at, now or self.clock.now)

    def refresh(self, refresh_token: str) -> TokenRefreshResult:
        if refresh_token in self.revoked:
            msg = "invalid_grant"
            raise CredentialError(msg)
        self.refreshed.append(refresh_token)
        return TokenRefreshResult(
            access_token=f"fresh-{refresh_token}",
            refresh_token=refresh_token,
            expires_at=self.clock.now + timedelta(hours=1),
        )


class FakeMessageSource(MessageSource):
    """Serves message ids from a list in pages keyed by numeric cursors, and messages from a dict."""

    def __init__(self) -> None:
        self.ids: list[str] = []
        self.messages: dict[str, MailMessage] = {}
        self.broken: set[str] = set()
        self.list_calls: list[dict[str, Any]] = []
        self.fetch_calls: list[tuple[str, str]] = []
        self.pages: dict[str | None, MessagePage] = {}

    def list_message_ids(
        self, access_token: str, query: str, page_size: int, cursor: str | None = None
    ) -> MessagePage:
        self.list_calls.append({"token": access_token, "query": query, "page_size": page_size, "cursor": cursor})
        if cursor in self.pages:
            return self.pages[cursor]
        start = int(cursor) if cursor else 0
        ids = self.ids[start : start + page_size]
        end = start + len(ids)
        return MessagePage(ids=ids, next_cursor=str(end) if end < len(self.ids) else None)

    def fetch_message(self, access_token: str, message_id: str) -> MailMessage:
        self.fetch_calls.append((access_token, message_id))
        if message_id in self.broken or message_id not in self.messages:
            msg = f"Gmail API error (status 404): {message_id}"
            raise ProviderError(msg)
        return self.messages[message_id]


class FakeOracle(ExtractionOracle):
    """Answers from a dict keyed by message id; unknown messages are non-payments."""

    def __init__(self) -> None:
        self.answers: dict[str, PaymentCandidate | None] = {}
        self.fail = False
        self.batches: list[list[str]] = []

    def extract_batch(
        self, messages: list[MailMessage]
    ) -> tuple[list[PaymentCandidate | None], list[dict[str, Any]]]:
        self.batches.append([m.id for m in messages])
        if self.fail:
            msg = "LLM API call failed: 503"
            raise ExtractionError(msg)
        candidates = [self.answers.get(m.id) for m in messages]
        raw = [{"message_id": m.id} for m in messages]
        return candidates, raw


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_factory() -> Any:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def accounts(session_factory: Any, clock: FakeClock) -> AccountRepository:
    return AccountRepository(session_factory, clock)


@pytest.fixture
def account_jobs(session_factory: Any, clock: FakeClock) -> AccountJobRepository:
    return AccountJobRepository(session_factory, clock)


@pytest.fixture
def discovery_jobs(session_factory: Any, clock: FakeClock) -> DiscoveryJobRepository:
    return DiscoveryJobRepository(session_factory, clock)


@pytest.fixture
def extraction_jobs(session_factory: Any, clock: FakeClock) -> ExtractionJobRepository:
    return ExtractionJobRepository(session_factory, clock)


@pytest.fixture
def payments(session_factory: Any, clock: FakeClock) -> PaymentRepository:
    return PaymentRepository(session_factory, clock)


@pytest.fixture
def provider(clock: FakeClock) -> FakeCredentialProvider:
    return FakeCredentialProvider(clock)


@pytest.fixture
def source() -> FakeMessageSource:
    return FakeMessageSource()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def resolver(accounts: AccountRepository, provider: FakeCredentialProvider) -> CredentialResolver:
    return CredentialResolver(accounts, provider)


@pytest.fixture
def make_account(accounts: AccountRepository, clock: FakeClock) -> Any:
    """Create an account whose access token is valid for a day unless told otherwise."""

    def _make(account_id: str, expires_in: timedelta | None = timedelta(days=1), **kwargs: Any) -> Any:
        params = {
            "user_id": f"user-{account_id}",
            "access_token": f"token-{account_id}",
            "refresh_token": f"refresh-{account_id}",
            "access_token_expires_at": clock.now + expires_in if expires_in is not None else None,
        }
        params.update(kwargs)
        return accounts.create(account_id, **params)

    return _make


def netflix_candidate() -> PaymentCandidate:
    return PaymentCandidate(
        merchant_name="Netflix",
        amount=15.99,
        currency="usd",
        due="2025-02-01",
        recurrence="monthly",
        status="upcoming",
    )


def message(message_id: str, subject: str = "Your receipt") -> MailMessage:
    return MailMessage(id=message_id, from_address="billing@example.com", subject=subject, body_text="body")


NETFLIX_AMOUNT = Decimal("15.99")
