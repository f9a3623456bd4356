"""Pydantic models for the paysync worker.

Repositories hand out these snapshots instead of live ORM rows, so a job read at the
start of a sweep can be passed through processors without holding a session open.
All datetimes are normalized to aware UTC on the way in.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from paysync.core.utils import as_utc


class AccountJobStatus(enum.StrEnum):
    """Lifecycle of an account setup job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DiscoveryStatus(enum.StrEnum):
    """Lifecycle of a discovery job. ``synced`` means the historical backfill is done."""

    PENDING = "pending"
    PROCESSING = "processing"
    SYNCED = "synced"
    FAILED = "failed"


class SyncMode(enum.StrEnum):
    """Flavor of a discovery job."""

    INITIAL = "initial"
    INCREMENTAL = "incremental"
    WEBHOOK = "webhook"


class ExtractionStatus(enum.StrEnum):
    """Lifecycle of an extraction job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentStatus(enum.StrEnum):
    """Stored payment status tags."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    UPCOMING = "upcoming"
    DUE = "due"
    OVERDUE = "overdue"
    PROCESSING = "processing"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"
    WRITTEN_OFF = "written_off"


class Recurrence(enum.StrEnum):
    """Stored payment recurrence tags."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"


TERMINAL_STATUSES = frozenset({"synced", "completed", "failed"})


class _Snapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    @field_validator("*", mode="after")
    @classmethod
    def _utc(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return as_utc(value)
        return value


class Account(_Snapshot):
    """Pydantic model of a mail account and its OAuth tokens."""

    id: str
    user_id: str | None = None
    provider_id: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    access_token_expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class AccountJob(_Snapshot):
    """Pydantic model of an account setup job."""

    id: str
    account_id: str
    status: AccountJobStatus
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime
    processed_at: datetime | None = None


class DiscoveryJob(_Snapshot):
    """Pydantic model of a discovery job."""

    id: str
    account_id: str
    status: DiscoveryStatus
    sync_type: SyncMode = SyncMode.INITIAL
    emails_fetched: int = 0
    page_token: str | None = None
    last_synced_at: datetime | None = None
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime
    processed_at: datetime | None = None


class ExtractionJob(_Snapshot):
    """Pydantic model of an extraction job."""

    id: str
    account_id: str
    message_id: str
    status: ExtractionStatus
    last_synced_at: datetime | None = None
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime
    processed_at: datetime | None = None


class Payment(_Snapshot):
    """Pydantic model representing a stored payment."""

    id: str
    account_id: str
    merchant: str
    description: str | None = None
    amount: Decimal
    currency: str
    date: datetime
    recurrence: Recurrence | None = None
    status: PaymentStatus
    category: str | None = None
    external_reference: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("metadata_", "metadata"))
    raw_llm_response: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class PaymentCandidate(BaseModel):
    """Provisional payment as answered by the extraction oracle, before validation."""

    model_config = ConfigDict(extra="ignore")

    merchant_name: str | None = None
    description: str | None = None
    amount: float | int | str | None = None
    currency: str | None = None
    due: str | None = None
    recurrence: str | None = None
    status: str | None = None
    category: str | None = None
    external_reference: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator(
        "merchant_name", "description", "currency", "due", "recurrence", "status", "category", "external_reference",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        value = str(value).strip()
        if not value or value.lower() in {"null", "none", "n/a"}:
            return None
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_dict(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class MailMessage(BaseModel):
    """A fetched message. Held in memory only, never persisted."""

    id: str
    from_address: str = ""
    subject: str = ""
    body_text: str = ""
    body_html: str = ""

    @property
    def body(self) -> str:
        """Best available body for extraction."""
        return self.body_text or self.body_html


class MessagePage(BaseModel):
    """One page of message identifiers from the provider."""

    ids: list[str] = Field(default_factory=list)
    next_cursor: str | None = None


class TokenRefreshResult(BaseModel):
    """Outcome of an OAuth refresh."""

    access_token: str
    refresh_token: str
    expires_at: datetime


class BatchSummary(BaseModel):
    """Counts reported by one extraction batch."""

    completed: int = 0
    failed: int = 0
    payments: int = 0


class TickReport(BaseModel):
    """Per-kind selection counts for one scheduler tick."""

    account_jobs: int = 0
    discovery_jobs: int = 0
    extraction_jobs: int = 0
