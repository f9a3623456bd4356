"""DB engine, session factory and table definitions for the paysync worker."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")


class AccountRow(Base):
    """An OAuth mail account, owned by the surrounding application (camelCase columns)."""

    __tablename__ = "account"
    id = Column(String, primary_key=True)
    provider_account_id = Column("accountId", String, nullable=True)
    provider_id = Column("providerId", String, nullable=True)
    user_id = Column("userId", String, nullable=True)
    access_token = Column("accessToken", Text, nullable=True)
    refresh_token = Column("refreshToken", Text, nullable=True)
    access_token_expires_at = Column("accessTokenExpiresAt", DateTime(timezone=True), nullable=True)
    created_at = Column("createdAt", DateTime(timezone=True), nullable=False)
    updated_at = Column("updatedAt", DateTime(timezone=True), nullable=False)


class AccountJobRow(Base):
    """One setup job per account."""

    __tablename__ = "account_sync_job"
    id = Column(String, primary_key=True)
    account_id = Column(String, ForeignKey("account.id", ondelete="CASCADE"), nullable=False, unique=True)
    status = Column(String(50), nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)


class DiscoveryJobRow(Base):
    """Message discovery (email sync) job: pages through an account's mailbox."""

    __tablename__ = "email_sync_job"
    id = Column(String, primary_key=True)
    account_id = Column(String, ForeignKey("account.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    sync_type = Column(String(50), nullable=False)
    emails_fetched = Column(Integer, nullable=False, default=0)
    page_token = Column(Text, nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_email_sync_job_status_last_synced", "status", "last_synced_at"),)


class ExtractionJobRow(Base):
    """Extraction (LLM sync) job: one per discovered message."""

    __tablename__ = "llm_sync_job"
    id = Column(String, primary_key=True)
    account_id = Column(String, ForeignKey("account.id", ondelete="CASCADE"), nullable=False, index=True)
    message_id = Column(String, nullable=False, unique=True)
    status = Column(String(50), nullable=False)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_llm_sync_job_status_last_synced", "status", "last_synced_at"),)


class PaymentRow(Base):
    """A payment extracted from a message. Never updated by the pipeline."""

    __tablename__ = "payment"
    id = Column(String, primary_key=True)
    account_id = Column(String, ForeignKey("account.id", ondelete="CASCADE"), nullable=False, index=True)
    merchant = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="INR")
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    recurrence = Column(String, nullable=True)
    status = Column(String, nullable=False, index=True)
    category = Column(String, nullable=True)
    external_reference = Column(String, nullable=True)
    metadata_ = Column("metadata", JSONType, nullable=True)
    raw_llm_response = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


def get_engine(url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine using the given or configured database URL."""
    if url is None:
        from paysync.core.settings import get_settings

        url = get_settings().database_url
    return create_engine(url, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    """Build the session factory shared by all repositories."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create any missing tables. Real deployments manage DDL with migrations."""
    Base.metadata.create_all(engine)
