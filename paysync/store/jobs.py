"""Repositories for the three job kinds."""

import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite

from paysync.core.db import AccountJobRow, DiscoveryJobRow, ExtractionJobRow
from paysync.core.models import (
    AccountJob,
    AccountJobStatus,
    DiscoveryJob,
    DiscoveryStatus,
    ExtractionJob,
    ExtractionStatus,
    SyncMode,
)
from paysync.store.base import JobRepository, logger


class AccountJobRepository(JobRepository):
    """Account setup jobs. Drained in creation order, no fairness timestamp."""

    row_cls = AccountJobRow
    snapshot_cls = AccountJob
    fair = False
    kind = "account job"

    def create(self, account_id: str) -> AccountJob:
        """Insert a pending setup job for a new account."""
        now = self.clock()
        row = AccountJobRow(
            id=str(uuid.uuid4()),
            account_id=account_id,
            status=AccountJobStatus.PENDING,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        with self._session("create account job") as session:
            session.add(row)
            session.flush()
            return AccountJob.model_validate(row)

    def enqueue(self, account_id: str) -> AccountJob:
        """Create the account's setup job, or reset it to pending on re-authorization.

        Resetting clears the error and processed timestamp, which restarts the whole
        pipeline for the account.
        """
        now = self.clock()
        with self._session("enqueue account job") as session:
            row = session.scalars(select(AccountJobRow).where(AccountJobRow.account_id == account_id)).first()
            if row is None:
                row = AccountJobRow(
                    id=str(uuid.uuid4()),
                    account_id=account_id,
                    status=AccountJobStatus.PENDING,
                    attempts=0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
            else:
                row.status = AccountJobStatus.PENDING
                row.last_error = None
                row.processed_at = None
                row.updated_at = now
            session.flush()
            return AccountJob.model_validate(row)


class DiscoveryJobRepository(JobRepository):
    """Discovery jobs, round-robin ordered by ``last_synced_at``."""

    row_cls = DiscoveryJobRow
    snapshot_cls = DiscoveryJob
    kind = "discovery job"

    def create(self, account_id: str, sync_type: str = SyncMode.INITIAL) -> DiscoveryJob:
        """Insert a pending discovery job. A null fairness timestamp puts it at the head of the queue."""
        now = self.clock()
        row = DiscoveryJobRow(
            id=str(uuid.uuid4()),
            account_id=account_id,
            status=DiscoveryStatus.PENDING,
            sync_type=str(sync_type),
            emails_fetched=0,
            page_token=None,
            last_synced_at=None,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        with self._session("create discovery job") as session:
            session.add(row)
            session.flush()
            return DiscoveryJob.model_validate(row)

    def has_active(self, account_id: str) -> bool:
        """True when the account already has a discovery job that is not synced."""
        active = (DiscoveryStatus.PENDING, DiscoveryStatus.PROCESSING, DiscoveryStatus.FAILED)
        stmt = (
            select(func.count())
            .select_from(DiscoveryJobRow)
            .where(DiscoveryJobRow.account_id == account_id, DiscoveryJobRow.status.in_(active))
        )
        with self._session("count active discovery jobs") as session:
            return session.scalar(stmt) > 0

    def update_progress(self, job_id: str, emails_fetched: int, page_token: str | None) -> datetime:
        """Record paging progress and push the job to the back of the round robin.

        Returns the new fairness timestamp.
        """
        now = self.clock()
        stmt = (
            update(DiscoveryJobRow)
            .where(DiscoveryJobRow.id == job_id)
            .values(emails_fetched=emails_fetched, page_token=page_token, last_synced_at=now, updated_at=now)
        )
        with self._session("update discovery job progress") as session:
            session.execute(stmt)
        return now


class ExtractionJobRepository(JobRepository):
    """Extraction jobs, round-robin ordered by ``last_synced_at``."""

    row_cls = ExtractionJobRow
    snapshot_cls = ExtractionJob
    kind = "extraction job"

    def _status_values(self, status: str, error: str | None, now: datetime) -> dict[str, Any]:
        # Every attempt, successful or not, sends the job to the back of the queue.
        values = super()._status_values(status, error, now)
        values["last_synced_at"] = now
        return values

    def create(self, account_id: str, message_id: str) -> ExtractionJob:
        """Insert a single pending extraction job."""
        now = self.clock()
        row = ExtractionJobRow(
            id=str(uuid.uuid4()),
            account_id=account_id,
            message_id=message_id,
            status=ExtractionStatus.PENDING,
            last_synced_at=None,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        with self._session("create extraction job") as session:
            session.add(row)
            session.flush()
            return ExtractionJob.model_validate(row)

    def bulk_create(self, account_id: str, message_ids: Iterable[str]) -> int:
        """Insert one pending job per message id, skipping ids that already have a job.

        Returns the number of rows actually inserted.
        """
        now = self.clock()
        seen: set[str] = set()
        rows = []
        for message_id in message_ids:
            if message_id in seen:
                continue
            seen.add(message_id)
            rows.append(
                {
                    "id": str(uuid.uuid4()),
                    "account_id": account_id,
                    "message_id": message_id,
                    "status": str(ExtractionStatus.PENDING),
                    "last_synced_at": None,
                    "attempts": 0,
                    "created_at": now,
                    "updated_at": now,
                }
            )
        if not rows:
            return 0
        with self._session("bulk create extraction jobs") as session:
            dialect = session.get_bind().dialect.name
            if dialect in _UPSERT_DIALECTS:
                stmt = _UPSERT_DIALECTS[dialect](ExtractionJobRow).values(rows)
                inserted = session.execute(stmt.on_conflict_do_nothing(index_elements=["message_id"])).rowcount
            else:
                known = set(
                    session.scalars(
                        select(ExtractionJobRow.message_id).where(ExtractionJobRow.message_id.in_(seen))
                    ).all()
                )
                rows = [row for row in rows if row["message_id"] not in known]
                if rows:
                    session.execute(insert(ExtractionJobRow), rows)
                inserted = len(rows)
        if inserted is None or inserted < 0:
            inserted = len(rows)
        skipped = len(seen) - inserted
        if skipped > 0:
            logger.info(f"Skipped {skipped} already-known message(s) for account {account_id}")
        return inserted


_UPSERT_DIALECTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}
