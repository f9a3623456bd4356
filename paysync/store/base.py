"""Shared session handling and the generic job repository."""

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any, ClassVar

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from paysync.core.errors import StoreError
from paysync.core.models import TERMINAL_STATUSES
from paysync.core.utils import get_logger, utcnow

logger = get_logger("paysync.store")

Clock = Callable[[], datetime]


class Repository:
    """Base for repositories: one short transaction per operation."""

    def __init__(self, session_factory: sessionmaker, clock: Clock = utcnow) -> None:
        """Initialize with a session factory and a clock (tests pass a fake one)."""
        self.session_factory = session_factory
        self.clock = clock

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            msg = f"failed to {action}: {exc}"
            logger.exception(msg)
            raise StoreError(msg) from exc
        finally:
            session.close()


class JobRepository(Repository):
    """Status-filtered reads and status transitions shared by the three job kinds.

    Subclasses set ``row_cls`` and ``snapshot_cls``. When ``fair`` is true, due-sets are
    ordered by the fairness timestamp (nulls first) and then creation time, which makes
    a round robin over accounts without any extra bookkeeping. Otherwise jobs drain in
    creation order.
    """

    row_cls: ClassVar[type]
    snapshot_cls: ClassVar[type]
    fair: ClassVar[bool] = True
    kind: ClassVar[str] = "job"

    def _ordering(self) -> tuple:
        row = self.row_cls
        if self.fair:
            return (row.last_synced_at.asc().nulls_first(), row.created_at.asc())
        return (row.created_at.asc(),)

    def list_due(self, status: str, limit: int) -> list:
        """Return up to ``limit`` jobs in ``status``, fairness-ordered."""
        stmt = select(self.row_cls).where(self.row_cls.status == str(status)).order_by(*self._ordering()).limit(limit)
        with self._session(f"query {status} {self.kind}s") as session:
            rows = session.scalars(stmt).all()
            return [self.snapshot_cls.model_validate(row) for row in rows]

    def get(self, job_id: str) -> Any:
        """Return one job or None."""
        with self._session(f"get {self.kind}") as session:
            row = session.get(self.row_cls, job_id)
            return self.snapshot_cls.model_validate(row) if row is not None else None

    def _status_values(self, status: str, error: str | None, now: datetime) -> dict[str, Any]:
        values: dict[str, Any] = {"status": str(status), "last_error": error, "updated_at": now}
        values["processed_at"] = now if str(status) in TERMINAL_STATUSES else None
        return values

    def update_status(self, job_id: str, status: str, error: str | None = None) -> None:
        """Move a job to ``status``, recording ``error`` (or clearing it)."""
        values = self._status_values(status, error, self.clock())
        stmt = update(self.row_cls).where(self.row_cls.id == job_id).values(**values)
        with self._session(f"update {self.kind} status") as session:
            session.execute(stmt)

    def increment_attempts(self, job_id: str) -> None:
        """Bump the retry counter."""
        stmt = (
            update(self.row_cls)
            .where(self.row_cls.id == job_id)
            .values(attempts=self.row_cls.attempts + 1, updated_at=self.clock())
        )
        with self._session(f"increment {self.kind} attempts") as session:
            session.execute(stmt)

    def fail_if_processing(self, job_ids: Iterable[str], error: str) -> int:
        """Fail the given jobs that are still in processing. Returns the number moved."""
        ids = list(job_ids)
        if not ids:
            return 0
        values = self._status_values("failed", error, self.clock())
        stmt = (
            update(self.row_cls)
            .where(self.row_cls.id.in_(ids), self.row_cls.status == "processing")
            .values(**values)
        )
        with self._session(f"fail {self.kind}s") as session:
            return session.execute(stmt).rowcount
