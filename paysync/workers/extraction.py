"""Extraction: fetch messages, ask the agent for payments, validate and store them.

A batch may span several accounts. Jobs are grouped per account so each account's token
is resolved once, and one account's failure never touches another account's jobs.
Validation failures are not errors: the job completes without a payment.
"""

import math
import re
import uuid
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from paysync.agents.base import ExtractionOracle
from paysync.core.errors import PaysyncError
from paysync.core.models import (
    BatchSummary,
    ExtractionJob,
    ExtractionStatus,
    MailMessage,
    Payment,
    PaymentCandidate,
    PaymentStatus,
    Recurrence,
)
from paysync.core.utils import as_utc, get_logger, utcnow
from paysync.services.base import MessageSource
from paysync.services.credentials import CredentialResolver
from paysync.store.jobs import ExtractionJobRepository
from paysync.store.payments import PaymentRepository

logger = get_logger("paysync.worker.extraction")

DATE_FORMATS = ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")

RECURRENCE_ALIASES = {
    "yearly": Recurrence.ANNUAL,
    "annually": Recurrence.ANNUAL,
    "semi-annual": Recurrence.SEMIANNUAL,
    "semi_annual": Recurrence.SEMIANNUAL,
    "half-yearly": Recurrence.SEMIANNUAL,
    "bi-weekly": Recurrence.BIWEEKLY,
    "fortnightly": Recurrence.BIWEEKLY,
    "bi-monthly": Recurrence.BIMONTHLY,
}

STATUS_ALIASES = {
    "due_soon": PaymentStatus.DUE,
    "due soon": PaymentStatus.DUE,
    "canceled": PaymentStatus.CANCELLED,
    "partially paid": PaymentStatus.PARTIALLY_PAID,
}

_AMOUNT_NOISE = re.compile(r"[^\d.\-]")

# payment.amount is Numeric(12, 2)
CENTS = Decimal("0.01")
MAX_AMOUNT = Decimal("1e10")


def parse_amount(value: float | int | str | None) -> Decimal | None:
    """Return a finite positive amount rounded to cents, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    text = repr(value)
    if isinstance(value, str):
        text = _AMOUNT_NOISE.sub("", value.replace(",", ""))
    try:
        amount = Decimal(text).quantize(CENTS)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0 or amount >= MAX_AMOUNT:
        return None
    return amount


def parse_due_date(value: str | None) -> datetime | None:
    """Parse an ISO-8601 / RFC 3339 timestamp or one of the plain formats; naive values are UTC."""
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return as_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


def normalize_recurrence(value: str | None) -> str | None:
    """Map the model's recurrence wording onto the stored set; unknown values become None."""
    if not value:
        return None
    key = value.strip().lower()
    if key in {r.value for r in Recurrence}:
        return Recurrence(key).value
    alias = RECURRENCE_ALIASES.get(key)
    return alias.value if alias else None


def normalize_status(value: str | None) -> str:
    """Map the model's status wording onto the stored set; defaults to upcoming."""
    if not value:
        return PaymentStatus.UPCOMING.value
    key = value.strip().lower()
    if key in {s.value for s in PaymentStatus}:
        return key
    alias = STATUS_ALIASES.get(key)
    return alias.value if alias else PaymentStatus.UPCOMING.value


def validate_candidate(
    candidate: PaymentCandidate | None,
    account_id: str,
    raw_response: dict[str, Any],
    now: datetime,
) -> Payment | None:
    """Apply the validation gate. Returns a ready-to-store Payment or None for "not a payment"."""
    if candidate is None:
        return None
    if not candidate.merchant_name or not candidate.currency:
        return None
    amount = parse_amount(candidate.amount)
    if amount is None:
        return None
    due = parse_due_date(candidate.due)
    if due is None:
        return None
    return Payment(
        id=str(uuid.uuid4()),
        account_id=account_id,
        merchant=candidate.merchant_name,
        description=candidate.description,
        amount=amount,
        currency=candidate.currency.upper(),
        date=due,
        recurrence=normalize_recurrence(candidate.recurrence),
        status=normalize_status(candidate.status),
        category=candidate.category,
        external_reference=candidate.external_reference,
        metadata=candidate.metadata or {},
        raw_llm_response=raw_response,
        created_at=now,
        updated_at=now,
    )


class ExtractionProcessor:
    """Processes batches of extraction jobs."""

    def __init__(
        self,
        resolver: CredentialResolver,
        source: MessageSource,
        oracle: ExtractionOracle,
        extraction_jobs: ExtractionJobRepository,
        payments: PaymentRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize with collaborators."""
        self.resolver = resolver
        self.source = source
        self.oracle = oracle
        self.extraction_jobs = extraction_jobs
        self.payments = payments
        self.clock = clock

    def process_batch(
        self, jobs: list[ExtractionJob], should_stop: Callable[[], bool] = lambda: False
    ) -> BatchSummary:
        """Process ``jobs`` account by account, recording each job's outcome."""
        summary = BatchSummary()
        if not jobs:
            return summary
        logger.info(f"Processing batch of {len(jobs)} extraction jobs")

        by_account: dict[str, list[ExtractionJob]] = {}
        for job in jobs:
            by_account.setdefault(job.account_id, []).append(job)

        for account_id, account_jobs in by_account.items():
            if should_stop():
                logger.info("Stop requested, leaving remaining accounts for the next run")
                break
            try:
                self._process_account(account_id, account_jobs, summary)
            except Exception as exc:
                logger.exception(f"Extraction failed for account {account_id}")
                moved = self.extraction_jobs.fail_if_processing(
                    [job.id for job in account_jobs], f"extraction failed for account: {exc}"
                )
                summary.failed += moved
        return summary

    def _fail(self, job: ExtractionJob, error: str, summary: BatchSummary) -> None:
        self.extraction_jobs.update_status(job.id, ExtractionStatus.FAILED, error)
        summary.failed += 1

    def _complete(self, job: ExtractionJob, summary: BatchSummary) -> None:
        self.extraction_jobs.update_status(job.id, ExtractionStatus.COMPLETED)
        summary.completed += 1

    def _process_account(self, account_id: str, jobs: list[ExtractionJob], summary: BatchSummary) -> None:
        try:
            access_token = self.resolver.resolve(account_id)
        except PaysyncError as exc:
            logger.error(f"Credential resolution failed for account {account_id}: {exc}")
            for job in jobs:
                self._fail(job, str(exc), summary)
            return

        logger.info(f"Fetching {len(jobs)} messages for account {account_id}")
        messages: list[MailMessage] = []
        fetched_jobs: list[ExtractionJob] = []
        for job in jobs:
            try:
                messages.append(self.source.fetch_message(access_token, job.message_id))
            except PaysyncError as exc:
                logger.warning(f"Failed to fetch message {job.message_id}: {exc}")
                self._fail(job, f"failed to fetch message: {exc}", summary)
                continue
            fetched_jobs.append(job)

        if not messages:
            logger.info(f"No messages to process for account {account_id}")
            return

        logger.info(f"Sending {len(messages)} messages to the extraction agent")
        try:
            candidates, raw_responses = self.oracle.extract_batch(messages)
        except PaysyncError as exc:
            logger.error(f"Extraction failed for account {account_id}: {exc}")
            for job in fetched_jobs:
                self._fail(job, f"LLM extraction failed: {exc}", summary)
            return

        now = self.clock()
        decisions: list[tuple[ExtractionJob, Payment | None]] = []
        for idx, job in enumerate(fetched_jobs):
            candidate = candidates[idx] if idx < len(candidates) else None
            raw = raw_responses[idx] if idx < len(raw_responses) else {}
            decisions.append((job, validate_candidate(candidate, account_id, raw, now)))

        accepted: list[tuple[ExtractionJob, Payment]] = []
        for job, payment in decisions:
            if payment is None:
                logger.info(f"Message {job.message_id} is not a payment, marking as completed")
            else:
                accepted.append((job, payment))
                logger.info(
                    f"Extracted payment from message {job.message_id}: "
                    f"{payment.merchant} - {payment.amount} {payment.currency}"
                )
            self._complete(job, summary)

        if not accepted:
            return
        try:
            self.payments.bulk_create([payment for _, payment in accepted])
        except PaysyncError as exc:
            logger.error(f"Failed to store {len(accepted)} payment(s) for account {account_id}: {exc}")
            for job, _ in accepted:
                self.extraction_jobs.update_status(job.id, ExtractionStatus.FAILED, f"failed to store payments: {exc}")
                summary.completed -= 1
                summary.failed += 1
            return
        summary.payments += len(accepted)
        logger.info(f"Created {len(accepted)} payment(s) for account {account_id}")
