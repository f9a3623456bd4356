"""Message discovery: page through an account's mailbox and queue one extraction job per message."""

from collections.abc import Callable
from datetime import datetime, timedelta

from paysync.core.models import DiscoveryJob, SyncMode
from paysync.core.utils import get_logger, utcnow
from paysync.services.base import MessageSource
from paysync.services.credentials import CredentialResolver
from paysync.store.jobs import DiscoveryJobRepository, ExtractionJobRepository

logger = get_logger("paysync.worker.discovery")

BASE_QUERY = "in:inbox -in:spam"
QUERY_DATE_FORMAT = "%Y/%m/%d"


class DiscoveryProcessor:
    """Processes one discovery job at a time.

    ``process`` persists the page it fetched and returns the updated job snapshot; the
    scheduler decides the next status from that snapshot without re-reading the row.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        source: MessageSource,
        discovery_jobs: DiscoveryJobRepository,
        extraction_jobs: ExtractionJobRepository,
        max_messages_per_account: int = 10000,
        messages_per_page: int = 50,
        initial_sync_days: int = 365,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize with collaborators and paging limits."""
        self.resolver = resolver
        self.source = source
        self.discovery_jobs = discovery_jobs
        self.extraction_jobs = extraction_jobs
        self.max_messages_per_account = max_messages_per_account
        self.messages_per_page = messages_per_page
        self.initial_sync_days = initial_sync_days
        self.clock = clock

    def remaining_capacity(self, job: DiscoveryJob) -> int:
        """How many more message ids the account may still enqueue."""
        return max(0, self.max_messages_per_account - job.emails_fetched)

    def is_finished(self, job: DiscoveryJob) -> bool:
        """True once the provider has no further pages or the cap is reached."""
        return job.page_token is None or self.remaining_capacity(job) == 0

    def build_query(self, job: DiscoveryJob) -> str:
        """Provider search query for the job's sync mode. Results come back newest first."""
        query = BASE_QUERY
        if job.sync_type == SyncMode.INITIAL:
            after = self.clock() - timedelta(days=self.initial_sync_days)
            query += f" after:{after.strftime(QUERY_DATE_FORMAT)}"
        elif job.last_synced_at is not None:
            query += f" after:{job.last_synced_at.strftime(QUERY_DATE_FORMAT)}"
        return query

    def process(self, job: DiscoveryJob) -> DiscoveryJob:
        """Fetch one page for ``job`` and return the updated snapshot. Raises on failure."""
        logger.info(
            f"Processing discovery job {job.id} for account {job.account_id} "
            f"(type: {job.sync_type}, fetched: {job.emails_fetched})"
        )
        remaining = self.remaining_capacity(job)
        if remaining == 0:
            logger.info(f"Account {job.account_id} has reached max messages limit ({self.max_messages_per_account})")
            return job

        access_token = self.resolver.resolve(job.account_id)
        page_size = min(self.messages_per_page, remaining)
        query = self.build_query(job)
        logger.info(f"Fetching {page_size} message ids for account {job.account_id} (query: {query})")

        page = self.source.list_message_ids(access_token, query, page_size, job.page_token)
        ids = page.ids[:page_size]
        if ids:
            created = self.extraction_jobs.bulk_create(job.account_id, ids)
            logger.info(f"Created {created} extraction job(s) for account {job.account_id}")

        emails_fetched = job.emails_fetched + len(ids)
        synced_at = self.discovery_jobs.update_progress(job.id, emails_fetched, page.next_cursor)
        updated = job.model_copy(
            update={"emails_fetched": emails_fetched, "page_token": page.next_cursor, "last_synced_at": synced_at}
        )
        logger.info(
            f"Updated discovery job {job.id}: emails_fetched={emails_fetched}, has_more={page.next_cursor is not None}"
        )
        return updated
