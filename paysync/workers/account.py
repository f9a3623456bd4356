"""Account setup: validate the connected account and seed its first discovery job."""

from paysync.core.errors import CredentialError
from paysync.core.models import AccountJob, SyncMode
from paysync.core.utils import get_logger
from paysync.store.accounts import AccountRepository
from paysync.store.jobs import DiscoveryJobRepository

logger = get_logger("paysync.worker.account")


class AccountProcessor:
    """Processes account setup jobs."""

    def __init__(self, accounts: AccountRepository, discovery_jobs: DiscoveryJobRepository) -> None:
        """Initialize with the account store and the discovery job store."""
        self.accounts = accounts
        self.discovery_jobs = discovery_jobs

    def process(self, job: AccountJob) -> None:
        """Check that the account exists and holds an access token, then queue its initial sync.

        Raises on any failure; the caller records the outcome on the job.
        """
        account = self.accounts.get(job.account_id)
        if not account.access_token:
            msg = "account missing access token"
            raise CredentialError(msg)
        logger.info(f"Processing account: {account.id} (user: {account.user_id})")

        if self.discovery_jobs.has_active(account.id):
            logger.info(f"Account {account.id} already has an active discovery job, not seeding another")
            return
        discovery = self.discovery_jobs.create(account.id, SyncMode.INITIAL)
        logger.info(f"Created initial discovery job {discovery.id} for account {account.id} (will be picked first)")
