"""Entry points for the application side: what happens when an account is created or re-authorized.

Both enqueue the account's setup job, which is the only thing that starts the pipeline.
"""

from datetime import datetime

from paysync.core.models import Account
from paysync.core.utils import get_logger
from paysync.store.accounts import AccountRepository
from paysync.store.jobs import AccountJobRepository

logger = get_logger("paysync.onboarding")


def register_account(
    accounts: AccountRepository,
    account_jobs: AccountJobRepository,
    account_id: str,
    user_id: str | None,
    access_token: str | None,
    refresh_token: str | None,
    access_token_expires_at: datetime | None,
) -> Account:
    """Store a newly connected account and seed its setup job."""
    account = accounts.create(
        account_id,
        user_id=user_id,
        access_token=access_token,
        refresh_token=refresh_token,
        access_token_expires_at=access_token_expires_at,
    )
    job = account_jobs.enqueue(account_id)
    logger.info(f"Registered account {account_id}, setup job {job.id}")
    return account


def reauthorize_account(
    accounts: AccountRepository,
    account_jobs: AccountJobRepository,
    account_id: str,
    access_token: str,
    refresh_token: str,
    access_token_expires_at: datetime,
) -> None:
    """Store fresh tokens from a new consent and restart the account's pipeline."""
    accounts.update_tokens(account_id, access_token, refresh_token, access_token_expires_at)
    job = account_jobs.enqueue(account_id)
    logger.info(f"Re-authorized account {account_id}, setup job {job.id} reset to pending")
