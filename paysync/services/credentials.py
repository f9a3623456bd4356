"""Access-token resolution shared by the discovery and extraction processors."""

from paysync.core.errors import CredentialError, PaysyncError
from paysync.core.utils import get_logger
from paysync.services.base import CredentialProvider
from paysync.store.accounts import AccountRepository

logger = get_logger("paysync.credentials")


class CredentialResolver:
    """Returns a usable access token for an account, refreshing it when needed."""

    def __init__(self, accounts: AccountRepository, provider: CredentialProvider) -> None:
        """Initialize with the account store and the credential provider."""
        self.accounts = accounts
        self.provider = provider

    def resolve(self, account_id: str) -> str:
        """Return a valid access token.

        Raises ``AccountNotFoundError`` or ``CredentialError``. Refreshed tokens are written
        back to the account before returning.
        """
        account = self.accounts.get(account_id)
        if not account.access_token or not account.refresh_token:
            msg = "account missing tokens"
            raise CredentialError(msg)
        if not self.provider.is_expired(account.access_token_expires_at):
            return account.access_token

        logger.info(f"Access token expired for account {account_id}, refreshing...")
        try:
            result = self.provider.refresh(account.refresh_token)
        except PaysyncError as exc:
            msg = f"failed to refresh token: {exc}"
            raise CredentialError(msg) from exc
        self.accounts.update_tokens(account_id, result.access_token, result.refresh_token, result.expires_at)
        logger.info(f"Token refreshed for account {account_id}, expires at {result.expires_at.isoformat()}")
        return result.access_token
