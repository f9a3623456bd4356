"""Account reads and token updates."""

from datetime import datetime

from sqlalchemy import update

from paysync.core.db import AccountRow
from paysync.core.errors import AccountNotFoundError
from paysync.core.models import Account
from paysync.store.base import Repository


class AccountRepository(Repository):
    """Access to the application's account table."""

    def get(self, account_id: str) -> Account:
        """Return the account or raise ``AccountNotFoundError``."""
        with self._session("get account") as session:
            row = session.get(AccountRow, account_id)
            if row is None:
                msg = f"account not found: {account_id}"
                raise AccountNotFoundError(msg)
            return Account.model_validate(row)

    def create(
        self,
        account_id: str,
        user_id: str | None = None,
        access_token: str | None = None,
        refresh_token: str | None = None,
        access_token_expires_at: datetime | None = None,
        provider_id: str = "google",
    ) -> Account:
        """Insert an account row."""
        now = self.clock()
        row = AccountRow(
            id=account_id,
            user_id=user_id,
            provider_id=provider_id,
            access_token=access_token,
            refresh_token=refresh_token,
            access_token_expires_at=access_token_expires_at,
            created_at=now,
            updated_at=now,
        )
        with self._session("create account") as session:
            session.add(row)
            session.flush()
            return Account.model_validate(row)

    def update_tokens(self, account_id: str, access_token: str, refresh_token: str, expires_at: datetime) -> None:
        """Store refreshed OAuth tokens."""
        stmt = (
            update(AccountRow)
            .where(AccountRow.id == account_id)
            .values(
                access_token=access_token,
                refresh_token=refresh_token,
                access_token_expires_at=expires_at,
                updated_at=self.clock(),
            )
        )
        with self._session("update account tokens") as session:
            session.execute(stmt)
