"""Capability interfaces for the mail provider.

The pipeline only depends on these two abstractions, so the Gmail implementation can be
swapped for a fake in tests or another provider later.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from paysync.core.models import MailMessage, MessagePage, TokenRefreshResult
from paysync.core.utils import as_utc, utcnow

DEFAULT_REFRESH_WINDOW = timedelta(minutes=5)


class CredentialProvider(ABC):
    """Decides when an access token needs refreshing and refreshes it."""

    refresh_window: timedelta = DEFAULT_REFRESH_WINDOW

    def is_expired(self, expires_at: datetime | None, now: datetime | None = None) -> bool:
        """True if the token is expired or will expire within the refresh window.

        A token with no recorded expiry is treated as expired.
        """
        if expires_at is None:
            return True
        now = now or utcnow()
        return now + self.refresh_window >= as_utc(expires_at)

    @abstractmethod
    def refresh(self, refresh_token: str) -> TokenRefreshResult:
        """Exchange a refresh token for a new access token. Raises ``CredentialError``."""


class MessageSource(ABC):
    """Lists and fetches messages from a mailbox."""

    @abstractmethod
    def list_message_ids(
        self, access_token: str, query: str, page_size: int, cursor: str | None = None
    ) -> MessagePage:
        """Return one page of message ids, newest first. Raises ``ProviderError``."""

    @abstractmethod
    def fetch_message(self, access_token: str, message_id: str) -> MailMessage:
        """Return sender, subject and bodies of one message. Raises ``ProviderError``."""
