"""Services package: mail provider interfaces, the Gmail clients, and credential resolution."""

from .base import CredentialProvider, MessageSource  # noqa: F401
from .credentials import CredentialResolver  # noqa: F401
from .gmail import GmailMessageSource, GoogleCredentialProvider  # noqa: F401
