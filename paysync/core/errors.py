"""Exception types raised across the pipeline."""


class PaysyncError(Exception):
    """Base class for pipeline errors."""


class AccountNotFoundError(PaysyncError):
    """The account referenced by a job does not exist."""


class CredentialError(PaysyncError):
    """Tokens are missing, invalid, or could not be refreshed."""


class ProviderError(PaysyncError):
    """The mail provider failed to list or fetch messages."""


class ExtractionError(PaysyncError):
    """The extraction oracle failed or answered with something unparseable."""


class StoreError(PaysyncError):
    """A relational store read or write failed."""
