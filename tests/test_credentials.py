"""Tests for access-token resolution and the onboarding entry points."""

from datetime import timedelta

import pytest

from paysync.core.errors import AccountNotFoundError, CredentialError
from paysync.services.onboarding import register_account


def test_valid_token_is_returned_without_refresh(make_account, resolver, provider) -> None:
    """A token outside the refresh window is used as is."""
    make_account("a", expires_in=timedelta(hours=2))
    if resolver.resolve("a") != "token-a" or provider.refreshed:
        msg = "Expected the stored token without a refresh"
        raise AssertionError(msg)


def test_expiring_token_is_refreshed_and_stored(make_account, resolver, accounts, provider) -> None:
    """A token inside the window is refreshed and written back to the account."""
    make_account("a", expires_in=timedelta(minutes=2))
    token = resolver.resolve("a")
    if token != "fresh-refresh-a" or provider.refreshed != ["refresh-a"]:
        msg = f"Expected a refreshed token, got {token}"
        raise AssertionError(msg)
    stored = accounts.get("a")
    if stored.access_token != "fresh-refresh-a" or stored.access_token_expires_at is None:
        msg = f"Expected the refreshed token persisted, got {stored}"
        raise AssertionError(msg)
    if resolver.resolve("a") != "fresh-refresh-a" or len(provider.refreshed) != 1:
        msg = "Expected the persisted token to be reused"
        raise AssertionError(msg)


def test_missing_tokens_and_accounts(make_account, resolver) -> None:
    """Missing tokens or accounts are errors."""
    make_account("a", refresh_token=None)
    with pytest.raises(CredentialError, match="account missing tokens"):
        resolver.resolve("a")
    with pytest.raises(AccountNotFoundError):
        resolver.resolve("ghost")


def test_revoked_refresh_token(make_account, resolver, provider) -> None:
    """A rejected refresh is reported as a refresh failure."""
    make_account("a", expires_in=None)
    provider.revoked.add("refresh-a")
    with pytest.raises(CredentialError, match="failed to refresh token"):
        resolver.resolve("a")


def test_register_account_seeds_setup_job(accounts, account_jobs) -> None:
    """Registering an account creates exactly one pending setup job."""
    register_account(accounts, account_jobs, "a", "user-a", "token", "refresh", None)
    pending = account_jobs.list_due("pending", 5)
    if [job.account_id for job in pending] != ["a"]:
        msg = f"Expected one pending job for account a, got {pending}"
        raise AssertionError(msg)
