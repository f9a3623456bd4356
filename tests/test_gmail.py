"""Tests for the Gmail and Google OAuth clients against an httpx mock transport."""

import base64
from datetime import timedelta

import httpx
import pytest

from paysync.core.errors import CredentialError, ProviderError
from paysync.core.utils import utcnow
from paysync.services.gmail import GmailMessageSource, GoogleCredentialProvider, extract_bodies


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def test_list_message_ids_sends_query_and_cursor() -> None:
    """Query, page size and cursor are sent; ids and the next cursor come back."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"messages": [{"id": "m1"}, {"id": "m2"}], "nextPageToken": "tok2"})

    source = GmailMessageSource(http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    page = source.list_message_ids("access", "in:inbox -in:spam", 50, "tok1")

    if page.ids != ["m1", "m2"] or page.next_cursor != "tok2":
        msg = f"Unexpected page: {page}"
        raise AssertionError(msg)
    request = seen[0]
    if request.url.path != "/gmail/v1/users/me/messages":
        msg = f"Unexpected path: {request.url.path}"
        raise AssertionError(msg)
    params = dict(request.url.params)
    if params != {"q": "in:inbox -in:spam", "maxResults": "50", "pageToken": "tok1"}:
        msg = f"Unexpected params: {params}"
        raise AssertionError(msg)
    if request.headers["Authorization"] != "Bearer access":
        msg = "Expected a bearer token"
        raise AssertionError(msg)


def test_empty_mailbox_has_no_cursor() -> None:
    """A response without messages or token is an empty final page."""
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"resultSizeEstimate": 0}))
    page = GmailMessageSource(http_client=httpx.Client(transport=transport)).list_message_ids("t", "q", 10)
    if page.ids or page.next_cursor is not None:
        msg = f"Expected an empty final page, got {page}"
        raise AssertionError(msg)


def test_fetch_message_decodes_headers_and_bodies() -> None:
    """Sender, subject and both body kinds are extracted from a multipart message."""
    raw = {
        "id": "m1",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [{"name": "From", "value": "billing@netflix.com"}, {"name": "Subject", "value": "Receipt"}],
            "parts": [
                {"mimeType": "text/plain", "body": {"data": _b64("Amount due: $15.99")}},
                {"mimeType": "text/html", "body": {"data": _b64("<p>Amount due</p>")}},
            ],
        },
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("format") != "full":
            return httpx.Response(400)
        return httpx.Response(200, json=raw)

    source = GmailMessageSource(http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    message = source.fetch_message("access", "m1")
    if (message.from_address, message.subject, message.body_text) != (
        "billing@netflix.com",
        "Receipt",
        "Amount due: $15.99",
    ):
        msg = f"Unexpected message: {message}"
        raise AssertionError(msg)
    if message.body_html != "<p>Amount due</p>":
        msg = f"Unexpected html body: {message.body_html}"
        raise AssertionError(msg)


def test_extract_bodies_walks_nested_parts() -> None:
    """Nested multiparts are searched depth first; html is used when there is no plain text."""
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [
            {"mimeType": "multipart/related", "parts": [{"mimeType": "text/html", "body": {"data": _b64("<b>hi</b>")}}]},
            {"mimeType": "application/pdf", "body": {"attachmentId": "x"}},
        ],
    }
    if extract_bodies(payload) != ("", "<b>hi</b>"):
        msg = f"Unexpected bodies: {extract_bodies(payload)}"
        raise AssertionError(msg)


def test_http_error_becomes_provider_error() -> None:
    """Non-2xx responses are ProviderErrors carrying the status."""
    transport = httpx.MockTransport(lambda request: httpx.Response(429, text="quota"))
    source = GmailMessageSource(http_client=httpx.Client(transport=transport))
    with pytest.raises(ProviderError, match="status 429"):
        source.fetch_message("access", "m1")


def test_refresh_keeps_refresh_token_unless_rotated() -> None:
    """The old refresh token is kept when Google does not send a new one."""
    bodies: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(request.content)
        return httpx.Response(200, json={"access_token": "new-access", "expires_in": 3599})

    provider = GoogleCredentialProvider("cid", "secret", http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    before = utcnow()
    result = provider.refresh("refresh-1")

    if result.access_token != "new-access" or result.refresh_token != "refresh-1":
        msg = f"Unexpected refresh result: {result}"
        raise AssertionError(msg)
    if not before + timedelta(seconds=3590) <= result.expires_at <= utcnow() + timedelta(seconds=3600):
        msg = f"Unexpected expiry: {result.expires_at}"
        raise AssertionError(msg)
    if b"grant_type=refresh_token" not in bodies[0]:
        msg = "Expected a refresh_token grant"
        raise AssertionError(msg)


def test_rejected_refresh_raises_credential_error() -> None:
    """An invalid refresh token surfaces as a CredentialError."""
    transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    provider = GoogleCredentialProvider("cid", "secret", http_client=httpx.Client(transport=transport))
    with pytest.raises(CredentialError, match="invalid_grant"):
        provider.refresh("revoked")


def test_is_expired_uses_the_refresh_window() -> None:
    """Tokens expiring within the window count as expired; missing expiry is expired."""
    provider = GoogleCredentialProvider("cid", "secret", http_client=httpx.Client())
    now = utcnow()
    cases = [
        (None, True),
        (now + timedelta(minutes=4), True),
        (now + timedelta(minutes=6), False),
        (now - timedelta(minutes=1), True),
    ]
    for expires_at, expected in cases:
        if provider.is_expired(expires_at, now) != expected:
            msg = f"is_expired({expires_at}) should be {expected}"
            raise AssertionError(msg)
