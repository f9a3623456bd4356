"""Gmail REST and Google OAuth clients built on httpx."""

import base64
from datetime import timedelta
from typing import Any

import httpx

from paysync.core.errors import CredentialError, ProviderError
from paysync.core.models import MailMessage, MessagePage, TokenRefreshResult
from paysync.core.utils import get_logger, truncate, utcnow
from paysync.services.base import DEFAULT_REFRESH_WINDOW, CredentialProvider, MessageSource

logger = get_logger("paysync.gmail")

GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_TIMEOUT = 30.0
MAX_ERROR_BODY_LEN = 300


def _decode_part(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")


def extract_bodies(payload: dict[str, Any]) -> tuple[str, str]:
    """Walk a Gmail message payload and return the first text/plain and text/html bodies."""
    text_plain = ""
    text_html = ""
    stack = [payload]
    while stack:
        part = stack.pop(0)
        data = (part.get("body") or {}).get("data")
        mime_type = part.get("mimeType", "")
        if data:
            try:
                decoded = _decode_part(data)
            except (ValueError, UnicodeDecodeError):
                decoded = ""
            if mime_type == "text/plain" and not text_plain:
                text_plain = decoded
            elif mime_type == "text/html" and not text_html:
                text_html = decoded
        stack[0:0] = part.get("parts") or []
    return text_plain, text_html


def parse_message(raw: dict[str, Any]) -> MailMessage:
    """Convert a ``format=full`` Gmail message into a ``MailMessage``."""
    payload = raw.get("payload") or {}
    headers = {h.get("name", "").lower(): h.get("value", "") for h in payload.get("headers") or []}
    body_text, body_html = extract_bodies(payload)
    return MailMessage(
        id=raw.get("id", ""),
        from_address=headers.get("from", ""),
        subject=headers.get("subject", ""),
        body_text=body_text,
        body_html=body_html,
    )


class GmailMessageSource(MessageSource):
    """Message listing and fetching through the Gmail REST API."""

    def __init__(self, http_client: httpx.Client | None = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize with an optional preconfigured httpx client (tests inject a mock transport)."""
        self._client = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def _get(self, access_token: str, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.get(
                f"{GMAIL_API_URL}{path}",
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            body = truncate(exc.response.text, MAX_ERROR_BODY_LEN)
            msg = f"Gmail API error (status {exc.response.status_code}): {body}"
            raise ProviderError(msg) from exc
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Gmail API request failed: {exc}"
            raise ProviderError(msg) from exc

    def list_message_ids(
        self, access_token: str, query: str, page_size: int, cursor: str | None = None
    ) -> MessagePage:
        """List one page of message ids matching ``query``."""
        params: dict[str, Any] = {"q": query, "maxResults": page_size}
        if cursor:
            params["pageToken"] = cursor
        data = self._get(access_token, "/messages", params)
        ids = [msg["id"] for msg in data.get("messages") or [] if msg.get("id")]
        next_cursor = data.get("nextPageToken") or None
        logger.info(f"Gmail returned {len(ids)} message ids (more pages: {next_cursor is not None})")
        return MessagePage(ids=ids, next_cursor=next_cursor)

    def fetch_message(self, access_token: str, message_id: str) -> MailMessage:
        """Fetch and decode one full message."""
        data = self._get(access_token, f"/messages/{message_id}", {"format": "full"})
        return parse_message(data)


class GoogleCredentialProvider(CredentialProvider):
    """Refreshes Google OAuth access tokens."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http_client: httpx.Client | None = None,
        refresh_window: timedelta = DEFAULT_REFRESH_WINDOW,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize with the OAuth client credentials."""
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_window = refresh_window
        self._client = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def refresh(self, refresh_token: str) -> TokenRefreshResult:
        """Exchange ``refresh_token`` at Google's token endpoint."""
        try:
            response = self._client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            body = truncate(exc.response.text, MAX_ERROR_BODY_LEN)
            msg = f"token endpoint rejected refresh (status {exc.response.status_code}): {body}"
            raise CredentialError(msg) from exc
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"token refresh request failed: {exc}"
            raise CredentialError(msg) from exc
        access_token = data.get("access_token")
        if not access_token:
            msg = "token endpoint returned no access_token"
            raise CredentialError(msg)
        expires_at = utcnow() + timedelta(seconds=int(data.get("expires_in", 3600)))
        # Google only returns a refresh token when it rotates it.
        new_refresh_token = data.get("refresh_token") or refresh_token
        logger.info(f"Token refreshed, expires at {expires_at.isoformat()}")
        return TokenRefreshResult(access_token=access_token, refresh_token=new_refresh_token, expires_at=expires_at)
