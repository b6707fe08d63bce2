"""Google OAuth for the digest mailbox and the publisher lookup sheet."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import Resource, build

from digest_indexer.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

GMAIL_READONLY = "https://www.googleapis.com/auth/gmail.readonly"
SHEETS_READONLY = "https://www.googleapis.com/auth/spreadsheets.readonly"
SCOPES = (GMAIL_READONLY, SHEETS_READONLY)


def _load_cached(token_path: Path, scopes: Sequence[str]) -> Credentials | None:
    """Cached credentials, refreshed if expired. None when a new consent is needed."""
    if not token_path.exists():
        return None
    try:
        creds = Credentials.from_authorized_user_file(str(token_path), list(scopes))
    except ValueError as e:
        logger.warning("Ignoring unreadable token cache %s: %s", token_path, e)
        return None

    # A token cached before the Sheets scope was added must go through consent again.
    if not creds.has_scopes(list(scopes)):
        logger.info("Cached token lacks required scopes, re-authenticating")
        return None
    if creds.valid:
        return creds
    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
        except Exception as e:
            logger.warning("Token refresh failed, re-authenticating: %s", e)
            return None
        _save_token(creds, token_path)
        return creds
    return None


def authenticate(
    credentials_path: Path, token_path: Path, scopes: Sequence[str] = SCOPES
) -> Credentials:
    """Credentials for Gmail and Sheets read access.

    Uses the cached token when possible, otherwise runs the installed-app
    consent flow and caches the result.

    Raises:
        AuthenticationError: If the client secrets file is missing or the flow fails.
    """
    creds = _load_cached(token_path, scopes)
    if creds is not None:
        return creds

    if not credentials_path.exists():
        raise AuthenticationError(
            f"Credentials file not found: {credentials_path}. "
            "Download the OAuth client secrets from Google Cloud Console."
        )

    try:
        flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), list(scopes))
        creds = flow.run_local_server(port=0)
    except Exception as e:
        raise AuthenticationError(f"OAuth flow failed: {e}") from e

    _save_token(creds, token_path)
    logger.info("Authenticated, token cached at %s", token_path)
    return creds


def build_gmail_service(creds: Credentials) -> Resource:
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def build_sheets_service(creds: Credentials) -> Resource:
    return build("sheets", "v4", credentials=creds, cache_discovery=False)


def _save_token(creds: Credentials, token_path: Path) -> None:
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
