"""Tests for OAuth credential loading with the Google libraries mocked."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from digest_indexer.core.auth import SCOPES, authenticate
from digest_indexer.core.exceptions import AuthenticationError


@pytest.fixture
def token_path(tmp_path: Path) -> Path:
    path = tmp_path / "creds" / "token.json"
    path.parent.mkdir(parents=True)
    path.write_text("{}")
    return path


def _creds(*, valid: bool, expired: bool = False, scoped: bool = True) -> MagicMock:
    creds = MagicMock()
    creds.valid = valid
    creds.expired = expired
    creds.refresh_token = "refresh"
    creds.has_scopes.return_value = scoped
    creds.to_json.return_value = '{"token": "new"}'
    return creds


class TestAuthenticate:
    def test_valid_cached_token(self, tmp_path: Path, token_path: Path) -> None:
        creds = _creds(valid=True)
        with patch(
            "digest_indexer.core.auth.Credentials.from_authorized_user_file", return_value=creds
        ) as mock_load:
            assert authenticate(tmp_path / "missing.json", token_path) is creds

        mock_load.assert_called_once_with(str(token_path), list(SCOPES))

    def test_expired_token_is_refreshed_and_saved(
        self, tmp_path: Path, token_path: Path
    ) -> None:
        creds = _creds(valid=False, expired=True)
        with (
            patch(
                "digest_indexer.core.auth.Credentials.from_authorized_user_file",
                return_value=creds,
            ),
            patch("digest_indexer.core.auth.Request"),
        ):
            assert authenticate(tmp_path / "missing.json", token_path) is creds

        creds.refresh.assert_called_once()
        assert token_path.read_text() == '{"token": "new"}'

    def test_token_missing_scope_runs_consent_flow(
        self, tmp_path: Path, token_path: Path
    ) -> None:
        secrets = tmp_path / "client_secret.json"
        secrets.write_text("{}")
        fresh = _creds(valid=True)
        with (
            patch(
                "digest_indexer.core.auth.Credentials.from_authorized_user_file",
                return_value=_creds(valid=True, scoped=False),
            ),
            patch("digest_indexer.core.auth.InstalledAppFlow") as mock_flow,
        ):
            mock_flow.from_client_secrets_file.return_value.run_local_server.return_value = fresh
            assert authenticate(secrets, token_path) is fresh

        mock_flow.from_client_secrets_file.assert_called_once_with(str(secrets), list(SCOPES))

    def test_missing_client_secrets_raises(self, tmp_path: Path) -> None:
        with pytest.raises(AuthenticationError, match="Credentials file not found"):
            authenticate(tmp_path / "missing.json", tmp_path / "token.json")

    def test_flow_failure_raises(self, tmp_path: Path) -> None:
        secrets = tmp_path / "client_secret.json"
        secrets.write_text("{}")
        with patch("digest_indexer.core.auth.InstalledAppFlow") as mock_flow:
            mock_flow.from_client_secrets_file.side_effect = ValueError("bad client config")
            with pytest.raises(AuthenticationError, match="OAuth flow failed"):
                authenticate(secrets, tmp_path / "token.json")
