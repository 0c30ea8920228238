# ruff: noqa: S101
"""Tests for connection CLI commands."""

import base64
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from finloop.cli.commands.connect import app
from finloop.errors import TokenAlreadyClaimedError
from finloop.store import JsonStateStore

CLAIM_URL = "https://bridge.example.com/simplefin/claim/abc"
SETUP_TOKEN = base64.b64encode(CLAIM_URL.encode()).decode()


class TestClaimCommand:
    """Tests for ``connect claim``."""

    @pytest.fixture
    def runner(self) -> CliRunner:
        """Create a CLI runner for testing."""
        return CliRunner()

    @pytest.fixture
    def mock_client(
        self, mocker: Any, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> MagicMock:
        monkeypatch.chdir(tmp_path)
        client = mocker.MagicMock()
        mocker.patch(
            "finloop.cli.commands.connect.SimplefinClient.from_settings",
            return_value=client,
        )
        return client

    @pytest.mark.unit
    def test_prints_access_url(
        self, runner: CliRunner, mock_client: MagicMock, access_url: str
    ) -> None:
        mock_client.claim_access_url.return_value = access_url

        result = runner.invoke(app, ["claim", SETUP_TOKEN])

        assert result.exit_code == 0
        assert result.stdout.strip() == access_url
        mock_client.claim_access_url.assert_called_once_with(CLAIM_URL)

    @pytest.mark.unit
    def test_adds_connection_to_state(
        self,
        runner: CliRunner,
        mock_client: MagicMock,
        access_url: str,
        tmp_path: Path,
    ) -> None:
        mock_client.claim_access_url.return_value = access_url
        state = tmp_path / "state.json"

        result = runner.invoke(app, ["claim", SETUP_TOKEN, "--state", str(state)])

        assert result.exit_code == 0
        (connection,) = JsonStateStore(state).load().connections
        assert connection.access_url == access_url
        assert result.stdout.strip() == connection.id
        assert access_url not in result.stdout

    @pytest.mark.unit
    def test_invalid_token(self, runner: CliRunner, mock_client: MagicMock) -> None:
        result = runner.invoke(app, ["claim", "!!!"])

        assert result.exit_code == 1
        mock_client.claim_access_url.assert_not_called()

    @pytest.mark.unit
    def test_already_claimed(self, runner: CliRunner, mock_client: MagicMock) -> None:
        mock_client.claim_access_url.side_effect = TokenAlreadyClaimedError()

        result = runner.invoke(app, ["claim", SETUP_TOKEN])

        assert result.exit_code == 1
        assert "Traceback" not in result.stdout
