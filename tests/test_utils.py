"""Tests for reading secrets from the pass utility."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from redmine_to_ado_migrator.utils import InvalidPassPathError, PassError, PassphraseRequiredError, get_pass_value


@pytest.mark.unit
class TestGetPassValue:
    def test_returns_stripped_value(self) -> None:
        with patch("redmine_to_ado_migrator.utils.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(stdout="secret\n")
            assert get_pass_value("redmine/api_key") == "secret"

        args, _ = mock_run.call_args
        assert args[0] == ["pass", "redmine/api_key"]

    @pytest.mark.parametrize("pass_path", ["", "../etc/passwd", "a b", "redmine//key"])
    def test_invalid_path_rejected(self, pass_path: str) -> None:
        with pytest.raises(ValueError, match="Invalid pass path"):
            _ = get_pass_value(pass_path)

    def test_pass_not_installed(self) -> None:
        with (
            patch("redmine_to_ado_migrator.utils.subprocess.run", side_effect=FileNotFoundError()),
            pytest.raises(PassError, match="not installed"),
        ):
            _ = get_pass_value("ado/pat")

    def test_unknown_path(self) -> None:
        error = subprocess.CalledProcessError(1, ["pass"], output="", stderr="Error: ado/pat is not in the password store.")
        with (
            patch("redmine_to_ado_migrator.utils.subprocess.run", side_effect=error),
            pytest.raises(InvalidPassPathError),
        ):
            _ = get_pass_value("ado/pat")

    def test_passphrase_prompt_fails_without_terminal(self) -> None:
        error = subprocess.CalledProcessError(
            2, ["pass"], output="", stderr="gpg: public key decryption failed: No pinentry"
        )
        with (
            patch("redmine_to_ado_migrator.utils.subprocess.run", side_effect=error),
            patch("builtins.input", side_effect=EOFError()),
            pytest.raises(PassphraseRequiredError),
        ):
            _ = get_pass_value("ado/pat")

    def test_other_failure(self) -> None:
        error = subprocess.CalledProcessError(3, ["pass"], output="", stderr="boom")
        with (
            patch("redmine_to_ado_migrator.utils.subprocess.run", side_effect=error),
            pytest.raises(PassError, match="Return code: 3"),
        ):
            _ = get_pass_value("ado/pat")
