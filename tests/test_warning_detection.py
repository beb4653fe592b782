"""
Tests for the conftest.py guard that fails integration tests on logged warnings.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

logger: logging.Logger = logging.getLogger("redmine_to_ado_migrator.test")


@pytest.mark.unit
class TestUnitTestWarningBehavior:
    def test_unit_test_allows_logger_warnings(self) -> None:
        """A skipped attachment or unmapped relation warning must not fail a unit test."""
        logger.warning("Skipping empty or unavailable attachment log.txt of Redmine issue #1")


@pytest.mark.unit
class TestIntegrationTestWarningBehavior:
    def _run_pytest(self, tmp_path: Path, body: str) -> subprocess.CompletedProcess[str]:
        _ = shutil.copy(Path(__file__).parent / "conftest.py", tmp_path / "conftest.py")
        _ = (tmp_path / "pytest.ini").write_text(
            "[pytest]\nmarkers =\n    integration: live tests\n", encoding="utf-8"
        )
        test_file = tmp_path / "test_temp_warning.py"
        _ = test_file.write_text(body, encoding="utf-8")

        return subprocess.run(  # noqa: S603
            [sys.executable, "-m", "pytest", str(test_file), "-v", "--tb=short", "-p", "no:cacheprovider"],
            capture_output=True,
            text=True,
            cwd=str(tmp_path),
            check=False,
        )

    def test_integration_test_with_warning_fails(self, tmp_path: Path) -> None:
        result = self._run_pytest(
            tmp_path,
            """
import logging
import pytest

@pytest.mark.integration
def test_warning():
    logging.getLogger("redmine_to_ado_migrator.orchestrator").warning("Skipping self-link on work item #5")
""",
        )

        assert result.returncode != 0, f"Expected test to fail but it passed:\n{result.stdout}"
        assert "warning(s) detected" in result.stdout, result.stdout

    def test_integration_test_without_warnings_passes(self, tmp_path: Path) -> None:
        result = self._run_pytest(
            tmp_path,
            """
import logging
import pytest

@pytest.mark.integration
def test_info_only():
    logging.getLogger("redmine_to_ado_migrator.orchestrator").info("Creating 3 links...")
""",
        )

        assert result.returncode == 0, f"Expected test to pass:\n{result.stdout}\n{result.stderr}"
