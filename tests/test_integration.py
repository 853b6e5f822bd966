"""Integration tests for end-to-end functionality."""

import json
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def fixtures_path():
    return Path(__file__).parent / "fixtures" / "sample_classes"


class TestEndToEnd:
    def given_source(self, fixtures_path, name):
        self.source = fixtures_path / name

    def when_cli_is_executed(self, *extra):
        self.result = subprocess.run(
            [sys.executable, "-m", "unit_skeleton", str(self.source), *extra],
            capture_output=True,
            text=True,
            cwd=PROJECT_ROOT,
        )

    def then_exit_code_is_zero(self):
        assert self.result.returncode == 0, self.result.stderr

    def test_cli_produces_valid_json(self, fixtures_path):
        """CLI produces the JSON mock plan."""
        self.given_source(fixtures_path, "order_service.py")
        self.when_cli_is_executed("--json")
        self.then_exit_code_is_zero()
        output = json.loads(self.result.stdout)
        assert output["class_type"] == "service"
        assert "self.api.save" in output["methods"]["place_order"]["map"]

    def test_verbose_logs_expressions(self, fixtures_path):
        """--verbose traces every analyzed expression on stderr."""
        self.given_source(fixtures_path, "order_service.py")
        self.when_cli_is_executed("--json", "--verbose")
        self.then_exit_code_is_zero()
        assert "DEBUG: Expression 0: order = Order(customer_id, items)" in self.result.stderr

    def test_invalid_source_exits_with_error(self, tmp_path):
        """Unparseable source exits with code 1."""
        self.source = tmp_path / "broken.py"
        self.source.write_text("class Broken(:\n")
        self.when_cli_is_executed()
        assert self.result.returncode == 1
        assert "Error:" in self.result.stderr

    def test_generated_tests_pass(self, fixtures_path, tmp_path):
        """The generated skeleton for a plain class runs green under pytest."""
        shutil.copy(fixtures_path / "report_writer.py", tmp_path / "report_writer.py")
        self.source = tmp_path / "report_writer.py"
        self.when_cli_is_executed("--spec")
        self.then_exit_code_is_zero()

        run = subprocess.run(
            [sys.executable, "-m", "pytest", "-q", "-p", "no:cacheprovider", "test_report_writer.py"],
            capture_output=True,
            text=True,
            cwd=tmp_path,
        )
        assert run.returncode == 0, run.stdout + run.stderr
        assert "3 passed" in run.stdout

    def test_generated_loop_and_generator_tests_pass(self, fixtures_path, tmp_path):
        """Loop bodies and generator methods run, so their spies are called."""
        shutil.copy(fixtures_path / "batch_job.py", tmp_path / "batch_job.py")
        self.source = tmp_path / "batch_job.py"
        self.when_cli_is_executed("--spec")
        self.then_exit_code_is_zero()

        run = subprocess.run(
            [sys.executable, "-m", "pytest", "-q", "-p", "no:cacheprovider", "test_batch_job.py"],
            capture_output=True,
            text=True,
            cwd=tmp_path,
        )
        assert run.returncode == 0, run.stdout + run.stderr
        assert "4 passed" in run.stdout
