"""
Tests for the cmdengine CLI.
"""

import importlib
import json

import pytest
from rich.console import Console
from typer.testing import CliRunner

from cmdengine import __version__
from cmdengine.cli.main import app

cli_main = importlib.import_module("cmdengine.cli.main")

runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    monkeypatch.setattr(cli_main, "console", Console(width=200))


@pytest.fixture
def command_log(monkeypatch, tmp_path):
    path = tmp_path / "command_log.db"
    monkeypatch.setenv("CMDENGINE_COMMAND_LOG_PATH", str(path))
    return path


class TestRun:
    """Tests for `cmdengine run`."""

    def test_success(self):
        result = runner.invoke(app, ["run", "create a product named Foo for 10", "--user", "admin"])

        assert result.exit_code == 0
        assert "success: Created product 'Foo' for 10.00" in result.output
        assert "View product" in result.output

    def test_failure_exit_code(self):
        result = runner.invoke(app, ["run", "create a product named Foo for 10"])

        assert result.exit_code == 1
        assert "You do not have permission to run shop.create_product" in result.output

    def test_json_output(self):
        result = runner.invoke(app, ["run", "list products", "--json"])

        assert result.exit_code == 0
        envelope = json.loads(result.output)
        assert envelope["status"] == "success"
        assert envelope["completedSteps"] == []

    def test_content_disabled_without_llm(self):
        result = runner.invoke(app, ["run", "list posts", "-u", "admin"])
        assert result.exit_code == 1
        assert "no action matched" in result.output


class TestActions:
    def test_lists_visible_actions(self):
        result = runner.invoke(app, ["actions", "--user", "admin"])

        assert result.exit_code == 0
        assert "Actions for admin" in result.output
        assert "shop.create_product" in result.output
        assert "products.create" in result.output
        assert "post.create" not in result.output
        assert "Disabled capabilities: content" in result.output


class TestHistory:
    def test_empty(self, command_log):
        result = runner.invoke(app, ["history"])
        assert result.exit_code == 0
        assert "No commands recorded" in result.output

    def test_after_run(self, command_log):
        runner.invoke(app, ["run", "list products", "-u", "admin"])
        runner.invoke(app, ["run", "create a product named Foo for 10", "-u", "bob"])

        result = runner.invoke(app, ["history", "--user", "admin"])

        assert result.exit_code == 0
        assert "Command History" in result.output
        assert "list products" in result.output
        assert "shop.list_products" in result.output
        assert "create a product named Foo" not in result.output


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"cmdengine v{__version__}" in result.output
