"""Tests for Collectra CLI commands."""

from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from collectra.cli.main import cli, resolve_config
from collectra.hooks import HookRegistry

REPO_METADATA = Path(__file__).parent.parent.parent / "metadata"


def noop_plugin(ctx):
    return None


TARGET = f"{__name__}:noop_plugin"


@pytest.fixture(autouse=True)
def clear_hook_registry():
    HookRegistry.clear()
    yield
    HookRegistry.clear()


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(tmp_path, monkeypatch):
    """Run commands from an empty project directory with its own database."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("COLLECTRA_DB_PATH", raising=False)
    monkeypatch.setenv("COLLECTRA_METADATA_PATH", str(REPO_METADATA))
    return tmp_path


class TestResolveConfig:
    def test_backend_dir_uses_parent(self, tmp_path, monkeypatch):
        backend = tmp_path / "backend"
        backend.mkdir()
        monkeypatch.chdir(backend)
        monkeypatch.delenv("COLLECTRA_METADATA_PATH", raising=False)
        assert resolve_config().metadata_path == tmp_path / "metadata"


class TestCollectionsValidate:
    def test_validate_succeeds(self, runner, project):
        result = runner.invoke(cli, ["collections", "validate"])
        assert result.exit_code == 0
        assert "All collections are valid" in result.output

    def test_validate_shows_collections(self, runner, project):
        result = runner.invoke(cli, ["collections", "validate"])
        assert "posts" in result.output
        assert "comments" in result.output
        assert "users" in result.output
        assert "fields" in result.output

    def test_validate_reports_bad_hook(self, runner, project, monkeypatch):
        metadata = project / "metadata"
        (metadata / "collections").mkdir(parents=True)
        (metadata / "collections" / "bad.yaml").write_text(
            yaml.safe_dump({"collection": "bad", "hooks": {"beforeOperation": ["nope"]}})
        )
        monkeypatch.setenv("COLLECTRA_METADATA_PATH", str(metadata))

        result = runner.invoke(cli, ["collections", "validate"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_missing_metadata_dir(self, runner, project, monkeypatch):
        monkeypatch.setenv("COLLECTRA_METADATA_PATH", str(project / "absent"))
        result = runner.invoke(cli, ["collections", "validate"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestCollectionsList:
    def test_lists_routes(self, runner, project):
        result = runner.invoke(cli, ["collections", "list"])
        assert result.exit_code == 0
        assert "/posts  posts" in result.output
        assert "id: cuid" in result.output
        assert "1 hooks" in result.output


class TestPlugins:
    def test_empty_list(self, runner, project):
        result = runner.invoke(cli, ["plugins", "list"])
        assert result.exit_code == 0
        assert "No plugins installed." in result.output

    def test_install_disable_enable_uninstall(self, runner, project):
        result = runner.invoke(cli, ["plugins", "install", "noop", "--target", TARGET])
        assert result.exit_code == 0, result.output
        assert "Installed plugin: noop." in result.output
        assert (project / "data" / "collectra.db").exists()

        result = runner.invoke(cli, ["plugins", "list"])
        assert "noop" in result.output
        assert "active" in result.output
        assert TARGET in result.output

        result = runner.invoke(cli, ["plugins", "disable", "noop"])
        assert result.exit_code == 0
        assert "[inactive]" in runner.invoke(cli, ["plugins", "list"]).output

        result = runner.invoke(cli, ["plugins", "enable", "noop"])
        assert "Enabled plugin: noop." in result.output

        result = runner.invoke(cli, ["plugins", "uninstall", "noop"])
        assert result.exit_code == 0
        assert "No plugins installed." in runner.invoke(cli, ["plugins", "list"]).output

    def test_unknown_plugin(self, runner, project):
        result = runner.invoke(cli, ["plugins", "enable", "ghost"])
        assert result.exit_code == 1
        assert "not installed" in result.output

    def test_install_twice(self, runner, project):
        runner.invoke(cli, ["plugins", "install", "noop", "--target", TARGET])
        result = runner.invoke(cli, ["plugins", "install", "noop", "--target", TARGET])
        assert result.exit_code == 1
        assert "already installed" in result.output

    def test_install_unknown_entry_point(self, runner, project):
        result = runner.invoke(cli, ["plugins", "install", "not-a-real-plugin"])
        assert result.exit_code == 1
        assert "entry-point group" in result.output
