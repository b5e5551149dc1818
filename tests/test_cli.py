"""Tests for the tfvm command line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from tfvm.__main__ import main
from tfvm.core.errors import HashMismatchError, SignatureVerificationError
from tfvm.core.store import VersionStore
from tfvm.core.types import InstallResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, config_file):
    """Invoke the CLI with the test configuration."""

    def _invoke(*args):
        return runner.invoke(main, ["--config", str(config_file), *args])

    return _invoke


@pytest.fixture
def installed(app_config):
    """Place two installed versions into the store."""
    app_config.versions_dir.mkdir(parents=True)
    for version in ("1.4.0", "1.5.0"):
        (app_config.versions_dir / f"terraform_{version}").write_bytes(b"#!/bin/sh\n")
    return VersionStore(app_config)


class TestMainCLI:
    """Tests for main CLI functionality."""

    def test_main_help(self, runner):
        """Test main command help output."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Install, list and switch versions of Terraform." in result.output
        for command in ("install", "uninstall", "list", "use", "current", "version"):
            assert command in result.output

    def test_version_command(self, invoke):
        """Test version command."""
        result = invoke("version")
        assert result.exit_code == 0
        assert "tfvm 0.1.0" in result.output

    def test_version_json(self, invoke):
        """Test version command with JSON output."""
        result = invoke("--output", "json", "version")
        assert result.exit_code == 0
        info = json.loads(result.output)
        assert info["name"] == "tfvm"
        assert info["version"] == "0.1.0"

    def test_version_option(self, runner):
        """Test --version option."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_verbose_flag(self, invoke):
        """Test verbose flag is accepted."""
        result = invoke("--verbose", "version")
        assert result.exit_code == 0

    def test_debug_flag(self, invoke):
        """Test debug flag is accepted."""
        result = invoke("--debug", "version")
        assert result.exit_code == 0

    def test_invalid_config(self, runner, temp_dir):
        """Test an unreadable configuration file aborts."""
        path = temp_dir / "config.json"
        path.write_text("{not json")

        result = runner.invoke(main, ["--config", str(path), "list"])

        assert result.exit_code == 1


class TestVersionsCommands:
    """Tests for list, use and current."""

    def test_list_empty(self, invoke):
        """Test listing an empty store."""
        result = invoke("list")
        assert result.exit_code == 0
        assert "No versions installed" in result.output

    def test_list_marks_current(self, invoke, installed):
        """Test the active version is marked."""
        installed.set_current("1.5.0")

        result = invoke("list")

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert "    1.4.0" in lines
        assert "  * 1.5.0" in lines

    def test_list_json(self, invoke, installed):
        """Test listing with JSON output."""
        installed.set_current("1.4.0")

        result = invoke("-o", "json", "list")

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "current": "1.4.0",
            "versions": ["1.4.0", "1.5.0"],
        }

    def test_list_dangling_pointer(self, invoke, installed):
        """Test a pointer to a removed version is reported."""
        installed.set_current("1.5.0")
        installed.path_for("1.5.0").unlink()

        result = invoke("list")

        assert result.exit_code == 1
        assert "missing version 1.5.0" in result.output

    def test_use(self, invoke, installed):
        """Test switching versions."""
        result = invoke("use", "1.5.0")

        assert result.exit_code == 0
        assert "Now using terraform version 1.5.0" in result.output
        assert installed.get_current() == "1.5.0"

    def test_use_not_installed(self, invoke, installed):
        """Test switching to a version that is not installed."""
        result = invoke("use", "1.9.0")

        assert result.exit_code == 1
        assert "Version 1.9.0 is not installed" in result.output
        assert installed.get_current() is None

    def test_current_none(self, invoke):
        """Test current without an active version."""
        result = invoke("current")
        assert result.exit_code == 0
        assert "No current version" in result.output

    def test_current(self, invoke, installed):
        """Test current after switching."""
        installed.set_current("1.4.0")

        result = invoke("current")

        assert result.exit_code == 0
        assert result.output.strip() == "1.4.0"

    def test_current_json(self, invoke):
        """Test current with JSON output."""
        result = invoke("-o", "json", "current")
        assert result.exit_code == 0
        assert json.loads(result.output) == {"current": None}


class TestInstallCommands:
    """Tests for install and uninstall."""

    @patch("tfvm.commands.install.Installer")
    def test_install(self, mock_installer_class, invoke, app_config):
        """Test installing a version."""
        mock_installer = mock_installer_class.return_value
        mock_installer.install = AsyncMock(return_value=InstallResult(
            version="1.5.0",
            path=app_config.versions_dir / "terraform_1.5.0",
            digest="ab" * 32,
            bytes_downloaded=1024,
        ))

        result = invoke("install", "1.5.0")

        assert result.exit_code == 0
        assert "Downloading terraform version 1.5.0..." in result.output
        assert "Complete" in result.output
        mock_installer.install.assert_awaited_once()
        assert mock_installer.install.call_args.args == ("1.5.0",)

    @patch("tfvm.commands.install.Installer")
    def test_install_already_installed(self, mock_installer_class, invoke, app_config):
        """Test installing a version that is present."""
        mock_installer_class.return_value.install = AsyncMock(return_value=InstallResult(
            version="1.5.0",
            path=app_config.versions_dir / "terraform_1.5.0",
            already_installed=True,
        ))

        result = invoke("install", "1.5.0")

        assert result.exit_code == 0
        assert "Version 1.5.0 is already installed" in result.output

    @patch("tfvm.commands.install.Installer")
    def test_install_json(self, mock_installer_class, invoke, app_config):
        """Test installing with JSON output."""
        path = app_config.versions_dir / "terraform_1.5.0"
        mock_installer = mock_installer_class.return_value
        mock_installer.install = AsyncMock(return_value=InstallResult(
            version="1.5.0", path=path, digest="ab" * 32, bytes_downloaded=1024,
        ))

        result = invoke("-o", "json", "install", "1.5.0")

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "version": "1.5.0",
            "path": str(path),
            "digest": "ab" * 32,
            "already_installed": False,
        }
        mock_installer.install.assert_awaited_once_with("1.5.0")

    @pytest.mark.parametrize("error,message", [
        (HashMismatchError("00" * 32, "ff" * 32), "Hash verification failed"),
        (SignatureVerificationError("Manifest signed by unexpected key"), "unexpected key"),
        (OSError("No space left on device"), "No space left on device"),
    ])
    @patch("tfvm.commands.install.Installer")
    def test_install_failure(self, mock_installer_class, error, message, invoke):
        """Test install failures are reported as errors."""
        mock_installer_class.return_value.install = AsyncMock(side_effect=error)

        result = invoke("install", "1.5.0")

        assert result.exit_code == 1
        assert message in result.output

    def test_uninstall(self, invoke, installed):
        """Test uninstalling a version."""
        installed.set_current("1.5.0")

        result = invoke("uninstall", "1.5.0")

        assert result.exit_code == 0
        assert "Uninstalling terraform version 1.5.0..." in result.output
        assert "Complete" in result.output
        assert installed.list() == ["1.4.0"]
        assert installed.get_current() is None

    def test_uninstall_not_installed(self, invoke):
        """Test uninstalling a version that is not installed."""
        result = invoke("uninstall", "1.5.0")

        assert result.exit_code == 1
        assert "Version 1.5.0 is not installed" in result.output
