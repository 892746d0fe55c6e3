"""Tests for the lathe command line entry point."""

from unittest.mock import patch

from click.testing import CliRunner

from lathe import __version__
from lathe.cli import cli


def test_version_command():
    runner = CliRunner()
    result = runner.invoke(cli, ["version"])
    assert result.exit_code == 0
    assert f"lathe {__version__}" in result.output


def test_no_command_shows_help():
    runner = CliRunner()
    result = runner.invoke(cli, [])
    assert result.exit_code == 0
    assert "version" in result.output
    assert "clean" in result.output


def test_help_aliases():
    runner = CliRunner()
    for alias in ("--help", "-h", "-?"):
        with patch("lathe.cli.main", return_value=0) as mock_main:
            result = runner.invoke(cli, [alias])
        assert result.exit_code == 0
        mock_main.assert_called_once_with(alias)


def test_arguments_passed_through_unparsed():
    runner = CliRunner()
    with patch("lathe.cli.main", return_value=0) as mock_main:
        runner.invoke(cli, ["run", "-m", "app", "--verbose", "--help", "x"])
    mock_main.assert_called_once_with("run", "-m", "app", "--verbose", "--help", "x")


def test_exit_code_from_task():
    runner = CliRunner()
    with patch("lathe.cli.main", return_value=42):
        result = runner.invoke(cli, ["anything"])
    assert result.exit_code == 42


def test_unknown_task_exits_1():
    runner = CliRunner()
    result = runner.invoke(cli, ["no-such-task"])
    assert result.exit_code == 1


def test_project_task_without_descriptor_exits_1():
    runner = CliRunner()
    result = runner.invoke(cli, ["clean"])
    assert result.exit_code == 1


def test_new_creates_project(tmp_path):
    runner = CliRunner()
    result = runner.invoke(cli, ["new", "acme/demo"])
    assert result.exit_code == 0
    assert (tmp_path / "demo" / "project.yaml").is_file()
