"""Tests for lathe constants module."""

from lathe.constants import (
    ALIASES,
    BOOTSTRAP_COMMAND,
    DEFAULT_COMMAND,
    DESCRIPTOR_FILENAME,
    EXIT_INTERRUPTED,
    EXIT_TIMEOUT,
    LATHE_DIR_NAME,
    SIGNAL_EXIT_BASE,
)


class TestConstants:
    def test_descriptor_filename(self):
        assert DESCRIPTOR_FILENAME == "project.yaml"

    def test_lathe_dir_name(self):
        assert LATHE_DIR_NAME == ".lathe"

    def test_help_aliases(self):
        assert ALIASES == {"--help": "help", "-h": "help", "-?": "help"}

    def test_aliases_are_single_hop(self):
        assert not set(ALIASES.values()) & set(ALIASES)

    def test_commands(self):
        assert BOOTSTRAP_COMMAND == "new"
        assert DEFAULT_COMMAND == "help"

    def test_shell_exit_conventions(self):
        assert EXIT_TIMEOUT == 124
        assert EXIT_INTERRUPTED == SIGNAL_EXIT_BASE + 2
