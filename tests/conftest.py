"""Pytest configuration and shared fixtures for lathe tests."""

import os
import sys
import textwrap
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch):
    """Keep tests out of the repo, the real home directory and LATHE_* settings."""
    monkeypatch.chdir(tmp_path)
    home = tmp_path / "_home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for name in list(os.environ):
        if name.startswith("LATHE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def write_descriptor():
    """Write a project.yaml into a directory and return its path."""

    def _write(directory: Path, content: str) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "project.yaml"
        path.write_text(textwrap.dedent(content))
        return path

    return _write


@pytest.fixture
def project_dir(tmp_path, write_descriptor):
    """A minimal project without dependencies."""
    root = tmp_path / "widget"
    write_descriptor(
        root,
        """\
        project: acme/widget
        version: 1.2.0
        description: A widget
        """,
    )
    (root / "src").mkdir()
    return root


@pytest.fixture
def project(project_dir):
    from lathe.project import read_project

    return read_project(project_dir / "project.yaml")


@pytest.fixture
def clean_sys_path(monkeypatch):
    """Restore sys.path and sys.modules changes made by hook loading."""
    monkeypatch.setattr(sys, "path", list(sys.path))
    before = set(sys.modules)
    yield
    for name in set(sys.modules) - before:
        if not name.startswith(("lathe", "_pytest", "pytest")):
            sys.modules.pop(name, None)
