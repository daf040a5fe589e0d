"""Shared fixtures for checkdocs tests."""

from collections.abc import Callable
from pathlib import Path

import pytest


@pytest.fixture
def make_vault(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Build a vault from a mapping of relative paths to file contents.

    Args:
        tmp_path: Pytest temporary directory fixture.

    Returns:
        Factory that writes the files and returns the vault root.
    """

    def _make(files: dict[str, str]) -> Path:
        root = tmp_path / "vault"
        root.mkdir(exist_ok=True)
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _make
