"""Tests for section discovery and statistics."""

from collections.abc import Callable
from pathlib import Path

import pytest

from checkdocs.loader import DocumentLoader
from checkdocs.models import DocumentModel
from checkdocs.stats import StatisticsAggregator, discover_sections


@pytest.fixture
def model(make_vault: Callable[[dict[str, str]], Path]) -> DocumentModel:
    """Load a vault with two sections and a plain directory.

    Args:
        make_vault: Vault factory fixture.

    Returns:
        Loaded DocumentModel.
    """
    root = make_vault(
        {
            "README.md": "# Index\n",
            "1-Basics/01-Intro.md": "# Intro\n\ntext\n",
            "1-Basics/02-Types.md": "# Types\n",
            "1-Basics/notes/extra.md": "# Extra\n",
            "2-Empty/.keep": "",
            "misc/other.md": "# Other\n",
        }
    )
    return DocumentLoader().load(root)


def test_discover_sections(model: DocumentModel) -> None:
    """Test numbered top-level directories become sections."""
    sections = discover_sections(model)

    assert [section.name for section in sections] == ["1-Basics", "2-Empty"]
    assert sections[0].documents == (
        "1-Basics/01-Intro.md",
        "1-Basics/02-Types.md",
        "1-Basics/notes/extra.md",
    )
    assert sections[1].documents == ()


def test_discover_sections_custom_pattern(model: DocumentModel) -> None:
    """Test the section pattern is configurable."""
    sections = discover_sections(model, r"^misc$")

    assert [section.name for section in sections] == ["misc"]
    assert sections[0].documents == ("misc/other.md",)


def test_section_stats(model: DocumentModel) -> None:
    """Test per-section totals."""
    stats = StatisticsAggregator(model).compute(discover_sections(model))

    basics = stats["1-Basics"]
    assert basics.file_total == 3
    assert basics.line_total == 5
    assert basics.module_total == 2
    assert basics.first_path == "1-Basics/01-Intro.md"
    assert basics.last_path == "1-Basics/02-Types.md"

    empty = stats["2-Empty"]
    assert (empty.file_total, empty.line_total, empty.module_total) == (0, 0, 0)
    assert empty.first_path is None


def test_totals(model: DocumentModel) -> None:
    """Test totals sum every section."""
    stats = StatisticsAggregator(model).compute(discover_sections(model))

    total = StatisticsAggregator.totals(stats)

    assert total.name == "Total"
    assert (total.file_total, total.line_total, total.module_total) == (3, 5, 2)
