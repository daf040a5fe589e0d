"""Tests for index parsing and table-of-contents reconciliation."""

from collections.abc import Callable
from pathlib import Path

import pytest

from checkdocs.checker import load_index
from checkdocs.loader import DocumentLoader
from checkdocs.models import Severity, TOCEntry
from checkdocs.stats import StatisticsAggregator, discover_sections
from checkdocs.toc import IndexParser, TOCReconciler, match_section, parse_number

VaultFactory = Callable[[dict[str, str]], Path]

SECTIONS = ["1-Basics", "2-Tools"]

INDEX = """# Learning Vault

## 1. Basics

| # | Module | Topics |
|---|--------|--------|
| 1 | [Intro](1-Basics/01-Intro.md) | Setup, tooling |
| 2 | [Types](1-Basics/02-Types.md) | Primitives |
| 3 | Generics | Planned |

## Statistics

| Section | Modules | Lines |
|---------|---------|-------|
| [Basics](1-Basics/) | 3 | ~400 |
| Tools | 1 | 50+ |
| **Total** | 4 | 1,000 |
"""


def lines(title: str, count: int) -> str:
    """Build a Markdown document with an H1 and a fixed number of lines.

    Args:
        title: H1 text.
        count: Total line count.

    Returns:
        Markdown text.
    """
    return f"# {title}\n" + "text\n" * (count - 1)


def build_reconciler(
    root: Path, line_tolerance: float = 0.1, index_paths: tuple[str, ...] = ("README.md",)
) -> TOCReconciler:
    """Load a vault and its index documents into a reconciler.

    Args:
        root: Vault root.
        line_tolerance: Tolerance for approximate line counts.
        index_paths: Index documents relative to the root.

    Returns:
        TOCReconciler.
    """
    model = DocumentLoader().load(root)
    sections = discover_sections(model)
    names = [section.name for section in sections]
    indexes = [load_index(model, path, names) for path in index_paths]
    stats = StatisticsAggregator(model).compute(sections)
    return TOCReconciler(model, indexes, sections, stats, line_tolerance=line_tolerance)


@pytest.mark.parametrize(
    ("cell", "expected"),
    [
        ("1,234", (1234, None)),
        ("**42**", (42, None)),
        ("~30K", (30000, "~")),
        ("about 120", (120, "~")),
        ("≈1200", (1200, "~")),
        ("500+", (500, "+")),
        ("n/a", (None, None)),
    ],
)
def test_parse_number(cell: str, expected: tuple[int | None, str | None]) -> None:
    """Test declared count parsing."""
    assert parse_number(cell) == expected


def test_match_section() -> None:
    """Test free text is matched to section directory names."""
    assert match_section("1. Basics (25 modules)", SECTIONS) == "1-Basics"
    assert match_section("Developer Tools", SECTIONS) == "2-Tools"
    assert match_section("Appendix", SECTIONS) is None
    assert match_section("Node Advanced topics", ["1-Node", "2-Node-Advanced"]) == "2-Node-Advanced"


def test_parse_module_table() -> None:
    """Test module rows become TOC entries."""
    index = IndexParser(SECTIONS).parse("README.md", INDEX)

    assert index.entries[0] == TOCEntry(
        section_name="1-Basics",
        module_number=1,
        title="Intro",
        link_target="1-Basics/01-Intro.md",
        topics_summary="Setup, tooling",
        source_path="README.md",
        line=7,
    )
    assert [entry.module_number for entry in index.entries] == [1, 2, 3]
    planned = index.entries[2]
    assert planned.link_target is None
    assert planned.title == "Generics"
    assert planned.section_name == "1-Basics"


def test_parse_stats_table() -> None:
    """Test statistics rows, markers and the total row."""
    index = IndexParser(SECTIONS).parse("README.md", INDEX)

    assert [
        (stat.section_name, stat.module_count, stat.line_count, stat.lines_approximate, stat.is_total)
        for stat in index.stats
    ] == [
        ("1-Basics", 3, 400, "~", False),
        ("2-Tools", 1, 50, "+", False),
        ("Total", 4, 1000, None, True),
    ]
    assert [stat.line for stat in index.stats] == [15, 16, 17]


def test_reference_links_in_module_table() -> None:
    """Test reference-style links in a table row are resolved."""
    source = "| # | Module |\n|---|--------|\n| 1 | [Intro][intro] |\n\n[intro]: 1-Basics/01-Intro.md\n"

    index = IndexParser(SECTIONS).parse("README.md", source)

    assert len(index.entries) == 1
    entry = index.entries[0]
    assert entry.link_target == "1-Basics/01-Intro.md"
    assert entry.section_name == "1-Basics"
    assert entry.topics_summary == ""


def test_tables_in_code_fences_are_ignored() -> None:
    """Test example tables inside fenced code are not parsed."""
    source = "# Index\n\n```\n| Section | Modules |\n|---|---|\n| Basics | 1 |\n```\n"

    index = IndexParser(SECTIONS).parse("README.md", source)

    assert index.entries == ()
    assert index.stats == ()


def test_dangling_entries(make_vault: VaultFactory) -> None:
    """Test TOC links to missing files and missing anchors."""
    root = make_vault(
        {
            "README.md": (
                "# Index\n\n| # | Module |\n|---|--------|\n"
                "| 1 | [Intro](1-Basics/01-Intro.md) |\n"
                "| 2 | [Types](1-Basics/02-Types.md#nope) |\n"
                "| 3 | [Gone](1-Basics/03-Gone.md) |\n"
            ),
            "1-Basics/01-Intro.md": "# Intro\n",
            "1-Basics/02-Types.md": "# Types\n",
        }
    )

    findings = build_reconciler(root).check_dangling_entries()

    assert [(finding.rule, finding.severity, finding.location.line) for finding in findings] == [
        ("toc-dangling-entry", Severity.ERROR, 6),
        ("toc-dangling-entry", Severity.ERROR, 7),
    ]
    assert "has no heading with anchor '#nope'" in findings[0].message
    assert findings[1].message == "TOC entry 'Gone' links to '1-Basics/03-Gone.md', which does not exist"


def test_undocumented_modules(make_vault: VaultFactory) -> None:
    """Test numbered modules missing from the index are reported."""
    root = make_vault(
        {
            "README.md": (
                "# Index\n\n## Basics\n\n| # | Module |\n|---|--------|\n"
                "| 1 | [Intro](1-Basics/01-Intro.md) |\n"
                "| 3 | Generics |\n"
            ),
            "1-Basics/01-Intro.md": "# Intro\n",
            "1-Basics/02-Types.md": "# Types\n",
            "1-Basics/03-Generics.md": "# Generics\n",
            "1-Basics/notes/scratch.md": "# Scratch\n",
        }
    )

    findings = build_reconciler(root).check_undocumented_modules()

    assert len(findings) == 1
    finding = findings[0]
    assert finding.severity is Severity.WARNING
    assert finding.rule == "undocumented-module"
    assert finding.location.path == "1-Basics/02-Types.md"
    assert finding.location.line is None
    assert finding.message == "Module 2 of 1-Basics is not listed in README.md"


def test_statistics_drift(make_vault: VaultFactory) -> None:
    """Test declared counts are compared with computed totals."""
    root = make_vault(
        {
            "README.md": (
                "# Index\n\n| Section | Modules | Lines |\n|---------|---------|-------|\n"
                "| [Basics](1-Basics/) | 3 | ~400 |\n"
                "| Tools | 1 | 50+ |\n"
                "| Total | 4 | 1,000 |\n"
            ),
            "1-Basics/01-Intro.md": lines("Intro", 200),
            "1-Basics/02-Types.md": lines("Types", 170),
            "2-Tools/01-Git.md": lines("Git", 60),
        }
    )
    reconciler = build_reconciler(root)

    findings = reconciler.check_statistics()

    assert [(finding.location.line, finding.message) for finding in findings] == [
        (5, "1-Basics: declared module count 3 but found 2"),
        (7, "Total: declared module count 4 but found 3"),
        (7, "Total: declared line count 1000 but found 430"),
    ]
    assert all(finding.rule == "stat-drift" for finding in findings)
    assert (findings[0].expected, findings[0].actual) == (3, 2)
    assert {section.name: section.expected_module_count for section in reconciler.sections} == {
        "1-Basics": 3,
        "2-Tools": 1,
    }


@pytest.mark.parametrize(
    ("declared", "drifts"),
    [("~400", False), ("~300", True), ("370", False), ("371", True), ("300+", False), ("400+", True)],
)
def test_line_count_markers(make_vault: VaultFactory, declared: str, drifts: bool) -> None:
    """Test exact, approximate and lower-bound line counts."""
    root = make_vault(
        {
            "README.md": (
                "# Index\n\n| Section | Modules | Lines |\n|---------|---------|-------|\n"
                f"| Basics | 2 | {declared} |\n"
            ),
            "1-Basics/01-Intro.md": lines("Intro", 200),
            "1-Basics/02-Types.md": lines("Types", 170),
        }
    )

    findings = build_reconciler(root).check_statistics()

    assert bool(findings) is drifts


def test_duplicate_module_numbers(make_vault: VaultFactory) -> None:
    """Test two files in one section sharing a number."""
    root = make_vault(
        {
            "README.md": "# Index\n\n| # | Module |\n|---|--------|\n| 1 | [Intro](1-Basics/01-Intro.md) |\n",
            "1-Basics/01-Intro.md": "# Intro\n",
            "1-Basics/01-Intro-Again.md": "# Intro Again\n",
            "2-Tools/01-Git.md": "# Git\n",
        }
    )

    findings = build_reconciler(root).check_duplicate_modules()

    assert len(findings) == 1
    assert findings[0].severity is Severity.ERROR
    assert findings[0].rule == "duplicate-module-number"
    assert findings[0].location.path == "1-Basics/01-Intro-Again.md"
    assert findings[0].message == (
        "Module number 1 in 1-Basics is used by: 1-Basics/01-Intro-Again.md, 1-Basics/01-Intro.md"
    )


def test_duplicate_toc_entries(make_vault: VaultFactory) -> None:
    """Test a module listed twice in the index."""
    root = make_vault(
        {
            "README.md": (
                "# Index\n\n| # | Module |\n|---|--------|\n| 1 | [Intro](1-Basics/01-Intro.md) |\n\n"
                "## Again\n\n| # | Module |\n|---|--------|\n| 1 | [Intro](1-Basics/01-Intro.md) |\n"
            ),
            "1-Basics/01-Intro.md": "# Intro\n",
        }
    )

    findings = build_reconciler(root).check_duplicate_entries()

    assert len(findings) == 1
    assert findings[0].rule == "duplicate-toc-entry"
    assert findings[0].location.line == 11
    assert findings[0].message == "Module 1 of 1-Basics is already listed at README.md:5"


def test_same_module_in_two_index_documents(make_vault: VaultFactory) -> None:
    """Test a README and a full table of contents may both list a module."""
    table = "# Index\n\n| # | Module |\n|---|--------|\n| 1 | [Intro](1-Basics/01-Intro.md) |\n"
    root = make_vault(
        {
            "README.md": table,
            "Table_of_contents.md": table,
            "1-Basics/01-Intro.md": "# Intro\n",
        }
    )

    reconciler = build_reconciler(root, index_paths=("README.md", "Table_of_contents.md"))

    assert reconciler.check_duplicate_entries() == []
    assert reconciler.check() == []


def test_title_mismatch(make_vault: VaultFactory) -> None:
    """Test TOC titles are compared with the H1 and the filename."""
    root = make_vault(
        {
            "README.md": (
                "# Index\n\n| # | Module |\n|---|--------|\n"
                "| 1 | [Intro](1-Basics/01-Getting-Started.md) |\n"
                "| 2 | [Language Fundamentals](1-Basics/02-Language-Fundamentals.md) |\n"
            ),
            "1-Basics/01-Getting-Started.md": "# Getting Started\n",
            "1-Basics/02-Language-Fundamentals.md": "# Fundamentals of the Language\n",
        }
    )

    findings = build_reconciler(root).check_titles()

    assert len(findings) == 1
    finding = findings[0]
    assert finding.severity is Severity.INFO
    assert finding.rule == "title-mismatch"
    assert finding.location.line == 5
    assert (finding.expected, finding.actual) == ("Intro", "Getting Started")


def test_claimed_links(make_vault: VaultFactory) -> None:
    """Test TOC entry links are handed to the reconciler, not the resolver."""
    root = make_vault(
        {
            "README.md": "# Index\n\n| # | Module |\n|---|--------|\n| 1 | [Intro](1-Basics/01-Intro.md) |\n",
            "1-Basics/01-Intro.md": "# Intro\n",
        }
    )

    assert build_reconciler(root).claimed_links() == {("README.md", 5, "1-Basics/01-Intro.md")}
