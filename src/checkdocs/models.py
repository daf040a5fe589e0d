"""Data models for documentation vault checks."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType


class LinkKind(str, Enum):
    """Classification of a link target."""

    INTERNAL_FILE = "internal-file"
    INTERNAL_ANCHOR = "internal-anchor"
    EXTERNAL = "external"
    MAILTO = "mailto"


class Severity(str, Enum):
    """Finding severity, ordered from most to least severe."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Sort rank (0 is most severe)."""
        return _SEVERITY_RANK[self]

    def at_least(self, threshold: "Severity") -> bool:
        """Check whether this severity meets a threshold.

        Args:
            threshold: Minimum severity.

        Returns:
            True if this severity is as severe as or more severe than threshold.
        """
        return self.rank <= threshold.rank


_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFO: 2}


@dataclass(frozen=True)
class Heading:
    """An ATX heading (or an RST section title)."""

    level: int
    text: str
    slug: str
    line: int


@dataclass(frozen=True)
class Link:
    """An outgoing link extracted from a document."""

    raw_target: str
    kind: LinkKind
    line: int
    text: str = ""
    is_image: bool = False

    @property
    def path_part(self) -> str:
        """Target without its fragment."""
        return self.raw_target.split("#", 1)[0]

    @property
    def fragment(self) -> str | None:
        """Fragment after '#', or None."""
        if "#" not in self.raw_target:
            return None
        return self.raw_target.split("#", 1)[1]


@dataclass(frozen=True)
class Callout:
    """A GitHub-style alert marker (``> [!NOTE]``)."""

    kind: str
    line: int


@dataclass(frozen=True)
class Document:
    """Represents one documentation file."""

    path: str
    headings: tuple[Heading, ...]
    links: tuple[Link, ...]
    line_count: int
    module_number: int | None = None
    undefined_references: tuple[tuple[str, int], ...] = ()
    setext_lines: tuple[int, ...] = ()
    callouts: tuple[Callout, ...] = ()

    @property
    def title(self) -> str | None:
        """Text of the first level-1 heading, if any."""
        for heading in self.headings:
            if heading.level == 1:
                return heading.text
        return None

    @property
    def slugs(self) -> frozenset[str]:
        """All heading slugs in this document."""
        return frozenset(heading.slug for heading in self.headings)

    @property
    def top_directory(self) -> str | None:
        """First path component when the document lives in a subdirectory."""
        if "/" not in self.path:
            return None
        return self.path.split("/", 1)[0]


@dataclass(frozen=True)
class Location:
    """Where a finding applies."""

    path: str
    line: int | None = None

    def __str__(self) -> str:
        if self.line is None:
            return self.path
        return f"{self.path}:{self.line}"


@dataclass(frozen=True)
class Finding:
    """Result of a validation rule."""

    severity: Severity
    rule: str
    location: Location
    message: str
    expected: int | str | None = None
    actual: int | str | None = None

    def sort_key(self) -> tuple[int, str, str, int, str]:
        """Key ordering findings by severity, path, rule, line and message."""
        line = self.location.line if self.location.line is not None else -1
        return (self.severity.rank, self.location.path, self.rule, line, self.message)

    def to_dict(self) -> dict[str, object]:
        """Serialise to a JSON-compatible dict."""
        return {
            "severity": self.severity.value,
            "rule": self.rule,
            "location": {"path": self.location.path, "line": self.location.line},
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass(frozen=True)
class Section:
    """A top-level directory grouping numbered modules."""

    name: str
    directory_path: str
    documents: tuple[str, ...]
    expected_module_count: int | None = None


@dataclass(frozen=True)
class TOCEntry:
    """One module row parsed from an index document table."""

    section_name: str
    module_number: int | None
    title: str
    link_target: str | None
    topics_summary: str
    source_path: str
    line: int


@dataclass(frozen=True)
class DeclaredStat:
    """One row of a statistics table in an index document.

    ``lines_approximate`` is ``"~"`` for a value within tolerance, ``"+"`` for a
    lower bound, or ``None`` for an exact value.
    """

    section_name: str
    module_count: int | None
    line_count: int | None
    source_path: str
    line: int
    lines_approximate: str | None = None
    modules_approximate: str | None = None
    is_total: bool = False


@dataclass(frozen=True)
class IndexDocument:
    """Parsed contents of an index document."""

    path: str
    entries: tuple[TOCEntry, ...]
    stats: tuple[DeclaredStat, ...]


@dataclass(frozen=True)
class SectionStats:
    """Computed ground-truth counts for one section."""

    name: str
    file_total: int
    line_total: int
    module_total: int
    first_path: str | None = None
    last_path: str | None = None
    expected_module_count: int | None = None

    def to_dict(self) -> dict[str, object]:
        """Serialise to a JSON-compatible dict."""
        return {
            "name": self.name,
            "file_total": self.file_total,
            "line_total": self.line_total,
            "module_total": self.module_total,
            "first_path": self.first_path,
            "last_path": self.last_path,
            "expected_module_count": self.expected_module_count,
        }


@dataclass(frozen=True)
class DocumentModel:
    """Immutable snapshot of a vault."""

    root: Path
    documents: Mapping[str, Document]
    files: frozenset[str] = frozenset()
    directories: frozenset[str] = frozenset()
    load_findings: tuple[Finding, ...] = ()

    def __post_init__(self) -> None:
        ordered = {path: self.documents[path] for path in sorted(self.documents)}
        object.__setattr__(self, "documents", MappingProxyType(ordered))

    def get(self, path: str) -> Document | None:
        """Look up a document by relative path.

        Args:
            path: Relative POSIX path.

        Returns:
            The document, or None.
        """
        return self.documents.get(path)

    def exists(self, path: str) -> bool:
        """Check whether a path is a document, file or directory in the snapshot.

        Args:
            path: Relative POSIX path ('' or '.' is the root).

        Returns:
            True if the snapshot contains the path.
        """
        if path in ("", "."):
            return True
        return path in self.documents or path in self.files or path in self.directories


@dataclass(frozen=True)
class Report:
    """Final ordered collection of findings."""

    findings: tuple[Finding, ...]
    section_stats: tuple[SectionStats, ...] = field(default=())

    def count(self, severity: Severity) -> int:
        """Number of findings with the given severity.

        Args:
            severity: Severity to count.

        Returns:
            Finding count.
        """
        return sum(1 for finding in self.findings if finding.severity is severity)

    def has_failures(self, fail_on: Severity) -> bool:
        """Check whether any finding meets the failure threshold.

        Args:
            fail_on: Minimum severity that causes failure.

        Returns:
            True if the run should fail.
        """
        return any(finding.severity.at_least(fail_on) for finding in self.findings)
