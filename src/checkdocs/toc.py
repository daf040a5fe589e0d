"""Index document parsing and table-of-contents reconciliation."""

import logging
import re
from collections import defaultdict
from dataclasses import replace

from checkdocs.models import (
    DeclaredStat,
    DocumentModel,
    Finding,
    IndexDocument,
    LinkKind,
    Location,
    Section,
    SectionStats,
    Severity,
    TOCEntry,
)
from checkdocs.parser import (
    MARKDOWN_SUFFIXES,
    RST_SUFFIXES,
    collect_definitions,
    extract_line_links,
    iter_content_lines,
    match_heading,
    parse_module_number,
    plain_heading_text,
    title_from_filename,
)
from checkdocs.resolver import LinkKey, resolve_path
from checkdocs.stats import StatisticsAggregator

logger = logging.getLogger(__name__)

_DELIMITER_ROW_RE = re.compile(r"^\s*\|?\s*:?-+:?\s*(?:\|\s*:?-+:?\s*)*\|?\s*$")
_CELL_SPLIT_RE = re.compile(r"(?<!\\)\|")
_NUMBER_RE = re.compile(r"^(~|≈|about\s+|approx\.?\s+)?\s*(\d[\d,_ ]*(?:\.\d+)?)\s*([kK])?\s*(\+)?")
_MODULE_CELL_RE = re.compile(r"^\*{0,2}(\d+)\.?\*{0,2}$")
_TOTAL_RE = re.compile(r"^\W*total\W*$", re.IGNORECASE)
_MODULES_HEADER_RE = re.compile(r"\b(?:modules|files|(?:module|file)\s+count)\b")
_LINES_HEADER_RE = re.compile(r"\b(?:lines|line\s+count)\b")

_DOCUMENT_SUFFIXES = MARKDOWN_SUFFIXES + RST_SUFFIXES


def _split_cells(row: str) -> list[str]:
    """Split a table row on unescaped pipes.

    Args:
        row: Table row with optional outer pipes.

    Returns:
        Stripped cell texts.
    """
    row = row.strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|") and not row.endswith("\\|"):
        row = row[:-1]
    return [cell.strip() for cell in _CELL_SPLIT_RE.split(row)]


def _normalise_name(text: str) -> str:
    """Lowercase and drop everything except letters and digits.

    Args:
        text: Title or section text.

    Returns:
        Comparison key.
    """
    return re.sub(r"[^0-9a-z]", "", text.casefold())


def match_section(text: str, section_names: list[str]) -> str | None:
    """Match free text (a heading or table cell) to a section directory name.

    ``1. ECMAScript (25 modules)`` matches ``1-ECMAScript``.

    Args:
        text: Text to match.
        section_names: Known section directory names.

    Returns:
        Longest matching section name, or None.
    """
    normalised = _normalise_name(text)
    if not normalised:
        return None
    best: str | None = None
    for name in section_names:
        full = _normalise_name(name)
        bare = _normalise_name(re.sub(r"^\d+-", "", name))
        if (full and full in normalised) or (bare and bare in normalised):
            if best is None or len(name) > len(best):
                best = name
    return best


def parse_number(cell: str) -> tuple[int | None, str | None]:
    """Parse a declared count such as ``1,234``, ``~30K`` or ``500+``.

    Args:
        cell: Table cell text.

    Returns:
        ``(value, marker)`` where marker is ``"~"``, ``"+"`` or None.
    """
    text = cell.replace("*", "").strip()
    match = _NUMBER_RE.match(text)
    if match is None:
        return None, None
    digits = re.sub(r"[,_ ]", "", match.group(2))
    value = float(digits)
    marker = None
    if match.group(3):
        value *= 1000
        marker = "~"
    if match.group(1):
        marker = "~"
    if match.group(4):
        marker = "+"
    return int(value), marker


class IndexParser:
    """Parses module tables and statistics tables out of an index document."""

    def __init__(self, section_names: list[str]) -> None:
        """Initialise index parser.

        Args:
            section_names: Known section directory names.
        """
        self.section_names = section_names

    def parse(self, path: str, source: str) -> IndexDocument:
        """Parse an index document.

        Args:
            path: Relative path of the index document.
            source: Markdown text.

        Returns:
            IndexDocument with TOC entries and declared statistics.
        """
        content = list(iter_content_lines(source))
        definitions = collect_definitions(content)
        entries: list[TOCEntry] = []
        stats: list[DeclaredStat] = []

        heading_section: tuple[int, str] | None = None
        index = 0
        while index < len(content):
            line_number, line = content[index]
            heading = match_heading(line)
            if heading is not None:
                level, text = heading
                matched = match_section(text, self.section_names)
                if matched is not None:
                    heading_section = (level, matched)
                elif heading_section is not None and level <= heading_section[0]:
                    heading_section = None
                index += 1
                continue

            is_table = (
                "|" in line
                and index + 1 < len(content)
                and content[index + 1][0] == line_number + 1
                and _DELIMITER_ROW_RE.match(content[index + 1][1]) is not None
                and "|" in content[index + 1][1]
            )
            if not is_table:
                index += 1
                continue

            headers = [plain_heading_text(cell).casefold() for cell in _split_cells(line)]
            rows: list[tuple[int, str]] = []
            index += 2
            while index < len(content) and "|" in content[index][1] and content[index][1].strip():
                rows.append(content[index])
                index += 1

            current_section = heading_section[1] if heading_section else None
            if self._is_stats_table(headers):
                stats.extend(self._parse_stats_rows(path, headers, rows, definitions))
            else:
                entries.extend(self._parse_module_rows(path, headers, rows, definitions, current_section))

        logger.info("Parsed %s: %d TOC entries, %d statistics rows", path, len(entries), len(stats))
        return IndexDocument(path=path, entries=tuple(entries), stats=tuple(stats))

    @staticmethod
    def _is_stats_table(headers: list[str]) -> bool:
        """Check for a section column plus a module/file or line count column.

        Args:
            headers: Casefolded header cells.

        Returns:
            True for a statistics table.
        """
        has_section = any(header.startswith("section") or header == "category" for header in headers)
        has_count = any(_MODULES_HEADER_RE.search(h) or _LINES_HEADER_RE.search(h) for h in headers)
        return has_section and has_count

    def _parse_stats_rows(
        self,
        path: str,
        headers: list[str],
        rows: list[tuple[int, str]],
        definitions: dict[str, str],
    ) -> list[DeclaredStat]:
        """Turn statistics table rows into declared values.

        Args:
            path: Index document path.
            headers: Casefolded header cells.
            rows: Line number and text of each body row.
            definitions: Reference definitions of the index document.

        Returns:
            DeclaredStats for rows that carry at least one number.
        """
        section_column = next(
            i for i, header in enumerate(headers) if header.startswith("section") or header == "category"
        )
        module_column = next((i for i, header in enumerate(headers) if _MODULES_HEADER_RE.search(header)), None)
        line_column = next((i for i, header in enumerate(headers) if _LINES_HEADER_RE.search(header)), None)

        stats: list[DeclaredStat] = []
        for line_number, row in rows:
            cells = _split_cells(row)
            if section_column >= len(cells):
                continue
            section_cell = cells[section_column]
            links, _ = extract_line_links(section_cell, line_number, definitions)
            section_name = None
            for link in links:
                if link.kind is LinkKind.INTERNAL_FILE:
                    resolved = resolve_path(path, link.path_part)
                    if resolved:
                        section_name = resolved.split("/", 1)[0]
                        break
            label = plain_heading_text(section_cell)
            is_total = bool(_TOTAL_RE.match(label))
            if section_name is None and not is_total:
                section_name = match_section(label, self.section_names) or label

            module_count, modules_marker = (None, None)
            if module_column is not None and module_column < len(cells):
                module_count, modules_marker = parse_number(cells[module_column])
            line_count, lines_marker = (None, None)
            if line_column is not None and line_column < len(cells):
                line_count, lines_marker = parse_number(cells[line_column])
            if module_count is None and line_count is None:
                continue

            stats.append(
                DeclaredStat(
                    section_name="Total" if is_total else section_name or "",
                    module_count=module_count,
                    line_count=line_count,
                    source_path=path,
                    line=line_number,
                    lines_approximate=lines_marker,
                    modules_approximate=modules_marker,
                    is_total=is_total,
                )
            )
        return stats

    def _parse_module_rows(
        self,
        path: str,
        headers: list[str],
        rows: list[tuple[int, str]],
        definitions: dict[str, str],
        current_section: str | None,
    ) -> list[TOCEntry]:
        """Turn module table rows into TOC entries.

        Args:
            path: Index document path.
            headers: Casefolded header cells.
            rows: Line number and text of each body row.
            definitions: Reference definitions of the index document.
            current_section: Section named by the enclosing heading, if any.

        Returns:
            TOCEntries for linked rows and numbered rows inside a section.
        """
        entries: list[TOCEntry] = []
        for line_number, row in rows:
            cells = _split_cells(row)
            links, _ = extract_line_links(row, line_number, definitions)
            document_link = next(
                (
                    link
                    for link in links
                    if link.kind in (LinkKind.INTERNAL_FILE, LinkKind.INTERNAL_ANCHOR)
                    and link.path_part.lower().endswith(_DOCUMENT_SUFFIXES)
                ),
                None,
            )
            number_index, module_number = self._module_cell(cells)

            if document_link is None:
                # Unlinked rows only count inside a recognised section.
                if module_number is None or current_section is None:
                    continue
                title_cells = [cell for i, cell in enumerate(cells) if i != number_index and cell]
                entries.append(
                    TOCEntry(
                        section_name=current_section,
                        module_number=module_number,
                        title=plain_heading_text(title_cells[0]) if title_cells else "",
                        link_target=None,
                        topics_summary=plain_heading_text(title_cells[-1]) if len(title_cells) > 1 else "",
                        source_path=path,
                        line=line_number,
                    )
                )
                continue

            resolved = resolve_path(path, document_link.path_part)
            section_name = current_section or ""
            if resolved and "/" in resolved:
                section_name = resolved.split("/", 1)[0]
            if module_number is None:
                module_number = parse_module_number(document_link.path_part.rpartition("/")[2])

            summary_cells = [
                cell
                for i, cell in enumerate(cells)
                if i != number_index and cell and "](" not in cell and "][" not in cell
            ]
            entries.append(
                TOCEntry(
                    section_name=section_name,
                    module_number=module_number,
                    title=plain_heading_text(document_link.text),
                    link_target=document_link.raw_target,
                    topics_summary=plain_heading_text(summary_cells[-1]) if summary_cells else "",
                    source_path=path,
                    line=line_number,
                )
            )
        return entries

    @staticmethod
    def _module_cell(cells: list[str]) -> tuple[int | None, int | None]:
        """Find the first cell holding only a module number (``3``, ``**3.**``).

        Args:
            cells: Row cells.

        Returns:
            ``(column, number)`` or ``(None, None)``.
        """
        for i, cell in enumerate(cells):
            match = _MODULE_CELL_RE.match(cell)
            if match:
                return i, int(match.group(1))
        return None, None


class TOCReconciler:
    """Cross-checks index documents against the files on disk."""

    def __init__(
        self,
        model: DocumentModel,
        indexes: list[IndexDocument],
        sections: list[Section],
        section_stats: dict[str, SectionStats],
        line_tolerance: float = 0.1,
    ) -> None:
        """Initialise reconciler.

        Args:
            model: Loaded document model.
            indexes: Parsed index documents.
            sections: Section directories found in the vault.
            section_stats: Computed per-section statistics.
            line_tolerance: Relative tolerance for ``~`` approximate values.
        """
        self.model = model
        self.indexes = indexes
        self.section_stats = section_stats
        self.line_tolerance = line_tolerance
        self.entries = [entry for index in indexes for entry in index.entries]
        self.declared = [stat for index in indexes for stat in index.stats]
        declared_counts = {stat.section_name: stat.module_count for stat in self.declared if not stat.is_total}
        self.sections = [
            replace(section, expected_module_count=declared_counts.get(section.name)) for section in sections
        ]

    def claimed_links(self) -> set[LinkKey]:
        """Links checked here rather than by the link resolver.

        Returns:
            ``(path, line, raw_target)`` keys of TOC entry links.
        """
        return {
            (entry.source_path, entry.line, entry.link_target)
            for entry in self.entries
            if entry.link_target is not None
        }

    def check(self) -> list[Finding]:
        """Run every reconciliation rule.

        Returns:
            Findings from all rules.
        """
        findings: list[Finding] = []
        findings.extend(self.check_dangling_entries())
        findings.extend(self.check_undocumented_modules())
        findings.extend(self.check_statistics())
        findings.extend(self.check_duplicate_modules())
        findings.extend(self.check_duplicate_entries())
        findings.extend(self.check_titles())
        return findings

    def _entry_target(self, entry: TOCEntry) -> str | None:
        """Resolve the file an entry links to, ignoring any fragment.

        Args:
            entry: TOC entry.

        Returns:
            Vault-relative path, or None for unlinked or escaping entries.
        """
        if entry.link_target is None:
            return None
        path_part = entry.link_target.split("#", 1)[0]
        return resolve_path(entry.source_path, path_part)

    def check_dangling_entries(self) -> list[Finding]:
        """Every linked TOC entry must point at an existing document (and anchor).

        Returns:
            toc-dangling-entry findings.
        """
        findings: list[Finding] = []
        for entry in self.entries:
            if entry.link_target is None:
                continue
            target_path = self._entry_target(entry)
            document = self.model.get(target_path) if target_path is not None else None
            if document is None:
                problem = "does not exist"
            else:
                fragment = entry.link_target.partition("#")[2]
                if not fragment or fragment in document.slugs:
                    continue
                problem = f"has no heading with anchor '#{fragment}'"
            findings.append(
                Finding(
                    severity=Severity.ERROR,
                    rule="toc-dangling-entry",
                    location=Location(entry.source_path, entry.line),
                    message=f"TOC entry '{entry.title}' links to '{entry.link_target}', which {problem}",
                )
            )
        return findings

    def check_undocumented_modules(self) -> list[Finding]:
        """Every numbered module inside a section must appear in the index.

        Returns:
            undocumented-module findings.
        """
        listed_paths = {self._entry_target(entry) for entry in self.entries}
        listed_keys = {(entry.section_name, entry.module_number) for entry in self.entries}
        index_names = ", ".join(index.path for index in self.indexes)

        findings: list[Finding] = []
        for section in self.sections:
            for path in section.documents:
                document = self.model.documents[path]
                if document.module_number is None:
                    continue
                if path in listed_paths or (section.name, document.module_number) in listed_keys:
                    continue
                findings.append(
                    Finding(
                        severity=Severity.WARNING,
                        rule="undocumented-module",
                        location=Location(path),
                        message=f"Module {document.module_number} of {section.name} is not listed in {index_names}",
                    )
                )
        return findings

    def check_statistics(self) -> list[Finding]:
        """Compare declared module and line counts with computed totals.

        Returns:
            stat-drift findings.
        """
        totals = StatisticsAggregator.totals(self.section_stats)
        findings: list[Finding] = []
        for stat in self.declared:
            if stat.is_total:
                actual = totals
            else:
                actual = self.section_stats.get(
                    stat.section_name, SectionStats(name=stat.section_name, file_total=0, line_total=0, module_total=0)
                )
            if stat.module_count is not None and not self._within(
                stat.module_count, actual.file_total, stat.modules_approximate
            ):
                findings.append(
                    self._drift(stat, "module count", stat.module_count, actual.file_total, stat.modules_approximate)
                )
            if stat.line_count is not None and not self._within(
                stat.line_count, actual.line_total, stat.lines_approximate
            ):
                findings.append(
                    self._drift(stat, "line count", stat.line_count, actual.line_total, stat.lines_approximate)
                )
        return findings

    def _within(self, declared: int, actual: int, marker: str | None) -> bool:
        """Compare a declared count with the computed one.

        Args:
            declared: Value from the index.
            actual: Computed value.
            marker: ``"+"`` for a lower bound, ``"~"`` for approximate, None for exact.

        Returns:
            True if the declared value still holds.
        """
        if marker == "+":
            return actual >= declared
        if marker == "~":
            return abs(actual - declared) <= declared * self.line_tolerance
        return actual == declared

    @staticmethod
    def _drift(stat: DeclaredStat, what: str, declared: int, actual: int, marker: str | None) -> Finding:
        """Build a stat-drift finding.

        Args:
            stat: Declared statistics row.
            what: ``module count`` or ``line count``.
            declared: Declared value.
            actual: Computed value.
            marker: Approximation marker of the declared value.

        Returns:
            Warning finding located at the statistics row.
        """
        shown = {"~": f"~{declared}", "+": f"{declared}+"}.get(marker or "", str(declared))
        return Finding(
            severity=Severity.WARNING,
            rule="stat-drift",
            location=Location(stat.source_path, stat.line),
            message=f"{stat.section_name}: declared {what} {shown} but found {actual}",
            expected=shown if marker else declared,
            actual=actual,
        )

    def check_duplicate_modules(self) -> list[Finding]:
        """Two documents in one section must not share a module number.

        Returns:
            duplicate-module-number findings.
        """
        claims: dict[tuple[str, int], list[str]] = defaultdict(list)
        for section in self.sections:
            for path in section.documents:
                number = self.model.documents[path].module_number
                if number is not None:
                    claims[(section.name, number)].append(path)

        findings: list[Finding] = []
        for (section_name, number), paths in sorted(claims.items()):
            if len(paths) < 2:
                continue
            ordered = sorted(paths)
            findings.append(
                Finding(
                    severity=Severity.ERROR,
                    rule="duplicate-module-number",
                    location=Location(ordered[0]),
                    message=f"Module number {number} in {section_name} is used by: {', '.join(ordered)}",
                )
            )
        return findings

    def check_duplicate_entries(self) -> list[Finding]:
        """A module should be listed once per section within each index document.

        Separate index documents (a README and a full table of contents) may
        list the same module.

        Returns:
            duplicate-toc-entry findings for every repeated listing.
        """
        seen: dict[tuple[str, str, int], TOCEntry] = {}
        findings: list[Finding] = []
        for entry in self.entries:
            if not entry.section_name or entry.module_number is None:
                continue
            key = (entry.source_path, entry.section_name, entry.module_number)
            first = seen.setdefault(key, entry)
            if first is entry:
                continue
            findings.append(
                Finding(
                    severity=Severity.WARNING,
                    rule="duplicate-toc-entry",
                    location=Location(entry.source_path, entry.line),
                    message=(
                        f"Module {entry.module_number} of {entry.section_name} is already listed "
                        f"at {first.source_path}:{first.line}"
                    ),
                )
            )
        return findings

    def check_titles(self) -> list[Finding]:
        """TOC titles should match the document heading or filename.

        Returns:
            title-mismatch findings.
        """
        findings: list[Finding] = []
        for entry in self.entries:
            target_path = self._entry_target(entry)
            document = self.model.get(target_path) if target_path is not None else None
            if document is None or not entry.title:
                continue
            wanted = _normalise_name(entry.title)
            candidates = [title_from_filename(document.path.rpartition("/")[2])]
            if document.title:
                candidates.append(document.title)
            if any(_normalise_name(candidate) == wanted for candidate in candidates):
                continue
            findings.append(
                Finding(
                    severity=Severity.INFO,
                    rule="title-mismatch",
                    location=Location(entry.source_path, entry.line),
                    message=f"TOC title '{entry.title}' does not match '{candidates[-1]}' in {document.path}",
                    expected=entry.title,
                    actual=candidates[-1],
                )
            )
        return findings

