"""Run orchestration: load the vault once, then run every analysis over it."""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path

from checkdocs.config import CheckConfig
from checkdocs.errors import IndexDocumentError
from checkdocs.loader import DocumentLoader
from checkdocs.models import DocumentModel, Finding, IndexDocument, Report
from checkdocs.parser import DocumentParser
from checkdocs.report import build_report
from checkdocs.resolver import LinkResolver
from checkdocs.stats import StatisticsAggregator, discover_sections
from checkdocs.structure import StructureChecker
from checkdocs.toc import IndexParser, TOCReconciler

logger = logging.getLogger(__name__)


def load_index(model: DocumentModel, index: str, section_names: list[str]) -> IndexDocument:
    """Read and parse one index document.

    Relative index paths are taken relative to the vault root.

    Args:
        model: Loaded document model.
        index: Index document path.
        section_names: Known section directory names.

    Returns:
        Parsed IndexDocument.

    Raises:
        IndexDocumentError: If the index is missing, outside the vault,
            unreadable, or has no module or statistics tables.
    """
    index_path = Path(index)
    if not index_path.is_absolute():
        index_path = model.root / index_path
    if not index_path.is_file():
        msg = f"Index document not found: {index_path}"
        raise IndexDocumentError(msg)
    try:
        relative = index_path.resolve().relative_to(model.root.resolve()).as_posix()
    except ValueError as exc:
        msg = f"Index document is outside the vault: {index_path}"
        raise IndexDocumentError(msg) from exc
    try:
        source = index_path.read_bytes().decode("utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Failed to read index document {index_path}: {exc}"
        raise IndexDocumentError(msg) from exc

    parsed = IndexParser(section_names).parse(relative, source)
    if not parsed.entries and not parsed.stats:
        msg = f"No module tables or statistics tables found in index document {relative}"
        raise IndexDocumentError(msg)
    return parsed


def run_checks(config: CheckConfig) -> Report:
    """Run every check against a vault.

    Args:
        config: Run configuration.

    Returns:
        Ordered report of all findings.

    Raises:
        LoadError: If the vault root is missing or has no documents.
        IndexDocumentError: If an index document is missing or unparseable.
    """
    loader = DocumentLoader(
        parser=DocumentParser(slug_style=config.slug_style),
        ignore=config.ignore,
        include_rst=config.include_rst,
        jobs=config.jobs,
    )
    model = loader.load(config.root)

    sections = discover_sections(model, config.section_pattern)
    section_names = [section.name for section in sections]
    indexes = [load_index(model, index, section_names) for index in config.index]
    section_stats = StatisticsAggregator(model).compute(sections)

    reconciler = TOCReconciler(model, indexes, sections, section_stats, line_tolerance=config.line_tolerance)
    resolver = LinkResolver(model)
    structure = StructureChecker(model, sections)
    claimed = reconciler.claimed_links()

    analyses: list[Callable[[], list[Finding]]] = [
        lambda: resolver.check(skip=claimed),
        reconciler.check,
        structure.check,
    ]
    if config.jobs > 1:
        with ThreadPoolExecutor(max_workers=min(config.jobs, len(analyses))) as pool:
            results = list(pool.map(lambda analysis: analysis(), analyses))
    else:
        results = [analysis() for analysis in analyses]

    findings = list(model.load_findings)
    for result in results:
        findings.extend(result)

    expected_counts = {section.name: section.expected_module_count for section in reconciler.sections}
    stats = [
        replace(item, expected_module_count=expected_counts.get(name)) for name, item in section_stats.items()
    ]
    report = build_report(findings, stats)
    logger.info("Run complete: %d findings", len(report.findings))
    return report
