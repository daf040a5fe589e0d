"""Report assembly and rendering."""

import json
from collections.abc import Iterable

from checkdocs.models import Finding, Report, SectionStats, Severity

REPORT_FORMATS = ("text", "json")


def build_report(findings: Iterable[Finding], section_stats: Iterable[SectionStats] = ()) -> Report:
    """Merge findings into a deterministically ordered report.

    Every finding is kept: two broken links on one line are two findings.

    Args:
        findings: Findings from every component, in any order.
        section_stats: Computed per-section statistics.

    Returns:
        Report sorted by severity, path, rule, line and message.
    """
    return Report(
        findings=tuple(sorted(findings, key=Finding.sort_key)),
        section_stats=tuple(sorted(section_stats, key=lambda stats: stats.name)),
    )


def exit_code(report: Report, fail_on: Severity = Severity.ERROR) -> int:
    """Exit status for a report.

    Args:
        report: Final report.
        fail_on: Minimum severity that fails the run.

    Returns:
        1 if any finding meets the threshold, otherwise 0.
    """
    return 1 if report.has_failures(fail_on) else 0


def render_json(report: Report) -> str:
    """Render findings as a JSON array.

    Args:
        report: Final report.

    Returns:
        JSON text with a trailing newline.
    """
    return json.dumps([finding.to_dict() for finding in report.findings], indent=2, ensure_ascii=False) + "\n"


def render_text(report: Report, show_stats: bool = False) -> str:
    """Render a human-readable report.

    The first line summarises counts per severity; findings follow grouped by
    severity.

    Args:
        report: Final report.
        show_stats: Whether to append the per-section statistics table.

    Returns:
        Report text with a trailing newline.
    """
    lines = [
        f"{report.count(Severity.ERROR)} error(s), "
        f"{report.count(Severity.WARNING)} warning(s), "
        f"{report.count(Severity.INFO)} info"
    ]
    for severity in Severity:
        group = [finding for finding in report.findings if finding.severity is severity]
        if not group:
            continue
        lines.append("")
        lines.append(f"{severity.value.upper()} ({len(group)})")
        for finding in group:
            line = f"  {finding.location} [{finding.rule}] {finding.message}"
            if finding.expected is not None or finding.actual is not None:
                line += f" (expected: {finding.expected}, actual: {finding.actual})"
            lines.append(line)

    if show_stats and report.section_stats:
        lines.append("")
        lines.append("Sections")
        width = max(len(stats.name) for stats in report.section_stats)
        for stats in report.section_stats:
            declared = "" if stats.expected_module_count is None else f", declared {stats.expected_module_count}"
            lines.append(
                f"  {stats.name.ljust(width)}  {stats.file_total} files, {stats.module_total} modules, "
                f"{stats.line_total} lines{declared}"
            )
    return "\n".join(lines) + "\n"


def render(report: Report, output_format: str = "text", show_stats: bool = False) -> str:
    """Render a report in the requested format.

    Args:
        report: Final report.
        output_format: ``text`` or ``json``.
        show_stats: Whether text output includes section statistics.

    Returns:
        Rendered report.

    Raises:
        ValueError: If the format is unknown.
    """
    if output_format == "json":
        return render_json(report)
    if output_format == "text":
        return render_text(report, show_stats=show_stats)
    msg = f"Unknown report format: {output_format}"
    raise ValueError(msg)
