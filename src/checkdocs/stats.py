"""Per-section statistics computed from the document model."""

import re

from checkdocs.models import DocumentModel, Section, SectionStats

DEFAULT_SECTION_PATTERN = r"^\d+-"


def discover_sections(model: DocumentModel, pattern: str = DEFAULT_SECTION_PATTERN) -> list[Section]:
    """Find section directories at the top level of the vault.

    Args:
        model: Loaded document model.
        pattern: Regular expression a top-level directory name must match.

    Returns:
        Sections sorted by name, each referencing its documents (recursively).
    """
    matcher = re.compile(pattern)
    names = sorted(path for path in model.directories if "/" not in path and matcher.search(path))
    sections = []
    for name in names:
        documents = tuple(sorted(doc.path for doc in model.documents.values() if doc.top_directory == name))
        sections.append(Section(name=name, directory_path=name, documents=documents))
    return sections


class StatisticsAggregator:
    """Computes line, file and module totals per section.

    Pure counting: comparison against declared values happens in the
    reconciler.
    """

    def __init__(self, model: DocumentModel) -> None:
        """Initialise aggregator.

        Args:
            model: Loaded document model.
        """
        self.model = model

    def section_stats(self, section: Section) -> SectionStats:
        """Compute totals for one section.

        Args:
            section: Section to count.

        Returns:
            SectionStats for the section.
        """
        documents = [self.model.documents[path] for path in section.documents if path in self.model.documents]
        module_paths = sorted(doc.path for doc in documents if doc.module_number is not None)
        return SectionStats(
            name=section.name,
            file_total=len(documents),
            line_total=sum(doc.line_count for doc in documents),
            module_total=len(module_paths),
            first_path=module_paths[0] if module_paths else None,
            last_path=module_paths[-1] if module_paths else None,
        )

    def compute(self, sections: list[Section]) -> dict[str, SectionStats]:
        """Compute totals for every section.

        Args:
            sections: Sections to count.

        Returns:
            Mapping of section name to stats, in section name order.
        """
        return {section.name: self.section_stats(section) for section in sorted(sections, key=lambda s: s.name)}

    @staticmethod
    def totals(stats: dict[str, SectionStats]) -> SectionStats:
        """Sum stats across sections.

        Args:
            stats: Per-section stats.

        Returns:
            Combined SectionStats named ``Total``.
        """
        values = list(stats.values())
        return SectionStats(
            name="Total",
            file_total=sum(item.file_total for item in values),
            line_total=sum(item.line_total for item in values),
            module_total=sum(item.module_total for item in values),
        )
