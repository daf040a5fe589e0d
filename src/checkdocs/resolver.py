"""Resolution of internal links against a document model."""

import logging
import posixpath
from collections.abc import Iterable

from checkdocs.models import Document, DocumentModel, Finding, Link, LinkKind, Location, Severity

logger = logging.getLogger(__name__)

LinkKey = tuple[str, int, str]


def resolve_path(source_path: str, target: str) -> str | None:
    """Resolve a link path relative to the linking document.

    Args:
        source_path: Relative path of the linking document.
        target: Link target without fragment.

    Returns:
        Normalised relative path, '' for the root, or None if it escapes the root.
    """
    if target.startswith("/"):
        joined = target.lstrip("/")
    else:
        joined = posixpath.join(posixpath.dirname(source_path), target)
    if not joined:
        return ""
    normalised = posixpath.normpath(joined)
    if normalised == ".":
        return ""
    if normalised == ".." or normalised.startswith("../"):
        return None
    return normalised


class LinkResolver:
    """Validates internal file and anchor links."""

    RULE = "broken-link"

    def __init__(self, model: DocumentModel) -> None:
        """Initialise resolver.

        Args:
            model: Loaded document model.
        """
        self.model = model

    def check(self, skip: Iterable[LinkKey] = ()) -> list[Finding]:
        """Check every internal link in every document.

        Args:
            skip: ``(path, line, raw_target)`` keys checked elsewhere (TOC entries).

        Returns:
            One broken-link finding per unresolved link occurrence.
        """
        skipped = frozenset(skip)
        findings: list[Finding] = []
        checked = 0
        for document in self.model.documents.values():
            for link in document.links:
                if link.kind in (LinkKind.EXTERNAL, LinkKind.MAILTO):
                    continue
                if (document.path, link.line, link.raw_target) in skipped:
                    continue
                checked += 1
                problem = self.explain(document, link)
                if problem is not None:
                    findings.append(
                        Finding(
                            severity=Severity.ERROR,
                            rule=self.RULE,
                            location=Location(document.path, link.line),
                            message=f"Link target '{link.raw_target}' {problem}",
                        )
                    )
        logger.info("Checked %d internal links, %d broken", checked, len(findings))
        return findings

    def resolve_target(self, document: Document, link: Link) -> str | None:
        """Resolve the path part of a link.

        Args:
            document: Linking document.
            link: Internal link.

        Returns:
            Resolved relative path ('' means the document itself when the link is
            a bare anchor), or None if it escapes the vault.
        """
        if not link.path_part:
            return document.path
        return resolve_path(document.path, link.path_part)

    def explain(self, document: Document, link: Link) -> str | None:
        """Describe why a link does not resolve.

        Args:
            document: Linking document.
            link: Internal link.

        Returns:
            Problem description, or None when the link resolves.
        """
        target_path = self.resolve_target(document, link)
        if target_path is None:
            return "points outside the vault"
        if not self.model.exists(target_path):
            return "does not exist"

        fragment = link.fragment
        if not fragment:
            return None
        target = self.model.get(target_path)
        if target is None:
            # Anchors into images, assets or directories are not checked.
            return None
        if fragment not in target.slugs:
            return f"has no heading with anchor '#{fragment}' in {target.path}"
        return None
