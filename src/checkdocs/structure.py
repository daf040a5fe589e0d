"""Per-document structural rules."""

from checkdocs.models import DocumentModel, Finding, Location, Section, Severity

KNOWN_CALLOUTS = frozenset({"NOTE", "TIP", "IMPORTANT", "WARNING", "CAUTION"})


class StructureChecker:
    """Reports headings, references and callouts that will not render as intended."""

    def __init__(self, model: DocumentModel, sections: list[Section]) -> None:
        """Initialise structure checker.

        Args:
            model: Loaded document model.
            sections: Section directories found in the vault.
        """
        self.model = model
        self.sections = sections

    def check(self) -> list[Finding]:
        """Run every structural rule.

        Returns:
            Findings from all rules.
        """
        findings: list[Finding] = []
        for document in self.model.documents.values():
            if not document.headings:
                findings.append(
                    Finding(
                        severity=Severity.WARNING,
                        rule="missing-heading",
                        location=Location(document.path),
                        message="Document has no headings",
                    )
                )
            elif document.module_number is not None and document.title is None:
                findings.append(
                    Finding(
                        severity=Severity.WARNING,
                        rule="missing-heading",
                        location=Location(document.path, document.headings[0].line),
                        message="Module has no top-level (#) heading",
                    )
                )

            for line in document.setext_lines:
                findings.append(
                    Finding(
                        severity=Severity.INFO,
                        rule="setext-heading",
                        location=Location(document.path, line),
                        message="Setext heading underline; only ATX (#) headings are indexed for anchors",
                    )
                )

            for label, line in document.undefined_references:
                findings.append(
                    Finding(
                        severity=Severity.WARNING,
                        rule="undefined-reference",
                        location=Location(document.path, line),
                        message=f"Reference link label '{label}' has no definition",
                    )
                )

            for callout in document.callouts:
                if callout.kind.upper() not in KNOWN_CALLOUTS:
                    known = ", ".join(sorted(KNOWN_CALLOUTS))
                    findings.append(
                        Finding(
                            severity=Severity.INFO,
                            rule="unknown-callout",
                            location=Location(document.path, callout.line),
                            message=f"Callout type '[!{callout.kind}]' is not one of {known}",
                        )
                    )

        for section in self.sections:
            if not section.documents:
                findings.append(
                    Finding(
                        severity=Severity.INFO,
                        rule="empty-section",
                        location=Location(section.directory_path),
                        message=f"Section {section.name} has no documents yet",
                    )
                )
        return findings
