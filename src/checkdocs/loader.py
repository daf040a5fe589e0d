"""Loader building an immutable document model from a vault directory."""

import fnmatch
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from checkdocs.errors import LoadError
from checkdocs.models import Document, DocumentModel, Finding, Location, Severity
from checkdocs.parser import MARKDOWN_SUFFIXES, RST_SUFFIXES, DocumentParser

logger = logging.getLogger(__name__)

DEFAULT_IGNORE = ("node_modules", ".git")


class DocumentLoader:
    """Scans a vault and parses every documentation file into a DocumentModel."""

    def __init__(
        self,
        parser: DocumentParser | None = None,
        ignore: tuple[str, ...] = DEFAULT_IGNORE,
        include_rst: bool = False,
        jobs: int = 1,
    ) -> None:
        """Initialise loader.

        Args:
            parser: Parser used for each file.
            ignore: Glob patterns matched against path components and relative paths.
            include_rst: Whether to load reStructuredText files as well.
            jobs: Number of worker threads used to read files.
        """
        self.parser = parser or DocumentParser()
        self.ignore = ignore
        self.include_rst = include_rst
        self.jobs = max(1, jobs)

    @property
    def suffixes(self) -> tuple[str, ...]:
        """File suffixes treated as documents."""
        if self.include_rst:
            return MARKDOWN_SUFFIXES + RST_SUFFIXES
        return MARKDOWN_SUFFIXES

    def load(self, root: Path) -> DocumentModel:
        """Load every document under the root.

        Args:
            root: Vault root directory.

        Returns:
            Immutable DocumentModel.

        Raises:
            LoadError: If the root is not a directory or contains no documents.
        """
        if not root.is_dir():
            msg = f"Vault root does not exist or is not a directory: {root}"
            raise LoadError(msg)

        files, directories = self._walk(root)
        doc_paths = sorted(path for path in files if path.lower().endswith(self.suffixes))
        if not doc_paths:
            msg = f"No Markdown files found under {root}"
            raise LoadError(msg)

        logger.info("Found %d documentation files to load", len(doc_paths))

        if self.jobs > 1:
            with ThreadPoolExecutor(max_workers=self.jobs) as pool:
                results = list(pool.map(lambda path: self._load_one(root, path), doc_paths))
        else:
            results = [self._load_one(root, path) for path in doc_paths]

        documents: dict[str, Document] = {}
        load_findings: list[Finding] = []
        for result in results:
            if isinstance(result, Document):
                documents[result.path] = result
            else:
                load_findings.append(result)

        logger.info("Loaded %d documents (%d failed)", len(documents), len(load_findings))
        return DocumentModel(
            root=root,
            documents=documents,
            files=frozenset(files),
            directories=frozenset(directories),
            load_findings=tuple(load_findings),
        )

    def is_ignored(self, relative_path: str) -> bool:
        """Check whether a relative path matches an ignore pattern.

        Args:
            relative_path: POSIX path relative to the vault root.

        Returns:
            True if any component or the whole path matches.
        """
        parts = relative_path.split("/")
        for pattern in self.ignore:
            if fnmatch.fnmatchcase(relative_path, pattern):
                return True
            if any(fnmatch.fnmatchcase(part, pattern) for part in parts):
                return True
        return False

    def _walk(self, root: Path) -> tuple[list[str], list[str]]:
        """Collect every non-ignored file and directory under the root.

        Args:
            root: Vault root directory.

        Returns:
            Relative POSIX file paths and directory paths.
        """
        files: list[str] = []
        directories: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            relative_dir = Path(dirpath).relative_to(root).as_posix()
            prefix = "" if relative_dir == "." else f"{relative_dir}/"
            kept = [name for name in dirnames if not self.is_ignored(f"{prefix}{name}")]
            dirnames[:] = sorted(kept)
            directories.extend(f"{prefix}{name}" for name in dirnames)
            files.extend(
                f"{prefix}{name}" for name in sorted(filenames) if not self.is_ignored(f"{prefix}{name}")
            )
        return files, directories

    def _load_one(self, root: Path, relative_path: str) -> Document | Finding:
        """Parse a single file, turning read failures into findings.

        Args:
            root: Vault root directory.
            relative_path: POSIX path relative to the root.

        Returns:
            Parsed Document, or a load-error Finding.
        """
        try:
            document = self.parser.parse_file(root / relative_path, root)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to load: %s (%s)", relative_path, exc)
            return Finding(
                severity=Severity.ERROR,
                rule="load-error",
                location=Location(relative_path),
                message=f"Could not read file: {exc}",
            )
        logger.debug("Loaded: %s", relative_path)
        return document
