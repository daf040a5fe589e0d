"""Exceptions raised by checkdocs."""


class CheckDocsError(Exception):
    """Base exception for conditions that abort a run."""


class LoadError(CheckDocsError):
    """Raised when the vault root is missing or holds no documents."""


class IndexDocumentError(CheckDocsError):
    """Raised when an index document is missing or cannot be parsed."""


class ConfigError(CheckDocsError):
    """Raised for invalid configuration files or option values."""
