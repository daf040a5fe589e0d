"""Run configuration and config-file loading."""

import json
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from checkdocs.errors import ConfigError
from checkdocs.loader import DEFAULT_IGNORE
from checkdocs.models import Severity
from checkdocs.report import REPORT_FORMATS
from checkdocs.slugs import SLUG_STYLES
from checkdocs.stats import DEFAULT_SECTION_PATTERN

CONFIG_FILENAME = ".checkdocs.json"
DEFAULT_INDEX = "README.md"


@dataclass(frozen=True)
class CheckConfig:
    """Options for one checkdocs run."""

    root: Path
    index: tuple[str, ...] = (DEFAULT_INDEX,)
    ignore: tuple[str, ...] = DEFAULT_IGNORE
    output_format: str = "text"
    fail_on: Severity = Severity.ERROR
    include_rst: bool = False
    slug_style: str = "github"
    section_pattern: str = DEFAULT_SECTION_PATTERN
    line_tolerance: float = 0.1
    jobs: int = 1
    show_stats: bool = False

    def validate(self) -> "CheckConfig":
        """Check option values.

        Returns:
            This config.

        Raises:
            ConfigError: If an option has an invalid value.
        """
        if self.output_format not in REPORT_FORMATS:
            msg = f"format must be one of {', '.join(REPORT_FORMATS)}, got {self.output_format!r}"
            raise ConfigError(msg)
        if self.slug_style not in SLUG_STYLES:
            msg = f"slug_style must be one of {', '.join(SLUG_STYLES)}, got {self.slug_style!r}"
            raise ConfigError(msg)
        if self.jobs < 1:
            msg = f"jobs must be at least 1, got {self.jobs}"
            raise ConfigError(msg)
        if not 0 <= self.line_tolerance < 1:
            msg = f"line_tolerance must be between 0 and 1, got {self.line_tolerance}"
            raise ConfigError(msg)
        if not self.index:
            msg = "at least one index document is required"
            raise ConfigError(msg)
        try:
            re.compile(self.section_pattern)
        except re.error as exc:
            msg = f"section_pattern is not a valid regular expression: {exc}"
            raise ConfigError(msg) from exc
        return self


# Config file keys mapped to the type each value must have.
_FILE_KEYS: dict[str, type | tuple[type, ...]] = {
    "index": (str, list),
    "ignore": (str, list),
    "format": str,
    "fail_on": str,
    "include_rst": bool,
    "slug_style": str,
    "section_pattern": str,
    "line_tolerance": (int, float),
    "jobs": int,
    "show_stats": bool,
}


def _as_tuple(value: str | list[Any], key: str) -> tuple[str, ...]:
    """Accept a comma-separated string or a list of strings.

    Args:
        value: Raw config value.
        key: Config key, for the error message.

    Returns:
        Tuple of strings.

    Raises:
        ConfigError: If a list item is not a string.
    """
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    if not all(isinstance(item, str) for item in value):
        msg = f"{key} must be a list of strings"
        raise ConfigError(msg)
    return tuple(value)


def parse_severity(value: str) -> Severity:
    """Parse a severity name.

    Args:
        value: ``error``, ``warning`` or ``info``.

    Returns:
        Severity.

    Raises:
        ConfigError: If the name is unknown.
    """
    try:
        return Severity(value.lower())
    except ValueError as exc:
        msg = f"fail_on must be one of error, warning, info, got {value!r}"
        raise ConfigError(msg) from exc


def load_config_file(path: Path) -> dict[str, Any]:
    """Read option overrides from a JSON config file.

    Args:
        path: Config file path.

    Returns:
        CheckConfig field values keyed by field name.

    Raises:
        ConfigError: If the file is unreadable, not a JSON object, or has
            unknown keys or wrongly typed values.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Failed to read config file: {path}"
        raise ConfigError(msg) from exc
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON in config file {path}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(raw, dict):
        msg = f"Config file {path} must contain a JSON object"
        raise ConfigError(msg)

    values: dict[str, Any] = {}
    for key, value in raw.items():
        expected = _FILE_KEYS.get(key)
        if expected is None:
            msg = f"Unknown config key in {path}: {key}"
            raise ConfigError(msg)
        if not isinstance(value, expected) or (expected != bool and isinstance(value, bool)):
            msg = f"Config key {key} in {path} has the wrong type"
            raise ConfigError(msg)
        if key in ("index", "ignore"):
            values[key] = _as_tuple(value, key)
        elif key == "format":
            values["output_format"] = value
        elif key == "fail_on":
            values["fail_on"] = parse_severity(value)
        elif key == "line_tolerance":
            values[key] = float(value)
        else:
            values[key] = value
    return values


def build_config(root: Path, config_file: Path | None = None, **overrides: Any) -> CheckConfig:
    """Build a run configuration from defaults, a config file and CLI overrides.

    A ``.checkdocs.json`` in the vault root is used when no config file is
    given. Overrides whose value is None are ignored.

    Args:
        root: Vault root directory.
        config_file: Explicit config file path.
        **overrides: CheckConfig field values from the command line.

    Returns:
        Validated CheckConfig.

    Raises:
        ConfigError: If the config file or an option is invalid.
    """
    config = CheckConfig(root=root)
    if config_file is None and (root / CONFIG_FILENAME).is_file():
        config_file = root / CONFIG_FILENAME
    if config_file is not None:
        config = replace(config, **load_config_file(config_file))

    known = {item.name for item in fields(CheckConfig)}
    explicit = {key: value for key, value in overrides.items() if value is not None}
    unknown = set(explicit) - known
    if unknown:
        msg = f"Unknown options: {', '.join(sorted(unknown))}"
        raise ConfigError(msg)
    return replace(config, **explicit).validate()
