"""Tests for run configuration."""

import json
from pathlib import Path

import pytest

from checkdocs.config import CONFIG_FILENAME, CheckConfig, build_config, load_config_file, parse_severity
from checkdocs.errors import ConfigError
from checkdocs.models import Severity


def write_config(path: Path, values: object) -> Path:
    """Write a JSON config file.

    Args:
        path: Destination.
        values: JSON-serialisable content.

    Returns:
        The path written.
    """
    path.write_text(json.dumps(values), encoding="utf-8")
    return path


def test_defaults(tmp_path: Path) -> None:
    """Test defaults when no config file exists."""
    config = build_config(tmp_path)

    assert config == CheckConfig(root=tmp_path)
    assert config.index == ("README.md",)
    assert config.ignore == ("node_modules", ".git")
    assert config.fail_on is Severity.ERROR
    assert config.output_format == "text"


def test_config_file_in_root_is_used(tmp_path: Path) -> None:
    """Test .checkdocs.json in the vault root is picked up automatically."""
    write_config(
        tmp_path / CONFIG_FILENAME,
        {"index": ["README.md", "INDEX.md"], "ignore": "drafts, node_modules", "format": "json", "fail_on": "warning"},
    )

    config = build_config(tmp_path)

    assert config.index == ("README.md", "INDEX.md")
    assert config.ignore == ("drafts", "node_modules")
    assert config.output_format == "json"
    assert config.fail_on is Severity.WARNING


def test_overrides_beat_config_file(tmp_path: Path) -> None:
    """Test command-line values override the config file; None values do not."""
    config_file = write_config(tmp_path / "custom.json", {"jobs": 2, "slug_style": "marked"})

    config = build_config(tmp_path, config_file=config_file, jobs=8, slug_style=None)

    assert config.jobs == 8
    assert config.slug_style == "marked"


@pytest.mark.parametrize(
    "values",
    [
        {"unknown": 1},
        {"jobs": "4"},
        {"include_rst": 1},
        {"jobs": True},
        {"index": ["README.md", 3]},
        {"fail_on": "fatal"},
        {"format": "xml"},
        {"jobs": 0},
        {"line_tolerance": 1.5},
        {"section_pattern": "("},
        {"index": []},
    ],
)
def test_invalid_config_values(tmp_path: Path, values: dict[str, object]) -> None:
    """Test invalid config file contents are rejected."""
    config_file = write_config(tmp_path / "bad.json", values)

    with pytest.raises(ConfigError):
        build_config(tmp_path, config_file=config_file)


def test_invalid_json(tmp_path: Path) -> None:
    """Test malformed JSON is reported."""
    config_file = tmp_path / "bad.json"
    config_file.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_config_file(config_file)


def test_config_must_be_object(tmp_path: Path) -> None:
    """Test a top-level JSON array is rejected."""
    config_file = write_config(tmp_path / "list.json", ["README.md"])

    with pytest.raises(ConfigError, match="JSON object"):
        load_config_file(config_file)


def test_missing_config_file(tmp_path: Path) -> None:
    """Test an explicit config file that does not exist."""
    with pytest.raises(ConfigError, match="Failed to read"):
        build_config(tmp_path, config_file=tmp_path / "missing.json")


def test_unknown_override(tmp_path: Path) -> None:
    """Test unknown keyword overrides are rejected."""
    with pytest.raises(ConfigError, match="Unknown options"):
        build_config(tmp_path, colour=True)


def test_parse_severity() -> None:
    """Test severity names are case-insensitive."""
    assert parse_severity("Warning") is Severity.WARNING
    with pytest.raises(ConfigError):
        parse_severity("fatal")
