"""Heading anchor slugs matching common Markdown renderers."""

import re

SLUG_STYLES = ("github", "marked")

_GITHUB_STRIP_RE = re.compile(r"[^\w\- ]")
_MARKED_TAG_RE = re.compile(r"<[!/a-z].*?>", re.IGNORECASE)
_MARKED_STRIP_RE = re.compile(r"[\u2000-\u206F\u2E00-\u2E7F\\'!\"#$%&()*+,./:;<=>?@\[\]^`{|}~]")
_WHITESPACE_RE = re.compile(r"\s")


def slugify(text: str, style: str = "github") -> str:
    """Convert heading text into an anchor slug.

    Args:
        text: Plain heading text (inline markup already removed).
        style: ``github`` (github-slugger) or ``marked`` (marked's Slugger).

    Returns:
        Slug without duplicate suffix.

    Raises:
        ValueError: If the style is unknown.
    """
    if style == "github":
        return _GITHUB_STRIP_RE.sub("", text.strip().lower()).replace(" ", "-")
    if style == "marked":
        value = _MARKED_TAG_RE.sub("", text.lower().strip())
        value = _MARKED_STRIP_RE.sub("", value)
        return _WHITESPACE_RE.sub("-", value)
    msg = f"Unknown slug style: {style}"
    raise ValueError(msg)


class SlugTracker:
    """Assigns unique slugs within one document.

    Repeated headings get ``-1``, ``-2``, ... suffixes the way renderers do.
    """

    def __init__(self, style: str = "github") -> None:
        """Initialise tracker.

        Args:
            style: Slug style passed to :func:`slugify`.
        """
        self.style = style
        self._seen: dict[str, int] = {}

    def slug(self, text: str) -> str:
        """Return the unique slug for the next heading with this text.

        Args:
            text: Plain heading text.

        Returns:
            Unique slug.
        """
        return self.claim(slugify(text, self.style))

    def claim(self, base: str) -> str:
        """Reserve a precomputed slug, suffixing it if already taken.

        Args:
            base: Candidate slug.

        Returns:
            Unique slug.
        """
        candidate = base
        while candidate in self._seen:
            self._seen[base] += 1
            candidate = f"{base}-{self._seen[base]}"
        self._seen[candidate] = 0
        return candidate
