"""Parsers turning Markdown and RST files into structural document records."""

import re
from collections.abc import Iterator
from pathlib import Path
from urllib.parse import unquote

import docutils.frontend  # type: ignore[import-untyped]
import docutils.nodes  # type: ignore[import-untyped]
import docutils.parsers.rst  # type: ignore[import-untyped]
import docutils.utils  # type: ignore[import-untyped]

from checkdocs.models import Callout, Document, Heading, Link, LinkKind
from checkdocs.slugs import SlugTracker

MARKDOWN_SUFFIXES = (".md", ".markdown")
RST_SUFFIXES = (".rst", ".rest")

_MODULE_FILENAME_RE = re.compile(r"^(\d+)-.+\.(?:md|markdown|rst|rest)$", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")

_FRONT_MATTER_KEY_RE = re.compile(r"^[\"']?[A-Za-z_][\w .-]*[\"']?[ \t]*:(?:[ \t]|$)")
_FRONT_MATTER_OTHER_RE = re.compile(r"^(?:[ \t]+\S|-(?:[ \t]|$)|#)")
_FENCE_RE = re.compile(r"^[ \t]*(?:>[ \t]*)*(`{3,}|~{3,})(.*)$")
_ATX_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")
_ATX_CLOSING_RE = re.compile(r"(?:^|[ \t]+)#+[ \t]*$")
_SETEXT_RE = re.compile(r"^ {0,3}(?:=+|-{2,})[ \t]*$")
_NOT_PARAGRAPH_RE = re.compile(r"^(?: {4}|\t| {0,3}(?:[>#|<]|[-*+][ \t]|\d+[.)][ \t]))")
_CALLOUT_RE = re.compile(r"^ {0,3}>[ \t]*\[!([A-Za-z0-9_-]+)\]")
_DEFINITION_RE = re.compile(
    r"^ {0,3}\[([^\]^][^\]]*)\]:[ \t]*(<[^>\n]*>|\S+)"
    r"(?:[ \t]+(?:\"[^\"]*\"|'[^']*'|\([^()]*\)))?[ \t]*$"
)

_LINK_TEXT = r"((?:[^\[\]\\]|\\.|\[[^\[\]]*\])*)"
_INLINE_LINK_RE = re.compile(
    r"(!?)\[" + _LINK_TEXT + r"\]"
    r"\([ \t]*(<[^<>\n]*>|(?:[^\s()\\]|\\.|\([^\s()]*\))*)"
    r"(?:[ \t]+(?:\"[^\"]*\"|'[^']*'|\([^()]*\)))?[ \t]*\)"
)
_REFERENCE_LINK_RE = re.compile(r"(?<![\w\]\)])(!?)\[" + _LINK_TEXT + r"\]\[([^\[\]]*)\]")
_AUTOLINK_RE = re.compile(r"<((?:[A-Za-z][A-Za-z0-9+.\-]{1,31}):[^<>\s]+)>")
_HTML_LINK_RE = re.compile(r"<(a|img)\b[^>]*?\s(href|src)\s*=\s*[\"']([^\"']*)[\"']", re.IGNORECASE)
_CODE_SPAN_RE = re.compile(r"(`+)(.+?)\1")

_INLINE_LINK_TEXT_RE = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_EMPHASIS_RE = re.compile(r"\*+|~~")
_UNDERSCORE_EMPHASIS_RE = re.compile(r"(?<!\w)_{1,2}(\S(?:.*?\S)?)_{1,2}(?!\w)")


def parse_module_number(filename: str) -> int | None:
    """Extract the module number from a ``NN-Name.md`` filename.

    Args:
        filename: File name without directories.

    Returns:
        Module number, or None if the name does not follow the convention.
    """
    match = _MODULE_FILENAME_RE.match(filename)
    return int(match.group(1)) if match else None


def title_from_filename(filename: str) -> str:
    """Derive a display title from a module filename.

    ``20-Temporal-API-S3.md`` becomes ``Temporal API``.

    Args:
        filename: File name without directories.

    Returns:
        Human-readable title.
    """
    title = re.sub(r"^[0-9]+-", "", filename)
    title = re.sub(r"-S[0-9]+", "", title)
    title = re.sub(r"\.(md|markdown|rst|rest)$", "", title, flags=re.IGNORECASE)
    return title.replace("-", " ")


def classify_link(target: str) -> LinkKind:
    """Classify a raw link target.

    Args:
        target: Link destination as written.

    Returns:
        LinkKind for the target.
    """
    if target.lower().startswith("mailto:"):
        return LinkKind.MAILTO
    if target.startswith("//") or _SCHEME_RE.match(target):
        return LinkKind.EXTERNAL
    if "#" in target:
        return LinkKind.INTERNAL_ANCHOR
    return LinkKind.INTERNAL_FILE


def normalise_target(target: str) -> str:
    """Strip angle brackets and decode percent-escapes in a link target.

    Args:
        target: Raw destination.

    Returns:
        Destination suitable for path resolution.
    """
    target = target.strip()
    if target.startswith("<") and target.endswith(">"):
        target = target[1:-1].strip()
    return unquote(target)


def count_lines(source: str) -> int:
    """Count lines the way ``wc -l`` does, plus an unterminated last line.

    Args:
        source: File content.

    Returns:
        Line count.
    """
    if not source:
        return 0
    return source.count("\n") + (0 if source.endswith("\n") else 1)


def plain_heading_text(raw: str) -> str:
    """Reduce inline Markdown in heading text to its rendered text.

    Args:
        raw: Heading content after the ``#`` markers.

    Returns:
        Plain text.
    """
    parts: list[str] = []
    position = 0
    for match in _CODE_SPAN_RE.finditer(raw):
        parts.append(_strip_inline_markup(raw[position : match.start()]))
        parts.append(match.group(2).strip())
        position = match.end()
    parts.append(_strip_inline_markup(raw[position:]))
    return "".join(parts).strip()


def match_heading(line: str) -> tuple[int, str] | None:
    """Match an ATX heading line.

    Args:
        line: Line text.

    Returns:
        ``(level, plain_text)`` or None if the line is not a heading.
    """
    match = _ATX_RE.match(line)
    if match is None:
        return None
    return len(match.group(1)), plain_heading_text(_ATX_CLOSING_RE.sub("", match.group(2) or ""))


def _strip_inline_markup(text: str) -> str:
    """Remove link syntax, HTML tags and emphasis markers.

    Args:
        text: Heading text outside code spans.

    Returns:
        Text as rendered.
    """
    text = _INLINE_LINK_TEXT_RE.sub(r"\1", text)
    text = _HTML_TAG_RE.sub("", text)
    text = _EMPHASIS_RE.sub("", text)
    return _UNDERSCORE_EMPHASIS_RE.sub(r"\1", text)


def _normalise_label(label: str) -> str:
    """Normalise a reference label (case-insensitive, whitespace collapsed).

    Args:
        label: Label as written.

    Returns:
        Lookup key.
    """
    return " ".join(label.split()).casefold()


def front_matter_end(lines: list[str]) -> int:
    """Find where a leading YAML front matter block ends.

    A block opened by ``---`` on the first line counts as front matter only
    when it is closed and every line in it is YAML (``key: value`` pairs,
    indented continuations, list items or comments) with at least one key.
    Otherwise the ``---`` is a thematic break and nothing is skipped.

    Args:
        lines: Document lines.

    Returns:
        Index of the first line after the front matter, or 0.
    """
    if not lines or lines[0].strip() != "---":
        return 0
    has_key = False
    for index in range(1, len(lines)):
        line = lines[index]
        if line.strip() in ("---", "..."):
            return index + 1 if has_key else 0
        if _FRONT_MATTER_KEY_RE.match(line):
            has_key = True
        elif line.strip() and not _FRONT_MATTER_OTHER_RE.match(line):
            return 0
    return 0


def iter_content_lines(source: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, line)`` for lines outside code fences and front matter.

    Args:
        source: Markdown source.

    Yields:
        One-based line number and line text without the newline.
    """
    lines = source.splitlines()
    start = front_matter_end(lines)

    fence: str | None = None
    for index in range(start, len(lines)):
        line = lines[index]
        match = _FENCE_RE.match(line)
        if fence is None:
            if match and not (match.group(1)[0] == "`" and "`" in match.group(2)):
                fence = match.group(1)
                continue
            yield index + 1, line
        elif match and match.group(1)[0] == fence[0] and len(match.group(1)) >= len(fence):
            if not match.group(2).strip():
                fence = None


class DocumentParser:
    """Parses Markdown (and optionally RST) files into Document records."""

    def __init__(self, slug_style: str = "github") -> None:
        """Initialise parser.

        Args:
            slug_style: Anchor slug algorithm, ``github`` or ``marked``.
        """
        self.slug_style = slug_style

    def parse_file(self, file_path: Path, base_path: Path) -> Document:
        """Read and parse a documentation file.

        Args:
            file_path: Absolute path to the file.
            base_path: Vault root the document path is relative to.

        Returns:
            Parsed Document.

        Raises:
            OSError: If the file cannot be read.
            UnicodeDecodeError: If the file is not valid UTF-8.
        """
        source = file_path.read_bytes().decode("utf-8-sig")
        relative_path = file_path.relative_to(base_path).as_posix()
        if file_path.suffix.lower() in RST_SUFFIXES:
            return self.parse_rst(relative_path, source)
        return self.parse_markdown(relative_path, source)

    def parse_markdown(self, path: str, source: str) -> Document:
        """Parse Markdown source into a Document.

        Args:
            path: Relative POSIX path of the document.
            source: Markdown text.

        Returns:
            Document with headings, links and structural markers.
        """
        content = list(iter_content_lines(source))
        definitions = collect_definitions(content)
        tracker = SlugTracker(self.slug_style)

        headings: list[Heading] = []
        links: list[Link] = []
        undefined: list[tuple[str, int]] = []
        setext_lines: list[int] = []
        callouts: list[Callout] = []
        previous: tuple[int, str] | None = None

        for line_number, line in content:
            heading_match = match_heading(line)
            if heading_match:
                level, text = heading_match
                headings.append(
                    Heading(
                        level=level,
                        text=text,
                        slug=tracker.slug(text),
                        line=line_number,
                    )
                )
            elif _SETEXT_RE.match(line) and self._is_paragraph_line(previous, line_number):
                setext_lines.append(line_number)

            callout_match = _CALLOUT_RE.match(line)
            if callout_match:
                callouts.append(Callout(kind=callout_match.group(1), line=line_number))

            if not _DEFINITION_RE.match(line):
                line_links, line_undefined = extract_line_links(line, line_number, definitions)
                links.extend(line_links)
                undefined.extend(line_undefined)
            previous = (line_number, line)

        return Document(
            path=path,
            headings=tuple(headings),
            links=tuple(links),
            line_count=count_lines(source),
            module_number=parse_module_number(path.rpartition("/")[2]),
            undefined_references=tuple(undefined),
            setext_lines=tuple(setext_lines),
            callouts=tuple(callouts),
        )

    def parse_rst(self, path: str, source: str) -> Document:
        """Parse reStructuredText source into a Document using docutils.

        Args:
            path: Relative POSIX path of the document.
            source: RST text.

        Returns:
            Document with section headings and hyperlink references.
        """
        doctree = self._parse_rst_tree(source, path)
        visitor = StructureVisitor(doctree, SlugTracker(self.slug_style))
        doctree.walkabout(visitor)
        visitor_links = sorted(visitor.links, key=lambda link: link.line)
        return Document(
            path=path,
            headings=tuple(visitor.headings),
            links=tuple(visitor_links),
            line_count=count_lines(source),
            module_number=parse_module_number(path.rpartition("/")[2]),
        )

    def _parse_rst_tree(self, source: str, path: str) -> docutils.nodes.document:
        """Parse RST source into a docutils document tree.

        Args:
            source: RST source text.
            path: Path used as the document source name.

        Returns:
            Docutils document tree.
        """
        parser = docutils.parsers.rst.Parser()
        settings = docutils.frontend.get_default_settings(docutils.parsers.rst.Parser)
        settings.report_level = 5  # Suppress warnings
        settings.halt_level = 5
        settings.file_insertion_enabled = False
        settings.raw_enabled = False
        document = docutils.utils.new_document(path, settings)
        parser.parse(source, document)
        return document

    @staticmethod
    def _is_paragraph_line(previous: tuple[int, str] | None, line_number: int) -> bool:
        """Check whether the line above an underline is paragraph text.

        Args:
            previous: Previous content line, if any.
            line_number: Line number of the candidate underline.

        Returns:
            True if the underline would turn the previous line into a setext heading.
        """
        if previous is None or previous[0] != line_number - 1:
            return False
        text = previous[1]
        if not text.strip() or _NOT_PARAGRAPH_RE.match(text) or _SETEXT_RE.match(text):
            return False
        return _ATX_RE.match(text) is None


def collect_definitions(content: list[tuple[int, str]]) -> dict[str, str]:
    """Collect reference definitions (`[label]: target`) from content lines.

    Args:
        content: Line number and text pairs.

    Returns:
        Targets keyed by normalised label.
    """
    definitions: dict[str, str] = {}
    for _, line in content:
        match = _DEFINITION_RE.match(line)
        if match:
            # First definition wins, as in CommonMark.
            definitions.setdefault(_normalise_label(match.group(1)), match.group(2))
    return definitions


def extract_line_links(
    line: str, line_number: int, definitions: dict[str, str]
) -> tuple[list[Link], list[tuple[str, int]]]:
    """Extract links from a single Markdown line.

    Args:
        line: Line text.
        line_number: One-based line number.
        definitions: Reference definitions keyed by normalised label.

    Returns:
        Links in column order and undefined reference labels.
    """
    line = _CODE_SPAN_RE.sub(lambda match: " " * len(match.group(0)), line)
    found: list[tuple[int, Link]] = []
    undefined: list[tuple[str, int]] = []
    spans: list[tuple[int, int]] = []

    for match in _INLINE_LINK_RE.finditer(line):
        spans.append(match.span())
        target = normalise_target(match.group(3))
        found.append(
            (
                match.start(),
                Link(
                    raw_target=target,
                    kind=classify_link(target),
                    line=line_number,
                    text=match.group(2),
                    is_image=bool(match.group(1)),
                ),
            )
        )

    for match in _REFERENCE_LINK_RE.finditer(line):
        spans.append(match.span())
        label = match.group(3) or match.group(2)
        definition = definitions.get(_normalise_label(label))
        if definition is None:
            undefined.append((label, line_number))
            continue
        target = normalise_target(definition)
        found.append(
            (
                match.start(),
                Link(
                    raw_target=target,
                    kind=classify_link(target),
                    line=line_number,
                    text=match.group(2),
                    is_image=bool(match.group(1)),
                ),
            )
        )

    for match in _AUTOLINK_RE.finditer(line):
        if _within(spans, match.start()):
            continue
        target = match.group(1)
        found.append(
            (match.start(), Link(raw_target=target, kind=classify_link(target), line=line_number, text=target))
        )

    for match in _HTML_LINK_RE.finditer(line):
        if _within(spans, match.start()):
            continue
        target = normalise_target(match.group(3))
        found.append(
            (
                match.start(),
                Link(
                    raw_target=target,
                    kind=classify_link(target),
                    line=line_number,
                    is_image=match.group(1).lower() == "img",
                ),
            )
        )

    found.sort(key=lambda item: item[0])
    return [link for _, link in found], undefined


def _within(spans: list[tuple[int, int]], position: int) -> bool:
    """Check whether a column falls inside an already matched link.

    Args:
        spans: ``(start, end)`` columns of inline and reference links.
        position: Column to test.

    Returns:
        True if the position is covered.
    """
    return any(start <= position < end for start, end in spans)


def _node_line(node: docutils.nodes.Node) -> int:
    """Source line of a node, taken from the nearest ancestor that has one.

    Args:
        node: Docutils node.

    Returns:
        One-based line number, or 0 if unknown.
    """
    while node is not None:
        if getattr(node, "line", None):
            return int(node.line)
        node = node.parent
    return 0


class StructureVisitor(docutils.nodes.GenericNodeVisitor):  # type: ignore[misc]
    """Visitor collecting section titles and hyperlinks from an RST tree."""

    def __init__(self, document: docutils.nodes.document, tracker: SlugTracker) -> None:
        """Initialise structure visitor.

        Args:
            document: Docutils document tree.
            tracker: Slug tracker used when a section has no docutils id.
        """
        super().__init__(document)
        self.tracker = tracker
        self.headings: list[Heading] = []
        self.links: list[Link] = []
        self._depth = 0

    def visit_section(self, node: docutils.nodes.section) -> None:
        """Enter a section (one heading level deeper).

        Args:
            node: Section node.
        """
        self._depth += 1

    def depart_section(self, node: docutils.nodes.section) -> None:
        """Leave a section.

        Args:
            node: Section node.
        """
        self._depth -= 1

    def visit_title(self, node: docutils.nodes.title) -> None:
        """Record a section title as a heading.

        Args:
            node: Title node.
        """
        if not isinstance(node.parent, docutils.nodes.section):
            return
        text = node.astext()
        ids = node.parent.get("ids", [])
        slug = self.tracker.claim(ids[0]) if ids else self.tracker.slug(text)
        self.headings.append(Heading(level=min(self._depth, 6), text=text, slug=slug, line=_node_line(node)))

    def visit_reference(self, node: docutils.nodes.reference) -> None:
        """Record an external or relative hyperlink.

        Args:
            node: Reference node.
        """
        refuri = node.get("refuri")
        if refuri:
            target = normalise_target(refuri)
            self.links.append(
                Link(raw_target=target, kind=classify_link(target), line=_node_line(node), text=node.astext())
            )

    def visit_image(self, node: docutils.nodes.image) -> None:
        """Record an image reference.

        Args:
            node: Image node.
        """
        uri = node.get("uri")
        if uri:
            target = normalise_target(uri)
            self.links.append(
                Link(raw_target=target, kind=classify_link(target), line=_node_line(node), is_image=True)
            )

    def skip_code(self, node: docutils.nodes.Element) -> None:
        """Ignore code, doctest and comment nodes and everything inside them.

        Link-like text in a code sample is not a link.

        Args:
            node: Literal block, doctest block or comment node.

        Raises:
            docutils.nodes.SkipNode: To prune the subtree.
        """
        raise docutils.nodes.SkipNode

    visit_literal_block = skip_code
    visit_doctest_block = skip_code
    visit_comment = skip_code

    def default_visit(self, node: docutils.nodes.Node) -> None:
        """Nodes without a handler carry no headings or links themselves.

        Args:
            node: Any other node.
        """

    def default_departure(self, node: docutils.nodes.Node) -> None:
        """Only sections need work on departure.

        Args:
            node: Any other node.
        """
