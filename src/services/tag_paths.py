"""Tag path normalization - the single boundary from raw tag values to TagPath.

Frontmatter tags may be written as one slash string (``proyecto/cliente``),
as an array of segments (``[proyecto, cliente]``) or as a mix of both
(``[proyecto, cliente/acme]``). All of them collapse to the same ordered
hierarchy. Nothing downstream re-derives hierarchy from raw strings.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from services.errors import InvalidTag

# { #a/b/c } on the first line of a note body
_DIR_TAG_MARKER_RE = re.compile(r"^\{\s*#([^{}]+?)\s*\}$")

# #a/b/c anywhere in a line, not glued to a word, an entity or another '#'
_INLINE_TAG_RE = re.compile(r"(?<![\w#&/])#[\w\-/]+")


@dataclass(frozen=True, order=True)
class TagPath:
    """An ordered, non-empty sequence of non-empty tag segments."""

    parts: tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "parts", tuple(self.parts))
        if not self.parts:
            raise InvalidTag("Tag path must have at least one segment")
        for part in self.parts:
            if not isinstance(part, str) or not part or "/" in part:
                raise InvalidTag(f"Invalid tag segment: {part!r}")

    @classmethod
    def from_string(cls, text: str) -> "TagPath":
        """Parse a slash-joined tag string."""
        return normalize_tag(text)

    def __str__(self) -> str:
        return "/".join(self.parts)

    def __len__(self) -> int:
        return len(self.parts)

    @property
    def name(self) -> str:
        return self.parts[-1]

    @property
    def parent(self) -> "TagPath | None":
        if len(self.parts) == 1:
            return None
        return TagPath(self.parts[:-1])

    def child(self, segment: str) -> "TagPath":
        return TagPath(self.parts + (segment,))

    def prefixes(self) -> list["TagPath"]:
        """Every prefix path, shortest first, including the path itself."""
        return [TagPath(self.parts[:i]) for i in range(1, len(self.parts) + 1)]

    def starts_with(self, other: "TagPath") -> bool:
        """True if ``other`` is this path or one of its ancestors."""
        return self.parts[: len(other.parts)] == other.parts

    def replace_prefix(self, old: "TagPath", new: "TagPath") -> "TagPath":
        """Swap the ``old`` prefix for ``new``, keeping any suffix segments.

        Raises:
            ValueError: If this path does not start with ``old``.
        """
        if not self.starts_with(old):
            raise ValueError(f"{self} does not start with {old}")
        return TagPath(new.parts + self.parts[len(old.parts):])


def _flatten(value) -> list:
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            items.extend(_flatten(item))
        return items
    return [value]


def normalize_tag(value) -> TagPath:
    """Collapse a raw tag value into one canonical TagPath.

    Arrays are flattened in order and every element containing ``/`` is
    split in place, so the whole array forms a single hierarchy.

    Args:
        value: A string, a (possibly nested) list of strings, a TagPath or a
            YAML scalar such as an int or a date.

    Returns:
        The canonical TagPath.

    Raises:
        InvalidTag: If the value is None, a mapping, or contains no
            non-empty segment.
    """
    if isinstance(value, TagPath):
        return value
    if value is None or isinstance(value, dict):
        raise InvalidTag(f"Not a tag value: {value!r}")

    segments = []
    for item in _flatten(value):
        if item is None or isinstance(item, dict):
            continue
        text = str(item).strip()
        if text.startswith("#"):
            text = text[1:]
        for part in text.split("/"):
            part = part.strip()
            if part:
                segments.append(part)

    if not segments:
        raise InvalidTag(f"Empty tag: {value!r}")
    return TagPath(tuple(segments))


def try_normalize(value) -> TagPath | None:
    """Normalize a raw tag value, treating InvalidTag as "no tag"."""
    try:
        return normalize_tag(value)
    except InvalidTag:
        return None


def parse_inline_tag(text: str) -> TagPath:
    """Parse an inline body tag such as ``#a/b/c``."""
    text = text.strip()
    if not text.startswith("#"):
        raise InvalidTag(f"Inline tag must start with '#': {text!r}")
    return normalize_tag(text[1:])


def find_inline_tags(line: str) -> list[TagPath]:
    """Every inline ``#a/b`` tag in one line of text, in order.

    Markdown headings (``# Title``) do not match: the ``#`` must be followed
    directly by a tag character.
    """
    tags = []
    for match in _INLINE_TAG_RE.finditer(line):
        try:
            tags.append(parse_inline_tag(match.group(0)))
        except InvalidTag:
            continue
    return tags


def format_inline_tag(path: TagPath) -> str:
    return f"#{path}"


def parse_dir_tag_marker(line: str) -> TagPath | None:
    """Return the TagPath in a ``{ #a/b/c }`` marker line, or None."""
    match = _DIR_TAG_MARKER_RE.match(line.strip())
    if not match:
        return None
    return try_normalize(match.group(1))


def format_dir_tag_marker(path: TagPath) -> str:
    return "{ " + format_inline_tag(path) + " }"


def tag_from_directory(relative_dir: str | PurePosixPath) -> TagPath | None:
    """Turn a directory path relative to the tag root into a TagPath.

    Returns None for the tag root itself (an empty relative path).
    """
    parts = [p for p in PurePosixPath(relative_dir).parts if p not in ("", ".")]
    if not parts:
        return None
    return TagPath(tuple(parts))
