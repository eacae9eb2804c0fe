"""Vault scanner - one read-only pass yielding per-note tag records."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from config import VAULT_PATH
from services.errors import NoteParseError
from services.tag_paths import TagPath, find_inline_tags, parse_dir_tag_marker, try_normalize
from services.vault import SkippedNote, ensure_vault, get_relative_path, iter_vault_files, read_note

logger = logging.getLogger(__name__)

# Frontmatter keys holding the tag list, in priority order
TAG_KEYS = ("tags", "tag", "Tags", "Tag")


@dataclass(frozen=True)
class NoteTags:
    """Tags found in one note."""

    path: str
    tags: tuple[TagPath, ...] = ()
    dir_tag: TagPath | None = None
    body_tags: tuple[TagPath, ...] = ()

    @property
    def all_tags(self) -> tuple[TagPath, ...]:
        """Frontmatter tags, inline body tags, then the dir-tag, deduplicated, in order."""
        seen = []
        for tag in self.tags + self.body_tags + ((self.dir_tag,) if self.dir_tag else ()):
            if tag not in seen:
                seen.append(tag)
        return tuple(seen)


@dataclass
class ScanResult:
    notes: list[NoteTags] = field(default_factory=list)
    skipped: list[SkippedNote] = field(default_factory=list)


def frontmatter_tag_key(frontmatter: dict) -> str | None:
    """Return the first tag key present in the frontmatter."""
    for key in TAG_KEYS:
        if key in frontmatter:
            return key
    return None


def extract_frontmatter_tags(frontmatter: dict) -> tuple[TagPath, ...]:
    """Normalize the note's raw tag list into its frontmatter tag paths."""
    key = frontmatter_tag_key(frontmatter)
    if key is None:
        return ()
    tag = try_normalize(frontmatter[key])
    return (tag,) if tag is not None else ()


def first_body_line(body: str) -> tuple[int | None, str]:
    """Index and text of the first non-empty body line."""
    for i, line in enumerate(body.split("\n")):
        if line.strip():
            return i, line
    return None, ""


def extract_dir_tag(body: str) -> TagPath | None:
    """Read the ``{ #a/b }`` dir-tag marker from the first body line."""
    _, line = first_body_line(body)
    return parse_dir_tag_marker(line)


def extract_body_tags(body: str) -> tuple[TagPath, ...]:
    """Inline ``#a/b`` tags in the body, outside fenced code blocks.

    The dir-tag marker line is left to ``extract_dir_tag``.
    """
    marker_idx, marker_line = first_body_line(body)
    if parse_dir_tag_marker(marker_line) is None:
        marker_idx = None

    tags = []
    in_fence = False
    for i, line in enumerate(body.split("\n")):
        stripped = line.lstrip()
        if stripped.startswith("```") or stripped.startswith("~~~"):
            in_fence = not in_fence
            continue
        if in_fence or i == marker_idx:
            continue
        for tag in find_inline_tags(line):
            if tag not in tags:
                tags.append(tag)
    return tuple(tags)


def scan_note(file_path: Path, vault_path: Path) -> NoteTags:
    """Scan a single note.

    Raises:
        NoteParseError: If the note cannot be read or parsed.
    """
    rel_path = get_relative_path(file_path, vault_path)
    try:
        note = read_note(file_path)
    except NoteParseError as e:
        raise NoteParseError(rel_path, e.reason) from e
    return NoteTags(
        path=rel_path,
        tags=extract_frontmatter_tags(note.frontmatter),
        dir_tag=extract_dir_tag(note.body),
        body_tags=extract_body_tags(note.body),
    )


def scan_vault(
    vault_path: Path | None = None,
    *,
    start: Path | None = None,
    templates_dir: str | None = None,
    archive_dir: str | None = None,
    include_archived: bool | None = None,
) -> ScanResult:
    """Walk the vault once and collect tag records for every note.

    Notes that fail to parse are reported in ``skipped``; the scan continues.

    Raises:
        VaultUnreachable: If the vault root cannot be used.
    """
    vault = ensure_vault(vault_path if vault_path is not None else VAULT_PATH)
    result = ScanResult()

    files = iter_vault_files(
        vault,
        start=start,
        templates_dir=templates_dir,
        archive_dir=archive_dir,
        include_archived=include_archived,
    )
    for md_file in files:
        try:
            result.notes.append(scan_note(md_file, vault))
        except NoteParseError as e:
            logger.debug("Skipping %s: %s", e.path, e.reason)
            result.skipped.append(SkippedNote(e.path, e.reason))

    logger.info(
        "Scanned %s notes in %s (%s skipped)", len(result.notes), vault, len(result.skipped)
    )
    return result
