"""Vault service - path resolution, note store, backups, and batch helpers."""

import json
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import yaml

from config import (
    ARCHIVE_DIR,
    BACKUP_DIR,
    INCLUDE_ARCHIVED,
    TEMPLATES_DIR,
    VAULT_PATH,
)
from services.errors import BackupFailed, NoteParseError, VaultUnreachable

logger = logging.getLogger(__name__)


# =============================================================================
# Response Envelope Helpers
# =============================================================================


def ok(data: str | dict | list | None = None, **kwargs) -> str:
    """Return a success JSON response.

    Args:
        data: Primary response data (string message, dict, or list).
        **kwargs: Additional fields to include in the response.

    Returns:
        JSON string with {"success": true, ...}.
    """
    response = {"success": True}
    if data is not None:
        if isinstance(data, str):
            response["message"] = data
        elif isinstance(data, (dict, list)):
            response["data"] = data
    response.update(kwargs)
    return json.dumps(response, ensure_ascii=False)


def err(message: str, **kwargs) -> str:
    """Return an error JSON response.

    Args:
        message: Error description.
        **kwargs: Additional fields to include in the response.

    Returns:
        JSON string with {"success": false, "error": ...}.
    """
    response = {"success": False, "error": message}
    response.update(kwargs)
    return json.dumps(response, ensure_ascii=False)


# =============================================================================
# Path Resolution
# =============================================================================


def ensure_vault(vault_path: Path | None = None) -> Path:
    """Return the resolved vault root, or raise if it cannot be used.

    Raises:
        VaultUnreachable: If the root is missing, not a directory, or unreadable.
    """
    vault = vault_path if vault_path is not None else VAULT_PATH
    try:
        resolved = vault.resolve()
    except OSError as e:
        raise VaultUnreachable(f"Cannot resolve vault path {vault}: {e}") from e
    if not resolved.exists():
        raise VaultUnreachable(f"Vault not found: {vault}")
    if not resolved.is_dir():
        raise VaultUnreachable(f"Vault is not a directory: {vault}")
    if not os.access(resolved, os.R_OK | os.X_OK):
        raise VaultUnreachable(f"Vault is not readable: {vault}")
    return resolved


def resolve_vault_path(path: str, base_path: Path | None = None) -> Path:
    """Resolve a path ensuring it stays within the vault.

    Args:
        path: Relative path (from vault root) or absolute path.
        base_path: Vault root to resolve against. Defaults to VAULT_PATH.

    Returns:
        Resolved absolute Path within the vault.

    Raises:
        ValueError: If path escapes the vault.
    """
    base = base_path if base_path is not None else VAULT_PATH

    if Path(path).is_absolute():
        resolved = Path(path).resolve()
    else:
        resolved = (base / path).resolve()

    try:
        resolved.relative_to(base.resolve())
    except ValueError:
        raise ValueError(f"Path must be within vault: {base}")

    return resolved


def resolve_file(path: str, base_path: Path | None = None) -> tuple[Path | None, str | None]:
    """Resolve and validate a file path within the vault.

    Returns:
        Tuple of (resolved_path, None) on success, or (None, error_message) on failure.
    """
    try:
        file_path = resolve_vault_path(path, base_path=base_path)
    except ValueError as e:
        return None, str(e)

    if not file_path.exists():
        return None, f"File not found: {path}"

    if not file_path.is_file():
        return None, f"Not a file: {path}"

    return file_path, None


def resolve_dir(path: str, base_path: Path | None = None) -> tuple[Path | None, str | None]:
    """Resolve and validate a directory path within the vault.

    Returns:
        Tuple of (resolved_path, None) on success, or (None, error_message) on failure.
    """
    try:
        dir_path = resolve_vault_path(path, base_path=base_path)
    except ValueError as e:
        return None, str(e)

    if not dir_path.exists():
        return None, f"Folder not found: {path}"

    if not dir_path.is_dir():
        return None, f"Not a folder: {path}"

    return dir_path, None


def get_relative_path(absolute_path: Path, vault_path: Path | None = None) -> str:
    """Get a POSIX path relative to the vault root."""
    vault = vault_path if vault_path is not None else VAULT_PATH
    return absolute_path.resolve().relative_to(vault.resolve()).as_posix()


# =============================================================================
# File Scanning
# =============================================================================


def iter_vault_files(
    vault_path: Path | None = None,
    *,
    start: Path | None = None,
    templates_dir: str | None = None,
    archive_dir: str | None = None,
    include_archived: bool | None = None,
) -> list[Path]:
    """List markdown files in the vault in a stable, sorted order.

    Exclusions are applied in order: hidden entries (dotted names), the
    templates directory, then the archive marker directory unless archived
    notes are included.

    Args:
        vault_path: Vault root. Defaults to VAULT_PATH.
        start: Directory inside the vault to walk instead of the root.
        templates_dir: Vault-relative templates directory. Defaults to TEMPLATES_DIR.
        archive_dir: Archive marker directory name. Defaults to ARCHIVE_DIR.
        include_archived: Walk into archive directories. Defaults to INCLUDE_ARCHIVED.

    Raises:
        VaultUnreachable: If the vault root cannot be used.
    """
    vault = ensure_vault(vault_path)
    templates = (templates_dir if templates_dir is not None else TEMPLATES_DIR).strip("/")
    archive = archive_dir if archive_dir is not None else ARCHIVE_DIR
    with_archived = include_archived if include_archived is not None else INCLUDE_ARCHIVED

    root = start.resolve() if start is not None else vault
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        kept = []
        for name in sorted(dirnames):
            if name.startswith("."):
                continue
            rel = (current / name).relative_to(vault).as_posix()
            if templates and rel == templates:
                continue
            if not with_archived and archive and name == archive:
                continue
            kept.append(name)
        dirnames[:] = kept

        for name in sorted(filenames):
            if name.startswith(".") or not name.endswith(".md"):
                continue
            files.append(current / name)
    return files


# =============================================================================
# Note Store
# =============================================================================

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)


@dataclass
class Note:
    """A note's parsed frontmatter and body."""

    path: Path
    frontmatter: dict
    body: str
    has_frontmatter: bool = False
    newline: str = "\n"


def detect_newline(content: str) -> str:
    """Line ending used by the text: ``\\r\\n`` when it has any, else ``\\n``."""
    return "\r\n" if "\r\n" in content else "\n"


def split_frontmatter(content: str, path: str = "<text>") -> tuple[dict, str, bool]:
    """Split note text into (frontmatter, body, has_frontmatter).

    Raises:
        NoteParseError: If the YAML block is invalid or not a mapping.
    """
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return {}, content, False

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise NoteParseError(path, f"invalid frontmatter YAML: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise NoteParseError(path, "frontmatter is not a mapping")
    return data, content[match.end():], True


def read_note(file_path: Path) -> Note:
    """Read a note and parse its frontmatter.

    Line endings are read as stored, so a CRLF note keeps them on write.

    Raises:
        NoteParseError: If the file cannot be read or decoded, or the
            frontmatter is malformed.
    """
    try:
        with open(file_path, encoding="utf-8", newline="") as f:
            content = f.read()
    except FileNotFoundError as e:
        raise NoteParseError(str(file_path), "file not found") from e
    except (OSError, UnicodeDecodeError) as e:
        raise NoteParseError(str(file_path), f"unreadable: {e}") from e

    frontmatter, body, has_frontmatter = split_frontmatter(content, str(file_path))
    return Note(
        path=file_path,
        frontmatter=frontmatter,
        body=body,
        has_frontmatter=has_frontmatter,
        newline=detect_newline(content),
    )


def render_note(frontmatter: dict, body: str, has_frontmatter: bool = False, newline: str = "\n") -> str:
    """Serialize frontmatter and body back into note text.

    An empty mapping is written as an empty ``---`` block when the note had
    one. The frontmatter block uses ``newline``; the body is kept as is.
    """
    if not frontmatter and not has_frontmatter:
        return body
    new_yaml = ""
    if frontmatter:
        new_yaml = yaml.dump(
            frontmatter, default_flow_style=False, allow_unicode=True, sort_keys=False
        )
    block = f"---\n{new_yaml}---\n"
    if newline != "\n":
        block = block.replace("\n", newline)
    return block + body


def write_text_atomic(path: Path, text: str) -> None:
    """Write text via a temp file in the same directory, then replace.

    Text is written without newline translation.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        encoding="utf-8",
        newline="",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def write_note(note: Note) -> None:
    """Write a note's frontmatter and body back to its path."""
    write_text_atomic(note.path, render_note(note.frontmatter, note.body, note.has_frontmatter, note.newline))


# =============================================================================
# Backups
# =============================================================================


def backup_note(
    file_path: Path,
    vault_path: Path | None = None,
    backup_dir: str | None = None,
    now: datetime | None = None,
) -> Path:
    """Copy a note's current bytes into the vault backup directory.

    Backups are stored flat as ``<stem>_<YYYYMMDD_HHMMSS>.md.bak``.

    Raises:
        BackupFailed: If the backup directory or copy cannot be written.
    """
    vault = vault_path if vault_path is not None else VAULT_PATH
    target_dir = vault / (backup_dir if backup_dir is not None else BACKUP_DIR)
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")

    stem = file_path.name[:-3] if file_path.name.endswith(".md") else file_path.name
    backup_path = target_dir / f"{stem}_{stamp}.md.bak"
    counter = 1
    while backup_path.exists():
        counter += 1
        backup_path = target_dir / f"{stem}_{stamp}_{counter}.md.bak"

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(file_path, backup_path)
    except OSError as e:
        raise BackupFailed(str(file_path), str(e)) from e

    logger.debug("Backed up %s to %s", file_path, backup_path)
    return backup_path


# =============================================================================
# File Move Operations
# =============================================================================


def do_move_file(source_path: Path, dest_path: Path) -> tuple[bool, str]:
    """Move a single file, creating the destination directory.

    Returns:
        Tuple of (success, message).
    """
    if not source_path.is_file():
        return False, f"Source file not found: {source_path}"

    if source_path.resolve() == dest_path.resolve():
        return True, f"Already at destination: {dest_path}"

    if dest_path.exists():
        return False, f"Destination already exists: {dest_path}"

    try:
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source_path), str(dest_path))
    except OSError as e:
        return False, f"Move failed: {e}"

    return True, f"Moved {source_path} to {dest_path}"


# =============================================================================
# Batch Confirmation Gate
# =============================================================================

# Tracks previewed operations so confirm=True only works after a preview.
# Keys are tuples of operation parameters; consumed on use (single-use).
_pending_previews: set[tuple] = set()


def store_preview(key: tuple) -> None:
    """Record that a confirmation preview was shown for this operation."""
    _pending_previews.add(key)


def consume_preview(key: tuple) -> bool:
    """Check and consume a pending preview. Returns True if one existed."""
    if key in _pending_previews:
        _pending_previews.discard(key)
        return True
    return False


def clear_pending_previews() -> None:
    """Clear all pending previews. For testing only."""
    _pending_previews.clear()


# =============================================================================
# Batch Operations
# =============================================================================


@dataclass
class SkippedNote:
    """A note left untouched, with the reason."""

    path: str
    reason: str


@dataclass
class OperationResult:
    """Aggregate outcome of a bulk operation over many notes."""

    operation: str
    succeeded: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    skipped: list[SkippedNote] = field(default_factory=list)

    def skip(self, path: str, reason: str) -> None:
        logger.info("%s skipped %s: %s", self.operation, path, reason)
        self.skipped.append(SkippedNote(path, reason))

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "succeeded": list(self.succeeded),
            "unchanged": list(self.unchanged),
            "skipped": [{"path": s.path, "reason": s.reason} for s in self.skipped],
        }


def format_batch_result(result: OperationResult) -> str:
    """Format a bulk operation result into a summary string."""
    parts = [
        f"Batch {result.operation}: {len(result.succeeded)} succeeded, "
        f"{len(result.unchanged)} unchanged, {len(result.skipped)} skipped"
    ]

    if result.succeeded:
        parts.append("\nSucceeded:")
        for path in result.succeeded:
            parts.append(f"- {path}")

    if result.skipped:
        parts.append("\nSkipped:")
        for skipped in result.skipped:
            parts.append(f"- {skipped.path}: {skipped.reason}")

    return "\n".join(parts)
