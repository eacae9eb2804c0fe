"""Rename / retag / redir engine - the only code that mutates notes.

Every destructive write is preceded by a timestamped backup copy (unless
backups are disabled); a failed backup leaves the original untouched. Bulk
commands never abort on a single bad note: each note's outcome lands in an
OperationResult, and the tag index is rebuilt once the command is done.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Callable

from config import (
    ALIASES_ENABLED,
    BACKUPS_ENABLED,
    DATE_FORMAT,
    TAG_ROOT,
    VAULT_PATH,
)
from services.errors import BackupFailed, NoteParseError
from services.scanner import (
    extract_dir_tag,
    extract_frontmatter_tags,
    first_body_line,
    frontmatter_tag_key,
    scan_vault,
)
from services.tag_index import rebuild_index
from services.tag_paths import (
    TagPath,
    format_dir_tag_marker,
    normalize_tag,
    parse_dir_tag_marker,
    tag_from_directory,
    try_normalize,
)
from services.vault import (
    Note,
    OperationResult,
    backup_note,
    do_move_file,
    ensure_vault,
    get_relative_path,
    iter_vault_files,
    read_note,
    resolve_file,
    write_note,
)

logger = logging.getLogger(__name__)

ConfirmDirectory = Callable[[Path], bool]


def _commit(note: Note, rel_path: str, vault: Path, backups: bool, result: OperationResult) -> bool:
    """Back up, then write a modified note. Failures are recorded as skips."""
    if backups:
        try:
            backup_note(note.path, vault)
        except BackupFailed as e:
            result.skip(rel_path, f"backup failed: {e.reason}")
            return False
    try:
        write_note(note)
    except OSError as e:
        result.skip(rel_path, f"write failed: {e}")
        return False
    logger.info("%s updated %s", result.operation, rel_path)
    result.succeeded.append(rel_path)
    return True


def _resolve_targets(
    vault: Path,
    result: OperationResult,
    paths: list[str] | None,
    start: Path | None,
) -> list[Path]:
    """Materialize the notes a bulk command works on, before anything is mutated."""
    if paths is None:
        return iter_vault_files(vault, start=start)

    files = []
    for path in paths:
        file_path, error = resolve_file(path, base_path=vault)
        if error:
            result.skip(path, error)
        else:
            files.append(file_path)
    return files


def _finish(result: OperationResult, vault: Path, cache_dir: Path | None, rebuild: bool) -> OperationResult:
    if rebuild:
        rebuild_index(vault, cache_dir)
    return result


# =============================================================================
# Bulk rename
# =============================================================================


def renamed_tag(tag: TagPath, old: TagPath, new: TagPath, recursive: bool) -> TagPath | None:
    """The tag after renaming ``old`` to ``new``, or None if it is unaffected.

    When ``new`` nests under ``old`` (``a`` -> ``a/b``), tags already under
    ``new`` count as renamed, so repeating the rename changes nothing.
    """
    if tag == old:
        return new
    if recursive and tag.starts_with(old):
        if new.starts_with(old) and tag.starts_with(new):
            return None
        return tag.replace_prefix(old, new)
    return None


def plan_rename(
    old,
    new,
    recursive: bool = False,
    vault_path: Path | None = None,
) -> list[tuple[str, TagPath, TagPath]]:
    """List (note, current tag, renamed tag) for every note a rename would touch."""
    old_tag, new_tag = normalize_tag(old), normalize_tag(new)
    if old_tag == new_tag:
        return []
    plan = []
    for note in scan_vault(vault_path).notes:
        for tag in note.tags:
            replacement = renamed_tag(tag, old_tag, new_tag, recursive)
            if replacement is not None:
                plan.append((note.path, tag, replacement))
    return plan


def rename_tag(
    old,
    new,
    *,
    recursive: bool = False,
    vault_path: Path | None = None,
    cache_dir: Path | None = None,
    backups: bool | None = None,
    rebuild: bool = True,
) -> OperationResult:
    """Rename a frontmatter tag across the vault.

    Scoped renames touch notes whose tag is exactly ``old``; recursive renames
    also rewrite descendants, keeping their suffix segments. Notes already
    tagged ``new`` simply end up sharing it with the renamed ones.

    Raises:
        InvalidTag: If ``old`` or ``new`` is not a valid tag.
        VaultUnreachable: If the vault root cannot be used.
    """
    old_tag, new_tag = normalize_tag(old), normalize_tag(new)
    vault = ensure_vault(vault_path if vault_path is not None else VAULT_PATH)
    do_backup = backups if backups is not None else BACKUPS_ENABLED
    result = OperationResult("rename")

    if old_tag == new_tag:
        return result

    for file_path in iter_vault_files(vault):
        rel_path = get_relative_path(file_path, vault)
        try:
            note = read_note(file_path)
        except NoteParseError as e:
            result.skip(rel_path, e.reason)
            continue

        key = frontmatter_tag_key(note.frontmatter)
        if key is None:
            continue
        current = try_normalize(note.frontmatter[key])
        if current is None:
            continue
        replacement = renamed_tag(current, old_tag, new_tag, recursive)
        if replacement is None:
            continue

        note.frontmatter[key] = [str(replacement)]
        _commit(note, rel_path, vault, do_backup, result)

    return _finish(result, vault, cache_dir, rebuild)


# =============================================================================
# Retag
# =============================================================================


def derive_dir_tag(file_path: Path, vault_path: Path | None = None, tag_root: str | None = None) -> TagPath | None:
    """Dir-tag for a note from its directory relative to the tag root.

    Returns None for notes placed directly in the tag root.

    Raises:
        ValueError: If the note is outside the tag root.
    """
    vault = vault_path if vault_path is not None else VAULT_PATH
    root = (vault / (tag_root if tag_root is not None else TAG_ROOT)).resolve()
    relative_dir = file_path.resolve().parent.relative_to(root)
    return tag_from_directory(relative_dir.as_posix())


def _append_alias(note: Note, entry: str) -> bool:
    """Append an alias entry. Returns False if ``aliases`` is not a list."""
    aliases = note.frontmatter.get("aliases")
    if aliases is None:
        aliases = []
    elif isinstance(aliases, str):
        aliases = [aliases]
    elif not isinstance(aliases, list):
        return False
    else:
        aliases = list(aliases)

    if entry not in aliases:
        aliases.append(entry)
    note.frontmatter["aliases"] = aliases
    return True


def set_dir_tag_marker(body: str, tag: TagPath, newline: str = "\n") -> str:
    """Write ``{ #tag }`` as the first body line, replacing an existing marker."""
    marker = format_dir_tag_marker(tag)
    line_idx, line = first_body_line(body)
    if line_idx is not None and parse_dir_tag_marker(line) is not None:
        lines = body.split("\n")
        lines[line_idx] = marker + ("\r" if line.endswith("\r") else "")
        return "\n".join(lines)
    if body.startswith(("\n", "\r\n")) or not body:
        return marker + newline + body
    return marker + newline * 2 + body


def _retag_file(
    file_path: Path,
    vault: Path,
    tag_root: str,
    do_backup: bool,
    record_alias: bool,
    today: str,
    result: OperationResult,
) -> None:
    rel_path = get_relative_path(file_path, vault)
    try:
        new_tag = derive_dir_tag(file_path, vault, tag_root)
    except ValueError:
        result.skip(rel_path, f"outside tag root '{tag_root}'")
        return
    if new_tag is None:
        result.skip(rel_path, "directly in tag root; no dir-tag to derive")
        return

    try:
        note = read_note(file_path)
    except NoteParseError as e:
        result.skip(rel_path, e.reason)
        return

    old_tag = extract_dir_tag(note.body)
    if old_tag == new_tag:
        result.unchanged.append(rel_path)
        return

    if old_tag is not None and record_alias:
        if not _append_alias(note, f"{today} {old_tag}"):
            result.skip(rel_path, "'aliases' is not a list")
            return

    note.body = set_dir_tag_marker(note.body, new_tag, note.newline)
    _commit(note, rel_path, vault, do_backup, result)


def retag_notes(
    paths: list[str] | None = None,
    folder: Path | None = None,
    *,
    vault_path: Path | None = None,
    tag_root: str | None = None,
    cache_dir: Path | None = None,
    backups: bool | None = None,
    aliases: bool | None = None,
    today: date | None = None,
    rebuild: bool = True,
) -> OperationResult:
    """Recompute dir-tag markers from note locations.

    Targets explicit ``paths``, every note under ``folder``, or the whole
    tag root when neither is given. A changed marker is rewritten and the
    previous dir-tag is appended to ``aliases`` as ``"<date> <old/tag>"``.

    Raises:
        VaultUnreachable: If the vault root cannot be used.
    """
    vault = ensure_vault(vault_path if vault_path is not None else VAULT_PATH)
    root_name = tag_root if tag_root is not None else TAG_ROOT
    do_backup = backups if backups is not None else BACKUPS_ENABLED
    record_alias = aliases if aliases is not None else ALIASES_ENABLED
    stamp = (today or datetime.now().date()).strftime(DATE_FORMAT)
    result = OperationResult("retag")

    start = folder
    if paths is None and folder is None:
        start = vault / root_name
        if not start.is_dir():
            result.skip(root_name, "tag root not found")
            return result

    for file_path in _resolve_targets(vault, result, paths, start):
        _retag_file(file_path, vault, root_name, do_backup, record_alias, stamp, result)

    return _finish(result, vault, cache_dir, rebuild)


def retag_note(path: str, **kwargs) -> OperationResult:
    """Retag a single note (see retag_notes)."""
    return retag_notes([path], **kwargs)


# =============================================================================
# Redir
# =============================================================================


def target_directory(tag: TagPath, vault_path: Path | None = None, tag_root: str | None = None) -> Path:
    """Vault directory corresponding to a tag under the tag root.

    Raises:
        ValueError: If the tag would resolve outside the tag root.
    """
    vault = vault_path if vault_path is not None else VAULT_PATH
    root = (vault / (tag_root if tag_root is not None else TAG_ROOT)).resolve()
    target = root.joinpath(*tag.parts).resolve()
    if target == root or not target.is_relative_to(root):
        raise ValueError(f"Tag '{tag}' does not map to a directory under the tag root")
    return target


def _redir_file(
    file_path: Path,
    vault: Path,
    tag_root: str,
    do_backup: bool,
    confirm: ConfirmDirectory | None,
    result: OperationResult,
) -> None:
    rel_path = get_relative_path(file_path, vault)
    try:
        note = read_note(file_path)
    except NoteParseError as e:
        result.skip(rel_path, e.reason)
        return

    tag = extract_dir_tag(note.body)
    if tag is None:
        fm_tags = extract_frontmatter_tags(note.frontmatter)
        tag = fm_tags[0] if fm_tags else None
    if tag is None:
        result.skip(rel_path, "no dir-tag marker or frontmatter tag")
        return

    try:
        dest_dir = target_directory(tag, vault, tag_root)
    except ValueError as e:
        result.skip(rel_path, str(e))
        return

    if file_path.resolve().parent == dest_dir:
        result.unchanged.append(rel_path)
        return

    dest_rel = dest_dir.relative_to(vault).as_posix()
    if not dest_dir.is_dir():
        if confirm is None or not confirm(dest_dir):
            result.skip(rel_path, f"cancelled: directory '{dest_rel}' does not exist")
            return

    dest_path = dest_dir / file_path.name
    if dest_path.exists():
        result.skip(rel_path, f"destination already exists: {dest_rel}/{file_path.name}")
        return

    if do_backup:
        try:
            backup_note(file_path, vault)
        except BackupFailed as e:
            result.skip(rel_path, f"backup failed: {e.reason}")
            return

    success, message = do_move_file(file_path, dest_path)
    if not success:
        result.skip(rel_path, message)
        return
    logger.info("redir moved %s to %s", rel_path, dest_rel)
    result.succeeded.append(f"{rel_path} -> {dest_rel}/{file_path.name}")


def redir_notes(
    paths: list[str] | None = None,
    folder: Path | None = None,
    *,
    confirm: ConfirmDirectory | None = None,
    vault_path: Path | None = None,
    tag_root: str | None = None,
    cache_dir: Path | None = None,
    backups: bool | None = None,
    rebuild: bool = True,
) -> OperationResult:
    """Move notes into the tag-root directory their dir-tag names.

    ``confirm`` is asked before a missing target directory is created; when
    it is None or declines, that note is skipped and the rest continue.

    Raises:
        VaultUnreachable: If the vault root cannot be used.
    """
    vault = ensure_vault(vault_path if vault_path is not None else VAULT_PATH)
    root_name = tag_root if tag_root is not None else TAG_ROOT
    do_backup = backups if backups is not None else BACKUPS_ENABLED
    result = OperationResult("redir")

    for file_path in _resolve_targets(vault, result, paths, folder):
        _redir_file(file_path, vault, root_name, do_backup, confirm, result)

    return _finish(result, vault, cache_dir, rebuild)


def redir_note(path: str, confirm: ConfirmDirectory | None = None, **kwargs) -> OperationResult:
    """Redir a single note (see redir_notes)."""
    return redir_notes([path], confirm=confirm, **kwargs)


def missing_redir_directories(
    paths: list[str] | None = None,
    folder: Path | None = None,
    *,
    vault_path: Path | None = None,
    tag_root: str | None = None,
) -> list[str]:
    """Vault-relative target directories a redir would have to create."""
    vault = ensure_vault(vault_path if vault_path is not None else VAULT_PATH)
    missing = []
    for file_path in _resolve_targets(vault, OperationResult("redir-preview"), paths, folder):
        try:
            note = read_note(file_path)
        except NoteParseError:
            continue
        tag = extract_dir_tag(note.body) or next(iter(extract_frontmatter_tags(note.frontmatter)), None)
        if tag is None:
            continue
        try:
            dest_dir = target_directory(tag, vault, tag_root)
        except ValueError:
            continue
        dest_rel = dest_dir.relative_to(vault).as_posix()
        if not dest_dir.is_dir() and dest_rel not in missing:
            missing.append(dest_rel)
    return missing


# =============================================================================
# Migrate
# =============================================================================


def plan_migration(vault_path: Path | None = None) -> list[tuple[str, object, str]]:
    """List (note, raw value, canonical tag) for notes whose tag list is not canonical."""
    vault = ensure_vault(vault_path if vault_path is not None else VAULT_PATH)
    plan = []
    for file_path in iter_vault_files(vault):
        try:
            note = read_note(file_path)
        except NoteParseError:
            continue
        key = frontmatter_tag_key(note.frontmatter)
        if key is None:
            continue
        raw = note.frontmatter[key]
        tag = try_normalize(raw)
        if tag is not None and raw != [str(tag)]:
            plan.append((get_relative_path(file_path, vault), raw, str(tag)))
    return plan


def migrate_tags(
    *,
    vault_path: Path | None = None,
    cache_dir: Path | None = None,
    backups: bool | None = None,
    rebuild: bool = True,
) -> OperationResult:
    """Rewrite array, mixed, and scalar tag values into canonical ``[a/b/c]`` form."""
    vault = ensure_vault(vault_path if vault_path is not None else VAULT_PATH)
    do_backup = backups if backups is not None else BACKUPS_ENABLED
    result = OperationResult("migrate")

    for file_path in iter_vault_files(vault):
        rel_path = get_relative_path(file_path, vault)
        try:
            note = read_note(file_path)
        except NoteParseError as e:
            result.skip(rel_path, e.reason)
            continue

        key = frontmatter_tag_key(note.frontmatter)
        if key is None:
            continue
        tag = try_normalize(note.frontmatter[key])
        if tag is None:
            continue
        canonical = [str(tag)]
        if note.frontmatter[key] == canonical:
            result.unchanged.append(rel_path)
            continue

        note.frontmatter[key] = canonical
        _commit(note, rel_path, vault, do_backup, result)

    return _finish(result, vault, cache_dir, rebuild)
