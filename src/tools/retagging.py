"""Tag mutation tools - rename, retag, redir, migrate."""

from typing import Callable

from config import BATCH_CONFIRM_THRESHOLD
from services import engine
from services.errors import CacheUnwritable, VaultUnreachable
from services.vault import (
    OperationResult,
    consume_preview,
    err,
    format_batch_result,
    ok,
    resolve_dir,
    store_preview,
)
from tools._validation import validate_tag


def _confirmation_preview(description: str, count: int, noun: str, **details) -> str:
    """Return a confirmation preview for a batch operation."""
    return ok(
        "Describe this pending change to the user. They will confirm or cancel, then call again with confirm=true.",
        confirmation_required=True,
        preview_message=f"This will {description} ({count} {noun}).",
        **details,
    )


def _needs_confirmation(key: tuple, confirm: bool) -> bool:
    """Check confirmation gate. Returns True if preview is needed."""
    if confirm and consume_preview(key):
        return False
    store_preview(key)
    return True


def _run(operation: Callable[[], OperationResult]) -> str:
    try:
        result = operation()
    except VaultUnreachable as e:
        return err(str(e))
    except CacheUnwritable as e:
        return err(f"Notes were processed but the tag index could not be saved: {e}")
    return ok(format_batch_result(result), **result.to_dict())


def _resolve_scope(paths: list[str] | None, folder: str):
    """Validate paths/folder targeting. Returns (folder_path, error)."""
    if paths and folder:
        return None, "Provide either paths or folder, not both"
    if not folder:
        return None, None
    return resolve_dir(folder)


def _raw_for_display(raw):
    if isinstance(raw, list):
        return [str(item) for item in raw]
    return str(raw)


def rename_tag(
    old_tag: str,
    new_tag: str,
    recursive: bool = False,
    confirm: bool = False,
) -> str:
    """Rename a tag in the frontmatter of every note that carries it.

    Args:
        old_tag: Existing tag path (e.g. "proyecto/cliente/acme").
        new_tag: Replacement tag path (e.g. "work/client/acme").
        recursive: Also rename subtags, keeping their trailing segments
            (proyecto/cliente/acme/facturas -> work/client/acme/facturas).
        confirm: Must be true to execute when more than 5 notes are affected.

    Returns:
        Summary of renamed and skipped notes, or a confirmation preview.
    """
    old, old_err = validate_tag(old_tag, "old_tag")
    if old_err:
        return err(old_err)
    new, new_err = validate_tag(new_tag, "new_tag")
    if new_err:
        return err(new_err)

    try:
        plan = engine.plan_rename(old, new, recursive)
    except VaultUnreachable as e:
        return err(str(e))

    if not plan:
        return ok(f"No notes to rename from '{old}' to '{new}'", succeeded=[], unchanged=[], skipped=[])

    paths = sorted({path for path, _, _ in plan})
    if len(paths) > BATCH_CONFIRM_THRESHOLD:
        key = ("rename_tag", str(old), str(new), recursive, tuple(paths))
        if _needs_confirmation(key, confirm):
            scope = "and its subtags " if recursive else ""
            return _confirmation_preview(
                f"rename tag '{old}' {scope}to '{new}'",
                len(paths),
                "notes",
                files=paths,
                changes=[{"path": path, "from": str(cur), "to": str(rep)} for path, cur, rep in plan],
            )

    return _run(lambda: engine.rename_tag(old, new, recursive=recursive))


def retag_notes(
    paths: list[str] | None = None,
    folder: str = "",
    record_alias: bool = True,
    backup: bool = True,
) -> str:
    """Rewrite each note's dir-tag marker from its folder under the tag root.

    The marker is the first body line, e.g. "{ #proyecto/cliente }". When a
    marker changes, the old tag is kept in aliases as "<date> <old/tag>".

    Args:
        paths: Notes to retag (relative to vault or absolute).
        folder: Retag every note under this folder instead. When neither
            paths nor folder is given, the whole tag root is retagged.
        record_alias: Append the previous dir-tag to aliases.
        backup: Back up each note before rewriting it.

    Returns:
        Summary of retagged, unchanged, and skipped notes.
    """
    folder_path, scope_err = _resolve_scope(paths, folder)
    if scope_err:
        return err(scope_err)

    return _run(lambda: engine.retag_notes(
        paths or None, folder_path, aliases=record_alias, backups=backup,
    ))


def redir_notes(
    paths: list[str] | None = None,
    folder: str = "",
    confirm: bool = False,
    backup: bool = True,
) -> str:
    """Move notes into the tag-root folder named by their dir-tag (or frontmatter tag).

    Args:
        paths: Notes to move (relative to vault or absolute).
        folder: Move every note under this folder instead.
        confirm: Must be true to create target folders that do not exist yet.
            A first call without it returns the folders that would be created.
        backup: Back up each note before moving it.

    Returns:
        Summary of moved, unchanged, and skipped notes, or a confirmation preview.
    """
    if not paths and not folder:
        return err("Provide paths or folder")
    folder_path, scope_err = _resolve_scope(paths, folder)
    if scope_err:
        return err(scope_err)

    try:
        missing = engine.missing_redir_directories(paths or None, folder_path)
    except VaultUnreachable as e:
        return err(str(e))

    create_dirs = False
    if missing:
        key = ("redir_notes", tuple(sorted(paths or [])), folder, tuple(missing))
        if _needs_confirmation(key, confirm):
            return _confirmation_preview(
                "create new folders and move notes into them",
                len(missing),
                "new folders",
                folders=missing,
            )
        create_dirs = True

    return _run(lambda: engine.redir_notes(
        paths or None, folder_path, confirm=lambda _dir: create_dirs, backups=backup,
    ))


def migrate_tags(confirm: bool = False) -> str:
    """Rewrite tag lists into the canonical single slash-path form.

    ``tags: [proyecto, cliente]`` becomes ``tags: [proyecto/cliente]``.
    Always returns a preview first; call again with confirm=true to apply.

    Args:
        confirm: Apply the previewed migration.

    Returns:
        Summary of migrated and skipped notes, or a confirmation preview.
    """
    try:
        plan = engine.plan_migration()
    except VaultUnreachable as e:
        return err(str(e))

    if not plan:
        return ok("All tags are already in canonical form", succeeded=[], unchanged=[], skipped=[])

    key = ("migrate_tags", tuple(path for path, _, _ in plan))
    if _needs_confirmation(key, confirm):
        return _confirmation_preview(
            "rewrite tag lists into single slash paths",
            len(plan),
            "notes",
            files=[path for path, _, _ in plan],
            changes=[
                {"path": path, "from": _raw_for_display(raw), "to": canonical}
                for path, raw, canonical in plan
            ],
        )

    return _run(engine.migrate_tags)
