"""Tag query tools - list, browse, find notes, rebuild the index."""

from config import LIST_DEFAULT_LIMIT, LIST_MAX_LIMIT
from services.errors import CacheUnwritable, VaultUnreachable
from services.selector import TagSelector
from services.tag_index import invalidate_index, load_index, rebuild_index
from services.vault import err, ok
from tools._validation import validate_pagination, validate_tag


def list_tags(
    query: str = "",
    limit: int = LIST_DEFAULT_LIMIT,
    offset: int = 0,
) -> str:
    """List vault tags, optionally fuzzy-filtered. Use this to discover which tags exist before renaming or searching.

    Args:
        query: Fuzzy filter (case-insensitive). Empty lists every tag.
            Parents are always listed before their subtags.
        limit: Maximum number of tags to return.
        offset: Number of tags to skip.

    Returns:
        JSON with results ({tag, count, subtree_count}) and total count.
    """
    validated_offset, validated_limit, pagination_error = validate_pagination(
        offset, limit, max_limit=LIST_MAX_LIMIT
    )
    if pagination_error:
        return err(pagination_error)

    try:
        index = load_index()
    except (VaultUnreachable, CacheUnwritable) as e:
        return err(str(e))

    matches = TagSelector(index).matches(query or "")
    if not matches:
        return ok(f"No tags match '{query}'", results=[], total=0)

    total = len(matches)
    page = [
        {
            "tag": str(match.path),
            "count": index.count(match.path),
            "subtree_count": index.subtree_count(match.path),
        }
        for match in matches[validated_offset:validated_offset + validated_limit]
    ]
    return ok(f"Found {total} tags", results=page, total=total)


def get_tag_children(tag: str = "") -> str:
    """List the direct subtags of a tag with the number of notes under each.

    Args:
        tag: Parent tag (e.g. "proyecto/cliente"). Empty for top-level tags.

    Returns:
        JSON with results ({tag, count}) where count includes all descendants.
    """
    parent = None
    if tag and tag.strip():
        parent, tag_err = validate_tag(tag)
        if tag_err:
            return err(tag_err)

    try:
        index = load_index()
    except (VaultUnreachable, CacheUnwritable) as e:
        return err(str(e))

    if parent is not None and parent not in index:
        return err(f"Tag not found: {parent}")

    results = [
        {"tag": str(parent.child(name) if parent else name), "count": count}
        for name, count in index.children(parent)
    ]
    return ok(results=results, total=len(results))


def find_notes_by_tag(
    tag: str,
    recursive: bool = False,
    limit: int = LIST_DEFAULT_LIMIT,
    offset: int = 0,
) -> str:
    """Find notes carrying a tag, either as a frontmatter tag or as a dir-tag.

    Args:
        tag: Tag path, slash-separated (e.g. "experta/ia-recuperos").
        recursive: Also include notes tagged with any subtag (default false).
        limit: Maximum number of notes to return.
        offset: Number of notes to skip.

    Returns:
        JSON with results (vault-relative note paths) and total count.
    """
    parsed, tag_err = validate_tag(tag)
    if tag_err:
        return err(tag_err)

    validated_offset, validated_limit, pagination_error = validate_pagination(
        offset, limit, max_limit=LIST_MAX_LIMIT
    )
    if pagination_error:
        return err(pagination_error)

    try:
        index = load_index()
    except (VaultUnreachable, CacheUnwritable) as e:
        return err(str(e))

    notes = sorted(index.notes_under(parsed) if recursive else index.lookup(parsed))
    if not notes:
        return ok(f"No notes tagged '{parsed}'", results=[], total=0)

    total = len(notes)
    page = notes[validated_offset:validated_offset + validated_limit]
    return ok(f"Found {total} notes tagged '{parsed}'", results=page, total=total)


def rebuild_tag_index(clear: bool = False) -> str:
    """Rescan the vault and rebuild the tag index.

    Args:
        clear: Delete the existing cache file before rebuilding.

    Returns:
        JSON summary with tag count and any notes skipped during the scan.
    """
    try:
        if clear:
            invalidate_index()
        index = rebuild_index()
    except (VaultUnreachable, CacheUnwritable) as e:
        return err(str(e))

    skipped = [{"path": s.path, "reason": s.reason} for s in index.skipped]
    total = len(index.all_paths())
    return ok(f"Rebuilt tag index: {total} tags, {len(skipped)} skipped notes", total=total, skipped=skipped)
