"""MCP tool implementations organized by category."""

from tools.retagging import (
    migrate_tags,
    redir_notes,
    rename_tag,
    retag_notes,
)
from tools.tags import (
    find_notes_by_tag,
    get_tag_children,
    list_tags,
    rebuild_tag_index,
)

__all__ = [
    # retagging
    "migrate_tags",
    "redir_notes",
    "rename_tag",
    "retag_notes",
    # tags
    "find_notes_by_tag",
    "get_tag_children",
    "list_tags",
    "rebuild_tag_index",
]
