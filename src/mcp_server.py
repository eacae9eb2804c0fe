#!/usr/bin/env python3
"""MCP server exposing vault tag tools."""

import logging
import sys
from pathlib import Path

# Ensure src/ is on the import path when run from project root
sys.path.insert(0, str(Path(__file__).parent))

from mcp.server.fastmcp import FastMCP

from config import VAULT_PATH, setup_logging
from tools import (
    find_notes_by_tag,
    get_tag_children,
    list_tags,
    migrate_tags,
    rebuild_tag_index,
    redir_notes,
    rename_tag,
    retag_notes,
)

logger = logging.getLogger(__name__)

mcp = FastMCP("vault-tags")

# Queries
mcp.tool()(list_tags)
mcp.tool()(get_tag_children)
mcp.tool()(find_notes_by_tag)
mcp.tool()(rebuild_tag_index)

# Mutations
mcp.tool()(rename_tag)
mcp.tool()(retag_notes)
mcp.tool()(redir_notes)
mcp.tool()(migrate_tags)


if __name__ == "__main__":
    setup_logging("mcp")
    logger.info("Serving tag tools for %s", VAULT_PATH)
    mcp.run()
