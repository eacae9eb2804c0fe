"""Build or refresh the tag index cache for the vault."""

import logging
import sys
import time

from config import TAG_CACHE_DIR, VAULT_PATH, setup_logging
from services.errors import TagError
from services.tag_index import cache_path_for, invalidate_index, load_index

logger = logging.getLogger(__name__)


def index_tags(full: bool = False, clear: bool = False) -> int:
    """Load the tag index, rebuilding it when asked or when the cache is unusable.

    Returns:
        Process exit code.
    """
    start = time.time()
    try:
        if clear:
            invalidate_index()
        index = load_index(rebuild=full or clear)
    except TagError as e:
        logger.error("%s", e)
        return 1

    for skipped in index.skipped:
        logger.warning("Skipped %s: %s", skipped.path, skipped.reason)
    logger.info(
        "Done. %s tags across %s notes (%s skipped) in %.2fs. Cache: %s",
        len(index.all_paths()),
        len({note for notes in index.members().values() for note in notes}),
        len(index.skipped),
        time.time() - start,
        cache_path_for(),
    )
    return 0


if __name__ == "__main__":
    setup_logging("index_tags")
    clear_cache = "--clear" in sys.argv
    full_rebuild = "--full" in sys.argv
    if clear_cache:
        print("Deleting tag cache and rebuilding from scratch...")
    elif full_rebuild:
        print("Running full rebuild...")
    print(f"Vault: {VAULT_PATH}")
    print(f"Tag cache: {TAG_CACHE_DIR}")
    sys.exit(index_tags(full=full_rebuild, clear=clear_cache))
