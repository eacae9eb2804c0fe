"""Tag index - tag tree plus file membership, persisted as a per-vault snapshot.

The index is a derived view of the vault. It is never patched in place: every
rebuild scans the vault, builds a fresh structure, and replaces the snapshot
file atomically.
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ValidationError

from config import TAG_CACHE_DIR, VAULT_PATH
from services.errors import CacheCorrupt, CacheUnwritable, InvalidTag
from services.scanner import ScanResult, scan_vault
from services.tag_paths import TagPath
from services.vault import SkippedNote, ensure_vault, write_text_atomic

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


# =============================================================================
# Tree
# =============================================================================


@dataclass
class TagNode:
    """One tag-path prefix: child segments and the notes declaring exactly this path."""

    name: str
    children: dict[str, "TagNode"] = field(default_factory=dict)
    notes: set[str] = field(default_factory=set)

    def child(self, name: str) -> "TagNode":
        node = self.children.get(name)
        if node is None:
            node = TagNode(name)
            self.children[name] = node
        return node


class TagIndex:
    """In-memory tag tree with per-path membership."""

    def __init__(self, vault: str, built_at: float | None = None, skipped: list[SkippedNote] | None = None):
        self.vault = vault
        self.built_at = built_at if built_at is not None else time.time()
        self.skipped = list(skipped or [])
        self.root = TagNode("")
        self._subtrees: dict[tuple[str, ...], frozenset[str]] | None = None

    def add(self, tag: TagPath, note: str) -> None:
        """Insert ``tag`` and its prefixes; register ``note`` on the full path only."""
        node = self.root
        for part in tag.parts:
            node = node.child(part)
        node.notes.add(note)
        self._subtrees = None

    def _subtree_members(self) -> dict[tuple[str, ...], frozenset[str]]:
        """Notes under every path, computed in one pass and kept until the next add."""
        if self._subtrees is None:
            subtrees = {}

            def walk(node: TagNode, parts: tuple[str, ...]) -> set[str]:
                found = set(node.notes)
                for name, child in node.children.items():
                    found |= walk(child, parts + (name,))
                subtrees[parts] = frozenset(found)
                return found

            walk(self.root, ())
            self._subtrees = subtrees
        return self._subtrees

    def _node(self, tag: TagPath | None) -> TagNode | None:
        node = self.root
        if tag is None:
            return node
        for part in tag.parts:
            node = node.children.get(part)
            if node is None:
                return None
        return node

    def __contains__(self, tag: TagPath) -> bool:
        return self._node(tag) is not None

    def lookup(self, tag: TagPath) -> set[str]:
        """Notes whose tags include exactly ``tag``."""
        node = self._node(tag)
        return set(node.notes) if node else set()

    def notes_under(self, tag: TagPath) -> set[str]:
        """Notes tagged ``tag`` or any of its descendants."""
        return set(self._subtree_members().get(tag.parts, ()))

    def count(self, tag: TagPath) -> int:
        return len(self.lookup(tag))

    def subtree_count(self, tag: TagPath) -> int:
        return len(self._subtree_members().get(tag.parts, ()))

    def children(self, tag: TagPath | None = None) -> list[tuple[str, int]]:
        """Child segments of ``tag`` (root when None) with subtree note counts."""
        node = self._node(tag)
        if node is None:
            return []
        prefix = tag.parts if tag is not None else ()
        subtrees = self._subtree_members()
        return [(name, len(subtrees[prefix + (name,)])) for name in sorted(node.children)]

    def all_paths(self) -> list[TagPath]:
        """Every tag path, pre-order with sorted children: parents before descendants."""
        paths = []

        def walk(node: TagNode, prefix: tuple[str, ...]) -> None:
            for name in sorted(node.children):
                parts = prefix + (name,)
                paths.append(TagPath(parts))
                walk(node.children[name], parts)

        walk(self.root, ())
        return paths

    def members(self) -> dict[str, list[str]]:
        """Slash path -> sorted notes, for every path with direct members."""
        result = {}
        for tag in self.all_paths():
            notes = self.lookup(tag)
            if notes:
                result[str(tag)] = sorted(notes)
        return result

    def tag_counts(self) -> dict[str, int]:
        return {tag: len(notes) for tag, notes in self.members().items()}

    def is_empty(self) -> bool:
        return not self.root.children


def build_index(scan: ScanResult, vault: str) -> TagIndex:
    """Build a fresh index from scanner output."""
    index = TagIndex(vault, skipped=scan.skipped)
    for note in scan.notes:
        for tag in note.all_tags:
            index.add(tag, note.path)
    return index


# =============================================================================
# Snapshot
# =============================================================================


class TagTreeModel(BaseModel):
    name: str
    children: list["TagTreeModel"] = []


TagTreeModel.model_rebuild()


class TagEntryModel(BaseModel):
    notes: list[str]
    count: int


class SkippedModel(BaseModel):
    path: str
    reason: str


class TagIndexSnapshot(BaseModel):
    """On-disk form of a TagIndex."""

    version: int = SNAPSHOT_VERSION
    vault: str
    built_at: float
    tree: TagTreeModel
    tags: dict[str, TagEntryModel]
    skipped: list[SkippedModel] = []


def _tree_model(node: TagNode) -> TagTreeModel:
    return TagTreeModel(
        name=node.name,
        children=[_tree_model(node.children[name]) for name in sorted(node.children)],
    )


def to_snapshot(index: TagIndex) -> TagIndexSnapshot:
    return TagIndexSnapshot(
        vault=index.vault,
        built_at=index.built_at,
        tree=_tree_model(index.root),
        tags={
            tag: TagEntryModel(notes=notes, count=len(notes))
            for tag, notes in index.members().items()
        },
        skipped=[SkippedModel(path=s.path, reason=s.reason) for s in index.skipped],
    )


def from_snapshot(snapshot: TagIndexSnapshot) -> TagIndex:
    """Rebuild a TagIndex from a snapshot, checking tree/membership consistency.

    Raises:
        CacheCorrupt: If the snapshot is internally inconsistent.
    """
    if snapshot.version != SNAPSHOT_VERSION:
        raise CacheCorrupt(f"Unsupported snapshot version {snapshot.version}")

    index = TagIndex(
        snapshot.vault,
        built_at=snapshot.built_at,
        skipped=[SkippedNote(s.path, s.reason) for s in snapshot.skipped],
    )

    def graft(model: TagTreeModel, node: TagNode) -> None:
        for child_model in model.children:
            if not child_model.name or "/" in child_model.name:
                raise CacheCorrupt(f"Invalid tree segment in snapshot: {child_model.name!r}")
            graft(child_model, node.child(child_model.name))

    graft(snapshot.tree, index.root)

    for key, entry in snapshot.tags.items():
        try:
            tag = TagPath.from_string(key)
        except InvalidTag as e:
            raise CacheCorrupt(f"Invalid tag in snapshot: {key!r}") from e
        node = index._node(tag)
        if node is None:
            raise CacheCorrupt(f"Tag {key!r} missing from snapshot tree")
        if entry.count != len(entry.notes):
            raise CacheCorrupt(f"Count mismatch for tag {key!r}")
        node.notes.update(entry.notes)
    return index


def vault_identity(vault_path: Path) -> str:
    return str(vault_path.resolve())


def cache_path_for(vault_path: Path | None = None, cache_dir: Path | None = None) -> Path:
    """Snapshot location for a vault inside the per-user cache directory."""
    vault = vault_path if vault_path is not None else VAULT_PATH
    directory = cache_dir if cache_dir is not None else TAG_CACHE_DIR
    digest = hashlib.sha1(vault_identity(vault).encode("utf-8")).hexdigest()[:12]
    return directory / f"tags_{digest}.json"


def read_snapshot(cache_path: Path) -> TagIndex:
    """Load an index snapshot.

    Raises:
        FileNotFoundError: If the snapshot does not exist.
        CacheCorrupt: If it cannot be read or fails validation.
    """
    try:
        raw = cache_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except (OSError, UnicodeDecodeError) as e:
        raise CacheCorrupt(f"Cannot read tag cache {cache_path}: {e}") from e

    try:
        snapshot = TagIndexSnapshot.model_validate_json(raw)
    except ValidationError as e:
        raise CacheCorrupt(f"Invalid tag cache {cache_path}: {e.error_count()} errors") from e
    return from_snapshot(snapshot)


def save_index(index: TagIndex, cache_dir: Path | None = None) -> Path:
    """Persist the index, replacing any previous snapshot atomically.

    Raises:
        CacheUnwritable: If the cache directory cannot be written.
    """
    cache_path = cache_path_for(Path(index.vault), cache_dir)
    payload = to_snapshot(index).model_dump_json(indent=2)
    try:
        write_text_atomic(cache_path, payload)
    except OSError as e:
        raise CacheUnwritable(f"Cannot write tag cache to {cache_path.parent}: {e}") from e
    logger.debug("Saved tag cache %s", cache_path)
    return cache_path


def invalidate_index(vault_path: Path | None = None, cache_dir: Path | None = None) -> bool:
    """Delete the snapshot. Returns True if one existed."""
    cache_path = cache_path_for(vault_path, cache_dir)
    try:
        cache_path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise CacheUnwritable(f"Cannot remove tag cache {cache_path}: {e}") from e
    logger.info("Invalidated tag cache %s", cache_path)
    return True


def rebuild_index(vault_path: Path | None = None, cache_dir: Path | None = None) -> TagIndex:
    """Scan the vault, build a fresh index, and persist it.

    Raises:
        VaultUnreachable: If the vault root cannot be used.
        CacheUnwritable: If the snapshot cannot be written.
    """
    vault = ensure_vault(vault_path if vault_path is not None else VAULT_PATH)
    index = build_index(scan_vault(vault), vault_identity(vault))
    save_index(index, cache_dir)
    logger.info(
        "Rebuilt tag cache for %s: %s tags, %s skipped notes",
        vault, len(index.all_paths()), len(index.skipped),
    )
    return index


def load_index(
    vault_path: Path | None = None,
    cache_dir: Path | None = None,
    rebuild: bool = False,
) -> TagIndex:
    """Load the vault's index, rebuilding when missing, corrupt, stale, or requested."""
    vault = ensure_vault(vault_path if vault_path is not None else VAULT_PATH)
    if rebuild:
        return rebuild_index(vault, cache_dir)

    cache_path = cache_path_for(vault, cache_dir)
    try:
        index = read_snapshot(cache_path)
    except FileNotFoundError:
        logger.info("No tag cache at %s; building", cache_path)
        return rebuild_index(vault, cache_dir)
    except CacheCorrupt as e:
        logger.warning("%s; rebuilding", e)
        return rebuild_index(vault, cache_dir)

    if index.vault != vault_identity(vault):
        logger.warning("Tag cache %s belongs to %s; rebuilding", cache_path, index.vault)
        return rebuild_index(vault, cache_dir)
    return index
