"""Fuzzy tag selector - read-only matching and interactive browsing over a TagIndex."""

import logging
from dataclasses import dataclass

from rapidfuzz import fuzz

from services.prompts import Prompt
from services.tag_index import TagIndex
from services.tag_paths import TagPath, try_normalize

logger = logging.getLogger(__name__)

USE_TAG_OPTION = "✓ Use {tag}"
CUSTOM_OPTION = "+ Custom tag"
BACK_OPTION = "← Back"


@dataclass(frozen=True)
class TagMatch:
    path: TagPath
    score: tuple


def _subsequence_span(query: str, text: str) -> int | None:
    """Length of the text window holding ``query`` as a subsequence, or None."""
    start = None
    pos = 0
    for ch in query:
        found = text.find(ch, pos)
        if found < 0:
            return None
        if start is None:
            start = found
        pos = found + 1
    return pos - (start or 0)


def match_score(query: str, text: str) -> tuple | None:
    """Score ``text`` against ``query`` case-insensitively; lower is better.

    Substring matches rank before subsequence matches. Within a kind, the
    rapidfuzz partial ratio and then the match position break ties.
    Returns None when the text does not match at all.
    """
    q = query.strip().lower()
    t = text.lower()
    if not q:
        return (0, 0, 0)

    position = t.find(q)
    if position >= 0:
        return (0, -fuzz.partial_ratio(q, t), position)

    span = _subsequence_span(q, t)
    if span is None:
        return None
    return (1, -fuzz.partial_ratio(q, t), span)


def fuzzy_filter(query: str, paths: list[TagPath]) -> list[TagMatch]:
    """Filter and order tag paths for a query.

    ``paths`` must be in parent-before-child order (as ``TagIndex.all_paths``).
    Matches are arranged as a forest, each nested under its nearest matching
    ancestor, so an ancestor is always listed before its descendants.
    Siblings are ordered by score, then by their position in ``paths``.
    """
    if not query.strip():
        return [TagMatch(path, (0, 0, 0)) for path in paths]

    scored = {}
    order = {}
    for i, path in enumerate(paths):
        score = match_score(query, str(path))
        if score is not None:
            scored[path] = score
            order[path] = i

    children: dict[TagPath | None, list[TagPath]] = {}
    for path in scored:
        parent = None
        for ancestor in reversed(path.prefixes()[:-1]):
            if ancestor in scored:
                parent = ancestor
                break
        children.setdefault(parent, []).append(path)

    result = []

    def emit(parent: TagPath | None) -> None:
        for path in sorted(children.get(parent, []), key=lambda p: (scored[p], order[p])):
            result.append(TagMatch(path, scored[path]))
            emit(path)

    emit(None)
    return result


class TagSelector:
    """Fuzzy lookup and hierarchical browsing over a tag index."""

    def __init__(self, index: TagIndex):
        self.index = index
        self._paths = index.all_paths()

    def matches(self, query: str) -> list[TagMatch]:
        return fuzzy_filter(query, self._paths)

    def display(self, tag: TagPath) -> str:
        return f"{tag} ({self.index.subtree_count(tag)})"

    def children(self, tag: TagPath | None = None) -> list[TagPath]:
        return [
            tag.child(name) if tag else TagPath((name,))
            for name, _ in self.index.children(tag)
        ]

    def pick(self, prompt: Prompt, query: str = "") -> TagPath | None:
        """Let the user pick one matching tag. Returns None if cancelled or nothing matches."""
        matches = self.matches(query)
        if not matches:
            logger.info("No tags match %r", query)
            return None
        title = f"Tags matching '{query}'" if query.strip() else "Tags"
        idx = prompt.choose(title, [self.display(m.path) for m in matches])
        if idx is None:
            return None
        return matches[idx].path

    def choose(self, prompt: Prompt, query: str = "") -> TagPath | None:
        """Pick a tag, then either commit it or descend into its children.

        The custom entry asks for new segments (``/`` allowed) to append below
        the current tag; the result may not exist in the index yet.
        """
        tag = self.pick(prompt, query)
        while tag is not None:
            kids = self.children(tag)
            if not kids:
                return tag

            options = [USE_TAG_OPTION.format(tag=tag)]
            options.extend(self.display(kid) for kid in kids)
            options.extend([CUSTOM_OPTION, BACK_OPTION])

            idx = prompt.choose(f"{tag}: use it or pick a subtag", options)
            if idx is None:
                return None
            if idx == 0:
                return tag
            if idx == len(options) - 1:
                tag = tag.parent if tag.parent is not None else self.pick(prompt, query)
                continue
            if idx == len(options) - 2:
                extra = try_normalize(prompt.ask(f"New tag under '{tag}' ('/' for sub-levels)"))
                if extra is not None:
                    return TagPath(tag.parts + extra.parts)
                continue
            tag = kids[idx - 1]
        return None
