#!/usr/bin/env python3
"""Interactive console menu for browsing and reorganizing vault tags."""

import logging
import sys
from pathlib import Path
from typing import Callable

# Ensure src/ is on the import path when run from project root
sys.path.insert(0, str(Path(__file__).parent))

from config import VAULT_PATH, setup_logging
from services import engine
from services.errors import TagError
from services.prompts import ConsolePrompt, Prompt
from services.selector import TagSelector
from services.tag_index import load_index, rebuild_index
from services.tag_paths import TagPath, try_normalize
from services.vault import format_batch_result, resolve_dir

logger = logging.getLogger(__name__)


class TagMenu:
    """Menu loop over the tag engine, driven by a Prompt."""

    def __init__(
        self,
        prompt: Prompt,
        vault_path: Path | None = None,
        cache_dir: Path | None = None,
        output: Callable[[str], None] = print,
    ):
        self.prompt = prompt
        self.vault_path = vault_path if vault_path is not None else VAULT_PATH
        self.cache_dir = cache_dir
        self.output = output
        self.actions = [
            ("List tags", self.list_tags),
            ("Find notes by tag", self.find_notes),
            ("Rename tag", self.rename_tag),
            ("Retag folder", self.retag_folder),
            ("Move notes to their tag folder", self.redir_folder),
            ("Migrate tag lists", self.migrate),
            ("Rebuild tag index", self.rebuild),
        ]

    def run(self) -> None:
        labels = [label for label, _ in self.actions] + ["Quit"]
        while True:
            idx = self.prompt.choose("Vault tags", labels)
            if idx is None or idx == len(self.actions):
                return
            label, action = self.actions[idx]
            try:
                action()
            except TagError as e:
                logger.error("%s failed: %s", label, e)
                self.output(f"Error: {e}")

    def _selector(self) -> TagSelector:
        return TagSelector(load_index(self.vault_path, self.cache_dir))

    def _pick_tag(self) -> tuple[TagSelector, TagPath | None]:
        selector = self._selector()
        query = self.prompt.ask("Search tags (empty for all)") or ""
        return selector, selector.choose(self.prompt, query)

    def list_tags(self) -> None:
        selector = self._selector()
        query = self.prompt.ask("Filter (empty for all)") or ""
        matches = selector.matches(query)
        if not matches:
            self.output(f"No tags match '{query}'")
        for match in matches:
            self.output(selector.display(match.path))

    def find_notes(self) -> None:
        selector, tag = self._pick_tag()
        if tag is None:
            return
        notes = sorted(selector.index.notes_under(tag))
        self.output(f"{len(notes)} notes under {tag}:")
        for note in notes:
            self.output(f"  {note}")

    def rename_tag(self) -> None:
        selector, old = self._pick_tag()
        if old is None:
            return
        new = try_normalize(self.prompt.ask(f"New name for '{old}'"))
        if new is None:
            self.output("Cancelled: no new name given")
            return

        recursive = False
        if selector.children(old):
            scope = self.prompt.choose(
                f"'{old}' has subtags",
                [f"Rename only '{old}'", f"Rename '{old}' and all its subtags"],
            )
            if scope is None:
                return
            recursive = scope == 1

        plan = engine.plan_rename(old, new, recursive, self.vault_path)
        if not plan:
            self.output(f"No notes to rename from '{old}' to '{new}'")
            return
        for path, current, replacement in plan:
            self.output(f"  {path}: {current} -> {replacement}")
        if not self.prompt.confirm(f"Rename tags in {len(plan)} notes?"):
            self.output("Cancelled")
            return

        result = engine.rename_tag(
            old, new, recursive=recursive, vault_path=self.vault_path, cache_dir=self.cache_dir
        )
        self.output(format_batch_result(result))

    def _ask_folder(self, message: str) -> tuple[Path | None, bool]:
        """Ask for a vault folder. Returns (folder, ok); an empty answer gives (None, True)."""
        answer = self.prompt.ask(message)
        if not answer:
            return None, True
        folder, error = resolve_dir(answer, base_path=self.vault_path)
        if error:
            self.output(error)
            return None, False
        return folder, True

    def retag_folder(self) -> None:
        folder, valid = self._ask_folder("Folder to retag (empty for the whole tag root)")
        if not valid:
            return
        target = folder.relative_to(self.vault_path.resolve()).as_posix() if folder else "the tag root"
        if not self.prompt.confirm(f"Retag every note under {target}?"):
            self.output("Cancelled")
            return
        result = engine.retag_notes(folder=folder, vault_path=self.vault_path, cache_dir=self.cache_dir)
        self.output(format_batch_result(result))

    def redir_folder(self) -> None:
        folder, valid = self._ask_folder("Folder whose notes should be moved")
        if not valid or folder is None:
            return
        result = engine.redir_notes(
            folder=folder,
            confirm=lambda directory: self.prompt.confirm(f"Create folder {directory}?"),
            vault_path=self.vault_path,
            cache_dir=self.cache_dir,
        )
        self.output(format_batch_result(result))

    def migrate(self) -> None:
        plan = engine.plan_migration(self.vault_path)
        if not plan:
            self.output("All tags are already in canonical form")
            return
        for path, raw, canonical in plan:
            self.output(f"  {path}: {raw} -> [{canonical}]")
        if not self.prompt.confirm(f"Rewrite tag lists in {len(plan)} notes?"):
            self.output("Cancelled")
            return
        result = engine.migrate_tags(vault_path=self.vault_path, cache_dir=self.cache_dir)
        self.output(format_batch_result(result))

    def rebuild(self) -> None:
        index = rebuild_index(self.vault_path, self.cache_dir)
        self.output(f"Rebuilt tag index: {len(index.all_paths())} tags, {len(index.skipped)} skipped notes")


def main() -> None:
    setup_logging("tag_menu", level=logging.WARNING)
    TagMenu(ConsolePrompt()).run()


if __name__ == "__main__":
    main()
