"""Pytest configuration and fixtures for vault-tags tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def temp_vault(tmp_path):
    """Create a temporary vault with a tag root, templates, and hidden dirs.

    Returns:
        Path to the temporary vault root.
    """
    vault = tmp_path / "vault"
    vault.mkdir()

    acme = vault / "Notas" / "proyecto" / "cliente" / "acme"
    acme.mkdir(parents=True)
    (acme / "kickoff.md").write_text(
        """---
tags:
  - proyecto/cliente/acme
---
{ #proyecto/cliente/acme }

# Kickoff
"""
    )
    (acme / "invoice.md").write_text(
        """---
tags: [proyecto, cliente, acme, facturas]
---
{ #proyecto/cliente/acme }

# Invoice
"""
    )

    experta = vault / "Notas" / "experta"
    experta.mkdir(parents=True)
    (experta / "overview.md").write_text(
        """---
tags: experta
---
{ #experta }

# Overview
"""
    )
    (experta / "recuperos.md").write_text(
        """---
tags:
  - experta
  - ia/recuperos
aliases:
  - Recuperos
---
{ #old/place }

# Recuperos
"""
    )

    (vault / "Notas" / "root-note.md").write_text("# Directly in the tag root\n")

    (vault / "inbox.md").write_text(
        """---
Tags: [dev, tool]
---

# Inbox item
"""
    )
    (vault / "plain.md").write_text("# Plain note without tags\n")

    templates = vault / "Templates"
    templates.mkdir()
    (templates / "daily.md").write_text("---\ntags: [template]\n---\n")

    hidden = vault / ".obsidian"
    hidden.mkdir()
    (hidden / "workspace.md").write_text("---\ntags: [hidden]\n---\n")

    return vault


@pytest.fixture
def cache_dir(tmp_path):
    """Directory holding tag cache snapshots for the test run."""
    directory = tmp_path / "cache"
    directory.mkdir()
    return directory


@pytest.fixture
def vault_config(temp_vault, cache_dir, monkeypatch):
    """Patch config module to use the temporary vault and cache.

    Modules import VAULT_PATH and TAG_CACHE_DIR from config at load time, so
    each importing module is patched as well.
    """
    import config
    import services.engine
    import services.scanner
    import services.tag_index
    import services.vault
    import tag_menu

    monkeypatch.setattr(config, "VAULT_PATH", temp_vault)
    monkeypatch.setattr(config, "TAG_CACHE_DIR", cache_dir)

    monkeypatch.setattr(services.vault, "VAULT_PATH", temp_vault)
    monkeypatch.setattr(services.scanner, "VAULT_PATH", temp_vault)
    monkeypatch.setattr(services.tag_index, "VAULT_PATH", temp_vault)
    monkeypatch.setattr(services.tag_index, "TAG_CACHE_DIR", cache_dir)
    monkeypatch.setattr(services.engine, "VAULT_PATH", temp_vault)
    monkeypatch.setattr(tag_menu, "VAULT_PATH", temp_vault)

    return temp_vault


@pytest.fixture(autouse=True)
def _clear_previews():
    """Reset the confirmation gate between tests."""
    from services.vault import clear_pending_previews

    clear_pending_previews()
    yield
    clear_pending_previews()

