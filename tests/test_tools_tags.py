"""Tests for tools/tags.py and tools/retagging.py - JSON tool surface."""

import json

from services.vault import read_note
from tools.retagging import migrate_tags, redir_notes, rename_tag, retag_notes
from tools.tags import find_notes_by_tag, get_tag_children, list_tags, rebuild_tag_index

ACME = "Notas/proyecto/cliente/acme"


class TestListTags:
    """Tests for list_tags tool."""

    def test_lists_all_tags(self, vault_config):
        result = json.loads(list_tags())
        assert result["success"] is True
        tags = [entry["tag"] for entry in result["results"]]
        assert "proyecto/cliente/acme/facturas" in tags
        assert tags.index("proyecto") < tags.index("proyecto/cliente")
        assert result["total"] == len(tags)

    def test_fuzzy_query(self, vault_config):
        result = json.loads(list_tags(query="experta"))
        tags = [entry["tag"] for entry in result["results"]]
        assert tags[0] == "experta"
        assert "experta/ia/recuperos" in tags
        entry = result["results"][0]
        assert entry["count"] == 1
        assert entry["subtree_count"] == 2

    def test_no_match(self, vault_config):
        result = json.loads(list_tags(query="zzzz"))
        assert result["success"] is True
        assert result["results"] == []
        assert result["total"] == 0

    def test_pagination(self, vault_config):
        full = json.loads(list_tags())["results"]
        page = json.loads(list_tags(limit=2, offset=1))
        assert page["results"] == full[1:3]

    def test_invalid_pagination(self, vault_config):
        result = json.loads(list_tags(limit=0))
        assert result["success"] is False
        assert "limit" in result["error"]

    def test_missing_vault(self, vault_config, monkeypatch, tmp_path):
        import services.tag_index

        monkeypatch.setattr(services.tag_index, "VAULT_PATH", tmp_path / "gone")
        result = json.loads(list_tags())
        assert result["success"] is False
        assert "Vault not found" in result["error"]


class TestGetTagChildren:
    def test_top_level(self, vault_config):
        result = json.loads(get_tag_children())
        names = [entry["tag"] for entry in result["results"]]
        assert names == ["dev", "experta", "old", "proyecto"]

    def test_nested(self, vault_config):
        result = json.loads(get_tag_children("proyecto/cliente"))
        assert result["results"] == [{"tag": "proyecto/cliente/acme", "count": 2}]

    def test_unknown_tag(self, vault_config):
        result = json.loads(get_tag_children("nope"))
        assert result["success"] is False


class TestFindNotesByTag:
    def test_exact(self, vault_config):
        result = json.loads(find_notes_by_tag("proyecto/cliente/acme"))
        assert result["results"] == [f"{ACME}/invoice.md", f"{ACME}/kickoff.md"]

    def test_recursive(self, vault_config):
        result = json.loads(find_notes_by_tag("experta", recursive=True))
        assert result["results"] == ["Notas/experta/overview.md", "Notas/experta/recuperos.md"]

    def test_array_form_query(self, vault_config):
        result = json.loads(find_notes_by_tag(["dev", "tool"]))
        assert result["results"] == ["inbox.md"]

    def test_empty_tag(self, vault_config):
        result = json.loads(find_notes_by_tag(""))
        assert result["success"] is False
        assert "tag is required" in result["error"]


class TestRebuildTagIndex:
    def test_rebuild_reports_skipped(self, vault_config):
        (vault_config / "bad.md").write_text("---\ntags: [unclosed\n---\n")
        result = json.loads(rebuild_tag_index(clear=True))
        assert result["success"] is True
        assert [s["path"] for s in result["skipped"]] == ["bad.md"]

    def test_rebuild_picks_up_changes(self, vault_config):
        json.loads(list_tags())
        (vault_config / "new.md").write_text("---\ntags: [fresh]\n---\n")
        rebuild_tag_index()
        tags = [entry["tag"] for entry in json.loads(list_tags(query="fresh"))["results"]]
        assert tags == ["fresh"]


class TestRenameTagTool:
    """Tests for rename_tag tool and its confirmation gate."""

    def _make_tagged_notes(self, vault, count):
        for i in range(count):
            (vault / f"bulk{i}.md").write_text("---\ntags: [bulk]\n---\n")

    def test_rename_under_threshold(self, vault_config):
        result = json.loads(rename_tag("dev/tool", "dev/tools"))
        assert result["success"] is True
        assert result["succeeded"] == ["inbox.md"]
        assert "1 succeeded" in result["message"]

    def test_requires_confirmation_over_threshold(self, vault_config):
        self._make_tagged_notes(vault_config, 6)
        result = json.loads(rename_tag("bulk", "mass"))
        assert result["confirmation_required"] is True
        assert len(result["files"]) == 6
        assert read_note(vault_config / "bulk0.md").frontmatter["tags"] == ["bulk"]

    def test_confirm_after_preview(self, vault_config):
        self._make_tagged_notes(vault_config, 6)
        json.loads(rename_tag("bulk", "mass"))
        result = json.loads(rename_tag("bulk", "mass", confirm=True))
        assert "confirmation_required" not in result
        assert len(result["succeeded"]) == 6

    def test_confirm_without_preview_previews(self, vault_config):
        self._make_tagged_notes(vault_config, 6)
        result = json.loads(rename_tag("bulk", "mass", confirm=True))
        assert result["confirmation_required"] is True

    def test_nothing_to_rename(self, vault_config):
        result = json.loads(rename_tag("nope", "other"))
        assert result["success"] is True
        assert result["succeeded"] == []

    def test_invalid_new_tag(self, vault_config):
        result = json.loads(rename_tag("dev/tool", "///"))
        assert result["success"] is False
        assert "new_tag" in result["error"]


class TestRetagAndRedirTools:
    def test_retag_folder(self, vault_config):
        result = json.loads(retag_notes(folder="Notas/experta"))
        assert result["succeeded"] == ["Notas/experta/recuperos.md"]
        assert result["unchanged"] == ["Notas/experta/overview.md"]

    def test_retag_rejects_paths_and_folder(self, vault_config):
        result = json.loads(retag_notes(paths=["inbox.md"], folder="Notas"))
        assert result["success"] is False

    def test_retag_unknown_folder(self, vault_config):
        result = json.loads(retag_notes(folder="Nowhere"))
        assert result["success"] is False
        assert "Folder not found" in result["error"]

    def test_redir_preview_then_confirm(self, vault_config):
        preview = json.loads(redir_notes(paths=["inbox.md"]))
        assert preview["confirmation_required"] is True
        assert preview["folders"] == ["Notas/dev/tool"]
        assert (vault_config / "inbox.md").exists()

        result = json.loads(redir_notes(paths=["inbox.md"], confirm=True))
        assert result["succeeded"] == ["inbox.md -> Notas/dev/tool/inbox.md"]
        assert (vault_config / "Notas" / "dev" / "tool" / "inbox.md").exists()

    def test_redir_existing_folder_runs_directly(self, vault_config):
        (vault_config / "loose.md").write_text("{ #experta }\n")
        result = json.loads(redir_notes(paths=["loose.md"]))
        assert result["succeeded"] == ["loose.md -> Notas/experta/loose.md"]

    def test_redir_requires_target(self, vault_config):
        result = json.loads(redir_notes())
        assert result["success"] is False


class TestMigrateTool:
    def test_always_previews_first(self, vault_config):
        preview = json.loads(migrate_tags())
        assert preview["confirmation_required"] is True
        changes = {c["path"]: c for c in preview["changes"]}
        assert changes[f"{ACME}/invoice.md"]["from"] == ["proyecto", "cliente", "acme", "facturas"]
        assert changes[f"{ACME}/invoice.md"]["to"] == "proyecto/cliente/acme/facturas"

        result = json.loads(migrate_tags(confirm=True))
        assert f"{ACME}/invoice.md" in result["succeeded"]

        done = json.loads(migrate_tags())
        assert done["message"] == "All tags are already in canonical form"
