"""Tests for services/tag_paths.py - tag normalization and marker parsing."""

from datetime import date

import pytest

from services.errors import InvalidTag
from services.tag_paths import (
    TagPath,
    find_inline_tags,
    format_dir_tag_marker,
    normalize_tag,
    parse_dir_tag_marker,
    parse_inline_tag,
    tag_from_directory,
    try_normalize,
)


class TestNormalizeTag:
    """Array, slash, and mixed forms collapse into one hierarchy."""

    @pytest.mark.parametrize(
        "raw",
        [
            ["experta", "ia-recuperos"],
            ["experta/ia-recuperos"],
            "experta/ia-recuperos",
            "#experta/ia-recuperos",
            ["experta", ["ia-recuperos"]],
        ],
    )
    def test_equivalent_forms(self, raw):
        assert normalize_tag(raw) == TagPath(("experta", "ia-recuperos"))

    def test_mixed_form_splits_elements(self):
        assert normalize_tag(["experta", "ia/recuperos"]) == TagPath(("experta", "ia", "recuperos"))

    def test_idempotent(self):
        once = normalize_tag(["a", "b/c"])
        assert normalize_tag(once) == once
        assert normalize_tag(str(once)) == once

    def test_drops_empty_segments(self):
        assert normalize_tag("//a///b/") == TagPath(("a", "b"))
        assert normalize_tag(["", "a", " ", "b"]) == TagPath(("a", "b"))

    def test_scalars_are_stringified(self):
        assert normalize_tag(2024) == TagPath(("2024",))
        assert normalize_tag(date(2024, 1, 15)) == TagPath(("2024-01-15",))

    @pytest.mark.parametrize("raw", [None, "", "///", [], [None], {"a": 1}, "#"])
    def test_invalid(self, raw):
        with pytest.raises(InvalidTag):
            normalize_tag(raw)

    def test_invalid_tag_is_value_error(self):
        with pytest.raises(ValueError):
            normalize_tag("")

    def test_try_normalize(self):
        assert try_normalize("a/b") == TagPath(("a", "b"))
        assert try_normalize("") is None


class TestTagPath:
    """Tests for TagPath helpers."""

    def test_construction_rejects_bad_segments(self):
        with pytest.raises(InvalidTag):
            TagPath(())
        with pytest.raises(InvalidTag):
            TagPath(("a", ""))
        with pytest.raises(InvalidTag):
            TagPath(("a/b",))

    def test_str_and_name(self):
        tag = TagPath(("proyecto", "cliente", "acme"))
        assert str(tag) == "proyecto/cliente/acme"
        assert tag.name == "acme"
        assert len(tag) == 3

    def test_parent_and_child(self):
        tag = TagPath(("a", "b"))
        assert tag.parent == TagPath(("a",))
        assert TagPath(("a",)).parent is None
        assert tag.child("c") == TagPath(("a", "b", "c"))

    def test_prefixes(self):
        assert TagPath(("a", "b", "c")).prefixes() == [
            TagPath(("a",)),
            TagPath(("a", "b")),
            TagPath(("a", "b", "c")),
        ]

    def test_starts_with_is_segment_based(self):
        tag = TagPath.from_string("proyecto/cliente")
        assert tag.starts_with(TagPath.from_string("proyecto"))
        assert tag.starts_with(tag)
        assert not tag.starts_with(TagPath.from_string("proy"))
        assert not TagPath.from_string("proyecto").starts_with(tag)

    def test_replace_prefix(self):
        tag = TagPath.from_string("proyecto/cliente/acme/facturas")
        renamed = tag.replace_prefix(
            TagPath.from_string("proyecto/cliente/acme"),
            TagPath.from_string("work/client/acme"),
        )
        assert str(renamed) == "work/client/acme/facturas"

    def test_replace_prefix_requires_prefix(self):
        with pytest.raises(ValueError):
            TagPath.from_string("a/b").replace_prefix(TagPath.from_string("x"), TagPath.from_string("y"))

    def test_ordering(self):
        tags = [TagPath.from_string(t) for t in ("b", "a/b", "a")]
        assert [str(t) for t in sorted(tags)] == ["a", "a/b", "b"]


class TestMarkers:
    """Tests for dir-tag markers and inline tags."""

    @pytest.mark.parametrize("line", ["{ #dev/tool }", "{#dev/tool}", "  {  #dev/tool  }  "])
    def test_parse_marker(self, line):
        assert parse_dir_tag_marker(line) == TagPath(("dev", "tool"))

    @pytest.mark.parametrize("line", ["# Heading", "#dev/tool", "{ dev/tool }", "{ # }", "{ #a } trailing", ""])
    def test_parse_marker_rejects(self, line):
        assert parse_dir_tag_marker(line) is None

    def test_format_marker_round_trip(self):
        tag = TagPath(("new", "path"))
        assert format_dir_tag_marker(tag) == "{ #new/path }"
        assert parse_dir_tag_marker(format_dir_tag_marker(tag)) == tag

    def test_marker_with_spaces_round_trip(self):
        tag = tag_from_directory("Mi Proyecto/Fase 1")
        assert parse_dir_tag_marker(format_dir_tag_marker(tag)) == tag

    def test_find_inline_tags(self):
        line = "Ping #dev/tool about #idea, not a#word or &#39; or # heading"
        assert find_inline_tags(line) == [TagPath(("dev", "tool")), TagPath(("idea",))]

    def test_parse_inline_tag(self):
        assert parse_inline_tag("#a/b") == TagPath(("a", "b"))
        with pytest.raises(InvalidTag):
            parse_inline_tag("a/b")

    def test_tag_from_directory(self):
        assert tag_from_directory("proyecto/cliente") == TagPath(("proyecto", "cliente"))
        assert tag_from_directory(".") is None
        assert tag_from_directory("") is None
