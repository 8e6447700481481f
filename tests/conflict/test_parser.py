"""Tests for the conflict marker parser."""

import pytest

from aicommit.chunker import Chunk
from aicommit.conflict.parser import (
    has_conflict_markers,
    join_chunks,
    parse_conflict_sections,
    replace_sections,
    split_preserving_sections,
    take_ours,
    take_theirs,
    take_theirs_or_nonempty,
)
from aicommit.errors import ChunkIntegrityError


TWO_SECTIONS = """import os

<<<<<<< HEAD
x = 1
=======
x = 2
>>>>>>> feature
middle = True
<<<<<<< HEAD
y = "ours"
=======
y = "theirs"
z = "theirs"
>>>>>>> feature
end = True
"""

DIFF3 = """a
<<<<<<< ours
value = 1
||||||| base
value = 0
=======
value = 2
>>>>>>> theirs
b
"""


class TestHasConflictMarkers:

    def test_detects_markers(self):
        assert has_conflict_markers(TWO_SECTIONS) is True

    def test_clean_text(self):
        assert has_conflict_markers("x = 1\ny = 2\n") is False

    def test_markdown_underline_is_not_a_marker(self):
        assert has_conflict_markers("Title\n=======\n\nBody\n") is False

    def test_markers_must_start_the_line(self):
        assert has_conflict_markers('msg = "<<<<<<< HEAD"\n') is False

    def test_crlf(self):
        assert has_conflict_markers("<<<<<<< HEAD\r\na\r\n=======\r\nb\r\n>>>>>>> x\r\n") is True


class TestParseConflictSections:

    def test_multiple_sections_in_order(self):
        sections = parse_conflict_sections(TWO_SECTIONS)

        assert len(sections) == 2
        first, second = sections
        assert first.ours_lines == ["x = 1"]
        assert first.theirs_lines == ["x = 2"]
        assert first.ours_label == "HEAD"
        assert first.theirs_label == "feature"
        assert (first.start_line, first.end_line) == (2, 6)
        assert first.line_count == 5
        assert second.theirs_lines == ['y = "theirs"', 'z = "theirs"']
        assert second.base_lines is None

    def test_context_lines(self):
        sections = parse_conflict_sections(TWO_SECTIONS, context_lines=1)
        assert sections[0].context_before == [""]
        assert sections[0].context_after == ["middle = True"]
        assert "..." in sections[0].surrounding_context

    def test_diff3_base_block(self):
        section = parse_conflict_sections(DIFF3)[0]

        assert section.ours_lines == ["value = 1"]
        assert section.base_lines == ["value = 0"]
        assert section.theirs_lines == ["value = 2"]

    def test_unterminated_section_skipped(self):
        content = "<<<<<<< HEAD\na\n=======\nb\n" + TWO_SECTIONS
        sections = parse_conflict_sections(content)

        assert len(sections) == 2
        assert sections[0].ours_lines == ["x = 1"]

    def test_empty_sides(self):
        section = parse_conflict_sections("<<<<<<< HEAD\n=======\nnew\n>>>>>>> b\n")[0]
        assert section.ours_lines == []
        assert section.theirs_lines == ["new"]


class TestReplaceSections:

    def test_take_ours_every_section(self):
        result = replace_sections(TWO_SECTIONS, take_ours)

        assert not has_conflict_markers(result)
        assert result == 'import os\n\nx = 1\nmiddle = True\ny = "ours"\nend = True\n'

    def test_take_theirs_every_section(self):
        result = replace_sections(TWO_SECTIONS, take_theirs)
        assert result == 'import os\n\nx = 2\nmiddle = True\ny = "theirs"\nz = "theirs"\nend = True\n'

    def test_preserves_crlf_outside_sections(self):
        content = "head\r\n<<<<<<< HEAD\r\na\r\n=======\r\nb\r\n>>>>>>> x\r\ntail\r\n"
        assert replace_sections(content, take_theirs) == "head\r\nb\r\ntail\r\n"

    def test_section_at_end_without_newline(self):
        content = "head\n<<<<<<< HEAD\na\n=======\nb\n>>>>>>> x"
        assert replace_sections(content, take_ours) == "head\na"

    def test_empty_choice_removes_section(self):
        content = "head\n<<<<<<< HEAD\n=======\n>>>>>>> x\ntail\n"
        assert replace_sections(content, take_ours) == "head\ntail\n"

    def test_no_sections_returns_input(self):
        assert replace_sections("plain\n", take_ours) == "plain\n"

    def test_theirs_or_nonempty(self):
        content = "<<<<<<< HEAD\nkeep me\n=======\n   \n>>>>>>> x\n"
        assert replace_sections(content, take_theirs_or_nonempty) == "keep me\n"


class TestSplitPreservingSections:

    def test_round_trip_and_sections_intact(self):
        content = "\n".join(f"line {i}" for i in range(30)) + "\n" + TWO_SECTIONS * 3
        chunks = split_preserving_sections(content, max_chars=80)

        assert join_chunks(chunks) == content
        assert [c.index for c in chunks] == list(range(len(chunks)))
        for chunk in chunks:
            assert chunk.content.count("<<<<<<<") == chunk.content.count(">>>>>>>")

    def test_oversized_section_stands_alone(self):
        big = "<<<<<<< HEAD\n" + "a\n" * 50 + "=======\n" + "b\n" * 50 + ">>>>>>> x\n"
        chunks = split_preserving_sections("top\n" + big + "bottom\n", max_chars=20)

        assert big in [c.content for c in chunks]

    def test_empty_content(self):
        chunks = split_preserving_sections("", max_chars=10)
        assert len(chunks) == 1
        assert chunks[0].content == ""

    def test_rejects_non_positive_budget(self):
        with pytest.raises(ValueError):
            split_preserving_sections("x", 0)

    def test_join_rejects_bad_order(self):
        with pytest.raises(ChunkIntegrityError):
            join_chunks([Chunk("a", 1, 1)])
