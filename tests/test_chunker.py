"""Tests for diff chunking and token estimation."""

import pytest

from aicommit.chunker import (
    Chunk,
    ContentChunker,
    estimate_tokens,
    extract_chunk_context,
    is_code_content,
    is_diff_boundary,
)
from aicommit.errors import ChunkIntegrityError


def make_diff(files: int = 6, lines_per_file: int = 40) -> str:
    parts = []
    for n in range(files):
        parts.append(f"diff --git a/src/mod{n}.py b/src/mod{n}.py")
        parts.append(f"--- a/src/mod{n}.py")
        parts.append(f"+++ b/src/mod{n}.py")
        parts.append(f"@@ -1,{lines_per_file} +1,{lines_per_file} @@ def handler_{n}():")
        for i in range(lines_per_file):
            parts.append(f"+    value_{i} = compute({i})  # line {i} of module {n}")
    return "\n".join(parts)


class TestEstimateTokens:

    def test_empty(self):
        assert estimate_tokens("") == 0

    def test_prose_ratio(self):
        text = "the quick brown fox jumps over the lazy dog today"
        assert is_code_content(text) is False
        assert estimate_tokens(text) == 9

    def test_code_ratio(self):
        text = "def add(a, b): return a + b"
        assert is_code_content(text) is True
        # 7 words * 1.1 rounded up
        assert estimate_tokens(text) == 8

    def test_only_prefix_is_sniffed(self):
        text = "word " * 200 + "def late(): return 1"
        assert is_code_content(text) is False


class TestBoundaries:

    @pytest.mark.parametrize("line", [
        "diff --git a/x.py b/x.py",
        "+++ b/x.py",
        "--- a/x.py",
        "@@ -1,3 +1,4 @@ def main():",
        "@@ -10,2 +10,2 @@ class Parser:",
    ])
    def test_boundary_lines(self, line):
        assert is_diff_boundary(line) is True

    @pytest.mark.parametrize("line", [
        "+    return value",
        "@@ -1,3 +1,4 @@",
        " context line",
    ])
    def test_non_boundary_lines(self, line):
        assert is_diff_boundary(line) is False

    def test_extract_context(self):
        diff = make_diff(files=2, lines_per_file=2) + "\n+class Router:\n+    pass"
        ctx = extract_chunk_context(diff)

        assert ctx.files == ["src/mod0.py", "src/mod1.py"]
        assert ctx.functions == ["handler_0", "handler_1"]
        assert ctx.classes == ["Router"]
        assert ctx.has_significant_changes is True
        assert ctx.to_dict()["classes"] == ["Router"]


class TestContentChunker:

    def test_small_text_single_chunk(self):
        chunker = ContentChunker(max_chunk_chars=1000)
        chunks = chunker.chunk("small diff")

        assert len(chunks) == 1
        assert chunks[0].content == "small diff"
        assert chunks[0].index == 0

    def test_rejects_non_positive_budget(self):
        with pytest.raises(ValueError):
            ContentChunker().chunk("text", max_chunk_chars=0)

    @pytest.mark.parametrize("limit", [200, 500, 1500, 4000])
    def test_chunks_fit_budget_and_round_trip(self, limit):
        diff = make_diff()
        chunker = ContentChunker()
        chunks = chunker.chunk(diff, max_chunk_chars=limit)

        assert len(chunks) > 1
        assert all(c.size <= limit for c in chunks)
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert "\n".join(c.content for c in chunks) == diff
        assert chunker.reassemble(chunks) == diff

    def test_prefers_file_boundaries(self):
        diff = make_diff(files=3, lines_per_file=5)
        file_len = len(diff) // 3
        chunks = ContentChunker().chunk(diff, max_chunk_chars=file_len + 40)

        for chunk in chunks[1:]:
            assert chunk.content.startswith("diff --git")

    @pytest.mark.parametrize("extra", [1, 3, 7, 12, 19, 26, 33, 41, 58])
    def test_file_header_never_split(self, extra):
        diff = make_diff(files=3, lines_per_file=5).replace(
            "--- a/", "index 1a2b3c4..5d6e7f8 100644\n--- a/"
        )
        file_len = len(diff) // 3
        chunker = ContentChunker()
        chunks = chunker.chunk(diff, max_chunk_chars=file_len + extra)

        for chunk in chunks[1:]:
            assert not chunk.content.startswith(("index ", "--- ", "+++ ", "@@"))
        for chunk in chunks:
            lines = chunk.content.split("\n")
            for i, line in enumerate(lines):
                if line.startswith("+++ "):
                    assert i >= 3 and lines[i - 3].startswith("diff --git")
        assert chunker.reassemble(chunks) == diff

    def test_oversized_line_is_sliced(self):
        long_line = "x" * 250
        text = "first\n" + long_line + "\nlast"
        chunker = ContentChunker(with_context=False)
        chunks = chunker.chunk(text, max_chunk_chars=100)

        sliced = [c for c in chunks if set(c.content) == {"x"}]
        assert [len(c.content) for c in sliced] == [100, 100, 50]
        assert [c.continuation for c in sliced] == [False, True, True]
        assert all(c.size <= 100 for c in chunks)
        assert chunker.reassemble(chunks) == text

    def test_chunks_carry_context(self):
        chunks = ContentChunker().chunk(make_diff(files=4, lines_per_file=10), max_chunk_chars=800)
        assert all(c.semantic_context is not None for c in chunks)
        assert chunks[0].semantic_context.files[0] == "src/mod0.py"

    def test_custom_separator(self):
        text = "alpha;beta;gamma;delta"
        chunker = ContentChunker(separator=";", with_context=False)
        chunks = chunker.chunk(text, max_chunk_chars=11)

        assert all(c.size <= 11 for c in chunks)
        assert chunker.reassemble(chunks) == text

    def test_reassemble_rejects_out_of_order(self):
        chunks = [Chunk("b", 1, 1), Chunk("a", 1, 0)]
        with pytest.raises(ChunkIntegrityError):
            ContentChunker().reassemble(chunks)

    def test_needs_chunking(self):
        chunker = ContentChunker()
        assert chunker.needs_chunking("a few words") is False
        assert chunker.needs_chunking("word " * 5000) is True
