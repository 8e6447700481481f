"""
Content Chunker

Splits oversized diffs into ordered, size-bounded chunks so each one fits
into a single provider call.

Chunks are line based. A running chunk is closed before the next line would
push it past the character budget; when closing, the chunker prefers to cut
at the last semantic boundary (file header, hunk header naming a function or
class) inside the running chunk so related changes stay together. A single
line longer than the budget is emitted as fixed-size character slices.

Round-trip:
    "\\n".join(c.content for c in chunks) == text
except that slices of an oversized line (``continuation=True``) are joined
to their predecessor without a separator. ``ContentChunker.reassemble``
applies both rules.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from .errors import ChunkIntegrityError

logger = logging.getLogger(__name__)

# Estimated tokens above which a payload is chunked
TOKEN_THRESHOLD = 4000

DEFAULT_MAX_CHUNK_CHARS = 12000

CODE_TOKENS_PER_WORD = 1.1
PROSE_TOKENS_PER_WORD = 0.9

# Only the first part of a payload is sniffed for code
CODE_SNIFF_CHARS = 500

CODE_INDICATORS = (
    "function", "class ", "const ", "let ", "var ", "import ", "export ",
    "def ", "return", "async ", "await ", "=>", "===", "==", "&&", "||",
    "{", "}",
)

_FILE_HEADER = re.compile(r"^\+\+\+ b/(.+)$", re.MULTILINE)
_DIFF_GIT = re.compile(r"^diff --git a/\S+ b/(\S+)", re.MULTILINE)
_FUNCTION = re.compile(
    r"(?:\bfunction\s+(\w+)"
    r"|\bdef\s+(\w+)"
    r"|\bconst\s+(\w+)\s*=\s*(?:async\s+)?\([^)]*\)\s*=>)"
)
_CLASS = re.compile(r"\bclass\s+(\w+)")

MAX_CONTEXT_FILES = 5
MAX_CONTEXT_SYMBOLS = 3


@dataclass
class ChunkContext:
    """What a chunk touches, used to frame per-chunk prompts."""
    files: list[str] = field(default_factory=list)
    functions: list[str] = field(default_factory=list)
    classes: list[str] = field(default_factory=list)
    has_significant_changes: bool = False

    def to_dict(self) -> dict:
        return {
            "files": self.files,
            "functions": self.functions,
            "classes": self.classes,
            "has_significant_changes": self.has_significant_changes,
        }


@dataclass
class Chunk:
    """One ordered piece of a larger payload."""
    content: str
    size: int
    index: int
    semantic_context: Optional[ChunkContext] = None
    continuation: bool = False


BoundaryClassifier = Callable[[str], bool]


# ============================================================================
# Heuristics
# ============================================================================

def is_code_content(text: str) -> bool:
    """Quick keyword sniff to tell code from prose."""
    sample = text[:CODE_SNIFF_CHARS].lower()
    return any(indicator in sample for indicator in CODE_INDICATORS)


def estimate_tokens(text: str) -> int:
    """
    Estimate provider tokens from the word count.

    Code runs at about 1.1 tokens per word, prose at about 0.9.
    """
    if not text:
        return 0
    words = len(text.split())
    ratio = CODE_TOKENS_PER_WORD if is_code_content(text) else PROSE_TOKENS_PER_WORD
    return math.ceil(words * ratio)


def is_diff_boundary(line: str) -> bool:
    """Default boundary classifier for unified diffs."""
    if line.startswith(("diff --git", "index ", "--- ", "+++ ")):
        return True
    if line.startswith("@@"):
        return "function" in line or "class" in line or "def " in line
    return False


def extract_chunk_context(text: str) -> ChunkContext:
    """Pull file names, functions and classes out of a diff chunk."""
    files: list[str] = []
    for match in list(_FILE_HEADER.finditer(text)) + list(_DIFF_GIT.finditer(text)):
        path = match.group(1).strip()
        if path not in files:
            files.append(path)

    functions: list[str] = []
    for match in _FUNCTION.finditer(text):
        name = next(g for g in match.groups() if g)
        if name not in functions:
            functions.append(name)

    classes: list[str] = []
    for match in _CLASS.finditer(text):
        if match.group(1) not in classes:
            classes.append(match.group(1))

    functions = functions[:MAX_CONTEXT_SYMBOLS]
    classes = classes[:MAX_CONTEXT_SYMBOLS]
    return ChunkContext(
        files=files[:MAX_CONTEXT_FILES],
        functions=functions,
        classes=classes,
        has_significant_changes=bool(functions or classes),
    )


# ============================================================================
# Chunker
# ============================================================================

class ContentChunker:
    """
    Line-based chunker with pluggable boundary detection.

    Usage:
        chunker = ContentChunker(max_chunk_chars=8000)
        if chunker.needs_chunking(diff):
            for chunk in chunker.chunk(diff):
                ...
    """

    def __init__(
        self,
        max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
        boundary: BoundaryClassifier = is_diff_boundary,
        separator: str = "\n",
        with_context: bool = True,
    ):
        """
        Args:
            max_chunk_chars: Default character budget per chunk
            boundary: Returns True for lines a chunk may start at
            separator: Line separator used both to split and to reassemble
            with_context: Attach a ChunkContext to every chunk
        """
        self.max_chunk_chars = max_chunk_chars
        self.boundary = boundary
        self.separator = separator
        self.with_context = with_context

    def needs_chunking(self, text: str, threshold: int = TOKEN_THRESHOLD) -> bool:
        return estimate_tokens(text) > threshold

    def chunk(self, text: str, max_chunk_chars: Optional[int] = None) -> list[Chunk]:
        """
        Split text into ordered chunks of at most max_chunk_chars characters.

        Args:
            text: Payload to split
            max_chunk_chars: Budget override for this call

        Returns:
            Chunks in original order. Text within budget yields one chunk
            equal to the input.

        Raises:
            ValueError: Budget is not positive
        """
        limit = self.max_chunk_chars if max_chunk_chars is None else max_chunk_chars
        if limit <= 0:
            raise ValueError(f"max_chunk_chars must be positive, got {limit}")

        if len(text) <= limit:
            return [self._make_chunk(text, 0)]

        pieces: list[tuple[str, bool]] = []
        current: list[str] = []
        sep_len = len(self.separator)

        def size_of(lines: list[str]) -> int:
            if not lines:
                return 0
            return sum(len(l) for l in lines) + sep_len * (len(lines) - 1)

        def flush(lines: list[str]) -> None:
            pieces.append((self.separator.join(lines), False))

        for line in text.split(self.separator):
            if len(line) > limit:
                if current:
                    flush(current)
                    current = []
                for start in range(0, len(line), limit):
                    pieces.append((line[start:start + limit], start > 0))
                continue

            while current and size_of(current) + sep_len + len(line) > limit:
                cut = self._last_boundary(current)
                if cut > 0:
                    flush(current[:cut])
                    current = current[cut:]
                else:
                    flush(current)
                    current = []

            current.append(line)

        if current:
            flush(current)

        chunks = [
            self._make_chunk(content, i, continuation)
            for i, (content, continuation) in enumerate(pieces)
        ]
        logger.debug(
            f"Chunked {len(text)} chars into {len(chunks)} chunks (limit={limit})"
        )
        return chunks

    def reassemble(self, chunks: list[Chunk]) -> str:
        """
        Join chunks back into the original text.

        Raises:
            ChunkIntegrityError: Indices are not 0..n-1 in order
        """
        for expected, chunk in enumerate(chunks):
            if chunk.index != expected:
                raise ChunkIntegrityError(
                    f"Chunk at position {expected} has index {chunk.index}"
                )

        parts: list[str] = []
        for chunk in chunks:
            if chunk.continuation and parts:
                parts[-1] += chunk.content
            else:
                parts.append(chunk.content)
        return self.separator.join(parts)

    def _last_boundary(self, lines: list[str]) -> int:
        """
        Index of the last boundary group after the first line, or 0.

        Consecutive boundary lines (a file header: diff --git, index, ---,
        +++) form one group; the cut goes before the group's first line.
        """
        for i in range(len(lines) - 1, 0, -1):
            if self.boundary(lines[i]):
                while i > 0 and self.boundary(lines[i - 1]):
                    i -= 1
                return i
        return 0

    def _make_chunk(self, content: str, index: int, continuation: bool = False) -> Chunk:
        context = extract_chunk_context(content) if self.with_context else None
        return Chunk(
            content=content,
            size=len(content),
            index=index,
            semantic_context=context,
            continuation=continuation,
        )
