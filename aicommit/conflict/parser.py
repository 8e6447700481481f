"""
Conflict Marker Parser

Iterative, per-section parser for git conflict markers, including the
diff3 ``|||||||`` base block:

    <<<<<<< HEAD
    our lines
    ||||||| base
    base lines
    =======
    their lines
    >>>>>>> feature

Line endings are preserved: text outside conflict sections comes back
byte-identical from replace_sections().
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..chunker import Chunk
from ..errors import ChunkIntegrityError

logger = logging.getLogger(__name__)

_START = re.compile(r"^<{7}(?: (.*))?$")
_BASE = re.compile(r"^\|{7}(?: (.*))?$")
_SEPARATOR = re.compile(r"^={7}$")
_END = re.compile(r"^>{7}(?: (.*))?$")

_ANY_BOUNDARY_MARKER = re.compile(r"^(?:<{7}|>{7})(?: .*)?\r?$", re.MULTILINE)


@dataclass
class ConflictSection:
    """One conflict region. Line numbers are 0-based and inclusive of markers."""
    ours_lines: list[str]
    theirs_lines: list[str]
    start_line: int
    end_line: int
    base_lines: Optional[list[str]] = None
    context_before: list[str] = field(default_factory=list)
    context_after: list[str] = field(default_factory=list)
    ours_label: str = ""
    theirs_label: str = ""

    @property
    def surrounding_context(self) -> str:
        return "\n".join(self.context_before + ["..."] + self.context_after)

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


Chooser = Callable[[ConflictSection], list[str]]


def _strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


def has_conflict_markers(text: str) -> bool:
    """True if any line is a conflict start or end marker."""
    return bool(_ANY_BOUNDARY_MARKER.search(text))


def parse_conflict_sections(content: str, context_lines: int = 3) -> list[ConflictSection]:
    """
    Parse every well-formed conflict section in order.

    A section missing its separator or end marker is skipped and left in
    the text, where callers will still see its markers.

    Args:
        content: File content with conflict markers
        context_lines: Lines of surrounding context kept per section

    Returns:
        Sections in file order
    """
    lines = [_strip_eol(l) for l in content.splitlines(keepends=True)]
    sections: list[ConflictSection] = []
    i = 0
    n = len(lines)

    while i < n:
        start_match = _START.match(lines[i])
        if not start_match:
            i += 1
            continue

        section = _parse_section(lines, i, start_match.group(1) or "")
        if section is None:
            logger.debug(f"Unterminated conflict section at line {i + 1}")
            i += 1
            continue

        section.context_before = lines[max(0, i - context_lines):i]
        section.context_after = lines[section.end_line + 1:section.end_line + 1 + context_lines]
        sections.append(section)
        i = section.end_line + 1

    return sections


def _parse_section(lines: list[str], start: int, ours_label: str) -> Optional[ConflictSection]:
    ours: list[str] = []
    base: Optional[list[str]] = None
    theirs: list[str] = []
    target = ours
    seen_separator = False

    for j in range(start + 1, len(lines)):
        line = lines[j]
        if _START.match(line):
            return None
        if not seen_separator and _BASE.match(line) and base is None:
            base = []
            target = base
            continue
        if not seen_separator and _SEPARATOR.match(line):
            seen_separator = True
            target = theirs
            continue
        end_match = _END.match(line)
        if seen_separator and end_match:
            return ConflictSection(
                ours_lines=ours,
                theirs_lines=theirs,
                base_lines=base,
                start_line=start,
                end_line=j,
                ours_label=ours_label,
                theirs_label=end_match.group(1) or "",
            )
        target.append(line)

    return None


# ============================================================================
# Choosers
# ============================================================================

def take_ours(section: ConflictSection) -> list[str]:
    return list(section.ours_lines)


def take_theirs(section: ConflictSection) -> list[str]:
    return list(section.theirs_lines)


def take_theirs_or_nonempty(section: ConflictSection) -> list[str]:
    """Theirs if it has any non-blank line, otherwise ours."""
    if any(l.strip() for l in section.theirs_lines):
        return list(section.theirs_lines)
    return list(section.ours_lines)


def replace_sections(
    content: str,
    chooser: Chooser,
    context_lines: int = 3,
) -> str:
    """
    Rebuild content with each parsed section replaced by chooser(section).

    Unterminated sections and all text outside sections are kept as-is.
    """
    raw_lines = content.splitlines(keepends=True)
    sections = parse_conflict_sections(content, context_lines)
    if not sections:
        return content

    eol = "\r\n" if "\r\n" in content else "\n"
    out: list[str] = []
    cursor = 0
    for section in sections:
        out.extend(raw_lines[cursor:section.start_line])
        chosen = chooser(section)
        if chosen:
            end_line = raw_lines[section.end_line]
            trailing = end_line[len(_strip_eol(end_line)):]
            out.append(eol.join(chosen) + trailing)
        cursor = section.end_line + 1
    out.extend(raw_lines[cursor:])
    return "".join(out)


# ============================================================================
# Section-preserving split
# ============================================================================

def split_preserving_sections(content: str, max_chars: int) -> list[Chunk]:
    """
    Split conflicted content into chunks that never cut through a section.

    Each chunk holds zero or more complete conflict sections. A section
    larger than max_chars becomes a chunk on its own. Concatenating the
    chunk contents (no separator) reproduces the content.

    Raises:
        ValueError: max_chars is not positive
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")

    raw_lines = content.splitlines(keepends=True)
    sections = parse_conflict_sections(content, context_lines=0)

    units: list[str] = []
    cursor = 0
    for section in sections:
        units.extend(raw_lines[cursor:section.start_line])
        units.append("".join(raw_lines[section.start_line:section.end_line + 1]))
        cursor = section.end_line + 1
    units.extend(raw_lines[cursor:])

    pieces: list[str] = []
    current = ""
    for unit in units:
        if current and len(current) + len(unit) > max_chars:
            pieces.append(current)
            current = ""
        current += unit
    if current or not pieces:
        pieces.append(current)

    return [
        Chunk(content=piece, size=len(piece), index=i)
        for i, piece in enumerate(pieces)
    ]


def join_chunks(chunks: list[Chunk]) -> str:
    """
    Concatenate chunks produced by split_preserving_sections.

    Raises:
        ChunkIntegrityError: Indices are not 0..n-1 in order
    """
    for expected, chunk in enumerate(chunks):
        if chunk.index != expected:
            raise ChunkIntegrityError(
                f"Conflict chunk at position {expected} has index {chunk.index}"
            )
    return "".join(c.content for c in chunks)
