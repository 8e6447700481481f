"""
AI-assisted conflict resolution.

Sends the conflicted file (with base/ours/theirs versions and section
context) to the provider orchestrator. Oversized prompts are split into
chunks that never cut through a conflict section; chunks without
conflicts are kept verbatim. A chunk whose answer is empty or still has
markers falls back to prefer-theirs-then-non-empty for that chunk only.
"""

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional, TYPE_CHECKING

from ..chunker import Chunk, DEFAULT_MAX_CHUNK_CHARS, TOKEN_THRESHOLD, estimate_tokens
from ..errors import AllProvidersFailedError
from ..providers import GenerationOptions
from .parser import (
    ConflictSection,
    has_conflict_markers,
    join_chunks,
    parse_conflict_sections,
    replace_sections,
    split_preserving_sections,
    take_theirs_or_nonempty,
)

if TYPE_CHECKING:
    from ..orchestrator import ProviderOrchestrator


logger = logging.getLogger(__name__)

MIN_RESOLVE_TOKENS = 2000

LANGUAGE_BY_EXTENSION = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".rb": "ruby",
    ".php": "php",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".md": "markdown",
    ".sh": "bash",
}


@dataclass
class AIResolution:
    """Result of the AI-assisted stage for one file."""
    content: Optional[str]
    ai_chunks: int = 0
    fallback_chunks: int = 0
    chunked: bool = False
    providers_exhausted: bool = False

    @property
    def resolved(self) -> bool:
        return self.content is not None and not has_conflict_markers(self.content)


def detect_language(path: str) -> str:
    return LANGUAGE_BY_EXTENSION.get(PurePosixPath(path).suffix.lower(), "text")


def build_resolution_prompt(
    path: str,
    conflicted: str,
    base: Optional[str] = None,
    ours: Optional[str] = None,
    theirs: Optional[str] = None,
    sections: Optional[list[ConflictSection]] = None,
    chunk_position: Optional[tuple[int, int]] = None,
) -> str:
    """
    Build the merge-resolution prompt.

    Args:
        path: File path
        conflicted: Conflicted body (whole file or one chunk)
        base: Common ancestor version, if known
        ours: Local version, if known
        theirs: Incoming version, if known
        sections: Parsed conflict sections of the body
        chunk_position: (index, total) when resolving one chunk
    """
    language = detect_language(path)
    parts = [f"You are resolving a git merge conflict in `{path}`."]

    if chunk_position is not None:
        index, total = chunk_position
        parts.append(
            f"This is part {index + 1} of {total} of the file. Resolve only this part "
            "and return it in full, keeping every line outside the conflict markers."
        )

    if base is not None:
        parts.append(f"## Base version (common ancestor):\n```{language}\n{base}\n```")
    else:
        parts.append("## No base version available")
    if ours is not None:
        parts.append(f"## Our version (local):\n```{language}\n{ours}\n```")
    if theirs is not None:
        parts.append(f"## Their version (incoming):\n```{language}\n{theirs}\n```")

    if sections:
        summary = ["## Conflict sections:"]
        for i, section in enumerate(sections, 1):
            summary.append(
                f"{i}. lines {section.start_line + 1}-{section.end_line + 1}: "
                f"{len(section.ours_lines)} ours vs {len(section.theirs_lines)} theirs"
            )
            if section.context_before or section.context_after:
                summary.append(f"   context:\n{section.surrounding_context}")
        parts.append("\n".join(summary))

    parts.append(f"## Conflicted content:\n```{language}\n{conflicted}\n```")
    parts.append(
        "## Your task:\n"
        f"Produce the merged {language} content that preserves the intent of both "
        "sides where possible and contains NO conflict markers.\n\n"
        "CRITICAL: Output ONLY the merged content. No explanations, no markdown "
        "code blocks."
    )
    return "\n\n".join(parts)


def clean_response(response: str) -> str:
    """Strip surrounding whitespace and markdown code fences."""
    content = response.strip()
    if content.startswith("```"):
        lines = content.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        content = "\n".join(lines)
    return content


def _restore_trailing_newline(original: str, resolved: str) -> str:
    for eol in ("\r\n", "\n"):
        if original.endswith(eol) and not resolved.endswith(eol):
            return resolved + eol
    return resolved


class AIConflictResolver:
    """
    AI stage of the conflict pipeline.

    Usage:
        resolver = AIConflictResolver(orchestrator)
        result = await resolver.resolve("src/app.py", conflicted)
        if result.resolved:
            ...
    """

    def __init__(
        self,
        orchestrator: "ProviderOrchestrator",
        chunk_threshold: int = TOKEN_THRESHOLD,
        max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
        preferred: Optional[str] = None,
    ):
        """
        Args:
            orchestrator: Provider orchestrator used for every call
            chunk_threshold: Prompt tokens above which the file is chunked
            max_chunk_chars: Character budget per chunk
            preferred: Provider tried first, as for commit messages
        """
        self.orchestrator = orchestrator
        self.chunk_threshold = chunk_threshold
        self.max_chunk_chars = max_chunk_chars
        self.preferred = preferred

    async def resolve(
        self,
        path: str,
        conflicted: str,
        base: Optional[str] = None,
        ours: Optional[str] = None,
        theirs: Optional[str] = None,
        context_lines: int = 3,
    ) -> AIResolution:
        """
        Resolve a conflicted file through the orchestrator.

        Returns:
            AIResolution; content is None when no provider answered at all
        """
        sections = parse_conflict_sections(conflicted, context_lines)
        prompt = build_resolution_prompt(path, conflicted, base, ours, theirs, sections)

        if estimate_tokens(prompt) <= self.chunk_threshold:
            answer = await self._ask(prompt, conflicted)
            if answer is None:
                return AIResolution(content=None, providers_exhausted=True)
            resolved, used_fallback = self._accept_or_fallback(path, conflicted, answer)
            return AIResolution(
                content=resolved,
                ai_chunks=0 if used_fallback else 1,
                fallback_chunks=1 if used_fallback else 0,
            )

        return await self._resolve_chunked(path, conflicted, context_lines)

    async def _resolve_chunked(self, path: str, conflicted: str, context_lines: int) -> AIResolution:
        chunks = split_preserving_sections(conflicted, self.max_chunk_chars)
        logger.info(f"{path}: resolving conflicts in {len(chunks)} chunks")

        resolved_chunks: list[Chunk] = []
        answered = 0
        asked = 0
        ai_chunks = 0
        fallback_chunks = 0

        for chunk in chunks:
            if not has_conflict_markers(chunk.content):
                resolved_chunks.append(chunk)
                continue

            asked += 1
            sections = parse_conflict_sections(chunk.content, context_lines)
            prompt = build_resolution_prompt(
                path, chunk.content, sections=sections,
                chunk_position=(chunk.index, len(chunks)),
            )
            answer = await self._ask(prompt, chunk.content)
            if answer is None:
                content, used_fallback = replace_sections(chunk.content, take_theirs_or_nonempty), True
            else:
                answered += 1
                content, used_fallback = self._accept_or_fallback(path, chunk.content, answer)

            if used_fallback:
                fallback_chunks += 1
            else:
                ai_chunks += 1
            resolved_chunks.append(Chunk(content=content, size=len(content), index=chunk.index))

        if asked and not answered:
            logger.warning(f"{path}: no provider answered for any chunk")
            return AIResolution(content=None, chunked=True, providers_exhausted=True)

        return AIResolution(
            content=join_chunks(resolved_chunks),
            ai_chunks=ai_chunks,
            fallback_chunks=fallback_chunks,
            chunked=True,
        )

    async def _ask(self, prompt: str, body: str) -> Optional[str]:
        """Ask the orchestrator; None when every provider failed."""
        options = GenerationOptions(
            count=1,
            task="resolve",
            max_tokens=max(MIN_RESOLVE_TOKENS, estimate_tokens(body) * 2),
        )
        try:
            return await self.orchestrator.complete(prompt, options, preferred=self.preferred)
        except AllProvidersFailedError as e:
            logger.warning(f"AI conflict resolution unavailable: {e}")
            return None

    def _accept_or_fallback(self, path: str, body: str, answer: str) -> tuple[str, bool]:
        """Use the answer unless it is empty or still conflicted."""
        cleaned = clean_response(answer)
        if cleaned.strip() and not has_conflict_markers(cleaned):
            return _restore_trailing_newline(body, cleaned), False
        logger.info(f"{path}: AI answer unusable, falling back to prefer-theirs for this part")
        return replace_sections(body, take_theirs_or_nonempty), True
