"""
Heuristic conflict resolution by file kind.

Rules:
- Lock files and dependency manifests keep ours
- Documentation takes theirs
- Structured config does a key-level merge favouring incoming (theirs) values
- Env/secret files do a key-level merge favouring local (ours) values
- Source code keeps the side with recognizable declarations, ours when
  both or neither side has them
- Anything else has no heuristic
"""

import fnmatch
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from .parser import (
    ConflictSection,
    has_conflict_markers,
    replace_sections,
    take_ours,
    take_theirs,
)

logger = logging.getLogger(__name__)


class FileKind(Enum):
    """Coarse file classification driving the heuristic rule."""
    LOCK = "lock"
    DOCUMENTATION = "documentation"
    ENV = "env"
    CONFIG = "config"
    SOURCE = "source"
    OTHER = "other"


LOCK_FILES = {
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml", "npm-shrinkwrap.json",
    "poetry.lock", "pipfile.lock", "cargo.lock", "gemfile.lock",
    "composer.lock", "go.sum", "uv.lock",
    # dependency manifests
    "package.json", "pipfile", "go.mod", "cargo.toml", "gemfile",
    "composer.json", "pyproject.toml",
}
LOCK_PATTERNS = ["requirements*.txt", "*.lock"]

ENV_PATTERNS = [".env", ".env.*", "*.env", "*secret*", "*credential*"]

DOC_EXTENSIONS = {".md", ".markdown", ".rst", ".txt", ".adoc"}
DOC_NAMES = {"readme", "changelog", "license", "contributing", "authors", "notice"}

CONFIG_EXTENSIONS = {".json", ".yaml", ".yml", ".toml", ".ini", ".cfg", ".conf", ".properties"}

SOURCE_EXTENSIONS = {
    ".py", ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".java", ".kt",
    ".go", ".rs", ".rb", ".php", ".c", ".h", ".cc", ".cpp", ".hpp", ".cs",
    ".swift", ".scala", ".sh", ".vue",
}

_DECLARATION = re.compile(
    r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?(?:"
    r"def\s+\w+|class\s+\w+|function\b|import\b|from\s+\S+\s+import\b"
    r"|(?:pub\s+)?fn\s+\w+|func\s+\w+|interface\s+\w+|struct\s+\w+"
    r"|(?:const|let|var)\s+\w+\s*=\s*(?:async\s*)?(?:function\b|\([^)]*\)\s*=>)"
    r"|(?:const|let|var)\s+\w+\s*=\s*require\("
    r")"
)

_KEY_VALUE = re.compile(
    r"""^(?P<indent>\s*)(?P<quote>["']?)(?P<key>[\w.\-/@$ ]+?)(?P=quote)\s*(?P<sep>[:=])\s*(?P<value>.*?)\s*$"""
)

POLICY_CHOOSERS = {"ours": take_ours, "theirs": take_theirs}


@dataclass
class HeuristicResult:
    """Outcome of the heuristic stage for one file."""
    kind: FileKind
    content: Optional[str] = None
    rule: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.content is not None and not has_conflict_markers(self.content)


def classify_file(path: str) -> FileKind:
    """Classify a path by name and extension."""
    pure = PurePosixPath(path.replace("\\", "/"))
    name = pure.name.lower()
    suffix = pure.suffix.lower()

    if name in LOCK_FILES or any(fnmatch.fnmatch(name, p) for p in LOCK_PATTERNS):
        return FileKind.LOCK
    # Name-based env patterns must not catch code such as secret_store.py
    if suffix in SOURCE_EXTENSIONS:
        return FileKind.SOURCE
    if any(fnmatch.fnmatch(name, p) for p in ENV_PATTERNS):
        return FileKind.ENV
    if suffix in DOC_EXTENSIONS or pure.stem.lower() in DOC_NAMES or "docs" in pure.parts[:-1]:
        return FileKind.DOCUMENTATION
    if suffix in CONFIG_EXTENSIONS:
        return FileKind.CONFIG
    return FileKind.OTHER


def has_declaration(lines: list[str]) -> bool:
    """True if any line looks like a function/class/import declaration."""
    return any(_DECLARATION.match(line) for line in lines)


def prefer_declarations(section: ConflictSection) -> list[str]:
    """Keep the side with declarations; ours when both or neither have them."""
    if has_declaration(section.theirs_lines) and not has_declaration(section.ours_lines):
        return take_theirs(section)
    return take_ours(section)


def _parse_entries(lines: list[str]) -> Optional[list[tuple[str, str]]]:
    """(key, line) pairs, or None if any non-blank line is not key/value."""
    entries: list[tuple[str, str]] = []
    seen: set[str] = set()
    for line in lines:
        if not line.strip():
            continue
        match = _KEY_VALUE.match(line)
        if not match:
            return None
        key = match.group("indent") + match.group("key").strip()
        if key in seen:
            return None
        seen.add(key)
        entries.append((key, line))
    return entries


def key_level_merge(section: ConflictSection, favour: str = "theirs") -> list[str]:
    """
    Merge two sides of a config section key by key.

    Keys from both sides are kept; the favoured side wins on clashes and
    sets the order, with keys only on the other side appended. If either
    side has lines that are not key/value pairs, the favoured side is
    taken wholesale.

    Args:
        section: Conflict section
        favour: "theirs" or "ours"
    """
    if favour == "ours":
        primary, secondary = section.ours_lines, section.theirs_lines
    else:
        primary, secondary = section.theirs_lines, section.ours_lines

    primary_entries = _parse_entries(primary)
    secondary_entries = _parse_entries(secondary)
    if primary_entries is None or secondary_entries is None:
        return list(primary)

    primary_keys = {key for key, _ in primary_entries}
    merged = [line for _, line in primary_entries]
    merged += [line for key, line in secondary_entries if key not in primary_keys]

    if any(line.rstrip().endswith(",") for line in primary + secondary) or _is_json_style(primary + secondary):
        merged = _normalise_trailing_commas(merged, primary)
    return merged


def _is_json_style(lines: list[str]) -> bool:
    """True if every entry is a double-quoted key with a colon separator."""
    matches = [_KEY_VALUE.match(l) for l in lines if l.strip()]
    return bool(matches) and all(
        m is not None and m.group("quote") == "\"" and m.group("sep") == ":" for m in matches
    )


def _normalise_trailing_commas(lines: list[str], primary: list[str]) -> list[str]:
    """JSON style: comma after every entry; the last keeps the favoured side's."""
    non_blank = [l for l in primary if l.strip()]
    last_has_comma = bool(non_blank) and non_blank[-1].rstrip().endswith(",")
    result = []
    for i, line in enumerate(lines):
        stripped = line.rstrip()
        if stripped.endswith(","):
            stripped = stripped[:-1]
        if i < len(lines) - 1 or last_has_comma:
            stripped += ","
        result.append(stripped)
    return result


def _merge_favouring(favour: str):
    def chooser(section: ConflictSection) -> list[str]:
        return key_level_merge(section, favour)
    return chooser


KIND_RULES = {
    FileKind.LOCK: ("ours", take_ours),
    FileKind.DOCUMENTATION: ("theirs", take_theirs),
    FileKind.CONFIG: ("key-merge-theirs", _merge_favouring("theirs")),
    FileKind.ENV: ("key-merge-ours", _merge_favouring("ours")),
    FileKind.SOURCE: ("declarations", prefer_declarations),
}


def apply_heuristic(
    path: str,
    content: str,
    context_lines: int = 3,
    policy: Optional[str] = None,
) -> HeuristicResult:
    """
    Resolve every conflict section of a file by its kind.

    Args:
        path: File path (used for classification)
        content: Conflicted content
        context_lines: Context kept per section
        policy: User file policy; "ours"/"theirs" override classification

    Returns:
        HeuristicResult; resolved is False when no rule applied or markers remain
    """
    kind = classify_file(path)

    if policy in POLICY_CHOOSERS:
        rule, chooser = f"policy-{policy}", POLICY_CHOOSERS[policy]
    elif policy == "manual":
        logger.info(f"{path}: file policy requires manual resolution")
        return HeuristicResult(kind=kind)
    elif kind in KIND_RULES:
        rule, chooser = KIND_RULES[kind]
    else:
        logger.debug(f"{path}: no heuristic for file kind {kind.value}")
        return HeuristicResult(kind=kind)

    resolved = replace_sections(content, chooser, context_lines)
    logger.debug(f"{path}: applied heuristic rule '{rule}' ({kind.value})")
    return HeuristicResult(kind=kind, content=resolved, rule=rule)
