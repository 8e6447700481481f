"""
Prompt construction and response parsing for commit-message generation.
"""

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .base import GenerationOptions


LANGUAGES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "zh": "Chinese",
    "ja": "Japanese",
}

MIN_MESSAGE_LENGTH = 10
MAX_MESSAGE_LENGTH = 200
LONG_LINE_CHARS = 500

_BINARY = re.compile(r"^Binary files? .* differ$", re.MULTILINE)

_NEW_FUNCTION = re.compile(
    r"^\+.*?(?:\bfunction\s+(\w+)|\bdef\s+(\w+)"
    r"|\bconst\s+(\w+)\s*=\s*(?:async\s+)?\([^)]*\)\s*=>)",
    re.MULTILINE,
)
_NEW_CLASS = re.compile(r"^\+.*?\bclass\s+(\w+)", re.MULTILINE)

AREA_PATTERNS = {
    "authentication": re.compile(r"auth|login|session|jwt|password|token", re.IGNORECASE),
    "api endpoints": re.compile(r"\bapi\b|endpoint|route|controller|handler", re.IGNORECASE),
    "database": re.compile(r"database|\bdb\b|schema|migration|\bsql\b|query", re.IGNORECASE),
    "configuration": re.compile(r"config|\benv\b|setting|environment", re.IGNORECASE),
    "testing": re.compile(r"\btest|\bspec\b|mock|fixture|pytest|jest", re.IGNORECASE),
    "dependencies": re.compile(r"package\.json|requirements|pyproject|dependency", re.IGNORECASE),
    "error handling": re.compile(r"error|exception|\btry\b|catch|raise|throw", re.IGNORECASE),
}

_NUMBERING = re.compile(r"^\d+[.)]\s*")
_BULLET = re.compile(r"^[-*]\s+")
_QUOTES = re.compile(r"^[\"'`]+|[\"'`]+$")

EXAMPLES = [
    "feat(auth): add JWT token validation middleware",
    "fix(database): resolve null pointer in User.find_by_id",
    "refactor(utils): extract password hashing into separate function",
]


def preprocess_diff(diff: str) -> str:
    """Collapse binary notices and truncate pathological lines."""
    processed = _BINARY.sub("[Binary file modified]", diff)
    lines = []
    for line in processed.split("\n"):
        if len(line) >= LONG_LINE_CHARS:
            if "import" in line or "require" in line:
                line = line[:200] + "... [import statement truncated]"
            elif "function" in line or "class" in line or "def " in line:
                line = line[:250] + "... [function/class truncated]"
            else:
                line = "[Long line truncated]"
        lines.append(line)
    return "\n".join(lines)


def analyze_diff(diff: str) -> dict:
    """
    Extract coarse insights from a diff.

    Returns:
        dict with new_functions, new_classes, affected_areas, likely_purpose
    """
    added = "\n".join(l for l in diff.split("\n") if l.startswith("+") and not l.startswith("+++"))

    new_functions = []
    for match in _NEW_FUNCTION.finditer(diff):
        name = next((g for g in match.groups() if g), None)
        if name and name not in new_functions:
            new_functions.append(name)

    new_classes = []
    for match in _NEW_CLASS.finditer(diff):
        if match.group(1) not in new_classes:
            new_classes.append(match.group(1))

    affected = [area for area, pattern in AREA_PATTERNS.items() if pattern.search(added)]

    purpose = None
    if new_classes or new_functions:
        purpose = "introduce new functionality"
    elif "testing" in affected:
        purpose = "improve test coverage"
    elif "dependencies" in affected:
        purpose = "update dependencies"
    elif "error handling" in affected:
        purpose = "improve error handling"

    return {
        "new_functions": new_functions[:5],
        "new_classes": new_classes[:5],
        "affected_areas": affected,
        "likely_purpose": purpose,
    }


def build_commit_prompt(diff: str, options: "GenerationOptions") -> str:
    """Build the commit-message prompt for one diff (or diff chunk)."""
    count = options.count
    language = LANGUAGES.get(options.language, "English")
    lines = [
        "You are an expert software developer. Analyze the git diff and generate "
        f"exactly {count} precise, relevant commit messages in {language}.",
        "",
        "REQUIREMENTS:",
        "- Be SPECIFIC about what changed (use exact function/class names)",
        "- Focus on the PRIMARY purpose of the changes",
        '- Use active, imperative voice ("Add X" not "Added X")',
        "- Maximum 72 characters per message",
        '- NO generic terms like "updates", "various", "stuff"',
        "- Each message must be unique",
    ]

    if options.total_chunks and options.total_chunks > 1:
        position = "first" if options.is_first_chunk else "last" if options.is_last_chunk else "middle"
        lines += [
            "",
            "CHUNKING CONTEXT:",
            f"- This is chunk {options.chunk_index + 1} of {options.total_chunks} ({position} position)",
            "- Focus only on changes in this chunk",
        ]
        chunk_context = options.chunk_context
        if chunk_context is not None:
            if chunk_context.files:
                lines.append(f"- Files in this chunk: {', '.join(chunk_context.files)}")
            if chunk_context.functions:
                lines.append(f"- Key functions: {', '.join(chunk_context.functions)}")
            if chunk_context.classes:
                lines.append(f"- Key classes: {', '.join(chunk_context.classes)}")
            if not chunk_context.has_significant_changes:
                lines.append("- Note: this chunk contains minor/structural changes only")

    if options.conventional:
        lines += [
            "",
            "CONVENTIONAL COMMIT FORMAT:",
            "- Use format: type(scope): description",
            "- Types: feat, fix, docs, style, refactor, perf, test, chore, ci, build",
            "- Scope should be specific: api, ui, auth, db, config, utils, etc.",
            "- Description should be concise and in lowercase",
        ]

    if options.context:
        lines += ["", "REPOSITORY CONTEXT:"]
        for key, value in options.context.items():
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(v) for v in value)
            lines.append(f"- {key.replace('_', ' ').capitalize()}: {value}")

    analysis = analyze_diff(diff)
    insights = []
    if analysis["new_functions"]:
        insights.append(f"- New functions: {', '.join(analysis['new_functions'])}")
    if analysis["new_classes"]:
        insights.append(f"- New classes: {', '.join(analysis['new_classes'])}")
    if analysis["likely_purpose"]:
        insights.append(f"- Likely purpose: {analysis['likely_purpose']}")
    if analysis["affected_areas"]:
        insights.append(f"- Affected areas: {', '.join(analysis['affected_areas'])}")
    if insights:
        lines += ["", "DIFF ANALYSIS:", *insights]

    lines += [
        "",
        "GIT DIFF:",
        "```diff",
        preprocess_diff(diff),
        "```",
        "",
        "EXAMPLES OF GOOD MESSAGES:",
        *[f'- "{e}"' for e in EXAMPLES],
        "",
        f"Generate {count} commit messages. Put each message on its own line "
        "with no numbering or bullets:",
    ]
    return "\n".join(lines)


def is_valid_message(message: str) -> bool:
    """Length 10-200, single line, starts with a word character."""
    if not message:
        return False
    trimmed = message.strip()
    if not MIN_MESSAGE_LENGTH <= len(trimmed) <= MAX_MESSAGE_LENGTH:
        return False
    if "\n" in trimmed:
        return False
    return bool(re.match(r"^\w", trimmed))


def parse_candidates(response: str, count: int) -> list[str]:
    """
    Turn a raw completion into candidate commit messages.

    Strips numbering, bullets and surrounding quotes, drops invalid lines
    and caps the result at count.
    """
    candidates = []
    for raw in response.split("\n"):
        line = raw.strip()
        if not line or line.startswith("```"):
            continue
        line = _NUMBERING.sub("", line)
        line = _BULLET.sub("", line)
        line = _QUOTES.sub("", line).strip()
        if is_valid_message(line) and line not in candidates:
            candidates.append(line)
    return candidates[:count]
