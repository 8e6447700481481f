"""
Merge conflict resolution.

Parser for conflict markers, file-kind heuristics, the AI-assisted stage
and the pipeline that runs them in order.
"""

from .parser import (
    ConflictSection,
    has_conflict_markers,
    parse_conflict_sections,
    replace_sections,
    take_ours,
    take_theirs,
    take_theirs_or_nonempty,
)
from .heuristics import FileKind, HeuristicResult, apply_heuristic, classify_file
from .ai_resolver import AIConflictResolver, AIResolution
from .pipeline import (
    ConflictContext,
    ConflictResolutionPipeline,
    ResolutionOutcome,
    ResolutionStrategyName,
    ResolveAllResult,
    ai_strategy,
    format_escalation,
    heuristic_strategy,
    manual_strategy,
)

__all__ = [
    "ConflictSection",
    "has_conflict_markers",
    "parse_conflict_sections",
    "replace_sections",
    "take_ours",
    "take_theirs",
    "take_theirs_or_nonempty",
    "FileKind",
    "HeuristicResult",
    "apply_heuristic",
    "classify_file",
    "AIConflictResolver",
    "AIResolution",
    "ConflictContext",
    "ConflictResolutionPipeline",
    "ResolutionOutcome",
    "ResolutionStrategyName",
    "ResolveAllResult",
    "ai_strategy",
    "format_escalation",
    "heuristic_strategy",
    "manual_strategy",
]
