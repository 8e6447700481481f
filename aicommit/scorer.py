"""
Message Scorer

Ranks candidate commit messages by a fixed quality heuristic and merges
candidate lists produced by several providers.

Scoring is additive. The conventional prefix and the overall length are
judged on the whole message; every other feature is judged on the
description after the prefix, so prefixing a message with a valid
``type(scope):`` never lowers any other part of its score.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

CONVENTIONAL_TYPES = (
    "feat", "fix", "docs", "style", "refactor", "test", "chore",
    "perf", "ci", "build", "revert",
)

_CONVENTIONAL = re.compile(
    r"^(?P<type>" + "|".join(CONVENTIONAL_TYPES) + r")"
    r"(?:\((?P<scope>[^()]+)\))?!?:\s*(?P<description>.*)$",
    re.DOTALL,
)

PREFIX_BONUS = 10
SCOPE_BONUS = 5
IDEAL_LENGTH_BONUS = 10
ACCEPTABLE_LENGTH_BONUS = 5
NO_PERIOD_BONUS = 2
SPECIFIC_TOKEN_BONUS = 3
GENERIC_PHRASE_PENALTY = 5
BARE_GENERIC_PENALTY = 8
SHORT_VAGUE_PENALTY = 3

CONSENSUS_BONUS = 15
PREFERRED_PROVIDER_BONUS = 5

SPECIFIC_PATTERNS = [
    re.compile(r"\b[A-Z][a-zA-Z0-9]*[a-z][a-zA-Z0-9]*\b"),   # identifiers, class names
    re.compile(r"\b\w+\(\)"),                                 # call syntax
    re.compile(
        r"\b(add|create|implement|remove|delete|rename|replace|extract|"
        r"handle|support|introduce|validate|move)\s+\w+",
        re.IGNORECASE,
    ),
    re.compile(r"\b(class|function|def|const|module|hook|middleware|endpoint)\s+\w+",
               re.IGNORECASE),
]

GENERIC_PATTERNS = [
    re.compile(r"\b(update|change|modify|fix|tweak)\s+(stuff|things?|code|files?)\b",
               re.IGNORECASE),
    re.compile(r"\bvarious\s+\w+", re.IGNORECASE),
    re.compile(r"\b(minor|small|some)\s+(changes?|updates?|fixes|tweaks?)\b",
               re.IGNORECASE),
    re.compile(r"\bmisc(ellaneous)?\b", re.IGNORECASE),
    re.compile(r"\bstuff\b", re.IGNORECASE),
]

BARE_GENERIC_WORDS = frozenset({
    "update", "updates", "change", "changes", "fix", "fixes", "wip",
    "stuff", "misc", "cleanup", "tweaks", "changed", "updated",
})

_CAPITALISED_IDENTIFIER = SPECIFIC_PATTERNS[0]


@dataclass
class ScoredCandidate:
    """A deduplicated candidate with its score and provenance."""
    message: str
    score: int
    contributing_providers: set[str] = field(default_factory=set)
    original_index: int = 0


def normalize(message: str) -> str:
    """Dedup key: trimmed, lowercased."""
    return message.strip().lower()


class MessageScorer:
    """Heuristic ranking of commit message candidates."""

    def score(self, message: str) -> int:
        """Score one message. Higher is better; may be negative."""
        text = message.strip()
        score = 0

        match = _CONVENTIONAL.match(text)
        if match:
            score += PREFIX_BONUS
            if match.group("scope"):
                score += SCOPE_BONUS
            description = match.group("description").strip()
        else:
            description = text

        length = len(text)
        if 15 <= length <= 72:
            score += IDEAL_LENGTH_BONUS
        elif 10 <= length <= 100:
            score += ACCEPTABLE_LENGTH_BONUS

        if not description.endswith("."):
            score += NO_PERIOD_BONUS

        for pattern in SPECIFIC_PATTERNS:
            if pattern.search(description):
                score += SPECIFIC_TOKEN_BONUS

        if description.lower().rstrip(".!") in BARE_GENERIC_WORDS:
            score -= BARE_GENERIC_PENALTY
        else:
            for pattern in GENERIC_PATTERNS:
                if pattern.search(description):
                    score -= GENERIC_PHRASE_PENALTY

        if len(description.split()) <= 3 and not _CAPITALISED_IDENTIFIER.search(description):
            score -= SHORT_VAGUE_PENALTY

        return score

    def select_best(self, messages: list[str], target_count: int) -> list[str]:
        """
        Deduplicate, score and return the top target_count messages.

        Ties keep the earliest original position.
        """
        candidates = self._dedupe(messages)
        for candidate in candidates:
            candidate.score = self.score(candidate.message)
        ranked = sorted(candidates, key=lambda c: (-c.score, c.original_index))
        return [c.message for c in ranked[:max(0, target_count)]]

    def rank_across_providers(
        self,
        per_provider: dict[str, list[str]],
        preferred_provider: Optional[str] = None,
    ) -> list[ScoredCandidate]:
        """
        Merge candidate lists from several providers into one ranking.

        A message produced by more than one provider earns a consensus
        bonus for each additional provider, plus a smaller bonus when the
        preferred provider is one of them.

        Args:
            per_provider: Provider name -> candidates, in provider order
            preferred_provider: Name of the default/preferred provider

        Returns:
            Candidates sorted by score (descending), ties by first appearance
        """
        by_key: dict[str, ScoredCandidate] = {}
        order = 0
        for provider, messages in per_provider.items():
            for message in messages:
                key = normalize(message)
                if not key:
                    continue
                if key not in by_key:
                    by_key[key] = ScoredCandidate(
                        message=message.strip(),
                        score=0,
                        original_index=order,
                    )
                    order += 1
                by_key[key].contributing_providers.add(provider)

        for candidate in by_key.values():
            providers = candidate.contributing_providers
            candidate.score = self.score(candidate.message)
            candidate.score += CONSENSUS_BONUS * (len(providers) - 1)
            if len(providers) > 1 and preferred_provider in providers:
                candidate.score += PREFERRED_PROVIDER_BONUS

        ranked = sorted(by_key.values(), key=lambda c: (-c.score, c.original_index))
        logger.debug(
            f"Ranked {len(ranked)} unique candidates from {len(per_provider)} providers"
        )
        return ranked

    def merge_across_providers(
        self,
        per_provider: dict[str, list[str]],
        target_count: int,
        preferred_provider: Optional[str] = None,
    ) -> list[str]:
        ranked = self.rank_across_providers(per_provider, preferred_provider)
        return [c.message for c in ranked[:max(0, target_count)]]

    def _dedupe(self, messages: list[str]) -> list[ScoredCandidate]:
        seen: set[str] = set()
        result: list[ScoredCandidate] = []
        for message in messages:
            key = normalize(message)
            if not key or key in seen:
                continue
            seen.add(key)
            result.append(ScoredCandidate(
                message=message.strip(), score=0, original_index=len(result)
            ))
        return result
