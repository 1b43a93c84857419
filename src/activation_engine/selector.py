"""
Classifier/Selector

Turns fired triggers into scored candidates:

    score = priority * priority_multiplier
            + trigger_kind_weight        (strongest kind that fired)
            + keyword_hit_count          (keyword triggers that fired)

Ranking is descending score with catalog declaration order breaking ties,
so identical inputs always produce identical output. Truncation to the
scope limit happens after lifecycle filtering and conflict resolution so
that dropping a unit promotes the next-ranked candidate.
"""

import logging
from datetime import date
from typing import Iterable

from activation_engine.config import PolicyConfig
from activation_engine.conflicts import resolve_conflicts
from activation_engine.lifecycle import filter_lifecycle
from activation_engine.models import Candidate, Category, TaskScope, TriggerKind
from activation_engine.rule_index import RuleIndex
from activation_engine.signals import SignalSet

logger = logging.getLogger(__name__)

REJECT_OVER_LIMIT = "over_limit"


def score_candidate(
    candidate: Candidate, policy: PolicyConfig, keyword_hit_bonus: bool = True
) -> float:
    """Score a candidate from its declared priority and fired trigger kinds."""
    kind_weight = max((policy.weights.get(k, 0) for k in candidate.kinds), default=0)
    score = candidate.unit.priority * policy.priority_multiplier + kind_weight
    if keyword_hit_bonus:
        score += candidate.keyword_hits
    return float(score)


def rank(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Sort by score descending, declaration order ascending."""
    return sorted(candidates, key=lambda c: c.sort_key())


def select(
    signals: SignalSet,
    index: RuleIndex,
    policy: PolicyConfig,
    categories: set[Category] | None = None,
    keyword_hit_bonus: bool = True,
) -> list[Candidate]:
    """
    Union the units fired by every signal and score them.

    Args:
        signals: Output of extract_signals()
        index: Catalog snapshot
        policy: Scoring policy
        categories: Restrict candidates to these categories (None = all)
        keyword_hit_bonus: Add keyword hit count to the score

    Returns:
        Ranked candidate list (not truncated)
    """
    candidates: dict[str, Candidate] = {}

    for kind, fired in signals.by_kind().items():
        for trigger in fired:
            for unit_id in index.lookup(trigger):
                unit = index.get_unit(unit_id)
                if categories is not None and unit.category not in categories:
                    continue
                candidate = candidates.get(unit_id)
                if candidate is None:
                    candidate = Candidate(unit=unit, order=index.order_of(unit_id))
                    candidates[unit_id] = candidate
                candidate.kinds.add(kind)
                if kind == TriggerKind.KEYWORD:
                    candidate.keyword_hits += 1

    for candidate in candidates.values():
        candidate.score = score_candidate(candidate, policy, keyword_hit_bonus)

    return rank(candidates.values())


def shortlist(
    signals: SignalSet,
    index: RuleIndex,
    policy: PolicyConfig,
    as_of: date,
    categories: set[Category] | None = None,
    keyword_hit_bonus: bool = True,
    deprecation_penalty: bool = True,
) -> tuple[list[Candidate], dict[str, str]]:
    """
    Score, lifecycle-filter and conflict-resolve candidates.

    Lifecycle runs before conflict resolution so that a replacement always
    displaces its deprecated predecessor and halved scores are what the
    exclusion tie-break sees.

    Returns:
        (ranked survivors, rejected id -> reason)
    """
    ranked = select(signals, index, policy, categories, keyword_hit_bonus)
    kept, rejected = filter_lifecycle(
        ranked, as_of, policy.deprecated_factor if deprecation_penalty else 1.0
    )
    kept, superseded = resolve_conflicts(kept, index)
    rejected.update(superseded)
    return kept, rejected


def truncate(
    ranked: list[Candidate], scope: TaskScope, policy: PolicyConfig
) -> tuple[list[Candidate], dict[str, str]]:
    """
    Apply the scope's load limit.

    Returns:
        (kept, rejected) where rejected maps overflow ids to "over_limit"
    """
    limit = policy.limit(scope)
    if limit is None:
        return list(ranked), {}
    kept = ranked[:limit]
    rejected = {c.id: REJECT_OVER_LIMIT for c in ranked[limit:]}
    if rejected:
        logger.debug(f"Load limit {limit} ({scope.value}) dropped {list(rejected)}")
    return kept, rejected
