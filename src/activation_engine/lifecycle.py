"""
Lifecycle Filter

Encodes the deprecation policy (announce -> warn -> deprecate -> remove) as
a pure function of the catalog declaration and an as-of date:

- removed: always dropped
- deprecated, past sunset_date: dropped ("deprecated")
- deprecated, replacement also a candidate: dropped ("replaced_by:<id>"),
  the replacement inheriting its score when that ranks it higher
- deprecated otherwise: kept with its score scaled by the penalty factor
"""

import logging
from dataclasses import replace
from datetime import date

from activation_engine.models import Candidate, LifecycleState

logger = logging.getLogger(__name__)

REJECT_REMOVED = "removed"
REJECT_DEPRECATED = "deprecated"
REPLACED_BY = "replaced_by"


def filter_lifecycle(
    candidates: list[Candidate], as_of: date, penalty_factor: float = 0.5
) -> tuple[list[Candidate], dict[str, str]]:
    """
    Drop or down-weight candidates by lifecycle state as of a date.

    Args:
        candidates: Ranked candidates
        as_of: Date the policy is evaluated at
        penalty_factor: Score multiplier for kept deprecated units

    Returns:
        (kept candidates re-ranked, rejected id -> reason)
    """
    rejected: dict[str, str] = {}
    alive: list[Candidate] = []

    for candidate in candidates:
        lifecycle = candidate.unit.lifecycle
        state = lifecycle.effective(as_of)
        if state == LifecycleState.REMOVED:
            if lifecycle.state == LifecycleState.DEPRECATED:
                logger.debug(
                    f"'{candidate.id}' sunset on {lifecycle.sunset_date}, dropping"
                )
                rejected[candidate.id] = REJECT_DEPRECATED
            else:
                rejected[candidate.id] = REJECT_REMOVED
            continue
        alive.append(candidate)

    alive_ids = {c.id for c in alive}
    by_id = {c.id: c for c in alive}
    inherited: dict[str, float] = {}
    kept: list[Candidate] = []
    for candidate in alive:
        lifecycle = candidate.unit.lifecycle
        if lifecycle.state != LifecycleState.DEPRECATED:
            kept.append(candidate)
            continue
        if lifecycle.replacement_id and lifecycle.replacement_id in alive_ids:
            rejected[candidate.id] = f"{REPLACED_BY}:{lifecycle.replacement_id}"
            heir = _final_replacement(lifecycle.replacement_id, by_id)
            inherited[heir] = max(inherited.get(heir, candidate.score), candidate.score)
            continue
        logger.info(
            f"'{candidate.id}' is deprecated"
            + (f" (sunset {lifecycle.sunset_date})" if lifecycle.sunset_date else "")
            + (f", use '{lifecycle.replacement_id}'" if lifecycle.replacement_id else "")
        )
        kept.append(replace(candidate, score=candidate.score * penalty_factor))

    # A replacement takes over the rank of the unit it displaced
    kept = [
        replace(c, score=inherited[c.id])
        if c.id in inherited and inherited[c.id] > c.score
        else c
        for c in kept
    ]
    kept.sort(key=lambda c: c.sort_key())
    return kept, rejected


def _final_replacement(unit_id: str, by_id: dict[str, Candidate]) -> str:
    """Follow replacement links through candidates that are themselves displaced."""
    seen = {unit_id}
    while True:
        lifecycle = by_id[unit_id].unit.lifecycle
        target = lifecycle.replacement_id
        if (
            lifecycle.state != LifecycleState.DEPRECATED
            or target not in by_id
            or target in seen
        ):
            return unit_id
        seen.add(target)
        unit_id = target
