"""
Conflict Resolver

Keeps at most one member of each declared exclusion group. The winner is
the highest-ranked surviving member (score, then declaration order); the
others are rejected as superseded_by:<winner>. Groups are processed in
declaration order, and a unit already superseded by an earlier group does
not compete in later ones.
"""

import logging

from activation_engine.models import Candidate
from activation_engine.rule_index import RuleIndex

logger = logging.getLogger(__name__)

SUPERSEDED_BY = "superseded_by"


def resolve_conflicts(
    ranked: list[Candidate], index: RuleIndex
) -> tuple[list[Candidate], dict[str, str]]:
    """
    Remove all but one member of each exclusion group.

    Args:
        ranked: Candidates sorted by sort_key()
        index: Catalog snapshot holding the exclusion groups

    Returns:
        (surviving candidates in rank order, rejected id -> reason)
    """
    position = {c.id: i for i, c in enumerate(ranked)}
    rejected: dict[str, str] = {}

    for group in index.groups_for(position):
        present = sorted(
            (m for m in group.member_unit_ids if m in position and m not in rejected),
            key=position.__getitem__,
        )
        if len(present) < 2:
            continue
        winner, losers = present[0], present[1:]
        for loser in losers:
            rejected[loser] = f"{SUPERSEDED_BY}:{winner}"
        logger.debug(f"Exclusion group '{group.group_id}': {winner} over {losers}")

    return [c for c in ranked if c.id not in rejected], rejected
