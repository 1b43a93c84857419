"""
Agent Router

Maps the same signals to a single primary agent. One pass, no retries:

    Clear        exactly one agent clears min_confidence and no other agent
                 is within tie_margin of it -> that agent
    MultiDomain  agents from two or more domains clear min_confidence
                 -> the catalog's coordinator agent
    Ambiguous    anything else -> None, caller should ask for clarification

Agents go through the same score / lifecycle / exclusion pipeline as rules,
so e.g. laravel-specialist can supersede backend-specialist before the
decision is made.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from activation_engine.config import PolicyConfig
from activation_engine.models import Candidate, Category, RoutingState
from activation_engine.rule_index import RuleIndex
from activation_engine.selector import shortlist
from activation_engine.signals import SignalSet

logger = logging.getLogger(__name__)


@dataclass
class RouteDecision:
    """Result of routing one work context."""

    agent_id: str | None
    state: RoutingState
    candidates: list[Candidate] = field(default_factory=list)
    rejected: dict[str, str] = field(default_factory=dict)

    @property
    def ambiguous(self) -> bool:
        return self.agent_id is None


def _domain(candidate: Candidate) -> str:
    return candidate.unit.domain or candidate.id


def decide(
    ranked: list[Candidate], policy: PolicyConfig, coordinator: str | None
) -> tuple[str | None, RoutingState]:
    """
    Pick the routing state from ranked agent candidates.

    Args:
        ranked: Agent candidates after lifecycle and exclusion filtering
        policy: Provides min_confidence and tie_margin
        coordinator: Agent id returned for MultiDomain

    Returns:
        (agent id or None, routing state)
    """
    clearing = [c for c in ranked if c.score >= policy.min_confidence]

    if len(clearing) == 1:
        top = clearing[0]
        contenders = [
            c for c in ranked if c is not top and c.score >= top.score - policy.tie_margin
        ]
        if not contenders:
            return top.id, RoutingState.CLEAR

    domains = {_domain(c) for c in clearing}
    if len(domains) >= 2:
        if coordinator is None:
            logger.warning(
                f"Signals span domains {sorted(domains)} but the catalog declares "
                f"no coordinator; routing is ambiguous"
            )
            return None, RoutingState.AMBIGUOUS
        return coordinator, RoutingState.MULTI_DOMAIN

    return None, RoutingState.AMBIGUOUS


def route(
    signals: SignalSet,
    index: RuleIndex,
    policy: PolicyConfig,
    as_of: date,
    keyword_hit_bonus: bool = True,
    deprecation_penalty: bool = True,
) -> RouteDecision:
    """Route signals to a primary agent (see module docstring)."""
    ranked, rejected = shortlist(
        signals,
        index,
        policy,
        as_of,
        categories={Category.AGENT},
        keyword_hit_bonus=keyword_hit_bonus,
        deprecation_penalty=deprecation_penalty,
    )
    agent_id, state = decide(ranked, policy, index.coordinator)
    logger.debug(
        f"Agent routing: state={state.value}, agent={agent_id}, "
        f"candidates={[(c.id, c.score) for c in ranked]}"
    )
    return RouteDecision(agent_id=agent_id, state=state, candidates=ranked, rejected=rejected)
