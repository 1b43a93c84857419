"""
RuleBasedActivationEngine - default activation engine (activation-1.0)

Pipeline per call:

    extract_signals → select (rules + skills) → filter_lifecycle
        → resolve_conflicts → truncate(limit(task_scope))
    extract_signals → route (agents)
    → Selection

Every step is a pure transformation over the RuleIndex snapshot; nothing
here performs I/O or mutates the catalog.
"""

import logging
from datetime import date

from activation_engine.agent_router import route
from activation_engine.config import PolicyConfig
from activation_engine.models import Category, RoutingState, Selection, WorkContext
from activation_engine.routing_engine import (
    ActivationEngine,
    FeatureSpec,
    register_engine,
    set_default_engine,
)
from activation_engine.rule_index import RuleIndex
from activation_engine.selector import shortlist, truncate
from activation_engine.signals import extract_signals

logger = logging.getLogger(__name__)

ENGINE_VERSION = "activation-1.0"

# Units injected into the prompt; agents are chosen separately by the router
SELECTABLE_CATEGORIES = {Category.RULE, Category.SKILL}


@register_engine(ENGINE_VERSION)
class RuleBasedActivationEngine(ActivationEngine):
    """
    Trigger-table activation engine.

    Features:
        - keyword_hit_bonus: add the number of fired keyword triggers to a score
        - deprecation_penalty: scale deprecated unit scores by deprecated_factor
    """

    def __init__(
        self,
        index: RuleIndex,
        policy: PolicyConfig | None = None,
        features: dict | None = None,
    ):
        super().__init__(index, policy)
        self.features = {**self.get_default_features(), **(features or {})}
        feature_str = ", ".join(f"{k}={v}" for k, v in self.features.items())
        logger.info(
            f"RuleBasedActivationEngine initialized (version: {self.version}, "
            f"units: {len(index)}, features: {feature_str})"
        )

    @property
    def version(self) -> str:
        return ENGINE_VERSION

    @property
    def description(self) -> str:
        return "Trigger tables with weighted scoring, exclusion groups and lifecycle gating"

    @classmethod
    def get_available_features(cls) -> list[FeatureSpec]:
        return [
            FeatureSpec(
                name="keyword_hit_bonus",
                description="Add fired keyword trigger count to candidate scores",
                default=True,
                category="scoring",
            ),
            FeatureSpec(
                name="deprecation_penalty",
                description="Scale deprecated unit scores by policy.deprecated_factor",
                default=True,
                category="scoring",
            ),
        ]

    def classify(
        self,
        context: WorkContext,
        as_of: date | None = None,
        policy: PolicyConfig | None = None,
    ) -> Selection:
        """Select units and a primary agent for one work context."""
        as_of = as_of or date.today()
        policy = policy or self.policy
        keyword_hit_bonus = self.features["keyword_hit_bonus"]
        deprecation_penalty = self.features["deprecation_penalty"]

        signals = extract_signals(context, self.index)

        ranked, rejected = shortlist(
            signals,
            self.index,
            policy,
            as_of,
            categories=SELECTABLE_CATEGORIES,
            keyword_hit_bonus=keyword_hit_bonus,
            deprecation_penalty=deprecation_penalty,
        )
        kept, overflow = truncate(ranked, context.task_scope, policy)
        rejected.update(overflow)

        decision = route(
            signals,
            self.index,
            policy,
            as_of,
            keyword_hit_bonus=keyword_hit_bonus,
            deprecation_penalty=deprecation_penalty,
        )
        for unit_id, reason in decision.rejected.items():
            rejected.setdefault(unit_id, reason)

        scores = {c.id: c.score for c in kept}
        for candidate in decision.candidates:
            scores.setdefault(candidate.id, candidate.score)

        selection = Selection(
            ordered_units=[c.id for c in kept],
            chosen_agent=decision.agent_id,
            ambiguous=decision.agent_id is None,
            routing_state=decision.state,
            rejected=rejected,
            scores=scores,
        )
        logger.debug(
            f"Classified ({context.task_scope.value}): units={selection.ordered_units}, "
            f"agent={selection.chosen_agent}, state={selection.routing_state.value}"
        )
        if selection.routing_state == RoutingState.AMBIGUOUS and not signals.empty:
            logger.debug("Signals fired but no agent cleared the routing threshold")
        return selection


set_default_engine(ENGINE_VERSION)
