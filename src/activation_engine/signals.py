"""
Signal Extractors

One matcher per trigger kind. Each matcher looks at exactly one field of
the WorkContext, so the three signal sets are independent:

- file_extension: exact match against touched_extensions
- project_marker: (file, key) presence; keyless triggers fire on the file alone
- keyword: substring search of request_text, case-insensitive by default

Overlapping keywords ("test" inside "testing") are each reported; dedup
happens downstream by unit id.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from activation_engine.models import TriggerKind, TriggerSpec, WorkContext
from activation_engine.rule_index import RuleIndex

logger = logging.getLogger(__name__)


class TriggerMatcher(ABC):
    """Matches triggers of a single kind against a work context."""

    kind: TriggerKind

    @abstractmethod
    def matches(self, trigger: TriggerSpec, context: WorkContext) -> bool:
        """Whether this trigger fires for the context."""
        pass

    def extract(
        self, context: WorkContext, triggers: tuple[TriggerSpec, ...]
    ) -> tuple[TriggerSpec, ...]:
        """Return the triggers that fire, preserving input order."""
        return tuple(t for t in triggers if self.matches(t, context))


class ExtensionMatcher(TriggerMatcher):
    kind = TriggerKind.FILE_EXTENSION

    def matches(self, trigger: TriggerSpec, context: WorkContext) -> bool:
        return trigger.pattern in context.touched_extensions


class MarkerMatcher(TriggerMatcher):
    kind = TriggerKind.PROJECT_MARKER

    def matches(self, trigger: TriggerSpec, context: WorkContext) -> bool:
        filename, key = trigger.marker
        if key is not None:
            return (filename, key) in context.project_markers
        # A keyed marker implies the file exists
        return any(name == filename for name, _ in context.project_markers)


class KeywordMatcher(TriggerMatcher):
    kind = TriggerKind.KEYWORD

    def matches(self, trigger: TriggerSpec, context: WorkContext) -> bool:
        if not trigger.pattern:
            return False
        if trigger.case_sensitive:
            return trigger.pattern in context.request_text
        return trigger.pattern.lower() in context.request_text.lower()


MATCHERS: dict[TriggerKind, TriggerMatcher] = {
    matcher.kind: matcher
    for matcher in (ExtensionMatcher(), MarkerMatcher(), KeywordMatcher())
}


@dataclass(frozen=True)
class SignalSet:
    """Triggers that fired for one work context, grouped by kind."""

    extensions: tuple[TriggerSpec, ...] = ()
    markers: tuple[TriggerSpec, ...] = ()
    keywords: tuple[TriggerSpec, ...] = ()

    def by_kind(self) -> dict[TriggerKind, tuple[TriggerSpec, ...]]:
        return {
            TriggerKind.PROJECT_MARKER: self.markers,
            TriggerKind.FILE_EXTENSION: self.extensions,
            TriggerKind.KEYWORD: self.keywords,
        }

    @property
    def empty(self) -> bool:
        return not (self.extensions or self.markers or self.keywords)

    def to_dict(self) -> dict:
        return {
            "extensions": [t.pattern for t in self.extensions],
            "markers": [t.pattern for t in self.markers],
            "keywords": [t.pattern for t in self.keywords],
        }


def extract_signals(context: WorkContext, index: RuleIndex) -> SignalSet:
    """Run every extractor against the triggers the index knows about."""
    if not context.request_text.strip():
        logger.debug("Empty request text, keyword signals absent")

    fired = {
        kind: matcher.extract(context, index.triggers(kind))
        for kind, matcher in MATCHERS.items()
    }
    signals = SignalSet(
        extensions=fired[TriggerKind.FILE_EXTENSION],
        markers=fired[TriggerKind.PROJECT_MARKER],
        keywords=fired[TriggerKind.KEYWORD],
    )
    logger.debug(f"Extracted signals: {signals.to_dict()}")
    return signals
