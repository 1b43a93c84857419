"""
Activation Engine Models - Data classes for catalog units and classification.

TriggerSpec is a tagged union discriminated by ``kind``; each kind has its
own matcher in ``signals``. All catalog types are frozen so a loaded
snapshot can be shared between callers without copying.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class Category(str, Enum):
    """Kind of content unit."""

    RULE = "rule"
    SKILL = "skill"
    AGENT = "agent"


class TriggerKind(str, Enum):
    """Signal source a trigger listens to."""

    FILE_EXTENSION = "file_extension"
    PROJECT_MARKER = "project_marker"
    KEYWORD = "keyword"


class LifecycleState(str, Enum):
    """Deprecation policy state: active -> deprecated -> removed."""

    ACTIVE = "active"
    DEPRECATED = "deprecated"
    REMOVED = "removed"


class TaskScope(str, Enum):
    """Breadth of the current task; selects the load-limit tier."""

    SINGLE_FILE = "single_file"
    FEATURE = "feature"
    MULTI_FILE = "multi_file"
    ARCHITECTURE = "architecture"


class RoutingState(str, Enum):
    """Terminal state of the agent router."""

    CLEAR = "clear"
    MULTI_DOMAIN = "multi_domain"
    AMBIGUOUS = "ambiguous"


def normalize_extension(value: str) -> str:
    """Lowercase an extension and make sure it has a leading dot."""
    value = value.strip().lower()
    if value and not value.startswith("."):
        value = f".{value}"
    return value


def split_marker(pattern: str) -> tuple[str, str | None]:
    """Split ``file[:key]`` into (filename, key)."""
    filename, sep, key = pattern.partition(":")
    filename = filename.strip()
    key = key.strip() if sep else ""
    return filename, (key or None)


@dataclass(frozen=True)
class TriggerSpec:
    """Declarative activation condition."""

    kind: TriggerKind
    pattern: str
    case_sensitive: bool = False

    @classmethod
    def file_extension(cls, pattern: str) -> "TriggerSpec":
        return cls(TriggerKind.FILE_EXTENSION, normalize_extension(pattern))

    @classmethod
    def project_marker(cls, filename: str, key: str | None = None) -> "TriggerSpec":
        pattern = f"{filename}:{key}" if key else filename
        return cls(TriggerKind.PROJECT_MARKER, pattern)

    @classmethod
    def keyword(cls, pattern: str, case_sensitive: bool = False) -> "TriggerSpec":
        return cls(TriggerKind.KEYWORD, pattern, case_sensitive)

    @property
    def marker(self) -> tuple[str, str | None]:
        """(filename, key) for project_marker triggers."""
        return split_marker(self.pattern)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.pattern}"


@dataclass(frozen=True)
class Lifecycle:
    """Lifecycle declaration of a unit."""

    state: LifecycleState = LifecycleState.ACTIVE
    sunset_date: date | None = None
    replacement_id: str | None = None

    def effective(self, as_of: date) -> LifecycleState:
        """
        Resolve the state as of a date.

        A deprecated unit past its sunset date is treated as removed. The
        stored declaration never changes; only the answer depends on as_of.
        """
        if (
            self.state == LifecycleState.DEPRECATED
            and self.sunset_date is not None
            and as_of > self.sunset_date
        ):
            return LifecycleState.REMOVED
        return self.state


@dataclass(frozen=True)
class ContentUnit:
    """A rule, skill or agent descriptor."""

    id: str
    category: Category
    triggers: tuple[TriggerSpec, ...] = ()
    priority: int = 0
    lifecycle: Lifecycle = field(default_factory=Lifecycle)
    loaded_by: str | None = None  # skills only, informational
    domain: str | None = None
    description: str = ""
    always_active: bool = False
    source: str = ""

    @property
    def lifecycle_state(self) -> LifecycleState:
        return self.lifecycle.state

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "category": self.category.value,
            "priority": self.priority,
            "domain": self.domain,
            "description": self.description,
            "lifecycle_state": self.lifecycle.state.value,
            "sunset_date": self.lifecycle.sunset_date.isoformat()
            if self.lifecycle.sunset_date
            else None,
            "replacement_id": self.lifecycle.replacement_id,
            "loaded_by": self.loaded_by,
            "always_active": self.always_active,
            "triggers": [str(t) for t in self.triggers],
            "source": self.source,
        }


@dataclass(frozen=True)
class ExclusionGroup:
    """Units of which at most one may be selected together."""

    group_id: str
    member_unit_ids: tuple[str, ...]
    category: Category | None = None


@dataclass(frozen=True)
class WorkContext:
    """Input to a single classification call."""

    touched_extensions: frozenset[str] = frozenset()
    project_markers: frozenset[tuple[str, str | None]] = frozenset()
    request_text: str = ""
    task_scope: TaskScope = TaskScope.FEATURE


@dataclass
class Candidate:
    """A scored unit moving through the selection pipeline."""

    unit: ContentUnit
    order: int  # catalog declaration order
    kinds: set[TriggerKind] = field(default_factory=set)
    keyword_hits: int = 0
    score: float = 0.0

    @property
    def id(self) -> str:
        return self.unit.id

    def sort_key(self) -> tuple[float, int]:
        return (-self.score, self.order)


@dataclass
class Selection:
    """Classification output."""

    ordered_units: list[str] = field(default_factory=list)
    chosen_agent: str | None = None
    ambiguous: bool = True
    routing_state: RoutingState = RoutingState.AMBIGUOUS
    rejected: dict[str, str] = field(default_factory=dict)
    scores: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dict with stable ordering."""
        return {
            "ordered_units": list(self.ordered_units),
            "chosen_agent": self.chosen_agent,
            "ambiguous": self.ambiguous,
            "routing_state": self.routing_state.value,
            "rejected": dict(self.rejected),
            "scores": dict(self.scores),
        }
