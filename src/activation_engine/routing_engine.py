"""Activation Engine Abstract Interface

Host (IDE hook, MCP client, CLI) -> WorkContext -> ActivationEngine -> Selection

Engines are registered by version so scoring and routing can change without
touching the host-facing layers.

Versions:
    - activation-1.0: Trigger tables, weighted scoring, exclusion groups,
      date-gated lifecycle and domain-based agent routing
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import date
from typing import Dict, List, Any, Optional

from activation_engine.config import ConfigurationError, PolicyConfig
from activation_engine.models import Selection, WorkContext
from activation_engine.rule_index import RuleIndex


@dataclass(frozen=True)
class FeatureSpec:
    """A toggle an engine exposes under ``engine.features`` in config."""

    name: str
    description: str
    default: bool = True
    category: str = "general"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ActivationEngine(ABC):
    """
    Base class for activation engines.

    Attributes:
        index: RuleIndex snapshot the engine classifies against
        policy: PolicyConfig used when a call passes none
    """

    def __init__(self, index: RuleIndex, policy: Optional[PolicyConfig] = None):
        self.index = index
        self.policy = policy or PolicyConfig()

    @abstractmethod
    def classify(
        self,
        context: WorkContext,
        as_of: Optional[date] = None,
        policy: Optional[PolicyConfig] = None,
    ) -> Selection:
        """
        Select content units and a primary agent for a work context.

        Args:
            context: Touched extensions, project markers, request text, scope
            as_of: Date for lifecycle evaluation (default: today)
            policy: Replaces the engine's policy for this call only

        Returns:
            Selection with ordered units, chosen agent and rejection reasons.
            Never raises for normal inputs.
        """

    @property
    @abstractmethod
    def version(self) -> str:
        """Registry key, e.g. 'activation-1.0'."""

    @property
    @abstractmethod
    def description(self) -> str:
        """One-line summary shown by tooling."""

    @classmethod
    def get_available_features(cls) -> List[FeatureSpec]:
        """Feature flags this engine accepts; none unless overridden."""
        return []

    @classmethod
    def get_default_features(cls) -> Dict[str, bool]:
        """Flag name -> default value for every declared flag."""
        return {f.name: f.default for f in cls.get_available_features()}


# version -> engine class, filled by @register_engine
_ENGINE_REGISTRY: Dict[str, type] = {}

# Set by the engine module at import; None means "first registered"
DEFAULT_ENGINE_VERSION: Optional[str] = None


def register_engine(version: str):
    """Class decorator adding an engine under ``version``.

    Example:
        @register_engine("activation-1.0")
        class RuleBasedActivationEngine(ActivationEngine):
            ...
    """
    def decorator(cls):
        _ENGINE_REGISTRY[version] = cls
        return cls
    return decorator


def set_default_engine(version: str):
    """Make ``version`` the engine create_engine() builds when config names none."""
    global DEFAULT_ENGINE_VERSION
    DEFAULT_ENGINE_VERSION = version


def get_default_engine() -> str:
    """Version create_engine() falls back to."""
    if DEFAULT_ENGINE_VERSION in _ENGINE_REGISTRY:
        return DEFAULT_ENGINE_VERSION
    if _ENGINE_REGISTRY:
        return next(iter(_ENGINE_REGISTRY))
    raise ConfigurationError("No activation engines registered")


def _engine_class(version: str) -> type:
    try:
        return _ENGINE_REGISTRY[version]
    except KeyError:
        raise ConfigurationError(
            f"Unknown activation engine: '{version}'. "
            f"Registered: {sorted(_ENGINE_REGISTRY)}"
        ) from None


def create_engine(
    index: RuleIndex,
    config: Optional[Dict[str, Any]] = None,
    policy: Optional[PolicyConfig] = None,
) -> ActivationEngine:
    """
    Build the configured activation engine over a catalog snapshot.

    The ``engine`` section of ``config`` picks the version and feature
    flags; a missing or null version selects get_default_engine().

    Raises:
        ConfigurationError: unknown engine version or feature flag

    Examples:
        engine = create_engine(index)
        engine = create_engine(index, {"engine": {
            "version": "activation-1.0",
            "features": {"deprecation_penalty": False}
        }})
    """
    engine_config = (config or {}).get("engine") or {}
    version = engine_config.get("version") or get_default_engine()
    features = engine_config.get("features")

    engine_class = _engine_class(version)
    if features:
        validate_features(version, features)
    return engine_class(index, policy=policy, features=features)


def get_available_engines() -> List[str]:
    """Registered engine versions in registration order."""
    return list(_ENGINE_REGISTRY)


def get_engine_features(version: str) -> List[FeatureSpec]:
    """Feature flags declared by the engine registered as ``version``."""
    return _engine_class(version).get_available_features()


def validate_features(version: str, features: Dict[str, bool]) -> None:
    """Reject flags the engine does not declare.

    Raises:
        ConfigurationError: naming the first unknown flag
    """
    known = sorted(f.name for f in get_engine_features(version))
    unknown = [name for name in features if name not in known]
    if unknown:
        raise ConfigurationError(
            f"Feature '{unknown[0]}' is not available for engine '{version}'. "
            f"Known flags: {', '.join(known) or '(none)'}"
        )
