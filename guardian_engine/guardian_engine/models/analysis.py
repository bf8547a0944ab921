"""Analysis models: dependency sets, per-item analysis, risk and conflicts."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

DEPENDENCY_CATEGORIES: tuple[str, ...] = ("config", "module", "theme", "content")


class RiskLevel(str, Enum):
    """Four-tier risk classification shared by per-item and aggregate scoring."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_LEVEL_DESCRIPTIONS: dict[RiskLevel, str] = {
    RiskLevel.LOW: "Low risk - Changes are safe to apply.",
    RiskLevel.MEDIUM: "Medium risk - Review changes before applying.",
    RiskLevel.HIGH: "High risk - Carefully review all changes.",
    RiskLevel.CRITICAL: "Critical risk - Consider creating a backup first.",
}

# (minimum score, level) pairs, highest first.  The two tables classify
# scores produced by different formulas.
IMPACT_LEVEL_THRESHOLDS: tuple[tuple[int, RiskLevel], ...] = (
    (75, RiskLevel.CRITICAL),
    (50, RiskLevel.HIGH),
    (25, RiskLevel.MEDIUM),
)
AGGREGATE_LEVEL_THRESHOLDS: tuple[tuple[int, RiskLevel], ...] = (
    (70, RiskLevel.CRITICAL),
    (45, RiskLevel.HIGH),
    (20, RiskLevel.MEDIUM),
)


def _classify(score: float, table: tuple[tuple[int, RiskLevel], ...]) -> RiskLevel:
    for minimum, level in table:
        if score >= minimum:
            return level
    return RiskLevel.LOW


def risk_level_for_impact(score: float) -> RiskLevel:
    """Classify a single item's impact score (75 / 50 / 25 cut points)."""
    return _classify(score, IMPACT_LEVEL_THRESHOLDS)


def risk_level_for_aggregate(score: float) -> RiskLevel:
    """Classify an aggregate risk score (70 / 45 / 20 cut points)."""
    return _classify(score, AGGREGATE_LEVEL_THRESHOLDS)


class DependencySet(BaseModel):
    """Declared dependencies of one configuration document."""

    config: list[str] = Field(default_factory=list, description="Configuration names this document requires.")
    module: list[str] = Field(default_factory=list, description="Modules that must be installed.")
    theme: list[str] = Field(default_factory=list, description="Themes that must be installed.")
    content: list[str] = Field(default_factory=list, description="Content entities referenced by the document.")

    @classmethod
    def from_document(cls, document: Any) -> DependencySet:
        """Extract the ``dependencies`` sub-structure, defaulting every category to empty.

        Malformed values (non-mapping ``dependencies``, non-list categories)
        are treated as absent rather than raising.
        """
        if not isinstance(document, dict):
            return cls()
        raw = document.get("dependencies")
        if not isinstance(raw, dict):
            return cls()
        values: dict[str, list[str]] = {}
        for category in DEPENDENCY_CATEGORIES:
            entries = raw.get(category)
            if isinstance(entries, list):
                values[category] = [str(e) for e in entries]
        return cls(**values)

    def is_empty(self) -> bool:
        return not (self.config or self.module or self.theme or self.content)


class ConfigAnalysis(BaseModel):
    """On-demand analysis of a single configuration name."""

    name: str
    dependencies: DependencySet = Field(default_factory=DependencySet)
    dependents: list[str] = Field(default_factory=list, description="Names declaring a config dependency on this one.")
    config_type: str = Field(..., description="Human-readable document type, e.g. 'Field Storage'.")
    impact_score: int = Field(..., ge=0, le=100)
    owner_module: str = Field(..., description="'core', an installed module name, or 'unknown'.")

    @property
    def risk_level(self) -> RiskLevel:
        return risk_level_for_impact(self.impact_score)


class RiskAssessment(BaseModel):
    """Aggregate risk over a set of changed names."""

    score: int = Field(0, ge=0, le=100)
    level: RiskLevel = RiskLevel.LOW
    risk_factors: list[str] = Field(default_factory=list)

    @property
    def description(self) -> str:
        return _LEVEL_DESCRIPTIONS[self.level]


class ConflictType(str, Enum):
    MISSING_MODULE = "missing_module"
    MISSING_DEPENDENCY = "missing_dependency"


class ConflictSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Conflict(BaseModel):
    """Advisory finding about a configuration that may not apply cleanly."""

    config: str
    type: ConflictType
    severity: ConflictSeverity
    details: str = ""
