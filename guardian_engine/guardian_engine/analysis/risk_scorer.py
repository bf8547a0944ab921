"""Impact and risk scoring for configuration changes.

Two independent scores are produced:

* **Impact score** (:meth:`RiskScorer.calculate_impact_score`): how much a
  single name matters, from its dependent count, its name family and
  whether a core module owns it.  Classified with the 75/50/25 table.
* **Aggregate risk** (:meth:`RiskScorer.calculate_risk_score`): how risky
  applying a whole set of changes is.  It uses its own point schedule, a
  volume multiplier and a bonus for critical and high-impact names, and is
  classified with the 70/45/20 table.

Name-family bonuses are expressed as ordered rule tables evaluated with
first-match semantics, so adding a family means adding one row.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from guardian_engine.graph.dependency_index import DependencyIndex
from guardian_engine.models.analysis import (
    ConfigAnalysis,
    RiskAssessment,
    RiskLevel,
    risk_level_for_aggregate,
)
from guardian_engine.storage.base import ExtensionModuleRegistry, ModuleRegistry
from guardian_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)

# First dot-segments owned by the core distribution.
CORE_MODULES: frozenset[str] = frozenset(
    {"core", "system", "field", "node", "user", "taxonomy", "views", "block", "filter", "image"}
)

CORE_OWNER = "core"
UNKNOWN_OWNER = "unknown"


def _prefix(*prefixes: str) -> Callable[[str], bool]:
    return lambda name: name.startswith(prefixes)


def _exact(value: str) -> Callable[[str], bool]:
    return lambda name: name == value


@dataclass(frozen=True)
class ScoreRule:
    """One row of a first-match scoring table.

    ``factor`` is formatted with ``name=`` when present.  ``tally`` names the
    counter (``"critical"`` or ``"high_impact"``) the match increments.
    """

    matches: Callable[[str], bool]
    points: int
    factor: str | None = None
    tally: str | None = None


IMPACT_NAME_RULES: tuple[ScoreRule, ...] = (
    ScoreRule(_prefix("field.storage."), 25),
    ScoreRule(_exact("core.extension"), 40),
    ScoreRule(_prefix("node.type."), 15),
    ScoreRule(_prefix("user.role."), 15),
)

AGGREGATE_NAME_RULES: tuple[ScoreRule, ...] = (
    ScoreRule(_exact("core.extension"), 50, "Modifying core.extension (module list)", "critical"),
    ScoreRule(_prefix("field.storage."), 40, "Modifying field storage: {name}", "high_impact"),
    ScoreRule(_prefix("node.type."), 25, "Modifying content type: {name}", "high_impact"),
    ScoreRule(_prefix("user.role."), 20, "Modifying user role: {name}"),
    ScoreRule(_prefix("system.", "core."), 10, "Modifying system configuration: {name}"),
)

# (dependents strictly greater than, points, emit "has N dependents" factor)
IMPACT_DEPENDENT_POINTS: tuple[tuple[int, int], ...] = ((20, 30), (10, 20), (5, 10), (0, 5))
AGGREGATE_DEPENDENT_POINTS: tuple[tuple[int, int, bool], ...] = (
    (20, 40, True),
    (10, 30, True),
    (5, 20, False),
    (0, 10, False),
)

# (change count strictly greater than, multiplier, factor template)
VOLUME_MODIFIERS: tuple[tuple[int, float, str | None], ...] = (
    (50, 1.15, "Large number of changes ({count} configurations)"),
    (20, 1.10, "Significant number of changes ({count} configurations)"),
    (10, 1.05, None),
)

CORE_OWNER_POINTS = 10
CRITICAL_BONUS_EACH, CRITICAL_BONUS_CAP = 15, 20
HIGH_IMPACT_BONUS_EACH, HIGH_IMPACT_BONUS_CAP = 5, 15

# Ordered (prefix, label) pairs for display names; the first match wins.
CONFIG_TYPE_PREFIXES: tuple[tuple[str, str], ...] = (
    ("field.storage.", "Field Storage"),
    ("field.field.", "Field Instance"),
    ("node.type.", "Content Type"),
    ("taxonomy.vocabulary.", "Vocabulary"),
    ("views.view.", "View"),
    ("block.block.", "Block"),
    ("system.menu.", "Menu"),
    ("user.role.", "User Role"),
    ("image.style.", "Image Style"),
    ("filter.format.", "Text Format"),
    ("core.", "Core"),
    ("system.", "System"),
)


def _first_match(rules: Sequence[ScoreRule], name: str) -> ScoreRule | None:
    for rule in rules:
        if rule.matches(name):
            return rule
    return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class RiskScorer:
    """Scores single names and sets of names against the active store.

    Parameters
    ----------
    index:
        Dependency index over the active store.
    modules:
        Installed-module lookup used to resolve owner modules.  Defaults to
        reading ``core.extension`` from the index's store.
    """

    def __init__(self, index: DependencyIndex, modules: ModuleRegistry | None = None) -> None:
        self._index = index
        self._modules = modules if modules is not None else ExtensionModuleRegistry(index.store)

    @property
    def index(self) -> DependencyIndex:
        return self._index

    def for_analysis_pass(self) -> RiskScorer:
        """Scorer sharing this one's registry but with a memoizing dependency index."""
        return RiskScorer(self._index.memoized(), self._modules)

    # -- per-item ------------------------------------------------------------

    def owner_module(self, name: str) -> str:
        module = name.split(".", 1)[0]
        if module in CORE_MODULES:
            return CORE_OWNER
        if module and self._modules.module_exists(module):
            return module
        return UNKNOWN_OWNER

    @staticmethod
    def config_type(name: str) -> str:
        for prefix, label in CONFIG_TYPE_PREFIXES:
            if name.startswith(prefix):
                return label
        return "Configuration"

    def calculate_impact_score(self, name: str, dependents: Sequence[str] | None = None) -> int:
        """Per-item impact score in [0, 100].

        Parameters
        ----------
        name:
            Configuration name.
        dependents:
            Pre-computed dependents of *name*; looked up when omitted.
        """
        if dependents is None:
            dependents = self._index.dependents_of(name)

        score = 0
        for threshold, points in IMPACT_DEPENDENT_POINTS:
            if len(dependents) > threshold:
                score += points
                break

        rule = _first_match(IMPACT_NAME_RULES, name)
        if rule is not None:
            score += rule.points

        if self.owner_module(name) == CORE_OWNER:
            score += CORE_OWNER_POINTS

        return min(100, score)

    def analyze_config(self, name: str) -> ConfigAnalysis:
        dependents = self._index.dependents_of(name)
        return ConfigAnalysis(
            name=name,
            dependencies=self._index.dependencies_of(name),
            dependents=dependents,
            config_type=self.config_type(name),
            impact_score=self.calculate_impact_score(name, dependents),
            owner_module=self.owner_module(name),
        )

    # -- aggregate -----------------------------------------------------------

    @profile_operation("risk.aggregate")
    def calculate_risk_score(self, names: Sequence[str]) -> RiskAssessment:
        """Aggregate risk of applying changes to every name in *names*.

        Returns
        -------
        RiskAssessment
            Score in [0, 100], its level on the aggregate table, and the
            de-duplicated risk factors in order of first occurrence.
        """
        names = list(names)
        if not names:
            return RiskAssessment(score=0, level=RiskLevel.LOW, risk_factors=[])

        factors: list[str] = []
        local_scores: list[int] = []
        tallies = {"critical": 0, "high_impact": 0}

        for name in names:
            local = 0
            dependent_count = len(self._index.dependents_of(name))
            for threshold, points, reported in AGGREGATE_DEPENDENT_POINTS:
                if dependent_count > threshold:
                    local += points
                    if reported:
                        factors.append(f"{name} has {dependent_count} dependents")
                    break

            rule = _first_match(AGGREGATE_NAME_RULES, name)
            if rule is not None:
                local += rule.points
                if rule.tally is not None:
                    tallies[rule.tally] += 1
                if rule.factor is not None:
                    factors.append(rule.factor.format(name=name))

            local_scores.append(min(100, local))

        avg_score = sum(local_scores) / len(local_scores)

        count = len(names)
        volume_modifier = 1.0
        for threshold, multiplier, template in VOLUME_MODIFIERS:
            if count > threshold:
                volume_modifier = multiplier
                if template is not None:
                    factors.append(template.format(count=count))
                break

        bonus = 0
        if tallies["critical"]:
            bonus += min(CRITICAL_BONUS_CAP, tallies["critical"] * CRITICAL_BONUS_EACH)
        if tallies["high_impact"]:
            bonus += min(HIGH_IMPACT_BONUS_CAP, tallies["high_impact"] * HIGH_IMPACT_BONUS_EACH)

        score = max(0, min(100, _round_half_up(avg_score * volume_modifier + bonus)))
        assessment = RiskAssessment(
            score=score,
            level=risk_level_for_aggregate(score),
            risk_factors=list(dict.fromkeys(factors)),
        )
        logger.debug(
            "Risk over %d names: avg=%.2f volume=%.2f bonus=%d -> %d (%s)",
            count,
            avg_score,
            volume_modifier,
            bonus,
            assessment.score,
            assessment.level.value,
        )
        return assessment
