"""Impact scoring, aggregate risk and conflict detection."""

from guardian_engine.analysis.conflicts import find_conflicts
from guardian_engine.analysis.risk_scorer import CORE_MODULES, RiskScorer

__all__ = ["CORE_MODULES", "RiskScorer", "find_conflicts"]
