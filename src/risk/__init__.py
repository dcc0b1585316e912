"""Risk estimation module."""

from src.risk.calculator import RiskCalculator, RiskEstimator, is_submittable, suggest_direction

__all__ = ["RiskCalculator", "RiskEstimator", "is_submittable", "suggest_direction"]
