"""Position sizing and risk checks."""

from .engine import RiskEngine, kelly_fraction, validate_risk_input

__all__ = ["RiskEngine", "kelly_fraction", "validate_risk_input"]
