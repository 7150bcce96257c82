"""Market regime classification."""

from .classifier import RegimeService, classify_regime

__all__ = ["classify_regime", "RegimeService"]
