"""Position sizing and risk limit checks.

Fixed-fractional sizing: risk a fixed percent of the portfolio per trade,
divided by the per-share distance to the stop. Kelly sizing is reported
alongside when a win rate is supplied.

Hard limits (violations) fail the risk check; soft limits only add warnings.
"""

from __future__ import annotations

import math
from typing import Optional

from signalcore.config import Settings, get_logger, get_settings
from signalcore.core.errors import InputValidationError, Result, RiskThresholdExceededError
from signalcore.core.models import RiskAssessment, RiskInput

logger = get_logger("risk")

MIN_RECOMMENDED_RR = 1.5


def validate_risk_input(data: RiskInput, min_portfolio: float = 1_000.0) -> None:
    """Raise InputValidationError when prices or sides are inconsistent."""
    if data.entry_price <= 0:
        raise InputValidationError("Entry price must be positive.")
    if data.stop_loss <= 0:
        raise InputValidationError("Stop loss must be positive.")
    if data.target1 <= 0:
        raise InputValidationError("Target 1 must be positive.")
    if data.portfolio_size < min_portfolio:
        raise InputValidationError(f"Portfolio size must be at least ${min_portfolio:,.0f}.")

    if not data.is_short:
        if data.stop_loss >= data.entry_price:
            raise InputValidationError("Long trade: stop loss must be below entry price.")
        if data.target1 <= data.entry_price:
            raise InputValidationError("Long trade: target must be above entry price.")
    else:
        if data.stop_loss <= data.entry_price:
            raise InputValidationError("Short trade: stop loss must be above entry price.")
        if data.target1 >= data.entry_price:
            raise InputValidationError("Short trade: target must be below entry price.")


def kelly_fraction(win_rate_percent: float, reward_risk: float) -> float:
    """Kelly fraction W - (1 - W) / R for a win rate given in percent."""
    w = win_rate_percent / 100
    return w - (1 - w) / reward_risk


class RiskEngine:
    """Sizes positions and enforces the configured risk policy."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.default_risk_percent = settings.DEFAULT_RISK_PERCENT
        self.max_risk_percent = settings.MAX_RISK_PERCENT
        self.max_position_size = settings.MAX_POSITION_SIZE
        self.max_position_percent = settings.MAX_POSITION_PERCENT
        self.min_portfolio_size = settings.MIN_PORTFOLIO_SIZE

    def calculate(self, data: RiskInput) -> Result[RiskAssessment]:
        """
        Size a trade and check it against the risk limits.

        Args:
            data: Entry, stop, targets, portfolio size and optional overrides

        Returns:
            Success with the assessment (which may still fail the risk check),
            or failure when the input is invalid
        """
        try:
            validate_risk_input(data, self.min_portfolio_size)
        except InputValidationError as e:
            return Result.failure(str(e))

        risk_percent = data.risk_percent if data.risk_percent is not None else self.default_risk_percent
        a = RiskAssessment(
            symbol=data.symbol,
            entry_price=data.entry_price,
            stop_loss=data.stop_loss,
            target1=data.target1,
            target2=data.target2,
            portfolio_size=data.portfolio_size,
            risk_percent=risk_percent,
        )

        # Per-share distances
        a.risk_per_share = abs(data.entry_price - data.stop_loss)
        a.reward_per_share1 = abs(data.target1 - data.entry_price)
        if data.target2 is not None:
            a.reward_per_share2 = abs(data.target2 - data.entry_price)

        if a.risk_per_share > 0:
            a.risk_reward_ratio1 = round(a.reward_per_share1 / a.risk_per_share, 2)
            if a.reward_per_share2 is not None:
                a.risk_reward_ratio2 = round(a.reward_per_share2 / a.risk_per_share, 2)

        # Fixed-percent sizing
        a.risk_amount_dollars = round(data.portfolio_size * risk_percent / 100, 2)
        if a.risk_per_share > 0:
            a.share_count = math.floor(a.risk_amount_dollars / a.risk_per_share)
            a.position_size = round(a.share_count * data.entry_price, 2)
        a.position_value = a.position_size
        a.position_percent_of_portfolio = round(a.position_size / data.portfolio_size * 100, 2)

        a.max_loss = round(a.share_count * a.risk_per_share, 2)
        a.potential_gain1 = round(a.share_count * a.reward_per_share1, 2)
        if a.reward_per_share2 is not None:
            a.potential_gain2 = round(a.share_count * a.reward_per_share2, 2)

        # Kelly criterion
        if data.win_rate is not None and 0 < data.win_rate < 100 and a.risk_reward_ratio1 > 0:
            kelly = kelly_fraction(data.win_rate, a.risk_reward_ratio1)
            a.kelly_percent = round(max(kelly * 100, 0.0), 2)
            a.kelly_position_size = round(data.portfolio_size * max(kelly, 0.0), 2)

        # Hard limits
        if risk_percent > self.max_risk_percent:
            a.violations.append(f"Risk of {risk_percent}% exceeds max allowed {self.max_risk_percent}%.")
        if a.position_size > self.max_position_size:
            a.violations.append(
                f"Position size ${a.position_size:,.0f} exceeds max ${self.max_position_size:,.0f}."
            )
        if a.position_percent_of_portfolio > self.max_position_percent:
            a.violations.append(
                f"Position is {a.position_percent_of_portfolio}% of portfolio "
                f"(max {self.max_position_percent:g}%)."
            )
        a.passes_risk_check = not a.violations

        # Soft limits
        if a.risk_reward_ratio1 < MIN_RECOMMENDED_RR:
            a.warnings.append(
                f"Risk/Reward of {a.risk_reward_ratio1}:1 is below recommended {MIN_RECOMMENDED_RR}:1."
            )
        if a.risk_reward_ratio1 < 1.0:
            a.warnings.append("Negative expectancy: reward is less than risk.")
        if a.share_count < 1:
            a.warnings.append("Calculated share count is 0. Risk budget is too small for this price level.")
        if a.kelly_percent is not None and a.kelly_percent <= 0:
            a.warnings.append("Kelly criterion suggests no position (negative edge).")

        if not a.passes_risk_check:
            logger.debug(f"{data.symbol or 'trade'} failed risk check: {a.violations}")

        return Result.success(a)

    def check(self, data: RiskInput) -> RiskAssessment:
        """
        Like calculate(), but raise instead of returning failures.

        Raises:
            InputValidationError: invalid input
            RiskThresholdExceededError: one or more hard limits violated
        """
        assessment = self.calculate(data).unwrap()
        if not assessment.passes_risk_check:
            raise RiskThresholdExceededError(assessment.violations)
        return assessment
