"""
Snipe pricing. Turns a target discount and a depth snapshot into a concrete
limit price, expected fill time and confidence. Thin or wide books get a
deeper discount to compensate for adverse selection.
"""

from __future__ import annotations

import logging

from scanner.confidence import fill_confidence
from scanner.models import OptimalPrice, OrderBookDepth

logger = logging.getLogger(__name__)

MIN_PRICE = 0.01
MAX_PRICE = 0.99
MAX_DISCOUNT_PCT = 15.0
MIN_DISCOUNT_PCT = 1.0

# Penalties added to the target discount
WIDE_SPREAD_PENALTY = 1.0  # spread_percent > 5
THIN_DEPTH_PENALTY = 1.5  # depth_score < 4
LOW_LIQUIDITY_PENALTY = 1.0  # liquidity < $1000

# Price band adjustment (favorites get a deeper discount, longshots shallower)
HIGH_PRICE_BAND = 0.70
LOW_PRICE_BAND = 0.30
BAND_ADJUSTMENT = 0.5

BASE_FILL_TIME_MIN = 30.0


def clamp_price(price: float) -> float:
    """Clamp a probability price into the venue's tradable [0.01, 0.99] range."""
    return max(MIN_PRICE, min(MAX_PRICE, price))


def discount_bounds(base_discount: float) -> tuple[float, float]:
    """
    Allowed discount window around the penalized base: [base-1, base+3],
    capped at 15 and floored at 1. The cap wins if the two cross.
    """
    upper = min(base_discount + 3.0, MAX_DISCOUNT_PCT)
    lower = min(max(base_discount - 1.0, MIN_DISCOUNT_PCT), upper)
    return lower, upper


def expected_fill_minutes(discount: float, depth_score: int) -> float:
    fill_time = BASE_FILL_TIME_MIN
    if discount < 3:
        fill_time = 15.0
    elif discount > 6:
        fill_time = 60.0

    if depth_score >= 7:
        fill_time *= 0.7
    elif depth_score < 4:
        fill_time *= 1.5
    return fill_time


def compute_optimal_price(
    current_price: float,
    target_discount: float,
    depth: OrderBookDepth,
    min_profit_percent: float = 5.0,
) -> OptimalPrice:
    """
    Compute the recommended snipe limit price for one market side.

    min_profit_percent is carried for the audit string only; the profit floor
    itself is enforced by the opportunity scanner.
    """
    base_discount = target_discount
    if depth.spread_percent > 5:
        base_discount += WIDE_SPREAD_PENALTY
    if depth.depth_score < 4:
        base_discount += THIN_DEPTH_PENALTY
    if depth.liquidity < 1000:
        base_discount += LOW_LIQUIDITY_PENALTY

    lower, upper = discount_bounds(base_discount)

    discount = base_discount
    if current_price > HIGH_PRICE_BAND:
        discount += BAND_ADJUSTMENT
    elif current_price < LOW_PRICE_BAND:
        discount -= BAND_ADJUSTMENT
    discount = max(lower, min(upper, discount))

    recommended = clamp_price(current_price * (1.0 - discount / 100.0))
    fill_time = expected_fill_minutes(discount, depth.depth_score)
    confidence = fill_confidence(depth)

    reasoning = (
        f"Depth Score: {depth.depth_score}/10, Spread: {depth.spread_percent:.2f}%, "
        f"Liquidity: ${depth.liquidity:.0f}, Discount: {discount:.1f}% "
        f"(target {target_discount:.1f}%, min profit {min_profit_percent:.1f}%)"
    )
    logger.debug("Priced %s %s @ %.4f: %s", depth.market_id, depth.side.value, recommended, reasoning)

    return OptimalPrice(
        market_id=depth.market_id,
        side=depth.side,
        current_price=current_price,
        recommended_price=recommended,
        discount=discount,
        expected_fill_time=fill_time,
        confidence=confidence,
        reasoning=reasoning,
    )
