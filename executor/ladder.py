"""
Order laddering. Splits one intended position into staggered limit tiers
below the recommended snipe price, heaviest tier closest to market.
"""

from __future__ import annotations

import logging
import math
from decimal import ROUND_DOWN, Decimal

from scanner.models import LadderTier, OptimalPrice, OrderLadder
from scanner.pricing import clamp_price

logger = logging.getLogger(__name__)

# Size weights for the first three tiers. More tiers split equally.
LADDER_WEIGHTS = (Decimal("0.5"), Decimal("0.3"), Decimal("0.2"))
DEFAULT_PRICE_RANGE_PCT = 2.0

_CENT = Decimal("0.01")
# Bound on ulp nudges when settling the first tier
_MAX_NUDGES = 256


def _tier_weights(n_tiers: int) -> list[Decimal]:
    if n_tiers <= len(LADDER_WEIGHTS):
        return list(LADDER_WEIGHTS[:n_tiers])
    return [Decimal(1) / Decimal(n_tiers)] * n_tiers


def split_sizes(total_size: float, n_tiers: int) -> list[float]:
    """
    Split total_size across tiers by weight, rounding each tier down to the
    cent. The first tier absorbs the remainder and is then settled in float,
    so sum(sizes) == total_size holds for the floats actually returned.
    """
    total = Decimal(str(total_size))
    cents = [(total * w).quantize(_CENT, rounding=ROUND_DOWN) for w in _tier_weights(n_tiers)]
    rest = [float(s) for s in cents[1:]]
    return [_settle_head(total_size, rest), *rest]


def _settle_head(total_size: float, rest: list[float]) -> float:
    """
    First-tier size h with sum([h, *rest]) == total_size in float arithmetic.
    The left-to-right sum is monotone in h and cannot skip a representable
    value, so stepping h one ulp at a time reaches total_size.
    """
    head = total_size - math.fsum(rest)
    for _ in range(_MAX_NUDGES):
        drift = sum([head, *rest]) - total_size
        if drift == 0:
            break
        head = math.nextafter(head, -math.inf if drift > 0 else math.inf)
    else:
        logger.warning("Ladder split of %r left float drift %r", total_size, drift)
    return head


def build_ladder(
    total_size: float,
    optimal: OptimalPrice,
    n_tiers: int = 3,
    price_range_percent: float = DEFAULT_PRICE_RANGE_PCT,
) -> OrderLadder:
    """
    Build an order ladder from a priced opportunity.

    Tier i is offset linearly from recommended_price by up to
    price_range_percent, clamped to [0.01, 0.99]. Each tier's discount is
    measured against current_price, not recommended_price.
    """
    if n_tiers < 1:
        raise ValueError(f"Ladder needs at least one tier, got {n_tiers}")
    if total_size <= 0:
        raise ValueError(f"Ladder total size must be positive, got {total_size}")

    sizes = split_sizes(total_size, n_tiers)
    span = max(n_tiers - 1, 1)
    current = optimal.current_price

    tiers: list[LadderTier] = []
    for i, size in enumerate(sizes):
        offset_pct = (i / span) * price_range_percent
        price = clamp_price(optimal.recommended_price * (1.0 - offset_pct / 100.0))
        discount = (current - price) / current * 100.0
        tiers.append(LadderTier(price=price, size=size, discount=discount))

    avg_price = sum(t.price * t.size for t in tiers) / total_size
    total_discount = (current - avg_price) / current * 100.0

    logger.debug(
        "Ladder %s %s: %d tiers, total=%.2f avg=%.4f (%.2f%% below %.4f)",
        optimal.market_id, optimal.side.value, len(tiers), total_size,
        avg_price, total_discount, current,
    )

    return OrderLadder(
        market_id=optimal.market_id,
        side=optimal.side,
        total_size=total_size,
        tiers=tuple(tiers),
        avg_price=avg_price,
        total_discount=total_discount,
    )
