"""
Fill confidence model. A coarse four-tier estimate (0-100) of how likely a
discounted limit order is to fill favorably, from book depth score, spread
and liquidity. Deep, tight, liquid books fill; thin, wide books don't.
"""

from __future__ import annotations

from scanner.models import OrderBookDepth

HIGH_CONFIDENCE = 85
GOOD_CONFIDENCE = 70
NEUTRAL_CONFIDENCE = 50
LOW_CONFIDENCE = 30


def fill_confidence(depth: OrderBookDepth) -> int:
    """
    Return confidence score for a priced order on this book side.

    - depth_score >= 7, spread < 3%, liquidity >= $2000: 85
    - depth_score >= 5, spread < 5%, liquidity >= $1000: 70
    - depth_score < 3 or spread > 8% or liquidity < $500: 30
    - anything else: 50
    """
    if depth.depth_score >= 7 and depth.spread_percent < 3 and depth.liquidity >= 2000:
        return HIGH_CONFIDENCE
    if depth.depth_score >= 5 and depth.spread_percent < 5 and depth.liquidity >= 1000:
        return GOOD_CONFIDENCE
    if depth.depth_score < 3 or depth.spread_percent > 8 or depth.liquidity < 500:
        return LOW_CONFIDENCE
    return NEUTRAL_CONFIDENCE
