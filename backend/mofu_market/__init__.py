"""Pricing and settlement engine for social prediction-market parties."""

from mofu_market.pricing import price
from mofu_market.payouts import distribute
from mofu_market.settlement import confirm, reverse

__all__ = ["price", "distribute", "confirm", "reverse"]
