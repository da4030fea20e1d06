"""
Cost estimation over published model records.

Handles cost computations from per-1000-token prices.
"""

from decimal import MAX_EMAX, MAX_PREC, MIN_EMIN, ROUND_UP, Context, Decimal, localcontext
from typing import Mapping

from ai_model_sync.storage.models import ModelRecord


# One token as a fraction of the 1000-token price unit.
PRICE_UNIT_FRACTION = Decimal("0.001")

# Additions and products are never rounded in this context.
EXACT_CONTEXT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN)


class UnknownUsageClassError(ValueError):
    """Raised when usage names a class the record has no price for."""
    def __init__(self, model_id: str, usage_class: str):
        super().__init__(f"Model {model_id} has no price for usage class: {usage_class}")
        self.model_id = model_id
        self.usage_class = usage_class


def estimate_cost(record: ModelRecord, usage: Mapping[str, int]) -> Decimal:
    """Estimate the cost of a usage profile against a record's pricing.

    Uses exact Decimal arithmetic, so large and sub-1000 token counts carry
    no rounding drift. No rounding is applied here; see round_cost.

    Args:
        record: Published model record
        usage: Token count per usage class (e.g. {"input": 2500})

    Returns:
        Sum over usage classes of tokens / 1000 * price

    Raises:
        UnknownUsageClassError: If a usage class has no price in the record
        ValueError: If a token count is negative or not an integer
    """
    total = Decimal("0")
    for usage_class, tokens in usage.items():
        if isinstance(tokens, bool) or not isinstance(tokens, int):
            raise ValueError(f"Token count for {usage_class} must be an integer, got {tokens!r}")
        if tokens < 0:
            raise ValueError(f"Token count for {usage_class} cannot be negative")
        if usage_class not in record.pricing:
            raise UnknownUsageClassError(record.model_id, usage_class)

        # (tokens / 1000) * price_per_1k
        with localcontext(EXACT_CONTEXT):
            total += Decimal(tokens) * PRICE_UNIT_FRACTION * record.pricing[usage_class]

    return total


def round_cost(amount: Decimal, places: str = "0.01") -> Decimal:
    """Round a cost UP to the given precision (conservative display rounding)."""
    with localcontext(EXACT_CONTEXT):
        return amount.quantize(Decimal(places), rounding=ROUND_UP)
