# ABOUTME: Shared confidence arithmetic for field reconcilers.
# ABOUTME: Agreement raises confidence up to a hard cap; each dissenting source pulls it down.

from collections.abc import Iterable

MAX_CONSENSUS_CONFIDENCE = 0.98
AGREEMENT_BOOST = 0.05
DISSENT_PENALTY = 0.3


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def consensus_confidence(
    base: float,
    agreeing: int,
    dissenting: Iterable[float] = (),
    *,
    boost: float = AGREEMENT_BOOST,
    cap: float = MAX_CONSENSUS_CONFIDENCE,
    penalty: float = DISSENT_PENALTY,
) -> float:
    """Combine a base confidence with source agreement.

    Args:
        base: Confidence justified by the winning value on its own.
        agreeing: Number of sources backing the winning value (at least 1).
        dissenting: Reliabilities of sources reporting something else.

    Returns:
        min(cap, base + boost * (agreeing - 1)), then multiplied by
        (1 - penalty * reliability) for every dissenting source.
    """
    confidence = min(cap, clamp(base) + boost * max(0, agreeing - 1))
    for reliability in dissenting:
        confidence *= 1.0 - penalty * clamp(reliability)
    return clamp(confidence)
