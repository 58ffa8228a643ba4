"""Quote routing across liquidity venues."""

from .quote_router import (
    IQuoteSource,
    QuoteFetchError,
    QuotePair,
    QuoteRouter,
    QuoteRoutingError,
    SimulatedQuoteSource,
    create_simulated_router,
    price_divergence_pct,
)

__all__ = [
    "IQuoteSource",
    "QuoteFetchError",
    "QuotePair",
    "QuoteRouter",
    "QuoteRoutingError",
    "SimulatedQuoteSource",
    "create_simulated_router",
    "price_divergence_pct",
]
