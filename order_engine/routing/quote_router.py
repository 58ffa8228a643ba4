"""
Quote routing across competing liquidity venues.

Fetches a quote from every configured venue concurrently, sanity-checks
the spread between them, and picks the venue that returns the most
output for the requested input.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from order_engine.core.logger import get_module_logger
from order_engine.models.order import Quote, Venue

PRICE_DIVERGENCE_WARNING_PCT = 10.0


class QuoteRoutingError(Exception):
    """Base exception for quote routing errors."""


class QuoteFetchError(QuoteRoutingError):
    """Raised when any venue fails or times out while quoting."""

    def __init__(self, venue: Venue, reason: str) -> None:
        super().__init__(f"Quote fetch from {venue.value} failed: {reason}")
        self.venue = venue


@dataclass(frozen=True)
class QuotePair:
    """Quotes from both venues for one routing attempt."""

    raydium: Quote
    meteora: Quote


class IQuoteSource(ABC):
    """A venue that can price a swap."""

    @property
    @abstractmethod
    def venue(self) -> Venue:
        """Venue this source quotes for."""

    @abstractmethod
    async def fetch_quote(
        self, source_asset: str, destination_asset: str, quantity: float
    ) -> Quote:
        """
        Price a swap of ``quantity`` units of ``source_asset``.

        Raises:
            Exception: Any failure; the router wraps it in QuoteFetchError
        """


class SimulatedQuoteSource(IQuoteSource):
    """
    Stand-in venue that returns plausible quotes after a network-like delay.

    Prices derive from a stable per-pair base price with a random spread,
    so repeated quotes for the same pair stay in the same range.
    """

    def __init__(
        self,
        venue: Venue,
        latency_range: Tuple[float, float] = (2.0, 3.0),
        price_variation: float = 0.05,
        max_price_impact: float = 0.02,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize simulated quote source.

        Args:
            venue: Venue identity of this source
            latency_range: Min and max simulated latency in seconds
            price_variation: Total relative spread around the base price
            max_price_impact: Upper bound of the simulated impact fraction
            rng: Random generator, injectable for reproducible runs
        """
        self._venue = venue
        self._latency_range = latency_range
        self._price_variation = price_variation
        self._max_price_impact = max_price_impact
        self._rng = rng or random.Random()

    @property
    def venue(self) -> Venue:
        return self._venue

    async def fetch_quote(
        self, source_asset: str, destination_asset: str, quantity: float
    ) -> Quote:
        low, high = self._latency_range
        await asyncio.sleep(low + self._rng.random() * (high - low))

        base_price = self.base_price(source_asset, destination_asset)
        variation = 1 + (self._rng.random() - 0.5) * self._price_variation
        price = base_price * variation

        return Quote(
            venue=self._venue,
            price=price,
            output_amount=quantity * price,
            price_impact=self._rng.random() * self._max_price_impact,
        )

    @staticmethod
    def base_price(source_asset: str, destination_asset: str) -> float:
        """Stable pseudo price between 0.1 and 10 for an asset pair."""
        pair_hash = sum(ord(char) for char in source_asset + destination_asset)
        return 0.1 + (pair_hash % 100) / 10


def price_divergence_pct(first: Quote, second: Quote) -> float:
    """Absolute price difference as a percentage of the mean price."""
    average = (first.price + second.price) / 2
    if average == 0:
        return 0.0
    return abs(first.price - second.price) / average * 100


class QuoteRouter:
    """
    Routes a swap to the better of two venues.

    Attributes:
        _sources: Raydium and Meteora quote sources, in listing order
        _quote_timeout: Per-venue deadline in seconds
    """

    def __init__(
        self, sources: Sequence[IQuoteSource], quote_timeout: float = 5.0
    ) -> None:
        """
        Initialize quote router.

        Args:
            sources: Exactly one source per venue
            quote_timeout: Seconds each venue gets to answer

        Raises:
            QuoteRoutingError: If the sources do not cover both venues
        """
        by_venue = {source.venue: source for source in sources}
        if set(by_venue) != {Venue.RAYDIUM, Venue.METEORA} or len(sources) != 2:
            raise QuoteRoutingError(
                "QuoteRouter requires exactly one Raydium and one Meteora source"
            )
        if quote_timeout <= 0:
            raise QuoteRoutingError("quote_timeout must be positive")

        self._raydium = by_venue[Venue.RAYDIUM]
        self._meteora = by_venue[Venue.METEORA]
        self._quote_timeout = quote_timeout
        self._logger = get_module_logger("routing.quote_router")

    async def fetch_quotes(
        self, source_asset: str, destination_asset: str, quantity: float
    ) -> QuotePair:
        """
        Fetch quotes from both venues in parallel.

        Returns:
            QuotePair: One quote per venue

        Raises:
            QuoteFetchError: If either venue fails or exceeds the timeout
        """
        self._logger.info(
            f"Fetching quotes {source_asset}->{destination_asset} qty={quantity}"
        )

        raydium, meteora = await asyncio.gather(
            self._fetch_one(self._raydium, source_asset, destination_asset, quantity),
            self._fetch_one(self._meteora, source_asset, destination_asset, quantity),
        )

        self._logger.info(
            f"Received quotes raydium={raydium.price:.6f} "
            f"meteora={meteora.price:.6f} "
            f"difference={abs(raydium.price - meteora.price):.6f}"
        )
        return QuotePair(raydium=raydium, meteora=meteora)

    async def _fetch_one(
        self,
        source: IQuoteSource,
        source_asset: str,
        destination_asset: str,
        quantity: float,
    ) -> Quote:
        try:
            return await asyncio.wait_for(
                source.fetch_quote(source_asset, destination_asset, quantity),
                timeout=self._quote_timeout,
            )
        except asyncio.TimeoutError as e:
            raise QuoteFetchError(
                source.venue, f"timed out after {self._quote_timeout}s"
            ) from e
        except QuoteFetchError:
            raise
        except Exception as e:
            raise QuoteFetchError(source.venue, str(e) or type(e).__name__) from e

    def select_best(self, first: Quote, second: Quote) -> Quote:
        """
        Pick the quote with the strictly larger output amount.

        Ties go to ``first``.
        """
        selected = second if second.output_amount > first.output_amount else first

        self._logger.info(
            f"Selected {selected.venue.value} price={selected.price:.6f} "
            f"output={selected.output_amount:.6f} "
            f"({first.venue.value}={first.output_amount:.6f}, "
            f"{second.venue.value}={second.output_amount:.6f})"
        )
        return selected

    def validate(self, first: Quote, second: Quote) -> bool:
        """
        Check the spread between venues.

        Never blocks execution: always returns True, but logs a warning when
        the prices diverge by more than 10% of their mean.
        """
        divergence = price_divergence_pct(first, second)
        if divergence > PRICE_DIVERGENCE_WARNING_PCT:
            self._logger.warning(
                f"Large price difference detected between venues: "
                f"{first.venue.value}={first.price} "
                f"{second.venue.value}={second.price} ({divergence:.2f}%)"
            )
        return True


def create_simulated_router(
    quote_timeout: float = 5.0,
    latency_range: Tuple[float, float] = (2.0, 3.0),
    rng: Optional[random.Random] = None,
) -> QuoteRouter:
    """
    Factory function to build a router over simulated venues.

    Args:
        quote_timeout: Per-venue deadline in seconds
        latency_range: Simulated latency range for both venues
        rng: Shared random generator

    Returns:
        QuoteRouter: Router over Raydium and Meteora simulators
    """
    return QuoteRouter(
        [
            SimulatedQuoteSource(Venue.RAYDIUM, latency_range=latency_range, rng=rng),
            SimulatedQuoteSource(Venue.METEORA, latency_range=latency_range, rng=rng),
        ],
        quote_timeout=quote_timeout,
    )
