"""Rolling market statistics, updated once per clearing pass."""

import logging
from collections import deque
from typing import Callable, Iterable, List, Optional

import numpy as np
from scipy.stats import lognorm

from .listing import Bid, Listing, ListingKind
from .transaction import Transaction

logger = logging.getLogger(__name__)

MONTHS_IN_YEAR = 12


def reference_prices(n_quality: int, log_median: float, shape: float) -> np.ndarray:
    """
    Reference price of each quality band.

    Band q is priced at the (q + 0.5) / n_quality quantile of a lognormal
    distribution, so higher bands are always dearer.
    """
    quantiles = (np.arange(n_quality) + 0.5) / n_quality
    return lognorm.ppf(quantiles, s=shape, scale=np.exp(log_median))


def _band_means(qualities: np.ndarray, values: np.ndarray, n_quality: int):
    """Per-band mean of values, plus a mask of the bands that had any."""
    counts = np.bincount(qualities, minlength=n_quality)
    sums = np.bincount(qualities, weights=values, minlength=n_quality)
    seen = counts > 0
    means = np.zeros(n_quality)
    means[seen] = sums[seen] / counts[seen]
    return means, seen


class MarketStatistics:
    """
    Exponentially weighted statistics of one market.

    Also the transaction collector: the clearing engine reports every
    executed match through record_transaction, and record_period folds the
    period's matches into the rolling averages.

    Attributes:
        average_sale_price: EW average transaction price per band
        average_list_price: EW average asking price per band
        average_days_on_market: EW average days on market of matched listings
        average_sold_price_to_olp: EW average of price / original list price
        average_gross_yield: EW average annual gross yield (rental market)
        house_price_index: Recent index values, newest last
        transactions: Transactions of the current period
        n_transactions: Transactions since the run started
    """

    def __init__(
        self,
        kind: ListingKind,
        config,
        reference: np.ndarray,
        yield_reference: Optional[Callable[[int], float]] = None,
    ):
        """
        Args:
            kind: Market the statistics belong to
            config: Market config (decays, clock, initial yield)
            reference: Reference price of each quality band
            yield_reference: Sale price of a band, used to turn rents into
                gross yields; None for the sale market
        """
        self.kind = kind
        self.config = config
        self.reference = np.asarray(reference, dtype=float)
        self.yield_reference = yield_reference

        self.average_sale_price = self.reference.copy()
        self.average_list_price = self.reference.copy()
        self.average_days_on_market = float(config.days_per_period)
        self.average_sold_price_to_olp = 1.0
        self.average_gross_yield = float(config.initial_gross_yield)
        self.house_price_index = deque([1.0], maxlen=config.hpa_window + 1)
        self._indexed_period: Optional[int] = None

        self.transactions: List[Transaction] = []
        self.n_transactions = 0
        self.period = 0

    @property
    def n_quality(self) -> int:
        return len(self.reference)

    @property
    def average_price(self) -> np.ndarray:
        """Per-band average transaction price; monthly rent on the rental market."""
        return self.average_sale_price

    def begin_period(self, now: int) -> None:
        """Reset the per-period accumulators."""
        self.period = now
        self.transactions = []

    def record_transaction(self, bid: Bid, listing: Listing) -> Transaction:
        """
        Record an executed match.

        Called before ownership changes hands, so the house's owner is
        still the seller.
        """
        transaction = Transaction(
            kind=self.kind,
            period=self.period,
            listing_id=listing.listing_id,
            house_id=listing.house.house_id,
            quality=listing.quality,
            price=listing.price,
            initial_price=listing.initial_price,
            days_on_market=listing.days_on_market(self.period, self.config.days_per_period),
            buyer_id=getattr(bid.buyer, "household_id", None),
            seller_id=getattr(listing.house.owner, "household_id", None),
        )
        self.transactions.append(transaction)
        self.n_transactions += 1
        return transaction

    def record_period(
        self,
        remaining: Iterable[Listing],
        matched: Iterable[Listing],
        transactions: Optional[Iterable[Transaction]] = None,
    ) -> None:
        """
        Fold one clearing pass's listings and transactions into the averages.

        A second pass in the same period only adds its own transactions and
        overwrites the period's index point rather than adding another.

        Args:
            remaining: Listings still on the market after clearing
            matched: Listings consumed by the pass
            transactions: Transactions of the pass; all of the period's if None
        """
        listings = list(remaining) + list(matched)
        if listings:
            qualities = np.array([listing.quality for listing in listings])
            prices = np.array([listing.price for listing in listings])
            means, seen = _band_means(qualities, prices, self.n_quality)
            decay = self.config.price_decay
            self.average_list_price[seen] = (
                decay * self.average_list_price[seen] + (1.0 - decay) * means[seen]
            )

        transactions = self.transactions if transactions is None else list(transactions)
        if transactions:
            self._record_transactions(transactions)

        index = float(self.average_sale_price.sum() / self.reference.sum())
        if self._indexed_period == self.period:
            self.house_price_index[-1] = index
        else:
            self.house_price_index.append(index)
            self._indexed_period = self.period
        logger.debug(
            "%s stats t=%d: %d transactions, HPI %.4f",
            self.kind.value, self.period, len(transactions), index,
        )

    def _record_transactions(self, transactions: List[Transaction]) -> None:
        qualities = np.array([t.quality for t in transactions])
        prices = np.array([t.price for t in transactions])
        initial = np.array([t.initial_price for t in transactions])
        days = np.array([t.days_on_market for t in transactions], dtype=float)

        decay = self.config.price_decay
        means, seen = _band_means(qualities, prices, self.n_quality)
        self.average_sale_price[seen] = (
            decay * self.average_sale_price[seen] + (1.0 - decay) * means[seen]
        )
        self.average_sold_price_to_olp = (
            decay * self.average_sold_price_to_olp + (1.0 - decay) * float(np.mean(prices / initial))
        )

        decay = self.config.days_on_market_decay
        self.average_days_on_market = (
            decay * self.average_days_on_market + (1.0 - decay) * float(days.mean())
        )

        if self.yield_reference is not None:
            sale_prices = np.array([self.yield_reference(int(q)) for q in qualities])
            yields = MONTHS_IN_YEAR * prices / sale_prices
            decay = self.config.yield_decay
            self.average_gross_yield = (
                decay * self.average_gross_yield + (1.0 - decay) * float(yields.mean())
            )

    def house_price_appreciation(self) -> float:
        """
        Fractional change of the price index over the HPA window.

        Zero until the window has filled.
        """
        if len(self.house_price_index) < self.house_price_index.maxlen:
            return 0.0
        return self.house_price_index[-1] / self.house_price_index[0] - 1.0

    def to_dict(self) -> dict:
        """Summary of the current statistics."""
        return {
            "kind": self.kind.value,
            "period": self.period,
            "transactions": len(self.transactions),
            "total_transactions": self.n_transactions,
            "average_days_on_market": self.average_days_on_market,
            "average_sold_price_to_olp": self.average_sold_price_to_olp,
            "average_gross_yield": self.average_gross_yield,
            "house_price_index": self.house_price_index[-1],
            "house_price_appreciation": self.house_price_appreciation(),
            "average_sale_price": self.average_sale_price.tolist(),
        }
