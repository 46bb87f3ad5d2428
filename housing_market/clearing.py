"""Clearing engine shared by the sale and rental markets."""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from .errors import InvariantViolation
from .house import House
from .listing import Bid, BuyerClass, Listing, ListingKind
from .orderbook import OrderBook
from .statistics import MarketStatistics
from .transaction import Transaction

MatchStrategy = Callable[["ClearingEngine", Bid], Optional[Listing]]
YieldFunction = Callable[[int, float], float]


@dataclass(frozen=True)
class Settlement:
    """
    Market-specific side effects of a transaction.

    Attributes:
        notify: Tells seller then buyer about the match; runs while the
            house still belongs to the seller
        transfer: Hands the house over (ownership or tenancy); runs last
    """
    notify: Callable[[Bid, Listing], None]
    transfer: Callable[[Bid, Listing], None]


class MarketPhase(Enum):
    """Where a market is in its period."""
    INTAKE = "INTAKE"
    CLEARING = "CLEARING"
    CLOSED = "CLOSED"


class ClearingEngine:
    """
    A market that clears once per period.

    Offers go straight into the order book; bids queue until the next
    clearing pass, which handles them in the order they arrived:
    - Each bid is offered the listing its buyer class's strategy picks
    - A bid matching the bidder's own house is dropped with no effect
    - Every other match is settled and the listing leaves the book
    - Unmatched bids are dropped; unmatched listings stay on the market
    """

    def __init__(
        self,
        kind: ListingKind,
        strategies: Dict[BuyerClass, MatchStrategy],
        settlement: Settlement,
        statistics: MarketStatistics,
        clock: Callable[[], int],
        yield_fn: Optional[YieldFunction] = None,
    ):
        """
        Initialize the clearing engine.

        Args:
            kind: SALE or RENTAL
            strategies: Best-match strategy for each accepted buyer class
            settlement: Side effects of a transaction
            statistics: Rolling statistics, also the transaction collector
            clock: Returns the current period
            yield_fn: Implied annual yield of a (quality, price) pair
        """
        self.kind = kind
        self.book = OrderBook(kind)
        self.strategies = dict(strategies)
        self.settlement = settlement
        self.statistics = statistics
        self.clock = clock
        self.yield_fn = yield_fn
        self.bids: List[Bid] = []
        self.phase = MarketPhase.INTAKE
        self._listing_ids = itertools.count(1)
        self.logger = logging.getLogger(__name__)

    @property
    def now(self) -> int:
        return self.clock()

    def _yield(self, quality: int, price: float) -> float:
        # Bad prices are rejected by the listing itself
        if self.yield_fn is None or price <= 0:
            return 0.0
        return self.yield_fn(quality, price)

    def open_period(self) -> None:
        """
        Start a new period.

        Resets the per-period statistics and refreshes yield snapshots;
        listings carry over untouched otherwise.
        """
        self.statistics.begin_period(self.now)
        if self.yield_fn is not None:
            self.book.reindex_yields(lambda listing: self._yield(listing.quality, listing.price))
        self.phase = MarketPhase.INTAKE

    def offer(self, house: House, price: float) -> Listing:
        """
        Put a house on the market.

        Raises:
            ValueError: If the price is not positive and finite, or the
                house's quality has no band in this market
            InvariantViolation: If the house already has a listing here
        """
        n_quality = self.statistics.n_quality
        if not 0 <= house.quality < n_quality:
            raise ValueError(f"Quality must be in [0, {n_quality}), got {house.quality}")
        listing = Listing(
            house=house,
            price=price,
            kind=self.kind,
            listing_id=next(self._listing_ids),
            listed_at=self.now,
            yield_=self._yield(house.quality, price),
        )
        self.book.insert(listing)
        return listing

    def remove_offer(self, listing: Listing) -> Optional[Listing]:
        """
        Take a listing off the market.

        Returns:
            The removed listing, or None if it was no longer listed
        """
        return self.book.remove(listing)

    def update_offer(self, listing: Listing, new_price: float) -> None:
        """Change a listing's price; its identity and age are kept."""
        self.book.update_price(listing, new_price, self._yield(listing.quality, new_price))

    def bid(
        self,
        buyer,
        max_price: float,
        buyer_class: BuyerClass = BuyerClass.QUALITY_DRIVEN,
    ) -> Bid:
        """
        Queue a bid for the next clearing pass.

        Raises:
            ValueError: If this market has no strategy for the buyer class
        """
        if buyer_class not in self.strategies:
            raise ValueError(
                f"{self.kind.value} market does not accept {buyer_class.value} bids"
            )
        bid = Bid(buyer=buyer, max_price=max_price, buyer_class=buyer_class)
        self.bids.append(bid)
        return bid

    def best_match(self, bid: Bid) -> Optional[Listing]:
        """Return the listing to offer a bid, without changing the book."""
        return self.strategies[bid.buyer_class](self, bid)

    def clear_market(self) -> List[Transaction]:
        """
        Run the clearing pass over the queued bids.

        Bids placed while the pass runs (by settlement callbacks) are
        queued for the next pass.

        Returns:
            Transactions executed by this pass, in execution order

        Raises:
            InvariantViolation: If called while a pass is already running
        """
        if self.phase is MarketPhase.CLEARING:
            raise InvariantViolation(f"{self.kind.value} market is already clearing")
        self.phase = MarketPhase.CLEARING

        pending, self.bids = self.bids, []
        matched: List[Listing] = []
        first = len(self.statistics.transactions)

        for bid in pending:
            listing = self.best_match(bid)
            if listing is None:
                continue
            if bid.buyer is listing.house.owner:
                self.logger.debug("Dropped %s matching its own %s", bid, listing)
                continue
            self.complete_transaction(bid, listing)
            matched.append(listing)

        transactions = self.statistics.transactions[first:]
        self.statistics.record_period(self.book.listings_by_quality(), matched, transactions)
        self.phase = MarketPhase.CLOSED

        self.logger.info(
            "%s market t=%d: %d bids, %d transactions, %d listings remain",
            self.kind.value, self.now, len(pending), len(transactions), len(self.book),
        )
        return transactions

    def complete_transaction(self, bid: Bid, listing: Listing) -> None:
        """
        Settle a match.

        Order matters: the listing leaves the book first, then seller and
        buyer are notified and the transaction recorded while the house
        still belongs to the seller, and only then is it handed over.

        Raises:
            InvariantViolation: If the bidder owns the house, or the
                listing is not on the market
        """
        if bid.buyer is listing.house.owner:
            raise InvariantViolation(f"{bid} cannot buy its own {listing}")
        if self.book.remove(listing) is None:
            raise InvariantViolation(f"{listing} is not on the {self.kind.value} market")

        self.settlement.notify(bid, listing)
        self.statistics.record_transaction(bid, listing)
        self.settlement.transfer(bid, listing)
        self.logger.debug("Matched %s with %s", bid, listing)

    def __len__(self) -> int:
        return len(self.book)

    def __repr__(self) -> str:
        return f"ClearingEngine({self.kind.value}, {self.phase.value}, {len(self.bids)} bids, {self.book!r})"
