"""Order book indexing active listings by quality and by price/yield."""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from sortedcontainers import SortedKeyList

from .errors import InvariantViolation
from .house import House
from .listing import Listing, ListingKind, is_valid_price

logger = logging.getLogger(__name__)

_INF = float("inf")


def _quality_key(listing: Listing) -> Tuple[int, float, int]:
    return (listing.quality, listing.price, listing.listing_id)


def _price_key(listing: Listing) -> Tuple[float, float, int]:
    return (listing.price, -listing.yield_, listing.listing_id)


class OrderBook:
    """
    Active listings of one market, held in two orderings at once.

    The quality ordering (quality ascending, price ascending, oldest first)
    serves quality-driven buyers. The price ordering (price ascending, yield
    descending, oldest first) serves yield-driven buyers. Every mutation is
    applied to both orderings before it returns, so they always hold the
    same set of listings.

    The book also owns the house's listing reference for its kind: a house
    points at a listing exactly while that listing is in the book.

    Listings are keyed by their current price, so a price must only ever
    change through update_price.
    """

    def __init__(self, kind: ListingKind):
        self.kind = kind
        self._by_quality = SortedKeyList(key=_quality_key)
        self._by_price = SortedKeyList(key=_price_key)
        # listing_id -> Listing for identity lookups
        self._listings: Dict[int, Listing] = {}

    def insert(self, listing: Listing) -> None:
        """
        Add a listing to both orderings and attach it to its house.

        Raises:
            InvariantViolation: If the listing is of the wrong kind, is
                already in the book, or its house already has a listing here
        """
        if listing.kind is not self.kind:
            raise InvariantViolation(
                f"{listing} cannot be added to the {self.kind.value} book"
            )
        if listing.listing_id in self._listings:
            raise InvariantViolation(f"{listing} already exists")
        if listing.house.listing_for(self.kind) is not None:
            raise InvariantViolation(
                f"House {listing.house.house_id} already has an active "
                f"{self.kind.value} listing"
            )

        self._by_quality.add(listing)
        self._by_price.add(listing)
        self._listings[listing.listing_id] = listing
        listing.house.set_listing(self.kind, listing)
        logger.debug("Inserted %s", listing)

    def remove(self, listing: Listing) -> Optional[Listing]:
        """
        Remove a listing from both orderings and detach it from its house.

        Returns:
            The removed listing, or None if it was not in the book
        """
        if self._listings.get(listing.listing_id) is not listing:
            return None

        self._by_quality.remove(listing)
        self._by_price.remove(listing)
        del self._listings[listing.listing_id]
        listing.house.set_listing(self.kind, None)
        logger.debug("Removed %s", listing)
        return listing

    def update_price(
        self, listing: Listing, new_price: float, yield_: Optional[float] = None
    ) -> None:
        """
        Re-price a listing, re-keying it in both orderings.

        Args:
            listing: A listing currently in the book
            new_price: The new asking price
            yield_: New yield snapshot; unchanged if None

        Raises:
            ValueError: If the new price is not positive and finite
            InvariantViolation: If the listing is not in the book
        """
        if not is_valid_price(new_price):
            raise ValueError("Price must be positive and finite")
        if self._listings.get(listing.listing_id) is not listing:
            raise InvariantViolation(f"Cannot re-price {listing}: not in the book")

        # Keys are derived from the price, so drop the old keys first
        self._by_quality.remove(listing)
        self._by_price.remove(listing)
        listing.reprice(new_price)
        if yield_ is not None:
            listing.yield_ = yield_
        self._by_quality.add(listing)
        self._by_price.add(listing)
        logger.debug("Re-priced %s", listing)

    def reindex_yields(self, yield_fn: Callable[[Listing], float]) -> None:
        """Recompute every yield snapshot and rebuild the price ordering."""
        listings = list(self._by_price)
        self._by_price.clear()
        for listing in listings:
            listing.yield_ = yield_fn(listing)
        self._by_price.update(listings)

    def best_by_quality(self, max_price: float) -> Optional[Listing]:
        """
        Get the best affordable listing for a quality-driven buyer.

        Among listings priced at or below max_price, returns the highest
        quality one; ties go to the lowest price, then the oldest listing.
        Walks down one quality band at a time, checking only the cheapest
        listing of each band.
        """
        items = self._by_quality
        hi = len(items)
        while hi > 0:
            quality = items[hi - 1].quality
            lo = items.bisect_key_left((quality, -_INF, -1))
            cheapest = items[lo]
            if cheapest.price <= max_price:
                return cheapest
            hi = lo
        return None

    def best_by_yield(self, max_price: float) -> Optional[Listing]:
        """
        Get the highest-yield listing priced at or below max_price.

        Ties go to the lowest price, then the oldest listing.
        """
        best = None
        for listing in self._by_price.irange_key(max_key=(max_price, _INF, _INF)):
            if best is None or listing.yield_ > best.yield_:
                best = listing
        return best

    def iterate(self) -> "OrderBookIterator":
        """
        Start a traversal in quality order.

        The returned iterator's remove() drops the element it just produced
        from both orderings. Changing any other listing during the
        traversal is not allowed.
        """
        return OrderBookIterator(self)

    def __iter__(self) -> "OrderBookIterator":
        return self.iterate()

    def get(self, listing_id: int) -> Optional[Listing]:
        """Look up a listing by ID."""
        return self._listings.get(listing_id)

    def for_house(self, house: House) -> Optional[Listing]:
        """Look up the active listing of a house."""
        listing = house.listing_for(self.kind)
        if listing is None or listing not in self:
            return None
        return listing

    def listings_by_quality(self) -> List[Listing]:
        """Return a snapshot of the quality ordering."""
        return list(self._by_quality)

    def listings_by_price(self) -> List[Listing]:
        """Return a snapshot of the price/yield ordering."""
        return list(self._by_price)

    def get_book_depth(self, levels: Optional[int] = None) -> List[Tuple[int, int, float]]:
        """
        Get per-band depth, best quality first.

        Args:
            levels: Number of quality bands to return (all if None)

        Returns:
            List of (quality, number of listings, lowest price)
        """
        depth: List[Tuple[int, int, float]] = []
        items = self._by_quality
        hi = len(items)
        while hi > 0 and (levels is None or len(depth) < levels):
            quality = items[hi - 1].quality
            lo = items.bisect_key_left((quality, -_INF, -1))
            depth.append((quality, hi - lo, items[lo].price))
            hi = lo
        return depth

    def check_consistency(self) -> None:
        """
        Cross-check both orderings and the identity maps.

        Raises:
            InvariantViolation: If any two of them disagree
        """
        by_quality = {id(listing) for listing in self._by_quality}
        by_price = {id(listing) for listing in self._by_price}
        by_id = {id(listing) for listing in self._listings.values()}
        if not (by_quality == by_price == by_id):
            raise InvariantViolation(f"{self.kind.value} book orderings disagree")
        if len(self._by_quality) != len(by_quality):
            raise InvariantViolation(f"{self.kind.value} book holds a listing twice")
        for listing in self._listings.values():
            if listing.house.listing_for(self.kind) is not listing:
                raise InvariantViolation(
                    f"House {listing.house.house_id} does not point at {listing}"
                )

    def clear(self) -> None:
        """Drop every listing, resetting the houses' listing references."""
        for listing in self._listings.values():
            listing.house.set_listing(self.kind, None)
        self._by_quality.clear()
        self._by_price.clear()
        self._listings.clear()

    def __contains__(self, listing: Listing) -> bool:
        return self._listings.get(listing.listing_id) is listing

    def __len__(self) -> int:
        return len(self._listings)

    def __repr__(self) -> str:
        depth = self.get_book_depth(3)
        depth_str = ", ".join(f"q{q}:{n}@{price:.0f}" for q, n, price in depth) or "empty"
        return f"OrderBook({self.kind.value}, {len(self)} listings, [{depth_str}])"


class OrderBookIterator:
    """
    Quality-order traversal of an OrderBook that tolerates removal.

    Each step resumes just after the key of the previously produced
    listing, so removing that listing neither skips nor repeats another.
    """

    def __init__(self, book: OrderBook):
        self._book = book
        self._last_key: Optional[Tuple[int, float, int]] = None
        self._current: Optional[Listing] = None
        self._exhausted = False

    def __iter__(self) -> "OrderBookIterator":
        return self

    def __next__(self) -> Listing:
        if self._exhausted:
            raise StopIteration
        items = self._book._by_quality
        idx = 0 if self._last_key is None else items.bisect_key_right(self._last_key)
        if idx >= len(items):
            self._exhausted = True
            self._current = None
            raise StopIteration
        self._current = items[idx]
        self._last_key = _quality_key(self._current)
        return self._current

    def remove(self) -> Listing:
        """
        Remove the listing last produced, from both orderings.

        Raises:
            InvariantViolation: If nothing was produced since the last remove
        """
        if self._current is None:
            raise InvariantViolation("remove() called with no current listing")
        listing = self._current
        self._current = None
        self._book.remove(listing)
        return listing
