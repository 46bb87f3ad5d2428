"""Listing and bid records for the housing markets."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .house import House


def is_valid_price(price: float) -> bool:
    """Asking prices must be positive and finite."""
    return price > 0 and math.isfinite(price)


class ListingKind(Enum):
    """Which market a listing belongs to."""
    SALE = "SALE"
    RENTAL = "RENTAL"

    @property
    def slot(self) -> str:
        """Name of the House attribute holding a listing of this kind."""
        return "sale_record" if self is ListingKind.SALE else "rental_record"


class BuyerClass(Enum):
    """Match-selection policy of a bid."""
    QUALITY_DRIVEN = "QUALITY_DRIVEN"  # owner-occupiers and renters
    YIELD_DRIVEN = "YIELD_DRIVEN"  # buy-to-let investors


@dataclass(eq=False)
class Listing:
    """
    An active offer to sell or let a house.

    Identity, house and kind never change. The price changes only through
    the order book, so both of its orderings stay in step.

    Attributes:
        house: The house on offer
        price: Current asking price (monthly rent for rental listings)
        kind: SALE or RENTAL
        listing_id: Creation sequence number, the final tie-break
        listed_at: Period the listing was created
        yield_: Implied annual gross yield snapshot
        initial_price: Asking price at creation (auto-set)
    """
    house: "House"
    price: float
    kind: ListingKind
    listing_id: int
    listed_at: int
    yield_: float = 0.0
    initial_price: float = field(init=False)

    def __post_init__(self):
        if not is_valid_price(self.price):
            raise ValueError("Price must be positive and finite")
        self.initial_price = self.price

    @property
    def quality(self) -> int:
        return self.house.quality

    def days_on_market(self, now: int, days_per_period: int = 30) -> int:
        """Days elapsed since the listing was created."""
        return days_per_period * (now - self.listed_at)

    def reprice(self, new_price: float) -> None:
        """
        Set a new asking price.

        Only the order book calls this; use OrderBook.update_price instead.

        Raises:
            ValueError: If the new price is not positive and finite
        """
        if not is_valid_price(new_price):
            raise ValueError("Price must be positive and finite")
        self.price = new_price

    def __repr__(self) -> str:
        return (
            f"Listing({self.kind.value} house={self.house.house_id} "
            f"q={self.quality} @ {self.price:.2f}, id={self.listing_id})"
        )


@dataclass(frozen=True)
class Bid:
    """
    A buyer's maximum willingness to pay for one clearing pass.

    Attributes:
        buyer: The bidding household
        max_price: Highest acceptable price
        buyer_class: Selection policy applied to this bid
    """
    buyer: Any
    max_price: float
    buyer_class: BuyerClass = BuyerClass.QUALITY_DRIVEN

    def __post_init__(self):
        if not self.max_price >= 0:
            raise ValueError("Maximum price must be non-negative")

    def __repr__(self) -> str:
        buyer_id = getattr(self.buyer, "household_id", self.buyer)
        return f"Bid({self.buyer_class.value} buyer={buyer_id} max={self.max_price:.2f})"
