"""Transaction record for the housing markets."""

from dataclasses import dataclass
from typing import Optional

from .listing import ListingKind


@dataclass(frozen=True)
class Transaction:
    """
    An executed match between a bid and a listing.

    Attributes:
        kind: SALE or RENTAL
        period: Period in which the match was executed
        listing_id: ID of the consumed listing
        house_id: ID of the house sold or let
        quality: Quality band of the house
        price: Execution price (the listing's asking price)
        initial_price: Asking price when the house was first listed
        days_on_market: Days the listing was active
        buyer_id: Household ID of the buyer or tenant
        seller_id: Household ID of the seller or landlord
    """
    kind: ListingKind
    period: int
    listing_id: int
    house_id: int
    quality: int
    price: float
    initial_price: float
    days_on_market: int
    buyer_id: Optional[int]
    seller_id: Optional[int]

    def __repr__(self) -> str:
        return (
            f"Transaction({self.kind.value} house={self.house_id} @ {self.price:.2f}, "
            f"buyer={self.buyer_id}, seller={self.seller_id}, t={self.period})"
        )
