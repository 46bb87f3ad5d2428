"""House data model and the household interfaces the markets call into."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Protocol

if TYPE_CHECKING:
    from .listing import Listing, ListingKind


class HouseOwner(Protocol):
    """Seller / landlord side of a transaction."""

    household_id: int

    def complete_house_sale(self, listing: "Listing") -> None: ...

    def complete_house_let(self, listing: "Listing") -> None: ...

    def end_of_letting_agreement(self, house: "House") -> None: ...


class HouseBuyer(Protocol):
    """Buyer / tenant side of a transaction."""

    household_id: int
    bank_balance: float

    def complete_house_purchase(self, listing: "Listing") -> None: ...

    def complete_house_rental(self, listing: "Listing") -> None: ...


@dataclass(eq=False)
class House:
    """
    An indivisible good traded on the sale and rental markets.

    Attributes:
        house_id: Run-local identifier
        quality: Quality band, fixed at creation
        owner: Current owner; reassigned on every sale, never cleared
        resident: Household living in the house, if any
        sale_record: Active sale listing, if any
        rental_record: Active rental listing, if any
    """
    house_id: int
    quality: int
    owner: Any
    resident: Optional[Any] = None
    sale_record: Optional["Listing"] = field(default=None, repr=False)
    rental_record: Optional["Listing"] = field(default=None, repr=False)

    def __post_init__(self):
        if self.quality < 0:
            raise ValueError("Quality must be non-negative")
        if self.owner is None:
            raise ValueError("A house must have an owner")

    @property
    def is_on_market(self) -> bool:
        return self.sale_record is not None

    @property
    def is_on_rental_market(self) -> bool:
        return self.rental_record is not None

    def listing_for(self, kind: "ListingKind") -> Optional["Listing"]:
        """Return the active listing of the given kind."""
        return getattr(self, kind.slot)

    def set_listing(self, kind: "ListingKind", listing: Optional["Listing"]) -> None:
        setattr(self, kind.slot, listing)

    def __repr__(self) -> str:
        owner_id = getattr(self.owner, "household_id", self.owner)
        return f"House(id={self.house_id}, q={self.quality}, owner={owner_id})"
