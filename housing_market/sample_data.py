"""Sample households and markets for demos and tests."""

from typing import Dict, List, Optional, Tuple

import numpy as np
from omegaconf import DictConfig

from .config import load_config
from .context import SimulationContext
from .house import House
from .listing import BuyerClass, Listing


class DemoHousehold:
    """
    Minimal household that pays cash and logs every market callback.

    Each event is (name, house_id, owner_id_at_call_time), so tests can see
    who the markets thought owned the house when the callback ran.
    """

    def __init__(
        self,
        household_id: int,
        bank_balance: float = 0.0,
        context: Optional[SimulationContext] = None,
    ):
        self.household_id = household_id
        self.bank_balance = bank_balance
        self.context = context
        self.houses: List[House] = []
        self.home: Optional[House] = None
        self.events: List[Tuple[str, int, Optional[int]]] = []

    def _log(self, name: str, house: House) -> None:
        owner_id = getattr(house.owner, "household_id", None)
        self.events.append((name, house.house_id, owner_id))

    def complete_house_sale(self, listing: Listing) -> None:
        self._log("sale", listing.house)
        self.bank_balance += listing.price
        self.houses.remove(listing.house)
        if self.home is listing.house:
            self.home = None

    def complete_house_purchase(self, listing: Listing) -> None:
        self._log("purchase", listing.house)
        self.bank_balance -= listing.price
        self.houses.append(listing.house)
        if self.home is None:
            self.home = listing.house

    def complete_house_let(self, listing: Listing) -> None:
        self._log("let", listing.house)

    def complete_house_rental(self, listing: Listing) -> None:
        self._log("rental", listing.house)
        self.home = listing.house

    def end_of_letting_agreement(self, house: House) -> None:
        """Put the house straight back on the rental market."""
        self._log("end_of_letting", house)
        if self.context is not None:
            rent = self.context.rental_market.statistics.average_price[house.quality]
            self.context.rental_market.offer(house, float(rent))

    def __repr__(self) -> str:
        return f"DemoHousehold(id={self.household_id}, balance={self.bank_balance:.0f})"


def create_sample_market(
    config: Optional[DictConfig] = None,
    n_sellers: int = 12,
    n_buyers: int = 10,
    n_investors: int = 3,
    n_landlords: int = 4,
    n_renters: int = 4,
) -> Tuple[SimulationContext, Dict[int, DemoHousehold]]:
    """
    Create a run with houses listed and bids queued.

    Everything random is drawn from a generator seeded by config.seed, so
    the same config always gives the same market.

    Returns:
        Tuple of (SimulationContext, household_id -> DemoHousehold)
    """
    config = config if config is not None else load_config()
    rng = np.random.default_rng(config.seed)
    context = SimulationContext.create(config)
    sale_prices = context.sale_market.statistics.average_sale_price
    rents = context.rental_market.statistics.average_price
    households: Dict[int, DemoHousehold] = {}

    def household(balance: float) -> DemoHousehold:
        h = DemoHousehold(len(households) + 1, balance, context)
        households[h.household_id] = h
        return h

    def house_for(owner: DemoHousehold) -> House:
        house = context.new_house(owner, int(rng.integers(config.n_quality)))
        owner.houses.append(house)
        return house

    # Sellers list their homes a little above the reference price
    for _ in range(n_sellers):
        seller = household(float(rng.uniform(1e4, 5e4)))
        house = house_for(seller)
        seller.home = house
        house.resident = seller
        context.sale_market.offer(house, float(sale_prices[house.quality] * rng.uniform(1.0, 1.15)))

    # First-time buyers bid for a randomly chosen band
    for _ in range(n_buyers):
        buyer = household(float(rng.uniform(2e4, 8e4)))
        quality = int(rng.integers(config.n_quality))
        context.sale_market.bid(buyer, float(sale_prices[quality] * rng.uniform(0.95, 1.2)))

    # Investors bid their whole budget on yield
    for _ in range(n_investors):
        investor = household(float(rng.uniform(5e4, 2e5)))
        context.sale_market.bid(
            investor, float(rng.uniform(1e5, 4e5)), BuyerClass.YIELD_DRIVEN
        )

    # Landlords let empty houses at the reference rent
    for _ in range(n_landlords):
        landlord = household(float(rng.uniform(1e5, 3e5)))
        house = house_for(landlord)
        context.rental_market.offer(house, float(rents[house.quality] * rng.uniform(0.95, 1.1)))

    for _ in range(n_renters):
        renter = household(float(rng.uniform(1e3, 1e4)))
        quality = int(rng.integers(config.n_quality))
        context.rental_market.bid(renter, float(rents[quality] * rng.uniform(1.0, 1.3)))

    return context, households


def print_full_book(context: SimulationContext) -> None:
    """Print both order books, best quality first."""
    for name, market in (("FOR SALE", context.sale_market), ("TO LET", context.rental_market)):
        print("\n" + "=" * 50)
        print(f"{name} - period {context.time}")
        print("=" * 50)
        print(f"{'House':>6} | {'Quality':>7} | {'Price':>12} | {'Yield':>6} | {'Days':>5}")
        print("-" * 50)
        for listing in reversed(market.book.listings_by_quality()):
            days = listing.days_on_market(context.time, context.config.days_per_period)
            print(
                f"{listing.house.house_id:>6} | {listing.quality:>7} | "
                f"{listing.price:>12,.0f} | {listing.yield_:>6.2%} | {days:>5}"
            )
        print(f"\n{len(market.bids)} bids queued")


if __name__ == "__main__":
    context, households = create_sample_market()
    print_full_book(context)

    print("\nClearing:")
    print("-" * 30)
    for name, transactions in context.clear_markets().items():
        for t in transactions:
            print(f"  {name}: {t}")

    print("\nBooks after clearing:")
    print_full_book(context)
