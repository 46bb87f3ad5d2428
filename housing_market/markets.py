"""Sale and rental markets: two configurations of the clearing engine."""

import logging
from typing import TYPE_CHECKING, Optional

from .clearing import ClearingEngine, Settlement
from .errors import InvariantViolation
from .house import House
from .listing import Bid, BuyerClass, Listing, ListingKind
from .statistics import MONTHS_IN_YEAR, MarketStatistics, reference_prices

if TYPE_CHECKING:
    from .context import SimulationContext

logger = logging.getLogger(__name__)


def min_downpayment(
    price: float,
    average_yield: float,
    interest_coverage_ratio: float,
    stressed_rate: float,
) -> float:
    """
    Smallest deposit that lets an investor buy at the given price.

    The rent a house is expected to earn must cover the stressed interest
    on the loan by the coverage ratio; the rest of the price is deposit.
    """
    return price * (1.0 - average_yield / (interest_coverage_ratio * stressed_rate))


def quality_driven(market: ClearingEngine, bid: Bid) -> Optional[Listing]:
    """Best quality affordable at the bid, cheapest first, oldest first."""
    return market.book.best_by_quality(bid.max_price)


def yield_driven(context: "SimulationContext"):
    """
    Build the investor strategy for a run.

    Investors are offered the highest-yield listing within their budget,
    and only if they can put down the deposit it needs. There is no
    fall-back to a lower-yield listing.
    """
    def strategy(market: ClearingEngine, bid: Bid) -> Optional[Listing]:
        top = market.book.best_by_yield(bid.max_price)
        if top is None:
            return None
        deposit = min_downpayment(
            top.price,
            context.rental_market.statistics.average_gross_yield,
            context.interest_coverage_ratio,
            context.btl_stressed_interest_rate,
        )
        if bid.buyer.bank_balance >= deposit:
            return top
        return None

    return strategy


def sale_settlement() -> Settlement:
    """Ownership transfer."""
    def notify(bid: Bid, listing: Listing) -> None:
        listing.house.owner.complete_house_sale(listing)
        bid.buyer.complete_house_purchase(listing)

    def transfer(bid: Bid, listing: Listing) -> None:
        listing.house.owner = bid.buyer

    return Settlement(notify=notify, transfer=transfer)


def rental_settlement() -> Settlement:
    """Tenancy creation; the landlord keeps the house."""
    def notify(bid: Bid, listing: Listing) -> None:
        listing.house.owner.complete_house_let(listing)
        bid.buyer.complete_house_rental(listing)

    def transfer(bid: Bid, listing: Listing) -> None:
        listing.house.resident = bid.buyer

    return Settlement(notify=notify, transfer=transfer)


def create_sale_market(context: "SimulationContext") -> ClearingEngine:
    """Houses for sale, bought by owner-occupiers and investors."""
    config = context.config
    statistics = MarketStatistics(
        ListingKind.SALE,
        config,
        reference_prices(config.n_quality, config.sale_log_median, config.sale_shape),
    )

    def expected_yield(quality: int, price: float) -> float:
        rent = context.rental_market.statistics.average_price[quality]
        return MONTHS_IN_YEAR * float(rent) / price

    return ClearingEngine(
        kind=ListingKind.SALE,
        strategies={
            BuyerClass.QUALITY_DRIVEN: quality_driven,
            BuyerClass.YIELD_DRIVEN: yield_driven(context),
        },
        settlement=sale_settlement(),
        statistics=statistics,
        clock=lambda: context.time,
        yield_fn=expected_yield,
    )


def create_rental_market(context: "SimulationContext") -> ClearingEngine:
    """Houses to let, taken by renters on quality and price alone."""
    config = context.config

    def sale_price(quality: int) -> float:
        return float(context.sale_market.statistics.average_sale_price[quality])

    statistics = MarketStatistics(
        ListingKind.RENTAL,
        config,
        reference_prices(config.n_quality, config.rent_log_median, config.rent_shape),
        yield_reference=sale_price,
    )

    def gross_yield(quality: int, rent: float) -> float:
        return MONTHS_IN_YEAR * rent / sale_price(quality)

    return ClearingEngine(
        kind=ListingKind.RENTAL,
        strategies={BuyerClass.QUALITY_DRIVEN: quality_driven},
        settlement=rental_settlement(),
        statistics=statistics,
        clock=lambda: context.time,
        yield_fn=gross_yield,
    )


def end_tenancy(house: House) -> None:
    """
    End the letting of a house.

    The tenant moves out and the landlord is told, typically re-offering
    the house on the rental market.

    Raises:
        InvariantViolation: If nobody rents the house
    """
    if house.resident is None or house.resident is house.owner:
        raise InvariantViolation(f"{house} is not let")
    house.resident = None
    logger.debug("Tenancy of %s ended", house)
    house.owner.end_of_letting_agreement(house)
