"""Housing market clearing engine for agent-based simulations"""

from .house import House
from .listing import Bid, BuyerClass, Listing, ListingKind
from .transaction import Transaction
from .orderbook import OrderBook
from .clearing import ClearingEngine, Settlement
from .statistics import MarketStatistics
from .context import SimulationContext
from .errors import InvariantViolation

__all__ = [
    "House",
    "Bid",
    "BuyerClass",
    "Listing",
    "ListingKind",
    "Transaction",
    "OrderBook",
    "ClearingEngine",
    "Settlement",
    "MarketStatistics",
    "SimulationContext",
    "InvariantViolation",
]
