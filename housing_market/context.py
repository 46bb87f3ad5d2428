"""Per-run container for the markets and the values they share."""

import itertools
import logging
from typing import List, Optional

from omegaconf import DictConfig

from .config import load_config
from .house import House
from .markets import create_rental_market, create_sale_market, end_tenancy

logger = logging.getLogger(__name__)


class SimulationContext:
    """
    Everything one simulation run shares: config, clock, markets and the
    bank's investor-lending policy.

    Built once per run and handed to whatever needs market state; several
    runs can live side by side in one process.
    """

    def __init__(self, config: Optional[DictConfig] = None):
        self.config = config if config is not None else load_config()
        self.time = 0
        self.interest_coverage_ratio = self.config.interest_coverage_ratio
        self.btl_stressed_interest_rate = self.config.btl_stressed_interest_rate
        self.houses: List[House] = []
        self._house_ids = itertools.count(1)

        # Each market reads the other's statistics lazily
        self.sale_market = create_sale_market(self)
        self.rental_market = create_rental_market(self)

    @classmethod
    def create(cls, config: Optional[DictConfig] = None) -> "SimulationContext":
        """Build a context and open the first period."""
        context = cls(config)
        context.open_period()
        return context

    def new_house(self, owner, quality: int) -> House:
        """
        Build a house with a run-local ID.

        Raises:
            ValueError: If quality is outside [0, n_quality)
        """
        if not 0 <= quality < self.config.n_quality:
            raise ValueError(
                f"Quality must be in [0, {self.config.n_quality}), got {quality}"
            )
        house = House(house_id=next(self._house_ids), quality=quality, owner=owner)
        self.houses.append(house)
        return house

    def open_period(self) -> None:
        self.sale_market.open_period()
        self.rental_market.open_period()

    def step(self) -> int:
        """Advance the clock one period and open both markets."""
        self.time += 1
        self.open_period()
        logger.debug("Period %d opened", self.time)
        return self.time

    def clear_markets(self) -> dict:
        """Clear the sale market, then the rental market."""
        return {
            "sale": self.sale_market.clear_market(),
            "rental": self.rental_market.clear_market(),
        }

    def end_tenancy(self, house: House) -> None:
        end_tenancy(house)
