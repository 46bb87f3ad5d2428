"""Configuration for a market run."""

import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from omegaconf import DictConfig, OmegaConf

MONTHLY_DECAY = math.exp(-1.0 / 12.0)


@dataclass
class MarketConfig:
    """
    Market parameters.

    Used as an omegaconf structured config, so YAML files and dotlist
    overrides are type-checked against these fields.
    """

    # Quality bands
    n_quality: int = 48

    # Clock
    days_per_period: int = 30

    # Exponential averaging of market statistics
    price_decay: float = MONTHLY_DECAY
    days_on_market_decay: float = MONTHLY_DECAY
    yield_decay: float = MONTHLY_DECAY

    # Lognormal reference prices per quality band
    sale_log_median: float = 12.0
    sale_shape: float = 0.555
    rent_log_median: float = 6.5
    rent_shape: float = 0.555

    # Investor affordability
    initial_gross_yield: float = 0.05
    interest_coverage_ratio: float = 1.25
    btl_stressed_interest_rate: float = 0.05

    # House price appreciation window (periods)
    hpa_window: int = 12

    # Only used by the sample data and demos
    seed: int = 1


def load_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[List[str]] = None,
) -> DictConfig:
    """
    Build a market config.

    Args:
        path: Optional YAML file merged over the defaults
        overrides: Optional dotlist, e.g. ["n_quality=10", "seed=7"]

    Returns:
        A structured DictConfig backed by MarketConfig
    """
    config = OmegaConf.structured(MarketConfig)
    if path is not None:
        config = OmegaConf.merge(config, OmegaConf.load(path))
    if overrides:
        config = OmegaConf.merge(config, OmegaConf.from_dotlist(overrides))

    if config.n_quality <= 0:
        raise ValueError("n_quality must be positive")
    if config.hpa_window <= 0:
        raise ValueError("hpa_window must be positive")
    return config
