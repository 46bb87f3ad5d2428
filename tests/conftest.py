"""Shared fixtures for the market tests."""

import itertools

import pytest

from housing_market.config import load_config
from housing_market.context import SimulationContext
from housing_market.sample_data import DemoHousehold


@pytest.fixture
def config():
    """Small config: five quality bands, everything else default."""
    return load_config(overrides=["n_quality=5"])


@pytest.fixture
def context(config):
    return SimulationContext.create(config)


@pytest.fixture
def household(context):
    """Factory for demo households with sequential IDs."""
    ids = itertools.count(1)

    def make(bank_balance: float = 0.0) -> DemoHousehold:
        return DemoHousehold(next(ids), bank_balance, context)

    return make


@pytest.fixture
def listed(context, household):
    """Factory that lists a fresh house for sale and returns its listing."""
    def make(quality: int, price: float):
        seller = household()
        house = context.new_house(seller, quality)
        seller.houses.append(house)
        return context.sale_market.offer(house, price)

    return make
