"""Tests for the clearing engine and the sale and rental markets."""

import pytest

from housing_market.clearing import MarketPhase
from housing_market.config import load_config
from housing_market.context import SimulationContext
from housing_market.errors import InvariantViolation
from housing_market.house import House
from housing_market.listing import Bid, BuyerClass, ListingKind
from housing_market.markets import min_downpayment
from housing_market.sample_data import DemoHousehold, create_sample_market


class TestSaleMarket:
    @pytest.fixture(autouse=True)
    def setup(self, context, household, listed):
        self.context = context
        self.market = context.sale_market
        self.household = household
        self.listed = listed

    def test_offer_lists_house(self):
        listing = self.listed(2, 100.0)

        assert listing.kind is ListingKind.SALE
        assert listing.listed_at == 0
        assert listing.house.sale_record is listing
        assert len(self.market) == 1

    def test_double_offer_is_fatal(self):
        listing = self.listed(2, 100.0)
        with pytest.raises(InvariantViolation):
            self.market.offer(listing.house, 90.0)
        assert len(self.market) == 1

    def test_remove_offer(self):
        listing = self.listed(2, 100.0)

        assert self.market.remove_offer(listing) is listing
        assert self.market.remove_offer(listing) is None
        assert listing.house.sale_record is None

    def test_update_offer_refreshes_yield(self):
        listing = self.listed(2, 100.0)
        self.market.update_offer(listing, 80.0)

        rent = self.context.rental_market.statistics.average_price[2]
        assert listing.price == 80.0
        assert listing.initial_price == 100.0
        assert listing.listed_at == 0
        assert listing.yield_ == pytest.approx(12 * rent / 80.0)
        assert self.market.book.best_by_quality(80.0) is listing

    def test_quality_driven_match(self):
        self.listed(1, 50.0)
        self.listed(3, 90.0)
        best = self.listed(3, 70.0)

        bid = Bid(buyer=self.household(), max_price=100.0)
        assert self.market.best_match(bid) is best
        # Lookup does not change the book
        assert len(self.market) == 3

    def test_clearing_executes_best_match(self):
        self.listed(1, 50.0)
        self.listed(3, 90.0)
        best = self.listed(3, 70.0)
        seller = best.house.owner
        buyer = self.household(bank_balance=500.0)

        self.market.bid(buyer, 100.0)
        transactions = self.market.clear_market()

        assert len(transactions) == 1
        t = transactions[0]
        assert t.house_id == best.house.house_id
        assert t.price == 70.0
        assert t.buyer_id == buyer.household_id
        assert t.seller_id == seller.household_id
        assert best.house.owner is buyer
        assert buyer.bank_balance == 430.0
        assert buyer.houses == [best.house]
        assert seller.houses == []

    def test_transaction_atomicity(self):
        self.listed(1, 50.0)
        listing = self.listed(3, 70.0)
        house = listing.house
        buyer = self.household()

        self.market.bid(buyer, 100.0)
        self.market.clear_market()

        assert len(self.market) == 1
        assert listing not in self.market.book
        assert house.sale_record is None
        assert self.market.book.for_house(house) is None
        assert house.owner is buyer
        self.market.book.check_consistency()

    def test_callbacks_see_seller_as_owner(self):
        listing = self.listed(3, 70.0)
        house = listing.house
        seller = house.owner
        buyer = self.household()

        self.market.bid(buyer, 100.0)
        self.market.clear_market()

        # Both callbacks ran before ownership changed hands
        assert seller.events == [("sale", house.house_id, seller.household_id)]
        assert buyer.events == [("purchase", house.house_id, seller.household_id)]

    def test_unmatched_bid_is_dropped(self):
        listing = self.listed(3, 70.0)
        self.market.bid(self.household(), 60.0)

        assert self.market.clear_market() == []
        assert self.market.bids == []
        assert listing in self.market.book

    def test_empty_book_is_no_match(self):
        self.market.bid(self.household(), 1e9)
        self.market.bid(self.household(1e9), 1e9, BuyerClass.YIELD_DRIVEN)
        assert self.market.clear_market() == []

    def test_self_trade_is_noop(self):
        listing = self.listed(3, 70.0)
        owner = listing.house.owner

        self.market.bid(owner, 100.0)
        transactions = self.market.clear_market()

        assert transactions == []
        assert listing in self.market.book
        assert listing.house.owner is owner
        assert listing.house.sale_record is listing
        assert owner.events == []
        assert self.market.statistics.transactions == []

    def test_complete_transaction_rejects_self_trade(self):
        listing = self.listed(3, 70.0)
        bid = Bid(buyer=listing.house.owner, max_price=100.0)
        with pytest.raises(InvariantViolation, match="own"):
            self.market.complete_transaction(bid, listing)

    def test_complete_transaction_rejects_unlisted(self):
        listing = self.listed(3, 70.0)
        self.market.remove_offer(listing)
        with pytest.raises(InvariantViolation, match="not on the SALE market"):
            self.market.complete_transaction(Bid(buyer=self.household(), max_price=100.0), listing)

    def test_bids_processed_in_arrival_order(self):
        listing = self.listed(2, 100.0)
        first = self.household()
        second = self.household()

        self.market.bid(first, 150.0)
        self.market.bid(second, 200.0)
        transactions = self.market.clear_market()

        assert [t.buyer_id for t in transactions] == [first.household_id]
        assert listing.house.owner is first

    def test_each_listing_sold_once(self):
        self.listed(2, 100.0)
        self.listed(1, 80.0)
        buyers = [self.household() for _ in range(3)]
        for buyer in buyers:
            self.market.bid(buyer, 150.0)

        transactions = self.market.clear_market()

        assert [t.quality for t in transactions] == [2, 1]
        assert [t.buyer_id for t in transactions] == [b.household_id for b in buyers[:2]]
        assert len(self.market) == 0

    def test_yield_driven_affordability_cutoff(self):
        rents = self.context.rental_market.statistics.average_price
        rents[:] = [10.0, 10.0, 10.0, 10.0, 100.0]
        top = self.listed(4, 1000.0)
        other = self.listed(0, 200.0)
        assert top.yield_ > other.yield_

        # The top listing needs a deposit of 200; the other only 40
        investor = self.household(bank_balance=150.0)
        bid = Bid(buyer=investor, max_price=2000.0, buyer_class=BuyerClass.YIELD_DRIVEN)

        assert self.market.best_match(bid) is None
        self.market.bid(investor, 2000.0, BuyerClass.YIELD_DRIVEN)
        assert self.market.clear_market() == []
        assert len(self.market) == 2

    def test_yield_driven_match(self):
        rents = self.context.rental_market.statistics.average_price
        rents[:] = [10.0, 10.0, 10.0, 10.0, 100.0]
        top = self.listed(4, 1000.0)
        self.listed(0, 200.0)

        investor = self.household(bank_balance=250.0)
        self.market.bid(investor, 2000.0, BuyerClass.YIELD_DRIVEN)
        transactions = self.market.clear_market()

        assert [t.house_id for t in transactions] == [top.house.house_id]
        assert top.house.owner is investor

    def test_yield_driven_respects_budget(self):
        rents = self.context.rental_market.statistics.average_price
        rents[:] = [10.0, 10.0, 10.0, 10.0, 100.0]
        self.listed(4, 1000.0)
        other = self.listed(0, 200.0)

        investor = self.household(bank_balance=150.0)
        bid = Bid(buyer=investor, max_price=500.0, buyer_class=BuyerClass.YIELD_DRIVEN)
        assert self.market.best_match(bid) is other

    def test_yields_refresh_when_period_opens(self):
        listing = self.listed(4, 1000.0)
        rents = self.context.rental_market.statistics.average_price
        rents[4] = 50.0

        self.context.step()

        assert listing.yield_ == pytest.approx(12 * 50.0 / 1000.0)

    def test_listings_age_across_periods(self):
        listing = self.listed(2, 100.0)
        self.context.step()
        self.context.step()

        assert listing in self.market.book
        assert listing.days_on_market(self.context.time) == 60

    def test_reentrant_clearing_is_fatal(self):
        class Impatient(DemoHousehold):
            def complete_house_purchase(self, listing):
                super().complete_house_purchase(listing)
                self.context.sale_market.clear_market()

        self.listed(2, 100.0)
        self.market.bid(Impatient(99, 0.0, self.context), 150.0)

        with pytest.raises(InvariantViolation, match="already clearing"):
            self.market.clear_market()

    def test_bids_from_callbacks_wait_for_next_pass(self):
        class Mover(DemoHousehold):
            def complete_house_sale(self, listing):
                super().complete_house_sale(listing)
                self.context.sale_market.bid(self, 1e6)

        mover = Mover(99, 0.0, self.context)
        house = self.context.new_house(mover, 2)
        mover.houses.append(house)
        self.market.offer(house, 100.0)
        self.market.bid(self.household(), 150.0)

        transactions = self.market.clear_market()

        assert len(transactions) == 1
        assert [b.buyer for b in self.market.bids] == [mover]
        assert self.market.phase is MarketPhase.CLOSED

    def test_second_pass_in_period_leaves_averages(self):
        self.listed(2, 1000.0)
        self.market.bid(self.household(), 1500.0)
        self.market.clear_market()

        stats = self.market.statistics
        sale_price = stats.average_sale_price.copy()
        days, olp = stats.average_days_on_market, stats.average_sold_price_to_olp
        index = list(stats.house_price_index)

        self.market.bid(self.household(), 1.0)
        assert self.market.clear_market() == []

        assert list(stats.average_sale_price) == list(sale_price)
        assert stats.average_days_on_market == days
        assert stats.average_sold_price_to_olp == olp
        assert list(stats.house_price_index) == index
        assert len(stats.transactions) == 1

    def test_second_pass_in_period_folds_only_its_own_sales(self):
        self.listed(3, 1000.0)
        self.listed(2, 500.0)
        self.market.bid(self.household(), 600.0)
        self.market.clear_market()
        before = self.market.statistics.average_sale_price.copy()

        self.market.bid(self.household(), 1000.0)
        self.market.clear_market()

        after = self.market.statistics.average_sale_price
        d = self.context.config.price_decay
        assert after[2] == before[2]
        assert after[3] == pytest.approx(d * before[3] + (1 - d) * 1000.0)
        assert len(self.market.statistics.transactions) == 2

    @pytest.mark.parametrize("price", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_price_rejected(self, price):
        seller = self.household()
        house = self.context.new_house(seller, 2)

        with pytest.raises(ValueError, match="Price must be positive and finite"):
            self.market.offer(house, price)
        assert house.sale_record is None
        assert len(self.market) == 0

        listing = self.market.offer(house, 100.0)
        with pytest.raises(ValueError):
            self.market.update_offer(listing, price)
        assert listing.price == 100.0
        self.market.book.check_consistency()

    def test_rejected_nan_offer_leaves_band_usable(self):
        listings = []
        for n in range(7):
            if n == 1:
                seller = self.household()
                with pytest.raises(ValueError):
                    self.market.offer(self.context.new_house(seller, 2), float("nan"))
            listings.append(self.listed(2, 100.0 * (n + 1)))

        for listing in listings:
            assert self.market.remove_offer(listing) is listing
        assert len(self.market) == 0
        self.market.book.check_consistency()

    def test_yield_driven_self_trade_is_noop(self):
        rents = self.context.rental_market.statistics.average_price
        rents[:] = [10.0, 10.0, 10.0, 10.0, 100.0]
        investor = self.household(bank_balance=1e6)
        house = self.context.new_house(investor, 4)
        investor.houses.append(house)
        own = self.market.offer(house, 1000.0)
        other = self.listed(0, 200.0)
        assert own.yield_ > other.yield_

        self.market.bid(investor, 2000.0, BuyerClass.YIELD_DRIVEN)
        transactions = self.market.clear_market()

        assert transactions == []
        assert own in self.market.book
        assert other in self.market.book
        assert house.owner is investor
        assert investor.events == []
        assert self.market.statistics.transactions == []

    def test_offer_rejects_quality_outside_bands(self):
        house = House(house_id=99, quality=5, owner=self.household())
        with pytest.raises(ValueError, match="Quality must be in"):
            self.market.offer(house, 100.0)
        assert house.sale_record is None

    def test_open_period_resets_transactions(self):
        self.listed(2, 100.0)
        self.market.bid(self.household(), 150.0)
        self.market.clear_market()
        assert len(self.market.statistics.transactions) == 1

        self.context.step()

        assert self.market.statistics.transactions == []
        assert self.market.statistics.n_transactions == 1
        assert self.market.phase is MarketPhase.INTAKE


class TestRentalMarket:
    @pytest.fixture(autouse=True)
    def setup(self, context, household):
        self.context = context
        self.market = context.rental_market
        self.household = household

    def let(self, quality, rent):
        landlord = self.household()
        house = self.context.new_house(landlord, quality)
        landlord.houses.append(house)
        return self.market.offer(house, rent)

    def test_tenancy_creation(self):
        listing = self.let(2, 500.0)
        house = listing.house
        landlord = house.owner
        renter = self.household()

        self.market.bid(renter, 600.0)
        transactions = self.market.clear_market()

        assert len(transactions) == 1
        assert transactions[0].kind is ListingKind.RENTAL
        assert house.resident is renter
        assert house.owner is landlord
        assert house.rental_record is None
        assert renter.home is house
        assert landlord.events == [("let", house.house_id, landlord.household_id)]
        assert renter.events == [("rental", house.house_id, landlord.household_id)]

    def test_renters_choose_best_quality(self):
        self.let(0, 300.0)
        best = self.let(3, 550.0)
        self.let(4, 900.0)

        self.market.bid(self.household(), 600.0)
        self.market.clear_market()

        assert best.house.resident is not None
        assert len(self.market) == 2

    def test_rejects_investor_bids(self):
        with pytest.raises(ValueError, match="does not accept YIELD_DRIVEN"):
            self.market.bid(self.household(), 600.0, BuyerClass.YIELD_DRIVEN)
        assert self.market.bids == []

    def test_landlord_cannot_rent_own_house(self):
        listing = self.let(2, 500.0)
        self.market.bid(listing.house.owner, 600.0)

        assert self.market.clear_market() == []
        assert listing in self.market.book

    def test_gross_yield_statistic(self):
        listing = self.let(2, 500.0)
        sale_price = self.context.sale_market.statistics.average_sale_price[2]
        before = self.market.statistics.average_gross_yield

        self.market.bid(self.household(), 600.0)
        self.market.clear_market()

        decay = self.context.config.yield_decay
        expected = decay * before + (1 - decay) * 12 * 500.0 / sale_price
        assert listing.yield_ == pytest.approx(12 * 500.0 / sale_price)
        assert self.market.statistics.average_gross_yield == pytest.approx(expected)

    def test_end_tenancy(self):
        listing = self.let(2, 500.0)
        house = listing.house
        landlord = house.owner
        self.market.bid(self.household(), 600.0)
        self.market.clear_market()

        self.context.end_tenancy(house)

        assert house.resident is None
        assert landlord.events[-1] == ("end_of_letting", house.house_id, landlord.household_id)
        # The demo landlord re-lists straight away
        assert house.rental_record is not None
        assert house.rental_record in self.market.book

    def test_end_tenancy_of_vacant_house_is_fatal(self):
        listing = self.let(2, 500.0)
        with pytest.raises(InvariantViolation, match="not let"):
            self.context.end_tenancy(listing.house)


class TestDownpayment:
    def test_min_downpayment(self):
        assert min_downpayment(1000.0, 0.05, 1.25, 0.05) == pytest.approx(200.0)

    def test_high_yield_needs_no_deposit(self):
        assert min_downpayment(1000.0, 0.1, 1.25, 0.05) < 0


class TestDeterminism:
    def run(self, config):
        context, _ = create_sample_market(config)
        results = context.clear_markets()
        return [
            (t.kind, t.house_id, t.price, t.buyer_id, t.seller_id)
            for transactions in results.values()
            for t in transactions
        ]

    def test_same_calls_same_transactions(self):
        config = load_config(overrides=["n_quality=8", "seed=11"])
        assert self.run(config) == self.run(config)

    def test_independent_runs_do_not_share_state(self):
        config = load_config(overrides=["seed=3"])
        first, _ = create_sample_market(config)
        second, _ = create_sample_market(config)

        first.clear_markets()

        assert len(second.sale_market.bids) > 0
        assert [h.house_id for h in first.houses] == [h.house_id for h in second.houses]

    def test_repeated_scenario(self, config):
        def scenario():
            context = SimulationContext.create(config)
            households = [DemoHousehold(n, 1e6, context) for n in range(1, 7)]
            for n, quality in enumerate([0, 2, 2, 4]):
                house = context.new_house(households[n], quality)
                households[n].houses.append(house)
                context.sale_market.offer(house, 100.0 + 10 * n)
            context.sale_market.bid(households[4], 125.0)
            context.sale_market.bid(households[5], 1e4, BuyerClass.YIELD_DRIVEN)
            return [(t.house_id, t.buyer_id) for t in context.sale_market.clear_market()]

        assert scenario() == scenario()
        assert len(scenario()) == 2
