"""CLI demo interface for the housing markets."""

import argparse
import logging
from typing import Dict, List, Optional

from .config import load_config
from .context import SimulationContext
from .errors import InvariantViolation
from .listing import BuyerClass
from .orderbook import OrderBook
from .sample_data import DemoHousehold, create_sample_market
from .transaction import Transaction


def print_book(book: OrderBook, levels: int = 10) -> None:
    """Print the best quality bands of an order book."""
    print("\n" + "=" * 40)
    print(f"{book.kind.value} BOOK ({len(book)} listings)")
    print("=" * 40)
    depth = book.get_book_depth(levels)
    if depth:
        print(f"{'Quality':>8} | {'Listings':>8} | {'From':>12}")
        for quality, count, price in depth:
            print(f"{quality:>8} | {count:>8} | {price:>12,.0f}")
    else:
        print("  (empty)")
    print("=" * 40 + "\n")


def print_transactions(transactions: List[Transaction]) -> None:
    """Print executed transactions."""
    if transactions:
        print("\nTRANSACTIONS:")
        for t in transactions:
            print(f"  house {t.house_id} (q{t.quality}) @ {t.price:,.0f}: {t.seller_id} -> {t.buyer_id}")
    else:
        print("\n(No transactions)")


def print_help() -> None:
    """Print help message."""
    print("""
Housing Market Demo - Commands:
  book [sale|rent]          - Show an order book
  offer <house> <price>     - List a house for sale
  let <house> <rent>        - List a house for rent
  reprice <house> <price>   - Change the asking price of a house for sale
  withdraw <house>          - Take a house off the sale market
  bid <household> <price>   - Owner-occupier bid
  invest <household> <price> - Buy-to-let bid
  rent <household> <rent>   - Bid for a rental
  clear                     - Clear both markets
  step                      - Advance one period
  stats                     - Show market statistics
  help                      - Show this help
  quit                      - Exit

Examples:
  offer 3 250000            - Sell house 3 for 250,000
  bid 14 300000             - Household 14 bids up to 300,000
""")


def _house(context: SimulationContext, house_id: int):
    for house in context.houses:
        if house.house_id == house_id:
            return house
    raise ValueError(f"No house {house_id}")


def _household(households: Dict[int, DemoHousehold], household_id: int) -> DemoHousehold:
    if household_id not in households:
        raise ValueError(f"No household {household_id}")
    return households[household_id]


def print_stats(context: SimulationContext) -> None:
    """Print headline statistics of both markets."""
    for market in (context.sale_market, context.rental_market):
        stats = market.statistics
        print(f"\n{market.kind.value} (t={context.time})")
        print(f"  transactions this period: {len(stats.transactions)}")
        print(f"  average days on market:   {stats.average_days_on_market:.1f}")
        print(f"  sold price / list price:  {stats.average_sold_price_to_olp:.3f}")
        print(f"  house price index:        {stats.house_price_index[-1]:.4f}")
    print(f"  average gross yield:      {context.rental_market.statistics.average_gross_yield:.2%}")


def run_demo(context: SimulationContext, households: Dict[int, DemoHousehold]) -> None:
    """Run the interactive demo."""
    sale, rental = context.sale_market, context.rental_market

    print("\nHousing Market Demo")
    print(f"{len(context.houses)} houses, {len(households)} households")
    print("Type 'help' for commands\n")

    while True:
        try:
            user_input = input("> ").strip().lower()

            if not user_input:
                continue

            parts = user_input.split()
            command = parts[0]

            if command == "quit":
                print("Goodbye!")
                break

            elif command == "help":
                print_help()

            elif command == "book":
                which = parts[1] if len(parts) > 1 else "sale"
                print_book(rental.book if which == "rent" else sale.book)

            elif command == "offer" and len(parts) == 3:
                house = _house(context, int(parts[1]))
                if house.is_on_market:
                    print(f"House {house.house_id} is already for sale")
                    continue
                print(f"Listed: {sale.offer(house, float(parts[2]))}")

            elif command == "let" and len(parts) == 3:
                house = _house(context, int(parts[1]))
                if house.is_on_rental_market:
                    print(f"House {house.house_id} is already to let")
                    continue
                print(f"Listed: {rental.offer(house, float(parts[2]))}")

            elif command == "reprice" and len(parts) == 3:
                house = _house(context, int(parts[1]))
                if not house.is_on_market:
                    print(f"House {house.house_id} is not for sale")
                    continue
                sale.update_offer(house.sale_record, float(parts[2]))
                print(f"Re-priced: {house.sale_record}")

            elif command == "withdraw" and len(parts) == 2:
                house = _house(context, int(parts[1]))
                if house.sale_record is None:
                    print(f"House {house.house_id} is not for sale")
                    continue
                print(f"Withdrawn: {sale.remove_offer(house.sale_record)}")

            elif command in ("bid", "invest") and len(parts) == 3:
                buyer = _household(households, int(parts[1]))
                buyer_class = BuyerClass.YIELD_DRIVEN if command == "invest" else BuyerClass.QUALITY_DRIVEN
                print(f"Queued: {sale.bid(buyer, float(parts[2]), buyer_class)}")

            elif command == "rent" and len(parts) == 3:
                renter = _household(households, int(parts[1]))
                print(f"Queued: {rental.bid(renter, float(parts[2]))}")

            elif command == "clear":
                for transactions in context.clear_markets().values():
                    print_transactions(transactions)

            elif command == "step":
                print(f"Period {context.step()}")

            elif command == "stats":
                print_stats(context)

            else:
                print("Invalid command. Type 'help' for usage.")

        except ValueError as e:
            print(f"Error: {e}")
        except KeyboardInterrupt:
            print("\nGoodbye!")
            break
        except EOFError:
            print("\nGoodbye!")
            break


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Interactive housing market demo")
    parser.add_argument("--config", help="YAML file merged over the default config")
    parser.add_argument("--seed", type=int, help="Seed for the sample market")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument("overrides", nargs="*", help="Config overrides, e.g. n_quality=10")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    overrides = list(args.overrides)
    if args.seed is not None:
        overrides.append(f"seed={args.seed}")
    config = load_config(args.config, overrides)

    context, households = create_sample_market(config)
    try:
        run_demo(context, households)
    except InvariantViolation:
        logging.getLogger(__name__).exception("Market invariant broken, aborting run")
        raise


if __name__ == "__main__":
    main()
