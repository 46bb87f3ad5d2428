"""FastAPI web application for the housing markets."""

import threading
from pathlib import Path
from typing import Dict

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from .clearing import ClearingEngine
from .context import SimulationContext
from .house import House
from .listing import BuyerClass, Listing
from .sample_data import DemoHousehold, create_sample_market
from .transaction import Transaction

# Initialize app
app = FastAPI(title="Housing Market Interface")

# Setup templates and static files
BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=BASE_DIR / "templates")
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")

# Global run state; the lock guards replacing it and every market call,
# since the markets themselves are single-threaded
_state_lock = threading.Lock()
context: SimulationContext
households: Dict[int, DemoHousehold]


@app.on_event("startup")
async def startup_event():
    """Initialize the markets with sample data on startup."""
    global context, households
    context, households = create_sample_market()


def _market(name: str) -> ClearingEngine:
    if name == "sale":
        return context.sale_market
    if name == "rent":
        return context.rental_market
    raise HTTPException(status_code=400, detail=f"Unknown market '{name}'")


def _house(house_id: int) -> House:
    for house in context.houses:
        if house.house_id == house_id:
            return house
    raise HTTPException(status_code=404, detail=f"No house {house_id}")


def _household(household_id: int) -> DemoHousehold:
    if household_id not in households:
        raise HTTPException(status_code=404, detail=f"No household {household_id}")
    return households[household_id]


def _listing_json(listing: Listing) -> dict:
    return {
        "listing_id": listing.listing_id,
        "house_id": listing.house.house_id,
        "quality": listing.quality,
        "price": listing.price,
        "yield": listing.yield_,
        "days_on_market": listing.days_on_market(context.time, context.config.days_per_period),
    }


def _transaction_json(t: Transaction) -> dict:
    return {
        "kind": t.kind.value,
        "period": t.period,
        "house_id": t.house_id,
        "quality": t.quality,
        "price": t.price,
        "buyer_id": t.buyer_id,
        "seller_id": t.seller_id,
    }


def _book_view(engine: ClearingEngine) -> dict:
    return {
        "name": engine.kind.value,
        "depth": engine.book.get_book_depth(10),
        "listings": len(engine.book),
        "bids": len(engine.bids),
    }


@app.get("/", response_class=HTMLResponse)
async def index(request: Request):
    """Render the market overview."""
    with _state_lock:
        return templates.TemplateResponse(
            request,
            "index.html",
            {
                "request": request,
                "period": context.time,
                "books": [_book_view(context.sale_market), _book_view(context.rental_market)],
                "sale_stats": context.sale_market.statistics.to_dict(),
                "rent_stats": context.rental_market.statistics.to_dict(),
            },
        )


@app.get("/partials/book", response_class=HTMLResponse)
async def book_partial(request: Request, market: str = "sale"):
    """Return just one order book partial (for HTMX updates)."""
    with _state_lock:
        return templates.TemplateResponse(
            request,
            "partials/orderbook.html",
            {"request": request, "book": _book_view(_market(market))},
        )


@app.get("/book")
async def get_book(market: str = "sale"):
    """Return the listings of a market, best quality first."""
    with _state_lock:
        engine = _market(market)
        return {
            "market": engine.kind.value,
            "period": context.time,
            "bids": len(engine.bids),
            "listings": [_listing_json(l) for l in reversed(engine.book.listings_by_quality())],
        }


@app.get("/stats")
async def get_stats():
    """Return the rolling statistics of both markets."""
    with _state_lock:
        return {
            "sale": context.sale_market.statistics.to_dict(),
            "rent": context.rental_market.statistics.to_dict(),
        }


@app.post("/offer")
async def submit_offer(
    house_id: int = Form(...),
    price: float = Form(...),
    market: str = Form("sale"),
):
    """List a house, or re-price it if it is already listed."""
    with _state_lock:
        engine = _market(market)
        house = _house(house_id)
        try:
            listing = house.listing_for(engine.kind)
            if listing is None:
                listing = engine.offer(house, price)
            else:
                engine.update_offer(listing, price)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _listing_json(listing)


@app.post("/withdraw")
async def withdraw_offer(house_id: int = Form(...), market: str = Form("sale")):
    """Take a house off a market."""
    with _state_lock:
        engine = _market(market)
        listing = _house(house_id).listing_for(engine.kind)
        if listing is None:
            raise HTTPException(status_code=404, detail=f"House {house_id} is not listed")
        engine.remove_offer(listing)
        return _listing_json(listing)


@app.post("/bid")
async def submit_bid(
    household_id: int = Form(...),
    max_price: float = Form(...),
    market: str = Form("sale"),
    buyer_class: str = Form("quality"),
):
    """Queue a bid for the next clearing pass."""
    with _state_lock:
        engine = _market(market)
        buyer = _household(household_id)
        chosen = BuyerClass.YIELD_DRIVEN if buyer_class == "yield" else BuyerClass.QUALITY_DRIVEN
        try:
            bid = engine.bid(buyer, max_price, chosen)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {
            "household_id": household_id,
            "max_price": bid.max_price,
            "buyer_class": bid.buyer_class.value,
            "queued": len(engine.bids),
        }


@app.post("/clear")
async def clear():
    """Clear both markets."""
    with _state_lock:
        results = context.clear_markets()
        return {
            name: [_transaction_json(t) for t in transactions]
            for name, transactions in results.items()
        }


@app.post("/step")
async def step():
    """Advance one period."""
    with _state_lock:
        return {"period": context.step()}


@app.post("/reset")
async def reset():
    """Reset to a fresh sample market."""
    global context, households
    with _state_lock:
        context, households = create_sample_market()
        return {"period": context.time, "houses": len(context.houses)}


def run():
    """Run the web server."""
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)


if __name__ == "__main__":
    run()
