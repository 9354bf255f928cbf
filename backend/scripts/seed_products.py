#!/usr/bin/env python3
"""
Seed products and their variant stock from a JSON file.

Each entry looks like:
    {"slug": "camisa-oxford", "name": "Camisa Oxford", "price": 59.90,
     "sizes": ["S", "M"], "colors": ["Blanco"],
     "stock": {"S/Blanco": 4, "M/Blanco": 0}}

``stock`` may also be a plain integer for a product without variants.
Prices are accepted as ``price_cents`` or as a euro amount in ``price``.

Usage:
    python scripts/seed_products.py --file catalogue.json [--reset]
"""
import argparse
import json
import logging
import os
import sys
from decimal import Decimal, InvalidOperation

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fashionmarket.db import SessionLocal, init_db
from fashionmarket.repositories.product_repo import ProductRepository
from fashionmarket.services.stock_service import VariantStockStore
from fashionmarket.utils.transactions import unit_of_work

logger = logging.getLogger("seed_products")

DEFAULT_SOURCE = os.path.join(os.path.dirname(__file__), "catalogue.json")


def _price_cents(entry) -> int:
    if entry.get("price_cents") is not None:
        return int(entry["price_cents"])
    try:
        return int((Decimal(str(entry.get("price", 0))) * 100).quantize(Decimal("1")))
    except InvalidOperation:
        raise ValueError(f"bad price for {entry.get('slug')!r}: {entry.get('price')!r}")


def _variant_updates(stock) -> list:
    """'S/Blanco' -> size S, color Blanco; 'S' or '/Blanco' for one-axis products."""
    updates = []
    for label, qty in stock.items():
        size, _, color = label.partition("/")
        updates.append({"size": size or None, "color": color or None, "stock": qty})
    return updates


def seed_from_file(path: str, reset: bool = False) -> int:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    entries = data["items"] if isinstance(data, dict) else data

    init_db(reset=reset)
    db = SessionLocal()
    repo = ProductRepository(db)
    store = VariantStockStore(db)
    seeded = 0
    try:
        for entry in entries:
            slug = entry.get("slug")
            if not slug:
                logger.warning("skipping entry without slug: %r", entry.get("name"))
                continue
            stock = entry.get("stock", 0)
            with unit_of_work(db):
                product = repo.create_or_update(
                    slug=slug,
                    name=entry.get("name") or slug,
                    price_cents=_price_cents(entry),
                    description=entry.get("description"),
                    image=entry.get("image"),
                    sizes=entry.get("sizes"),
                    colors=entry.get("colors"),
                    stock=stock if isinstance(stock, int) else None,
                    active=entry.get("active", True),
                )
            if isinstance(stock, dict) and stock:
                store.apply_updates(product.id, _variant_updates(stock))
            seeded += 1
    finally:
        db.close()
    logger.info("Seeded products: %s", seeded)
    return seeded


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=DEFAULT_SOURCE, help="Path to the catalogue JSON")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    args = parser.parse_args()
    if not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    seed_from_file(args.file, reset=args.reset)
