"""
Price comparison across grocery bills.

Groups saved bill items by name and reports items bought at more than
one shop, most variable first, so the household can see where to shop.
"""

from decimal import Decimal
from typing import Iterable

from expense_tracker.models.receipt import GroceryBill, PriceComparison


def _item_key(name: str) -> str:
    return name.lower().strip()


def compare_prices(bills: Iterable[GroceryBill]) -> list[PriceComparison]:
    """
    Build price comparisons from bills with their items loaded.

    Items without a name or unit price are ignored. Only items seen at
    two or more distinct shops are returned, sorted by price spread
    (most expensive minus cheapest) descending.
    """
    grouped: dict[str, dict] = {}

    for bill in bills:
        shop = bill.shop_name or "Unknown"
        for item in bill.items:
            if not item.item_name or item.unit_price is None:
                continue
            key = _item_key(item.item_name)
            if not key:
                continue

            entry = grouped.setdefault(key, {"item_name": item.item_name, "shops": []})
            entry["shops"].append({
                "shop_name": shop,
                "unit_price": item.unit_price,
                "bill_date": bill.bill_date,
            })

    comparisons = []
    for entry in grouped.values():
        shops = entry["shops"]
        if len({s["shop_name"] for s in shops}) < 2:
            continue
        prices: list[Decimal] = [s["unit_price"] for s in shops]
        comparisons.append(
            PriceComparison(
                item_name=entry["item_name"],
                shops=sorted(shops, key=lambda s: s["unit_price"]),
                cheapest_price=min(prices),
                most_expensive_price=max(prices),
            )
        )

    comparisons.sort(key=lambda c: c.spread, reverse=True)
    return comparisons
