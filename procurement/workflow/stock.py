from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from .stores import default_inventory_lookup
from .types import InventoryLookup, StockCheckResult, StockItemResult

logger = logging.getLogger(__name__)


class StockEvaluator:
    """
    Computes whether the buyer's internal stock covers every line item of an order.
    Pure read: nothing is reserved, and every call queries the inventory afresh.
    """

    def __init__(self, inventory: Optional[InventoryLookup] = None):
        self._inventory = inventory or default_inventory_lookup()

    def evaluate(self, order) -> StockCheckResult:
        results: List[StockItemResult] = []
        total_requested = Decimal("0")
        total_available = Decimal("0")

        for item in order.items.all():
            requested = Decimal(item.requested_quantity or 0)
            if item.inventory_ref:
                available = Decimal(
                    self._inventory.get_available_quantity(order.buyer_company_id, item.inventory_ref) or 0
                )
                sufficient = available >= requested
            else:
                # Off-catalog entries cannot be served from stock
                available = Decimal("0")
                sufficient = False

            total_requested += requested
            total_available += available
            results.append(
                StockItemResult(
                    item_id=item.pk,
                    item_name=item.item_name,
                    requested=requested,
                    available=available,
                    sufficient=sufficient,
                )
            )

        # An order with nothing to check cannot be served from stock
        verdict = StockCheckResult(
            available=bool(results) and all(r.sufficient for r in results),
            item_results=results,
            total_requested=total_requested,
            total_available=total_available,
        )
        logger.debug(
            "Stock check for order %s: available=%s missing=%d",
            order.pk,
            verdict.available,
            len(verdict.missing_items),
        )
        return verdict
