from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from procurement.models import OrderStatus
from .order_workflow import automatic_transitions_from_state
from .service import TransitionService
from .stock import StockEvaluator
from .types import TransitionResult

logger = logging.getLogger(__name__)


class AutoTransitionResolver:
    """
    Fires the edges that need no actor: pass-through steps, and the
    checking_stock branch decided by a fresh stock verdict. Every step still
    goes through TransitionService and leaves a record with no actor.
    """

    def __init__(self, service: Optional[TransitionService] = None, stock: Optional[StockEvaluator] = None):
        self._service = service or TransitionService()
        self._stock = stock or StockEvaluator()

    def next_step(self, order) -> Optional[Tuple[str, str]]:
        """
        Returns (to_state, note) for the automatic edge due from the order's
        current status, or None when the order waits for an actor or is terminal.
        """
        candidates = automatic_transitions_from_state(order.status)
        if not candidates:
            return None
        if order.status == OrderStatus.CHECKING_STOCK:
            verdict = self._stock.evaluate(order)
            if verdict.available:
                return OrderStatus.FULFILLED_INTERNAL, "Stock check: all items available internally"
            if not verdict.item_results:
                return OrderStatus.NEEDS_EXTERNAL_ORDER, "Stock check: order has no items"
            return (
                OrderStatus.NEEDS_EXTERNAL_ORDER,
                f"Stock check: {len(verdict.missing_items)} of {len(verdict.item_results)} item(s) short",
            )
        # Every other state has a single unconditional automatic edge
        return candidates[0].to_state, ""

    def advance(self, order) -> List[TransitionResult]:
        """
        Follow automatic edges until the order rests in a state that needs an
        actor. The automatic edges form no cycle, so this terminates.
        Stops at the first failed step and returns it last.
        """
        results: List[TransitionResult] = []
        while True:
            step = self.next_step(order)
            if step is None:
                break
            to_state, note = step
            result = self._service.transition(order, to_state, actor_id=None, note=note)
            results.append(result)
            if not result.success:
                logger.warning(
                    "Automatic transition of order %s to %s failed: %s", order.pk, to_state, result.errors
                )
                break
        return results
