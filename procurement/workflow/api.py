"""
In-process entry points for application code (views, tasks, admin).

All functions take order ids and return typed results; expected business
failures never raise.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist

from .resolver import AutoTransitionResolver
from .service import TransitionService
from .stock import StockEvaluator
from .stores import default_order_store
from .types import OrderStore, StockCheckResult, TransitionResult, WorkflowError

logger = logging.getLogger(__name__)


def transition(
    order_id,
    target_status: str,
    actor_id: Optional[str] = None,
    notes: str = "",
    reason: str = "",
    *,
    idempotency_key: Optional[str] = None,
    dry_run: bool = False,
    service: Optional[TransitionService] = None,
) -> TransitionResult:
    """
    Move an order to `target_status`. After a committed transition, automatic
    edges are followed (PROCUREMENT_AUTO_ADVANCE) and reported in `follow_ups`.
    """
    service = service or TransitionService()
    try:
        order = service.store.get_order(order_id)
    except ObjectDoesNotExist:
        return TransitionResult(
            success=False,
            from_state=None,
            error=WorkflowError.ORDER_NOT_FOUND,
            errors=[f"Purchase order {order_id} not found"],
        )

    result = service.transition(
        order,
        target_status,
        actor_id=actor_id,
        note=notes,
        reason=reason,
        idempotency_key=idempotency_key,
        dry_run=dry_run,
    )
    if result.success and not (dry_run or result.idempotent) and getattr(settings, "PROCUREMENT_AUTO_ADVANCE", True):
        result.follow_ups = AutoTransitionResolver(service).advance(order)
    return result


def available_actions(order_id, actor_id: str, *, service: Optional[TransitionService] = None) -> List[str]:
    service = service or TransitionService()
    try:
        order = service.store.get_order(order_id)
    except ObjectDoesNotExist:
        return []
    return service.available_actions(order, actor_id)


def check_stock_availability(
    order_id, *, evaluator: Optional[StockEvaluator] = None, store: Optional[OrderStore] = None
) -> StockCheckResult:
    """An unknown order has nothing in stock: the verdict is unavailable with no items."""
    store = store or default_order_store()
    try:
        order = store.get_order(order_id)
    except ObjectDoesNotExist:
        logger.warning("Stock check requested for unknown purchase order %s", order_id)
        return StockCheckResult(available=False)
    return (evaluator or StockEvaluator()).evaluate(order)


def advance(order_id, *, service: Optional[TransitionService] = None) -> List[TransitionResult]:
    """Fire any automatic transitions due for the order, e.g. after a crash left it mid-chain."""
    service = service or TransitionService()
    try:
        order = service.store.get_order(order_id)
    except ObjectDoesNotExist:
        return []
    return AutoTransitionResolver(service).advance(order)
