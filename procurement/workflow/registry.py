from __future__ import annotations

import importlib
from typing import Any, Dict, Optional, Tuple

from django.core.exceptions import ImproperlyConfigured

from .permissions import allowed_actions, org_unit_scope_applies, org_unit_scope_satisfied
from .types import Guard, Effect, TransitionContext


# In-memory registries for guards and effects
_GUARDS: Dict[str, Guard] = {}
_EFFECTS: Dict[str, Effect] = {}


def register_guard(key: str, fn: Guard) -> None:
    if key in _GUARDS:
        raise ImproperlyConfigured(f"Guard already registered: {key}")
    _GUARDS[key] = fn


def get_guard(key: str) -> Guard:
    try:
        return _GUARDS[key]
    except KeyError:
        raise ImproperlyConfigured(f"Unknown guard: {key}")


def register_effect(key: str, fn: Effect) -> None:
    if key in _EFFECTS:
        raise ImproperlyConfigured(f"Effect already registered: {key}")
    _EFFECTS[key] = fn


def get_effect(key: str) -> Effect:
    try:
        return _EFFECTS[key]
    except KeyError:
        raise ImproperlyConfigured(f"Unknown effect: {key}")


def load_dotted_path(dotted: str) -> Any:
    """
    Load a dotted-path callable, e.g. "procurement.workflow.stores.DjangoInventoryLookup".
    """
    try:
        module_path, attr = dotted.rsplit(".", 1)
        module = importlib.import_module(module_path)
        return getattr(module, attr)
    except Exception as exc:
        raise ImproperlyConfigured(f"Could not import '{dotted}': {exc}") from exc


# Built-in guards (manual transitions only)

def guard_role_allowed(ctx: TransitionContext) -> Tuple[bool, Optional[str]]:
    """
    The actor's role must allow the transition's action in the order's current status.
    """
    actor = ctx.actor
    if actor is None:
        return False, "An actor is required for this transition"
    if ctx.transition.action in allowed_actions(actor.role, ctx.order.status):
        return True, None
    return False, (
        f"Role '{actor.role}' may not {ctx.transition.action} an order in status '{ctx.order.status}'"
    )


def guard_org_unit_scope(ctx: TransitionContext) -> Tuple[bool, Optional[str]]:
    """
    Site managers may only approve or reject internal orders of their own org units.
    """
    actor = ctx.actor
    if actor is None or not org_unit_scope_applies(ctx.order, actor, ctx.transition.action):
        return True, None
    if ctx.directory is not None and org_unit_scope_satisfied(ctx.order, actor, ctx.directory):
        return True, None
    return False, "You may only validate orders of the organizational units you belong to"


# Built-in effects: record the fields a transition sets alongside the status

def _stamp_once(ctx: TransitionContext, field_name: str) -> None:
    if getattr(ctx.order, field_name) is None:
        ctx.changes[field_name] = ctx.now


def effect_stamp_submitted_at(ctx: TransitionContext) -> None:
    _stamp_once(ctx, "submitted_at")


def effect_stamp_site_approved_at(ctx: TransitionContext) -> None:
    _stamp_once(ctx, "site_approved_at")


def effect_stamp_management_approved_at(ctx: TransitionContext) -> None:
    _stamp_once(ctx, "management_approved_at")


def effect_stamp_supplier_submitted_at(ctx: TransitionContext) -> None:
    _stamp_once(ctx, "supplier_submitted_at")


def effect_stamp_supplier_accepted_at(ctx: TransitionContext) -> None:
    _stamp_once(ctx, "supplier_accepted_at")


def effect_stamp_delivered_at(ctx: TransitionContext) -> None:
    _stamp_once(ctx, "delivered_at")


def effect_record_site_manager(ctx: TransitionContext) -> None:
    if ctx.actor is not None:
        ctx.changes["site_manager_id"] = ctx.actor.user_id


def effect_record_rejection_reason(ctx: TransitionContext) -> None:
    if ctx.reason:
        ctx.changes["rejection_reason"] = ctx.reason


def effect_record_cancellation_reason(ctx: TransitionContext) -> None:
    if ctx.reason:
        ctx.changes["cancellation_reason"] = ctx.reason


# Register built-ins
register_guard("role_allowed", guard_role_allowed)
register_guard("org_unit_scope", guard_org_unit_scope)

register_effect("stamp_submitted_at", effect_stamp_submitted_at)
register_effect("stamp_site_approved_at", effect_stamp_site_approved_at)
register_effect("stamp_management_approved_at", effect_stamp_management_approved_at)
register_effect("stamp_supplier_submitted_at", effect_stamp_supplier_submitted_at)
register_effect("stamp_supplier_accepted_at", effect_stamp_supplier_accepted_at)
register_effect("stamp_delivered_at", effect_stamp_delivered_at)
register_effect("record_site_manager", effect_record_site_manager)
register_effect("record_rejection_reason", effect_record_rejection_reason)
register_effect("record_cancellation_reason", effect_record_cancellation_reason)
