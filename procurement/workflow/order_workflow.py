from __future__ import annotations

from typing import List, Optional, Set

from procurement.models import OrderStatus, WorkflowAction
from .types import Transition


S = OrderStatus
A = WorkflowAction

MANUAL_GUARDS = ["role_allowed"]
SITE_GUARDS = ["role_allowed", "org_unit_scope"]


# Purchase order workflow
# - draft → pending_site_manager → approved_site_manager → checking_stock
# - checking_stock → fulfilled_internal (terminal) | needs_external_order → pending_management
# - pending_management → approved_management → submitted_to_supplier → pending_supplier
# - pending_supplier → accepted_supplier → in_transit → delivered → completed
# - rejections loop back (site → draft, management → draft via revise, supplier → management)
# - cancel from draft and the three pending states
# Edges without an action are automatic and only fire through the resolver.
TRANSITIONS: List[Transition] = [
    Transition(
        name="submit",
        from_states=[S.DRAFT],
        to_state=S.PENDING_SITE_MANAGER,
        action=A.SUBMIT,
        guards=MANUAL_GUARDS,
        effects=["stamp_submitted_at"],
        description="Submit the draft for site manager approval.",
    ),
    Transition(
        name="approve_site",
        from_states=[S.PENDING_SITE_MANAGER],
        to_state=S.APPROVED_SITE_MANAGER,
        action=A.APPROVE_SITE,
        guards=SITE_GUARDS,
        effects=["stamp_site_approved_at", "record_site_manager"],
        description="Site manager approves; stock verification follows automatically.",
    ),
    Transition(
        name="reject_site",
        from_states=[S.PENDING_SITE_MANAGER],
        to_state=S.DRAFT,
        action=A.REJECT_SITE,
        guards=SITE_GUARDS,
        description="Site manager sends the order back to its creator.",
    ),
    Transition(
        name="start_stock_check",
        from_states=[S.APPROVED_SITE_MANAGER],
        to_state=S.CHECKING_STOCK,
        description="Begin internal stock verification.",
    ),
    Transition(
        name="fulfil_internally",
        from_states=[S.CHECKING_STOCK],
        to_state=S.FULFILLED_INTERNAL,
        description="Every line item is covered by internal stock.",
    ),
    Transition(
        name="route_to_external",
        from_states=[S.CHECKING_STOCK],
        to_state=S.NEEDS_EXTERNAL_ORDER,
        description="At least one line item must be sourced externally.",
    ),
    Transition(
        name="request_management",
        from_states=[S.NEEDS_EXTERNAL_ORDER],
        to_state=S.PENDING_MANAGEMENT,
        description="Queue the external order for management approval.",
    ),
    Transition(
        name="approve_mgmt",
        from_states=[S.PENDING_MANAGEMENT],
        to_state=S.APPROVED_MANAGEMENT,
        action=A.APPROVE_MGMT,
        guards=MANUAL_GUARDS,
        effects=["stamp_management_approved_at"],
        description="Management approves the external purchase.",
    ),
    Transition(
        name="reject_mgmt",
        from_states=[S.PENDING_MANAGEMENT],
        to_state=S.REJECTED_MANAGEMENT,
        action=A.REJECT_MGMT,
        guards=MANUAL_GUARDS,
        effects=["record_rejection_reason"],
        description="Management rejects the external purchase.",
    ),
    Transition(
        name="revise",
        from_states=[S.REJECTED_MANAGEMENT],
        to_state=S.DRAFT,
        action=A.REVISE,
        guards=MANUAL_GUARDS,
        description="Creator takes a management-rejected order back to draft.",
    ),
    Transition(
        name="send_to_supplier",
        from_states=[S.APPROVED_MANAGEMENT],
        to_state=S.SUBMITTED_TO_SUPPLIER,
        effects=["stamp_supplier_submitted_at"],
        description="Send the approved order to the supplier.",
    ),
    Transition(
        name="await_supplier",
        from_states=[S.SUBMITTED_TO_SUPPLIER],
        to_state=S.PENDING_SUPPLIER,
        description="Wait for the supplier's answer.",
    ),
    Transition(
        name="accept_supplier",
        from_states=[S.PENDING_SUPPLIER],
        to_state=S.ACCEPTED_SUPPLIER,
        action=A.ACCEPT_SUPPLIER,
        guards=MANUAL_GUARDS,
        effects=["stamp_supplier_accepted_at"],
        description="Supplier accepts the order.",
    ),
    Transition(
        name="reject_supplier",
        from_states=[S.PENDING_SUPPLIER],
        to_state=S.REJECTED_SUPPLIER,
        action=A.REJECT_SUPPLIER,
        guards=MANUAL_GUARDS,
        effects=["record_rejection_reason"],
        description="Supplier declines the order.",
    ),
    Transition(
        name="resource_after_rejection",
        from_states=[S.REJECTED_SUPPLIER],
        to_state=S.PENDING_MANAGEMENT,
        description="Return a supplier-rejected order to management for re-sourcing.",
    ),
    Transition(
        name="mark_in_transit",
        from_states=[S.ACCEPTED_SUPPLIER],
        to_state=S.IN_TRANSIT,
        action=A.DELIVER,
        guards=MANUAL_GUARDS,
        description="Supplier ships the goods.",
    ),
    Transition(
        name="mark_delivered",
        from_states=[S.IN_TRANSIT],
        to_state=S.DELIVERED,
        action=A.DELIVER,
        guards=MANUAL_GUARDS,
        effects=["stamp_delivered_at"],
        description="Supplier reports delivery.",
    ),
    Transition(
        name="complete",
        from_states=[S.DELIVERED],
        to_state=S.COMPLETED,
        action=A.COMPLETE,
        guards=MANUAL_GUARDS,
        description="Warehouse confirms receipt and closes the order.",
    ),
    Transition(
        name="cancel",
        from_states=[S.DRAFT, S.PENDING_SITE_MANAGER, S.PENDING_MANAGEMENT, S.PENDING_SUPPLIER],
        to_state=S.CANCELLED,
        action=A.CANCEL,
        guards=MANUAL_GUARDS,
        effects=["record_cancellation_reason"],
        description="Cancel the order.",
    ),
]


# Helpers

def transitions_from_state(state: str) -> List[Transition]:
    return [t for t in TRANSITIONS if state in t.from_states]


def select_transition(
    from_state: str, to_state: str, transitions: Optional[List[Transition]] = None
) -> Optional[Transition]:
    for t in transitions or TRANSITIONS:
        if to_state == t.to_state and from_state in t.from_states:
            return t
    return None


def outgoing_states(state: str) -> Set[str]:
    return {t.to_state for t in transitions_from_state(state)}


def actions_from_state(state: str) -> Set[str]:
    """Actions an actor could trigger from `state`, ignoring who the actor is."""
    return {t.action for t in transitions_from_state(state) if not t.automatic}


def automatic_transitions_from_state(state: str) -> List[Transition]:
    return [t for t in transitions_from_state(state) if t.automatic]


def is_terminal(state: str) -> bool:
    return not transitions_from_state(state)


TERMINAL_STATES = frozenset(s for s in OrderStatus.values if is_terminal(s))
