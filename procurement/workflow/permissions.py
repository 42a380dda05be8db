from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from procurement.models import OrderKind, OrderStatus, Role, WorkflowAction
from .order_workflow import actions_from_state
from .types import Actor, MembershipDirectory


S = OrderStatus
A = WorkflowAction


# Canonical role × status → actions table. Statuses a role may not act on are
# omitted. Admin is not listed: it may trigger any action on an outgoing edge.
ROLE_PERMISSIONS: Dict[str, Dict[str, FrozenSet[str]]] = {
    Role.TEAM_LEAD: {
        S.DRAFT: frozenset({A.SUBMIT, A.CANCEL}),
        S.PENDING_SITE_MANAGER: frozenset({A.CANCEL}),
        S.PENDING_MANAGEMENT: frozenset({A.CANCEL}),
        S.REJECTED_MANAGEMENT: frozenset({A.REVISE}),
        S.PENDING_SUPPLIER: frozenset({A.CANCEL}),
    },
    Role.SITE_MANAGER: {
        S.DRAFT: frozenset({A.CANCEL}),
        S.PENDING_SITE_MANAGER: frozenset({A.APPROVE_SITE, A.REJECT_SITE, A.CANCEL}),
        S.PENDING_MANAGEMENT: frozenset({A.CANCEL}),
    },
    Role.MANAGEMENT: {
        S.DRAFT: frozenset({A.CANCEL}),
        S.PENDING_SITE_MANAGER: frozenset({A.CANCEL}),
        S.PENDING_MANAGEMENT: frozenset({A.APPROVE_MGMT, A.REJECT_MGMT, A.CANCEL}),
        S.PENDING_SUPPLIER: frozenset({A.CANCEL}),
    },
    Role.WAREHOUSE: {
        S.DELIVERED: frozenset({A.COMPLETE}),
    },
    Role.LOGISTICS: {},
    Role.SUPPLIER_MEMBER: {
        S.PENDING_SUPPLIER: frozenset({A.ACCEPT_SUPPLIER, A.REJECT_SUPPLIER, A.CANCEL}),
        S.ACCEPTED_SUPPLIER: frozenset({A.DELIVER}),
        S.IN_TRANSIT: frozenset({A.DELIVER}),
    },
}

# Statuses in which the supplier company, not the buyer, faces the order.
# Once delivered the goods are the buyer's to receive.
SUPPLIER_FACING_STATES = frozenset({
    S.PENDING_SUPPLIER,
    S.ACCEPTED_SUPPLIER,
    S.IN_TRANSIT,
})

ORG_UNIT_SCOPED_ACTIONS = frozenset({A.APPROVE_SITE, A.REJECT_SITE})


def allowed_actions(role: Optional[str], status: str) -> FrozenSet[str]:
    """
    Actions `role` may trigger on an order in `status`, restricted to actions
    on outgoing edges of the transition graph.
    """
    if not role:
        return frozenset()
    graph_actions = actions_from_state(status)
    if role == Role.ADMIN:
        return frozenset(graph_actions)
    return ROLE_PERMISSIONS.get(role, {}).get(status, frozenset()) & graph_actions


def resolve_actor(order, user_id: str, directory: MembershipDirectory) -> Optional[Actor]:
    """
    Resolve which company side `user_id` acts for on `order` and the role held
    there. Returns None when the user has no role on either side.
    """
    if (
        order.status in SUPPLIER_FACING_STATES
        and order.supplier_company_id
        and directory.get_role(user_id, order.supplier_company_id)
    ):
        return Actor(user_id=user_id, company_id=order.supplier_company_id, role=Role.SUPPLIER_MEMBER)

    role = directory.get_role(user_id, order.buyer_company_id)
    if not role or role == Role.SUPPLIER_MEMBER:
        return None
    return Actor(user_id=user_id, company_id=order.buyer_company_id, role=role)


def org_unit_scope_applies(order, actor: Actor, action: Optional[str] = None) -> bool:
    """
    Only a site manager approving or rejecting an internal order is restricted
    to the order's org unit. With no action given, asks whether any of the
    role's actions on this order would be restricted.
    """
    if actor.role != Role.SITE_MANAGER or order.order_kind != OrderKind.INTERNAL:
        return False
    return action is None or action in ORG_UNIT_SCOPED_ACTIONS


def org_unit_scope_satisfied(order, actor: Actor, directory: MembershipDirectory) -> bool:
    if not order.org_unit_id:
        return False
    return directory.is_member_of_org_unit(actor.user_id, order.org_unit_id, order.buyer_company_id)
