from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import IntegrityError, OperationalError
from django.utils import timezone

from procurement.models import (
    CompanyMembership,
    InventoryItem,
    OrgUnitMembership,
    PurchaseOrder,
    PurchaseOrderTransitionLog,
)
from .exceptions import ConcurrentModification, PersistenceTimeout
from .registry import load_dotted_path

logger = logging.getLogger(__name__)


class DjangoOrderStore:
    """
    Order store backed by the ORM. Writes are conditional on the status the
    caller validated against, so a concurrent change makes the write a no-op
    and raises ConcurrentModification instead of overwriting it.
    """

    def get_order(self, order_id: Any) -> PurchaseOrder:
        return PurchaseOrder.objects.prefetch_related("items").get(pk=order_id)

    def save_order(self, order: PurchaseOrder, changes: Dict[str, Any], expected_prior_status: str) -> int:
        fields = dict(changes, updated_at=timezone.now())
        try:
            updated = PurchaseOrder.objects.filter(pk=order.pk, status=expected_prior_status).update(**fields)
        except OperationalError as exc:
            raise PersistenceTimeout(f"Saving order {order.pk} timed out: {exc}") from exc
        if not updated:
            raise ConcurrentModification(
                f"Order {order.pk} is no longer in status '{expected_prior_status}'"
            )
        return updated

    def append_transition_record(self, **fields: Any) -> PurchaseOrderTransitionLog:
        try:
            return PurchaseOrderTransitionLog.objects.create(**fields)
        except IntegrityError as exc:
            # Another caller committed a record with the same idempotency key first
            raise ConcurrentModification(
                f"Transition with idempotency key {fields.get('idempotency_key')!r} already recorded"
            ) from exc
        except OperationalError as exc:
            raise PersistenceTimeout(f"Appending transition record timed out: {exc}") from exc

    def find_transition_record(self, order: PurchaseOrder, idempotency_key: str) -> Optional[PurchaseOrderTransitionLog]:
        return (
            PurchaseOrderTransitionLog.objects.filter(order=order, idempotency_key=idempotency_key)
            .only("id", "from_state", "to_state")
            .first()
        )


class DjangoMembershipDirectory:
    def get_role(self, user_id: str, company_id: str) -> Optional[str]:
        if not user_id or not company_id:
            return None
        return (
            CompanyMembership.objects.filter(user_id=user_id, company_id=company_id, is_active=True)
            .values_list("role", flat=True)
            .first()
        )

    def is_member_of_org_unit(self, user_id: str, org_unit_id: str, company_id: str) -> bool:
        return OrgUnitMembership.objects.filter(
            user_id=user_id,
            org_unit_id=org_unit_id,
            company_id=company_id,
            is_active=True,
        ).exists()


class DjangoInventoryLookup:
    def get_available_quantity(self, company_id: str, item_reference: str) -> Decimal:
        quantity = (
            InventoryItem.objects.filter(company_id=company_id, item_reference=item_reference)
            .values_list("quantity_available", flat=True)
            .first()
        )
        return quantity if quantity is not None else Decimal("0")


# Collaborators configured in settings

def _from_setting(name: str, default: str):
    dotted = getattr(settings, name, default)
    logger.debug("Loading %s from %s", name, dotted)
    return load_dotted_path(dotted)()


def default_order_store():
    return _from_setting("PROCUREMENT_ORDER_STORE", "procurement.workflow.stores.DjangoOrderStore")


def default_membership_directory():
    return _from_setting(
        "PROCUREMENT_MEMBERSHIP_DIRECTORY", "procurement.workflow.stores.DjangoMembershipDirectory"
    )


def default_inventory_lookup():
    return _from_setting("PROCUREMENT_INVENTORY_LOOKUP", "procurement.workflow.stores.DjangoInventoryLookup")
