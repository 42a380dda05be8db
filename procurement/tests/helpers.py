from decimal import Decimal

from procurement.models import (
    CompanyMembership,
    InventoryItem,
    OrderKind,
    OrderStatus,
    OrgUnitMembership,
    PurchaseOrder,
    PurchaseOrderItem,
)

BUYER = "buyer-co"
SUPPLIER = "supplier-co"


class FakeDirectory:
    """In-memory membership directory: roles keyed by (user, company)."""

    def __init__(self, roles=None, org_units=None):
        self.roles = dict(roles or {})
        self.org_units = set(org_units or ())

    def get_role(self, user_id, company_id):
        return self.roles.get((user_id, company_id))

    def is_member_of_org_unit(self, user_id, org_unit_id, company_id):
        return (user_id, org_unit_id, company_id) in self.org_units


class FakeInventory:
    def __init__(self, quantities=None):
        self.quantities = dict(quantities or {})
        self.calls = 0

    def get_available_quantity(self, company_id, item_reference):
        self.calls += 1
        return self.quantities.get((company_id, item_reference), Decimal("0"))


def make_order(
    status=OrderStatus.DRAFT,
    *,
    kind=OrderKind.INTERNAL,
    org_unit_id="U1",
    project_id="P1",
    supplier_company_id=None,
    items=(),
):
    fields = dict(
        buyer_company_id=BUYER,
        creator_id="lead",
        order_kind=kind,
        status=status,
        supplier_company_id=supplier_company_id,
    )
    if kind == OrderKind.INTERNAL:
        fields["org_unit_id"] = org_unit_id
    else:
        fields["project_id"] = project_id
    order = PurchaseOrder.objects.create(**fields)
    for position, item in enumerate(items):
        PurchaseOrderItem.objects.create(order=order, position=position, **item)
    return order


def item(name="Cement", quantity="10", ref="SKU-1"):
    return {"item_name": name, "requested_quantity": Decimal(quantity), "unit": "bag", "inventory_ref": ref}


def add_member(user_id, role, company_id=BUYER):
    return CompanyMembership.objects.create(user_id=user_id, company_id=company_id, role=role)


def add_org_unit_member(user_id, org_unit_id, company_id=BUYER):
    return OrgUnitMembership.objects.create(user_id=user_id, org_unit_id=org_unit_id, company_id=company_id)


def stock(ref, quantity, company_id=BUYER):
    return InventoryItem.objects.create(company_id=company_id, item_reference=ref, quantity_available=Decimal(quantity))
