from django.core.exceptions import ValidationError
from django.db import models


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class OrderStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    PENDING_SITE_MANAGER = "pending_site_manager", "Pending site manager"
    APPROVED_SITE_MANAGER = "approved_site_manager", "Approved by site manager"
    CHECKING_STOCK = "checking_stock", "Checking stock"
    FULFILLED_INTERNAL = "fulfilled_internal", "Fulfilled from internal stock"
    NEEDS_EXTERNAL_ORDER = "needs_external_order", "Needs external order"
    PENDING_MANAGEMENT = "pending_management", "Pending management"
    REJECTED_MANAGEMENT = "rejected_management", "Rejected by management"
    APPROVED_MANAGEMENT = "approved_management", "Approved by management"
    SUBMITTED_TO_SUPPLIER = "submitted_to_supplier", "Submitted to supplier"
    PENDING_SUPPLIER = "pending_supplier", "Pending supplier"
    ACCEPTED_SUPPLIER = "accepted_supplier", "Accepted by supplier"
    REJECTED_SUPPLIER = "rejected_supplier", "Rejected by supplier"
    IN_TRANSIT = "in_transit", "In transit"
    DELIVERED = "delivered", "Delivered"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class OrderKind(models.TextChoices):
    INTERNAL = "internal", "Internal (org unit)"
    EXTERNAL = "external", "External (project)"


class Role(models.TextChoices):
    TEAM_LEAD = "team_lead", "Team lead"
    SITE_MANAGER = "site_manager", "Site manager"
    MANAGEMENT = "management", "Management"
    WAREHOUSE = "warehouse", "Warehouse"
    LOGISTICS = "logistics", "Logistics"
    SUPPLIER_MEMBER = "supplier_member", "Supplier member"
    ADMIN = "admin", "Admin"


class WorkflowAction(models.TextChoices):
    SUBMIT = "submit", "Submit"
    APPROVE_SITE = "approve_site", "Approve (site)"
    REJECT_SITE = "reject_site", "Reject (site)"
    APPROVE_MGMT = "approve_mgmt", "Approve (management)"
    REJECT_MGMT = "reject_mgmt", "Reject (management)"
    REVISE = "revise", "Revise"
    ACCEPT_SUPPLIER = "accept_supplier", "Accept (supplier)"
    REJECT_SUPPLIER = "reject_supplier", "Reject (supplier)"
    DELIVER = "deliver", "Deliver"
    COMPLETE = "complete", "Complete"
    CANCEL = "cancel", "Cancel"


# Fields that define which scope an order belongs to; frozen once created.
SCOPE_FIELDS = ("order_kind", "org_unit_id", "project_id")


class PurchaseOrderManager(models.Manager):
    def create_draft(self, *, buyer_company_id: str, creator_id: str, order_kind: str, items=(), **fields):
        """
        Create an order in draft for the given creator, with optional line items
        given as dicts of PurchaseOrderItem fields.
        """
        order = self.model(
            buyer_company_id=buyer_company_id,
            creator_id=creator_id,
            order_kind=order_kind,
            status=OrderStatus.DRAFT,
            **fields,
        )
        order.save()
        for position, item in enumerate(items):
            PurchaseOrderItem.objects.create(order=order, position=position, **item)
        return order


class PurchaseOrder(TimeStampedModel):
    order_number = models.CharField(max_length=40, blank=True)
    title = models.CharField(max_length=200, blank=True)

    buyer_company_id = models.CharField(max_length=64, db_index=True)
    supplier_company_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    creator_id = models.CharField(max_length=64)
    site_manager_id = models.CharField(max_length=64, null=True, blank=True)

    order_kind = models.CharField(max_length=10, choices=OrderKind.choices)
    org_unit_id = models.CharField(max_length=64, null=True, blank=True)
    project_id = models.CharField(max_length=64, null=True, blank=True)

    status = models.CharField(max_length=32, choices=OrderStatus.choices, default=OrderStatus.DRAFT)

    # Each stamped once by the transition reaching the matching state
    submitted_at = models.DateTimeField(null=True, blank=True)
    site_approved_at = models.DateTimeField(null=True, blank=True)
    management_approved_at = models.DateTimeField(null=True, blank=True)
    supplier_submitted_at = models.DateTimeField(null=True, blank=True)
    supplier_accepted_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    rejection_reason = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)

    objects = PurchaseOrderManager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["buyer_company_id", "status"]),
        ]

    def __str__(self) -> str:
        return f"PO #{self.order_number or self.pk or 'new'} ({self.status})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_scope = {
            name: getattr(instance, name) for name in SCOPE_FIELDS if name in field_names
        }
        return instance

    @property
    def is_internal(self) -> bool:
        return self.order_kind == OrderKind.INTERNAL

    def clean(self):
        if self.order_kind == OrderKind.INTERNAL:
            if not self.org_unit_id or self.project_id:
                raise ValidationError("Internal orders need an org unit and no project.")
        elif self.order_kind == OrderKind.EXTERNAL:
            if not self.project_id or self.org_unit_id:
                raise ValidationError("External orders need a project and no org unit.")
        else:
            raise ValidationError(f"Unknown order kind: {self.order_kind!r}")

    def save(self, *args, **kwargs):
        if self._state.adding:
            self.clean()
        else:
            loaded = getattr(self, "_loaded_scope", {})
            for name, value in loaded.items():
                if getattr(self, name) != value:
                    raise ValidationError(f"{name} cannot change after creation.")
        super().save(*args, **kwargs)
        self._loaded_scope = {name: getattr(self, name) for name in SCOPE_FIELDS}


class PurchaseOrderItem(models.Model):
    order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name="items")
    position = models.PositiveIntegerField(default=0)
    item_name = models.CharField(max_length=250)
    requested_quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit = models.CharField(max_length=20, blank=True)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    # None for manual/off-catalog entries
    inventory_ref = models.CharField(max_length=64, null=True, blank=True)

    class Meta:
        ordering = ["position", "id"]
        indexes = [
            models.Index(fields=["order"]),
        ]

    def __str__(self) -> str:
        return f"{self.item_name} x {self.requested_quantity} {self.unit}".strip()


class PurchaseOrderTransitionLog(models.Model):
    order = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, related_name="transitions")
    from_state = models.CharField(max_length=32, choices=OrderStatus.choices)
    to_state = models.CharField(max_length=32, choices=OrderStatus.choices)
    # Null actor and action mark an automatic transition
    actor_id = models.CharField(max_length=64, null=True, blank=True)
    action = models.CharField(max_length=20, choices=WorkflowAction.choices, null=True, blank=True)
    note = models.TextField(blank=True)
    reason = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    idempotency_key = models.CharField(max_length=120, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["order", "created_at"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "idempotency_key"],
                name="uniq_po_transition_idempotency_key",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id}: {self.from_state} → {self.to_state}"

    @property
    def is_automatic(self) -> bool:
        return self.actor_id is None

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Transition records are immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Transition records are immutable.")


# Default backing for the membership directory and inventory lookup


class CompanyMembership(TimeStampedModel):
    user_id = models.CharField(max_length=64)
    company_id = models.CharField(max_length=64)
    role = models.CharField(max_length=20, choices=Role.choices)
    is_active = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user_id", "company_id"], name="uniq_company_membership"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id}@{self.company_id} ({self.role})"


class OrgUnitMembership(TimeStampedModel):
    user_id = models.CharField(max_length=64)
    org_unit_id = models.CharField(max_length=64)
    company_id = models.CharField(max_length=64)
    is_active = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user_id", "org_unit_id", "company_id"], name="uniq_org_unit_membership"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} in {self.org_unit_id}"


class InventoryItem(TimeStampedModel):
    company_id = models.CharField(max_length=64)
    item_reference = models.CharField(max_length=64)
    quantity_available = models.DecimalField(max_digits=12, decimal_places=3, default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["company_id", "item_reference"], name="uniq_inventory_item"),
        ]

    def __str__(self) -> str:
        return f"{self.item_reference}@{self.company_id}: {self.quantity_available}"
