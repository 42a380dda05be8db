from django.contrib import admin
from django.db.models import Count
from django.http import HttpResponse
from django.template.response import TemplateResponse
from django.contrib import messages
from django import forms
import csv

from .models import (
    CompanyMembership,
    InventoryItem,
    OrderStatus,
    OrgUnitMembership,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderTransitionLog,
    SCOPE_FIELDS,
)
from .workflow import api
from .workflow.service import TransitionService


# Admin site branding
admin.site.site_header = "Procurement Admin"
admin.site.site_title = "Procurement Admin"
admin.site.index_title = "Administration"


class ApplyTransitionForm(forms.Form):
    target_state = forms.ChoiceField(choices=())
    note = forms.CharField(required=False, widget=forms.Textarea(attrs={"rows": 3}))
    reason = forms.CharField(required=False, help_text="Recorded on rejections and cancellations")
    dry_run = forms.BooleanField(required=False, initial=False, help_text="Validate only; do not persist changes")

    def __init__(self, *args, **kwargs):
        choices = kwargs.pop("choices", [])
        super().__init__(*args, **kwargs)
        self.fields["target_state"].choices = choices


class PurchaseOrderItemInline(admin.TabularInline):
    model = PurchaseOrderItem
    extra = 0
    fields = ("position", "item_name", "requested_quantity", "unit", "unit_price", "inventory_ref")


class PurchaseOrderTransitionLogInline(admin.TabularInline):
    model = PurchaseOrderTransitionLog
    can_delete = False
    extra = 0
    fields = ("created_at", "from_state", "to_state", "actor_id", "action", "note", "reason")
    readonly_fields = fields
    ordering = ("-created_at",)

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    inlines = [PurchaseOrderItemInline, PurchaseOrderTransitionLogInline]
    # Status and its side-effect fields only change through the workflow
    readonly_fields = (
        "status",
        "site_manager_id",
        "submitted_at",
        "site_approved_at",
        "management_approved_at",
        "supplier_submitted_at",
        "supplier_accepted_at",
        "delivered_at",
        "rejection_reason",
        "cancellation_reason",
        "created_at",
        "updated_at",
    )
    date_hierarchy = "created_at"
    list_per_page = 50
    list_display = ("id", "order_number", "order_kind", "status", "buyer_company_id", "items_count", "created_at")
    list_filter = ("status", "order_kind", "created_at")
    search_fields = ("order_number", "title", "buyer_company_id", "supplier_company_id", "creator_id")
    fieldsets = (
        ("Status", {"fields": ("status", "rejection_reason", "cancellation_reason")}),
        ("Order", {"fields": ("order_number", "title", "order_kind", "org_unit_id", "project_id")}),
        ("Parties", {"fields": ("buyer_company_id", "supplier_company_id", "creator_id", "site_manager_id")}),
        (
            "Workflow timestamps",
            {
                "fields": (
                    "submitted_at",
                    "site_approved_at",
                    "management_approved_at",
                    "supplier_submitted_at",
                    "supplier_accepted_at",
                    "delivered_at",
                )
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )
    actions = ["cancel_orders", "apply_transition", "advance_automatic", "export_as_csv"]

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.annotate(items_count=Count("items")).prefetch_related("items")

    def get_readonly_fields(self, request, obj=None):
        readonly = super().get_readonly_fields(request, obj)
        if obj is not None:
            return tuple(readonly) + SCOPE_FIELDS
        return readonly

    @admin.display(ordering="items_count", description="Items")
    def items_count(self, obj):
        return getattr(obj, "items_count", 0)

    def _report(self, request, success: int, failed: list, base: str):
        msg = f"{success} order(s) {base}."
        if failed:
            msg += f" {len(failed)} failed: " + "; ".join(f"#{pk}: {err}" for pk, err in failed)
            self.message_user(request, msg, level=messages.WARNING)
        else:
            self.message_user(request, msg, level=messages.INFO)

    @admin.action(description="Cancel selected orders")
    def cancel_orders(self, request, queryset):
        success, failed = 0, []
        for order in queryset:
            res = api.transition(
                order.pk,
                OrderStatus.CANCELLED,
                actor_id=request.user.get_username(),
                notes="cancelled from admin",
                idempotency_key=f"admin:cancel:{order.pk}",
            )
            if res.success:
                success += 1
            else:
                failed.append((order.pk, "; ".join(res.errors)))
        self._report(request, success, failed, "cancelled")

    @admin.action(description="Apply workflow transition…")
    def apply_transition(self, request, queryset):
        label_map = dict(OrderStatus.choices)
        service = TransitionService()
        # Union of manual target states across selected orders
        targets = set()
        for o in queryset:
            for t in service.transitions_for_state(o.status):
                if not t.automatic:
                    targets.add(t.to_state)
        choices = [(v, label_map.get(v, v.title())) for v in sorted(targets)]
        if not choices:
            self.message_user(request, "No available transitions for the selected orders.", level=messages.WARNING)
            return None

        if request.method == "POST" and request.POST.get("apply"):
            form = ApplyTransitionForm(request.POST, choices=choices)
            if form.is_valid():
                to_state = form.cleaned_data["target_state"]
                dry_run = form.cleaned_data.get("dry_run", False)

                success, failed = 0, []
                for order in queryset:
                    res = api.transition(
                        order.pk,
                        to_state,
                        actor_id=request.user.get_username(),
                        notes=form.cleaned_data.get("note", ""),
                        reason=form.cleaned_data.get("reason", ""),
                        dry_run=dry_run,
                        service=service,
                    )
                    if res.success:
                        success += 1
                    else:
                        failed.append((order.pk, "; ".join(res.errors)))
                state_label = label_map.get(to_state, to_state)
                base = "validated" if dry_run else "transitioned"
                self._report(request, success, failed, f"{base} to {state_label}")
                return None
        else:
            form = ApplyTransitionForm(choices=choices)

        context = dict(
            self.admin_site.each_context(request),
            title="Apply workflow transition",
            opts=self.model._meta,
            queryset=queryset,
            form=form,
            action="apply_transition",
        )
        return TemplateResponse(request, "admin/procurement/purchaseorder/apply_transition.html", context)

    @admin.action(description="Run due automatic transitions")
    def advance_automatic(self, request, queryset):
        moved = 0
        for order in queryset:
            results = api.advance(order.pk)
            moved += sum(1 for r in results if r.success)
        self.message_user(request, f"{moved} automatic transition(s) applied.", level=messages.INFO)

    def has_delete_permission(self, request, obj=None):
        # Orders leave draft only through the workflow and are kept from then on
        if obj and (obj.status != OrderStatus.DRAFT or obj.transitions.exists()):
            return False
        return super().has_delete_permission(request, obj)

    @admin.action(description="Export selected orders to CSV")
    def export_as_csv(self, request, queryset):
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="purchase_orders.csv"'
        writer = csv.writer(response)
        writer.writerow(["id", "order_number", "order_kind", "status", "buyer_company_id", "created_at"])
        for o in queryset:
            writer.writerow([o.id, o.order_number, o.order_kind, o.status, o.buyer_company_id, o.created_at.isoformat()])
        return response


@admin.register(PurchaseOrderTransitionLog)
class PurchaseOrderTransitionLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "order", "from_state", "to_state", "actor_id", "action")
    list_filter = ("to_state", "action")
    search_fields = ("actor_id", "note", "reason")
    list_select_related = ("order",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CompanyMembership)
class CompanyMembershipAdmin(admin.ModelAdmin):
    list_display = ("user_id", "company_id", "role", "is_active")
    list_filter = ("role", "is_active")
    search_fields = ("user_id", "company_id")
    list_editable = ("is_active",)


@admin.register(OrgUnitMembership)
class OrgUnitMembershipAdmin(admin.ModelAdmin):
    list_display = ("user_id", "org_unit_id", "company_id", "is_active")
    list_filter = ("is_active",)
    search_fields = ("user_id", "org_unit_id", "company_id")


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ("item_reference", "company_id", "quantity_available", "updated_at")
    search_fields = ("item_reference", "company_id")
