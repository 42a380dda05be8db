from decimal import Decimal

from django.test import TestCase

from procurement.models import OrderKind, OrderStatus, PurchaseOrderTransitionLog, Role
from procurement.workflow.resolver import AutoTransitionResolver
from procurement.workflow.service import TransitionService
from procurement.workflow.stock import StockEvaluator

from .helpers import BUYER, SUPPLIER, FakeInventory, add_member, item, make_order

S = OrderStatus


class StockRoutingTests(TestCase):
    def _resolver(self, quantities):
        return AutoTransitionResolver(TransitionService(), StockEvaluator(FakeInventory(quantities)))

    def test_short_stock_routes_to_management(self):
        order = make_order(S.APPROVED_SITE_MANAGER, items=[item("Cement", "10", "SKU-1")])
        results = self._resolver({(BUYER, "SKU-1"): Decimal("4")}).advance(order)

        self.assertTrue(all(r.success for r in results))
        self.assertEqual(
            [(r.from_state, r.to_state) for r in results],
            [
                (S.APPROVED_SITE_MANAGER, S.CHECKING_STOCK),
                (S.CHECKING_STOCK, S.NEEDS_EXTERNAL_ORDER),
                (S.NEEDS_EXTERNAL_ORDER, S.PENDING_MANAGEMENT),
            ],
        )
        order.refresh_from_db()
        self.assertEqual(order.status, S.PENDING_MANAGEMENT)

        routing = PurchaseOrderTransitionLog.objects.get(order=order, to_state=S.NEEDS_EXTERNAL_ORDER)
        self.assertIn("1 of 1 item(s) short", routing.note)

    def test_sufficient_stock_fulfils_internally(self):
        order = make_order(S.APPROVED_SITE_MANAGER, items=[item("Cement", "10", "SKU-1")])
        results = self._resolver({(BUYER, "SKU-1"): Decimal("12")}).advance(order)

        self.assertEqual(results[-1].to_state, S.FULFILLED_INTERNAL)
        order.refresh_from_db()
        self.assertEqual(order.status, S.FULFILLED_INTERNAL)

        add_member("root", Role.ADMIN)
        add_member("lead", Role.TEAM_LEAD)
        service = TransitionService()
        self.assertEqual(service.available_actions(order, "root"), [])
        self.assertEqual(service.available_actions(order, "lead"), [])
        self.assertEqual(self._resolver({}).advance(order), [])

    def test_order_without_items_routes_to_management(self):
        order = make_order(S.APPROVED_SITE_MANAGER)
        results = self._resolver({}).advance(order)

        self.assertEqual(
            [r.to_state for r in results],
            [S.CHECKING_STOCK, S.NEEDS_EXTERNAL_ORDER, S.PENDING_MANAGEMENT],
        )
        order.refresh_from_db()
        self.assertEqual(order.status, S.PENDING_MANAGEMENT)
        routing = PurchaseOrderTransitionLog.objects.get(order=order, to_state=S.NEEDS_EXTERNAL_ORDER)
        self.assertEqual(routing.note, "Stock check: order has no items")

    def test_automatic_records_have_no_actor_or_action(self):
        order = make_order(S.APPROVED_SITE_MANAGER, items=[item("Cement", "10", "SKU-1")])
        self._resolver({}).advance(order)

        logs = PurchaseOrderTransitionLog.objects.filter(order=order)
        self.assertEqual(logs.count(), 3)
        for log in logs:
            self.assertIsNone(log.actor_id)
            self.assertIsNone(log.action)

    def test_next_step_evaluates_stock_afresh(self):
        order = make_order(S.CHECKING_STOCK, items=[item("Cement", "10", "SKU-1")])
        inventory = FakeInventory({(BUYER, "SKU-1"): Decimal("10")})
        resolver = AutoTransitionResolver(TransitionService(), StockEvaluator(inventory))

        self.assertEqual(resolver.next_step(order)[0], S.FULFILLED_INTERNAL)
        inventory.quantities[(BUYER, "SKU-1")] = Decimal("9")
        self.assertEqual(resolver.next_step(order)[0], S.NEEDS_EXTERNAL_ORDER)
        self.assertEqual(inventory.calls, 2)


class PassThroughTests(TestCase):
    def setUp(self):
        self.resolver = AutoTransitionResolver(TransitionService(), StockEvaluator(FakeInventory()))

    def test_management_approval_reaches_supplier(self):
        order = make_order(S.APPROVED_MANAGEMENT, kind=OrderKind.EXTERNAL, supplier_company_id=SUPPLIER)
        results = self.resolver.advance(order)

        self.assertEqual([r.to_state for r in results], [S.SUBMITTED_TO_SUPPLIER, S.PENDING_SUPPLIER])
        order.refresh_from_db()
        self.assertEqual(order.status, S.PENDING_SUPPLIER)
        self.assertIsNotNone(order.supplier_submitted_at)

    def test_supplier_rejection_returns_to_management(self):
        order = make_order(S.REJECTED_SUPPLIER, kind=OrderKind.EXTERNAL, supplier_company_id=SUPPLIER)
        results = self.resolver.advance(order)

        self.assertEqual([r.to_state for r in results], [S.PENDING_MANAGEMENT])
        self.assertEqual(order.status, S.PENDING_MANAGEMENT)

    def test_states_waiting_for_an_actor_have_no_step(self):
        for status in (S.DRAFT, S.PENDING_SITE_MANAGER, S.PENDING_MANAGEMENT, S.PENDING_SUPPLIER, S.DELIVERED):
            order = make_order(status, kind=OrderKind.EXTERNAL)
            self.assertIsNone(self.resolver.next_step(order), status)
            self.assertEqual(self.resolver.advance(order), [])
