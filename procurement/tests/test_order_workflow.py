from django.test import SimpleTestCase

from procurement.models import OrderKind, OrderStatus, PurchaseOrder, Role, WorkflowAction
from procurement.workflow.order_workflow import (
    TERMINAL_STATES,
    TRANSITIONS,
    actions_from_state,
    automatic_transitions_from_state,
    outgoing_states,
    select_transition,
)
from procurement.workflow.service import TransitionService
from procurement.workflow.types import WorkflowError

from .helpers import BUYER, FakeDirectory

S = OrderStatus

EXPECTED_EDGES = {
    S.DRAFT: {S.PENDING_SITE_MANAGER, S.CANCELLED},
    S.PENDING_SITE_MANAGER: {S.APPROVED_SITE_MANAGER, S.DRAFT, S.CANCELLED},
    S.APPROVED_SITE_MANAGER: {S.CHECKING_STOCK},
    S.CHECKING_STOCK: {S.FULFILLED_INTERNAL, S.NEEDS_EXTERNAL_ORDER},
    S.FULFILLED_INTERNAL: set(),
    S.NEEDS_EXTERNAL_ORDER: {S.PENDING_MANAGEMENT},
    S.PENDING_MANAGEMENT: {S.APPROVED_MANAGEMENT, S.REJECTED_MANAGEMENT, S.CANCELLED},
    S.REJECTED_MANAGEMENT: {S.DRAFT},
    S.APPROVED_MANAGEMENT: {S.SUBMITTED_TO_SUPPLIER},
    S.SUBMITTED_TO_SUPPLIER: {S.PENDING_SUPPLIER},
    S.PENDING_SUPPLIER: {S.ACCEPTED_SUPPLIER, S.REJECTED_SUPPLIER, S.CANCELLED},
    S.ACCEPTED_SUPPLIER: {S.IN_TRANSIT},
    S.REJECTED_SUPPLIER: {S.PENDING_MANAGEMENT},
    S.IN_TRANSIT: {S.DELIVERED},
    S.DELIVERED: {S.COMPLETED},
    S.COMPLETED: set(),
    S.CANCELLED: set(),
}

AUTOMATIC_EDGES = {
    (S.APPROVED_SITE_MANAGER, S.CHECKING_STOCK),
    (S.CHECKING_STOCK, S.FULFILLED_INTERNAL),
    (S.CHECKING_STOCK, S.NEEDS_EXTERNAL_ORDER),
    (S.NEEDS_EXTERNAL_ORDER, S.PENDING_MANAGEMENT),
    (S.APPROVED_MANAGEMENT, S.SUBMITTED_TO_SUPPLIER),
    (S.SUBMITTED_TO_SUPPLIER, S.PENDING_SUPPLIER),
    (S.REJECTED_SUPPLIER, S.PENDING_MANAGEMENT),
}


class TransitionGraphTests(SimpleTestCase):
    def test_graph_matches_state_table(self):
        for state in S.values:
            self.assertEqual(outgoing_states(state), EXPECTED_EDGES[state], state)

    def test_terminal_states(self):
        self.assertEqual(TERMINAL_STATES, {S.FULFILLED_INTERNAL, S.COMPLETED, S.CANCELLED})

    def test_automatic_edges_have_no_action(self):
        automatic = {
            (source, t.to_state)
            for t in TRANSITIONS
            if t.automatic
            for source in t.from_states
        }
        self.assertEqual(automatic, AUTOMATIC_EDGES)

    def test_each_manual_edge_has_one_action(self):
        for t in TRANSITIONS:
            if not t.automatic:
                self.assertIn(t.action, WorkflowAction.values, t.name)

    def test_deliver_is_disambiguated_by_current_status(self):
        self.assertEqual(select_transition(S.ACCEPTED_SUPPLIER, S.IN_TRANSIT).action, WorkflowAction.DELIVER)
        self.assertEqual(select_transition(S.IN_TRANSIT, S.DELIVERED).action, WorkflowAction.DELIVER)
        self.assertEqual(select_transition(S.ACCEPTED_SUPPLIER, S.IN_TRANSIT).name, "mark_in_transit")
        self.assertEqual(select_transition(S.IN_TRANSIT, S.DELIVERED).name, "mark_delivered")

    def test_cancel_never_leaves_a_terminal_state(self):
        for state in TERMINAL_STATES:
            self.assertNotIn(WorkflowAction.CANCEL, actions_from_state(state))

    def test_checking_stock_branches_are_both_automatic(self):
        targets = {t.to_state for t in automatic_transitions_from_state(S.CHECKING_STOCK)}
        self.assertEqual(targets, {S.FULFILLED_INTERNAL, S.NEEDS_EXTERNAL_ORDER})


class InvalidTransitionTests(SimpleTestCase):
    def setUp(self):
        # Admin is only constrained by the graph, so any refusal here comes from the graph
        self.directory = FakeDirectory(roles={("root", BUYER): Role.ADMIN})
        self.service = TransitionService(directory=self.directory)

    def _order(self, status):
        return PurchaseOrder(
            pk=1,
            buyer_company_id=BUYER,
            creator_id="lead",
            order_kind=OrderKind.EXTERNAL,
            project_id="P1",
            status=status,
        )

    def test_every_non_edge_is_invalid_for_any_actor(self):
        for source in S.values:
            for target in S.values:
                if target in EXPECTED_EDGES[source]:
                    continue
                for actor_id in ("root", None):
                    res = self.service.transition(self._order(source), target, actor_id=actor_id)
                    self.assertFalse(res.success)
                    self.assertEqual(res.error, WorkflowError.INVALID_TRANSITION, (source, target))
                    self.assertIsNone(res.to_state)

    def test_service_uses_its_own_transition_list(self):
        submit_only = [t for t in TRANSITIONS if t.name == "submit"]
        service = TransitionService(submit_only, directory=self.directory)

        self.assertIsNone(select_transition(S.DRAFT, S.CANCELLED, submit_only))
        res = service.transition(self._order(S.DRAFT), S.CANCELLED, actor_id="root", dry_run=True)
        self.assertEqual(res.error, WorkflowError.INVALID_TRANSITION)
        res = service.transition(self._order(S.DRAFT), S.PENDING_SITE_MANAGER, actor_id="root", dry_run=True)
        self.assertTrue(res.success)

    def test_unknown_target_is_invalid(self):
        res = self.service.transition(self._order(S.DRAFT), "teleported", actor_id="root")
        self.assertEqual(res.error, WorkflowError.INVALID_TRANSITION)
