from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from django.db import transaction
from django.utils import timezone

from procurement.models import Role, WorkflowAction
from .exceptions import ConcurrentModification, PersistenceTimeout
from .order_workflow import TRANSITIONS, select_transition
from .permissions import allowed_actions, org_unit_scope_applies, org_unit_scope_satisfied, resolve_actor
from .registry import get_guard, get_effect
from .signals import workflow_transitioned
from .stores import default_membership_directory, default_order_store
from .types import (
    Actor,
    MembershipDirectory,
    OrderStore,
    Transition,
    TransitionAttempt,
    TransitionContext,
    TransitionResult,
    WorkflowError,
)

logger = logging.getLogger(__name__)


class TransitionService:
    """
    Registry-driven workflow executor for purchase orders.
    - Validates the requested edge against the transition graph.
    - Authorizes manual transitions (role table, org-unit scope); automatic ones skip this.
    - Persists status, side-effect fields and the audit record atomically.
    """

    def __init__(
        self,
        transitions: Optional[List[Transition]] = None,
        *,
        store: Optional[OrderStore] = None,
        directory: Optional[MembershipDirectory] = None,
    ):
        self._transitions = transitions or TRANSITIONS
        self._store = store or default_order_store()
        self._directory = directory or default_membership_directory()

    @property
    def store(self) -> OrderStore:
        return self._store

    def transitions_for_state(self, state: str) -> List[Transition]:
        return [t for t in self._transitions if state in t.from_states]

    def allowed_transitions(self, order, actor_id: Optional[str] = None) -> List[TransitionAttempt]:
        """
        Returns TransitionAttempt entries for the manual transitions from the current state,
        authorizing each for `actor_id` when given. If actor_id is None, no checks are made.
        """
        attempts: List[TransitionAttempt] = []
        for t in self.transitions_for_state(order.status):
            if t.automatic:
                continue
            if actor_id is None:
                attempts.append(TransitionAttempt(transition=t, allowed=True))
                continue
            _, reason = self._authorize(order, t, actor_id)
            attempts.append(TransitionAttempt(transition=t, allowed=reason is None, reason=reason))
        return attempts

    def can_transition(self, order, to_state: str, actor_id: str) -> TransitionAttempt:
        t = select_transition(order.status, to_state, self._transitions)
        if not t:
            return TransitionAttempt(
                transition=Transition(name=f"to:{to_state}", from_states=[order.status], to_state=to_state),
                allowed=False,
                reason=f"Transition from {order.status} to {to_state} is not defined",
            )
        _, reason = self._authorize(order, t, actor_id)
        return TransitionAttempt(transition=t, allowed=reason is None, reason=reason)

    def available_actions(self, order, actor_id: str) -> List[str]:
        """
        Actions `actor_id` may trigger on `order` right now, in declaration order.
        Read-only; safe to call on every render.

        A site manager outside an internal order's org unit gets nothing here,
        yet transition() only enforces the org unit on approve_site and
        reject_site, so that site manager can still cancel. An empty list is
        not proof the executor will refuse.
        """
        actor = resolve_actor(order, actor_id, self._directory)
        if actor is None:
            return []
        actions = allowed_actions(actor.role, order.status)
        if actions and org_unit_scope_applies(order, actor):
            if not org_unit_scope_satisfied(order, actor, self._directory):
                return []
        return [a for a in WorkflowAction if a in actions]

    def transition(
        self,
        order,
        to_state: str,
        *,
        actor_id: Optional[str] = None,
        note: str = "",
        reason: str = "",
        idempotency_key: Optional[str] = None,
        dry_run: bool = False,
    ) -> TransitionResult:
        """
        Execute a transition to 'to_state'. Returns a TransitionResult detailing the outcome.
        - actor_id given: manual transition, authorized against the role table and org-unit scope.
        - actor_id None: automatic transition; only edges without an action are accepted.
        - On dry_run, validates without writing anything.
        - Idempotency: if an audit record with the same idempotency_key exists, returns idempotent=True.
        On success `order` is updated in place to match what was persisted.
        """
        if idempotency_key and not dry_run:
            existing = self._store.find_transition_record(order, idempotency_key)
            if existing is not None:
                return TransitionResult(
                    success=True,
                    from_state=existing.from_state,
                    to_state=existing.to_state,
                    idempotent=True,
                    messages=["Idempotent replay"],
                    log_id=existing.id,
                    order=order,
                )

        from_state = order.status
        transition_def = select_transition(from_state, to_state, self._transitions)
        if not transition_def:
            return self._failure(
                order, WorkflowError.INVALID_TRANSITION, f"No transition defined from {from_state} to {to_state}"
            )

        actor: Optional[Actor] = None
        if actor_id is None:
            if not transition_def.automatic:
                return self._failure(
                    order,
                    WorkflowError.AUTHORIZATION_DENIED,
                    f"Transition '{transition_def.name}' must be triggered by an actor",
                )
        else:
            actor, denied = self._authorize(order, transition_def, actor_id)
            if denied:
                logger.warning(
                    "Denied %s on order %s for user %s: %s", transition_def.name, order.pk, actor_id, denied
                )
                return self._failure(order, WorkflowError.AUTHORIZATION_DENIED, denied)

        if dry_run:
            return TransitionResult(
                success=True,
                from_state=from_state,
                to_state=to_state,
                messages=[f"Dry-run OK: {from_state} → {to_state} via {transition_def.name}"],
                order=order,
            )

        ctx = TransitionContext(
            order=order,
            transition=transition_def,
            actor=actor,
            note=note,
            reason=reason,
            now=timezone.now(),
            directory=self._directory,
        )
        ctx.changes["status"] = to_state
        effect_msgs: List[str] = []
        for effect_key in transition_def.effects:
            get_effect(effect_key)(ctx)
            effect_msgs.append(f"effect:{effect_key}:ok")

        try:
            with transaction.atomic():
                # Status and record commit together or not at all
                self._store.save_order(order, ctx.changes, expected_prior_status=from_state)
                log = self._store.append_transition_record(
                    order=order,
                    from_state=from_state,
                    to_state=to_state,
                    actor_id=actor_id,
                    action=transition_def.action,
                    note=note,
                    reason=reason,
                    metadata={"transition": transition_def.name, "effects": list(transition_def.effects)},
                    idempotency_key=idempotency_key,
                )
                transaction.on_commit(
                    lambda: workflow_transitioned.send(
                        sender=type(order),
                        order=order,
                        from_state=from_state,
                        to_state=to_state,
                        action=transition_def.action,
                        actor_id=actor_id,
                        log_id=log.id,
                    )
                )
        except ConcurrentModification as exc:
            logger.warning("Concurrent modification of order %s: %s", order.pk, exc)
            return self._failure(order, WorkflowError.CONCURRENT_MODIFICATION, str(exc))
        except PersistenceTimeout as exc:
            logger.error("Transition %s on order %s not persisted: %s", transition_def.name, order.pk, exc)
            return self._failure(order, WorkflowError.PERSISTENCE_TIMEOUT, str(exc))

        for field_name, value in ctx.changes.items():
            setattr(order, field_name, value)

        logger.info(
            "Order %s: %s → %s via %s (actor=%s)",
            order.pk,
            from_state,
            to_state,
            transition_def.name,
            actor_id or "system",
        )
        return TransitionResult(
            success=True,
            from_state=from_state,
            to_state=to_state,
            messages=[f"{from_state} → {to_state} via {transition_def.name}"] + effect_msgs,
            log_id=log.id,
            order=order,
        )

    # Internal helpers

    def _authorize(self, order, transition_def: Transition, actor_id: str) -> Tuple[Optional[Actor], Optional[str]]:
        if transition_def.automatic:
            return None, f"'{transition_def.name}' is an automatic transition"
        actor = resolve_actor(order, actor_id, self._directory)
        if actor is None:
            return None, "You are not a member of a company involved in this order"
        if actor.role == Role.ADMIN:
            return actor, None
        ctx = TransitionContext(order=order, transition=transition_def, actor=actor, directory=self._directory)
        ok, reason = self._evaluate_guards(transition_def, ctx)
        return actor, None if ok else reason

    def _evaluate_guards(self, transition_def: Transition, ctx: TransitionContext) -> Tuple[bool, Optional[str]]:
        for guard_key in transition_def.guards:
            guard = get_guard(guard_key)
            ok, reason = guard(ctx)
            if not ok:
                return False, reason or f"Guard failed: {guard_key}"
        return True, None

    def _failure(self, order, error: WorkflowError, message: str) -> TransitionResult:
        return TransitionResult(
            success=False,
            from_state=order.status,
            to_state=None,
            error=error,
            errors=[message],
            order=order,
        )
