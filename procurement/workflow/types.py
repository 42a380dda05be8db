from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Tuple


# Protocols for guards and effects
class Guard(Protocol):
    def __call__(self, ctx: "TransitionContext") -> Tuple[bool, Optional[str]]:
        ...


class Effect(Protocol):
    def __call__(self, ctx: "TransitionContext") -> None:
        ...


# Collaborators consumed by the engine
class OrderStore(Protocol):
    def get_order(self, order_id: Any) -> Any:
        ...

    def save_order(self, order: Any, changes: Dict[str, Any], expected_prior_status: str) -> Any:
        ...

    def append_transition_record(self, **fields: Any) -> Any:
        ...

    def find_transition_record(self, order: Any, idempotency_key: str) -> Any:
        ...


class MembershipDirectory(Protocol):
    def get_role(self, user_id: str, company_id: str) -> Optional[str]:
        ...

    def is_member_of_org_unit(self, user_id: str, org_unit_id: str, company_id: str) -> bool:
        ...


class InventoryLookup(Protocol):
    def get_available_quantity(self, company_id: str, item_reference: str) -> Decimal:
        ...


class WorkflowError(str, enum.Enum):
    INVALID_TRANSITION = "invalid_transition"
    AUTHORIZATION_DENIED = "authorization_denied"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    PERSISTENCE_TIMEOUT = "persistence_timeout"
    ORDER_NOT_FOUND = "order_not_found"


@dataclass(frozen=True)
class Transition:
    """
    Declarative transition definition.
    - name: unique key for the transition (e.g., 'submit', 'approve_site', 'route_to_management')
    - from_states: allowed source states
    - to_state: target state
    - action: WorkflowAction an actor triggers this edge with; None marks an automatic edge
    - guards/effects: registry keys to evaluate/execute during transition
    """
    name: str
    from_states: List[str]
    to_state: str
    action: Optional[str] = None
    guards: List[str] = field(default_factory=list)
    effects: List[str] = field(default_factory=list)
    description: str = ""

    @property
    def automatic(self) -> bool:
        return self.action is None


@dataclass(frozen=True)
class Actor:
    """
    The party attempting a manual transition, with the role resolved for the
    company side (buyer or supplier) the order currently faces.
    """
    user_id: str
    company_id: str
    role: str


@dataclass
class TransitionContext:
    """
    Execution context passed to guards and effects.
    Effects write the fields they set into `changes`; the executor persists
    them together with the new status.
    """
    order: Any  # procurement.models.PurchaseOrder (kept as Any to avoid import cycles)
    transition: Transition
    actor: Optional[Actor] = None
    note: str = ""
    reason: str = ""
    now: Any = None
    directory: Optional[MembershipDirectory] = None
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransitionAttempt:
    transition: Transition
    allowed: bool
    reason: Optional[str] = None


@dataclass
class TransitionResult:
    """
    Result of executing a transition.
    """
    success: bool
    from_state: Optional[str]
    to_state: Optional[str] = None
    error: Optional[WorkflowError] = None
    messages: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    idempotent: bool = False
    log_id: Optional[int] = None
    order: Any = None
    follow_ups: List["TransitionResult"] = field(default_factory=list)

    @property
    def final_state(self) -> Optional[str]:
        if self.follow_ups:
            return self.follow_ups[-1].to_state
        return self.to_state


@dataclass(frozen=True)
class StockItemResult:
    item_id: Any
    item_name: str
    requested: Decimal
    available: Decimal
    sufficient: bool


@dataclass(frozen=True)
class StockCheckResult:
    """
    Ephemeral stock verdict for one order: sufficient iff every item is.
    """
    available: bool
    item_results: List[StockItemResult] = field(default_factory=list)
    total_requested: Decimal = Decimal("0")
    total_available: Decimal = Decimal("0")

    @property
    def missing_items(self) -> List[StockItemResult]:
        return [r for r in self.item_results if not r.sufficient]
