"""Installment (cuota) lifecycle: states, allowed transitions and who may trigger them"""

from dataclasses import replace
from datetime import date
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from cuotas_gateway.domain.exceptions import ConflictError
from cuotas_gateway.domain.models import Cuota, CuotaState, PaymentMethod


class Actor(str, Enum):
    SCHEDULER = "SCHEDULER"
    PAYMENT_GATEWAY = "PAYMENT_GATEWAY"
    ADMINISTRATOR = "ADMINISTRATOR"


TRANSITIONS: Dict[Tuple[CuotaState, CuotaState], FrozenSet[Actor]] = {
    (CuotaState.PLANNED, CuotaState.ENABLED): frozenset({Actor.SCHEDULER}),
    (CuotaState.ENABLED, CuotaState.OVERDUE): frozenset({Actor.SCHEDULER}),
    (CuotaState.ENABLED, CuotaState.PAID): frozenset({Actor.PAYMENT_GATEWAY, Actor.ADMINISTRATOR}),
    (CuotaState.OVERDUE, CuotaState.REGULARIZED): frozenset({Actor.ADMINISTRATOR}),
    # Manual correction of a current installment
    (CuotaState.ENABLED, CuotaState.REGULARIZED): frozenset({Actor.ADMINISTRATOR}),
}

TERMINAL_STATES = frozenset({CuotaState.PAID, CuotaState.REGULARIZED})
PAYABLE_STATES = frozenset({CuotaState.PLANNED, CuotaState.ENABLED})


def is_payable(cuota: Cuota) -> bool:
    """Whether a UI may offer ordinary payment for this installment"""
    return cuota.state in PAYABLE_STATES


def is_resolved(cuota: Cuota) -> bool:
    return cuota.state in TERMINAL_STATES


def can_transition(source: CuotaState, target: CuotaState, actor: Actor) -> bool:
    return actor in TRANSITIONS.get((source, target), frozenset())


def transition(
    cuota: Cuota,
    target: CuotaState,
    actor: Actor,
    paid_on: Optional[date] = None,
    payment_method: Optional[PaymentMethod] = None,
    note: Optional[str] = None,
) -> Cuota:
    """
    Move an installment to a new state, returning the updated copy.

    Raises:
        ConflictError: Edge not allowed, or not allowed for this actor.
            The original installment is left unchanged.
    """
    if cuota.state == target and target in TERMINAL_STATES:
        raise ConflictError(f"Installment #{cuota.sequence} is already {target.value}")

    allowed = TRANSITIONS.get((cuota.state, target))
    if allowed is None:
        if cuota.state == CuotaState.OVERDUE and target == CuotaState.PAID:
            raise ConflictError(
                f"Installment #{cuota.sequence} is overdue and must be regularized by an administrator"
            )
        raise ConflictError(
            f"Installment #{cuota.sequence} cannot move from {cuota.state.value} to {target.value}"
        )
    if actor not in allowed:
        raise ConflictError(
            f"{actor.value} may not move installment #{cuota.sequence} from {cuota.state.value} to {target.value}"
        )

    if target in TERMINAL_STATES:
        return replace(cuota, state=target, paid_on=paid_on, payment_method=payment_method, note=note)
    return replace(cuota, state=target)


def refresh(cuota: Cuota, as_of: date) -> Cuota:
    """
    Apply date-driven transitions as of a given day.

    PLANNED -> ENABLED once the due month begins; ENABLED -> OVERDUE once the
    due date has passed unpaid. Safe to call repeatedly.
    """
    if cuota.state == CuotaState.PLANNED and (as_of.year, as_of.month) >= (cuota.due_date.year, cuota.due_date.month):
        cuota = transition(cuota, CuotaState.ENABLED, Actor.SCHEDULER)
    if cuota.state == CuotaState.ENABLED and as_of > cuota.due_date:
        cuota = transition(cuota, CuotaState.OVERDUE, Actor.SCHEDULER)
    return cuota


def confirm_payment(cuota: Cuota, paid_on: date, payment_method: PaymentMethod = PaymentMethod.MERCADOPAGO) -> Cuota:
    """Payment-gateway confirmation: ENABLED -> PAID"""
    return transition(cuota, CuotaState.PAID, Actor.PAYMENT_GATEWAY, paid_on=paid_on, payment_method=payment_method)


def record_manual_payment(cuota: Cuota, paid_on: date, payment_method: PaymentMethod, note: Optional[str] = None) -> Cuota:
    """Treasury records a payment received through the normal channel (cash, transfer)"""
    return transition(cuota, CuotaState.PAID, Actor.ADMINISTRATOR, paid_on=paid_on, payment_method=payment_method, note=note)


def regularize(cuota: Cuota, paid_on: date, payment_method: PaymentMethod, note: Optional[str] = None) -> Cuota:
    """Administrative settlement of an overdue (or manually corrected current) installment"""
    return transition(cuota, CuotaState.REGULARIZED, Actor.ADMINISTRATOR, paid_on=paid_on, payment_method=payment_method, note=note)
