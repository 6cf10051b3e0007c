"""Unit tests for the installment state machine"""

import pytest
from datetime import date
from cuotas_gateway.domain.exceptions import ConflictError
from cuotas_gateway.domain.models import Cuota, CuotaState, PaymentMethod
from cuotas_gateway.domain.money import MoneyAmount
from cuotas_gateway.domain.state_machine import (
    Actor,
    can_transition,
    confirm_payment,
    is_payable,
    record_manual_payment,
    refresh,
    regularize,
    transition,
)


def make_cuota(state: CuotaState = CuotaState.PLANNED) -> Cuota:
    return Cuota(
        sequence=3,
        due_date=date(2026, 5, 10),
        amount=MoneyAmount(1000000, "ARS"),
        plan_code="CAMP-2026-A",
        state=state,
    )


def test_allowed_edges():
    assert can_transition(CuotaState.PLANNED, CuotaState.ENABLED, Actor.SCHEDULER)
    assert can_transition(CuotaState.ENABLED, CuotaState.OVERDUE, Actor.SCHEDULER)
    assert can_transition(CuotaState.ENABLED, CuotaState.PAID, Actor.PAYMENT_GATEWAY)
    assert can_transition(CuotaState.ENABLED, CuotaState.PAID, Actor.ADMINISTRATOR)
    assert can_transition(CuotaState.OVERDUE, CuotaState.REGULARIZED, Actor.ADMINISTRATOR)


def test_disallowed_edges():
    assert not can_transition(CuotaState.OVERDUE, CuotaState.PAID, Actor.PAYMENT_GATEWAY)
    assert not can_transition(CuotaState.OVERDUE, CuotaState.REGULARIZED, Actor.PAYMENT_GATEWAY)
    assert not can_transition(CuotaState.PAID, CuotaState.ENABLED, Actor.ADMINISTRATOR)
    assert not can_transition(CuotaState.PLANNED, CuotaState.PAID, Actor.PAYMENT_GATEWAY)


def test_refresh_enables_in_due_month():
    cuota = make_cuota()
    assert refresh(cuota, date(2026, 4, 30)).state == CuotaState.PLANNED
    assert refresh(cuota, date(2026, 5, 1)).state == CuotaState.ENABLED


def test_refresh_marks_overdue_after_due_date():
    cuota = make_cuota()
    assert refresh(cuota, date(2026, 5, 10)).state == CuotaState.ENABLED
    assert refresh(cuota, date(2026, 5, 11)).state == CuotaState.OVERDUE
    # A far later date moves through both edges at once
    assert refresh(cuota, date(2026, 9, 1)).state == CuotaState.OVERDUE


def test_refresh_is_idempotent():
    once = refresh(make_cuota(), date(2026, 6, 1))
    assert refresh(once, date(2026, 6, 1)) == once


def test_refresh_leaves_resolved_installments():
    paid = make_cuota(CuotaState.PAID)
    assert refresh(paid, date(2026, 9, 1)) == paid


def test_gateway_payment_of_enabled_installment():
    paid = confirm_payment(make_cuota(CuotaState.ENABLED), date(2026, 5, 8))

    assert paid.state == CuotaState.PAID
    assert paid.paid_on == date(2026, 5, 8)
    assert paid.payment_method == PaymentMethod.MERCADOPAGO


def test_overdue_installment_cannot_be_paid_through_gateway():
    """Overdue debt is settled only by treasury regularization"""
    overdue = make_cuota(CuotaState.OVERDUE)
    with pytest.raises(ConflictError, match="regularized"):
        confirm_payment(overdue, date(2026, 6, 1))
    assert overdue.state == CuotaState.OVERDUE


def test_double_payment_rejected():
    paid = confirm_payment(make_cuota(CuotaState.ENABLED), date(2026, 5, 8))
    with pytest.raises(ConflictError, match="already PAID"):
        confirm_payment(paid, date(2026, 5, 9))


def test_regularize_overdue():
    settled = regularize(make_cuota(CuotaState.OVERDUE), date(2026, 6, 2), PaymentMethod.TRANSFER, "Acuerdo")

    assert settled.state == CuotaState.REGULARIZED
    assert settled.payment_method == PaymentMethod.TRANSFER
    assert settled.note == "Acuerdo"


def test_manual_payment_of_enabled_installment():
    paid = record_manual_payment(make_cuota(CuotaState.ENABLED), date(2026, 5, 3), PaymentMethod.CASH)
    assert paid.state == CuotaState.PAID
    assert paid.payment_method == PaymentMethod.CASH


def test_manual_payment_of_overdue_installment_rejected():
    with pytest.raises(ConflictError):
        record_manual_payment(make_cuota(CuotaState.OVERDUE), date(2026, 6, 2), PaymentMethod.CASH)


def test_scheduler_cannot_pay():
    with pytest.raises(ConflictError):
        transition(make_cuota(CuotaState.ENABLED), CuotaState.PAID, Actor.SCHEDULER)


def test_payable_states():
    assert is_payable(make_cuota(CuotaState.PLANNED))
    assert is_payable(make_cuota(CuotaState.ENABLED))
    assert not is_payable(make_cuota(CuotaState.OVERDUE))
    assert not is_payable(make_cuota(CuotaState.PAID))
    assert not is_payable(make_cuota(CuotaState.REGULARIZED))
