"""Unit tests for withdrawal refunds"""

import pytest
from dataclasses import replace
from cuotas_gateway.domain.exceptions import ConflictError, PolicyViolation
from cuotas_gateway.domain.lifecycle import enroll
from cuotas_gateway.domain.models import CuotaState, EnrollmentStatus, RefundPolicy, WithdrawalState
from cuotas_gateway.domain.money import MoneyAmount
from cuotas_gateway.domain.months import MonthRange
from cuotas_gateway.domain.refund import (
    approve,
    evaluate_refund,
    process,
    refund_percentage,
    reject,
    request_withdrawal,
)


@pytest.mark.parametrize("month,expected", [(3, 100), (8, 100), (9, 50), (10, 50), (11, 0), (12, 0)])
def test_refund_tiers(month, expected):
    """Cutoffs August (100%) and October (50%)"""
    assert refund_percentage(month, 8, 10) == expected


def test_refund_tiers_wrapping_range():
    """In a November-February season, January comes after December"""
    season = MonthRange(11, 2)
    assert refund_percentage(12, 12, 1, season) == 100
    assert refund_percentage(1, 12, 1, season) == 50
    assert refund_percentage(2, 12, 1, season) == 0


def test_refund_outside_range():
    """Calendar months before a March-December season come before every cutoff"""
    season = MonthRange(3, 12)
    assert refund_percentage(1, 8, 10, season) == 100
    assert refund_percentage(2, 8, 10, season) == 100
    assert refund_percentage(11, 8, 10, season) == 0


def test_refund_outside_wrapping_range():
    """Between the end of an April-January season and its start nothing has been consumed yet"""
    season = MonthRange(4, 1)
    assert refund_percentage(2, 8, 11, season) == 100
    assert refund_percentage(3, 8, 11, season) == 100
    assert refund_percentage(12, 8, 11, season) == 0
    assert refund_percentage(1, 8, 11, season) == 0


def test_evaluate_refund_rounds_down():
    quote = evaluate_refund(9, RefundPolicy(8, 10), MoneyAmount(1000001, "ARS"))
    assert quote.percentage == 50
    assert quote.refund_amount == MoneyAmount(500000, "ARS")


def test_request_withdrawal_cancels_enrollment(plan_a):
    enrollment = enroll("e-1", "camper-1", plan_a, 3)
    cuotas = [replace(c, state=CuotaState.PAID) if c.sequence <= 2 else c for c in enrollment.cuotas]
    enrollment = replace(enrollment, cuotas=cuotas)

    request, cancelled = request_withdrawal(enrollment, plan_a, "OCTOBER", reason="Mudanza")

    assert cancelled.status == EnrollmentStatus.CANCELLED
    assert cancelled.cuotas == enrollment.cuotas
    assert request.requested_month == 10
    assert request.refund_percentage == 50
    assert request.paid_amount == MoneyAmount(2000000, "ARS")
    assert request.refund_amount == MoneyAmount(1000000, "ARS")
    assert request.state == WithdrawalState.PENDING


def test_request_withdrawal_twice(plan_a):
    enrollment = enroll("e-1", "camper-1", plan_a, 3)
    _, cancelled = request_withdrawal(enrollment, plan_a, 8)
    with pytest.raises(ConflictError):
        request_withdrawal(cancelled, plan_a, 8)


def test_request_withdrawal_without_policy(plan_a):
    plan = replace(plan_a, refund_policy=None)
    with pytest.raises(PolicyViolation):
        request_withdrawal(enroll("e-1", "camper-1", plan, 3), plan, 8)


def test_withdrawal_approval_flow(plan_a):
    request, _ = request_withdrawal(enroll("e-1", "camper-1", plan_a, 3), plan_a, 4)

    approved = approve(request, "OK tesorería")
    processed = process(approved, "TRX-991")

    assert approved.state == WithdrawalState.APPROVED
    assert processed.state == WithdrawalState.PROCESSED
    assert processed.payment_reference == "TRX-991"
    with pytest.raises(ConflictError):
        process(request)


def test_rejected_withdrawal_is_final(plan_a):
    request, _ = request_withdrawal(enroll("e-1", "camper-1", plan_a, 3), plan_a, 4)
    rejected = reject(request, "Fuera de plazo")

    assert rejected.state == WithdrawalState.REJECTED
    with pytest.raises(ConflictError):
        approve(rejected)
