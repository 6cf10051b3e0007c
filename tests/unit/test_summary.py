"""Unit tests for enrollment progress and treasury totals"""

from dataclasses import replace
from datetime import date
from cuotas_gateway.domain.lifecycle import enroll, refresh_states
from cuotas_gateway.domain.models import CuotaState, EnrollmentStatus, FinancialStatus
from cuotas_gateway.domain.money import MoneyAmount
from cuotas_gateway.domain.summary import enrollment_progress, financial_status, financial_summary


def with_states(enrollment, states):
    cuotas = [replace(c, state=states.get(c.sequence, c.state)) for c in enrollment.cuotas]
    return replace(enrollment, cuotas=cuotas)


def test_progress_counts_and_amounts(plan_a):
    enrollment = with_states(
        enroll("e-1", "camper-1", plan_a, 3),
        {1: CuotaState.PAID, 2: CuotaState.REGULARIZED, 3: CuotaState.OVERDUE, 4: CuotaState.ENABLED},
    )
    progress = enrollment_progress(enrollment, "ARS")

    assert progress.paid_count == 2
    assert progress.overdue_count == 1
    assert progress.pending_count == 8
    assert progress.total_count == 10
    assert progress.paid_amount == MoneyAmount(2000000, "ARS")
    assert progress.remaining_amount == MoneyAmount(8000000, "ARS")
    assert progress.total_amount == plan_a.total
    assert progress.next_due_date == date(2026, 6, 10)


def test_financial_status(plan_a):
    enrollment = enroll("e-1", "camper-1", plan_a, 3)
    assert financial_status(enrollment) == FinancialStatus.CURRENT
    assert financial_status(refresh_states(enrollment, date(2026, 4, 1))) == FinancialStatus.DELINQUENT
    migrated = replace(enrollment, status=EnrollmentStatus.MIGRATED_TO_PLAN_B)
    assert financial_status(migrated) == FinancialStatus.MIGRATED


def test_financial_summary(plan_a):
    current = with_states(enroll("e-1", "camper-1", plan_a, 3), {1: CuotaState.PAID})
    delinquent = with_states(enroll("e-2", "camper-2", plan_a, 3), {1: CuotaState.OVERDUE})
    cancelled = replace(
        with_states(enroll("e-3", "camper-3", plan_a, 3), {1: CuotaState.PAID, 2: CuotaState.PAID}),
        status=EnrollmentStatus.CANCELLED,
    )

    summary = financial_summary([current, delinquent, cancelled], "ARS")

    # Money already collected from cancelled enrollments still counts
    assert summary.total_collected == MoneyAmount(3000000, "ARS")
    assert summary.total_pending == MoneyAmount(19000000, "ARS")
    assert summary.delinquency_rate == 0.5
    assert summary.active_enrollments == 2
    assert summary.total_enrollments == 3


def test_financial_summary_empty():
    summary = financial_summary([], "ARS")
    assert summary.delinquency_rate == 0.0
    assert summary.total_collected == MoneyAmount.zero("ARS")
