"""Read-only projections over installment states"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from cuotas_gateway.domain.models import CuotaState, Enrollment, EnrollmentStatus, FinancialStatus
from cuotas_gateway.domain.money import DEFAULT_CURRENCY, MoneyAmount, total_of
from cuotas_gateway.domain.state_machine import is_resolved


@dataclass(frozen=True)
class EnrollmentProgress:
    paid_count: int
    pending_count: int
    overdue_count: int
    total_count: int
    paid_amount: MoneyAmount
    remaining_amount: MoneyAmount
    total_amount: MoneyAmount
    next_due_date: Optional[date]


@dataclass(frozen=True)
class FinancialSummary:
    total_collected: MoneyAmount
    total_pending: MoneyAmount
    delinquency_rate: float
    active_enrollments: int
    total_enrollments: int


def financial_status(enrollment: Enrollment) -> FinancialStatus:
    """Derived status: migrated wins, then any overdue installment means delinquent"""
    if enrollment.status == EnrollmentStatus.MIGRATED_TO_PLAN_B:
        return FinancialStatus.MIGRATED
    if any(c.state == CuotaState.OVERDUE for c in enrollment.cuotas):
        return FinancialStatus.DELINQUENT
    return FinancialStatus.CURRENT


def enrollment_progress(enrollment: Enrollment, currency: str = DEFAULT_CURRENCY) -> EnrollmentProgress:
    resolved = [c for c in enrollment.cuotas if is_resolved(c)]
    unresolved = [c for c in enrollment.cuotas if not is_resolved(c)]
    upcoming = [c.due_date for c in unresolved if c.state != CuotaState.OVERDUE]

    paid = total_of((c.amount for c in resolved), currency)
    remaining = total_of((c.amount for c in unresolved), currency)
    return EnrollmentProgress(
        paid_count=len(resolved),
        pending_count=len(unresolved),
        overdue_count=sum(1 for c in unresolved if c.state == CuotaState.OVERDUE),
        total_count=len(enrollment.cuotas),
        paid_amount=paid,
        remaining_amount=remaining,
        total_amount=paid + remaining,
        next_due_date=min(upcoming) if upcoming else None,
    )


def financial_summary(enrollments: Iterable[Enrollment], currency: str = DEFAULT_CURRENCY) -> FinancialSummary:
    """
    Treasury dashboard totals.

    Collected: PAID + REGULARIZED installments of every enrollment.
    Pending: unresolved installments of enrollments that are not cancelled.
    Delinquency rate: share of non-cancelled enrollments with an overdue installment.
    """
    enrollments = list(enrollments)
    collected = MoneyAmount.zero(currency)
    pending = MoneyAmount.zero(currency)
    open_count = 0
    delinquent = 0

    for enrollment in enrollments:
        progress = enrollment_progress(enrollment, currency)
        collected = collected + progress.paid_amount
        if enrollment.status == EnrollmentStatus.CANCELLED:
            continue
        open_count += 1
        pending = pending + progress.remaining_amount
        if progress.overdue_count > 0:
            delinquent += 1

    return FinancialSummary(
        total_collected=collected,
        total_pending=pending,
        delinquency_rate=round(delinquent / open_count, 4) if open_count else 0.0,
        active_enrollments=sum(1 for e in enrollments if e.status == EnrollmentStatus.ACTIVE),
        total_enrollments=len(enrollments),
    )
