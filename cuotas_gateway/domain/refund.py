"""Withdrawal refund policy and withdrawal request lifecycle"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple

from cuotas_gateway.domain.exceptions import ConflictError, PolicyViolation
from cuotas_gateway.domain.models import (
    Enrollment,
    EnrollmentStatus,
    PlanDefinition,
    RefundPolicy,
    WithdrawalRequest,
    WithdrawalState,
)
from cuotas_gateway.domain.money import MoneyAmount, total_of
from cuotas_gateway.domain.months import MonthRange, normalize_month
from cuotas_gateway.domain.state_machine import is_resolved

FULL_REFUND = 100
HALF_REFUND = 50
NO_REFUND = 0


@dataclass(frozen=True)
class RefundQuote:
    percentage: int
    paid_amount: MoneyAmount
    refund_amount: MoneyAmount


def _month_key(month: int, month_range: Optional[MonthRange]):
    # Calendar order, except inside a wrapping range (e.g. March-January) where January sorts after December
    if month_range is None or not month_range.wraps:
        return month
    offset = (month - month_range.start) % 12
    if offset < month_range.span():
        return offset
    # Between the end of a wrapping season and its start: the next season has not begun
    return offset - 12


def refund_percentage(
    request_month: int,
    full_refund_cutoff: int,
    half_refund_cutoff: int,
    month_range: Optional[MonthRange] = None,
) -> int:
    """
    Refund tier for a withdrawal requested in a given month.

    - request month <= 100% cutoff -> 100
    - request month <= 50% cutoff  -> 50
    - later                        -> 0
    """
    request = _month_key(request_month, month_range)
    if request <= _month_key(full_refund_cutoff, month_range):
        return FULL_REFUND
    if request <= _month_key(half_refund_cutoff, month_range):
        return HALF_REFUND
    return NO_REFUND


def evaluate_refund(
    request_month: int,
    policy: RefundPolicy,
    paid_amount: MoneyAmount,
    month_range: Optional[MonthRange] = None,
) -> RefundQuote:
    """
    Refund owed for a withdrawal. Trusts the caller's paid_amount, which must
    be the sum of all PAID and REGULARIZED installments.
    """
    percentage = refund_percentage(
        request_month,
        policy.full_refund_cutoff_month,
        policy.half_refund_cutoff_month,
        month_range,
    )
    return RefundQuote(
        percentage=percentage,
        paid_amount=paid_amount,
        refund_amount=paid_amount.percent_floor(percentage),
    )


def paid_amount(enrollment: Enrollment, currency: str) -> MoneyAmount:
    return total_of((c.amount for c in enrollment.cuotas if is_resolved(c)), currency)


def request_withdrawal(
    enrollment: Enrollment,
    plan: PlanDefinition,
    request_month,
    reason: Optional[str] = None,
) -> Tuple[WithdrawalRequest, Enrollment]:
    """
    Compute the refund of a withdrawal and cancel the enrollment.

    Uses the refund policy of the enrollment's active plan. The installments are
    left untouched; the refund is paid out by treasury once approved.

    Raises:
        PolicyViolation: Active plan has no refund policy
        ConflictError: Enrollment already cancelled
    """
    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise ConflictError(f"Enrollment {enrollment.id} is already cancelled")
    if plan.refund_policy is None:
        raise PolicyViolation(f"Plan {plan.code} has no refund policy")

    month = normalize_month(request_month)
    quote = evaluate_refund(month, plan.refund_policy, paid_amount(enrollment, plan.currency), plan.enabled_range)

    request = WithdrawalRequest(
        enrollment_id=enrollment.id,
        plan_code=plan.code,
        requested_month=month,
        refund_percentage=quote.percentage,
        paid_amount=quote.paid_amount,
        refund_amount=quote.refund_amount,
        reason=reason,
    )
    return request, replace(enrollment, status=EnrollmentStatus.CANCELLED)


def _advance(request: WithdrawalRequest, expected: WithdrawalState, target: WithdrawalState, **changes) -> WithdrawalRequest:
    if request.state != expected:
        raise ConflictError(
            f"Withdrawal request is {request.state.value}; only {expected.value} requests can become {target.value}"
        )
    return replace(request, state=target, **changes)


def approve(request: WithdrawalRequest, note: Optional[str] = None) -> WithdrawalRequest:
    return _advance(request, WithdrawalState.PENDING, WithdrawalState.APPROVED, treasurer_note=note)


def reject(request: WithdrawalRequest, note: str) -> WithdrawalRequest:
    return _advance(request, WithdrawalState.PENDING, WithdrawalState.REJECTED, treasurer_note=note)


def process(request: WithdrawalRequest, payment_reference: Optional[str] = None) -> WithdrawalRequest:
    return _advance(request, WithdrawalState.APPROVED, WithdrawalState.PROCESSED, payment_reference=payment_reference)
