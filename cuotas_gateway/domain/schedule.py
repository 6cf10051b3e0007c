"""Installment schedule generation over a plan's month grid"""

from typing import Iterator, List, Optional, Tuple

from cuotas_gateway.domain.exceptions import ValidationError
from cuotas_gateway.domain.models import Cuota, CuotaState, DividedAmount, PlanDefinition
from cuotas_gateway.domain.money import MoneyAmount, split_divided, split_fixed
from cuotas_gateway.domain.months import clamp_day, normalize_month


def installment_amounts(plan: PlanDefinition, count: int) -> List[MoneyAmount]:
    """Amounts for each installment according to the plan strategy"""
    if isinstance(plan.strategy, DividedAmount):
        return split_divided(plan.total, count)
    return split_fixed(plan.total, plan.strategy.installment_amount)


def _plan_grid(plan: PlanDefinition, count: int) -> Iterator[Tuple[int, int, int, MoneyAmount]]:
    """(position, year, month, amount) for each installment, one per month from the plan start"""
    amounts = installment_amounts(plan, count)
    months = plan.enabled_range.enumerate()
    for position, ((month, year_offset), amount) in enumerate(zip(months, amounts)):
        yield position, plan.fiscal_year + year_offset, month, amount


def generate_schedule(
    plan: PlanDefinition,
    admission_month,
    installment_count: Optional[int] = None,
) -> List[Cuota]:
    """
    Generate the installment schedule of a new enrollment.

    Requirements:
    - One installment per month of the plan's enabled range, starting at the
      plan start month, sequence numbers 1..n
    - Due on the plan's due day, clamped to the month length
    - Effective first month is max(plan start, admission month); late admission
      does not shift the grid, earlier installments start out OVERDUE
    - Deterministic: identical inputs give identical output

    Args:
        plan: Validated plan definition
        admission_month: Month the participant enrolls (1-12 or English name)
        installment_count: Requested count (DividedAmount only, defaults to max)

    Returns:
        Ordered list of Cuota records

    Example:
        Plan March-January, 11 installments, admission in May
        -> #1 (March) and #2 (April) OVERDUE, #3..#11 PLANNED
    """
    month = normalize_month(admission_month)
    count = plan.installment_count(installment_count)
    month_range = plan.enabled_range

    admission_position = month_range.position(month)
    if admission_position is None:
        raise ValidationError(
            f"Admission month {month} is outside plan {plan.code} range {month_range.start}-{month_range.end}"
        )

    if plan.enrollment_cutoff_month is not None:
        if admission_position > month_range.position(plan.enrollment_cutoff_month):
            raise ValidationError(
                f"Enrollment in plan {plan.code} closed after month {plan.enrollment_cutoff_month}"
            )

    # Plan start has position 0, so the effective start is the admission position
    effective_position = admission_position
    if effective_position >= count:
        raise ValidationError(
            f"Admission month {month} is after the last installment of plan {plan.code}"
        )

    return [
        Cuota(
            sequence=position + 1,
            due_date=clamp_day(year, grid_month, plan.due_day),
            amount=amount,
            plan_code=plan.code,
            state=CuotaState.OVERDUE if position < effective_position else CuotaState.PLANNED,
        )
        for position, year, grid_month, amount in _plan_grid(plan, count)
    ]


def generate_continuation(
    plan: PlanDefinition,
    from_year_month: Tuple[int, int],
    start_sequence: int,
    installment_count: Optional[int] = None,
) -> List[Cuota]:
    """
    Continue an enrollment on a destination plan after migration.

    Uses the destination plan's own schedule, keeps only installments due
    in or after from_year_month and renumbers them from start_sequence.
    Installments of the destination plan that fall before the migration month
    are not owed.
    """
    count = plan.installment_count(installment_count)
    cuotas = []
    sequence = start_sequence
    for _, year, month, amount in _plan_grid(plan, count):
        if (year, month) < from_year_month:
            continue
        cuotas.append(
            Cuota(
                sequence=sequence,
                due_date=clamp_day(year, month, plan.due_day),
                amount=amount,
                plan_code=plan.code,
            )
        )
        sequence += 1
    return cuotas
