"""Plan A -> Plan B migration policy"""

from dataclasses import dataclass, replace
from datetime import date
from typing import Optional, Tuple

from cuotas_gateway.domain.exceptions import ConflictError, PolicyViolation, ValidationError
from cuotas_gateway.domain.models import CuotaState, Enrollment, EnrollmentStatus, PlanDefinition
from cuotas_gateway.domain.months import add_months
from cuotas_gateway.domain.schedule import generate_continuation
from cuotas_gateway.domain.state_machine import is_resolved

INSUFFICIENT_PAYMENTS = "insufficient_payments"
ARREARS_EXCEEDED = "arrears_exceeded"


@dataclass(frozen=True)
class MigrationDecision:
    """Outcome of evaluating an enrollment against its plan's control rules"""

    applicable: bool
    migrate: bool = False
    reason: Optional[str] = None
    control_active: bool = False
    paid_count: int = 0
    overdue_count: int = 0


NOT_APPLICABLE = MigrationDecision(applicable=False)


def control_year_month(plan: PlanDefinition) -> Tuple[int, int]:
    policy = plan.migration_policy
    if policy is None:
        raise PolicyViolation(f"Plan {plan.code} has no migration policy")
    return plan.enabled_range.year_month(policy.control_start_month, plan.fiscal_year)


def evaluate_migration(enrollment: Enrollment, plan: PlanDefinition, as_of: date) -> MigrationDecision:
    """
    Decide whether an enrollment must move to its plan's destination plan.

    Rules (only once as_of reaches the control-start month):
    - Fewer than minimum_paid_before_control installments resolved (PAID or REGULARIZED)
    - More than tolerated_arrears_months installments OVERDUE

    Pure: never mutates the enrollment. Migrated or cancelled enrollments are
    not evaluated again.
    """
    policy = plan.migration_policy
    if policy is None or enrollment.status != EnrollmentStatus.ACTIVE:
        return NOT_APPLICABLE
    if enrollment.plan_code != plan.code:
        raise ValidationError(
            f"Enrollment {enrollment.id} is on plan {enrollment.plan_code}, not {plan.code}"
        )

    own_cuotas = [c for c in enrollment.cuotas if c.plan_code == plan.code]
    paid_count = sum(1 for c in own_cuotas if is_resolved(c))
    overdue_count = sum(1 for c in own_cuotas if c.state == CuotaState.OVERDUE)

    control_active = (as_of.year, as_of.month) >= control_year_month(plan)
    reason = None
    if control_active:
        if paid_count < policy.minimum_paid_before_control:
            reason = INSUFFICIENT_PAYMENTS
        elif overdue_count > policy.tolerated_arrears_months:
            reason = ARREARS_EXCEEDED

    return MigrationDecision(
        applicable=True,
        migrate=reason is not None,
        reason=reason,
        control_active=control_active,
        paid_count=paid_count,
        overdue_count=overdue_count,
    )


def apply_migration(enrollment: Enrollment, destination: PlanDefinition, as_of: date) -> Enrollment:
    """
    Move an enrollment onto its destination plan.

    - Resolved installments stay; OVERDUE ones stay as historical debt under
      the original plan
    - PLANNED and ENABLED installments of the original plan are discarded
    - The destination plan's schedule continues from the current month
      (or the month after the last kept installment, whichever is later)

    Idempotent: an already migrated enrollment is returned unchanged.
    """
    if enrollment.status == EnrollmentStatus.MIGRATED_TO_PLAN_B:
        return enrollment
    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise ConflictError(f"Enrollment {enrollment.id} is cancelled and cannot migrate")

    kept = [
        c for c in sorted(enrollment.cuotas, key=lambda c: c.sequence)
        if is_resolved(c) or c.state == CuotaState.OVERDUE
    ]
    # Sequence numbers must stay contiguous after the superseded ones are dropped
    kept = [c if c.sequence == index else replace(c, sequence=index) for index, c in enumerate(kept, start=1)]

    start = (as_of.year, as_of.month)
    if kept:
        last_due = max(c.due_date for c in kept)
        start = max(start, add_months((last_due.year, last_due.month), 1))

    continuation = generate_continuation(destination, start, start_sequence=len(kept) + 1)

    return replace(
        enrollment,
        plan_code=destination.code,
        status=EnrollmentStatus.MIGRATED_TO_PLAN_B,
        cuotas=kept + continuation,
        migrated_on=as_of,
    )


def migrate(enrollment: Enrollment, plan: PlanDefinition, destination: Optional[PlanDefinition], as_of: date) -> Enrollment:
    """Explicit migration request (treasury action), bypassing the control rules"""
    if plan.migration_policy is None or destination is None:
        raise PolicyViolation(f"Plan {plan.code} has no destination plan to migrate to")
    if destination.code != plan.destination_plan_code:
        raise ValidationError(
            f"Plan {plan.code} migrates to {plan.destination_plan_code}, not {destination.code}"
        )
    return apply_migration(enrollment, destination, as_of)


def evaluate_and_apply(
    enrollment: Enrollment,
    plan: PlanDefinition,
    destination: Optional[PlanDefinition],
    as_of: date,
) -> Tuple[Enrollment, MigrationDecision]:
    decision = evaluate_migration(enrollment, plan, as_of)
    if not decision.migrate:
        return enrollment, decision
    if destination is None:
        raise PolicyViolation(f"Plan {plan.code} destination {plan.destination_plan_code} is not available")
    return apply_migration(enrollment, destination, as_of), decision
