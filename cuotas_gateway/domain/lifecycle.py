"""Enrollment lifecycle: creation and the recurring re-evaluation pass"""

from dataclasses import dataclass, replace
from datetime import date
from typing import Optional

from cuotas_gateway.domain.exceptions import ValidationError
from cuotas_gateway.domain.migration import NOT_APPLICABLE, MigrationDecision, evaluate_and_apply
from cuotas_gateway.domain.models import Enrollment, EnrollmentStatus, PlanDefinition
from cuotas_gateway.domain.months import normalize_month
from cuotas_gateway.domain.schedule import generate_schedule
from cuotas_gateway.domain.state_machine import refresh


@dataclass(frozen=True)
class Reevaluation:
    enrollment: Enrollment
    decision: MigrationDecision
    changed: bool

    @property
    def migrated(self) -> bool:
        return self.decision.migrate


def enroll(
    enrollment_id: str,
    participant_id: str,
    plan: PlanDefinition,
    admission_month,
    installment_count: Optional[int] = None,
) -> Enrollment:
    """Create an enrollment with its generated schedule"""
    if not plan.active:
        raise ValidationError(f"Plan {plan.code} is not open for enrollment")
    if not participant_id:
        raise ValidationError("participant_id is required")

    month = normalize_month(admission_month)
    count = plan.installment_count(installment_count)
    return Enrollment(
        id=enrollment_id,
        participant_id=participant_id,
        plan_code=plan.code,
        admission_month=month,
        installment_count=count,
        cuotas=generate_schedule(plan, month, count),
    )


def refresh_states(enrollment: Enrollment, as_of: date) -> Enrollment:
    cuotas = [refresh(cuota, as_of) for cuota in enrollment.cuotas]
    if cuotas == enrollment.cuotas:
        return enrollment
    return replace(enrollment, cuotas=cuotas)


def reevaluate(
    enrollment: Enrollment,
    plan: PlanDefinition,
    destination: Optional[PlanDefinition],
    as_of: date,
) -> Reevaluation:
    """
    Bring an enrollment up to date as of a given day.

    1. Date-driven installment transitions (PLANNED -> ENABLED -> OVERDUE)
    2. Migration check against the active plan's control rules
    3. Date-driven transitions on the continuation, if migrated

    Idempotent: running it twice for the same day changes nothing the second time.
    Cancelled enrollments are left untouched.
    """
    if enrollment.status == EnrollmentStatus.CANCELLED:
        return Reevaluation(enrollment=enrollment, decision=NOT_APPLICABLE, changed=False)

    updated = refresh_states(enrollment, as_of)
    updated, decision = evaluate_and_apply(updated, plan, destination, as_of)
    if decision.migrate:
        updated = refresh_states(updated, as_of)

    return Reevaluation(enrollment=updated, decision=decision, changed=updated != enrollment)
