"""Shared router steps: catalog lookups, re-evaluation and response building"""

from dataclasses import replace
from datetime import date
from typing import Dict, Optional

from cuotas_gateway.api.v1.schemas import (
    CuotaSchema,
    EnrollmentResponse,
    PlanResponse,
    WithdrawalResponse,
)
from cuotas_gateway.domain.catalog import PlanCatalog
from cuotas_gateway.domain.lifecycle import Reevaluation, reevaluate
from cuotas_gateway.domain.models import DividedAmount, Enrollment, FixedInstallment, PlanDefinition
from cuotas_gateway.domain.state_machine import is_payable
from cuotas_gateway.domain.summary import enrollment_progress, financial_status
from cuotas_gateway.infrastructure.database.models import WithdrawalRecord
from cuotas_gateway.infrastructure.database.repositories import EnrollmentRepository
from cuotas_gateway.infrastructure.observability.logging import log_migration
from cuotas_gateway.infrastructure.observability.metrics import record_migration


def reevaluate_and_save(
    repo: EnrollmentRepository,
    catalog: PlanCatalog,
    enrollment: Enrollment,
    as_of: date,
) -> Reevaluation:
    """Run the re-evaluation pass for one enrollment and persist it if anything changed"""
    plan = catalog.get(enrollment.plan_code)
    destination = catalog.get(plan.destination_plan_code) if plan.destination_plan_code else None

    result = reevaluate(enrollment, plan, destination, as_of)
    if result.changed:
        result = replace(result, enrollment=repo.save(result.enrollment))
    if result.migrated:
        catalog.mark_referenced(result.enrollment.plan_code)
        record_migration(result.decision.reason)
        log_migration(
            enrollment.id,
            plan.code,
            result.enrollment.plan_code,
            result.decision.reason,
            result.decision.paid_count,
            result.decision.overdue_count,
        )
    return result


def plan_response(plan: PlanDefinition) -> PlanResponse:
    strategy = plan.strategy
    migration = plan.migration_policy
    refund = plan.refund_policy
    return PlanResponse(
        code=plan.code,
        name=plan.name,
        fiscal_year=plan.fiscal_year,
        audience=plan.audience,
        total_minor=plan.total.minor,
        currency=plan.currency,
        strategy=strategy.kind,
        fixed_installment_minor=strategy.installment_amount.minor if isinstance(strategy, FixedInstallment) else None,
        min_installments=strategy.min_installments if isinstance(strategy, DividedAmount) else None,
        max_installments=strategy.max_installments if isinstance(strategy, DividedAmount) else None,
        due_day=plan.due_day,
        start_month=plan.enabled_range.start,
        end_month=plan.enabled_range.end,
        span_months=plan.enabled_range.span(),
        active=plan.active,
        enrollment_cutoff_month=plan.enrollment_cutoff_month,
        destination_plan_code=plan.destination_plan_code,
        control_start_month=migration.control_start_month if migration else None,
        minimum_paid_before_control=migration.minimum_paid_before_control if migration else None,
        tolerated_arrears_months=migration.tolerated_arrears_months if migration else None,
        full_refund_cutoff_month=refund.full_refund_cutoff_month if refund else None,
        half_refund_cutoff_month=refund.half_refund_cutoff_month if refund else None,
    )


def enrollment_response(enrollment: Enrollment, cuota_ids: Dict[int, str], currency: str) -> EnrollmentResponse:
    progress = enrollment_progress(enrollment, currency)
    return EnrollmentResponse(
        enrollment_id=enrollment.id,
        participant_id=enrollment.participant_id,
        plan_code=enrollment.plan_code,
        original_plan_code=enrollment.original_plan_code,
        admission_month=enrollment.admission_month,
        installment_count=enrollment.installment_count,
        status=enrollment.status,
        financial_status=financial_status(enrollment),
        migrated_on=enrollment.migrated_on,
        currency=currency,
        paid_count=progress.paid_count,
        pending_count=progress.pending_count,
        overdue_count=progress.overdue_count,
        total_count=progress.total_count,
        paid_minor=progress.paid_amount.minor,
        remaining_minor=progress.remaining_amount.minor,
        total_minor=progress.total_amount.minor,
        next_due_date=progress.next_due_date,
        cuotas=[cuota_schema(cuota, cuota_ids) for cuota in enrollment.cuotas],
    )


def cuota_schema(cuota, cuota_ids: Dict[int, str]) -> CuotaSchema:
    return CuotaSchema(
        cuota_id=cuota_ids.get(cuota.sequence, ""),
        sequence=cuota.sequence,
        plan_code=cuota.plan_code,
        due_date=cuota.due_date,
        amount_minor=cuota.amount.minor,
        currency=cuota.amount.currency,
        state=cuota.state,
        payable=is_payable(cuota),
        paid_on=cuota.paid_on,
        payment_method=cuota.payment_method,
        note=cuota.note,
    )


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def withdrawal_response(row: WithdrawalRecord) -> WithdrawalResponse:
    return WithdrawalResponse(
        withdrawal_id=str(row.id),
        enrollment_id=str(row.enrollment_id),
        participant_id=row.participant_id,
        plan_code=row.plan_code,
        requested_month=row.requested_month,
        refund_percentage=row.refund_percentage,
        paid_minor=row.paid_minor,
        refund_minor=row.refund_minor,
        currency=row.currency,
        state=row.state,
        reason=row.reason,
        treasurer_note=row.treasurer_note,
        payment_reference=row.payment_reference,
        created_at=_isoformat(row.created_at),
        processed_at=_isoformat(row.processed_at),
    )
