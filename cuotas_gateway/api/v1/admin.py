"""Treasury endpoints - manual payments, regularization, re-evaluation, withdrawals"""

import logging
import time
from dataclasses import replace
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from cuotas_gateway.api.dependencies import get_disbursement_client, get_request_id, get_today
from cuotas_gateway.api.v1.schemas import (
    CuotaSchema,
    EnrollmentResponse,
    FinancialSummaryResponse,
    ManualPaymentRequest,
    PendingCountResponse,
    ReevaluationRequest,
    ReevaluationResponse,
    RegularizationRequest,
    WithdrawalDecisionRequest,
    WithdrawalProcessRequest,
    WithdrawalRejectionRequest,
    WithdrawalResponse,
)
from cuotas_gateway.api.v1.workflows import (
    cuota_schema,
    enrollment_response,
    reevaluate_and_save,
    withdrawal_response,
)
from cuotas_gateway.config import settings
from cuotas_gateway.domain import refund
from cuotas_gateway.domain.lifecycle import refresh_states
from cuotas_gateway.domain.migration import migrate
from cuotas_gateway.domain.models import EnrollmentStatus, FinancialStatus, WithdrawalState
from cuotas_gateway.domain.state_machine import record_manual_payment, regularize
from cuotas_gateway.domain.summary import financial_status, financial_summary
from cuotas_gateway.infrastructure.clients.disbursement import DisbursementClient
from cuotas_gateway.infrastructure.database.repositories import (
    EnrollmentRepository,
    PlanRepository,
    WithdrawalRepository,
)
from cuotas_gateway.infrastructure.database.session import get_db
from cuotas_gateway.infrastructure.observability.logging import log_migration, log_payment, log_reevaluation
from cuotas_gateway.infrastructure.observability.metrics import (
    record_migration,
    record_payment,
    reevaluation_failures_counter,
)

router = APIRouter(prefix="/admin")


def _settle(db: Session, cuota_id: str, today: date, settle, paid_on: Optional[date]):
    """Apply a treasury settlement to one installment and persist the enrollment"""
    catalog = PlanRepository(db).load_catalog()
    repo = EnrollmentRepository(db)
    enrollment, sequence = repo.find_cuota(cuota_id)

    enrollment = refresh_states(enrollment, today)
    settled = settle(enrollment.cuota(sequence), paid_on or today)
    enrollment = replace(
        enrollment,
        cuotas=[settled if c.sequence == sequence else c for c in enrollment.cuotas],
    )
    enrollment = repo.save(enrollment)
    reevaluate_and_save(repo, catalog, enrollment, today)
    db.commit()
    return enrollment, settled, repo


@router.post("/payments/manual", response_model=CuotaSchema)
def register_manual_payment(
    body: ManualPaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """Record a cash or transfer payment of a current installment received by treasury"""
    enrollment, settled, repo = _settle(
        db,
        body.cuota_id,
        today,
        lambda cuota, paid_on: record_manual_payment(cuota, paid_on, body.method, body.note),
        body.paid_on,
    )
    record_payment("manual")
    log_payment(get_request_id(request), enrollment.id, settled.sequence, "manual", settled.state.value)
    return cuota_schema(settled, repo.cuota_ids(enrollment.id))


@router.put("/cuotas/{cuota_id}/regularize", response_model=CuotaSchema)
def regularize_cuota(
    cuota_id: str,
    body: RegularizationRequest,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """Settle an overdue installment administratively (OVERDUE -> REGULARIZED)"""
    enrollment, settled, repo = _settle(
        db,
        cuota_id,
        today,
        lambda cuota, paid_on: regularize(cuota, paid_on, body.method, body.note),
        body.paid_on,
    )
    record_payment("regularization")
    log_payment(get_request_id(request), enrollment.id, settled.sequence, "regularization", settled.state.value)
    return cuota_schema(settled, repo.cuota_ids(enrollment.id))


@router.get("/enrollments", response_model=List[EnrollmentResponse])
def list_enrollments_admin(
    plan: Optional[str] = None,
    status: Optional[EnrollmentStatus] = None,
    financial: Optional[FinancialStatus] = None,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """All enrollments, filtered by plan, status, derived financial status or participant search"""
    catalog = PlanRepository(db).load_catalog()
    repo = EnrollmentRepository(db)
    enrollments = repo.list_all(plan_code=plan, status=status, query=q)
    if financial is not None:
        enrollments = [e for e in enrollments if financial_status(e) == financial]
    return [enrollment_response(e, repo.cuota_ids(e.id), catalog.get(e.plan_code).currency) for e in enrollments]


@router.get("/enrollments/migrations", response_model=List[EnrollmentResponse])
def list_migrations(db: Session = Depends(get_db)):
    """Enrollments moved to their contingency plan, for audit"""
    catalog = PlanRepository(db).load_catalog()
    repo = EnrollmentRepository(db)
    return [
        enrollment_response(e, repo.cuota_ids(e.id), catalog.get(e.plan_code).currency)
        for e in repo.list_all(status=EnrollmentStatus.MIGRATED_TO_PLAN_B)
    ]


@router.post("/enrollments/{enrollment_id}/migrate", response_model=EnrollmentResponse)
def migrate_enrollment(
    enrollment_id: str,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """Move an enrollment to its plan's contingency plan regardless of the control rules"""
    catalog = PlanRepository(db).load_catalog()
    repo = EnrollmentRepository(db)
    enrollment = repo.get(enrollment_id)
    plan = catalog.get(enrollment.plan_code)
    destination = catalog.destination_of(plan.code)

    migrated = migrate(refresh_states(enrollment, today), plan, destination, today)
    if migrated is not enrollment:
        migrated = refresh_states(migrated, today)
        migrated = repo.save(migrated)
        db.commit()
        if enrollment.status != migrated.status:
            record_migration(None)
            log_migration(enrollment.id, plan.code, migrated.plan_code, None, 0, 0)
    return enrollment_response(migrated, repo.cuota_ids(migrated.id), catalog.get(migrated.plan_code).currency)


@router.get("/summary", response_model=FinancialSummaryResponse)
def get_financial_summary(db: Session = Depends(get_db)):
    """Treasury totals: collected, pending and delinquency rate"""
    summary = financial_summary(EnrollmentRepository(db).list_all(), settings.default_currency)
    return FinancialSummaryResponse(
        total_collected_minor=summary.total_collected.minor,
        total_pending_minor=summary.total_pending.minor,
        currency=summary.total_collected.currency,
        delinquency_rate=summary.delinquency_rate,
        active_enrollments=summary.active_enrollments,
        total_enrollments=summary.total_enrollments,
    )


@router.post("/reevaluate", response_model=ReevaluationResponse)
def run_reevaluation(
    body: ReevaluationRequest,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """
    Recurring pass over every open enrollment (meant to be triggered by a scheduler).

    Each enrollment runs in its own savepoint: one failing enrollment is
    logged and counted, and the pass moves on. Safe to repeat; a retry
    only applies what is still pending.
    """
    start_time = time.time()
    as_of = body.as_of or today
    catalog = PlanRepository(db).load_catalog()
    repo = EnrollmentRepository(db)

    evaluated = changed = migrated = failed = 0
    for enrollment_id in repo.list_ids([EnrollmentStatus.ACTIVE, EnrollmentStatus.MIGRATED_TO_PLAN_B]):
        evaluated += 1
        savepoint = db.begin_nested()
        try:
            result = reevaluate_and_save(repo, catalog, repo.get(enrollment_id), as_of)
            savepoint.commit()
        except Exception as e:
            savepoint.rollback()
            failed += 1
            reevaluation_failures_counter.inc()
            logging.exception(f"Re-evaluation failed: {e}", extra={"enrollment_id": enrollment_id})
            continue
        changed += int(result.changed)
        migrated += int(result.migrated)

    db.commit()
    duration_ms = (time.time() - start_time) * 1000
    log_reevaluation(as_of.isoformat(), evaluated, changed, migrated, failed, duration_ms)
    return ReevaluationResponse(as_of=as_of, evaluated=evaluated, changed=changed, migrated=migrated, failed=failed)


@router.get("/withdrawals", response_model=List[WithdrawalResponse])
def list_withdrawals(state: Optional[WithdrawalState] = None, db: Session = Depends(get_db)):
    return [withdrawal_response(row) for row in WithdrawalRepository(db).list(state)]


@router.get("/withdrawals/pending/count", response_model=PendingCountResponse)
def count_pending_withdrawals(db: Session = Depends(get_db)):
    return PendingCountResponse(pending=WithdrawalRepository(db).count_pending())


@router.post("/withdrawals/{withdrawal_id}/approve", response_model=WithdrawalResponse)
def approve_withdrawal(withdrawal_id: str, body: WithdrawalDecisionRequest, db: Session = Depends(get_db)):
    repo = WithdrawalRepository(db)
    approved = refund.approve(repo.to_domain(repo.get(withdrawal_id)), body.note)
    row = repo.save(withdrawal_id, approved)
    db.commit()
    return withdrawal_response(row)


@router.post("/withdrawals/{withdrawal_id}/reject", response_model=WithdrawalResponse)
def reject_withdrawal(withdrawal_id: str, body: WithdrawalRejectionRequest, db: Session = Depends(get_db)):
    repo = WithdrawalRepository(db)
    rejected = refund.reject(repo.to_domain(repo.get(withdrawal_id)), body.note)
    row = repo.save(withdrawal_id, rejected)
    db.commit()
    return withdrawal_response(row)


@router.post("/withdrawals/{withdrawal_id}/process", response_model=WithdrawalResponse)
def process_withdrawal(
    withdrawal_id: str,
    body: WithdrawalProcessRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    disbursement_client: DisbursementClient = Depends(get_disbursement_client),
):
    """Mark an approved refund as processed and hand it to the disbursement service"""
    repo = WithdrawalRepository(db)
    processed = refund.process(repo.to_domain(repo.get(withdrawal_id)), body.payment_reference)
    row = repo.save(withdrawal_id, processed)
    db.commit()

    if row.refund_minor > 0:
        background_tasks.add_task(
            disbursement_client.send_refund_event,
            {
                "event": "REFUND_APPROVED",
                "withdrawal_id": str(row.id),
                "enrollment_id": str(row.enrollment_id),
                "participant_id": row.participant_id,
                "refund_minor": row.refund_minor,
                "currency": row.currency,
                "payment_reference": row.payment_reference,
            },
        )
    return withdrawal_response(row)
