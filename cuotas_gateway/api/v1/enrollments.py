"""Enrollment endpoints - enroll, inspect installments, request withdrawal"""

import uuid
from datetime import date
from typing import List
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from cuotas_gateway.api.dependencies import get_request_id, get_today
from cuotas_gateway.api.v1.schemas import (
    CuotaSchema,
    EnrollmentRequest,
    EnrollmentResponse,
    WithdrawalRequestBody,
    WithdrawalResponse,
)
from cuotas_gateway.api.v1.workflows import (
    cuota_schema,
    enrollment_response,
    reevaluate_and_save,
    withdrawal_response,
)
from cuotas_gateway.domain.lifecycle import enroll
from cuotas_gateway.domain.models import CuotaState
from cuotas_gateway.domain.refund import request_withdrawal
from cuotas_gateway.infrastructure.database.repositories import (
    EnrollmentRepository,
    PlanRepository,
    WithdrawalRepository,
)
from cuotas_gateway.infrastructure.database.session import get_db
from cuotas_gateway.infrastructure.observability.logging import log_enrollment_created, log_withdrawal
from cuotas_gateway.infrastructure.observability.metrics import enrollment_counter, record_withdrawal

router = APIRouter()


@router.post("/enrollments", response_model=EnrollmentResponse, status_code=201)
def create_enrollment(
    body: EnrollmentRequest,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """
    Enroll a participant in a plan.

    Flow:
    1. Validate the requested installment count against the plan
    2. Generate the schedule (late admission starts with overdue installments)
    3. Persist, then bring installment states up to date as of today
    """
    request_id = get_request_id(request)
    catalog = PlanRepository(db).load_catalog()
    plan = catalog.get(body.plan_code)

    enrollment = enroll(
        enrollment_id=str(uuid.uuid4()),
        participant_id=body.participant_id,
        plan=plan,
        admission_month=body.admission_month,
        installment_count=body.installment_count,
    )

    repo = EnrollmentRepository(db)
    enrollment = repo.add(enrollment)
    catalog.mark_referenced(plan.code)
    enrollment = reevaluate_and_save(repo, catalog, enrollment, today).enrollment

    db.commit()

    enrollment_counter.labels(plan_code=plan.code).inc()
    log_enrollment_created(
        request_id,
        enrollment.id,
        enrollment.participant_id,
        plan.code,
        sum(1 for c in enrollment.cuotas if c.state == CuotaState.OVERDUE),
    )
    return enrollment_response(enrollment, repo.cuota_ids(enrollment.id), plan.currency)


@router.get("/enrollments", response_model=List[EnrollmentResponse])
def list_enrollments(
    participant_id: List[str] = Query(..., description="Participant ids (self and dependents)"),
    db: Session = Depends(get_db),
):
    """Enrollments of one or more participants, e.g. a parent and their children"""
    catalog = PlanRepository(db).load_catalog()
    repo = EnrollmentRepository(db)
    return [
        enrollment_response(e, repo.cuota_ids(e.id), catalog.get(e.plan_code).currency)
        for e in repo.list_by_participants(participant_id)
    ]


@router.get("/enrollments/{enrollment_id}", response_model=EnrollmentResponse)
def get_enrollment(enrollment_id: str, db: Session = Depends(get_db)):
    repo = EnrollmentRepository(db)
    enrollment = repo.get(enrollment_id)
    plan = PlanRepository(db).get(enrollment.plan_code)
    return enrollment_response(enrollment, repo.cuota_ids(enrollment.id), plan.currency)


@router.get("/enrollments/{enrollment_id}/cuotas", response_model=List[CuotaSchema])
def get_enrollment_cuotas(enrollment_id: str, db: Session = Depends(get_db)):
    repo = EnrollmentRepository(db)
    enrollment = repo.get(enrollment_id)
    cuota_ids = repo.cuota_ids(enrollment_id)
    return [cuota_schema(cuota, cuota_ids) for cuota in enrollment.cuotas]


@router.post("/enrollments/{enrollment_id}/withdrawal", response_model=WithdrawalResponse, status_code=201)
def create_withdrawal(
    enrollment_id: str,
    body: WithdrawalRequestBody,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """
    Request withdrawal (baja) from an enrollment.

    The refund percentage depends on the month of the request and the plan's
    refund cutoffs; the enrollment is cancelled immediately and treasury
    approves and processes the refund afterwards.
    """
    request_id = get_request_id(request)
    repo = EnrollmentRepository(db)
    enrollment = repo.get(enrollment_id)
    plan = PlanRepository(db).get(enrollment.plan_code)

    requested_month = body.requested_month if body.requested_month is not None else today.month
    withdrawal, cancelled = request_withdrawal(enrollment, plan, requested_month, body.reason)

    repo.save(cancelled)
    row = WithdrawalRepository(db).add(withdrawal, enrollment.participant_id)
    db.commit()

    record_withdrawal(withdrawal.refund_percentage)
    log_withdrawal(request_id, enrollment.id, withdrawal.refund_percentage, withdrawal.refund_amount.minor)
    return withdrawal_response(row)
