"""Payment endpoints - payment intents and gateway confirmations"""

import logging
from dataclasses import replace
from datetime import date
from typing import Dict, List, Tuple
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cuotas_gateway.api.dependencies import get_payment_gateway_client, get_request_id, get_today
from cuotas_gateway.api.v1.schemas import (
    PaymentConfirmationRequest,
    PaymentIntentRequest,
    PaymentIntentResponse,
)
from cuotas_gateway.api.v1.workflows import reevaluate_and_save
from cuotas_gateway.domain.exceptions import ConflictError, NotFoundError, PaymentGatewayError, ValidationError
from cuotas_gateway.domain.lifecycle import refresh_states
from cuotas_gateway.domain.models import Cuota, CuotaState, Enrollment, EnrollmentStatus, PaymentMethod
from cuotas_gateway.domain.money import total_of
from cuotas_gateway.domain.state_machine import Actor, can_transition, confirm_payment
from cuotas_gateway.infrastructure.clients.payment_gateway import PaymentGatewayClient
from cuotas_gateway.infrastructure.database.models import PaymentIntentRecord
from cuotas_gateway.infrastructure.database.repositories import (
    EnrollmentRepository,
    PaymentIntentRepository,
    PlanRepository,
)
from cuotas_gateway.infrastructure.database.session import get_db
from cuotas_gateway.infrastructure.observability.logging import log_payment
from cuotas_gateway.infrastructure.observability.metrics import payment_gateway_failures_counter, record_payment

router = APIRouter()

INTENT_CONFIRMED = "CONFIRMED"


def _sequences(repo: EnrollmentRepository, enrollment: Enrollment, cuota_ids: List[str]) -> List[int]:
    """Map installment ids of an enrollment to their sequence numbers"""
    duplicated = sorted({cuota_id for cuota_id in cuota_ids if cuota_ids.count(cuota_id) > 1})
    if duplicated:
        raise ValidationError(f"Installments listed more than once: {duplicated}")
    by_id: Dict[str, int] = {cuota_id: seq for seq, cuota_id in repo.cuota_ids(enrollment.id).items()}
    sequences = []
    for cuota_id in cuota_ids:
        if cuota_id not in by_id:
            raise NotFoundError(f"Installment {cuota_id} does not belong to enrollment {enrollment.id}")
        sequences.append(by_id[cuota_id])
    return sequences


def _intent_response(row: PaymentIntentRecord) -> PaymentIntentResponse:
    return PaymentIntentResponse(
        intent_id=str(row.id),
        enrollment_id=str(row.enrollment_id),
        cuota_ids=row.cuota_ids,
        amount_minor=row.amount_minor,
        currency=row.currency,
        method=row.method,
        status=row.status,
        preference_id=row.preference_id,
        redirect_url=row.redirect_url,
    )


@router.post("/payment-intents", response_model=PaymentIntentResponse, status_code=201)
async def create_payment_intent(
    body: PaymentIntentRequest,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    gateway: PaymentGatewayClient = Depends(get_payment_gateway_client),
):
    """
    Create a payment intent for installments open for payment.

    Only ENABLED installments can be included: the confirmation settles
    them ENABLED -> PAID, so coming (PLANNED) months wait for their due month.
    For gateway payments the response carries the opaque redirect to the checkout.
    """
    request_id = get_request_id(request)
    catalog = PlanRepository(db).load_catalog()
    repo = EnrollmentRepository(db)
    enrollment = repo.get(body.enrollment_id)
    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise ConflictError(f"Enrollment {enrollment.id} is cancelled")

    enrollment = reevaluate_and_save(repo, catalog, enrollment, today).enrollment
    cuotas = [enrollment.cuota(seq) for seq in _sequences(repo, enrollment, body.cuota_ids)]
    not_open = [c.sequence for c in cuotas if not can_transition(c.state, CuotaState.PAID, Actor.PAYMENT_GATEWAY)]
    if not_open:
        raise ConflictError(
            f"Installments {not_open} are not open for payment; only installments of the current due month can be paid"
        )

    currency = catalog.get(enrollment.plan_code).currency
    amount = total_of((c.amount for c in cuotas), currency)
    intent = PaymentIntentRepository(db).create(enrollment.id, body.cuota_ids, amount, body.method)

    if body.method == PaymentMethod.MERCADOPAGO:
        try:
            preference = await gateway.create_preference(
                str(intent.id),
                [
                    {
                        "id": str(c.sequence),
                        "title": f"Cuota {c.sequence} - {c.plan_code}",
                        "quantity": 1,
                        "unit_price": float(c.amount.to_major()),
                    }
                    for c in cuotas
                ],
                currency,
            )
        except PaymentGatewayError as e:
            payment_gateway_failures_counter.inc()
            db.rollback()
            logging.error(f"Payment gateway error: {e}", extra={"request_id": request_id})
            raise
        intent.preference_id = preference.preference_id
        intent.redirect_url = preference.redirect_url

    db.commit()
    return _intent_response(intent)


def _settle_intent(db: Session, intent: PaymentIntentRecord, paid_on: date, today: date) -> Tuple[str, Dict[int, Cuota]]:
    """Mark every installment of a pending intent PAID and the intent CONFIRMED (not committed)"""
    catalog = PlanRepository(db).load_catalog()
    repo = EnrollmentRepository(db)
    enrollment = repo.get(str(intent.enrollment_id))
    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise ConflictError(
            f"Enrollment {enrollment.id} is cancelled; payment intent {intent.id} must be refunded by treasury"
        )

    # States as of the payment day: a payment made on the due date is on time
    enrollment = refresh_states(enrollment, paid_on)
    sequences = _sequences(repo, enrollment, intent.cuota_ids)
    settled = {seq: confirm_payment(enrollment.cuota(seq), paid_on, PaymentMethod(intent.method)) for seq in sequences}
    enrollment = repo.save(replace(enrollment, cuotas=[settled.get(c.sequence, c) for c in enrollment.cuotas]))

    reevaluate_and_save(repo, catalog, enrollment, today)
    intent.status = INTENT_CONFIRMED
    return enrollment.id, settled


@router.post("/payments/confirmations", response_model=PaymentIntentResponse)
def confirm_payment_intent(
    body: PaymentConfirmationRequest,
    request: Request,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """
    Gateway "paid" event: settle every installment of the intent.

    Repeated confirmations of the same intent are acknowledged without
    paying twice, including one that loses a race against another
    confirmation of the same intent.

    Raises:
        ConflictError: Enrollment cancelled since the intent was created,
            or an installment is no longer open for payment
    """
    request_id = get_request_id(request)
    intents = PaymentIntentRepository(db)
    intent = intents.get(body.intent_id)
    if intent.status == INTENT_CONFIRMED:
        return _intent_response(intent)

    try:
        enrollment_id, settled = _settle_intent(db, intent, body.paid_on or today, today)
        db.commit()
    except ConflictError as e:
        db.rollback()
        intent = intents.get(body.intent_id)
        if intent.status == INTENT_CONFIRMED:
            return _intent_response(intent)
        logging.warning(f"Payment confirmation rejected: {e}", extra={"request_id": request_id})
        raise

    for seq, cuota in settled.items():
        record_payment("gateway")
        log_payment(request_id, enrollment_id, seq, "gateway", cuota.state.value)
    return _intent_response(intent)
