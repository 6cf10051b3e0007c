"""Integration tests for concurrent writers on one enrollment"""

import uuid
import pytest
from dataclasses import replace
from datetime import date
from types import SimpleNamespace
from fastapi.testclient import TestClient
from cuotas_gateway.api.v1.payments import confirm_payment_intent
from cuotas_gateway.api.v1.schemas import PaymentConfirmationRequest
from cuotas_gateway.domain.exceptions import ConflictError
from cuotas_gateway.domain.lifecycle import enroll
from cuotas_gateway.domain.models import EnrollmentStatus
from cuotas_gateway.infrastructure.database.models import PaymentIntentRecord
from cuotas_gateway.infrastructure.database.repositories import EnrollmentRepository, PlanRepository


def stored_enrollment(db, plan_a, plan_b) -> str:
    plans = PlanRepository(db)
    plans.add(plan_b)
    plans.add(plan_a)
    enrollment = EnrollmentRepository(db).add(enroll(str(uuid.uuid4()), "camper-1", plan_a, 3))
    db.commit()
    return enrollment.id


def test_saved_copy_carries_new_version(db, plan_a, plan_b):
    enrollment_id = stored_enrollment(db, plan_a, plan_b)
    repo = EnrollmentRepository(db)

    original = repo.get(enrollment_id)
    saved = repo.save(replace(original, installment_count=9))
    assert saved.version == original.version + 1

    # Saving again through the returned copy is fine; the copy read before is stale
    repo.save(replace(saved, installment_count=8))
    with pytest.raises(ConflictError):
        repo.save(original)


def test_second_writer_with_stale_copy_conflicts(db, session_factory, plan_a, plan_b):
    """A cancellation committed first is not overwritten by a plan swap read before it"""
    enrollment_id = stored_enrollment(db, plan_a, plan_b)
    first, second = session_factory(), session_factory()
    try:
        mine = EnrollmentRepository(first).get(enrollment_id)
        theirs = EnrollmentRepository(second).get(enrollment_id)

        EnrollmentRepository(first).save(replace(mine, status=EnrollmentStatus.CANCELLED))
        first.commit()

        swapped = replace(theirs, plan_code=plan_b.code, status=EnrollmentStatus.MIGRATED_TO_PLAN_B)
        with pytest.raises(ConflictError):
            EnrollmentRepository(second).save(swapped)
        second.rollback()
    finally:
        first.close()
        second.close()

    db.expire_all()
    stored = EnrollmentRepository(db).get(enrollment_id)
    assert stored.status == EnrollmentStatus.CANCELLED
    assert stored.plan_code == plan_a.code


@pytest.mark.integration
def test_confirmation_losing_a_race_is_acknowledged(client: TestClient, session_factory, plan_request):
    """A confirmation that read the intent as PENDING before another one settled it"""
    assert client.post("/v1/admin/plans", json=plan_request).status_code == 201
    enrollment = client.post(
        "/v1/enrollments",
        json={"participant_id": "camper-1", "plan_code": "CAMP-2026-A", "admission_month": "MARCH"},
    ).json()
    intent = client.post(
        "/v1/payment-intents",
        json={"enrollment_id": enrollment["enrollment_id"], "cuota_ids": [enrollment["cuotas"][0]["cuota_id"]]},
    ).json()

    late = session_factory()
    try:
        pending = late.get(PaymentIntentRecord, uuid.UUID(intent["intent_id"]))
        assert pending.status == "PENDING"

        assert client.post("/v1/payments/confirmations", json={"intent_id": intent["intent_id"]}).status_code == 200

        response = confirm_payment_intent(
            PaymentConfirmationRequest(intent_id=intent["intent_id"]),
            SimpleNamespace(state=SimpleNamespace(request_id="late-confirmation")),
            db=late,
            today=date(2026, 3, 5),
        )
        assert response.status == "CONFIRMED"
    finally:
        late.close()

    data = client.get(f"/v1/enrollments/{enrollment['enrollment_id']}").json()
    assert data["paid_count"] == 1
    assert data["paid_minor"] == 1000000
