"""Unit tests for enrollment creation and the re-evaluation pass"""

import pytest
from dataclasses import replace
from datetime import date
from cuotas_gateway.domain.exceptions import ValidationError
from cuotas_gateway.domain.lifecycle import enroll, reevaluate
from cuotas_gateway.domain.models import CuotaState, EnrollmentStatus


def test_enroll_defaults_to_max_installments(plan_a):
    enrollment = enroll("e-1", "camper-1", plan_a, "MARCH")

    assert enrollment.installment_count == 10
    assert enrollment.admission_month == 3
    assert enrollment.original_plan_code == plan_a.code
    assert enrollment.status == EnrollmentStatus.ACTIVE


def test_enroll_in_inactive_plan(plan_a):
    with pytest.raises(ValidationError):
        enroll("e-1", "camper-1", replace(plan_a, active=False), 3)


def test_enroll_requires_participant(plan_a):
    with pytest.raises(ValidationError):
        enroll("e-1", "", plan_a, 3)


def test_reevaluate_refreshes_states(plan_a, plan_b):
    enrollment = enroll("e-1", "camper-1", plan_a, 3)
    result = reevaluate(enrollment, plan_a, plan_b, date(2026, 4, 12))

    assert result.changed is True
    assert result.migrated is False
    assert result.enrollment.cuotas[0].state == CuotaState.OVERDUE
    assert result.enrollment.cuotas[1].state == CuotaState.OVERDUE
    assert result.enrollment.cuotas[2].state == CuotaState.PLANNED


def test_reevaluate_migrates_and_refreshes_continuation(plan_a, plan_b):
    enrollment = enroll("e-1", "camper-1", plan_a, 3)
    result = reevaluate(enrollment, plan_a, plan_b, date(2026, 8, 5))

    assert result.migrated is True
    migrated = result.enrollment
    assert migrated.status == EnrollmentStatus.MIGRATED_TO_PLAN_B
    # March-July overdue stay; the August Plan B installment is already open
    august = next(c for c in migrated.cuotas if c.plan_code == plan_b.code)
    assert august.due_date == date(2026, 8, 10)
    assert august.state == CuotaState.ENABLED


def test_reevaluate_is_idempotent(plan_a, plan_b):
    enrollment = enroll("e-1", "camper-1", plan_a, 3)
    as_of = date(2026, 8, 5)
    first = reevaluate(enrollment, plan_a, plan_b, as_of)
    second = reevaluate(first.enrollment, plan_b, None, as_of)

    assert second.changed is False
    assert second.migrated is False
    assert second.enrollment == first.enrollment


def test_reevaluate_skips_cancelled(plan_a, plan_b):
    cancelled = replace(enroll("e-1", "camper-1", plan_a, 3), status=EnrollmentStatus.CANCELLED)
    result = reevaluate(cancelled, plan_a, plan_b, date(2026, 9, 1))

    assert result.changed is False
    assert result.enrollment is cancelled
