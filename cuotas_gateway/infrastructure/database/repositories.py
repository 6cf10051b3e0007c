"""Data access layer - translates ORM rows to domain objects and back"""

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from cuotas_gateway.domain.catalog import PlanCatalog
from cuotas_gateway.domain.exceptions import ConflictError, NotFoundError, ValidationError
from cuotas_gateway.domain.models import (
    Audience,
    Cuota,
    CuotaState,
    DividedAmount,
    Enrollment,
    EnrollmentStatus,
    FixedInstallment,
    MigrationPolicy,
    PaymentMethod,
    PlanDefinition,
    RefundPolicy,
    WithdrawalRequest,
    WithdrawalState,
)
from cuotas_gateway.domain.money import MoneyAmount
from cuotas_gateway.domain.months import MonthRange
from cuotas_gateway.infrastructure.database.models import (
    CuotaRecord,
    EnrollmentRecord,
    PaymentIntentRecord,
    PaymentPlan,
    WithdrawalRecord,
)


def _parse_uuid(value: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(f"Unknown {label}: {value}") from None


def _all_or_none(row: PaymentPlan, columns: List[str], label: str) -> bool:
    values = [getattr(row, column) for column in columns]
    if all(value is None for value in values):
        return False
    if any(value is None for value in values):
        raise ValidationError(f"Plan {row.code} has a partially configured {label} policy")
    return True


def plan_to_domain(row: PaymentPlan) -> PlanDefinition:
    """Build a PlanDefinition from its flattened row"""
    total = MoneyAmount(row.total_minor, row.currency)
    if row.strategy == FixedInstallment.kind:
        strategy = FixedInstallment(MoneyAmount(row.fixed_installment_minor, row.currency))
    else:
        strategy = DividedAmount(row.min_installments, row.max_installments)

    migration_policy = None
    if _all_or_none(
        row,
        ["destination_plan_code", "control_start_month", "minimum_paid_before_control", "tolerated_arrears_months"],
        "migration",
    ):
        migration_policy = MigrationPolicy(
            destination_plan_code=row.destination_plan_code,
            control_start_month=row.control_start_month,
            minimum_paid_before_control=row.minimum_paid_before_control,
            tolerated_arrears_months=row.tolerated_arrears_months,
        )

    refund_policy = None
    if _all_or_none(row, ["full_refund_cutoff_month", "half_refund_cutoff_month"], "refund"):
        refund_policy = RefundPolicy(row.full_refund_cutoff_month, row.half_refund_cutoff_month)

    return PlanDefinition(
        code=row.code,
        name=row.name,
        fiscal_year=row.fiscal_year,
        audience=Audience(row.audience),
        total=total,
        strategy=strategy,
        due_day=row.due_day,
        enabled_range=MonthRange(row.start_month, row.end_month),
        active=row.active,
        migration_policy=migration_policy,
        refund_policy=refund_policy,
        enrollment_cutoff_month=row.enrollment_cutoff_month,
    )


def _write_plan(row: PaymentPlan, plan: PlanDefinition) -> PaymentPlan:
    row.name = plan.name
    row.fiscal_year = plan.fiscal_year
    row.audience = plan.audience.value
    row.currency = plan.currency
    row.total_minor = plan.total.minor
    row.strategy = plan.strategy.kind
    row.fixed_installment_minor = None
    row.min_installments = None
    row.max_installments = None
    if isinstance(plan.strategy, FixedInstallment):
        row.fixed_installment_minor = plan.strategy.installment_amount.minor
    else:
        row.min_installments = plan.strategy.min_installments
        row.max_installments = plan.strategy.max_installments
    row.due_day = plan.due_day
    row.start_month = plan.enabled_range.start
    row.end_month = plan.enabled_range.end
    row.active = plan.active
    row.enrollment_cutoff_month = plan.enrollment_cutoff_month

    migration = plan.migration_policy
    row.destination_plan_code = migration.destination_plan_code if migration else None
    row.control_start_month = migration.control_start_month if migration else None
    row.minimum_paid_before_control = migration.minimum_paid_before_control if migration else None
    row.tolerated_arrears_months = migration.tolerated_arrears_months if migration else None

    refund = plan.refund_policy
    row.full_refund_cutoff_month = refund.full_refund_cutoff_month if refund else None
    row.half_refund_cutoff_month = refund.half_refund_cutoff_month if refund else None
    return row


def cuota_to_domain(row: CuotaRecord) -> Cuota:
    return Cuota(
        sequence=row.sequence,
        due_date=row.due_date,
        amount=MoneyAmount(row.amount_minor, row.currency),
        plan_code=row.plan_code,
        state=CuotaState(row.state),
        paid_on=row.paid_on,
        payment_method=PaymentMethod(row.payment_method) if row.payment_method else None,
        note=row.note,
    )


def _write_cuota(row: CuotaRecord, cuota: Cuota) -> CuotaRecord:
    row.sequence = cuota.sequence
    row.plan_code = cuota.plan_code
    row.due_date = cuota.due_date
    row.amount_minor = cuota.amount.minor
    row.currency = cuota.amount.currency
    row.state = cuota.state.value
    row.paid_on = cuota.paid_on
    row.payment_method = cuota.payment_method.value if cuota.payment_method else None
    row.note = cuota.note
    return row


def enrollment_to_domain(row: EnrollmentRecord) -> Enrollment:
    return Enrollment(
        id=str(row.id),
        participant_id=row.participant_id,
        plan_code=row.plan_code,
        original_plan_code=row.original_plan_code,
        admission_month=row.admission_month,
        installment_count=row.installment_count,
        status=EnrollmentStatus(row.status),
        cuotas=[cuota_to_domain(c) for c in row.cuotas],
        migrated_on=row.migrated_on,
        version=row.version,
    )


class PlanRepository:
    """Repository for plan definitions"""

    def __init__(self, db: Session):
        self.db = db

    def load_catalog(self) -> PlanCatalog:
        """Every plan plus the codes already referenced by enrollments or installments"""
        plans = [plan_to_domain(row) for row in self.db.query(PaymentPlan).all()]
        referenced = set(self.db.scalars(select(EnrollmentRecord.plan_code).distinct()))
        referenced.update(self.db.scalars(select(EnrollmentRecord.original_plan_code).distinct()))
        referenced.update(self.db.scalars(select(CuotaRecord.plan_code).distinct()))
        return PlanCatalog(plans, referenced)

    def get(self, code: str) -> PlanDefinition:
        row = self.db.get(PaymentPlan, code)
        if row is None:
            raise NotFoundError(f"Unknown plan code: {code}")
        return plan_to_domain(row)

    def add(self, plan: PlanDefinition) -> PlanDefinition:
        self.db.add(_write_plan(PaymentPlan(code=plan.code), plan))
        self.db.flush()  # Destination rows must exist before plans linking to them
        return plan

    def save(self, plan: PlanDefinition) -> PlanDefinition:
        row = self.db.get(PaymentPlan, plan.code)
        if row is None:
            raise NotFoundError(f"Unknown plan code: {plan.code}")
        _write_plan(row, plan)
        self.db.flush()
        return plan


class EnrollmentRepository:
    """Repository for enrollments and their installments"""

    def __init__(self, db: Session):
        self.db = db

    def _row(self, enrollment_id: str) -> EnrollmentRecord:
        row = self.db.get(EnrollmentRecord, _parse_uuid(enrollment_id, "enrollment"))
        if row is None:
            raise NotFoundError(f"Unknown enrollment: {enrollment_id}")
        return row

    def add(self, enrollment: Enrollment) -> Enrollment:
        """Insert a new enrollment; the returned copy carries the stored version"""
        row = EnrollmentRecord(id=_parse_uuid(enrollment.id, "enrollment"))
        self._write(row, enrollment)
        self.db.add(row)
        self.db.flush()
        return replace(enrollment, version=row.version)

    def get(self, enrollment_id: str) -> Enrollment:
        return enrollment_to_domain(self._row(enrollment_id))

    def cuota_ids(self, enrollment_id: str) -> Dict[int, str]:
        """Installment ids keyed by sequence number"""
        return {c.sequence: str(c.id) for c in self._row(enrollment_id).cuotas}

    def find_cuota(self, cuota_id: str) -> Tuple[Enrollment, int]:
        """Enrollment owning an installment, plus the installment's sequence"""
        row = self.db.get(CuotaRecord, _parse_uuid(cuota_id, "installment"))
        if row is None:
            raise NotFoundError(f"Unknown installment: {cuota_id}")
        return enrollment_to_domain(row.enrollment), row.sequence

    def list_by_participants(self, participant_ids: Iterable[str]) -> List[Enrollment]:
        rows = (
            self.db.query(EnrollmentRecord)
            .filter(EnrollmentRecord.participant_id.in_(list(participant_ids)))
            .order_by(EnrollmentRecord.created_at, EnrollmentRecord.participant_id)
            .all()
        )
        return [enrollment_to_domain(row) for row in rows]

    def list_all(
        self,
        plan_code: Optional[str] = None,
        status: Optional[EnrollmentStatus] = None,
        query: Optional[str] = None,
    ) -> List[Enrollment]:
        """Admin listing; financial status is derived, so callers filter on it afterwards"""
        statement = self.db.query(EnrollmentRecord)
        if plan_code:
            statement = statement.filter(
                or_(EnrollmentRecord.plan_code == plan_code, EnrollmentRecord.original_plan_code == plan_code)
            )
        if status:
            statement = statement.filter(EnrollmentRecord.status == status.value)
        if query:
            statement = statement.filter(func.lower(EnrollmentRecord.participant_id).contains(query.lower()))
        rows = statement.order_by(EnrollmentRecord.created_at, EnrollmentRecord.participant_id).all()
        return [enrollment_to_domain(row) for row in rows]

    def list_ids(self, statuses: Iterable[EnrollmentStatus]) -> List[str]:
        values = [status.value for status in statuses]
        return [str(i) for i in self.db.scalars(select(EnrollmentRecord.id).where(EnrollmentRecord.status.in_(values)))]

    def save(self, enrollment: Enrollment) -> Enrollment:
        """
        Persist an enrollment aggregate, syncing installments by sequence number.

        The copy must carry the version it was read at. The returned copy
        carries the new version, so callers keep saving through it.

        Raises:
            ConflictError: Another writer updated the enrollment first
        """
        row = self._row(enrollment.id)
        if enrollment.version is None or row.version != enrollment.version:
            raise ConflictError(f"Enrollment {enrollment.id} was modified concurrently; retry")
        try:
            self._write(row, enrollment)
            self.db.flush()
        except StaleDataError as e:
            raise ConflictError(f"Enrollment {enrollment.id} was modified concurrently; retry") from e
        return replace(enrollment, version=row.version)

    def _write(self, row: EnrollmentRecord, enrollment: Enrollment) -> None:
        row.participant_id = enrollment.participant_id
        row.plan_code = enrollment.plan_code
        row.original_plan_code = enrollment.original_plan_code
        row.admission_month = enrollment.admission_month
        row.installment_count = enrollment.installment_count
        row.status = enrollment.status.value
        row.migrated_on = enrollment.migrated_on
        # Touch the row so the version column is checked even when only installments changed
        row.updated_at = datetime.now(timezone.utc)

        existing = {c.sequence: c for c in row.cuotas}
        wanted = {c.sequence: c for c in enrollment.cuotas}

        # Superseded installments get new rows so old ids never point at a different installment
        replaced = set()
        for sequence, cuota_row in existing.items():
            cuota = wanted.get(sequence)
            if cuota is None or cuota_row.plan_code != cuota.plan_code or cuota_row.due_date != cuota.due_date:
                row.cuotas.remove(cuota_row)
                replaced.add(sequence)
        if replaced:
            # Deletes must reach the database before inserts reuse their sequence numbers
            self.db.flush()

        for cuota in enrollment.cuotas:
            cuota_row = existing.get(cuota.sequence)
            if cuota_row is None or cuota.sequence in replaced:
                row.cuotas.append(_write_cuota(CuotaRecord(), cuota))
            else:
                _write_cuota(cuota_row, cuota)


class WithdrawalRepository:
    """Repository for withdrawal requests"""

    def __init__(self, db: Session):
        self.db = db

    def _row(self, withdrawal_id: str) -> WithdrawalRecord:
        row = self.db.get(WithdrawalRecord, _parse_uuid(withdrawal_id, "withdrawal request"))
        if row is None:
            raise NotFoundError(f"Unknown withdrawal request: {withdrawal_id}")
        return row

    def add(self, request: WithdrawalRequest, participant_id: str) -> WithdrawalRecord:
        row = WithdrawalRecord(
            enrollment_id=_parse_uuid(request.enrollment_id, "enrollment"),
            participant_id=participant_id,
            plan_code=request.plan_code,
            requested_month=request.requested_month,
            refund_percentage=request.refund_percentage,
            currency=request.paid_amount.currency,
            paid_minor=request.paid_amount.minor,
            refund_minor=request.refund_amount.minor,
            state=request.state.value,
            reason=request.reason,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get(self, withdrawal_id: str) -> WithdrawalRecord:
        return self._row(withdrawal_id)

    def to_domain(self, row: WithdrawalRecord) -> WithdrawalRequest:
        return WithdrawalRequest(
            enrollment_id=str(row.enrollment_id),
            plan_code=row.plan_code,
            requested_month=row.requested_month,
            refund_percentage=row.refund_percentage,
            paid_amount=MoneyAmount(row.paid_minor, row.currency),
            refund_amount=MoneyAmount(row.refund_minor, row.currency),
            state=WithdrawalState(row.state),
            reason=row.reason,
            treasurer_note=row.treasurer_note,
            payment_reference=row.payment_reference,
        )

    def save(self, withdrawal_id: str, request: WithdrawalRequest) -> WithdrawalRecord:
        row = self._row(withdrawal_id)
        row.state = request.state.value
        row.treasurer_note = request.treasurer_note
        row.payment_reference = request.payment_reference
        if request.state in (WithdrawalState.PROCESSED, WithdrawalState.REJECTED):
            row.processed_at = datetime.now(timezone.utc)
        self.db.flush()
        return row

    def list(self, state: Optional[WithdrawalState] = None) -> List[WithdrawalRecord]:
        statement = self.db.query(WithdrawalRecord)
        if state:
            statement = statement.filter(WithdrawalRecord.state == state.value)
        return statement.order_by(WithdrawalRecord.created_at).all()

    def count_pending(self) -> int:
        return self.db.query(WithdrawalRecord).filter(WithdrawalRecord.state == WithdrawalState.PENDING.value).count()


class PaymentIntentRepository:
    """Repository for payment intents handed to the gateway"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        enrollment_id: str,
        cuota_ids: List[str],
        amount: MoneyAmount,
        method: PaymentMethod,
    ) -> PaymentIntentRecord:
        row = PaymentIntentRecord(
            enrollment_id=_parse_uuid(enrollment_id, "enrollment"),
            cuota_ids=cuota_ids,
            amount_minor=amount.minor,
            currency=amount.currency,
            method=method.value,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get(self, intent_id: str) -> PaymentIntentRecord:
        row = self.db.get(PaymentIntentRecord, _parse_uuid(intent_id, "payment intent"))
        if row is None:
            raise NotFoundError(f"Unknown payment intent: {intent_id}")
        return row
