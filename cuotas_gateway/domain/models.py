"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional, Union

from cuotas_gateway.domain.exceptions import NotFoundError, ValidationError
from cuotas_gateway.domain.money import MoneyAmount, fixed_installment_count
from cuotas_gateway.domain.months import MonthRange


class Audience(str, Enum):
    """Participant category a plan targets"""

    CAMPER = "CAMPER"
    GROUP_LEADER = "GROUP_LEADER"
    SUPPORT_STAFF = "SUPPORT_STAFF"


class CuotaState(str, Enum):
    PLANNED = "PLANNED"
    ENABLED = "ENABLED"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    REGULARIZED = "REGULARIZED"


class EnrollmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    MIGRATED_TO_PLAN_B = "MIGRATED_TO_PLAN_B"
    CANCELLED = "CANCELLED"


class FinancialStatus(str, Enum):
    """Derived from installment states, never stored"""

    CURRENT = "CURRENT"
    DELINQUENT = "DELINQUENT"
    MIGRATED = "MIGRATED"


class WithdrawalState(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PROCESSED = "PROCESSED"
    REJECTED = "REJECTED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    TRANSFER = "TRANSFER"
    MERCADOPAGO = "MERCADOPAGO"


@dataclass(frozen=True)
class FixedInstallment:
    """Fixed per-period amount; installment count derived from the total"""

    installment_amount: MoneyAmount

    kind = "FIXED_INSTALLMENT"


@dataclass(frozen=True)
class DividedAmount:
    """Total divided into a participant-chosen count between min and max"""

    min_installments: int
    max_installments: int

    kind = "DIVIDED_AMOUNT"


PlanStrategy = Union[FixedInstallment, DividedAmount]


@dataclass(frozen=True)
class MigrationPolicy:
    """Plan A -> Plan B control rules; all fields required when the policy exists"""

    destination_plan_code: str
    control_start_month: int
    minimum_paid_before_control: int
    tolerated_arrears_months: int


@dataclass(frozen=True)
class RefundPolicy:
    """Withdrawal refund tiers: 100% up to the first cutoff, 50% up to the second, then 0%"""

    full_refund_cutoff_month: int
    half_refund_cutoff_month: int


@dataclass(frozen=True)
class PlanDefinition:
    """Payment plan; immutable once an enrollment references it"""

    code: str
    name: str
    fiscal_year: int
    audience: Audience
    total: MoneyAmount
    strategy: PlanStrategy
    due_day: int
    enabled_range: MonthRange
    active: bool = True
    migration_policy: Optional[MigrationPolicy] = None
    refund_policy: Optional[RefundPolicy] = None
    enrollment_cutoff_month: Optional[int] = None

    @property
    def destination_plan_code(self) -> Optional[str]:
        return self.migration_policy.destination_plan_code if self.migration_policy else None

    @property
    def currency(self) -> str:
        return self.total.currency

    def installment_count(self, requested: Optional[int] = None) -> int:
        """
        Resolve the number of installments for an enrollment.

        DividedAmount: requested count bounded by min/max (defaults to max).
        FixedInstallment: derived from the total; a requested count must match.
        """
        if isinstance(self.strategy, DividedAmount):
            if requested is None:
                return self.strategy.max_installments
            if not self.strategy.min_installments <= requested <= self.strategy.max_installments:
                raise ValidationError(
                    f"Installment count {requested} outside plan {self.code} bounds "
                    f"{self.strategy.min_installments}-{self.strategy.max_installments}"
                )
            return requested

        count = fixed_installment_count(self.total, self.strategy.installment_amount)
        if requested is not None and requested != count:
            raise ValidationError(
                f"Plan {self.code} uses fixed installments: count is {count}, got {requested}"
            )
        return count


@dataclass
class Cuota:
    """Single installment within an enrollment's schedule"""

    sequence: int
    due_date: date
    amount: MoneyAmount
    plan_code: str
    state: CuotaState = CuotaState.PLANNED
    paid_on: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    note: Optional[str] = None


@dataclass
class Enrollment:
    """Binding of one participant to one active plan and its installments"""

    id: str
    participant_id: str
    plan_code: str
    admission_month: int
    installment_count: int
    original_plan_code: Optional[str] = None
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    cuotas: List[Cuota] = field(default_factory=list)
    migrated_on: Optional[date] = None
    # Stored row version this copy was read at; None until first persisted
    version: Optional[int] = None

    def __post_init__(self):
        if self.original_plan_code is None:
            self.original_plan_code = self.plan_code

    def cuota(self, sequence: int) -> Cuota:
        for cuota in self.cuotas:
            if cuota.sequence == sequence:
                return cuota
        raise NotFoundError(f"Enrollment {self.id} has no installment #{sequence}")


@dataclass
class WithdrawalRequest:
    """Withdrawal (baja) with its computed refund; approval is handled by treasury"""

    enrollment_id: str
    plan_code: str
    requested_month: int
    refund_percentage: int
    paid_amount: MoneyAmount
    refund_amount: MoneyAmount
    state: WithdrawalState = WithdrawalState.PENDING
    reason: Optional[str] = None
    treasurer_note: Optional[str] = None
    payment_reference: Optional[str] = None
