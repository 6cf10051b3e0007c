"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from typing import Annotated, List, Literal, Optional, Union

from cuotas_gateway.domain.models import (
    Audience,
    CuotaState,
    EnrollmentStatus,
    FinancialStatus,
    PaymentMethod,
    WithdrawalState,
)


class MoneyObjectSchema(BaseModel):
    """Tagged money representation: {"source": "ARS 1200.00", "parsedValue": 1200.0}"""

    model_config = ConfigDict(populate_by_name=True)

    source: Optional[str] = None
    parsed_value: float = Field(..., alias="parsedValue")


# Amounts arrive in major units, as a plain number or the tagged object
MoneyInput = Union[int, float, str, MoneyObjectSchema]
# Months arrive as 1-12 or English month names
MonthInput = Union[int, str]


# ============================================
# Plans
# ============================================


class FixedInstallmentSchema(BaseModel):
    kind: Literal["FIXED_INSTALLMENT"] = "FIXED_INSTALLMENT"
    installment_amount: MoneyInput


class DividedAmountSchema(BaseModel):
    kind: Literal["DIVIDED_AMOUNT"] = "DIVIDED_AMOUNT"
    min_installments: int = Field(..., ge=1)
    max_installments: int = Field(..., ge=1)


StrategySchema = Annotated[Union[FixedInstallmentSchema, DividedAmountSchema], Field(discriminator="kind")]


class MigrationPolicySchema(BaseModel):
    """Plan A -> Plan B control rules; destination defaults to the inline contingency plan"""

    destination_plan_code: Optional[str] = None
    control_start_month: MonthInput
    minimum_paid_before_control: int = Field(..., ge=1)
    tolerated_arrears_months: int = Field(2, ge=1)


class RefundPolicySchema(BaseModel):
    full_refund_cutoff_month: MonthInput
    half_refund_cutoff_month: MonthInput


class ContingencyPlanSchema(BaseModel):
    """Plan B created together with Plan A; inherits Plan A's calendar"""

    code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=3)
    total_amount: MoneyInput
    strategy: Optional[StrategySchema] = None


class PlanRequest(BaseModel):
    """Request body for POST/PUT /v1/admin/plans"""

    code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=3)
    fiscal_year: int = Field(..., ge=2020)
    audience: Audience = Audience.CAMPER
    total_amount: MoneyInput
    currency: Optional[str] = None
    strategy: StrategySchema
    due_day: int = Field(10, ge=1, le=31)
    start_month: MonthInput
    end_month: MonthInput
    active: bool = True
    enrollment_cutoff_month: Optional[MonthInput] = None
    migration_policy: Optional[MigrationPolicySchema] = None
    refund_policy: Optional[RefundPolicySchema] = None
    contingency_plan: Optional[ContingencyPlanSchema] = None


class PlanActiveRequest(BaseModel):
    active: bool


class PlanResponse(BaseModel):
    code: str
    name: str
    fiscal_year: int
    audience: Audience
    total_minor: int
    currency: str
    strategy: str
    fixed_installment_minor: Optional[int] = None
    min_installments: Optional[int] = None
    max_installments: Optional[int] = None
    due_day: int
    start_month: int
    end_month: int
    span_months: int
    active: bool
    enrollment_cutoff_month: Optional[int] = None
    destination_plan_code: Optional[str] = None
    control_start_month: Optional[int] = None
    minimum_paid_before_control: Optional[int] = None
    tolerated_arrears_months: Optional[int] = None
    full_refund_cutoff_month: Optional[int] = None
    half_refund_cutoff_month: Optional[int] = None


# ============================================
# Enrollments and installments
# ============================================


class EnrollmentRequest(BaseModel):
    """Request body for POST /v1/enrollments"""

    participant_id: str = Field(..., min_length=1, description="Participant identifier")
    plan_code: str = Field(..., min_length=1)
    admission_month: MonthInput
    installment_count: Optional[int] = Field(None, ge=1)


class CuotaSchema(BaseModel):
    """Single installment in an enrollment's schedule"""

    cuota_id: str
    sequence: int
    plan_code: str
    due_date: date
    amount_minor: int
    currency: str
    state: CuotaState
    payable: bool
    paid_on: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    note: Optional[str] = None


class EnrollmentResponse(BaseModel):
    enrollment_id: str
    participant_id: str
    plan_code: str
    original_plan_code: str
    admission_month: int
    installment_count: int
    status: EnrollmentStatus
    financial_status: FinancialStatus
    migrated_on: Optional[date] = None
    currency: str
    paid_count: int
    pending_count: int
    overdue_count: int
    total_count: int
    paid_minor: int
    remaining_minor: int
    total_minor: int
    next_due_date: Optional[date] = None
    cuotas: List[CuotaSchema]


# ============================================
# Payments
# ============================================


class PaymentIntentRequest(BaseModel):
    enrollment_id: str
    cuota_ids: List[str] = Field(..., min_length=1)
    method: PaymentMethod = PaymentMethod.MERCADOPAGO


class PaymentIntentResponse(BaseModel):
    intent_id: str
    enrollment_id: str
    cuota_ids: List[str]
    amount_minor: int
    currency: str
    method: PaymentMethod
    status: str
    preference_id: Optional[str] = None
    redirect_url: Optional[str] = None


class PaymentConfirmationRequest(BaseModel):
    """Gateway "paid" event for a payment intent"""

    intent_id: str
    paid_on: Optional[date] = None


class ManualPaymentRequest(BaseModel):
    cuota_id: str
    method: PaymentMethod = PaymentMethod.CASH
    note: Optional[str] = None
    paid_on: Optional[date] = None


class RegularizationRequest(BaseModel):
    method: PaymentMethod = PaymentMethod.CASH
    note: Optional[str] = None
    paid_on: Optional[date] = None


# ============================================
# Withdrawals
# ============================================


class WithdrawalRequestBody(BaseModel):
    reason: Optional[str] = None
    requested_month: Optional[MonthInput] = None


class WithdrawalDecisionRequest(BaseModel):
    note: Optional[str] = None


class WithdrawalRejectionRequest(BaseModel):
    note: str = Field(..., min_length=1)


class WithdrawalProcessRequest(BaseModel):
    payment_reference: Optional[str] = None


class WithdrawalResponse(BaseModel):
    withdrawal_id: str
    enrollment_id: str
    participant_id: str
    plan_code: str
    requested_month: int
    refund_percentage: int
    paid_minor: int
    refund_minor: int
    currency: str
    state: WithdrawalState
    reason: Optional[str] = None
    treasurer_note: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: Optional[str] = None
    processed_at: Optional[str] = None


class PendingCountResponse(BaseModel):
    pending: int


# ============================================
# Treasury
# ============================================


class FinancialSummaryResponse(BaseModel):
    total_collected_minor: int
    total_pending_minor: int
    currency: str
    delinquency_rate: float
    active_enrollments: int
    total_enrollments: int


class ReevaluationRequest(BaseModel):
    as_of: Optional[date] = None


class ReevaluationResponse(BaseModel):
    as_of: date
    evaluated: int
    changed: int
    migrated: int
    failed: int


class ErrorResponse(BaseModel):
    error: str
    detail: str
    problems: List[str] = []
