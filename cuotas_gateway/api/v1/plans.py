"""Plan catalog endpoints - public listing and admin management"""

from typing import List, Optional, Tuple
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cuotas_gateway.api.v1.schemas import (
    ContingencyPlanSchema,
    DividedAmountSchema,
    MoneyObjectSchema,
    PlanActiveRequest,
    PlanRequest,
    PlanResponse,
)
from cuotas_gateway.api.v1.workflows import plan_response
from cuotas_gateway.config import settings
from cuotas_gateway.domain.exceptions import ValidationError
from cuotas_gateway.domain.models import (
    DividedAmount,
    FixedInstallment,
    MigrationPolicy,
    PlanDefinition,
    RefundPolicy,
)
from cuotas_gateway.domain.money import MoneyAmount
from cuotas_gateway.domain.months import MonthRange, normalize_month
from cuotas_gateway.infrastructure.database.repositories import PlanRepository
from cuotas_gateway.infrastructure.database.session import get_db

router = APIRouter()


def to_money(value, currency: str) -> MoneyAmount:
    """Normalize either wire representation of an amount to MoneyAmount"""
    if isinstance(value, MoneyObjectSchema):
        value = {"source": value.source, "parsedValue": value.parsed_value}
    return MoneyAmount.parse(value, currency)


def _strategy(schema, currency: str):
    if isinstance(schema, DividedAmountSchema):
        return DividedAmount(schema.min_installments, schema.max_installments)
    return FixedInstallment(to_money(schema.installment_amount, currency))


def plans_from_request(body: PlanRequest) -> Tuple[PlanDefinition, Optional[PlanDefinition]]:
    """
    Build Plan A (and its inline Plan B, when given) from a request.

    Policies are all-or-nothing sub-structures: a migration policy without a
    destination is rejected here, before it can reach the catalog.
    """
    currency = body.currency or settings.default_currency
    enabled_range = MonthRange(normalize_month(body.start_month), normalize_month(body.end_month))
    contingency: Optional[ContingencyPlanSchema] = body.contingency_plan

    migration_policy = None
    if body.migration_policy is not None:
        destination = body.migration_policy.destination_plan_code or (contingency.code if contingency else None)
        if not destination:
            raise ValidationError("Migration policy requires a destination plan")
        migration_policy = MigrationPolicy(
            destination_plan_code=destination,
            control_start_month=normalize_month(body.migration_policy.control_start_month),
            minimum_paid_before_control=body.migration_policy.minimum_paid_before_control,
            tolerated_arrears_months=body.migration_policy.tolerated_arrears_months,
        )
    elif contingency is not None:
        raise ValidationError("A contingency plan requires migration rules")

    refund_policy = None
    if body.refund_policy is not None:
        refund_policy = RefundPolicy(
            full_refund_cutoff_month=normalize_month(body.refund_policy.full_refund_cutoff_month),
            half_refund_cutoff_month=normalize_month(body.refund_policy.half_refund_cutoff_month),
        )

    plan_a = PlanDefinition(
        code=body.code,
        name=body.name,
        fiscal_year=body.fiscal_year,
        audience=body.audience,
        total=to_money(body.total_amount, currency),
        strategy=_strategy(body.strategy, currency),
        due_day=body.due_day,
        enabled_range=enabled_range,
        active=body.active,
        migration_policy=migration_policy,
        refund_policy=refund_policy,
        enrollment_cutoff_month=(
            normalize_month(body.enrollment_cutoff_month) if body.enrollment_cutoff_month is not None else None
        ),
    )

    plan_b = None
    if contingency is not None:
        plan_b = PlanDefinition(
            code=contingency.code,
            name=contingency.name,
            fiscal_year=body.fiscal_year,
            audience=body.audience,
            total=to_money(contingency.total_amount, currency),
            strategy=_strategy(contingency.strategy, currency) if contingency.strategy else plan_a.strategy,
            due_day=body.due_day,
            enabled_range=enabled_range,
            active=body.active,
            refund_policy=refund_policy,
        )
    return plan_a, plan_b


@router.get("/plans", response_model=List[PlanResponse])
def list_active_plans(db: Session = Depends(get_db)):
    """Plans open for enrollment"""
    catalog = PlanRepository(db).load_catalog()
    return [plan_response(plan) for plan in catalog.list_active()]


@router.get("/plans/{code}", response_model=PlanResponse)
def get_plan(code: str, db: Session = Depends(get_db)):
    return plan_response(PlanRepository(db).get(code))


@router.get("/admin/plans", response_model=List[PlanResponse])
def list_all_plans(db: Session = Depends(get_db)):
    """Every plan, active or not"""
    catalog = PlanRepository(db).load_catalog()
    return [plan_response(plan) for plan in catalog.list_all()]


@router.post("/admin/plans", response_model=PlanResponse, status_code=201)
def create_plan(body: PlanRequest, db: Session = Depends(get_db)):
    """
    Create a plan definition.

    With `contingency_plan`, Plan B is created in the same request and
    Plan A's migration policy points at it.
    """
    plan_repo = PlanRepository(db)
    catalog = plan_repo.load_catalog()
    plan_a, plan_b = plans_from_request(body)

    if plan_b is not None:
        catalog.create_with_contingency(plan_a, plan_b)
        plan_repo.add(plan_b)
    else:
        catalog.create(plan_a)
    plan_repo.add(plan_a)

    db.commit()
    return plan_response(plan_a)


@router.put("/admin/plans/{code}", response_model=PlanResponse)
def update_plan(code: str, body: PlanRequest, db: Session = Depends(get_db)):
    """Replace a plan definition; rejected once any enrollment references the plan"""
    if body.code != code:
        raise ValidationError(f"Plan code {body.code} does not match {code}")
    if body.contingency_plan is not None:
        raise ValidationError("Contingency plans can only be created together with a new plan")

    plan_repo = PlanRepository(db)
    catalog = plan_repo.load_catalog()
    plan, _ = plans_from_request(body)
    catalog.update(plan)
    plan_repo.save(plan)

    db.commit()
    return plan_response(plan)


@router.patch("/admin/plans/{code}/active", response_model=PlanResponse)
def set_plan_active(code: str, body: PlanActiveRequest, db: Session = Depends(get_db)):
    plan_repo = PlanRepository(db)
    plan = plan_repo.load_catalog().set_active(code, body.active)
    plan_repo.save(plan)

    db.commit()
    return plan_response(plan)
