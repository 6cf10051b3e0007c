"""Plan catalog - holds plan definitions and enforces creation-time invariants"""

from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set

from cuotas_gateway.domain.exceptions import ConflictError, NotFoundError, ValidationError
from cuotas_gateway.domain.models import Audience, DividedAmount, FixedInstallment, PlanDefinition
from cuotas_gateway.domain.money import fixed_installment_count

MIN_FISCAL_YEAR = 2020


def _range_problems(plan: PlanDefinition) -> List[str]:
    problems = []
    span = plan.enabled_range.span()
    strategy = plan.strategy

    if isinstance(strategy, DividedAmount):
        if strategy.min_installments < 1:
            problems.append("min_installments must be at least 1")
        if strategy.max_installments > span:
            problems.append(
                f"max_installments {strategy.max_installments} exceeds the {span} months of the enabled range"
            )
        if strategy.min_installments > strategy.max_installments:
            problems.append("min_installments cannot exceed max_installments")
    elif isinstance(strategy, FixedInstallment):
        amount = strategy.installment_amount
        if amount.currency != plan.total.currency:
            problems.append("fixed installment currency must match the plan total")
        elif not amount.is_positive():
            problems.append("fixed installment amount must be positive")
        elif plan.total.is_positive():
            count = fixed_installment_count(plan.total, amount)
            if count > span:
                problems.append(
                    f"fixed installments need {count} months but the enabled range has {span}"
                )
    else:
        problems.append(f"unknown strategy {strategy!r}")

    return problems


def _policy_problems(plan: PlanDefinition) -> List[str]:
    problems = []
    month_range = plan.enabled_range

    policy = plan.migration_policy
    if policy is not None:
        if not month_range.contains(policy.control_start_month):
            problems.append(f"control_start_month {policy.control_start_month} is outside the enabled range")
        if policy.minimum_paid_before_control < 1:
            problems.append("minimum_paid_before_control must be at least 1")
        if policy.tolerated_arrears_months < 1:
            problems.append("tolerated_arrears_months must be at least 1")
        if policy.destination_plan_code == plan.code:
            problems.append("a plan cannot migrate to itself")

    refund = plan.refund_policy
    if refund is not None:
        full = month_range.position(refund.full_refund_cutoff_month)
        half = month_range.position(refund.half_refund_cutoff_month)
        if full is None:
            problems.append(f"full_refund_cutoff_month {refund.full_refund_cutoff_month} is outside the enabled range")
        if half is None:
            problems.append(f"half_refund_cutoff_month {refund.half_refund_cutoff_month} is outside the enabled range")
        if full is not None and half is not None and full > half:
            problems.append("full refund cutoff must not come after the half refund cutoff")

    cutoff = plan.enrollment_cutoff_month
    if cutoff is not None and not month_range.contains(cutoff):
        problems.append(f"enrollment_cutoff_month {cutoff} is outside the enabled range")

    return problems


def plan_problems(plan: PlanDefinition) -> List[str]:
    """Invariant violations of a single plan, ignoring its destination link"""
    problems = []
    if not plan.code or not plan.code.strip():
        problems.append("code is required")
    if not plan.name or len(plan.name.strip()) < 3:
        problems.append("name must have at least 3 characters")
    if plan.fiscal_year < MIN_FISCAL_YEAR:
        problems.append(f"fiscal_year must be {MIN_FISCAL_YEAR} or later")
    if not isinstance(plan.audience, Audience):
        problems.append(f"unknown audience {plan.audience!r}")
    if not plan.total.is_positive():
        problems.append("total amount must be positive")
    if not 1 <= plan.due_day <= 31:
        problems.append(f"due_day must be between 1 and 31, got {plan.due_day}")

    problems.extend(_range_problems(plan))
    problems.extend(_policy_problems(plan))
    return problems


class PlanCatalog:
    """
    Plan definitions keyed by code.

    Plans referenced by an enrollment are immutable: changing the range or
    strategy of such a plan requires a new plan code. Only the active flag
    may still be toggled.
    """

    def __init__(self, plans: Iterable[PlanDefinition] = (), referenced: Iterable[str] = ()):
        self._plans: Dict[str, PlanDefinition] = {plan.code: plan for plan in plans}
        self._referenced: Set[str] = set(referenced)

    def __contains__(self, code: str) -> bool:
        return code in self._plans

    def __len__(self) -> int:
        return len(self._plans)

    def get(self, code: str) -> PlanDefinition:
        try:
            return self._plans[code]
        except KeyError:
            raise NotFoundError(f"Unknown plan code: {code}") from None

    def list_all(self) -> List[PlanDefinition]:
        return sorted(self._plans.values(), key=lambda plan: (plan.fiscal_year, plan.code))

    def list_active(self) -> List[PlanDefinition]:
        return [plan for plan in self.list_all() if plan.active]

    def is_referenced(self, code: str) -> bool:
        return code in self._referenced

    def mark_referenced(self, code: str) -> None:
        self.get(code)
        self._referenced.add(code)

    def destination_of(self, code: str) -> Optional[PlanDefinition]:
        destination_code = self.get(code).destination_plan_code
        return self.get(destination_code) if destination_code else None

    def validate(self, plan: PlanDefinition) -> None:
        """
        Raise ValidationError listing every invariant the plan violates.

        The destination plan, when linked, must exist, share the currency and
        be valid on its own; destination chains must not loop back.
        """
        problems = plan_problems(plan)

        seen = {plan.code}
        current = plan
        while current.destination_plan_code:
            destination_code = current.destination_plan_code
            if destination_code in seen:
                if destination_code != plan.code or current is not plan:
                    problems.append(f"destination chain loops back to {destination_code}")
                break
            destination = self._plans.get(destination_code)
            if destination is None:
                problems.append(f"destination plan {destination_code} does not exist")
                break
            if destination.currency != plan.currency:
                problems.append(f"destination plan {destination_code} uses a different currency")
            destination_problems = plan_problems(destination)
            if destination_problems:
                problems.append(f"destination plan {destination_code} is invalid: " + "; ".join(destination_problems))
            seen.add(destination_code)
            current = destination

        if problems:
            raise ValidationError(f"Invalid plan {plan.code}: " + "; ".join(problems), problems)

    def create(self, plan: PlanDefinition) -> PlanDefinition:
        if plan.code in self._plans:
            raise ConflictError(f"Plan code {plan.code} already exists")
        self.validate(plan)
        self._plans[plan.code] = plan
        return plan

    def create_with_contingency(self, plan_a: PlanDefinition, plan_b: PlanDefinition) -> PlanDefinition:
        """Create Plan B and the Plan A that migrates into it, all or nothing"""
        if plan_a.destination_plan_code != plan_b.code:
            raise ValidationError(
                f"Plan {plan_a.code} must link to its contingency plan {plan_b.code}"
            )
        self.create(plan_b)
        try:
            return self.create(plan_a)
        except Exception:
            del self._plans[plan_b.code]
            raise

    def update(self, plan: PlanDefinition) -> PlanDefinition:
        existing = self.get(plan.code)
        if self.is_referenced(plan.code) and replace(existing, active=plan.active) != plan:
            raise ConflictError(
                f"Plan {plan.code} is referenced by enrollments; create a new plan code instead"
            )
        self.validate(plan)
        self._plans[plan.code] = plan
        return plan

    def set_active(self, code: str, active: bool) -> PlanDefinition:
        plan = replace(self.get(code), active=active)
        self._plans[code] = plan
        return plan
