"""
Installment / BNPL Engine
Flat-interest installment schedules, installment payments and Buy-Now-Pay-Later
credit lines
"""

import calendar
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import structlog

from config.scoring_config import BNPL_CONFIG
from scoring_engine.errors import (
    AlreadyPaidError, InsufficientCreditError, InvalidStateError, NotFoundError, ValidationError
)
from scoring_engine.models.base import DocumentMixin, utcnow
from scoring_engine.models.installments import CreditApplication, Installment, InstallmentPlan

logger = structlog.get_logger()

# BNPL plan catalogue. Interest rates are annual and go through the same flat
# formula as every other plan: 10% over 6 months is 5% of the order total.
BNPL_PLANS = {
    'pay-in-4': {'name': 'Pay in 4', 'installments': 4, 'interest_rate': 0, 'minimum_total': 50},
    '3-months': {'name': '3 Monthly Payments', 'installments': 3, 'interest_rate': 0, 'minimum_total': 100},
    '6-months': {'name': '6 Monthly Payments', 'installments': 6, 'interest_rate': 10, 'minimum_total': 200},
    '12-months': {'name': '12 Monthly Payments', 'installments': 12, 'interest_rate': 10, 'minimum_total': 500},
}

def effective_rate(terms: Dict) -> float:
    """Share of the order total charged as interest over the whole plan"""
    return terms['interest_rate'] * terms['installments'] / 12


# (minimum credit score, credit limit, risk level), checked in order
CREDIT_TIERS = [(700, 5000, 'low'), (650, 2500, 'medium'), (600, 1000, 'medium')]

PAYABLE_STATUSES = ('pending', 'overdue')


@dataclass
class InstallmentSchedule(DocumentMixin):
    """Result of a flat-interest installment calculation"""
    total_amount: float = 0.0
    down_payment_amount: float = 0.0
    remaining_amount: float = 0.0
    number_of_installments: int = 0
    interest_rate: float = 0.0
    installment_amount: float = 0.0
    total_interest: float = 0.0
    total_payable: float = 0.0
    schedule: List[Installment] = field(default_factory=list)


def add_months(moment: datetime, months: int) -> datetime:
    """Same day ``months`` later, clamped to the last day of the target month"""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _number(value, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")


def _whole_number(value, name: str) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a whole number")
    if isinstance(value, bool) or count != value:
        raise ValidationError(f"{name} must be a whole number")
    return count


def compute_installment_schedule(total_amount: float,
                                 down_payment_percent: float = 0,
                                 interest_rate: float = 0,
                                 number_of_installments: int = 1,
                                 start_date: Optional[datetime] = None) -> InstallmentSchedule:
    """
    Build a flat-interest installment schedule.

    Interest is simple interest on the amount left after the down payment:
    ``remaining * annual_rate * months / 1200``, split evenly across the
    installments. This is not an amortizing EMI and must stay that way so
    existing plans keep their amounts.

    Args:
        total_amount: Order total
        down_payment_percent: Share of the total paid upfront (0-100)
        interest_rate: Annual interest rate in percent
        number_of_installments: Number of monthly installments
        start_date: Plan creation date; the first installment is due one month later

    Returns:
        InstallmentSchedule with every installment pending
    """
    total_amount = _number(total_amount, 'totalAmount')
    down_payment_percent = _number(down_payment_percent or 0, 'downPaymentPercent')
    interest_rate = _number(interest_rate or 0, 'interestRate')
    number_of_installments = _whole_number(number_of_installments, 'numberOfInstallments')

    if total_amount <= 0:
        raise ValidationError("totalAmount must be greater than zero")
    if number_of_installments < 1:
        raise ValidationError("numberOfInstallments must be at least 1")
    if not 0 <= down_payment_percent <= 100:
        raise ValidationError("downPaymentPercent must be between 0 and 100")
    if not 0 <= interest_rate <= 100:
        raise ValidationError("interestRate must be between 0 and 100")

    start_date = start_date or utcnow()
    down_payment_amount = total_amount * down_payment_percent / 100
    remaining = total_amount - down_payment_amount
    total_interest = remaining * interest_rate * number_of_installments / 1200
    total_payable = remaining + total_interest
    installment_amount = total_payable / number_of_installments

    schedule = [
        Installment(
            number=i + 1,
            amount=installment_amount,
            due_date=add_months(start_date, i + 1),
            status='pending'
        )
        for i in range(number_of_installments)
    ]

    return InstallmentSchedule(
        total_amount=total_amount,
        down_payment_amount=down_payment_amount,
        remaining_amount=remaining,
        number_of_installments=number_of_installments,
        interest_rate=interest_rate,
        installment_amount=installment_amount,
        total_interest=total_interest,
        total_payable=total_payable,
        schedule=schedule
    )


def calculate_emi(amount: float, tenure: int, interest_rate: float = 0) -> Dict:
    """Monthly payment under the same flat-interest formula, no down payment"""
    amount = _number(amount, 'amount')
    interest_rate = _number(interest_rate or 0, 'interestRate')
    if amount <= 0:
        raise ValidationError("amount must be greater than zero")
    tenure = _whole_number(tenure, 'tenure')
    if tenure < 1:
        raise ValidationError("tenure must be at least 1")

    monthly_rate = interest_rate / 1200
    total_interest = amount * monthly_rate * tenure
    total_payable = amount + total_interest
    return {
        'emi': round(total_payable / tenure, 2),
        'totalInterest': round(total_interest, 2),
        'totalPayable': round(total_payable, 2),
    }


class InstallmentEngine:
    """Creates and settles installment plans and manages BNPL credit"""

    def __init__(self, clock: Callable[[], datetime] = utcnow, config: Optional[Dict] = None):
        self.clock = clock
        self.config = config or BNPL_CONFIG

    # ------------------------------------------------------------------
    # Installment plans
    # ------------------------------------------------------------------

    def create_plan(self, total_amount: float, number_of_installments: int,
                    down_payment_percent: float = 0, interest_rate: float = 0,
                    user_id: Optional[str] = None, order_id: Optional[str] = None,
                    kind: str = 'installment') -> InstallmentPlan:
        now = self.clock()
        quote = compute_installment_schedule(
            total_amount, down_payment_percent, interest_rate, number_of_installments, start_date=now
        )
        plan = InstallmentPlan(
            plan_id=uuid.uuid4().hex,
            user_id=user_id,
            order_id=order_id,
            kind=kind,
            total_amount=quote.total_amount,
            down_payment_amount=quote.down_payment_amount,
            number_of_installments=quote.number_of_installments,
            interest_rate=quote.interest_rate,
            installment_amount=quote.installment_amount,
            total_interest=quote.total_interest,
            total_payable=quote.total_payable,
            status='active',
            start_date=now,
            installments=quote.schedule,
            paid_installments=0,
            remaining_amount=quote.total_payable,
            next_due_date=quote.schedule[0].due_date
        )
        logger.info("Installment plan created", plan_id=plan.plan_id, kind=kind,
                    installments=plan.number_of_installments, total_payable=plan.total_payable)
        return plan

    def pay_installment(self, plan: InstallmentPlan, installment_number: int,
                        transaction_id: Optional[str] = None) -> InstallmentPlan:
        """
        Mark one installment paid.

        Raises NotFoundError for an unknown installment number and
        AlreadyPaidError when it was paid before; the schedule is left
        untouched in both cases. The plan completes once every row is paid.
        """
        installment = plan.find_installment(installment_number)
        if installment is None:
            raise NotFoundError(f"Installment {installment_number} not found")
        if installment.status == 'paid':
            raise AlreadyPaidError(installment_number)
        if plan.status != 'active':
            raise InvalidStateError(f"Installment plan is {plan.status}")
        if installment.status not in PAYABLE_STATUSES:
            raise InvalidStateError(f"Installment {installment_number} is {installment.status}")

        now = self.clock()
        installment.status = 'paid'
        installment.paid_at = now
        installment.paid_amount = installment.amount + (installment.late_fee or 0)
        installment.transaction_id = transaction_id or f"TXN-{int(now.timestamp() * 1000)}"

        paid = [i for i in plan.installments if i.status == 'paid']
        plan.paid_installments = len(paid)
        plan.remaining_amount = plan.total_payable - sum(i.paid_amount for i in paid)
        next_unpaid = next((i for i in plan.installments if i.status in PAYABLE_STATUSES), None)
        plan.next_due_date = next_unpaid.due_date if next_unpaid else None

        if len(paid) == len(plan.installments):
            plan.status = 'completed'
            logger.info("Installment plan completed", plan_id=plan.plan_id)

        return plan

    def cancel_plan(self, plan: InstallmentPlan) -> InstallmentPlan:
        if plan.status != 'active':
            raise InvalidStateError(f"Cannot cancel a {plan.status} plan")
        plan.status = 'cancelled'
        plan.next_due_date = None
        return plan

    # ------------------------------------------------------------------
    # BNPL credit
    # ------------------------------------------------------------------

    def new_application(self, user_id: str, data: Dict) -> CreditApplication:
        if not data.get('agreedToTerms'):
            raise ValidationError("You must agree to the terms and conditions")
        application = CreditApplication.from_dict(data)
        application.application_id = uuid.uuid4().hex
        application.user_id = user_id
        application.status = 'pending'
        application.created_at = self.clock()
        return application

    def assess_credit(self, application: CreditApplication) -> CreditApplication:
        """Score a pending application and approve or reject it"""
        if application.status != 'pending':
            raise InvalidStateError(f"Application is already {application.status}")

        credit_score = self.config['base_credit_score']
        income = application.annual_income or 0
        if income >= 100000:
            credit_score += 50
        elif income >= 50000:
            credit_score += 25
        if application.employment_status == 'employed':
            credit_score += 30
        elif application.employment_status == 'self-employed':
            credit_score += 20

        now = self.clock()
        application.credit_score = credit_score
        tier = next((t for t in CREDIT_TIERS if credit_score >= t[0]), None)
        if tier:
            _, credit_limit, risk_level = tier
            application.status = 'approved'
            application.credit_limit = credit_limit
            application.available_credit = credit_limit
            application.risk_level = risk_level
            application.approved_at = now
            application.expires_at = now + timedelta(days=self.config['credit_expiry_days'])
        else:
            application.status = 'rejected'
            application.risk_level = 'high'
            application.rejected_at = now
            application.rejection_reason = 'Credit criteria not met'

        logger.info("BNPL application assessed", application_id=application.application_id,
                    status=application.status, credit_score=credit_score,
                    credit_limit=application.credit_limit)
        return application

    def available_bnpl_plans(self, order_total: float, application: CreditApplication) -> List[Dict]:
        order_total = _number(order_total, 'orderTotal')
        minimum = self.config['minimum_order_total']
        if order_total < minimum:
            raise ValidationError(f"Order total must be at least {minimum:.2f} for BNPL")
        if not application.is_active(self.clock()):
            raise InvalidStateError("You need an approved BNPL application")
        if order_total > application.available_credit:
            raise InsufficientCreditError(
                f"Order exceeds your available credit of {application.available_credit:.2f}"
            )

        plans = []
        for plan_id, terms in BNPL_PLANS.items():
            if order_total < terms['minimum_total']:
                continue
            quote = compute_installment_schedule(order_total, 0, terms['interest_rate'], terms['installments'])
            plans.append({
                'id': plan_id,
                'name': terms['name'],
                'installments': terms['installments'],
                'interestRate': effective_rate(terms),
                'annualInterestRate': terms['interest_rate'],
                'installmentAmount': round(quote.installment_amount, 2),
                'totalInterest': round(quote.total_interest, 2),
                'totalPayable': round(quote.total_payable, 2),
            })
        return plans

    def create_bnpl_plan(self, application: CreditApplication, order_total: float, plan_id: str,
                         order_id: Optional[str] = None) -> InstallmentPlan:
        """Finance an order on a BNPL plan, consuming the application's credit"""
        terms = BNPL_PLANS.get(plan_id)
        if terms is None:
            raise ValidationError(f"Invalid plan selected: {plan_id}")
        if not application.is_active(self.clock()):
            raise InvalidStateError("No approved BNPL application found")
        order_total = _number(order_total, 'orderTotal')
        if order_total > application.available_credit:
            raise InsufficientCreditError("Insufficient BNPL credit")

        plan = self.create_plan(order_total, terms['installments'], 0, terms['interest_rate'],
                                user_id=application.user_id, order_id=order_id, kind='bnpl')
        plan.credit_application_id = application.application_id
        plan.bnpl_plan_id = plan_id
        application.available_credit -= order_total
        return plan

    def restore_credit(self, application: CreditApplication, plan: InstallmentPlan) -> CreditApplication:
        """Give a completed BNPL plan's financed amount back to the credit line"""
        if plan.kind != 'bnpl' or plan.status != 'completed':
            raise InvalidStateError("Only completed BNPL plans restore credit")
        application.available_credit = min(
            application.credit_limit, application.available_credit + plan.total_amount
        )
        logger.info("BNPL credit restored", application_id=application.application_id,
                    available_credit=application.available_credit)
        return application
