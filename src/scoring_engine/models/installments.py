"""
Installment plan and BNPL credit models
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from scoring_engine.models.base import DocumentMixin

INSTALLMENT_STATUSES = ('pending', 'paid', 'overdue', 'skipped')
PLAN_STATUSES = ('active', 'completed', 'defaulted', 'cancelled')
APPLICATION_STATUSES = ('pending', 'approved', 'rejected', 'expired')


@dataclass
class Installment(DocumentMixin):
    number: int = 1
    amount: float = 0.0
    due_date: Optional[datetime] = None
    status: str = 'pending'
    paid_at: Optional[datetime] = None
    paid_amount: Optional[float] = None
    transaction_id: Optional[str] = None
    late_fee: float = 0.0


@dataclass
class InstallmentPlan(DocumentMixin):
    """A financed order with its fully materialized payment schedule"""
    plan_id: str = ''
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    kind: str = 'installment'  # installment | bnpl
    total_amount: float = 0.0
    down_payment_amount: float = 0.0
    number_of_installments: int = 0
    interest_rate: float = 0.0
    installment_amount: float = 0.0
    total_interest: float = 0.0
    total_payable: float = 0.0
    status: str = 'active'
    start_date: Optional[datetime] = None
    installments: List[Installment] = field(default_factory=list)
    paid_installments: int = 0
    remaining_amount: Optional[float] = None
    next_due_date: Optional[datetime] = None
    credit_application_id: Optional[str] = None
    bnpl_plan_id: Optional[str] = None

    def find_installment(self, number: int) -> Optional[Installment]:
        for installment in self.installments:
            if installment.number == number:
                return installment
        return None


@dataclass
class CreditApplication(DocumentMixin):
    """BNPL credit application and the credit line it grants"""
    application_id: str = ''
    user_id: str = ''
    status: str = 'pending'
    annual_income: Optional[float] = None
    employment_status: Optional[str] = None  # employed | self-employed | unemployed | student | retired
    employer: Optional[str] = None
    agreed_to_terms: bool = False
    credit_score: Optional[int] = None
    risk_level: str = 'medium'
    credit_limit: float = 0.0
    available_credit: float = 0.0
    approved_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        return self.status == 'approved' and (self.expires_at is None or self.expires_at > now)
