"""
Installment & BNPL Service
Stores installment plans and BNPL credit applications and settles payments
"""

from typing import Dict, List, Optional

import structlog

from scoring_engine.algorithms.installments import InstallmentEngine, calculate_emi, compute_installment_schedule
from scoring_engine.errors import AlreadyPaidError, InvalidStateError, NotFoundError, ScoringError
from scoring_engine.metrics import INSTALLMENT_PAYMENTS
from scoring_engine.models.installments import CreditApplication, InstallmentPlan
from scoring_engine.services.document_store import (
    DocumentStore, INSTALLMENT_PLANS, CREDIT_APPLICATIONS
)

logger = structlog.get_logger()


class InstallmentService:
    """Installment plan and BNPL credit operations"""

    def __init__(self, store: DocumentStore, engine: Optional[InstallmentEngine] = None):
        self.store = store
        self.engine = engine or InstallmentEngine()
        self.logger = logger.bind(component="InstallmentService")

    # ------------------------------------------------------------------
    # Calculators
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_emi(amount: float, tenure: int, interest_rate: float = 0) -> Dict:
        return calculate_emi(amount, tenure, interest_rate)

    @staticmethod
    def quote(total_amount: float, number_of_installments: int,
              down_payment_percent: float = 0, interest_rate: float = 0) -> Dict:
        return compute_installment_schedule(
            total_amount, down_payment_percent, interest_rate, number_of_installments
        ).to_dict()

    # ------------------------------------------------------------------
    # Installment plans
    # ------------------------------------------------------------------

    def create_plan(self, user_id: str, order_id: str, total_amount: float, number_of_installments: int,
                    down_payment_percent: float = 0, interest_rate: float = 0) -> Dict:
        plan = self.engine.create_plan(
            total_amount, number_of_installments, down_payment_percent, interest_rate,
            user_id=user_id, order_id=order_id
        )
        self.store.put(INSTALLMENT_PLANS, plan.plan_id, plan.to_dict())
        return plan.to_dict()

    def get_plan(self, plan_id: str) -> Dict:
        document = self.store.get(INSTALLMENT_PLANS, plan_id)
        if document is None:
            raise NotFoundError("Installment plan not found")
        return document

    def list_plans(self, user_id: str) -> List[Dict]:
        plans = self.store.find(INSTALLMENT_PLANS, lambda d: d.get('userId') == user_id)
        plans.sort(key=lambda d: d.get('startDate') or '', reverse=True)
        return plans

    def pay_installment(self, plan_id: str, installment_number: int,
                        transaction_id: Optional[str] = None) -> Dict:
        """Settle one installment; a completed BNPL plan gives its credit back"""
        try:
            with self.store.transaction(INSTALLMENT_PLANS, plan_id) as tx:
                if tx.document is None:
                    raise NotFoundError("Installment plan not found")
                plan = InstallmentPlan.from_dict(tx.document)
                self.engine.pay_installment(plan, installment_number, transaction_id)
                tx.store(plan.to_dict())
        except AlreadyPaidError:
            INSTALLMENT_PAYMENTS.labels(outcome='already_paid').inc()
            raise
        except ScoringError:
            INSTALLMENT_PAYMENTS.labels(outcome='rejected').inc()
            raise

        INSTALLMENT_PAYMENTS.labels(outcome='paid').inc()
        self.logger.info("Installment paid", plan_id=plan_id, installment_number=installment_number,
                         plan_status=plan.status)

        if plan.status == 'completed' and plan.kind == 'bnpl' and plan.credit_application_id:
            self._restore_credit(plan)
        return plan.to_dict()

    def _restore_credit(self, plan: InstallmentPlan):
        with self.store.transaction(CREDIT_APPLICATIONS, plan.credit_application_id) as tx:
            if tx.document is None:
                self.logger.warning("Credit application missing for completed plan",
                                    plan_id=plan.plan_id,
                                    application_id=plan.credit_application_id)
                return
            application = CreditApplication.from_dict(tx.document)
            if application.status != 'approved':
                return
            self.engine.restore_credit(application, plan)
            tx.store(application.to_dict())

    def cancel_plan(self, plan_id: str) -> Dict:
        with self.store.transaction(INSTALLMENT_PLANS, plan_id) as tx:
            if tx.document is None:
                raise NotFoundError("Installment plan not found")
            plan = InstallmentPlan.from_dict(tx.document)
            self.engine.cancel_plan(plan)
            tx.store(plan.to_dict())
        return tx.document

    # ------------------------------------------------------------------
    # BNPL
    # ------------------------------------------------------------------

    def _user_applications(self, user_id: str, statuses=None) -> List[CreditApplication]:
        documents = self.store.find(
            CREDIT_APPLICATIONS,
            lambda d: d.get('userId') == user_id and (statuses is None or d.get('status') in statuses)
        )
        return [CreditApplication.from_dict(d) for d in documents]

    def _active_application(self, user_id: str) -> Optional[CreditApplication]:
        now = self.engine.clock()
        for application in self._user_applications(user_id, ('approved',)):
            if application.is_active(now):
                return application
        return None

    def apply_for_bnpl(self, user_id: str, data: Dict) -> Dict:
        """Submit and assess a BNPL credit application"""
        if self._user_applications(user_id, ('pending',)) or self._active_application(user_id):
            raise InvalidStateError("You already have an active BNPL application")

        application = self.engine.new_application(user_id, data)
        self.engine.assess_credit(application)
        self.store.put(CREDIT_APPLICATIONS, application.application_id, application.to_dict())
        return application.to_dict()

    def check_eligibility(self, user_id: str) -> Dict:
        application = self._active_application(user_id)
        if application:
            return {
                'eligible': True,
                'creditLimit': application.credit_limit,
                'availableCredit': application.available_credit,
                'application': application.to_dict(),
            }
        if self._user_applications(user_id, ('pending',)):
            return {'eligible': False, 'status': 'pending',
                    'message': 'Your application is being reviewed'}
        return {'eligible': False, 'canApply': True,
                'message': 'Apply for BNPL to get instant credit'}

    def bnpl_plans(self, user_id: str, order_total: float) -> Dict:
        application = self._active_application(user_id)
        if application is None:
            raise InvalidStateError("You need an approved BNPL application")
        return {
            'availableCredit': application.available_credit,
            'plans': self.engine.available_bnpl_plans(order_total, application),
        }

    def create_bnpl_plan(self, user_id: str, order_total: float, plan_id: str,
                         order_id: Optional[str] = None) -> Dict:
        application = self._active_application(user_id)
        if application is None:
            raise InvalidStateError("No approved BNPL application found")

        with self.store.transaction(CREDIT_APPLICATIONS, application.application_id) as tx:
            application = CreditApplication.from_dict(tx.document)
            plan = self.engine.create_bnpl_plan(application, order_total, plan_id, order_id=order_id)
            self.store.put(INSTALLMENT_PLANS, plan.plan_id, plan.to_dict())
            tx.store(application.to_dict())

        self.logger.info("BNPL plan created", user_id=user_id, plan_id=plan.plan_id,
                         available_credit=application.available_credit)
        return plan.to_dict()
