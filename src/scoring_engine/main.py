"""
Commerce Scoring Engine Service Main Application
RFM segmentation, dynamic pricing and installment/BNPL endpoints over a
PostgreSQL document store with Redis price caching
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
import structlog

from config.scoring_config import PG_CONFIG, REDIS_CONFIG, SERVICE_CONFIG
from scoring_engine import __version__
from scoring_engine.errors import ScoringError
from scoring_engine.logging_config import configure_logging
from scoring_engine.metrics import REQUEST_LATENCY
from scoring_engine.services.document_store import DocumentStore, create_document_store
from scoring_engine.services.exchange_rates import ExchangeRateClient, StaticExchangeRates
from scoring_engine.services.installment_service import InstallmentService
from scoring_engine.services.price_cache import PriceCache
from scoring_engine.services.pricing_service import PricingService
from scoring_engine.services.segmentation_service import SegmentationService

configure_logging(SERVICE_CONFIG['log_level'])
logger = structlog.get_logger()


# Pydantic models
class OrderEventRequest(BaseModel):
    orderData: Optional[Dict[str, Any]] = None

class PriceUpdateRequest(BaseModel):
    reason: str
    newPrice: float

class PriceFloorRequest(BaseModel):
    price: Optional[float] = None

class DemandScoreRequest(BaseModel):
    signals: Optional[Dict[str, float]] = None

class FlashSaleRequest(BaseModel):
    saleData: Dict[str, Any]

class FlashSaleUnitsRequest(BaseModel):
    quantity: int

class CompetitorsRequest(BaseModel):
    competitors: List[Dict[str, Any]]

class RuleRequest(BaseModel):
    at: Optional[str] = None
    stockLevel: Optional[float] = None

class EMIRequest(BaseModel):
    amount: float
    tenure: int
    interestRate: float = 0

class InstallmentQuoteRequest(BaseModel):
    totalAmount: float
    numberOfInstallments: int
    downPaymentPercent: float = 0
    interestRate: float = 0

class InstallmentPlanRequest(InstallmentQuoteRequest):
    userId: str
    orderId: str

class PayInstallmentRequest(BaseModel):
    installmentNumber: int
    transactionId: Optional[str] = None

class BNPLApplicationRequest(BaseModel):
    userId: str
    annualIncome: Optional[float] = None
    employmentStatus: Optional[str] = None
    employer: Optional[str] = None
    agreedToTerms: bool = False

class BNPLPlanRequest(BaseModel):
    orderTotal: float
    planId: str
    orderId: Optional[str] = None


def init_services(app: FastAPI, store: DocumentStore, cache: PriceCache,
                  exchange_rates: StaticExchangeRates):
    app.state.store = store
    app.state.cache = cache
    app.state.segmentation = SegmentationService(store)
    app.state.pricing = PricingService(store, cache=cache, exchange_rates=exchange_rates)
    app.state.installments = InstallmentService(store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    logger.info("Starting Commerce Scoring Engine", version=__version__)

    if not hasattr(app.state, 'store'):
        store = create_document_store(
            SERVICE_CONFIG['store_backend'], PG_CONFIG,
            minconn=SERVICE_CONFIG['pool_min'], maxconn=SERVICE_CONFIG['pool_max']
        )
        init_services(app, store, PriceCache.from_config(REDIS_CONFIG), ExchangeRateClient())

    yield

    app.state.cache.close()
    app.state.store.close()
    logger.info("Shutting down Commerce Scoring Engine")


def create_app(store: Optional[DocumentStore] = None, cache: Optional[PriceCache] = None,
               exchange_rates: Optional[StaticExchangeRates] = None) -> FastAPI:
    """Build the API; services are wired at startup unless a store is given"""
    app = FastAPI(
        title="Commerce Scoring Engine",
        description="RFM segmentation, dynamic pricing and installment calculations",
        version=__version__,
        lifespan=lifespan
    )

    if store is not None:
        init_services(app, store, cache or PriceCache(), exchange_rates or StaticExchangeRates())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def record_latency(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get('route')
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=route.path if route else 'unmatched'
        ).observe(time.perf_counter() - start)
        return response

    @app.exception_handler(ScoringError)
    async def scoring_error_handler(request: Request, exc: ScoringError):
        logger.warning("Request failed", path=request.url.path,
                       status_code=exc.status_code, message=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    register_routes(app)
    return app


def register_routes(app: FastAPI):

    @app.get("/health")
    async def health_check(request: Request):
        return {
            "status": "healthy",
            "version": __version__,
            "store": type(request.app.state.store).__name__,
            "cache": request.app.state.cache.enabled,
            "timestamp": datetime.now().isoformat()
        }

    @app.get("/metrics")
    async def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/api/v1/cache/stats")
    async def get_cache_stats(request: Request):
        return request.app.state.cache.stats()

    # ------------------------------------------------------------------
    # Customer segmentation
    # ------------------------------------------------------------------

    @app.get("/api/v1/segmentation/distribution", tags=["Segmentation"])
    def get_segment_distribution(request: Request):
        return {"success": True, "distribution": request.app.state.segmentation.distribution()}

    @app.get("/api/v1/segmentation/at-risk", tags=["Segmentation"])
    def get_at_risk_customers(request: Request, limit: int = Query(100, ge=1, le=1000)):
        customers = request.app.state.segmentation.at_risk_customers(limit)
        return {"success": True, "count": len(customers), "customers": customers}

    @app.get("/api/v1/segmentation/{user_id}", tags=["Segmentation"])
    def get_user_segmentation(user_id: str, request: Request):
        return {"success": True, "segmentation": request.app.state.segmentation.get_or_create(user_id)}

    @app.post("/api/v1/segmentation/{user_id}/calculate-rfm", tags=["Segmentation"])
    def calculate_rfm(user_id: str, request: Request):
        segmentation = request.app.state.segmentation.calculate_rfm(user_id)
        return {"success": True, "message": "RFM calculated", "rfm": segmentation['rfm']}

    @app.post("/api/v1/segmentation/{user_id}/determine-segment", tags=["Segmentation"])
    def determine_segment(user_id: str, request: Request):
        segment, segmentation = request.app.state.segmentation.determine_segment(user_id)
        return {"success": True, "segment": segment, "segmentation": segmentation}

    @app.post("/api/v1/segmentation/{user_id}/orders", tags=["Segmentation"])
    def update_from_order(user_id: str, body: OrderEventRequest, request: Request):
        segmentation = request.app.state.segmentation.update_from_order(user_id, body.orderData)
        return {"success": True, "message": "Segmentation updated", "segmentation": segmentation}

    # ------------------------------------------------------------------
    # Dynamic pricing
    # ------------------------------------------------------------------

    @app.post("/api/v1/pricing", status_code=201, tags=["Pricing"])
    def create_pricing_configuration(payload: Dict[str, Any], request: Request):
        pricing = request.app.state.pricing.create(payload)
        return {"success": True, "message": "Pricing configuration created", "pricing": pricing}

    @app.post("/api/v1/pricing/competitors/recalculate", tags=["Pricing"])
    def recalculate_competitor_prices(request: Request):
        result = request.app.state.pricing.recalculate_competitor_prices()
        return {"success": True, "message": "Competitor prices updated for all products", **result}

    @app.get("/api/v1/pricing/{product_id}", tags=["Pricing"])
    def get_product_price(product_id: str, request: Request, currency: Optional[str] = None):
        return {"success": True, "price": request.app.state.pricing.get_display_price(product_id, currency)}

    @app.get("/api/v1/pricing/{product_id}/configuration", tags=["Pricing"])
    def get_pricing_configuration(product_id: str, request: Request):
        return {"success": True, "pricing": request.app.state.pricing.get(product_id)}

    @app.put("/api/v1/pricing/{product_id}/price", tags=["Pricing"])
    def update_product_price(product_id: str, body: PriceUpdateRequest, request: Request):
        pricing = request.app.state.pricing.update_price(product_id, body.reason, body.newPrice)
        return {"success": True, "message": "Price updated successfully", "pricing": pricing}

    @app.post("/api/v1/pricing/{product_id}/price-floor-check", tags=["Pricing"])
    def check_price_floor(product_id: str, body: PriceFloorRequest, request: Request):
        return {"success": True, **request.app.state.pricing.check_price_floor(product_id, body.price)}

    @app.post("/api/v1/pricing/{product_id}/demand-score", tags=["Pricing"])
    def calculate_demand_score(product_id: str, body: DemandScoreRequest, request: Request):
        return {"success": True, **request.app.state.pricing.calculate_demand_score(product_id, body.signals)}

    @app.post("/api/v1/pricing/{product_id}/flash-sale", tags=["Pricing"])
    def activate_flash_sale(product_id: str, body: FlashSaleRequest, request: Request):
        flash_sale = request.app.state.pricing.activate_flash_sale(product_id, body.saleData)
        return {"success": True, "message": "Flash sale activated", "flashSale": flash_sale}

    @app.delete("/api/v1/pricing/{product_id}/flash-sale", tags=["Pricing"])
    def end_flash_sale(product_id: str, request: Request):
        pricing = request.app.state.pricing.end_flash_sale(product_id)
        return {"success": True, "message": "Flash sale ended", "pricing": pricing}

    @app.post("/api/v1/pricing/{product_id}/flash-sale/units", tags=["Pricing"])
    def record_flash_sale_units(product_id: str, body: FlashSaleUnitsRequest, request: Request):
        flash_sale = request.app.state.pricing.record_flash_sale_units(product_id, body.quantity)
        return {"success": True, "flashSale": flash_sale}

    @app.put("/api/v1/pricing/{product_id}/competitors", tags=["Pricing"])
    def track_competitor_prices(product_id: str, body: CompetitorsRequest, request: Request):
        tracking = request.app.state.pricing.update_competitors(product_id, body.competitors)
        return {"success": True, "message": "Competitor prices updated", "competitorTracking": tracking}

    @app.post("/api/v1/pricing/{product_id}/rules/{layer}", tags=["Pricing"])
    def apply_pricing_rule(product_id: str, layer: str, body: RuleRequest, request: Request):
        result = request.app.state.pricing.apply_rule(product_id, layer, body.model_dump())
        return {"success": True, **result}

    @app.get("/api/v1/pricing/{product_id}/personalized", tags=["Pricing"])
    def get_personalized_price(product_id: str, request: Request, segment: str = Query(...)):
        return {"success": True, **request.app.state.pricing.personalized_price(product_id, segment)}

    @app.get("/api/v1/pricing/{product_id}/history", tags=["Pricing"])
    def get_price_history(product_id: str, request: Request):
        return {"success": True, "priceHistory": request.app.state.pricing.price_history(product_id)}

    @app.get("/api/v1/pricing/{product_id}/alerts", tags=["Pricing"])
    def get_pricing_alerts(product_id: str, request: Request):
        alerts = request.app.state.pricing.alerts(product_id)
        return {"success": True, "count": len(alerts), "alerts": alerts}

    @app.post("/api/v1/pricing/{product_id}/alerts/acknowledge", tags=["Pricing"])
    def acknowledge_pricing_alerts(product_id: str, request: Request):
        count = request.app.state.pricing.acknowledge_alerts(product_id)
        return {"success": True, "acknowledged": count}

    # ------------------------------------------------------------------
    # Installments & BNPL
    # ------------------------------------------------------------------

    @app.post("/api/v1/installments/calculate-emi", tags=["Installments"])
    def calculate_emi(body: EMIRequest, request: Request):
        result = request.app.state.installments.calculate_emi(body.amount, body.tenure, body.interestRate)
        return {"success": True, **result}

    @app.post("/api/v1/installments/quote", tags=["Installments"])
    def quote_installments(body: InstallmentQuoteRequest, request: Request):
        quote = request.app.state.installments.quote(
            body.totalAmount, body.numberOfInstallments, body.downPaymentPercent, body.interestRate
        )
        return {"success": True, "quote": quote}

    @app.post("/api/v1/installments", status_code=201, tags=["Installments"])
    def create_installment_plan(body: InstallmentPlanRequest, request: Request):
        plan = request.app.state.installments.create_plan(
            body.userId, body.orderId, body.totalAmount, body.numberOfInstallments,
            body.downPaymentPercent, body.interestRate
        )
        return {"success": True, "data": plan}

    @app.get("/api/v1/installments/user/{user_id}", tags=["Installments"])
    def get_user_installment_plans(user_id: str, request: Request):
        plans = request.app.state.installments.list_plans(user_id)
        return {"success": True, "count": len(plans), "data": plans}

    @app.get("/api/v1/installments/{plan_id}", tags=["Installments"])
    def get_installment_plan(plan_id: str, request: Request):
        return {"success": True, "data": request.app.state.installments.get_plan(plan_id)}

    @app.post("/api/v1/installments/{plan_id}/pay", tags=["Installments"])
    def pay_installment(plan_id: str, body: PayInstallmentRequest, request: Request):
        plan = request.app.state.installments.pay_installment(
            plan_id, body.installmentNumber, body.transactionId
        )
        return {"success": True, "message": "Payment successful", "data": plan}

    @app.post("/api/v1/installments/{plan_id}/cancel", tags=["Installments"])
    def cancel_installment_plan(plan_id: str, request: Request):
        return {"success": True, "data": request.app.state.installments.cancel_plan(plan_id)}

    @app.post("/api/v1/bnpl/applications", status_code=201, tags=["BNPL"])
    def apply_for_bnpl(body: BNPLApplicationRequest, request: Request):
        application = request.app.state.installments.apply_for_bnpl(body.userId, body.model_dump())
        return {"success": True, "application": application}

    @app.get("/api/v1/bnpl/{user_id}/eligibility", tags=["BNPL"])
    def check_bnpl_eligibility(user_id: str, request: Request):
        return {"success": True, **request.app.state.installments.check_eligibility(user_id)}

    @app.get("/api/v1/bnpl/{user_id}/plans", tags=["BNPL"])
    def get_bnpl_plans(user_id: str, request: Request, orderTotal: float = Query(...)):
        return {"success": True, **request.app.state.installments.bnpl_plans(user_id, orderTotal)}

    @app.post("/api/v1/bnpl/{user_id}/plans", status_code=201, tags=["BNPL"])
    def create_bnpl_plan(user_id: str, body: BNPLPlanRequest, request: Request):
        plan = request.app.state.installments.create_bnpl_plan(
            user_id, body.orderTotal, body.planId, body.orderId
        )
        return {"success": True, "message": "Installment plan created successfully", "installmentPlan": plan}


app = create_app()
