"""
HTTP API tests against the in-memory document store
"""

from fastapi.testclient import TestClient

from scoring_engine.main import create_app
from scoring_engine.services.document_store import InMemoryDocumentStore

PRODUCT = {
    'productId': 'sku-42',
    'basePricing': {'originalPrice': 200, 'costPrice': 120, 'minimumPrice': 150, 'currency': 'USD'},
    'personalizedPricing': {'enabled': True, 'userSegments': [{'segmentName': 'champion', 'priceAdjustment': -5}]},
    'inventoryBasedPricing': {
        'enabled': True,
        'stockLevel': {'threshold': {'low': 10}},
        'pricingRules': {'lowStock': {'enabled': True, 'adjustmentType': 'fixed-amount', 'adjustmentValue': 20}},
    },
}


class TestHealthAndMetrics:

    def setup_method(self):
        self.client = TestClient(create_app(store=InMemoryDocumentStore()))

    def test_health(self):
        response = self.client.get("/health")

        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'
        assert response.json()['cache'] is False

    def test_metrics(self):
        self.client.get("/health")
        response = self.client.get("/metrics")

        assert response.status_code == 200
        assert 'scoring_request_latency_seconds' in response.text


class TestSegmentationAPI:

    def setup_method(self):
        self.client = TestClient(create_app(store=InMemoryDocumentStore()))

    def test_profile_lifecycle(self):
        response = self.client.get("/api/v1/segmentation/user-1")
        assert response.json()['segmentation']['primarySegment'] == 'occasional'

        response = self.client.post("/api/v1/segmentation/user-1/orders", json={'orderData': {'total': 80}})
        assert response.status_code == 200
        assert response.json()['segmentation']['primarySegment'] == 'new'

        response = self.client.post("/api/v1/segmentation/user-1/determine-segment")
        assert response.json()['segment'] == 'new'
        assert len(response.json()['segmentation']['segmentHistory']) == 2

        response = self.client.post("/api/v1/segmentation/user-1/calculate-rfm")
        assert response.json()['rfm']['combinedScore'] == 7

        response = self.client.get("/api/v1/segmentation/distribution")
        assert response.json()['distribution'] == [{'segment': 'new', 'count': 1}]

    def test_missing_profile(self):
        response = self.client.post("/api/v1/segmentation/ghost/calculate-rfm")

        assert response.status_code == 404
        assert response.json() == {'success': False, 'message': 'Segmentation not found'}

    def test_invalid_order_total(self):
        response = self.client.post("/api/v1/segmentation/user-1/orders", json={'orderData': {'total': -3}})

        assert response.status_code == 400
        assert response.json()['success'] is False

    def test_at_risk_empty(self):
        response = self.client.get("/api/v1/segmentation/at-risk")

        assert response.json() == {'success': True, 'count': 0, 'customers': []}


class TestPricingAPI:

    def setup_method(self):
        self.client = TestClient(create_app(store=InMemoryDocumentStore()))
        response = self.client.post("/api/v1/pricing", json=PRODUCT)
        assert response.status_code == 201

    def test_duplicate(self):
        response = self.client.post("/api/v1/pricing", json=PRODUCT)

        assert response.status_code == 400

    def test_get_price_in_currency(self):
        response = self.client.get("/api/v1/pricing/sku-42", params={'currency': 'GBP'})

        price = response.json()['price']
        assert price['amount'] == 200
        assert price['convertedAmount'] == 158.0

    def test_update_price_and_history(self):
        response = self.client.put("/api/v1/pricing/sku-42/price", json={'reason': 'manual', 'newPrice': 140})
        assert response.status_code == 200
        assert response.json()['pricing']['currentPrice']['amount'] == 140

        response = self.client.post("/api/v1/pricing/sku-42/price-floor-check", json={})
        assert response.json()['valid'] is False

        response = self.client.get("/api/v1/pricing/sku-42/history")
        assert [entry['price'] for entry in response.json()['priceHistory']] == [200]

    def test_flash_sale(self):
        response = self.client.post("/api/v1/pricing/sku-42/flash-sale", json={'saleData': {'discountPercentage': 25}})
        assert response.json()['flashSale']['flashPrice'] == 150

        response = self.client.delete("/api/v1/pricing/sku-42/flash-sale")
        assert response.json()['pricing']['currentPrice']['amount'] == 200

        response = self.client.delete("/api/v1/pricing/sku-42/flash-sale")
        assert response.status_code == 400

    def test_rules_and_personalized_price(self):
        response = self.client.post("/api/v1/pricing/sku-42/rules/inventory", json={'stockLevel': 4})
        assert response.json() == {'success': True, 'applied': True, 'price': 220, 'layer': 'inventory'}

        response = self.client.get("/api/v1/pricing/sku-42/personalized", params={'segment': 'champion'})
        assert response.json()['personalizedPrice'] == 209

        response = self.client.get("/api/v1/pricing/sku-42/personalized", params={'segment': 'lost'})
        assert response.status_code == 404

    def test_competitor_alerts(self):
        response = self.client.put("/api/v1/pricing/sku-42/competitors",
                                   json={'competitors': [{'name': 'Rival', 'currentPrice': 180}]})
        assert response.json()['competitorTracking']['lowestCompetitorPrice'] == 180

        response = self.client.get("/api/v1/pricing/sku-42/alerts")
        assert response.json()['count'] == 1

    def test_unknown_product(self):
        response = self.client.get("/api/v1/pricing/nothing")

        assert response.status_code == 404
        assert response.json()['success'] is False


class TestInstallmentAPI:

    def setup_method(self):
        self.client = TestClient(create_app(store=InMemoryDocumentStore()))

    def test_calculate_emi(self):
        response = self.client.post("/api/v1/installments/calculate-emi",
                                    json={'amount': 1200, 'tenure': 12, 'interestRate': 10})

        assert response.json() == {'success': True, 'emi': 110.0, 'totalInterest': 120.0, 'totalPayable': 1320.0}

    def test_pay_twice(self):
        response = self.client.post("/api/v1/installments", json={
            'userId': 'user-1', 'orderId': 'order-1', 'totalAmount': 1000, 'numberOfInstallments': 4
        })
        assert response.status_code == 201
        plan_id = response.json()['data']['planId']

        response = self.client.post(f"/api/v1/installments/{plan_id}/pay", json={'installmentNumber': 1})
        assert response.json()['data']['paidInstallments'] == 1

        response = self.client.post(f"/api/v1/installments/{plan_id}/pay", json={'installmentNumber': 1})
        assert response.status_code == 400
        assert response.json()['message'] == 'Installment 1 already paid'

        response = self.client.post(f"/api/v1/installments/{plan_id}/pay", json={'installmentNumber': 7})
        assert response.status_code == 404

        response = self.client.get("/api/v1/installments/user/user-1")
        assert response.json()['count'] == 1

    def test_bnpl(self):
        response = self.client.post("/api/v1/bnpl/applications", json={
            'userId': 'user-1', 'annualIncome': 55000, 'employmentStatus': 'employed', 'agreedToTerms': True
        })
        assert response.status_code == 201
        assert response.json()['application']['creditLimit'] == 5000

        response = self.client.get("/api/v1/bnpl/user-1/plans", params={'orderTotal': 600})
        assert [plan['id'] for plan in response.json()['plans']] == ['pay-in-4', '3-months', '6-months', '12-months']

        response = self.client.post("/api/v1/bnpl/user-1/plans", json={'orderTotal': 600, 'planId': '3-months'})
        assert response.status_code == 201
        assert response.json()['installmentPlan']['installmentAmount'] == 200

        response = self.client.get("/api/v1/bnpl/user-1/eligibility")
        assert response.json()['availableCredit'] == 4400

    def test_bnpl_requires_terms(self):
        response = self.client.post("/api/v1/bnpl/applications", json={'userId': 'user-1'})

        assert response.status_code == 400
