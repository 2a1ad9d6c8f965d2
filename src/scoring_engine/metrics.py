"""
Prometheus metrics for the scoring engines
"""
from prometheus_client import Counter, Histogram

SEGMENT_CLASSIFICATIONS = Counter(
    'scoring_segment_classifications_total',
    'Customer segment classifications by resulting segment',
    ['segment']
)

PRICE_UPDATES = Counter(
    'scoring_price_updates_total',
    'Dynamic price changes by adjustment reason',
    ['reason']
)

INSTALLMENT_PAYMENTS = Counter(
    'scoring_installment_payments_total',
    'Installment payment attempts by outcome',
    ['outcome']
)

REQUEST_LATENCY = Histogram(
    'scoring_request_latency_seconds',
    'HTTP request latency',
    ['method', 'endpoint']
)
