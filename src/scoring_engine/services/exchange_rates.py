"""
Exchange rate lookup for displaying prices in other currencies.
Rates are USD-based multipliers, from a static table or an HTTP API.
"""

from typing import Dict, Optional

import requests
import structlog

from config.scoring_config import EXCHANGE_RATE_CONFIG
from scoring_engine.errors import NotFoundError

logger = structlog.get_logger()

# code -> (units per USD, decimal places)
DEFAULT_RATES = {
    'USD': (1.0, 2),
    'EUR': (0.92, 2),
    'GBP': (0.79, 2),
    'PKR': (278.50, 2),
    'INR': (83.12, 2),
    'AED': (3.67, 2),
    'SAR': (3.75, 2),
    'CAD': (1.36, 2),
    'AUD': (1.53, 2),
    'JPY': (149.50, 0),
    'CNY': (7.24, 2),
    'BDT': (109.75, 2),
    'MYR': (4.72, 2),
    'SGD': (1.34, 2),
    'TRY': (32.15, 2),
    'QAR': (3.64, 2),
    'KWD': (0.31, 3),
    'BHD': (0.38, 3),
    'OMR': (0.38, 3),
    'EGP': (30.90, 2),
}


class StaticExchangeRates:
    """Exchange rates from a fixed USD-based table"""

    def __init__(self, rates: Optional[Dict[str, tuple]] = None):
        self.rates = dict(rates or DEFAULT_RATES)

    def _lookup(self, code: str) -> tuple:
        entry = self.rates.get(code.upper())
        if entry is None:
            raise NotFoundError(f"Currency {code} not found")
        return entry

    def rate(self, from_currency: str, to_currency: str) -> float:
        """Multiplier converting an amount in ``from_currency`` to ``to_currency``"""
        from_rate, _ = self._lookup(from_currency)
        to_rate, _ = self._lookup(to_currency)
        return to_rate / from_rate

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        _, decimals = self._lookup(to_currency)
        return round(amount * self.rate(from_currency, to_currency), decimals)


class ExchangeRateClient(StaticExchangeRates):
    """
    Fetches USD-based rates from the configured API and keeps the static
    table for any currency the API does not return. Failures are logged and
    the static table is used; nothing is retried.
    """

    def __init__(self, config: Optional[Dict] = None, session: Optional[requests.Session] = None):
        super().__init__()
        self.config = config or EXCHANGE_RATE_CONFIG
        self.session = session or requests.Session()
        self.refreshed = False
        self.attempted = False

    def refresh(self) -> bool:
        base_url = self.config.get('base_url')
        if not base_url:
            return False
        try:
            params = {'base': self.config.get('base_currency', 'USD')}
            if self.config.get('api_key'):
                params['access_key'] = self.config['api_key']
            response = self.session.get(base_url, params=params, timeout=self.config.get('timeout', 10))
            if response.status_code != 200:
                logger.error("Exchange rate API error", status_code=response.status_code)
                return False

            fetched = response.json().get('rates', {})
            for code, value in fetched.items():
                code = code.upper()
                decimals = self.rates[code][1] if code in self.rates else 2
                self.rates[code] = (float(value), decimals)
            self.refreshed = True
            logger.info("Exchange rates refreshed", n_rates=len(fetched))
            return True
        except (requests.RequestException, ValueError) as e:
            logger.error("Failed to fetch exchange rates", error=str(e))
            return False

    def rate(self, from_currency: str, to_currency: str) -> float:
        if not self.attempted:
            self.attempted = True
            self.refresh()
        return super().rate(from_currency, to_currency)
