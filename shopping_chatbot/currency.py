"""
Currency conversion against the Open Exchange Rates API.

Rates are always fetched fresh and are expressed relative to USD; conversions
between two non-USD currencies go through the USD cross rate.
"""

import logging
import os
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Optional

from dotenv import load_dotenv
import requests

from shopping_chatbot.errors import ConfigurationError, UpstreamError
from shopping_chatbot.models import ConversionResult, ExchangeRatesResponse

# Load environment variables
load_dotenv()

# Configuration
OPENEXCHANGERATES_API_KEY = os.getenv("OPENEXCHANGERATES_API_KEY")
OPENEXCHANGERATES_URL = os.getenv(
    "OPENEXCHANGERATES_URL", "https://openexchangerates.org/api/latest.json"
)
EXCHANGE_RATES_TIMEOUT = os.getenv("EXCHANGE_RATES_TIMEOUT")

BASE_CURRENCY = "USD"

logger = logging.getLogger("shopping_chatbot.currency")


def round_half_up(value: float, places: int) -> float:
    """Round away from zero on ties, e.g. 2.675 -> 2.68 at 2 places."""
    quantum = Decimal(1).scaleb(-places)
    try:
        return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    except InvalidOperation as e:
        # Infinite values, or more digits than the decimal context holds
        raise ValueError(f"Cannot round {value!r} to {places} places") from e


def normalize_code(code: str) -> str:
    """Upper-case and validate a 3-letter currency code."""
    normalized = (code or "").strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError(f"Invalid currency code: {code!r}")
    return normalized


class CurrencyConverter:
    """
    Converts amounts between currencies using live provider rates.

    No caching and no retries: each conversion performs exactly one
    provider request.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the converter.

        Args:
            api_key: Open Exchange Rates app id
            base_url: Latest-rates endpoint
            timeout: Request timeout in seconds (None waits indefinitely)
            session: HTTP session to reuse; without one every request opens
                its own connection, which keeps concurrent conversions independent
        """
        self.api_key = api_key or OPENEXCHANGERATES_API_KEY
        self.base_url = base_url or OPENEXCHANGERATES_URL
        if timeout is None and EXCHANGE_RATES_TIMEOUT:
            timeout = float(EXCHANGE_RATES_TIMEOUT)
        self.timeout = timeout
        self.session = session

        if not self.api_key:
            logger.warning("OPENEXCHANGERATES_API_KEY is not set; currency conversion is unavailable")

    def fetch_rates(self) -> ExchangeRatesResponse:
        """
        Fetch the latest rate table.

        Returns:
            Provider payload with rates relative to USD

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamError: If the request fails or the payload is unusable
        """
        if not self.api_key:
            raise ConfigurationError("Open Exchange Rates API key not configured")

        try:
            http = self.session or requests
            response = http.get(
                self.base_url,
                params={"app_id": self.api_key},
                timeout=self.timeout
            )
            response.raise_for_status()
            payload = ExchangeRatesResponse(**response.json())
        except requests.RequestException as e:
            raise UpstreamError(f"Exchange rate request failed: {e}") from e
        except (ValueError, TypeError) as e:
            # ValidationError and JSONDecodeError are both ValueErrors
            raise UpstreamError(f"Unusable exchange rate payload: {e}") from e

        if payload.base.upper() != BASE_CURRENCY:
            raise UpstreamError(f"Expected rates based on {BASE_CURRENCY}, got {payload.base}")

        return payload

    def convert(self, amount: float, from_currency: str, to_currency: str) -> ConversionResult:
        """
        Convert an amount between two currencies.

        Args:
            amount: Non-negative amount in the source currency
            from_currency: Source currency code
            to_currency: Target currency code

        Returns:
            ConversionResult with a 2-place amount and a 4-place rate

        Raises:
            ValueError: For a negative amount or a malformed code
            ConfigurationError: If no API key is configured
            UpstreamError: If rates cannot be fetched or lack a code
        """
        if amount < 0:
            raise ValueError(f"Amount must be non-negative, got {amount}")

        source = normalize_code(from_currency)
        target = normalize_code(to_currency)

        rates = self.fetch_rates().rates
        rate = self._rate(rates, target) / self._rate(rates, source)

        result = ConversionResult(
            from_currency=source,
            to_currency=target,
            amount=amount,
            converted_amount=round_half_up(amount * rate, 2),
            rate=round_half_up(rate, 4)
        )

        logger.info(
            "Currency conversion: %s %s = %s %s",
            amount, source, result.converted_amount, target
        )
        return result

    @staticmethod
    def _rate(rates: Dict[str, float], code: str) -> float:
        """Units of ``code`` per USD."""
        if code == BASE_CURRENCY:
            return 1.0

        rate = rates.get(code)
        if not rate:
            raise UpstreamError(f"No exchange rate available for {code}")
        return rate
