"""
Quote provider clients.

Two interchangeable backends:
- AlphaVantageClient: GLOBAL_QUOTE and TIME_SERIES_DAILY over HTTP, keyed by ALPHA_VANTAGE_API_KEY
- YahooFinanceClient: yfinance, needs no credential

Clients raise PriceProviderError (or ProviderNoticeError / MissingSecretError) and
never return partial data. Turning failures into "no price" is PriceSource's job.
"""

import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import yfinance as yf
from loguru import logger
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from clusterperf.config import settings
from clusterperf.domain.clusters import DailyBar
from clusterperf.utils.errors import (
    ConfigurationError,
    MissingSecretError,
    PriceProviderError,
    ProviderNoticeError,
)

# Payload keys Alpha Vantage uses for errors and throttling notices
NOTICE_KEYS = ("Error Message", "Note", "Information")


def create_session(max_retries: int = 3, backoff_factor: float = 0.5) -> requests.Session:
    """
    Create a requests session that retries connection failures and 5xx answers.

    Throttling is reported by Alpha Vantage inside a 200 response, so 429 is
    not retried here either; the next cycle is the retry.
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=2, pool_maxsize=2)

    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(str(value).strip().rstrip("%"))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


class AlphaVantageClient:
    """Alpha Vantage REST client."""

    name = "alpha_vantage"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = settings.alpha_vantage_api_key if api_key is None else api_key
        self.base_url = base_url or settings.alpha_vantage_base_url
        self.timeout = timeout or settings.price_request_timeout
        self.session = session or create_session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _redact(self, text: str) -> str:
        # requests puts the full URL, query string included, into its messages
        if self.api_key:
            return text.replace(self.api_key, "***REDACTED***")
        return text

    def _get(self, params: Dict[str, str]) -> Dict[str, Any]:
        if not self.api_key:
            raise MissingSecretError("ALPHA_VANTAGE_API_KEY is not configured")

        try:
            response = self.session.get(
                self.base_url,
                params={**params, "apikey": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            raise PriceProviderError(
                f"Alpha Vantage request failed: {self._redact(str(e))}",
                details={"function": params.get("function"), "symbol": params.get("symbol")},
            ) from None
        except ValueError as e:
            raise PriceProviderError(f"Alpha Vantage returned invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise PriceProviderError("Alpha Vantage returned an unexpected payload")

        for key in NOTICE_KEYS:
            if key in payload:
                raise ProviderNoticeError(str(payload[key]), details={"key": key})

        return payload

    def fetch_quote(self, symbol: str) -> Dict[str, Optional[float]]:
        """
        Fetch the current quote for a symbol.

        Returns:
            Dict with price, previous_close, change and change_percent

        Raises:
            MissingSecretError: No API key configured
            ProviderNoticeError: Provider reported an error or throttling notice
            PriceProviderError: Network failure or unusable payload
        """
        payload = self._get({"function": "GLOBAL_QUOTE", "symbol": symbol})

        quote = payload.get("Global Quote") or {}
        if not isinstance(quote, dict):
            raise PriceProviderError(f"Malformed quote payload for {symbol}", details={"symbol": symbol})
        price = _to_float(quote.get("05. price"))
        if price is None:
            raise PriceProviderError(f"No quote data for {symbol}", details={"symbol": symbol})

        return {
            "price": price,
            "previous_close": _to_float(quote.get("08. previous close")),
            "change": _to_float(quote.get("09. change")),
            "change_percent": _to_float(quote.get("10. change percent")),
        }

    def fetch_daily_bars(self, symbol: str, start_date: date, end_date: date) -> List[DailyBar]:
        """
        Fetch the full daily series and keep the bars inside [start_date, end_date].

        Returns:
            Bars sorted ascending by date
        """
        payload = self._get({"function": "TIME_SERIES_DAILY", "symbol": symbol, "outputsize": "full"})

        series = payload.get("Time Series (Daily)")
        if not isinstance(series, dict) or not series:
            raise PriceProviderError(f"No daily series for {symbol}", details={"symbol": symbol})

        bars = []
        for day, values in series.items():
            try:
                bar_date = datetime.strptime(day, "%Y-%m-%d").date()
                if bar_date < start_date or bar_date > end_date:
                    continue
                bars.append(DailyBar(
                    date=bar_date,
                    open=float(values["1. open"]),
                    high=float(values["2. high"]),
                    low=float(values["3. low"]),
                    close=float(values["4. close"]),
                    volume=int(float(values.get("5. volume", 0))),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed bar for {symbol} on {day}: {e}")

        bars.sort(key=lambda bar: bar.date)
        return bars


class YahooFinanceClient:
    """yfinance-backed client."""

    name = "yahoo"

    @property
    def configured(self) -> bool:
        return True

    def fetch_quote(self, symbol: str) -> Dict[str, Optional[float]]:
        try:
            df = yf.Ticker(symbol).history(period="5d")
        except Exception as e:
            raise PriceProviderError(f"Yahoo Finance quote failed for {symbol}: {e}") from e

        closes = df["Close"].dropna() if df is not None and not df.empty else None
        if closes is None or closes.empty:
            raise PriceProviderError(f"No quote data for {symbol}", details={"symbol": symbol})

        price = float(closes.iloc[-1])
        if not math.isfinite(price) or price <= 0:
            raise PriceProviderError(f"Unusable price {price} for {symbol}", details={"symbol": symbol})
        previous_close = float(closes.iloc[-2]) if len(closes) > 1 else None

        change = None
        change_percent = None
        if previous_close:
            change = price - previous_close
            change_percent = change / previous_close * 100

        return {
            "price": price,
            "previous_close": previous_close,
            "change": change,
            "change_percent": change_percent,
        }

    def fetch_daily_bars(self, symbol: str, start_date: date, end_date: date) -> List[DailyBar]:
        try:
            # history() treats end as exclusive
            df = yf.Ticker(symbol).history(start=start_date, end=end_date + timedelta(days=1))
        except Exception as e:
            raise PriceProviderError(f"Yahoo Finance history failed for {symbol}: {e}") from e

        if df is None or df.empty:
            return []

        # Rows without a close are holidays or halted days
        df = df.dropna(subset=["Close"])

        bars = []
        for date_idx, row in df.iterrows():
            bar_date = date_idx.date()
            if bar_date < start_date or bar_date > end_date:
                continue
            bars.append(DailyBar(
                date=bar_date,
                open=float(row["Open"]),
                high=float(row["High"]),
                low=float(row["Low"]),
                close=float(row["Close"]),
                volume=0 if pd.isna(row["Volume"]) else int(row["Volume"]),
            ))

        bars.sort(key=lambda bar: bar.date)
        return bars


def build_provider(name: Optional[str] = None):
    """Provider client for the given name (defaults to settings.price_provider)."""
    name = name or settings.price_provider
    if name == "alpha_vantage":
        return AlphaVantageClient()
    if name == "yahoo":
        return YahooFinanceClient()
    raise ConfigurationError(f"Unknown price provider '{name}'")
