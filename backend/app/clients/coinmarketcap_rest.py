"""CoinMarketCap REST API client for latest quotes.

The client only performs HTTP and parsing. Admission control is the
caller's job: every call here must have been admitted by the rate limiter
first, and its outcome reported back.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Sequence

import httpx

from core.models import ErrorKind, MarketSnapshot, SnapshotSource
from core.models.symbols import get_symbol_mapping

logger = logging.getLogger(__name__)

# Upstream status codes that mean "over your plan's limits".
_RATE_LIMIT_ERROR_CODES = {1008, 1009, 1010, 1011}


class UpstreamError(Exception):
    """A quote request failed; ``kind`` classifies it for the breaker."""

    def __init__(self, kind: ErrorKind, message: str = "", status_code: int | None = None):
        super().__init__(f"{kind.value}: {message}" if message else kind.value)
        self.kind = kind
        self.message = message
        self.status_code = status_code


def base_asset(symbol: str) -> str:
    """Upstream ticker for a pair symbol ("BTC/USDT" -> "BTC")."""
    mapping = get_symbol_mapping(symbol)
    if mapping is not None:
        return mapping.base_asset
    return symbol.split("/", 1)[0]


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def _as_float(value: Any) -> float:
    return float(value) if value is not None else 0.0


class CoinMarketCapClient:
    """CoinMarketCap quotes API client."""

    BASE_URL = "https://pro-api.coinmarketcap.com"
    QUOTES_ENDPOINT = "/v1/cryptocurrency/quotes/latest"
    MAX_BATCH = 50

    def __init__(
        self,
        api_key: str = "",
        base_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["X-CMC_PRO_API_KEY"] = self.api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """Make a GET request, translating every failure into UpstreamError."""
        client = await self._get_client()
        try:
            response = await client.get(endpoint, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(ErrorKind.TIMEOUT, str(e) or "request timed out") from e
        except httpx.TransportError as e:
            raise UpstreamError(ErrorKind.TRANSPORT, str(e)) from e

        status = response.status_code
        if status == 429:
            raise UpstreamError(ErrorKind.RATE_LIMITED, "HTTP 429", status)
        if status >= 500:
            raise UpstreamError(ErrorKind.SERVER_ERROR, f"HTTP {status}", status)
        if status >= 400:
            raise UpstreamError(ErrorKind.CLIENT_ERROR, f"HTTP {status}", status)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(ErrorKind.MALFORMED, "response is not JSON", status) from e

    def _parse_quote(self, symbol: str, entry: Any) -> MarketSnapshot:
        # v1 returns an object per ticker, newer versions a list of candidates
        if isinstance(entry, list):
            if not entry:
                raise UpstreamError(ErrorKind.MALFORMED, f"empty quote list for {symbol}")
            entry = entry[0]
        try:
            usd = entry["quote"]["USD"]
            price = float(usd["price"])
            return MarketSnapshot(
                symbol=symbol,
                price=price,
                volume_24h=_as_float(usd.get("volume_24h")),
                change_1h=_as_float(usd.get("percent_change_1h")),
                change_24h=_as_float(usd.get("percent_change_24h")),
                change_7d=_as_float(usd.get("percent_change_7d")),
                market_cap=_as_float(usd.get("market_cap")),
                timestamp=_parse_timestamp(usd.get("last_updated")),
                source=SnapshotSource.UPSTREAM,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(ErrorKind.MALFORMED, f"bad quote for {symbol}: {e}") from e

    async def get_latest_quotes(self, symbols: Sequence[str]) -> dict[str, MarketSnapshot]:
        """
        Fetch latest USD quotes for up to MAX_BATCH pair symbols in one request.

        Args:
            symbols: Pair symbols (e.g., "BTC/USDT")

        Returns:
            Dict of pair symbol -> MarketSnapshot. Symbols the upstream does
            not list, or whose entry cannot be parsed, are omitted.

        Raises:
            UpstreamError: on timeout, transport failure, HTTP error status,
                upstream error code, or a payload with no parseable quote.
        """
        if not symbols:
            return {}
        if len(symbols) > self.MAX_BATCH:
            raise ValueError(f"at most {self.MAX_BATCH} symbols per request, got {len(symbols)}")

        tickers = {base_asset(s): s for s in symbols}
        params = {"symbol": ",".join(tickers), "convert": "USD"}
        payload = await self._request(self.QUOTES_ENDPOINT, params)

        if not isinstance(payload, dict):
            raise UpstreamError(ErrorKind.MALFORMED, "payload is not an object")

        status = payload.get("status") or {}
        error_code = status.get("error_code", 0) or 0
        if error_code:
            kind = (
                ErrorKind.RATE_LIMITED
                if error_code in _RATE_LIMIT_ERROR_CODES
                else ErrorKind.CLIENT_ERROR
            )
            raise UpstreamError(kind, f"error_code={error_code}: {status.get('error_message')}")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise UpstreamError(ErrorKind.MALFORMED, "missing 'data' object")

        quotes: dict[str, MarketSnapshot] = {}
        malformed = 0
        for ticker, symbol in tickers.items():
            entry = data.get(ticker)
            if entry is None:
                logger.debug("Upstream returned no quote for %s", symbol)
                continue
            try:
                quotes[symbol] = self._parse_quote(symbol, entry)
            except UpstreamError as e:
                malformed += 1
                logger.warning("Skipping quote for %s: %s", symbol, e)

        if malformed and not quotes:
            raise UpstreamError(ErrorKind.MALFORMED, f"all {malformed} quotes unparseable")
        return quotes

    async def get_latest_quote(self, symbol: str) -> MarketSnapshot | None:
        """Fetch one symbol's quote, or None if the upstream does not list it."""
        quotes = await self.get_latest_quotes([symbol])
        return quotes.get(symbol)
