"""Upstream market data clients."""

from app.clients.coinmarketcap_rest import CoinMarketCapClient, UpstreamError

__all__ = [
    "CoinMarketCapClient",
    "UpstreamError",
]
