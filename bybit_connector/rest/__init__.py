"""
REST transport.

Components:
    - RestClient: Signed HTTP calls and response envelope decoding
    - Endpoint: One catalogued endpoint (method, path, auth_required)
    - Market, Trade, Position, Account, Asset: Endpoint catalogue

Example:
    >>> from bybit_connector.rest import RestClient, Market
    >>> async with RestClient(config) as client:
    ...     tickers = await client.call(Market.TICKERS, {"category": "spot"})
"""

from bybit_connector.rest.client import RestClient
from bybit_connector.rest.endpoints import Account, Asset, Endpoint, Market, Position, Trade

__all__ = [
    "Account",
    "Asset",
    "Endpoint",
    "Market",
    "Position",
    "RestClient",
    "Trade",
]
