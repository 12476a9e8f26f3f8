"""
Bybit V5 REST endpoint catalogue.

Each entry records the HTTP method, the path and whether the call must be
signed. Request and response field layouts are endpoint-specific and are
not modelled here; ``result`` is returned as decoded JSON.

Example:
    >>> from bybit_connector.rest.endpoints import Market, Trade
    >>> Market.TICKERS.path
    '/v5/market/tickers'
    >>> Trade.PLACE.auth_required
    True
"""

from pydantic import BaseModel, Field, field_validator


class Endpoint(BaseModel):
    """One REST endpoint."""

    model_config = {"frozen": True, "extra": "forbid"}

    method: str = Field(..., description="HTTP method")
    path: str = Field(..., description="Path relative to the base URL")
    auth_required: bool = Field(default=False, description="Request must be signed")

    @field_validator("method")
    @classmethod
    def _upper(cls, value: str) -> str:
        value = value.upper()
        if value not in ("GET", "POST", "PUT", "DELETE"):
            raise ValueError(f"Unsupported HTTP method: {value}")
        return value

    @field_validator("path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"


def _public(path: str) -> Endpoint:
    return Endpoint(method="GET", path=path)


def _get(path: str) -> Endpoint:
    return Endpoint(method="GET", path=path, auth_required=True)


def _post(path: str) -> Endpoint:
    return Endpoint(method="POST", path=path, auth_required=True)


class Market:
    """Public market data."""

    TIME = _public("/v5/market/time")
    KLINE = _public("/v5/market/kline")
    MARK_PRICE_KLINE = _public("/v5/market/mark-price-kline")
    INDEX_PRICE_KLINE = _public("/v5/market/index-price-kline")
    PREMIUM_INDEX_PRICE_KLINE = _public("/v5/market/premium-index-price-kline")
    INSTRUMENTS_INFO = _public("/v5/market/instruments-info")
    ORDERBOOK = _public("/v5/market/orderbook")
    TICKERS = _public("/v5/market/tickers")
    FUNDING_RATE_HISTORY = _public("/v5/market/funding/history")
    RECENT_TRADES = _public("/v5/market/recent-trade")
    OPEN_INTEREST = _public("/v5/market/open-interest")
    HISTORICAL_VOLATILITY = _public("/v5/market/historical-volatility")
    INSURANCE = _public("/v5/market/insurance")
    RISK_LIMIT = _public("/v5/market/risk-limit")
    DELIVERY_PRICE = _public("/v5/market/delivery-price")
    LONG_SHORT_RATIO = _public("/v5/market/account-ratio")


class Trade:
    """Order entry and order queries."""

    PLACE = _post("/v5/order/create")
    AMEND = _post("/v5/order/amend")
    CANCEL = _post("/v5/order/cancel")
    CANCEL_ALL = _post("/v5/order/cancel-all")
    OPEN_ORDERS = _get("/v5/order/realtime")
    HISTORY = _get("/v5/order/history")
    EXECUTIONS = _get("/v5/execution/list")
    BATCH_PLACE = _post("/v5/order/create-batch")
    BATCH_AMEND = _post("/v5/order/amend-batch")
    BATCH_CANCEL = _post("/v5/order/cancel-batch")
    SPOT_BORROW_CHECK = _get("/v5/order/spot-borrow-check")
    DISCONNECTED_CANCEL_ALL = _post("/v5/order/disconnected-cancel-all")


class Position:
    """Position queries and settings."""

    LIST = _get("/v5/position/list")
    SET_LEVERAGE = _post("/v5/position/set-leverage")
    SWITCH_ISOLATED = _post("/v5/position/switch-isolated")
    SWITCH_MODE = _post("/v5/position/switch-mode")
    SET_RISK_LIMIT = _post("/v5/position/set-risk-limit")
    TRADING_STOP = _post("/v5/position/trading-stop")
    SET_AUTO_ADD_MARGIN = _post("/v5/position/set-auto-add-margin")
    ADD_MARGIN = _post("/v5/position/add-margin")
    CLOSED_PNL = _get("/v5/position/closed-pnl")
    MOVE_POSITIONS = _post("/v5/position/move-positions")
    MOVE_HISTORY = _get("/v5/position/move-history")


class Account:
    """Unified account queries and settings."""

    WALLET_BALANCE = _get("/v5/account/wallet-balance")
    UPGRADE_TO_UTA = _post("/v5/account/upgrade-to-uta")
    BORROW_HISTORY = _get("/v5/account/borrow-history")
    QUICK_REPAYMENT = _post("/v5/account/quick-repayment")
    SET_COLLATERAL = _post("/v5/account/set-collateral-switch")
    BATCH_SET_COLLATERAL = _post("/v5/account/set-collateral-switch-batch")
    COLLATERAL_INFO = _get("/v5/account/collateral-info")
    COIN_GREEKS = _get("/v5/asset/coin-greeks")
    FEE_RATE = _get("/v5/account/fee-rate")
    INFO = _get("/v5/account/info")
    TRANSACTION_LOG = _get("/v5/account/transaction-log")
    SMP_GROUP = _get("/v5/account/smp-group")
    SET_MARGIN_MODE = _post("/v5/account/set-margin-mode")
    SET_HEDGING_MODE = _post("/v5/account/set-hedging-mode")


class Asset:
    """Transfers, deposits and withdrawals."""

    COIN_EXCHANGE_RECORD = _get("/v5/asset/exchange/order-record")
    DELIVERY_RECORD = _get("/v5/asset/delivery-record")
    SETTLEMENT_RECORD = _get("/v5/asset/settlement-record")
    ASSET_INFO = _get("/v5/asset/transfer/query-asset-info")
    ACCOUNT_COINS_BALANCE = _get("/v5/asset/transfer/query-account-coins-balance")
    TRANSFER_COIN_LIST = _get("/v5/asset/transfer/query-transfer-coin-list")
    INTER_TRANSFER = _post("/v5/asset/transfer/inter-transfer")
    INTER_TRANSFER_LIST = _get("/v5/asset/transfer/query-inter-transfer-list")
    SUB_MEMBER_LIST = _get("/v5/asset/transfer/query-sub-member-list")
    UNIVERSAL_TRANSFER = _post("/v5/asset/transfer/universal-transfer")
    UNIVERSAL_TRANSFER_LIST = _get("/v5/asset/transfer/query-universal-transfer-list")
    DEPOSIT_ALLOWED_LIST = _get("/v5/asset/deposit/query-allowed-list")
    DEPOSIT_RECORD = _get("/v5/asset/deposit/query-record")
    SUB_MEMBER_DEPOSIT_ADDRESS = _get("/v5/asset/deposit/query-sub-member-address")
    COIN_INFO = _get("/v5/asset/coin/query-info")
    WITHDRAW = _post("/v5/asset/withdraw/create")
    CANCEL_WITHDRAW = _post("/v5/asset/withdraw/cancel")
