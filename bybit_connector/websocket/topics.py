"""
Topic name builders for Bybit V5 streams.

Public (per category connection):
    orderbook.{depth}.{symbol}, publicTrade.{symbol}, tickers.{symbol},
    kline.{interval}.{symbol}, allLiquidation.{symbol}

Private (private connection):
    position, execution, execution.fast, order, wallet; the first three
    and order accept a category suffix.

Example:
    >>> orderbook(50, "btcusdt")
    'orderbook.50.BTCUSDT'
    >>> order("linear")
    'order.linear'
"""

from typing import Optional, Union

ORDERBOOK_DEPTHS = (1, 25, 50, 100, 200, 500, 1000)
KLINE_INTERVALS = ("1", "3", "5", "15", "30", "60", "120", "240", "360", "720", "D", "W", "M")


def _symbol(symbol: str) -> str:
    symbol = symbol.strip().upper()
    if not symbol:
        raise ValueError("symbol must be non-empty")
    return symbol


def _with_category(root: str, category: Optional[str]) -> str:
    return f"{root}.{category.lower()}" if category else root


def orderbook(depth: int, symbol: str) -> str:
    """Order book topic. Depth must be one Bybit publishes."""
    if depth not in ORDERBOOK_DEPTHS:
        raise ValueError(f"Unsupported orderbook depth {depth}; expected one of {ORDERBOOK_DEPTHS}")
    return f"orderbook.{depth}.{_symbol(symbol)}"


def public_trade(symbol: str) -> str:
    return f"publicTrade.{_symbol(symbol)}"


def tickers(symbol: str) -> str:
    return f"tickers.{_symbol(symbol)}"


def kline(interval: Union[str, int], symbol: str) -> str:
    """Candlestick topic, e.g. kline("5", "BTCUSDT") or kline("D", "BTCUSDT")."""
    interval = str(interval).upper()
    if interval not in KLINE_INTERVALS:
        raise ValueError(f"Unsupported kline interval {interval}")
    return f"kline.{interval}.{_symbol(symbol)}"


def liquidation(symbol: str) -> str:
    return f"allLiquidation.{_symbol(symbol)}"


def position(category: Optional[str] = None) -> str:
    return _with_category("position", category)


def execution(category: Optional[str] = None) -> str:
    return _with_category("execution", category)


def fast_execution(category: Optional[str] = None) -> str:
    return _with_category("execution.fast", category)


def order(category: Optional[str] = None) -> str:
    return _with_category("order", category)


def wallet() -> str:
    return "wallet"
