from pricetrend.data.base import MarketDataProvider, frame_to_bars
from pricetrend.data.synthetic import SyntheticConfig, SyntheticProvider
from pricetrend.data.yfinance_provider import YFinanceProvider

__all__ = [
    "MarketDataProvider",
    "SyntheticConfig",
    "SyntheticProvider",
    "YFinanceProvider",
    "frame_to_bars",
]
