from pricetrend.config import Settings
from pricetrend.domain.models import Bar, QueryRange
from pricetrend.indicators import moving_average
from pricetrend.ranges import resolve
from pricetrend.service import load_history

__version__ = "0.1.0"

__all__ = ["Bar", "QueryRange", "Settings", "load_history", "moving_average", "resolve"]
