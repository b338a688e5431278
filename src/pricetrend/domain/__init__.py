from pricetrend.domain.models import Bar, QueryRange, SyncResult

__all__ = ["Bar", "QueryRange", "SyncResult"]
