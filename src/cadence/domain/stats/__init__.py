# Domain Stats Package
from .models import AnalyticsSnapshot, PeriodStats

__all__ = ["AnalyticsSnapshot", "PeriodStats"]
