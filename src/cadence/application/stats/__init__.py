# Application Stats Package
from .metrics_calculator import AnalyticsCalculator, retention_rate
from .service import AnalyticsService

__all__ = ["AnalyticsCalculator", "AnalyticsService", "retention_rate"]
