"""Promo code funnel analytics services."""

from .aggregator import PromoCodeAggregator, PromoCodePerformance, build_performance
from .backfill import PromoCodeAnalyticsBackfillJob, PromoCodeBackfillSummary
from .cache import PromoCodePerformanceCacheStore
from .recorder import PromoCodeEventRecorder, RecordedPromoCodeEvent
from .reporting import PromoCodeReportingService
from .schema import ensure_analytics_tables, missing_analytics_tables
from .tracking import PromoCodeTrackingService, resolve_promo_code
from .usage import PromoCodeUsageReconciler

__all__ = [
    "PromoCodeAggregator",
    "PromoCodeAnalyticsBackfillJob",
    "PromoCodeBackfillSummary",
    "PromoCodeEventRecorder",
    "PromoCodePerformance",
    "PromoCodePerformanceCacheStore",
    "PromoCodeReportingService",
    "PromoCodeTrackingService",
    "PromoCodeUsageReconciler",
    "RecordedPromoCodeEvent",
    "build_performance",
    "ensure_analytics_tables",
    "missing_analytics_tables",
    "resolve_promo_code",
]
