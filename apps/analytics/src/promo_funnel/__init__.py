"""Promo code funnel analytics: event log, performance cache and backfill."""

__version__ = "0.1.0"
