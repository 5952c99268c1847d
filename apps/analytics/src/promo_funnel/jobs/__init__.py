"""Batch job entrypoints for promo analytics."""

__all__ = ["promo_code_backfill"]
