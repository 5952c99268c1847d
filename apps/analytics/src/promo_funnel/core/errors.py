"""Exception hierarchy for promo code analytics."""

from __future__ import annotations

from typing import Sequence
from uuid import UUID


class PromoAnalyticsError(RuntimeError):
    """Base exception for promo analytics failures."""


class InvalidPromoCodeEventError(PromoAnalyticsError):
    """Raised when an event type or validation result is not recognised."""

    def __init__(self, message: str, *, value: object | None = None) -> None:
        super().__init__(message)
        self.value = value


class PromoCodeNotFoundError(PromoAnalyticsError):
    """Raised when a promo code cannot be resolved by its code string."""

    def __init__(self, code: str) -> None:
        super().__init__(f"Promo code {code!r} not found")
        self.code = code


class DuplicateRedeemEventError(PromoAnalyticsError):
    """Raised when a second redeem event is written for the same order."""

    def __init__(self, order_id: UUID | None, *, promo_code_id: UUID | None = None) -> None:
        super().__init__(f"Order {order_id} already has a redeem event")
        self.order_id = order_id
        self.promo_code_id = promo_code_id


class AnalyticsTablesMissingError(PromoAnalyticsError):
    """Raised when the analytics tables have not been created yet."""

    def __init__(self, missing_tables: Sequence[str]) -> None:
        self.missing_tables = list(missing_tables)
        self.remediation = (
            "Create the promo analytics tables (promo_code_events, "
            "promo_code_performance_cache) before running the backfill."
        )
        super().__init__(
            f"Analytics tables missing: {', '.join(self.missing_tables)}. {self.remediation}"
        )


class BackfillIOError(PromoAnalyticsError):
    """Raised when the backfill cannot read source rows or write events."""

    def __init__(self, message: str, *, stage: str, order_id: UUID | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.order_id = order_id


class UnsupportedDialectError(PromoAnalyticsError):
    """Raised when an atomic upsert is requested on an unsupported database."""

    def __init__(self, dialect_name: str) -> None:
        super().__init__(f"Atomic upsert is not supported for dialect {dialect_name!r}")
        self.dialect_name = dialect_name


__all__ = [
    "AnalyticsTablesMissingError",
    "BackfillIOError",
    "DuplicateRedeemEventError",
    "InvalidPromoCodeEventError",
    "PromoAnalyticsError",
    "PromoCodeNotFoundError",
    "UnsupportedDialectError",
]
