"""SQLAlchemy models package."""

from .order import Order  # noqa: F401
from .promo_code import PromoCode, PromoCodeStatusEnum  # noqa: F401
from .promo_analytics import (  # noqa: F401
    PromoCodeEvent,
    PromoCodeEventType,
    PromoCodePerformanceSnapshot,
    PromoCodeValidationResult,
)
