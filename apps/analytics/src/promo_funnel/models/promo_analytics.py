"""Promo code funnel event log and derived performance cache."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from promo_funnel.db.base import Base


class PromoCodeEventType(str, Enum):
    VIEW = "view"
    VALIDATE = "validate"
    APPLY = "apply"
    REDEEM = "redeem"
    ABANDON = "abandon"


class PromoCodeValidationResult(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


_REDEEM_ONLY = text("event_type = 'redeem'")


class PromoCodeEvent(Base):
    """Immutable funnel event; rows are appended and never updated."""

    __tablename__ = "promo_code_events"
    __table_args__ = (
        Index("ix_promo_code_events_promo_code_id", "promo_code_id"),
        Index("ix_promo_code_events_event_type", "event_type"),
        Index("ix_promo_code_events_created_at", "created_at"),
        Index(
            "uq_promo_code_events_redeem_order",
            "order_id",
            unique=True,
            postgresql_where=_REDEEM_ONLY,
            sqlite_where=_REDEEM_ONLY,
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    promo_code_id = Column(
        UUID(as_uuid=True),
        ForeignKey("promo_codes.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type = Column(
        SqlEnum(PromoCodeEventType, name="promo_code_event_type_enum", values_callable=_enum_values),
        nullable=False,
    )
    validation_result = Column(
        SqlEnum(
            PromoCodeValidationResult,
            name="promo_code_validation_result_enum",
            values_callable=_enum_values,
        ),
        nullable=True,
    )
    failure_reason = Column(Text, nullable=True)
    customer_id = Column(UUID(as_uuid=True), nullable=True)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    cart_value = Column(Numeric(12, 2), nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    revenue = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referrer_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PromoCodePerformanceSnapshot(Base):
    """Latest aggregate metrics per promo code, fully rebuilt from the event log."""

    # meta: cache-layer: persistent
    __tablename__ = "promo_code_performance_cache"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    promo_code_id = Column(
        UUID(as_uuid=True),
        ForeignKey("promo_codes.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    total_views = Column(Integer, nullable=False, default=0)
    total_validations = Column(Integer, nullable=False, default=0)
    successful_validations = Column(Integer, nullable=False, default=0)
    failed_validations = Column(Integer, nullable=False, default=0)
    total_applications = Column(Integer, nullable=False, default=0)
    total_redemptions = Column(Integer, nullable=False, default=0)
    total_abandons = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Numeric(12, 2), nullable=False, default=0)
    total_discount_given = Column(Numeric(12, 2), nullable=False, default=0)
    avg_order_value = Column(Numeric(12, 2), nullable=False, default=0)
    unique_customers = Column(Integer, nullable=False, default=0)
    conversion_rate = Column(Numeric(9, 4), nullable=False, default=0)
    validation_success_rate = Column(Numeric(9, 4), nullable=False, default=0)
    redemption_rate = Column(Numeric(9, 4), nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), nullable=False)


__all__ = [
    "PromoCodeEvent",
    "PromoCodeEventType",
    "PromoCodePerformanceSnapshot",
    "PromoCodeValidationResult",
]
