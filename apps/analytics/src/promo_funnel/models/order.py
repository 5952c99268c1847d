from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from promo_funnel.db.base import Base


class Order(Base):
    """Checkout order as exposed to analytics; written by the checkout pipeline."""

    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_created_at", "created_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_number = Column(String, nullable=False, unique=True)
    customer_id = Column(UUID(as_uuid=True), nullable=True)
    promo_code = Column(String(64), nullable=True)
    promo_discount = Column(Numeric(12, 2), nullable=False, server_default="0")
    subtotal = Column(Numeric(12, 2), nullable=False, server_default="0")
    total_amount = Column(Numeric(12, 2), nullable=False, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


__all__ = ["Order"]
