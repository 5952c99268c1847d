from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from promo_funnel.db.base import Base


class PromoCodeStatusEnum(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


class PromoCode(Base):
    """Promo code owned by the checkout domain; analytics only rewrites ``used_count``."""

    __tablename__ = "promo_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(64), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    status = Column(
        SqlEnum(
            PromoCodeStatusEnum,
            name="promo_code_status_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=PromoCodeStatusEnum.ACTIVE,
        server_default=PromoCodeStatusEnum.ACTIVE.value,
    )
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


__all__ = ["PromoCode", "PromoCodeStatusEnum"]
