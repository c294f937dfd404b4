from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.campus.models import Base, JSONType


class DiscountCode(Base):
    __tablename__ = "discount_codes"
    __table_args__ = (
        Index("idx_discount_codes_campaign", "is_campaign"),
        Index("idx_discount_codes_referral", "is_referral"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # always upper-case
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False, default=Decimal("0"))
    discount_type: Mapped[str] = mapped_column(String(16), nullable=False, default="percentage")  # percentage, fixed
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    applicable_course_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)  # [] = every course
    is_referral: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Usage
    max_usage: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Campaign presentation
    is_campaign: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    campaign_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    campaign_name_en: Mapped[str | None] = mapped_column(String(255), nullable=True)
    campaign_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    campaign_description_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    campaign_cover_image: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    campaign_slug: Mapped[str | None] = mapped_column(String(200), nullable=True, unique=True)

    # Gift-card style balance
    has_balance_limit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    remaining_balance: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2), nullable=True)
    initial_balance: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2), nullable=True)

    # Partner attribution
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    influencer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    commission: Mapped[Decimal | None] = mapped_column(Numeric(precision=5, scale=2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class DiscountRedemption(Base):
    __tablename__ = "discount_redemptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    discount_code_id: Mapped[int] = mapped_column(ForeignKey("discount_codes.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    course_id: Mapped[int | None] = mapped_column(ForeignKey("courses.id", ondelete="SET NULL"), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    discount_code: Mapped[DiscountCode] = relationship(lazy="selectin")
