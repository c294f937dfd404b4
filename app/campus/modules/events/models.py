from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.campus.models import Base, JSONType


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_start", "start_date"),
        Index("idx_events_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Organizer
    organizer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    organizer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    organizer_linkedin: Mapped[str | None] = mapped_column(String(512), nullable=True)
    organizer_image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    organizer_bio: Mapped[str | None] = mapped_column(Text, nullable=True)

    event_type: Mapped[str] = mapped_column(String(32), nullable=False, default="workshop")
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tags: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    # Schedule
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Europe/Istanbul")
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Venue
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    meeting_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Pricing / capacity
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2), nullable=True)
    max_attendees: Mapped[int | None] = mapped_column(Integer, nullable=True)
    registration_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    is_registration_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    thumbnail_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    banner_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="upcoming")  # upcoming, ongoing, completed, cancelled
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Certificate overrides
    certificate_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    certificate_template_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    sections: Mapped[list["EventSection"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventSection.order_index",
        lazy="selectin",
    )


class EventSection(Base):
    __tablename__ = "event_sections"
    __table_args__ = (Index("idx_event_sections_event", "event_id", "order_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    event: Mapped[Event] = relationship(back_populates="sections", lazy="selectin")
    sessions: Mapped[list["EventSession"]] = relationship(
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="EventSession.order_index",
        lazy="selectin",
    )


class EventSession(Base):
    __tablename__ = "event_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    section_id: Mapped[int] = mapped_column(ForeignKey("event_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # video, presentation, workshop, discussion, break, networking
    session_type: Mapped[str] = mapped_column(String(32), nullable=False, default="presentation")
    content_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    speaker: Mapped[str | None] = mapped_column(String(255), nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    section: Mapped[EventSection] = relationship(back_populates="sessions")
