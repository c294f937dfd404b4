from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.campus.models import Base, JSONType


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (
        Index("idx_courses_active", "is_active"),
        Index("idx_courses_type", "course_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    level: Mapped[str | None] = mapped_column(String(32), nullable=True)  # Beginner, Intermediate, Advanced, Expert
    duration: Mapped[str | None] = mapped_column(String(64), nullable=True)  # free text, e.g. "6 hafta"

    # Instructor
    instructor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    instructor_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    instructor_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    instructor_linkedin: Mapped[str | None] = mapped_column(String(512), nullable=True)
    instructor_image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False, default=Decimal("0"))
    original_price: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2), nullable=True)
    early_bird_price: Mapped[Decimal | None] = mapped_column(Numeric(precision=10, scale=2), nullable=True)
    early_bird_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Delivery
    course_type: Mapped[str] = mapped_column(String(16), nullable=False, default="online")  # online, live, hybrid
    live_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    live_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    live_timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    meeting_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    max_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    registration_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    is_registration_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Marketing copy (newline separated lists)
    prerequisites: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_audience: Mapped[str | None] = mapped_column(Text, nullable=True)
    learning_outcomes: Mapped[str | None] = mapped_column(Text, nullable=True)

    thumbnail_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    banner_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    sections: Mapped[list["CourseSection"]] = relationship(
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="CourseSection.order_index",
        lazy="selectin",
    )


class CourseSection(Base):
    __tablename__ = "course_sections"
    __table_args__ = (Index("idx_course_sections_course", "course_id", "order_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    course: Mapped[Course] = relationship(back_populates="sections")
    lessons: Mapped[list["Lesson"]] = relationship(
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="Lesson.order_index",
        lazy="selectin",
    )


class Lesson(Base):
    __tablename__ = "lessons"
    __table_args__ = (Index("idx_lessons_section", "section_id", "order_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    section_id: Mapped[int] = mapped_column(ForeignKey("course_sections.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    lesson_type: Mapped[str] = mapped_column(String(16), nullable=False, default="video")  # video, notes, quick, mixed
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    section: Mapped[CourseSection] = relationship(back_populates="lessons", lazy="selectin")
    videos: Mapped[list["LessonVideo"]] = relationship(
        cascade="all, delete-orphan", order_by="LessonVideo.order_index", lazy="selectin"
    )
    notes: Mapped[list["LessonNote"]] = relationship(
        cascade="all, delete-orphan", order_by="LessonNote.order_index", lazy="selectin"
    )
    quizzes: Mapped[list["LessonQuiz"]] = relationship(
        cascade="all, delete-orphan", order_by="LessonQuiz.order_index", lazy="selectin"
    )

    @property
    def course_id(self) -> int:
        return self.section.course_id


class LessonVideo(Base):
    __tablename__ = "lesson_videos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vimeo_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    video_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class LessonNote(Base):
    __tablename__ = "lesson_notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class LessonQuiz(Base):
    """
    Interactive "quick" content attached to a lesson.
    config: {"passing_score": 70, "questions": [{"id", "prompt", "options": [...], "correct": <index>}]}
    """

    __tablename__ = "lesson_quizzes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quick_type: Mapped[str] = mapped_column(String(32), nullable=False, default="quiz")  # quiz, interactive, game, simulation
    config: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    lesson: Mapped[Lesson] = relationship(lazy="selectin", overlaps="quizzes")
