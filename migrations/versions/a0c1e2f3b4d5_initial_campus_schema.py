"""Initial campus schema: users/RBAC, audit, courses, events, enrollment, progress,
certificates, discounts and contact.

Revision ID: a0c1e2f3b4d5
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "a0c1e2f3b4d5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # ---------- Users / RBAC / audit ----------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("locale", sa.String(8), nullable=False, server_default="tr"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "role_id"),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("permission_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("role_id", "permission_id"),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
    )

    # ---------- Courses ----------
    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(200), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("level", sa.String(32), nullable=True),
        sa.Column("duration", sa.String(64), nullable=True),
        sa.Column("instructor_name", sa.String(255), nullable=True),
        sa.Column("instructor_description", sa.Text(), nullable=True),
        sa.Column("instructor_email", sa.String(320), nullable=True),
        sa.Column("instructor_linkedin", sa.String(512), nullable=True),
        sa.Column("instructor_image_url", sa.String(1024), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("original_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("early_bird_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("early_bird_deadline", sa.DateTime(), nullable=True),
        sa.Column("course_type", sa.String(16), nullable=False, server_default="online"),
        sa.Column("live_start_date", sa.DateTime(), nullable=True),
        sa.Column("live_end_date", sa.DateTime(), nullable=True),
        sa.Column("live_timezone", sa.String(64), nullable=True),
        sa.Column("meeting_url", sa.String(1024), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("registration_deadline", sa.DateTime(), nullable=True),
        sa.Column("is_registration_open", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("prerequisites", sa.Text(), nullable=True),
        sa.Column("target_audience", sa.Text(), nullable=True),
        sa.Column("learning_outcomes", sa.Text(), nullable=True),
        sa.Column("thumbnail_url", sa.String(1024), nullable=True),
        sa.Column("banner_url", sa.String(1024), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("idx_courses_active", "courses", ["is_active"])
    op.create_index("idx_courses_type", "courses", ["course_type"])

    op.create_table(
        "course_sections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_course_sections_course", "course_sections", ["course_id", "order_index"])

    op.create_table(
        "lessons",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("lesson_type", sa.String(16), nullable=False, server_default="video"),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["section_id"], ["course_sections.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_lessons_section", "lessons", ["section_id", "order_index"])

    op.create_table(
        "lesson_videos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lesson_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("vimeo_id", sa.String(64), nullable=True),
        sa.Column("video_url", sa.String(1024), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_lesson_videos_lesson_id", "lesson_videos", ["lesson_id"])

    op.create_table(
        "lesson_notes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lesson_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_lesson_notes_lesson_id", "lesson_notes", ["lesson_id"])

    op.create_table(
        "lesson_quizzes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lesson_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("quick_type", sa.String(32), nullable=False, server_default="quiz"),
        sa.Column("config", JSONType, nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_lesson_quizzes_lesson_id", "lesson_quizzes", ["lesson_id"])

    # ---------- Events ----------
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(200), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("organizer_name", sa.String(255), nullable=True),
        sa.Column("organizer_email", sa.String(320), nullable=True),
        sa.Column("organizer_linkedin", sa.String(512), nullable=True),
        sa.Column("organizer_image_url", sa.String(1024), nullable=True),
        sa.Column("organizer_bio", sa.Text(), nullable=True),
        sa.Column("event_type", sa.String(32), nullable=False, server_default="workshop"),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("tags", JSONType, nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="Europe/Istanbul"),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("location_name", sa.String(255), nullable=True),
        sa.Column("location_address", sa.Text(), nullable=True),
        sa.Column("meeting_url", sa.String(1024), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("max_attendees", sa.Integer(), nullable=True),
        sa.Column("registration_deadline", sa.DateTime(), nullable=True),
        sa.Column("is_registration_open", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("thumbnail_url", sa.String(1024), nullable=True),
        sa.Column("banner_url", sa.String(1024), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="upcoming"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("certificate_description", sa.Text(), nullable=True),
        sa.Column("certificate_template_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("idx_events_start", "events", ["start_date"])
    op.create_index("idx_events_status", "events", ["status"])

    op.create_table(
        "event_sections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_event_sections_event", "event_sections", ["event_id", "order_index"])

    op.create_table(
        "event_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("session_type", sa.String(32), nullable=False, server_default="presentation"),
        sa.Column("content_url", sa.String(1024), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("speaker", sa.String(255), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["section_id"], ["event_sections.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_event_sessions_section_id", "event_sessions", ["section_id"])

    # ---------- Enrollment ----------
    op.create_table(
        "course_enrollments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("enrolled_at", sa.DateTime(), nullable=False),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("welcome_shown", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "course_id", name="uq_course_enrollments_user_course"),
    )
    op.create_index("ix_course_enrollments_user_id", "course_enrollments", ["user_id"])
    op.create_index("ix_course_enrollments_course_id", "course_enrollments", ["course_id"])

    op.create_table(
        "event_enrollments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("enrolled_at", sa.DateTime(), nullable=False),
        sa.Column("attendance_status", sa.String(16), nullable=False, server_default="registered"),
        sa.Column("welcome_shown", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "event_id", name="uq_event_enrollments_user_event"),
    )
    op.create_index("ix_event_enrollments_user_id", "event_enrollments", ["user_id"])
    op.create_index("ix_event_enrollments_event_id", "event_enrollments", ["event_id"])

    # ---------- Progress ----------
    op.create_table(
        "lesson_progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("lesson_id", sa.Integer(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("watch_time_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_position_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("video_watch_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_video_watch_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("quiz_score", sa.Integer(), nullable=True),
        sa.Column("quiz_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_quiz_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lesson_id"], ["lessons.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "lesson_id", name="uq_lesson_progress_user_lesson"),
    )
    op.create_index("ix_lesson_progress_user_id", "lesson_progress", ["user_id"])
    op.create_index("ix_lesson_progress_lesson_id", "lesson_progress", ["lesson_id"])

    op.create_table(
        "event_section_progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("section_id", sa.Integer(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["section_id"], ["event_sections.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "section_id", name="uq_event_section_progress_user_section"),
    )
    op.create_index("ix_event_section_progress_user_id", "event_section_progress", ["user_id"])
    op.create_index("ix_event_section_progress_event_id", "event_section_progress", ["event_id"])

    # ---------- Certificates ----------
    op.create_table(
        "certificates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("certificate_number", sa.String(64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=True),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("recipient_name", sa.String(255), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("instructor_name", sa.String(255), nullable=True),
        sa.Column("duration", sa.String(64), nullable=True),
        sa.Column("organization_name", sa.String(255), nullable=True),
        sa.Column("organization_description", sa.Text(), nullable=True),
        sa.Column("instructor_bio", sa.Text(), nullable=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("template_id", sa.String(64), nullable=True),
        sa.Column("certificate_url", sa.String(1024), nullable=False),
        sa.Column("metadata_json", JSONType, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("issued_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("certificate_number"),
    )
    op.create_index("idx_certificates_user", "certificates", ["user_id"])
    op.create_index("idx_certificates_course", "certificates", ["course_id"])
    op.create_index("idx_certificates_event", "certificates", ["event_id"])

    op.create_table(
        "certificate_exceptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("user_id", "item_type", "item_id", name="uq_certificate_exceptions_user_item"),
    )

    # ---------- Discounts ----------
    op.create_table(
        "discount_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("discount_type", sa.String(16), nullable=False, server_default="percentage"),
        sa.Column("valid_until", sa.DateTime(), nullable=False),
        sa.Column("applicable_course_ids", JSONType, nullable=False),
        sa.Column("is_referral", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("max_usage", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("used_by_user_id", sa.Integer(), nullable=True),
        sa.Column("used_at", sa.DateTime(), nullable=True),
        sa.Column("is_campaign", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("campaign_name", sa.String(255), nullable=True),
        sa.Column("campaign_name_en", sa.String(255), nullable=True),
        sa.Column("campaign_description", sa.Text(), nullable=True),
        sa.Column("campaign_description_en", sa.Text(), nullable=True),
        sa.Column("campaign_cover_image", sa.String(1024), nullable=True),
        sa.Column("campaign_slug", sa.String(200), nullable=True),
        sa.Column("has_balance_limit", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("remaining_balance", sa.Numeric(10, 2), nullable=True),
        sa.Column("initial_balance", sa.Numeric(10, 2), nullable=True),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        sa.Column("influencer_id", sa.String(64), nullable=True),
        sa.Column("commission", sa.Numeric(5, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["used_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("code"),
        sa.UniqueConstraint("campaign_slug"),
    )
    op.create_index("idx_discount_codes_campaign", "discount_codes", ["is_campaign"])
    op.create_index("idx_discount_codes_referral", "discount_codes", ["is_referral"])

    op.create_table(
        "discount_redemptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("discount_code_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("course_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["discount_code_id"], ["discount_codes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_discount_redemptions_discount_code_id", "discount_redemptions", ["discount_code_id"])

    # ---------- Contact ----------
    op.create_table(
        "contact_submissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("first_name", sa.String(128), nullable=False),
        sa.Column("last_name", sa.String(128), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("locale", sa.String(8), nullable=False, server_default="tr"),
        sa.Column("honeypot", sa.String(255), nullable=True),
        sa.Column("form_timestamp", sa.BigInteger(), nullable=True),
        sa.Column("browser_info", sa.String(255), nullable=True),
        sa.Column("operating_system", sa.String(255), nullable=True),
        sa.Column("device_type", sa.String(64), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="new"),
        sa.Column("is_spam", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_contact_submissions_status", "contact_submissions", ["status"])
    op.create_index("idx_contact_submissions_created", "contact_submissions", ["created_at"])


def downgrade() -> None:
    for table in (
        "contact_submissions",
        "discount_redemptions",
        "discount_codes",
        "certificate_exceptions",
        "certificates",
        "event_section_progress",
        "lesson_progress",
        "event_enrollments",
        "course_enrollments",
        "event_sessions",
        "event_sections",
        "events",
        "lesson_quizzes",
        "lesson_notes",
        "lesson_videos",
        "lessons",
        "course_sections",
        "courses",
        "audit_events",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)
