from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from app.campus.audit import record_event
from app.campus.utils import parse_bool, parse_datetime, parse_decimal, parse_int, slugify

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.campus.models import User
    from app.campus.modules.courses.models import Course, CourseSection, Lesson, LessonNote, LessonQuiz, LessonVideo


VALID_LEVELS = ("Beginner", "Intermediate", "Advanced", "Expert")
VALID_COURSE_TYPES = ("online", "live", "hybrid")
VALID_LESSON_TYPES = ("video", "notes", "quick", "mixed")
VALID_QUICK_TYPES = ("quiz", "interactive", "game", "simulation")
DEFAULT_PASSING_SCORE = 70

# Quiz lessons carry "quick" content; "quiz" is accepted for older rows.
QUIZ_LESSON_TYPES = ("quick", "quiz")


# ---------- Queries ----------
def list_courses(s: "Session", *, course_type: str | None = None, level: str | None = None, q: str | None = None) -> list["Course"]:
    from app.campus.modules.courses.models import Course

    query = s.query(Course).filter(Course.is_active.is_(True))
    if course_type:
        query = query.filter(Course.course_type == course_type)
    if level:
        query = query.filter(Course.level == level)
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(
            (Course.title.ilike(like)) | (Course.description.ilike(like)) | (Course.instructor_name.ilike(like))
        )
    return query.order_by(Course.created_at.desc(), Course.id.desc()).all()


def get_course_by_slug(s: "Session", slug: str) -> "Course | None":
    from app.campus.modules.courses.models import Course

    return s.query(Course).filter(Course.slug == slug, Course.is_active.is_(True)).one_or_none()


def course_outline(course: "Course") -> list[dict[str, Any]]:
    """Active sections in order, each with its active lessons in order."""
    outline = []
    for section in sorted(course.sections, key=lambda x: (x.order_index, x.id)):
        if not section.is_active:
            continue
        lessons = [l for l in sorted(section.lessons, key=lambda x: (x.order_index, x.id)) if l.is_active]
        outline.append({"section": section, "lessons": lessons})
    return outline


def active_lessons(s: "Session", course_id: int) -> list["Lesson"]:
    from app.campus.modules.courses.models import CourseSection, Lesson

    return (
        s.query(Lesson)
        .join(CourseSection, Lesson.section_id == CourseSection.id)
        .filter(CourseSection.course_id == course_id)
        .filter(CourseSection.is_active.is_(True), Lesson.is_active.is_(True))
        .order_by(CourseSection.order_index, CourseSection.id, Lesson.order_index, Lesson.id)
        .all()
    )


def lesson_content(lesson: "Lesson") -> dict[str, list]:
    return {
        "videos": sorted(lesson.videos, key=lambda x: (x.order_index, x.id)),
        "notes": sorted(lesson.notes, key=lambda x: (x.order_index, x.id)),
        "quicks": sorted(lesson.quizzes, key=lambda x: (x.order_index, x.id)),
    }


def passing_score_for(config: dict | None) -> int:
    value = (config or {}).get("passing_score")
    try:
        return int(value) if value is not None else DEFAULT_PASSING_SCORE
    except (TypeError, ValueError):
        return DEFAULT_PASSING_SCORE


def public_quiz_config(config: dict | None) -> dict:
    """Quiz config for the player: same shape, answer keys stripped."""
    cfg = dict(config or {})
    cfg["passing_score"] = passing_score_for(cfg)
    cfg["questions"] = [
        {k: v for k, v in q.items() if k != "correct"}
        for q in (cfg.get("questions") or [])
        if isinstance(q, dict)
    ]
    return cfg


# ---------- Pricing / registration ----------
def is_early_bird_active(course: "Course", now: datetime | None = None) -> bool:
    if course.early_bird_price is None or course.early_bird_deadline is None:
        return False
    return (now or datetime.utcnow()) < course.early_bird_deadline


def active_price(course: "Course", now: datetime | None = None) -> Decimal:
    if is_early_bird_active(course, now):
        return Decimal(course.early_bird_price)
    return Decimal(course.price or 0)


def early_bird_time_remaining(course: "Course", now: datetime | None = None) -> tuple[int, int, int] | None:
    """(days, hours, minutes) until the early-bird deadline, or None when not active."""
    now = now or datetime.utcnow()
    if not is_early_bird_active(course, now):
        return None
    remaining = course.early_bird_deadline - now
    total_minutes = int(remaining.total_seconds() // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    return days, hours, minutes


def registration_state(course: "Course", enrolled_count: int, now: datetime | None = None) -> str:
    """open | closed | deadline_passed | full. Self-paced online courses are always open."""
    now = now or datetime.utcnow()
    if not course.is_active:
        return "closed"
    if course.course_type == "online":
        return "open"
    if not course.is_registration_open:
        return "closed"
    if course.registration_deadline and now > course.registration_deadline:
        return "deadline_passed"
    if course.max_participants is not None and enrolled_count >= course.max_participants:
        return "full"
    return "open"


# ---------- Admin: courses ----------
def validate_course_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    level = (payload.get("level") or "").strip()
    if level and level not in VALID_LEVELS:
        errors.append(f"Invalid level. Must be one of: {', '.join(VALID_LEVELS)}")
    course_type = (payload.get("course_type") or "online").strip()
    if course_type not in VALID_COURSE_TYPES:
        errors.append(f"Invalid course type. Must be one of: {', '.join(VALID_COURSE_TYPES)}")
    for key in ("price", "original_price", "early_bird_price"):
        try:
            value = parse_decimal(payload.get(key))
        except ValueError:
            errors.append(f"{key.replace('_', ' ').capitalize()} must be a number.")
            continue
        if value is not None and value < 0:
            errors.append(f"{key.replace('_', ' ').capitalize()} cannot be negative.")
    for key in ("early_bird_deadline", "live_start_date", "live_end_date", "registration_deadline"):
        try:
            parse_datetime(payload.get(key))
        except ValueError:
            errors.append(f"{key.replace('_', ' ').capitalize()} must be a valid date.")
    try:
        mp = parse_int(payload.get("max_participants"))
        if mp is not None and mp < 1:
            errors.append("Max participants must be at least 1.")
    except ValueError:
        errors.append("Max participants must be a whole number.")
    slug = (payload.get("slug") or "").strip()
    if slug and slug != slugify(slug):
        errors.append("Slug may only contain lowercase letters, digits and dashes.")
    return errors


_TEXT_FIELDS = (
    "description",
    "level",
    "duration",
    "instructor_name",
    "instructor_description",
    "instructor_email",
    "instructor_linkedin",
    "instructor_image_url",
    "live_timezone",
    "meeting_url",
    "prerequisites",
    "target_audience",
    "learning_outcomes",
    "thumbnail_url",
    "banner_url",
)
_DATE_FIELDS = ("early_bird_deadline", "live_start_date", "live_end_date", "registration_deadline")
_MONEY_FIELDS = ("original_price", "early_bird_price")


def _unique_slug(s: "Session", base: str, exclude_id: int | None = None) -> str:
    from app.campus.modules.courses.models import Course

    base = base or "course"
    candidate, n = base, 2
    while True:
        q = s.query(Course.id).filter(Course.slug == candidate)
        if exclude_id is not None:
            q = q.filter(Course.id != exclude_id)
        if not q.first():
            return candidate
        candidate = f"{base}-{n}"
        n += 1


def create_course(s: "Session", payload: dict, user: "User") -> "Course":
    from app.campus.modules.courses.models import Course

    now = datetime.utcnow()
    title = (payload.get("title") or "").strip()
    course = Course(
        slug=_unique_slug(s, slugify((payload.get("slug") or "").strip() or title)),
        title=title,
        price=parse_decimal(payload.get("price")) or Decimal("0"),
        course_type=(payload.get("course_type") or "online").strip(),
        max_participants=parse_int(payload.get("max_participants")),
        is_registration_open=parse_bool(payload.get("is_registration_open", True)),
        is_active=parse_bool(payload.get("is_active", True)),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    for key in _TEXT_FIELDS:
        setattr(course, key, (payload.get(key) or "").strip() or None)
    for key in _DATE_FIELDS:
        setattr(course, key, parse_datetime(payload.get(key)))
    for key in _MONEY_FIELDS:
        setattr(course, key, parse_decimal(payload.get(key)))
    s.add(course)
    s.flush()

    record_event(
        s,
        actor=user,
        action="course.create",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"slug": course.slug, "title": course.title},
    )
    return course


def update_course(s: "Session", course: "Course", payload: dict, user: "User", reason: str | None = None) -> "Course":
    changes: dict[str, dict[str, Any]] = {}

    def _set(key: str, new: Any) -> None:
        old = getattr(course, key)
        if old != new:
            changes[key] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(course, key, new)

    title = (payload.get("title") or "").strip()
    if title:
        _set("title", title)
    slug = slugify((payload.get("slug") or "").strip())
    if slug and slug != course.slug:
        _set("slug", _unique_slug(s, slug, exclude_id=course.id))
    for key in _TEXT_FIELDS:
        _set(key, (payload.get(key) or "").strip() or None)
    for key in _DATE_FIELDS:
        _set(key, parse_datetime(payload.get(key)))
    for key in _MONEY_FIELDS:
        _set(key, parse_decimal(payload.get(key)))
    _set("price", parse_decimal(payload.get("price")) or Decimal("0"))
    _set("course_type", (payload.get("course_type") or course.course_type).strip())
    _set("max_participants", parse_int(payload.get("max_participants")))
    _set("is_registration_open", parse_bool(payload.get("is_registration_open")))
    _set("is_active", parse_bool(payload.get("is_active")))

    if changes:
        course.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="course.update",
            entity_type="Course",
            entity_id=str(course.id),
            reason=reason,
            metadata={"changes": changes},
        )
    return course


def deactivate_course(s: "Session", course: "Course", user: "User", reason: str | None = None) -> None:
    course.is_active = False
    course.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="course.deactivate", entity_type="Course", entity_id=str(course.id), reason=reason)


# ---------- Admin: structure & content ----------
def _next_order(items) -> int:
    return max((i.order_index for i in items), default=-1) + 1


def add_section(s: "Session", course: "Course", payload: dict, user: "User") -> "CourseSection":
    from app.campus.modules.courses.models import CourseSection

    title = (payload.get("title") or "").strip()
    if not title:
        raise ValueError("Section title is required.")
    order = parse_int(payload.get("order_index"))
    section = CourseSection(course_id=course.id, title=title, order_index=order if order is not None else _next_order(course.sections))
    s.add(section)
    s.flush()
    record_event(s, actor=user, action="course.section_add", entity_type="CourseSection", entity_id=str(section.id), metadata={"course_id": course.id, "title": title})
    return section


def add_lesson(s: "Session", section: "CourseSection", payload: dict, user: "User") -> "Lesson":
    from app.campus.modules.courses.models import Lesson

    title = (payload.get("title") or "").strip()
    lesson_type = (payload.get("lesson_type") or "video").strip()
    if not title:
        raise ValueError("Lesson title is required.")
    if lesson_type not in VALID_LESSON_TYPES:
        raise ValueError(f"Invalid lesson type. Must be one of: {', '.join(VALID_LESSON_TYPES)}")
    order = parse_int(payload.get("order_index"))
    lesson = Lesson(
        section_id=section.id,
        title=title,
        lesson_type=lesson_type,
        duration_minutes=parse_int(payload.get("duration_minutes")),
        order_index=order if order is not None else _next_order(section.lessons),
    )
    s.add(lesson)
    s.flush()
    record_event(s, actor=user, action="course.lesson_add", entity_type="Lesson", entity_id=str(lesson.id), metadata={"section_id": section.id, "type": lesson_type})
    return lesson


def add_video(s: "Session", lesson: "Lesson", payload: dict, user: "User") -> "LessonVideo":
    from app.campus.modules.courses.models import LessonVideo

    vimeo_id = (payload.get("vimeo_id") or "").strip() or None
    video_url = (payload.get("video_url") or "").strip() or None
    if not vimeo_id and not video_url:
        raise ValueError("A Vimeo id or a video URL is required.")
    video = LessonVideo(
        lesson_id=lesson.id,
        title=(payload.get("title") or "").strip() or None,
        vimeo_id=vimeo_id,
        video_url=video_url,
        duration_seconds=parse_int(payload.get("duration_seconds")),
        order_index=_next_order(lesson.videos),
    )
    s.add(video)
    s.flush()
    record_event(s, actor=user, action="course.video_add", entity_type="LessonVideo", entity_id=str(video.id), metadata={"lesson_id": lesson.id})
    return video


def add_note(s: "Session", lesson: "Lesson", payload: dict, user: "User") -> "LessonNote":
    from app.campus.modules.courses.models import LessonNote

    content = (payload.get("content") or "").strip()
    if not content:
        raise ValueError("Note content is required.")
    note = LessonNote(
        lesson_id=lesson.id,
        title=(payload.get("title") or "").strip() or None,
        content=content,
        order_index=_next_order(lesson.notes),
    )
    s.add(note)
    s.flush()
    record_event(s, actor=user, action="course.note_add", entity_type="LessonNote", entity_id=str(note.id), metadata={"lesson_id": lesson.id})
    return note


def validate_quiz_config(config: Any) -> list[str]:
    if not isinstance(config, dict):
        return ["Quiz config must be a JSON object."]
    errors = []
    ps = config.get("passing_score", DEFAULT_PASSING_SCORE)
    if not isinstance(ps, int) or not 0 <= ps <= 100:
        errors.append("passing_score must be an integer between 0 and 100.")
    questions = config.get("questions") or []
    if not isinstance(questions, list):
        return errors + ["questions must be a list."]
    for i, q in enumerate(questions, start=1):
        if not isinstance(q, dict) or not q.get("prompt"):
            errors.append(f"Question {i}: prompt is required.")
            continue
        options = q.get("options") or []
        correct = q.get("correct")
        if not isinstance(options, list) or len(options) < 2:
            errors.append(f"Question {i}: at least two options are required.")
        elif not isinstance(correct, int) or not 0 <= correct < len(options):
            errors.append(f"Question {i}: correct must be the index of one of the options.")
    return errors


def add_quiz(s: "Session", lesson: "Lesson", payload: dict, user: "User") -> "LessonQuiz":
    from app.campus.modules.courses.models import LessonQuiz

    title = (payload.get("title") or "").strip()
    quick_type = (payload.get("quick_type") or "quiz").strip()
    config = payload.get("config") or {}
    if not title:
        raise ValueError("Quiz title is required.")
    if quick_type not in VALID_QUICK_TYPES:
        raise ValueError(f"Invalid quick type. Must be one of: {', '.join(VALID_QUICK_TYPES)}")
    errors = validate_quiz_config(config)
    if errors:
        raise ValueError(" ".join(errors))

    questions = []
    for i, q in enumerate(config.get("questions") or [], start=1):
        q = dict(q)
        q.setdefault("id", f"q{i}")
        questions.append(q)
    quiz = LessonQuiz(
        lesson_id=lesson.id,
        title=title,
        description=(payload.get("description") or "").strip() or None,
        quick_type=quick_type,
        config={"passing_score": passing_score_for(config), "questions": questions},
        order_index=_next_order(lesson.quizzes),
    )
    s.add(quiz)
    s.flush()
    record_event(s, actor=user, action="course.quiz_add", entity_type="LessonQuiz", entity_id=str(quiz.id), metadata={"lesson_id": lesson.id, "questions": len(questions)})
    return quiz
