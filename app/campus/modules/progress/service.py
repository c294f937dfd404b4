from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from app.campus.errors import DomainError
from app.campus.modules.courses.service import QUIZ_LESSON_TYPES, active_lessons, passing_score_for

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.campus.models import User
    from app.campus.modules.courses.models import Course, Lesson, LessonQuiz
    from app.campus.modules.events.models import Event, EventSection
    from app.campus.modules.progress.models import EventSectionProgress, LessonProgress

logger = logging.getLogger(__name__)

VIDEO_COMPLETION_RATIO = 0.9
ANALYTICS_PASSING_SCORE = 70

_PROGRESS_FIELDS = (
    "is_completed",
    "watch_time_seconds",
    "last_position_seconds",
    "notes",
    "quiz_score",
    "quiz_attempts",
    "last_quiz_attempt_at",
    "video_watch_count",
    "last_video_watch_at",
)


class ProgressError(DomainError):
    pass


def video_completion_reached(position: float, duration: float | None) -> bool:
    if not duration or duration <= 0:
        return False
    return position >= duration * VIDEO_COMPLETION_RATIO


def get_lesson_progress(s: "Session", user_id: int, lesson_id: int) -> "LessonProgress | None":
    from app.campus.modules.progress.models import LessonProgress

    return (
        s.query(LessonProgress)
        .filter(LessonProgress.user_id == user_id, LessonProgress.lesson_id == lesson_id)
        .one_or_none()
    )


def _require_enrollment(s: "Session", user: "User", lesson: "Lesson") -> int:
    from app.campus.modules.enrollment.service import is_enrolled_in_course

    course_id = lesson.course_id
    if not is_enrolled_in_course(s, user.id, course_id):
        raise ProgressError("not_enrolled", "You are not enrolled in this course.")
    return course_id


def _sync_enrollment_progress(s: "Session", user_id: int, course_id: int) -> None:
    from app.campus.modules.enrollment.service import update_course_progress

    s.flush()
    total, completed = _completion_counts(s, user_id, course_id)
    pct = (completed / total * 100) if total else 0
    update_course_progress(s, user_id, course_id, pct)


def update_lesson_progress(s: "Session", user: "User", lesson: "Lesson", **fields: Any) -> "LessonProgress":
    """
    Partial upsert keyed on (user, lesson). Only the given fields change.
    completed_at is stamped on the first completion and kept afterwards.
    """
    from app.campus.modules.progress.models import LessonProgress

    unknown = set(fields) - set(_PROGRESS_FIELDS)
    if unknown:
        raise ValueError(f"Unknown progress fields: {', '.join(sorted(unknown))}")

    course_id = _require_enrollment(s, user, lesson)
    now = datetime.utcnow()
    progress = get_lesson_progress(s, user.id, lesson.id)
    if progress is None:
        progress = LessonProgress(
            user_id=user.id,
            lesson_id=lesson.id,
            is_completed=False,
            watch_time_seconds=0,
            last_position_seconds=0,
            video_watch_count=0,
            quiz_attempts=0,
            created_at=now,
        )
        s.add(progress)

    for key, value in fields.items():
        setattr(progress, key, value)

    if fields.get("is_completed"):
        progress.completed_at = progress.completed_at or now
    elif "is_completed" in fields:
        progress.completed_at = None
    progress.updated_at = now

    _sync_enrollment_progress(s, user.id, course_id)
    return progress


# ---------- Video player ----------
def record_video_position(s: "Session", user: "User", lesson: "Lesson", position: float, watch_time: float | None = None) -> "LessonProgress":
    """
    Saves the resume position. Watch time never goes backwards; reaching the
    completion threshold of the lesson's first video completes the lesson.
    """
    existing = get_lesson_progress(s, user.id, lesson.id)
    pos = max(0, int(position))
    watched = max(existing.watch_time_seconds if existing else 0, int(watch_time) if watch_time is not None else pos)
    fields: dict[str, Any] = {"last_position_seconds": pos, "watch_time_seconds": watched, "last_video_watch_at": datetime.utcnow()}
    duration = lesson.videos[0].duration_seconds if lesson.videos else None
    already_completed = bool(existing and existing.is_completed)
    if not already_completed and video_completion_reached(pos, duration):
        fields["is_completed"] = True
        fields["video_watch_count"] = (existing.video_watch_count if existing else 0) + 1
    return update_lesson_progress(s, user, lesson, **fields)


def record_video_view(s: "Session", user: "User", lesson: "Lesson") -> "LessonProgress":
    existing = get_lesson_progress(s, user.id, lesson.id)
    return update_lesson_progress(
        s,
        user,
        lesson,
        video_watch_count=(existing.video_watch_count if existing else 0) + 1,
        last_video_watch_at=datetime.utcnow(),
    )


def mark_lesson_completed(s: "Session", user: "User", lesson: "Lesson", watch_time: float | None = None) -> "LessonProgress":
    fields: dict[str, Any] = {"is_completed": True}
    if watch_time is not None:
        existing = get_lesson_progress(s, user.id, lesson.id)
        fields["watch_time_seconds"] = max(existing.watch_time_seconds if existing else 0, int(watch_time))
    return update_lesson_progress(s, user, lesson, **fields)


# ---------- Notes player ----------
def save_lesson_notes(s: "Session", user: "User", lesson: "Lesson", notes: str) -> "LessonProgress":
    return update_lesson_progress(s, user, lesson, notes=(notes or "").strip() or None)


def mark_notes_read(s: "Session", user: "User", lesson: "Lesson") -> "LessonProgress":
    return update_lesson_progress(s, user, lesson, is_completed=True)


# ---------- Quiz player ----------
def grade_quiz(config: dict | None, answers: dict[str, Any] | None) -> int:
    """Percentage of questions answered with the correct option index (0 when no questions)."""
    questions = [q for q in (config or {}).get("questions") or [] if isinstance(q, dict)]
    if not questions:
        return 0
    answers = answers or {}
    correct = 0
    for i, q in enumerate(questions, start=1):
        qid = str(q.get("id") or f"q{i}")
        given = answers.get(qid)
        try:
            if given is not None and int(given) == int(q.get("correct")):
                correct += 1
        except (TypeError, ValueError):
            continue
    return round(correct / len(questions) * 100)


def save_quiz_result(s: "Session", user: "User", quiz: "LessonQuiz", score: int) -> dict[str, Any]:
    """
    Records one attempt. The stored score is replaced when there is none yet,
    the new one is higher, or this attempt passed.
    """
    if not 0 <= int(score) <= 100:
        raise ProgressError("invalid_score", "Score must be between 0 and 100.")
    score = int(score)
    lesson = quiz.lesson
    passing_score = passing_score_for(quiz.config)
    passed = score >= passing_score

    existing = get_lesson_progress(s, user.id, lesson.id)
    previous_score = existing.quiz_score if existing else None
    attempts = (existing.quiz_attempts if existing else 0) + 1
    was_completed_before = bool(existing and existing.is_completed)
    is_new_best = previous_score is None or score > previous_score

    fields: dict[str, Any] = {
        "quiz_attempts": attempts,
        "last_quiz_attempt_at": datetime.utcnow(),
        "is_completed": passed,
    }
    if previous_score is None or score > previous_score or passed:
        fields["quiz_score"] = score

    update_lesson_progress(s, user, lesson, **fields)
    logger.info("Quiz attempt user_id=%s quiz_id=%s score=%s passed=%s", user.id, quiz.id, score, passed)
    return {
        "score": score,
        "passed": passed,
        "passing_score": passing_score,
        "attempts": attempts,
        "is_new_best_score": is_new_best,
        "was_completed_before": was_completed_before,
    }


# ---------- Course aggregates ----------
def _progress_by_lesson(s: "Session", user_id: int, lesson_ids: list[int]) -> dict[int, "LessonProgress"]:
    from app.campus.modules.progress.models import LessonProgress

    if not lesson_ids:
        return {}
    rows = (
        s.query(LessonProgress)
        .filter(LessonProgress.user_id == user_id, LessonProgress.lesson_id.in_(lesson_ids))
        .all()
    )
    return {p.lesson_id: p for p in rows}


def _completion_counts(s: "Session", user_id: int, course_id: int) -> tuple[int, int]:
    lessons = active_lessons(s, course_id)
    by_lesson = _progress_by_lesson(s, user_id, [l.id for l in lessons])
    completed = sum(1 for l in lessons if by_lesson.get(l.id) and by_lesson[l.id].is_completed)
    return len(lessons), completed


def course_progress(s: "Session", user: "User", course: "Course") -> list[dict[str, Any]]:
    """One row per active lesson; lessons never opened report zeros."""
    lessons = active_lessons(s, course.id)
    by_lesson = _progress_by_lesson(s, user.id, [l.id for l in lessons])
    rows = []
    for lesson in lessons:
        p = by_lesson.get(lesson.id)
        rows.append(
            {
                "lesson_id": lesson.id,
                "lesson_title": lesson.title,
                "lesson_type": lesson.lesson_type,
                "is_completed": bool(p and p.is_completed),
                "completed_at": p.completed_at.isoformat() if p and p.completed_at else None,
                "watch_time_seconds": p.watch_time_seconds if p else 0,
                "last_position_seconds": p.last_position_seconds if p else 0,
                "video_watch_count": p.video_watch_count if p else 0,
                "notes": p.notes if p else None,
                "quiz_score": p.quiz_score if p else None,
                "quiz_attempts": p.quiz_attempts if p else 0,
            }
        )
    return rows


def course_completion_stats(s: "Session", user: "User", course: "Course") -> dict[str, Any]:
    lessons = active_lessons(s, course.id)
    by_lesson = _progress_by_lesson(s, user.id, [l.id for l in lessons])
    total = len(lessons)
    completed = sum(1 for p in by_lesson.values() if p.is_completed)
    watch_seconds = sum(p.watch_time_seconds or 0 for p in by_lesson.values())
    last_active = max((p.updated_at for p in by_lesson.values() if p.updated_at), default=None)
    return {
        "total_lessons": total,
        "completed_lessons": completed,
        "completion_percentage": min(100, round(completed / total * 100)) if total else 0,
        "total_watch_time_seconds": watch_seconds,
        "total_watch_time_minutes": watch_seconds // 60,
        "last_active_at": last_active.isoformat() if last_active else None,
    }


def course_quiz_stats(s: "Session", user_id: int, course_id: int) -> dict[str, Any]:
    lessons = active_lessons(s, course_id)
    quiz_lessons = [l for l in lessons if l.lesson_type in QUIZ_LESSON_TYPES]
    by_lesson = _progress_by_lesson(s, user_id, [l.id for l in quiz_lessons])
    completed = [by_lesson[l.id] for l in quiz_lessons if by_lesson.get(l.id) and by_lesson[l.id].is_completed]
    scores = [p.quiz_score for p in by_lesson.values() if p.quiz_score]
    return {
        "total_quizzes": len(quiz_lessons),
        "completed_quizzes": len(completed),
        "average_quiz_score": round(sum(scores) / len(scores)) if scores else 0,
    }


def course_analytics(s: "Session", user: "User", course: "Course", *, days: int = 30, today: date | None = None) -> list[dict[str, Any]]:
    """
    Daily activity for the last `days` days, newest first. A progress row counts
    toward the day of its last update; days without activity are omitted.
    """
    lessons = active_lessons(s, course.id)
    rows = list(_progress_by_lesson(s, user.id, [l.id for l in lessons]).values())
    today = today or datetime.utcnow().date()

    def _day(dt: datetime | None) -> date | None:
        return dt.date() if dt else None

    out = []
    for offset in range(days):
        day = today - timedelta(days=offset)
        day_rows = [p for p in rows if _day(p.updated_at or p.created_at) == day]
        if not day_rows:
            continue
        attempted = [p for p in day_rows if p.quiz_attempts and _day(p.last_quiz_attempt_at) == day]
        passed = [p for p in attempted if (p.quiz_score or 0) >= ANALYTICS_PASSING_SCORE]
        scored = [p.quiz_score for p in day_rows if p.quiz_score is not None]
        out.append(
            {
                "date": day.isoformat(),
                "watch_time_minutes": sum((p.watch_time_seconds or 0) // 60 for p in day_rows),
                "lessons_completed": sum(1 for p in day_rows if p.is_completed and _day(p.completed_at) == day),
                "videos_watched": sum(1 for p in day_rows if (p.watch_time_seconds or 0) > 0),
                "quizzes_attempted": len(attempted),
                "quizzes_passed": len(passed),
                "quizzes_failed": len(attempted) - len(passed),
                "notes_created": sum(1 for p in day_rows if (p.notes or "").strip()),
                "avg_quiz_score": round(sum(scored) / len(scored), 2) if scored else 0,
            }
        )
    return out


# ---------- Events ----------
def mark_event_section_completed(s: "Session", user: "User", section: "EventSection") -> "EventSectionProgress":
    from app.campus.modules.enrollment.service import get_event_enrollment
    from app.campus.modules.progress.models import EventSectionProgress

    if not get_event_enrollment(s, user.id, section.event_id):
        raise ProgressError("not_enrolled", "You are not registered for this event.")
    row = (
        s.query(EventSectionProgress)
        .filter(EventSectionProgress.user_id == user.id, EventSectionProgress.section_id == section.id)
        .one_or_none()
    )
    now = datetime.utcnow()
    if row is None:
        row = EventSectionProgress(user_id=user.id, event_id=section.event_id, section_id=section.id, created_at=now)
        s.add(row)
    if not row.is_completed:
        row.is_completed = True
        row.completed_at = now
    s.flush()
    return row


def event_progress(s: "Session", user: "User", event: "Event") -> dict[str, Any]:
    from app.campus.modules.events.service import active_sections
    from app.campus.modules.progress.models import EventSectionProgress

    section_ids = [x.id for x in active_sections(event)]
    completed_ids: set[int] = set()
    if section_ids:
        completed_ids = {
            sid
            for (sid,) in s.query(EventSectionProgress.section_id)
            .filter(
                EventSectionProgress.user_id == user.id,
                EventSectionProgress.section_id.in_(section_ids),
                EventSectionProgress.is_completed.is_(True),
            )
            .all()
        }
    total = len(section_ids)
    return {
        "total_sections": total,
        "completed_sections": len(completed_ids),
        "completed_section_ids": sorted(completed_ids),
        "completion_percentage": min(100, round(len(completed_ids) / total * 100)) if total else 0,
    }
