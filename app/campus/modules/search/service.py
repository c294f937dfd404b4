from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.campus.utils import money, truncate

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

MIN_QUERY_LENGTH = 2
RESULT_LIMIT = 15
EXCERPT_LENGTH = 150

TR_MONTHS = (
    "Ocak", "Şubat", "Mart", "Nisan", "Mayıs", "Haziran",
    "Temmuz", "Ağustos", "Eylül", "Ekim", "Kasım", "Aralık",
)
EN_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

# (path, tr name, en name)
STATIC_PAGES = (
    ("/", "Ana Sayfa", "Home"),
    ("/courses", "Kurslar", "Courses"),
    ("/events", "Etkinlikler", "Events"),
    ("/campaigns", "Kampanyalar", "Campaigns"),
    ("/certificates", "Sertifika Doğrulama", "Certificate Verification"),
    ("/contact", "İletişim", "Contact"),
)

EDUCATION_TERMS = ("kurs", "course", "eğitim", "training", "learn")


def _fold(text: str) -> str:
    # "İ".lower() leaves a combining dot above
    return text.lower().replace("\u0307", "")


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def format_date(d: datetime | None, locale: str = "tr") -> str:
    if d is None:
        return ""
    if locale == "en":
        return f"{EN_MONTHS[d.month - 1]} {d.day}, {d.year}"
    return f"{d.day} {TR_MONTHS[d.month - 1]}, {d.year}"


def _course_results(s: "Session", like: str, locale: str) -> list[dict[str, Any]]:
    from app.campus.modules.courses.models import Course
    from app.campus.modules.courses.service import active_price

    rows = (
        s.query(Course)
        .filter(Course.is_active.is_(True))
        .filter(
            Course.title.ilike(like, escape="\\")
            | Course.description.ilike(like, escape="\\")
            | Course.instructor_name.ilike(like, escape="\\")
        )
        .order_by(Course.created_at.desc())
        .limit(RESULT_LIMIT)
        .all()
    )
    out = []
    for c in rows:
        when = c.live_start_date if c.course_type in ("live", "hybrid") and c.live_start_date else c.created_at
        out.append(
            {
                "id": f"course-{c.id}",
                "title": c.title,
                "excerpt": truncate(c.description, EXCERPT_LENGTH),
                "url": f"/courses/{c.slug}",
                "type": "course",
                "image": c.thumbnail_url or c.banner_url,
                "date": format_date(when, locale),
                "sort_date": when,
                "extra": {
                    "instructor": c.instructor_name,
                    "price": money(active_price(c)),
                    "level": c.level,
                    "duration": c.duration,
                    "course_type": c.course_type,
                    "is_registration_open": c.is_registration_open,
                },
            }
        )
    return out


def _event_results(s: "Session", like: str, locale: str) -> list[dict[str, Any]]:
    from app.campus.modules.events.models import Event

    rows = (
        s.query(Event)
        .filter(Event.is_active.is_(True))
        .filter(
            Event.title.ilike(like, escape="\\")
            | Event.description.ilike(like, escape="\\")
            | Event.organizer_name.ilike(like, escape="\\")
        )
        .order_by(Event.start_date.desc())
        .limit(RESULT_LIMIT)
        .all()
    )
    return [
        {
            "id": f"event-{e.id}",
            "title": e.title,
            "excerpt": truncate(e.description, EXCERPT_LENGTH),
            "url": f"/events/{e.slug}",
            "type": "event",
            "image": e.thumbnail_url or e.banner_url,
            "date": format_date(e.start_date, locale),
            "sort_date": e.start_date,
            "extra": {
                "organizer": e.organizer_name,
                "event_type": e.event_type,
                "is_online": e.is_online,
                "location": e.location_name,
                "status": e.status,
            },
        }
        for e in rows
    ]


def _page_results(q: str, locale: str, now: datetime) -> list[dict[str, Any]]:
    out = []
    for path, tr_name, en_name in STATIC_PAGES:
        name = en_name if locale == "en" else tr_name
        if q not in _fold(name) and q not in path.lower().strip("/"):
            continue
        out.append(
            {
                "id": f"page-{path.strip('/') or 'home'}",
                "title": name,
                "excerpt": f"Go to {name} page" if locale == "en" else f"{name} sayfasına git",
                "url": path,
                "type": "page",
                "image": None,
                "date": format_date(now, locale),
                "sort_date": now,
                "extra": {},
            }
        )
    return out


def search(s: "Session", q: str | None, locale: str = "tr", now: datetime | None = None) -> dict[str, Any]:
    """
    Site search over courses, events and static pages. Title matches rank first,
    then courses for education-related queries, then newest first.
    """
    query = _fold((q or "").strip())
    if len(query) < MIN_QUERY_LENGTH:
        message = (
            "Please enter at least 2 characters." if locale == "en" else "Lütfen en az 2 karakter girin."
        )
        return {"results": [], "query": query, "total": 0, "message": message}

    now = now or datetime.utcnow()
    like = f"%{_escape_like(query)}%"
    results = _course_results(s, like, locale) + _event_results(s, like, locale) + _page_results(query, locale, now)

    education_query = any(term in query for term in EDUCATION_TERMS)

    def _rank(r: dict[str, Any]):
        title_match = query in _fold(r["title"])
        course_first = education_query and r["type"] == "course"
        ts = r["sort_date"].timestamp() if r["sort_date"] else 0
        return (0 if title_match else 1, 0 if course_first else 1, -ts)

    results.sort(key=_rank)
    for r in results:
        r.pop("sort_date", None)
    return {"results": results, "query": query, "total": len(results)}
