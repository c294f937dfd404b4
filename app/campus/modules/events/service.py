from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.campus.audit import record_event
from app.campus.utils import parse_bool, parse_datetime, parse_decimal, parse_int, slugify

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.campus.models import User
    from app.campus.modules.events.models import Event, EventSection, EventSession


VALID_EVENT_TYPES = ("workshop", "seminar", "conference", "meetup", "webinar")
VALID_STATUSES = ("upcoming", "ongoing", "completed", "cancelled")
VALID_SESSION_TYPES = ("video", "presentation", "workshop", "discussion", "break", "networking")


# ---------- Queries ----------
def list_events(
    s: "Session",
    *,
    event_type: str | None = None,
    status: str | None = None,
    featured: bool | None = None,
    q: str | None = None,
) -> list["Event"]:
    from app.campus.modules.events.models import Event

    query = s.query(Event).filter(Event.is_active.is_(True))
    if event_type:
        query = query.filter(Event.event_type == event_type)
    if status:
        query = query.filter(Event.status == status)
    if featured is not None:
        query = query.filter(Event.is_featured.is_(featured))
    if q:
        like = f"%{q.strip()}%"
        query = query.filter((Event.title.ilike(like)) | (Event.description.ilike(like)) | (Event.organizer_name.ilike(like)))
    return query.order_by(Event.start_date.asc(), Event.id.asc()).all()


def get_event_by_slug(s: "Session", slug: str) -> "Event | None":
    from app.campus.modules.events.models import Event

    return s.query(Event).filter(Event.slug == slug, Event.is_active.is_(True)).one_or_none()


def event_outline(event: "Event") -> list[dict[str, Any]]:
    outline = []
    for section in sorted(event.sections, key=lambda x: (x.order_index, x.id)):
        if not section.is_active:
            continue
        sessions = sorted(section.sessions, key=lambda x: (x.order_index, x.id))
        outline.append({"section": section, "sessions": sessions})
    return outline


def active_sections(event: "Event") -> list["EventSection"]:
    return [x["section"] for x in event_outline(event)]


def attendee_count(s: "Session", event_id: int) -> int:
    """Live count of enrollment rows; never cached on the event."""
    from app.campus.modules.enrollment.models import EventEnrollment

    return s.query(EventEnrollment).filter(EventEnrollment.event_id == event_id).count()


def live_status(start: datetime, end: datetime | None, now: datetime | None = None) -> str:
    """upcoming | live | ended, from the schedule alone (ignores the stored status)."""
    now = now or datetime.utcnow()
    if now < start:
        return "upcoming"
    if end is not None and now > end:
        return "ended"
    return "live"


def format_duration(minutes: int | None, locale: str = "tr") -> str:
    if not minutes or minutes <= 0:
        return ""
    hours, mins = divmod(int(minutes), 60)
    if locale == "en":
        h_unit, m_unit = "h", "min"
    else:
        h_unit, m_unit = "saat", "dk"
    if hours == 0:
        return f"{mins} {m_unit}"
    if mins == 0:
        return f"{hours} {h_unit}"
    return f"{hours} {h_unit} {mins} {m_unit}"


# ---------- Admin ----------
def validate_event_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    event_type = (payload.get("event_type") or "workshop").strip()
    if event_type not in VALID_EVENT_TYPES:
        errors.append(f"Invalid event type. Must be one of: {', '.join(VALID_EVENT_TYPES)}")
    status = (payload.get("status") or "upcoming").strip()
    if status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    start = end = None
    try:
        start = parse_datetime(payload.get("start_date"))
        if start is None:
            errors.append("Start date is required.")
    except ValueError:
        errors.append("Start date must be a valid date.")
    try:
        end = parse_datetime(payload.get("end_date"))
    except ValueError:
        errors.append("End date must be a valid date.")
    if start and end and end < start:
        errors.append("End date cannot be before the start date.")
    try:
        parse_datetime(payload.get("registration_deadline"))
    except ValueError:
        errors.append("Registration deadline must be a valid date.")
    try:
        price = parse_decimal(payload.get("price"))
        if price is not None and price < 0:
            errors.append("Price cannot be negative.")
    except ValueError:
        errors.append("Price must be a number.")
    for key in ("max_attendees", "duration_minutes"):
        try:
            v = parse_int(payload.get(key))
            if v is not None and v < 1:
                errors.append(f"{key.replace('_', ' ').capitalize()} must be at least 1.")
        except ValueError:
            errors.append(f"{key.replace('_', ' ').capitalize()} must be a whole number.")
    return errors


def _parse_tags(raw: Any) -> list[str]:
    if isinstance(raw, list):
        return [str(t).strip() for t in raw if str(t).strip()]
    return [t.strip() for t in str(raw or "").split(",") if t.strip()]


def _unique_slug(s: "Session", base: str, exclude_id: int | None = None) -> str:
    from app.campus.modules.events.models import Event

    base = base or "event"
    candidate, n = base, 2
    while True:
        q = s.query(Event.id).filter(Event.slug == candidate)
        if exclude_id is not None:
            q = q.filter(Event.id != exclude_id)
        if not q.first():
            return candidate
        candidate = f"{base}-{n}"
        n += 1


_TEXT_FIELDS = (
    "description",
    "organizer_name",
    "organizer_email",
    "organizer_linkedin",
    "organizer_image_url",
    "organizer_bio",
    "category",
    "location_name",
    "location_address",
    "meeting_url",
    "thumbnail_url",
    "banner_url",
    "certificate_description",
    "certificate_template_id",
)


def _apply_fields(event: "Event", payload: dict, *, creating: bool = False) -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}

    def _set(key: str, new: Any) -> None:
        old = getattr(event, key, None)
        if old != new:
            changes[key] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(event, key, new)

    for key in _TEXT_FIELDS:
        _set(key, (payload.get(key) or "").strip() or None)
    _set("event_type", (payload.get("event_type") or "workshop").strip())
    _set("status", (payload.get("status") or "upcoming").strip())
    _set("tags", _parse_tags(payload.get("tags")))
    _set("start_date", parse_datetime(payload.get("start_date")))
    _set("end_date", parse_datetime(payload.get("end_date")))
    _set("registration_deadline", parse_datetime(payload.get("registration_deadline")))
    _set("timezone", (payload.get("timezone") or "Europe/Istanbul").strip())
    _set("duration_minutes", parse_int(payload.get("duration_minutes")))
    _set("max_attendees", parse_int(payload.get("max_attendees")))
    _set("price", parse_decimal(payload.get("price")))
    # On create, flags missing from the payload take the column defaults.
    for key, default in (("is_paid", False), ("is_online", True), ("is_registration_open", True), ("is_featured", False), ("is_active", True)):
        _set(key, parse_bool(payload.get(key, default if creating else False)))
    return changes


def create_event(s: "Session", payload: dict, user: "User") -> "Event":
    from app.campus.modules.events.models import Event

    now = datetime.utcnow()
    title = (payload.get("title") or "").strip()
    event = Event(
        slug=_unique_slug(s, slugify((payload.get("slug") or "").strip() or title)),
        title=title,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    _apply_fields(event, payload, creating=True)
    s.add(event)
    s.flush()
    record_event(
        s,
        actor=user,
        action="event.create",
        entity_type="Event",
        entity_id=str(event.id),
        metadata={"slug": event.slug, "title": event.title, "start_date": event.start_date.isoformat()},
    )
    return event


def update_event(s: "Session", event: "Event", payload: dict, user: "User", reason: str | None = None) -> "Event":
    changes = {}
    title = (payload.get("title") or "").strip()
    if title and title != event.title:
        changes["title"] = {"old": event.title, "new": title}
        event.title = title
    slug = slugify((payload.get("slug") or "").strip())
    if slug and slug != event.slug:
        new_slug = _unique_slug(s, slug, exclude_id=event.id)
        changes["slug"] = {"old": event.slug, "new": new_slug}
        event.slug = new_slug
    changes.update(_apply_fields(event, payload))
    if changes:
        event.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="event.update",
            entity_type="Event",
            entity_id=str(event.id),
            reason=reason,
            metadata={"changes": changes},
        )
    return event


def add_event_section(s: "Session", event: "Event", payload: dict, user: "User") -> "EventSection":
    from app.campus.modules.events.models import EventSection

    title = (payload.get("title") or "").strip()
    if not title:
        raise ValueError("Section title is required.")
    order = parse_int(payload.get("order_index"))
    section = EventSection(
        event_id=event.id,
        title=title,
        description=(payload.get("description") or "").strip() or None,
        order_index=order if order is not None else max((x.order_index for x in event.sections), default=-1) + 1,
    )
    s.add(section)
    s.flush()
    record_event(s, actor=user, action="event.section_add", entity_type="EventSection", entity_id=str(section.id), metadata={"event_id": event.id})
    return section


def add_event_session(s: "Session", section: "EventSection", payload: dict, user: "User") -> "EventSession":
    from app.campus.modules.events.models import EventSession

    title = (payload.get("title") or "").strip()
    session_type = (payload.get("session_type") or "presentation").strip()
    if not title:
        raise ValueError("Session title is required.")
    if session_type not in VALID_SESSION_TYPES:
        raise ValueError(f"Invalid session type. Must be one of: {', '.join(VALID_SESSION_TYPES)}")
    item = EventSession(
        section_id=section.id,
        title=title,
        description=(payload.get("description") or "").strip() or None,
        session_type=session_type,
        content_url=(payload.get("content_url") or "").strip() or None,
        duration_minutes=parse_int(payload.get("duration_minutes")),
        speaker=(payload.get("speaker") or "").strip() or None,
        order_index=max((x.order_index for x in section.sessions), default=-1) + 1,
    )
    s.add(item)
    s.flush()
    record_event(s, actor=user, action="event.session_add", entity_type="EventSession", entity_id=str(item.id), metadata={"section_id": section.id})
    return item
