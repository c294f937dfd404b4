from __future__ import annotations

from typing import Any

from flask import Blueprint, abort, request

from app.campus.db import db_session
from app.campus.modules.events.service import (
    attendee_count,
    event_outline,
    format_duration,
    get_event_by_slug,
    list_events,
    live_status,
)
from app.campus.utils import money, parse_bool
from app.campus.web import current_locale, json_ok

bp = Blueprint("events_api", __name__)


def event_to_dict(s, event, locale: str = "tr") -> dict[str, Any]:
    count = attendee_count(s, event.id)
    return {
        "id": event.id,
        "slug": event.slug,
        "title": event.title,
        "description": event.description,
        "event_type": event.event_type,
        "category": event.category,
        "tags": list(event.tags or []),
        "organizer_name": event.organizer_name,
        "start_date": event.start_date.isoformat(),
        "end_date": event.end_date.isoformat() if event.end_date else None,
        "timezone": event.timezone,
        "duration": format_duration(event.duration_minutes, locale),
        "is_online": event.is_online,
        "location_name": event.location_name,
        "is_paid": event.is_paid,
        "price": money(event.price),
        "max_attendees": event.max_attendees,
        "current_attendees": count,
        "is_registration_open": event.is_registration_open,
        "status": event.status,
        "live_status": live_status(event.start_date, event.end_date),
        "is_featured": event.is_featured,
        "thumbnail_url": event.thumbnail_url,
        "banner_url": event.banner_url,
    }


@bp.get("/events")
def events_index():
    s = db_session()
    featured = request.args.get("featured")
    events = list_events(
        s,
        event_type=(request.args.get("type") or "").strip() or None,
        status=(request.args.get("status") or "").strip() or None,
        featured=parse_bool(featured) if featured is not None else None,
        q=(request.args.get("q") or "").strip() or None,
    )
    locale = current_locale()
    return json_ok(events=[event_to_dict(s, e, locale) for e in events])


@bp.get("/events/<slug>")
def event_show(slug: str):
    s = db_session()
    event = get_event_by_slug(s, slug)
    if not event:
        abort(404)
    sections = [
        {
            "id": sec["section"].id,
            "title": sec["section"].title,
            "description": sec["section"].description,
            "sessions": [
                {
                    "id": x.id,
                    "title": x.title,
                    "session_type": x.session_type,
                    "speaker": x.speaker,
                    "duration_minutes": x.duration_minutes,
                }
                for x in sec["sessions"]
            ],
        }
        for sec in event_outline(event)
    ]
    return json_ok(event=event_to_dict(s, event, current_locale()), sections=sections)
