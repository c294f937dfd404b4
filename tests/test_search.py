from datetime import datetime

import pytest

from app.campus import create_app
from app.campus.db import session_scope
from app.campus.models import Base
from app.campus.modules.courses.models import Course
from app.campus.modules.events.models import Event
from app.campus.modules.search.service import format_date, search


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add(Course(slug="python-101", title="Python 101", description="Programming basics", created_at=datetime(2025, 1, 1)))
        s.add(Course(slug="data", title="Data Science", description="Python for analysts", created_at=datetime(2025, 3, 1)))
        s.add(Course(slug="hidden", title="Python Hidden", is_active=False))
        s.add(Event(slug="pycon", title="PyCon Istanbul", description="Talks about python", start_date=datetime(2025, 6, 1)))
        s.add(Event(slug="meetup", title="Cloud Meetup", organizer_name="Ada", start_date=datetime(2025, 7, 1)))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_short_query_returns_message(app):
    with session_scope(app) as s:
        result = search(s, " p ")
        assert result["results"] == []
        assert result["message"] == "Lütfen en az 2 karakter girin."
        assert search(s, "", "en")["message"] == "Please enter at least 2 characters."


def test_title_matches_rank_first(app):
    with session_scope(app) as s:
        result = search(s, "Python", "en")
    titles = [r["title"] for r in result["results"]]
    # Title match first, then newest.
    assert titles == ["Python 101", "PyCon Istanbul", "Data Science"]
    assert result["query"] == "python"
    assert result["total"] == 3
    first = result["results"][0]
    assert first["type"] == "course"
    assert first["url"] == "/courses/python-101"
    assert "sort_date" not in first


def test_event_fields_and_organizer_match(app):
    with session_scope(app) as s:
        result = search(s, "ada", "en")
    [hit] = [r for r in result["results"] if r["type"] == "event"]
    assert hit["url"] == "/events/meetup"
    assert hit["date"] == "July 1, 2025"
    assert hit["extra"]["organizer"] == "Ada"


def test_static_pages_by_locale(app):
    with session_scope(app) as s:
        tr = search(s, "iletişim", "tr")
        en = search(s, "contact", "en")
    assert [r["url"] for r in tr["results"] if r["type"] == "page"] == ["/contact"]
    assert en["results"][0]["excerpt"] == "Go to Contact page"


def test_search_api_and_page(client):
    r = client.get("/api/search?q=cloud")
    assert r.json["success"] is True
    assert [x["title"] for x in r.json["results"]] == ["Cloud Meetup"]

    r = client.get("/search?q=python")
    assert r.status_code == 200
    assert b"Python 101" in r.data

    r = client.get("/search?q=x")
    assert "Lütfen en az 2 karakter girin.".encode() in r.data


def test_format_date():
    d = datetime(2025, 2, 14)
    assert format_date(d, "tr") == "14 Şubat, 2025"
    assert format_date(d, "en") == "February 14, 2025"
    assert format_date(None) == ""


def test_like_wildcards_match_literally(app):
    with session_scope(app) as s:
        assert search(s, "%%")["total"] == 0
        assert search(s, "__")["total"] == 0
        assert search(s, "py%on")["total"] == 0
        assert search(s, "%python")["total"] == 0
