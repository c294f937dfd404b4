import pytest
from werkzeug.security import check_password_hash

from app.campus.models import Base, Permission, Role, User
from scripts import init_db
from scripts._db_utils import create_script_engine, script_session
from scripts.start import gunicorn_argv


def _db_url(tmp_path):
    url = f"sqlite:///{tmp_path/'seed.db'}"
    engine = create_script_engine(url)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    return url


def test_seed_is_idempotent(tmp_path, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", " Owner@Campus.Example ")
    monkeypatch.setenv("ADMIN_PASSWORD", "first-pass")
    url = _db_url(tmp_path)

    init_db.seed_only(database_url=url)
    monkeypatch.setenv("ADMIN_PASSWORD", "second-pass")
    init_db.seed_only(database_url=url)

    with script_session(url) as s:
        assert s.query(Permission).count() == len(init_db.PERMISSIONS)
        assert {r.key for r in s.query(Role).all()} == {"admin", "learner"}
        admin_role = s.query(Role).filter(Role.key == "admin").one()
        assert len(admin_role.permissions) == len(init_db.PERMISSIONS)
        assert s.query(Role).filter(Role.key == "learner").one().permissions == []

        user = s.query(User).one()
        assert user.email == "owner@campus.example"
        assert [r.key for r in user.roles] == ["admin"]
        # An existing admin keeps the original password.
        assert check_password_hash(user.password_hash, "first-pass")


def test_gunicorn_argv(monkeypatch):
    monkeypatch.setenv("WEB_CONCURRENCY", "4")
    argv = gunicorn_argv("9000")
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:9000"
    assert argv[argv.index("--workers") + 1] == "4"


def test_release_refuses_sqlite_in_production(monkeypatch):
    from scripts.release import release_database_url

    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        release_database_url()

    monkeypatch.setenv("DATABASE_URL", "sqlite:///campus.db")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError, match="SQLite"):
        release_database_url()

    monkeypatch.setenv("ENV", "staging")
    assert release_database_url() == "sqlite:///campus.db"
