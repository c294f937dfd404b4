"""
Release phase: migrate the schema to head, then seed permissions, roles and the admin user.

Runs before every deploy (see scripts/start.py). Both steps are idempotent.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

PRODUCTION_ENVS = ("prod", "production")


def release_database_url() -> str:
    """DATABASE_URL is mandatory here; a missing value must not fall back to a local SQLite file."""
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in PRODUCTION_ENVS and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against SQLite with ENV=production. Point DATABASE_URL at Postgres.")
    return db_url


def alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def run_release(*, seed: bool = True) -> None:
    from alembic import command

    db_url = release_database_url()
    print(f"=== Campus release (ENV={os.environ.get('ENV') or 'unset'}) ===", flush=True)

    command.upgrade(alembic_config(db_url), "head")
    print("Schema at head.", flush=True)

    if seed:
        from scripts import init_db

        init_db.seed_only(database_url=db_url)
    print("=== Campus release done ===", flush=True)


def main() -> None:
    run_release(seed="--no-seed" not in sys.argv[1:])


if __name__ == "__main__":
    main()
