"""
Release step for the portal: migrate, then seed.

Steps:
  1. alembic upgrade head against DATABASE_URL (required; sqlite is refused when ENV=production)
  2. create the admin account from ADMIN_EMAIL / ADMIN_PASSWORD if it is missing
  3. with SEED_SAMPLE_DATA=1, load the demo college/course catalogue

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_TRUTHY = ("1", "true", "yes", "on")


def _database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL must be set before running the release step.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("ENV=production needs a Postgres DATABASE_URL; refusing to migrate sqlite.")
    return db_url


def migrate(db_url: str) -> str:
    """Upgrade to head and return the head revision id."""
    from alembic import command
    from alembic.config import Config
    from alembic.script import ScriptDirectory

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")
    return ScriptDirectory.from_config(cfg).get_current_head() or "(none)"


def seed_catalogue(db_url: str) -> dict[str, int]:
    from scripts.init_db import script_session
    from app.portal.modules.colleges.service import seed_sample_catalogue

    with script_session(db_url) as s:
        return seed_sample_catalogue(s)


def run_release() -> None:
    load_dotenv()
    db_url = _database_url()

    print("[release] migrating schema...", flush=True)
    head = migrate(db_url)
    print(f"[release] schema at {head}", flush=True)

    from scripts import init_db

    init_db.seed_only(database_url=db_url)

    if (os.environ.get("SEED_SAMPLE_DATA") or "").strip().lower() in _TRUTHY:
        created = seed_catalogue(db_url)
        print(f"[release] sample catalogue: {created['colleges']} colleges, {created['courses']} courses", flush=True)
    print("[release] done", flush=True)


if __name__ == "__main__":
    run_release()
