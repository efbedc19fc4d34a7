import os
import sys
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.portal.models import ROLE_ADMIN, User


@contextmanager
def script_session(db_url: str):
    engine_kwargs = {"future": True, "pool_pre_ping": True}
    if not db_url.startswith("sqlite"):
        engine_kwargs["pool_recycle"] = 1800
    engine = create_engine(db_url, **engine_kwargs)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@education.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///portal.db").strip()

    # Direct engine/session so release can run without importing app.wsgi.
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            taken = s.query(User).filter(User.username == admin_username).one_or_none()
            user = User(
                username=admin_username if not taken else admin_email,
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                name="Administrator",
                role=ROLE_ADMIN,
                status="active",
            )
            s.add(user)
            print("Created admin user.")
        elif user.role != ROLE_ADMIN:
            user.role = ROLE_ADMIN
            print("Promoted existing user to admin.")

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
