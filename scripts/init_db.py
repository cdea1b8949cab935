"""
Create tables (dev/sqlite convenience) and seed the admin user.

Usage:
  python scripts/init_db.py            # create_all + seed
  python scripts/release.py            # production path (alembic + seed)
"""
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import select
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.oscaims.config import build_database_url  # noqa: E402
from app.oscaims.models import Base, User  # noqa: E402
from scripts._db_utils import create_script_engine, script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or build_database_url()).strip()

    with script_session(db_url) as s:
        user = s.execute(select(User).where(User.username == admin_username)).scalar_one_or_none()
        if user is None:
            now = datetime.utcnow()
            s.add(
                User(
                    username=admin_username,
                    password_hash=generate_password_hash(admin_password),
                    full_name="Administrator",
                    role="admin",
                    status="inactive",
                    created_at=now,
                    updated_at=now,
                )
            )
            print(f"Created admin user '{admin_username}'.", flush=True)
        elif user.role != "admin":
            user.role = "admin"
            print(f"Promoted '{admin_username}' to admin.", flush=True)


def main() -> None:
    load_dotenv()
    db_url = build_database_url()
    engine = create_script_engine(db_url)
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()
    seed_only(database_url=db_url)


if __name__ == "__main__":
    main()
