"""
Release-phase helper.

- Run alembic migrations against the configured database.
- Seed the admin user (idempotent; does NOT overwrite existing passwords).

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def run_release() -> None:
    load_dotenv()
    from app.oscaims.config import load_settings

    settings = load_settings()
    db_url = settings.database_url
    # Guardrail: prevent accidental prod deploys against SQLite.
    if settings.node_env == "production" and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite in production. Set DB_HOST/DB_* or DATABASE_URL.")

    print("=== OSCAIMS release start ===", flush=True)
    print(f"NODE_ENV={settings.node_env}", flush=True)
    print("Running Alembic migrations...", flush=True)

    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # ConfigParser interpolation: escape % in passwords
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    command.upgrade(cfg, "head")
    print("Migrations complete.", flush=True)

    print("Seeding admin user (idempotent)...", flush=True)
    from scripts import init_db

    init_db.seed_only(database_url=db_url)
    print("Seed complete.", flush=True)
    print("=== OSCAIMS release done ===", flush=True)


def main() -> None:
    run_release()


if __name__ == "__main__":
    main()
