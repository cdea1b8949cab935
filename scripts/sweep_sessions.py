#!/usr/bin/env python
"""
Run the session expiry sweep once, outside the web process (e.g. from cron when the
in-process scheduler is disabled with SESSION_SWEEP_ENABLED=0).

Usage:
    # Show which users would be deactivated
    python scripts/sweep_sessions.py --dry-run

    # Deactivate users with expired sessions and purge expired rows
    python scripts/sweep_sessions.py
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def main() -> None:
    parser = argparse.ArgumentParser(description="Deactivate users whose sessions have expired")
    parser.add_argument("--dry-run", action="store_true", help="Preview only, don't update users")
    args = parser.parse_args()

    os.environ["SESSION_SWEEP_ENABLED"] = "0"
    from app.oscaims import create_app
    from app.oscaims.sweep import SessionExpirySweep

    app = create_app()
    sweep: SessionExpirySweep = app.extensions["session_sweep"]
    if args.dry_run:
        sweep = SessionExpirySweep(sweep.store, lambda ids: None)

    result = sweep.run_once()
    if result.error:
        print(f"Sweep failed: {result.error}")
        sys.exit(1)

    print(f"Sessions seen:    {result.sessions_seen}")
    print(f"Expired sessions: {result.expired_sessions}")
    print(f"Malformed:        {result.malformed}")
    verb = "Would deactivate" if args.dry_run else "Deactivated"
    print(f"{verb} {result.deactivated} user(s): {', '.join(str(u) for u in result.user_ids) or '-'}")


if __name__ == "__main__":
    main()
