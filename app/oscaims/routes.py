from flask import Blueprint, current_app, send_from_directory, session

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return "Hello from server!"


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON, no DB access."""
    return {"ok": True}


@bp.get("/api/test-session")
def test_session():
    """Session round-trip check: bumps a per-session view counter."""
    session["views"] = (session.get("views") or 0) + 1
    return f"Session views: {session['views']}"


@bp.get("/uploads/<path:filename>")
def uploads(filename: str):
    # send_from_directory rejects paths escaping the directory (404)
    return send_from_directory(current_app.config["UPLOADS_DIR"], filename)
