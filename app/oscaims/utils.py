from __future__ import annotations

from datetime import date
from typing import Any

from flask import abort, request


class ValidationError(ValueError):
    """Raised by services for bad client input; routes answer 400."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = errors
        super().__init__("; ".join(errors))


def request_payload() -> dict[str, Any]:
    """JSON object body, falling back to form fields."""
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            abort(400, description="Request body must be a JSON object.")
        return data
    return request.form.to_dict()


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def parse_date(s: Any, field: str = "date") -> date | None:
    """Parse YYYY-MM-DD date string."""
    raw = clean_str(s)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid {field}: expected YYYY-MM-DD.") from e


def int_arg(name: str, default: int, *, minimum: int = 0, maximum: int | None = None) -> int:
    raw = (request.args.get(name) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value
