from datetime import datetime

from flask import request

from agrirent.errors import AppError


def parse_datetime(value, label, required=True):
    """Parse an ISO-8601 timestamp from a request payload."""
    if value in (None, ""):
        if required:
            raise AppError(f"{label} is required.", 400)
        return None
    if isinstance(value, datetime):
        return value
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise AppError(f"Invalid {label.lower()}; use ISO-8601.", 400) from exc


def iso(value):
    return value.isoformat() if value else None


def money(value):
    return str(value) if value is not None else None


def json_payload():
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise AppError("Request body must be a JSON object.", 400)
    return payload
