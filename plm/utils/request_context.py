"""Request helpers shared by the API blueprints."""

from flask import request

ACTOR_HEADER = "X-User-Id"


def actor_id() -> int | None:
    """Acting user id from the ``X-User-Id`` header, or None if absent or malformed.

    Authentication happens upstream; the header is trusted as-is.
    """
    raw = request.headers.get(ACTOR_HEADER, "").strip()
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
