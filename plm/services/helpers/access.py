"""Actor checks shared by the part and change-order services."""

import logging

from flask import current_app

from plm.core.exceptions import AccessError, ValidationError
from plm.models.auth import is_project_member

logger = logging.getLogger(__name__)


def require_project_member(project_id: int, actor_id: int | None) -> None:
    """Raise AccessError unless *actor_id* belongs to *project_id*."""
    if not is_project_member(project_id, actor_id):
        logger.warning(
            "Access denied: not a project member",
            extra={"project_id": project_id, "actor_id": actor_id},
        )
        raise AccessError(actor_id, f"not a member of project {project_id}")


def page_bounds(limit, offset) -> tuple[int, int]:
    """Clamp ``limit``/``offset`` to the configured page sizes."""
    default = current_app.config.get("PLM_DEFAULT_PAGE_SIZE", 20)
    maximum = current_app.config.get("PLM_MAX_PAGE_SIZE", 100)
    try:
        limit = int(limit) if limit is not None else default
        offset = int(offset) if offset is not None else 0
    except (TypeError, ValueError):
        raise ValidationError(
            "limit and offset must be integers",
            details={"limit": limit, "offset": offset},
        ) from None
    if limit < 1:
        limit = default
    return min(limit, maximum), max(offset, 0)
