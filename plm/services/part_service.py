"""
Part & revision service.

Creates parts with their initial revision "A", and turns every effective
update into a new, sequentially coded revision. Every revision row carries
the field-level diff that produced it, so the history is self-describing.

Concurrency:
    ``update_part`` locks the part row before reading the latest revision
    code, so two concurrent updates cannot both compute ``next_code("A")``.
    The unique ``(part_id, revision_code)`` constraint and the part's
    ``version`` counter turn any race that slips past the lock into a
    ``ConflictError`` rather than a duplicate code.
"""

import logging
import re

from sqlalchemy import func, or_, select

from plm.core.exceptions import ConflictError, ValidationError
from plm.models import db
from plm.models.audit import write_audit
from plm.models.part import (
    PART_NAME_MAX_LENGTH,
    PART_NAME_MIN_LENGTH,
    PART_NUMBER_PATTERN,
    PART_STATUSES,
    REVISIONED_FIELDS,
    BomItem,
    Part,
    Revision,
)
from plm.models.project import Project
from plm.services.helpers.access import page_bounds, require_project_member
from plm.services.helpers.inputs import as_int, clean_text
from plm.services.helpers.scoped_queries import commit_or_conflict, get_scoped
from plm.services.revision_sequencer import FIRST_CODE, next_code

logger = logging.getLogger(__name__)

_PART_NUMBER_RE = re.compile(PART_NUMBER_PATTERN)

INITIAL_REVISION_DESCRIPTION = "Initial revision"
DEFAULT_SEARCH_LIMIT = 10


# ── Validation ───────────────────────────────────────────────────────────────


def _validate_part_number(part_number) -> str:
    if not isinstance(part_number, str) or not _PART_NUMBER_RE.fullmatch(part_number):
        raise ValidationError(
            "Part number must be 1-50 uppercase letters, digits or hyphens",
            details={"part_number": PART_NUMBER_PATTERN},
        )
    return part_number


def _validate_name(name) -> str:
    if not isinstance(name, str):
        raise ValidationError("Name is required", details={"name": "required"})
    name = name.strip()
    if not PART_NAME_MIN_LENGTH <= len(name) <= PART_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be {PART_NAME_MIN_LENGTH}-{PART_NAME_MAX_LENGTH} characters",
            details={"name": f"length {PART_NAME_MIN_LENGTH}-{PART_NAME_MAX_LENGTH}"},
        )
    return name


def _validate_status(status) -> str:
    if status not in PART_STATUSES:
        raise ValidationError(
            f"Invalid status {status!r}. Must be one of: {', '.join(PART_STATUSES)}",
            details={"status": list(PART_STATUSES)},
        )
    return status


def _normalise_changes(data: dict) -> dict:
    """Validate and normalise the revisioned fields present in *data*."""
    clean = {}
    if "name" in data:
        clean["name"] = _validate_name(data["name"])
    if "description" in data:
        clean["description"] = clean_text(data["description"])
    if "category" in data:
        clean["category"] = clean_text(data["category"])
    if "status" in data:
        clean["status"] = _validate_status(data["status"])
    return clean


# ── Reads ────────────────────────────────────────────────────────────────────


def _latest_revision(part_id: int) -> Revision | None:
    stmt = (
        select(Revision)
        .where(Revision.part_id == part_id)
        .order_by(Revision.id.desc())
        .limit(1)
    )
    return db.session.execute(stmt).scalar_one_or_none()


def _part_detail(part: Part) -> dict:
    d = part.to_dict()
    current = db.session.get(Revision, part.current_revision_id) if part.current_revision_id else None
    d["current_revision"] = current.to_dict() if current else None
    d["revision_count"] = db.session.execute(
        select(func.count(Revision.id)).where(Revision.part_id == part.id)
    ).scalar_one()
    d["bom_item_count"] = db.session.execute(
        select(func.count(BomItem.id)).where(BomItem.parent_part_id == part.id)
    ).scalar_one()
    d["where_used_count"] = db.session.execute(
        select(func.count(BomItem.id)).where(BomItem.child_part_id == part.id)
    ).scalar_one()
    return d


def get_part(part_id: int) -> dict:
    """Return the part with its current revision and BOM counters.

    Raises:
        NotFoundError: Part does not exist.
    """
    return _part_detail(get_scoped(Part, part_id))


def list_parts(
    project_id: int,
    *,
    status: str | None = None,
    category: str | None = None,
    query: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict:
    """Paginated, filterable part list for a project, newest first."""
    get_scoped(Project, project_id)
    limit, offset = page_bounds(limit, offset)

    stmt = select(Part).where(Part.project_id == project_id)
    if status:
        stmt = stmt.where(Part.status == _validate_status(status))
    if category:
        stmt = stmt.where(Part.category == category)
    if query:
        pattern = f"%{query.strip()}%"
        stmt = stmt.where(or_(Part.part_number.ilike(pattern), Part.name.ilike(pattern)))

    total = db.session.execute(
        select(func.count()).select_from(stmt.subquery())
    ).scalar_one()
    rows = db.session.execute(
        stmt.order_by(Part.id.desc()).limit(limit).offset(offset)
    ).scalars().all()

    return {
        "items": [p.to_dict() for p in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


def search_parts(query: str, limit: int = DEFAULT_SEARCH_LIMIT, project_id: int | None = None) -> list[dict]:
    """Match *query* against part number and name. Empty query returns []."""
    query = (query or "").strip()
    if not query:
        return []
    limit, _ = page_bounds(limit, 0)
    pattern = f"%{query}%"
    stmt = select(Part).where(or_(Part.part_number.ilike(pattern), Part.name.ilike(pattern)))
    if project_id is not None:
        stmt = stmt.where(Part.project_id == project_id)
    rows = db.session.execute(stmt.order_by(Part.part_number).limit(limit)).scalars().all()
    return [p.to_dict() for p in rows]


def get_revision_history(part_id: int) -> dict:
    """All revisions of a part in creation order (which is also code order)."""
    part = get_scoped(Part, part_id)
    revisions = db.session.execute(
        select(Revision).where(Revision.part_id == part.id).order_by(Revision.id)
    ).scalars().all()
    return {
        "part_id": part.id,
        "part_number": part.part_number,
        "name": part.name,
        "revisions": [r.to_dict() for r in revisions],
    }


# ── Writes ───────────────────────────────────────────────────────────────────


def create_part(data: dict, actor_id: int | None) -> dict:
    """Create a part and its initial revision "A".

    Raises:
        NotFoundError: Project does not exist.
        AccessError: Actor is not a member of the project.
        ValidationError: Bad part number, name or status.
        ConflictError: Part number already used in the project.
    """
    if data.get("project_id") is None:
        raise ValidationError("project_id is required", details={"project_id": "required"})
    project = get_scoped(Project, as_int(data["project_id"], "project_id"))
    require_project_member(project.id, actor_id)

    part_number = _validate_part_number(data.get("part_number"))
    name = _validate_name(data.get("name"))
    status = _validate_status(data.get("status") or "draft")

    duplicate = db.session.execute(
        select(Part.id).where(Part.project_id == project.id, Part.part_number == part_number)
    ).first()
    if duplicate is not None:
        raise ConflictError("Part", "part_number", part_number)

    try:
        part = Part(
            project_id=project.id,
            part_number=part_number,
            name=name,
            description=clean_text(data.get("description")),
            category=clean_text(data.get("category")),
            status=status,
            created_by=actor_id,
        )
        db.session.add(part)
        db.session.flush()

        revision = Revision(
            part_id=part.id,
            revision_code=FIRST_CODE,
            description=INITIAL_REVISION_DESCRIPTION,
            changes=None,
            created_by=actor_id,
        )
        db.session.add(revision)
        db.session.flush()
        part.current_revision_id = revision.id

        write_audit(
            entity_type="part",
            entity_id=part.id,
            action="part.create",
            project_id=project.id,
            actor_user_id=actor_id,
            diff={"part_number": part_number, "revision_code": FIRST_CODE},
        )
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict("Part", "part_number", part_number)

    logger.info(
        "Part created",
        extra={"project_id": project.id, "part_id": part.id, "part_number": part_number},
    )
    return _part_detail(part)


def update_part(part_id: int, data: dict, actor_id: int | None) -> dict:
    """Apply *data* to the part, recording a new revision if anything changed.

    ``data`` may carry ``name``, ``description``, ``category``, ``status``,
    an optional ``change_description`` for the revision, and an optional
    ``version`` the caller last read (stale → ConflictError).

    Raises:
        NotFoundError: Part does not exist.
        AccessError: Actor is not a member of the part's project.
        ValidationError: Bad name or status.
        ConflictError: The part changed since the caller read it.
    """
    try:
        part = get_scoped(Part, part_id, for_update=True)
        require_project_member(part.project_id, actor_id)

        expected_version = data.get("version")
        if expected_version is not None and as_int(expected_version, "version") != part.version:
            raise ConflictError("Part", "version")

        requested = _normalise_changes(data)
        diff = {
            field: {"old": getattr(part, field), "new": value}
            for field, value in requested.items()
            if field in REVISIONED_FIELDS and getattr(part, field) != value
        }
        if not diff:
            result = _part_detail(part)
            db.session.rollback()
            return result

        latest = _latest_revision(part.id)
        code = next_code(latest.revision_code if latest else None)
        revision = Revision(
            part_id=part.id,
            revision_code=code,
            description=clean_text(data.get("change_description")) or f"Revision {code}",
            changes=diff,
            created_by=actor_id,
        )
        db.session.add(revision)
        db.session.flush()

        for field, change in diff.items():
            setattr(part, field, change["new"])
        part.current_revision_id = revision.id

        write_audit(
            entity_type="part",
            entity_id=part.id,
            action="part.update",
            project_id=part.project_id,
            actor_user_id=actor_id,
            diff=diff,
        )
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict("Part", "revision_code", code)

    logger.info(
        "Part revised",
        extra={
            "project_id": part.project_id,
            "part_id": part.id,
            "revision_code": code,
            "fields": sorted(diff),
        },
    )
    return _part_detail(part)
