"""
Engineering change order workflow.

Lifecycle (see ``CHANGE_ORDER_TRANSITIONS``):
    create (draft) → submit → accept_for_review → review × N → implement

Consensus rule:
    - any single ``rejected`` review moves the order to ``rejected`` at once;
    - the order becomes ``approved`` only when every approver has approved;
    - otherwise it stays ``in_review``.

Business rules enforced here (not in blueprints):
    - Only the requester may update, delete, submit, or change approvers.
    - Update, delete and approver changes are draft-only.
    - Only listed approvers may review, once per review round.
    - A rejection always needs a comment.

Every call that changes status or approver state appends exactly one
ChangeOrderAuditEntry. Each mutating call locks the ChangeOrder row first
and commits once; any failure rolls the whole call back.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.exc import IntegrityError

from plm.core.exceptions import (
    AccessError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from plm.models import db
from plm.models.auth import User
from plm.models.change_order import (
    CHANGE_ORDER_STATUSES,
    CHANGE_ORDER_TYPES,
    PRIORITIES,
    ChangeOrder,
    ChangeOrderAffectedPart,
    ChangeOrderApprover,
    ChangeOrderAuditEntry,
    format_number,
    validate_transition,
)
from plm.models.part import Part
from plm.models.project import Project
from plm.services import bom_graph
from plm.services.bom_service import project_edges
from plm.services.helpers.access import page_bounds, require_project_member
from plm.services.helpers.inputs import as_int, clean_text
from plm.services.helpers.scoped_queries import commit_or_conflict, get_scoped

logger = logging.getLogger(__name__)

RESOURCE = "ChangeOrder"

TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 500
DESCRIPTION_MIN_LENGTH = 10

# Attempts at allocating a fresh number when a concurrent create took ours
NUMBER_ATTEMPTS = 3

REVIEW_DECISIONS = ("approved", "rejected")


def _utcnow():
    return datetime.now(timezone.utc)


# ── Input validation ─────────────────────────────────────────────────────────


def _validate_title(title) -> str:
    title = title.strip() if isinstance(title, str) else ""
    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        raise ValidationError(
            f"Title must be {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH} characters",
            details={"title": f"length {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH}"},
        )
    return title


def _validate_description(description) -> str:
    description = description.strip() if isinstance(description, str) else ""
    if len(description) < DESCRIPTION_MIN_LENGTH:
        raise ValidationError(
            f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters",
            details={"description": f"min length {DESCRIPTION_MIN_LENGTH}"},
        )
    return description


def _validate_reason(reason) -> str:
    reason = reason.strip() if isinstance(reason, str) else ""
    if not reason:
        raise ValidationError("Reason is required", details={"reason": "required"})
    return reason


def _validate_choice(value, allowed, field: str) -> str:
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field} {value!r}. Must be one of: {', '.join(allowed)}",
            details={field: list(allowed)},
        )
    return value


def _validate_approver_ids(approver_ids) -> list[int]:
    """Non-empty, duplicate-free list of existing user ids."""
    if not isinstance(approver_ids, (list, tuple)) or not approver_ids:
        raise ValidationError(
            "At least one approver is required", details={"approver_ids": "required"},
        )
    try:
        ids = [int(a) for a in approver_ids]
    except (TypeError, ValueError):
        raise ValidationError(
            "Approver ids must be integers", details={"approver_ids": approver_ids},
        ) from None
    if len(set(ids)) != len(ids):
        raise ValidationError(
            "Approver list contains duplicates", details={"approver_ids": ids},
        )

    existing = set(db.session.execute(select(User.id).where(User.id.in_(ids))).scalars())
    missing = [i for i in ids if i not in existing]
    if missing:
        raise ValidationError(
            f"Unknown approver(s): {', '.join(map(str, missing))}",
            details={"approver_ids": missing},
        )
    return ids


def _validate_affected_parts(entries, project_id: int) -> list[tuple[int, str | None]]:
    """Normalise ``[id | {"part_id", "impact_description"}]`` to ``[(id, description)]``.

    Parts must exist in the order's project. Repeated ids collapse to the
    first occurrence.
    """
    if entries is None:
        return []
    if not isinstance(entries, (list, tuple)):
        raise ValidationError(
            "affected_part_ids must be a list", details={"affected_part_ids": entries},
        )

    result: dict[int, str | None] = {}
    for entry in entries:
        if isinstance(entry, dict):
            raw_id, impact = entry.get("part_id"), entry.get("impact_description")
        else:
            raw_id, impact = entry, None
        part_id = as_int(raw_id, "affected_part_ids")
        result.setdefault(part_id, clean_text(impact))

    if result:
        found = set(db.session.execute(
            select(Part.id).where(Part.id.in_(result), Part.project_id == project_id)
        ).scalars())
        missing = [i for i in result if i not in found]
        if missing:
            raise ValidationError(
                f"Unknown part(s) for this project: {', '.join(map(str, missing))}",
                details={"affected_part_ids": missing},
            )
    return list(result.items())


# ── Guards ───────────────────────────────────────────────────────────────────


def _require_requester(co: ChangeOrder, actor_id, action: str) -> None:
    if actor_id is None or co.requester_id != actor_id:
        logger.warning(
            "Change order %s denied: not the requester",
            action,
            extra={"change_order_id": co.id, "actor_id": actor_id},
        )
        raise AccessError(actor_id, f"only the requester may {action} this change order")


def _require_draft(co: ChangeOrder, action: str) -> None:
    if co.status != "draft":
        raise StateError(
            RESOURCE, co.status, action,
            reason="Only draft change orders can be modified",
        )


def _append_audit(co: ChangeOrder, from_status, to_status, actor_id, comment=None, metadata=None):
    """Append one audit row and touch the order so its version counter moves."""
    co.audit_entries.append(ChangeOrderAuditEntry(
        from_status=from_status,
        to_status=to_status,
        changed_by=actor_id,
        comment=comment,
        extra=metadata,
    ))
    co.updated_at = _utcnow()


def _transition(co: ChangeOrder, new_status: str, actor_id, action: str, comment=None, metadata=None):
    """Move *co* to *new_status* if the transition table allows it."""
    old_status = co.status
    if not validate_transition(old_status, new_status):
        logger.warning(
            "Rejected change order transition %s → %s",
            old_status, new_status,
            extra={"change_order_id": co.id, "actor_id": actor_id},
        )
        raise StateError(RESOURCE, old_status, action)
    co.status = new_status
    _append_audit(co, old_status, new_status, actor_id, comment, metadata)
    return old_status


# ── Reads ────────────────────────────────────────────────────────────────────


def _audit_entries(co_id: int) -> list[ChangeOrderAuditEntry]:
    return db.session.execute(
        select(ChangeOrderAuditEntry)
        .where(ChangeOrderAuditEntry.change_order_id == co_id)
        .order_by(ChangeOrderAuditEntry.id)
    ).scalars().all()


def _detail(co: ChangeOrder) -> dict:
    d = co.to_dict(include_children=True)
    d["requester_name"] = co.requester.full_name if co.requester else None
    d["project_name"] = co.project.name if co.project else None
    d["audit_trail"] = [e.to_dict() for e in _audit_entries(co.id)]
    return d


def get_change_order(co_id: int) -> dict:
    """Order with approvers, affected parts, approval progress and audit trail."""
    return _detail(get_scoped(ChangeOrder, co_id))


def list_change_orders(
    project_id: int,
    *,
    status: str | None = None,
    co_type: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict:
    """Paginated change orders of a project, newest first."""
    get_scoped(Project, project_id)
    limit, offset = page_bounds(limit, offset)

    stmt = select(ChangeOrder).where(ChangeOrder.project_id == project_id)
    if status:
        stmt = stmt.where(ChangeOrder.status == _validate_choice(status, CHANGE_ORDER_STATUSES, "status"))
    if co_type:
        stmt = stmt.where(ChangeOrder.type == _validate_choice(co_type, CHANGE_ORDER_TYPES, "type"))

    total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.session.execute(
        stmt.order_by(ChangeOrder.id.desc()).limit(limit).offset(offset)
    ).scalars().all()

    items = []
    for co in rows:
        d = co.to_dict()
        d["requester_name"] = co.requester.full_name if co.requester else None
        items.append(d)
    return {"items": items, "total": total, "limit": limit, "offset": offset}


def get_audit_trail(co_id: int) -> list[dict]:
    """Audit entries of an order, oldest first."""
    co = get_scoped(ChangeOrder, co_id)
    return [e.to_dict() for e in _audit_entries(co.id)]


# ── Create / update / delete ─────────────────────────────────────────────────


def _next_sequence(project_id: int, co_type: str) -> int:
    current = db.session.execute(
        select(func.max(cast(ChangeOrder.number, Integer)))
        .where(ChangeOrder.project_id == project_id, ChangeOrder.type == co_type)
    ).scalar()
    return (current or 0) + 1


def create_change_order(data: dict, requester_id: int | None) -> dict:
    """Create a draft ECR/ECN with its approvers and affected parts.

    ``number`` is the next value of the (project, type) counter. Should a
    concurrent create take the same number, the unique constraint rejects
    ours and the whole insert is retried with a freshly read counter.

    Raises:
        NotFoundError: Project does not exist.
        AccessError: Requester is not a project member.
        ValidationError: Bad title/description/reason/type/priority,
            empty or unknown approvers, unknown affected parts.
        ConflictError: No free number after NUMBER_ATTEMPTS tries.
    """
    if data.get("project_id") is None:
        raise ValidationError("project_id is required", details={"project_id": "required"})
    project = get_scoped(Project, as_int(data["project_id"], "project_id"))
    require_project_member(project.id, requester_id)

    co_type = _validate_choice(data.get("type"), CHANGE_ORDER_TYPES, "type")
    title = _validate_title(data.get("title"))
    description = _validate_description(data.get("description"))
    reason = _validate_reason(data.get("reason"))
    priority = _validate_choice(data.get("priority") or "medium", PRIORITIES, "priority")
    approver_ids = _validate_approver_ids(data.get("approver_ids"))
    affected = _validate_affected_parts(data.get("affected_part_ids"), project.id)
    project_id = project.id

    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        number = format_number(_next_sequence(project_id, co_type))
        co = ChangeOrder(
            project_id=project_id,
            type=co_type,
            number=number,
            title=title,
            description=description,
            reason=reason,
            priority=priority,
            status="draft",
            requester_id=requester_id,
        )
        co.approvers = [ChangeOrderApprover(approver_id=a) for a in approver_ids]
        co.affected_parts = [
            ChangeOrderAffectedPart(part_id=p, impact_description=impact) for p, impact in affected
        ]
        db.session.add(co)
        try:
            db.session.commit()
            break
        except IntegrityError:
            db.session.rollback()
            logger.warning(
                "Change order number %s-%s taken, retrying",
                co_type, number,
                extra={"project_id": project_id, "attempt": attempt},
            )
    else:
        raise ConflictError(RESOURCE, "number", f"{co_type}-{number}")

    logger.info(
        "Change order created",
        extra={
            "project_id": project_id,
            "change_order_id": co.id,
            "number": co.display_number,
            "approver_count": len(approver_ids),
        },
    )
    return _detail(co)


def _replace_approvers(co: ChangeOrder, approver_ids: list[int]) -> tuple[list[int], list[int]]:
    current = {a.approver_id: a for a in co.approvers}
    wanted = set(approver_ids)
    removed = [uid for uid in current if uid not in wanted]
    added = [uid for uid in approver_ids if uid not in current]
    for uid in removed:
        co.approvers.remove(current[uid])
    for uid in added:
        co.approvers.append(ChangeOrderApprover(approver_id=uid))
    return added, removed


def _replace_affected_parts(co: ChangeOrder, affected: list[tuple[int, str | None]]) -> None:
    current = {ap.part_id: ap for ap in co.affected_parts}
    wanted = dict(affected)
    for part_id, row in current.items():
        if part_id not in wanted:
            co.affected_parts.remove(row)
    for part_id, impact in affected:
        if part_id in current:
            current[part_id].impact_description = impact
        else:
            co.affected_parts.append(
                ChangeOrderAffectedPart(part_id=part_id, impact_description=impact)
            )


def update_change_order(co_id: int, data: dict, actor_id: int | None) -> dict:
    """Edit a draft order. Only keys present in *data* are touched.

    Supports ``title``, ``description``, ``reason``, ``priority``, and full
    replacement of ``approver_ids`` and ``affected_part_ids``. Replacing the
    approver set with a different one is audited.
    """
    try:
        co = get_scoped(ChangeOrder, co_id, for_update=True)
        _require_requester(co, actor_id, "update")
        _require_draft(co, "update")

        if "title" in data:
            co.title = _validate_title(data["title"])
        if "description" in data:
            co.description = _validate_description(data["description"])
        if "reason" in data:
            co.reason = _validate_reason(data["reason"])
        if "priority" in data:
            co.priority = _validate_choice(data["priority"], PRIORITIES, "priority")
        if "affected_part_ids" in data:
            _replace_affected_parts(co, _validate_affected_parts(data["affected_part_ids"], co.project_id))
        if "approver_ids" in data:
            added, removed = _replace_approvers(co, _validate_approver_ids(data["approver_ids"]))
            if added or removed:
                _append_audit(
                    co, co.status, co.status, actor_id,
                    comment="Approvers updated",
                    metadata={"added": added, "removed": removed},
                )
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict(RESOURCE)

    logger.info("Change order updated", extra={"change_order_id": co.id, "actor_id": actor_id})
    return _detail(co)


def delete_change_order(co_id: int, actor_id: int | None) -> None:
    """Delete a draft order with its approvers, affected parts and audit trail."""
    try:
        co = get_scoped(ChangeOrder, co_id, for_update=True)
        _require_requester(co, actor_id, "delete")
        _require_draft(co, "delete")
        project_id = co.project_id
        db.session.delete(co)
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict(RESOURCE)

    logger.info(
        "Change order deleted",
        extra={"project_id": project_id, "change_order_id": co_id, "actor_id": actor_id},
    )


# ── Approver management ──────────────────────────────────────────────────────


def add_approver(co_id: int, actor_id: int | None, approver_id: int) -> dict:
    """Add a pending approver to a draft order.

    Raises:
        NotFoundError: Order or user does not exist.
        AccessError: Actor is not the requester.
        StateError: Order is not draft.
        ValidationError: User is already an approver.
    """
    try:
        co = get_scoped(ChangeOrder, co_id, for_update=True)
        _require_requester(co, actor_id, "add approvers to")
        _require_draft(co, "add_approver")
        user = get_scoped(User, approver_id)

        if any(a.approver_id == user.id for a in co.approvers):
            raise ValidationError(
                f"User {user.id} is already an approver",
                details={"approver_id": user.id},
            )
        co.approvers.append(ChangeOrderApprover(approver_id=user.id))
        _append_audit(
            co, co.status, co.status, actor_id,
            comment="Approver added",
            metadata={"approver_id": user.id},
        )
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict(RESOURCE, "approver_id", approver_id)

    logger.info(
        "Approver added",
        extra={"change_order_id": co.id, "approver_id": approver_id, "actor_id": actor_id},
    )
    return _detail(co)


def remove_approver(co_id: int, actor_id: int | None, approver_id: int) -> dict:
    """Remove a still-pending approver from a draft order.

    The last approver cannot be removed: an order always has at least one.
    """
    try:
        co = get_scoped(ChangeOrder, co_id, for_update=True)
        _require_requester(co, actor_id, "remove approvers from")
        _require_draft(co, "remove_approver")

        row = next((a for a in co.approvers if a.approver_id == approver_id), None)
        if row is None:
            raise NotFoundError("ChangeOrderApprover", approver_id)
        if row.status != "pending":
            raise StateError(
                "ChangeOrderApprover", row.status, "remove",
                reason="only pending approvers can be removed",
            )
        if len(co.approvers) == 1:
            raise ValidationError(
                "A change order needs at least one approver",
                details={"approver_id": approver_id},
            )

        co.approvers.remove(row)
        _append_audit(
            co, co.status, co.status, actor_id,
            comment="Approver removed",
            metadata={"approver_id": approver_id},
        )
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict(RESOURCE)

    logger.info(
        "Approver removed",
        extra={"change_order_id": co.id, "approver_id": approver_id, "actor_id": actor_id},
    )
    return _detail(co)


# ── Workflow transitions ─────────────────────────────────────────────────────


def submit_change_order(co_id: int, actor_id: int | None) -> dict:
    """draft | rejected → submitted. Resubmission opens a new review round."""
    try:
        co = get_scoped(ChangeOrder, co_id, for_update=True)
        _require_requester(co, actor_id, "submit")
        resubmission = co.status == "rejected"
        _transition(co, "submitted", actor_id, "submit", comment="Submitted for review")
        if resubmission:
            for approver in co.approvers:
                approver.status = "pending"
                approver.comment = None
                approver.reviewed_at = None
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict(RESOURCE)

    logger.info(
        "Change order submitted",
        extra={"change_order_id": co.id, "actor_id": actor_id, "resubmission": resubmission},
    )
    return _detail(co)


def accept_for_review(co_id: int, actor_id: int | None) -> dict:
    """submitted → in_review."""
    try:
        co = get_scoped(ChangeOrder, co_id, for_update=True)
        _transition(co, "in_review", actor_id, "accept_for_review", comment="Accepted for review")
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict(RESOURCE)

    logger.info("Change order accepted for review", extra={"change_order_id": co.id, "actor_id": actor_id})
    return _detail(co)


def _consensus(statuses: list[str]) -> str:
    if any(s == "rejected" for s in statuses):
        return "rejected"
    if statuses and all(s == "approved" for s in statuses):
        return "approved"
    return "in_review"


def review_change_order(co_id: int, actor_id: int | None, status: str, comment: str | None = None) -> dict:
    """Record one approver's decision and re-evaluate consensus.

    The approver statuses used for the consensus decision are re-read after
    this approver's write, under the order's row lock, so concurrent reviews
    on the same order are decided one after the other.

    Raises:
        ValidationError: Decision not approved/rejected, or rejection without comment.
        AccessError: Actor is not an approver of this order.
        StateError: Order not in review, or this approver already reviewed.
    """
    _validate_choice(status, REVIEW_DECISIONS, "status")
    comment = comment.strip() if isinstance(comment, str) else None
    if status == "rejected" and not comment:
        raise ValidationError(
            "A comment is required when rejecting",
            details={"comment": "required on rejection"},
        )

    try:
        co = get_scoped(ChangeOrder, co_id, for_update=True)
        approver = db.session.execute(
            select(ChangeOrderApprover).where(
                ChangeOrderApprover.change_order_id == co.id,
                ChangeOrderApprover.approver_id == actor_id,
            )
        ).scalar_one_or_none()
        if approver is None:
            logger.warning(
                "Review denied: not an approver",
                extra={"change_order_id": co.id, "actor_id": actor_id},
            )
            raise AccessError(actor_id, "not an approver of this change order")
        if co.status != "in_review":
            raise StateError(RESOURCE, co.status, "review")
        if approver.status != "pending":
            raise StateError(
                "ChangeOrderApprover", approver.status, "review",
                reason="approver has already reviewed this change order",
            )

        approver.status = status
        approver.comment = comment or None
        approver.reviewed_at = _utcnow()
        db.session.flush()

        statuses = db.session.execute(
            select(ChangeOrderApprover.status).where(ChangeOrderApprover.change_order_id == co.id)
        ).scalars().all()
        outcome = _consensus(statuses)
        metadata = {"approver_id": actor_id, "decision": status}
        if comment:
            metadata["comment"] = comment

        if outcome == "approved":
            _transition(co, "approved", actor_id, "approve",
                        comment="Approved by all required approvers", metadata=metadata)
        elif outcome == "rejected":
            _transition(co, "rejected", actor_id, "reject",
                        comment=f"Rejected: {comment}", metadata=metadata)
        else:
            done = sum(1 for s in statuses if s == "approved")
            _append_audit(co, co.status, co.status, actor_id,
                          comment=f"Partial approval ({done}/{len(statuses)})", metadata=metadata)
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict(RESOURCE)

    logger.info(
        "Change order reviewed",
        extra={
            "change_order_id": co_id,
            "actor_id": actor_id,
            "decision": status,
            "to_status": outcome,
        },
    )
    return _detail(co)


def implement_change_order(co_id: int, actor_id: int | None, revision_id=None) -> dict:
    """approved → implemented, optionally recording the revision it produced."""
    try:
        co = get_scoped(ChangeOrder, co_id, for_update=True)
        metadata = {"revision_id": str(revision_id)} if revision_id is not None else None
        _transition(co, "implemented", actor_id, "implement",
                    comment="Change implemented", metadata=metadata)
        co.implemented_at = _utcnow()
        if revision_id is not None:
            co.implemented_revision_id = str(revision_id)
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict(RESOURCE)

    logger.info(
        "Change order implemented",
        extra={"change_order_id": co.id, "actor_id": actor_id, "revision_id": revision_id},
    )
    return _detail(co)


# ── Analysis ─────────────────────────────────────────────────────────────────


def perform_impact_analysis(co_id: int) -> dict:
    """Affected parts with their direct parents, and overlapping change orders.

    ``where_used_count`` is the number of distinct parent parts that use at
    least one affected part.
    """
    co = get_scoped(ChangeOrder, co_id)
    edges = project_edges(co.project_id)
    affected = list(co.affected_parts)
    affected_ids = [ap.part_id for ap in affected]

    parents_by_part = {}
    all_parents: set[int] = set()
    for part_id in affected_ids:
        parents = list(dict.fromkeys(bom_graph.where_used(part_id, edges)))
        parents_by_part[part_id] = parents
        all_parents.update(parents)

    parent_rows = {
        p.id: p
        for p in db.session.execute(select(Part).where(Part.id.in_(all_parents))).scalars()
    } if all_parents else {}

    affected_parts = []
    for ap in affected:
        affected_parts.append({
            "part_id": ap.part_id,
            "part_number": ap.part.part_number if ap.part else None,
            "name": ap.part.name if ap.part else None,
            "impact_description": ap.impact_description,
            "where_used": [
                {"part_id": pid, "part_number": parent_rows[pid].part_number, "name": parent_rows[pid].name}
                for pid in parents_by_part[ap.part_id]
                if pid in parent_rows
            ],
        })

    related = []
    if affected_ids:
        rows = db.session.execute(
            select(ChangeOrder, ChangeOrderAffectedPart.part_id)
            .join(ChangeOrderAffectedPart, ChangeOrderAffectedPart.change_order_id == ChangeOrder.id)
            .where(
                ChangeOrder.project_id == co.project_id,
                ChangeOrder.id != co.id,
                ChangeOrderAffectedPart.part_id.in_(affected_ids),
            )
            .order_by(ChangeOrder.id, ChangeOrderAffectedPart.part_id)
        ).all()
        by_order: dict[int, dict] = {}
        for other, part_id in rows:
            entry = by_order.setdefault(other.id, {
                "id": other.id,
                "number": other.display_number,
                "title": other.title,
                "status": other.status,
                "shared_part_ids": [],
            })
            entry["shared_part_ids"].append(part_id)
        related = list(by_order.values())

    return {
        "change_order_id": co.id,
        "affected_parts": affected_parts,
        "where_used_count": len(all_parents),
        "related_change_orders": related,
    }


def get_project_statistics(project_id: int) -> dict:
    """Counts of a project's change orders by status and by type."""
    get_scoped(Project, project_id)

    by_status = {s: 0 for s in CHANGE_ORDER_STATUSES}
    for status, count in db.session.execute(
        select(ChangeOrder.status, func.count(ChangeOrder.id))
        .where(ChangeOrder.project_id == project_id)
        .group_by(ChangeOrder.status)
    ).all():
        by_status[status] = count

    by_type = {t: 0 for t in CHANGE_ORDER_TYPES}
    for co_type, count in db.session.execute(
        select(ChangeOrder.type, func.count(ChangeOrder.id))
        .where(ChangeOrder.project_id == project_id)
        .group_by(ChangeOrder.type)
    ).all():
        by_type[co_type] = count

    return {"total": sum(by_status.values()), "by_status": by_status, "by_type": by_type}
