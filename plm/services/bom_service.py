"""
Storage-backed BOM operations.

Loads a project's parts and BOM edges into the value types of
``plm.services.bom_graph`` and delegates all graph work to it.

Concurrency:
    Every BOM mutation first locks the owning Project row. The edge set used
    for cycle detection is read after that lock, inside the same transaction
    as the insert, so two concurrent inserts that would only form a cycle
    together cannot both pass the check.
"""

import logging

from flask import current_app
from sqlalchemy import func, select

from plm.core.exceptions import CycleError, ValidationError
from plm.models import db
from plm.models.audit import write_audit
from plm.models.part import BomItem, Part
from plm.models.project import Project
from plm.services import bom_graph
from plm.services.bom_graph import BomEdge, PartSummary, format_quantity, parse_quantity
from plm.services.helpers.inputs import clean_text
from plm.services.helpers.scoped_queries import commit_or_conflict, get_scoped

logger = logging.getLogger(__name__)

UNIT_MAX_LENGTH = 20


# ── Loading ──────────────────────────────────────────────────────────────────


def project_parts(project_id: int) -> dict:
    rows = db.session.execute(select(Part).where(Part.project_id == project_id)).scalars()
    return {
        p.id: PartSummary(
            id=p.id,
            part_number=p.part_number,
            name=p.name,
            description=p.description,
            category=p.category,
            status=p.status,
        )
        for p in rows
    }


def project_edges(project_id: int) -> list[BomEdge]:
    # Ordered by PK so equal positions keep insertion order
    rows = db.session.execute(
        select(BomItem).where(BomItem.project_id == project_id).order_by(BomItem.id)
    ).scalars()
    return [_to_edge(item) for item in rows]


def _to_edge(item: BomItem) -> BomEdge:
    return BomEdge(
        id=item.id,
        parent_id=item.parent_part_id,
        child_id=item.child_part_id,
        quantity=item.quantity,
        unit=item.unit,
        position=item.position,
        notes=item.notes,
    )


def _max_depth() -> int:
    return current_app.config.get("PLM_MAX_BOM_DEPTH", bom_graph.DEFAULT_MAX_DEPTH)


def _lock_project(project_id: int) -> Project:
    return get_scoped(Project, project_id, for_update=True)


# ── Field validation ─────────────────────────────────────────────────────────


def _clean_unit(unit) -> str:
    if unit is None:
        return bom_graph.DEFAULT_UNIT
    unit = str(unit).strip()
    if not unit:
        return bom_graph.DEFAULT_UNIT
    if len(unit) > UNIT_MAX_LENGTH:
        raise ValidationError(
            f"Unit must be at most {UNIT_MAX_LENGTH} characters",
            details={"unit": f"max length {UNIT_MAX_LENGTH}"},
        )
    return unit


def _clean_position(position) -> int:
    if isinstance(position, bool):
        position = None
    try:
        value = int(position)
    except (TypeError, ValueError):
        raise ValidationError(
            "Position must be a non-negative integer", details={"position": position},
        ) from None
    if value < 0:
        raise ValidationError(
            "Position must be a non-negative integer", details={"position": position},
        )
    return value


def _next_position(parent_id: int) -> int:
    current = db.session.execute(
        select(func.max(BomItem.position)).where(BomItem.parent_part_id == parent_id)
    ).scalar()
    return (current or 0) + 1


# ── Mutations ────────────────────────────────────────────────────────────────


def add_bom_item(
    parent_id: int,
    child_id: int,
    quantity,
    unit: str | None = None,
    position: int | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> dict:
    """Attach *child_id* under *parent_id*.

    Raises:
        NotFoundError: Parent or child part does not exist.
        ValidationError: Parts in different projects, bad quantity/unit/position.
        CycleError: The edge would make the parent its own descendant.
    """
    try:
        parent = get_scoped(Part, parent_id)
        child = get_scoped(Part, child_id)
        if parent.project_id != child.project_id:
            raise ValidationError(
                "Parent and child parts must belong to the same project",
                details={"parent_project_id": parent.project_id, "child_project_id": child.project_id},
            )
        qty = format_quantity(parse_quantity(quantity))
        unit = _clean_unit(unit)

        _lock_project(parent.project_id)
        edges = project_edges(parent.project_id)
        if bom_graph.detect_cycle(edges, parent.id, child.id):
            logger.warning(
                "BOM edge rejected: cycle",
                extra={"project_id": parent.project_id, "parent_id": parent.id, "child_id": child.id},
            )
            raise CycleError(
                f"Adding {child.part_number} under {parent.part_number} would create a cycle",
                part_id=child.id,
            )

        item = BomItem(
            project_id=parent.project_id,
            parent_part_id=parent.id,
            child_part_id=child.id,
            quantity=qty,
            unit=unit,
            position=_clean_position(position) if position is not None else _next_position(parent.id),
            notes=clean_text(notes),
        )
        db.session.add(item)
        db.session.flush()

        write_audit(
            entity_type="bom_item",
            entity_id=item.id,
            action="bom.add",
            project_id=parent.project_id,
            actor_user_id=actor_id,
            diff={"parent_part_id": parent.id, "child_part_id": child.id, "quantity": qty, "unit": unit},
        )
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict("BomItem")

    logger.info(
        "BOM item added",
        extra={"project_id": item.project_id, "part_id": item.parent_part_id, "bom_item_id": item.id},
    )
    return item.to_dict()


def update_bom_item(
    item_id: int,
    quantity=None,
    unit: str | None = None,
    position: int | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> dict:
    """Change quantity, unit, position or notes of an edge. ``None`` leaves a field as is."""
    try:
        item = get_scoped(BomItem, item_id)
        _lock_project(item.project_id)
        db.session.refresh(item)

        requested = {}
        if quantity is not None:
            requested["quantity"] = format_quantity(parse_quantity(quantity))
        if unit is not None:
            requested["unit"] = _clean_unit(unit)
        if position is not None:
            requested["position"] = _clean_position(position)
        if notes is not None:
            requested["notes"] = clean_text(notes)

        diff = {
            field: {"old": getattr(item, field), "new": value}
            for field, value in requested.items()
            if getattr(item, field) != value
        }
        if not diff:
            result = item.to_dict()
            db.session.rollback()
            return result

        for field, change in diff.items():
            setattr(item, field, change["new"])

        write_audit(
            entity_type="bom_item",
            entity_id=item.id,
            action="bom.update",
            project_id=item.project_id,
            actor_user_id=actor_id,
            diff=diff,
        )
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict("BomItem")

    logger.info("BOM item updated", extra={"project_id": item.project_id, "bom_item_id": item.id})
    return item.to_dict()


def remove_bom_item(item_id: int, actor_id: int | None = None) -> None:
    try:
        item = get_scoped(BomItem, item_id)
        project_id = item.project_id
        _lock_project(project_id)

        write_audit(
            entity_type="bom_item",
            entity_id=item.id,
            action="bom.remove",
            project_id=project_id,
            actor_user_id=actor_id,
            diff={
                "parent_part_id": item.parent_part_id,
                "child_part_id": item.child_part_id,
                "quantity": item.quantity,
            },
        )
        db.session.delete(item)
    except Exception:
        db.session.rollback()
        raise
    commit_or_conflict("BomItem")

    logger.info("BOM item removed", extra={"project_id": project_id, "bom_item_id": item_id})


# ── Reads ────────────────────────────────────────────────────────────────────


def get_bom_tree(root_id: int) -> dict:
    """Expanded tree plus the indented flat list for a root part.

    Raises:
        NotFoundError, CycleError, DepthExceededError: from the graph engine.
    """
    root = get_scoped(Part, root_id)
    parts = project_parts(root.project_id)
    edges = project_edges(root.project_id)

    tree = bom_graph.build_tree(root.id, parts, edges, max_depth=_max_depth())
    flat = bom_graph.flatten(tree)
    return {
        "root_part": root.to_dict(),
        "tree": tree.to_dict(),
        "flat_list": [row.to_dict() for row in flat],
        "max_level": max(row.level for row in flat),
        "total_parts": len(flat),
    }


def get_where_used(part_id: int) -> dict:
    """Direct parents of a part, one row per BOM edge."""
    part = get_scoped(Part, part_id)
    edges = [e for e in project_edges(part.project_id) if e.child_id == part.id]
    parent_ids = set(bom_graph.where_used(part.id, edges))
    parents = {
        p.id: p
        for p in db.session.execute(select(Part).where(Part.id.in_(parent_ids))).scalars()
    } if parent_ids else {}

    rows = []
    for edge in edges:
        parent = parents.get(edge.parent_id)
        if parent is None:
            continue
        rows.append({
            "bom_item_id": edge.id,
            "part_id": parent.id,
            "part_number": parent.part_number,
            "name": parent.name,
            "quantity": edge.quantity,
            "unit": edge.unit,
            "path": f"{parent.part_number}{bom_graph.PATH_SEPARATOR}{part.part_number}",
        })
    return {
        "part_id": part.id,
        "part_number": part.part_number,
        "name": part.name,
        "parents": rows,
    }


def get_total_quantity(root_id: int, target_id: int) -> dict:
    """Rolled-up quantity of *target_id* needed to build one *root_id*."""
    root = get_scoped(Part, root_id)
    target = get_scoped(Part, target_id)
    tree = bom_graph.build_tree(
        root.id, project_parts(root.project_id), project_edges(root.project_id),
        max_depth=_max_depth(),
    )
    return {
        "root_part_id": root.id,
        "target_part_id": target.id,
        "total_quantity": bom_graph.total_quantity(tree, target.id),
    }


def validate_bom(root_id: int) -> dict:
    """Non-throwing structural check of the BOM below *root_id*."""
    root = get_scoped(Part, root_id)
    result = bom_graph.validate(
        root.id, project_parts(root.project_id), project_edges(root.project_id),
        max_depth=_max_depth(),
    )
    return result.to_dict()
