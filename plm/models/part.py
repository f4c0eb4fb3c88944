"""
Part domain models.

Models:
    - Part:      a project-scoped item identified by its part number.
    - Revision:  append-only, sequentially coded history of a part (A, B, ..., Z, AA, ...).
    - BomItem:   a "parent contains child" edge of the bill of materials.

The BOM is a DAG over part ids. Edges are stored flat; the tree shape is
derived on demand by ``plm.services.bom_graph``.
"""

from datetime import datetime, timezone

from plm.models import db

# ── Constants ────────────────────────────────────────────────────────────────

PART_STATUSES = ("draft", "active", "obsolete")

PART_NUMBER_PATTERN = r"^[A-Z0-9-]{1,50}$"
PART_NAME_MIN_LENGTH = 2
PART_NAME_MAX_LENGTH = 255

# Fields of a part whose changes produce a new revision
REVISIONED_FIELDS = ("name", "description", "category", "status")


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Part
# ═════════════════════════════════════════════════════════════════════════════


class Part(db.Model):
    """
    Project-scoped part. Never hard-deleted.

    ``version`` is an optimistic-lock counter: an UPDATE that finds a
    different version than the one it read fails instead of overwriting.
    """

    __tablename__ = "parts"
    __table_args__ = (
        db.UniqueConstraint("project_id", "part_number", name="uq_part_project_number"),
        db.Index("ix_parts_project_status", "project_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    part_number = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | active | obsolete",
    )
    current_revision_id = db.Column(
        db.Integer,
        db.ForeignKey(
            "part_revisions.id", use_alter=True, name="fk_parts_current_revision", ondelete="SET NULL",
        ),
        nullable=True,
    )
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "part_number": self.part_number,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "current_revision_id": self.current_revision_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Part {self.id}: {self.part_number}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Revision
# ═════════════════════════════════════════════════════════════════════════════


class Revision(db.Model):
    """
    Immutable snapshot of a part change.

    Codes per part are gap-free and strictly increasing from "A"; the unique
    constraint makes a concurrent duplicate ``next_code`` fail at the storage
    boundary. ``changes`` holds ``{field: {"old": x, "new": y}}``.
    """

    __tablename__ = "part_revisions"
    __table_args__ = (
        db.UniqueConstraint("part_id", "revision_code", name="uq_revision_part_code"),
    )

    id = db.Column(db.Integer, primary_key=True)
    part_id = db.Column(
        db.Integer,
        db.ForeignKey("parts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    revision_code = db.Column(db.String(10), nullable=False)
    description = db.Column(db.Text, nullable=True)
    changes = db.Column(db.JSON, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "part_id": self.part_id,
            "revision_code": self.revision_code,
            "description": self.description,
            "changes": self.changes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Revision {self.part_id}/{self.revision_code}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. BomItem
# ═════════════════════════════════════════════════════════════════════════════


class BomItem(db.Model):
    """
    One BOM edge: ``parent_part_id`` contains ``quantity`` × ``child_part_id``.

    ``quantity`` is kept as its decimal text so roll-ups never pass through
    floating point. ``project_id`` is denormalised from the parent part; both
    ends always belong to the same project.
    """

    __tablename__ = "bom_items"
    __table_args__ = (
        db.CheckConstraint("parent_part_id <> child_part_id", name="ck_bom_no_self_reference"),
        db.Index("ix_bom_items_parent", "parent_part_id"),
        db.Index("ix_bom_items_child", "child_part_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_part_id = db.Column(
        db.Integer, db.ForeignKey("parts.id", ondelete="CASCADE"), nullable=False,
    )
    child_part_id = db.Column(
        db.Integer, db.ForeignKey("parts.id", ondelete="CASCADE"), nullable=False,
    )
    quantity = db.Column(db.String(32), nullable=False, default="1")
    unit = db.Column(db.String(20), nullable=False, default="EA")
    position = db.Column(db.Integer, nullable=False, default=1)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "parent_part_id": self.parent_part_id,
            "child_part_id": self.child_part_id,
            "quantity": self.quantity,
            "unit": self.unit,
            "position": self.position,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<BomItem {self.parent_part_id} -> {self.child_part_id} x{self.quantity}>"
