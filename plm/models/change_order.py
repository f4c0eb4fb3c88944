"""
Engineering change order models.

Models:
    - ChangeOrder:             ECR / ECN with a closed status machine.
    - ChangeOrderApprover:     one designated reviewer of an order.
    - ChangeOrderAffectedPart: a part the change touches (drives impact analysis).
    - ChangeOrderAuditEntry:   append-only status history of an order.

Status flow:
    draft → submitted → in_review → approved → implemented
    draft | submitted | in_review → rejected → submitted (resubmit)
    in_review → submitted (sent back)
"""

from datetime import datetime, timezone

from plm.models import db

# ── Constants ────────────────────────────────────────────────────────────────

CHANGE_ORDER_TYPES = ("ECR", "ECN")

CHANGE_ORDER_STATUSES = (
    "draft", "submitted", "in_review", "approved", "rejected", "implemented",
)

APPROVAL_STATUSES = ("pending", "approved", "rejected")

PRIORITIES = ("urgent", "high", "medium", "low")

NUMBER_WIDTH = 3

CHANGE_ORDER_TRANSITIONS = {
    "draft":       ["submitted", "rejected"],
    "submitted":   ["in_review", "rejected"],
    "in_review":   ["approved", "rejected", "submitted"],
    "approved":    ["implemented"],
    "rejected":    ["submitted"],
    "implemented": [],
}


def validate_transition(old_status, new_status):
    """Return True if the ChangeOrder status transition is valid."""
    return new_status in CHANGE_ORDER_TRANSITIONS.get(old_status, [])


def format_number(sequence: int) -> str:
    """Zero-pad a change-order counter: 1 → "001", 1000 → "1000"."""
    return str(sequence).zfill(NUMBER_WIDTH)


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# 1. ChangeOrder
# ═════════════════════════════════════════════════════════════════════════════


class ChangeOrder(db.Model):
    """
    Engineering change request (ECR) or notice (ECN).

    Mutable only in ``draft``. ``number`` is sequential per (project, type).
    ``implemented_revision_id`` is a free-form reference to whatever revision
    the implementation produced; it is not a foreign key.
    """

    __tablename__ = "change_orders"
    __table_args__ = (
        db.UniqueConstraint("project_id", "type", "number", name="uq_change_order_number"),
        db.Index("ix_change_orders_project_status", "project_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = db.Column(db.String(3), nullable=False, comment="ECR | ECN")
    number = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    priority = db.Column(
        db.String(10), nullable=False, default="medium",
        comment="urgent | high | medium | low",
    )
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | submitted | in_review | approved | rejected | implemented",
    )
    requester_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    implemented_at = db.Column(db.DateTime(timezone=True), nullable=True)
    implemented_revision_id = db.Column(db.String(64), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    project = db.relationship("Project")
    requester = db.relationship("User", foreign_keys=[requester_id])
    approvers = db.relationship(
        "ChangeOrderApprover",
        back_populates="change_order",
        cascade="all, delete-orphan",
        order_by="ChangeOrderApprover.id",
    )
    affected_parts = db.relationship(
        "ChangeOrderAffectedPart",
        back_populates="change_order",
        cascade="all, delete-orphan",
        order_by="ChangeOrderAffectedPart.id",
    )
    audit_entries = db.relationship(
        "ChangeOrderAuditEntry",
        back_populates="change_order",
        cascade="all, delete-orphan",
        order_by="ChangeOrderAuditEntry.id",
    )

    @property
    def display_number(self) -> str:
        return f"{self.type}-{self.number}"

    def approval_progress(self) -> dict:
        counts = {s: 0 for s in APPROVAL_STATUSES}
        for approver in self.approvers:
            counts[approver.status] = counts.get(approver.status, 0) + 1
        return {
            "total": len(self.approvers),
            "approved": counts["approved"],
            "rejected": counts["rejected"],
            "pending": counts["pending"],
        }

    def to_dict(self, include_children=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "number": self.number,
            "display_number": self.display_number,
            "title": self.title,
            "description": self.description,
            "reason": self.reason,
            "priority": self.priority,
            "status": self.status,
            "requester_id": self.requester_id,
            "implemented_at": self.implemented_at.isoformat() if self.implemented_at else None,
            "implemented_revision_id": self.implemented_revision_id,
            "approval_progress": self.approval_progress(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            d["approvers"] = [a.to_dict() for a in self.approvers]
            d["affected_parts"] = [p.to_dict() for p in self.affected_parts]
        return d

    def __repr__(self):
        return f"<ChangeOrder {self.id}: {self.type}-{self.number} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ChangeOrderApprover
# ═════════════════════════════════════════════════════════════════════════════


class ChangeOrderApprover(db.Model):
    __tablename__ = "change_order_approvers"
    __table_args__ = (
        db.UniqueConstraint("change_order_id", "approver_id", name="uq_change_order_approver"),
    )

    id = db.Column(db.Integer, primary_key=True)
    change_order_id = db.Column(
        db.Integer,
        db.ForeignKey("change_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    approver_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(
        db.String(10), nullable=False, default="pending",
        comment="pending | approved | rejected",
    )
    comment = db.Column(db.Text, nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    change_order = db.relationship("ChangeOrder", back_populates="approvers")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "change_order_id": self.change_order_id,
            "approver_id": self.approver_id,
            "approver_name": self.user.full_name if self.user else None,
            "status": self.status,
            "comment": self.comment,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. ChangeOrderAffectedPart
# ═════════════════════════════════════════════════════════════════════════════


class ChangeOrderAffectedPart(db.Model):
    __tablename__ = "change_order_affected_parts"
    __table_args__ = (
        db.UniqueConstraint("change_order_id", "part_id", name="uq_change_order_affected_part"),
    )

    id = db.Column(db.Integer, primary_key=True)
    change_order_id = db.Column(
        db.Integer,
        db.ForeignKey("change_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    part_id = db.Column(
        db.Integer, db.ForeignKey("parts.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    impact_description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    change_order = db.relationship("ChangeOrder", back_populates="affected_parts")
    part = db.relationship("Part")

    def to_dict(self):
        return {
            "id": self.id,
            "change_order_id": self.change_order_id,
            "part_id": self.part_id,
            "part_number": self.part.part_number if self.part else None,
            "part_name": self.part.name if self.part else None,
            "impact_description": self.impact_description,
        }


# ═════════════════════════════════════════════════════════════════════════════
# 4. ChangeOrderAuditEntry
# ═════════════════════════════════════════════════════════════════════════════


class ChangeOrderAuditEntry(db.Model):
    """
    Append-only history row. Never updated; removed only with its order.

    ``from_status`` and ``to_status`` are equal for events that do not move
    the order (partial approvals, approver changes).
    """

    __tablename__ = "change_order_audit_trail"

    id = db.Column(db.Integer, primary_key=True)
    change_order_id = db.Column(
        db.Integer,
        db.ForeignKey("change_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=False)
    changed_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    comment = db.Column(db.Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    change_order = db.relationship("ChangeOrder", back_populates="audit_entries")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "change_order_id": self.change_order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "changed_by_name": self.user.full_name if self.user else None,
            "comment": self.comment,
            "metadata": self.extra or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ChangeOrderAuditEntry {self.change_order_id}: {self.from_status} → {self.to_status}>"
