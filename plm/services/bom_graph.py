"""
BOM graph engine: cycle detection, tree building, flattening, roll-up.

Operates purely on a caller-supplied part lookup (``{part_id: PartSummary}``)
and a list of ``BomEdge`` values. No database access happens here; the
storage-backed operations live in ``plm.services.bom_service``.

The parent/child relation is a DAG, not a tree: the same child may sit under
several parents (diamond structures). It is always represented as an edge
list plus an adjacency index built on demand, never as object references.

Quantities are decimal strings. All arithmetic uses ``decimal.Decimal`` so
deep multiplicative chains do not drift.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from plm.core.exceptions import (
    CycleError,
    DepthExceededError,
    NotFoundError,
    ValidationError,
)

DEFAULT_MAX_DEPTH = 20
DEFAULT_UNIT = "EA"
ROOT_QUANTITY = "1"
PATH_SEPARATOR = " > "
# Width of the bom_items.quantity column
QUANTITY_MAX_LENGTH = 32


# ── Value types ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class BomEdge:
    """A single "parent contains child" relationship."""
    parent_id: Hashable
    child_id: Hashable
    quantity: str
    unit: str = DEFAULT_UNIT
    position: int | None = None
    notes: str | None = None
    id: Hashable | None = None


@dataclass(frozen=True)
class PartSummary:
    """The slice of a part the engine needs to label nodes."""
    id: Hashable
    part_number: str
    name: str
    description: str | None = None
    category: str | None = None
    status: str = "draft"


@dataclass
class BomTreeNode:
    """Rooted-tree projection of the edge set. Derived, never persisted."""
    part_id: Hashable
    part_number: str
    name: str
    quantity: str
    unit: str
    level: int
    path: str
    description: str | None = None
    category: str | None = None
    status: str = "draft"
    position: int | None = None
    notes: str | None = None
    children: list[BomTreeNode] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "part_id": self.part_id,
            "part_number": self.part_number,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "quantity": self.quantity,
            "unit": self.unit,
            "level": self.level,
            "path": self.path,
            "position": self.position,
            "notes": self.notes,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class FlatBomItem:
    """One row of a flattened (indented) BOM."""
    part_id: Hashable
    part_number: str
    name: str
    quantity: str
    unit: str
    level: int
    path: str
    description: str | None = None
    category: str | None = None
    status: str = "draft"
    position: int | None = None

    def to_dict(self) -> dict:
        return {
            "part_id": self.part_id,
            "part_number": self.part_number,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "quantity": self.quantity,
            "unit": self.unit,
            "level": self.level,
            "path": self.path,
            "position": self.position,
        }


@dataclass
class BomValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors)}


# ── Quantity helpers ─────────────────────────────────────────────────────────


def parse_quantity(value) -> Decimal:
    """Parse an edge quantity. Must be a finite, non-negative decimal.

    Raises:
        ValidationError: on anything else (including floats' string forms
        like ``"nan"`` or ``"inf"``).
    """
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError("Quantity is required", details={"quantity": "required"})
    try:
        qty = Decimal(text)
    except InvalidOperation:
        raise ValidationError(
            f"Quantity {value!r} is not a number",
            details={"quantity": "must be a non-negative decimal"},
        ) from None
    if not qty.is_finite() or qty < 0:
        raise ValidationError(
            f"Quantity {value!r} must be a non-negative number",
            details={"quantity": "must be a non-negative decimal"},
        )
    # adjusted() bounds the digit count before format() expands the exponent
    if (qty and abs(qty.adjusted()) > QUANTITY_MAX_LENGTH) or len(format_quantity(qty)) > QUANTITY_MAX_LENGTH:
        raise ValidationError(
            f"Quantity {value!r} has too many digits",
            details={"quantity": f"at most {QUANTITY_MAX_LENGTH} characters as a plain decimal"},
        )
    return qty


def format_quantity(qty: Decimal) -> str:
    """Render a Decimal as a plain string without exponent or trailing zeros."""
    if qty == 0:
        return "0"
    return format(qty.normalize(), "f")


# ── Adjacency ────────────────────────────────────────────────────────────────


def _children_index(edges: Iterable[BomEdge]) -> dict:
    adj: dict = defaultdict(list)
    for edge in edges:
        adj[edge.parent_id].append(edge)
    return adj


def _ordered(child_edges: list[BomEdge]) -> list[BomEdge]:
    # sorted() is stable: equal positions keep edge-list order
    return sorted(child_edges, key=lambda e: e.position or 0)


# ── Operations ───────────────────────────────────────────────────────────────


def detect_cycle(edges: Iterable[BomEdge], parent_id, child_id) -> bool:
    """Return True if adding ``parent_id -> child_id`` would create a cycle.

    A cycle appears when the parent is the child itself, or when the parent is
    already reachable from the child by following existing edges downward.
    Iterative DFS, O(V+E).
    """
    if parent_id == child_id:
        return True

    adj: dict = defaultdict(list)
    for edge in edges:
        adj[edge.parent_id].append(edge.child_id)

    visited = set()
    stack = [child_id]
    while stack:
        current = stack.pop()
        if current == parent_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(c for c in adj.get(current, ()) if c not in visited)

    return False


def build_tree(
    root_id,
    parts: Mapping,
    edges: Iterable[BomEdge],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> BomTreeNode:
    """Expand the BOM under *root_id* into a tree.

    Children are ordered by ``position`` ascending; ties keep edge order.
    The root always carries quantity "1" / unit "EA".

    Raises:
        NotFoundError: root or a referenced child is missing from *parts*.
        DepthExceededError: a node would sit deeper than *max_depth*.
        CycleError: a part appears twice on the same root-to-node path.
    """
    if root_id not in parts:
        raise NotFoundError("Part", root_id)

    adj = _children_index(edges)

    def _build(part_id, level: int, parent_path: str, on_path: frozenset,
               edge: BomEdge | None) -> BomTreeNode:
        if level > max_depth:
            raise DepthExceededError(max_depth, part_id)
        if part_id in on_path:
            raise CycleError(f"Cycle detected at part {part_id}", part_id=part_id)
        part = parts.get(part_id)
        if part is None:
            raise NotFoundError("Part", part_id)

        path = f"{parent_path}{PATH_SEPARATOR}{part.part_number}" if parent_path else part.part_number
        node = BomTreeNode(
            part_id=part.id,
            part_number=part.part_number,
            name=part.name,
            description=part.description,
            category=part.category,
            status=part.status or "draft",
            quantity=edge.quantity if edge else ROOT_QUANTITY,
            unit=(edge.unit or DEFAULT_UNIT) if edge else DEFAULT_UNIT,
            position=edge.position if edge else None,
            notes=edge.notes if edge else None,
            level=level,
            path=path,
        )
        here = on_path | {part_id}
        for child_edge in _ordered(adj.get(part_id, [])):
            node.children.append(
                _build(child_edge.child_id, level + 1, path, here, child_edge)
            )
        return node

    return _build(root_id, 0, "", frozenset(), None)


def flatten(tree: BomTreeNode) -> list[FlatBomItem]:
    """Pre-order traversal, one row per node. Root quantity is fixed to 1 EA."""
    rows: list[FlatBomItem] = []

    def _visit(node: BomTreeNode, is_root: bool) -> None:
        rows.append(FlatBomItem(
            part_id=node.part_id,
            part_number=node.part_number,
            name=node.name,
            description=node.description,
            category=node.category,
            status=node.status,
            quantity=ROOT_QUANTITY if is_root else node.quantity,
            unit=DEFAULT_UNIT if is_root else node.unit,
            level=node.level,
            path=node.path,
            position=node.position,
        ))
        for child in node.children:
            _visit(child, False)

    _visit(tree, True)
    return rows


def total_quantity(tree: BomTreeNode, target_part_id) -> str:
    """Sum of path-products of quantities over every occurrence of the target.

    Diamond example: A->B(2)->D(1) and A->C(3)->D(4) gives 2*1 + 3*4 = 14.
    """
    total = Decimal(0)
    stack = [(tree, Decimal(1))]
    while stack:
        node, multiplier = stack.pop()
        if node.part_id == target_part_id:
            total += multiplier
        for child in node.children:
            stack.append((child, multiplier * parse_quantity(child.quantity)))
    return format_quantity(total)


def where_used(part_id, edges: Iterable[BomEdge]) -> list:
    """Parent ids of every edge whose child is *part_id* (duplicates kept)."""
    return [edge.parent_id for edge in edges if edge.child_id == part_id]


def validate(
    root_id,
    parts: Mapping,
    edges: Iterable[BomEdge],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> BomValidationResult:
    """Non-throwing variant of :func:`build_tree` that collects every error."""
    if root_id not in parts:
        return BomValidationResult(valid=False, errors=[f"Root part {root_id} not found"])

    adj = _children_index(edges)
    errors: list[str] = []

    def _check(part_id, depth: int, on_path: frozenset) -> None:
        if depth > max_depth:
            errors.append(f"Maximum depth {max_depth} exceeded at part {part_id}")
            return
        if part_id in on_path:
            errors.append(f"Cycle detected at part {part_id}")
            return
        here = on_path | {part_id}
        for edge in _ordered(adj.get(part_id, [])):
            if edge.child_id not in parts:
                errors.append(f"Child part {edge.child_id} not found (referenced by {part_id})")
            _check(edge.child_id, depth + 1, here)

    _check(root_id, 0, frozenset())
    return BomValidationResult(valid=not errors, errors=errors)
