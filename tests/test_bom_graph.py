"""
BOM graph engine — pure functions over PartSummary / BomEdge values.

Tests cover:
  - Cycle detection (self reference, direct, transitive, diamond is not a cycle)
  - Tree building: ordering, paths, levels, root quantity
  - Error cases: missing root/child, depth exceeded, cyclic data
  - Flattening round-trip
  - Quantity roll-up on a diamond
  - Non-throwing validation
"""

from decimal import Decimal

import pytest

from plm.core.exceptions import CycleError, DepthExceededError, NotFoundError, ValidationError
from plm.services import bom_graph
from plm.services.bom_graph import BomEdge, PartSummary


def _parts(*numbers):
    return {n: PartSummary(id=n, part_number=n, name=f"Part {n}") for n in numbers}


def _edge(parent, child, qty="1", position=None, unit="EA"):
    return BomEdge(parent_id=parent, child_id=child, quantity=qty, position=position, unit=unit)


@pytest.fixture()
def diamond():
    """A -> B(2) -> D(1) and A -> C(3) -> D(4)."""
    parts = _parts("A", "B", "C", "D")
    edges = [
        _edge("A", "B", "2", position=1),
        _edge("A", "C", "3", position=2),
        _edge("B", "D", "1", position=1),
        _edge("C", "D", "4", position=1),
    ]
    return parts, edges


# ═════════════════════════════════════════════════════════════════════════
# Cycle detection
# ═════════════════════════════════════════════════════════════════════════


class TestDetectCycle:
    def test_self_reference(self):
        assert bom_graph.detect_cycle([], "A", "A") is True

    def test_direct_back_edge(self):
        edges = [_edge("A", "B")]
        assert bom_graph.detect_cycle(edges, "B", "A") is True

    def test_transitive_back_edge(self):
        edges = [_edge("A", "B"), _edge("B", "C"), _edge("C", "D")]
        assert bom_graph.detect_cycle(edges, "D", "A") is True

    def test_forward_edge_is_fine(self):
        edges = [_edge("A", "B"), _edge("B", "C")]
        assert bom_graph.detect_cycle(edges, "A", "C") is False

    def test_diamond_is_not_a_cycle(self, diamond):
        _, edges = diamond
        assert bom_graph.detect_cycle(edges, "B", "C") is False

    def test_unrelated_parts(self):
        assert bom_graph.detect_cycle([_edge("X", "Y")], "A", "B") is False


# ═════════════════════════════════════════════════════════════════════════
# Tree building
# ═════════════════════════════════════════════════════════════════════════


class TestBuildTree:
    def test_root_node(self, diamond):
        parts, edges = diamond
        tree = bom_graph.build_tree("A", parts, edges)
        assert tree.part_id == "A"
        assert tree.level == 0
        assert tree.quantity == "1"
        assert tree.unit == "EA"
        assert tree.path == "A"

    def test_shared_child_appears_under_each_parent(self, diamond):
        parts, edges = diamond
        tree = bom_graph.build_tree("A", parts, edges)
        b, c = tree.children
        assert [n.part_id for n in b.children] == ["D"]
        assert [n.part_id for n in c.children] == ["D"]
        assert b.children[0].path == "A > B > D"
        assert c.children[0].path == "A > C > D"
        assert c.children[0].quantity == "4"
        assert c.children[0].level == 2

    def test_children_ordered_by_position(self):
        parts = _parts("A", "X", "Y", "Z")
        edges = [
            _edge("A", "X", position=3),
            _edge("A", "Y", position=1),
            _edge("A", "Z", position=2),
        ]
        tree = bom_graph.build_tree("A", parts, edges)
        assert [n.part_id for n in tree.children] == ["Y", "Z", "X"]

    def test_equal_positions_keep_edge_order(self):
        parts = _parts("A", "X", "Y", "Z")
        edges = [
            _edge("A", "Z", position=1),
            _edge("A", "X", position=1),
            _edge("A", "Y", position=1),
        ]
        tree = bom_graph.build_tree("A", parts, edges)
        assert [n.part_id for n in tree.children] == ["Z", "X", "Y"]

    def test_missing_root(self):
        with pytest.raises(NotFoundError):
            bom_graph.build_tree("NOPE", _parts("A"), [])

    def test_missing_child(self):
        with pytest.raises(NotFoundError):
            bom_graph.build_tree("A", _parts("A"), [_edge("A", "GHOST")])

    def test_cyclic_data_raises(self):
        parts = _parts("A", "B", "C")
        edges = [_edge("A", "B"), _edge("B", "C"), _edge("C", "A")]
        with pytest.raises(CycleError):
            bom_graph.build_tree("A", parts, edges)

    def test_depth_exceeded(self):
        parts = _parts("L0", "L1", "L2", "L3")
        edges = [_edge("L0", "L1"), _edge("L1", "L2"), _edge("L2", "L3")]
        with pytest.raises(DepthExceededError) as exc:
            bom_graph.build_tree("L0", parts, edges, max_depth=2)
        assert exc.value.max_depth == 2
        # DepthExceededError is a ValidationError for API mapping
        assert isinstance(exc.value, ValidationError)

    def test_depth_at_limit_is_allowed(self):
        parts = _parts("L0", "L1", "L2")
        edges = [_edge("L0", "L1"), _edge("L1", "L2")]
        tree = bom_graph.build_tree("L0", parts, edges, max_depth=2)
        assert tree.children[0].children[0].level == 2

    def test_leaf_root(self):
        tree = bom_graph.build_tree("A", _parts("A"), [])
        assert tree.children == []

    def test_to_dict_nests_children(self, diamond):
        parts, edges = diamond
        d = bom_graph.build_tree("A", parts, edges).to_dict()
        assert d["part_number"] == "A"
        assert [c["part_number"] for c in d["children"]] == ["B", "C"]
        assert d["children"][0]["children"][0]["part_number"] == "D"


# ═════════════════════════════════════════════════════════════════════════
# Flatten
# ═════════════════════════════════════════════════════════════════════════


class TestFlatten:
    def test_preorder_rows(self, diamond):
        parts, edges = diamond
        rows = bom_graph.flatten(bom_graph.build_tree("A", parts, edges))
        assert [(r.part_id, r.level) for r in rows] == [
            ("A", 0), ("B", 1), ("D", 2), ("C", 1), ("D", 2),
        ]

    def test_round_trip_matches_tree(self, diamond):
        """One row per node, with the node's level, path and quantity."""
        parts, edges = diamond
        tree = bom_graph.build_tree("A", parts, edges)

        nodes = []
        stack = [tree]
        while stack:
            node = stack.pop()
            nodes.append(node)
            stack.extend(reversed(node.children))

        rows = bom_graph.flatten(tree)
        assert len(rows) == len(nodes)
        for row, node in zip(rows, nodes):
            assert row.part_id == node.part_id
            assert row.level == node.level
            assert row.path == node.path
            assert row.quantity == node.quantity

    def test_root_row_is_one_each(self, diamond):
        parts, edges = diamond
        root = bom_graph.flatten(bom_graph.build_tree("A", parts, edges))[0]
        assert root.quantity == "1"
        assert root.unit == "EA"


# ═════════════════════════════════════════════════════════════════════════
# Quantities
# ═════════════════════════════════════════════════════════════════════════


class TestTotalQuantity:
    def test_diamond_rollup(self, diamond):
        parts, edges = diamond
        tree = bom_graph.build_tree("A", parts, edges)
        assert bom_graph.total_quantity(tree, "D") == "14"

    def test_direct_child(self, diamond):
        parts, edges = diamond
        tree = bom_graph.build_tree("A", parts, edges)
        assert bom_graph.total_quantity(tree, "C") == "3"

    def test_root_is_one(self, diamond):
        parts, edges = diamond
        tree = bom_graph.build_tree("A", parts, edges)
        assert bom_graph.total_quantity(tree, "A") == "1"

    def test_absent_part_is_zero(self, diamond):
        parts, edges = diamond
        tree = bom_graph.build_tree("A", parts, edges)
        assert bom_graph.total_quantity(tree, "Q") == "0"

    def test_decimal_quantities_do_not_drift(self):
        parts = _parts("A", "B", "C")
        edges = [_edge("A", "B", "0.1"), _edge("B", "C", "0.2")]
        tree = bom_graph.build_tree("A", parts, edges)
        assert bom_graph.total_quantity(tree, "C") == "0.02"


class TestQuantityParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [("2", Decimal("2")), ("2.50", Decimal("2.5")), (3, Decimal("3")), ("0", Decimal("0"))],
    )
    def test_parse(self, raw, expected):
        assert bom_graph.parse_quantity(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "-1", "nan", "inf"])
    def test_parse_rejects(self, raw):
        with pytest.raises(ValidationError):
            bom_graph.parse_quantity(raw)

    @pytest.mark.parametrize("raw", ["1e40", "1e-40", "1e999999999", "9" * 33])
    def test_parse_rejects_values_wider_than_column(self, raw):
        with pytest.raises(ValidationError):
            bom_graph.parse_quantity(raw)

    def test_parse_accepts_wide_value_within_column(self):
        qty = bom_graph.parse_quantity("1" + "0" * 29)
        assert len(bom_graph.format_quantity(qty)) == 30

    @pytest.mark.parametrize(
        "value, expected",
        [(Decimal("2.500"), "2.5"), (Decimal("1E+1"), "10"), (Decimal("0.00"), "0"), (Decimal("14"), "14")],
    )
    def test_format(self, value, expected):
        assert bom_graph.format_quantity(value) == expected


# ═════════════════════════════════════════════════════════════════════════
# Where-used & validate
# ═════════════════════════════════════════════════════════════════════════


class TestWhereUsed:
    def test_parents_of_shared_child(self, diamond):
        _, edges = diamond
        assert sorted(bom_graph.where_used("D", edges)) == ["B", "C"]

    def test_duplicates_kept(self):
        edges = [_edge("A", "X"), _edge("A", "X", position=2)]
        assert bom_graph.where_used("X", edges) == ["A", "A"]

    def test_top_level_part(self, diamond):
        _, edges = diamond
        assert bom_graph.where_used("A", edges) == []


class TestValidate:
    def test_valid_structure(self, diamond):
        parts, edges = diamond
        result = bom_graph.validate("A", parts, edges)
        assert result.valid is True
        assert result.errors == []
        assert result.to_dict() == {"valid": True, "errors": []}

    def test_missing_root(self):
        result = bom_graph.validate("NOPE", _parts("A"), [])
        assert result.valid is False
        assert len(result.errors) == 1

    def test_collects_cycle_and_missing_child(self):
        parts = _parts("A", "B")
        edges = [_edge("A", "B"), _edge("B", "A"), _edge("A", "GHOST")]
        result = bom_graph.validate("A", parts, edges)
        assert result.valid is False
        assert any("Cycle" in e for e in result.errors)
        assert any("GHOST" in e for e in result.errors)

    def test_depth_reported(self):
        parts = _parts("L0", "L1", "L2")
        edges = [_edge("L0", "L1"), _edge("L1", "L2")]
        result = bom_graph.validate("L0", parts, edges, max_depth=1)
        assert result.valid is False
        assert "depth" in result.errors[0]
