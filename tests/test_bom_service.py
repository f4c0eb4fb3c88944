"""
Storage-backed BOM operations.

Tests cover:
  - add_bom_item: validation, cross-project guard, cycle rejection, default positions
  - update_bom_item / remove_bom_item
  - get_bom_tree, get_where_used, get_total_quantity (diamond = 14), validate_bom
  - audit log rows for BOM mutations
"""

import pytest

from plm.core.exceptions import CycleError, DepthExceededError, NotFoundError, ValidationError
from plm.models import db
from plm.models.audit import AuditLog
from plm.models.part import BomItem
from plm.services import bom_service, part_service

from tests.conftest import add_member, make_project


@pytest.fixture()
def diamond(make_part):
    """ASM -> SUB-B(2) -> BOLT(1) and ASM -> SUB-C(3) -> BOLT(4)."""
    asm = make_part("ASM")
    b = make_part("SUB-B")
    c = make_part("SUB-C")
    bolt = make_part("BOLT")
    bom_service.add_bom_item(asm["id"], b["id"], "2")
    bom_service.add_bom_item(asm["id"], c["id"], "3")
    bom_service.add_bom_item(b["id"], bolt["id"], "1")
    bom_service.add_bom_item(c["id"], bolt["id"], "4")
    return {"asm": asm, "b": b, "c": c, "bolt": bolt}


# ═════════════════════════════════════════════════════════════════════════
# ADD / UPDATE / REMOVE
# ═════════════════════════════════════════════════════════════════════════


class TestAddBomItem:
    def test_add_child(self, make_part, requester):
        parent = make_part("P-1")
        child = make_part("C-1")
        item = bom_service.add_bom_item(
            parent["id"], child["id"], "2.50", unit="KG", notes="  torque 5Nm ", actor_id=requester.id,
        )
        assert item["parent_part_id"] == parent["id"]
        assert item["child_part_id"] == child["id"]
        assert item["quantity"] == "2.5"
        assert item["unit"] == "KG"
        assert item["position"] == 1
        assert item["notes"] == "torque 5Nm"

    def test_default_unit_and_positions(self, make_part):
        parent = make_part("P-1")
        first = bom_service.add_bom_item(parent["id"], make_part("C-1")["id"], 1)
        second = bom_service.add_bom_item(parent["id"], make_part("C-2")["id"], 1)
        explicit = bom_service.add_bom_item(parent["id"], make_part("C-3")["id"], 1, position=10)
        fourth = bom_service.add_bom_item(parent["id"], make_part("C-4")["id"], 1)
        assert first["unit"] == "EA"
        assert [first["position"], second["position"], explicit["position"], fourth["position"]] == [1, 2, 10, 11]

    def test_self_reference_is_cycle(self, make_part):
        part = make_part("P-1")
        with pytest.raises(CycleError):
            bom_service.add_bom_item(part["id"], part["id"], "1")

    def test_transitive_cycle_rejected(self, make_part):
        a, b, c = make_part("A-1"), make_part("B-1"), make_part("C-1")
        bom_service.add_bom_item(a["id"], b["id"], "1")
        bom_service.add_bom_item(b["id"], c["id"], "1")
        with pytest.raises(CycleError):
            bom_service.add_bom_item(c["id"], a["id"], "1")
        assert BomItem.query.count() == 2

    def test_diamond_allowed(self, diamond):
        assert BomItem.query.count() == 4

    @pytest.mark.parametrize("qty", ["-1", "abc", "", None])
    def test_bad_quantity(self, make_part, qty):
        parent, child = make_part("P-1"), make_part("C-1")
        with pytest.raises(ValidationError):
            bom_service.add_bom_item(parent["id"], child["id"], qty)

    def test_bad_position(self, make_part):
        parent, child = make_part("P-1"), make_part("C-1")
        with pytest.raises(ValidationError):
            bom_service.add_bom_item(parent["id"], child["id"], "1", position=-3)

    def test_unit_too_long(self, make_part):
        parent, child = make_part("P-1"), make_part("C-1")
        with pytest.raises(ValidationError):
            bom_service.add_bom_item(parent["id"], child["id"], "1", unit="U" * 21)

    def test_missing_part(self, make_part):
        parent = make_part("P-1")
        with pytest.raises(NotFoundError):
            bom_service.add_bom_item(parent["id"], 9999, "1")

    def test_cross_project_rejected(self, make_part, requester):
        parent = make_part("P-1")
        other = make_project("PRJ-2", "Other")
        add_member(other, requester)
        foreign = part_service.create_part(
            {"project_id": other.id, "part_number": "F-1", "name": "Foreign"}, requester.id,
        )
        with pytest.raises(ValidationError):
            bom_service.add_bom_item(parent["id"], foreign["id"], "1")

    def test_writes_audit_row(self, make_part, requester):
        parent, child = make_part("P-1"), make_part("C-1")
        item = bom_service.add_bom_item(parent["id"], child["id"], "3", actor_id=requester.id)
        log = AuditLog.query.filter_by(action="bom.add").one()
        assert log.entity_type == "bom_item"
        assert log.entity_id == str(item["id"])
        assert log.actor_user_id == requester.id
        assert log.diff["quantity"] == "3"

    def test_numeric_notes_stored_as_text(self, make_part):
        parent, child = make_part("P-1"), make_part("C-1")
        item = bom_service.add_bom_item(parent["id"], child["id"], "1", notes=123)
        assert item["notes"] == "123"

    def test_quantity_wider_than_column_rejected(self, make_part):
        parent, child = make_part("P-1"), make_part("C-1")
        with pytest.raises(ValidationError):
            bom_service.add_bom_item(parent["id"], child["id"], "1e40")
        assert BomItem.query.count() == 0

    def test_cycle_check_sees_edges_committed_before_lock(self, make_part, monkeypatch):
        a, b = make_part("A-1"), make_part("B-1")
        lock = bom_service._lock_project

        def _lock_after_concurrent_insert(project_id):
            # B-1 -> A-1 commits from another writer while this call waits on the lock
            db.session.add(BomItem(
                project_id=project_id, parent_part_id=b["id"], child_part_id=a["id"],
                quantity="1", unit="EA", position=1,
            ))
            db.session.commit()
            return lock(project_id)

        monkeypatch.setattr(bom_service, "_lock_project", _lock_after_concurrent_insert)
        with pytest.raises(CycleError):
            bom_service.add_bom_item(a["id"], b["id"], "1")

        edges = [(i.parent_part_id, i.child_part_id) for i in BomItem.query.all()]
        assert edges == [(b["id"], a["id"])]
        assert AuditLog.query.filter_by(action="bom.add").count() == 0


class TestUpdateRemoveBomItem:
    def test_update_fields(self, make_part):
        parent, child = make_part("P-1"), make_part("C-1")
        item = bom_service.add_bom_item(parent["id"], child["id"], "1")
        updated = bom_service.update_bom_item(item["id"], quantity="4", unit="PCS", position=7, notes="rev")
        assert updated["quantity"] == "4"
        assert updated["unit"] == "PCS"
        assert updated["position"] == 7
        assert updated["notes"] == "rev"
        log = AuditLog.query.filter_by(action="bom.update").one()
        assert log.diff["quantity"] == {"old": "1", "new": "4"}

    def test_update_numeric_notes(self, make_part):
        parent, child = make_part("P-1"), make_part("C-1")
        item = bom_service.add_bom_item(parent["id"], child["id"], "1")
        assert bom_service.update_bom_item(item["id"], notes=7)["notes"] == "7"

    def test_noop_update_writes_nothing(self, make_part):
        parent, child = make_part("P-1"), make_part("C-1")
        item = bom_service.add_bom_item(parent["id"], child["id"], "1")
        same = bom_service.update_bom_item(item["id"], quantity="1.0")
        assert same["quantity"] == "1"
        assert AuditLog.query.filter_by(action="bom.update").count() == 0

    def test_update_bad_quantity(self, make_part):
        parent, child = make_part("P-1"), make_part("C-1")
        item = bom_service.add_bom_item(parent["id"], child["id"], "1")
        with pytest.raises(ValidationError):
            bom_service.update_bom_item(item["id"], quantity="-2")

    def test_update_missing(self):
        with pytest.raises(NotFoundError):
            bom_service.update_bom_item(9999, quantity="1")

    def test_remove(self, make_part):
        parent, child = make_part("P-1"), make_part("C-1")
        item = bom_service.add_bom_item(parent["id"], child["id"], "1")
        bom_service.remove_bom_item(item["id"])
        assert BomItem.query.count() == 0
        assert AuditLog.query.filter_by(action="bom.remove").count() == 1

    def test_remove_missing(self):
        with pytest.raises(NotFoundError):
            bom_service.remove_bom_item(9999)

    def test_removed_edge_frees_reverse_direction(self, make_part):
        a, b = make_part("A-1"), make_part("B-1")
        item = bom_service.add_bom_item(a["id"], b["id"], "1")
        bom_service.remove_bom_item(item["id"])
        reverse = bom_service.add_bom_item(b["id"], a["id"], "1")
        assert reverse["parent_part_id"] == b["id"]


# ═════════════════════════════════════════════════════════════════════════
# READS
# ═════════════════════════════════════════════════════════════════════════


class TestBomReads:
    def test_tree_and_flat_list(self, diamond):
        result = bom_service.get_bom_tree(diamond["asm"]["id"])
        assert result["root_part"]["part_number"] == "ASM"
        assert result["tree"]["quantity"] == "1"
        assert [c["part_number"] for c in result["tree"]["children"]] == ["SUB-B", "SUB-C"]
        assert [(r["part_number"], r["level"]) for r in result["flat_list"]] == [
            ("ASM", 0), ("SUB-B", 1), ("BOLT", 2), ("SUB-C", 1), ("BOLT", 2),
        ]
        assert result["flat_list"][4]["path"] == "ASM > SUB-C > BOLT"
        assert result["max_level"] == 2
        assert result["total_parts"] == 5

    def test_tree_of_leaf(self, make_part):
        leaf = make_part("LEAF")
        result = bom_service.get_bom_tree(leaf["id"])
        assert result["tree"]["children"] == []
        assert result["max_level"] == 0
        assert result["total_parts"] == 1

    def test_tree_missing_root(self):
        with pytest.raises(NotFoundError):
            bom_service.get_bom_tree(9999)

    def test_tree_respects_configured_depth(self, app, make_part):
        parts = [make_part(f"L-{i}") for i in range(4)]
        for parent, child in zip(parts, parts[1:]):
            bom_service.add_bom_item(parent["id"], child["id"], "1")
        app.config["PLM_MAX_BOM_DEPTH"] = 2
        try:
            with pytest.raises(DepthExceededError):
                bom_service.get_bom_tree(parts[0]["id"])
            assert bom_service.validate_bom(parts[0]["id"])["valid"] is False
        finally:
            app.config["PLM_MAX_BOM_DEPTH"] = 20

    def test_total_quantity_diamond(self, diamond):
        result = bom_service.get_total_quantity(diamond["asm"]["id"], diamond["bolt"]["id"])
        assert result["total_quantity"] == "14"

    def test_total_quantity_not_in_bom(self, diamond, make_part):
        loose = make_part("LOOSE")
        result = bom_service.get_total_quantity(diamond["asm"]["id"], loose["id"])
        assert result["total_quantity"] == "0"

    def test_where_used(self, diamond):
        result = bom_service.get_where_used(diamond["bolt"]["id"])
        assert result["part_number"] == "BOLT"
        rows = {r["part_number"]: r for r in result["parents"]}
        assert set(rows) == {"SUB-B", "SUB-C"}
        assert rows["SUB-C"]["quantity"] == "4"
        assert rows["SUB-C"]["path"] == "SUB-C > BOLT"

    def test_where_used_top_level(self, diamond):
        assert bom_service.get_where_used(diamond["asm"]["id"])["parents"] == []

    def test_validate_bom(self, diamond):
        assert bom_service.validate_bom(diamond["asm"]["id"]) == {"valid": True, "errors": []}

    def test_part_counters_follow_bom(self, diamond):
        bolt = part_service.get_part(diamond["bolt"]["id"])
        asm = part_service.get_part(diamond["asm"]["id"])
        assert bolt["where_used_count"] == 2
        assert asm["bom_item_count"] == 2
