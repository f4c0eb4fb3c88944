"""
Part / revision / BOM API tests (Flask test client).

Tests cover:
  - Part CRUD + revision history via HTTP
  - Error mapping: 400 required, 403 forbidden, 404, 409 duplicate, 415, 422
  - BOM endpoints: add, tree, quantity roll-up, where-used, validate, update, delete
  - Health probes and request headers
"""

import pytest


@pytest.fixture()
def headers(requester):
    return {"X-User-Id": str(requester.id)}


@pytest.fixture()
def create_part(client, project, headers):
    def _create(part_number, name=None, **extra):
        res = client.post(
            f"/api/v1/projects/{project.id}/parts",
            json={"part_number": part_number, "name": name or f"Part {part_number}", **extra},
            headers=headers,
        )
        assert res.status_code == 201, res.get_json()
        return res.get_json()

    return _create


# ═════════════════════════════════════════════════════════════════════════
# PARTS
# ═════════════════════════════════════════════════════════════════════════


class TestPartAPI:
    def test_create_and_get(self, client, create_part):
        part = create_part("PUMP-01", "Coolant pump", category="fluid")
        assert part["current_revision"]["revision_code"] == "A"

        res = client.get(f"/api/v1/parts/{part['id']}")
        assert res.status_code == 200
        assert res.get_json()["name"] == "Coolant pump"

    def test_create_missing_field(self, client, project, headers):
        res = client.post(f"/api/v1/projects/{project.id}/parts", json={"name": "No number"}, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"
        assert "part_number" in res.get_json()["error"]

    def test_create_invalid_number(self, client, project, headers):
        res = client.post(
            f"/api/v1/projects/{project.id}/parts",
            json={"part_number": "bad number", "name": "Bad"},
            headers=headers,
        )
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"
        assert "part_number" in res.get_json()["details"]

    def test_create_duplicate(self, client, project, headers, create_part):
        create_part("DUP-1")
        res = client.post(
            f"/api/v1/projects/{project.id}/parts",
            json={"part_number": "DUP-1", "name": "Again"},
            headers=headers,
        )
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_create_without_actor(self, client, project):
        res = client.post(f"/api/v1/projects/{project.id}/parts", json={"part_number": "P-1", "name": "Part"})
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_create_unknown_project(self, client, headers):
        res = client.post("/api/v1/projects/9999/parts", json={"part_number": "P-1", "name": "Part"}, headers=headers)
        assert res.status_code == 404

    def test_non_json_body_rejected(self, client, project, headers):
        res = client.post(
            f"/api/v1/projects/{project.id}/parts",
            data="part_number=P-1",
            content_type="text/plain",
            headers=headers,
        )
        assert res.status_code == 415

    def test_update_creates_revision(self, client, create_part, headers):
        part = create_part("P-1", "Old name")
        res = client.put(f"/api/v1/parts/{part['id']}", json={"name": "New name"}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["current_revision"]["revision_code"] == "B"

        res = client.get(f"/api/v1/parts/{part['id']}/revisions")
        assert [r["revision_code"] for r in res.get_json()["revisions"]] == ["A", "B"]

    def test_update_by_outsider(self, client, create_part, outsider):
        part = create_part("P-1")
        res = client.put(
            f"/api/v1/parts/{part['id']}", json={"name": "Nope"}, headers={"X-User-Id": str(outsider.id)},
        )
        assert res.status_code == 403

    def test_list_and_search(self, client, project, create_part):
        create_part("BOLT-1", "Hex bolt")
        create_part("NUT-1", "Hex nut", status="active")

        res = client.get(f"/api/v1/projects/{project.id}/parts?status=active")
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["part_number"] == "NUT-1"

        res = client.get("/api/v1/parts/search?q=hex&limit=5")
        assert [p["part_number"] for p in res.get_json()] == ["BOLT-1", "NUT-1"]

    def test_get_missing(self, client):
        res = client.get("/api/v1/parts/9999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════
# BOM
# ═════════════════════════════════════════════════════════════════════════


class TestBomAPI:
    def _add(self, client, parent, child, qty, headers):
        res = client.post(
            f"/api/v1/parts/{parent['id']}/bom",
            json={"child_part_id": child["id"], "quantity": qty},
            headers=headers,
        )
        assert res.status_code == 201, res.get_json()
        return res.get_json()

    def test_diamond_endpoints(self, client, create_part, headers):
        asm, b, c, bolt = (create_part(n) for n in ("ASM", "SUB-B", "SUB-C", "BOLT"))
        self._add(client, asm, b, "2", headers)
        self._add(client, asm, c, "3", headers)
        self._add(client, b, bolt, "1", headers)
        self._add(client, c, bolt, "4", headers)

        tree = client.get(f"/api/v1/parts/{asm['id']}/bom").get_json()
        assert tree["total_parts"] == 5
        assert tree["max_level"] == 2

        qty = client.get(f"/api/v1/parts/{asm['id']}/bom/quantity/{bolt['id']}").get_json()
        assert qty["total_quantity"] == "14"

        used = client.get(f"/api/v1/parts/{bolt['id']}/where-used").get_json()
        assert sorted(p["part_number"] for p in used["parents"]) == ["SUB-B", "SUB-C"]

        valid = client.get(f"/api/v1/parts/{asm['id']}/bom/validate").get_json()
        assert valid == {"valid": True, "errors": []}

    def test_cycle_rejected(self, client, create_part, headers):
        a, b = create_part("A-1"), create_part("B-1")
        self._add(client, a, b, "1", headers)
        res = client.post(
            f"/api/v1/parts/{b['id']}/bom", json={"child_part_id": a["id"], "quantity": "1"}, headers=headers,
        )
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_BOM_CYCLE"

    def test_numeric_notes_accepted(self, client, create_part, headers):
        a, b = create_part("A-1"), create_part("B-1")
        res = client.post(
            f"/api/v1/parts/{a['id']}/bom",
            json={"child_part_id": b["id"], "quantity": "1", "notes": 5},
            headers=headers,
        )
        assert res.status_code == 201
        assert res.get_json()["notes"] == "5"

    def test_oversized_quantity(self, client, create_part, headers):
        a, b = create_part("A-1"), create_part("B-1")
        res = client.post(
            f"/api/v1/parts/{a['id']}/bom", json={"child_part_id": b["id"], "quantity": "1e40"}, headers=headers,
        )
        assert res.status_code == 422

    def test_add_requires_quantity(self, client, create_part, headers):
        a, b = create_part("A-1"), create_part("B-1")
        res = client.post(f"/api/v1/parts/{a['id']}/bom", json={"child_part_id": b["id"]}, headers=headers)
        assert res.status_code == 400

    def test_bad_quantity(self, client, create_part, headers):
        a, b = create_part("A-1"), create_part("B-1")
        res = client.post(
            f"/api/v1/parts/{a['id']}/bom", json={"child_part_id": b["id"], "quantity": "-5"}, headers=headers,
        )
        assert res.status_code == 422

    def test_update_and_delete_item(self, client, create_part, headers):
        a, b = create_part("A-1"), create_part("B-1")
        item = self._add(client, a, b, "1", headers)

        res = client.put(f"/api/v1/bom-items/{item['id']}", json={"quantity": "6"}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["quantity"] == "6"

        res = client.delete(f"/api/v1/bom-items/{item['id']}", headers=headers)
        assert res.status_code == 204
        assert client.get(f"/api/v1/parts/{a['id']}/bom").get_json()["total_parts"] == 1

        res = client.delete(f"/api/v1/bom-items/{item['id']}", headers=headers)
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════
# HEALTH & MIDDLEWARE
# ═════════════════════════════════════════════════════════════════════════


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["app"]["max_bom_depth"] == 20

    def test_request_headers(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc-123"})
        assert res.headers["X-Request-ID"] == "abc-123"
        assert "X-Request-Duration-Ms" in res.headers

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
