"""
Part, revision and BOM blueprint.

Endpoint groups:
  Parts            POST/GET /api/v1/projects/<project_id>/parts
                   GET/PUT  /api/v1/parts/<part_id>
                   GET      /api/v1/parts/search?q=&limit=&project_id=
  Revisions        GET      /api/v1/parts/<part_id>/revisions
  BOM              POST/GET /api/v1/parts/<part_id>/bom
                   GET      /api/v1/parts/<part_id>/bom/validate
                   GET      /api/v1/parts/<part_id>/bom/quantity/<target_id>
                   GET      /api/v1/parts/<part_id>/where-used
                   PUT/DELETE /api/v1/bom-items/<item_id>

The acting user comes from the X-User-Id header.
Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from plm.services import bom_service, part_service
from plm.utils.errors import E, api_error, init_error_handlers
from plm.utils.request_context import actor_id, json_body

logger = logging.getLogger(__name__)

part_bp = Blueprint("part", __name__, url_prefix="/api/v1")
init_error_handlers(part_bp)


# ═════════════════════════════════════════════════════════════════════════
# Parts
# ═════════════════════════════════════════════════════════════════════════


@part_bp.route("/projects/<int:project_id>/parts", methods=["POST"])
def create_part(project_id):
    """Create a part with its initial revision "A".

    Body: {part_number, name, description?, category?, status?}
    """
    data = json_body()
    for field in ("part_number", "name"):
        if not data.get(field):
            return api_error(E.VALIDATION_REQUIRED, f"{field} is required")
    part = part_service.create_part({**data, "project_id": project_id}, actor_id())
    return jsonify(part), 201


@part_bp.route("/projects/<int:project_id>/parts", methods=["GET"])
def list_parts(project_id):
    """Query params: status, category, q, limit, offset."""
    result = part_service.list_parts(
        project_id,
        status=request.args.get("status") or None,
        category=request.args.get("category") or None,
        query=request.args.get("q") or None,
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )
    return jsonify(result), 200


@part_bp.route("/parts/search", methods=["GET"])
def search_parts():
    results = part_service.search_parts(
        request.args.get("q", ""),
        limit=request.args.get("limit", part_service.DEFAULT_SEARCH_LIMIT, type=int),
        project_id=request.args.get("project_id", type=int),
    )
    return jsonify(results), 200


@part_bp.route("/parts/<int:part_id>", methods=["GET"])
def get_part(part_id):
    return jsonify(part_service.get_part(part_id)), 200


@part_bp.route("/parts/<int:part_id>", methods=["PUT"])
def update_part(part_id):
    """Body: any of {name, description, category, status}, plus change_description?, version?"""
    part = part_service.update_part(part_id, json_body(), actor_id())
    return jsonify(part), 200


@part_bp.route("/parts/<int:part_id>/revisions", methods=["GET"])
def get_revision_history(part_id):
    return jsonify(part_service.get_revision_history(part_id)), 200


# ═════════════════════════════════════════════════════════════════════════
# BOM
# ═════════════════════════════════════════════════════════════════════════


@part_bp.route("/parts/<int:part_id>/bom", methods=["POST"])
def add_bom_item(part_id):
    """Body: {child_part_id, quantity, unit?, position?, notes?}"""
    data = json_body()
    if data.get("child_part_id") is None:
        return api_error(E.VALIDATION_REQUIRED, "child_part_id is required")
    if data.get("quantity") is None:
        return api_error(E.VALIDATION_REQUIRED, "quantity is required")
    item = bom_service.add_bom_item(
        part_id,
        data["child_part_id"],
        data["quantity"],
        unit=data.get("unit"),
        position=data.get("position"),
        notes=data.get("notes"),
        actor_id=actor_id(),
    )
    return jsonify(item), 201


@part_bp.route("/parts/<int:part_id>/bom", methods=["GET"])
def get_bom_tree(part_id):
    return jsonify(bom_service.get_bom_tree(part_id)), 200


@part_bp.route("/parts/<int:part_id>/bom/validate", methods=["GET"])
def validate_bom(part_id):
    return jsonify(bom_service.validate_bom(part_id)), 200


@part_bp.route("/parts/<int:part_id>/bom/quantity/<int:target_id>", methods=["GET"])
def get_total_quantity(part_id, target_id):
    return jsonify(bom_service.get_total_quantity(part_id, target_id)), 200


@part_bp.route("/parts/<int:part_id>/where-used", methods=["GET"])
def get_where_used(part_id):
    return jsonify(bom_service.get_where_used(part_id)), 200


@part_bp.route("/bom-items/<int:item_id>", methods=["PUT"])
def update_bom_item(item_id):
    """Body: any of {quantity, unit, position, notes}"""
    data = json_body()
    item = bom_service.update_bom_item(
        item_id,
        quantity=data.get("quantity"),
        unit=data.get("unit"),
        position=data.get("position"),
        notes=data.get("notes"),
        actor_id=actor_id(),
    )
    return jsonify(item), 200


@part_bp.route("/bom-items/<int:item_id>", methods=["DELETE"])
def remove_bom_item(item_id):
    bom_service.remove_bom_item(item_id, actor_id=actor_id())
    return "", 204
