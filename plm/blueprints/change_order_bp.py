"""
Engineering change order blueprint.

Endpoint groups:
  CRUD           POST/GET /api/v1/projects/<project_id>/change-orders
                 GET/PUT/DELETE /api/v1/change-orders/<co_id>
  Workflow       POST /api/v1/change-orders/<co_id>/submit
                 POST /api/v1/change-orders/<co_id>/accept
                 POST /api/v1/change-orders/<co_id>/review
                 POST /api/v1/change-orders/<co_id>/implement
  Approvers      POST   /api/v1/change-orders/<co_id>/approvers
                 DELETE /api/v1/change-orders/<co_id>/approvers/<approver_id>
  Reporting      GET /api/v1/change-orders/<co_id>/audit-trail
                 GET /api/v1/change-orders/<co_id>/impact-analysis
                 GET /api/v1/projects/<project_id>/change-orders/statistics

The acting user comes from the X-User-Id header.
Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from plm.services import change_order_service as cos
from plm.utils.errors import E, api_error, init_error_handlers
from plm.utils.request_context import actor_id, json_body

logger = logging.getLogger(__name__)

change_order_bp = Blueprint("change_order", __name__, url_prefix="/api/v1")
init_error_handlers(change_order_bp)


# ═════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════


@change_order_bp.route("/projects/<int:project_id>/change-orders", methods=["POST"])
def create_change_order(project_id):
    """Create a draft change order.

    Body: {
        type, title, description, reason, priority?,
        approver_ids: [int], affected_part_ids?: [int | {part_id, impact_description}]
    }
    """
    data = json_body()
    if not data.get("type"):
        return api_error(E.VALIDATION_REQUIRED, "type is required")
    co = cos.create_change_order({**data, "project_id": project_id}, actor_id())
    return jsonify(co), 201


@change_order_bp.route("/projects/<int:project_id>/change-orders", methods=["GET"])
def list_change_orders(project_id):
    """Query params: status, type, limit, offset."""
    result = cos.list_change_orders(
        project_id,
        status=request.args.get("status") or None,
        co_type=request.args.get("type") or None,
        limit=request.args.get("limit"),
        offset=request.args.get("offset"),
    )
    return jsonify(result), 200


@change_order_bp.route("/projects/<int:project_id>/change-orders/statistics", methods=["GET"])
def get_project_statistics(project_id):
    return jsonify(cos.get_project_statistics(project_id)), 200


@change_order_bp.route("/change-orders/<int:co_id>", methods=["GET"])
def get_change_order(co_id):
    return jsonify(cos.get_change_order(co_id)), 200


@change_order_bp.route("/change-orders/<int:co_id>", methods=["PUT"])
def update_change_order(co_id):
    """Body: any of {title, description, reason, priority, approver_ids, affected_part_ids}"""
    return jsonify(cos.update_change_order(co_id, json_body(), actor_id())), 200


@change_order_bp.route("/change-orders/<int:co_id>", methods=["DELETE"])
def delete_change_order(co_id):
    cos.delete_change_order(co_id, actor_id())
    return "", 204


# ═════════════════════════════════════════════════════════════════════════
# Workflow
# ═════════════════════════════════════════════════════════════════════════


@change_order_bp.route("/change-orders/<int:co_id>/submit", methods=["POST"])
def submit_change_order(co_id):
    return jsonify(cos.submit_change_order(co_id, actor_id())), 200


@change_order_bp.route("/change-orders/<int:co_id>/accept", methods=["POST"])
def accept_for_review(co_id):
    return jsonify(cos.accept_for_review(co_id, actor_id())), 200


@change_order_bp.route("/change-orders/<int:co_id>/review", methods=["POST"])
def review_change_order(co_id):
    """Body: {status: "approved" | "rejected", comment?}"""
    data = json_body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    co = cos.review_change_order(co_id, actor_id(), data["status"], data.get("comment"))
    return jsonify(co), 200


@change_order_bp.route("/change-orders/<int:co_id>/implement", methods=["POST"])
def implement_change_order(co_id):
    """Body: {revision_id?}"""
    data = json_body()
    co = cos.implement_change_order(co_id, actor_id(), revision_id=data.get("revision_id"))
    return jsonify(co), 200


# ═════════════════════════════════════════════════════════════════════════
# Approvers
# ═════════════════════════════════════════════════════════════════════════


@change_order_bp.route("/change-orders/<int:co_id>/approvers", methods=["POST"])
def add_approver(co_id):
    """Body: {approver_id}"""
    data = json_body()
    approver_id = data.get("approver_id")
    if approver_id is None:
        return api_error(E.VALIDATION_REQUIRED, "approver_id is required")
    if not isinstance(approver_id, int) or isinstance(approver_id, bool):
        return api_error(E.VALIDATION_INVALID, "approver_id must be an integer")
    return jsonify(cos.add_approver(co_id, actor_id(), approver_id)), 201


@change_order_bp.route("/change-orders/<int:co_id>/approvers/<int:approver_id>", methods=["DELETE"])
def remove_approver(co_id, approver_id):
    return jsonify(cos.remove_approver(co_id, actor_id(), approver_id)), 200


# ═════════════════════════════════════════════════════════════════════════
# Reporting
# ═════════════════════════════════════════════════════════════════════════


@change_order_bp.route("/change-orders/<int:co_id>/audit-trail", methods=["GET"])
def get_audit_trail(co_id):
    return jsonify(cos.get_audit_trail(co_id)), 200


@change_order_bp.route("/change-orders/<int:co_id>/impact-analysis", methods=["GET"])
def perform_impact_analysis(co_id):
    return jsonify(cos.perform_impact_analysis(co_id)), 200
