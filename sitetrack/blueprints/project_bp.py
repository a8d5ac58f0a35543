"""Project endpoints.

    GET    /api/v1/projects                      list (?status, ?manager_id, ?include_deleted)
    POST   /api/v1/projects                      create
    GET    /api/v1/projects/<id>                 detail with ordered sites
    PUT    /api/v1/projects/<id>                 field-level update
    DELETE /api/v1/projects/<id>                 cascading soft delete
    POST   /api/v1/projects/<id>/restore         administrative recovery
    POST   /api/v1/projects/<id>/cancel          move to cancelled
    GET    /api/v1/projects/<id>/statistics      site / activity breakdown
    POST   /api/v1/projects/<id>/recompute       re-derive status and timeline
"""

import logging

from flask import Blueprint, jsonify, request

from sitetrack.blueprints import current_actor, json_body, register_error_handlers
from sitetrack.models.project import Project
from sitetrack.services import project_service
from sitetrack.services.helpers.active_queries import get_active
from sitetrack.services.project_status import recompute_project
from sitetrack.services.site_service import list_sites
from sitetrack.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1/projects")
register_error_handlers(project_bp)


@project_bp.route("", methods=["GET"])
def list_projects():
    projects = project_service.list_projects(
        status=request.args.get("status"),
        manager_id=request.args.get("manager_id"),
        include_deleted=parse_bool(request.args.get("include_deleted")),
    )
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)}), 200


@project_bp.route("", methods=["POST"])
def create_project():
    project = project_service.create_project(json_body(), created_by=current_actor())
    return jsonify(project.to_dict()), 201


@project_bp.route("/<int:project_id>", methods=["GET"])
def get_project(project_id):
    include_deleted = parse_bool(request.args.get("include_deleted"))
    project = get_active(Project, project_id, include_deleted=include_deleted)
    data = project.to_dict()
    data["sites"] = [
        s.to_dict() for s in list_sites(project_id=project.id, include_deleted=include_deleted)
    ]
    return jsonify(data), 200


@project_bp.route("/<int:project_id>", methods=["PUT", "PATCH"])
def update_project(project_id):
    project = project_service.update_project(project_id, json_body())
    return jsonify(project.to_dict()), 200


@project_bp.route("/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project_service.delete_project(project_id, deleted_by=current_actor())
    return jsonify({"message": "Project deleted", "id": project_id}), 200


@project_bp.route("/<int:project_id>/restore", methods=["POST"])
def restore_project(project_id):
    project = project_service.restore_project(project_id)
    return jsonify(project.to_dict()), 200


@project_bp.route("/<int:project_id>/cancel", methods=["POST"])
def cancel_project(project_id):
    project = project_service.cancel_project(project_id)
    return jsonify(project.to_dict()), 200


@project_bp.route("/<int:project_id>/statistics", methods=["GET"])
def project_statistics(project_id):
    return jsonify(project_service.project_statistics(project_id)), 200


@project_bp.route("/<int:project_id>/recompute", methods=["POST"])
def recompute(project_id):
    return jsonify(recompute_project(project_id)), 200
