"""Site endpoints.

    GET    /api/v1/projects/<pid>/sites      list (?status, ?include_deleted)
    POST   /api/v1/projects/<pid>/sites      create
    GET    /api/v1/sites/<id>                detail with activities
    PUT    /api/v1/sites/<id>                field-level update
    DELETE /api/v1/sites/<id>                soft delete (activities too)
    POST   /api/v1/sites/<id>/restore        administrative recovery
    POST   /api/v1/sites/<id>/recompute      re-derive overall_status
"""

from flask import Blueprint, jsonify, request

from sitetrack.blueprints import current_actor, json_body, register_error_handlers
from sitetrack.models.project import Project
from sitetrack.models.site import Site
from sitetrack.services import site_service
from sitetrack.services.activity_service import list_activities
from sitetrack.services.helpers.active_queries import get_active
from sitetrack.services.site_status import recompute_site
from sitetrack.utils.helpers import parse_bool

site_bp = Blueprint("site_bp", __name__, url_prefix="/api/v1")
register_error_handlers(site_bp)


@site_bp.route("/projects/<int:project_id>/sites", methods=["GET"])
def list_sites(project_id):
    get_active(Project, project_id)
    sites = site_service.list_sites(
        project_id=project_id,
        status=request.args.get("status"),
        include_deleted=parse_bool(request.args.get("include_deleted")),
    )
    return jsonify({"items": [s.to_dict() for s in sites], "total": len(sites)}), 200


@site_bp.route("/projects/<int:project_id>/sites", methods=["POST"])
def create_site(project_id):
    site = site_service.create_site(project_id, json_body(), created_by=current_actor())
    return jsonify(site.to_dict()), 201


@site_bp.route("/sites/<int:site_id>", methods=["GET"])
def get_site(site_id):
    include_deleted = parse_bool(request.args.get("include_deleted"))
    site = get_active(Site, site_id, include_deleted=include_deleted)
    data = site.to_dict()
    data["activities"] = [
        a.to_dict() for a in list_activities(site_id=site.id, include_deleted=include_deleted)
    ]
    return jsonify(data), 200


@site_bp.route("/sites/<int:site_id>", methods=["PUT", "PATCH"])
def update_site(site_id):
    site = site_service.update_site(site_id, json_body())
    return jsonify(site.to_dict()), 200


@site_bp.route("/sites/<int:site_id>", methods=["DELETE"])
def delete_site(site_id):
    site_service.delete_site(site_id, deleted_by=current_actor())
    return jsonify({"message": "Site deleted", "id": site_id}), 200


@site_bp.route("/sites/<int:site_id>/restore", methods=["POST"])
def restore_site(site_id):
    site = site_service.restore_site(site_id)
    return jsonify(site.to_dict()), 200


@site_bp.route("/sites/<int:site_id>/recompute", methods=["POST"])
def recompute(site_id):
    return jsonify(recompute_site(site_id)), 200
