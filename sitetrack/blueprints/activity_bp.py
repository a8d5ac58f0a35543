"""Activity endpoints.

    GET    /api/v1/activities                                   list (?site_id, ?kind, ?status)
    POST   /api/v1/activities                                   create ({kind, site_id, ...})
    GET    /api/v1/activities/<id>                              detail with stats and phase
    PUT    /api/v1/activities/<id>                              field-level update
    DELETE /api/v1/activities/<id>                              soft delete
    POST   /api/v1/activities/<id>/restore                      administrative recovery
    POST   /api/v1/activities/<id>/recompute                    re-derive status/completion
    PATCH  /api/v1/activities/<id>/work-items/<sub>/<type>      update one WorkItem
"""

from flask import Blueprint, jsonify, request

from sitetrack.blueprints import current_actor, json_body, register_error_handlers
from sitetrack.models.activity import Activity
from sitetrack.services import activity_service
from sitetrack.services.activity_aggregator import activity_stats, recompute_activity
from sitetrack.services.helpers.active_queries import get_active
from sitetrack.utils.helpers import parse_bool

activity_bp = Blueprint("activity_bp", __name__, url_prefix="/api/v1/activities")
register_error_handlers(activity_bp)


def _detail(activity: Activity) -> dict:
    data = activity.to_dict()
    data["title"] = activity.display_title()
    data["phase"] = activity.current_phase()
    data["stats"] = activity_stats(activity)
    return data


@activity_bp.route("", methods=["GET"])
def list_activities():
    activities = activity_service.list_activities(
        site_id=request.args.get("site_id", type=int),
        kind=request.args.get("kind"),
        status=request.args.get("status"),
        include_deleted=parse_bool(request.args.get("include_deleted")),
    )
    return jsonify({"items": [a.to_dict() for a in activities], "total": len(activities)}), 200


@activity_bp.route("", methods=["POST"])
def create_activity():
    data = json_body()
    activity = activity_service.create_activity(
        data.get("kind"), data, created_by=current_actor(),
    )
    return jsonify(_detail(activity)), 201


@activity_bp.route("/<int:activity_id>", methods=["GET"])
def get_activity(activity_id):
    include_deleted = parse_bool(request.args.get("include_deleted"))
    activity = get_active(Activity, activity_id, include_deleted=include_deleted)
    return jsonify(_detail(activity)), 200


@activity_bp.route("/<int:activity_id>", methods=["PUT", "PATCH"])
def update_activity(activity_id):
    activity = activity_service.update_activity(activity_id, json_body(), updated_by=current_actor())
    return jsonify(_detail(activity)), 200


@activity_bp.route("/<int:activity_id>", methods=["DELETE"])
def delete_activity(activity_id):
    activity_service.delete_activity(activity_id, deleted_by=current_actor())
    return jsonify({"message": "Activity deleted", "id": activity_id}), 200


@activity_bp.route("/<int:activity_id>/restore", methods=["POST"])
def restore_activity(activity_id):
    activity = activity_service.restore_activity(activity_id)
    return jsonify(_detail(activity)), 200


@activity_bp.route("/<int:activity_id>/recompute", methods=["POST"])
def recompute(activity_id):
    return jsonify(recompute_activity(activity_id)), 200


@activity_bp.route("/<int:activity_id>/work-items/<sub_site>/<work_type>", methods=["PATCH"])
def update_work_item(activity_id, sub_site, work_type):
    result = activity_service.update_work_item(
        activity_id, sub_site, work_type, json_body(), updated_by=current_actor(),
    )
    return jsonify(result), 200
