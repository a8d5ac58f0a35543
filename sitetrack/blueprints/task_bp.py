"""Task board endpoint.

    GET /api/v1/tasks   ?module ?status ?assignee ?search ?granularity ?page ?per_page
"""

from flask import Blueprint, jsonify, request

from sitetrack.blueprints import register_error_handlers
from sitetrack.services.task_projection import project_tasks
from sitetrack.utils.helpers import get_page_args

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1/tasks")
register_error_handlers(task_bp)


@task_bp.route("", methods=["GET"])
def list_tasks():
    filters = {
        key: request.args.get(key)
        for key in ("module", "status", "assignee", "search", "granularity")
    }
    return jsonify(project_tasks(filters, get_page_args())), 200
