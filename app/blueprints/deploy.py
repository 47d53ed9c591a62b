"""Deploy blueprint — operator endpoints for the deploy queue.

Bearer-token protected (ADMIN_API_TOKEN). Deploys are never run inside
the request: the route only queues a job for the worker.

Route Map:
  POST /api/deploy/<slug>          — queue a (re)deploy of a paid site
  GET  /api/deploy-jobs/<job_id>   — job status
"""

import logging

from flask import Blueprint, jsonify

from app.decorators import admin_token_required
from app.models.site import SiteStatus
from app.services import deploy_queue
from app.services.site_service import get_site_by_slug

deploy_bp = Blueprint("deploy", __name__, url_prefix="/api")

logger = logging.getLogger(__name__)


@deploy_bp.route("/deploy/<slug>", methods=["POST"])
@admin_token_required
def deploy(slug):
    """Queue a deploy job for a site. Returns 202 with the job."""
    site = get_site_by_slug(slug)
    if site is None:
        return jsonify(error="Site not found"), 404
    if site.status == SiteStatus.SUSPENDED:
        return jsonify(error="Site is suspended"), 409

    job = deploy_queue.enqueue(site.id)
    return jsonify(success=True, job=job.to_dict()), 202


@deploy_bp.route("/deploy-jobs/<job_id>", methods=["GET"])
@admin_token_required
def job_status(job_id):
    job = deploy_queue.get_job(job_id)
    if job is None:
        return jsonify(error="Job not found"), 404
    return jsonify(job=job.to_dict())
