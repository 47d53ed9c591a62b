"""Content blueprint — generation, enhancement, and previews.

Route Map:
  POST /api/generate-content        — intake form -> generated copy (LLM)
  POST /api/enhance-content         — fold post-purchase details into copy
  GET  /api/preview-content/<slug>  — generated copy as JSON
  GET  /api/preview-html/<slug>     — copy rendered into the site template
"""

import logging
import time

from flask import Blueprint, jsonify, request

from app.extensions import limiter
from app.services.compile_service import TemplateCompileError, compile_website
from app.services.content_service import (
    ContentGenerationError,
    REQUIRED_INTAKE_FIELDS,
    enhance_content,
    generate_content,
    missing_intake_fields,
)
from app.services.slug_service import (
    get_owned_reservation,
    get_reservation,
    sanitize_slug,
    update_reservation,
)

content_bp = Blueprint("content", __name__, url_prefix="/api")

logger = logging.getLogger(__name__)

PREVIEW_TEMPLATE = "electrician"


@content_bp.route("/generate-content", methods=["POST"])
@limiter.limit("10 per hour")
def generate():
    """Generate website content from the intake form.

    Expects: { slug, sessionId, templateId, intakeData: {businessName, phone,
               email, serviceArea, services, years} }
    Returns: { success, content, generationTime }
    """
    data = request.get_json(silent=True) or {}
    slug = sanitize_slug(data.get("slug"))
    template_id = (data.get("templateId") or "").strip()
    intake_data = data.get("intakeData")

    if slug is None or not template_id or not isinstance(intake_data, dict):
        return jsonify(
            error="Missing required fields: slug, templateId, intakeData"
        ), 400

    if missing_intake_fields(intake_data):
        return jsonify(
            error=f"Missing intake fields. Required: {', '.join(REQUIRED_INTAKE_FIELDS)}"
        ), 400

    session_id = data.get("sessionId")
    if get_owned_reservation(slug, session_id) is None:
        return jsonify(error="Reserve this slug before generating content"), 404

    logger.info(f"Generating content for {intake_data['businessName']}...")
    started = time.monotonic()
    intake_data = dict(intake_data, industry=template_id)

    try:
        content = generate_content(intake_data, template_id)
    except ContentGenerationError as e:
        logger.error(f"Generate content error for {slug}: {e}")
        return jsonify(error="Failed to generate content", message=str(e)), 502

    duration = int((time.monotonic() - started) * 1000)
    logger.info(f"Content generated in {duration}ms")

    saved = update_reservation(
        slug,
        session_id=session_id,
        template_id=template_id,
        intake_data=intake_data,
        generated_content=content,
    )
    if saved is None:
        return jsonify(error="Reservation expired while generating content"), 409
    return jsonify(success=True, content=content, generationTime=duration)


@content_bp.route("/enhance-content", methods=["POST"])
@limiter.limit("10 per hour")
def enhance():
    """Enhance existing content with post-purchase details.

    Expects: { slug, sessionId, additionalData: {differentiator, promotion,
               hours, license} }
    Returns: { success, content, generationTime }
    """
    data = request.get_json(silent=True) or {}
    slug = sanitize_slug(data.get("slug"))
    additional_data = data.get("additionalData")

    if slug is None or not isinstance(additional_data, dict) or not additional_data:
        return jsonify(error="Missing required fields: slug, additionalData"), 400

    session_id = data.get("sessionId")
    reservation = get_owned_reservation(slug, session_id)
    if reservation is None or not reservation.generated_content:
        return jsonify(error="No existing content found for this slug"), 404

    started = time.monotonic()
    try:
        content = enhance_content(reservation.generated_content, additional_data)
    except ContentGenerationError as e:
        logger.error(f"Enhance content error for {slug}: {e}")
        return jsonify(error="Failed to enhance content", message=str(e)), 502

    duration = int((time.monotonic() - started) * 1000)
    if update_reservation(slug, session_id=session_id, generated_content=content) is None:
        return jsonify(error="Reservation expired while enhancing content"), 409
    return jsonify(success=True, content=content, generationTime=duration)


@content_bp.route("/preview-content/<slug>", methods=["GET"])
def preview_content(slug):
    """Return the generated content for preview rendering."""
    reservation = get_reservation(slug)
    if reservation is None:
        return jsonify(error="Reservation not found"), 404
    if not reservation.generated_content:
        return jsonify(error="No content generated yet"), 404

    return jsonify(
        success=True,
        content=reservation.generated_content,
        templateId=reservation.template_id,
        intakeData=reservation.intake_data,
    )


@content_bp.route("/preview-html/<slug>", methods=["GET"])
def preview_html(slug):
    """Return the compiled HTML preview using the real site template."""
    reservation = get_reservation(slug)
    if reservation is None or not reservation.generated_content:
        return jsonify(error="No content found"), 404

    template_id = reservation.template_id or PREVIEW_TEMPLATE
    try:
        html = compile_website(reservation.generated_content, template_id, template_id)
    except TemplateCompileError as e:
        logger.error(f"Preview HTML error for {slug}: {e}")
        return jsonify(error="Failed to generate preview"), 500

    return html, 200, {"Content-Type": "text/html; charset=utf-8"}
