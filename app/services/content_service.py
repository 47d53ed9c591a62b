"""Content service — website copy generation via the Gemini REST API.

Turns intake form data into the JSON content structure the site
templates render (hero, about, services, trust, cta, seo), and
enhances existing content with post-purchase details.

Uses plain HTTPS calls with `requests`; no SDK. Every failure
(network, timeout, non-200, unparsable output) is raised as
ContentGenerationError so routes can answer with a clean 502.
"""

import json
import logging
from datetime import datetime, timezone

import requests
from flask import current_app

logger = logging.getLogger(__name__)

REQUIRED_INTAKE_FIELDS = [
    "businessName",
    "phone",
    "email",
    "serviceArea",
    "services",
    "years",
]

INDUSTRY_CONTEXT = {
    "electrician": "licensed electrical contractor specializing in residential and commercial work",
    "plumber": "professional plumbing company serving homes and businesses",
    "hvac": "heating, ventilation, and air conditioning specialist",
    "landscaping": "landscape design and maintenance professional",
    "contractor": "general contracting and remodeling expert",
    "roofing": "roofing installation and repair specialist",
    "cleaning": "professional cleaning service",
}

CONTENT_SHAPE = """{
    "hero": {
        "headline": "powerful 6-10 word headline that communicates main value proposition",
        "subheadline": "compelling 15-25 word sentence that expands on headline and mentions service area",
        "cta_text": "action-oriented button text, 2-4 words (e.g. 'Get Free Quote', 'Call Today')"
    },
    "about": {
        "headline": "engaging about section headline",
        "text": "3-4 rich sentences about the business story, experience, commitment to quality, and what makes them different"
    },
    "services": [
        {
            "title": "specific service name",
            "description": "detailed 2-3 sentence description of this service, benefits, and what's included"
        }
    ],
    "trust": {
        "headline": "why choose us headline that communicates unique value",
        "points": ["trust point 1", "trust point 2", "trust point 3"]
    },
    "cta": {
        "headline": "compelling call-to-action headline that creates urgency",
        "text": "motivating 20-30 word paragraph that gives them a reason to contact now",
        "button_text": "strong action button text"
    },
    "seo": {
        "title": "page title with business name, main service, and location - under 60 chars",
        "description": "meta description with services, location, and value prop - under 155 chars"
    }
}"""


class ContentGenerationError(Exception):
    """The LLM call failed or returned something we can't use."""


def missing_intake_fields(intake_data):
    """Return the required intake fields that are absent or blank."""
    intake_data = intake_data or {}
    return [
        f for f in REQUIRED_INTAKE_FIELDS
        if not str(intake_data.get(f) or "").strip()
    ]


def _build_generation_prompt(intake_data, industry):
    business_type = INDUSTRY_CONTEXT.get(
        (industry or "").lower(), "professional service provider"
    )
    return f"""You are an expert copywriter creating website content for a {business_type}. Write compelling, professional content that converts visitors into customers.

BUSINESS DETAILS:
- Business Name: {intake_data['businessName']}
- Industry: {industry or 'service provider'}
- Phone: {intake_data['phone']}
- Email: {intake_data['email']}
- Service Area: {intake_data['serviceArea']}
- What They Do: {intake_data['services']}
- Years in Business: {intake_data['years']}

CONTENT REQUIREMENTS:
1. Tone: confident, professional, trustworthy, but not corporate or stuffy
2. Mention {intake_data['serviceArea']} naturally to establish local presence
3. Emphasize {intake_data['years']} years as proof of reliability
4. CTAs are action-oriented and benefit-focused (not just "Contact Us")
5. Normal capitalization

Generate a JSON object with this EXACT structure:

{CONTENT_SHAPE}

Parse "What They Do" into 3-6 specific services, each with its own title and description.

Return ONLY valid JSON, no markdown formatting, no backticks."""


def _build_enhancement_prompt(existing_content, additional_data):
    lines = []
    if additional_data.get("differentiator"):
        lines.append(f"- What makes them different: {additional_data['differentiator']}")
    if additional_data.get("promotion"):
        lines.append(f"- Current promotion: {additional_data['promotion']}")
    if additional_data.get("hours"):
        lines.append(f"- Hours of operation: {additional_data['hours']}")
    if additional_data.get("license"):
        lines.append(f"- License number: {additional_data['license']}")

    return f"""You are updating website content for an existing business. Here is the current content:

{json.dumps(existing_content, indent=2)}

NEW INFORMATION TO INCORPORATE:
{chr(10).join(lines)}

Update the content to incorporate this new information naturally. Keep the same JSON structure. Make the differentiator a key part of the about section and trust points. If there's a promotion, add it to the hero or CTA section.

Return ONLY valid JSON, no markdown formatting, no backticks."""


def strip_code_fences(text):
    """Remove ```json ... ``` wrapping the model sometimes adds."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _call_model(prompt):
    """Send a prompt to Gemini and return the parsed JSON response."""
    api_key = current_app.config.get("GEMINI_API_KEY")
    if not api_key:
        raise ContentGenerationError("GEMINI_API_KEY is not configured")

    model = current_app.config["GEMINI_MODEL"]
    url = f"{current_app.config['GEMINI_API_BASE']}/models/{model}:generateContent"

    try:
        resp = requests.post(
            url,
            headers={
                "Content-Type": "application/json",
                "x-goog-api-key": api_key,
            },
            json={
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {"responseMimeType": "application/json"},
            },
            timeout=current_app.config.get("LLM_TIMEOUT", 30),
        )
        resp.raise_for_status()
        data = resp.json()
    except requests.exceptions.Timeout:
        raise ContentGenerationError("Content generation timed out")
    except (requests.exceptions.RequestException, ValueError) as e:
        raise ContentGenerationError(f"Content generation request failed: {e}")

    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise ContentGenerationError("Model returned no content")

    try:
        content = json.loads(strip_code_fences(text))
    except ValueError as e:
        raise ContentGenerationError(f"Model returned invalid JSON: {e}")

    if not isinstance(content, dict):
        raise ContentGenerationError("Model returned JSON that is not an object")
    return content


def generate_content(intake_data, template_id):
    """Generate website content from intake form data.

    Args:
        intake_data: dict with businessName, phone, email, serviceArea,
                     services, years (and optionally industry).
        template_id: The chosen template; doubles as the industry when
                     the intake form doesn't name one.

    Returns the content dict, with business info, template id and a
    generatedAt timestamp attached.

    Raises:
        ValueError: If required intake fields are missing.
        ContentGenerationError: If the model call fails.
    """
    missing = missing_intake_fields(intake_data)
    if missing:
        raise ValueError(f"Missing intake fields: {', '.join(missing)}")

    industry = intake_data.get("industry") or template_id
    content = _call_model(_build_generation_prompt(intake_data, industry))

    content["business"] = {
        "name": intake_data["businessName"],
        "phone": intake_data["phone"],
        "email": intake_data["email"],
        "serviceArea": intake_data["serviceArea"],
        "years": intake_data["years"],
        "industry": industry,
    }
    content["template"] = template_id
    content["generatedAt"] = datetime.now(timezone.utc).isoformat()

    logger.info(f"Generated content for {intake_data['businessName']}")
    return content


def enhance_content(existing_content, additional_data):
    """Fold post-purchase details (differentiator, promotion, hours, license)
    into existing content. Business info and generatedAt are preserved.

    Raises:
        ContentGenerationError: If the model call fails.
    """
    content = _call_model(_build_enhancement_prompt(existing_content, additional_data))

    business = dict(existing_content.get("business") or {})
    if additional_data.get("hours"):
        business["hours"] = additional_data["hours"]
    if additional_data.get("license"):
        business["license"] = additional_data["license"]

    content["business"] = business
    content["template"] = existing_content.get("template")
    content["generatedAt"] = existing_content.get("generatedAt")
    content["enhancedAt"] = datetime.now(timezone.utc).isoformat()
    if additional_data.get("promotion"):
        content["promotion"] = additional_data["promotion"]

    return content
