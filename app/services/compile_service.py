"""Compile service — render generated content into static site HTML.

Uses its own Jinja2 environment over app/site_templates/ (separate from
Flask's template loader: these pages are published to static hosting,
not served by the app). Autoescaping is on; LLM output is untrusted.

compile_multi_page() serves the pro tier's extra pages; the starter
plan the deploy worker publishes today is a single page.
"""

import logging
import os
from datetime import datetime, timezone

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

logger = logging.getLogger(__name__)

SITE_TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "site_templates")

# Template id (industry) -> template file. Every industry currently shares
# the electrician layout.
TEMPLATE_MAP = {
    "electrician": "electrician.html",
    "plumber": "electrician.html",
    "hvac": "electrician.html",
    "roofing": "electrician.html",
    "landscaping": "electrician.html",
    "cleaning": "electrician.html",
    "contractor": "electrician.html",
    "other": "electrician.html",
}
DEFAULT_TEMPLATE = "electrician.html"

_env = Environment(
    loader=FileSystemLoader(SITE_TEMPLATE_DIR),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


class TemplateCompileError(Exception):
    """Rendering a site template failed."""


def get_image_paths(industry, template_id=None):
    """Return the stock image paths for an industry."""
    ind = (industry or "electrician").lower()
    base = f"/images/{ind}"
    return {
        "hero": f"{base}/1.jpg",
        "about": f"{base}/2.jpg",
        "service1": f"{base}/3.jpg",
        "service2": f"{base}/4.jpg",
        "cta": f"{base}/1.jpg",
    }


def compile_website(content, template_id="electrician", industry="electrician"):
    """Render a one-page site from generated content.

    Returns the HTML string.

    Raises:
        TemplateCompileError: If the template is missing or fails to render.
    """
    content = content or {}
    template_file = TEMPLATE_MAP.get(template_id, DEFAULT_TEMPLATE)

    template_vars = {
        "business": content.get("business") or {},
        "hero": content.get("hero") or {},
        "about": content.get("about") or {},
        "services": content.get("services") or [],
        "trust": content.get("trust") or {},
        "cta": content.get("cta") or {},
        "seo": content.get("seo") or {},
        "promotion": content.get("promotion"),
        "images": get_image_paths(industry, template_id),
        "templateId": template_id,
        "industry": industry,
        "currentYear": datetime.now(timezone.utc).year,
        "generatedAt": content.get("generatedAt") or datetime.now(timezone.utc).isoformat(),
    }

    try:
        return _env.get_template(template_file).render(**template_vars)
    except TemplateError as e:
        logger.error(f"Template compilation error ({template_file}): {e}")
        raise TemplateCompileError(f"Failed to compile template: {e}")


def compile_multi_page(content, page_selections, template_id, industry):
    """Render the home page plus each selected extra page (pro tier).

    `content` holds one entry per page ("home", "about", ...) and a shared
    "business" entry. Pages without content or without a template are
    skipped and logged.

    Returns {page_name: html}.
    """
    pages = {"home": compile_website(content.get("home"), template_id, industry)}

    for page_name in page_selections:
        if not content.get(page_name):
            continue
        try:
            pages[page_name] = _env.get_template(f"{page_name}.html").render(
                business=content.get("business") or {},
                content=content[page_name],
                images=get_image_paths(industry, template_id),
                templateId=template_id,
                industry=industry,
                currentYear=datetime.now(timezone.utc).year,
            )
        except TemplateError as e:
            logger.error(f"Failed to compile {page_name} page: {e}")

    return pages
