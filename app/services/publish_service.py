"""Publish service — push compiled HTML to Cloudflare Pages via wrangler.

Each site is its own Pages project named "<PROJECT_PREFIX><slug>". The
HTML is written to a temp directory that wrangler uploads as-is.

deploy_site() never raises for publish failures: non-zero exits,
timeouts and a missing wrangler binary all come back as
{"success": False, "error": ...} so the deploy queue can record them.
"""

import logging
import os
import re
import shlex
import subprocess
import tempfile

from flask import current_app

logger = logging.getLogger(__name__)

PAGES_URL_RE = re.compile(r"https://[a-z0-9.-]+\.pages\.dev")

# Project creation is idempotent-ish (fails if it exists); keep it short.
CREATE_PROJECT_TIMEOUT = 60


def project_name_for(slug):
    return f"{current_app.config.get('PROJECT_PREFIX', 'llc-')}{slug}"


def _wrangler(args, timeout):
    """Run a wrangler subcommand with Cloudflare credentials in env.

    Returns the CompletedProcess. Raises subprocess.TimeoutExpired or
    OSError from subprocess.run.
    """
    cmd = shlex.split(current_app.config.get("WRANGLER_COMMAND", "npx wrangler")) + args
    env = dict(os.environ)
    env["CLOUDFLARE_ACCOUNT_ID"] = current_app.config.get("CLOUDFLARE_ACCOUNT_ID") or ""
    env["CLOUDFLARE_API_TOKEN"] = current_app.config.get("CLOUDFLARE_API_TOKEN") or ""

    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=env,
        check=False,
    )


def deploy_site(slug, html):
    """Publish a single-page site.

    Returns a dict:
        success (bool)
        url (str|None): customer-facing URL (https://<slug>.<SITE_DOMAIN>)
        pages_url (str|None): the *.pages.dev deployment URL
        project_name (str): the Pages project
        error (str|None): failure description
    """
    project_name = project_name_for(slug)
    timeout = current_app.config.get("PUBLISH_TIMEOUT", 120)
    result = {
        "success": False,
        "url": None,
        "pages_url": None,
        "project_name": project_name,
        "error": None,
    }

    with tempfile.TemporaryDirectory(prefix="websimple-") as temp_dir:
        with open(os.path.join(temp_dir, "index.html"), "w", encoding="utf-8") as f:
            f.write(html)

        logger.info(f"Deploying {project_name} from {temp_dir}")

        try:
            # Create the project first; failure usually means it already exists.
            created = _wrangler(
                ["pages", "project", "create", project_name, "--production-branch=main"],
                timeout=CREATE_PROJECT_TIMEOUT,
            )
            if created.returncode == 0:
                logger.info(f"Created Pages project {project_name}")
            else:
                logger.info(f"Project {project_name} may already exist, continuing")

            deployed = _wrangler(
                [
                    "pages", "deploy", temp_dir,
                    f"--project-name={project_name}",
                    "--branch=main",
                ],
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            result["error"] = f"wrangler timed out after {timeout}s"
            logger.error(f"Deploy of {project_name} timed out")
            return result
        except OSError as e:
            result["error"] = f"Could not run wrangler: {e}"
            logger.error(result["error"])
            return result

    if deployed.returncode != 0:
        stderr = (deployed.stderr or deployed.stdout or "").strip()
        result["error"] = f"wrangler exited with {deployed.returncode}: {stderr[-500:]}"
        logger.error(f"Deploy of {project_name} failed: {result['error']}")
        return result

    match = PAGES_URL_RE.search(deployed.stdout or "")
    result["pages_url"] = match.group(0) if match else f"https://{project_name}.pages.dev"
    result["url"] = f"https://{slug}.{current_app.config['SITE_DOMAIN']}"
    result["success"] = True
    return result


def delete_project(project_name):
    """Delete a Pages project. Returns True on success, False otherwise."""
    try:
        proc = _wrangler(
            ["pages", "project", "delete", project_name, "--yes"],
            timeout=current_app.config.get("PUBLISH_TIMEOUT", 120),
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.error(f"Delete project {project_name} failed: {e}")
        return False

    if proc.returncode != 0:
        logger.error(
            f"Delete project {project_name} failed: {(proc.stderr or '').strip()}"
        )
        return False

    logger.info(f"Deleted Pages project {project_name}")
    return True
