import os
import logging
from datetime import datetime, timezone

import click
from flask import Flask, jsonify

from app.config import config_by_name
from app.extensions import db, migrate, cors, limiter

API_VERSION = "1.0.0"


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": app.config["ALLOWED_ORIGINS"]}},
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        supports_credentials=True,
    )

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from app import models  # noqa: F401

    # --- Register blueprints ---
    from app.blueprints.slugs import slugs_bp
    from app.blueprints.content import content_bp
    from app.blueprints.checkout import checkout_bp
    from app.blueprints.deploy import deploy_bp
    from app.blueprints.webhooks import webhooks_bp

    app.register_blueprint(slugs_bp)
    app.register_blueprint(content_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(deploy_bp)
    app.register_blueprint(webhooks_bp)

    @app.route("/api/health")
    def health():
        return jsonify(
            status="ok",
            timestamp=datetime.now(timezone.utc).isoformat(),
            version=API_VERSION,
        )

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify(error="Not found"), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(error="Method not allowed"), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify(error="Too many requests. Please slow down."), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(
            error="Internal server error",
            message=str(e) if app.debug else None,
        ), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app.

    These are the cron / worker entry points:
        flask cleanup-reservations      every few minutes
        flask deploy-worker             long-running process
        flask retry-deploys             every few minutes
        flask reap-deploys              operator-triggered or hourly
        flask suspend-overdue           daily
    """

    @app.cli.command("cleanup-reservations")
    def cleanup_reservations():
        """Delete expired, unconverted slug reservations."""
        from app.services.slug_service import cleanup_expired_reservations

        count = cleanup_expired_reservations()
        click.echo(f"Removed {count} expired reservation(s).")

    @app.cli.command("deploy-worker")
    @click.option("--once", is_flag=True, help="Drain the queue and exit instead of polling forever.")
    @click.option("--poll-interval", type=float, default=None, help="Seconds between empty polls.")
    @click.option("--max-jobs", type=int, default=None, help="Exit after processing this many jobs.")
    def deploy_worker(once, poll_interval, max_jobs):
        """Claim and run deploy jobs.

        Usage:
            flask deploy-worker
            flask deploy-worker --once
        """
        from app.services.deploy_queue import run_worker

        click.echo("Deploy worker started.")
        try:
            processed = run_worker(
                poll_interval=poll_interval, once=once, max_jobs=max_jobs
            )
        except KeyboardInterrupt:
            click.echo("Deploy worker stopped.")
            return
        click.echo(f"Processed {processed} deploy job(s).")

    @app.cli.command("retry-deploys")
    @click.option("--max-attempts", type=int, default=None, help="Attempt limit (default DEPLOY_MAX_ATTEMPTS).")
    def retry_deploys(max_attempts):
        """Re-queue failed deploy jobs that still have attempts left."""
        from app.services.deploy_queue import retry_eligible

        if max_attempts is None:
            max_attempts = app.config["DEPLOY_MAX_ATTEMPTS"]
        jobs = retry_eligible(max_attempts)
        click.echo(f"Re-queued {len(jobs)} failed deploy job(s).")

    @app.cli.command("reap-deploys")
    @click.option("--stale-minutes", type=int, default=None, help="Claim age that counts as stale (default DEPLOY_STALE_MINUTES).")
    def reap_deploys(stale_minutes):
        """Recover deploy jobs stuck in processing after a worker crash."""
        from app.services.deploy_queue import reap_stale

        if stale_minutes is None:
            stale_minutes = app.config["DEPLOY_STALE_MINUTES"]
        jobs = reap_stale(stale_minutes, app.config["DEPLOY_MAX_ATTEMPTS"])
        for job in jobs:
            click.echo(f"  {job.id} site={job.site_id} -> {job.status.value}")
        click.echo(f"Reaped {len(jobs)} stale deploy job(s).")

    @app.cli.command("suspend-overdue")
    @click.option("--grace-days", type=int, default=None, help="Grace period after a failed payment (default SUSPENSION_GRACE_DAYS).")
    @click.option("--dry-run", is_flag=True, help="List sites that would be suspended without changing anything.")
    def suspend_overdue(grace_days, dry_run):
        """Suspend sites whose payment has been failing past the grace period."""
        from app.services.site_service import suspend_overdue_sites

        if grace_days is None:
            grace_days = app.config["SUSPENSION_GRACE_DAYS"]
        sites = suspend_overdue_sites(grace_days, dry_run=dry_run)
        verb = "Would suspend" if dry_run else "Suspended"
        for site in sites:
            click.echo(f"  {verb}: {site.slug}")
        click.echo(f"{verb} {len(sites)} site(s).")
