"""Tests for the app factory: health check, error handlers, headers, CLI."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from app.extensions import db
from app.models.deploy_job import DeployJob, DeployStatus
from app.models.payment_event import PaymentEvent
from app.models.reservation import SlugReservation
from app.models.site import Site, SiteStatus
from app.services import deploy_queue
from app.services.slug_service import reserve_slug


class TestAppBasics:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "ok"

    def test_json_404(self, client):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json() == {"error": "Not found"}

    def test_security_headers(self, client):
        resp = client.get("/api/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"

    def test_cors_allowed_origin(self, client):
        resp = client.get("/api/health", headers={"Origin": "https://websimple.ai"})
        assert resp.headers["Access-Control-Allow-Origin"] == "https://websimple.ai"
        assert resp.headers["Access-Control-Allow-Credentials"] == "true"

    def test_cors_other_origin(self, client):
        resp = client.get("/api/health", headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers

    def test_cors_preflight(self, client):
        resp = client.options(
            "/api/check-slug",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]
        assert "content-type" in resp.headers["Access-Control-Allow-Headers"].lower()

    def test_cors_preflight_other_origin(self, client):
        resp = client.options(
            "/api/check-slug",
            headers={
                "Origin": "https://evil.example",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert "Access-Control-Allow-Origin" not in resp.headers


class TestCli:
    def test_cleanup_reservations(self, app):
        reserve_slug("old-hold", session_id="s1")
        db.session.execute(
            db.update(SlugReservation)
            .where(SlugReservation.slug == "old-hold")
            .values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=5))
        )
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["cleanup-reservations"])
        assert result.exit_code == 0
        assert "Removed 1 expired reservation(s)." in result.output
        assert SlugReservation.query.count() == 0

    @patch("app.services.publish_service.deploy_site")
    def test_deploy_worker_once(self, mock_deploy, app, seed_data):
        mock_deploy.return_value = {
            "success": True,
            "url": "https://smith-electric.llc-us.com",
            "pages_url": "https://llc-smith-electric.pages.dev",
            "project_name": "llc-smith-electric",
            "error": None,
        }
        deploy_queue.enqueue(seed_data["site_id"])

        result = app.test_cli_runner().invoke(args=["deploy-worker", "--once"])
        assert result.exit_code == 0
        assert "Processed 1 deploy job(s)." in result.output
        assert DeployJob.query.one().status == DeployStatus.COMPLETED

    def test_retry_deploys(self, app, seed_data):
        job_id = deploy_queue.enqueue(seed_data["site_id"]).id
        db.session.execute(
            db.update(DeployJob)
            .where(DeployJob.id == job_id)
            .values(status=DeployStatus.FAILED, attempts=1)
        )
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["retry-deploys"])
        assert result.exit_code == 0
        assert "Re-queued 1 failed deploy job(s)." in result.output

    def test_reap_deploys(self, app, seed_data):
        deploy_queue.enqueue(seed_data["site_id"])
        job = deploy_queue.claim_next()
        db.session.execute(
            db.update(DeployJob)
            .where(DeployJob.id == job.id)
            .values(started_at=datetime.now(timezone.utc) - timedelta(hours=1))
        )
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["reap-deploys"])
        assert result.exit_code == 0
        assert "Reaped 1 stale deploy job(s)." in result.output

    def test_suspend_overdue_dry_run(self, app, seed_data):
        db.session.add(
            PaymentEvent(
                stripe_event_id="evt_fail_old",
                event_type="invoice.payment_failed",
                processed=True,
                site_id=seed_data["site_id"],
                created_at=datetime.now(timezone.utc) - timedelta(days=10),
            )
        )
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["suspend-overdue", "--dry-run"])
        assert result.exit_code == 0
        assert "Would suspend: smith-electric" in result.output
        assert db.session.get(Site, seed_data["site_id"]).status == SiteStatus.ACTIVE
