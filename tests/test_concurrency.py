"""Concurrency tests: many threads, one shared database.

Each thread pushes its own app context, so Flask-SQLAlchemy hands it its
own session and connection. The in-memory database the rest of the suite
uses is a single shared connection, so these tests run against a SQLite
file (or Postgres when TEST_DATABASE_URL is set).

Covers:
- Slug uniqueness: concurrent reservers of one slug, exactly one wins
- Queue exclusivity: concurrent claim_next() callers never share a job
- Two workers draining three jobs: three completions, none run twice
- Ledger claims: concurrent deliveries of one event, exactly one claims it
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from app import create_app
from app.config import TestConfig, config_by_name
from app.extensions import db as _db
from app.models.customer import Customer
from app.models.deploy_job import DeployJob, DeployStatus
from app.models.reservation import SlugReservation
from app.models.site import Site
from app.services import deploy_queue, payment_ledger
from app.services.slug_service import reserve_slug

THREADS = 8


@pytest.fixture
def shared_app(tmp_path, monkeypatch):
    """An app whose database every thread can open its own connection to."""
    url = os.environ.get("TEST_DATABASE_URL")
    if url:
        engine_options = {}
    else:
        url = f"sqlite:///{tmp_path / 'concurrency.db'}"
        engine_options = {"connect_args": {"timeout": 30, "check_same_thread": False}}

    config = type(
        "SharedDatabaseConfig",
        (TestConfig,),
        {"SQLALCHEMY_DATABASE_URI": url, "SQLALCHEMY_ENGINE_OPTIONS": engine_options},
    )
    monkeypatch.setitem(config_by_name, "shared-testing", config)

    app = create_app("shared-testing")
    with app.app_context():
        _db.create_all()

    yield app

    with app.app_context():
        _db.session.remove()
        _db.drop_all()
        _db.engine.dispose()


def _run_together(app, fn, count=THREADS):
    """Call fn() from count threads released at the same moment."""
    barrier = threading.Barrier(count)

    def worker(index):
        with app.app_context():
            barrier.wait()
            return fn(index)

    with ThreadPoolExecutor(max_workers=count) as pool:
        futures = [pool.submit(worker, i) for i in range(count)]
        return [f.result(timeout=60) for f in futures]


def _seed_jobs(app, content, count):
    with app.app_context():
        customer = Customer(email="owner@smithelectric.com")
        _db.session.add(customer)
        _db.session.flush()
        site = Site(
            customer_id=customer.id,
            slug="smith-electric",
            template_id="electrician",
            generated_content=content,
        )
        _db.session.add(site)
        _db.session.commit()

        return [deploy_queue.enqueue(site.id).id for _ in range(count)]


class TestConcurrentReservations:
    def test_exactly_one_reserver_wins(self, shared_app):
        results = _run_together(
            shared_app,
            lambda i: reserve_slug("acme-roofing", session_id=f"sess-{i}"),
        )

        assert results.count(True) == 1
        with shared_app.app_context():
            hold = SlugReservation.query.one()
            assert hold.session_id == f"sess-{results.index(True)}"


class TestConcurrentClaims:
    def test_claimers_never_share_a_job(self, shared_app, sample_content):
        job_ids = _seed_jobs(shared_app, sample_content, 3)

        def claim(i):
            job = deploy_queue.claim_next()
            return job.id if job else None

        claimed = [job_id for job_id in _run_together(shared_app, claim) if job_id]

        assert sorted(claimed) == sorted(job_ids)
        with shared_app.app_context():
            for job in DeployJob.query.all():
                assert job.status == DeployStatus.PROCESSING
                assert job.attempts == 1

    @patch("app.services.publish_service.deploy_site")
    def test_two_workers_drain_three_jobs(self, mock_deploy, shared_app, sample_content):
        mock_deploy.return_value = {
            "success": True,
            "url": "https://smith-electric.llc-us.com",
            "pages_url": "https://llc-smith-electric.pages.dev",
            "project_name": "llc-smith-electric",
            "error": None,
        }
        _seed_jobs(shared_app, sample_content, 3)

        processed = _run_together(
            shared_app, lambda i: deploy_queue.run_worker(once=True), count=2
        )

        assert sum(processed) == 3
        assert mock_deploy.call_count == 3
        with shared_app.app_context():
            jobs = DeployJob.query.all()
            assert [j.status for j in jobs] == [DeployStatus.COMPLETED] * 3
            assert all(j.attempts == 1 for j in jobs)


class TestConcurrentDeliveries:
    def test_one_delivery_claims_the_event(self, shared_app, make_event):
        event = make_event("evt_race", "customer.created", {})
        with shared_app.app_context():
            payment_ledger.record_event(event)

        results = _run_together(
            shared_app, lambda i: payment_ledger.claim_event("evt_race")
        )
        assert results.count(True) == 1
