"""Tests for customers, site status transitions, and suspension.

Covers:
- upsert_customer (create, update Stripe id, case-insensitive email)
- set_site_status transitions and timestamp invariants
- get_sites_for_suspension grace period and later-success rules
- suspend_overdue_sites (dry run and real, project deletion)
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from app.extensions import db
from app.models.customer import Customer
from app.models.payment_event import PaymentEvent
from app.models.site import Site, SiteStatus
from app.services.site_service import (
    PAYMENT_FAILED,
    PAYMENT_SUCCEEDED,
    create_site,
    get_site,
    get_sites_by_customer,
    get_sites_for_suspension,
    set_site_status,
    suspend_overdue_sites,
    transition_site_status,
    update_site_content,
    upsert_customer,
)


def _ledger(site_id, event_type, days_ago, event_id=None):
    event = PaymentEvent(
        stripe_event_id=event_id or f"evt_{event_type}_{days_ago}_{site_id[:8]}",
        event_type=event_type,
        payload={},
        processed=True,
        site_id=site_id,
        created_at=datetime.now(timezone.utc) - timedelta(days=days_ago),
    )
    db.session.add(event)
    db.session.commit()
    return event


class TestUpsertCustomer:
    def test_creates_customer(self):
        customer = upsert_customer("New@Example.com", "cus_new")
        assert customer.email == "new@example.com"
        assert customer.stripe_customer_id == "cus_new"

    def test_existing_email_updates_stripe_id(self):
        first = upsert_customer("owner@example.com")
        second = upsert_customer("OWNER@example.com", "cus_later")

        assert second.id == first.id
        assert second.stripe_customer_id == "cus_later"
        assert Customer.query.count() == 1


class TestSites:
    def test_create_and_list(self, seed_data):
        site = create_site(seed_data["customer_id"], "Second-Site", plan="starter")
        assert site.slug == "second-site"
        assert site.status == SiteStatus.ACTIVE

        slugs = [s.slug for s in get_sites_by_customer(seed_data["customer_id"])]
        assert set(slugs) == {"smith-electric", "second-site"}

    def test_update_content(self, seed_data):
        site = update_site_content(seed_data["site_id"], {"hero": {"headline": "New"}})
        assert site.generated_content == {"hero": {"headline": "New"}}


class TestSetSiteStatus:
    def test_suspend_stamps_suspended_at(self, seed_data):
        site = set_site_status(seed_data["site_id"], SiteStatus.SUSPENDED)
        assert site.status == SiteStatus.SUSPENDED
        assert site.suspended_at is not None

    def test_reactivate_clears_suspended_at(self, seed_data):
        set_site_status(seed_data["site_id"], "suspended")
        site = set_site_status(seed_data["site_id"], "active")

        assert site.status == SiteStatus.ACTIVE
        assert site.suspended_at is None
        assert site.deployed_at is not None

    def test_reactivate_keeps_existing_deployed_at(self, seed_data):
        deployed = datetime(2026, 1, 5, 12, 0, 0)
        db.session.execute(
            db.update(Site).where(Site.id == seed_data["site_id"]).values(deployed_at=deployed)
        )
        db.session.commit()

        set_site_status(seed_data["site_id"], SiteStatus.SUSPENDED)
        site = set_site_status(seed_data["site_id"], SiteStatus.ACTIVE)
        assert site.deployed_at.replace(tzinfo=None) == deployed

    def test_same_status_is_noop(self, seed_data):
        site = set_site_status(seed_data["site_id"], SiteStatus.ACTIVE)
        assert site.status == SiteStatus.ACTIVE
        assert site.suspended_at is None

    def test_invalid_status_raises(self, seed_data):
        with pytest.raises(ValueError, match="Invalid status"):
            set_site_status(seed_data["site_id"], "deleted")

    def test_unknown_site(self):
        assert set_site_status("missing", SiteStatus.SUSPENDED) is None
        assert transition_site_status("missing", SiteStatus.SUSPENDED) == (None, False)

    def test_transition_reports_whether_it_applied(self, seed_data):
        site, applied = transition_site_status(seed_data["site_id"], SiteStatus.SUSPENDED)
        assert applied is True
        assert site.status == SiteStatus.SUSPENDED

        site, applied = transition_site_status(seed_data["site_id"], SiteStatus.SUSPENDED)
        assert applied is False
        assert site.status == SiteStatus.SUSPENDED


class TestSuspensionQuery:
    def test_failure_within_grace_not_selected(self, seed_data):
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=3)
        assert get_sites_for_suspension(7) == []

    def test_failure_past_grace_selected(self, seed_data):
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=8)
        sites = get_sites_for_suspension(7)
        assert [s.id for s in sites] == [seed_data["site_id"]]

    def test_later_success_clears_failure(self, seed_data):
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=10)
        _ledger(seed_data["site_id"], PAYMENT_SUCCEEDED, days_ago=9)
        assert get_sites_for_suspension(7) == []

    def test_earlier_success_does_not_clear_failure(self, seed_data):
        _ledger(seed_data["site_id"], PAYMENT_SUCCEEDED, days_ago=30)
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=8)
        assert len(get_sites_for_suspension(7)) == 1

    def test_multiple_failures_return_site_once(self, seed_data):
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=8)
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=15)
        assert len(get_sites_for_suspension(7)) == 1

    def test_suspended_sites_excluded(self, seed_data):
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=8)
        set_site_status(seed_data["site_id"], SiteStatus.SUSPENDED)
        assert get_sites_for_suspension(7) == []

    def test_custom_grace_period(self, seed_data):
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=3)
        assert len(get_sites_for_suspension(2)) == 1


class TestSuspendOverdue:
    def test_dry_run_changes_nothing(self, seed_data):
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=8)

        sites = suspend_overdue_sites(7, dry_run=True)
        assert len(sites) == 1
        assert get_site(seed_data["site_id"]).status == SiteStatus.ACTIVE

    @patch("app.services.publish_service.delete_project")
    def test_suspends_and_deletes_project(self, mock_delete, seed_data):
        db.session.execute(
            db.update(Site)
            .where(Site.id == seed_data["site_id"])
            .values(cloudflare_project_id="llc-smith-electric")
        )
        db.session.commit()
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=8)
        mock_delete.return_value = True

        sites = suspend_overdue_sites(7)

        assert [s.id for s in sites] == [seed_data["site_id"]]
        assert get_site(seed_data["site_id"]).status == SiteStatus.SUSPENDED
        mock_delete.assert_called_once_with("llc-smith-electric")

    @patch("app.services.publish_service.delete_project")
    def test_delete_failure_still_suspends(self, mock_delete, seed_data):
        db.session.execute(
            db.update(Site)
            .where(Site.id == seed_data["site_id"])
            .values(cloudflare_project_id="llc-smith-electric")
        )
        db.session.commit()
        _ledger(seed_data["site_id"], PAYMENT_FAILED, days_ago=8)
        mock_delete.return_value = False

        suspend_overdue_sites(7)
        assert get_site(seed_data["site_id"]).status == SiteStatus.SUSPENDED
