"""Site service — customers, sites, status transitions, and suspension.

Responsible for:
- Upserting Customer rows from checkout (unique by lowercase email)
- Creating and looking up Site rows
- Moving a site between active and suspended (validated, atomic)
- Recording publish results on the site
- Selecting and suspending sites whose payment has been failing past
  the grace period
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from app.extensions import db
from app.models.customer import Customer
from app.models.payment_event import PaymentEvent
from app.models.site import Site, SiteStatus

logger = logging.getLogger(__name__)

PAYMENT_FAILED = "invoice.payment_failed"
PAYMENT_SUCCEEDED = "invoice.payment_succeeded"


# ──────────────────────────────────────────────
# Customers
# ──────────────────────────────────────────────

def get_customer_by_email(email):
    return Customer.query.filter_by(email=email.lower().strip()).first()


def get_customer_by_stripe_id(stripe_customer_id):
    return Customer.query.filter_by(stripe_customer_id=stripe_customer_id).first()


def upsert_customer(email, stripe_customer_id=None):
    """Create the customer for an email, or update its Stripe id.

    Returns the Customer (committed).
    """
    email = email.lower().strip()

    customer = get_customer_by_email(email)
    if customer is None:
        customer = Customer(email=email, stripe_customer_id=stripe_customer_id)
        db.session.add(customer)
        try:
            db.session.commit()
            return customer
        except IntegrityError:
            # Lost an insert race for the same email; fall through to update.
            db.session.rollback()
            customer = get_customer_by_email(email)

    if stripe_customer_id and customer.stripe_customer_id != stripe_customer_id:
        customer.stripe_customer_id = stripe_customer_id
        db.session.commit()
    return customer


# ──────────────────────────────────────────────
# Sites
# ──────────────────────────────────────────────

def create_site(customer_id, slug, plan=None, template_id=None,
                intake_data=None, generated_content=None,
                stripe_subscription_id=None):
    """Create an active Site for a paying customer. Returns the Site."""
    site = Site(
        customer_id=customer_id,
        slug=slug.lower(),
        plan=plan,
        template_id=template_id,
        intake_data=intake_data,
        generated_content=generated_content,
        stripe_subscription_id=stripe_subscription_id,
        status=SiteStatus.ACTIVE,
    )
    db.session.add(site)
    db.session.commit()
    logger.info(f"Created site {site.slug} for customer {customer_id}")
    return site


def get_site(site_id):
    return db.session.get(Site, site_id)


def get_site_by_slug(slug):
    return Site.query.filter_by(slug=slug.lower()).first()


def get_site_by_subscription_id(stripe_subscription_id):
    return Site.query.filter_by(
        stripe_subscription_id=stripe_subscription_id
    ).first()


def get_sites_by_customer(customer_id):
    return (
        Site.query
        .filter_by(customer_id=customer_id)
        .order_by(Site.created_at.desc())
        .all()
    )


def set_site_status(site_id, new_status):
    """Transition a site between active and suspended.

    Returns the Site (unchanged if already in new_status), or None if
    the site doesn't exist. See transition_site_status().
    """
    site, _ = transition_site_status(site_id, new_status)
    return site


def transition_site_status(site_id, new_status):
    """Transition a site and report whether this call made the change.

    The UPDATE is conditional on the current status, so two concurrent
    transitions can't both apply.
        -> suspended: stamps suspended_at
        -> active:    clears suspended_at, stamps deployed_at if unset

    Returns (site, applied). applied is False when the site was already
    in new_status or another caller moved it first; site is None if the
    site doesn't exist.

    Raises:
        ValueError: If new_status is not a SiteStatus.
    """
    if not isinstance(new_status, SiteStatus):
        try:
            new_status = SiteStatus(new_status)
        except ValueError:
            raise ValueError(
                f"Invalid status '{new_status}'. Must be one of: "
                f"{', '.join(s.value for s in SiteStatus)}"
            )

    site = get_site(site_id)
    if site is None:
        return None, False

    old_status = site.status
    if old_status == new_status:
        return site, False

    if new_status not in Site.VALID_TRANSITIONS.get(old_status, []):
        raise ValueError(
            f"Cannot transition site from '{old_status.value}' to '{new_status.value}'."
        )

    now = datetime.now(timezone.utc)
    if new_status == SiteStatus.SUSPENDED:
        values = {"status": new_status, "suspended_at": now}
    else:
        values = {
            "status": new_status,
            "suspended_at": None,
            "deployed_at": db.func.coalesce(Site.deployed_at, now),
        }

    result = db.session.execute(
        db.update(Site)
        .where(Site.id == site_id)
        .where(Site.status == old_status)
        .values(updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    applied = result.rowcount == 1
    if applied:
        logger.info(f"Site {site_id}: {old_status.value} -> {new_status.value}")
    return get_site(site_id), applied


def update_site_deployment(site_id, project_name, published_url):
    """Record a successful publish on the site."""
    site = get_site(site_id)
    if site is None:
        return None

    site.cloudflare_project_id = project_name
    site.published_url = published_url
    site.deployed_at = datetime.now(timezone.utc)
    db.session.commit()
    return site


def update_site_content(site_id, generated_content):
    site = get_site(site_id)
    if site is None:
        return None

    site.generated_content = generated_content
    db.session.commit()
    return site


# ──────────────────────────────────────────────
# Suspension
# ──────────────────────────────────────────────

def get_sites_for_suspension(grace_period_days=7):
    """Return active sites whose payment failure has outlasted the grace period.

    A site qualifies when it has an invoice.payment_failed ledger entry
    older than the grace period, with no invoice.payment_succeeded entry
    for the same site after it.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(days=grace_period_days)
    failed = aliased(PaymentEvent)
    succeeded = aliased(PaymentEvent)

    later_success = (
        db.select(succeeded.id)
        .where(succeeded.site_id == Site.id)
        .where(succeeded.event_type == PAYMENT_SUCCEEDED)
        .where(succeeded.created_at > failed.created_at)
        .correlate(Site, failed)
        .exists()
    )
    overdue_failure = (
        db.select(failed.id)
        .where(failed.site_id == Site.id)
        .where(failed.event_type == PAYMENT_FAILED)
        .where(failed.created_at < cutoff)
        .where(~later_success)
        .correlate(Site)
        .exists()
    )

    return (
        Site.query
        .filter(Site.status == SiteStatus.ACTIVE)
        .filter(overdue_failure)
        .order_by(Site.created_at)
        .all()
    )


def suspend_site(site_id, reason):
    """Suspend a site and take its hosting project down (best effort).

    Returns the Site after the transition.
    """
    from app.services.publish_service import delete_project

    site = set_site_status(site_id, SiteStatus.SUSPENDED)
    if site is None:
        return None

    if site.cloudflare_project_id:
        if not delete_project(site.cloudflare_project_id):
            logger.warning(
                f"Suspended {site.slug} but could not delete project "
                f"{site.cloudflare_project_id}"
            )

    logger.info(f"Suspended site {site.slug}: {reason}")
    return site


def suspend_overdue_sites(grace_period_days=7, dry_run=False):
    """Suspend every site returned by get_sites_for_suspension().

    Returns the list of affected (or, with dry_run, would-be affected) sites.
    """
    sites = get_sites_for_suspension(grace_period_days)
    if dry_run:
        return sites

    suspended = []
    for site in sites:
        result = suspend_site(
            site.id, f"payment failing for more than {grace_period_days} days"
        )
        if result is not None:
            suspended.append(result)
    return suspended
