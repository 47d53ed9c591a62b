"""Slug service — sanitization, availability, and the reservation hold.

Responsible for:
- Normalizing user input into a subdomain slug
- Checking availability against live reservations and paid sites
- Reserving a slug (atomic: primary-key constraint, not read-then-write)
- Extending, updating, converting, and sweeping reservations
- Binding a hold to its payer for the length of a checkout

Every mutation here is a single conditional statement, so concurrent
requests for the same slug are arbitrated by the database.
"""

import logging
import re
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models.reservation import SlugReservation
from app.models.site import Site

logger = logging.getLogger(__name__)

SLUG_MIN_LENGTH = 3
SLUG_MAX_LENGTH = 50

SUGGESTION_PATTERNS = [
    "{base}",
    "{base}-co",
    "{base}-llc",
    "the-{base}",
    "{base}-services",
    "{base}-pro",
]


def _hold_window():
    minutes = current_app.config.get("RESERVATION_HOLD_MINUTES", 30)
    return timedelta(minutes=minutes)


def sanitize_slug(raw):
    """Normalize raw input into a slug, or None if it can't be one.

    Lowercase, only a-z 0-9 and hyphens, no leading/trailing hyphens,
    3-50 characters.
    """
    if not raw or not isinstance(raw, str):
        return None

    slug = raw.lower().strip()
    slug = re.sub(r"[^a-z0-9-]", "-", slug)  # invalid chars -> hyphen
    slug = re.sub(r"-+", "-", slug)          # collapse runs
    slug = slug.strip("-")

    if len(slug) < SLUG_MIN_LENGTH or len(slug) > SLUG_MAX_LENGTH:
        return None
    return slug


def public_url(slug):
    """Return the customer-facing hostname for a slug."""
    return f"{slug}.{current_app.config['SITE_DOMAIN']}"


def is_slug_available(slug):
    """True if no paid site uses the slug and no live hold exists.

    A hold is live while it is unexpired, or forever once converted.
    """
    slug = slug.lower()
    now = datetime.now(timezone.utc)

    if db.session.query(Site.id).filter_by(slug=slug).first() is not None:
        return False

    live_hold = (
        db.session.query(SlugReservation.slug)
        .filter(SlugReservation.slug == slug)
        .filter(
            db.or_(
                SlugReservation.converted.is_(True),
                SlugReservation.expires_at > now,
            )
        )
        .first()
    )
    return live_hold is None


def reserve_slug(slug, email=None, session_id=None):
    """Place a hold on a free slug.

    Returns True if this call created the hold, False if the slug is
    taken. Two concurrent callers can't both win: the INSERT is guarded
    by the primary key, and the loser gets an IntegrityError which is
    reported as "unavailable".
    """
    slug = slug.lower()
    now = datetime.now(timezone.utc)

    if db.session.query(Site.id).filter_by(slug=slug).first() is not None:
        return False

    # Clear a lapsed hold so the slug's primary key is free again.
    db.session.execute(
        db.delete(SlugReservation)
        .where(SlugReservation.slug == slug)
        .where(SlugReservation.expires_at < now)
        .where(SlugReservation.converted.is_(False))
        .execution_options(synchronize_session=False)
    )

    try:
        db.session.execute(
            db.insert(SlugReservation).values(
                slug=slug,
                email=email.lower().strip() if email else None,
                session_id=session_id,
                expires_at=now + _hold_window(),
                converted=False,
            )
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(f"Slug {slug} already held, reservation refused")
        return False

    logger.info(f"Reserved slug {slug} for session {session_id}")
    return True


def extend_reservation(slug, session_id):
    """Push an active hold's expiry forward by the hold window.

    Only the session that owns the hold can extend it, and only while
    the hold is still live. An expiry already further out (a hold kept
    for an open checkout) is never pulled in. Returns True if the
    extension applied.
    """
    if not session_id:
        return False

    now = datetime.now(timezone.utc)
    new_expiry = now + _hold_window()
    result = db.session.execute(
        db.update(SlugReservation)
        .where(SlugReservation.slug == slug.lower())
        .where(SlugReservation.session_id == session_id)
        .where(SlugReservation.expires_at > now)
        .where(SlugReservation.converted.is_(False))
        .values(
            expires_at=db.case(
                (SlugReservation.expires_at > new_expiry, SlugReservation.expires_at),
                else_=new_expiry,
            )
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def get_reservation(slug):
    """Return the SlugReservation for a slug, or None."""
    return db.session.get(SlugReservation, slug.lower())


def _held_by(session_id):
    """WHERE clause: the hold is open to session_id.

    A hold placed without a session id is open to anyone; otherwise the
    caller must present the same session id.
    """
    if not session_id:
        return SlugReservation.session_id.is_(None)
    return db.or_(
        SlugReservation.session_id.is_(None),
        SlugReservation.session_id == session_id,
    )


def _is_live(now):
    return db.or_(
        SlugReservation.converted.is_(True),
        SlugReservation.expires_at > now,
    )


def get_owned_reservation(slug, session_id=None):
    """Return the live reservation for a slug if session_id may use it.

    None if the slug has no live hold or the hold belongs to another
    session.
    """
    now = datetime.now(timezone.utc)
    return (
        SlugReservation.query
        .filter(SlugReservation.slug == slug.lower())
        .filter(_held_by(session_id))
        .filter(_is_live(now))
        .first()
    )


def update_reservation(slug, session_id=None, template_id=None,
                       intake_data=None, generated_content=None):
    """Attach form/generation payload to a reservation.

    Only the fields passed (not None) are changed, and only on a live
    hold that session_id may use. Returns the updated reservation, or
    None if there is no such hold.
    """
    values = {}
    if template_id is not None:
        values["template_id"] = template_id
    if intake_data is not None:
        values["intake_data"] = intake_data
    if generated_content is not None:
        values["generated_content"] = generated_content

    if not values:
        return get_owned_reservation(slug, session_id)

    now = datetime.now(timezone.utc)
    result = db.session.execute(
        db.update(SlugReservation)
        .where(SlugReservation.slug == slug.lower())
        .where(_held_by(session_id))
        .where(_is_live(now))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    if result.rowcount != 1:
        logger.info(f"update_reservation: no hold on {slug} for session {session_id}")
        return None
    return get_reservation(slug)


def hold_for_checkout(slug, email, session_id=None, template_id=None,
                      intake_data=None, generated_content=None):
    """Bind an unconverted hold to the payer and keep it for checkout.

    One conditional UPDATE: the hold must be live, unconverted, open to
    session_id, and either have no email yet or already carry this one.
    It stamps the email, saves the payload fields passed, and pushes the
    expiry out to CHECKOUT_HOLD_MINUTES so the hold outlasts the Stripe
    session.

    Returns the reservation, or None if the hold can't be used.
    """
    email = email.lower().strip()
    now = datetime.now(timezone.utc)
    minutes = current_app.config.get("CHECKOUT_HOLD_MINUTES", 60)

    values = {"email": email, "expires_at": now + timedelta(minutes=minutes)}
    if template_id is not None:
        values["template_id"] = template_id
    if intake_data is not None:
        values["intake_data"] = intake_data
    if generated_content is not None:
        values["generated_content"] = generated_content

    result = db.session.execute(
        db.update(SlugReservation)
        .where(SlugReservation.slug == slug.lower())
        .where(SlugReservation.converted.is_(False))
        .where(SlugReservation.expires_at > now)
        .where(_held_by(session_id))
        .where(
            db.or_(
                SlugReservation.email.is_(None),
                SlugReservation.email == email,
            )
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    if result.rowcount != 1:
        logger.warning(f"Checkout refused for {slug}: no live hold for {email}")
        return None
    return get_reservation(slug)


def convert_reservation(slug, email=None):
    """Mark a reservation as converted into a paid site (terminal).

    When email is given, only a hold bound to that email converts; a
    slug that lapsed and was re-reserved by someone else is left alone.
    Converting an already converted hold again is a no-op.

    Converted reservations are never removed by the expiry sweep.
    Returns the reservation, or None if nothing matched.
    """
    stmt = db.update(SlugReservation).where(SlugReservation.slug == slug.lower())
    if email is not None:
        stmt = stmt.where(SlugReservation.email == email.lower().strip())

    result = db.session.execute(
        stmt.values(converted=True).execution_options(synchronize_session=False)
    )
    db.session.commit()

    if result.rowcount == 0:
        logger.warning(f"convert_reservation: no matching reservation for {slug}")
        return None

    return get_reservation(slug)


def cleanup_expired_reservations():
    """Delete every lapsed, unconverted hold. Returns the number removed.

    One DELETE with the converted check in its WHERE clause, so a row
    converted concurrently is never swept.
    """
    now = datetime.now(timezone.utc)
    result = db.session.execute(
        db.delete(SlugReservation)
        .where(SlugReservation.expires_at < now)
        .where(SlugReservation.converted.is_(False))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    count = result.rowcount or 0
    if count:
        logger.info(f"Cleaned up {count} expired slug reservations")
    return count


def suggest_slugs(name, limit=3):
    """Suggest available variations of a business name.

    Returns (base_slug, suggestions) where suggestions is a list of
    available slugs, or (None, []) if the name can't be slugified.
    """
    base = sanitize_slug(name)
    if base is None:
        return None, []

    suggestions = []
    for pattern in SUGGESTION_PATTERNS:
        candidate = sanitize_slug(pattern.format(base=base))
        if candidate is None or candidate in suggestions:
            continue
        if is_slug_available(candidate):
            suggestions.append(candidate)
        if len(suggestions) >= limit:
            break

    return base, suggestions
