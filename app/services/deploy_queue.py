"""Deploy queue — durable, lock-based work queue for publishing sites.

Responsible for:
- Enqueuing a deploy job per site
- Claiming the oldest pending job (FOR UPDATE SKIP LOCKED + CAS update)
- Completing jobs (idempotent: only a processing job can finish)
- Retrying failed jobs below the attempt limit (the rest are dead-letter)
- Reaping jobs stuck in processing after a worker crash
- Running a job: compile the site, publish it, record the outcome
- The poller loop behind `flask deploy-worker`

No in-process locks: every transition is one conditional UPDATE and
the database decides who wins.
"""

import logging
import time
from datetime import datetime, timedelta, timezone

from flask import current_app

from app.extensions import db
from app.models.deploy_job import DeployJob, DeployStatus
from app.models.site import Site, SiteStatus

logger = logging.getLogger(__name__)

# A CAS loss means another worker took the row between our SELECT and
# UPDATE; try the next candidate a few times before giving up this poll.
CLAIM_RETRIES = 5


def _transition(job_id, old, new, **values):
    """Move a job from `old` to `new` iff it is still in `old`.

    Returns True if this call performed the transition.
    """
    if not DeployJob.can_transition(old, new):
        raise ValueError(
            f"Cannot transition deploy job from '{old.value}' to '{new.value}'."
        )

    result = db.session.execute(
        db.update(DeployJob)
        .where(DeployJob.id == job_id)
        .where(DeployJob.status == old)
        .values(status=new, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def get_job(job_id):
    """Return a DeployJob by id, or None."""
    return db.session.get(DeployJob, job_id)


def enqueue(site_id):
    """Insert one pending deploy job for a site and return it.

    Does not deduplicate; callers should avoid queuing twice.
    """
    job = DeployJob(site_id=site_id, status=DeployStatus.PENDING, attempts=0)
    db.session.add(job)
    db.session.commit()
    logger.info(f"Queued deploy job {job.id} for site {site_id}")
    return job


def claim_next():
    """Atomically claim the oldest pending job.

    The candidate row is selected with FOR UPDATE SKIP LOCKED, so
    concurrent pollers skip rows another worker is claiming instead of
    waiting on them. The claim itself is a compare-and-swap on status,
    which keeps it correct on stores without row locks (SQLite).

    Returns the claimed DeployJob (status=processing), or None.
    """
    for _ in range(CLAIM_RETRIES):
        job_id = db.session.execute(
            db.select(DeployJob.id)
            .where(DeployJob.status == DeployStatus.PENDING)
            .order_by(DeployJob.created_at, DeployJob.id)
            .limit(1)
            .with_for_update(skip_locked=True)
        ).scalar()

        if job_id is None:
            db.session.commit()
            return None

        claimed = _transition(
            job_id,
            DeployStatus.PENDING,
            DeployStatus.PROCESSING,
            started_at=datetime.now(timezone.utc),
            completed_at=None,
            attempts=DeployJob.attempts + 1,
        )
        db.session.commit()

        if claimed:
            job = get_job(job_id)
            logger.info(f"Claimed deploy job {job_id} (attempt {job.attempts})")
            return job

    return None


def complete(job_id, success, error_message=None):
    """Finish a processing job as completed or failed.

    A job that is not processing (already completed/failed, or reset by
    the reaper) is left untouched. Returns the job row, or None if the
    id is unknown.
    """
    new_status = DeployStatus.COMPLETED if success else DeployStatus.FAILED
    applied = _transition(
        job_id,
        DeployStatus.PROCESSING,
        new_status,
        completed_at=datetime.now(timezone.utc),
        error_message=None if success else error_message,
    )
    db.session.commit()

    if not applied:
        logger.warning(
            f"complete({job_id}) ignored: job is not processing"
        )
    return get_job(job_id)


def retry_eligible(max_attempts=3):
    """Reset failed jobs with attempts < max_attempts back to pending.

    Jobs at or above the limit stay failed (dead-letter).
    Returns the list of jobs that were reset.
    """
    candidate_ids = db.session.execute(
        db.select(DeployJob.id)
        .where(DeployJob.status == DeployStatus.FAILED)
        .where(DeployJob.attempts < max_attempts)
        .with_for_update(skip_locked=True)
    ).scalars().all()

    reset_ids = [
        job_id for job_id in candidate_ids
        if _transition(
            job_id,
            DeployStatus.FAILED,
            DeployStatus.PENDING,
            started_at=None,
            completed_at=None,
        )
    ]
    db.session.commit()

    if reset_ids:
        logger.info(f"Re-queued {len(reset_ids)} failed deploy jobs")
    return [get_job(job_id) for job_id in reset_ids]


def reap_stale(stale_after_minutes=15, max_attempts=3):
    """Recover jobs stuck in processing after a worker died mid-job.

    A processing job whose started_at is older than the threshold goes
    back to pending, or to failed once it has used up its attempts.
    Returns the list of jobs that were touched.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=stale_after_minutes)

    stale = db.session.execute(
        db.select(DeployJob.id, DeployJob.attempts)
        .where(DeployJob.status == DeployStatus.PROCESSING)
        .where(DeployJob.started_at < cutoff)
        .with_for_update(skip_locked=True)
    ).all()

    touched = []
    for job_id, attempts in stale:
        message = f"Worker claim expired after {stale_after_minutes} minutes"
        if attempts >= max_attempts:
            ok = _transition(
                job_id,
                DeployStatus.PROCESSING,
                DeployStatus.FAILED,
                completed_at=datetime.now(timezone.utc),
                error_message=message,
            )
        else:
            ok = _transition(
                job_id,
                DeployStatus.PROCESSING,
                DeployStatus.PENDING,
                started_at=None,
                error_message=message,
            )
        if ok:
            touched.append(job_id)
    db.session.commit()

    if touched:
        logger.warning(f"Reaped {len(touched)} stale deploy jobs")
    return [get_job(job_id) for job_id in touched]


# ──────────────────────────────────────────────
# Job execution
# ──────────────────────────────────────────────

def process_job(job):
    """Compile and publish the site behind a claimed job.

    Every failure mode (missing site, template error, CLI failure or
    timeout) ends in complete(job, False, message); a job is never left
    in processing by this function.

    Returns the finished DeployJob.
    """
    from app.services.compile_service import compile_website
    from app.services.publish_service import deploy_site
    from app.services.site_service import update_site_deployment

    job_id = job.id
    site_id = job.site_id

    try:
        site = db.session.get(Site, site_id)
        if site is None:
            return complete(job_id, False, f"Site {site_id} not found")

        if site.status == SiteStatus.SUSPENDED:
            return complete(job_id, False, f"Site {site.slug} is suspended")

        if not site.generated_content:
            return complete(job_id, False, f"Site {site.slug} has no generated content")

        template_id = site.template_id or "electrician"
        html = compile_website(site.generated_content, template_id, template_id)

        result = deploy_site(site.slug, html)
        if not result["success"]:
            logger.error(f"Deploy job {job_id} failed for {site.slug}: {result['error']}")
            return complete(job_id, False, result["error"])

        update_site_deployment(site_id, result["project_name"], result["url"])

        logger.info(f"Deploy job {job_id} published {site.slug} -> {result['url']}")
        return complete(job_id, True)

    except Exception as e:
        logger.error(f"Deploy job {job_id} crashed: {e}", exc_info=True)
        db.session.rollback()
        return complete(job_id, False, str(e))


def run_worker(poll_interval=None, once=False, max_jobs=None):
    """Drain the deploy queue.

    Claims and processes jobs until the queue is empty (once=True) or
    forever, sleeping poll_interval seconds between empty polls.
    Returns the number of jobs processed.
    """
    if poll_interval is None:
        poll_interval = current_app.config.get("DEPLOY_POLL_INTERVAL", 5)

    processed = 0
    while max_jobs is None or processed < max_jobs:
        job = claim_next()
        if job is None:
            if once:
                break
            time.sleep(poll_interval)
            continue

        process_job(job)
        processed += 1

    return processed
