"""
Scheduler for zone refresh and the nightly compliance scan.

Both jobs share one ZoneIndexHolder: the refresh publishes a new index at the
configured interval and the scan re-verifies every known business against
whatever index is current when it starts. Scan results land in the
verification history like any other bulk run.
"""

import logging
import signal
import sys
from datetime import date
from typing import Optional, Union

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from hubzone.bulk import BulkVerificationOrchestrator, BulkVerificationResult, JobStatus
from hubzone.business import is_valid_uei
from hubzone.config import config
from hubzone.errors import DependencyUnavailable, ValidationError
from hubzone.geo import ZoneRefresher

logger = logging.getLogger(__name__)

SCAN_REQUESTER = "compliance-scan"


def refresh_job(refresher: ZoneRefresher) -> None:
    """Reload zone data, keeping the current index on failure."""
    logger.info("Starting scheduled zone refresh from %s", refresher.path)
    try:
        count = refresher.refresh()
        logger.info("Zone refresh complete: %d zones", count)
    except (DependencyUnavailable, ValidationError) as e:
        logger.error("Zone refresh failed, keeping previous index: %s", e)


def compliance_scan_job(
    orchestrator: BulkVerificationOrchestrator,
    as_of: Optional[date] = None,
) -> list[BulkVerificationResult]:
    """
    Re-verify every business the source knows about.

    Identifiers are split into batches of the orchestrator's batch limit and
    each batch runs as its own bulk job. Malformed identifiers in the source
    are logged and skipped.

    Returns:
        One result per batch, in order.
    """
    try:
        identifiers = orchestrator.service.source.identifiers()
    except DependencyUnavailable as e:
        logger.error("Compliance scan skipped: %s", e)
        return []

    valid = [i for i in identifiers if is_valid_uei(i)]
    if len(valid) < len(identifiers):
        logger.warning("Compliance scan skipping %d malformed identifiers", len(identifiers) - len(valid))
    if not valid:
        logger.info("Compliance scan: no businesses to verify")
        return []

    size = orchestrator.max_batch_size
    batches = [valid[i:i + size] for i in range(0, len(valid), size)]
    logger.info("Compliance scan: %d businesses in %d batches", len(valid), len(batches))

    results = []
    for batch in batches:
        job = orchestrator.submit(batch, requested_by=SCAN_REQUESTER)
        results.append(orchestrator.run(job, as_of=as_of))

    compliant = sum(r.summary.compliant for r in results)
    failed = sum(1 for r in results if r.status != JobStatus.COMPLETED)
    logger.info(
        "Compliance scan complete: %d/%d compliant, %d batches not completed",
        compliant, len(valid), failed,
    )
    return results


def create_scheduler(
    refresher: ZoneRefresher,
    orchestrator: Optional[BulkVerificationOrchestrator] = None,
    blocking: bool = True,
) -> Union[BlockingScheduler, BackgroundScheduler]:
    """
    Build a scheduler with the zone refresh job and, given an orchestrator
    sharing the refresher's holder, the nightly compliance scan.

    The scheduler is returned unstarted.
    """
    scheduler = BlockingScheduler() if blocking else BackgroundScheduler()

    scheduler.add_job(
        refresh_job,
        trigger=IntervalTrigger(hours=config.zone_refresh_hours),
        args=[refresher],
        id="zone_refresh",
        name="Zone index refresh",
        max_instances=1,
        coalesce=True,
    )

    if orchestrator is not None:
        if orchestrator.service.holder is not refresher.holder:
            raise ValueError("Compliance scan must read the index the refresher publishes")
        scheduler.add_job(
            compliance_scan_job,
            trigger=CronTrigger(hour=config.compliance_scan_hour, minute=0),
            args=[orchestrator],
            id="compliance_scan",
            name="Nightly compliance scan",
            max_instances=1,
            coalesce=True,
        )

    return scheduler


def run_scheduler(
    refresher: ZoneRefresher,
    orchestrator: Optional[BulkVerificationOrchestrator] = None,
) -> None:
    """Load zones once, then run the scheduled jobs until interrupted."""
    scheduler = create_scheduler(refresher, orchestrator, blocking=True)

    # Initial load so the index is populated before the first interval
    refresh_job(refresher)

    def shutdown(signum, frame):
        logger.info("Shutting down scheduler...")
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    logger.info(
        "Scheduler running: zone refresh every %s hours%s. Press Ctrl+C to stop.",
        config.zone_refresh_hours,
        f", compliance scan daily at {config.compliance_scan_hour:02d}:00" if orchestrator else "",
    )
    scheduler.start()
