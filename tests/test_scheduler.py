"""Tests for the zone refresh and nightly compliance scan jobs."""

import pytest

from conftest import AS_OF, make_business, numbered_uei, square_zone
from hubzone.bulk import BulkVerificationOrchestrator, JobStatus
from hubzone.config import config
from hubzone.errors import DependencyUnavailable
from hubzone.geo import ZoneIndex, ZoneIndexHolder, ZoneRefresher
from hubzone.scheduler import SCAN_REQUESTER, compliance_scan_job, create_scheduler, refresh_job
from hubzone.verification import InMemoryBusinessSource, InMemoryVerificationStore, VerificationService


class UnavailableSource(InMemoryBusinessSource):
    def identifiers(self):
        raise DependencyUnavailable("business source", "connection refused")


def build_orchestrator(source, holder, store, **kwargs):
    service = VerificationService(source, holder, store=store)
    return BulkVerificationOrchestrator(service, max_workers=2, **kwargs)


def test_compliance_scan_verifies_every_business(zone_holder):
    """Test that the scan splits the source into batches and verifies each business once."""
    store = InMemoryVerificationStore()
    source = InMemoryBusinessSource(
        [make_business(uei=numbered_uei(i), name=f"Business {i}") for i in range(5)]
    )
    orchestrator = build_orchestrator(source, zone_holder, store, max_batch_size=2)

    results = compliance_scan_job(orchestrator, as_of=AS_OF)

    assert [r.total_requested for r in results] == [2, 2, 1]
    assert all(r.status == JobStatus.COMPLETED for r in results)
    assert sum(r.summary.compliant for r in results) == 5
    assert len(store) == 5
    assert {job.requested_by for job in store.jobs.values()} == {SCAN_REQUESTER}


def test_compliance_scan_with_no_businesses(zone_holder):
    orchestrator = build_orchestrator(InMemoryBusinessSource(), zone_holder, InMemoryVerificationStore())
    assert compliance_scan_job(orchestrator, as_of=AS_OF) == []


def test_compliance_scan_skipped_when_source_down(zone_holder):
    """Test that an unreachable business source skips the scan instead of raising."""
    store = InMemoryVerificationStore()
    orchestrator = build_orchestrator(UnavailableSource(), zone_holder, store)
    assert compliance_scan_job(orchestrator, as_of=AS_OF) == []
    assert store.jobs == {}


def test_refresh_job_keeps_index_on_failure(tmp_path):
    """Test that a failed scheduled refresh leaves the published index in place."""
    holder = ZoneIndexHolder(ZoneIndex([square_zone("KEEP", 0.0, 0.0)]))
    refresh_job(ZoneRefresher(holder, tmp_path / "missing.geojson"))
    assert holder.current().get("KEEP") is not None
    assert holder.version == 1


def test_scheduler_registers_both_jobs(tmp_path, zone_holder):
    """Test the refresh interval job and the nightly scan job."""
    refresher = ZoneRefresher(zone_holder, tmp_path / "zones.geojson")
    orchestrator = build_orchestrator(InMemoryBusinessSource(), zone_holder, InMemoryVerificationStore())

    scheduler = create_scheduler(refresher, orchestrator, blocking=False)
    jobs = {job.id: job for job in scheduler.get_jobs()}

    assert set(jobs) == {"zone_refresh", "compliance_scan"}
    assert f"hour='{config.compliance_scan_hour}'" in str(jobs["compliance_scan"].trigger)


def test_scheduler_without_orchestrator_only_refreshes(tmp_path):
    refresher = ZoneRefresher(ZoneIndexHolder(), tmp_path / "zones.geojson")
    scheduler = create_scheduler(refresher, blocking=False)
    assert [job.id for job in scheduler.get_jobs()] == ["zone_refresh"]


def test_scheduler_rejects_scan_on_another_index(tmp_path, zone_holder):
    """Test that the scan must read the holder the refresher publishes into."""
    refresher = ZoneRefresher(ZoneIndexHolder(), tmp_path / "zones.geojson")
    orchestrator = build_orchestrator(InMemoryBusinessSource(), zone_holder, InMemoryVerificationStore())
    with pytest.raises(ValueError):
        create_scheduler(refresher, orchestrator, blocking=False)
