"""Tests for bulk parsing, the job state machine, orchestration and export."""

import csv
import io
import threading
from datetime import datetime

import pytest

from conftest import AS_OF, make_business, numbered_uei
from hubzone.bulk import (
    CSV_HEADERS,
    BulkItemResult,
    BulkJob,
    BulkSummary,
    BulkVerificationOrchestrator,
    ItemStatus,
    JobStatus,
    parse_identifier_file,
    parse_identifiers,
    resolve_identifier_column,
    to_csv_string,
)
from hubzone.business import CertificationStatus
from hubzone.compliance import RiskLevel
from hubzone.errors import DependencyUnavailable, InvalidTransition, JobFault, ValidationError
from hubzone.verification import InMemoryBusinessSource, InMemoryVerificationStore, VerificationService


# Parsing

def test_header_with_case_variants():
    """Test that a header row is skipped and case variants collapse."""
    text = "UEI_Number\nabc123456789\nABC123456789\n"
    assert parse_identifiers(text) == ["ABC123456789"]


def test_headerless_single_column():
    """Test a single column with no header."""
    assert parse_identifiers("abc123456789\nXYZ987654321\n") == ["ABC123456789", "XYZ987654321"]


def test_tab_delimited_with_id_header():
    """Test tab-delimited input with the identifier under an ID header."""
    text = "Company\tEntity ID\tCity\nAcme\tabc123456789\tDallas\nBeta\txyz987654321\tAustin\n"
    assert parse_identifiers(text) == ["ABC123456789", "XYZ987654321"]


def test_semicolon_headerless_picks_identifier_column():
    """Test that headerless input uses the one identifier-shaped column."""
    text = "Acme;abc123456789;Dallas\nBeta;xyz987654321;Austin\n"
    assert parse_identifiers(text) == ["ABC123456789", "XYZ987654321"]


def test_uei_header_preferred_over_id():
    """Test that a UEI header wins over an ID header."""
    assert resolve_identifier_column(["Record ID", "UEI", "Name"]).index == 1


def test_header_cell_shaped_like_identifier():
    """Test that a twelve-character header name does not turn the header into data."""
    assert parse_identifiers("UEI,BusinessName\nabc123456789,Acme\n") == ["ABC123456789"]
    assert resolve_identifier_column(["UEI", "BusinessName"]) == (0, True)


def test_id_header_next_to_identifier_shaped_name():
    """Test that an ID header is confirmed by the row below it."""
    resolution = resolve_identifier_column(["Vendor ID", "BusinessName"], ["abc123456789", "Acme"])
    assert resolution.index == 0
    assert resolution.has_header


def test_data_row_with_id_like_word_stays_data():
    """Test that a name containing 'id' does not make a data row a header."""
    text = "Idaho Widgets,ABC123456789\nBeta Co,XYZ987654321\n"
    assert parse_identifiers(text) == ["ABC123456789", "XYZ987654321"]


def test_ambiguous_headers():
    """Test that two ID-like headers are rejected."""
    with pytest.raises(ValidationError):
        resolve_identifier_column(["Vendor ID", "Contract Number", "Name"])


def test_ambiguous_data_row():
    """Test that a data row with two identifiers is rejected."""
    with pytest.raises(ValidationError):
        resolve_identifier_column(["ABC123456789", "XYZ987654321"])


def test_no_identifier_column():
    """Test headers with nothing identifier-like."""
    with pytest.raises(ValidationError):
        resolve_identifier_column(["Name", "City"])


def test_malformed_identifiers_are_reported_by_line():
    """Test that every malformed identifier is listed with its line."""
    with pytest.raises(ValidationError) as exc:
        parse_identifiers("UEI\nABC123456789\nshort\n\nABC-23456789\n")
    assert exc.value.details == [
        "line 3: 'short' is not a valid UEI",
        "line 5: 'ABC-23456789' is not a valid UEI",
    ]


def test_empty_input():
    """Test empty text and a header with no rows."""
    assert parse_identifiers("") == []
    assert parse_identifiers("UEI\n") == []


def test_parse_file_with_bom(tmp_path):
    """Test a file saved with a byte order mark."""
    path = tmp_path / "batch.csv"
    path.write_text("UEI Number,Name\nabc123456789,Acme\n", encoding="utf-8-sig")
    assert parse_identifier_file(path) == ["ABC123456789"]


# Job state machine

def verified_item(identifier, compliant=True, status=ItemStatus.VALID):
    return BulkItemResult(
        identifier=identifier,
        status=status,
        business_name="Acme",
        is_compliant=compliant,
        risk_score=100 if compliant else 50,
        risk_level=RiskLevel.LOW if compliant else RiskLevel.HIGH,
    )


def test_job_lifecycle():
    """Test pending to processing to completed."""
    job = BulkJob(["ABC123456789"])
    assert job.status == JobStatus.PENDING

    job.transition(JobStatus.PROCESSING)
    assert job.started_at is not None
    assert job.record_result(verified_item("ABC123456789"))
    job.transition(JobStatus.COMPLETED)

    assert job.completed_at is not None
    assert job.processed == 1
    assert job.is_terminal


@pytest.mark.parametrize("start,target", [
    (JobStatus.PENDING, JobStatus.COMPLETED),
    (JobStatus.PENDING, JobStatus.FAILED),
    (JobStatus.COMPLETED, JobStatus.PROCESSING),
    (JobStatus.CANCELLED, JobStatus.PROCESSING),
    (JobStatus.FAILED, JobStatus.COMPLETED),
])
def test_illegal_transitions(start, target):
    """Test that transitions outside the state machine raise."""
    job = BulkJob(["ABC123456789"])
    if start != JobStatus.PENDING:
        if start != JobStatus.CANCELLED:
            job.transition(JobStatus.PROCESSING)
        job.transition(start)
    with pytest.raises(InvalidTransition):
        job.transition(target)


def test_duplicate_result_is_ignored():
    """Test that the first result for an identifier wins."""
    job = BulkJob(["ABC123456789"])
    job.transition(JobStatus.PROCESSING)
    assert job.record_result(verified_item("ABC123456789"))
    assert not job.record_result(verified_item("ABC123456789", compliant=False))
    assert job.processed == 1
    assert job.result_for("ABC123456789").is_compliant


def test_terminal_job_rejects_results():
    job = BulkJob(["ABC123456789", "XYZ987654321"])
    job.transition(JobStatus.PROCESSING)
    job.transition(JobStatus.CANCELLED)
    with pytest.raises(JobFault):
        job.record_result(verified_item("ABC123456789"))


def test_unrequested_identifier_rejected():
    job = BulkJob(["ABC123456789"])
    job.transition(JobStatus.PROCESSING)
    with pytest.raises(JobFault):
        job.record_result(verified_item("XYZ987654321"))


def test_cancel_pending_is_immediate():
    job = BulkJob(["ABC123456789"])
    assert job.request_cancel() == JobStatus.CANCELLED


def test_cancel_processing_sets_flag():
    """Test that cancelling a running job only flags it."""
    job = BulkJob(["ABC123456789"])
    job.transition(JobStatus.PROCESSING)
    assert job.request_cancel() == JobStatus.PROCESSING
    assert job.cancel_requested


def test_cancel_finished_job():
    job = BulkJob(["ABC123456789"])
    job.transition(JobStatus.PROCESSING)
    job.transition(JobStatus.COMPLETED)
    with pytest.raises(InvalidTransition):
        job.request_cancel()


def test_concurrent_results_count_once_each():
    """Test that racing writers never double count."""
    identifiers = [numbered_uei(i) for i in range(200)]
    job = BulkJob(identifiers)
    job.transition(JobStatus.PROCESSING)

    def worker():
        for identifier in identifiers:
            job.record_result(verified_item(identifier))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert job.processed == 200


def test_summary_fold():
    """Test folding item results into summary counters."""
    summary = BulkSummary.fold([
        verified_item("A"),
        verified_item("B", compliant=False, status=ItemStatus.NON_COMPLIANT),
        verified_item("C", compliant=False, status=ItemStatus.PENDING),
        verified_item("D", compliant=False, status=ItemStatus.EXPIRED),
        BulkItemResult.not_found("E"),
        BulkItemResult.error("F", "boom"),
    ])
    assert summary.to_dict() == {
        "compliant": 1,
        "non_compliant": 2,
        "expired": 1,
        "not_found": 1,
        "errors": 1,
    }
    assert summary.total == 6


# Orchestration

class FlakySource(InMemoryBusinessSource):
    """Raises DependencyUnavailable for selected identifiers."""

    def __init__(self, businesses, failing=(), error=None):
        super().__init__(businesses)
        self.failing = set(failing)
        self.error = error

    def get(self, uei):
        if uei in self.failing:
            raise self.error or DependencyUnavailable("business source", "connection reset")
        return super().get(uei)


class GatedSource(InMemoryBusinessSource):
    """Blocks every lookup until released."""

    def __init__(self, businesses):
        super().__init__(businesses)
        self.started = threading.Event()
        self.release = threading.Event()

    def get(self, uei):
        self.started.set()
        self.release.wait(timeout=5)
        return super().get(uei)


def build_orchestrator(source, zone_holder, store=None, **kwargs):
    # An empty store is falsy, so test for None explicitly
    if store is None:
        store = InMemoryVerificationStore()
    service = VerificationService(source, zone_holder, store=store)
    kwargs.setdefault("max_workers", 4)
    return BulkVerificationOrchestrator(service, **kwargs)


def businesses(count):
    return [make_business(uei=numbered_uei(i), name=f"Business {i}") for i in range(count)]


def job_item(result, identifier):
    return next(r for r in result.results if r.identifier == identifier)


def test_rejects_empty_batch(zone_holder):
    orchestrator = build_orchestrator(InMemoryBusinessSource(), zone_holder)
    with pytest.raises(ValidationError):
        orchestrator.submit([])


def test_rejects_oversized_batch(zone_holder):
    """Test the 500 identifier limit."""
    orchestrator = build_orchestrator(InMemoryBusinessSource(), zone_holder)
    with pytest.raises(ValidationError):
        orchestrator.submit([numbered_uei(i) for i in range(501)])


def test_rejects_malformed_identifier(zone_holder):
    orchestrator = build_orchestrator(InMemoryBusinessSource(), zone_holder)
    with pytest.raises(ValidationError):
        orchestrator.submit(["ABC123456789", "bad"])


def test_duplicates_collapse_before_size_check(zone_holder):
    """Test that 600 copies of one identifier are a batch of one."""
    orchestrator = build_orchestrator(InMemoryBusinessSource(), zone_holder)
    job = orchestrator.submit(["abc123456789", "ABC123456789"] * 300)
    assert job.identifiers == ("ABC123456789",)


@pytest.mark.parametrize("count", [1, 500])
def test_every_identifier_gets_a_result(zone_holder, count):
    """Test that every submitted identifier gets exactly one result."""
    orchestrator = build_orchestrator(InMemoryBusinessSource(businesses(count)), zone_holder)
    job = orchestrator.submit([numbered_uei(i) for i in range(count)])
    result = orchestrator.run(job, as_of=AS_OF)

    assert result.status == JobStatus.COMPLETED
    assert result.processed == count
    assert len(result.results) == count
    assert result.summary.compliant == count
    assert all(item.is_compliant for item in result.results)


def test_not_found_item_still_completes(zone_holder):
    """Test that an unknown identifier is an item result, not a job failure."""
    orchestrator = build_orchestrator(InMemoryBusinessSource(businesses(2)), zone_holder)
    job = orchestrator.submit([numbered_uei(0), "ZZZ999999999", numbered_uei(1)])
    result = orchestrator.run(job, as_of=AS_OF)

    assert result.status == JobStatus.COMPLETED
    assert job.result_for("ZZZ999999999").status == ItemStatus.NOT_FOUND
    assert result.summary.not_found == 1
    assert result.summary.compliant == 2


def test_mixed_outcomes(zone_holder):
    source = InMemoryBusinessSource([
        make_business(uei=numbered_uei(0)),
        make_business(uei=numbered_uei(1), residents=5),
        make_business(uei=numbered_uei(2), cert_status=CertificationStatus.EXPIRED),
    ])
    orchestrator = build_orchestrator(source, zone_holder)
    result = orchestrator.run(orchestrator.submit([numbered_uei(i) for i in range(3)]), as_of=AS_OF)

    assert result.summary.to_dict() == {
        "compliant": 1, "non_compliant": 1, "expired": 1, "not_found": 0, "errors": 0,
    }


def test_results_follow_submission_order(zone_holder):
    orchestrator = build_orchestrator(InMemoryBusinessSource(businesses(30)), zone_holder)
    identifiers = [numbered_uei(i) for i in reversed(range(30))]
    result = orchestrator.run(orchestrator.submit(identifiers), as_of=AS_OF)
    assert [item.identifier for item in result.results] == identifiers


def test_dependency_errors_are_item_level(zone_holder):
    """Test that an outage for one business marks only that item."""
    source = FlakySource(businesses(5), failing=[numbered_uei(1)])
    orchestrator = build_orchestrator(source, zone_holder)
    result = orchestrator.run(orchestrator.submit([numbered_uei(i) for i in range(5)]), as_of=AS_OF)

    assert result.status == JobStatus.COMPLETED
    item = job_item(result, numbered_uei(1))
    assert item.status == ItemStatus.ERROR
    assert item.retryable
    assert result.summary.errors == 1
    assert result.warnings == ()


def test_unexpected_errors_are_not_retryable(zone_holder):
    source = FlakySource(businesses(2), failing=[numbered_uei(0)], error=KeyError("broken row"))
    orchestrator = build_orchestrator(source, zone_holder)
    result = orchestrator.run(orchestrator.submit([numbered_uei(0), numbered_uei(1)]), as_of=AS_OF)

    assert result.status == JobStatus.COMPLETED
    assert not job_item(result, numbered_uei(0)).retryable


def test_repeated_dependency_errors_degrade(zone_holder):
    """Test the degraded warning after repeated outages."""
    failing = [numbered_uei(i) for i in range(3)]
    source = FlakySource(businesses(10), failing=failing)
    orchestrator = build_orchestrator(source, zone_holder, max_workers=1)
    result = orchestrator.run(orchestrator.submit([numbered_uei(i) for i in range(10)]), as_of=AS_OF)

    assert result.status == JobStatus.COMPLETED
    assert len(result.warnings) == 1
    assert "Degraded" in result.warnings[0]


def test_consecutive_dependency_errors_fail_job(zone_holder):
    """Test that a run of outages fails the whole job."""
    source = FlakySource(businesses(20), failing=[numbered_uei(i) for i in range(20)])
    orchestrator = build_orchestrator(source, zone_holder, max_workers=1, failure_threshold=10)
    result = orchestrator.run(orchestrator.submit([numbered_uei(i) for i in range(20)]), as_of=AS_OF)

    assert result.status == JobStatus.FAILED
    assert result.processed == 10
    assert "consecutive" in result.error_message


def test_storage_fault_fails_job(zone_holder):
    """Test that a store that cannot write fails the job."""
    class BrokenStore(InMemoryVerificationStore):
        def append(self, verification):
            raise JobFault("verification store unavailable")

    orchestrator = build_orchestrator(
        InMemoryBusinessSource(businesses(5)), zone_holder, store=BrokenStore(), max_workers=1,
    )
    result = orchestrator.run(orchestrator.submit([numbered_uei(i) for i in range(5)]), as_of=AS_OF)

    assert result.status == JobStatus.FAILED
    assert "store unavailable" in result.error_message


def test_finished_job_is_saved(zone_holder):
    """Test that the finished job and its verifications land in the given store."""
    store = InMemoryVerificationStore()
    orchestrator = build_orchestrator(InMemoryBusinessSource(businesses(3)), zone_holder, store=store)
    job = orchestrator.submit([numbered_uei(i) for i in range(3)], requested_by="analyst")
    orchestrator.run(job, as_of=AS_OF)

    saved = store.jobs[job.job_id]
    assert saved.status == JobStatus.COMPLETED
    assert saved.requested_by == "analyst"
    assert len(store) == 3
    assert {v.method for v in store.query()} == {"bulk"}
    assert {v.triggered_by for v in store.query()} == {job.job_id}


def test_progress_callback_error_fails_job(zone_holder):
    """Test that an exception from the progress callback still leaves the job terminal."""
    store = InMemoryVerificationStore()
    orchestrator = build_orchestrator(
        InMemoryBusinessSource(businesses(3)), zone_holder, store=store, max_workers=1,
    )
    job = orchestrator.submit([numbered_uei(i) for i in range(3)])

    def on_progress(job, item):
        raise RuntimeError("display went away")

    result = orchestrator.run(job, as_of=AS_OF, on_progress=on_progress)

    assert result.status == JobStatus.FAILED
    assert "Job aborted" in result.error_message
    assert "display went away" in result.error_message
    assert job.is_terminal
    assert store.jobs[job.job_id].status == JobStatus.FAILED


def test_cancel_pending_job(zone_holder):
    orchestrator = build_orchestrator(InMemoryBusinessSource(businesses(2)), zone_holder)
    job = orchestrator.submit([numbered_uei(0), numbered_uei(1)])
    orchestrator.cancel(job.job_id)

    result = orchestrator.run(job, as_of=AS_OF)
    assert result.status == JobStatus.CANCELLED
    assert result.processed == 0


def test_cancel_while_processing(zone_holder):
    """Test that cancelling stops dispatch but lets in-flight items finish."""
    source = GatedSource(businesses(20))
    orchestrator = build_orchestrator(source, zone_holder, max_workers=2)
    job = orchestrator.submit([numbered_uei(i) for i in range(20)])

    future = orchestrator.start(job, as_of=AS_OF)
    assert source.started.wait(timeout=5)
    orchestrator.cancel(job.job_id)
    source.release.set()
    result = future.result(timeout=10)
    orchestrator.shutdown()

    assert result.status == JobStatus.CANCELLED
    # In-flight items finish; nothing new is dispatched
    assert 1 <= result.processed <= 2
    assert orchestrator.progress(job.job_id).processed == result.processed


def test_cancel_after_last_result_completes(zone_holder):
    """Test that a cancel arriving once every item has a result ends completed."""
    orchestrator = build_orchestrator(InMemoryBusinessSource(businesses(3)), zone_holder, max_workers=1)
    job = orchestrator.submit([numbered_uei(i) for i in range(3)])

    def on_progress(job, item):
        if job.processed == len(job.identifiers):
            job.request_cancel()

    result = orchestrator.run(job, as_of=AS_OF, on_progress=on_progress)

    assert job.cancel_requested
    assert result.status == JobStatus.COMPLETED
    assert result.processed == 3


def test_unknown_job(zone_holder):
    orchestrator = build_orchestrator(InMemoryBusinessSource(), zone_holder)
    with pytest.raises(ValidationError):
        orchestrator.get("missing")


def test_submit_text(zone_holder):
    orchestrator = build_orchestrator(InMemoryBusinessSource(businesses(1)), zone_holder)
    job = orchestrator.submit_text(f"UEI_Number\n{numbered_uei(0).lower()}\n{numbered_uei(0)}\n")
    assert job.identifiers == (numbered_uei(0),)


# Export

def test_export_one_row_per_requested_identifier(zone_holder):
    """Test the CSV header and one row per identifier."""
    orchestrator = build_orchestrator(InMemoryBusinessSource(businesses(1)), zone_holder)
    job = orchestrator.submit([numbered_uei(0), "ZZZ999999999"])
    result = orchestrator.run(job, as_of=AS_OF)

    rows = list(csv.reader(io.StringIO(to_csv_string(result))))
    assert rows[0] == CSV_HEADERS
    assert rows[1] == [numbered_uei(0), "Business 0", "valid", "Yes", "low", ""]
    assert rows[2] == ["ZZZ999999999", "", "not_found", "No", "", "Business not found"]


def test_export_unprocessed_identifiers():
    """Test that identifiers a cancelled job never reached still get a row."""
    job = BulkJob(["ABC123456789", "XYZ987654321"])
    job.transition(JobStatus.PROCESSING)
    job.record_result(verified_item("ABC123456789"))
    job.transition(JobStatus.CANCELLED)

    rows = list(csv.reader(io.StringIO(to_csv_string(job.to_result()))))
    assert len(rows) == 3
    assert rows[2][0] == "XYZ987654321"
    assert rows[2][2] == "not_processed"
    assert rows[2][3] == "No"
    assert "cancelled" in rows[2][5]


def test_export_error_rows_are_not_compliant():
    """Test that error rows carry an explicit No in the Compliant column."""
    job = BulkJob(["ABC123456789"])
    job.transition(JobStatus.PROCESSING)
    job.record_result(BulkItemResult.error("ABC123456789", "geocoder unavailable", retryable=True))
    job.transition(JobStatus.COMPLETED)

    rows = list(csv.reader(io.StringIO(to_csv_string(job.to_result()))))
    assert rows[1] == ["ABC123456789", "", "error", "No", "", "geocoder unavailable"]


def test_result_to_dict():
    job = BulkJob(["ABC123456789"], requested_by="analyst")
    job.transition(JobStatus.PROCESSING)
    job.record_result(BulkItemResult.error("ABC123456789", "geocoder unavailable", retryable=True))
    job.transition(JobStatus.COMPLETED)

    data = job.to_result().to_dict()
    assert data["total_requested"] == 1
    assert data["summary"]["errors"] == 1
    assert data["results"][0]["retryable"] is True
    assert datetime.fromisoformat(data["completed_at"])
