import json
from datetime import datetime, timedelta, timezone

import pytest

from db.models import ImportJob
from import_engine.options import ImportOptions
from import_engine.report import ImportCounters
from services.import_store import ImportStore
from tests.factories import ImportIssueFactory, ImportJobFactory


def test_create_queued(session):
    job = ImportStore.create_queued(
        session, user_id="reader-1", filename="export.csv", csv_payload=b"x",
        options=ImportOptions(), total_rows=4,
    )
    session.commit()

    d = job.to_dict()
    assert d["status"] == "queued"
    assert d["total_rows"] == 4
    assert d["summary"] == {"total_rows": 4, "processed_rows": 0, "imported_rows": 0,
                            "failed_rows": 0, "warning_rows": 0}
    assert d["options"]["ratings"]["star4"] == "Accepted"
    assert "csv_payload" not in d


def test_scoped_to_user(session):
    mine = ImportJobFactory()
    ImportJobFactory(user_id="reader-2")

    assert ImportStore.get_for_user(session, mine.id, "reader-2") is None
    assert [j.id for j in ImportStore.list_for_user(session, "reader-1")] == [mine.id]
    assert ImportStore.snapshot(session, mine.id, "reader-2") is None


def test_issues_newest_row_first_and_capped(session):
    job = ImportJobFactory()
    for row in (2, 5, 3):
        ImportIssueFactory(job=job, row_number=row)

    snapshot = ImportStore.snapshot(session, job.id, "reader-1", issue_limit=2)

    assert [i["row_number"] for i in snapshot["issues"]] == [5, 3]


def test_claim_and_finish(session):
    job = ImportJobFactory()

    assert ImportStore.mark_processing(session, job.id, 3, "claim-a")
    session.commit()
    assert job.status == "processing" and job.started_at is not None
    assert job.claim_token == "claim-a" and job.heartbeat_at is not None

    counters = ImportCounters(total_rows=3, processed_rows=3, imported_rows=3)
    assert ImportStore.finish(session, job.id, counters.terminal_status(), counters)
    session.commit()
    session.refresh(job)
    finished_at = job.finished_at

    # Terminal is final
    assert not ImportStore.finish(session, job.id, "failed", counters)
    assert not ImportStore.mark_processing(session, job.id, 3, "claim-b")
    session.commit()
    session.refresh(job)
    assert job.status == "completed"
    assert job.finished_at == finished_at
    assert json.loads(job.summary_json)["imported_rows"] == 3


def test_finish_requires_terminal_status(session):
    job = ImportJobFactory()
    with pytest.raises(ValueError):
        ImportStore.finish(session, job.id, "processing", ImportCounters())


def test_counters_never_go_backwards(session):
    job = ImportJobFactory(status="processing", processed_rows=5)

    ImportStore.flush_counters(session, job.id, ImportCounters(processed_rows=2))
    session.commit()

    assert session.get(ImportJob, job.id, populate_existing=True).processed_rows == 5


def test_fail_appends_job_issue(session):
    job = ImportJobFactory()

    assert ImportStore.fail(session, job, code="IMPORT_ABANDONED", message="gave up")
    session.commit()

    snapshot = ImportStore.snapshot(session, job.id, "reader-1")
    assert snapshot["status"] == "failed"
    issue = snapshot["issues"][0]
    assert (issue["row_number"], issue["book_title"], issue["author"]) == (1, "Import", "System")


def test_second_claim_refused_while_first_is_live(session):
    job = ImportJobFactory()

    assert ImportStore.mark_processing(session, job.id, 1, "claim-a")
    session.commit()

    assert not ImportStore.mark_processing(session, job.id, 1, "claim-b")
    # The holder can re-claim after a redelivery
    assert ImportStore.mark_processing(session, job.id, 1, "claim-a")
    session.commit()
    assert job.claim_token == "claim-a"


def test_stale_claim_can_be_taken_over(session):
    stale = datetime.now(timezone.utc) - timedelta(hours=2)
    job = ImportJobFactory(status="processing", claim_token="claim-a", heartbeat_at=stale)

    assert ImportStore.mark_processing(session, job.id, 1, "claim-b", lease_seconds=60)
    session.commit()
    assert job.claim_token == "claim-b"

    # The previous holder can no longer write
    counters = ImportCounters(total_rows=1, processed_rows=1)
    assert not ImportStore.flush_counters(session, job.id, counters, "claim-a")
    assert not ImportStore.finish(session, job.id, "completed", counters, "claim-a")
    assert ImportStore.flush_counters(session, job.id, counters, "claim-b")
    session.commit()

    session.refresh(job)
    assert (job.status, job.processed_rows) == ("processing", 1)


def test_job_issues_relationship_loads(session):
    issue = ImportIssueFactory(code="INVALID_DATE")
    session.expire_all()

    assert [i.code for i in issue.job.issues] == ["INVALID_DATE"]
