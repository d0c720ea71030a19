"""
services.import_store - Durable state of import jobs and their issues.

All session management is the caller's responsibility (open before,
close/commit after).  Counter flushes and status transitions are single
UPDATE statements so concurrent readers never see a torn job row.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

import config
from db.models import (
    ImportJob, ImportIssue, STATUS_QUEUED, STATUS_PROCESSING, STATUS_FAILED,
    TERMINAL_STATUSES, SEVERITY_ERROR, empty_summary,
)
from import_engine.options import ImportOptions
from import_engine.report import ImportCounters


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ImportStore:

    # ── Create ─────────────────────────────────────────────────────────

    @staticmethod
    def create_queued(
        session: Session,
        *,
        user_id: str,
        filename: str,
        csv_payload: bytes,
        options: ImportOptions,
        total_rows: int,
    ) -> ImportJob:
        summary = empty_summary()
        summary["total_rows"] = total_rows
        job = ImportJob(
            user_id=user_id,
            filename=filename,
            csv_payload=csv_payload,
            options_json=options.to_json(),
            status=STATUS_QUEUED,
            total_rows=total_rows,
            summary_json=json.dumps(summary),
        )
        session.add(job)
        session.flush()
        return job

    # ── Read ───────────────────────────────────────────────────────────

    @staticmethod
    def get(session: Session, import_id: str) -> ImportJob | None:
        return session.get(ImportJob, import_id)

    @staticmethod
    def get_for_user(session: Session, import_id: str, user_id: str) -> ImportJob | None:
        return (
            session.query(ImportJob)
            .filter(ImportJob.id == import_id, ImportJob.user_id == user_id)
            .first()
        )

    @staticmethod
    def list_for_user(session: Session, user_id: str, limit: int = 20) -> list[ImportJob]:
        return (
            session.query(ImportJob)
            .filter(ImportJob.user_id == user_id)
            .order_by(ImportJob.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def list_issues(session: Session, import_id: str, limit: int = 200) -> list[ImportIssue]:
        return (
            session.query(ImportIssue)
            .filter(ImportIssue.import_id == import_id)
            .order_by(ImportIssue.row_number.desc(), ImportIssue.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def snapshot(session: Session, import_id: str, user_id: str,
                 issue_limit: int = 200) -> dict | None:
        """Job + issues as one JSON-ready dict, or None if not the user's job."""
        job = ImportStore.get_for_user(session, import_id, user_id)
        if job is None:
            return None
        session.refresh(job)
        return job.to_dict(issues=ImportStore.list_issues(session, job.id, issue_limit))

    # ── Mutations (worker only) ────────────────────────────────────────

    @staticmethod
    def mark_processing(session: Session, import_id: str, total_rows: int,
                        claim_token: str,
                        lease_seconds: int = config.IMPORT_CLAIM_LEASE_SECONDS) -> bool:
        """
        Claim a job for one worker: queued → processing.

        A processing job can be re-claimed by the same token, or by a new
        one once the previous holder stopped renewing its lease.  Returns
        False when the job is terminal or held by a live worker.
        """
        job = session.get(ImportJob, import_id)
        now = _now()
        stale_before = now - timedelta(seconds=lease_seconds)
        result = session.execute(
            update(ImportJob)
            .where(
                ImportJob.id == import_id,
                or_(
                    ImportJob.status == STATUS_QUEUED,
                    and_(
                        ImportJob.status == STATUS_PROCESSING,
                        or_(ImportJob.claim_token.is_(None),
                            ImportJob.claim_token == claim_token,
                            ImportJob.heartbeat_at.is_(None),
                            ImportJob.heartbeat_at < stale_before),
                    ),
                ),
            )
            .values(
                status=STATUS_PROCESSING,
                started_at=(job.started_at if job and job.started_at else now),
                total_rows=total_rows,
                claim_token=claim_token,
                heartbeat_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if job is not None:
            session.refresh(job)
        return result.rowcount == 1

    @staticmethod
    def flush_counters(session: Session, import_id: str, counters: ImportCounters,
                       claim_token: str | None = None) -> bool:
        """
        Write counters + summary and renew the claim.

        Never moves processed_rows backwards.  Returns False when nothing
        was written, which for a token holder means the claim was lost.
        """
        values = counters.to_dict()
        now = _now()
        stmt = (
            update(ImportJob)
            .where(ImportJob.id == import_id,
                   ImportJob.processed_rows <= counters.processed_rows)
            .values(**values, summary_json=json.dumps(values),
                    heartbeat_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if claim_token is not None:
            stmt = stmt.where(ImportJob.status == STATUS_PROCESSING,
                              ImportJob.claim_token == claim_token)
        return session.execute(stmt).rowcount == 1

    @staticmethod
    def finish(session: Session, import_id: str, status: str,
               counters: ImportCounters, claim_token: str | None = None) -> bool:
        """Enter a terminal status.  finished_at is only ever set once."""
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"not a terminal status: {status}")
        values = counters.to_dict()
        now = _now()
        stmt = (
            update(ImportJob)
            .where(ImportJob.id == import_id,
                   ImportJob.status.notin_(tuple(TERMINAL_STATUSES)))
            .values(**values, summary_json=json.dumps(values), status=status,
                    finished_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if claim_token is not None:
            stmt = stmt.where(ImportJob.claim_token == claim_token)
        return session.execute(stmt).rowcount == 1

    @staticmethod
    def fail(session: Session, job: ImportJob, *, code: str, message: str) -> bool:
        """Abort a job with a single job-level error issue (row 1)."""
        counters = ImportCounters.from_job(job)
        entered = ImportStore.finish(session, job.id, STATUS_FAILED, counters)
        if entered:
            ImportStore.append_issue(
                session, job.id, row_number=1, book_title="Import", author="System",
                severity=SEVERITY_ERROR, code=code, message=message,
            )
        return entered

    @staticmethod
    def append_issue(
        session: Session,
        import_id: str,
        *,
        row_number: int,
        book_title: str,
        author: str,
        severity: str,
        code: str,
        message: str,
        inference: str | None = None,
        raw_row: str | None = None,
    ) -> ImportIssue:
        issue = ImportIssue(
            import_id=import_id, row_number=row_number, book_title=book_title,
            author=author, severity=severity, code=code, message=message,
            inference=inference, raw_row=raw_row,
        )
        session.add(issue)
        return issue
