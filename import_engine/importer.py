"""
import_engine.importer - Top-level orchestrator for one import job.

Coordinates csv_parser → row_planner → resolver → hydrator → library
write for every row, flushing counters and issues after each row.

Each row's entry writes, issues and counters commit together, so
processed_rows is an exact ledger of the rows already done and a
redelivered job picks up right after them.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.engine import get_session
from db.models import ImportJob, SEVERITY_WARNING, SEVERITY_ERROR, STATUS_FAILED
from import_engine.csv_parser import EnvelopeError, ParsedRow, parse_rows
from import_engine.hydrator import MetadataHydrator, FALLBACK_SEEDED
from import_engine.options import ImportOptions, OptionsError
from import_engine.report import ImportCounters
from import_engine.resolver import build_strategies, failure_issue, resolve
from import_engine.row_planner import PlanWarning, RowPlan, TARGET_SKIP, plan
from services.import_store import ImportStore
from services.library_service import LibraryWriter, placeholder_book_key

logger = logging.getLogger(__name__)


class ImportBusy(Exception):
    """Raised when another live worker holds the claim on a job."""
    pass


class ImportWorker:
    """Runs import jobs.  Holds no per-job state, so one instance serves many jobs."""

    def __init__(
        self,
        catalog,
        *,
        session_factory: Callable[[], Session] = get_session,
        hydrator: MetadataHydrator | None = None,
    ):
        self.catalog = catalog
        self._session_factory = session_factory
        self.hydrator = hydrator or MetadataHydrator.for_catalog(catalog)

    def process(self, import_id: str, user_id: str | None = None) -> str | None:
        """
        Drive one job to a terminal status.

        Returns the job's final status, or None when the job does not
        exist (or belongs to another user).  Database errors propagate
        so the queue can redeliver the job.  Raises ImportBusy when
        another worker is still processing it.
        """
        session = self._session_factory()
        try:
            job = ImportStore.get(session, import_id)
            if job is None or (user_id and job.user_id != user_id):
                logger.warning(f"Import {import_id} not found, skipping")
                return None
            if job.is_terminal:
                logger.info(f"Import {import_id} already {job.status}, skipping")
                return job.status

            try:
                options = ImportOptions.from_json(job.options_json)
                rows = parse_rows(job.csv_payload)
            except EnvelopeError as exc:
                return self._abort(session, job, exc)

            claim = str(uuid.uuid4())
            if not ImportStore.mark_processing(session, job.id, len(rows), claim):
                session.rollback()
                session.refresh(job)
                if job.is_terminal:
                    return job.status
                raise ImportBusy(f"Import {job.id} is held by another worker")
            session.commit()

            counters = ImportCounters.from_job(job)
            counters.total_rows = len(rows)
            if counters.processed_rows:
                logger.info(f"Import {job.id} resuming after row {counters.processed_rows}")
            else:
                logger.info(f"Import {job.id} started: {len(rows)} rows for user {job.user_id}")

            library = LibraryWriter.load(session, job.user_id)
            for parsed in rows[counters.processed_rows:]:
                self._process_row(session, job, parsed, options, library, counters)
                if not ImportStore.flush_counters(session, job.id, counters, claim):
                    session.rollback()
                    logger.warning(f"Import {job.id} lost its claim at row {parsed.row_number}, stopping")
                    return None
                session.commit()

            status = counters.terminal_status()
            if not ImportStore.finish(session, job.id, status, counters, claim):
                session.rollback()
                logger.warning(f"Import {job.id} lost its claim before finishing")
                return None
            session.commit()
            logger.info(
                f"Import {job.id} {status}: {counters.imported_rows} imported, "
                f"{counters.failed_rows} failed, {counters.warning_rows} with warnings"
            )
            return status
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Private helpers ────────────────────────────────────────────────

    def _abort(self, session: Session, job: ImportJob, exc: EnvelopeError) -> str:
        code = "IMPORT_OPTIONS_INVALID" if isinstance(exc, OptionsError) else "IMPORT_CSV_INVALID"
        logger.warning(f"Import {job.id} failed before processing rows: {exc}")
        ImportStore.fail(session, job, code=code, message=str(exc))
        session.commit()
        return STATUS_FAILED

    def _process_row(
        self,
        session: Session,
        job: ImportJob,
        parsed: ParsedRow,
        options: ImportOptions,
        library: LibraryWriter,
        counters: ImportCounters,
    ) -> None:
        row_plan = plan(parsed.row, options)
        warnings: list[PlanWarning] = list(row_plan.warnings)
        errors: list[PlanWarning] = []
        imported = False

        if row_plan.target != TARGET_SKIP:
            book_key = self._book_key_for(row_plan, parsed.row_number, warnings, errors)
            warnings.extend(library.write(session, book_key, row_plan))
            imported = True

        raw_row = json.dumps(parsed.row, ensure_ascii=False)
        for severity, found in ((SEVERITY_WARNING, warnings), (SEVERITY_ERROR, errors)):
            for issue in found:
                ImportStore.append_issue(
                    session, job.id,
                    row_number=parsed.row_number,
                    book_title=row_plan.title,
                    author=row_plan.author,
                    severity=severity,
                    code=issue.code,
                    message=issue.message,
                    inference=issue.inference,
                    raw_row=raw_row,
                )

        counters.record_row(imported=imported, warned=bool(warnings), failed=bool(errors))

    def _book_key_for(self, row_plan: RowPlan, row_number: int,
                      warnings: list[PlanWarning], errors: list[PlanWarning]) -> str:
        """Resolve + hydrate.  Unmatched rows get a placeholder key and an error issue."""
        result = resolve(build_strategies(
            self.catalog,
            title=row_plan.title,
            author=row_plan.author,
            isbn13=row_plan.isbn13,
            isbn10=row_plan.isbn10,
        ))

        if result.resolved_book_key is None:
            book_key = placeholder_book_key(row_plan.title, row_plan.author)
            code, message = failure_issue(result.lookup_outcomes)
            errors.append(PlanWarning(code, message, result.trail))
            logger.info(f"Row {row_plan.title!r} ({row_number}) unmatched [{result.trail}], using {book_key}")
            self.hydrator.seed_fallback(book_key, row_plan.title, row_plan.author)
            return book_key

        book_key = result.resolved_book_key
        if self.hydrator.hydrate(book_key, row_plan.title, row_plan.author) == FALLBACK_SEEDED:
            warnings.append(PlanWarning(
                "METADATA_UNAVAILABLE",
                "Imported without catalog metadata because the detail fetch failed.",
            ))
        return book_key
