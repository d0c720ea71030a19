"""
Celery tasks for the import pipeline.
"""

from __future__ import annotations

import logging

from celery import Task
from sqlalchemy.exc import SQLAlchemyError

import config
from celery_app import app
from db.engine import get_session
from import_engine.importer import ImportBusy, ImportWorker
from services.cache_service import TwoTierCache, connect_redis
from services.catalog_client import HardcoverClient
from services.import_store import ImportStore

logger = logging.getLogger(__name__)

_worker: ImportWorker | None = None


def get_worker() -> ImportWorker:
    """Process-wide worker; built on first use so the DB is initialised by then."""
    global _worker
    if _worker is None:
        cache = TwoTierCache(volatile=connect_redis())
        _worker = ImportWorker(HardcoverClient(cache))
    return _worker


class ImportTask(Task):
    """Marks the job failed once the queue gives up on it."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        import_id = args[0] if args else kwargs.get("import_id")
        attempts = self.request.retries + 1
        logger.error(f"Import {import_id} abandoned after {attempts} attempt(s): {exc}")

        session = get_session()
        try:
            job = ImportStore.get(session, import_id)
            if job is not None and ImportStore.fail(
                session, job,
                code="IMPORT_ABANDONED",
                message=f"Import stopped after {attempts} attempt(s): {exc}",
            ):
                session.commit()
        except SQLAlchemyError as db_exc:
            session.rollback()
            logger.error(f"Could not mark import {import_id} as failed: {db_exc}")
        finally:
            session.close()


@app.task(
    bind=True,
    base=ImportTask,
    name="imports.process",
    autoretry_for=(SQLAlchemyError,),
    max_retries=config.IMPORT_MAX_ATTEMPTS - 1,
    retry_backoff=config.IMPORT_RETRY_BACKOFF_SECONDS,
    retry_jitter=False,
)
def process_import(self, import_id, user_id):
    """
    Run one import job to completion
    """
    if self.request.retries:
        logger.info(f"Import {import_id}: attempt {self.request.retries + 1}")
    try:
        return get_worker().process(import_id, user_id)
    except ImportBusy as exc:
        if self.request.is_eager:
            logger.warning(f"{exc}, skipping")
            return None
        # Check back once the current holder's lease could have expired
        logger.info(f"{exc}, checking again in {config.IMPORT_CLAIM_LEASE_SECONDS}s")
        process_import.apply_async(args=(import_id, user_id),
                                   countdown=config.IMPORT_CLAIM_LEASE_SECONDS)
        return None


def enqueue_import(import_id: str, user_id: str):
    """Queue a job.  The task id is the import id, so duplicates are traceable."""
    return process_import.apply_async(args=(import_id, user_id), task_id=import_id)
