"""
import_engine.publisher - Server-sent events for one import job.

The stream polls the import store and derives events from the current
snapshot, so a reconnecting client simply starts over from the persisted
state.  Nothing is buffered between worker and publisher.
"""

from __future__ import annotations

import json
import time
from typing import Callable, Iterator

from sqlalchemy.orm import Session

import config
from db.engine import get_session
from db.models import STATUS_QUEUED, STATUS_COMPLETED, STATUS_COMPLETED_WITH_ERRORS, STATUS_FAILED
from services.import_store import ImportStore

EVENT_STARTED   = "import.started"
EVENT_PROGRESS  = "import.progress"
EVENT_COMPLETED = "import.completed"
EVENT_FAILED    = "import.failed"

KEEPALIVE = ": ping\n\n"


def format_sse(event: str, payload: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n"


def events_for_snapshot(snapshot: dict, last_processed: int) -> list[str]:
    """Events a snapshot implies, given the processed_rows last reported (-1 = none yet)."""
    events = []
    if snapshot["status"] == STATUS_QUEUED and last_processed < 0:
        events.append(EVENT_STARTED)
    if snapshot["processed_rows"] != last_processed:
        events.append(EVENT_PROGRESS)
    if snapshot["status"] in (STATUS_COMPLETED, STATUS_COMPLETED_WITH_ERRORS):
        events.append(EVENT_COMPLETED)
    elif snapshot["status"] == STATUS_FAILED:
        events.append(EVENT_FAILED)
    return events


def stream_import_events(
    import_id: str,
    user_id: str,
    *,
    poll_interval: float = config.IMPORT_EVENTS_POLL_SECONDS,
    keepalive_interval: float = config.IMPORT_EVENTS_KEEPALIVE_SECONDS,
    issue_limit: int = config.IMPORT_ISSUE_LIMIT,
    session_factory: Callable[[], Session] = get_session,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Iterator[str]:
    """
    Yield SSE frames until the job reaches a terminal status.

    Every data frame carries the full job snapshot including issues.
    An unknown or foreign job yields a single import.failed frame.
    """
    last_processed = -1
    last_keepalive = clock()

    while True:
        session = session_factory()
        try:
            snapshot = ImportStore.snapshot(session, import_id, user_id, issue_limit)
        finally:
            session.close()

        if snapshot is None:
            yield format_sse(EVENT_FAILED, {"message": "Import not found."})
            return

        events = events_for_snapshot(snapshot, last_processed)
        for event in events:
            yield format_sse(event, snapshot)
        last_processed = snapshot["processed_rows"]
        if EVENT_COMPLETED in events or EVENT_FAILED in events:
            return

        now = clock()
        if now - last_keepalive >= keepalive_interval:
            yield KEEPALIVE
            last_keepalive = now

        sleep(poll_interval)
