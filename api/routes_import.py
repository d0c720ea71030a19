"""
api.routes_import - /api/v1/imports endpoints.

Upload a Goodreads export, list and inspect jobs, and follow a job
live over server-sent events.  Every lookup is scoped to the requesting
user.
"""

from flask import Response, jsonify, request, stream_with_context

import config
from api import api_bp
from api.auth import current_user_id
from api.errors import UploadTooLarge
from db import get_session
from import_engine.csv_parser import parse_rows
from import_engine.options import ImportOptions
from import_engine.publisher import stream_import_events
from import_engine.tasks import enqueue_import
from services.import_store import ImportStore

CHUNK_SIZE = 64 * 1024


def read_capped(stream, limit: int) -> bytes:
    """Read a file stream chunk by chunk, giving up as soon as it passes limit bytes."""
    buf = bytearray()
    while True:
        chunk = stream.read(CHUNK_SIZE)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > limit:
            raise UploadTooLarge(f"CSV exceeds the {limit} byte upload limit")
    return bytes(buf)


@api_bp.route("/imports", methods=["POST"])
def create_import():
    """
    POST /api/v1/imports

    Multipart: field 'file' (the CSV export) and optional field 'options'
    (JSON).  Options and CSV are validated before the job is queued.
    Returns 201 {"import_id": ...}.
    """
    user_id = current_user_id()

    upload = request.files.get("file")
    if upload is None:
        return jsonify({"error": "no file in upload"}), 400

    payload = read_capped(upload.stream, config.IMPORT_MAX_CSV_BYTES)
    if not payload.strip():
        return jsonify({"error": "CSV file is empty"}), 400

    options = ImportOptions.from_json(request.form.get("options"))
    rows = parse_rows(payload)

    session = get_session()
    try:
        job = ImportStore.create_queued(
            session,
            user_id=user_id,
            filename=upload.filename or config.IMPORT_DEFAULT_FILENAME,
            csv_payload=payload,
            options=options,
            total_rows=len(rows),
        )
        session.commit()
        import_id = job.id
    finally:
        session.close()

    enqueue_import(import_id, user_id)
    return jsonify({"import_id": import_id}), 201


@api_bp.route("/imports")
def list_imports():
    """GET /api/v1/imports - the user's most recent jobs, newest first."""
    user_id = current_user_id()
    session = get_session()
    try:
        jobs = ImportStore.list_for_user(session, user_id, config.IMPORT_LIST_LIMIT)
        return jsonify({"imports": [j.to_dict() for j in jobs]})
    finally:
        session.close()


@api_bp.route("/imports/<import_id>")
def get_import(import_id: str):
    """GET /api/v1/imports/{id} - job with its issues."""
    user_id = current_user_id()
    session = get_session()
    try:
        snapshot = ImportStore.snapshot(session, import_id, user_id, config.IMPORT_ISSUE_LIMIT)
        if snapshot is None:
            return jsonify({"error": "not found"}), 404
        return jsonify(snapshot)
    finally:
        session.close()


@api_bp.route("/imports/<import_id>/events")
def import_events(import_id: str):
    """GET /api/v1/imports/{id}/events - text/event-stream until the job finishes."""
    user_id = current_user_id()
    stream = stream_import_events(import_id, user_id)
    return Response(
        stream_with_context(stream),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
