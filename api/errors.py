"""
api.errors - JSON error handlers for the API blueprint.
"""

from flask import jsonify
from api import api_bp
from import_engine.csv_parser import EnvelopeError


class UploadTooLarge(Exception):
    """Raised while streaming an upload once it passes the size cap."""
    pass


@api_bp.errorhandler(EnvelopeError)
def api_invalid_upload(e):
    return jsonify({"error": str(e)}), 400


@api_bp.errorhandler(UploadTooLarge)
def api_upload_too_large(e):
    return jsonify({"error": str(e)}), 413


@api_bp.errorhandler(400)
def api_bad_request(_e):
    return jsonify({"error": "bad request"}), 400


@api_bp.errorhandler(401)
def api_unauthorized(_e):
    return jsonify({"error": "unauthorized"}), 401


@api_bp.errorhandler(404)
def api_not_found(_e):
    return jsonify({"error": "not found"}), 404


@api_bp.errorhandler(413)
def api_too_large(_e):
    return jsonify({"error": "upload too large"}), 413


@api_bp.errorhandler(500)
def api_server_error(_e):
    return jsonify({"error": "internal server error"}), 500
