"""
api.auth - Who is making the request.

Authentication happens in front of this service; the gateway forwards
the verified user id in the X-User-Id header.
"""

from flask import abort, request

USER_HEADER = "X-User-Id"


def current_user_id() -> str:
    user_id = request.headers.get(USER_HEADER, "").strip()
    if not user_id:
        abort(401)
    return user_id
