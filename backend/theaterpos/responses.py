# Overview: Response envelope helpers used by every route.

from __future__ import annotations

from flask import jsonify


def ok(data=None, status: int = 200, message: str | None = None):
    """Wrap a payload in the {"success": true, "data": ...} envelope."""
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return jsonify(body), status
