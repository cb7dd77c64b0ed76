from __future__ import annotations

import logging

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from utils import ApiError, err


def init_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):
        body, status = err(e.code, e.message, http_status=e.http_status)
        return jsonify(body), status

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        code = "NOT_FOUND" if e.code == 404 else "BAD_REQUEST" if e.code == 400 else "HTTP_ERROR"
        body, status = err(code, e.description or e.name, http_status=e.code or 500)
        return jsonify(body), status

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):
        logging.getLogger("api").exception("request_id=%s unhandled error", getattr(g, "request_id", ""))
        body, status = err("INTERNAL", "Unexpected error", http_status=500)
        return jsonify(body), status
