"""Application error codes and their HTTP representation.

Services raise ``LilError`` with one of the codes below. The edge maps each
code to a status and answers ``{"error": message}``. Only internal errors are
logged; everything else is returned to the caller verbatim.
"""
import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)

CONFLICT = 'conflict'
INTERNAL = 'internal'
INVALID = 'invalid'
NOT_FOUND = 'not_found'
NOT_IMPLEMENTED = 'not_implemented'
UNAUTHORIZED = 'unauthorized'

STATUS_CODES = {
    CONFLICT: 409,
    INVALID: 400,
    NOT_FOUND: 404,
    NOT_IMPLEMENTED: 501,
    UNAUTHORIZED: 401,
    INTERNAL: 500,
}


class LilError(Exception):
    """An application error carrying a code and a user-facing message."""

    def __init__(self, code, message):
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self):
        return f'<LilError {self.code}: {self.message}>'


def error_code(err):
    """Return the code of an application error, INTERNAL for anything else."""
    if isinstance(err, LilError):
        return err.code
    return INTERNAL


def error_message(err):
    """Return the message of an application error.

    Messages of non-application errors are hidden from callers.
    """
    if isinstance(err, LilError):
        return err.message
    return 'Internal error.'


def status_code(code):
    return STATUS_CODES.get(code, 500)


def error_response(err):
    code = error_code(err)
    if code == INTERNAL:
        logger.error(
            "[http] error: %s %s: %s", request.method, request.path, err,
            exc_info=err if err.__traceback__ else None,
        )
    response = jsonify({'error': error_message(err)})
    response.status_code = status_code(code)
    return response


def register_error_handlers(app):
    from lil import db

    @app.errorhandler(LilError)
    def handle_lil_error(err):
        if err.code == INTERNAL:
            db.session.rollback()
        return error_response(err)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err):
        response = jsonify({'error': err.description})
        response.status_code = err.code or 500
        return response

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        db.session.rollback()
        return error_response(err)
