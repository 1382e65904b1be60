from __future__ import annotations

from http import HTTPStatus


class DirServerError(Exception):
    """Base class for failures the request dispatcher turns into a response."""

    status = HTTPStatus.INTERNAL_SERVER_ERROR


class NotFound(DirServerError):
    status = HTTPStatus.NOT_FOUND


class FsError(DirServerError):
    """Unexpected file system or stream failure."""

    status = HTTPStatus.INTERNAL_SERVER_ERROR


class AlreadyExists(DirServerError):
    status = HTTPStatus.CONFLICT


class RequestTooLarge(DirServerError):
    status = HTTPStatus.REQUEST_ENTITY_TOO_LARGE


class MethodNotAllowed(DirServerError):
    status = HTTPStatus.METHOD_NOT_ALLOWED


class BadRequest(DirServerError):
    status = HTTPStatus.BAD_REQUEST
