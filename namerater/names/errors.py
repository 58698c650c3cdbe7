from __future__ import annotations


class NameRaterError(Exception):
    """Base class for errors the HTTP layer turns into JSON responses."""

    status_code = 400


class NotFoundError(NameRaterError):
    status_code = 404


class InvalidRequestError(NameRaterError):
    status_code = 400
