# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Error taxonomy shared by all drivers.

Hard errors (connection, unexpected response, parse) reject the calling
operation.  Soft failures are not exceptions at all: they come back as
``False`` or an empty list.  ``TransientPending`` never leaves the retry loop.
"""


class PlayerError(Exception):
    """Base exception for all driver errors."""


class PlayerConnectionError(PlayerError, ConnectionError):
    """The backend's transport could not be reached."""


class AuthorizationError(PlayerError):
    """No usable credential; only an interactive re-authorization helps."""


class TransientPending(PlayerError):
    """Command accepted by the backend but not applied yet (HTTP 202)."""


class UnexpectedResponseError(PlayerError):
    """The backend answered with a status code outside the documented set."""

    def __init__(self, status: int, url: str | None = None, body: str | None = None):
        self.status = status
        self.url = url
        self.body = body
        message = f"Unexpected status code: {status}"
        if url:
            message += f" ({url})"
        super().__init__(message)


class ParseError(PlayerError):
    """Malformed XML or JSON body."""
