# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Resend-until-applied loop for eventually-consistent write commands.

Some cloud players answer a command with 202 Accepted before the player has
actually carried it out.  The only way to learn the outcome is to send the
identical request again a bit later:

    200 / 204   → applied            → True
    202         → not applied yet    → wait RETRY_DELAY, resend (max MAX_RETRIES)
    202 (last)  → gave up            → False
    other       → UnexpectedResponseError, never retried

Transport failures raised by *send* propagate untouched.  Waiting uses
asyncio.sleep so other work keeps running in between attempts.
"""

import asyncio
import logging

from .errors import TransientPending, UnexpectedResponseError

log = logging.getLogger(__name__)

MAX_RETRIES = 5
RETRY_DELAY = 5.25  # seconds
SUCCESS_CODES = (200, 204)
PENDING_CODE = 202


def check_command_status(status: int, label: str = "") -> bool:
    """Map a write response code to True, TransientPending or a hard error."""
    if status in SUCCESS_CODES:
        return True
    if status == PENDING_CODE:
        raise TransientPending(f"{label or 'command'} accepted, not applied yet")
    raise UnexpectedResponseError(status, label or None)


async def retry_until_applied(send, *, retries: int = MAX_RETRIES,
                              delay: float = RETRY_DELAY, label: str = "") -> bool:
    """Call ``await send()`` (returns an HTTP status) until it is applied.

    Returns True once a success code is seen, False when the backend still
    answers 202 after *retries* resends.
    """
    remaining = retries
    while True:
        status = await send()
        try:
            return check_command_status(status, label)
        except TransientPending:
            if remaining <= 0:
                log.warning("%s still pending after %d retries — giving up",
                            label or "Command", retries)
                return False
            remaining -= 1
            log.debug("%s pending (202), retry in %.2fs (%d left)",
                      label or "Command", delay, remaining)
            await asyncio.sleep(delay)
