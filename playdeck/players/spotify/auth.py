# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Spotify token management — the ONE place a Spotify driver gets its token.

SpotifyAuth sits between the driver and the shared CredentialCache:
  - authorize(code)   — explicit user action: record the code, exchange it
  - get_token()       — background-safe: cached token, or one silent
                        re-request with the stored code, else None
  - evict()           — token rejected with 401
  - logout()          — forget token and code

Nothing in here ever starts an interactive authorization.
"""

import logging
from datetime import timedelta

from ...lib.credentials import CredentialCache, CredentialRecord, fingerprint
from ...lib.errors import PlayerError
from ...lib.kvstore import utcnow
from .oauth import build_auth_url, exchange_code

log = logging.getLogger(__name__)

EXPIRY_MARGIN = 300  # seconds shaved off expires_in


class SpotifyAuth:
    """Credential handling for one configured Spotify player."""

    def __init__(self, config, cache: CredentialCache, clock=utcnow):
        self.config = config
        self.cache = cache
        self._clock = clock
        self.fp = fingerprint(config.id, config.client_id,
                              config.client_secret, config.redirect_url)
        self._spent_codes: set[str] = set()

    @property
    def is_configured(self):
        return bool(self.config.client_id and self.config.client_secret
                    and self.config.redirect_url)

    def authorization_url(self, state=None):
        return build_auth_url(self.config.client_id, self.config.redirect_url, state=state)

    def _record_from(self, result, code):
        expires_in = int(result.get("expires_in", 3600))
        lifetime = max(expires_in - EXPIRY_MARGIN, expires_in // 2)
        return CredentialRecord(
            access_token=result["access_token"],
            code=code,
            expires_at=self._clock() + timedelta(seconds=lifetime),
        )

    async def authorize(self, session, code):
        """Exchange *code* for a token and cache it.  Errors propagate."""
        self.cache.set_code(self.fp, code)
        log.info("OAuth: exchanging authorization code")
        result = await exchange_code(session, code, self.config.client_id,
                                     self.config.client_secret, self.config.redirect_url)
        record = self._record_from(result, code)
        self.cache.store_record(self.fp, record)
        self._spent_codes.discard(code)
        log.info("Spotify authorized (token valid until %s)", record.expires_at.isoformat())
        return record

    async def get_token(self, session_factory=None):
        """Return a valid access token or None.  Never raises for auth problems.

        *session_factory* is only called when the stored code has to be
        exchanged again.
        """
        record = self.cache.get_token(self.fp)
        if record is not None:
            return record.access_token

        code = self.cache.current_code(self.fp)
        if not code or code in self._spent_codes or session_factory is None:
            return None

        # One silent attempt with the stored code; it is spent afterwards
        self._spent_codes.add(code)
        try:
            result = await exchange_code(session_factory(), code, self.config.client_id,
                                         self.config.client_secret, self.config.redirect_url)
        except PlayerError as e:
            log.warning("Token re-request with stored code failed: %s", e)
            return None
        record = self._record_from(result, code)
        self.cache.store_record(self.fp, record)
        log.info("Access token re-requested with stored code")
        return record.access_token

    def evict(self):
        self.cache.evict(self.fp)
        log.warning("Spotify rejected the access token — evicted")

    def logout(self):
        self.cache.clear(self.fp)
        self._spent_codes.clear()
        log.info("Spotify credentials cleared")
