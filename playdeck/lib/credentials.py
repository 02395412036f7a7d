# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Bearer-token cache for cloud players.

A record is only handed out while it is valid:
  - the access token is non-empty
  - it was issued for the authorization code currently configured
  - it has not expired yet

Anything else is evicted on the spot.  Records are keyed by a fingerprint of
the player configuration (never by the raw secret); the currently configured
authorization code is kept next to it so it survives restarts.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime

from .kvstore import ExpiringStore, utcnow

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "token:"
CODE_PREFIX = "code:"


def fingerprint(player_id, client_id: str, client_secret: str, redirect_url: str) -> str:
    """Stable cache key for one player configuration.

    The hash keeps different configurations apart; it does not protect the
    secret.
    """
    material = "\n".join([
        "playdeck-credentials",
        f"player={player_id}",
        f"client_id={client_id}",
        f"client_secret={client_secret}",
        f"redirect_url={redirect_url}",
    ])
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CredentialRecord:
    access_token: str
    code: str
    expires_at: datetime

    def is_valid(self, code: str | None, now: datetime) -> bool:
        return bool(self.access_token) and bool(code) and self.code == code and self.expires_at > now

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "code": self.code,
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CredentialRecord | None":
        try:
            return cls(
                access_token=str(data.get("access_token") or ""),
                code=str(data.get("code") or ""),
                expires_at=datetime.fromisoformat(data["expires_at"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


class CredentialCache:
    """Per-fingerprint credential records on top of an ExpiringStore."""

    def __init__(self, store: ExpiringStore, clock=utcnow):
        self.store = store
        self._clock = clock

    # ── Issuing code (live configuration) ──

    def current_code(self, fp: str) -> str | None:
        code = self.store.get(CODE_PREFIX + fp)
        return str(code) if code else None

    def set_code(self, fp: str, code: str | None) -> None:
        """Record the code a future token must be issued for.

        A different code invalidates the cached record immediately.
        """
        if code:
            self.store.set(CODE_PREFIX + fp, code)
        else:
            self.store.delete(CODE_PREFIX + fp)
        record = self._load(fp)
        if record is not None and record.code != code:
            self.store.delete(TOKEN_PREFIX + fp)
            logger.info("Authorization code changed — dropped cached token")

    # ── Records ──

    def _load(self, fp: str) -> CredentialRecord | None:
        data = self.store.get(TOKEN_PREFIX + fp)
        if not isinstance(data, dict):
            return None
        return CredentialRecord.from_dict(data)

    def get_token(self, fp: str) -> CredentialRecord | None:
        """Return the cached record if still valid, else evict it."""
        record = self._load(fp)
        if record is None:
            return None
        if record.is_valid(self.current_code(fp), self._clock()):
            return record
        self.store.delete(TOKEN_PREFIX + fp)
        logger.info("Cached token no longer valid — evicted")
        return None

    def store_record(self, fp: str, record: CredentialRecord) -> None:
        """Overwrite unconditionally; the store expires it with the token."""
        self.store.set(TOKEN_PREFIX + fp, record.to_dict(), expires=record.expires_at)

    def evict(self, fp: str) -> None:
        """Drop the record but keep the issuing code (token rejected upstream)."""
        self.store.delete(TOKEN_PREFIX + fp)

    def clear(self, fp: str) -> None:
        """Forget both the record and the issuing code (logout)."""
        self.store.delete(TOKEN_PREFIX + fp)
        self.store.delete(CODE_PREFIX + fp)
        logger.info("Credentials cleared")
