# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Expiring key/value store on top of a durable key/value backend.

The durable backend only needs ``get(key, default)`` and ``update(key, value)``.
Two are provided:
  MemoryStore    — in-process dict (tests, throwaway sessions)
  JsonFileStore  — one JSON file, atomic writes (temp file + rename)

ExpiringStore keeps all of its entries in one "repository" dict stored under
a single backend key:

    {"<normalised key>": {"value": ..., "expires": "2026-01-01T12:00:00+00:00"}}

Entries without "expires" never expire.  Expired entries are removed lazily,
on the read that finds them.

Usage:
    store = ExpiringStore(JsonFileStore("/var/lib/playdeck/cache.json"), "tokens")
    store.set("abc", {"token": "..."}, expires=3600)
    store.get("abc")            # -> {"token": "..."} for the next hour
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

_MISSING = object()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    """Durable-store stand-in that lives in memory."""

    def __init__(self, data: dict | None = None):
        self._data = dict(data or {})

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def update(self, key: str, value) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class JsonFileStore:
    """Durable store backed by a single JSON file.

    The file is re-read on every ``get`` so several processes sharing the file
    see each other's writes.  Writes are atomic so a crash mid-write never
    corrupts the file.
    """

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> dict:
        try:
            with open(self.path) as f:
                data = json.load(f)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.warning("Ignoring corrupt store %s: %s", self.path, e)
            return {}

    def get(self, key: str, default=None):
        return self._load().get(key, default)

    def update(self, key: str, value) -> None:
        data = self._load()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value

        # Atomic write: temp file in same directory, then rename
        d = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(d, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=d, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(tmp, self.path)
        except Exception:
            # Clean up temp file on failure
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise


def _to_expiry(expires, now: datetime) -> datetime | None:
    """Turn seconds / timedelta / datetime / ISO string into an aware datetime."""
    if expires is None:
        return None
    if isinstance(expires, datetime):
        return expires if expires.tzinfo else expires.replace(tzinfo=timezone.utc)
    if isinstance(expires, timedelta):
        return now + expires
    if isinstance(expires, (int, float)):
        return now + timedelta(seconds=expires)
    return _parse_expiry(str(expires))


def _parse_expiry(text: str) -> datetime | None:
    try:
        value = datetime.fromisoformat(text.strip())
    except ValueError:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ExpiringStore:
    """Key/value cache with optional per-entry expiry."""

    def __init__(self, backend, repo_key: str, clock=utcnow):
        self.backend = backend
        self.repo_key = str(repo_key)
        self._clock = clock

    @staticmethod
    def normalize_key(key) -> str:
        return str(key if key is not None else "").strip().lower()

    def _repository(self) -> dict:
        repo = self.backend.get(self.repo_key)
        return dict(repo) if isinstance(repo, dict) else {}

    def _save(self, repo: dict) -> bool:
        try:
            self.backend.update(self.repo_key, repo)
            return True
        except Exception as e:
            logger.error("Could not persist %s: %s", self.repo_key, e)
            return False

    def get(self, key, default=None):
        """Return the value for *key* unless it is missing or expired."""
        key = self.normalize_key(key)
        repo = self._repository()
        item = repo.get(key)
        if not isinstance(item, dict):
            return default

        expires = item.get("expires")
        if not expires:
            return item.get("value")  # does not expire

        expiry = _parse_expiry(str(expires))
        if expiry is not None and expiry > self._clock():
            return item.get("value")

        # Expired (or unreadable expiry): drop it and persist the deletion
        del repo[key]
        self._save(repo)
        logger.debug("Evicted expired entry %s from %s", key, self.repo_key)
        return default

    def set(self, key, value, expires=None) -> bool:
        """Store *value*; *expires* is seconds, a timedelta or a datetime."""
        key = self.normalize_key(key)
        expiry = _to_expiry(expires, self._clock())
        repo = self._repository()
        item = {"value": value}
        if expiry is not None:
            item["expires"] = expiry.isoformat()
        repo[key] = item
        return self._save(repo)

    def has(self, key) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def delete(self, key) -> bool:
        key = self.normalize_key(key)
        repo = self._repository()
        if key not in repo:
            return False
        del repo[key]
        return self._save(repo)
