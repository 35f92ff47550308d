"""Replay protection for wallet challenges.

Two stores share the same lifecycle shape (issue, consume once, expire):

* :class:`DownloadNonceStore` persists nonces per (asset, wallet) and consumes
  them with a single conditional ``UPDATE``.
* :class:`ChallengeStore` keeps one pending sign-in challenge per wallet in
  process memory behind a lock.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock

from sqlalchemy import and_, delete, select, update
from sqlalchemy.orm import Session

from walletgate.db.time import ensure_utc, utcnow
from walletgate.models import DownloadNonce, DownloadToken

logger = logging.getLogger(__name__)

NONCE_BYTES = 32
DEFAULT_NONCE_TTL_SECONDS = 300

Clock = Callable[[], datetime]


def generate_nonce() -> str:
    """Return a hex-encoded nonce with 256 bits of entropy."""
    return secrets.token_hex(NONCE_BYTES)


@dataclass(frozen=True)
class IssuedNonce:
    """Nonce handed to the client together with its expiry."""

    nonce: str
    expires_at: datetime


class DownloadNonceStore:
    """Persisted single-use nonces for gated downloads."""

    def __init__(
        self,
        db: Session,
        *,
        ttl_seconds: int = DEFAULT_NONCE_TTL_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def issue(self, asset_id: str, wallet: str, *, expires_at: datetime | None = None) -> IssuedNonce:
        """Insert a fresh unused nonce for ``(asset_id, wallet)``."""
        now = self._clock()
        record = DownloadNonce(
            nonce=generate_nonce(),
            asset_id=asset_id,
            wallet=wallet,
            created_at=now,
            expires_at=expires_at or now + self._ttl,
        )
        self._db.add(record)
        self._db.commit()
        return IssuedNonce(nonce=record.nonce, expires_at=ensure_utc(record.expires_at))

    def consume(self, nonce: str, asset_id: str, wallet: str) -> DownloadNonce | None:
        """Mark a matching, unused, unexpired nonce as used.

        The match, the ``used_at IS NULL`` check and the write happen in one
        UPDATE statement, so of several concurrent callers at most one sees a
        changed row. Unknown, used and expired nonces all return None.
        """
        now = self._clock()
        result = self._db.execute(
            update(DownloadNonce)
            .where(
                and_(
                    DownloadNonce.nonce == nonce,
                    DownloadNonce.asset_id == asset_id,
                    DownloadNonce.wallet == wallet,
                    DownloadNonce.used_at.is_(None),
                    DownloadNonce.expires_at > now,
                )
            )
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        self._db.commit()
        if result.rowcount != 1:
            return None
        return self._db.execute(
            select(DownloadNonce).where(DownloadNonce.nonce == nonce)
        ).scalar_one_or_none()

    def purge_expired(self) -> int:
        """Delete expired download nonces and tokens; return rows removed."""
        now = self._clock()
        nonces = self._db.execute(
            delete(DownloadNonce)
            .where(DownloadNonce.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        tokens = self._db.execute(
            delete(DownloadToken)
            .where(DownloadToken.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        self._db.commit()
        return int(nonces.rowcount or 0) + int(tokens.rowcount or 0)


@dataclass(frozen=True)
class PendingChallenge:
    """Sign-in challenge waiting for a signature."""

    nonce: str
    wallet_address: str
    expires_at: datetime


class ChallengeStore:
    """In-memory pending sign-in challenges, one per wallet.

    Issuing a challenge for a wallet replaces any earlier unconsumed one.
    All mutations take the instance lock, so an instance may be shared by
    concurrent request handlers and the background sweeper.
    """

    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_NONCE_TTL_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: dict[str, PendingChallenge] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def issue(self, wallet_address: str) -> PendingChallenge:
        """Create (or replace) the pending challenge for a wallet."""
        challenge = PendingChallenge(
            nonce=generate_nonce(),
            wallet_address=wallet_address,
            expires_at=self._clock() + self._ttl,
        )
        with self._lock:
            self._entries[wallet_address] = challenge
        return challenge

    def lookup(self, wallet_address: str) -> PendingChallenge | None:
        """Return the pending challenge for a wallet without consuming it."""
        with self._lock:
            return self._entries.get(wallet_address)

    def consume(self, wallet_address: str, nonce: str) -> bool:
        """Delete the wallet's challenge if it matches ``nonce`` and is unexpired.

        Returns False when there is no entry, the nonce differs or the entry
        expired (expired entries are removed as a side effect).
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(wallet_address)
            if entry is None or entry.nonce != nonce:
                return False
            if entry.expires_at <= now:
                del self._entries[wallet_address]
                return False
            del self._entries[wallet_address]
            return True

    def discard(self, wallet_address: str, nonce: str | None = None) -> None:
        """Remove a wallet's challenge; missing entries are ignored.

        With ``nonce`` only that exact challenge is removed, leaving any newer
        one issued in the meantime.
        """
        with self._lock:
            entry = self._entries.get(wallet_address)
            if entry is None or (nonce is not None and entry.nonce != nonce):
                return
            del self._entries[wallet_address]

    def purge_expired(self) -> int:
        """Remove every expired challenge; return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                self._entries.pop(key, None)
        if expired:
            logger.debug("Purged %d expired sign-in challenges", len(expired))
        return len(expired)
