"""In-memory OTP storage with a capacity bound and per-entry TTL."""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from app.infra.notifications import mask_phone

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
DEFAULT_TTL_SECONDS = 600


@dataclass
class OtpRecord:
    """A live code issued for one subject."""

    subject: str
    code: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check whether the record is past its expiry."""
        return now >= self.expires_at


class OtpStore:
    """
    Bounded, time-limited mapping of subject -> code.

    Process-scoped and non-persistent: the store starts empty and is
    lost on restart (a lost code just needs to be re-issued).

    Entries are kept in recency order. Expired entries are dropped when
    read and before any eviction, so a still-valid code is only evicted
    when every slot holds a valid code.

    None of the methods await, so tasks interleaving on the event loop
    always see a consistent store. Concurrent puts for the same subject
    resolve last-write-wins.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize store.

        Args:
            capacity: Maximum number of live entries
            ttl_seconds: Lifetime of each entry from its last put
            clock: Monotonic time source (injectable for tests)
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: OrderedDict[str, OtpRecord] = OrderedDict()

    def put(self, subject: str, code: str) -> OtpRecord:
        """
        Insert or overwrite the code for a subject with a fresh expiry.

        Args:
            subject: Phone number the code belongs to
            code: Fixed-width numeric string

        Returns:
            The stored record
        """
        now = self._clock()
        record = OtpRecord(subject=subject, code=code, expires_at=now + self.ttl_seconds)

        if subject in self._records:
            self._records[subject] = record
            self._records.move_to_end(subject)
            return record

        if len(self._records) >= self.capacity:
            self._purge_expired(now)

        while len(self._records) >= self.capacity:
            evicted, _ = self._records.popitem(last=False)
            logger.debug(f"OTP store full, evicted least recently used subject {mask_phone(evicted)}")

        self._records[subject] = record
        return record

    def get(self, subject: str) -> Optional[str]:
        """
        Get the live code for a subject.

        Returns:
            The code, or None if absent or expired
        """
        record = self._records.get(subject)
        if record is None:
            return None

        if record.is_expired(self._clock()):
            del self._records[subject]
            return None

        self._records.move_to_end(subject)
        return record.code

    def remove(self, subject: str) -> None:
        """Delete the record for a subject. No-op if absent."""
        self._records.pop(subject, None)

    def purge_expired(self) -> int:
        """
        Drop all expired records.

        Returns:
            Number of records removed
        """
        return self._purge_expired(self._clock())

    def clear(self) -> None:
        """Remove every record."""
        self._records.clear()

    def _purge_expired(self, now: float) -> int:
        expired = [s for s, r in self._records.items() if r.is_expired(now)]
        for subject in expired:
            del self._records[subject]
        return len(expired)

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._records)

    def __contains__(self, subject: object) -> bool:
        record = self._records.get(subject)  # type: ignore[arg-type]
        return record is not None and not record.is_expired(self._clock())
