""" Credential Store: holds the single cached credential set served by the facade. """
import threading
import logging
from datetime import datetime
from typing import Optional

from imds_server.models.credentials import CacheRecord, CredentialSet, ZERO_TIME

logger = logging.getLogger(__name__)


class CredentialReader:
    """Read-only handle on a CredentialStore, given to the HTTP facade."""

    def __init__(self, store: "CredentialStore"):
        self._store = store

    def read(self) -> CredentialSet:
        return self._store.read()


class CredentialStore:
    """
    Owns the process-wide CacheRecord.

    Every mutation installs a new immutable record, so the lock only guards a
    reference swap and never spans provider I/O.
    """

    def __init__(self, initial: Optional[CacheRecord] = None):
        self._lock = threading.Lock()
        self._record = initial or CacheRecord(
            current=CredentialSet.empty(), updated_at=ZERO_TIME
        )

    def read(self) -> CredentialSet:
        with self._lock:
            return self._record.current

    def updated_at(self) -> datetime:
        with self._lock:
            return self._record.updated_at

    def try_commit(self, candidate: CredentialSet, now: datetime) -> bool:
        """Install candidate only if it is a Success value. Returns whether it was installed."""
        if not candidate.is_success:
            return False
        record = CacheRecord(current=candidate, updated_at=now)
        with self._lock:
            self._record = record
        return True

    def bootstrap(self, candidate: CredentialSet, now: datetime) -> None:
        """
        Install candidate unconditionally.

        Only used for the first population at startup, where there is no prior
        good value to protect. This is the one path that can expose a Failure
        document to callers.
        """
        if not candidate.is_success:
            logger.warning("Bootstrapping credential cache with a failed refresh result")
        record = CacheRecord(current=candidate, updated_at=now)
        with self._lock:
            self._record = record

    def reader(self) -> CredentialReader:
        return CredentialReader(self)
