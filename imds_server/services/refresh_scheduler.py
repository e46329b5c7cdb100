""" Refresh Scheduler: keeps the credential store populated ahead of expiry. """
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from imds_server.models.credentials import CredentialSet
from imds_server.services.credential_store import CredentialStore
from imds_server.services.identity_provider import IdentityProvider, IdentityProviderError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RefreshScheduler:
    """
    Single periodic task that owns every mutation of the credential store.

    On each tick the store is refreshed if its last successful update is at
    least ``updatable_seconds`` old. Failed refreshes are logged and dropped,
    the cached credential stays in place, and the next tick simply tries again.
    """

    def __init__(
        self,
        store: CredentialStore,
        provider: IdentityProvider,
        role_arn: str,
        session_name: str,
        duration_seconds: int = 1200,
        updatable_seconds: int = 600,
        check_interval: float = 60,
        provider_timeout: float = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.provider = provider
        self.role_arn = role_arn
        self.session_name = session_name
        self.duration_seconds = duration_seconds
        self.updatable_seconds = updatable_seconds
        self.check_interval = check_interval
        self.provider_timeout = provider_timeout
        self.clock = clock
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def fetch(self) -> CredentialSet:
        """
        Ask the provider for fresh credentials without touching the store.

        The blocking boto3 call runs in a worker thread so the facade keeps
        serving the previous value meanwhile.
        """
        try:
            creds = await asyncio.wait_for(
                asyncio.to_thread(
                    self.provider.assume_role,
                    self.role_arn,
                    self.session_name,
                    self.duration_seconds,
                ),
                timeout=self.provider_timeout,
            )
        except IdentityProviderError as e:
            logger.error(f"Credential refresh failed: {str(e)}")
            return CredentialSet.failure()
        except asyncio.TimeoutError:
            logger.error(f"Credential refresh timed out after {self.provider_timeout}s")
            return CredentialSet.failure()
        except Exception:
            logger.exception("Unexpected error from identity provider during credential refresh")
            return CredentialSet.failure()

        return CredentialSet.from_provider(creds, self.clock(), self.duration_seconds)

    async def bootstrap(self) -> CredentialSet:
        """First population: install whatever the provider returns, even a failure."""
        logger.info(f"Bootstrapping credentials for {self.role_arn} as session '{self.session_name}'")
        result = await self.fetch()
        # a success is stamped with its own LastUpdated
        now = result.last_updated if result.is_success else self.clock()
        self.store.bootstrap(result, now)
        if result.is_success:
            logger.info(f"🔄 Initial credentials loaded, expiring {result.expiration.isoformat()}")
        return result

    def is_stale(self, now: datetime) -> bool:
        elapsed = (now - self.store.updated_at()).total_seconds()
        return elapsed >= self.updatable_seconds

    async def tick(self) -> bool:
        """Run one staleness check. Returns True when new credentials were committed."""
        if not self.is_stale(self.clock()):
            return False

        result = await self.fetch()
        if not result.is_success:
            logger.warning("Keeping previously cached credentials after failed refresh")
            return False

        committed = self.store.try_commit(result, result.last_updated)
        if committed:
            logger.info(f"🔄 Refreshed credentials, expiring {result.expiration.isoformat()}")
        return committed

    async def run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.check_interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.tick()
            except Exception:
                logger.exception("Unexpected error during credential refresh tick")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self.run(), name="credential-refresh")
            logger.info(f"Refresh scheduler started, checking every {self.check_interval}s")
        return self._task

    async def stop(self, timeout: float = 10) -> None:
        """
        Stop the tick loop.

        An in-flight refresh gets up to ``timeout`` seconds to finish before the
        task is cancelled and its result abandoned.
        """
        if self._task is None:
            return

        self._stopping.set()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Refresh scheduler did not stop within {timeout}s, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
        logger.info("Refresh scheduler stopped")
