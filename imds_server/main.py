"""
This is the main entry point for the metadata emulator, this will define and instantiate the FastAPI server
that serves the credentials kept fresh by the refresh scheduler.

By default it listens on 0.0.0.0:80, the port SDKs expect the metadata endpoint on.
"""

# imds_server/main.py
from fastapi import FastAPI
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional
from pydantic import ValidationError
import asyncio
import logging
import sys
import uvicorn

from imds_server.config import Settings, get_settings
from imds_server.controllers import credentials
from imds_server.services.credential_store import CredentialStore
from imds_server.services.identity_provider import (
    IdentityProvider,
    StsIdentityProvider,
    resolve_session_name,
)
from imds_server.services.refresh_scheduler import RefreshScheduler, utc_now

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[IdentityProvider] = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    settings = settings or get_settings()
    if "source_profile" not in settings.model_fields_set:
        logger.info(f"IMDS_SOURCE_PROFILE is not set, so using '{settings.source_profile}'")

    provider = provider or StsIdentityProvider(
        settings.source_profile,
        region_name=settings.aws_region,
        timeout=settings.provider_timeout,
    )

    # The store lives as long as the app; the scheduler gets the writable handle
    # and the routes only ever see the read-only one.
    store = CredentialStore()

    @asynccontextmanager
    async def lifespan_context(app: FastAPI):
        """
        Lifespan context to bootstrap the credential cache and run the refresh loop.
        """
        try:
            session_name = await asyncio.wait_for(
                asyncio.to_thread(resolve_session_name, provider, settings.default_session_name),
                timeout=settings.provider_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Caller identity lookup timed out after {settings.provider_timeout}s, "
                f"using '{settings.default_session_name}'"
            )
            session_name = settings.default_session_name

        scheduler = RefreshScheduler(
            store,
            provider,
            role_arn=settings.role_arn,
            session_name=session_name,
            duration_seconds=settings.duration_seconds,
            updatable_seconds=settings.updatable_seconds,
            check_interval=settings.check_interval,
            provider_timeout=settings.provider_timeout,
            clock=clock,
        )
        await scheduler.bootstrap()
        scheduler.start()
        app.state.scheduler = scheduler

        try:
            yield
        finally:
            await scheduler.stop(timeout=settings.shutdown_timeout)

    app = FastAPI(lifespan=lifespan_context)
    app.state.settings = settings
    app.state.credential_reader = store.reader()
    app.include_router(credentials.router)
    return app


def run() -> None:
    try:
        settings = get_settings()
    except ValidationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.critical(f"Invalid configuration (is IMDS_ROLE_ARN set?): {str(e)}")
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
