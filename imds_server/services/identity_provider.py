""" Identity Provider: exchanges the source profile's identity for STS role credentials. """
import re
import logging
from typing import Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from imds_server.models.credentials import ProviderCredentials
from imds_server.utils.sts_client_factory import get_sts_client

logger = logging.getLogger(__name__)

# STS RoleSessionName is limited to 64 characters
MAX_SESSION_NAME_LENGTH = 64


class IdentityProviderError(Exception):
    """Raised when the identity provider cannot produce credentials or an identity."""


class IdentityProvider(Protocol):
    def assume_role(
        self, role_arn: str, session_name: str, duration_seconds: int
    ) -> ProviderCredentials:
        ...

    def caller_arn(self) -> str:
        ...


class StsIdentityProvider:
    """
    boto3-backed identity provider.

    A fresh client is created per call so rotated keys in the shared
    credentials file are picked up without restarting.
    """

    def __init__(self, source_profile: str, region_name: Optional[str] = None, timeout: float = 10):
        self.source_profile = source_profile
        self.region_name = region_name
        self.timeout = timeout

    def _client(self):
        return get_sts_client(self.source_profile, self.region_name, timeout=self.timeout)

    def assume_role(
        self, role_arn: str, session_name: str, duration_seconds: int
    ) -> ProviderCredentials:
        try:
            response = self._client().assume_role(
                RoleArn=role_arn,
                RoleSessionName=session_name,
                DurationSeconds=duration_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise IdentityProviderError(f"AssumeRole failed for {role_arn}: {str(e)}") from e

        creds = response["Credentials"]
        return ProviderCredentials(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds["SessionToken"],
            expires_at=creds["Expiration"],
        )

    def caller_arn(self) -> str:
        try:
            response = self._client().get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            raise IdentityProviderError(f"GetCallerIdentity failed: {str(e)}") from e
        return response["Arn"]


def session_name_from_arn(arn: str) -> str:
    """arn:aws:iam::123456789012:user/ops/alice -> alice"""
    return re.sub(r".*/", "", arn)[:MAX_SESSION_NAME_LENGTH]


def resolve_session_name(provider: IdentityProvider, default: str) -> str:
    """
    Derive a human-readable session name from the caller's identity.

    Never raises: any failure falls back to the default name so startup is not blocked.
    """
    try:
        name = session_name_from_arn(provider.caller_arn())
    except IdentityProviderError as e:
        logger.warning(f"Could not resolve caller identity, using '{default}': {str(e)}")
        return default

    if not name:
        logger.warning(f"Caller identity has no usable name, using '{default}'")
        return default
    return name
