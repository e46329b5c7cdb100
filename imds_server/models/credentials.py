from pydantic import BaseModel, Field, ConfigDict, field_serializer, field_validator
from datetime import datetime, timedelta, timezone
from enum import Enum

CREDENTIAL_TYPE = "AWS-HMAC"

# Timestamp reported before any credential has been issued
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CredentialStatus(str, Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"


class ProviderCredentials(BaseModel):
    """Raw credential material handed back by an identity provider."""
    access_key_id: str
    secret_access_key: str
    session_token: str
    expires_at: datetime

    model_config = ConfigDict(frozen=True)


class CredentialSet(BaseModel):
    """
    The credential document served on the role-credential route.

    Instances are immutable, so a reader holding a reference always sees the
    fields of exactly one commit.
    """
    status: CredentialStatus = Field(..., alias="Code")
    type: str = Field(CREDENTIAL_TYPE, alias="Type")
    access_key_id: str = Field("", alias="AccessKeyId")
    secret_access_key: str = Field("", alias="SecretAccessKey")
    session_token: str = Field("", alias="Token")
    last_updated: datetime = Field(ZERO_TIME, alias="LastUpdated")
    expiration: datetime = Field(ZERO_TIME, alias="Expiration")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("last_updated", "expiration")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_serializer("last_updated", "expiration")
    def serialize_timestamp(self, value: datetime) -> str:
        # isoformat keeps the four-digit year that strftime drops for year 1
        return _as_utc(value).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"

    @classmethod
    def empty(cls) -> "CredentialSet":
        """Zero value installed before the first refresh."""
        return cls(status=CredentialStatus.FAILURE, type="")

    @classmethod
    def failure(cls) -> "CredentialSet":
        """Value produced by a provider call that did not return credentials."""
        return cls(status=CredentialStatus.FAILURE, type="")

    @classmethod
    def from_provider(
        cls, creds: ProviderCredentials, now: datetime, duration_seconds: int
    ) -> "CredentialSet":
        """
        Build a Success value from provider output.

        Expiration is pinned to now + duration_seconds rather than the provider's
        own expiry, so the served window always starts at commit time.
        """
        now = _as_utc(now)
        return cls(
            status=CredentialStatus.SUCCESS,
            type=CREDENTIAL_TYPE,
            access_key_id=creds.access_key_id,
            secret_access_key=creds.secret_access_key,
            session_token=creds.session_token,
            last_updated=now,
            expiration=now + timedelta(seconds=duration_seconds),
        )

    @property
    def is_success(self) -> bool:
        return self.status == CredentialStatus.SUCCESS

    def to_imds_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_imds_json(cls, payload: str) -> "CredentialSet":
        return cls.model_validate_json(payload)


class CacheRecord(BaseModel):
    current: CredentialSet
    updated_at: datetime

    model_config = ConfigDict(frozen=True)
