"""
Shared-secret models
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

KEY_LENGTHS = (16, 24, 32)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Secret(BaseModel):
    """
    Shared symmetric secret and its absolute expiry.

    Instances are immutable; a refresh replaces the whole object.
    """
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Secret as issued; its UTF-8 bytes are the AES key")
    expires_at: datetime

    @field_validator("key")
    @classmethod
    def validate_key_length(cls, v: str) -> str:
        if len(v.encode("utf-8")) not in KEY_LENGTHS:
            raise ValueError("Key must be 16, 24 or 32 bytes long")
        return v

    @field_validator("expires_at")
    @classmethod
    def validate_expires_at(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @property
    def value(self) -> bytes:
        """Raw key bytes"""
        return self.key.encode("utf-8")

    @property
    def is_expired(self) -> bool:
        return utcnow() >= self.expires_at

    @property
    def ttl_remaining(self) -> float:
        """Get remaining time-to-live in seconds"""
        if self.is_expired:
            return 0.0
        return (self.expires_at - utcnow()).total_seconds()


class KeyIssuanceResponse(BaseModel):
    """
    Body returned by the key-issuing service.

    ``key_expiry`` may be ISO-8601 or epoch seconds.
    """
    model_config = ConfigDict(extra="ignore")

    key: str = Field(..., min_length=1)
    key_expiry: datetime

    def to_secret(self) -> Secret:
        return Secret(key=self.key, expires_at=self.key_expiry)


class KeyDistributionResponse(BaseModel):
    """
    Body served to browsers by the key distribution endpoint
    """
    key: str
    expiry: datetime

    @classmethod
    def from_secret(cls, secret: Secret) -> "KeyDistributionResponse":
        return cls(key=secret.key, expiry=secret.expires_at)
