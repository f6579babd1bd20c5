import re
from typing import Optional
from datetime import datetime

from pydantic import BaseModel, HttpUrl, Field, computed_field, ConfigDict, field_validator

from shortlink_app.config import settings
from shortlink_app.services.entitlements import PREMIUM_LINK_FIELDS
from shortlink_app.timeutils import ensure_utc, utcnow

ALIAS_PATTERN = re.compile(r"^[a-z0-9-]+$")

# Would shadow public routes if used as a single-segment key
RESERVED_ALIASES = frozenset({
    "api", "redirect", "health", "docs", "redoc", "openapi.json",
})


def _blank_to_none(value):
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


class DeviceUrls(BaseModel):
    ios: Optional[HttpUrl] = None
    android: Optional[HttpUrl] = None

    @field_validator("ios", "android", mode="before")
    @classmethod
    def blank_is_unset(cls, value):
        return _blank_to_none(value)


class LinkFeatures(BaseModel):
    """Premium link features shared by create and update payloads"""

    custom_alias: Optional[str] = Field(None, description="Owner-chosen public key")
    expires_at: Optional[datetime] = Field(None, description="Link is void at/after this instant")
    activates_at: Optional[datetime] = Field(None, description="Link is void before this instant")
    device_urls: Optional[DeviceUrls] = None

    @field_validator("custom_alias", mode="before")
    @classmethod
    def normalize_alias(cls, value):
        value = _blank_to_none(value)
        if value is None:
            return None
        alias = re.sub(r"\s+", "-", str(value).strip().lower())
        if not 3 <= len(alias) <= 30:
            raise ValueError("Alias must be between 3 and 30 characters")
        if not ALIAS_PATTERN.match(alias):
            raise ValueError("Alias may only contain letters, digits and hyphens")
        if alias in RESERVED_ALIASES:
            raise ValueError(f"Alias '{alias}' is reserved and cannot be used.")
        return alias

    @field_validator("expires_at", "activates_at", mode="before")
    @classmethod
    def blank_date_is_unset(cls, value):
        return _blank_to_none(value)

    @field_validator("expires_at", "activates_at")
    @classmethod
    def must_be_future(cls, value: Optional[datetime]):
        value = ensure_utc(value)
        if value is not None and value <= utcnow():
            raise ValueError("Date must be in the future")
        return value


class LinkCreate(LinkFeatures):
    original_url: HttpUrl = Field(..., description="The destination URL to be shortened")
    password: Optional[str] = Field(None, min_length=6)

    @field_validator("password", mode="before")
    @classmethod
    def blank_password_is_unset(cls, value):
        return _blank_to_none(value)

    def premium_fields(self) -> set:
        requested = set()
        for name in ("custom_alias", "expires_at", "activates_at", "password"):
            if getattr(self, name) is not None:
                requested.add(name)
        if self.device_urls and (self.device_urls.ios or self.device_urls.android):
            requested.add("device_urls")
        return requested


class LinkUpdate(LinkFeatures):
    """
    Partial update. Only fields present in the request body are applied.

    ``password=""`` clears the password; omitting it leaves it unchanged.
    ``expires_at``/``activates_at`` may be sent as null to clear them.
    """
    original_url: Optional[HttpUrl] = None
    password: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("password")
    @classmethod
    def password_length(cls, value: Optional[str]):
        if value and len(value) < 6:
            raise ValueError("Password must be at least 6 characters")
        return value

    def premium_fields(self) -> set:
        return PREMIUM_LINK_FIELDS & self.model_fields_set


class GenerateResponse(BaseModel):
    status: str = "success"
    message: str
    short_code: str
    created: bool

    @computed_field
    @property
    def short_url(self) -> str:
        return f"{settings.base_url}/{self.short_code}"


class MessageResponse(BaseModel):
    status: str = "success"
    message: str


class LinkSummary(BaseModel):
    """Owner listing projection (never includes the password hash)"""
    short_code: str
    custom_alias: Optional[str] = None
    original_url: str
    total_clicks: int
    is_active: bool

    @computed_field
    @property
    def short_url(self) -> str:
        return f"{settings.base_url}/{self.custom_alias or self.short_code}"

    model_config = ConfigDict(from_attributes=True)


class LinkDetails(LinkSummary):
    expires_at: Optional[datetime] = None
    activates_at: Optional[datetime] = None
    device_url_ios: Optional[str] = None
    device_url_android: Optional[str] = None
    has_password: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RedirectTarget(BaseModel):
    """
    Snapshot of the fields the redirect path needs.

    This is what gets cached, so it must stay JSON-serializable.
    """
    id: int
    short_code: str
    custom_alias: Optional[str] = None
    original_url: str
    owner_id: int
    is_active: bool
    expires_at: Optional[datetime] = None
    activates_at: Optional[datetime] = None
    device_url_ios: Optional[str] = None
    device_url_android: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("expires_at", "activates_at")
    @classmethod
    def as_utc(cls, value: Optional[datetime]):
        return ensure_utc(value)
