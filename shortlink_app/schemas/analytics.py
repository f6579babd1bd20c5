from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class UtmField(str, Enum):
    """UTM dimensions that can be broken down, as named by the dashboard"""
    SOURCE = "utmSource"
    MEDIUM = "utmMedium"
    CAMPAIGN = "utmCampaign"
    TERM = "utmTerm"
    CONTENT = "utmContent"

    @property
    def column(self) -> str:
        return {
            UtmField.SOURCE: "utm_source",
            UtmField.MEDIUM: "utm_medium",
            UtmField.CAMPAIGN: "utm_campaign",
            UtmField.TERM: "utm_term",
            UtmField.CONTENT: "utm_content",
        }[self]


class Summary(BaseModel):
    """Serialized with the dashboard's camelCase keys"""
    total_clicks: int = Field(0, alias="totalClicks")
    unique_visitors: int = Field(0, alias="uniqueVisitors")

    model_config = ConfigDict(populate_by_name=True)


class TimeseriesPoint(BaseModel):
    date: str
    clicks: int
    unique: int


class DeviceBucket(BaseModel):
    name: Optional[str]
    value: int


class UtmBucket(BaseModel):
    name: str
    clicks: int


class LocationBucket(BaseModel):
    country: Optional[str]
    city: Optional[str]
    clicks: int


class ReferrerBucket(BaseModel):
    referrer: Optional[str]
    clicks: int


T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Envelope for every analytics answer"""
    status: str = "success"
    data: T
