"""
Data models for queue messages.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from shortlink_app.timeutils import utcnow


class ClickEvent(BaseModel):
    """
    One classified visit to a link.

    Built by the click classifier right after a redirect decision,
    published to the queue, and written once to the click storage.
    Never updated afterwards.
    """

    short_code: str = Field(..., description="Short code of the visited link")
    link_id: int = Field(..., description="Link the click belonged to at capture time")
    timestamp: datetime = Field(default_factory=utcnow, description="When the click happened (UTC)")

    # Request metadata
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="User agent string")
    referrer: str = Field("Direct", description="HTTP referer, 'Direct' when absent")

    # Derived metadata
    browser: str = Field("Unknown", description="Browser family")
    os: str = Field("Unknown", description="Operating system family")
    device_type: str = Field("desktop", description="mobile, tablet or desktop")
    country: str = Field("Unknown", description="ISO country code")
    city: str = Field("Unknown", description="City name")
    is_bot: bool = False
    is_unique: bool = False
    visitor_id: Optional[str] = None

    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None

    # Set by queues that need acknowledgment; never serialized
    message_id: Optional[str] = Field(None, exclude=True)

    model_config = {
        "json_schema_extra": {
            "example": {
                "short_code": "2Bi",
                "link_id": 1,
                "timestamp": "2025-10-29T10:30:00Z",
                "ip_address": "8.8.8.8",
                "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0",
                "referrer": "https://twitter.com",
                "browser": "Chrome",
                "os": "Windows",
                "device_type": "desktop",
                "country": "US",
                "city": "Mountain View",
                "is_bot": False,
                "is_unique": True,
                "visitor_id": "3f2b0c1e9d8a4b7c8e6f5a4b3c2d1e0f",
                "utm_source": "newsletter",
                "utm_medium": None,
                "utm_campaign": None,
                "utm_term": None,
                "utm_content": None,
            }
        }
    }
