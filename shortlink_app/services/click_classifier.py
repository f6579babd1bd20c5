"""
Click classification.

Turns the raw request that hit a redirect into a ClickEvent: device and
browser from the user agent, location from the client IP, uniqueness from
a per-link visitor cookie, and UTM tags from the destination URL.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional
from urllib.parse import parse_qs, urlsplit

from fastapi import Request
from user_agents import parse as parse_user_agent

from shortlink_app.queue.models import ClickEvent
from shortlink_app.services.geo import GeoLookupStrategy
from shortlink_app.timeutils import utcnow

BOT_PATTERN = re.compile(r"bot|crawler|spider|crawling", re.IGNORECASE)
VISITOR_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

UTM_PARAMETERS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")


@dataclass
class RequestMeta:
    """The parts of an inbound request the classifier looks at"""
    user_agent: str = ""
    referrer: Optional[str] = None
    forwarded_for: Optional[str] = None
    peer_address: Optional[str] = None
    cookies: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: Request) -> "RequestMeta":
        headers = request.headers
        return cls(
            user_agent=headers.get("user-agent", ""),
            referrer=headers.get("referer") or headers.get("referrer"),
            forwarded_for=headers.get("x-forwarded-for"),
            peer_address=request.client.host if request.client else None,
            cookies=dict(request.cookies),
        )

    @property
    def client_ip(self) -> Optional[str]:
        """First X-Forwarded-For entry wins, else the socket peer"""
        if self.forwarded_for:
            first = self.forwarded_for.split(",")[0].strip()
            if first:
                return first
        return self.peer_address


@dataclass(frozen=True)
class VisitorCookie:
    name: str
    value: str
    max_age: int


@dataclass
class Classification:
    event: ClickEvent
    # Present when the visitor was unknown and a cookie must be (re)issued
    cookie: Optional[VisitorCookie] = None


def extract_utm(destination_url: str) -> dict:
    """UTM tags of the destination; absent or blank parameters are None"""
    query = parse_qs(urlsplit(destination_url).query)
    return {name: query[name][0] if name in query else None for name in UTM_PARAMETERS}


def _family(value: Optional[str]) -> str:
    if not value or value == "Other":
        return "Unknown"
    return value


def _device_type(user_agent) -> str:
    if user_agent.is_tablet:
        return "tablet"
    if user_agent.is_mobile:
        return "mobile"
    return "desktop"


class ClickClassifier:
    def __init__(
        self,
        geo: GeoLookupStrategy,
        cookie_prefix: str = "_vid_",
        cookie_max_age: int = 365 * 24 * 60 * 60,
    ):
        self.geo = geo
        self.cookie_prefix = cookie_prefix
        self.cookie_max_age = cookie_max_age

    def cookie_name(self, short_code: str) -> str:
        return f"{self.cookie_prefix}{short_code}"

    def classify(
        self,
        meta: RequestMeta,
        destination_url: str,
        short_code: str,
        link_id: int,
        now: Optional[datetime] = None,
    ) -> Classification:
        user_agent_string = meta.user_agent or ""
        user_agent = parse_user_agent(user_agent_string)

        ip_address = meta.client_ip
        location = self.geo.lookup(ip_address)

        cookie = None
        cookie_name = self.cookie_name(short_code)
        visitor_id = meta.cookies.get(cookie_name)
        if visitor_id and VISITOR_ID_PATTERN.match(visitor_id):
            is_unique = False
        else:
            is_unique = True
            visitor_id = uuid.uuid4().hex
            cookie = VisitorCookie(cookie_name, visitor_id, self.cookie_max_age)

        event = ClickEvent(
            short_code=short_code,
            link_id=link_id,
            timestamp=now or utcnow(),
            ip_address=ip_address,
            user_agent=user_agent_string or None,
            referrer=meta.referrer or "Direct",
            browser=_family(user_agent.browser.family),
            os=_family(user_agent.os.family),
            device_type=_device_type(user_agent),
            country=location.country,
            city=location.city,
            is_bot=bool(BOT_PATTERN.search(user_agent_string)),
            is_unique=is_unique,
            visitor_id=visitor_id,
            **extract_utm(destination_url),
        )
        return Classification(event=event, cookie=cookie)
