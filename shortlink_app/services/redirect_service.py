"""
Redirect resolution.

Given an inbound public key, decide whether to redirect, block or report
not-found. Storage errors are not caught here; they surface as 500s.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
from user_agents import parse as parse_user_agent

from shortlink_app.schemas.link import RedirectTarget
from shortlink_app.services.entitlements import is_premium
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.user_service import UserService
from shortlink_app.timeutils import utcnow

logger = structlog.get_logger(__name__)


class RedirectState(str, Enum):
    REDIRECTING = "redirecting"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"


@dataclass
class RedirectDecision:
    state: RedirectState
    message: str
    link: Optional[RedirectTarget] = None
    destination: Optional[str] = None
    owner_premium: bool = False


NOT_FOUND_MESSAGE = "Short URL not found"
PAUSED_MESSAGE = "This URL is currently paused. Please try again later."
NOT_ACTIVE_YET_MESSAGE = "This URL is not active yet. Please try again later."


def merge_query_params(url: str, params: Mapping[str, str]) -> str:
    """
    Overlay inbound query parameters on a destination URL.

    Existing keys are replaced in place (repeats of a replaced key are
    dropped), new keys are appended.
    """
    if not params:
        return url

    parts = urlsplit(url)
    pending = dict(params)
    merged = []
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key not in params:
            merged.append((key, value))
        elif key in pending:
            merged.append((key, pending.pop(key)))
    merged.extend(pending.items())

    return urlunsplit(parts._replace(query=urlencode(merged)))


def device_destination(link: RedirectTarget, user_agent: Optional[str]) -> str:
    """Per-device override for iOS/Android visitors, else the original URL"""
    if user_agent and (link.device_url_ios or link.device_url_android):
        os_family = parse_user_agent(user_agent).os.family
        if os_family == "iOS" and link.device_url_ios:
            return link.device_url_ios
        if os_family == "Android" and link.device_url_android:
            return link.device_url_android
    return link.original_url


class RedirectService:
    """
    Redirect state machine: Resolving -> Redirecting | Blocked | NotFound.

    Activation windows are checked here, on every resolve:
    - at/after ``expires_at`` the link is void (NotFound)
    - before ``activates_at`` it behaves like a paused link (Blocked)
    """

    def __init__(self, links: LinkService, users: UserService):
        self.links = links
        self.users = users

    async def resolve(
        self,
        key: str,
        query_params: Optional[Mapping[str, str]] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RedirectDecision:
        now = now or utcnow()

        link = await self.links.resolve_for_redirect(key)
        if link is None or (link.expires_at and now >= link.expires_at):
            return RedirectDecision(RedirectState.NOT_FOUND, NOT_FOUND_MESSAGE)

        if not link.is_active:
            return RedirectDecision(RedirectState.BLOCKED, PAUSED_MESSAGE, link=link)

        if link.activates_at and now < link.activates_at:
            return RedirectDecision(RedirectState.BLOCKED, NOT_ACTIVE_YET_MESSAGE, link=link)

        premium = is_premium(self.users.get_plan(link.owner_id))

        destination = device_destination(link, user_agent)
        if premium:
            # Free-tier links never carry the visitor's query string
            destination = merge_query_params(destination, query_params or {})

        return RedirectDecision(
            RedirectState.REDIRECTING,
            "Short URL is valid",
            link=link,
            destination=destination,
            owner_premium=premium,
        )
