"""
Analytics aggregation over stored click events.

Every query first proves the caller owns the link with one combined
``short_code AND owner_id`` lookup, then hands the window to the click
storage. Counts are exact.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from shortlink_app.exceptions import NotFoundError
from shortlink_app.models.link import Link
from shortlink_app.schemas.analytics import (
    DeviceBucket,
    LocationBucket,
    ReferrerBucket,
    Summary,
    TimeseriesPoint,
    UtmBucket,
    UtmField,
)
from shortlink_app.storage.strategies import ClickStorageStrategy
from shortlink_app.timeutils import utcnow

DEFAULT_WINDOW_DAYS = 7


class AnalyticsService:
    def __init__(self, db: Session, storage: ClickStorageStrategy):
        self.db = db
        self.storage = storage

    def _verify_owner(self, short_code: str, owner_id: int) -> None:
        owned = self.db.query(Link.id).filter(
            Link.short_code == short_code,
            Link.owner_id == owner_id
        ).first()
        if owned is None:
            raise NotFoundError()

    def _window(self, short_code: str, owner_id: int, days: int, now: Optional[datetime]) -> datetime:
        self._verify_owner(short_code, owner_id)
        return (now or utcnow()) - timedelta(days=days)

    async def summary(
        self, short_code: str, owner_id: int, days: int = DEFAULT_WINDOW_DAYS, now: Optional[datetime] = None
    ) -> Summary:
        since = self._window(short_code, owner_id, days, now)
        return Summary(**await self.storage.summary(short_code, since))

    async def timeseries(
        self, short_code: str, owner_id: int, days: int = DEFAULT_WINDOW_DAYS, now: Optional[datetime] = None
    ) -> List[TimeseriesPoint]:
        since = self._window(short_code, owner_id, days, now)
        return [TimeseriesPoint(**row) for row in await self.storage.timeseries(short_code, since)]

    async def devices(
        self, short_code: str, owner_id: int, days: int = DEFAULT_WINDOW_DAYS, now: Optional[datetime] = None
    ) -> List[DeviceBucket]:
        since = self._window(short_code, owner_id, days, now)
        return [DeviceBucket(**row) for row in await self.storage.devices(short_code, since)]

    async def utm_breakdown(
        self,
        short_code: str,
        owner_id: int,
        field: UtmField,
        days: int = DEFAULT_WINDOW_DAYS,
        now: Optional[datetime] = None,
    ) -> List[UtmBucket]:
        """Clicks per distinct value of one UTM tag; untagged clicks are left out"""
        since = self._window(short_code, owner_id, days, now)
        rows = await self.storage.utm_breakdown(short_code, since, UtmField(field).column)
        return [UtmBucket(**row) for row in rows]

    async def locations(
        self, short_code: str, owner_id: int, days: int = DEFAULT_WINDOW_DAYS, now: Optional[datetime] = None
    ) -> List[LocationBucket]:
        since = self._window(short_code, owner_id, days, now)
        return [LocationBucket(**row) for row in await self.storage.locations(short_code, since)]

    async def referrers(
        self, short_code: str, owner_id: int, days: int = DEFAULT_WINDOW_DAYS, now: Optional[datetime] = None
    ) -> List[ReferrerBucket]:
        since = self._window(short_code, owner_id, days, now)
        return [ReferrerBucket(**row) for row in await self.storage.referrers(short_code, since)]
