from typing import Annotated, List

from fastapi import APIRouter, Depends, Query

from shortlink_app.dependencies import get_analytics_service
from shortlink_app.schemas.analytics import (
    DataResponse,
    DeviceBucket,
    LocationBucket,
    ReferrerBucket,
    Summary,
    TimeseriesPoint,
    UtmBucket,
    UtmField,
)
from shortlink_app.security import Identity, require_premium
from shortlink_app.services.analytics_service import AnalyticsService, DEFAULT_WINDOW_DAYS

router = APIRouter(prefix="/analytics/{short_code}", tags=["analytics"])

Days = Annotated[int, Query(ge=1, le=365, description="Window length in days, ending now")]


@router.get("/summary", response_model=DataResponse[Summary])
async def get_summary(
    short_code: str,
    days: Days = DEFAULT_WINDOW_DAYS,
    identity: Identity = Depends(require_premium),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    return DataResponse(data=await analytics.summary(short_code, identity.owner_id, days))


@router.get("/timeseries", response_model=DataResponse[List[TimeseriesPoint]])
async def get_timeseries(
    short_code: str,
    days: Days = DEFAULT_WINDOW_DAYS,
    identity: Identity = Depends(require_premium),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    return DataResponse(data=await analytics.timeseries(short_code, identity.owner_id, days))


@router.get("/devices", response_model=DataResponse[List[DeviceBucket]])
async def get_devices(
    short_code: str,
    days: Days = DEFAULT_WINDOW_DAYS,
    identity: Identity = Depends(require_premium),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    return DataResponse(data=await analytics.devices(short_code, identity.owner_id, days))


@router.get("/utmData", response_model=DataResponse[List[UtmBucket]])
async def get_utm_data(
    short_code: str,
    days: Days = DEFAULT_WINDOW_DAYS,
    utm_param: UtmField = Query(UtmField.SOURCE, alias="utmParam"),
    identity: Identity = Depends(require_premium),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    return DataResponse(data=await analytics.utm_breakdown(short_code, identity.owner_id, utm_param, days))


@router.get("/locations", response_model=DataResponse[List[LocationBucket]])
async def get_locations(
    short_code: str,
    days: Days = DEFAULT_WINDOW_DAYS,
    identity: Identity = Depends(require_premium),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    return DataResponse(data=await analytics.locations(short_code, identity.owner_id, days))


@router.get("/referrers", response_model=DataResponse[List[ReferrerBucket]])
async def get_referrers(
    short_code: str,
    days: Days = DEFAULT_WINDOW_DAYS,
    identity: Identity = Depends(require_premium),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    return DataResponse(data=await analytics.referrers(short_code, identity.owner_id, days))
