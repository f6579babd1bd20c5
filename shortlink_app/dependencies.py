"""
FastAPI dependencies for dependency injection.

This module provides singleton instances of cache, queue, click storage,
sequence allocator and click classifier that are injected into services
and routes.

Pattern: Dependency Injection
- Loose coupling between components
- Easy to test (override with ``app.dependency_overrides``)
- Flexible (swap implementations via config)
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from shortlink_app.cache.factory import CacheFactory, CacheBackend
from shortlink_app.cache.strategies import CacheStrategy
from shortlink_app.config import settings
from shortlink_app.database.connection import get_db
from shortlink_app.queue.factory import QueueFactory, QueueBackend
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.services.analytics_service import AnalyticsService
from shortlink_app.services.click_classifier import ClickClassifier
from shortlink_app.services.geo import build_geo_lookup
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.redirect_service import RedirectService
from shortlink_app.services.sequence_factory import SequenceFactory
from shortlink_app.services.sequence_strategies import SequenceStrategy
from shortlink_app.services.user_service import UserService
from shortlink_app.storage.factory import ClickStorageFactory, ClickStorageBackend
from shortlink_app.storage.strategies import ClickStorageStrategy


@lru_cache()
def get_cache() -> CacheStrategy:
    """Cache instance (singleton), backend chosen by settings"""
    return CacheFactory.create(CacheBackend(settings.cache_backend))


@lru_cache()
def get_queue() -> QueueStrategy:
    """Queue instance (singleton), backend chosen by settings"""
    return QueueFactory.create(QueueBackend(settings.queue_backend))


@lru_cache()
def get_click_storage() -> ClickStorageStrategy:
    """Click storage instance (singleton), backend chosen by settings"""
    return ClickStorageFactory.create(ClickStorageBackend(settings.click_storage_backend))


def get_sequence() -> SequenceStrategy:
    """Sequence allocator; the factory caches one instance per backend"""
    return SequenceFactory.create_strategy()


@lru_cache()
def get_classifier() -> ClickClassifier:
    """
    Click classifier (singleton).

    Opening the GeoIP database is expensive, so it happens once.
    """
    geo = build_geo_lookup(settings.geoip_database_path, settings.geo_mock_private_ips)
    return ClickClassifier(
        geo,
        cookie_prefix=settings.visitor_cookie_prefix,
        cookie_max_age=settings.visitor_cookie_max_age,
    )


def get_link_service(
    db: Session = Depends(get_db),
    cache: CacheStrategy = Depends(get_cache),
    sequence: SequenceStrategy = Depends(get_sequence)
) -> LinkService:
    """
    LinkService with all dependencies injected.

    Controllers depend on services, services depend on infrastructure.
    """
    return LinkService(db=db, cache=cache, sequence=sequence)


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def get_redirect_service(
    links: LinkService = Depends(get_link_service),
    users: UserService = Depends(get_user_service)
) -> RedirectService:
    return RedirectService(links=links, users=users)


def get_analytics_service(
    db: Session = Depends(get_db),
    storage: ClickStorageStrategy = Depends(get_click_storage)
) -> AnalyticsService:
    return AnalyticsService(db=db, storage=storage)
