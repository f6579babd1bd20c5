from typing import List, Optional

import bcrypt
import structlog
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, Query

from shortlink_app.cache.strategies import CacheStrategy, link_cache_key, link_cache_keys
from shortlink_app.config import settings
from shortlink_app.exceptions import AliasConflictError, InternalError, NotFoundError
from shortlink_app.models.link import Link, LinkKey
from shortlink_app.schemas.link import RedirectTarget
from shortlink_app.services.base62 import base62_encode
from shortlink_app.services.sequence_factory import SequenceFactory
from shortlink_app.services.sequence_strategies import SequenceStrategy

logger = structlog.get_logger(__name__)


def hash_password(password: str) -> str:
    """One-way salted hash for password-protected links"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def _url_or_none(value) -> Optional[str]:
    return str(value) if value else None


class LinkService:
    """
    Link registry with dependency injection for cache and sequence allocation.

    Uniqueness of short codes and aliases is enforced by the database at
    commit time; the lookups done beforehand only produce nicer errors.
    Ownership checks always use a single ``short_code AND owner_id``
    predicate, so a link owned by someone else looks exactly like a
    missing one.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheStrategy] = None,
        sequence: Optional[SequenceStrategy] = None
    ):
        """
        Initialize link service with dependencies.

        Args:
            db: Database session
            cache: Cache strategy (optional, for redirect lookups)
            sequence: Sequence strategy (defaults to the configured one)
        """
        self.db = db
        self.cache = cache
        self.sequence = sequence or SequenceFactory.create_strategy()

    def _owned(self, short_code: str, owner_id: int) -> Query:
        return self.db.query(Link).filter(
            Link.short_code == short_code,
            Link.owner_id == owner_id
        )

    def _key_taken(self, key: str) -> bool:
        return self.db.query(LinkKey).filter(LinkKey.key == key).first() is not None

    async def _invalidate(self, *public_keys: Optional[str]) -> None:
        if self.cache:
            await self.cache.delete(*link_cache_keys(public_keys))

    async def create(
        self,
        owner_id: int,
        original_url: str,
        custom_alias: Optional[str] = None,
        expires_at=None,
        activates_at=None,
        password: Optional[str] = None,
        device_urls: Optional[dict] = None,
    ) -> str:
        """
        Create a link and return its short code.

        Process:
        1. Reject an alias that is visibly taken (best effort)
        2. Allocate the next sequence number and Base62-encode it
        3. Insert link + lookup keys; a unique violation on commit is the
           authoritative conflict signal
        4. If the generated code lands on an existing alias, allocate again

        Retrying after a failure may burn sequence numbers; gaps are fine.
        """
        if custom_alias and self._key_taken(custom_alias):
            raise AliasConflictError()

        password_hash = hash_password(password) if password else None
        device_urls = device_urls or {}

        for attempt in range(settings.max_retries):
            short_code = base62_encode(self.sequence.next_id(settings.sequence_name))

            if self._key_taken(short_code):
                logger.warning("short_code_taken", short_code=short_code, attempt=attempt)
                continue

            link = Link(
                short_code=short_code,
                custom_alias=custom_alias,
                original_url=str(original_url),
                owner_id=owner_id,
                password_hash=password_hash,
                expires_at=expires_at,
                activates_at=activates_at,
                device_url_ios=_url_or_none(device_urls.get("ios")),
                device_url_android=_url_or_none(device_urls.get("android")),
            )
            link.keys.append(LinkKey(key=short_code))
            if custom_alias:
                link.keys.append(LinkKey(key=custom_alias))

            self.db.add(link)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if custom_alias and self._key_taken(custom_alias):
                    raise AliasConflictError()
                logger.warning("short_code_race_lost", short_code=short_code, attempt=attempt)
                continue

            logger.info("link_created", short_code=short_code, owner_id=owner_id, alias=custom_alias)
            return short_code

        raise InternalError(
            f"Could not allocate a unique short code after {settings.max_retries} attempts"
        )

    async def find_existing(self, original_url: str, owner_id: int) -> Optional[str]:
        """Short code of a link this owner already has for the destination"""
        link = self.db.query(Link).filter(
            Link.original_url == str(original_url),
            Link.owner_id == owner_id
        ).order_by(Link.id).first()
        return link.short_code if link else None

    async def update(self, short_code: str, owner_id: int, changes: dict) -> None:
        """
        Apply a partial update.

        ``changes`` holds only the fields the owner sent. An explicit empty
        (or null) password clears it; alias changes are re-validated.
        """
        link = self._owned(short_code, owner_id).first()
        if link is None:
            raise NotFoundError()

        previous_alias = link.custom_alias

        if "custom_alias" in changes and changes["custom_alias"] != link.custom_alias:
            alias = changes["custom_alias"]
            if alias and self._key_taken(alias):
                raise AliasConflictError()
            link.keys = [key for key in link.keys if key.key != previous_alias]
            if alias:
                link.keys.append(LinkKey(key=alias))
            link.custom_alias = alias

        if "password" in changes:
            password = changes["password"]
            link.password_hash = hash_password(password) if password else None

        if changes.get("original_url"):
            link.original_url = str(changes["original_url"])

        for field in ("expires_at", "activates_at"):
            if field in changes:
                setattr(link, field, changes[field])

        if "device_urls" in changes:
            device_urls = changes["device_urls"] or {}
            link.device_url_ios = _url_or_none(device_urls.get("ios"))
            link.device_url_android = _url_or_none(device_urls.get("android"))

        if changes.get("is_active") is not None:
            link.is_active = changes["is_active"]

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AliasConflictError()

        await self._invalidate(short_code, previous_alias, link.custom_alias)
        logger.info("link_updated", short_code=short_code, fields=sorted(changes))

    async def delete(self, short_code: str, owner_id: int) -> None:
        """Hard delete. Historical click events are kept."""
        link = self._owned(short_code, owner_id).first()
        if link is None:
            raise NotFoundError("URL not found or unauthorized")

        alias = link.custom_alias
        self.db.delete(link)
        self.db.commit()

        await self._invalidate(short_code, alias)
        logger.info("link_deleted", short_code=short_code, owner_id=owner_id)

    async def resolve_for_redirect(self, key: str) -> Optional[RedirectTarget]:
        """
        Look a link up by short code OR alias, using Cache-Aside.

        Public: no ownership check. Returns paused and expired links too;
        deciding what to do with them is the resolver's job.
        """
        cache_key = link_cache_key(key)

        if self.cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return RedirectTarget.model_validate_json(cached)

        link = self.db.query(Link).filter(
            or_(Link.short_code == key, Link.custom_alias == key)
        ).first()

        if not link:
            return None

        target = RedirectTarget.model_validate(link)

        if self.cache:
            await self.cache.set(cache_key, target.model_dump_json(), ttl=settings.cache_ttl)

        return target

    async def increment_clicks(self, short_code: str) -> None:
        """Atomic ``total_clicks + 1``; a vanished link is only logged"""
        result = self.db.execute(
            update(Link)
            .where(Link.short_code == short_code)
            .values(total_clicks=Link.total_clicks + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount == 0:
            logger.warning("click_count_target_missing", short_code=short_code)

    async def list_by_owner(self, owner_id: int) -> List[Link]:
        return self.db.query(Link).filter(Link.owner_id == owner_id).order_by(Link.id).all()

    async def details(self, short_code: str, owner_id: int) -> Link:
        """Owner view of one link; NotFound for strangers"""
        link = self._owned(short_code, owner_id).first()
        if link is None:
            raise NotFoundError()
        return link
