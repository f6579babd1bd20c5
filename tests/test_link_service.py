"""
Tests for the link registry.
"""
import asyncio
from datetime import timedelta

import bcrypt
import pytest

from shortlink_app.cache.strategies import link_cache_key
from shortlink_app.exceptions import AliasConflictError, NotFoundError
from shortlink_app.models import Link, LinkKey
from shortlink_app.services.base62 import base62_encode
from shortlink_app.timeutils import utcnow


class TestCreate:
    """Test link creation"""

    def test_codes_follow_the_counter(self, link_service, free_user):
        first = asyncio.run(link_service.create(free_user.id, "https://example.com/a"))
        second = asyncio.run(link_service.create(free_user.id, "https://example.com/b"))

        assert first == base62_encode(10001)
        assert second == base62_encode(10002)

    def test_keys_are_registered(self, link_service, db_session, pro_user):
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com", custom_alias="promo"))

        keys = {row.key for row in db_session.query(LinkKey).all()}
        assert keys == {code, "promo"}

    def test_duplicate_alias_conflicts(self, link_service, db_session, pro_user, make_user):
        other = make_user()
        asyncio.run(link_service.create(pro_user.id, "https://example.com/1", custom_alias="promo"))

        with pytest.raises(AliasConflictError):
            asyncio.run(link_service.create(other.id, "https://example.com/2", custom_alias="promo"))

        assert db_session.query(Link).count() == 1

    def test_alias_taken_between_check_and_commit(self, link_service, db_session, pro_user, make_user, monkeypatch):
        other = make_user()
        asyncio.run(link_service.create(pro_user.id, "https://example.com/1", custom_alias="promo"))

        # The first lookup misses, as if the alias was claimed right after it
        real_key_taken = link_service._key_taken
        missed = []

        def key_taken(key):
            if key == "promo" and not missed:
                missed.append(key)
                return False
            return real_key_taken(key)

        monkeypatch.setattr(link_service, "_key_taken", key_taken)

        with pytest.raises(AliasConflictError):
            asyncio.run(link_service.create(other.id, "https://example.com/2", custom_alias="promo"))

        assert missed == ["promo"]
        assert db_session.query(Link).count() == 1
        assert {row.key for row in db_session.query(LinkKey).all()} == {base62_encode(10001), "promo"}

    def test_alias_equal_to_existing_code_conflicts(self, link_service, pro_user):
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com/1"))

        with pytest.raises(AliasConflictError):
            asyncio.run(link_service.create(pro_user.id, "https://example.com/2", custom_alias=code))

    def test_generated_code_skips_taken_alias(self, link_service, pro_user):
        # The next code the counter produces is already someone's alias
        taken = base62_encode(10002)
        asyncio.run(link_service.create(pro_user.id, "https://example.com/1", custom_alias=taken))

        code = asyncio.run(link_service.create(pro_user.id, "https://example.com/2"))

        assert code == base62_encode(10003)

    def test_password_is_hashed(self, link_service, db_session, pro_user):
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com", password="secret1"))

        link = db_session.query(Link).filter(Link.short_code == code).one()
        assert link.password_hash != "secret1"
        assert bcrypt.checkpw(b"secret1", link.password_hash.encode("utf-8"))

    def test_find_existing(self, link_service, free_user, make_user):
        code = asyncio.run(link_service.create(free_user.id, "https://example.com/x"))

        assert asyncio.run(link_service.find_existing("https://example.com/x", free_user.id)) == code
        assert asyncio.run(link_service.find_existing("https://example.com/x", make_user().id)) is None


class TestUpdate:
    """Test partial updates and ownership"""

    def test_stranger_gets_not_found(self, link_service, free_user, make_user):
        code = asyncio.run(link_service.create(free_user.id, "https://example.com"))
        stranger = make_user()

        with pytest.raises(NotFoundError):
            asyncio.run(link_service.update(code, stranger.id, {"is_active": False}))

    def test_missing_link_gets_not_found(self, link_service, free_user):
        with pytest.raises(NotFoundError):
            asyncio.run(link_service.update("nope", free_user.id, {"is_active": False}))

    def test_password_cleared_with_empty_string(self, link_service, db_session, pro_user):
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com", password="secret1"))

        asyncio.run(link_service.update(code, pro_user.id, {"password": ""}))

        link = db_session.query(Link).filter(Link.short_code == code).one()
        assert link.password_hash is None

    def test_absent_password_left_alone(self, link_service, db_session, pro_user):
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com", password="secret1"))

        asyncio.run(link_service.update(code, pro_user.id, {"is_active": False}))

        link = db_session.query(Link).filter(Link.short_code == code).one()
        assert link.password_hash is not None
        assert link.is_active is False

    def test_alias_swap_moves_keys(self, link_service, db_session, pro_user):
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com", custom_alias="old-one"))

        asyncio.run(link_service.update(code, pro_user.id, {"custom_alias": "new-one"}))

        keys = {row.key for row in db_session.query(LinkKey).all()}
        assert keys == {code, "new-one"}

    def test_alias_update_conflict(self, link_service, pro_user):
        asyncio.run(link_service.create(pro_user.id, "https://example.com/1", custom_alias="taken"))
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com/2"))

        with pytest.raises(AliasConflictError):
            asyncio.run(link_service.update(code, pro_user.id, {"custom_alias": "taken"}))

    def test_update_invalidates_every_key(self, link_service, cache, pro_user):
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com", custom_alias="promo"))
        asyncio.run(link_service.resolve_for_redirect(code))
        asyncio.run(link_service.resolve_for_redirect("promo"))

        asyncio.run(link_service.update(code, pro_user.id, {"original_url": "https://example.org/"}))

        assert asyncio.run(cache.get(link_cache_key(code))) is None
        assert asyncio.run(cache.get(link_cache_key("promo"))) is None
        target = asyncio.run(link_service.resolve_for_redirect("promo"))
        assert target.original_url == "https://example.org/"


class TestDelete:
    """Test hard deletion"""

    def test_delete_removes_link_and_keys(self, link_service, db_session, pro_user):
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com", custom_alias="gone"))
        asyncio.run(link_service.resolve_for_redirect(code))

        asyncio.run(link_service.delete(code, pro_user.id))

        assert db_session.query(Link).count() == 0
        assert db_session.query(LinkKey).count() == 0
        assert asyncio.run(link_service.resolve_for_redirect(code)) is None
        assert asyncio.run(link_service.resolve_for_redirect("gone")) is None

    def test_stranger_cannot_delete(self, link_service, free_user, make_user):
        code = asyncio.run(link_service.create(free_user.id, "https://example.com"))

        with pytest.raises(NotFoundError):
            asyncio.run(link_service.delete(code, make_user().id))


class TestLookups:
    """Test redirect lookup, counters and owner views"""

    def test_resolve_by_code_or_alias(self, link_service, pro_user):
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com", custom_alias="promo"))

        by_code = asyncio.run(link_service.resolve_for_redirect(code))
        by_alias = asyncio.run(link_service.resolve_for_redirect("promo"))

        assert by_code.id == by_alias.id
        assert (by_alias.short_code, by_alias.custom_alias) == (code, "promo")

    def test_resolve_is_cached(self, link_service, cache, free_user):
        code = asyncio.run(link_service.create(free_user.id, "https://example.com"))

        asyncio.run(link_service.resolve_for_redirect(code))

        assert asyncio.run(cache.get(link_cache_key(code))) is not None

    def test_snapshot_dates_are_utc(self, link_service, pro_user):
        expires = utcnow() + timedelta(days=1)
        code = asyncio.run(link_service.create(pro_user.id, "https://example.com", expires_at=expires))

        target = asyncio.run(link_service.resolve_for_redirect(code))

        assert target.expires_at.tzinfo is not None
        assert abs((target.expires_at - expires).total_seconds()) < 1

    def test_increment_clicks(self, link_service, db_session, free_user):
        code = asyncio.run(link_service.create(free_user.id, "https://example.com"))

        for _ in range(3):
            asyncio.run(link_service.increment_clicks(code))

        link = db_session.query(Link).filter(Link.short_code == code).one()
        assert link.total_clicks == 3

    def test_increment_missing_link_is_silent(self, link_service):
        asyncio.run(link_service.increment_clicks("missing"))

    def test_list_and_details(self, link_service, free_user, make_user):
        first = asyncio.run(link_service.create(free_user.id, "https://example.com/1"))
        second = asyncio.run(link_service.create(free_user.id, "https://example.com/2"))
        asyncio.run(link_service.create(make_user().id, "https://example.com/3"))

        links = asyncio.run(link_service.list_by_owner(free_user.id))

        assert [link.short_code for link in links] == [first, second]
        assert asyncio.run(link_service.details(first, free_user.id)).original_url == "https://example.com/1"
