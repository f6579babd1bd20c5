"""
Sequence allocation strategies for short code generation.
Uses Strategy Pattern so the counter can live in the main DB or in Redis.

Every strategy must hand out strictly increasing integers per counter name,
even across processes. Gaps are fine, duplicates are not.
"""

from abc import ABC, abstractmethod

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import sessionmaker

from shortlink_app.models.counter import Counter


class SequenceStrategy(ABC):
    """Abstract base class for sequence allocation strategies"""

    def __init__(self, floor: int = 10000):
        self.floor = floor

    @abstractmethod
    def next_id(self, counter_name: str) -> int:
        """
        Atomically increment the named counter and return the new value.

        The counter is created at ``floor`` on first use, so the first
        allocation returns ``floor + 1``. Storage errors propagate: callers
        must never make up an ID.
        """
        pass


class DatabaseSequenceStrategy(SequenceStrategy):
    """
    Counter row in the transactional database.

    Upsert-on-first-use is an INSERT .. ON CONFLICT DO NOTHING, followed by
    an UPDATE .. RETURNING that increments and reads in one statement.
    Runs in its own session so allocation commits independently of the
    caller's unit of work.

    Pros: No extra infrastructure, survives restarts
    Cons: One write transaction per allocation
    """

    _INSERTS = {
        "sqlite": sqlite_insert,
        "postgresql": postgresql_insert,
    }

    def __init__(self, session_factory: sessionmaker, floor: int = 10000):
        super().__init__(floor)
        self.session_factory = session_factory

    def next_id(self, counter_name: str) -> int:
        counters = Counter.__table__
        increment = (
            update(counters)
            .where(counters.c.name == counter_name)
            .values(value=counters.c.value + 1)
            .returning(counters.c.value)
        )

        db = self.session_factory()
        try:
            value = db.execute(increment).scalar_one_or_none()
            if value is None:
                db.execute(self._create_counter(db, counter_name))
                value = db.execute(increment).scalar_one()
            db.commit()
            return value
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _create_counter(self, db, counter_name: str):
        dialect = db.get_bind().dialect.name
        if dialect not in self._INSERTS:
            raise ValueError(f"Unsupported database for sequences: {dialect}")

        insert = self._INSERTS[dialect]
        return (
            insert(Counter.__table__)
            .values(name=counter_name, value=self.floor)
            .on_conflict_do_nothing(index_elements=["name"])
        )


class RedisSequenceStrategy(SequenceStrategy):
    """
    Counter kept in Redis.

    SET NX seeds the floor exactly once, INCR is atomic on the server.

    Pros: Very fast, shared by every API instance
    Cons: Needs Redis persistence (AOF/RDB) or the counter restarts at the floor
    """

    KEY_PREFIX = "sequence:"

    def __init__(self, redis_client, floor: int = 10000):
        super().__init__(floor)
        self.redis = redis_client

    def next_id(self, counter_name: str) -> int:
        key = f"{self.KEY_PREFIX}{counter_name}"
        self.redis.set(key, self.floor, nx=True)
        return int(self.redis.incr(key))
