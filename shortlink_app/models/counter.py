from sqlalchemy import Column, BigInteger, String
from shortlink_app.database.connection import Base


class Counter(Base):
    """
    Named monotonic counter used for short code allocation.

    Rows are created lazily on first allocation and only ever mutated
    through an atomic increment-and-fetch.
    """
    __tablename__ = "counters"

    name = Column(String(64), primary_key=True)
    value = Column(BigInteger, nullable=False)
