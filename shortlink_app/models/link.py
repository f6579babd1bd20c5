from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shortlink_app.database.connection import Base


class Link(Base):
    """
    Link model for transactional data.

    This table stores ONLY core link data (transactional).
    Click events are stored separately in the analytics database.
    """
    __tablename__ = "links"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    # unique=True creates the index; the code is never changed once assigned
    short_code = Column(String(16), unique=True, nullable=False, index=True)
    custom_alias = Column(String(64), unique=True, nullable=True)
    original_url = Column(String, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    password_hash = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    activates_at = Column(DateTime(timezone=True), nullable=True)
    device_url_ios = Column(String, nullable=True)
    device_url_android = Column(String, nullable=True)
    total_clicks = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    keys = relationship("LinkKey", back_populates="link", cascade="all, delete-orphan")

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)


class LinkKey(Base):
    """
    Public lookup keys (short code and custom alias) of a link.

    One primary key over both kinds of key makes the database reject an
    alias that equals another link's short code, and vice versa.
    """
    __tablename__ = "link_keys"

    key = Column(String(64), primary_key=True)
    link_id = Column(Integer, ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)

    link = relationship("Link", back_populates="keys")
