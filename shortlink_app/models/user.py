from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from shortlink_app.config import settings
from shortlink_app.database.connection import Base


class User(Base):
    """
    Link owner.

    Accounts are managed by the auth service; the registry only reads the
    plan tier and spends generation credits.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False, default="")
    plan_tier = Column(String(16), nullable=False, default="FREE")
    available_credits = Column(Integer, nullable=False, default=lambda: settings.default_credits)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
