"""Device push token registered by the mobile app for a user."""

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from app.db.base import Base


class PushToken(Base):
    __tablename__ = "push_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    token = Column(String(256), nullable=False, unique=True)
    platform = Column(String(16), nullable=False, server_default="expo")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
