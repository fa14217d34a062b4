"""
Per-user subscription record, written by the billing side and only read here.
"""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from app.db.base import Base


class Subscription(Base):
    __tablename__ = "subscriptions"

    user_id = Column(String(128), primary_key=True)
    status = Column(String(20), nullable=False, default="inactive")  # active, trialing, canceled, past_due, inactive
    tier = Column(String(20), nullable=False, default="free")  # free, pro
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Subscription(user={self.user_id}, status={self.status}, tier={self.tier})>"
