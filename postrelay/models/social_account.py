"""
SocialAccount model: a user's linked platform credentials.

Rows are written by the account-linking flow; this service only reads them
to obtain the access token a delivery needs.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, UniqueConstraint
from datetime import datetime, timezone
from ..database import Base


class SocialAccount(Base):
    __tablename__ = "social_accounts"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(64), nullable=False, index=True)
    platform = Column(String(20), nullable=False)
    access_token = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("owner_id", "platform", name="uq_social_accounts_owner_platform"),
    )
