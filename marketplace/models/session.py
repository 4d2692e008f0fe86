"""Refresh token / device session model."""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index

from marketplace.database import Base
from marketplace.models.base import generate_id, utcnow


class RefreshToken(Base):
    """
    One row per issued refresh token.

    Rows of the same ``family`` form a rotation chain for one device
    login. Only the sha256 of the raw token is stored.
    """

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_user_family", "user_id", "family"),
    )

    id = Column(String, primary_key=True, default=lambda: generate_id("rt"))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    jti = Column(String, unique=True, nullable=False, index=True)
    family = Column(String, nullable=False, index=True)
    token_hash = Column(String, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoke_reason = Column(String, nullable=True)

    # Device metadata
    ua = Column(String, nullable=False, default="")
    ip = Column(String, nullable=False, default="")
    last_used_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
