"""Chat and message models."""
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text

from marketplace.database import Base
from marketplace.models.base import generate_id, utcnow


class Chat(Base):
    """
    A private (1:1) or group conversation.

    Per-user state lives in JSON columns: favourites, "deleted for me",
    blocks, and pinned message ids keyed by user id.
    """

    __tablename__ = "chats"

    id = Column(String, primary_key=True, default=lambda: generate_id("chat"))
    tipo = Column(String, nullable=False, default="privado")  # privado | grupo
    participantes = Column(JSON, nullable=False, default=list)
    usuario_a = Column(String, nullable=True, index=True)
    usuario_b = Column(String, nullable=True, index=True)
    anuncio_id = Column(String, nullable=True)

    favorites_by = Column(JSON, nullable=False, default=list)
    deleted_for = Column(JSON, nullable=False, default=list)
    pins_by_user = Column(JSON, nullable=False, default=dict)
    blocked_by = Column(JSON, nullable=False, default=list)
    background_url = Column(String, nullable=False, default="")

    ultimo_mensaje = Column(String, nullable=False, default="")
    ultimo_mensaje_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Message(Base):
    """A chat message with optional attachments and reply snapshot."""

    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=lambda: generate_id("msg"))
    chat_id = Column(String, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    emisor_id = Column(String, nullable=False, index=True)
    texto = Column(Text, nullable=False, default="")
    archivos = Column(JSON, nullable=False, default=list)
    reply_to = Column(JSON, nullable=True)
    forward_of = Column(String, nullable=True)
    leido_por = Column(JSON, nullable=False, default=list)
    edited_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
