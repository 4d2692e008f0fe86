"""User account models."""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, JSON

from marketplace.database import Base
from marketplace.models.base import generate_id, utcnow


class User(Base):
    """A person using the marketplace - either a plain user or a merchant."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: generate_id("user"))
    correo = Column(String, unique=True, nullable=False, index=True)
    nombre = Column(String(120), nullable=False, default="")
    hashed_password = Column(String, nullable=True)  # Null for Google-only accounts
    tipo = Column(String, nullable=False, default="usuario")  # usuario | comerciante
    perfil = Column(Integer, nullable=False, default=1)  # Plan level 1..3
    nickname = Column(String, unique=True, nullable=True, index=True)
    foto_perfil = Column(String, nullable=False, default="")
    direccion = Column(String, nullable=False, default="")

    # Phone
    telefono = Column(String, nullable=False, default="")
    telefono_verificado = Column(Boolean, nullable=False, default=False)
    telefono_verificado_at = Column(DateTime(timezone=True), nullable=True)

    # Email verification
    email_verificado = Column(Boolean, nullable=False, default=False)
    email_verif_token_hash = Column(String, nullable=True, index=True)
    email_verif_expires = Column(DateTime(timezone=True), nullable=True)

    # OAuth
    autenticado_por_google = Column(Boolean, nullable=False, default=False)

    # Login security
    failed_login_count = Column(Integer, nullable=False, default=0)
    lock_until = Column(DateTime(timezone=True), nullable=True)
    # Access tokens issued before this instant are rejected
    logout_at = Column(DateTime(timezone=True), nullable=True)

    # TOTP second factor; enabled only after a code from the authenticator app is confirmed
    two_factor_secret = Column(String, nullable=True)  # base32
    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    two_factor_confirmed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_merchant(self) -> bool:
        return self.tipo == "comerciante" or self.perfil in (2, 3)


class DeletedAccount(Base):
    """Snapshot of a deleted user, kept so the account can be recovered."""

    __tablename__ = "deleted_accounts"

    id = Column(String, primary_key=True, default=lambda: generate_id("del"))
    original_id = Column(String, nullable=False, index=True)
    correo = Column(String, nullable=False, index=True)
    datos = Column(JSON, nullable=False)

    recovery_code_hash = Column(String, nullable=True)
    recovery_code_expires = Column(DateTime(timezone=True), nullable=True)
    recovery_code_tries = Column(Integer, nullable=False, default=0)

    deleted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class PhoneOTP(Base):
    """One-time code sent to a phone number."""

    __tablename__ = "phone_otps"

    id = Column(String, primary_key=True, default=lambda: generate_id("otp"))
    user_id = Column(String, nullable=False, index=True)
    telefono = Column(String, nullable=False, index=True)
    channel = Column(String, nullable=False)  # sms | whatsapp | voz
    code_hash = Column(String, nullable=False)  # sha256 of the code
    attempts = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
