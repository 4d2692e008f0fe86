"""Authentication schemas."""
from datetime import datetime
from typing import Literal, Optional, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer


UserType = Literal["usuario", "comerciante"]

# Body fields a client may put the authenticator code in
TWO_FACTOR_CODE_ALIASES = AliasChoices(
    "codigo2FA", "codigo2fa", "twoFactorCode", "twoFactorToken", "otp", "totp", "code", "2fa"
)


class RegisterRequest(BaseModel):
    """Schema for registration. Accepts the Spanish and English field names."""
    model_config = ConfigDict(extra="ignore")

    correo: Optional[str] = Field(None, validation_alias=AliasChoices("correo", "email"))
    password: Optional[str] = Field(None, validation_alias=AliasChoices("contraseña", "password"))
    nombre: Optional[str] = None
    tipo: Optional[str] = None
    perfil: Optional[Union[int, str]] = None


class LoginRequest(BaseModel):
    """Schema for login by email or nickname."""
    model_config = ConfigDict(extra="ignore")

    login: Optional[str] = Field(None, validation_alias=AliasChoices("correo", "email", "login"))
    password: Optional[str] = Field(None, validation_alias=AliasChoices("contraseña", "password"))
    two_factor_code: Optional[Union[str, int]] = Field(None, validation_alias=TWO_FACTOR_CODE_ALIASES)


class GoogleLoginRequest(BaseModel):
    """Google One Tap credential, plus the profile when registering."""
    model_config = ConfigDict(extra="ignore")

    credential: str = ""
    tipo: Optional[str] = None
    perfil: Optional[Union[int, str]] = None
    two_factor_code: Optional[Union[str, int]] = Field(
        None, validation_alias=AliasChoices("totp", "codigo", "codigo2FA", "twoFactorCode")
    )


class TwoFactorCodeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    codigo: Optional[Union[str, int]] = Field(None, validation_alias=AliasChoices("codigo", "code", "totp"))


class UserOut(BaseModel):
    """Private projection of the authenticated user."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str = Field(serialization_alias="_id")
    nombre: str
    correo: str
    nickname: Optional[str] = None
    tipo: str
    perfil: int
    foto_perfil: str = Field("", serialization_alias="fotoPerfil")
    direccion: str = ""
    telefono: str = ""
    telefono_verificado: bool = Field(False, serialization_alias="telefonoVerificado")
    email_verificado: bool = Field(False, serialization_alias="emailVerificado")
    autenticado_por_google: bool = Field(False, serialization_alias="autenticadoPorGoogle")
    two_factor_enabled: bool = Field(False, serialization_alias="twoFactorEnabled")
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")

    @field_serializer("created_at")
    def serialize_created_at(self, dt: Optional[datetime], _info):
        return dt.isoformat() if dt else None


class UserSearchResult(BaseModel):
    """Public projection used by user search."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str = Field(serialization_alias="_id")
    nombre: str
    nickname: Optional[str] = None
    correo: str
    foto_perfil: str = Field("", serialization_alias="fotoPerfil")
    tipo: str


def user_payload(user) -> dict:
    """JSON-ready private user projection."""
    return UserOut.model_validate(user).model_dump(by_alias=True)


def normalize_tipo(value: Optional[str]) -> str:
    tipo = (value or "").strip().lower()
    return tipo if tipo in ("usuario", "comerciante") else "usuario"


def normalize_perfil(value) -> int:
    """Plan level as an int. Digit strings are accepted; anything else is plan 1."""
    if isinstance(value, dict):
        value = value.get("perfil")
    if isinstance(value, bool):
        return 1
    if isinstance(value, int):
        return value if value >= 1 else 1
    text = str(value or "").strip()
    return int(text) if text.isdigit() and int(text) >= 1 else 1
