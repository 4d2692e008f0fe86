"""Account management schemas."""
from typing import Optional, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SelectProfileRequest(BaseModel):
    perfil: Optional[Union[int, str]] = None


class UpdateProfileRequest(BaseModel):
    """Partial profile update. ``ciudad`` is accepted as an alias of ``direccion``."""
    model_config = ConfigDict(extra="ignore")

    nombre: Optional[str] = None
    telefono: Optional[str] = None
    foto_perfil: Optional[str] = Field(None, validation_alias=AliasChoices("fotoPerfil", "foto_perfil"))
    direccion: Optional[str] = Field(None, validation_alias=AliasChoices("direccion", "ciudad"))


class NicknameRequest(BaseModel):
    nickname: str = ""


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    actual: str = Field("", validation_alias=AliasChoices("actual", "current"))
    nueva: str = Field("", validation_alias=AliasChoices("nueva", "new"))
    confirm: str = Field("", validation_alias=AliasChoices("confirm", "repetir"))


class ResendVerificationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("userId", "uid"))
    correo: Optional[str] = Field(None, validation_alias=AliasChoices("correo", "email"))


class PhoneCodeRequest(BaseModel):
    telefono: str = ""
    canal: Optional[str] = None


class PhoneVerifyRequest(BaseModel):
    telefono: str = ""
    canal: Optional[str] = None
    codigo: str = ""


class RecoveryCodeRequest(BaseModel):
    correo: str = ""


class RecoveryVerifyRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    correo: str = ""
    codigo: str = ""
    password: str = Field("", validation_alias=AliasChoices("contraseña", "password"))
