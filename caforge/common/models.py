# caforge/common/models.py
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from caforge.common import settings


class SanKind(str, Enum):
    DNS = "DNS"
    IP = "IP"


class SanEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: SanKind
    value: str


class DistinguishedName(BaseModel):
    model_config = ConfigDict(frozen=True)

    common_name: str = Field(min_length=1)
    country: Optional[str] = Field(default=None, min_length=2, max_length=2)
    state: Optional[str] = None
    organization: Optional[str] = None
    organizational_unit: Optional[str] = None


class PfxMode(str, Enum):
    NOT_REQUESTED = "not_requested"
    EMPTY = "empty"
    PASSWORD = "password"


class PfxPassword(BaseModel):
    """
    Whether a PKCS#12 bundle is wanted and how it is protected.
    "No bundle" and "bundle with an empty password" are distinct modes.
    """
    model_config = ConfigDict(frozen=True)

    mode: PfxMode = PfxMode.NOT_REQUESTED
    value: str = ""

    @model_validator(mode="after")
    def value_matches_mode(self):
        if self.mode is PfxMode.PASSWORD and not self.value:
            raise ValueError("password mode needs a non-empty value")
        if self.mode is not PfxMode.PASSWORD and self.value:
            raise ValueError(f"{self.mode.value} mode takes no value")
        return self

    @classmethod
    def not_requested(cls) -> "PfxPassword":
        return cls(mode=PfxMode.NOT_REQUESTED)

    @classmethod
    def empty(cls) -> "PfxPassword":
        return cls(mode=PfxMode.EMPTY)

    @classmethod
    def of(cls, value: Optional[str]) -> "PfxPassword":
        """Map a raw option value: None -> not requested, "" -> empty, else password."""
        if value is None:
            return cls.not_requested()
        if value == "":
            return cls.empty()
        return cls(mode=PfxMode.PASSWORD, value=value)

    @property
    def requested(self) -> bool:
        return self.mode is not PfxMode.NOT_REQUESTED

    def encoded(self) -> bytes:
        return self.value.encode("utf-8")


class CreateCAParams(BaseModel):
    name: str = Field(min_length=1)
    out_dir: str = settings.OUT_DIR
    years: int = Field(default=settings.ROOT_DEFAULT_YEARS,
                       ge=settings.ROOT_MIN_YEARS, le=settings.ROOT_MAX_YEARS)
    pfx: PfxPassword = PfxPassword()

    @field_validator("name")
    @classmethod
    def usable_as_filename(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        if any(c in v for c in ("/", "\\", "\x00")):
            raise ValueError("name must not contain path separators")
        return v


class IssueCertParams(BaseModel):
    ca_key: str = Field(min_length=1)
    ca_cert: str = Field(min_length=1)
    common_name: str = Field(min_length=1)
    sans: List[str] = Field(default_factory=list)
    out_dir: str = settings.OUT_DIR
    years: int = Field(default=settings.LEAF_DEFAULT_YEARS,
                       ge=settings.LEAF_MIN_YEARS, le=settings.LEAF_MAX_YEARS)
    pfx: PfxPassword = PfxPassword()

    @field_validator("common_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("common name must not be blank")
        return v
