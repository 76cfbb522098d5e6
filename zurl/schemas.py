from datetime import datetime
from typing import Annotated, Literal

from pydantic import AfterValidator, AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, model_validator

_http_url = TypeAdapter(AnyHttpUrl)


def check_absolute_url(value: str) -> str:
    # Validate only; the stored value is kept verbatim (pydantic would normalize it)
    _http_url.validate_python(value)
    return value


AbsoluteUrl = Annotated[str, AfterValidator(check_absolute_url)]


# ---------- Store records ----------

class ShortLinkRecord(BaseModel):
    id: str
    original_url: AbsoluteUrl
    name: str | None = None
    owner_id: str
    is_active: bool = True
    is_protected: bool = False
    unlock_secret: str | None = None
    folder_id: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None
    click_count: int = Field(default=0, ge=0)

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @model_validator(mode="after")
    def _protected_has_secret(self):
        if self.is_protected and self.unlock_secret is None:
            raise ValueError("protected link has no unlock secret")
        return self


class FolderRecord(BaseModel):
    id: str
    name: str = Field(min_length=1)
    owner_id: str
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


# ---------- Link access ----------

class UnlockIn(BaseModel):
    secret: str | None = None


class RevealResult(BaseModel):
    status: Literal["redirect", "locked", "denied"]
    target: str | None = None


# ---------- Links API ----------

class LinkCreate(BaseModel):
    original_url: AbsoluteUrl
    custom_id: str | None = None
    name: str | None = None
    is_protected: bool = False
    unlock_secret: str | None = None
    folder_id: str | None = None

class LinkUpdate(BaseModel):
    original_url: AbsoluteUrl | None = None
    name: str | None = None
    unlock_secret: str | None = None

class ToggleIn(BaseModel):
    value: bool

class LinkOut(BaseModel):
    id: str
    original_url: str
    name: str | None
    is_active: bool
    is_protected: bool
    unlock_secret: str | None
    folder_id: str | None
    click_count: int
    created_at: datetime | None

    model_config = ConfigDict(from_attributes=True)

class PaginatedLinks(BaseModel):
    items: list[LinkOut]
    total: int
    skip: int
    limit: int


# ---------- Folders API ----------

class FolderCreate(BaseModel):
    name: str
    link_ids: list[str] = []

class FolderRename(BaseModel):
    name: str

class FolderLinksIn(BaseModel):
    link_ids: list[str]

class FolderOut(BaseModel):
    id: str
    name: str
    created_at: datetime | None
    link_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str

class MessageOut(BaseModel):
    ok: bool
    detail: str


# ---------- Analytics ----------

class ClickBucket(BaseModel):
    name: str
    clicks: int
    percentage: float

class CityBucket(ClickBucket):
    country: str

class LinkAnalytics(BaseModel):
    link_id: str
    total_clicks: int
    countries: list[ClickBucket]
    cities: list[CityBucket]
    browsers: list[ClickBucket]
    operating_systems: list[ClickBucket]
    devices: list[ClickBucket]
