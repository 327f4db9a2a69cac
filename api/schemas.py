from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from config import MAX_DESCRIPTION_LENGTH, MAX_TITLE_LENGTH


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Auth / identity
# ============================================================================


class RegisterRequest(BaseModel):
    # Presence is checked by the identity store so a missing field is a
    # 400 bad_request like any other malformed registration
    email: Optional[str] = None
    name: Optional[str] = None
    password: Optional[str] = None
    logo: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AdminLoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class AdminLoginResponse(BaseModel):
    ok: bool = True
    admin: bool = True


class UserSummary(CamelModel):
    user_id: str
    name: str
    email: str
    logo: str = ""

    @field_validator("logo", mode="before")
    @classmethod
    def default_logo(cls, v):
        return v if v is not None else ""


class NotificationResponse(CamelModel):
    id: int
    message: str
    created_at: datetime
    read: bool = False


# ============================================================================
# Uploads
# ============================================================================


class UploadResponse(BaseModel):
    url: str
    filename: str
    size: int
    mimetype: str


# ============================================================================
# Videos
# ============================================================================


class Chapter(BaseModel):
    time: str
    label: str


class VideoSettings(CamelModel):
    is_muted: bool = False
    is_approved: bool = True
    admin_mute_override: bool = False
    visibility: str = "public"


class VideoStats(BaseModel):
    views: int = 0


class VideoResponse(CamelModel):
    id: str
    title: str
    media_url: str = Field(..., alias="videoUrl")
    banner_url: Optional[str] = None
    creator_id: str
    creator_name: str = ""
    creator_logo: str = ""
    description: str = ""
    category: str = "other"
    chapters: List[Chapter] = []
    settings: VideoSettings
    stats: VideoStats
    created_at: datetime

    @field_validator("description", "creator_name", "creator_logo", mode="before")
    @classmethod
    def default_empty_string(cls, v):
        return v if v is not None else ""


class VideoCreate(CamelModel):
    """
    Body of POST /api/videos.

    Only title and media URL are strictly validated. Category, visibility and
    chapters are normalised by the video store, so loosely-typed input there
    is accepted and cleaned up rather than rejected.
    """

    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    # The browser client sends the uploaded file URL as "videoUrl"
    media_url: str = Field(..., min_length=1, alias="videoUrl")
    banner_url: Optional[str] = None
    description: Optional[Any] = None
    category: Optional[Any] = None
    chapters: Optional[Union[List[Any], str]] = None
    # Legacy name for chapters
    timestamps: Optional[Union[List[Any], str]] = None
    visibility: Optional[Any] = None
    is_muted: Optional[Any] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v.strip()

    @field_validator("description", mode="before")
    @classmethod
    def description_length(cls, v):
        if isinstance(v, str) and len(v) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(f"description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")
        return v


class MuteOverrideUpdate(CamelModel):
    admin_mute_override: Any = False


class ApprovalUpdate(CamelModel):
    is_approved: Any = False


class VisibilityUpdate(BaseModel):
    visibility: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool = True


class ViewCountResponse(BaseModel):
    views: int
