"""Pydantic schemas for request/response validation.

This module defines Pydantic models for API input validation and output serialization.
JSON bodies use camelCase on the wire (``originalUrl``, ``totalVisits``) while the
Python side stays snake_case; both spellings are accepted on input.

Schema Hierarchy
=================
::
    LinkCreate (Input)           LinkResponse (Output)
    ├─ title                     ├─ id, user_id, title
    ├─ original_url (validated)  ├─ short_code, short_url, original_url
    ├─ user_id                   ├─ style, description, image_url
    ├─ style                     ├─ clicks, is_active, created_at
    ├─ description?              └─ LinkWithStats
    └─ image_url?                   └─ + VisitStats fields

    VisitStats (Output)
    ├─ total_visits
    ├─ daily_visits
    ├─ monthly_visits
    ├─ owner_visits
    └─ external_visits

Key Behaviours
===============
- URL validation uses the validators library for RFC compliance.
- Models are configured for ORM attribute mapping.
- VisitStats doubles as the Redis cache payload for stats endpoints.

Classes:
    LinkCreate, LinkUpdate, LinkResponse, LinkWithStats, LinkVisitResponse
    VisitStats
    UserCreate, UserResponse, PublicProfile
    UsernameCheckRequest, UsernameCheckResponse, UsernameUpdate
    SettingsUpdate, SettingsResponse, VisitCountResponse
    HealthResponse
"""

import datetime

import validators
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from biolink.enums import HealthStatus, LinkStyle

__all__ = [
    "LinkCreate",
    "LinkUpdate",
    "LinkResponse",
    "LinkWithStats",
    "LinkVisitResponse",
    "VisitStats",
    "UserCreate",
    "UserResponse",
    "PublicProfile",
    "UsernameCheckRequest",
    "UsernameCheckResponse",
    "UsernameUpdate",
    "SettingsUpdate",
    "SettingsResponse",
    "VisitCountResponse",
    "HealthResponse",
]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _check_url(v: str | None) -> str | None:
    if v is not None and not validators.url(v):
        raise ValueError("Invalid URL provided")
    return v


class LinkCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    original_url: str
    user_id: int
    style: LinkStyle = LinkStyle.THUMBNAIL
    description: str | None = None
    image_url: str | None = None

    @field_validator("original_url")
    @classmethod
    def validate_original_url(cls, v: str) -> str:
        return _check_url(v)


class LinkUpdate(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    original_url: str | None = None
    style: LinkStyle | None = None
    description: str | None = None
    image_url: str | None = None
    is_active: bool | None = None

    @field_validator("original_url")
    @classmethod
    def validate_original_url(cls, v: str | None) -> str | None:
        return _check_url(v)


class VisitStats(CamelModel):
    total_visits: int = 0
    daily_visits: int = 0
    monthly_visits: int = 0
    owner_visits: int = 0
    external_visits: int = 0


class LinkResponse(CamelModel):
    id: int
    user_id: int
    title: str
    short_code: str
    short_url: str
    original_url: str
    style: LinkStyle
    description: str | None = None
    image_url: str | None = None
    clicks: int
    is_active: bool
    created_at: datetime.datetime


class LinkWithStats(LinkResponse):
    total_visits: int = 0
    daily_visits: int = 0
    monthly_visits: int = 0
    owner_visits: int = 0
    external_visits: int = 0


class LinkVisitResponse(CamelModel):
    id: int
    link_id: int
    visitor_ip: str
    user_agent: str | None = None
    referrer: str | None = None
    is_owner: bool
    visited_at: datetime.datetime


class UserCreate(CamelModel):
    username: str = Field(..., min_length=1, max_length=64)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=32)
    name: str | None = Field(None, max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        if v is not None and not validators.email(v):
            raise ValueError("Invalid email address")
        return v


class UserResponse(CamelModel):
    id: int
    username: str
    custom_url: str | None = None
    email: str | None = None
    name: str | None = None
    bio: str | None = None
    visit_count: int
    created_at: datetime.datetime


class PublicProfile(CamelModel):
    id: int
    username: str
    custom_url: str | None = None
    name: str | None = None
    bio: str | None = None
    visit_count: int


class UsernameCheckRequest(CamelModel):
    username: str
    current_user_id: int | None = None


class UsernameCheckResponse(CamelModel):
    available: bool
    message: str


class UsernameUpdate(CamelModel):
    username: str


class SettingsUpdate(CamelModel):
    link_title: str | None = Field(None, max_length=255)
    link_url: str | None = None
    link_description: str | None = None
    content_type: str | None = Field(None, max_length=20)
    custom_url: str | None = Field(None, max_length=64)

    @field_validator("link_url")
    @classmethod
    def validate_link_url(cls, v: str | None) -> str | None:
        if not v:
            return v
        return _check_url(v)


class SettingsResponse(CamelModel):
    user_id: int
    link_title: str | None = None
    link_url: str | None = None
    link_description: str | None = None
    content_type: str = "links"
    custom_url: str | None = None
    slug: str | None = None


class VisitCountResponse(CamelModel):
    visit_count: int


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
