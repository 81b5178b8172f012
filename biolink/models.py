"""SQLAlchemy ORM models for the resolution and analytics subsystem.

This module defines the database schema using SQLAlchemy declarative models
with the indexes the resolution chain depends on.

Data Model Layout
=================
::
    users                      links                      link_visits
    ├─ id (PK)                 ├─ id (PK)                 ├─ id (PK)
    ├─ username (UNIQUE)       ├─ user_id ──► users.id    ├─ link_id (INDEXED, no FK)
    ├─ custom_url (UNIQUE)     ├─ short_code (UNIQUE)     ├─ visitor_ip
    ├─ email (UNIQUE)          ├─ original_url            ├─ user_agent
    ├─ phone (UNIQUE)          ├─ clicks                  ├─ referrer
    ├─ visit_count             ├─ is_active               ├─ is_owner
    └─ created_at              └─ created_at              └─ visited_at

    user_settings              settings_slugs
    ├─ user_id (UNIQUE)        ├─ user_id (PK) ──► users.id
    ├─ link_title              ├─ slug (INDEXED, not unique)
    ├─ link_url                └─ updated_at
    └─ updated_at

Key Behaviours
===============
- short_code, username and custom_url are unique; the store is the arbiter of
  collisions and writers translate IntegrityError into ConflictError.
- link_visits.link_id carries no foreign key: deleting a link leaves its
  visits behind as orphans so historical totals stay queryable.
- visited_at is stamped once at insert (UTC) and never updated.
- settings_slugs is a derived projection of user_settings.link_title, kept in
  sync by the settings writer; it replaces a scan of every user.

Classes:
    User:  Profile owner; reachable by username or custom_url.
    Link:  Short-code backed redirect.
    LinkVisit:  One row per recorded access.
    UserSettings:  Per-user settings holding the slug source.
    SettingsSlug:  Indexed slug -> user projection.
"""

import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from biolink.database import Base
from biolink.enums import LinkStyle

__all__ = ["User", "Link", "LinkVisit", "UserSettings", "SettingsSlug", "utcnow"]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    custom_url: Mapped[str | None] = mapped_column(String(64), unique=True, index=True, nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    visit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"


class Link(Base):
    __tablename__ = "links"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    short_code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    style: Mapped[str] = mapped_column(String(20), default=LinkStyle.THUMBNAIL.value, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Link(id={self.id}, short_code='{self.short_code}', clicks={self.clicks})>"


class LinkVisit(Base):
    __tablename__ = "link_visits"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    link_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    visitor_ip: Mapped[str] = mapped_column(String(45), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    referrer: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_owner: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    visited_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True, nullable=False
    )

    def __repr__(self) -> str:
        return f"<LinkVisit(id={self.id}, link_id={self.link_id}, is_owner={self.is_owner})>"


class UserSettings(Base):
    __tablename__ = "user_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    link_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    link_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    link_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_type: Mapped[str] = mapped_column(String(20), default="links", nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserSettings(user_id={self.user_id}, link_title='{self.link_title}')>"


class SettingsSlug(Base):
    __tablename__ = "settings_slugs"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<SettingsSlug(slug='{self.slug}', user_id={self.user_id})>"
