"""Shared enums for the resolution service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "TargetSource", "DispatchOutcome", "LinkStyle", "RequestStatus", "CacheStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class TargetSource(StrEnum):
    """Which resolution step produced a target."""

    LINK = "link"
    PROFILE = "profile"
    SETTINGS_SLUG = "settings-slug"


class DispatchOutcome(StrEnum):
    """Terminal states of the redirect dispatcher."""

    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    REDIRECT = "redirect"


class LinkStyle(StrEnum):
    """Presentation hint stored with a link."""

    THUMBNAIL = "thumbnail"
    SIMPLE = "simple"
    CARD = "card"
    BACKGROUND = "background"


class RequestStatus(StrEnum):
    """Metric label for request outcomes."""

    SUCCESS = "success"
    CONFLICT = "conflict"
    ERROR = "error"


class CacheStatus(StrEnum):
    """Metric label for cache lookups."""

    HIT = "hit"
    MISS = "miss"
    ERROR = "error"
