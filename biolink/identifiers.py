"""Identifier normalization, slug derivation and username validation.

Everything here is pure: no I/O, no exceptions escaping ``normalize``.

``normalize`` decides whether a single path segment is worth handing to the
resolution chain. Segments that belong to the application's own routes,
static assets or dev tooling come back as ``None`` (reserved) and the caller
lets the app router have them.
"""

import re

__all__ = [
    "RESERVED_ROUTES",
    "STATIC_EXTENSIONS",
    "DEV_ARTIFACT_PREFIXES",
    "is_reserved",
    "normalize",
    "slugify",
    "validate_username",
    "USERNAME_PATTERN",
]

RESERVED_ROUTES = frozenset(
    {
        # app router pages
        "api",
        "login",
        "dashboard",
        "settings",
        "uploads",
        "oauth",
        "link",
        "l",
        "users",
        "images",
        "videos",
        "links",
        "manager",
        "profile",
        "demo_user",
        "test",
        # this service
        "health",
        "metrics",
        "docs",
        "redoc",
        "openapi.json",
        "assets",
        "static",
        "favicon.ico",
        "src",
        "node_modules",
    }
)

STATIC_EXTENSIONS = (
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".webp",
    ".css",
    ".js",
    ".map",
    ".ico",
    ".svg",
    ".json",
    ".txt",
    ".woff",
    ".woff2",
    ".ttf",
)

DEV_ARTIFACT_PREFIXES = (
    "@",
    "__vite",
    "_next",
    "generated-icon",
    "webpack-hmr",
)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9가-힣_-]+$")
_WHITESPACE = re.compile(r"\s+")


def is_reserved(segment: str) -> bool:
    candidate = segment.strip().lower()
    if not candidate:
        return True
    if candidate in RESERVED_ROUTES:
        return True
    if candidate.endswith(STATIC_EXTENSIONS):
        return True
    return candidate.startswith(DEV_ARTIFACT_PREFIXES)


def normalize(raw_segment: str) -> str | None:
    """Return the segment unchanged, or ``None`` when it is reserved.

    Args:
        raw_segment: One URL-decoded path segment.

    Returns:
        The identifier to resolve, or None if it must pass through to the app router.
    """
    if not isinstance(raw_segment, str) or is_reserved(raw_segment):
        return None
    return raw_segment


def slugify(title: str) -> str:
    return _WHITESPACE.sub("-", title.strip().lower())


def validate_username(username: str) -> tuple[bool, str]:
    """Validate a user-chosen username.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not username:
        return False, "Username is required"

    if len(username) < 2:
        return False, "Username must be at least 2 characters"

    if len(username) > 20:
        return False, "Username must be at most 20 characters"

    if not USERNAME_PATTERN.match(username):
        return False, "Username can only contain letters, Hangul, digits, '_' and '-'"

    if username[0] in "_-" or username[-1] in "_-":
        return False, "Username cannot start or end with '_' or '-'"

    return True, ""
