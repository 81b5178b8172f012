"""Username allocation at signup and fuzzy lookup of legacy auto-generated names.

Allocation Order
================
::
    sanitize(base) ──► "" ? ──► InvalidIdentifierError
          │
          ▼
    base free and not reserved? ──► base
          │ no
          ▼
    base1 .. base999, first free ──► baseN
          │ all taken
          ▼
    base_<last 6 digits of ms timestamp>

Key Behaviours
===============
- All usernames sharing the sanitized prefix are read in a single query, so
  probing the 999 suffixes costs one round trip rather than 999.
- Allocation is not locked. Two signups racing on the same base can both see
  it free; the loser's insert fails on the unique index and the caller
  reports a username conflict.
- Candidates never exceed the 64-character column: the base is cut short
  to make room for its suffix.
- Fuzzy lookup only matches ``<input>_<digits>``; among several matches the
  highest user id (most recently created) wins.
"""

import logging
import re
import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from biolink.exceptions import InvalidIdentifierError
from biolink.identifiers import DEV_ARTIFACT_PREFIXES, is_reserved
from biolink.metrics import DATABASE_READS_TOTAL
from biolink.models import User

__all__ = ["UsernameAllocator", "sanitize_username", "MAX_NUMERIC_SUFFIX", "MAX_USERNAME_LENGTH"]

MAX_NUMERIC_SUFFIX = 999
# users.username column width
MAX_USERNAME_LENGTH = 64
# room left for "_NNNNNN"
_TIMESTAMP_ROOT_LENGTH = MAX_USERNAME_LENGTH - 7
_DISALLOWED = re.compile(r"[^a-zA-Z0-9가-힣_-]")


def sanitize_username(base_name: str) -> str:
    return _DISALLOWED.sub("", base_name or "").lower().strip()


def _timestamp_suffix() -> int:
    return int(str(time.time_ns() // 1_000_000)[-6:])


class UsernameAllocator:
    """Allocates collision-free usernames and resolves fuzzy legacy names."""

    def __init__(self, db: AsyncSession, logger: logging.Logger | logging.LoggerAdapter | None = None):
        self._db = db
        self._logger = logger or logging.getLogger("biolink.usernames")

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "UsernameAllocator":
        return cls(ctx.database, ctx.logger)

    async def allocate(self, base_name: str) -> str:
        """Return a username that is free at the moment of the call.

        Reserved route names count as taken, so ``login`` becomes ``login1``.
        Every candidate is cut to fit ``MAX_USERNAME_LENGTH``.

        Raises:
            InvalidIdentifierError: If nothing survives sanitization, or the
                name falls under a reserved prefix no suffix can escape.
        """
        base = sanitize_username(base_name)[:MAX_USERNAME_LENGTH]
        if not base:
            raise InvalidIdentifierError(f"Invalid username: {base_name!r}")
        if base.startswith(DEV_ARTIFACT_PREFIXES):
            raise InvalidIdentifierError(f"Username '{base}' is reserved")

        taken = await self._usernames_with_prefix(base[:_TIMESTAMP_ROOT_LENGTH])
        if base not in taken and not is_reserved(base):
            return base

        for i in range(1, MAX_NUMERIC_SUFFIX + 1):
            digits = str(i)
            candidate = f"{base[:MAX_USERNAME_LENGTH - len(digits)]}{digits}"
            if candidate not in taken:
                return candidate

        root = base[:_TIMESTAMP_ROOT_LENGTH]
        suffix = _timestamp_suffix()
        candidate = f"{root}_{suffix:06d}"
        while candidate in taken:
            suffix = (suffix + 1) % 1_000_000
            candidate = f"{root}_{suffix:06d}"

        self._logger.warning(f"Username suffixes exhausted for '{base}', using {candidate}")
        return candidate

    async def is_available(self, username: str, exclude_user_id: int | None = None) -> bool:
        result = await self._db.execute(select(User.id).where(User.username == username))
        DATABASE_READS_TOTAL.inc()
        owner_id = result.scalar_one_or_none()
        return owner_id is None or owner_id == exclude_user_id

    async def resolve_fuzzy(self, input_username: str) -> User | None:
        """Find ``<input>_<digits>`` users; the highest id wins."""
        if not input_username:
            return None

        pattern = re.compile(rf"^{re.escape(input_username)}_\d+$")
        result = await self._db.execute(
            select(User)
            .where(User.username.startswith(f"{input_username}_", autoescape=True))
            .order_by(User.id.desc())
        )
        DATABASE_READS_TOTAL.inc()

        for user in result.scalars():
            if pattern.match(user.username):
                return user
        return None

    async def find_by_flexible_username(self, input_username: str) -> User | None:
        result = await self._db.execute(select(User).where(User.username == input_username))
        DATABASE_READS_TOTAL.inc()
        user = result.scalar_one_or_none()
        if user is not None:
            return user
        return await self.resolve_fuzzy(input_username)

    async def _usernames_with_prefix(self, base: str) -> set[str]:
        result = await self._db.execute(
            select(User.username).where(User.username.startswith(base, autoescape=True))
        )
        DATABASE_READS_TOTAL.inc()
        return set(result.scalars())
