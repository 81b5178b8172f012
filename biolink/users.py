"""User, username, settings and public-profile operations.

Settings Write Flow
===================
::
    PUT /api/settings/{user_id}
           │
           ▼
    customUrl given? ──► reserved / invalid ──► InvalidIdentifierError (400)
           │                taken by another user ──► ConflictError (409)
           ▼
    upsert user_settings
           │
           ▼
    link_title AND link_url set?
       ├─ yes ──► upsert settings_slugs(user_id, slugify(title), now)
       └─ no  ──► delete settings_slugs row
           │
           ▼
        COMMIT (one transaction)

Key Behaviours
===============
- Signup usernames go through the allocator, so a taken name is suffixed
  rather than rejected.
- User-chosen usernames (PATCH) are validated and rejected when taken.
- The slug projection is written in the same transaction as the settings
  row, so the resolution chain never sees one without the other.
- Public profile lookup tries customUrl, then username, then the fuzzy
  ``<name>_<digits>`` form.
"""

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from biolink.exceptions import ConflictError, InvalidIdentifierError
from biolink.identifiers import is_reserved, slugify, validate_username
from biolink.metrics import DATABASE_READS_TOTAL, DATABASE_WRITES_TOTAL
from biolink.models import SettingsSlug, User, UserSettings, utcnow
from biolink.schemas import SettingsResponse, SettingsUpdate, UserCreate
from biolink.usernames import UsernameAllocator
from biolink.visits import VisitRecorder

__all__ = ["UserService"]

_UNIQUE_USER_FIELDS = ("custom_url", "email", "phone", "username")


def _conflicting_field(exc: IntegrityError, default: str = "username") -> str:
    message = str(exc.orig).lower()
    for field in _UNIQUE_USER_FIELDS:
        if field in message:
            return field
    return default


class UserService:
    """Service layer for users, their settings and public profile lookup."""

    def __init__(self, ctx: "RequestContext"):
        self._db = ctx.database
        self._logger = ctx.logger
        self._settings = ctx.settings
        self._allocator = UsernameAllocator.from_context(ctx)

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "UserService":
        return cls(ctx)

    # ========================================================================
    # USERS
    # ========================================================================

    async def create_user(self, payload: UserCreate) -> User:
        """Sign a user up, suffixing the requested username when it is taken.

        Raises:
            InvalidIdentifierError: If the requested username sanitizes to nothing.
            ConflictError: If a concurrent signup won the username, or email/phone is taken.
        """
        username = await self._allocator.allocate(payload.username)
        user = User(username=username, email=payload.email, phone=payload.phone, name=payload.name)
        self._db.add(user)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            field = _conflicting_field(exc)
            self._logger.warning(f"Signup conflict on {field} for requested username {payload.username!r}")
            raise ConflictError(field) from exc

        DATABASE_WRITES_TOTAL.inc()
        await self._db.refresh(user)
        self._logger.info(f"User created: id={user.id} username={user.username}")
        return user

    async def get_user(self, user_id: int) -> User | None:
        result = await self._db.execute(select(User).where(User.id == user_id))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    async def check_username(self, username: str, current_user_id: int | None = None) -> tuple[bool, str]:
        is_valid, error = validate_username(username)
        if not is_valid:
            return False, error
        if is_reserved(username):
            return False, "This username is reserved"
        if not await self._allocator.is_available(username, exclude_user_id=current_user_id):
            return False, "This username is already taken"
        return True, "This username is available"

    async def update_username(self, user_id: int, username: str) -> User | None:
        is_valid, error = validate_username(username)
        if not is_valid:
            raise InvalidIdentifierError(error)
        if is_reserved(username):
            raise InvalidIdentifierError("This username is reserved")

        user = await self.get_user(user_id)
        if user is None:
            return None
        if user.username == username:
            return user
        if not await self._allocator.is_available(username, exclude_user_id=user_id):
            raise ConflictError("username", username)

        previous = user.username
        user.username = username
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise ConflictError("username", username) from exc

        DATABASE_WRITES_TOTAL.inc()
        self._logger.info(f"Username changed for user {user_id}: {previous} -> {username}")
        return user

    async def find_public_profile(self, identifier: str) -> User | None:
        result = await self._db.execute(select(User).where(User.custom_url == identifier))
        DATABASE_READS_TOTAL.inc()
        user = result.scalar_one_or_none()
        if user is not None:
            return user
        return await self._allocator.find_by_flexible_username(identifier)

    async def increment_visit_count(self, user_id: int) -> int | None:
        if await self.get_user(user_id) is None:
            return None
        await VisitRecorder(self._db, self._logger).increment_visit_count(user_id)
        result = await self._db.execute(select(User.visit_count).where(User.id == user_id))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one()

    # ========================================================================
    # SETTINGS
    # ========================================================================

    async def get_user_settings(self, user_id: int) -> SettingsResponse | None:
        user = await self.get_user(user_id)
        if user is None:
            return None
        user_settings = await self._load_settings(user_id)
        return self._settings_response(user, user_settings)

    async def update_user_settings(self, user_id: int, payload: SettingsUpdate) -> SettingsResponse | None:
        user = await self.get_user(user_id)
        if user is None:
            return None

        changes = payload.model_dump(exclude_unset=True)
        if "custom_url" in changes:
            user.custom_url = await self._checked_custom_url(user_id, changes.pop("custom_url"))

        user_settings = await self._load_settings(user_id)
        if user_settings is None:
            user_settings = UserSettings(user_id=user_id)
            self._db.add(user_settings)
        for field, value in changes.items():
            if field == "content_type" and not value:
                continue
            setattr(user_settings, field, value)

        await self._sync_slug(user_id, user_settings)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise ConflictError(_conflicting_field(exc, default="custom_url"), user.custom_url) from exc

        DATABASE_WRITES_TOTAL.inc()
        await self._db.refresh(user_settings)
        self._logger.info(f"Settings updated for user {user_id}: {sorted(payload.model_fields_set)}")
        return self._settings_response(user, user_settings)

    async def _checked_custom_url(self, user_id: int, custom_url: str | None) -> str | None:
        custom_url = (custom_url or "").strip()
        if not custom_url:
            return None

        is_valid, error = validate_username(custom_url)
        if not is_valid:
            raise InvalidIdentifierError(error.replace("Username", "Custom URL"))
        if is_reserved(custom_url):
            raise InvalidIdentifierError(f"Custom URL '{custom_url}' is reserved")

        result = await self._db.execute(
            select(User.id).where(User.custom_url == custom_url, User.id != user_id)
        )
        DATABASE_READS_TOTAL.inc()
        if result.scalar_one_or_none() is not None:
            raise ConflictError("custom_url", custom_url)
        return custom_url

    async def _load_settings(self, user_id: int) -> UserSettings | None:
        result = await self._db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    async def _sync_slug(self, user_id: int, user_settings: UserSettings) -> None:
        title = (user_settings.link_title or "").strip()
        if not title or not user_settings.link_url:
            await self._db.execute(delete(SettingsSlug).where(SettingsSlug.user_id == user_id))
            return

        slug = slugify(title)
        projection = await self._db.get(SettingsSlug, user_id)
        if projection is None:
            self._db.add(SettingsSlug(user_id=user_id, slug=slug, updated_at=utcnow()))
        elif projection.slug != slug:
            # updated_at orders shared slugs, so only a slug change may move it.
            projection.slug = slug
            projection.updated_at = utcnow()

    def _settings_response(self, user: User, user_settings: UserSettings | None) -> SettingsResponse:
        if user_settings is None:
            return SettingsResponse(user_id=user.id, custom_url=user.custom_url)
        title = (user_settings.link_title or "").strip()
        slug = slugify(title) if title and user_settings.link_url else None
        return SettingsResponse(
            user_id=user.id,
            link_title=user_settings.link_title,
            link_url=user_settings.link_url,
            link_description=user_settings.link_description,
            content_type=user_settings.content_type or "links",
            custom_url=user.custom_url,
            slug=slug,
        )
