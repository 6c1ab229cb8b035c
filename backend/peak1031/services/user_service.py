import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import Role
from ..crud.refresh_token import RefreshTokenRepository
from ..crud.user import UserRepository
from ..errors import AuthError, ConflictError, NotFoundError, PermissionError, ValidationError
from ..models.user import User
from ..schemas.user import PasswordChange, UserCreate, UserStatistics, UserUpdate
from ..security.passwords import hash_secret_async, verify_secret_async
from .audit_service import AuditService, serialize_entity
from .context import EMPTY_CONTEXT, RequestContext
from .permission_service import PermissionService

logger = logging.getLogger("peak1031.users")

USER_FIELDS = ("email", "first_name", "last_name", "phone", "company", "role", "is_active")


class UserService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = UserRepository(session)
        self.tokens = RefreshTokenRepository(session)
        self.permissions = PermissionService(session)
        self.audit = AuditService(session)

    async def list_users(
        self,
        actor: User,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> tuple[list[User], int]:
        await self.permissions.require_permission(actor, "users.view", context=context)
        return await self.repo.list_by_filters(
            role=role, is_active=is_active, search=search, limit=limit, offset=offset
        )

    async def get_user(
        self, user_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> User:
        if user_id != actor.id:
            await self.permissions.require_permission(
                actor, "users.view", resource=str(user_id), context=context
            )
        user = await self.repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def create_user(
        self, payload: UserCreate, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> User:
        await self.permissions.require_permission(actor, "users.create", context=context)
        if await self.repo.get_by_email(payload.email) is not None:
            raise ConflictError("Email already registered", details={"email": payload.email})
        user = await self.repo.create(
            **payload.model_dump(exclude={"password"}),
            password_hash=await hash_secret_async(payload.password),
        )
        await self.audit.log_create(
            "user", user.id, serialize_entity(user, USER_FIELDS), actor=actor, context=context
        )
        await self.session.commit()
        logger.info("user created id=%s role=%s actor=%s", user.id, user.role, actor.id)
        return user

    async def update_user(
        self,
        user_id: uuid.UUID,
        payload: UserUpdate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> User:
        changes = payload.model_dump(exclude_unset=True)
        is_self = user_id == actor.id
        if not is_self or {"role", "is_active"} & set(changes):
            await self.permissions.require_permission(
                actor, "users.edit", resource=str(user_id), context=context
            )
        if "role" in changes:
            await self.permissions.require_permission(
                actor, "users.manage_roles", resource=str(user_id), context=context
            )

        user = await self.repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if changes.get("email") and changes["email"] != user.email:
            if await self.repo.get_by_email(changes["email"]) is not None:
                raise ConflictError("Email already registered", details={"email": changes["email"]})
        if is_self and changes.get("is_active") is False:
            raise ValidationError("You cannot deactivate your own account")

        before = serialize_entity(user, USER_FIELDS)
        for field, value in changes.items():
            if value is None and field in ("email", "role", "is_active"):
                continue
            setattr(user, field, value)
        if changes.get("is_active") is False:
            await self._revoke_session(user)

        await self.session.flush()
        await self.audit.log_update(
            "user",
            user.id,
            before,
            serialize_entity(user, USER_FIELDS),
            actor=actor,
            context=context,
        )
        await self.session.commit()
        return user

    async def set_active(
        self,
        user_id: uuid.UUID,
        is_active: bool,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> User:
        return await self.update_user(user_id, UserUpdate(is_active=is_active), actor, context)

    async def delete_user(
        self, user_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> None:
        """Soft delete: the account is deactivated and its session revoked."""
        await self.permissions.require_permission(
            actor, "users.delete", resource=str(user_id), context=context
        )
        if user_id == actor.id:
            raise ValidationError("You cannot delete your own account")
        user = await self.repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        before = serialize_entity(user, USER_FIELDS)
        user.is_active = False
        await self._revoke_session(user)
        await self.audit.log_delete("user", user.id, before, actor=actor, context=context)
        await self.session.commit()
        logger.info("user deactivated id=%s actor=%s", user.id, actor.id)

    async def _revoke_session(self, user: User) -> None:
        await self.tokens.revoke(user.id)

    async def change_password(
        self,
        user_id: uuid.UUID,
        payload: PasswordChange,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> None:
        is_admin = actor.role == Role.ADMIN.value
        if user_id != actor.id and not is_admin:
            await self.permissions.audit_denial(actor, "users.change_password", str(user_id), context)
            raise PermissionError("You can only change your own password")

        user = await self.repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user_id == actor.id and not await verify_secret_async(
            payload.current_password, user.password_hash
        ):
            raise AuthError("Current password is incorrect")

        user.password_hash = await hash_secret_async(payload.new_password)
        await self._revoke_session(user)
        await self.audit.log(
            action="user.password_change",
            entity_type="user",
            entity_id=user.id,
            actor=actor,
            context=context,
        )
        await self.session.commit()
        logger.info("password changed user_id=%s actor=%s", user.id, actor.id)

    async def statistics(self, actor: User, context: RequestContext = EMPTY_CONTEXT) -> UserStatistics:
        await self.permissions.require_permission(actor, "users.view", context=context)
        by_active = await self.repo.count_by_active()
        active = by_active.get(True, 0)
        inactive = by_active.get(False, 0)
        return UserStatistics(
            total=active + inactive,
            active=active,
            inactive=inactive,
            by_role=await self.repo.count_by_role(),
        )
