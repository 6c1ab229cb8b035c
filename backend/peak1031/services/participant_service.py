import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.exchange_permissions import ExchangeAccess, resolve_permissions, validate_overrides
from ..crud.participant import ParticipantRepository
from ..crud.user import UserRepository
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.exchange import Exchange
from ..models.participant import ExchangeParticipant
from ..models.user import User
from ..schemas.participant import (
    ExchangePermissionsRead,
    ExchangePermissionsUpdate,
    ParticipantCreate,
    ParticipantRead,
    ParticipantUpdate,
)
from ..utils.time import utcnow
from .audit_service import AuditService, serialize_entity
from .context import EMPTY_CONTEXT, RequestContext
from .notification_service import NotificationService
from .permission_service import PermissionService

logger = logging.getLogger("peak1031.participants")

PARTICIPANT_FIELDS = ("user_id", "role", "access_level", "permissions", "is_active")


def _clean_overrides(overrides: dict[str, bool] | None) -> dict[str, bool]:
    try:
        return validate_overrides(overrides or {})
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _permissions_read(exchange_id: uuid.UUID, user_id: uuid.UUID, access: ExchangeAccess) -> ExchangePermissionsRead:
    return ExchangePermissionsRead(
        exchange_id=exchange_id,
        user_id=user_id,
        role=access.role,
        access_level=access.access_level,
        is_system_admin=access.is_system_admin,
        permissions=access.permissions,
        overrides=access.overrides,
        tabs=access.tabs,
    )


class ParticipantService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = ParticipantRepository(session)
        self.users = UserRepository(session)
        self.permissions = PermissionService(session)
        self.audit = AuditService(session)
        self.notifications = NotificationService(session)

    async def list_participants(
        self, exchange_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> list[ParticipantRead]:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_view_participants", context=context
        )
        rows = await self.repo.list_for_exchange(exchange.id)
        listed = {row.user_id for row in rows}
        items: list[ParticipantRead] = []
        for user_id, role in ((exchange.coordinator_id, "coordinator"), (exchange.client_id, "client")):
            if user_id is not None and user_id not in listed:
                items.append(
                    ParticipantRead(
                        exchange_id=exchange.id, user_id=user_id, role=role, is_active=True
                    )
                )
                listed.add(user_id)
        items.extend(ParticipantRead.model_validate(row) for row in rows)
        return items

    async def attach(
        self,
        exchange: Exchange,
        user: User,
        *,
        role: str,
        access_level: str | None,
        overrides: dict[str, bool],
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> ExchangeParticipant:
        """
        Create or reactivate the participant row and audit it. Does not commit.

        Raises:
            ConflictError: the user is already an active participant
        """
        participant = await self.repo.get(exchange.id, user.id)
        if participant is not None and participant.is_active:
            raise ConflictError(
                "User is already a participant", details={"user_id": str(user.id)}
            )
        if participant is not None:
            # Re-adding a removed participant reactivates the existing row
            participant.is_active = True
            participant.role = role
            participant.access_level = access_level
            participant.permissions = overrides
            participant.added_by = actor.id
        else:
            participant = await self.repo.create(
                exchange_id=exchange.id,
                user_id=user.id,
                role=role,
                access_level=access_level,
                permissions=overrides,
                added_by=actor.id,
            )
        exchange.last_activity_at = utcnow()

        await self.audit.log(
            action="exchange.participant_add",
            entity_type="exchange",
            entity_id=exchange.id,
            actor=actor,
            after=serialize_entity(participant, PARTICIPANT_FIELDS),
            context=context,
        )
        return participant

    async def add_participant(
        self,
        exchange_id: uuid.UUID,
        payload: ParticipantCreate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> ExchangeParticipant:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_add_participants", context=context
        )
        user = await self.users.get_by_id(payload.user_id)
        if user is None or not user.is_active:
            raise NotFoundError("User not found")
        overrides = _clean_overrides(payload.permissions)

        participant = await self.attach(
            exchange,
            user,
            role=payload.role,
            access_level=payload.access_level,
            overrides=overrides,
            actor=actor,
            context=context,
        )
        await self.notifications.notify(
            [user.id],
            title="Added to exchange",
            message=f"You have been added to exchange {exchange.exchange_number}",
            type="participant",
            exchange_id=exchange.id,
            exclude=actor.id,
        )
        await self.session.commit()
        logger.info(
            "participant added exchange_id=%s user_id=%s role=%s", exchange.id, user.id, payload.role
        )
        return participant

    async def _require_row(self, exchange: Exchange, user_id: uuid.UUID) -> ExchangeParticipant:
        participant = await self.repo.get_active(exchange.id, user_id)
        if participant is None:
            raise NotFoundError("Participant not found")
        return participant

    async def update_participant(
        self,
        exchange_id: uuid.UUID,
        user_id: uuid.UUID,
        payload: ParticipantUpdate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> ExchangeParticipant:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_manage_participants", context=context
        )
        participant = await self._require_row(exchange, user_id)
        before = serialize_entity(participant, PARTICIPANT_FIELDS)

        changes = payload.model_dump(exclude_unset=True)
        if "permissions" in changes:
            changes["permissions"] = _clean_overrides(changes["permissions"])
        for field, value in changes.items():
            setattr(participant, field, value)

        await self.audit.log(
            action="exchange.participant_update",
            entity_type="exchange",
            entity_id=exchange.id,
            actor=actor,
            before=before,
            after=serialize_entity(participant, PARTICIPANT_FIELDS),
            context=context,
        )
        await self.session.commit()
        return participant

    async def remove_participant(
        self,
        exchange_id: uuid.UUID,
        user_id: uuid.UUID,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> None:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_manage_participants", context=context
        )
        participant = await self._require_row(exchange, user_id)
        before = serialize_entity(participant, PARTICIPANT_FIELDS)
        participant.is_active = False
        exchange.last_activity_at = utcnow()
        await self.audit.log(
            action="exchange.participant_remove",
            entity_type="exchange",
            entity_id=exchange.id,
            actor=actor,
            before=before,
            context=context,
        )
        await self.session.commit()
        logger.info("participant removed exchange_id=%s user_id=%s", exchange.id, user_id)

    async def my_permissions(
        self, exchange_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> ExchangePermissionsRead:
        exchange, access = await self.permissions.get_exchange(actor, exchange_id, context=context)
        return _permissions_read(exchange.id, actor.id, access)

    async def _access_for(self, exchange: Exchange, user: User) -> ExchangeAccess:
        access = await self.permissions.resolve_access(user, exchange)
        if access is None:
            return resolve_permissions(system_role=user.role, exchange_role=None, access_level="none")
        return access

    async def user_permissions(
        self,
        exchange_id: uuid.UUID,
        user_id: uuid.UUID,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> ExchangePermissionsRead:
        if user_id == actor.id:
            return await self.my_permissions(exchange_id, actor, context)
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_manage_participants", context=context
        )
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return _permissions_read(exchange.id, user.id, await self._access_for(exchange, user))

    async def set_user_permissions(
        self,
        exchange_id: uuid.UUID,
        user_id: uuid.UUID,
        payload: ExchangePermissionsUpdate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> ExchangePermissionsRead:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_manage_participants", context=context
        )
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        participant = await self.repo.get_active(exchange.id, user.id)
        if participant is None:
            if user.id == exchange.client_id:
                role = "client"
            elif user.id == exchange.coordinator_id:
                role = "coordinator"
            else:
                raise NotFoundError("Participant not found")
            # Client and coordinator get a row the first time they are customised
            participant = await self.repo.get(exchange.id, user.id)
            if participant is None:
                participant = await self.repo.create(
                    exchange_id=exchange.id, user_id=user.id, role=role, added_by=actor.id
                )
            participant.is_active = True

        before = serialize_entity(participant, PARTICIPANT_FIELDS)
        fields = payload.model_fields_set
        if "access_level" in fields:
            participant.access_level = payload.access_level
        overrides = {} if payload.reset_overrides else dict(participant.permissions or {})
        if payload.permissions is not None:
            overrides.update(_clean_overrides(payload.permissions))
        participant.permissions = overrides

        await self.audit.log(
            action="exchange.permissions_update",
            entity_type="exchange",
            entity_id=exchange.id,
            actor=actor,
            before=before,
            after=serialize_entity(participant, PARTICIPANT_FIELDS),
            context=context,
        )
        await self.session.commit()
        logger.info(
            "exchange permissions updated exchange_id=%s user_id=%s actor=%s",
            exchange.id,
            user.id,
            actor.id,
        )
        return _permissions_read(exchange.id, user.id, await self._access_for(exchange, user))

    async def all_permissions(
        self, exchange_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> list[ExchangePermissionsRead]:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_view_participants", context=context
        )
        user_ids: list[uuid.UUID] = []
        for user_id in (exchange.coordinator_id, exchange.client_id):
            if user_id is not None:
                user_ids.append(user_id)
        for row in await self.repo.list_for_exchange(exchange.id):
            if row.user_id not in user_ids:
                user_ids.append(row.user_id)

        users = {user.id: user for user in await self.users.get_many(user_ids)}
        results: list[ExchangePermissionsRead] = []
        for user_id in user_ids:
            user = users.get(user_id)
            if user is None:
                continue
            results.append(
                _permissions_read(exchange.id, user.id, await self._access_for(exchange, user))
            )
        return results
