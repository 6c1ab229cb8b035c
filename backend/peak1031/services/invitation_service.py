"""
Exchange invitations.

Coordinators invite people to an exchange by email. Someone who already has
an account is attached to the exchange straight away; anyone else receives
a single-use token that creates their account and participant row when
accepted. Tokens are stored hashed and expire after
``settings.invitation_expire_days``.
"""
import logging
import uuid
from collections import Counter

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.exchange_permissions import ExchangeAccess
from ..crud.exchange import ExchangeRepository
from ..crud.invitation import InvitationRepository
from ..crud.refresh_token import RefreshTokenRepository
from ..crud.user import UserRepository
from ..errors import ConflictError, NotFoundError, PermissionError, ValidationError
from ..models.exchange import Exchange
from ..models.invitation import ExchangeInvitation
from ..models.user import User
from ..schemas.invitation import (
    ExchangeMembers,
    InvitationAccept,
    InvitationAcceptResult,
    InvitationBatch,
    InvitationCreate,
    InvitationDetails,
    InvitationIssued,
    InvitationList,
    InvitationRead,
    InvitationSendResult,
)
from ..schemas.user import UserRead
from ..security.passwords import hash_secret_async
from ..security.tokens import create_invitation_token, hash_invitation_token, invitation_expiry
from ..use_cases.auth.tokens import issue_tokens
from ..utils.time import utcnow
from .audit_service import AuditService
from .context import EMPTY_CONTEXT, RequestContext
from .notification_service import NotificationService
from .participant_service import ParticipantService
from .permission_service import PermissionService

logger = logging.getLogger("peak1031.invitations")

INVITATION_STATUSES = ("pending", "accepted", "cancelled", "expired")


class InvitationService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = InvitationRepository(session)
        self.exchanges = ExchangeRepository(session)
        self.users = UserRepository(session)
        self.permissions = PermissionService(session)
        self.participants = ParticipantService(session)
        self.notifications = NotificationService(session)
        self.audit = AuditService(session)

    async def _require_inviter(
        self, actor: User, exchange_id: uuid.UUID, action: str, context: RequestContext
    ) -> tuple[Exchange, ExchangeAccess]:
        exchange, access = await self.permissions.get_exchange(actor, exchange_id, context=context)
        if not access.is_system_admin and access.role != "coordinator":
            await self.permissions.audit_denial(actor, action, str(exchange_id), context)
            raise PermissionError("Only an admin or the exchange coordinator can manage invitations")
        return exchange, access

    async def _load(self, invitation_id: uuid.UUID) -> ExchangeInvitation:
        invitation = await self.repo.get_by_id(invitation_id)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        return invitation

    async def _pending_by_token(self, token: str) -> ExchangeInvitation:
        """
        Raises:
            NotFoundError: unknown token, or the invitation is no longer pending
            ValidationError: the invitation expired; it is marked ``expired``
        """
        invitation = await self.repo.get_by_token_hash(hash_invitation_token(token))
        if invitation is None or invitation.status != "pending":
            raise NotFoundError("Invalid or expired invitation")
        if invitation.is_expired(utcnow()):
            invitation.status = "expired"
            await self.session.commit()
            raise ValidationError("Invitation has expired")
        return invitation

    async def send(
        self,
        exchange_id: uuid.UUID,
        payload: InvitationBatch,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> list[InvitationSendResult]:
        exchange, _ = await self._require_inviter(actor, exchange_id, "invitations.send", context)
        results = [
            await self._send_one(exchange, item, payload.message, actor, context)
            for item in payload.invitations
        ]
        await self.session.commit()
        logger.info(
            "invitations processed exchange_id=%s count=%d actor=%s",
            exchange.id,
            len(results),
            actor.id,
        )
        return results

    async def _send_one(
        self,
        exchange: Exchange,
        item: InvitationCreate,
        message: str | None,
        actor: User,
        context: RequestContext,
    ) -> InvitationSendResult:
        existing = await self.users.get_by_email(item.email)
        if existing is not None and existing.is_active:
            return await self._add_existing(exchange, existing, item, message, actor, context)

        pending = await self.repo.get_pending(exchange.id, item.email)
        if pending is not None:
            return InvitationSendResult(
                email=item.email,
                status="already_invited",
                invitation=InvitationRead.model_validate(pending),
            )

        token = create_invitation_token()
        invitation = await self.repo.create(
            exchange_id=exchange.id,
            email=item.email,
            first_name=item.first_name,
            last_name=item.last_name,
            phone=item.phone,
            role=item.role,
            access_level=item.access_level,
            custom_message=message,
            token_hash=hash_invitation_token(token),
            status="pending",
            invited_by=actor.id,
            expires_at=invitation_expiry(),
        )
        await self.audit.log(
            action="exchange.invitation_send",
            entity_type="exchange",
            entity_id=exchange.id,
            actor=actor,
            after={"invitation_id": str(invitation.id), "email": item.email, "role": item.role},
            context=context,
        )
        return InvitationSendResult(
            email=item.email,
            status="invitation_sent",
            invitation=InvitationRead.model_validate(invitation),
            token=token,
        )

    async def _add_existing(
        self,
        exchange: Exchange,
        user: User,
        item: InvitationCreate,
        message: str | None,
        actor: User,
        context: RequestContext,
    ) -> InvitationSendResult:
        if user.id in (exchange.coordinator_id, exchange.client_id):
            return InvitationSendResult(email=item.email, status="already_participant")
        try:
            await self.participants.attach(
                exchange,
                user,
                role=item.role,
                access_level=item.access_level,
                overrides={},
                actor=actor,
                context=context,
            )
        except ConflictError:
            return InvitationSendResult(email=item.email, status="already_participant")

        now = utcnow()
        # recorded as accepted so it shows in the exchange's invitation history
        invitation = await self.repo.create(
            exchange_id=exchange.id,
            email=item.email,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=item.phone,
            role=item.role,
            access_level=item.access_level,
            custom_message=message,
            token_hash=hash_invitation_token(create_invitation_token()),
            status="accepted",
            invited_by=actor.id,
            user_id=user.id,
            expires_at=now,
            accepted_at=now,
        )
        await self.notifications.notify(
            [user.id],
            title="You've been added to an exchange!",
            message=(
                f"{actor.full_name} added you to {exchange.name or exchange.exchange_number} "
                f"as a {item.role}"
            ),
            type="participant",
            exchange_id=exchange.id,
            urgent=True,
            exclude=actor.id,
        )
        return InvitationSendResult(
            email=item.email,
            status="added_existing_user",
            invitation=InvitationRead.model_validate(invitation),
        )

    async def list_for_exchange(
        self, exchange_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> InvitationList:
        exchange, _ = await self._require_inviter(actor, exchange_id, "invitations.view", context)
        invitations = await self.repo.list_for_exchange(exchange.id)
        counts = Counter(invitation.status for invitation in invitations)
        return InvitationList(
            items=[InvitationRead.model_validate(invitation) for invitation in invitations],
            total=len(invitations),
            **{status: counts.get(status, 0) for status in INVITATION_STATUSES},
        )

    async def list_mine(self, actor: User) -> list[ExchangeInvitation]:
        return await self.repo.list_pending_for_email(actor.email)

    async def members(
        self, exchange_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> ExchangeMembers:
        """Current participants alongside every invitation for the exchange."""
        participants = await self.participants.list_participants(exchange_id, actor, context)
        invitations = await self.repo.list_for_exchange(exchange_id)
        return ExchangeMembers(
            participants=participants,
            invitations=[InvitationRead.model_validate(invitation) for invitation in invitations],
        )

    async def resend(
        self, invitation_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> InvitationIssued:
        """Issue a fresh token and expiry; the previous token stops working."""
        invitation = await self._load(invitation_id)
        await self._require_inviter(actor, invitation.exchange_id, "invitations.resend", context)
        if invitation.status != "pending":
            raise ValidationError(
                "Can only resend pending invitations", details={"status": invitation.status}
            )

        token = create_invitation_token()
        invitation.token_hash = hash_invitation_token(token)
        invitation.expires_at = invitation_expiry()
        await self.audit.log(
            action="exchange.invitation_resend",
            entity_type="exchange",
            entity_id=invitation.exchange_id,
            actor=actor,
            after={"invitation_id": str(invitation.id), "expires_at": invitation.expires_at.isoformat()},
            context=context,
        )
        await self.session.commit()
        return InvitationIssued(invitation=InvitationRead.model_validate(invitation), token=token)

    async def revoke(
        self, invitation_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> ExchangeInvitation:
        invitation = await self._load(invitation_id)
        await self._require_inviter(actor, invitation.exchange_id, "invitations.revoke", context)
        if invitation.status != "pending":
            raise ConflictError(
                "Only pending invitations can be revoked", details={"status": invitation.status}
            )

        invitation.status = "cancelled"
        invitation.cancelled_at = utcnow()
        invitation.cancelled_by = actor.id
        await self.audit.log(
            action="exchange.invitation_revoke",
            entity_type="exchange",
            entity_id=invitation.exchange_id,
            actor=actor,
            before={"invitation_id": str(invitation.id), "status": "pending"},
            after={"invitation_id": str(invitation.id), "status": "cancelled"},
            context=context,
        )
        await self.session.commit()
        logger.info("invitation revoked id=%s actor=%s", invitation.id, actor.id)
        return invitation

    async def details(self, token: str) -> InvitationDetails:
        invitation = await self._pending_by_token(token)
        exchange = await self.exchanges.get_by_id(invitation.exchange_id)
        if exchange is None:
            raise NotFoundError("Invalid or expired invitation")
        inviter = await self.users.get_by_id(invitation.invited_by) if invitation.invited_by else None
        return InvitationDetails(
            email=invitation.email,
            first_name=invitation.first_name,
            last_name=invitation.last_name,
            role=invitation.role,
            custom_message=invitation.custom_message,
            exchange_id=exchange.id,
            exchange_name=exchange.name or exchange.exchange_number,
            exchange_number=exchange.exchange_number,
            inviter_name=inviter.full_name if inviter else None,
            expires_at=invitation.expires_at,
        )

    async def accept(
        self,
        token: str,
        payload: InvitationAccept,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> InvitationAcceptResult:
        """
        Create the invited account, attach it to the exchange and log it in.

        Raises:
            ConflictError: an account with the invited email already exists
        """
        invitation = await self._pending_by_token(token)
        exchange = await self.exchanges.get_by_id(invitation.exchange_id)
        if exchange is None:
            raise NotFoundError("Invalid or expired invitation")
        if await self.users.get_by_email(invitation.email) is not None:
            raise ConflictError(
                "User with this email already exists. Please login instead.",
                details={"email": invitation.email},
            )

        user = await self.users.create(
            email=invitation.email,
            password_hash=await hash_secret_async(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone or invitation.phone,
            role=invitation.role,
        )
        participant = await self.participants.attach(
            exchange,
            user,
            role=invitation.role,
            access_level=invitation.access_level,
            overrides={},
            actor=user,
            context=context,
        )
        participant.added_by = invitation.invited_by

        invitation.status = "accepted"
        invitation.accepted_at = utcnow()
        invitation.user_id = user.id
        await self.audit.log(
            action="exchange.invitation_accept",
            entity_type="exchange",
            entity_id=exchange.id,
            actor=user,
            after={"invitation_id": str(invitation.id), "user_id": str(user.id)},
            context=context,
        )
        await self.notifications.notify(
            [invitation.invited_by],
            title="Invitation accepted",
            message=f"{invitation.email} joined exchange {exchange.exchange_number}",
            type="participant",
            exchange_id=exchange.id,
        )
        tokens = await issue_tokens(RefreshTokenRepository(self.session), user.id, user.role)
        user.last_login_at = utcnow()
        await self.session.commit()
        logger.info(
            "invitation accepted id=%s user_id=%s exchange_id=%s", invitation.id, user.id, exchange.id
        )
        return InvitationAcceptResult(
            user=UserRead.model_validate(user),
            exchange_id=exchange.id,
            role=invitation.role,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )
