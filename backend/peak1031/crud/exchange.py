import uuid
from datetime import datetime

from sqlalchemy import and_, false, func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from ..auth.rbac_contract import ViewScope
from ..models.exchange import Exchange
from ..models.participant import ExchangeParticipant
from ..models.stage_history import ExchangeStageHistory

SORTABLE_FIELDS = {
    "created_at": Exchange.created_at,
    "updated_at": Exchange.updated_at,
    "name": Exchange.name,
    "completion_deadline": Exchange.completion_deadline,
    "identification_deadline": Exchange.identification_deadline,
}


def _participating(user_id: uuid.UUID) -> ColumnElement[bool]:
    return Exchange.id.in_(
        select(ExchangeParticipant.exchange_id).where(
            ExchangeParticipant.user_id == user_id,
            ExchangeParticipant.is_active.is_(True),
        )
    )


def visibility_condition(user_id: uuid.UUID, scope: ViewScope) -> ColumnElement[bool]:
    """SQL condition selecting the exchanges a user may see under a view scope."""
    if scope is ViewScope.ALL:
        return true()
    if scope is ViewScope.MANAGED:
        return or_(Exchange.coordinator_id == user_id, _participating(user_id))
    if scope is ViewScope.ASSIGNED:
        return or_(Exchange.client_id == user_id, _participating(user_id))
    if scope is ViewScope.PARTICIPATING:
        return _participating(user_id)
    return false()


class ExchangeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(
        self, exchange_id: uuid.UUID, *, include_inactive: bool = False
    ) -> Exchange | None:
        exchange = await self.session.get(Exchange, exchange_id)
        if exchange is None or (not exchange.is_active and not include_inactive):
            return None
        return exchange

    async def create(self, exchange: Exchange) -> Exchange:
        self.session.add(exchange)
        await self.session.flush()
        return exchange

    async def next_exchange_number(self, prefix: str, year: int) -> str:
        base = f"{prefix}-{year}-"
        result = await self.session.execute(
            select(Exchange.exchange_number).where(Exchange.exchange_number.like(f"{base}%"))
        )
        suffixes = [number[len(base):] for number in result.scalars().all()]
        highest = max((int(suffix) for suffix in suffixes if suffix.isdigit()), default=0)
        return f"{base}{highest + 1:04d}"

    async def exists_number(self, exchange_number: str) -> bool:
        result = await self.session.scalar(
            select(func.count())
            .select_from(Exchange)
            .where(Exchange.exchange_number == exchange_number)
        )
        return bool(result)

    async def list_by_filters(
        self,
        visibility: ColumnElement[bool],
        *,
        status: str | None = None,
        stage: str | None = None,
        priority: str | None = None,
        search: str | None = None,
        coordinator_id: uuid.UUID | None = None,
        client_id: uuid.UUID | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int = 30,
        offset: int = 0,
    ) -> tuple[list[Exchange], int]:
        conditions: list[ColumnElement[bool]] = [Exchange.is_active.is_(True), visibility]
        if status is not None:
            conditions.append(Exchange.status == status)
        if stage is not None:
            conditions.append(Exchange.stage == stage)
        if priority is not None:
            conditions.append(Exchange.priority == priority)
        if coordinator_id is not None:
            conditions.append(Exchange.coordinator_id == coordinator_id)
        if client_id is not None:
            conditions.append(Exchange.client_id == client_id)
        if search:
            pattern = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(Exchange.name).like(pattern),
                    func.lower(Exchange.exchange_number).like(pattern),
                )
            )

        where = and_(*conditions)
        total = await self.session.scalar(select(func.count()).select_from(Exchange).where(where))

        column = SORTABLE_FIELDS.get(sort_by, Exchange.created_at)
        ordering = column.asc() if sort_order == "asc" else column.desc()
        result = await self.session.execute(
            select(Exchange).where(where).order_by(ordering, Exchange.id).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), int(total or 0)

    async def list_visible(self, visibility: ColumnElement[bool]) -> list[Exchange]:
        result = await self.session.execute(
            select(Exchange).where(Exchange.is_active.is_(True), visibility)
        )
        return list(result.scalars().all())

    async def list_in_stage(self, stage: str) -> list[Exchange]:
        result = await self.session.execute(
            select(Exchange).where(Exchange.is_active.is_(True), Exchange.stage == stage)
        )
        return list(result.scalars().all())

    async def open_stage_entry(self, exchange_id: uuid.UUID) -> ExchangeStageHistory | None:
        result = await self.session.execute(
            select(ExchangeStageHistory)
            .where(
                ExchangeStageHistory.exchange_id == exchange_id,
                ExchangeStageHistory.completed_at.is_(None),
            )
            .order_by(ExchangeStageHistory.entered_at.desc())
        )
        return result.scalars().first()

    async def add_stage_entry(
        self,
        exchange_id: uuid.UUID,
        stage: str,
        *,
        changed_by: uuid.UUID | None,
        entered_at: datetime,
        notes: str | None = None,
    ) -> ExchangeStageHistory:
        entry = ExchangeStageHistory(
            exchange_id=exchange_id,
            stage=stage,
            changed_by=changed_by,
            entered_at=entered_at,
            notes=notes,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def stage_history(self, exchange_id: uuid.UUID) -> list[ExchangeStageHistory]:
        result = await self.session.execute(
            select(ExchangeStageHistory)
            .where(ExchangeStageHistory.exchange_id == exchange_id)
            .order_by(ExchangeStageHistory.entered_at)
        )
        return list(result.scalars().all())
