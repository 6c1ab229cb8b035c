import uuid
from collections.abc import Iterable

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        return await self.session.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalars().first()

    async def get_many(self, user_ids: Iterable[uuid.UUID]) -> list[User]:
        ids = list({user_id for user_id in user_ids if user_id is not None})
        if not ids:
            return []
        result = await self.session.execute(select(User).where(User.id.in_(ids)))
        return list(result.scalars().all())

    async def list_active_admins(self) -> list[User]:
        result = await self.session.execute(
            select(User).where(User.role == "admin", User.is_active.is_(True))
        )
        return list(result.scalars().all())

    async def create(self, **values) -> User:
        user = User(**values)
        self.session.add(user)
        await self.session.flush()
        return user

    async def list_by_filters(
        self,
        role: str | None = None,
        is_active: bool | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[User], int]:
        conditions = []
        if role is not None:
            conditions.append(User.role == role)
        if is_active is not None:
            conditions.append(User.is_active.is_(is_active))
        if search:
            pattern = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(User.email).like(pattern),
                    func.lower(User.first_name).like(pattern),
                    func.lower(User.last_name).like(pattern),
                    func.lower(User.company).like(pattern),
                )
            )

        total = await self.session.scalar(
            select(func.count()).select_from(User).where(*conditions)
        )
        result = await self.session.execute(
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), int(total or 0)

    async def count_by_role(self) -> dict[str, int]:
        result = await self.session.execute(
            select(User.role, func.count()).group_by(User.role)
        )
        return {role: count for role, count in result.all()}

    async def count_by_active(self) -> dict[bool, int]:
        result = await self.session.execute(
            select(User.is_active, func.count()).group_by(User.is_active)
        )
        return {bool(active): count for active, count in result.all()}
