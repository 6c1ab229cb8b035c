"""
Seed a demo admin plus a coordinator, a client, one exchange and one template.

Run once after ``alembic upgrade head``. Existing rows are left untouched.

Usage:
    python -m scripts.seed_demo
"""
import asyncio
import os

from peak1031.crud.user import UserRepository
from peak1031.database import AsyncSessionLocal
from peak1031.errors import ConflictError
from peak1031.schemas.exchange import ExchangeCreate
from peak1031.schemas.template import TemplateCreate
from peak1031.schemas.user import UserCreate
from peak1031.security.passwords import hash_secret_async
from peak1031.services.exchange_service import ExchangeService
from peak1031.services.template_service import TemplateService
from peak1031.services.user_service import UserService
from peak1031.utils.time import utcnow

ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@peak1031.local")
ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "change-me-now")
DEMO_PASSWORD = os.getenv("SEED_DEMO_PASSWORD", "demo-password")

DEMO_USERS = [
    {"email": "coordinator@peak1031.local", "first_name": "Casey", "last_name": "Coordinator", "role": "coordinator"},
    {"email": "client@peak1031.local", "first_name": "Jordan", "last_name": "Client", "role": "client"},
]

DEMO_TEMPLATE = TemplateCreate(
    name="Exchange Agreement",
    category="agreement",
    content=(
        "Exchange #Exchange.Number# ({Exchange.Name})\n"
        "Client: #Client.Name#\n"
        "Identification deadline: #Date.IdentificationDeadline#\n"
        "Completion deadline: #Date.CompletionDeadline#\n"
    ),
)


async def seed_demo() -> None:
    async with AsyncSessionLocal() as session:
        users = UserRepository(session)

        admin = await users.get_by_email(ADMIN_EMAIL)
        if admin is None:
            admin = await users.create(
                email=ADMIN_EMAIL,
                password_hash=await hash_secret_async(ADMIN_PASSWORD),
                first_name="System",
                last_name="Admin",
                role="admin",
            )
            await session.commit()
            print(f"  Created admin: {ADMIN_EMAIL}")
        else:
            print(f"  Admin '{ADMIN_EMAIL}' already exists, skipping...")

        user_service = UserService(session)
        created = {}
        for data in DEMO_USERS:
            try:
                user = await user_service.create_user(
                    UserCreate(password=DEMO_PASSWORD, **data), admin
                )
                print(f"  Created {data['role']}: {data['email']}")
            except ConflictError:
                user = await users.get_by_email(data["email"])
                print(f"  User '{data['email']}' already exists, skipping...")
            created[data["role"]] = user

        exchange = await ExchangeService(session).create_exchange(
            ExchangeCreate(
                name="Demo Residential Exchange",
                client_id=created["client"].id,
                coordinator_id=created["coordinator"].id,
                relinquished_property_address="100 Main St",
                start_date=utcnow(),
            ),
            admin,
        )
        print(f"  Created exchange: {exchange.exchange_number}")

        template = await TemplateService(session).create_template(DEMO_TEMPLATE, admin)
        print(f"  Created template: {template.name}")


if __name__ == "__main__":
    asyncio.run(seed_demo())
