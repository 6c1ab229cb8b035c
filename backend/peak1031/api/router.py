from fastapi import APIRouter

from . import (
    audit_logs,
    audit_social,
    dashboard,
    documents,
    exchanges,
    invitations,
    messages,
    notifications,
    stages,
    tasks,
    templates,
    users,
)

router = APIRouter(prefix="/api")

_exchange_routers = [
    stages.exchange_router,
    tasks.exchange_router,
    documents.exchange_router,
    messages.exchange_router,
    invitations.exchange_router,
    exchanges.router,
]

_resource_routers = [
    stages.router,
    tasks.router,
    documents.router,
    templates.router,
    messages.router,
    invitations.router,
    notifications.router,
    users.router,
    audit_logs.router,
    audit_social.router,
    dashboard.router,
]

for _router in [*_exchange_routers, *_resource_routers]:
    router.include_router(_router)
