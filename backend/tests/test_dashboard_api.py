from datetime import timedelta

import pytest

from peak1031.utils.time import utcnow
from tests.api_helpers import exchange_payload

pytestmark = pytest.mark.anyio


async def test_dashboard_counts_visible_exchanges(client, make_user) -> None:
    _, coordinator_headers = await make_user("coordinator")
    client_user, client_headers = await make_user("client")
    _, other_client_headers = await make_user("client")
    start = (utcnow() - timedelta(days=40)).date().isoformat()
    await client.post(
        "/api/exchanges",
        json=exchange_payload(client_id=str(client_user.id), start_date=start),
        headers=coordinator_headers,
    )
    await client.post(
        "/api/exchanges",
        json=exchange_payload(name="Second Exchange"),
        headers=coordinator_headers,
    )

    coordinator_view = (await client.get("/api/dashboard", headers=coordinator_headers)).json()
    client_view = (await client.get("/api/dashboard", headers=client_headers)).json()
    outsider_view = (await client.get("/api/dashboard", headers=other_client_headers)).json()

    assert coordinator_view["role"] == "coordinator"
    assert coordinator_view["total_exchanges"] == 2
    assert coordinator_view["by_stage"] == {"EXCHANGE_CREATED": 2}
    assert client_view["total_exchanges"] == 1
    assert client_view["unread_notifications"] >= 1
    assert outsider_view["total_exchanges"] == 0

    deadlines = client_view["upcoming_deadlines"]
    assert [item["deadline_type"] for item in deadlines] == ["identification"]
    assert 0 <= deadlines[0]["days_remaining"] <= 5
    assert client_view["non_compliant"] == 0
