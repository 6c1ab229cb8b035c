from datetime import datetime, timezone

import pytest

from peak1031.services.template_service import exchange_placeholder_values
from tests.api_helpers import exchange_payload

pytestmark = pytest.mark.anyio

LETTER = (
    "Re: #Exchange.Number#\n"
    "Dear {Client.Name},\n"
    "Your identification deadline is #Date.IdentificationDeadline#.\n"
    "Escrow: #Escrow.Officer#\n"
)


@pytest.fixture
async def setup(client, make_user):
    _, coordinator_headers = await make_user("coordinator")
    client_user, client_headers = await make_user("client", first_name="Dana", last_name="Reyes")
    exchange = (
        await client.post(
            "/api/exchanges",
            json=exchange_payload(
                client_id=str(client_user.id),
                exchange_number="EX-2026-0042",
                start_date="2026-01-01",
            ),
            headers=coordinator_headers,
        )
    ).json()
    template = (
        await client.post(
            "/api/templates",
            json={"name": "Deadline Letter", "category": "letters", "content": LETTER},
            headers=coordinator_headers,
        )
    ).json()
    return {
        "exchange": exchange,
        "template": template,
        "coordinator": coordinator_headers,
        "client": client_headers,
    }


async def test_template_lists_placeholders(setup) -> None:
    assert setup["template"]["placeholders"] == [
        "Exchange.Number",
        "Client.Name",
        "Date.IdentificationDeadline",
        "Escrow.Officer",
    ]


async def test_clients_cannot_manage_templates(client, setup) -> None:
    response = await client.post(
        "/api/templates",
        json={"name": "Rogue", "content": "#Client.Name#"},
        headers=setup["client"],
    )

    assert response.status_code == 403


async def test_generate_stores_rendered_document(client, setup) -> None:
    response = await client.post(
        f"/api/templates/{setup['template']['id']}/generate",
        json={"exchange_id": setup["exchange"]["id"]},
        headers=setup["coordinator"],
    )

    assert response.status_code == 201
    body = response.json()
    assert body["missing_placeholders"] == ["Escrow.Officer"]
    assert "Client.Name" in body["used_placeholders"]
    document = body["document"]
    assert document["is_template_generated"] is True
    assert document["template_id"] == setup["template"]["id"]
    assert document["original_filename"] == "Deadline Letter - EX-2026-0042.txt"

    download = await client.get(
        f"/api/documents/{document['id']}/download", headers=setup["client"]
    )
    text = download.text
    assert "Re: EX-2026-0042" in text
    assert "Dear Dana Reyes," in text
    assert "February 15, 2026" in text
    # unknown placeholders are left in place
    assert "#Escrow.Officer#" in text


async def test_caller_values_override_derived_ones(client, setup) -> None:
    response = await client.post(
        f"/api/templates/{setup['template']['id']}/generate",
        json={
            "exchange_id": setup["exchange"]["id"],
            "filename": "letter",
            "values": {"Escrow.Officer": "Pat Lee", "Client.Name": "D. Reyes"},
        },
        headers=setup["coordinator"],
    )

    body = response.json()
    assert body["missing_placeholders"] == []
    assert body["document"]["original_filename"] == "letter.txt"
    download = await client.get(
        f"/api/documents/{body['document']['id']}/download", headers=setup["coordinator"]
    )
    assert "Dear D. Reyes," in download.text
    assert "Escrow: Pat Lee" in download.text


async def test_inactive_template_cannot_generate(client, setup) -> None:
    await client.put(
        f"/api/templates/{setup['template']['id']}",
        json={"is_active": False},
        headers=setup["coordinator"],
    )

    response = await client.post(
        f"/api/templates/{setup['template']['id']}/generate",
        json={"exchange_id": setup["exchange"]["id"]},
        headers=setup["coordinator"],
    )

    assert response.status_code == 400


def test_placeholder_values_handle_missing_parties() -> None:
    class _Exchange:
        id = "e-1"
        exchange_number = "EX-1"
        name = "Test"
        exchange_type = "DELAYED"
        status = "PENDING"
        stage = "EXCHANGE_CREATED"
        exchange_value = None
        relinquished_property_address = None
        relinquished_sale_price = None
        replacement_value = None
        relinquished_value = None
        qi_company = None
        start_date = None
        relinquished_closing_date = None
        identification_deadline = None
        completion_deadline = None
        priority = "MEDIUM"
        risk_level = "LOW"
        notes = None

    class _User:
        full_name = "Admin User"

    values = exchange_placeholder_values(
        _Exchange(),
        client=None,
        coordinator=None,
        generated_by=_User(),
        now=datetime(2026, 3, 5, 9, 30, tzinfo=timezone.utc),
    )

    assert values["Client.Name"] == ""
    assert values["Date.Current"] == "March 5, 2026"
    assert values["System.CurrentDateTime"] == "March 5, 2026 09:30 UTC"
    assert values["Property.SalePrice"] == ""
