"""Constants and small helpers shared by the API tests."""
from typing import Any

TEST_PASSWORD = "correct-horse"


def error_code(response: Any) -> str:
    return response.json()["error"]["code"]


def exchange_payload(**values: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "Maple Street Exchange",
        "relinquished_property_address": "12 Maple St",
        "relinquished_sale_price": "850000.00",
    }
    payload.update(values)
    return payload
