from datetime import date, datetime, timezone
from decimal import Decimal

from peak1031.domain.placeholders import (
    extract_placeholders,
    format_date,
    format_money,
    render_template,
)


def test_extract_both_marker_styles_in_order() -> None:
    content = "Dear {Client.Name}, exchange #Exchange.Number# closes {Date.CompletionDeadline}."

    assert extract_placeholders(content) == [
        "Client.Name",
        "Exchange.Number",
        "Date.CompletionDeadline",
    ]


def test_extract_deduplicates_case_insensitively() -> None:
    content = "#Client.Name# and {client.name} and # Client.Name #"

    assert extract_placeholders(content) == ["Client.Name"]


def test_render_reports_used_and_missing() -> None:
    result = render_template(
        "#Exchange.Number# for {Client.Name}; QI {QI.Unknown}",
        {"Exchange.Number": "EX-1", "client.name": "Jordan Client"},
    )

    assert result.content == "EX-1 for Jordan Client; QI {QI.Unknown}"
    assert result.used == ["Exchange.Number", "Client.Name"]
    assert result.missing == ["QI.Unknown"]


def test_format_helpers() -> None:
    assert format_date(date(2025, 3, 5)) == "March 5, 2025"
    assert format_date(datetime(2025, 12, 31, tzinfo=timezone.utc)) == "December 31, 2025"
    assert format_date(None) == ""
    assert format_money(Decimal("1234567.5")) == "$1,234,567.50"
    assert format_money(None) == ""
