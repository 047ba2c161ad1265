from datetime import date

import pytest

from errors import (
    NotFoundError,
    PermissionDeniedError,
    TransientError,
    ValidationError,
    user_message,
)
from periods import resolve_period


def test_named_periods() -> None:
    today = date(2026, 3, 15)

    this_month = resolve_period(None, today=today)
    assert (this_month.start, this_month.end) == (date(2026, 3, 1), date(2026, 3, 31))

    last_month = resolve_period("last_month", today=today)
    assert (last_month.start, last_month.end) == (date(2026, 2, 1), date(2026, 2, 28))

    ytd = resolve_period("year_to_date", today=today)
    assert (ytd.start, ytd.end) == (date(2026, 1, 1), today)

    december = resolve_period("this_month", today=date(2025, 12, 3))
    assert december.end == date(2025, 12, 31)


def test_custom_period_validation() -> None:
    period = resolve_period("custom", "2026-01-05", "2026-01-20")
    assert period.describe() == "2026-01-05 to 2026-01-20"

    with pytest.raises(ValueError):
        resolve_period("custom", "2026-02-01", "2026-01-01")
    with pytest.raises(ValueError):
        resolve_period("custom", "2026-02-01", None)
    with pytest.raises(ValueError):
        resolve_period("quarterly")


def test_user_messages_by_failure_kind() -> None:
    assert user_message(ValidationError("name: too short"), "add account") == "name: too short"
    assert user_message(
        PermissionDeniedError("x", authenticated=False), "add goal"
    ) == "Could not add goal. You are signed out. Please sign in again."
    assert "contact support" in user_message(PermissionDeniedError("x"))
    assert user_message(NotFoundError("Goal not found."), "update goal").startswith(
        "Could not update goal. Goal not found. It may have been removed"
    )
    assert "try again" in user_message(TransientError("down"))
