"""Opaque keyset cursors for descending-date transaction scans.

A cursor names the last record a page returned as ``(date, id)`` together with
the (owner, account) scope it was issued for. It is signed so clients cannot
forge positions or replay a cursor against another account.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from itsdangerous import BadSignature, URLSafeSerializer

from config import get_settings
from errors import ValidationError


@dataclass(frozen=True)
class CursorPosition:
    owner_id: str
    account_id: int
    date: date
    id: int


def _serializer() -> URLSafeSerializer:
    settings = get_settings()
    return URLSafeSerializer(settings.cursor_secret, salt="transactions-cursor")


def encode_cursor(position: CursorPosition) -> str:
    payload = {
        "o": position.owner_id,
        "a": position.account_id,
        "d": position.date.isoformat(),
        "i": position.id,
    }
    return _serializer().dumps(payload)


def decode_cursor(token: str, owner_id: str, account_id: int) -> CursorPosition:
    try:
        data = _serializer().loads(token)
    except BadSignature as exc:
        raise ValidationError("Invalid pagination cursor") from exc

    try:
        position = CursorPosition(
            owner_id=str(data["o"]),
            account_id=int(data["a"]),
            date=date.fromisoformat(data["d"]),
            id=int(data["i"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError("Invalid pagination cursor") from exc

    if position.owner_id != owner_id or position.account_id != account_id:
        raise ValidationError("Pagination cursor belongs to a different account")
    return position
