"""Identity boundary.

Sign-in happens at an external identity provider which hands the client a
token signed with a secret shared with this service. All this module does is
turn such a token into a stable owner id plus an authenticated flag.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


@dataclass(frozen=True)
class Identity:
    owner_id: str
    authenticated: bool

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(owner_id="", authenticated=False)


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.identity_secret, salt="identity")


def issue_token(owner_id: str) -> str:
    if not owner_id:
        raise ValueError("owner_id is required")
    return _serializer().dumps({"sub": owner_id})


def resolve_identity(token: Optional[str], max_age_secs: Optional[int] = None) -> Identity:
    if not token:
        return Identity.anonymous()
    if max_age_secs is None:
        max_age_secs = get_settings().identity_max_age_secs
    try:
        data = _serializer().loads(token, max_age=max_age_secs)
    except BadSignature:
        return Identity.anonymous()

    owner_id = data.get("sub") if isinstance(data, dict) else None
    if not owner_id or not isinstance(owner_id, str):
        return Identity.anonymous()
    return Identity(owner_id=owner_id, authenticated=True)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
