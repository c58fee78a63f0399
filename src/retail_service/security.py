"""Password hashing and signed API tokens."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Mapping

from itsdangerous import BadData, URLSafeSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from .config import Settings


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    issued_at: int
    expires_at: int
    expires_in: int


class TokenSigner:
    """Issues and verifies bearer tokens bound to a user id."""

    def __init__(self, settings: Settings) -> None:
        self.default_age = settings.token_default_age
        self.max_age = settings.token_max_age
        self._serializer = URLSafeSerializer(settings.secret_key, salt=settings.token_salt)

    def parse_lifetime(self, value: Any) -> int:
        if value is None or value == "" or isinstance(value, bool):
            return self.default_age
        try:
            candidate = int(value)
        except (TypeError, ValueError):
            return self.default_age
        if candidate <= 0:
            return self.default_age
        return min(candidate, self.max_age)

    def issue(self, user_id: int, lifetime: Any = None) -> IssuedToken:
        expires_in = self.parse_lifetime(lifetime)
        issued_at = int(time.time())
        expires_at = issued_at + expires_in
        token = self._serializer.dumps({"u": user_id, "iat": issued_at, "exp": expires_at})
        return IssuedToken(
            token=token, issued_at=issued_at, expires_at=expires_at, expires_in=expires_in
        )

    def verify(self, token: str) -> int | None:
        """Return the user id carried by ``token`` or ``None`` when invalid or expired."""

        try:
            payload = self._serializer.loads(token)
        except BadData:
            return None
        if not isinstance(payload, dict):
            return None
        user_id = payload.get("u")
        exp_value = payload.get("exp")
        if user_id is None or exp_value is None:
            return None
        try:
            expires_at = int(exp_value)
            user_id = int(user_id)
        except (TypeError, ValueError):
            return None
        if time.time() > expires_at:
            return None
        return user_id


def extract_token(headers: Mapping[str, str]) -> str | None:
    auth_header = headers.get("authorization")
    if isinstance(auth_header, str):
        scheme, _, token_value = auth_header.partition(" ")
        if scheme.lower() == "bearer" and token_value.strip():
            return token_value.strip()
    header_token = headers.get("x-api-token")
    if isinstance(header_token, str) and header_token.strip():
        return header_token.strip()
    return None


__all__ = [
    "IssuedToken",
    "TokenSigner",
    "extract_token",
    "hash_password",
    "verify_password",
]
