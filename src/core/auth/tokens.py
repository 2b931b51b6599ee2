"""
Проверка JWT, выданных основным REST-бэкендом.

Токен несёт claims {"userId": ..., "role": ...}. Вызывается синхронно
на каждом входящем сообщении, поэтому никаких сетевых обращений.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

import jwt

from src.common.constants import UserRole


@dataclass(frozen=True)
class AuthContext:
    """Результат успешной проверки токена."""
    user_id: str
    role: UserRole | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class TokenVerifier:
    """Проверка и (для dev/тестов) выпуск HS256 токенов."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expire_seconds: int = 7 * 24 * 3600,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._expire_seconds = expire_seconds

    def verify_token(self, token: str | None) -> AuthContext | None:
        """
        Проверить токен.

        Returns:
            AuthContext или None если токен невалиден. Никогда не бросает.
        """
        if not token or not isinstance(token, str):
            return None

        # Клиенты иногда присылают заголовок целиком
        if token.lower().startswith("bearer "):
            token = token[7:].strip()

        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.PyJWTError:
            return None

        return self._context_from_claims(claims)

    def issue_token(self, user_id: str, role: UserRole | str | None = None) -> str:
        """Выпустить токен (dev-инструменты и тесты)."""
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "userId": str(user_id),
            "iat": now,
            "exp": now + timedelta(seconds=self._expire_seconds),
        }
        if role is not None:
            payload["role"] = role.value if isinstance(role, UserRole) else str(role)
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    @staticmethod
    def _context_from_claims(claims: dict[str, Any]) -> AuthContext | None:
        user_id = claims.get("userId") or claims.get("sub")
        if user_id is None:
            return None

        role: UserRole | None = None
        raw_role = claims.get("role")
        if raw_role:
            try:
                role = UserRole(str(raw_role).upper())
            except ValueError:
                role = None

        return AuthContext(user_id=str(user_id), role=role)


@lru_cache()
def get_token_verifier() -> TokenVerifier:
    """Синглтон верификатора с настройками из конфига."""
    from src.config import settings

    return TokenVerifier(
        secret=settings.auth.JWT_SECRET,
        algorithm=settings.auth.JWT_ALGORITHM,
        expire_seconds=settings.auth.JWT_EXPIRE_SECONDS,
    )
