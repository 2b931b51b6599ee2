"""
Проверка токенов доступа (JWT).
"""

from src.core.auth.tokens import AuthContext, TokenVerifier, get_token_verifier

__all__ = [
    "AuthContext",
    "TokenVerifier",
    "get_token_verifier",
]
