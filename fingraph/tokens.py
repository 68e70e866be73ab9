from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping

import jwt

from fingraph.config import Settings
from fingraph.enums import TokenType, UserRole
from fingraph.errors import ErrorMessage, TokenExpiredException, UnauthorizedException


@dataclass(frozen=True)
class JwtPayload:
    id: int
    email: str
    role: UserRole
    currency: str

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN

    @classmethod
    def from_user(cls, row: Mapping) -> "JwtPayload":
        return cls(
            id=row["id"],
            email=row["email"],
            role=UserRole.validate(row["role"]),
            currency=row["currency"],
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def _signing_key(settings: Settings, token_type: TokenType) -> str:
    if settings.jwt_algorithm.startswith("HS"):
        if not settings.jwt_secret:
            raise RuntimeError("JWT_SECRET must be set for HMAC token signing.")
        return settings.jwt_secret
    key = (
        settings.jwt_access_private_key
        if token_type is TokenType.ACCESS
        else settings.jwt_refresh_private_key
    )
    if not key:
        raise RuntimeError(f"Private key for {token_type.value} tokens is not configured.")
    return key


def _verifying_key(settings: Settings, token_type: TokenType) -> str:
    if settings.jwt_algorithm.startswith("HS"):
        return _signing_key(settings, token_type)
    key = (
        settings.jwt_access_public_key
        if token_type is TokenType.ACCESS
        else settings.jwt_refresh_public_key
    )
    if not key:
        raise RuntimeError(f"Public key for {token_type.value} tokens is not configured.")
    return key


def encode_token(
    settings: Settings,
    payload: JwtPayload,
    token_type: TokenType,
    now: datetime | None = None,
) -> str:
    issued_at = now or datetime.now(timezone.utc)
    lifetime = (
        settings.jwt_access_expires_in
        if token_type is TokenType.ACCESS
        else settings.jwt_refresh_expires_in
    )
    claims = {
        "id": payload.id,
        "email": payload.email,
        "role": payload.role.value,
        "currency": payload.currency,
        "type": token_type.value,
        "iss": settings.jwt_issuer,
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=lifetime),
    }
    return jwt.encode(claims, _signing_key(settings, token_type), algorithm=settings.jwt_algorithm)


def generate_tokens(settings: Settings, payload: JwtPayload) -> TokenPair:
    return TokenPair(
        access_token=encode_token(settings, payload, TokenType.ACCESS),
        refresh_token=encode_token(settings, payload, TokenType.REFRESH),
    )


def verify_token(settings: Settings, token: str, token_type: TokenType) -> JwtPayload:
    """Decode ``token`` and return the caller it identifies.

    Expired tokens raise ``TokenExpiredException``; anything else that fails
    to decode, carries another issuer, or was minted for the other token type
    raises ``UnauthorizedException``.
    """
    try:
        claims = jwt.decode(
            token,
            _verifying_key(settings, token_type),
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredException() from exc
    except jwt.InvalidTokenError as exc:
        raise UnauthorizedException(ErrorMessage.MSG_INVALID_TOKEN) from exc

    if claims.get("type") != token_type.value:
        raise UnauthorizedException(ErrorMessage.MSG_INVALID_TOKEN)
    try:
        return JwtPayload(
            id=int(claims["id"]),
            email=claims["email"],
            role=UserRole.validate(claims["role"]),
            currency=claims["currency"],
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise UnauthorizedException(ErrorMessage.MSG_INVALID_TOKEN) from exc


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
