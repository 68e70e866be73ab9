from __future__ import annotations

import logging
from typing import Mapping

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from fingraph.config import Settings
from fingraph.db import users
from fingraph.enums import TokenType, UserState
from fingraph.errors import (
    BadRequestException,
    ConflictException,
    ErrorMessage,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from fingraph.pagination import PageInfo, paginate
from fingraph.passwords import check_email_rule, check_password_rule, hash_password, verify_password
from fingraph.payloads import (
    CommonPayload,
    PasswordPayload,
    SignInPayload,
    SignUpPayload,
    UpdateUserPayload,
    UsersArgsPayload,
    parse_payload,
    provided,
)
from fingraph.tokens import JwtPayload, TokenPair, generate_tokens, verify_token

logger = logging.getLogger(__name__)


def public_user(row: Mapping | None) -> dict | None:
    """Copy of a user row without the password hash."""
    if row is None:
        return None
    return {key: value for key, value in row.items() if key != "password"}


def _tokens_for(settings: Settings, row: Mapping) -> TokenPair:
    return generate_tokens(settings, JwtPayload.from_user(row))


def _require_admin(caller: JwtPayload) -> None:
    if not caller.is_admin:
        raise ForbiddenException()


def sign_up(engine: Engine, settings: Settings, data) -> TokenPair:
    payload = parse_payload(SignUpPayload, data)
    if payload.sns_type:
        raise BadRequestException(ErrorMessage.MSG_NOT_IMPLEMENTED)
    email = (payload.email or "").strip()
    if not email or not payload.password:
        raise ValidationException(ErrorMessage.MSG_PARAMETER_REQUIRED)

    check_email_rule(email)
    with engine.begin() as conn:
        exists = conn.execute(select(users.c.id).where(users.c.email == email)).first()
    if exists:
        raise ValidationException(ErrorMessage.MSG_EMAIL_ALREADY_EXISTS)
    check_password_rule(payload.password)

    values = {
        "email": email,
        "password": hash_password(payload.password),
        "name": payload.name,
        "phone": payload.phone,
    }
    if payload.currency is not None:
        values["currency"] = payload.currency.value
    else:
        values["currency"] = settings.default_currency

    try:
        with engine.begin() as conn:
            row = conn.execute(insert(users).values(**values).returning(*users.c)).mappings().one()
    except IntegrityError as exc:
        raise ConflictException(ErrorMessage.MSG_EMAIL_ALREADY_EXISTS) from exc

    logger.info("user_signed_up user_id=%s", row["id"])
    return _tokens_for(settings, row)


def sign_in(engine: Engine, settings: Settings, data) -> TokenPair:
    payload = parse_payload(SignInPayload, data)
    if payload.sns_type and payload.sns_id:
        logger.warning("SNS sign-in is not implemented")
        raise BadRequestException(ErrorMessage.MSG_NOT_IMPLEMENTED)
    if not payload.email or not payload.password:
        raise ValidationException(ErrorMessage.MSG_PARAMETER_REQUIRED)

    with engine.begin() as conn:
        row = (
            conn.execute(
                select(users).where(
                    users.c.email == payload.email.strip(),
                    users.c.state == UserState.ACTIVE.value,
                )
            )
            .mappings()
            .first()
        )
    if not row:
        raise ValidationException(ErrorMessage.MSG_NOT_FOUND_USER)
    if not verify_password(payload.password, row["password"]):
        raise ValidationException(ErrorMessage.MSG_PASSWORD_NOT_MATCH)
    return _tokens_for(settings, row)


def list_users(engine: Engine, caller: JwtPayload, data=None) -> tuple[list[dict], PageInfo]:
    _require_admin(caller)
    args = parse_payload(UsersArgsPayload, data or {})
    conditions = []
    if args.name:
        conditions.append(users.c.name.ilike(f"%{args.name}%"))
    if args.email:
        conditions.append(users.c.email.ilike(f"%{args.email}%"))
    if args.role:
        conditions.append(users.c.role == args.role.value)
    with engine.begin() as conn:
        rows, page_info = paginate(conn, users, conditions, args.page, args.take, args.sort_by)
    return [public_user(row) for row in rows], page_info


def _fetch_user(engine: Engine, user_id: int) -> dict:
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
    if not row:
        raise NotFoundException(ErrorMessage.MSG_NOT_FOUND_USER)
    return public_user(row)


def me(engine: Engine, caller: JwtPayload) -> dict:
    return _fetch_user(engine, caller.id)


def get_user(engine: Engine, caller: JwtPayload, user_id: int) -> dict:
    _require_admin(caller)
    return _fetch_user(engine, user_id)


def update_user(engine: Engine, caller: JwtPayload, data) -> dict:
    """Merge the provided profile fields.

    Only admins may name another user or change a role.
    """
    payload = parse_payload(UpdateUserPayload, data)
    if not caller.is_admin and (payload.id or payload.role):
        raise ForbiddenException()
    target_id = payload.id or caller.id

    values = provided(payload, "id")
    for key in ("role", "state", "currency"):
        if key in values:
            values[key] = values[key].value

    with engine.begin() as conn:
        existing = conn.execute(select(users).where(users.c.id == target_id)).mappings().first()
        if not existing:
            raise ValidationException(ErrorMessage.MSG_NOT_FOUND_USER)
        if not values:
            return public_user(existing)
        row = (
            conn.execute(update(users).where(users.c.id == target_id).values(**values).returning(*users.c))
            .mappings()
            .one()
        )
    return public_user(row)


def change_password(engine: Engine, caller: JwtPayload, data) -> bool:
    payload = parse_payload(PasswordPayload, data)
    with engine.begin() as conn:
        row = conn.execute(select(users).where(users.c.id == caller.id)).mappings().first()
        if not row:
            raise NotFoundException(ErrorMessage.MSG_NOT_FOUND_USER)
        if not verify_password(payload.current_password, row["password"]):
            raise ValidationException(ErrorMessage.MSG_PASSWORD_NOT_MATCH)
        check_password_rule(payload.new_password)
        conn.execute(
            update(users).where(users.c.id == caller.id).values(password=hash_password(payload.new_password))
        )
    logger.info("password_changed user_id=%s", caller.id)
    return True


def refresh_token(engine: Engine, settings: Settings, data) -> TokenPair:
    payload = parse_payload(CommonPayload, data)
    identity = verify_token(settings, payload.value1, TokenType.REFRESH)
    with engine.begin() as conn:
        row = (
            conn.execute(
                select(users).where(users.c.id == identity.id, users.c.state == UserState.ACTIVE.value)
            )
            .mappings()
            .first()
        )
    if not row:
        raise NotFoundException(ErrorMessage.MSG_NOT_FOUND_USER)
    return _tokens_for(settings, row)
