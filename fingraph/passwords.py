from __future__ import annotations

import re

import bcrypt

from fingraph.errors import ErrorMessage, ValidationException

BCRYPT_ROUNDS = 10

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,6}$")
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[A-Za-z])(?=.*\d)(?=.*[@$!%^*#?&()`~\\|\-_=+{};:.,'/\[\]\"])"
    r"[A-Za-z\d@$!%^*#?&()`~\\|\-_=+{};:.,'/\[\]\"]{8,30}$"
)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def check_email_rule(email: str) -> None:
    if not EMAIL_PATTERN.fullmatch(email):
        raise ValidationException(ErrorMessage.MSG_EMAIL_RULES_VIOLATION)


def check_password_rule(password: str) -> None:
    if not PASSWORD_PATTERN.fullmatch(password):
        raise ValidationException(ErrorMessage.MSG_PASSWORD_RULES_VIOLATION)
