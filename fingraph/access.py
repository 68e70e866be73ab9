from __future__ import annotations

from typing import Mapping

from fingraph.enums import AccountType
from fingraph.errors import ErrorMessage, ForbiddenException, ValidationException
from fingraph.tokens import JwtPayload

_NOT_ACCOUNT_MESSAGES = {
    AccountType.BANK: ErrorMessage.MSG_NOT_BANK_ACCOUNT,
    AccountType.STOCK: ErrorMessage.MSG_NOT_STOCK_ACCOUNT,
    AccountType.COIN: ErrorMessage.MSG_NOT_COIN_ACCOUNT,
    AccountType.ETC: ErrorMessage.MSG_NOT_ETC_ACCOUNT,
    AccountType.LIABILITIES: ErrorMessage.MSG_NOT_LIABILITIES_ACCOUNT,
}


def resolve_owner(caller: JwtPayload, user_id: int | None) -> int:
    """Return the user id a request acts for.

    Only admins may act on behalf of another user; everyone else is pinned
    to their own id.
    """
    if not caller.is_admin:
        if user_id:
            raise ForbiddenException()
        return caller.id
    return user_id or caller.id


def ensure_owner(caller: JwtPayload, owner_id: int) -> None:
    if owner_id != caller.id and not caller.is_admin:
        raise ForbiddenException()


def ensure_account(
    caller: JwtPayload,
    account: Mapping | None,
    expected_type: AccountType | None = None,
) -> Mapping:
    if not account or account["is_delete"]:
        raise ValidationException(ErrorMessage.MSG_NOT_FOUND_ACCOUNT)
    if expected_type is not None and account["type"] != expected_type.value:
        raise ValidationException(_NOT_ACCOUNT_MESSAGES[expected_type])
    ensure_owner(caller, account["user_id"])
    return account
