import unittest

from fingraph.enums import TokenType, UserRole
from fingraph.errors import (
    BadRequestException,
    ErrorMessage,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from fingraph.tests.support import PASSWORD, SETTINGS, create_user, make_engine
from fingraph.tokens import verify_token
from fingraph.users import (
    change_password,
    get_user,
    list_users,
    me,
    refresh_token,
    sign_in,
    sign_up,
    update_user,
)


class SignUpTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()

    def test_returns_tokens_for_new_user(self) -> None:
        tokens = sign_up(self.engine, SETTINGS, {"email": " new@example.com ", "password": PASSWORD, "name": "New"})

        caller = verify_token(SETTINGS, tokens.access_token, TokenType.ACCESS)
        self.assertEqual(caller.email, "new@example.com")
        self.assertIs(caller.role, UserRole.USER)
        self.assertEqual(caller.currency, SETTINGS.default_currency)
        self.assertNotIn("password", me(self.engine, caller))

    def test_preferred_currency_is_kept(self) -> None:
        tokens = sign_up(self.engine, SETTINGS, {"email": "usd@example.com", "password": PASSWORD, "currency": "USD"})

        self.assertEqual(verify_token(SETTINGS, tokens.access_token, TokenType.ACCESS).currency, "USD")

    def test_rejections(self) -> None:
        create_user(self.engine, email="taken@example.com")
        cases = [
            ({"email": "taken@example.com", "password": PASSWORD}, ErrorMessage.MSG_EMAIL_ALREADY_EXISTS),
            ({"email": "broken", "password": PASSWORD}, ErrorMessage.MSG_EMAIL_RULES_VIOLATION),
            ({"email": "weak@example.com", "password": "weakpass"}, ErrorMessage.MSG_PASSWORD_RULES_VIOLATION),
            ({"email": "  ", "password": PASSWORD}, ErrorMessage.MSG_PARAMETER_REQUIRED),
        ]
        for data, message in cases:
            with self.subTest(data=data):
                with self.assertRaises(ValidationException) as ctx:
                    sign_up(self.engine, SETTINGS, data)
                self.assertEqual(ctx.exception.message, message)

    def test_social_sign_up_is_not_implemented(self) -> None:
        with self.assertRaises(BadRequestException):
            sign_up(self.engine, SETTINGS, {"sns_type": "GOOGLE", "sns_id": "123"})


class SignInTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.user = create_user(self.engine, email="jane@example.com")

    def test_valid_credentials(self) -> None:
        tokens = sign_in(self.engine, SETTINGS, {"email": "jane@example.com", "password": PASSWORD})

        self.assertEqual(verify_token(SETTINGS, tokens.access_token, TokenType.ACCESS).id, self.user.id)

    def test_wrong_password_and_unknown_user(self) -> None:
        with self.assertRaises(ValidationException) as ctx:
            sign_in(self.engine, SETTINGS, {"email": "jane@example.com", "password": "Wrong0ne!"})
        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_PASSWORD_NOT_MATCH)

        with self.assertRaises(ValidationException) as ctx:
            sign_in(self.engine, SETTINGS, {"email": "nobody@example.com", "password": PASSWORD})
        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_NOT_FOUND_USER)

    def test_inactive_users_cannot_sign_in(self) -> None:
        create_user(self.engine, email="gone@example.com", state="INACTIVE")

        with self.assertRaises(ValidationException) as ctx:
            sign_in(self.engine, SETTINGS, {"email": "gone@example.com", "password": PASSWORD})
        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_NOT_FOUND_USER)

    def test_missing_credentials_and_social_sign_in(self) -> None:
        with self.assertRaises(ValidationException):
            sign_in(self.engine, SETTINGS, {"email": "jane@example.com"})
        with self.assertRaises(BadRequestException):
            sign_in(self.engine, SETTINGS, {"sns_type": "KAKAO", "sns_id": "42"})

    def test_refresh_token_issues_new_pair(self) -> None:
        tokens = sign_in(self.engine, SETTINGS, {"email": "jane@example.com", "password": PASSWORD})

        renewed = refresh_token(self.engine, SETTINGS, {"value1": tokens.refresh_token})

        self.assertEqual(verify_token(SETTINGS, renewed.access_token, TokenType.ACCESS).id, self.user.id)
        with self.assertRaises(UnauthorizedException):
            refresh_token(self.engine, SETTINGS, {"value1": tokens.access_token})

    def test_refresh_token_for_deactivated_user(self) -> None:
        tokens = sign_in(self.engine, SETTINGS, {"email": "jane@example.com", "password": PASSWORD})
        admin = create_user(self.engine, email="admin@example.com", role=UserRole.ADMIN)
        update_user(self.engine, admin, {"id": self.user.id, "state": "INACTIVE"})

        with self.assertRaises(NotFoundException):
            refresh_token(self.engine, SETTINGS, {"value1": tokens.refresh_token})


class UserManagementTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.user = create_user(self.engine, email="jane@example.com", name="Jane")
        self.admin = create_user(self.engine, email="admin@example.com", role=UserRole.ADMIN, name="Admin")

    def test_only_admins_list_and_fetch_users(self) -> None:
        with self.assertRaises(ForbiddenException):
            list_users(self.engine, self.user)
        with self.assertRaises(ForbiddenException):
            get_user(self.engine, self.user, self.admin.id)

        rows, info = list_users(self.engine, self.admin, {"email": "JANE"})
        self.assertEqual([row["id"] for row in rows], [self.user.id])
        self.assertEqual(info.total, 1)
        self.assertNotIn("password", rows[0])
        rows, _ = list_users(self.engine, self.admin, {"role": "ADMIN"})
        self.assertEqual([row["email"] for row in rows], ["admin@example.com"])
        with self.assertRaises(NotFoundException):
            get_user(self.engine, self.admin, 999)

    def test_users_update_their_own_profile(self) -> None:
        updated = update_user(self.engine, self.user, {"name": "Jane Doe", "currency": "EUR"})

        self.assertEqual(updated["name"], "Jane Doe")
        self.assertEqual(updated["currency"], "EUR")
        self.assertNotIn("password", updated)

    def test_role_changes_are_admin_only(self) -> None:
        with self.assertRaises(ForbiddenException):
            update_user(self.engine, self.user, {"role": "ADMIN"})
        with self.assertRaises(ForbiddenException):
            update_user(self.engine, self.user, {"id": self.admin.id, "name": "Hijacked"})

        promoted = update_user(self.engine, self.admin, {"id": self.user.id, "role": "MANAGER"})
        self.assertEqual(promoted["role"], "MANAGER")
        with self.assertRaises(ValidationException):
            update_user(self.engine, self.admin, {"id": 999, "name": "Ghost"})

    def test_change_password(self) -> None:
        with self.assertRaises(ValidationException) as ctx:
            change_password(self.engine, self.user, {"current_password": "Wrong0ne!", "new_password": "N3w-passw0rd"})
        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_PASSWORD_NOT_MATCH)

        with self.assertRaises(ValidationException):
            change_password(self.engine, self.user, {"current_password": PASSWORD, "new_password": "nodigits!"})

        self.assertTrue(
            change_password(self.engine, self.user, {"current_password": PASSWORD, "new_password": "N3w-passw0rd"})
        )
        tokens = sign_in(self.engine, SETTINGS, {"email": "jane@example.com", "password": "N3w-passw0rd"})
        self.assertTrue(tokens.access_token)


if __name__ == "__main__":
    unittest.main()
