import unittest

from fingraph.errors import ErrorMessage, ValidationException
from fingraph.passwords import check_email_rule, check_password_rule, hash_password, verify_password


class PasswordTests(unittest.TestCase):
    def test_hash_round_trip(self) -> None:
        hashed = hash_password("Passw0rd!")

        self.assertNotEqual(hashed, "Passw0rd!")
        self.assertTrue(verify_password("Passw0rd!", hashed))
        self.assertFalse(verify_password("passw0rd!", hashed))

    def test_hashes_are_salted(self) -> None:
        self.assertNotEqual(hash_password("Passw0rd!"), hash_password("Passw0rd!"))

    def test_missing_hash_never_verifies(self) -> None:
        self.assertFalse(verify_password("anything", ""))

    def test_password_rule(self) -> None:
        check_password_rule("Passw0rd!")
        for candidate in ("short1!", "password123", "12345678!", "Password!!", "x" * 29 + "1!"):
            with self.subTest(candidate=candidate):
                with self.assertRaises(ValidationException) as ctx:
                    check_password_rule(candidate)
                self.assertEqual(ctx.exception.message, ErrorMessage.MSG_PASSWORD_RULES_VIOLATION)

    def test_email_rule(self) -> None:
        check_email_rule("jane.doe@example.co.kr")
        for candidate in ("jane", "jane@", "jane@example", "jane doe@example.com"):
            with self.subTest(candidate=candidate):
                with self.assertRaises(ValidationException):
                    check_email_rule(candidate)


if __name__ == "__main__":
    unittest.main()
