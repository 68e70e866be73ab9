import unittest

from sqlalchemy import insert

from fingraph.db import users
from fingraph.errors import ValidationException
from fingraph.pagination import build_page_info, column_name, page_offset, paginate
from fingraph.payloads import SortPayload
from fingraph.tests.support import make_engine


class PageInfoTests(unittest.TestCase):
    def test_partial_last_page(self) -> None:
        info = build_page_info(25, page=1, take=10)

        self.assertEqual(info.total_pages, 3)
        self.assertTrue(info.has_next_page)
        self.assertFalse(build_page_info(25, page=3, take=10).has_next_page)

    def test_empty_result(self) -> None:
        info = build_page_info(0)

        self.assertEqual(info.total_pages, 0)
        self.assertFalse(info.has_next_page)

    def test_offset_and_column_names(self) -> None:
        self.assertEqual(page_offset(3, 10), 20)
        self.assertEqual(column_name("createdAt"), "created_at")
        self.assertEqual(column_name("nick_name"), "nick_name")


class PaginateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        with self.engine.begin() as conn:
            conn.execute(
                insert(users),
                [{"email": f"user{index}@example.com", "name": f"User {index}"} for index in range(5)],
            )

    def test_sorted_window(self) -> None:
        with self.engine.begin() as conn:
            rows, info = paginate(
                conn,
                users,
                [],
                page=2,
                take=2,
                sort_by=[SortPayload(field="email", direction=False)],
            )

        self.assertEqual([row["email"] for row in rows], ["user2@example.com", "user1@example.com"])
        self.assertEqual(info.total, 5)
        self.assertEqual(info.total_pages, 3)
        self.assertTrue(info.has_next_page)

    def test_filters_apply_to_total(self) -> None:
        with self.engine.begin() as conn:
            rows, info = paginate(conn, users, [users.c.email.like("user1%")])

        self.assertEqual(len(rows), 1)
        self.assertEqual(info.total, 1)

    def test_unknown_sort_field(self) -> None:
        with self.engine.begin() as conn:
            with self.assertRaises(ValidationException):
                paginate(conn, users, [], sort_by=[SortPayload(field="shoeSize")])


if __name__ == "__main__":
    unittest.main()
