"""Join table reconciliation against SQLite."""

import pytest
from bookstore import Book, Category

from relmeta import Statement


def linked(executor, book_id):
    rows = executor.query(
        Statement(sql="SELECT category_id FROM book_category WHERE book_id = ?", params=[book_id])
    )
    return {row["category_id"] for row in rows}


@pytest.fixture
def book(executor):
    executor.insert(Book(book_id="b1", title="Roughing It"))
    executor.insert([Category(category_id=c, name=c.upper()) for c in ("A", "B", "C")])
    return Book(book_id="b1")


class TestReconciliation:
    """Delete-then-insert converges the join table to the desired set."""

    def test_convergence(self, executor, book):
        """{A, B} -> {B, C}: A removed, C added, B untouched."""
        book.category_id_list = ["A", "B"]
        executor.sync_relation_ids(book, "category_id_list")
        assert linked(executor, "b1") == {"A", "B"}

        book.category_id_list = ["B", "C"]
        executor.sync_relation_ids(book, "category_id_list")
        assert linked(executor, "b1") == {"B", "C"}

    def test_idempotent(self, executor, book):
        book.category_id_list = ["A", "C"]
        executor.sync_relation_ids(book, "category_id_list")
        executor.sync_relation_ids(book, "category_id_list")
        assert linked(executor, "b1") == {"A", "C"}

    def test_statements_applied_by_hand(self, executor, synchronizer, book):
        """The two statements can be run in any caller managed transaction."""
        book.category_id_list = ["A", "B"]
        with executor.transaction() as conn:
            delete, insert = synchronizer.reconcile(book, "category_id_list")
            executor.execute(delete, conn)
            assert executor.execute(insert, conn) == 2

        # second application changes nothing
        with executor.transaction() as conn:
            delete, insert = synchronizer.reconcile(book, "category_id_list")
            assert executor.execute(delete, conn) == 0
            assert executor.execute(insert, conn) == 0
        assert linked(executor, "b1") == {"A", "B"}

    def test_to_zero_and_back(self, executor, synchronizer, book):
        """N links -> none -> M links."""
        book.category_id_list = ["A", "B", "C"]
        executor.sync_relation_ids(book, "category_id_list")

        book.category_id_list = []
        assert synchronizer.reconcile_insert(book, "category_id_list") is None
        executor.sync_relation_ids(book, "category_id_list")
        assert linked(executor, "b1") == set()

        book.category_id_list = ["C"]
        executor.sync_relation_ids(book, "category_id_list")
        assert linked(executor, "b1") == {"C"}

    def test_other_records_untouched(self, executor, book):
        executor.insert(Book(book_id="b2"))
        other = Book(book_id="b2", category_id_list=["A"])
        executor.sync_relation_ids(other, "category_id_list")

        book.category_id_list = []
        executor.sync_relation_ids(book, "category_id_list")
        assert linked(executor, "b2") == {"A"}
