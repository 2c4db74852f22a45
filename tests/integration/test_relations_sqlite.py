"""Loading relations and writing records against SQLite."""

import pytest
from bookstore import (
    Author,
    Book,
    Category,
    CategoryInfo,
    Publisher,
    Review,
    Shelf,
    ShelfBook,
)

from relmeta import ConfigurationError, OptimisticLockError, StatementError, uuid4_generator


@pytest.fixture
def seeded(executor):
    """Author a1 with two books from publisher p1, three categories."""
    executor.insert(Author(author_id="a1", nom_de_plume="Mark Twain"))
    executor.insert(Publisher(publisher_id="p1", company_name="Acme"))
    executor.insert(
        [
            Book(book_id="b1", author_id="a1", publisher_id="p1", title="Roughing It"),
            Book(book_id="b2", author_id="a1", publisher_id="p1", title="Tom Sawyer"),
        ]
    )
    executor.insert(
        [
            Category(category_id="c1", name="Travel"),
            Category(category_id="c2", name="Humor"),
            Category(category_id="c3", name="Fiction"),
        ]
    )
    return executor


class TestLoadRelation:
    """Each relation kind loads into its value field."""

    def test_belongs_to(self, seeded):
        book = seeded.get(Book, "b1")
        author = seeded.load_relation(book, "author")
        assert book.author is author
        assert author == Author(author_id="a1", nom_de_plume="Mark Twain")

    def test_belongs_to_missing_row(self, seeded):
        book = Book(book_id="b9", author_id="nobody")
        assert seeded.load_relation(book, "author") is None
        assert book.author is None

    def test_has_many(self, seeded):
        author = seeded.get(Author, "a1")
        seeded.load_relation(author, "book_list")
        assert sorted(b.title for b in author.book_list) == ["Roughing It", "Tom Sawyer"]

    def test_has_many_empty(self, seeded):
        author = Author(author_id="a2")
        assert seeded.load_relation(author, "book_list") == []

    def test_has_one(self, seeded):
        info = CategoryInfo(category_id="c1", info_stuff="maps")
        seeded.insert(info)
        category = seeded.get(Category, "c1")
        seeded.load_relation(category, "category_info")
        assert category.category_info == info

    def test_belongs_to_many(self, seeded):
        book = seeded.get(Book, "b1")
        book.category_id_list = ["c1", "c2"]
        seeded.sync_relation_ids(book, "category_id_list")

        seeded.load_relation(book, "category_list")
        assert sorted(c.name for c in book.category_list) == ["Humor", "Travel"]

        category = seeded.get(Category, "c2")
        seeded.load_relation(category, "book_list")
        assert [b.book_id for b in category.book_list] == ["b1"]

    def test_belongs_to_many_ids(self, seeded):
        book = seeded.get(Book, "b2")
        book.category_id_list = ["c3"]
        seeded.sync_relation_ids(book, "category_id_list")

        fresh = seeded.get(Book, "b2")
        assert fresh.category_id_list == []
        assert seeded.load_relation(fresh, "category_id_list") == ["c3"]
        assert fresh.category_id_list == ["c3"]


class TestWrites:
    """Inserts, updates and deletes through the executor."""

    def test_get(self, seeded):
        book = seeded.get(Book, "b1")
        assert book.title == "Roughing It"
        assert seeded.get(Book, "missing") is None

    def test_generated_key_written_back(self, seeded):
        first = CategoryInfo(category_id="c1")
        second = CategoryInfo(category_id="c2")
        seeded.insert(first)
        seeded.insert(second)
        assert first.category_info_id is not None
        assert second.category_info_id == first.category_info_id + 1

    def test_embedded_round_trip(self, seeded):
        review = Review(review_id="r1", book_id="b1", body="great")
        seeded.insert(review)
        loaded = seeded.get(Review, "r1")
        assert loaded.body == "great"
        assert loaded.stamps.created_at == review.stamps.created_at
        seeded.load_relation(loaded, "book")
        assert loaded.book.title == "Roughing It"

    def test_uuid_keys(self, seeded):
        author = Author(nom_de_plume="Anonymous")
        uuid4_generator(seeded.registry, author)
        assert len(author.author_id) == 36
        seeded.insert(author)
        assert seeded.get(Author, author.author_id).nom_de_plume == "Anonymous"

    def test_duplicate_key_wraps_driver_error(self, seeded):
        with pytest.raises(StatementError) as exc_info:
            seeded.insert(Author(author_id="a1"))
        assert isinstance(exc_info.value.__cause__, Exception)

    def test_transaction_rolls_back(self, seeded):
        with pytest.raises(RuntimeError):
            with seeded.transaction() as conn:
                seeded.execute(seeded.builder.insert(Author(author_id="a9")), conn)
                raise RuntimeError("boom")
        assert seeded.get(Author, "a9") is None

    def test_pydantic_records(self, seeded):
        shelf = Shelf(label="front")
        seeded.insert(shelf)
        assert shelf.shelf_id is not None

        shelf.book_ids = ["b1", "b2"]
        seeded.sync_relation_ids(shelf, "book_ids")
        rows = seeded.fetch(ShelfBook, seeded.builder.select(ShelfBook).order_by("book_id"))
        assert [(r.shelf_id, r.book_id) for r in rows] == [(shelf.shelf_id, "b1"), (shelf.shelf_id, "b2")]

        loaded = seeded.get(Shelf, shelf.shelf_id)
        assert loaded.label == "front"
        assert sorted(seeded.load_relation(loaded, "book_ids")) == ["b1", "b2"]


class TestOptimisticLock:
    """Versioned updates and deletes must hit exactly one row."""

    def test_update_advances_version(self, seeded):
        publisher = seeded.get(Publisher, "p1")
        assert publisher.version == 0
        publisher.company_name = "Acme Books"
        seeded.update(publisher)
        assert publisher.version == 1

        stored = seeded.get(Publisher, "p1")
        assert stored.version == 1
        assert stored.company_name == "Acme Books"

    def test_stale_update_conflicts(self, seeded):
        mine = seeded.get(Publisher, "p1")
        theirs = seeded.get(Publisher, "p1")
        theirs.company_name = "Theirs"
        seeded.update(theirs)

        mine.company_name = "Mine"
        with pytest.raises(OptimisticLockError) as exc_info:
            seeded.update(mine)
        assert exc_info.value.rows_affected == 0
        assert mine.version == 0

        stored = seeded.get(Publisher, "p1")
        assert (stored.company_name, stored.version) == ("Theirs", 1)

    def test_missing_row_looks_the_same(self, seeded):
        with pytest.raises(OptimisticLockError):
            seeded.update(Publisher(publisher_id="p404", company_name="Ghost"))

    def test_delete(self, seeded):
        stale = seeded.get(Publisher, "p1")
        fresh = seeded.get(Publisher, "p1")
        seeded.update(fresh)

        with pytest.raises(OptimisticLockError):
            seeded.delete(stale)
        seeded.delete(fresh)
        assert seeded.get(Publisher, "p1") is None

    def test_unversioned_update(self, seeded):
        book = seeded.get(Book, "b1")
        book.title = "Roughing It (2nd ed.)"
        seeded.update(book)
        assert seeded.get(Book, "b1").title == "Roughing It (2nd ed.)"


class TestFetch:
    def test_rejects_non_record_type(self, seeded):
        with pytest.raises(ConfigurationError, match="not a dataclass"):
            seeded.fetch(object, seeded.builder.select(Book))
