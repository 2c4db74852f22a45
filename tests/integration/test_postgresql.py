"""Join table sync against a real PostgreSQL server (TEST_DATABASE_URL)."""

import pytest
from bookstore import ALL_RECORDS, Book, Category, Publisher

from relmeta import (
    EntityRegistry,
    OptimisticLockError,
    RelMetaConfig,
    Statement,
    StatementExecutor,
)

PREFIX = "relmeta_test_"

DDL = [
    f"CREATE TABLE {PREFIX}book ("
    "book_id TEXT PRIMARY KEY, author_id TEXT, publisher_id TEXT, title TEXT)",
    f"CREATE TABLE {PREFIX}category (category_id TEXT PRIMARY KEY, name TEXT)",
    f"CREATE TABLE {PREFIX}book_category ("
    "book_id TEXT NOT NULL, category_id TEXT NOT NULL, PRIMARY KEY (book_id, category_id))",
    f"CREATE TABLE {PREFIX}publisher ("
    "publisher_id TEXT PRIMARY KEY, company_name TEXT, version INTEGER NOT NULL DEFAULT 0)",
]


@pytest.fixture
def pg_executor(postgresql_url):
    config = RelMetaConfig(dialect="postgresql", table_prefix=PREFIX, database_url=postgresql_url)
    registry = EntityRegistry.from_config(config)
    registry.parse_all(*ALL_RECORDS)
    executor = StatementExecutor.from_config(registry, config)

    tables = ("book_category", "book", "category", "publisher")
    with executor.engine.begin() as conn:
        for table in tables:
            conn.exec_driver_sql(f"DROP TABLE IF EXISTS {PREFIX}{table}")
        for ddl in DDL:
            conn.exec_driver_sql(ddl)
    yield executor
    with executor.engine.begin() as conn:
        for table in tables:
            conn.exec_driver_sql(f"DROP TABLE IF EXISTS {PREFIX}{table}")
    executor.engine.dispose()


class TestPostgreSQL:
    def test_convergence(self, pg_executor):
        pg_executor.insert(Book(book_id="b1"))
        pg_executor.insert([Category(category_id=c) for c in ("A", "B", "C")])

        book = Book(book_id="b1", category_id_list=["A", "B"])
        pg_executor.sync_relation_ids(book, "category_id_list")
        book.category_id_list = ["B", "C"]
        pg_executor.sync_relation_ids(book, "category_id_list")
        pg_executor.sync_relation_ids(book, "category_id_list")

        rows = pg_executor.query(
            Statement(sql=f"SELECT category_id FROM {PREFIX}book_category WHERE book_id = ?",
                      params=["b1"])
        )
        assert {r["category_id"] for r in rows} == {"B", "C"}

        pg_executor.load_relation(book, "category_list")
        assert sorted(c.category_id for c in book.category_list) == ["B", "C"]

    def test_optimistic_lock(self, pg_executor):
        pg_executor.insert(Publisher(publisher_id="p1", company_name="Acme"))
        mine = pg_executor.get(Publisher, "p1")
        theirs = pg_executor.get(Publisher, "p1")
        pg_executor.update(theirs)
        with pytest.raises(OptimisticLockError):
            pg_executor.update(mine)
