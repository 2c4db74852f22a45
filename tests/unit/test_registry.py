"""Tests for annotation parsing and the entity registry."""

from dataclasses import dataclass

import pytest
from bookstore import Author, Book, Category, CategoryInfo, Publisher, Review, Shelf

from relmeta import (
    BelongsTo,
    BelongsToMany,
    BelongsToManyIDs,
    ConfigurationError,
    EntityNotRegisteredError,
    EntityRegistry,
    HasMany,
    HasOne,
    RelMetaConfig,
    RelMetaError,
    close_default_registry,
    column,
    get_default_registry,
    init_default_registry,
    relation,
)
from relmeta.schema.registry import guess_other_id_field


class TestDefaults:
    """Defaulting rules of the annotation mini-language."""

    def test_entity_name_is_snake_cased_class_name(self, registry):
        assert registry.lookup_by_type(CategoryInfo).name == "category_info"
        assert registry.lookup_by_type(CategoryInfo).storage_name == "category_info"

    def test_has_many_other_id_defaults_to_owner_name(self, registry):
        """author.book_list with no sql_other_id_field resolves to author_id."""
        rel = registry.lookup_by_name("author").relations["book_list"]
        assert isinstance(rel, HasMany)
        assert rel.sql_other_id_field == "author_id"
        assert rel.value_field == "book_list"

    def test_has_one_other_id_defaults_to_owner_name(self, registry):
        rel = registry.lookup_by_name("category").relations["category_info"]
        assert isinstance(rel, HasOne)
        assert rel.sql_other_id_field == "category_id"

    def test_belongs_to_id_defaults_to_field_name(self, registry):
        rel = registry.lookup_by_name("book").relations["publisher"]
        assert isinstance(rel, BelongsTo)
        assert rel.sql_id_field == "publisher_id"

    def test_explicit_options_win(self, registry):
        rel = registry.lookup_by_name("book").relations["author"]
        assert rel.sql_id_field == "author_id"

    def test_belongs_to_many_guesses_other_id(self, registry):
        """book + book_category -> category_id; own side is the first key field."""
        rel = registry.lookup_by_name("book").relations["category_list"]
        assert isinstance(rel, BelongsToMany)
        assert rel.join_name == "book_category"
        assert rel.sql_id_field == "book_id"
        assert rel.sql_other_id_field == "category_id"

    def test_guess_works_from_either_end_of_join_name(self, registry):
        rel = registry.lookup_by_name("category").relations["book_list"]
        assert rel.sql_id_field == "category_id"
        assert rel.sql_other_id_field == "book_id"

    def test_ids_relation(self, registry):
        rel = registry.lookup_by_name("book").relations["category_id_list"]
        assert isinstance(rel, BelongsToManyIDs)
        assert (rel.sql_id_field, rel.sql_other_id_field) == ("book_id", "category_id")

    def test_relation_count_matches_annotated_fields(self, registry):
        assert len(registry.lookup_by_type(Book).relations) == 4
        assert len(registry.lookup_by_type(Category).relations) == 2
        assert len(registry.lookup_by_type(Author).relations) == 1

    def test_keys_and_version(self, registry):
        assert registry.lookup_by_type(Publisher).version_field == "version"
        assert registry.lookup_by_type(Book).version_field is None
        info = registry.lookup_by_type(CategoryInfo)
        assert info.key_fields == ["category_info_id"]
        assert info.key_auto_generated is True
        assert registry.lookup_by_name("book_category").key_fields == ["book_id", "category_id"]

    def test_relation_before_key_field(self):
        """Relation defaults may use a key declared further down."""

        @dataclass
        class Tagged:
            tag_ids: list = relation("belongs_to_many_ids,join_name=tagged_tag")
            tagged_id: str = column("tagged_id", "pk", default="")

        descriptor = EntityRegistry().parse(Tagged)
        rel = descriptor.relations["tag_ids"]
        assert rel.sql_id_field == "tagged_id"
        assert rel.sql_other_id_field == "tag_id"

    def test_embedded_fields_are_promoted(self, registry):
        assert registry.lookup_by_type(Review).storage_fields() == [
            "review_id",
            "book_id",
            "body",
            "created_at",
            "updated_at",
        ]
        assert registry.lookup_by_type(Shelf).storage_fields() == [
            "shelf_id",
            "label",
            "created_by",
        ]


class TestGuessOtherIdField:
    """The join name heuristic is a plain substring removal."""

    def test_examples(self):
        assert guess_other_id_field("book_category", "book") == "category_id"
        assert guess_other_id_field("category_book", "book") == "category_id"

    def test_no_match(self):
        assert guess_other_id_field("item_tag", "widget") is None

    def test_first_occurrence_only(self):
        """Known weak spot: the name inside another word is removed first."""
        assert guess_other_id_field("bookshelf_book", "book") == "shelf_book_id"


class TestConfigurationErrors:
    """Invalid annotations fail at registration time."""

    def test_missing_join_name(self):
        @dataclass
        class Widget:
            widget_id: str = column("widget_id", "pk", default="")
            tags: list = relation("belongs_to_many_ids")

        registry = EntityRegistry()
        with pytest.raises(ConfigurationError, match="join_name"):
            registry.parse(Widget)
        assert Widget not in registry

    def test_unguessable_other_id(self):
        @dataclass
        class Widget:
            widget_id: str = column("widget_id", "pk", default="")
            tags: list = relation("belongs_to_many_ids,join_name=item_tag")

        with pytest.raises(ConfigurationError, match="sql_other_id_field"):
            EntityRegistry().parse(Widget)

    def test_explicit_other_id_avoids_guess(self):
        @dataclass
        class Widget:
            widget_id: str = column("widget_id", "pk", default="")
            tags: list = relation(
                "belongs_to_many_ids,join_name=item_tag,sql_other_id_field=tag_id"
            )

        rel = EntityRegistry().parse(Widget).relations["tags"]
        assert rel.sql_other_id_field == "tag_id"

    def test_no_key_fields(self):
        @dataclass
        class Keyless:
            name: str = column("name", default="")

        with pytest.raises(ConfigurationError, match="No key fields"):
            EntityRegistry().parse(Keyless)

    def test_unknown_token(self):
        @dataclass
        class Typo:
            typo_id: str = column("typo_id", "pk,autoincr", default="")

        with pytest.raises(ConfigurationError, match="autoincr"):
            EntityRegistry().parse(Typo)

    def test_several_kinds_on_one_field(self):
        @dataclass
        class Greedy:
            greedy_id: str = column("greedy_id", "pk", default="")
            other: object = relation("belongs_to,has_one")

        with pytest.raises(ConfigurationError, match="several relation kinds"):
            EntityRegistry().parse(Greedy)

    def test_not_a_record(self):
        class Plain:
            pass

        with pytest.raises(ConfigurationError):
            EntityRegistry().parse(Plain)

    def test_unmapped_key_is_ignored(self):
        """A pk token on a field without storage mapping does not make a key."""

        @dataclass
        class Ghost:
            ghost_id: str = column("-", "pk", default="")

        with pytest.raises(ConfigurationError):
            EntityRegistry().parse(Ghost)


class TestRegistration:
    """Lookups, replacement and bulk renames."""

    def test_lookups(self, registry):
        book = Book(book_id="b1")
        by_type = registry.lookup_by_type(Book)
        assert registry.lookup_by_name("book") is by_type
        assert registry.lookup_by_instance(book) is by_type
        assert registry.lookup_by_instance([book]) is by_type
        assert registry.lookup_by_instance([]) is None
        assert registry.lookup_by_name("nope") is None

    def test_require_lists_available(self, registry):
        @dataclass
        class Stranger:
            stranger_id: str = column("stranger_id", "pk", default="")

        with pytest.raises(EntityNotRegisteredError) as exc_info:
            registry.require(Stranger())
        assert "author" in exc_info.value.available_entities

    def test_explicit_name(self):
        registry = EntityRegistry()
        descriptor = registry.parse(Author, "writer")
        assert descriptor.name == "writer"
        assert registry.lookup_by_name("writer") is descriptor

    def test_same_logical_name_replaces_other_type(self, caplog):
        @dataclass
        class CustomAuthor:
            author_id: str = column("author_id", "pk", default="")
            pen_name: str = column("pen_name", default="")

        registry = EntityRegistry()
        registry.parse(Author)
        registry.parse(CustomAuthor, "author")

        assert registry.lookup_by_type(Author) is None
        assert registry.lookup_by_name("author").record_type is CustomAuthor
        assert len(registry) == 1
        assert "replacing" in caplog.text

    def test_rename_storage_names(self, registry):
        registry.rename_storage_names(lambda n: "app_" + n)
        book = registry.lookup_by_name("book")
        assert book.storage_name == "app_book"
        assert book.name == "book"
        assert book.relations["category_list"].join_name == "book_category"

    def test_table_prefix(self):
        registry = EntityRegistry.from_config(RelMetaConfig(table_prefix="shop_"))
        assert registry.parse(Author).storage_name == "shop_author"

    def test_iteration_and_names(self, registry):
        assert "category_info" in registry.names()
        assert len(list(registry)) == len(registry)


class TestDefaultRegistry:
    """Optional process wide registry."""

    def test_get_before_init_raises(self):
        with pytest.raises(RelMetaError, match="not initialized"):
            get_default_registry()

    def test_init_get_close(self):
        registry = init_default_registry(RelMetaConfig(table_prefix="t_"))
        assert get_default_registry() is registry
        assert registry.parse(Author).storage_name == "t_author"

        with pytest.raises(RelMetaError, match="already initialized"):
            init_default_registry()

        close_default_registry()
        with pytest.raises(RelMetaError):
            get_default_registry()
