"""
RestBase Tests: Resource Controller Unit Tests
================================================

What:  Tests for ResourceController operations called directly (no HTTP).
How:   Real SQLite sessions for data behavior; mock sessions where only the
       call sequence matters.

What we test:
    ✅ List paging, ordering and filter scoping
    ✅ Get-one with eager loads and the get-hook
    ✅ Path ids converted to int, date, datetime and decimal keys
    ✅ Create returns the new id and honors the fillable whitelist
    ✅ Update merges fields and never runs the hook for a missing record
    ✅ Delete runs the delete-hook exactly once before removal, and never for
       a missing record
    ✅ Sync and async hooks are both accepted
    ✅ Construction errors (composite key, unknown fillable column)
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import inspect as sa_inspect, select

from restbase.exceptions import NotFoundError, ResourceConfigurationError, ValidationError
from restbase.resources import Action, ResourceController, ResourceHooks
from restbase.schemas import ListParams
from sample_resources import Author, Book, Holiday, PriceBand, Reading, Tagging


class TestConstruction:
    """Tests for ResourceController defaults and configuration checks."""

    def test_defaults(self):
        """Name, prefix and fillable set are derived from the model."""
        controller = ResourceController(Book)
        assert controller.name == "Book"
        assert controller.prefix == "/books"
        assert controller.record_type is Book
        assert controller.fillable == frozenset({"title", "pages", "owner", "author_id"})

    def test_prefix_is_normalized(self):
        """Prefix gets exactly one leading slash and no trailing slash."""
        controller = ResourceController(Book, prefix="library/books/")
        assert controller.prefix == "/library/books"

    def test_composite_primary_key_rejected(self):
        """Models without a single-column key cannot be exposed."""
        with pytest.raises(ResourceConfigurationError):
            ResourceController(Tagging)

    def test_unknown_fillable_column_rejected(self):
        """Fillable names must be mapped columns."""
        with pytest.raises(ResourceConfigurationError) as exc_info:
            ResourceController(Book, fillable=["title", "isbn"])
        assert exc_info.value.context["unknown"] == ["isbn"]


class TestCoerceId:
    """Tests for converting path ids to the primary key type."""

    def test_integer_key(self):
        """Digit strings become ints; ints pass through; junk is not found."""
        controller = ResourceController(Book)
        assert controller.coerce_id("7") == 7
        assert controller.coerce_id(7) == 7
        with pytest.raises(NotFoundError):
            controller.coerce_id("seven")

    def test_date_key_parses_iso_string(self):
        """ISO dates become date objects."""
        assert ResourceController(Holiday).coerce_id("2024-01-01") == date(2024, 1, 1)

    def test_datetime_key_parses_iso_string(self):
        """ISO timestamps become datetime objects."""
        controller = ResourceController(Reading)
        assert controller.coerce_id("2024-03-05T10:30:00") == datetime(2024, 3, 5, 10, 30)

    def test_malformed_date_is_not_found(self):
        """A string that is not an ISO date cannot match any record."""
        with pytest.raises(NotFoundError):
            ResourceController(Holiday).coerce_id("yesterday")

    def test_decimal_key(self):
        """Decimal strings become Decimals."""
        assert ResourceController(PriceBand).coerce_id("9.99") == Decimal("9.99")

    def test_malformed_decimal_is_not_found(self):
        """decimal.InvalidOperation is reported as not found, not a crash."""
        with pytest.raises(NotFoundError):
            ResourceController(PriceBand).coerce_id("abc")

    @pytest.mark.asyncio
    async def test_get_one_by_date_key(self, db_session, make_request):
        """A record keyed by a date is reachable through its ISO path id."""
        db_session.add(Holiday(day=date(2024, 1, 1), name="New Year"))
        await db_session.commit()

        holiday = await ResourceController(Holiday).get_one(make_request(), db_session, "2024-01-01")
        assert holiday.name == "New Year"


class TestListRecords:
    """Tests for ResourceController.list_records."""

    def setup_method(self):
        self.controller = ResourceController(Book)

    @pytest.mark.asyncio
    async def test_skip_and_limit_select_third_record(self, db_session, seed_books, make_request):
        """skip=2, limit=1 over ids 1..5 returns only the third record."""
        records = await self.controller.list_records(
            make_request(), db_session, ListParams(skip=2, limit=1)
        )
        assert [book.id for book in records] == [3]

    @pytest.mark.asyncio
    async def test_no_params_returns_everything_in_key_order(self, db_session, seed_books, make_request):
        """Without parameters every record comes back ordered by id."""
        records = await self.controller.list_records(make_request(), db_session)
        assert [book.id for book in records] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_desc_reverses_asc(self, db_session, seed_books, make_request):
        """Descending order is the exact reverse of ascending order."""
        request = make_request()
        asc = await self.controller.list_records(request, db_session, ListParams(sort="title"))
        desc = await self.controller.list_records(
            request, db_session, ListParams(sort="title", order="desc")
        )
        assert [b.id for b in desc] == [b.id for b in reversed(asc)]

    @pytest.mark.asyncio
    async def test_empty_table(self, db_session, make_request):
        """An empty table lists as an empty list."""
        assert await self.controller.list_records(make_request(), db_session) == []

    @pytest.mark.asyncio
    async def test_filters_scope_the_list(self, db_session, seed_books, make_request, resources):
        """The filter hook restricts which records are listed."""
        books, _ = resources
        records = await books.list_records(make_request(headers={"X-Owner": "bob"}), db_session)
        assert [book.id for book in records] == [4, 5]

    @pytest.mark.asyncio
    async def test_filter_hook_receives_list_action(self, db_session, seed_books, make_request):
        """The filter hook is asked about the LIST action."""
        seen = []
        controller = ResourceController(
            Book,
            hooks=ResourceHooks(filters=lambda request, action: seen.append(action) or {}),
        )
        await controller.list_records(make_request(), db_session)
        assert seen == [Action.LIST]

    @pytest.mark.asyncio
    async def test_get_hook_applies_to_each_record(self, db_session, seed_books, make_request):
        """Every listed record passes through the get-hook."""
        controller = ResourceController(
            Book, hooks=ResourceHooks(before_get=lambda book: book.title)
        )
        records = await controller.list_records(make_request(), db_session, ListParams(limit=2))
        assert records == ["A Wizard", "B Tombs"]


class TestGetOne:
    """Tests for ResourceController.get_one."""

    @pytest.mark.asyncio
    async def test_returns_record_with_relations(self, db_session, seed_books, make_request, resources):
        """Relations named by the relation hook are eager-loaded."""
        books, _ = resources
        book = await books.get_one(make_request(), db_session, "1")
        assert book.title == "A Wizard"
        assert "author" not in sa_inspect(book).unloaded
        assert book.author.name == "Ursula"

    @pytest.mark.asyncio
    async def test_single_relation_name_from_hook(self, db_session, seed_books, make_request):
        """A relation hook returning one bare name loads that relation."""
        controller = ResourceController(
            Book, hooks=ResourceHooks(relations=lambda request, action: "author")
        )
        book = await controller.get_one(make_request(), db_session, 1)
        assert "author" not in sa_inspect(book).unloaded

    @pytest.mark.asyncio
    async def test_missing_record_raises_not_found(self, db_session, seed_books, make_request):
        """Absent ids raise NotFoundError naming the id."""
        with pytest.raises(NotFoundError) as exc_info:
            await ResourceController(Book).get_one(make_request(), db_session, 42)
        assert exc_info.value.message == "Book with 42 id does not exist"

    @pytest.mark.asyncio
    async def test_record_outside_filters_is_not_found(self, db_session, seed_books, make_request, resources):
        """A record excluded by the filter hook is not found."""
        books, _ = resources
        with pytest.raises(NotFoundError):
            await books.get_one(make_request(headers={"X-Owner": "bob"}), db_session, 1)

    @pytest.mark.asyncio
    async def test_async_get_hook(self, db_session, seed_books, make_request):
        """A coroutine get-hook is awaited and its result returned."""
        async def summarize(book):
            return {"id": book.id, "pages": book.pages}

        controller = ResourceController(Book, hooks=ResourceHooks(before_get=summarize))
        assert await controller.get_one(make_request(), db_session, 2) == {"id": 2, "pages": 150}

    @pytest.mark.asyncio
    async def test_get_hook_not_called_for_missing_record(self, mock_db_session, make_request):
        """The get-hook never sees a lookup that found nothing."""
        calls = []
        controller = ResourceController(Book, hooks=ResourceHooks(before_get=calls.append))
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = None

        with pytest.raises(NotFoundError):
            await controller.get_one(make_request(), mock_db_session, 42)
        assert calls == []


class TestCreate:
    """Tests for ResourceController.create."""

    @pytest.mark.asyncio
    async def test_create_then_get(self, db_session, make_request):
        """A created record is readable through get_one with the same fields."""
        controller = ResourceController(Book)
        new_id = await controller.create(make_request({"title": "Dune", "pages": 412}), db_session)
        await db_session.commit()

        book = await controller.get_one(make_request(), db_session, new_id)
        assert book.title == "Dune"
        assert book.pages == 412

    @pytest.mark.asyncio
    async def test_non_fillable_fields_are_ignored(self, db_session, make_request):
        """Fields outside the fillable set, including the key, are dropped."""
        controller = ResourceController(Book, fillable=["title"])
        new_id = await controller.create(
            make_request({"id": 99, "title": "Dune", "owner": "mallory"}), db_session
        )
        book = await db_session.get(Book, new_id)
        assert new_id != 99
        assert book.owner is None

    @pytest.mark.asyncio
    async def test_create_hook_supplies_fields(self, db_session, make_request, resources):
        """The create-hook may add fields taken from the request."""
        books, _ = resources
        new_id = await books.create(
            make_request({"title": "Dune"}, headers={"X-Owner": "ann"}), db_session
        )
        book = await db_session.get(Book, new_id)
        assert book.owner == "ann"

    @pytest.mark.asyncio
    async def test_sync_create_hook(self, mock_db_session, make_request):
        """A plain-function create-hook supplies the field map."""
        controller = ResourceController(
            Author, hooks=ResourceHooks(before_create=lambda request: {"name": "Octavia"})
        )
        await controller.create(make_request(), mock_db_session)

        (record,), _ = mock_db_session.add.call_args
        assert isinstance(record, Author)
        assert record.name == "Octavia"
        mock_db_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_non_object_body_raises_validation_error(self, mock_db_session, make_request):
        """A JSON array body is rejected before anything is added."""
        with pytest.raises(ValidationError) as exc_info:
            await ResourceController(Book).create(make_request(["Dune"]), mock_db_session)
        assert exc_info.value.field == "body"
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_json_raises_validation_error(self, mock_db_session, make_request):
        """A body that is not JSON is rejected."""
        with pytest.raises(ValidationError):
            await ResourceController(Book).create(make_request(raw=b"{not json"), mock_db_session)


class TestUpdate:
    """Tests for ResourceController.update."""

    @pytest.mark.asyncio
    async def test_update_merges_supplied_fields(self, db_session, seed_books, make_request):
        """Only the supplied fields change; the rest keep their values."""
        controller = ResourceController(Book)
        result = await controller.update(make_request({"pages": 999}), db_session, "2")
        assert result == 2

        book = await db_session.get(Book, 2)
        assert book.pages == 999
        assert book.title == "B Tombs"
        assert book.owner == "ann"

    @pytest.mark.asyncio
    async def test_missing_record_is_not_mutated_and_hook_not_called(
        self, db_session, seed_books, make_request
    ):
        """Updating an absent id raises NotFoundError without running the hook."""
        calls = []

        def capture(request):
            calls.append(request)
            return {"title": "Hijacked"}

        controller = ResourceController(Book, hooks=ResourceHooks(before_update=capture))
        with pytest.raises(NotFoundError):
            await controller.update(make_request(), db_session, 42)

        assert calls == []
        titles = (await db_session.execute(select(Book.title))).scalars().all()
        assert "Hijacked" not in titles
        assert await db_session.get(Book, 42) is None

    @pytest.mark.asyncio
    async def test_update_outside_filters_is_not_found(self, db_session, seed_books, make_request, resources):
        """A record excluded by the UPDATE filters cannot be updated."""
        books, _ = resources
        with pytest.raises(NotFoundError):
            await books.update(
                make_request({"title": "Mine"}, headers={"X-Owner": "bob"}), db_session, 1
            )

    @pytest.mark.asyncio
    async def test_primary_key_cannot_be_reassigned(self, db_session, seed_books, make_request):
        """An id in the body is ignored by default."""
        controller = ResourceController(Book)
        await controller.update(make_request({"id": 77, "title": "Renamed"}), db_session, 3)
        book = await db_session.get(Book, 3)
        assert book.title == "Renamed"
        assert await db_session.get(Book, 77) is None


class TestDelete:
    """Tests for ResourceController.delete."""

    @pytest.mark.asyncio
    async def test_delete_calls_hook_once_then_removes(
        self, db_session, seed_books, make_request, resources, deleted
    ):
        """The delete-hook runs once and the record is gone afterwards."""
        books, _ = resources
        result = await books.delete(make_request(), db_session, "4")

        assert result == 4
        assert deleted == [4]
        assert await db_session.get(Book, 4) is None

    @pytest.mark.asyncio
    async def test_missing_record_calls_no_hook(self, db_session, seed_books, make_request, resources, deleted):
        """Deleting an absent id raises NotFoundError without running the hook."""
        books, _ = resources
        with pytest.raises(NotFoundError):
            await books.delete(make_request(), db_session, 42)
        assert deleted == []

    @pytest.mark.asyncio
    async def test_delete_outside_filters_is_not_found(
        self, db_session, seed_books, make_request, resources, deleted
    ):
        """A record excluded by the DELETE filters survives."""
        books, _ = resources
        with pytest.raises(NotFoundError):
            await books.delete(make_request(headers={"X-Owner": "ann"}), db_session, 5)
        assert deleted == []
        assert await db_session.get(Book, 5) is not None

    @pytest.mark.asyncio
    async def test_hook_runs_before_removal(self, mock_db_session, make_request):
        """The delete-hook sees the record before the session deletes it."""
        record = Book(id=8, title="Gone")
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = record
        calls = []

        async def before_delete(book):
            calls.append((book, mock_db_session.delete.await_count))

        controller = ResourceController(Book, hooks=ResourceHooks(before_delete=before_delete))
        assert await controller.delete(make_request(), mock_db_session, 8) == 8

        assert calls == [(record, 0)]
        mock_db_session.delete.assert_awaited_once_with(record)
        mock_db_session.flush.assert_awaited_once()
