# =============================================================================
# tests/unit/test_remote_store.py
# Unit Tests for the Supabase-Backed Store
# =============================================================================

import asyncio

import pytest


class TestErrorTranslation:
    """Test PostgREST error classification"""

    @pytest.mark.parametrize("code, message, expected", [
        ("42P01", 'relation "public.books" does not exist', "SchemaMissingError"),
        ("PGRST205", "Could not find the table 'public.books' in the schema cache", "SchemaMissingError"),
        ("23505", "duplicate key value violates unique constraint", "ConflictError"),
        ("PGRST301", "JWT expired", "RemoteUnavailableError"),
        ("08006", "connection failure", "RemoteUnavailableError"),
    ])
    def test_codes_map_to_error_kinds(self, code, message, expected):
        from postgrest.exceptions import APIError
        from booktalk_core.offline import translate_api_error

        error = translate_api_error(APIError({"code": code, "message": message}), "books", "get_books")

        assert type(error).__name__ == expected
        assert error.details["table"] == "books"

    def test_transport_failure_is_unavailable(self, fake_supabase, remote_store):
        from booktalk_core.errors import RemoteUnavailableError

        fake_supabase.break_table("books", ConnectionError("DNS lookup failed"))

        with pytest.raises(RemoteUnavailableError):
            asyncio.run(remote_store.get_books())


class TestSession:
    """Test authentication handling"""

    def test_current_user_from_session(self, remote_store):
        user = asyncio.run(remote_store.get_current_user())

        assert user.id == "user-1"

    def test_no_session_raises_not_authenticated(self, fake_supabase, remote_store):
        from booktalk_core.errors import NotAuthenticatedError

        fake_supabase.auth.session_active = False

        with pytest.raises(NotAuthenticatedError):
            asyncio.run(remote_store.get_books())
        assert fake_supabase.calls == []

    def test_bad_credentials(self, fake_supabase, remote_store):
        from booktalk_core.errors import NotAuthenticatedError

        fake_supabase.auth.reject_credentials = True

        with pytest.raises(NotAuthenticatedError):
            asyncio.run(remote_store.sign_in("reader@example.com", "wrong"))

    def test_sign_out_forgets_user(self, fake_supabase, remote_store):
        asyncio.run(remote_store.get_current_user())
        asyncio.run(remote_store.sign_out())

        assert fake_supabase.auth.signed_out
        assert asyncio.run(remote_store.get_current_user()) is None


class TestBooks:
    """Test book rows"""

    def test_save_book_writes_owned_snake_case_row(self, fake_supabase, remote_store, sample_book):
        asyncio.run(remote_store.save_book(sample_book))

        row = fake_supabase.tables["books"][0]
        assert row["user_id"] == "user-1"
        assert row["cover_url"] == sample_book.cover_url

    def test_save_book_upserts(self, fake_supabase, remote_store, sample_book):
        asyncio.run(remote_store.save_book(sample_book))
        asyncio.run(remote_store.save_book(sample_book.updated(rating=5)))

        assert len(fake_supabase.tables["books"]) == 1
        assert asyncio.run(remote_store.get_books())[0].rating == 5

    def test_get_books_newest_first_scoped_to_user(self, fake_supabase, remote_store):
        from booktalk_core.models import Book

        older = Book(id="a", title="A", author="", added_at=1, last_message_time=1_000)
        newer = Book(id="b", title="B", author="", added_at=1, last_message_time=2_000)
        asyncio.run(remote_store.save_book(older))
        asyncio.run(remote_store.save_book(newer))
        fake_supabase.tables["books"].append({**newer.to_remote("someone-else"), "id": "c"})

        assert [b.id for b in asyncio.run(remote_store.get_books())] == ["b", "a"]

    def test_add_book_is_undone_when_welcome_fails(self, fake_supabase, remote_store, sample_book, sample_message):
        from booktalk_core.errors import RemoteUnavailableError

        fake_supabase.fail("messages")

        with pytest.raises(RemoteUnavailableError):
            asyncio.run(remote_store.add_book(sample_book, sample_message))
        assert fake_supabase.tables["books"] == []

    def test_record_message_writes_message_and_preview(
        self, fake_supabase, remote_store, sample_book, sample_message
    ):
        asyncio.run(remote_store.save_book(sample_book))

        asyncio.run(remote_store.record_message(sample_message, sample_book.with_preview(sample_message)))

        assert [r["id"] for r in fake_supabase.tables["messages"]] == ["msg-1"]
        assert fake_supabase.tables["books"][0]["last_message"].startswith("Quote:")

    def test_record_message_is_undone_when_preview_fails(
        self, fake_supabase, remote_store, sample_book, sample_message
    ):
        from booktalk_core.errors import RemoteUnavailableError

        asyncio.run(remote_store.save_book(sample_book))
        fake_supabase.fail("books")

        with pytest.raises(RemoteUnavailableError):
            asyncio.run(remote_store.record_message(sample_message, sample_book.with_preview(sample_message)))

        assert fake_supabase.tables["messages"] == []
        assert fake_supabase.calls[-1] == ("messages", "delete")

    def test_delete_book_data(self, fake_supabase, remote_store, sample_book, sample_message):
        asyncio.run(remote_store.add_book(sample_book, sample_message))

        asyncio.run(remote_store.delete_book_data("book-1"))

        assert fake_supabase.tables["books"] == []
        assert fake_supabase.tables["messages"] == []


class TestMessages:
    """Test message rows"""

    def test_messages_oldest_first(self, remote_store, sample_message):
        from dataclasses import replace

        later = replace(sample_message, id="msg-2", text="later", timestamp=sample_message.timestamp + 1)

        asyncio.run(remote_store.add_message(later))
        asyncio.run(remote_store.add_message(sample_message))

        assert [m.id for m in asyncio.run(remote_store.get_messages("book-1"))] == ["msg-1", "msg-2"]

    def test_duplicate_insert_conflicts(self, remote_store, sample_message):
        from booktalk_core.errors import ConflictError

        asyncio.run(remote_store.add_message(sample_message))

        with pytest.raises(ConflictError) as exc_info:
            asyncio.run(remote_store.add_message(sample_message))
        assert exc_info.value.details["record_id"] == "msg-1"

    def test_update_sends_enrichment_fields_only(self, fake_supabase, remote_store, sample_message):
        asyncio.run(remote_store.add_message(sample_message))

        asyncio.run(remote_store.update_message("book-1", "msg-1", {"keywords": ["Fear"], "page": "1"}))

        row = fake_supabase.tables["messages"][0]
        assert row["keywords"] == ["Fear"]
        assert row["page"] == "12"

    def test_empty_update_skips_request(self, fake_supabase, remote_store):
        asyncio.run(remote_store.update_message("book-1", "msg-1", {"page": "1"}))

        assert fake_supabase.calls == []


class TestProfile:
    def test_missing_profile_is_none(self, remote_store):
        assert asyncio.run(remote_store.get_profile()) is None

    def test_profile_round_trip(self, fake_supabase, remote_store, sample_profile):
        asyncio.run(remote_store.save_profile(sample_profile))

        assert fake_supabase.tables["profiles"][0]["id"] == "user-1"
        assert asyncio.run(remote_store.get_profile()) == sample_profile

    def test_missing_profiles_table(self, fake_supabase, remote_store):
        from booktalk_core.errors import SchemaMissingError

        fake_supabase.drop_table("profiles")

        with pytest.raises(SchemaMissingError):
            asyncio.run(remote_store.get_profile())


class TestProbe:
    """Test the connectivity probe"""

    def test_healthy_backend(self, remote_store):
        result = asyncio.run(remote_store.probe())

        assert result.reachable and result.schema_present
        assert result.latency_ms is not None

    def test_missing_books_table(self, fake_supabase, remote_store):
        fake_supabase.drop_table("books")

        result = asyncio.run(remote_store.probe())

        assert result.reachable
        assert not result.schema_present

    def test_unreachable_backend(self, fake_supabase, remote_store):
        fake_supabase.break_table("books", ConnectionError("timed out"))

        result = asyncio.run(remote_store.probe())

        assert not result.reachable
        assert "timed out" in result.error
