"""Tests for the session store façade."""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from complaint_agent.errors import SessionNotFound, StoreUnavailable
from complaint_agent.schemas.session_schema import ConversationState
from complaint_agent.store.session_store import InMemorySessionRepository, SessionStore


class SlowRepository(InMemorySessionRepository):
    async def get(self, session_id):
        await asyncio.sleep(1.0)
        return await super().get(session_id)


class BrokenRepository(InMemorySessionRepository):
    async def save(self, session):
        raise RuntimeError("database connection lost")


class TestGetOrCreate:
    @pytest.mark.asyncio
    async def test_creates_in_greeting(self, session_store):
        session = await session_store.get_or_create("s1")
        assert session.current_state == ConversationState.GREETING
        assert session.message_count == 0

    @pytest.mark.asyncio
    async def test_idempotent(self, session_store, session_repository):
        first = await session_store.get_or_create("s1")
        second = await session_store.get_or_create("s1")
        assert first.session_id == second.session_id
        assert first.created_at == second.created_at
        assert len(await session_repository.list_all()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_creation_yields_one_session(self, session_store, session_repository):
        sessions = await asyncio.gather(*(session_store.get_or_create("s1") for _ in range(5)))
        assert len({s.created_at for s in sessions}) == 1
        assert len(await session_repository.list_all()) == 1

    @pytest.mark.asyncio
    async def test_user_id_filled_later(self, session_store):
        await session_store.get_or_create("s1")
        session = await session_store.get_or_create("s1", user_id="u-9")
        assert session.user_id == "u-9"
        assert (await session_store.get("s1")).user_id == "u-9"

    @pytest.mark.asyncio
    async def test_user_id_not_replaced(self, session_store):
        await session_store.get_or_create("s1", user_id="u-1")
        session = await session_store.get_or_create("s1", user_id="u-2")
        assert session.user_id == "u-1"


class TestPatch:
    @pytest.mark.asyncio
    async def test_sets_fields_and_state(self, session_store):
        await session_store.get_or_create("s1")
        session = await session_store.patch(
            "s1", {"full_name": "Amina Yusuf"}, next_state=ConversationState.IDENTITY_CAPTURE
        )
        assert session.full_name == "Amina Yusuf"
        assert session.current_state == ConversationState.IDENTITY_CAPTURE

    @pytest.mark.asyncio
    async def test_counts_every_patch(self, session_store):
        created = await session_store.get_or_create("s1")
        await session_store.patch("s1")
        session = await session_store.patch("s1", {"email": "a@b.org"})
        assert session.message_count == 2
        assert session.last_message_at >= created.last_message_at

    @pytest.mark.asyncio
    async def test_empty_value_never_clears(self, session_store):
        await session_store.get_or_create("s1")
        await session_store.patch("s1", {"email": "a@b.org"})
        session = await session_store.patch("s1", {"email": ""}, corrections=["email"])
        assert session.email == "a@b.org"

    @pytest.mark.asyncio
    async def test_filled_field_kept_without_correction(self, session_store):
        await session_store.get_or_create("s1")
        await session_store.patch("s1", {"full_name": "Amina"})
        session = await session_store.patch("s1", {"full_name": "Someone Else"})
        assert session.full_name == "Amina"

    @pytest.mark.asyncio
    async def test_correction_overwrites(self, session_store):
        await session_store.get_or_create("s1")
        await session_store.patch("s1", {"full_name": "Amina"})
        session = await session_store.patch(
            "s1", {"full_name": "Amina Yusuf"}, corrections=["full_name"]
        )
        assert session.full_name == "Amina Yusuf"

    @pytest.mark.asyncio
    async def test_system_fields_always_overwrite(self, session_store):
        await session_store.get_or_create("s1")
        await session_store.patch("s1", {"summary_confirmed": True})
        session = await session_store.patch("s1", {"summary_confirmed": False})
        assert session.summary_confirmed is False

    @pytest.mark.asyncio
    async def test_values_are_validated(self, session_store):
        await session_store.get_or_create("s1")
        session = await session_store.patch("s1", {"incident_date": "2025-03-04"})
        assert session.incident_date == date(2025, 3, 4)

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, session_store):
        await session_store.get_or_create("s1")
        with pytest.raises(ValueError, match="favourite_colour"):
            await session_store.patch("s1", {"favourite_colour": "blue"})

    @pytest.mark.asyncio
    async def test_missing_session(self, session_store):
        with pytest.raises(SessionNotFound):
            await session_store.patch("nope", {"email": "a@b.org"})


class TestFailures:
    @pytest.mark.asyncio
    async def test_timeout_is_store_unavailable(self):
        store = SessionStore(SlowRepository(), timeout_sec=0.01)
        with pytest.raises(StoreUnavailable):
            await store.get("s1")

    @pytest.mark.asyncio
    async def test_repository_error_is_store_unavailable(self):
        store = SessionStore(BrokenRepository(), timeout_sec=1.0)
        await store.get_or_create("s1")
        with pytest.raises(StoreUnavailable):
            await store.patch("s1", {"email": "a@b.org"})


class TestExpire:
    @pytest.mark.asyncio
    async def test_only_old_terminal_sessions_removed(self, session_repository):
        now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
        clock = {"now": now - timedelta(hours=48)}
        store = SessionStore(session_repository, timeout_sec=1.0, clock=lambda: clock["now"])

        await store.get_or_create("old-done")
        await store.patch("old-done", next_state=ConversationState.TRACKING)
        await store.patch("old-done", next_state=ConversationState.COMPLETED)
        await store.get_or_create("old-active")
        clock["now"] = now
        await store.get_or_create("new-done")
        await store.patch("new-done", next_state=ConversationState.ERROR)

        assert await store.expire(max_age_hours=24) == 1
        remaining = {s.session_id for s in await session_repository.list_all()}
        assert remaining == {"old-active", "new-done"}
