"""Session store contract, run against the SQLite DAL and the in-memory store."""

import asyncio

import pytest

from models.errors import Conflict, SessionNotFound
from models.session_models import Session, SessionStatus, Turn, TurnRole


def _session(session_id: str = "s-1") -> Session:
    return Session(id=session_id, image_url="https://media.test/images/cat.png", start_time=100.0)


async def test_create_and_get_session(store):
    await store.create(_session())

    loaded = await store.get_session("s-1")

    assert loaded.id == "s-1"
    assert loaded.image_url == "https://media.test/images/cat.png"
    assert loaded.status is SessionStatus.ACTIVE
    assert loaded.end_time is None


async def test_duplicate_id_is_a_conflict(store):
    await store.create(_session())

    with pytest.raises(Conflict):
        await store.create(_session())


async def test_get_unknown_session(store):
    with pytest.raises(SessionNotFound):
        await store.get_session("missing")


async def test_append_to_unknown_session(store):
    with pytest.raises(SessionNotFound):
        await store.append_turn(Turn(session_id="missing", role=TurnRole.USER, content="hi"))


async def test_list_turns_empty(store):
    await store.create(_session())

    assert await store.list_turns("s-1") == []
    assert await store.list_turns("missing") == []


async def test_list_turns_in_creation_order(store):
    await store.create(_session())
    for i in range(10):
        role = TurnRole.USER if i % 2 == 0 else TurnRole.ASSISTANT
        await store.append_turn(Turn(session_id="s-1", role=role, content=f"message {i}"))

    turns = await store.list_turns("s-1")

    assert [t.content for t in turns] == [f"message {i}" for i in range(10)]
    stamps = [t.created_at for t in turns]
    assert stamps == sorted(stamps)


async def test_turn_fields_round_trip_through_store(store):
    await store.create(_session())
    await store.append_turn(
        Turn(session_id="s-1", role=TurnRole.ASSISTANT, content="Hello!", audio_url="https://media.test/a.mp3")
    )
    await store.append_turn(Turn(session_id="s-1", role=TurnRole.ASSISTANT, content="No audio"))

    first, second = await store.list_turns("s-1")

    assert first.role is TurnRole.ASSISTANT
    assert first.audio_url == "https://media.test/a.mp3"
    assert second.audio_url is None


async def test_update_status_sets_end_time(store):
    await store.create(_session())

    changed = await store.update_status("s-1", SessionStatus.COMPLETED, 160.0, expected=SessionStatus.ACTIVE)

    loaded = await store.get_session("s-1")
    assert changed is True
    assert loaded.status is SessionStatus.COMPLETED
    assert loaded.end_time == 160.0


async def test_update_status_precondition_leaves_terminal_session_alone(store):
    await store.create(_session())
    await store.update_status("s-1", SessionStatus.EXPIRED, 175.0, expected=SessionStatus.ACTIVE)

    changed = await store.update_status("s-1", SessionStatus.COMPLETED, 999.0, expected=SessionStatus.ACTIVE)

    loaded = await store.get_session("s-1")
    assert changed is False
    assert loaded.status is SessionStatus.EXPIRED
    assert loaded.end_time == 175.0


async def test_update_status_unknown_session(store):
    with pytest.raises(SessionNotFound):
        await store.update_status("missing", SessionStatus.COMPLETED, 1.0)


async def test_concurrent_pairs_are_not_interleaved(store):
    await store.create(_session())

    async def submit(i: int):
        await store.append_turns(
            Turn(session_id="s-1", role=TurnRole.USER, content=f"question {i}"),
            Turn(session_id="s-1", role=TurnRole.ASSISTANT, content=f"answer {i}"),
        )

    await asyncio.gather(*(submit(i) for i in range(5)))

    turns = await store.list_turns("s-1")
    assert len(turns) == 10
    for user, assistant in zip(turns[::2], turns[1::2]):
        assert user.role is TurnRole.USER
        assert assistant.role is TurnRole.ASSISTANT
        assert user.content.split()[-1] == assistant.content.split()[-1]


async def test_sessions_are_independent(store):
    await store.create(_session("a"))
    await store.create(_session("b"))
    await store.append_turn(Turn(session_id="a", role=TurnRole.USER, content="only in a"))

    assert len(await store.list_turns("a")) == 1
    assert await store.list_turns("b") == []
