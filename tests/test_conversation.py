"""
Tests for conversation history storage.
"""

import asyncio

import pytest

from tool_agent.agent.conversation import SUMMARY_PREFIX, ConversationStore, ConversationTurn
from tool_agent.models import TurnRole


@pytest.fixture
def store(session_factory):
    return ConversationStore(session_factory)


def test_turn_constructors():
    summary = ConversationTurn.summary("They talked about tea")

    assert ConversationTurn.user("hi").role == TurnRole.USER
    assert ConversationTurn.tool("calculate", "4").tool_name == "calculate"
    assert summary.role == TurnRole.ASSISTANT
    assert summary.synthetic is True
    assert summary.content == f"{SUMMARY_PREFIX}They talked about tea"


@pytest.mark.asyncio
async def test_get_or_create(store):
    session = await store.get_or_create("conv-1", "user-1")

    assert session.id == "conv-1"
    assert session.owner_id == "user-1"
    assert session.turns == ()
    assert (await store.get_or_create("conv-1", "user-1")).id == "conv-1"
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_get_or_create_rejects_other_owner(store):
    await store.get_or_create("conv-1", "user-1")

    with pytest.raises(PermissionError):
        await store.get_or_create("conv-1", "user-2")


@pytest.mark.asyncio
async def test_append_assigns_positions_in_order(store):
    await store.get_or_create("conv-1", "user-1")

    stored = await store.append("conv-1", [ConversationTurn.user("one"), ConversationTurn.assistant("two")])
    await store.append("conv-1", [ConversationTurn.user("three")])

    assert [t.position for t in stored] == [0, 1]
    history = await store.history("conv-1")
    assert [t.content for t in history] == ["one", "two", "three"]
    assert [t.position for t in history] == [0, 1, 2]
    assert [t.content for t in await store.history("conv-1", limit=2)] == ["two", "three"]
    assert await store.turn_count("conv-1") == 3


@pytest.mark.asyncio
async def test_append_to_unknown_conversation(store):
    with pytest.raises(KeyError):
        await store.append("missing", [ConversationTurn.user("hello")])


@pytest.mark.asyncio
async def test_concurrent_appends_never_interleave(store):
    """Each batch stays contiguous even when batches race."""
    await store.get_or_create("conv-1", "user-1")

    async def add_pair(i: int):
        await store.append(
            "conv-1",
            [ConversationTurn.user(f"q{i}"), ConversationTurn.assistant(f"a{i}")],
        )

    await asyncio.gather(*(add_pair(i) for i in range(10)))

    history = await store.history("conv-1")
    assert len(history) == 20
    assert [t.position for t in history] == list(range(20))
    for question, answer in zip(history[::2], history[1::2]):
        assert question.content[1:] == answer.content[1:]


@pytest.mark.asyncio
async def test_replace_block(store):
    await store.get_or_create("conv-1", "user-1")
    turns = await store.append("conv-1", [ConversationTurn.user(f"m{i}") for i in range(5)])

    summary = await store.replace_block(
        "conv-1", [t.id for t in turns[:3]], ConversationTurn.summary("first three")
    )

    assert summary.position == 0
    session = await store.get("conv-1")
    assert [t.content for t in session.turns] == [f"{SUMMARY_PREFIX}first three", "m3", "m4"]
    assert session.last_summarized_at is not None

    # New turns still land after everything else
    await store.append("conv-1", [ConversationTurn.user("m5")])
    assert (await store.history("conv-1"))[-1].content == "m5"


@pytest.mark.asyncio
async def test_replace_block_rejects_gaps_and_stale_ids(store):
    await store.get_or_create("conv-1", "user-1")
    turns = await store.append("conv-1", [ConversationTurn.user(f"m{i}") for i in range(4)])

    gapped = await store.replace_block(
        "conv-1", [turns[0].id, turns[2].id], ConversationTurn.summary("x")
    )
    stale = await store.replace_block(
        "conv-1", [turns[0].id, "no-such-turn"], ConversationTurn.summary("x")
    )

    assert gapped is None
    assert stale is None
    assert await store.turn_count("conv-1") == 4
