"""Tests for conversation sessions and generation handles."""

import asyncio

from kindred.conversation.session import ConversationSession, GenerationHandle, make_session_id


def test_session_ids_are_unique() -> None:
    ids = {make_session_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("sess_") for i in ids)


def test_create_wires_tracker(persona) -> None:
    session = ConversationSession.create(persona, session_id="sess_fixed", window_size=3)

    assert session.session_id == "sess_fixed"
    assert session.persona_id == "grandma"
    assert session.tracker.session_id == "sess_fixed"
    assert session.context is session.tracker.context
    assert session.context.window_size == 3


def test_cancel_pending_without_generation(persona) -> None:
    session = ConversationSession.create(persona)
    assert session.cancel_pending() is False


async def test_cancel_pending_cancels_task(persona) -> None:
    session = ConversationSession.create(persona)
    handle = GenerationHandle("Tell me a story")
    handle.attach(asyncio.create_task(asyncio.sleep(5)))
    session.pending_generation = handle

    assert session.cancel_pending() is True
    assert handle.cancelled is True
    assert session.pending_generation is None

    await asyncio.sleep(0.01)
    assert handle.task.cancelled() is True
    assert session.cancel_pending() is False


async def test_cancel_after_completion_only_sets_flag() -> None:
    handle = GenerationHandle("hello")
    task = asyncio.create_task(asyncio.sleep(0, result="reply"))
    handle.attach(task)
    await task

    handle.cancel()

    assert handle.cancelled is True
    assert task.cancelled() is False
    assert task.result() == "reply"
