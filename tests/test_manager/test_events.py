import asyncio

import pytest

from superagents.events import CLEAR, DELETED, IDLE, classify_event
from superagents.models import CANCELLED, COMPLETED, RESUMED, RUNNING, SessionEvent, ToolContext

PARENT = "ses_parent0001"


def _idle(session_id: str) -> SessionEvent:
    return SessionEvent(type="session.idle", properties={"sessionID": session_id})


def _deleted(session_id: str) -> SessionEvent:
    return SessionEvent(type="session.deleted", properties={"info": {"id": session_id}})


def test_classify_event():
    assert classify_event(_idle("ses_x")).kind == IDLE
    assert classify_event(_deleted("ses_x")).session_id == "ses_x"
    assert classify_event(_deleted("ses_x")).kind == DELETED
    clear = SessionEvent(type="tui.command.execute", properties={"command": "session.new"})
    assert classify_event(clear).kind == CLEAR

    other_command = SessionEvent(type="tui.command.execute", properties={"command": "theme.switch"})
    assert classify_event(other_command) is None
    assert classify_event(SessionEvent(type="session.idle")) is None
    assert classify_event(SessionEvent(type="message.updated")) is None


def test_session_event_from_dict_tolerates_missing_properties():
    event = SessionEvent.from_dict({"type": "session.idle", "properties": None})
    assert event.type == "session.idle"
    assert event.properties == {}


@pytest.mark.asyncio
async def test_idle_event_completes_running_task(manager, fake_service, launch_input):
    try:
        task = await manager.launch(launch_input())
        await manager.handle_event(_idle(task.session_id))
        await manager.drain()

        assert task.status == COMPLETED
        assert len(fake_service.prompts_to(PARENT)) == 1
        assert fake_service.toasts[0]["title"] == "✓ Task completed"
        assert fake_service.toasts[0]["variant"] == "success"
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_deleted_child_session_cancels_task(manager, fake_service, launch_input):
    try:
        task = await manager.launch(launch_input())
        await manager.handle_event(_deleted(task.session_id))
        await manager.drain()

        assert task.status == CANCELLED
        assert task.error == "Session deleted"
        notes = fake_service.prompts_to(PARENT)
        assert len(notes) == 1
        assert notes[0].startswith("⊘ **Background task cancelled**")
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_deleted_parent_session_clears_all_tasks(manager, fake_service, launch_input):
    try:
        first = await manager.launch(launch_input())
        second = await manager.launch(launch_input())

        await manager.handle_event(_deleted(PARENT))
        await manager.drain()

        assert manager.list_all() == []
        assert sorted(fake_service.aborted) == sorted([first.session_id, second.session_id])
        assert fake_service.prompts == []
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_clearing_tui_command_clears_all_tasks(manager, fake_service, launch_input):
    try:
        await manager.launch(launch_input())
        event = SessionEvent(type="tui.command.execute", properties={"command": "prompt.clear"})

        await manager.handle_event(event)

        assert manager.list_all() == []
        assert manager.original_parent_session_id is None
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_idle_event_does_not_finish_resumed_task(manager, fake_service, launch_input):
    try:
        task = await manager.launch(launch_input())
        await manager.handle_event(_idle(task.session_id))
        await manager.drain()

        await manager.resume(task.session_id, "one more thing", ToolContext(session_id=PARENT))
        await manager.handle_event(_idle(task.session_id))

        assert task.status == RESUMED
        assert len(fake_service.prompts_to(PARENT)) == 1
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_events_for_unknown_sessions_are_ignored(manager, fake_service, launch_input):
    try:
        task = await manager.launch(launch_input())
        await manager.handle_event(_idle("ses_someone_else"))
        await manager.handle_event(_deleted("ses_someone_else"))
        await manager.drain()

        assert task.status == RUNNING
        assert fake_service.prompts == []
    finally:
        await manager.shutdown()


@pytest.mark.asyncio
async def test_listener_reconnects_and_feeds_the_consumer(manager, fake_service, launch_input):
    fake_service.subscribe_failures = 1
    try:
        await manager.start()
        task = await manager.launch(launch_input())
        await fake_service.event_queue.put(_idle(task.session_id))

        for _ in range(200):
            if task.status != RUNNING:
                break
            await asyncio.sleep(0.01)

        assert task.status == COMPLETED
        assert fake_service.subscriptions >= 2
        await manager.drain()
        assert len(fake_service.prompts_to(PARENT)) == 1
    finally:
        await manager.shutdown()
