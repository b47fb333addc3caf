import json

import httpx
import pytest

from superagents.exceptions import SessionServiceError
from superagents.session_service import OpencodeClient


class Recorder:
    """MockTransport handler that replays canned responses per (method, path)."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, text="not found")
        return response

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def _client(recorder: Recorder, directory: str = "") -> OpencodeClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return OpencodeClient(base_url="http://server/", directory=directory, client=http)


@pytest.mark.asyncio
async def test_create_sends_title_parent_and_directory():
    recorder = Recorder({("POST", "/session"): httpx.Response(200, json={"id": "ses_new"})})
    client = _client(recorder, directory="/work/repo")
    try:
        session_id = await client.create("ses_parent", "Background: scan")
    finally:
        await client.close()

    assert session_id == "ses_new"
    assert recorder.body() == {"title": "Background: scan", "parentID": "ses_parent"}
    assert recorder.requests[0].url.params["directory"] == "/work/repo"


@pytest.mark.asyncio
async def test_prompt_async_carries_agent_parts_and_tool_gate():
    recorder = Recorder({("POST", "/session/ses_a/prompt_async"): httpx.Response(204)})
    client = _client(recorder)
    try:
        await client.prompt_async("ses_a", "explore", "hello", tools={"background_task": False})
    finally:
        await client.close()

    assert recorder.body() == {
        "agent": "explore",
        "parts": [{"type": "text", "text": "hello"}],
        "tools": {"background_task": False},
    }
    assert "directory" not in recorder.requests[0].url.params


@pytest.mark.asyncio
async def test_status_normalizes_entries():
    payload = {"ses_a": {"type": "idle"}, "ses_b": "busy", "ses_c": 3}
    recorder = Recorder({("GET", "/session/status"): httpx.Response(200, json=payload)})
    client = _client(recorder)
    try:
        statuses = await client.status()
    finally:
        await client.close()

    assert statuses == {"ses_a": "idle", "ses_b": "busy"}


@pytest.mark.asyncio
async def test_messages_read_role_from_info():
    payload = [
        {"info": {"role": "user"}, "parts": [{"type": "text", "text": "go"}]},
        {"info": {"role": "assistant"}, "parts": [{"type": "tool", "tool": "read"}, "junk"]},
    ]
    recorder = Recorder({("GET", "/session/ses_a/message"): httpx.Response(200, json=payload)})
    client = _client(recorder)
    try:
        history = await client.messages("ses_a")
    finally:
        await client.close()

    assert [m.role for m in history] == ["user", "assistant"]
    assert history[1].tool_names() == ["read"]
    assert history[0].text_content() == "go"


@pytest.mark.asyncio
async def test_exists_maps_404_to_false():
    recorder = Recorder({("GET", "/session/ses_a"): httpx.Response(200, json={"id": "ses_a"})})
    client = _client(recorder)
    try:
        assert await client.exists("ses_a") is True
        assert await client.exists("ses_gone") is False
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_fork_unsupported_raises_not_implemented():
    recorder = Recorder({})
    client = _client(recorder)
    try:
        with pytest.raises(NotImplementedError):
            await client.fork("ses_a")
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_server_error_raises_with_status_code():
    recorder = Recorder({("POST", "/session/ses_a/abort"): httpx.Response(500, text="boom")})
    client = _client(recorder)
    try:
        with pytest.raises(SessionServiceError) as exc_info:
            await client.abort("ses_a")
    finally:
        await client.close()

    assert exc_info.value.status_code == 500
    assert "boom" in str(exc_info.value)


@pytest.mark.asyncio
async def test_transport_failure_raises_service_error():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
    client = OpencodeClient(base_url="http://server", client=http)
    try:
        with pytest.raises(SessionServiceError) as exc_info:
            await client.status()
    finally:
        await client.close()

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_show_toast_body():
    recorder = Recorder({("POST", "/tui/show-toast"): httpx.Response(200, json=True)})
    client = _client(recorder)
    try:
        await client.show_toast("✓ Task completed", "done", "success", 5000)
    finally:
        await client.close()

    assert recorder.body() == {
        "title": "✓ Task completed",
        "message": "done",
        "variant": "success",
        "duration": 5000,
    }


@pytest.mark.asyncio
async def test_event_stream_yields_parsed_data_lines():
    stream = (
        'data: {"type": "session.idle", "properties": {"sessionID": "ses_a"}}\n\n'
        ": keep-alive\n\n"
        "data: not-json\n\n"
        "data:\n\n"
        'data: {"type": "session.deleted", "properties": {"info": {"id": "ses_b"}}}\n\n'
    )
    recorder = Recorder({("GET", "/event"): httpx.Response(200, text=stream)})
    client = _client(recorder)
    try:
        events = [event async for event in client.subscribe_events()]
    finally:
        await client.close()

    assert [e.type for e in events] == ["session.idle", "session.deleted"]
    assert events[0].properties == {"sessionID": "ses_a"}


@pytest.mark.asyncio
async def test_event_stream_error_status():
    recorder = Recorder({("GET", "/event"): httpx.Response(503, text="down")})
    client = _client(recorder)
    try:
        with pytest.raises(SessionServiceError) as exc_info:
            async for _ in client.subscribe_events():
                pass
    finally:
        await client.close()

    assert exc_info.value.status_code == 503
