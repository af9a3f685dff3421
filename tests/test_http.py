"""REST client and conversations API over an in-memory httpx transport."""

import json

import httpx
import pytest

from chat_sync.conversations import ConversationsAPI
from chat_sync.errors import ChatSyncError
from chat_sync.models.message import MessageCategory
from chat_sync.transport.http import HttpClient


class Routes:
    """Records requests and answers them from a (method, path) table."""

    def __init__(self, table):
        self.table = table
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.table[(request.method, request.url.path)]
        if isinstance(answer, Exception):
            raise answer
        return answer

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_api(table, token=None):
    routes = Routes(table)
    http = HttpClient("http://chat.test/", token=token, transport=httpx.MockTransport(routes))
    return ConversationsAPI(http), http, routes


@pytest.mark.asyncio
async def test_list_sends_search_and_parses_mongo_ids():
    api, http, routes = make_api({
        ("GET", "/api/chats"): httpx.Response(200, json=[
            {"_id": "c1", "firstName": "Ada", "lastName": "Lovelace", "userId": "u1", "createdAt": "2024-01-01"},
        ]),
    }, token="secret")

    chats = await api.list(search="ada")

    assert [c.id for c in chats] == ["c1"]
    assert chats[0].display_name == "Ada Lovelace"
    assert routes.last.url.params["search"] == "ada"
    assert routes.last.headers["Authorization"] == "Bearer secret"
    await http.close()


@pytest.mark.asyncio
async def test_list_without_search_sends_no_params():
    api, http, routes = make_api({("GET", "/api/chats"): httpx.Response(200, json=[])})

    assert await api.list() == []
    assert "search" not in routes.last.url.params
    assert "Authorization" not in routes.last.headers
    await http.close()


@pytest.mark.asyncio
async def test_fetch_history_parses_messages():
    api, http, _ = make_api({
        ("GET", "/api/chats/c1/messages"): httpx.Response(200, json=[
            {"_id": "m1", "chatId": "c1", "type": "user", "text": "hi"},
            {"_id": "m2", "chatId": "c1", "type": "auto", "text": "hello"},
        ]),
    })

    history = await api.fetch_history("c1")

    assert [m.id for m in history] == ["m1", "m2"]
    assert history[1].category is MessageCategory.AUTOMATED
    await http.close()


@pytest.mark.asyncio
async def test_send_message_posts_text_and_chat_id():
    api, http, routes = make_api({
        ("POST", "/api/messages"): httpx.Response(201, json={"_id": "m9", "chatId": "c1", "text": "hi"}),
    })

    message = await api.send_message("c1", "hi")

    assert message.id == "m9"
    assert json.loads(routes.last.content) == {"text": "hi", "chatId": "c1"}
    await http.close()


@pytest.mark.asyncio
async def test_create_and_update_send_names():
    chat = {"_id": "c1", "firstName": "Ada", "lastName": "King"}
    api, http, routes = make_api({
        ("POST", "/api/chats"): httpx.Response(201, json=chat),
        ("PUT", "/api/chats/c1"): httpx.Response(200, json=chat),
    })

    await api.create("Ada", "Lovelace")
    assert json.loads(routes.last.content) == {"firstName": "Ada", "lastName": "Lovelace"}

    updated = await api.update("c1", "Ada", "King")
    assert json.loads(routes.last.content) == {"firstName": "Ada", "lastName": "King"}
    assert updated.last_name == "King"
    await http.close()


@pytest.mark.asyncio
async def test_empty_body_returns_none():
    api, http, routes = make_api({("DELETE", "/api/chats/c1"): httpx.Response(204)})

    assert await api.delete("c1") is None
    assert await http.delete("/chats/c1") is None
    assert routes.last.method == "DELETE"
    await http.close()


@pytest.mark.asyncio
async def test_error_status_raises_http_error():
    api, http, _ = make_api({
        ("GET", "/api/chats/missing/messages"): httpx.Response(404, json={"message": "Chat not found"}),
    })

    with pytest.raises(ChatSyncError) as exc_info:
        await api.fetch_history("missing")

    err = exc_info.value
    assert err.code == "http_error"
    assert err.details == {"status": 404, "path": "/chats/missing/messages"}
    assert "Chat not found" in str(err)
    await http.close()


@pytest.mark.asyncio
async def test_transport_failure_raises_network_error():
    api, http, _ = make_api({
        ("POST", "/api/live-messages/start"): httpx.ConnectError("connection refused"),
    })

    with pytest.raises(ChatSyncError) as exc_info:
        await api.start_live_messages()

    assert exc_info.value.code == "network_error"
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    await http.close()
