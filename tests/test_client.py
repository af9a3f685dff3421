"""End-to-end behaviour of AsyncChatClient against the fake server and API."""

import asyncio

import pytest

from chat_sync.client import AsyncChatClient
from chat_sync.config import ClientConfig, ConnectionPolicy, PollPolicy
from chat_sync.errors import HistoryLoadError, SendError
from chat_sync.models.message import MessageCategory
from chat_sync.transport.socketio import ChannelConnection
from chat_sync.transport.state import ConnectionState
from tests.conftest import make_message, settle, sleep_forever

CONFIG = ClientConfig(
    connection=ConnectionPolicy(max_attempts=2, retry_delay=1.0),
    poll=PollPolicy(interval=2.0, max_duration=10.0),
)


def make_client(server, api, clock, poll_sleep=None) -> AsyncChatClient:
    connection = ChannelConnection(
        "http://chat.test",
        policy=CONFIG.connection,
        client_factory=server.factory,
        sleep=clock.sleep,
    )
    return AsyncChatClient(
        CONFIG,
        api=api,
        connection=connection,
        clock=clock,
        poll_sleep=poll_sleep or clock.sleep,
    )


@pytest.mark.asyncio
async def test_echo_is_ignored_and_automated_reply_disarms_poll(server, api, clock):
    client = make_client(server, api, clock, poll_sleep=sleep_forever)
    api.histories["c1"] = [make_message("m1")]
    await client.start()
    await client.on_conversation_opened("c1")
    handle = client.poller.arm("c1")

    await server.push_message(make_message("m1"))
    await settle()
    assert len(client.view("c1").messages) == 1

    await server.push_message(make_message("m2", category=MessageCategory.AUTOMATED))
    await settle()
    assert client.view("c1").message_ids == ["m1", "m2"]
    assert not client.poller.is_armed("c1")
    assert handle.stop_reason == "automated reply received"

    await client.close()


@pytest.mark.asyncio
async def test_push_for_other_conversation_only_notifies(server, api, clock):
    client = make_client(server, api, clock)
    notifications = client.notifications()
    await client.start()
    await client.on_conversation_opened("c1")

    await server.push_message(make_message("x1", "c2", MessageCategory.AUTOMATED, text="ping"))
    await settle()

    assert client.view("c1").messages == ()
    [notification] = notifications.drain()
    assert notification.conversation_id == "c2"
    await client.close()


@pytest.mark.asyncio
async def test_poll_picks_up_automated_reply_and_stops(server, api, clock):
    client = make_client(server, api, clock)
    await client.start()
    await client.on_conversation_opened("c1")

    sent = await client.send_message("c1", "hello")
    reply = make_message("r1", category=MessageCategory.AUTOMATED)
    api.responses["c1"].extend([[sent], [sent, reply]])
    handle = client.poller.handle("c1")
    await handle.wait()
    fetches = len(api.fetch_calls)

    assert handle.fetches == 2
    assert handle.stop_reason == "automated reply received"
    assert client.view("c1").message_ids == [sent.id, "r1"]

    await settle()
    assert len(api.fetch_calls) == fetches
    await client.close()


@pytest.mark.asyncio
async def test_poll_expires_without_reply(server, api, clock):
    client = make_client(server, api, clock)
    await client.start()
    await client.on_conversation_opened("c1")

    await client.send_message("c1", "anyone there?")
    handle = client.poller.handle("c1")
    await handle.wait()

    assert handle.stop_reason == "expired"
    assert api.fetch_calls == ["c1"] * 5
    await settle()
    assert api.fetch_calls == ["c1"] * 5
    await client.close()


@pytest.mark.asyncio
async def test_send_while_disconnected_is_not_duplicated_after_reconnect(server, api, clock):
    server.failures = 100
    client = make_client(server, api, clock, poll_sleep=sleep_forever)
    status = await client.start()
    assert status.state is ConnectionState.DISCONNECTED

    await client.on_conversation_opened("c1")
    sent = await client.send_message("c1", "offline hello")
    assert client.view("c1").message_ids == [sent.id]
    assert server.emitted == []

    server.failures = 0
    api.histories["c1"] = [sent]
    status = await client.reconnect()
    await settle()
    await server.push_message(sent)
    await settle()

    assert status.state is ConnectionState.CONNECTED
    assert server.emitted_events("join:chat") == ["c1"]
    assert client.view("c1").message_ids == [sent.id]
    await client.close()


@pytest.mark.asyncio
async def test_reconnect_backfills_open_conversations(server, api, clock):
    client = make_client(server, api, clock)
    api.histories["c1"] = [make_message("m1")]
    await client.start()
    await client.on_conversation_opened("c1")

    api.histories["c1"] = [make_message("m1"), make_message("missed")]
    await server.drop()
    await client.connection.connect()
    await settle()

    assert client.view("c1").message_ids == ["m1", "missed"]
    assert server.emitted_events("join:chat") == ["c1", "c1"]
    await client.close()


@pytest.mark.asyncio
async def test_closing_conversation_leaves_disarms_and_drops_late_history(server, api, clock):
    client = make_client(server, api, clock, poll_sleep=sleep_forever)
    await client.start()
    await client.on_conversation_opened("c1")
    await client.send_message("c1", "hi")
    assert client.poller.is_armed("c1")

    gate = asyncio.Event()
    api.gates.append(gate)
    api.histories["c1"] = [make_message("late")]
    pending_load = asyncio.create_task(client.load_history("c1"))
    await settle()

    await client.on_conversation_closed("c1")
    gate.set()

    assert await pending_load is None
    assert not client.poller.is_armed("c1")
    assert server.emitted_events("leave:chat") == ["c1"]
    assert client.view("c1").messages == ()
    await client.close()


@pytest.mark.asyncio
async def test_switch_conversation_closes_the_others(server, api, clock):
    client = make_client(server, api, clock)
    await client.start()
    await client.on_conversation_opened("c1")
    await client.on_conversation_opened("c2")

    await client.switch_conversation("c3")

    assert client.membership.active == {"c3"}
    assert client.reconciler.open_conversations == ["c3"]
    assert server.emitted_events("leave:chat") == ["c1", "c2"]
    await client.close()


@pytest.mark.asyncio
async def test_send_failure_drops_pending_and_raises(server, api, clock):
    client = make_client(server, api, clock)
    await client.start()
    await client.on_conversation_opened("c1")
    api.send_error = RuntimeError("HTTP 500")

    with pytest.raises(SendError) as exc_info:
        await client.send_message("c1", "lost")

    assert exc_info.value.conversation_id == "c1"
    view = client.view("c1")
    assert view.pending == ()
    assert view.messages == ()
    assert not client.poller.is_armed("c1")
    await client.close()


@pytest.mark.asyncio
async def test_failed_initial_load_can_be_retried(server, api, clock):
    client = make_client(server, api, clock)
    await client.start()
    api.fetch_error = RuntimeError("503")

    with pytest.raises(HistoryLoadError):
        await client.on_conversation_opened("c1")
    assert client.view("c1").error == "503"
    assert client.membership.is_joined("c1")

    api.fetch_error = None
    api.histories["c1"] = [make_message("m1")]
    await client.load_history("c1")

    view = client.view("c1")
    assert view.error is None
    assert view.message_ids == ["m1"]
    await client.close()


@pytest.mark.asyncio
async def test_context_manager_starts_and_closes(server, api, clock):
    async with make_client(server, api, clock) as client:
        assert client.status().connected
    assert client.status().state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_reply_during_poll_fetch_leaves_no_load_in_flight(server, api, clock):
    client = make_client(server, api, clock)
    await client.start()
    await client.on_conversation_opened("c1")
    gate = asyncio.Event()
    api.gates.append(gate)

    sent = await client.send_message("c1", "hello")
    handle = client.poller.handle("c1")
    await settle()
    assert handle.fetches == 1
    assert client.view("c1").loading

    await server.push_message(make_message("r1", category=MessageCategory.AUTOMATED))
    await handle.wait()
    await settle()

    assert handle.stop_reason == "automated reply received"
    assert handle.task.cancelled()
    assert not client.view("c1").loading

    for message_id in ("m3", "m4"):
        await server.push_message(make_message(message_id))
    await settle()
    view = client.view("c1")
    assert not view.loading
    assert view.message_ids == [sent.id, "r1", "m3", "m4"]
    await client.close()


@pytest.mark.asyncio
async def test_reply_pushed_before_send_returns_disarms_poll(server, api, clock):
    client = make_client(server, api, clock, poll_sleep=sleep_forever)
    await client.start()
    await client.on_conversation_opened("c1")
    send = api.send_message

    async def send_with_early_reply(conversation_id, text):
        await server.push_message(make_message("r1", category=MessageCategory.AUTOMATED))
        await settle()
        return await send(conversation_id, text)

    api.send_message = send_with_early_reply
    sent = await client.send_message("c1", "hello")

    handle = client.poller.handle("c1")
    assert handle is None or not handle.active
    assert not client.poller.is_armed("c1")
    assert client.view("c1").message_ids == ["r1", sent.id]
    await client.close()


@pytest.mark.asyncio
async def test_failed_send_keeps_earlier_poll_armed(server, api, clock):
    client = make_client(server, api, clock, poll_sleep=sleep_forever)
    await client.start()
    await client.on_conversation_opened("c1")
    await client.send_message("c1", "first")
    handle = client.poller.handle("c1")

    api.send_error = RuntimeError("HTTP 500")
    with pytest.raises(SendError):
        await client.send_message("c1", "second")

    assert client.poller.is_armed("c1")
    assert client.poller.handle("c1") is handle
    await client.close()
