import json

import pytest

from conftest import InMemoryStore
from educhat.realtime.registry import ConnectionRegistry
from educhat.repositories.message_store import MessageStore
from educhat.services.chat_service import ChatService


def chat_frame(sender="u1", receiver="u2", content="hello", attachment_url=None):
    return json.dumps({
        "type": "chat",
        "senderId": sender,
        "receiverId": receiver,
        "content": content,
        "attachmentUrl": attachment_url,
    })


@pytest.fixture
def registry():
    return ConnectionRegistry()


async def connect(registry, open_channel, *user_ids):
    channels = []
    for user_id in user_ids:
        channel = await open_channel(user_id)
        registry.register(channel)
        channels.append(channel)
    return channels


async def test_chat_is_persisted_and_broadcast_to_everyone(store, registry, open_channel):
    service = ChatService(store, registry)
    a, b, bystander = await connect(registry, open_channel, "u1", "u2", "u3")

    saved = await service.process_message(a, chat_frame(content="hello"))

    assert saved is not None
    for channel in (a, b, bystander):
        [envelope] = channel.sent
        assert envelope["type"] == "chat"
        data = envelope["data"]
        assert data["id"] == saved.id
        assert data["message"] == "hello"
        assert data["read"] is False
        assert data["senderId"] == "u1"
        assert data["receiverId"] == "u2"
        assert data["attachmentUrl"] is None
        assert isinstance(data["createdAt"], str)

    [stored] = await store.get_conversation("u1", "u2")
    assert stored.id == saved.id


async def test_targeted_mode_only_reaches_participants(registry, open_channel):
    service = ChatService(InMemoryStore(), registry, delivery_mode="targeted")
    a, b, bystander = await connect(registry, open_channel, "u1", "u2", "u3")

    await service.process_message(a, chat_frame())

    assert len(a.sent) == 1
    assert len(b.sent) == 1
    assert bystander.sent == []


def test_unknown_delivery_mode_is_rejected(registry):
    with pytest.raises(ValueError):
        ChatService(InMemoryStore(), registry, delivery_mode="multicast")


async def test_failed_persistence_means_no_broadcast(registry, open_channel):
    service = ChatService(InMemoryStore(fail=True), registry)
    a, b = await connect(registry, open_channel, "u1", "u2")

    saved = await service.process_message(a, chat_frame())

    assert saved is None
    assert a.sent == []
    assert b.sent == []


async def test_real_store_outage_means_no_broadcast(broken_session_factory, registry, open_channel):
    service = ChatService(MessageStore(broken_session_factory), registry)
    a, b = await connect(registry, open_channel, "u1", "u2")

    assert await service.process_message(a, chat_frame()) is None
    assert a.sent == [] and b.sent == []


@pytest.mark.parametrize("raw", [
    "not json",
    "{}",
    json.dumps({"type": "typing"}),
    json.dumps({"type": "chat", "senderId": "u1", "content": "no receiver"}),
    json.dumps({"type": "chat", "senderId": "u1", "receiverId": 2, "content": "bad id"}),
    json.dumps(["chat"]),
])
async def test_malformed_frames_are_dropped_silently(registry, open_channel, raw):
    store = InMemoryStore()
    service = ChatService(store, registry)
    a, b = await connect(registry, open_channel, "u1", "u2")

    assert await service.process_message(a, raw) is None
    assert store.messages == []
    assert a.sent == [] and b.sent == []


async def test_empty_content_is_dropped(registry, open_channel):
    store = InMemoryStore()
    service = ChatService(store, registry)
    a, = await connect(registry, open_channel, "u1")

    assert await service.process_message(a, chat_frame(content="   ")) is None
    assert a.sent == []


async def test_sender_must_match_channel_identity(registry, open_channel):
    store = InMemoryStore()
    service = ChatService(store, registry)
    a, b = await connect(registry, open_channel, "u1", "u2")

    assert await service.process_message(a, chat_frame(sender="u2", receiver="u1")) is None
    assert store.messages == []
    assert b.sent == []


async def test_ping_gets_pong_on_same_channel_only(registry, open_channel):
    service = ChatService(InMemoryStore(), registry)
    a, b = await connect(registry, open_channel, "u1", "u2")

    await service.process_message(a, json.dumps({"type": "ping"}))

    assert a.sent == [{"type": "pong"}]
    assert b.sent == []


async def test_inbound_frame_refreshes_liveness(registry, open_channel):
    service = ChatService(InMemoryStore(), registry)
    a, = await connect(registry, open_channel, "u1")
    a.last_seen -= 100
    before = a.last_seen

    await service.process_message(a, json.dumps({"type": "pong"}))

    assert a.last_seen > before
    assert a.sent == []


async def test_messages_from_one_sender_keep_order(store, registry, open_channel):
    service = ChatService(store, registry)
    a, b = await connect(registry, open_channel, "u1", "u2")

    for i in range(5):
        await service.process_message(a, chat_frame(content=f"m{i}"))

    assert [e["data"]["message"] for e in b.sent] == [f"m{i}" for i in range(5)]
    assert [m.message for m in await store.get_conversation("u1", "u2")] == [f"m{i}" for i in range(5)]


async def test_notifier_receives_receiver_and_payload(registry, open_channel):
    published = []

    async def notifier(receiver_id, payload):
        published.append((receiver_id, payload))

    service = ChatService(InMemoryStore(), registry, notifier=notifier)
    a, = await connect(registry, open_channel, "u1")

    saved = await service.process_message(a, chat_frame())

    [(receiver_id, payload)] = published
    assert receiver_id == "u2"
    assert payload["type"] == "CHAT_NOTIFICATION"
    assert payload["message_id"] == saved.id
    assert payload["from_user_id"] == "u1"


async def test_notifier_failure_does_not_undo_delivery(registry, open_channel):
    async def notifier(receiver_id, payload):
        raise ConnectionError("redis down")

    service = ChatService(InMemoryStore(), registry, notifier=notifier)
    a, b = await connect(registry, open_channel, "u1", "u2")

    saved = await service.process_message(a, chat_frame())

    assert saved is not None
    assert len(b.sent) == 1
