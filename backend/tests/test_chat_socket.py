import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import InMemoryStore
from educhat.api.deps import get_chat_service
from educhat.api.v1.routers import api_router
from educhat.core import config
from educhat.core.security import create_access_token
from educhat.realtime.registry import ConnectionRegistry
from educhat.services.chat_service import ChatService
from educhat.sockets import chat_socket
from educhat.sockets.chat_socket import UNAUTHORIZED_CLOSE_CODE, router as chat_socket_router


def ws_url(user_id: str) -> str:
    return f"/ws?token={create_access_token({'sub': user_id})}"


def build(delivery_mode="broadcast", store=None):
    service = ChatService(store or InMemoryStore(), ConnectionRegistry(), delivery_mode=delivery_mode)
    app = FastAPI()
    app.include_router(api_router)
    app.include_router(chat_socket_router)
    app.dependency_overrides[get_chat_service] = lambda: service
    return app, service


def sync(*sockets):
    """Round-trips a ping so the server side has registered the channel."""
    for ws in sockets:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def chat(sender, receiver, content):
    return {"type": "chat", "senderId": sender, "receiverId": receiver, "content": content, "attachmentUrl": None}


def test_hello_reaches_sender_receiver_and_bystanders():
    app, service = build()
    with TestClient(app) as client:
        with client.websocket_connect(ws_url("u1")) as a, \
                client.websocket_connect(ws_url("u2")) as b, \
                client.websocket_connect(ws_url("u3")) as c:
            sync(a, b, c)
            assert client.get("/v1/chat/status").json()["active_connections"] == 3

            a.send_json(chat("u1", "u2", "hello"))

            received = [ws.receive_json() for ws in (a, b, c)]

    ids = {env["data"]["id"] for env in received}
    assert len(ids) == 1
    for env in received:
        assert env["type"] == "chat"
        assert env["data"]["message"] == "hello"
        assert env["data"]["read"] is False
        assert env["data"]["senderId"] == "u1"
        assert env["data"]["receiverId"] == "u2"
    assert [m.id for m in service.store.messages] == list(ids)


def test_targeted_delivery_skips_bystanders():
    app, service = build(delivery_mode="targeted")
    with TestClient(app) as client:
        with client.websocket_connect(ws_url("u1")) as a, \
                client.websocket_connect(ws_url("u2")) as b, \
                client.websocket_connect(ws_url("u3")) as c:
            sync(a, b, c)

            a.send_json(chat("u1", "u2", "just for you"))

            assert a.receive_json()["data"]["message"] == "just for you"
            assert b.receive_json()["data"]["message"] == "just for you"
            # 다음 프레임이 pong이면 c는 chat을 받지 않은 것
            sync(c)


def test_malformed_and_spoofed_frames_get_no_reply():
    app, service = build()
    with TestClient(app) as client:
        with client.websocket_connect(ws_url("u1")) as a:
            sync(a)
            a.send_text("definitely not json")
            a.send_json({"type": "chat", "senderId": "u1"})
            a.send_json(chat("u9", "u2", "pretending to be u9"))
            a.send_bytes(b'{"type": "unknown"}')
            sync(a)

    assert service.store.messages == []


def test_storage_outage_drops_message():
    app, service = build(store=InMemoryStore(fail=True))
    with TestClient(app) as client:
        with client.websocket_connect(ws_url("u1")) as a, client.websocket_connect(ws_url("u2")) as b:
            sync(a, b)
            a.send_json(chat("u1", "u2", "lost"))
            sync(a, b)


def test_unauthenticated_connection_is_refused(monkeypatch):
    monkeypatch.setattr(config, "APP_ENV", "production")
    app, service = build()
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws"):
                pass
    assert exc.value.code == UNAUTHORIZED_CLOSE_CODE
    assert len(service.registry) == 0


def test_invalid_token_is_refused_even_in_development():
    app, service = build()
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?token=garbage"):
                pass


def test_channel_is_unregistered_after_disconnect():
    app, service = build()
    with TestClient(app) as client:
        with client.websocket_connect(ws_url("u1")) as a:
            sync(a)
            assert len(service.registry) == 1
        with client.websocket_connect(ws_url("u2")) as b:
            sync(b)
            # u1 채널은 이미 해제됨
            assert service.registry.user_ids() == {"u2"}


def test_heartbeat_failure_does_not_block_cleanup(monkeypatch):
    async def broken_heartbeat(channel, registry, interval, timeout):
        raise RuntimeError("heartbeat crashed")

    monkeypatch.setattr(chat_socket, "run_heartbeat", broken_heartbeat)
    app, service = build()
    with TestClient(app) as client:
        with client.websocket_connect(ws_url("u1")) as a:
            sync(a)
        with client.websocket_connect(ws_url("u2")) as b:
            sync(b)
            assert service.registry.user_ids() == {"u2"}
