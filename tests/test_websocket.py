"""/bridge WebSocket endpoint tests.

Learn: Starlette's TestClient drives the endpoint in a worker thread. The
app only mounts the WebSocket router (no lifespan, no database), and
hub.publish is called through the client's portal so it runs on the same
event loop as the endpoint.
"""

import json

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from mxeaez.events import Viewer, new_event
from mxeaez.events.types import REDEEM
from mxeaez.realtime.hub import hub
from mxeaez.realtime.websocket import CLOSE_BAD_KEY, CLOSE_MISSING_CHANNEL, router


@pytest.fixture()
def ws_client():
    app = FastAPI()
    app.include_router(router)
    with TestClient(app) as client:
        yield client


def test_missing_channel_rejected(ws_client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with ws_client.websocket_connect("/bridge"):
            pass
    assert exc.value.code == CLOSE_MISSING_CHANNEL


def test_blank_channel_rejected(ws_client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with ws_client.websocket_connect("/bridge?channel_id=%20"):
            pass
    assert exc.value.code == CLOSE_MISSING_CHANNEL


def test_bridge_key_enforced(ws_client, test_settings, monkeypatch):
    monkeypatch.setattr(test_settings, "bridge_key", "s3cret")
    with pytest.raises(WebSocketDisconnect) as exc:
        with ws_client.websocket_connect("/bridge?channel_id=chan-ws&key=wrong"):
            pass
    assert exc.value.code == CLOSE_BAD_KEY

    with ws_client.websocket_connect("/bridge?channel_id=chan-ws&key=s3cret") as ws:
        ws.send_text(json.dumps({"type": "ping"}))
        assert json.loads(ws.receive_text()) == {"type": "pong"}


def test_ping_gets_pong(ws_client):
    with ws_client.websocket_connect("/bridge?channel_id=chan-ws") as ws:
        ws.send_text(json.dumps({"type": "ping"}))
        assert json.loads(ws.receive_text()) == {"type": "pong"}


def test_published_event_delivered(ws_client):
    with ws_client.websocket_connect("/bridge?channel_id=chan-ws") as ws:
        # Round-trip once so the subscription is registered
        ws.send_text(json.dumps({"type": "ping"}))
        ws.receive_text()

        event = new_event(REDEEM, "chan-ws", item_id="fake_dc", viewer=Viewer(login="bob"))
        delivered = ws_client.portal.call(hub.publish, "chan-ws", event)
        assert delivered == 1

        data = json.loads(ws.receive_text())
        assert data["type"] == "redeem"
        assert data["itemId"] == "fake_dc"
        assert data["viewer"]["login"] == "bob"


def test_disconnect_unregisters(ws_client):
    with ws_client.websocket_connect("/bridge?channel_id=chan-gone") as ws:
        ws.send_text(json.dumps({"type": "ping"}))
        ws.receive_text()
        assert len(hub.subscribers("chan-gone")) == 1

    # The handler exits on the worker loop; give it a tick to run cleanup
    ws_client.portal.call(_settle)
    assert hub.subscribers("chan-gone") == frozenset()


async def _settle():
    import asyncio

    for _ in range(10):
        if not hub.subscribers("chan-gone"):
            return
        await asyncio.sleep(0.01)
