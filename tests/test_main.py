import pytest
from fastapi.testclient import TestClient

from config import Settings
from conftest import FakeTelegram
from main import SECRET_HEADER, create_app

SECRET = "s3cr3t"
UPDATE = {
    "update_id": 42,
    "message": {
        "message_id": 1,
        "from": {"id": 7, "first_name": "T"},
        "chat": {"id": 7, "type": "private"},
        "text": "/id",
    },
}


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def client(telegram):
    app = create_app(Settings(bot_secret=SECRET, safe_path="/hook"), telegram=telegram)
    return TestClient(app)


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


def test_webhook_rejects_wrong_secret(client, telegram):
    response = client.post("/hook/endpoint", json=UPDATE, headers={SECRET_HEADER: "nope"})
    assert response.status_code == 403
    assert telegram.calls == []


def test_webhook_accepts_update_and_handles_it_after_response(client, telegram):
    response = client.post("/hook/endpoint", json=UPDATE, headers={SECRET_HEADER: SECRET})
    assert response.status_code == 200
    assert response.text == "Ok"
    # TestClient runs background tasks before returning
    assert telegram.calls == [
        ("sendMessage", {"chat_id": 7, "text": "用户ID: <code>7</code>", "reply_to_message_id": 1}),
    ]


def test_webhook_hands_parsed_update_to_bot(client):
    seen = []
    client.app.state.bot.on_update = seen.append
    client.post("/hook/endpoint", json=UPDATE, headers={SECRET_HEADER: SECRET})
    assert [u.update_id for u in seen] == [42]
    assert seen[0].message.from_user.id == 7


def test_webhook_rejects_invalid_body(client):
    response = client.post(
        "/hook/endpoint",
        content=b"not json",
        headers={SECRET_HEADER: SECRET, "Content-Type": "application/json"},
    )
    assert response.status_code == 400


def test_webhook_is_post_only(client):
    assert client.get("/hook/endpoint").status_code == 405


def test_unknown_path(client):
    assert client.get("/endpoint").status_code == 404


def test_register_webhook(client, telegram):
    response = client.get("/hook/registerWebhook")
    assert response.text == "Ok"
    assert telegram.calls == [
        ("setWebhook", {"url": "http://testserver/hook/endpoint", "secret_token": SECRET}),
    ]


def test_unregister_webhook_failure_is_reported():
    telegram = FakeTelegram(ok=False)
    client = TestClient(create_app(Settings(safe_path="/hook"), telegram=telegram))
    response = client.get("/hook/unRegisterWebhook")
    assert '"ok": false' in response.text
    assert '"description": "Bad Request"' in response.text
    assert telegram.calls == [("setWebhook", {"url": "", "secret_token": None})]
