import os
import sys

import pytest

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))


class FakeTelegram:
    """Records Bot API calls instead of sending them."""

    def __init__(self, ok=True, next_message_id=99):
        self.ok = ok
        self.next_message_id = next_message_id
        self.calls = []

    def _result(self, method, **params):
        self.calls.append((method, params))
        if not self.ok:
            return {"ok": False, "error_code": 400, "description": "Bad Request"}
        return {"ok": True, "result": {"message_id": self.next_message_id}}

    def send_plain_text(self, chat_id, text, reply_to_message_id=None):
        return self._result("sendMessage", chat_id=chat_id, text=text, reply_to_message_id=reply_to_message_id)

    def edit_plain_text(self, chat_id, message_id, text):
        return self._result("editMessageText", chat_id=chat_id, message_id=message_id, text=text)

    def edit_inline_message_text(self, inline_message_id, text):
        return self._result("editMessageText", inline_message_id=inline_message_id, text=text)

    def answer_inline_query_empty(self, inline_query_id):
        return self._result("answerInlineQuery:empty", inline_query_id=inline_query_id)

    def answer_inline_query_divination(self, inline_query_id, query):
        return self._result("answerInlineQuery:divination", inline_query_id=inline_query_id, query=query)

    def set_webhook(self, url, secret_token=None):
        return self._result("setWebhook", url=url, secret_token=secret_token)

    def methods(self):
        return [method for method, _ in self.calls]


@pytest.fixture
def fake_telegram():
    return FakeTelegram()
