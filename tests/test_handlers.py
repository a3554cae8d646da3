import pytest

import handlers
from config import Settings
from handlers import EMPTY_QUESTION_TEXT, UNKNOWN_COMMAND_TEXT, USAGE_TEXT, DivinationBot, parse_command
from telegram_types import Update

USER_ID = 1001
GROUP_ID = -200300


@pytest.fixture
def ai_calls(monkeypatch):
    calls = []

    def fake_reply(prompt, referenced_text=None, settings=None):
        calls.append((prompt, referenced_text))
        return "<blockquote>卦象吉</blockquote>"

    monkeypatch.setattr(handlers, "get_divination_reply", fake_reply)
    return calls


def make_bot(fake_telegram, **overrides):
    settings = Settings(bot_username="divbot", **overrides)
    return DivinationBot(settings, fake_telegram)


def message_update(text, chat_id=USER_ID, user_id=USER_ID, reply_to=None, message_id=10):
    message = {
        "message_id": message_id,
        "from": {"id": user_id, "is_bot": False, "first_name": "T"},
        "chat": {"id": chat_id, "type": "private" if chat_id > 0 else "group"},
        "text": text,
    }
    if reply_to is not None:
        message["reply_to_message"] = reply_to
    return Update.model_validate({"update_id": 1, "message": message})


def test_parse_command():
    assert parse_command("/SM@DivBot 今天 运势") == ("/sm", "DivBot", "今天 运势")
    assert parse_command("/id") == ("/id", None, "")


def test_id_command_in_group(fake_telegram):
    bot = make_bot(fake_telegram)
    bot.on_update(message_update("/id", chat_id=GROUP_ID))
    method, params = fake_telegram.calls[0]
    assert method == "sendMessage"
    assert params["text"] == f"用户ID: <code>{USER_ID}</code>\n群组ID: <code>{GROUP_ID}</code>"


def test_divination_command_edits_placeholder(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    bot.on_update(message_update("/sm 今天运势如何？"))

    assert fake_telegram.methods() == ["sendMessage", "editMessageText"]
    placeholder, edit = fake_telegram.calls
    assert placeholder[1]["text"] == "🔮"
    assert placeholder[1]["reply_to_message_id"] == 10
    assert edit[1]["message_id"] == 99
    assert edit[1]["text"] == "<blockquote>卦象吉</blockquote>"

    prompt, referenced = ai_calls[0]
    assert prompt.startswith("所问之事：今天运势如何？\n所得之卦：")
    assert "所占之时：" in prompt and "所测之刻：" in prompt
    assert referenced is None


def test_placeholder_failure_sends_new_message(ai_calls):
    from conftest import FakeTelegram

    telegram = FakeTelegram(ok=False)
    bot = make_bot(telegram)
    bot.on_update(message_update("/算命 明天"))
    assert telegram.methods() == ["sendMessage", "sendMessage"]
    assert telegram.calls[1][1]["text"] == "<blockquote>卦象吉</blockquote>"


def test_divination_command_without_question_shows_usage(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    bot.on_update(message_update("/sm"))
    assert fake_telegram.calls[0][1]["text"] == USAGE_TEXT
    assert ai_calls == []


def test_divination_command_on_reply_uses_referenced_text(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    reply_to = {"message_id": 5, "chat": {"id": GROUP_ID}, "text": "他会回来吗"}
    bot.on_update(message_update("/sm@divbot", chat_id=GROUP_ID, reply_to=reply_to))
    prompt, referenced = ai_calls[0]
    assert prompt.startswith("所问之事：他会回来吗")
    assert referenced is None


def test_divination_command_with_question_and_reply(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    reply_to = {"message_id": 5, "chat": {"id": GROUP_ID}, "caption": "图片说明"}
    bot.on_update(message_update("/sm 这件事如何", chat_id=GROUP_ID, reply_to=reply_to))
    prompt, referenced = ai_calls[0]
    assert prompt.startswith("所问之事：这件事如何")
    assert referenced == "图片说明"


def test_command_for_other_bot_is_ignored(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    bot.on_update(message_update("/sm@otherbot 问题"))
    assert fake_telegram.calls == []


def test_unknown_command(fake_telegram):
    bot = make_bot(fake_telegram)
    bot.on_update(message_update("/start"))
    assert fake_telegram.calls[0][1]["text"] == UNKNOWN_COMMAND_TEXT

    fake_telegram.calls.clear()
    bot.on_update(message_update("/start", chat_id=GROUP_ID))
    assert fake_telegram.calls == []


def test_plain_text_in_group_is_ignored(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    bot.on_update(message_update("随便聊聊", chat_id=GROUP_ID))
    assert fake_telegram.calls == []


def test_private_text_is_a_question(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    reply_to = {"message_id": 7, "chat": {"id": USER_ID}, "text": "引用的问题"}
    bot.on_update(message_update("随便", reply_to=reply_to))
    assert fake_telegram.calls[0][1]["reply_to_message_id"] == 7
    assert ai_calls[0][0].startswith("所问之事：引用的问题")


def test_private_empty_text(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    bot.on_update(message_update("   "))
    assert fake_telegram.calls[0][1]["text"] == EMPTY_QUESTION_TEXT


def test_whitelist_and_blacklist(fake_telegram):
    bot = make_bot(fake_telegram, user_whitelist=(1,), group_whitelist=(GROUP_ID,), user_blacklist=(666,))
    assert bot.is_allowed(1, 1)
    assert bot.is_allowed(2, GROUP_ID)
    assert not bot.is_allowed(2, 2)
    assert not bot.is_allowed(666, GROUP_ID)

    open_bot = make_bot(fake_telegram, user_blacklist=(666,))
    assert open_bot.is_allowed(2, 2)
    assert not open_bot.is_allowed(666, 666)


def test_non_whitelisted_user_gets_no_reply(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram, user_whitelist=(1,))
    bot.on_update(message_update("/id"))
    assert fake_telegram.calls == []


def test_inline_query(fake_telegram):
    bot = make_bot(fake_telegram)
    empty = Update.model_validate({
        "update_id": 2,
        "inline_query": {"id": "q1", "from": {"id": USER_ID, "first_name": "T"}, "query": "  "},
    })
    asked = Update.model_validate({
        "update_id": 3,
        "inline_query": {"id": "q2", "from": {"id": USER_ID, "first_name": "T"}, "query": " 升职 "},
    })
    bot.on_update(empty)
    bot.on_update(asked)
    assert fake_telegram.calls == [
        ("answerInlineQuery:empty", {"inline_query_id": "q1"}),
        ("answerInlineQuery:divination", {"inline_query_id": "q2", "query": "升职"}),
    ]


def test_chosen_inline_result_edits_inline_message(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    update = Update.model_validate({
        "update_id": 4,
        "chosen_inline_result": {
            "result_id": "divination_query",
            "from": {"id": USER_ID, "first_name": "T"},
            "query": "升职",
            "inline_message_id": "inline-1",
        },
    })
    bot.on_update(update)
    assert fake_telegram.calls == [
        ("editMessageText", {"inline_message_id": "inline-1", "text": "<blockquote>卦象吉</blockquote>"}),
    ]
    assert ai_calls[0][0].startswith("所问之事：升职")


def test_chosen_preset_result_is_ignored(fake_telegram, ai_calls):
    bot = make_bot(fake_telegram)
    update = Update.model_validate({
        "update_id": 5,
        "chosen_inline_result": {
            "result_id": "clear_context",
            "from": {"id": USER_ID, "first_name": "T"},
            "query": "",
            "inline_message_id": "inline-2",
        },
    })
    bot.on_update(update)
    assert fake_telegram.calls == []
