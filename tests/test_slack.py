import pytest

from intake_bot import slack
from intake_bot.errors import ConfigurationError, RemoteApiError
from intake_bot.slack import SlackClient, split_message


def test_short_message_is_one_chunk():
    assert split_message("hello") == ["hello"]
    assert split_message("") == []


def test_long_message_without_newlines_is_hard_split():
    chunks = split_message("a" * 10000)
    assert [len(c) for c in chunks] == [3900, 3900, 2200]


def test_split_prefers_late_newline():
    text = "a" * 3000 + "\n" + "b" * 2000
    chunks = split_message(text)
    assert chunks == ["a" * 3000, "\n" + "b" * 2000]
    assert "".join(chunks) == text


def test_early_newline_is_ignored():
    text = "a" * 100 + "\n" + "b" * 5000
    chunks = split_message(text)
    assert len(chunks[0]) == 3900
    assert "".join(chunks) == text


def test_every_chunk_fits():
    text = ("line\n" * 3000) + "z" * 9000
    chunks = split_message(text)
    assert all(len(c) <= 3900 for c in chunks)
    assert "".join(chunks) == text


class Recorder:
    def __init__(self, reply=None):
        self.calls = []
        self.reply = reply if reply is not None else {"ok": True}

    def __call__(self, service, method, url, headers=None, body=None, params=None, timeout=8):
        self.calls.append({"url": url, "headers": headers, "body": body, "timeout": timeout})
        return self.reply


def test_post_message_threads_reply(monkeypatch):
    rec = Recorder()
    monkeypatch.setitem(slack.__dict__, "request_json", rec)
    SlackClient("xoxb-1", timeout=3).post_message("C1", "hi", "171.5")
    call = rec.calls[0]
    assert call["url"] == slack.POST_MESSAGE_URL
    assert call["headers"] == {"Authorization": "Bearer xoxb-1"}
    assert call["body"] == {"channel": "C1", "text": "hi", "unfurl_links": False, "thread_ts": "171.5"}
    assert call["timeout"] == 3


def test_post_message_in_band_error(monkeypatch):
    monkeypatch.setitem(slack.__dict__, "request_json", Recorder({"ok": False, "error": "channel_not_found"}))
    with pytest.raises(RemoteApiError) as exc:
        SlackClient("xoxb-1").post_message("C1", "hi")
    assert exc.value.body == "channel_not_found"


def test_post_message_requires_token():
    with pytest.raises(ConfigurationError):
        SlackClient(None).post_message("C1", "hi")


def test_post_long_message_sends_every_chunk(monkeypatch):
    rec = Recorder()
    monkeypatch.setitem(slack.__dict__, "request_json", rec)
    assert SlackClient("xoxb-1").post_long_message("C1", "x" * 8000, "1.0") == 3
    assert [len(c["body"]["text"]) for c in rec.calls] == [3900, 3900, 200]
    assert all(c["body"]["thread_ts"] == "1.0" for c in rec.calls)


def test_webhook_and_response_url_post_message_body(monkeypatch):
    rec = Recorder({})
    monkeypatch.setitem(slack.__dict__, "request_json", rec)
    client = SlackClient()
    client.post_webhook("https://hooks.slack.com/services/X", {"text": "a"})
    client.post_response("https://hooks.slack.com/commands/Y", {"text": "b"})
    assert [c["url"] for c in rec.calls] == [
        "https://hooks.slack.com/services/X",
        "https://hooks.slack.com/commands/Y",
    ]
    assert [c["body"] for c in rec.calls] == [{"text": "a"}, {"text": "b"}]
