import threading

import pytest

from chat_core.agents.orchestrator import ChatOrchestrator, assemble_context
from chat_core.config.settings import AppConfig
from chat_core.domain.exceptions import (
    ConcurrentSendError,
    EmptyInputError,
    HttpError,
    MissingApiKeyError,
    NetworkError,
    PersistenceError,
    SendCancelledError,
    UnknownModelError,
)
from chat_core.domain.models import ChatSettings, ContextPolicy, Message, WireResponse
from chat_core.infrastructure.storage.json_store import InMemoryStorage
from chat_core.store.conversation_store import ConversationStore
from chat_core.store.settings_store import SettingsStore


def reply(text):
    return WireResponse(status=200, body={"choices": [{"message": {"role": "assistant", "content": text}}]})


class FakeTransport:
    def __init__(self, responses=(), on_post=None):
        self.requests = []
        self._responses = list(responses)
        self._on_post = on_post

    def post(self, request):
        self.requests.append(request)
        if self._on_post:
            self._on_post(request)
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FailingStorage(InMemoryStorage):
    fail = False

    def write(self, key, value):
        if self.fail:
            raise PersistenceError(message="disk full", key=key)
        super().write(key, value)


def build(responses=(), model_id="grok-4", api_key="sk-test", policy=ContextPolicy.FULL_HISTORY, storage=None, on_post=None):
    storage = storage if storage is not None else InMemoryStorage()
    cfg = AppConfig(api_key=None, provider_api_key_env={}, system_prompt="SYS")
    store = ConversationStore(storage)
    settings_store = SettingsStore(storage, cfg)
    settings_store.save(ChatSettings(api_key=api_key, model_id=model_id, context_policy=policy))
    transport = FakeTransport(responses, on_post)
    orch = ChatOrchestrator(store, settings_store, transport=transport, config=cfg)
    conv = store.create()
    return orch, store, transport, conv.id


def test_send_success():
    orch, store, transport, cid = build([reply("hello there")])
    outcome = orch.send_message(cid, "  hi  ")
    assert outcome.ok
    assert outcome.reply.content == "hello there"
    assert outcome.status.state == "ready"
    conv = store.get(cid)
    assert [(m.role, m.content) for m in conv.messages] == [("user", "hi"), ("assistant", "hello there")]
    assert conv.title == "hi"
    assert not conv.pending
    req = transport.requests[0]
    assert req.url == "https://api.x.ai/v1/chat/completions"
    assert req.body["messages"] == [{"role": "system", "content": "SYS"}, {"role": "user", "content": "hi"}]


def test_http_error_becomes_assistant_message():
    orch, store, _, cid = build(
        [WireResponse(status=500, body={"error": {"message": "rate limited"}})],
        model_id="x-ai/grok-4",
    )
    outcome = orch.send_message(cid, "hello")
    assert isinstance(outcome.error, HttpError)
    assert outcome.error.status == 500
    assert outcome.error.message == "rate limited"
    assert outcome.reply.content == "Error: rate limited"
    assert store.get(cid).messages[-1].content == "Error: rate limited"
    assert outcome.status.state == "error"
    assert outcome.status.text == "Error: rate limited"
    assert orch.status == outcome.status


def test_network_error_becomes_assistant_message():
    orch, store, _, cid = build([NetworkError(message="connection refused")])
    outcome = orch.send_message(cid, "hello")
    assert isinstance(outcome.error, NetworkError)
    assert store.get(cid).messages[-1].content == "Error: connection refused"
    assert not store.is_pending(cid)


def test_malformed_success_body_is_reported():
    orch, store, _, cid = build([WireResponse(status=200, body={"unexpected": True})])
    outcome = orch.send_message(cid, "hello")
    assert outcome.reply.content == "Error: Unexpected response format"
    assert outcome.error.status == 200


def test_empty_input_rejected_without_side_effects():
    orch, store, transport, cid = build()
    with pytest.raises(EmptyInputError):
        orch.send_message(cid, "   \n\t")
    assert store.get(cid).messages == []
    assert transport.requests == []


def test_missing_api_key():
    orch, store, transport, cid = build(api_key="")
    with pytest.raises(MissingApiKeyError):
        orch.send_message(cid, "hello")
    assert store.get(cid).messages == []
    assert transport.requests == []
    assert not store.is_pending(cid)


def test_env_fallback_api_key(monkeypatch):
    monkeypatch.setenv("XAI_API_KEY", "xai-from-env")
    storage = InMemoryStorage()
    cfg = AppConfig(api_key=None, provider_api_key_env={"grok": "XAI_API_KEY"})
    store = ConversationStore(storage)
    settings_store = SettingsStore(storage, cfg)
    transport = FakeTransport([reply("ok")])
    orch = ChatOrchestrator(store, settings_store, transport=transport, config=cfg)
    cid = store.create().id
    assert orch.send_message(cid, "hi").ok
    assert transport.requests[0].headers["Authorization"] == "Bearer xai-from-env"


def test_unknown_model_checked_before_network():
    orch, store, transport, cid = build(model_id="unknown/model")
    with pytest.raises(UnknownModelError):
        orch.send_message(cid, "hello")
    assert store.get(cid).messages == []
    assert transport.requests == []
    assert not store.is_pending(cid)


def test_last_turn_only_sends_single_user_message():
    orch, store, transport, cid = build(
        [reply("a1"), reply("a2"), reply("a3"), reply("a4")],
        policy=ContextPolicy.LAST_TURN_ONLY,
    )
    for text in ("one", "two", "three"):
        orch.send_message(cid, text)
    orch.send_message(cid, "four")
    assert transport.requests[-1].body["messages"] == [
        {"role": "system", "content": "SYS"},
        {"role": "user", "content": "four"},
    ]
    assert len(store.get(cid).messages) == 8


def test_full_history_sends_everything():
    orch, _, transport, cid = build([reply("a1"), reply("a2")])
    orch.send_message(cid, "one")
    orch.send_message(cid, "two")
    roles = [m["role"] for m in transport.requests[-1].body["messages"]]
    assert roles == ["system", "user", "assistant", "user"]


def test_concurrent_send_is_rejected():
    started = threading.Event()
    release = threading.Event()

    def block(_request):
        started.set()
        release.wait(timeout=5)

    orch, store, transport, cid = build([reply("first")], on_post=block)
    results = {}
    worker = threading.Thread(target=lambda: results.setdefault("outcome", orch.send_message(cid, "first")))
    worker.start()
    assert started.wait(timeout=5)
    assert store.is_pending(cid)
    with pytest.raises(ConcurrentSendError):
        orch.send_message(cid, "second")
    release.set()
    worker.join(timeout=5)

    assert len(transport.requests) == 1
    assert results["outcome"].reply.content == "first"
    assert [m.content for m in store.get(cid).messages] == ["first", "first"]
    assert not store.is_pending(cid)


def test_other_conversations_usable_while_pending():
    holder = {}

    def use_other(_request):
        other = holder["store"].create()
        holder["store"].append(other.id, Message(role="user", content="side"))
        holder["store"].switch_to(holder["cid"])
        holder["pending_seen"] = holder["store"].is_pending(holder["cid"])

    orch, store, _, cid = build([reply("ok")], on_post=use_other)
    holder.update(store=store, cid=cid)
    orch.send_message(cid, "main")
    assert holder["pending_seen"] is True
    assert store.get(cid).messages[-1].content == "ok"


def test_cancel_discards_reply_and_keeps_user_message():
    holder = {}

    def cancel(_request):
        holder["cancelled"] = holder["orch"].cancel(holder["cid"])
        holder["pending_after_cancel"] = holder["store"].is_pending(holder["cid"])

    orch, store, _, cid = build([reply("too late")], on_post=cancel)
    holder.update(orch=orch, store=store, cid=cid)
    with pytest.raises(SendCancelledError):
        orch.send_message(cid, "question")
    assert holder["cancelled"] is True
    assert holder["pending_after_cancel"] is False
    assert [m.content for m in store.get(cid).messages] == ["question"]
    assert orch.cancel(cid) is False


def test_retry_replaces_trailing_error_without_duplicate_user():
    orch, store, transport, cid = build([
        WireResponse(status=503, body=None),
        reply("recovered"),
    ])
    first = orch.send_message(cid, "hello")
    assert first.reply.content == "Error: HTTP status 503"
    second = orch.retry(cid)
    assert second.ok
    assert [(m.role, m.content) for m in store.get(cid).messages] == [("user", "hello"), ("assistant", "recovered")]
    assert transport.requests[-1].body["messages"][1:] == [{"role": "user", "content": "hello"}]


def test_retry_after_success_strips_reply():
    orch, store, _, cid = build([reply("v1"), reply("v2")])
    orch.send_message(cid, "hello")
    orch.retry(cid)
    assert [m.content for m in store.get(cid).messages] == ["hello", "v2"]


def test_retry_without_user_message():
    orch, _, transport, cid = build()
    with pytest.raises(EmptyInputError):
        orch.retry(cid)
    assert transport.requests == []


def test_persistence_failure_does_not_abort_send():
    storage = FailingStorage()
    orch, store, _, cid = build([reply("still here")], storage=storage)
    storage.fail = True
    outcome = orch.send_message(cid, "hello")
    assert outcome.ok
    assert isinstance(outcome.persistence_error, PersistenceError)
    assert [m.content for m in store.get(cid).messages] == ["hello", "still here"]


def test_assemble_context_policies():
    msgs = [
        Message(role="user", content="a"),
        Message(role="assistant", content="b"),
        Message(role="user", content="c"),
        Message(role="assistant", content="d"),
    ]
    assert assemble_context(msgs, ContextPolicy.FULL_HISTORY) == msgs
    assert [m.content for m in assemble_context(msgs, ContextPolicy.LAST_TURN_ONLY)] == ["c"]
    assert assemble_context([], ContextPolicy.LAST_TURN_ONLY) == []


def test_cancel_while_storing_user_message_skips_request():
    holder = {}

    class CancellingStorage(InMemoryStorage):
        def write(self, key, value):
            super().write(key, value)
            if holder.get("armed") and key == "conversations":
                holder["armed"] = False
                holder["orch"].cancel(holder["cid"])

    orch, store, transport, cid = build([reply("never")], storage=CancellingStorage())
    holder.update(orch=orch, cid=cid, armed=True)
    with pytest.raises(SendCancelledError):
        orch.send_message(cid, "question")
    assert transport.requests == []
    assert [m.content for m in store.get(cid).messages] == ["question"]
    assert not store.is_pending(cid)


def test_new_send_after_cancel_is_not_disturbed_by_stale_one():
    holder = {}

    def cancel_and_resend(_request):
        if holder.get("resent"):
            return
        holder["resent"] = True
        holder["orch"].cancel(holder["cid"])
        holder["second"] = holder["orch"].send_message(holder["cid"], "again")

    orch, store, transport, cid = build([reply("r1"), reply("r2")], on_post=cancel_and_resend)
    holder.update(orch=orch, cid=cid)
    with pytest.raises(SendCancelledError):
        orch.send_message(cid, "first")
    assert len(transport.requests) == 2
    assert holder["second"].reply.content == "r1"
    assert [m.content for m in store.get(cid).messages] == ["first", "again", "r1"]
    assert not store.is_pending(cid)
