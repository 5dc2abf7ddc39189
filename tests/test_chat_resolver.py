import asyncio

import httpx
import pytest

import faq_matcher
from chat_resolver import (
    ChatResolver,
    ConversationLog,
    TERMINAL_FALLBACK,
    TTLCache,
    build_context_block,
)
from conftest import FakeCompletionClient, make_bridge, routes, unreachable


def resolver_for(handler, client=None, **overrides):
    bridge = make_bridge(handler, **overrides)
    factory = (lambda _key: client) if client is not None else None
    return ChatResolver(bridge.config, bridge, completion_factory=factory)


@pytest.mark.anyio("asyncio")
async def test_primary_tier_answers_and_is_cached():
    handler = routes({
        ("POST", "/chat"): (200, {"response": "Trained answer", "sources": [{"title": "doc"}]}),
    })
    resolver = resolver_for(handler)

    first = await resolver.resolve("Tell me about returns", "c1")
    assert first.tier == "primary"
    assert first.message == "Trained answer"
    assert first.used_knowledge is True
    assert first.sources == [{"title": "doc"}]
    assert first.cached is False

    second = await resolver.resolve("  tell me about RETURNS ", "c1")
    assert second.cached is True
    assert second.message == "Trained answer"
    assert len(handler.calls) == 1


@pytest.mark.anyio("asyncio")
async def test_generic_tier_uses_search_context(monkeypatch):
    handler = routes({
        ("POST", "/chat"): (500, {"error": "boom"}),
        ("POST", "/search"): (200, {"results": [{"text": "Money market yields 16%", "distance": 0.2}]}),
    })
    client = FakeCompletionClient(text="Generic answer")
    resolver = resolver_for(handler, client=client)
    resolver.config.set_provider_key("openai", "sk-test")

    result = await resolver.resolve("xyzzy yields")
    assert result.tier == "generic"
    assert result.message == "Generic answer"
    assert result.used_knowledge is True

    call = client.completions.calls[0]
    system = call["messages"][0]["content"]
    assert "Relevant knowledge:\n1. Money market yields 16%" in system
    assert call["messages"][1] == {"role": "user", "content": "xyzzy yields"}
    assert call["model"] == resolver.config.openai_model


@pytest.mark.anyio("asyncio")
async def test_completion_client_is_reused_across_requests():
    built = []

    def factory(api_key):
        client = FakeCompletionClient(exc=RuntimeError("rate limited"))
        built.append((api_key, client))
        return client

    bridge = make_bridge(unreachable)
    resolver = ChatResolver(bridge.config, bridge, completion_factory=factory)
    resolver.config.set_provider_key("openai", "sk-one")

    for query in ("xyzzy 1", "xyzzy 2", "xyzzy 3"):
        await resolver.resolve(query)
    assert len(built) == 1
    assert len(built[0][1].completions.calls) == 3

    resolver.config.set_provider_key("openai", "sk-two")
    await resolver.resolve("xyzzy 4")
    assert [key for key, _ in built] == ["sk-one", "sk-two"]
    assert built[0][1].closed is True
    assert built[1][1].closed is False

    await resolver.aclose()
    assert built[1][1].closed is True


@pytest.mark.anyio("asyncio")
async def test_generic_tier_without_context_is_not_knowledge_backed():
    client = FakeCompletionClient(text="Plain answer")
    resolver = resolver_for(unreachable, client=client)
    resolver.config.set_provider_key("openai", "sk-test")

    result = await resolver.resolve("What is ArvoCap's mission?")
    assert result.tier == "generic"
    assert result.used_knowledge is False
    assert "Context from our FAQ: To empower investors" in client.completions.calls[0]["messages"][0]["content"]


@pytest.mark.anyio("asyncio")
async def test_generic_timeout_falls_through_to_static_faq():
    client = FakeCompletionClient(text="late", delay=0.5)
    resolver = resolver_for(unreachable, client=client, completion_timeout=0.05)
    resolver.config.set_provider_key("openai", "sk-test")

    result = await resolver.resolve("What is ArvoCap's vision?")
    assert result.tier == "static"
    assert result.message == faq_matcher.find_by_id("3").answer
    assert result.used_knowledge is False


@pytest.mark.anyio("asyncio")
async def test_generic_error_is_swallowed():
    client = FakeCompletionClient(exc=RuntimeError("rate limited"))
    resolver = resolver_for(unreachable, client=client)
    resolver.config.set_provider_key("openai", "sk-test")

    result = await resolver.resolve("xyzzy")
    assert result.tier == "terminal"
    assert result.message == TERMINAL_FALLBACK


@pytest.mark.anyio("asyncio")
async def test_everything_down_answers_thamani_from_faq():
    resolver = resolver_for(unreachable)

    result = await resolver.resolve("What is Thamani Equity Fund?")
    assert result.tier == "static"
    assert result.message == faq_matcher.find_by_id("21").answer
    assert result.used_knowledge is False
    assert result.to_dict()["faqMatch"] == {"id": "21", "kind": "keyword"}


@pytest.mark.anyio("asyncio")
async def test_terminal_fallback_is_not_cached():
    resolver = resolver_for(unreachable)

    result = await resolver.resolve("xyzzy")
    assert result.tier == "terminal"
    assert result.faq_match.matched is False
    assert len(resolver.cache) == 0


@pytest.mark.anyio("asyncio")
async def test_primary_timeout_moves_on():
    def handler(request):
        if request.url.path == "/chat":
            raise httpx.ReadTimeout("timed out", request=request)
        raise httpx.ConnectError("down", request=request)

    resolver = resolver_for(handler)
    result = await resolver.resolve("How can I contact ArvoCap?")
    assert result.tier == "static"


def test_ttl_cache_sweeps_expired_entries_on_set():
    now = [0.0]
    cache = TTLCache(10, clock=lambda: now[0])
    for i in range(1000):
        cache.set(f"q{i}", i)
    assert len(cache) == 1000

    now[0] = 11.0
    cache.set("fresh", "v")
    assert cache._data.keys() == {"fresh"}


def test_ttl_cache_len_ignores_expired_entries():
    now = [0.0]
    cache = TTLCache(10, clock=lambda: now[0])
    cache.set("a", 1)
    now[0] = 5.0
    cache.set("b", 2)
    now[0] = 12.0
    assert len(cache) == 1
    assert cache.get("b") == 2


def test_ttl_cache_expires_entries():
    now = [100.0]
    cache = TTLCache(10, clock=lambda: now[0])
    cache.set("k", "v")
    now[0] = 109.0
    assert cache.get("k") == "v"
    now[0] = 111.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_context_block_skips_empty_results():
    assert build_context_block([]) == ""
    assert build_context_block([{"content": ""}, {"content": " b "}]) == "Relevant knowledge:\n2. b"


def test_conversation_log_orders_messages():
    log = ConversationLog(clock=lambda: 1000.0)
    cid = log.start()
    first = log.append(cid, "user", "hi")
    second = log.append(cid, "assistant", "hello", [{"title": "doc"}])
    assert second.timestamp > first.timestamp
    assert [m.role for m in log.messages(cid)] == ["user", "assistant"]
    assert log.messages(cid)[1].to_dict()["sources"] == [{"title": "doc"}]
    assert log.messages(cid)[0].to_dict()["timestamp"].endswith("Z")


def test_conversation_log_rejects_unknown_roles():
    log = ConversationLog()
    cid = log.start()
    with pytest.raises(ValueError):
        log.append(cid, "system", "nope")


def test_conversation_log_end():
    log = ConversationLog()
    cid = log.ensure(None)
    assert cid in log
    assert log.ensure(cid) == cid
    assert log.end(cid) is True
    assert log.end(cid) is False
    assert log.messages(cid) is None


def test_unknown_conversation_id_starts_a_new_session():
    log = ConversationLog()
    cid = log.ensure("made-up-id")
    assert cid != "made-up-id"
    assert "made-up-id" not in log
    assert len(log) == 1


def test_append_to_unknown_conversation_raises():
    log = ConversationLog()
    with pytest.raises(KeyError):
        log.append("nope", "user", "hi")


def test_idle_conversations_are_dropped():
    now = [0.0]
    log = ConversationLog(clock=lambda: now[0], idle_ttl=60)
    idle = log.start()
    busy = log.start()
    log.append(idle, "user", "hi")

    now[0] = 50.0
    log.append(busy, "user", "still here")
    now[0] = 100.0
    fresh = log.start()

    assert idle not in log
    assert busy in log and fresh in log
    assert len(log) == 2


def test_expired_conversation_is_not_resumed():
    now = [0.0]
    log = ConversationLog(clock=lambda: now[0], idle_ttl=60)
    cid = log.start()
    now[0] = 61.0
    assert log.ensure(cid) != cid
    assert cid not in log
