import asyncio
import json
import time

import httpx
import pytest

from conftest import make_bridge, routes, unreachable
from training_bridge import transform_results


@pytest.mark.anyio("asyncio")
async def test_chat_maps_response_fields():
    handler = routes({("POST", "/chat"): (200, {"message": " hi ", "conversation_id": "r1"})})
    bridge = make_bridge(handler)

    res = await bridge.chat("hello", "c1", timeout=5)
    assert res == {"success": True, "message": "hi", "sources": [], "conversation_id": "r1"}
    assert json.loads(handler.calls[0].content) == {"message": "hello", "conversation_id": "c1"}


@pytest.mark.anyio("asyncio")
async def test_chat_empty_reply_is_failure():
    bridge = make_bridge(routes({("POST", "/chat"): (200, {"response": "   "})}))
    res = await bridge.chat("hello", None, timeout=5)
    assert res["success"] is False


@pytest.mark.anyio("asyncio")
async def test_timeout_becomes_error_not_exception():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    bridge = make_bridge(handler)
    res = await bridge.chat("hello", None, timeout=0.1)
    assert res == {"success": False, "error": "Request timed out"}


@pytest.mark.anyio("asyncio")
async def test_slow_response_is_cut_off_at_the_deadline():
    async def handler(request):
        await asyncio.sleep(2)
        return httpx.Response(200, json={"response": "too late"})

    bridge = make_bridge(handler)
    started = time.monotonic()
    res = await bridge.chat("hello", None, timeout=0.05)
    assert res == {"success": False, "error": "Request timed out"}
    assert time.monotonic() - started < 1


@pytest.mark.anyio("asyncio")
async def test_non_json_body_is_failure():
    bridge = make_bridge(lambda request: httpx.Response(200, text="<html>oops</html>"))
    res = await bridge.search_knowledge("fees")
    assert res["success"] is False
    assert res["results"] == []


@pytest.mark.anyio("asyncio")
async def test_search_normalizes_results():
    handler = routes({
        ("POST", "/search"): (200, {"results": [
            {"text": "alpha", "distance": "0.4"},
            {"content": "beta", "score": 0.9, "metadata": {"source": "faq"}},
            "junk",
        ]}),
    })
    bridge = make_bridge(handler)
    res = await bridge.search_knowledge("fees", max_results=2, score_threshold=0.5)
    assert res["success"] is True
    assert res["results"] == [
        {"content": "alpha", "metadata": {}, "score": 0.4},
        {"content": "beta", "metadata": {"source": "faq"}, "score": 0.9},
    ]
    assert json.loads(handler.calls[0].content) == {"query": "fees", "max_results": 2, "score_threshold": 0.5}


def test_transform_results_bad_score():
    assert transform_results([{"content": "x", "score": "n/a"}])[0]["score"] == 0.0
    assert transform_results(None) == []


@pytest.mark.anyio("asyncio")
async def test_health_and_status():
    handler = routes({
        ("GET", "/health"): (200, {"status": "ok"}),
        ("GET", "/status"): (200, {"knowledge_base_size": 42}),
    })
    bridge = make_bridge(handler)
    assert await bridge.check_health() == {"healthy": True}
    first = await bridge.get_status()
    second = await bridge.get_status()
    assert first == second == {"healthy": True, "knowledgeBaseSize": 42}


@pytest.mark.anyio("asyncio")
async def test_unhealthy_service():
    bridge = make_bridge(routes({("GET", "/health"): (503, {})}))
    assert await bridge.check_health() == {"healthy": False, "error": "Status 503"}

    down = make_bridge(unreachable)
    status = await down.get_status()
    assert status["healthy"] is False
    assert "error" in status


@pytest.mark.anyio("asyncio")
async def test_training_stats_derived_from_status():
    bridge = make_bridge(routes({
        ("GET", "/status"): (200, {"total_documents": 3, "knowledge_base_size": 120, "last_trained": "2024-12-01"}),
    }))
    stats = await bridge.get_training_stats()
    assert stats == {
        "success": True, "totalDocuments": 3, "totalWebsites": 0, "manualEntries": 0,
        "knowledgeBaseSize": 120, "lastTrained": "2024-12-01",
    }


@pytest.mark.anyio("asyncio")
async def test_retrain_returns_job_id():
    handler = routes({("POST", "/retrain"): (200, {"success": True, "job_id": "job-7"})})
    bridge = make_bridge(handler)
    assert await bridge.trigger_retraining(force=True) == {"success": True, "jobId": "job-7"}
    assert json.loads(handler.calls[0].content)["force"] is True


@pytest.mark.anyio("asyncio")
async def test_upload_documents_sends_multipart():
    handler = routes({("POST", "/admin/upload_documents"): (200, {"success": True, "chunks_created": 9})})
    bridge = make_bridge(handler)

    res = await bridge.upload_documents([("fund.pdf", b"%PDF-1.4", "application/pdf")], ocr_enabled=True)
    assert res["success"] is True
    assert res["chunksCreated"] == 9

    body = handler.calls[0].content
    assert b'name="files"; filename="fund.pdf"' in body
    assert b'name="ocr_enabled"' in body
    assert b"true" in body


@pytest.mark.anyio("asyncio")
async def test_scrape_sends_max_depth():
    handler = routes({("POST", "/admin/scrape_website"): (200, {"pages_processed": 4, "chunks_created": 12})})
    bridge = make_bridge(handler)
    res = await bridge.scrape_website("https://arvocap.com", depth=3)
    assert res["pagesProcessed"] == 4
    assert json.loads(handler.calls[0].content)["max_depth"] == 3


@pytest.mark.anyio("asyncio")
async def test_knowledge_item_crud():
    handler = routes({
        ("GET", "/admin/knowledge_base"): (200, {"items": [{"id": "k1"}]}),
        ("PUT", "/admin/knowledge_base/k1"): (200, {"success": True, "item": {"id": "k1", "title": "New"}}),
        ("DELETE", "/admin/knowledge_base/k1"): (200, {"success": True}),
    })
    bridge = make_bridge(handler)

    kb = await bridge.get_knowledge_base()
    assert kb == {"success": True, "items": [{"id": "k1"}], "totalItems": 1}
    updated = await bridge.update_knowledge_item("k1", {"title": "New"})
    assert updated["item"]["title"] == "New"
    assert (await bridge.delete_knowledge_item("k1"))["success"] is True
    assert (await bridge.delete_knowledge_item("missing"))["success"] is False


@pytest.mark.anyio("asyncio")
async def test_set_api_key_failure():
    bridge = make_bridge(routes({("POST", "/admin/set_api_key"): (500, {"detail": "no"})}))
    res = await bridge.set_api_key("openai", "sk-x")
    assert res == {"success": False, "error": "Status 500"}
