# training_bridge.py
"""Async client for the remote training service (chat, knowledge search and admin actions).

Every public coroutine returns a plain dict carrying ``success`` plus either a
payload or an ``error`` string. Network failures, timeouts, non-2xx statuses
and undecodable bodies are all folded into that shape so callers never see
an exception from this module.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from runtime_config import RuntimeConfig

logger = logging.getLogger(__name__)

BULK_TIMEOUT = 120.0
RETRAIN_TIMEOUT = 30.0
ITEM_TIMEOUT = 10.0
SETTINGS_TIMEOUT = 5.0

# (filename, content, content_type)
UploadFile = Tuple[str, bytes, str]


class BridgeError(Exception):
    """Raised internally when a remote call cannot produce a JSON payload."""


def _describe(exc: Exception) -> str:
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "Request timed out"
    if isinstance(exc, httpx.HTTPStatusError):
        return f"Status {exc.response.status_code}"
    return str(exc) or exc.__class__.__name__


def transform_results(results: Any) -> List[Dict[str, Any]]:
    out = []
    for item in results or []:
        if not isinstance(item, dict):
            continue
        score = item.get("score")
        if score is None:
            score = item.get("distance")
        try:
            score = float(score or 0)
        except (TypeError, ValueError):
            score = 0.0
        out.append({
            "content": item.get("content") or item.get("text") or "",
            "metadata": item.get("metadata") or {},
            "score": score,
        })
    return out


class TrainingBridge:
    def __init__(self, config: RuntimeConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.training_api_url,
            transport=transport,
            timeout=config.status_timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _json(self, method: str, path: str, *, timeout: float, **kwargs) -> Dict[str, Any]:
        # httpx timeouts apply per phase; wait_for caps the whole exchange
        resp = await asyncio.wait_for(self._client.request(method, path, timeout=timeout, **kwargs), timeout)
        resp.raise_for_status()
        try:
            data = resp.json()
        except ValueError as e:
            raise BridgeError(f"Invalid JSON from {path}") from e
        if not isinstance(data, dict):
            raise BridgeError(f"Unexpected payload from {path}")
        return data

    async def _call(self, label: str, method: str, path: str, *, timeout: float, **kwargs):
        """Returns (data, None) or (None, error)."""
        try:
            return await self._json(method, path, timeout=timeout, **kwargs), None
        except (httpx.HTTPError, BridgeError, asyncio.TimeoutError) as e:
            logger.warning("%s failed: %s", label, _describe(e))
            return None, _describe(e)

    # ========== CHAT / SEARCH ==========
    async def chat(self, message: str, conversation_id: Optional[str], timeout: float) -> Dict[str, Any]:
        data, err = await self._call(
            "Trained chat", "POST", "/chat", timeout=timeout,
            json={"message": message, "conversation_id": conversation_id},
        )
        if err:
            return {"success": False, "error": err}
        reply = data.get("response") or data.get("message")
        if not isinstance(reply, str) or not reply.strip():
            return {"success": False, "error": "Empty response from trained chat"}
        sources = data.get("sources")
        return {
            "success": True,
            "message": reply.strip(),
            "sources": sources if isinstance(sources, list) else [],
            "conversation_id": data.get("conversation_id"),
        }

    async def search_knowledge(
        self,
        query: str,
        max_results: int = 3,
        score_threshold: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"query": query, "max_results": max_results}
        if score_threshold is not None:
            body["score_threshold"] = score_threshold
        data, err = await self._call(
            "Knowledge search", "POST", "/search",
            timeout=timeout or self.config.search_timeout, json=body,
        )
        if err:
            return {"success": False, "results": [], "error": err}
        return {"success": True, "results": transform_results(data.get("results"))}

    # ========== HEALTH / STATUS ==========
    async def check_health(self) -> Dict[str, Any]:
        try:
            resp = await asyncio.wait_for(
                self._client.get("/health", timeout=self.config.status_timeout), self.config.status_timeout,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            return {"healthy": False, "error": _describe(e)}
        if resp.is_success:
            return {"healthy": True}
        return {"healthy": False, "error": f"Status {resp.status_code}"}

    async def get_status(self) -> Dict[str, Any]:
        data, err = await self._call("Status", "GET", "/status", timeout=self.config.status_timeout)
        if err:
            return {"healthy": False, "error": err}
        size = data.get("knowledge_base_size")
        out: Dict[str, Any] = {"healthy": True}
        if isinstance(size, int) and not isinstance(size, bool):
            out["knowledgeBaseSize"] = size
        return out

    async def get_training_stats(self) -> Dict[str, Any]:
        data, err = await self._call("Training stats", "GET", "/status", timeout=SETTINGS_TIMEOUT)
        if err:
            return {"success": False, "error": err}
        return {
            "success": True,
            "totalDocuments": data.get("total_documents") or 0,
            "totalWebsites": data.get("total_websites") or 0,
            "manualEntries": data.get("manual_entries") or 0,
            "knowledgeBaseSize": data.get("knowledge_base_size") or 0,
            "lastTrained": data.get("last_trained"),
        }

    # ========== ADMIN ==========
    async def trigger_retraining(self, force: bool = False) -> Dict[str, Any]:
        data, err = await self._call(
            "Retraining trigger", "POST", "/retrain", timeout=RETRAIN_TIMEOUT,
            json={"background_tasks": False, "processed_data_file": "processed_data.json", "force": force},
        )
        if err:
            return {"success": False, "error": err}
        return {"success": bool(data.get("success")), "jobId": data.get("job_id") or data.get("jobId")}

    async def set_api_key(self, provider: str, api_key: str) -> Dict[str, Any]:
        data, err = await self._call(
            "Set API key", "POST", "/admin/set_api_key", timeout=SETTINGS_TIMEOUT,
            json={"provider": provider, "api_key": api_key},
        )
        if err:
            return {"success": False, "error": err}
        return {"success": bool(data.get("success"))}

    async def upload_documents(
        self,
        documents: Sequence[UploadFile],
        ocr_enabled: bool = False,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
    ) -> Dict[str, Any]:
        files = [("files", (name, content, ctype or "application/octet-stream")) for name, content, ctype in documents]
        form = {
            "ocr_enabled": "true" if ocr_enabled else "false",
            "chunk_size": str(chunk_size),
            "chunk_overlap": str(chunk_overlap),
        }
        data, err = await self._call(
            "Document upload", "POST", "/admin/upload_documents",
            timeout=BULK_TIMEOUT, files=files, data=form,
        )
        if err:
            return {"success": False, "error": err}
        return {
            "success": bool(data.get("success", True)),
            "chunksCreated": data.get("chunks_created") or data.get("chunksCreated") or 0,
            "error": data.get("error"),
        }

    async def scrape_website(self, url: str, depth: int = 2, chunk_size: int = 1000, chunk_overlap: int = 200) -> Dict[str, Any]:
        data, err = await self._call(
            "Website scrape", "POST", "/admin/scrape_website", timeout=BULK_TIMEOUT,
            json={"url": url, "max_depth": depth, "chunk_size": chunk_size, "chunk_overlap": chunk_overlap},
        )
        if err:
            return {"success": False, "error": err}
        return {
            "success": bool(data.get("success", True)),
            "pagesProcessed": data.get("pages_processed") or data.get("pagesProcessed") or 0,
            "chunksCreated": data.get("chunks_created") or data.get("chunksCreated") or 0,
            "error": data.get("error"),
        }

    async def add_manual_entry(self, title: str, content: str, chunk_size: int = 1000, chunk_overlap: int = 200) -> Dict[str, Any]:
        data, err = await self._call(
            "Manual entry", "POST", "/admin/add_manual_entry", timeout=RETRAIN_TIMEOUT,
            json={"title": title, "content": content, "chunk_size": chunk_size, "chunk_overlap": chunk_overlap},
        )
        if err:
            return {"success": False, "error": err}
        return {
            "success": bool(data.get("success", True)),
            "chunksCreated": data.get("chunks_created") or data.get("chunksCreated") or 0,
            "error": data.get("error"),
        }

    async def get_knowledge_base(self) -> Dict[str, Any]:
        data, err = await self._call("Knowledge base fetch", "GET", "/admin/knowledge_base", timeout=ITEM_TIMEOUT)
        if err:
            return {"success": False, "items": [], "totalItems": 0, "error": err}
        items = data.get("items")
        if not isinstance(items, list):
            items = []
        total = data.get("total_items", data.get("totalItems", len(items)))
        return {"success": True, "items": items, "totalItems": total}

    async def update_knowledge_item(self, item_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        data, err = await self._call(
            "Knowledge item update", "PUT", f"/admin/knowledge_base/{item_id}",
            timeout=ITEM_TIMEOUT, json=fields,
        )
        if err:
            return {"success": False, "error": err}
        return {"success": bool(data.get("success", True)), "item": data.get("item")}

    async def delete_knowledge_item(self, item_id: str) -> Dict[str, Any]:
        data, err = await self._call(
            "Knowledge item delete", "DELETE", f"/admin/knowledge_base/{item_id}", timeout=ITEM_TIMEOUT,
        )
        if err:
            return {"success": False, "error": err}
        return {"success": bool(data.get("success", True))}
