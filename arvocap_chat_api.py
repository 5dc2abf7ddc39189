# arvocap_chat_api.py
from fastapi import FastAPI, Header, UploadFile, File, Form, Depends, Request, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from pydantic import BaseModel
from contextlib import asynccontextmanager
from collections import deque
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from urllib.parse import urlparse
import logging, time

import faq_matcher
from chat_resolver import ChatResolver, ConversationLog, GREETING, HUMAN_HANDOFF, CONTACT_OFFER
from contact_capture import ContactCapture, ContactValidationError, SheetsError
from runtime_config import RuntimeConfig, configure_logging
from training_bridge import TrainingBridge
from widget_pages import WIDGET_HTML, ADMIN_HTML

# ========== ENV / SETUP ==========
configure_logging()
logger = logging.getLogger("arvocap.api")

UPLOAD_MAX_BYTES = 12 * 1024 * 1024  # 12 MB per document
MAX_SCRAPE_DEPTH = 5
KNOWLEDGE_PROXY_TIMEOUT = 5.0

config        = RuntimeConfig.from_env()
bridge        = TrainingBridge(config)
resolver      = ChatResolver(config, bridge)
contacts      = ContactCapture(config)
conversations = ConversationLog(idle_ttl=config.conversation_ttl)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info("Training service at %s", config.training_api_url)
    yield
    await resolver.aclose()
    await bridge.aclose()


app = FastAPI(title="ArvoCap Chat Assistant API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins, allow_methods=["*"], allow_headers=["*"],
)

if config.metrics_enabled:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")


def iso_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ========== ERRORS ==========
class ApiError(Exception):
    def __init__(self, status_code: int, error: str, details: Any = None, **extra):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details
        self.extra = extra


@app.exception_handler(ApiError)
async def api_error_handler(_request: Request, exc: ApiError):
    body: Dict[str, Any] = {"success": False, "error": exc.error, **exc.extra}
    if exc.details is not None:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


# ========== AUTH / RATE LIMIT ==========
def require_admin(authorization: Optional[str] = Header(None)):
    if not config.admin_token:
        return
    if not authorization or not authorization.startswith("Bearer "):
        raise ApiError(401, "Unauthorized")
    token = authorization.split(" ", 1)[1].strip()
    if token != config.admin_token:
        raise ApiError(403, "Forbidden")

REQUESTS = deque()

def check_rate_limit():
    now = time.time()
    while REQUESTS and now - REQUESTS[0] > config.rate_window:
        REQUESTS.popleft()
    if len(REQUESTS) >= config.rate_limit:
        raise ApiError(429, "Too Many Requests")
    REQUESTS.append(now)


async def require_training_system():
    health = await bridge.check_health()
    if not health.get("healthy"):
        raise ApiError(503, "Training system is not available", health.get("error"))


# ========== REQUEST MODELS ==========
class ChatRequest(BaseModel):
    message: Optional[str] = None
    conversation_id: Optional[str] = None
    messages: Optional[List[Dict[str, Any]]] = None

    def text(self) -> str:
        if self.message:
            return self.message.strip()
        if self.messages:
            return str(self.messages[-1].get("content") or "").strip()
        return ""

class KnowledgeRequest(BaseModel):
    query: Optional[str] = None
    maxResults: int = 3

class ContactRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    issue: Optional[str] = None

class RetrainRequest(BaseModel):
    force: bool = False

class ScrapeRequest(BaseModel):
    url: Optional[str] = None
    depth: int = 2
    chunkSize: int = 1000
    chunkOverlap: int = 200

class ManualEntryRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    chunkSize: int = 1000
    chunkOverlap: int = 200

class ApiKeyRequest(BaseModel):
    provider: Optional[str] = None
    apiKey: Optional[str] = None

class GoogleCredsRequest(BaseModel):
    GOOGLE_SPREADSHEET_ID: Optional[str] = None
    GOOGLE_PROJECT_ID: Optional[str] = None
    GOOGLE_PRIVATE_KEY_ID: Optional[str] = None
    GOOGLE_PRIVATE_KEY: Optional[str] = None
    GOOGLE_CLIENT_EMAIL: Optional[str] = None
    GOOGLE_CLIENT_ID: Optional[str] = None


# ========== PAGES ==========
@app.get("/", response_class=HTMLResponse)
@app.get("/widget", response_class=HTMLResponse)
def widget():
    return HTMLResponse(WIDGET_HTML)

@app.get("/admin", response_class=HTMLResponse)
def admin_page():
    return HTMLResponse(ADMIN_HTML)


# ========== Health / Diag ==========
@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/diag", dependencies=[Depends(require_admin)])
def diag():
    creds = config.google_credentials()
    return {
        "has_OPENAI_API_KEY": bool(config.provider_key("openai")),
        "training_api_url": config.training_api_url,
        "google_configured": bool(creds.get("GOOGLE_SPREADSHEET_ID") and creds.get("GOOGLE_PRIVATE_KEY")),
        "backup_path": config.backup_path,
        "cache_entries": len(resolver.cache),
    }


# ========== FAQ / CHAT ==========
@app.get("/api/faqs")
def list_faqs():
    return {
        "faqs": [r.to_dict() for r in faq_matcher.FAQ_RECORDS],
        "quickReplies": list(faq_matcher.QUICK_REPLIES),
        "greeting": GREETING,
        "handoff": HUMAN_HANDOFF,
    }

@app.post("/api/chat")
async def chat_endpoint(req: ChatRequest):
    text = req.text()
    if not text:
        raise ApiError(400, "No message provided")
    check_rate_limit()

    cid = conversations.ensure(req.conversation_id)
    conversations.append(cid, "user", text)
    t0 = time.time()
    result = await resolver.resolve(text, cid)
    conversations.append(cid, "assistant", result.message, result.sources)

    offer = not (result.faq_match and result.faq_match.matched) and not result.used_knowledge
    logger.info("chat tier=%s cached=%s faq=%s t_ms=%d", result.tier, result.cached,
                result.faq_match.kind if result.faq_match else "none", int((time.time() - t0) * 1000))
    return {
        **result.to_dict(),
        "conversation_id": cid,
        "offerContact": offer,
        "contactPrompt": CONTACT_OFFER if offer else None,
    }

@app.get("/api/conversations/{conversation_id}")
def get_conversation(conversation_id: str):
    msgs = conversations.messages(conversation_id)
    if msgs is None:
        raise ApiError(404, "Conversation not found")
    return {"conversation_id": conversation_id, "messages": [m.to_dict() for m in msgs]}

@app.delete("/api/conversations/{conversation_id}")
def end_conversation(conversation_id: str):
    return {"success": conversations.end(conversation_id)}


# ========== KNOWLEDGE PROXY ==========
@app.post("/api/chatbot-knowledge")
async def knowledge_search(req: KnowledgeRequest):
    query = (req.query or "").strip()
    if not query:
        raise ApiError(400, "Query is required")
    res = await bridge.search_knowledge(query, max_results=req.maxResults, timeout=KNOWLEDGE_PROXY_TIMEOUT)
    if not res.get("success"):
        return {"results": [], "hasResults": False, "message": "Knowledge base not available"}
    results = res.get("results") or []
    return {"results": results, "hasResults": bool(results)}

@app.get("/api/chatbot-knowledge")
async def knowledge_health():
    health = await bridge.check_health()
    if health.get("healthy"):
        status, system = "healthy", "connected"
    elif str(health.get("error", "")).startswith("Status"):
        status, system = "degraded", "disconnected"
    else:
        status, system = "degraded", "unavailable"
    return {"status": status, "pythonSystem": system, "timestamp": iso_now()}


# ========== CONTACT ==========
@app.post("/api/save-contact")
def save_contact(req: ContactRequest, background_tasks: BackgroundTasks):
    check_rate_limit()
    try:
        submission, ack = contacts.submit(req.model_dump())
    except ContactValidationError as e:
        raise ApiError(400, "All fields are required", missing=e.missing)
    background_tasks.add_task(contacts.persist, submission)
    return {
        "success": True,
        "message": "Contact information received",
        "acknowledgement": ack,
        "submission": submission.to_dict(),
    }


# ========== ADMIN ==========
@app.post("/api/admin/retrain", dependencies=[Depends(require_admin)])
async def retrain(req: RetrainRequest):
    await require_training_system()
    res = await bridge.trigger_retraining(force=req.force)
    if not res.get("success"):
        raise ApiError(500, "Failed to trigger retraining", res.get("error"))
    return {"success": True, "message": "Retraining initiated successfully",
            "jobId": res.get("jobId"), "timestamp": iso_now()}

@app.get("/api/admin/retrain", dependencies=[Depends(require_admin)])
async def training_status():
    status = await bridge.get_status()
    return {
        "pythonSystem": {
            "healthy": status.get("healthy", False),
            "error": status.get("error"),
            "knowledgeBaseSize": status.get("knowledgeBaseSize"),
        },
        "lastChecked": iso_now(),
    }

@app.get("/api/admin/training-stats", dependencies=[Depends(require_admin)])
async def training_stats():
    defaults = {"totalDocuments": 0, "totalWebsites": 0, "manualEntries": 0,
                "knowledgeBaseSize": 0, "lastTrained": None}
    res = await bridge.get_training_stats()
    return {**defaults, **res}

@app.post("/api/admin/upload-documents", dependencies=[Depends(require_admin)])
async def upload_documents(
    documents: List[UploadFile] = File(default=[]),
    ocrEnabled: str = Form("false"),
    chunkSize: int = Form(1000),
    chunkOverlap: int = Form(200),
):
    if not documents:
        raise ApiError(400, "No documents provided")
    payload = []
    for f in documents:
        raw = await f.read(UPLOAD_MAX_BYTES + 1)
        if len(raw) > UPLOAD_MAX_BYTES:
            raise ApiError(413, f"{f.filename} exceeds {UPLOAD_MAX_BYTES//1024//1024}MB limit.")
        payload.append((f.filename or "document", raw, f.content_type or "application/octet-stream"))

    await require_training_system()
    res = await bridge.upload_documents(payload, ocr_enabled=ocrEnabled.lower() == "true",
                                        chunk_size=chunkSize, chunk_overlap=chunkOverlap)
    if not res.get("success"):
        raise ApiError(500, "Failed to process documents", res.get("error"))
    return {"success": True, "message": f"Successfully processed {len(payload)} document(s)",
            "documentsProcessed": len(payload), "chunksCreated": res.get("chunksCreated"),
            "timestamp": iso_now()}

def _valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)

@app.post("/api/admin/scrape-website", dependencies=[Depends(require_admin)])
async def scrape_website(req: ScrapeRequest):
    url = (req.url or "").strip()
    if not url:
        raise ApiError(400, "No URL provided")
    if not _valid_url(url):
        raise ApiError(400, "Invalid URL format")
    depth = max(1, min(req.depth, MAX_SCRAPE_DEPTH))

    await require_training_system()
    res = await bridge.scrape_website(url, depth=depth, chunk_size=req.chunkSize, chunk_overlap=req.chunkOverlap)
    if not res.get("success"):
        raise ApiError(500, "Failed to scrape website", res.get("error"))
    return {"success": True, "message": f"Successfully scraped {res.get('pagesProcessed')} pages",
            "pagesProcessed": res.get("pagesProcessed"), "chunksCreated": res.get("chunksCreated"),
            "timestamp": iso_now()}

@app.post("/api/admin/add-manual-entry", dependencies=[Depends(require_admin)])
async def add_manual_entry(req: ManualEntryRequest):
    title, content = (req.title or "").strip(), (req.content or "").strip()
    if not title or not content:
        raise ApiError(400, "Title and content are required")

    await require_training_system()
    res = await bridge.add_manual_entry(title, content, chunk_size=req.chunkSize, chunk_overlap=req.chunkOverlap)
    if not res.get("success"):
        raise ApiError(500, "Failed to add manual entry", res.get("error"))
    return {"success": True, "message": "Manual entry added successfully",
            "chunksCreated": res.get("chunksCreated"), "timestamp": iso_now()}

@app.get("/api/admin/knowledge-base", dependencies=[Depends(require_admin)])
async def knowledge_base():
    res = await bridge.get_knowledge_base()
    return {"success": res.get("success", False), "items": res.get("items", []),
            "totalItems": res.get("totalItems", 0), **({"error": res["error"]} if res.get("error") else {})}

@app.put("/api/admin/knowledge-base/{item_id}", dependencies=[Depends(require_admin)])
async def update_knowledge_item(item_id: str, fields: Dict[str, Any]):
    if not item_id.strip():
        raise ApiError(400, "Item ID is required")
    await require_training_system()
    res = await bridge.update_knowledge_item(item_id, fields)
    if not res.get("success"):
        raise ApiError(500, "Failed to update item", res.get("error"))
    return {"success": True, "message": "Item updated successfully", "item": res.get("item")}

@app.delete("/api/admin/knowledge-base/{item_id}", dependencies=[Depends(require_admin)])
async def delete_knowledge_item(item_id: str):
    if not item_id.strip():
        raise ApiError(400, "Item ID is required")
    await require_training_system()
    res = await bridge.delete_knowledge_item(item_id)
    if not res.get("success"):
        raise ApiError(500, "Failed to delete item", res.get("error"))
    return {"success": True, "message": "Item deleted successfully"}

@app.post("/api/admin/settings", dependencies=[Depends(require_admin)])
async def set_api_key(req: ApiKeyRequest):
    provider = (req.provider or "openai").lower()
    api_key = (req.apiKey or "").strip()
    if not api_key or provider != "openai":
        raise ApiError(400, "Invalid request")
    config.set_provider_key(provider, api_key)
    res = await bridge.set_api_key(provider, api_key)
    if not res.get("success"):
        raise ApiError(502, "Failed to set API key in Python service", res.get("error"))
    return {"success": True}

@app.post("/api/admin/google", dependencies=[Depends(require_admin)])
def set_google_credentials(req: GoogleCredsRequest):
    creds = req.model_dump()
    if not creds.get("GOOGLE_SPREADSHEET_ID") or not creds.get("GOOGLE_CLIENT_EMAIL") or not creds.get("GOOGLE_PRIVATE_KEY"):
        raise ApiError(400, "Missing required fields")
    config.set_google_credentials(creds)
    return {"success": True}

@app.get("/api/admin/contacts", dependencies=[Depends(require_admin)])
def list_contacts():
    try:
        return contacts.sheets.read_all()
    except SheetsError as e:
        raise ApiError(502, str(e))
