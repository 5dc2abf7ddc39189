# chat_resolver.py
"""Tiered answer resolution for the chat widget.

Tiers run in order and each may decline by returning None:

    primary    remote trained chat endpoint
    knowledge  semantic search, only collects context for the next tier
    generic    OpenAI-compatible completion using that context
    static     the matched FAQ answer
    terminal   fixed apology

Upstream errors never escape ``ChatResolver.resolve``.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from openai import AsyncOpenAI

import faq_matcher
from faq_matcher import MatchOutcome
from runtime_config import RuntimeConfig
from training_bridge import TrainingBridge

logger = logging.getLogger(__name__)

SEARCH_MAX_RESULTS = 2

SYSTEM_PROMPT = (
    "You are ArvoCap Asset Managers' official AI assistant. You respond in a professional, premium, "
    "and reassuring tone that reflects our brand as a leading licensed asset management firm in Kenya. "
    "You prioritize clarity, accuracy, and trustworthiness in all responses.\n\n"
    "Key guidelines:\n"
    "- Always maintain a professional, client-focused approach suitable for investment services\n"
    "- Keep responses concise but informative (2-4 sentences)\n"
    "- Use bullet points for step-by-step instructions when appropriate\n"
    "- If you're unsure about specific financial details, politely state that you'll connect the user "
    "with a human representative\n"
    "- Never hallucinate financial advice, specific returns, or investment recommendations beyond what's "
    "in our FAQ\n"
    "- Always redirect complex investment inquiries or specific financial advice to human representatives\n"
    "- Remember we offer Money Market Fund (low-risk, 16.5% average returns) and Thamani Equity Fund "
    "(aggressive growth)\n"
    "- We are regulated by CMA Kenya, license number 190"
)

GREETING = (
    "Hello! I'm ArvoCap Asset Managers' AI assistant. I'm here to help answer your questions about our "
    "investment funds, including our Money Market Fund and Thamani Equity Fund, fees, minimum investments, "
    "and more. How can I assist you today?"
)

TERMINAL_FALLBACK = (
    "I apologize, but I'm having trouble accessing my enhanced responses right now. However, I can still "
    "help you with questions about our investment funds, fees, and services. Could you please rephrase your "
    "question or try asking about our Money Market Fund or Thamani Equity Fund? You can also ask to speak "
    "with one of our investment specialists."
)

CONTACT_OFFER = (
    "I don't have specific information about that question in my knowledge base. Let me help you connect "
    "with our investment specialists who can provide you with detailed assistance. Please fill out the form below:"
)

HUMAN_HANDOFF = (
    "I'd be happy to connect you with one of our investment specialists. Please fill out the form below and "
    "we'll get back to you within 2 business hours."
)


# ========== CACHE ==========
class TTLCache:
    """Key -> value map whose entries expire ``ttl`` seconds after being set.

    Expired entries are dropped on read, and swept from the whole map on every
    ``set`` and ``len``.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._data: Dict[str, tuple] = {}

    def _expired(self, ts: float, now: float) -> bool:
        return now - ts > self.ttl

    def _sweep(self, now: float) -> None:
        for key in [k for k, (ts, _) in self._data.items() if self._expired(ts, now)]:
            del self._data[key]

    def get(self, key: str):
        entry = self._data.get(key)
        if not entry:
            return None
        ts, val = entry
        if self._expired(ts, self._clock()):
            del self._data[key]
            return None
        return val

    def set(self, key: str, value) -> None:
        now = self._clock()
        self._sweep(now)
        self._data[key] = (now, value)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        self._sweep(self._clock())
        return len(self._data)


# ========== CONVERSATION LOG ==========
@dataclass
class ChatMessage:
    role: str
    content: str
    timestamp: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    sources: Optional[List[Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        if self.sources:
            out["sources"] = self.sources
        return out


class ConversationLog:
    """Per-session, append-only message lists held in process memory only.

    Sessions idle for longer than ``idle_ttl`` seconds are dropped the next
    time any session is started or written to.
    """

    ROLES = ("user", "assistant")

    def __init__(self, clock: Callable[[], float] = time.time, idle_ttl: float = 1800.0):
        self._clock = clock
        self.idle_ttl = idle_ttl
        self._sessions: Dict[str, List[ChatMessage]] = {}
        self._last_active: Dict[str, float] = {}

    def _sweep(self, now: float) -> None:
        stale = [cid for cid, ts in self._last_active.items() if now - ts > self.idle_ttl]
        for cid in stale:
            self.end(cid)
        if stale:
            logger.debug("Dropped %d idle conversations", len(stale))

    def start(self) -> str:
        now = self._clock()
        self._sweep(now)
        cid = uuid.uuid4().hex
        self._sessions[cid] = []
        self._last_active[cid] = now
        return cid

    def ensure(self, conversation_id: Optional[str]) -> str:
        """Return ``conversation_id`` if it is a live session, else start a new one."""
        if conversation_id and conversation_id in self._sessions:
            now = self._clock()
            if now - self._last_active[conversation_id] <= self.idle_ttl:
                self._last_active[conversation_id] = now
                return conversation_id
        return self.start()

    def append(self, conversation_id: str, role: str, content: str,
               sources: Optional[List[Dict[str, Any]]] = None) -> ChatMessage:
        if role not in self.ROLES:
            raise ValueError(f"Unknown role: {role}")
        if conversation_id not in self._sessions:
            raise KeyError(conversation_id)
        now = self._clock()
        self._last_active[conversation_id] = now
        self._sweep(now)
        log = self._sessions[conversation_id]
        ts = now
        if log and ts <= log[-1].timestamp:
            ts = log[-1].timestamp + 1e-6
        msg = ChatMessage(role=role, content=content, timestamp=ts, sources=sources or None)
        log.append(msg)
        return msg

    def messages(self, conversation_id: str) -> Optional[List[ChatMessage]]:
        log = self._sessions.get(conversation_id)
        return list(log) if log is not None else None

    def end(self, conversation_id: str) -> bool:
        self._last_active.pop(conversation_id, None)
        return self._sessions.pop(conversation_id, None) is not None

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


# ========== RESOLUTION ==========
@dataclass
class Resolution:
    message: str
    used_knowledge: bool
    tier: str
    sources: List[Dict[str, Any]] = field(default_factory=list)
    faq_match: Optional[MatchOutcome] = None
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        faq = None
        if self.faq_match is not None and self.faq_match.matched:
            faq = {"id": self.faq_match.record.id, "kind": self.faq_match.kind}
        return {
            "message": self.message,
            "usedKnowledge": self.used_knowledge,
            "sources": self.sources,
            "tier": self.tier,
            "faqMatch": faq,
            "cached": self.cached,
        }


@dataclass
class _Pass:
    query: str
    conversation_id: Optional[str]
    faq: MatchOutcome
    context: str = ""


CompletionFactory = Callable[[str], Any]
Tier = Callable[[_Pass], Awaitable[Optional[Resolution]]]


def build_context_block(results: List[Dict[str, Any]]) -> str:
    lines = []
    for i, r in enumerate(results, 1):
        text = (r.get("content") or "").strip()
        if text:
            lines.append(f"{i}. {text}")
    if not lines:
        return ""
    return "Relevant knowledge:\n" + "\n".join(lines)


class ChatResolver:
    def __init__(
        self,
        config: RuntimeConfig,
        bridge: TrainingBridge,
        completion_factory: Optional[CompletionFactory] = None,
        records=faq_matcher.FAQ_RECORDS,
    ):
        self.config = config
        self.bridge = bridge
        self.records = records
        self.cache = TTLCache(config.cache_ttl)
        self._completion_factory = completion_factory or self._openai_client
        self._client = None
        self._client_key: Optional[str] = None
        self.tiers: List[Tier] = [
            self._primary,
            self._knowledge_search,
            self._generic_model,
            self._static_faq,
        ]

    def _openai_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self.config.openai_base_url,
            timeout=self.config.completion_timeout,
            max_retries=0,
        )

    async def _completion_client(self, api_key: str):
        """One client per API key; a key change closes the old client."""
        if self._client is not None and self._client_key == api_key:
            return self._client
        stale, self._client = self._client, self._completion_factory(api_key)
        self._client_key = api_key
        if stale is not None:
            await stale.close()
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
        self._client, self._client_key = None, None

    async def resolve(self, query: str, conversation_id: Optional[str] = None) -> Resolution:
        key = faq_matcher.normalize(query)
        outcome = faq_matcher.classify(query, self.records)

        hit = self.cache.get(key)
        if hit is not None:
            return Resolution(hit.message, hit.used_knowledge, hit.tier, list(hit.sources), outcome, cached=True)

        state = _Pass(query=query.strip(), conversation_id=conversation_id, faq=outcome)
        for tier in self.tiers:
            result = await tier(state)
            if result is None:
                continue
            if result.tier in ("primary", "generic"):
                self.cache.set(key, result)
            return result

        logger.info("All chat tiers declined; returning terminal fallback")
        return Resolution(TERMINAL_FALLBACK, False, "terminal", [], outcome)

    # ---- tiers ----
    async def _primary(self, state: _Pass) -> Optional[Resolution]:
        res = await self.bridge.chat(state.query, state.conversation_id, timeout=self.config.chat_timeout)
        if not res.get("success"):
            return None
        return Resolution(res["message"], True, "primary", res.get("sources") or [], state.faq)

    async def _knowledge_search(self, state: _Pass) -> Optional[Resolution]:
        res = await self.bridge.search_knowledge(
            state.query, max_results=SEARCH_MAX_RESULTS, timeout=self.config.search_timeout,
        )
        if res.get("success"):
            state.context = build_context_block(res.get("results") or [])
        return None

    def _system_prompt(self, state: _Pass) -> str:
        if state.context:
            return f"{SYSTEM_PROMPT}\n\n{state.context}"
        if state.faq.matched:
            return f"{SYSTEM_PROMPT}\n\nContext from our FAQ: {state.faq.record.answer}"
        return SYSTEM_PROMPT

    async def _generic_model(self, state: _Pass) -> Optional[Resolution]:
        api_key = self.config.provider_key("openai")
        if not api_key:
            logger.debug("No OpenAI key configured; skipping generic model tier")
            return None
        try:
            client = await self._completion_client(api_key)
            resp = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.config.openai_model,
                    messages=[
                        {"role": "system", "content": self._system_prompt(state)},
                        {"role": "user", "content": state.query},
                    ],
                    temperature=self.config.completion_temperature,
                    max_tokens=self.config.completion_max_tokens,
                ),
                timeout=self.config.completion_timeout,
            )
            text = (resp.choices[0].message.content or "").strip()
        except asyncio.TimeoutError:
            logger.warning("Generic model timed out after %ss", self.config.completion_timeout)
            return None
        except Exception as e:
            logger.warning("Generic model failed: %s", e)
            return None
        if not text:
            return None
        return Resolution(text, bool(state.context), "generic", [], state.faq)

    async def _static_faq(self, state: _Pass) -> Optional[Resolution]:
        if not state.faq.matched:
            return None
        return Resolution(state.faq.record.answer, False, "static", [], state.faq)
