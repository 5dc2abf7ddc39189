import asyncio
import os
import sys
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

os.environ.setdefault("METRICS_ENABLED", "0")
os.environ.setdefault("PYTHON_API_URL", "http://training.test")

from runtime_config import GOOGLE_CREDENTIAL_FIELDS, RuntimeConfig
from training_bridge import TrainingBridge


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    for key in GOOGLE_CREDENTIAL_FIELDS:
        monkeypatch.delenv(key, raising=False)


def make_bridge(handler, **overrides):
    overrides.setdefault("training_api_url", "http://training.test")
    config = RuntimeConfig(**overrides)
    return TrainingBridge(config, transport=httpx.MockTransport(handler))


def routes(table):
    """MockTransport handler dispatching on (method, path); unknown routes get a 404."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        action = table.get((request.method, request.url.path))
        if action is None:
            return httpx.Response(404, json={"detail": "not found"})
        if isinstance(action, Exception):
            raise action
        if callable(action):
            return action(request)
        status, body = action
        return httpx.Response(status, json=body)

    handler.calls = calls
    return handler


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class FakeCompletions:
    def __init__(self, text="", exc=None, delay=0.0):
        self.text = text
        self.exc = exc
        self.delay = delay
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc:
            raise self.exc
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.text))])


class FakeCompletionClient:
    def __init__(self, **kwargs):
        self.completions = FakeCompletions(**kwargs)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self):
        self.closed = True
