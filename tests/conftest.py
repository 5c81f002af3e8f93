"""Test utilities and fixtures for the LLM relay tests."""

import json
import os
import sys
from typing import Any, AsyncGenerator, Callable, Dict, List
from unittest.mock import AsyncMock

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import httpx
import pytest
import pytest_asyncio

from config import ApplicationConfig
from services import InMemoryEntitlementStore

TEST_ENV = {
    "OPENAI_API_KEY": "sk-test-openai",
    "CLAUDE_API_KEY": "sk-test-claude",
    "GEMINI_API_KEY": "test-gemini",
    "ENTITLEMENT_BACKEND": "memory",
    "ACCESS_TYPE": "account",
    "CODE": "open-sesame,letmein",
    "ADMIN_API_KEY": "test-admin-key",
    "LOG_LEVEL": "WARNING",
}


@pytest.fixture(scope="session")
def mock_config() -> ApplicationConfig:
    """Create a configuration for testing from environment variables."""
    for key, value in TEST_ENV.items():
        os.environ[key] = value
    return ApplicationConfig()


@pytest.fixture
def make_config(mock_config) -> Callable[..., ApplicationConfig]:
    """Build a configuration with some settings overridden by env name."""

    def _make(**overrides: Any) -> ApplicationConfig:
        return ApplicationConfig(**overrides)

    return _make


@pytest.fixture
def memory_store() -> InMemoryEntitlementStore:
    return InMemoryEntitlementStore()


@pytest.fixture
def mock_redis_client() -> AsyncMock:
    """Create a mock Redis client."""
    mock_client = AsyncMock()
    mock_client.connect = AsyncMock()
    mock_client.disconnect = AsyncMock()
    mock_client.is_connected = AsyncMock(return_value=True)
    mock_client.read_fields = AsyncMock(return_value=[None, None, -2, -2])
    mock_client.run_script = AsyncMock(return_value=0)
    mock_client.hget_int = AsyncMock(return_value=None)
    mock_client.hset_if_absent = AsyncMock(return_value=True)
    mock_client.hset = AsyncMock()
    mock_client.hincrby = AsyncMock(return_value=0)
    mock_client.health_check = AsyncMock(return_value={"status": "healthy"})
    return mock_client


def sse_body(*payloads: Any, done: bool = False) -> bytes:
    """Encode payloads as an event stream; dicts are JSON encoded."""
    lines: List[str] = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.append(f"data: {data}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def openai_chunk(text: str = "", finish_reason: Any = None) -> Dict[str, Any]:
    return {"choices": [{"delta": {"content": text}, "finish_reason": finish_reason}]}


def anthropic_delta(text: str) -> Dict[str, Any]:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


def gemini_chunk(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


@pytest.fixture
def sse() -> Callable[..., bytes]:
    return sse_body


@pytest.fixture
def chunks() -> Dict[str, Callable[..., Dict[str, Any]]]:
    """Vendor stream chunk builders."""
    return {"openai": openai_chunk, "anthropic": anthropic_delta, "gemini": gemini_chunk}


@pytest_asyncio.fixture
async def mock_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """An upstream HTTP client whose transport answers with 404 until replaced."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"message": "no route in test"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        yield client
