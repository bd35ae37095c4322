"""Runtime configuration read from the environment (``.env`` is loaded at package import)."""

from __future__ import annotations

import os
from urllib.parse import urlparse

from pydantic import BaseModel

DEFAULT_MODEL = "gpt-4o-mini"


class EngineConfig(BaseModel):
    openai_api_key: str | None = None
    openai_model: str = DEFAULT_MODEL
    openai_cheap_model: str | None = None
    openai_base_url: str | None = None
    llm_max_tokens: int = 4096
    use_mock_llm: bool = False

    mcp_base_url: str | None = None
    mcp_org_id: str | None = None
    mcp_auth_token: str | None = None

    default_entity_id: str = "default"
    trace_dir: str = "./traces"
    heartbeat_interval: float = 15.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, **overrides) -> EngineConfig:
        """Build a config from environment variables; keyword overrides win.

        Environment variables (all optional):
          OPENAI_API_KEY     — required for real LLM calls
          OPENAI_MODEL       — default ``gpt-4o-mini``
          OPENAI_CHEAP_MODEL — model for chat and simple lookups (default: OPENAI_MODEL)
          OPENAI_BASE_URL    — OpenAI-compatible endpoint
          LLM_MAX_TOKENS     — completion ceiling per call
          USE_MOCK_LLM       — set to ``1`` to use the demo mock
          MCP_BASE_URL       — tool server root (``{base}/sse`` is opened)
          MCP_ORG_ID         — organisation header sent to the tool server
          MCP_AUTH_TOKEN     — fallback credential when the caller sends none
          DEFAULT_ENTITY_ID  — entity used when a request names none
          TRACE_DIR          — where trace + feedback files go
          HEARTBEAT_INTERVAL — idle seconds before a heartbeat frame
          LOG_LEVEL          — logging level for CLI / web adapters
        """
        env = os.environ
        values = {
            "openai_api_key": env.get("OPENAI_API_KEY") or None,
            "openai_model": env.get("OPENAI_MODEL", DEFAULT_MODEL),
            "openai_cheap_model": env.get("OPENAI_CHEAP_MODEL") or None,
            "openai_base_url": env.get("OPENAI_BASE_URL") or None,
            "llm_max_tokens": int(env.get("LLM_MAX_TOKENS", "4096")),
            "use_mock_llm": env.get("USE_MOCK_LLM") == "1",
            "mcp_base_url": env.get("MCP_BASE_URL") or None,
            "mcp_org_id": env.get("MCP_ORG_ID") or None,
            "mcp_auth_token": env.get("MCP_AUTH_TOKEN") or None,
            "default_entity_id": env.get("DEFAULT_ENTITY_ID", "default"),
            "trace_dir": env.get("TRACE_DIR", "./traces"),
            "heartbeat_interval": float(env.get("HEARTBEAT_INTERVAL", "15")),
            "log_level": env.get("LOG_LEVEL", "INFO"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def resolve_llm_base_url(base_url: str | None) -> str | None:
    """Return *base_url* unless it points at something that is not a chat-completions API.

    Function gateways and Anthropic-style ``/v1/messages`` endpoints are a
    common misconfiguration; those fall back to the SDK default (``None``).
    """
    if not base_url:
        return None
    parsed = urlparse(base_url.strip())
    if not parsed.scheme or not parsed.netloc:
        return None
    host = parsed.netloc.lower()
    path = parsed.path.rstrip("/").lower()
    if host.endswith(".supabase.co") or "/functions/v1" in path or path.endswith("/v1/messages"):
        return None
    return base_url.strip()
