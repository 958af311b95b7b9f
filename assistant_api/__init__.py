"""
assistant_api package: provider-agnostic access to the remote conversational assistant.

The classification session core talks to the remote assistant only through the small
contract defined here, so it does not change when the vendor SDK does. The design
follows the adapter pattern: thread/message/run primitives form a stable interface and
vendor details (HTTP transport, pagination, error types) are encapsulated behind it.

Included modules:
- base: The abstract `AssistantClient` interface and the two exception types every
  implementation raises (`AssistantAPIError`, `SessionNotFound`).
- openai_client: The OpenAI Assistants API implementation.
- mock_client: A deterministic, in-memory implementation for local development, demos
  and tests. It runs the whole service without credentials or network access and can be
  scripted to produce failing runs, malformed replies or expired sessions.

Public exports:
- AssistantClient, AssistantAPIError, SessionNotFound
- MockAssistantClient
- get_assistant_client: factory selecting the implementation from configuration
"""

from typing import Any, Dict, Optional

from .base import AssistantAPIError, AssistantClient, SessionNotFound
from .mock_client import MockAssistantClient


def get_assistant_client(config: Optional[Dict[str, Any]] = None) -> AssistantClient:
    """
    Build the assistant client selected by `config["assistant"]["provider"]`.

    Supported providers are "openai" and "mock" (case-insensitive). The OpenAI SDK is
    imported lazily so the mock provider works without it being configured.

    Args:
        config (Optional[Dict[str, Any]]): The global CONFIG mapping. Defaults to `config.CONFIG`.

    Returns:
        AssistantClient: A ready-to-use client.

    Raises:
        ValueError: If the provider is unsupported or the assistant id is missing.
        RuntimeError: If OPENAI_API_KEY is missing for the OpenAI provider.
    """
    if config is None:
        from config import CONFIG as config

    assistant_cfg = config.get("assistant", {}) or {}
    provider = str(assistant_cfg.get("provider", "openai")).strip().lower()

    if provider == "mock":
        return MockAssistantClient()
    if provider == "openai":
        from llm_cloud.provider import get_client
        from .openai_client import OpenAIAssistantClient

        return OpenAIAssistantClient(get_client(config), assistant_cfg.get("assistant_id", ""))

    raise ValueError(f"Unsupported assistant provider: {provider}")


__all__ = [
    "AssistantAPIError",
    "AssistantClient",
    "MockAssistantClient",
    "SessionNotFound",
    "get_assistant_client",
]
