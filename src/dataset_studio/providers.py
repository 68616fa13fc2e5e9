# providers.py
# AIProvider capability interface and backend selection.
#
# The generation cycle talks to models exclusively through this interface.
# Backends differ only in wire format and request shaping, so callers never
# branch on which one they hold.

import json
import re
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlparse

from dotenv import load_dotenv

from dataset_studio.models import (
    GenerationResult,
    HistoryEntry,
    LocalAIConfig,
    ProjectConfig,
    ProviderType,
    ToolDefinition,
)
from dataset_studio.schemas import SchemaType

load_dotenv()


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ProviderError(Exception):
    """Raised when a model backend call fails."""


class ProviderConfigError(ProviderError):
    """Raised when credentials or the endpoint URL are missing or invalid. Never retried."""


class ResponseParseError(ProviderError):
    """Raised when a structured response is empty or not valid JSON."""


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class AIProvider(ABC):
    @abstractmethod
    def generate_content(self, model: str, prompt: str) -> str:
        """Plain text completion for a single prompt."""

    @abstractmethod
    def generate_content_with_tools(
        self,
        model: str,
        history: list[HistoryEntry],
        tools: list[ToolDefinition],
        system_instruction: str | None = None,
    ) -> GenerationResult:
        """
        One step of a tool-capable conversation.

        Exactly one of `text` / `tool_calls` is populated on the result.
        An empty result is returned as-is; the caller decides it is a
        protocol violation.
        """

    @abstractmethod
    def generate_json_content(self, model: str, prompt: str, schema_type: SchemaType) -> Any:
        """Schema-constrained generation. Returns the parsed JSON value; raises ResponseParseError."""

    @abstractmethod
    def list_models(self) -> list[str]:
        ...

    @abstractmethod
    def prime_model(self, model: str) -> None:
        """Wake a possibly-cold model. No-op where cold starts are not a concern."""


# ---------------------------------------------------------------------------
# Helpers shared by backends
# ---------------------------------------------------------------------------


def tool_parameters_schema(tool: ToolDefinition) -> dict[str, Any]:
    """Every tool takes a single required string argument, `query`."""
    return {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": f"The input query for the {tool.name} tool.",
            },
        },
        "required": ["query"],
    }


def parse_json_text(raw: str) -> Any:
    """
    Parse a model's JSON output, tolerating a markdown code fence around it.
    Raises ResponseParseError on empty or malformed content.
    """
    raw = (raw or "").strip()
    if not raw:
        raise ResponseParseError("Model returned an empty JSON response.")

    match = re.search(r"```(?:json)?\s*(.*?)\s*```", raw, re.DOTALL)
    payload = match.group(1).strip() if match else raw

    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(
            f"Failed to parse JSON response from model: {exc}. Raw output: {raw}"
        ) from exc


def is_valid_url(url: str | None) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return bool(parsed.scheme in ("http", "https") and parsed.netloc)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_local_provider: AIProvider | None = None
_local_settings: LocalAIConfig | None = None
_cloud_provider: AIProvider | None = None


def get_ai_provider(config: ProjectConfig) -> AIProvider:
    """
    Return the backend selected by `config`.

    The cloud backend is a process-wide singleton. A single local backend is
    kept and replaced whenever the connection settings change.
    """
    global _cloud_provider, _local_provider, _local_settings

    if config.ai_provider == ProviderType.LOCAL_OPENAI:
        from dataset_studio.openai_compat import OpenAICompatibleProvider

        if _local_provider is None or _local_settings != config.local_ai:
            _local_provider = OpenAICompatibleProvider(config.local_ai)
            _local_settings = config.local_ai
        return _local_provider

    if _cloud_provider is None:
        from dataset_studio.gemini import GeminiProvider

        _cloud_provider = GeminiProvider()
    return _cloud_provider
