# openai_compat.py
# AIProvider backend for OpenAI-compatible servers (LM Studio, Ollama, vLLM, ...).

import json
from typing import Any

from openai import OpenAI, OpenAIError

from dataset_studio.models import (
    GenerationResult,
    HistoryEntry,
    LocalAIConfig,
    ToolCall,
    ToolDefinition,
)
from dataset_studio.providers import (
    AIProvider,
    ProviderConfigError,
    ProviderError,
    ResponseParseError,
    is_valid_url,
    parse_json_text,
    tool_parameters_schema,
)
from dataset_studio.schemas import SCHEMAS, SchemaType, to_json_schema

JSON_SYSTEM_PROMPT = "You are a helpful assistant designed to output JSON according to the provided schema."
PRIME_PROMPT = "This is a warm-up request. Respond with only the word 'OK'."
NO_RESPONSE = "No response from model."


def _to_openai_tool(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.function_name,
            "description": tool.description,
            "parameters": tool_parameters_schema(tool),
        },
    }


def _to_openai_messages(history: list[HistoryEntry]) -> list[dict[str, Any]]:
    """Flatten provider-neutral history into chat-completions messages."""
    messages: list[dict[str, Any]] = []
    for entry in history:
        if entry.role == "user":
            messages.append({"role": "user", "content": entry.text or ""})
        elif entry.role == "model":
            message: dict[str, Any] = {"role": "assistant", "content": entry.text or None}
            if entry.tool_calls:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.args)},
                    }
                    for call in entry.tool_calls
                ]
            messages.append(message)
        else:
            for response in entry.tool_responses:
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": response.call_id,
                        "content": json.dumps(response.payload(), default=str),
                    }
                )
    return messages


def _parse_tool_call(raw: Any) -> ToolCall:
    arguments = raw.function.arguments or "{}"
    try:
        args = json.loads(arguments)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(
            f"Tool call '{raw.function.name}' has malformed arguments: {arguments}"
        ) from exc
    if not isinstance(args, dict):
        args = {"query": args}
    return ToolCall(id=raw.id or raw.function.name, name=raw.function.name, args=args)


class OpenAICompatibleProvider(AIProvider):
    """
    Local backend speaking the OpenAI chat-completions protocol.

    The base URL is validated before every call so a half-typed setting
    fails fast with a configuration error instead of a connection timeout.
    """

    def __init__(self, config: LocalAIConfig) -> None:
        self.config = config
        self._client = OpenAI(
            api_key=config.api_key or "not-needed",
            base_url=config.base_url,
        )

    def _require_base_url(self) -> None:
        if not is_valid_url(self.config.base_url):
            raise ProviderConfigError("Local AI Provider Base URL is not configured or is invalid.")

    def _complete(self, context: str, **kwargs: Any) -> Any:
        try:
            return self._client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            raise ProviderError(f"(Local AI) {context} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # AIProvider
    # ------------------------------------------------------------------

    def list_models(self) -> list[str]:
        if not is_valid_url(self.config.base_url):
            return []
        try:
            models = self._client.models.list()
        except OpenAIError as exc:
            raise ProviderError(f"(Local AI) listing models failed: {exc}") from exc
        return sorted(model.id for model in models.data)

    def generate_content(self, model: str, prompt: str) -> str:
        self._require_base_url()
        completion = self._complete(
            "generate_content",
            model=model,
            messages=[{"role": "user", "content": prompt}],
        )
        if not completion.choices:
            return NO_RESPONSE
        return completion.choices[0].message.content or NO_RESPONSE

    def generate_content_with_tools(
        self,
        model: str,
        history: list[HistoryEntry],
        tools: list[ToolDefinition],
        system_instruction: str | None = None,
    ) -> GenerationResult:
        self._require_base_url()

        messages = _to_openai_messages(history)
        if system_instruction:
            messages.insert(0, {"role": "system", "content": system_instruction})

        request: dict[str, Any] = {"model": model, "messages": messages}
        if tools:
            request["tools"] = [_to_openai_tool(tool) for tool in tools]

        completion = self._complete("generate_content_with_tools", **request)
        if not completion.choices:
            return GenerationResult()

        message = completion.choices[0].message
        # Text wins when the model sends both.
        if message.content and message.content.strip():
            return GenerationResult(text=message.content)
        if message.tool_calls:
            return GenerationResult(tool_calls=[_parse_tool_call(call) for call in message.tool_calls])
        return GenerationResult()

    def generate_json_content(self, model: str, prompt: str, schema_type: SchemaType) -> Any:
        self._require_base_url()

        schema = SCHEMAS.get(schema_type)
        if schema is None:
            raise ProviderError(f'Schema for type "{schema_type}" not found.')

        # json_schema response format is what most local OpenAI-compatible servers accept.
        response_format = {
            "type": "json_schema",
            "json_schema": {
                "name": f"{schema_type.value}_response",
                "strict": True,
                "schema": to_json_schema(schema),
            },
        }
        completion = self._complete(
            "generate_json_content",
            model=model,
            messages=[
                {"role": "system", "content": JSON_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format=response_format,
        )
        raw = completion.choices[0].message.content if completion.choices else ""
        return parse_json_text(raw or "")

    def prime_model(self, model: str) -> None:
        self._require_base_url()
        try:
            self._client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": PRIME_PROMPT}],
                max_tokens=5,
            )
        except OpenAIError as exc:
            raise ProviderError(
                f"Failed to wake up model '{model}'. Ensure it's available and the provider "
                f"is running. Original error: {exc}"
            ) from exc
