# gemini.py
# AIProvider backend for Google Gemini via the google-genai SDK.

import os
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from dataset_studio.models import GenerationResult, HistoryEntry, ToolCall, ToolDefinition
from dataset_studio.providers import (
    AIProvider,
    ProviderConfigError,
    ProviderError,
    parse_json_text,
)
from dataset_studio.schemas import SCHEMAS, SchemaType

AVAILABLE_GEMINI_MODELS = ["gemini-2.5-flash"]

# A tool with this exact name switches the request to Gemini's built-in search.
GOOGLE_SEARCH_TOOL = "google_search"


def _to_function_declaration(tool: ToolDefinition) -> types.FunctionDeclaration:
    return types.FunctionDeclaration(
        name=tool.function_name,
        description=tool.description,
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                "query": types.Schema(
                    type=types.Type.STRING,
                    description=f"The input query for the {tool.name} tool.",
                ),
            },
            required=["query"],
        ),
    )


def _to_contents(history: list[HistoryEntry]) -> list[types.Content]:
    contents: list[types.Content] = []
    for entry in history:
        if entry.role == "tool":
            parts = [
                types.Part.from_function_response(name=response.name, response=response.payload())
                for response in entry.tool_responses
            ]
        elif entry.tool_calls:
            parts = [
                types.Part.from_function_call(name=call.name, args=call.args)
                for call in entry.tool_calls
            ]
        else:
            parts = [types.Part.from_text(text=entry.text or "")]
        contents.append(types.Content(role=entry.role, parts=parts))
    return contents


class GeminiProvider(AIProvider):
    """Cloud backend. Reads GEMINI_API_KEY (or API_KEY) unless a key is passed in."""

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
        self._client: genai.Client | None = None

    def _ensure_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise ProviderConfigError(
                    "Gemini API key is missing. Set GEMINI_API_KEY in the environment or .env file."
                )
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def _generate(self, context: str, **kwargs: Any) -> types.GenerateContentResponse:
        client = self._ensure_client()
        try:
            return client.models.generate_content(**kwargs)
        except genai_errors.APIError as exc:
            raise ProviderError(f"Gemini {context} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # AIProvider
    # ------------------------------------------------------------------

    def generate_content(self, model: str, prompt: str) -> str:
        response = self._generate("generate_content", model=model, contents=prompt)
        return response.text or ""

    def generate_content_with_tools(
        self,
        model: str,
        history: list[HistoryEntry],
        tools: list[ToolDefinition],
        system_instruction: str | None = None,
    ) -> GenerationResult:
        if any(tool.name == GOOGLE_SEARCH_TOOL for tool in tools):
            request_tools = [types.Tool(google_search=types.GoogleSearch())]
        elif tools:
            request_tools = [
                types.Tool(function_declarations=[_to_function_declaration(tool) for tool in tools])
            ]
        else:
            request_tools = None

        response = self._generate(
            "generate_content_with_tools",
            model=model,
            contents=_to_contents(history),
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                tools=request_tools,
            ),
        )

        text = response.text
        if response.function_calls and not (text and text.strip()):
            return GenerationResult(
                tool_calls=[
                    ToolCall(id=call.id or call.name, name=call.name, args=call.args or {})
                    for call in response.function_calls
                ]
            )

        grounding = None
        if response.candidates and response.candidates[0].grounding_metadata:
            grounding = response.candidates[0].grounding_metadata.model_dump(
                mode="json", exclude_none=True
            )
        return GenerationResult(text=text or None, grounding_metadata=grounding)

    def generate_json_content(self, model: str, prompt: str, schema_type: SchemaType) -> Any:
        schema = SCHEMAS.get(schema_type)
        if schema is None:
            raise ProviderError(f'Schema for type "{schema_type}" not found.')

        response = self._generate(
            "generate_json_content",
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        return parse_json_text(response.text or "")

    def list_models(self) -> list[str]:
        return list(AVAILABLE_GEMINI_MODELS)

    def prime_model(self, model: str) -> None:
        # Cloud models are always warm.
        return None
