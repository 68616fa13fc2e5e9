# schemas.py
# Structured-output contracts for the Watcher and Builder agents.
#
# Each contract exists twice: a response schema handed to the model backend
# to constrain its output, and a pydantic model used to validate what comes
# back. The response schemas use the cloud backend's OpenAPI-subset dialect;
# to_json_schema() converts them for OpenAI-compatible servers.

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from dataset_studio.models import RAGAction, ToolDefinition


class SchemaType(str, Enum):
    BUILDER_AGENT = "builderAgent"
    WATCHER_AGENT = "watcherAgent"


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

_TOOL_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "id": {"type": "STRING"},
        "name": {"type": "STRING"},
        "description": {"type": "STRING"},
        "code": {"type": "STRING"},
    },
    "required": ["id", "name", "description", "code"],
}

BUILDER_AGENT_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "response": {
            "type": "STRING",
            "description": (
                "A friendly, conversational reply to the user, explaining what you've updated. "
                "Acknowledge their request and confirm the changes. If you think reference data "
                "is needed, suggest it."
            ),
        },
        "configChanges": {
            "type": "OBJECT",
            "description": "A JSON object containing ONLY the keys that need to be updated.",
            "properties": {
                "projectDescription": {
                    "type": "STRING",
                    "description": 'The high-level goal (e.g., "A helpful customer support chatbot").',
                    "nullable": True,
                },
                "scenario": {
                    "type": "STRING",
                    "description": (
                        'A specific context for conversations (e.g., "The user is asking about '
                        'a missing order").'
                    ),
                    "nullable": True,
                },
                "referenceData": {
                    "type": "STRING",
                    "description": (
                        "A knowledge base for the agents (e.g., sample poems, API documentation, "
                        "product info)."
                    ),
                    "nullable": True,
                },
                "tools": {
                    "type": "ARRAY",
                    "description": (
                        "The complete list of ALL function call tools. To modify a tool, include its "
                        "updated version here. To add a tool, include it in the list. To delete a "
                        "tool, omit it from the list."
                    ),
                    "items": _TOOL_SCHEMA,
                    "nullable": True,
                },
                "ragActions": {
                    "type": "ARRAY",
                    "description": (
                        "The complete list of ALL RAG actions. To modify an action, include its "
                        "updated version here. To add an action, include it in the list. To delete "
                        "an action, omit it from the list."
                    ),
                    "items": _TOOL_SCHEMA,
                    "nullable": True,
                },
            },
        },
    },
    "required": ["response", "configChanges"],
}

WATCHER_QUALITY_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "qualityScore": {
            "type": "NUMBER",
            "description": "A numeric quality score from 0 to 100 for the agent's response.",
        },
    },
    "required": ["qualityScore"],
}

SCHEMAS: dict[SchemaType, dict[str, Any]] = {
    SchemaType.BUILDER_AGENT: BUILDER_AGENT_RESPONSE_SCHEMA,
    SchemaType.WATCHER_AGENT: WATCHER_QUALITY_RESPONSE_SCHEMA,
}

_JSON_TYPES = {
    "STRING": "string",
    "NUMBER": "number",
    "INTEGER": "integer",
    "BOOLEAN": "boolean",
    "NULL": "null",
    "OBJECT": "object",
    "ARRAY": "array",
}


def to_json_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Convert a response schema to standard JSON Schema. `nullable` becomes a type union."""
    converted: dict[str, Any] = {}
    json_type = _JSON_TYPES.get(schema.get("type", ""))
    if json_type:
        converted["type"] = json_type
    if "properties" in schema:
        converted["properties"] = {
            key: to_json_schema(value) for key, value in schema["properties"].items()
        }
    if "required" in schema:
        converted["required"] = list(schema["required"])
    if "items" in schema:
        converted["items"] = to_json_schema(schema["items"])
    if "description" in schema:
        converted["description"] = schema["description"]
    if schema.get("nullable") and json_type:
        converted["type"] = [json_type, "null"]
    return converted


# ---------------------------------------------------------------------------
# Validation models
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConfigChanges(_CamelModel):
    """
    Partial config update proposed by the Builder agent.

    Scalar fields overwrite. `tools` and `rag_actions`, when present, replace
    the whole list: anything absent from the new list is deleted.
    """

    project_description: str | None = None
    scenario: str | None = None
    reference_data: str | None = None
    tools: list[ToolDefinition] | None = None
    rag_actions: list[RAGAction] | None = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class BuilderResponse(_CamelModel):
    response: str
    config_changes: ConfigChanges = Field(default_factory=ConfigChanges)


def extract_quality_score(raw: Any) -> float | None:
    """Return the numeric `qualityScore` of a watcher reply, or None when absent or not a number."""
    if not isinstance(raw, dict):
        return None
    score = raw.get("qualityScore")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return None
    return float(score)
