# models.py
# Data contracts for the dataset generation studio.
# Workspace, config and dataset types. Validation only, no behaviour.

import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


def normalize_tool_name(name: str) -> str:
    """Function name a tool is exposed under: surrounding whitespace dropped, inner whitespace -> '_'."""
    return re.sub(r"\s", "_", name.strip())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AgentRole(str, Enum):
    USER = "user"
    AGENT_LLM = "agent_llm"
    WATCHER = "watcher"
    BUILDER = "builder"


class ProviderType(str, Enum):
    GOOGLE_GEMINI = "google_gemini"
    LOCAL_OPENAI = "local_openai"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class LogType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    ACTION = "action"
    SUCCESS = "success"


class GenerationStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class LocalAIConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str = "http://localhost:1234/v1"
    api_key: str | None = "not-needed"


class AgentConfig(BaseModel):
    """Prompt template and model id bound to one agent role."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    model: str


class ToolDefinition(BaseModel):
    """A unit of user code the Agent LLM can call as a function."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(..., description="Display name; exposed as the function name once normalized.")
    description: str = Field(..., description="Shown to the model as the function's purpose.")
    code: str = Field(..., description="Python source defining tool(sdk, args).")

    @property
    def function_name(self) -> str:
        return normalize_tool_name(self.name)


class RAGAction(ToolDefinition):
    """Retrieval action. Same shape and contract as a tool."""


class ProjectConfig(BaseModel):
    """Snapshot of a workspace's configuration. Replaced, never mutated."""

    model_config = ConfigDict(frozen=True)

    project_name: str
    project_description: str = ""
    scenario: str = ""
    reference_data: str = ""
    ai_provider: ProviderType = ProviderType.LOCAL_OPENAI
    local_ai: LocalAIConfig = Field(default_factory=LocalAIConfig)
    tools: list[ToolDefinition] = Field(default_factory=list)
    rag_actions: list[RAGAction] = Field(default_factory=list)
    unsafe_code_execution: bool = Field(
        default=False,
        description="Run tool code with full host access instead of the restricted sandbox.",
    )
    user: AgentConfig
    agent_llm: AgentConfig
    watcher: AgentConfig
    builder: AgentConfig

    @model_validator(mode="after")
    def check_unique_tool_names(self) -> "ProjectConfig":
        seen: set[str] = set()
        for tool in self.available_tools:
            if tool.function_name in seen:
                raise ValueError(f"Duplicate tool or RAG action name: {tool.function_name!r}")
            seen.add(tool.function_name)
        return self

    @property
    def available_tools(self) -> list[ToolDefinition]:
        return [*self.rag_actions, *self.tools]

    def agent(self, role: AgentRole) -> AgentConfig:
        return getattr(self, role.value)


# ---------------------------------------------------------------------------
# Provider exchange
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    """One function call requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResponse(BaseModel):
    """Outcome of one tool call, fed back to the model."""

    call_id: str
    name: str
    result: Any = None
    error: str | None = None

    def payload(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {"result": self.result}


class HistoryEntry(BaseModel):
    """Provider-neutral entry of a tool-augmented request history."""

    role: Literal["user", "model", "tool"]
    text: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_responses: list[ToolResponse] = Field(default_factory=list)


class GenerationResult(BaseModel):
    text: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    grounding_metadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)
    tool_calls: list[ToolCall] | None = None
    grounding_metadata: dict[str, Any] | None = None


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"turn-{uuid.uuid4().hex[:12]}")
    user_prompt: Message
    agent_response: Message
    quality_score: float = Field(default=0, description="0-100; 0 when the watcher's score was unusable.")


class Dataset(BaseModel):
    """Immutable snapshot of one finished run."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"dataset-{uuid.uuid4().hex[:12]}")
    name: str
    created_at: datetime = Field(default_factory=datetime.now)
    turns: list[ConversationTurn]


class LogMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=datetime.now)
    source: str
    content: str
    type: LogType = LogType.INFO


class Workspace(BaseModel):
    """Externally owned workspace: the config plus everything produced from it."""

    id: str
    config: ProjectConfig
    datasets: list[Dataset] = Field(default_factory=list)
    builder_messages: list[Message] = Field(default_factory=list)
