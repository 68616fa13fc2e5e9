# builder.py
# Conversational configuration: the Builder agent and the tool code editor.
#
# Both run between generation cycles. The Builder proposes a partial config
# update through the builder schema; applying it yields a new ProjectConfig
# that replaces the workspace's config wholesale.

import json
import re
from collections.abc import Callable

from pydantic import ValidationError

from dataset_studio.events import EventLog
from dataset_studio.models import (
    LogType,
    Message,
    MessageRole,
    ProjectConfig,
    ToolDefinition,
    Workspace,
)
from dataset_studio.prompts import EDITOR_AGENT_PROMPT_TEMPLATE, TemplateError, render_template
from dataset_studio.providers import AIProvider, ProviderError, get_ai_provider
from dataset_studio.schemas import BuilderResponse, ConfigChanges, SchemaType

SOURCE = "Builder Agent"
REFERENCE_SNIPPET_LENGTH = 500
MALFORMED_REPLY = "I encountered an internal error with my response format. Please try rephrasing your request."


def apply_config_changes(config: ProjectConfig, changes: ConfigChanges) -> ProjectConfig:
    """
    Return a new config with `changes` applied.

    Scalars overwrite. A `tools` or `rag_actions` list replaces the existing
    list entirely, so an item left out is deleted regardless of its id.
    """
    updated = {**config.model_dump(), **changes.model_dump(exclude_none=True)}
    return ProjectConfig.model_validate(updated)


def _tools_json(tools: list[ToolDefinition], empty: str) -> str:
    if not tools:
        return empty
    return json.dumps([tool.model_dump() for tool in tools], indent=2)


def builder_prompt(config: ProjectConfig, user_message: str) -> str:
    return render_template(
        config.builder.prompt,
        {
            "USER_MESSAGE": user_message,
            "PROJECT_DESCRIPTION": config.project_description,
            "SCENARIO": config.scenario,
            "REFERENCE_DATA_SNIPPET": config.reference_data[:REFERENCE_SNIPPET_LENGTH],
            "IS_UNSAFE_EXECUTION_ENABLED": str(config.unsafe_code_execution).lower(),
            "CURRENT_TOOLS": _tools_json(config.tools, "No tools defined."),
            "CURRENT_RAG_ACTIONS": _tools_json(config.rag_actions, "No RAG actions defined."),
        },
    )


class BuilderAgent:
    """
    Chat front-end for editing a workspace config in natural language.

    Failures never raise to the caller: they become an assistant message in
    the builder transcript and an error event, and the config is left as is.
    """

    def __init__(
        self,
        provider_factory: Callable[[ProjectConfig], AIProvider] | None = None,
        events: EventLog | None = None,
    ) -> None:
        self._provider_factory = provider_factory or get_ai_provider
        self.events = events if events is not None else EventLog()

    def send(self, workspace: Workspace, text: str) -> Message:
        """Send one user message. Returns the assistant reply appended to the transcript."""
        workspace.builder_messages.append(Message(role=MessageRole.USER, content=text))
        config = workspace.config

        try:
            prompt = builder_prompt(config, text)
            raw = self._provider_factory(config).generate_json_content(
                config.builder.model, prompt, SchemaType.BUILDER_AGENT
            )
        except (ProviderError, TemplateError) as exc:
            self.events.add(SOURCE, f"Builder Agent Error: {exc}", LogType.ERROR)
            return self._reply(workspace, f"I encountered an error: {exc}")

        try:
            reply = BuilderResponse.model_validate(raw)
        except ValidationError:
            self.events.add(
                SOURCE,
                "Builder agent returned an invalid response shape. Expected "
                f"{{ response: string, configChanges: object }}, but got: {json.dumps(raw, default=str)}",
                LogType.ERROR,
            )
            return self._reply(workspace, MALFORMED_REPLY)

        if not reply.config_changes.is_empty():
            try:
                workspace.config = apply_config_changes(config, reply.config_changes)
            except ValidationError as exc:
                self.events.add(SOURCE, f"Proposed changes were rejected: {exc}", LogType.ERROR)
                return self._reply(workspace, f"I encountered an error: {exc}")
            changed = ", ".join(reply.config_changes.model_dump(exclude_none=True))
            self.events.add(SOURCE, f"Configuration updated: {changed}", LogType.SUCCESS)

        return self._reply(workspace, reply.response)

    @staticmethod
    def _reply(workspace: Workspace, content: str) -> Message:
        message = Message(role=MessageRole.ASSISTANT, content=content)
        workspace.builder_messages.append(message)
        return message


# ---------------------------------------------------------------------------
# Tool code editor
# ---------------------------------------------------------------------------

_CODE_FENCE = re.compile(r"^```[\w-]*\s*\n(.*?)\n?```\s*$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    text = text.strip()
    match = _CODE_FENCE.match(text)
    return match.group(1).strip() if match else text


def edit_tool_code(
    config: ProjectConfig,
    tool: ToolDefinition,
    request: str,
    current_code: str | None = None,
    provider_factory: Callable[[ProjectConfig], AIProvider] | None = None,
) -> str:
    """
    Ask the builder model to rewrite a tool's code. Returns the complete new code.
    Raises ProviderError when the model returns nothing usable.
    """
    prompt = render_template(
        EDITOR_AGENT_PROMPT_TEMPLATE,
        {
            "TOOL_DESCRIPTION": tool.description,
            "USER_REQUEST": request,
            "CURRENT_CODE": tool.code if current_code is None else current_code,
        },
    )
    provider = (provider_factory or get_ai_provider)(config)
    code = strip_code_fence(provider.generate_content(config.builder.model, prompt))
    if not code:
        raise ProviderError("The AI returned an empty or invalid response.")
    return code
