import pytest

from conftest import FakeProvider
from dataset_studio.builder import (
    MALFORMED_REPLY,
    BuilderAgent,
    apply_config_changes,
    builder_prompt,
    edit_tool_code,
    strip_code_fence,
)
from dataset_studio.defaults import create_initial_config, create_workspace
from dataset_studio.models import MessageRole, RAGAction, ToolDefinition
from dataset_studio.providers import ProviderError
from dataset_studio.schemas import ConfigChanges

TOOL_A = ToolDefinition(id="tool-a", name="alpha", description="A", code="def tool(sdk, args):\n    return 'a'\n")
TOOL_B = ToolDefinition(id="tool-b", name="beta", description="B", code="def tool(sdk, args):\n    return 'b'\n")
TOOL_C = ToolDefinition(id="tool-c", name="gamma", description="C", code="def tool(sdk, args):\n    return 'c'\n")


def make_agent(provider, events):
    return BuilderAgent(provider_factory=lambda config: provider, events=events)


# ---------------------------------------------------------------------------
# Config Change Application Tests
# ---------------------------------------------------------------------------

def test_tools_list_is_replaced_not_merged():
    config = create_initial_config(tools=[TOOL_A, TOOL_B])
    updated = apply_config_changes(config, ConfigChanges(tools=[TOOL_C]))
    assert updated.tools == [TOOL_C]

def test_item_with_same_id_is_replaced():
    config = create_initial_config(tools=[TOOL_A, TOOL_B])
    edited = TOOL_A.model_copy(update={"description": "edited"})
    updated = apply_config_changes(config, ConfigChanges(tools=[edited]))
    assert updated.tools == [edited]

def test_scalars_overwrite_and_rest_is_untouched():
    config = create_initial_config(tools=[TOOL_A], rag_actions=[RAGAction(**TOOL_B.model_dump())])
    updated = apply_config_changes(config, ConfigChanges(scenario="A new scenario"))

    assert updated.scenario == "A new scenario"
    assert updated.project_description == config.project_description
    assert updated.tools == config.tools
    assert updated.rag_actions == config.rag_actions
    assert config.scenario != "A new scenario"

def test_empty_list_deletes_everything():
    config = create_initial_config(tools=[TOOL_A, TOOL_B])
    assert apply_config_changes(config, ConfigChanges(tools=[])).tools == []

def test_camel_case_changes_are_accepted():
    changes = ConfigChanges.model_validate(
        {"projectDescription": "Goal", "ragActions": [TOOL_C.model_dump()]}
    )
    updated = apply_config_changes(create_initial_config(), changes)
    assert updated.project_description == "Goal"
    assert [a.name for a in updated.rag_actions] == ["gamma"]


# ---------------------------------------------------------------------------
# Builder Prompt Tests
# ---------------------------------------------------------------------------

def test_builder_prompt_renders_context():
    config = create_initial_config(reference_data="x" * 800, unsafe_code_execution=True)
    prompt = builder_prompt(config, "add a weather tool")

    assert '"add a weather tool"' in prompt
    assert "x" * 500 in prompt and "x" * 501 not in prompt
    assert "Unsafe Code Execution Enabled: true" in prompt
    assert "No tools defined." in prompt
    assert "No RAG actions defined." in prompt

def test_builder_prompt_lists_current_tools():
    prompt = builder_prompt(create_initial_config(tools=[TOOL_A]), "hi")
    assert '"id": "tool-a"' in prompt


# ---------------------------------------------------------------------------
# Builder Agent Tests
# ---------------------------------------------------------------------------

def test_send_applies_changes_and_records_transcript(events):
    workspace = create_workspace(tools=[TOOL_A, TOOL_B])
    provider = FakeProvider(
        json_responses=[
            {
                "response": "Replaced your tools with gamma.",
                "configChanges": {"scenario": "Weather chat", "tools": [TOOL_C.model_dump()]},
            }
        ]
    )

    reply = make_agent(provider, events).send(workspace, "swap the tools")

    assert reply.content == "Replaced your tools with gamma."
    assert workspace.config.scenario == "Weather chat"
    assert workspace.config.tools == [TOOL_C]
    assert [(m.role, m.content) for m in workspace.builder_messages] == [
        (MessageRole.USER, "swap the tools"),
        (MessageRole.ASSISTANT, "Replaced your tools with gamma."),
    ]
    assert "swap the tools" in provider.json_prompts[0]

def test_send_without_changes_keeps_config(events):
    workspace = create_workspace()
    before = workspace.config
    provider = FakeProvider(json_responses=[{"response": "Could you clarify?", "configChanges": {}}])

    make_agent(provider, events).send(workspace, "hmm")

    assert workspace.config is before

def test_malformed_reply_leaves_config_unchanged(events):
    workspace = create_workspace()
    before = workspace.config
    provider = FakeProvider(json_responses=[{"unexpected": True}])

    reply = make_agent(provider, events).send(workspace, "do something")

    assert reply.content == MALFORMED_REPLY
    assert workspace.config is before
    assert events.of_type("error")

def test_provider_error_becomes_reply(events):
    workspace = create_workspace()

    class FailingProvider(FakeProvider):
        def generate_json_content(self, model, prompt, schema_type):
            raise ProviderError("backend down")

    reply = make_agent(FailingProvider(), events).send(workspace, "hello")

    assert reply.content == "I encountered an error: backend down"
    assert len(workspace.builder_messages) == 2

def test_duplicate_tool_names_are_rejected(events):
    workspace = create_workspace(tools=[TOOL_A])
    before = workspace.config
    duplicate = TOOL_B.model_copy(update={"name": "alpha"})
    provider = FakeProvider(
        json_responses=[{"response": "ok", "configChanges": {"tools": [TOOL_A.model_dump(), duplicate.model_dump()]}}]
    )

    reply = make_agent(provider, events).send(workspace, "duplicate it")

    assert reply.content.startswith("I encountered an error")
    assert workspace.config is before


# ---------------------------------------------------------------------------
# Tool Code Editor Tests
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("def tool(sdk, args):\n    return 1", "def tool(sdk, args):\n    return 1"),
        ("```python\ndef tool(sdk, args):\n    return 1\n```", "def tool(sdk, args):\n    return 1"),
        ("```\nx = 1\n```\n", "x = 1"),
    ],
)
def test_strip_code_fence(raw, expected):
    assert strip_code_fence(raw) == expected

def test_edit_tool_code_returns_new_code():
    config = create_initial_config(tools=[TOOL_A])
    provider = FakeProvider(texts=["```python\ndef tool(sdk, args):\n    return 'A'\n```"])

    code = edit_tool_code(config, TOOL_A, "return uppercase", provider_factory=lambda c: provider)

    assert code == "def tool(sdk, args):\n    return 'A'"
    assert "return uppercase" in provider.prompts[0]
    assert TOOL_A.code in provider.prompts[0]

def test_edit_tool_code_rejects_empty_reply():
    config = create_initial_config()
    provider = FakeProvider(texts=["   "])
    with pytest.raises(ProviderError):
        edit_tool_code(config, TOOL_A, "anything", provider_factory=lambda c: provider)
