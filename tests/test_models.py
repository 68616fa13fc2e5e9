import pytest
from pydantic import ValidationError

from dataset_studio.defaults import create_initial_config, example_workspaces
from dataset_studio.models import AgentRole, RAGAction, ToolDefinition, Workspace, normalize_tool_name
from dataset_studio.prompts import DEFAULT_PROMPTS, TemplateError, render_template
from dataset_studio.schemas import (
    BuilderResponse,
    ConfigChanges,
    extract_quality_score,
    to_json_schema,
    BUILDER_AGENT_RESPONSE_SCHEMA,
)

# ---------------------------------------------------------------------------
# Data Model Tests
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "name, expected",
    [("search", "search"), ("  search docs ", "search_docs"), ("a\tb c", "a_b_c")],
)
def test_normalize_tool_name(name, expected):
    assert normalize_tool_name(name) == expected

def test_duplicate_normalized_names_rejected():
    tool = ToolDefinition(id="t1", name="search docs", description="d", code="")
    rag = RAGAction(id="r1", name="search_docs", description="d", code="")
    with pytest.raises(ValidationError, match="Duplicate tool or RAG action name"):
        create_initial_config(tools=[tool], rag_actions=[rag])

def test_available_tools_lists_rag_actions_first():
    tool = ToolDefinition(id="t1", name="tool", description="d", code="")
    rag = RAGAction(id="r1", name="rag", description="d", code="")
    config = create_initial_config(tools=[tool], rag_actions=[rag])
    assert [t.name for t in config.available_tools] == ["rag", "tool"]

def test_config_is_frozen():
    config = create_initial_config()
    with pytest.raises(ValidationError):
        config.scenario = "changed"

def test_agent_lookup_by_role():
    config = create_initial_config()
    assert config.agent(AgentRole.WATCHER) is config.watcher

def test_workspace_json_round_trip():
    for workspace in example_workspaces():
        assert Workspace.model_validate_json(workspace.model_dump_json()) == workspace


# ---------------------------------------------------------------------------
# Template Tests
# ---------------------------------------------------------------------------

def test_render_substitutes_every_occurrence():
    assert render_template("{A} and {A} with {B}", {"A": "x", "B": "y"}) == "x and x with y"

def test_render_does_not_rescan_values():
    assert render_template("Data: {DATA}", {"DATA": "{HISTORY}"}) == "Data: {HISTORY}"

def test_render_ignores_non_placeholder_braces():
    assert render_template('Example: {"qualityScore": 85}', {}) == 'Example: {"qualityScore": 85}'

def test_render_unknown_placeholder_raises():
    with pytest.raises(TemplateError, match="MISSING"):
        render_template("Hello {MISSING}", {})

def test_default_conversation_prompts_render():
    values = {"PROJECT_GOAL": "g", "SCENARIO": "s", "REFERENCE_DATA": "r", "HISTORY": "N/A"}
    for role in (AgentRole.USER, AgentRole.AGENT_LLM):
        assert "{" not in render_template(DEFAULT_PROMPTS[role], values).replace('{"', "")


# ---------------------------------------------------------------------------
# Schema Tests
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw, expected",
    [
        ({"qualityScore": 85}, 85.0),
        ({"qualityScore": 0}, 0.0),
        ({"qualityScore": "85"}, None),
        ({"qualityScore": None}, None),
        ({"qualityScore": False}, None),
        ({}, None),
        (None, None),
        ("85", None),
    ],
)
def test_extract_quality_score(raw, expected):
    assert extract_quality_score(raw) == expected

def test_builder_response_accepts_camel_case():
    reply = BuilderResponse.model_validate(
        {"response": "ok", "configChanges": {"referenceData": "docs", "ragActions": []}}
    )
    assert reply.config_changes.reference_data == "docs"
    assert reply.config_changes.rag_actions == []
    assert not reply.config_changes.is_empty()

def test_config_changes_empty():
    assert ConfigChanges().is_empty()

def test_json_schema_conversion_marks_nullable():
    converted = to_json_schema(BUILDER_AGENT_RESPONSE_SCHEMA)
    changes = converted["properties"]["configChanges"]["properties"]
    assert changes["tools"]["type"] == ["array", "null"]
    assert changes["tools"]["items"]["required"] == ["id", "name", "description", "code"]
    assert converted["required"] == ["response", "configChanges"]
