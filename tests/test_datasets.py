import csv
import io
import json
import pytest

from dataset_studio.datasets import export_dataset, export_filename, from_json, to_csv, to_json, to_jsonl
from dataset_studio.models import ConversationTurn, Dataset, Message, MessageRole, ToolCall


@pytest.fixture
def dataset():
    turns = [
        ConversationTurn(
            id="turn-1",
            user_prompt=Message(role=MessageRole.USER, content='What is "syzygy"?'),
            agent_response=Message(
                role=MessageRole.ASSISTANT,
                content="An alignment of three bodies.",
                tool_calls=[ToolCall(id="c1", name="search_local_documents", args={"query": "syzygy"})],
                grounding_metadata={"grounding_chunks": [{"web": {"uri": "https://example.com"}}]},
            ),
            quality_score=85,
        ),
        ConversationTurn(
            id="turn-2",
            user_prompt=Message(role=MessageRole.USER, content="And, in one line?"),
            agent_response=Message(role=MessageRole.ASSISTANT, content="Sun, Earth, Moon\nin a row."),
            quality_score=72.5,
        ),
    ]
    return Dataset(name="HN Q&A - 2026-10-19 10:00:00", turns=turns)


# ---------------------------------------------------------------------------
# JSON Tests
# ---------------------------------------------------------------------------

def test_json_round_trip_is_lossless(dataset):
    restored = from_json(to_json(dataset))
    assert restored == dataset
    assert [t.id for t in restored.turns] == ["turn-1", "turn-2"]
    assert restored.turns[0].agent_response.tool_calls[0].args == {"query": "syzygy"}


# ---------------------------------------------------------------------------
# JSONL Tests
# ---------------------------------------------------------------------------

def test_jsonl_has_one_chat_line_per_turn(dataset):
    lines = to_jsonl(dataset).split("\n")
    assert len(lines) == 2
    assert json.loads(lines[0]) == {
        "messages": [
            {"role": "user", "content": 'What is "syzygy"?'},
            {"role": "assistant", "content": "An alignment of three bodies."},
        ]
    }


# ---------------------------------------------------------------------------
# CSV Tests
# ---------------------------------------------------------------------------

def test_csv_header_and_quote_escaping(dataset):
    lines = to_csv(dataset).split("\n")
    assert lines[0] == '"turn_id","quality_score","user_prompt","agent_response"'
    assert lines[1] == '"turn-1",85.0,"What is ""syzygy""?","An alignment of three bodies."'

def test_csv_multiline_fields_parse_back(dataset):
    rows = list(csv.reader(io.StringIO(to_csv(dataset)), quoting=csv.QUOTE_NONNUMERIC))
    assert len(rows) == 3
    assert rows[2] == ["turn-2", 72.5, "And, in one line?", "Sun, Earth, Moon\nin a row."]


# ---------------------------------------------------------------------------
# Export Tests
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("fmt", ["json", "jsonl", "csv"])
def test_export_writes_file(dataset, tmp_path, fmt):
    path = export_dataset(dataset, tmp_path / "out", fmt)
    assert path.exists()
    assert path.suffix == f".{fmt}"
    assert path.parent == tmp_path / "out"

def test_export_filename_is_filesystem_safe(dataset):
    assert export_filename(dataset, "json") == "HN_Q_A_-_2026-10-19_10_00_00.json"

def test_export_rejects_unknown_format(dataset, tmp_path):
    with pytest.raises(ValueError):
        export_dataset(dataset, tmp_path, "xml")
