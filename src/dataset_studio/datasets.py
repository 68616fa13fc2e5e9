# datasets.py
# Serialization of committed datasets.
#
#   json  — the full Dataset object, lossless
#   jsonl — one {"messages": [...]} chat-format line per turn
#   csv   — turn_id, quality_score, user_prompt, agent_response

import csv
import io
import json
import re
from pathlib import Path
from typing import Literal

from dataset_studio.models import Dataset

ExportFormat = Literal["json", "jsonl", "csv"]
EXPORT_FORMATS: tuple[str, ...] = ("json", "jsonl", "csv")

CSV_HEADER = ("turn_id", "quality_score", "user_prompt", "agent_response")


def to_json(dataset: Dataset) -> str:
    return dataset.model_dump_json(indent=2)


def from_json(text: str) -> Dataset:
    return Dataset.model_validate_json(text)


def to_jsonl(dataset: Dataset) -> str:
    return "\n".join(
        json.dumps(
            {
                "messages": [
                    {"role": "user", "content": turn.user_prompt.content},
                    {"role": "assistant", "content": turn.agent_response.content},
                ]
            },
            ensure_ascii=False,
        )
        for turn in dataset.turns
    )


def to_csv(dataset: Dataset) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for turn in dataset.turns:
        writer.writerow(
            [turn.id, turn.quality_score, turn.user_prompt.content, turn.agent_response.content]
        )
    return buffer.getvalue()


_SERIALIZERS = {"json": to_json, "jsonl": to_jsonl, "csv": to_csv}


def export_filename(dataset: Dataset, fmt: ExportFormat) -> str:
    stem = re.sub(r"[^\w.-]+", "_", dataset.name).strip("_") or dataset.id
    return f"{stem}.{fmt}"


def export_dataset(dataset: Dataset, directory: str | Path, fmt: ExportFormat = "json") -> Path:
    """Write `dataset` into `directory` in the given format and return the file path."""
    if fmt not in _SERIALIZERS:
        raise ValueError(f"Unknown export format {fmt!r}; expected one of {', '.join(EXPORT_FORMATS)}.")
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(dataset, fmt)
    path.write_text(_SERIALIZERS[fmt](dataset), encoding="utf-8")
    return path
