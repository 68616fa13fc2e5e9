# run.py
# Command-line front-end: loads a workspace file and drives the cycle, the sandbox or a provider.
#
#   dataset-studio generate [WORKSPACE.json] [--out DIR] [--format json|jsonl|csv]
#   dataset-studio tool WORKSPACE.json NAME '{"query": "..."}'
#   dataset-studio models WORKSPACE.json
#
# Without a workspace file, `generate` uses the first bundled example.

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from dataset_studio import display
from dataset_studio.cycle import MAX_TURNS, GenerationCycle, GenerationStateError
from dataset_studio.datasets import EXPORT_FORMATS, export_dataset
from dataset_studio.defaults import example_workspaces
from dataset_studio.events import EventLog
from dataset_studio.models import GenerationStatus, Workspace, normalize_tool_name
from dataset_studio.providers import ProviderError, get_ai_provider
from dataset_studio.sandbox import ExecutionError, ToolExecutor

DEFAULT_OUT_DIR = "datasets"


def load_workspace(path: str | None) -> Workspace:
    if path is None:
        return example_workspaces()[0]
    return Workspace.model_validate_json(Path(path).read_text(encoding="utf-8"))


def cmd_generate(args: argparse.Namespace) -> int:
    workspace = load_workspace(args.workspace)
    cycle = GenerationCycle(workspace, max_turns=args.turns)

    thread = cycle.start_in_background()
    try:
        while thread.is_alive():
            thread.join(timeout=0.5)
    except KeyboardInterrupt:
        cycle.stop()
        thread.join()

    if cycle.status == GenerationStatus.ERROR:
        display.halt(cycle.last_error or "Generation failed.")
        return 1

    try:
        dataset = cycle.save_dataset()
    except GenerationStateError as exc:
        display.halt(str(exc))
        return 1

    path = export_dataset(dataset, args.out, args.format)
    display.dataset_saved(dataset, str(path))
    return 0


def cmd_tool(args: argparse.Namespace) -> int:
    workspace = load_workspace(args.workspace)
    config = workspace.config

    wanted = normalize_tool_name(args.name)
    tool = next((t for t in config.available_tools if t.function_name == wanted), None)
    if tool is None:
        display.halt(f"Tool with name {args.name} not found.")
        return 1

    try:
        tool_args = json.loads(args.args)
    except json.JSONDecodeError as exc:
        display.halt(f"Arguments must be a JSON object: {exc}")
        return 1
    if not isinstance(tool_args, dict):
        display.halt("Arguments must be a JSON object.")
        return 1

    executor = ToolExecutor(EventLog().add)
    try:
        result = executor.execute(tool.code, tool_args, config)
    except ExecutionError as exc:
        display.halt(str(exc))
        return 1

    display.tool_result(tool.name, result)
    return 0


def cmd_models(args: argparse.Namespace) -> int:
    workspace = load_workspace(args.workspace)
    try:
        models = get_ai_provider(workspace.config).list_models()
    except ProviderError as exc:
        display.halt(str(exc))
        return 1
    display.model_list(models)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dataset-studio",
        description="Generate fine-tuning conversation datasets with cooperating model agents.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    generate = commands.add_parser("generate", help="Run a generation cycle and export the dataset.")
    generate.add_argument("workspace", nargs="?", help="Workspace JSON file (default: bundled example).")
    generate.add_argument("--out", default=DEFAULT_OUT_DIR, help="Export directory.")
    generate.add_argument("--format", choices=EXPORT_FORMATS, default="json")
    generate.add_argument("--turns", type=int, default=MAX_TURNS)
    generate.set_defaults(handler=cmd_generate)

    tool = commands.add_parser("tool", help="Run a single tool or RAG action.")
    tool.add_argument("workspace")
    tool.add_argument("name")
    tool.add_argument("args", nargs="?", default="{}", help="JSON object passed as args.")
    tool.set_defaults(handler=cmd_tool)

    models = commands.add_parser("models", help="List models available from the workspace's provider.")
    models.add_argument("workspace")
    models.set_defaults(handler=cmd_models)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except (OSError, ValidationError) as exc:
        display.halt(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
