# display.py
# All terminal output for the dataset generation studio.
#
# This module owns presentation entirely. The cycle, sandbox and builder never
# format strings for the terminal — they emit events or call named functions
# here. Swap this file to change the entire UI.
#
# Colour language (one per event type):
#   dim white — info
#   yellow    — agent actions and results
#   orange    — warnings and degraded paths
#   red       — errors, halts
#   green     — success / completion
#   blue      — conversation content

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from dataset_studio.models import (
    ConversationTurn,
    Dataset,
    GenerationStatus,
    LogMessage,
    LogType,
    ProjectConfig,
)

console = Console()

_LOG_STYLES = {
    LogType.INFO: "dim white",
    LogType.ACTION: "yellow",
    LogType.WARNING: "dark_orange",
    LogType.ERROR: "bold red",
    LogType.SUCCESS: "bold green",
}

_STATUS_STYLES = {
    GenerationStatus.IDLE: "dim",
    GenerationStatus.RUNNING: "cyan",
    GenerationStatus.STOPPED: "dark_orange",
    GenerationStatus.COMPLETED: "green",
    GenerationStatus.ERROR: "red",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Run entry
# ---------------------------------------------------------------------------


def banner(config: ProjectConfig) -> None:
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]{config.project_name}[/bold cyan]\n"
            f"[dim]{config.project_description}[/dim]\n\n"
            f"[dim]Provider  :[/dim] [white]{config.ai_provider.value}[/white]\n"
            f"[dim]User      :[/dim] [white]{config.user.model}[/white]\n"
            f"[dim]Agent LLM :[/dim] [white]{config.agent_llm.model}[/white]\n"
            f"[dim]Watcher   :[/dim] [white]{config.watcher.model}[/white]\n"
            f"[dim]Tools     :[/dim] [white]{len(config.available_tools)}[/white]"
            + ("  [bold red](sandbox disabled)[/bold red]" if config.unsafe_code_execution else ""),
            border_style="cyan",
            padding=(1, 4),
        )
    )


def status_changed(status: GenerationStatus) -> None:
    style = _STATUS_STYLES[status]
    console.print(Rule(f"[{style}]{status.value.upper()}[/{style}]", style=style))


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------


def log_event(entry: LogMessage) -> None:
    style = _LOG_STYLES[entry.type]
    console.print(
        f"[dim]{entry.timestamp:%H:%M:%S}[/dim] "
        f"[{style}]\\[{escape(entry.source)}][/{style}] "
        f"[{style}]{escape(_mono(entry.content, 400))}[/{style}]",
        highlight=False,
    )


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


def turn_committed(index: int, total: int, turn: ConversationTurn) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold blue]User[/bold blue]  {escape(turn.user_prompt.content)}\n\n"
            f"[bold green]Agent[/bold green] {escape(turn.agent_response.content)}",
            title=_label(f"TURN {index}/{total}", "blue"),
            subtitle=f"[dim]quality {turn.quality_score:g}[/dim]",
            border_style="blue",
            padding=(0, 2),
        )
    )
    sources = (turn.agent_response.grounding_metadata or {}).get("grounding_chunks") or []
    for position, chunk in enumerate(sources, start=1):
        web = chunk.get("web") or {}
        console.print(f"  [dim]{position}. {escape(web.get('title') or web.get('uri', ''))}[/dim]")


def run_summary(turns: list[ConversationTurn], status: GenerationStatus) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Turn", justify="center", width=6)
    table.add_column("Score", justify="right", width=7)
    table.add_column("Tools", justify="center", width=6)
    table.add_column("User prompt", style="dim white")

    for position, turn in enumerate(turns, start=1):
        table.add_row(
            str(position),
            f"{turn.quality_score:g}",
            str(len(turn.agent_response.tool_calls or [])),
            escape(_mono(turn.user_prompt.content, 60)),
        )

    style = _STATUS_STYLES[status]
    console.print(
        Panel(
            table,
            title=f"[{style}]RUN {status.value.upper()}[/{style}]",
            border_style="dim",
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Datasets and tools
# ---------------------------------------------------------------------------


def dataset_saved(dataset: Dataset, path: str | None = None) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold green]{escape(dataset.name)}[/bold green]\n"
            f"[dim]{len(dataset.turns)} turn(s)[/dim]"
            + (f"\n[white]{path}[/white]" if path else ""),
            title=_label("DATASET SAVED ✓", "green"),
            border_style="green",
            padding=(0, 2),
        )
    )


def tool_result(name: str, result: object) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(repr(result))}[/white]",
            title=_label(f"TOOL {name}", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )


def model_list(models: list[str]) -> None:
    for model in models:
        console.print(f"  [white]{model}[/white]")


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


def warning(message: str) -> None:
    console.print(f"[dark_orange]⚠ {escape(message)}[/dark_orange]", highlight=False)
