# cycle.py
# Multi-agent generation cycle.
#
# The cycle is the kernel. Models are passive responders: this class owns the
# control flow, the live conversation buffer, and the run status. No agent
# talks to another directly.
#
# Control flow per turn:
#   User Agent prompt → Agent LLM (tool loop via sandbox) → Watcher score
#   → commit turn → stop check → next turn
#
# States: IDLE → RUNNING → {COMPLETED | STOPPED | ERROR}
#
# Cancellation is cooperative. Every run owns a fresh token; stop() sets it and
# it is polled between turns and between tool rounds of the Agent LLM. In-flight
# provider calls are never interrupted, so a stopped run stays active until its
# thread exits, and a new run cannot start before then.

import json
import threading
from collections.abc import Callable
from datetime import datetime

from dataset_studio import display
from dataset_studio.events import EventLog
from dataset_studio.models import (
    AgentRole,
    ConversationTurn,
    Dataset,
    GenerationStatus,
    HistoryEntry,
    LogType,
    Message,
    MessageRole,
    ProjectConfig,
    ToolCall,
    ToolResponse,
    Workspace,
    normalize_tool_name,
)
from dataset_studio.prompts import EMPTY_VALUE, WATCHER_QUALITY_PROMPT_TEMPLATE, render_template
from dataset_studio.providers import AIProvider, ProviderError, get_ai_provider
from dataset_studio.sandbox import ExecutionError, ToolExecutor
from dataset_studio.schemas import SchemaType, extract_quality_score

MAX_TURNS = 10
TURN_DELAY_SECONDS = 0.1
MAX_TOOL_ROUNDS = 16

QUALITY_MIN = 0.0
QUALITY_MAX = 100.0


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class GenerationError(Exception):
    """Raised when a model breaks the turn protocol. Fatal to the run."""


class PrimingError(GenerationError):
    """Raised when a model cannot be woken before the first turn."""

    def __init__(self, model: str, cause: Exception) -> None:
        self.model = model
        self.cause = cause
        super().__init__(f"Failed to prepare model '{model}': {cause}")


class GenerationStateError(Exception):
    """Raised when an operation is not valid in the current run status."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_history(turns: list[ConversationTurn]) -> str:
    """Transcript of prior turns as alternating User:/Agent: lines, or N/A when empty."""
    if not turns:
        return EMPTY_VALUE
    return "\n\n".join(
        f"User: {turn.user_prompt.content}\nAgent: {turn.agent_response.content}" for turn in turns
    )


def _conversation_values(config: ProjectConfig, turns: list[ConversationTurn]) -> dict[str, str]:
    return {
        "PROJECT_GOAL": config.project_description,
        "SCENARIO": config.scenario,
        "REFERENCE_DATA": config.reference_data or EMPTY_VALUE,
        "HISTORY": format_history(turns),
    }


# ---------------------------------------------------------------------------
# Cycle
# ---------------------------------------------------------------------------


class GenerationCycle:
    """
    Runs the User / Agent LLM / Watcher loop for one workspace.

    The workspace config is read fresh at every step, so edits made while a
    run is in progress affect the following steps.

    Example:
        cycle = GenerationCycle(workspace)
        status = cycle.run()
        if status is GenerationStatus.COMPLETED:
            dataset = cycle.save_dataset()
    """

    def __init__(
        self,
        workspace: Workspace,
        provider_factory: Callable[[ProjectConfig], AIProvider] | None = None,
        executor: ToolExecutor | None = None,
        events: EventLog | None = None,
        max_turns: int = MAX_TURNS,
        turn_delay: float = TURN_DELAY_SECONDS,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
        on_turn: Callable[[int, ConversationTurn], None] | None = None,
    ) -> None:
        self.workspace = workspace
        self.events = events if events is not None else EventLog()
        self.max_turns = max_turns
        self.turn_delay = turn_delay
        self.max_tool_rounds = max_tool_rounds
        self._provider_factory = provider_factory or get_ai_provider
        self._executor = executor or ToolExecutor(self.events.add)
        self._on_turn = on_turn

        self._status = GenerationStatus.IDLE
        self._status_lock = threading.Lock()
        self._cancel = threading.Event()
        self._idle = threading.Event()
        self._idle.set()
        self._conversation: list[ConversationTurn] = []
        self._last_error: str | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> GenerationStatus:
        return self._status

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def conversation(self) -> list[ConversationTurn]:
        return list(self._conversation)

    @property
    def turn_count(self) -> int:
        return len(self._conversation)

    @property
    def config(self) -> ProjectConfig:
        return self.workspace.config

    def _set_status(self, status: GenerationStatus) -> None:
        self._status = status
        display.status_changed(status)

    def _log(self, source: str, content: str, type: LogType = LogType.INFO) -> None:
        self.events.add(source, content, type)

    def _provider(self) -> AIProvider:
        return self._provider_factory(self.config)

    # ------------------------------------------------------------------
    # Priming
    # ------------------------------------------------------------------

    def _prime_models(self) -> None:
        config = self.config
        models = dict.fromkeys(
            config.agent(role).model for role in (AgentRole.USER, AgentRole.AGENT_LLM, AgentRole.WATCHER)
        )
        provider = self._provider()
        for model in models:
            self._log("System", f"Waking up model: {model}...")
            try:
                provider.prime_model(model)
            except ProviderError as exc:
                raise PrimingError(model, exc) from exc
        self._log("System", "AI agents are ready. Starting generation...", LogType.SUCCESS)

    # ------------------------------------------------------------------
    # Turn steps
    # ------------------------------------------------------------------

    def _generate_user_prompt(self) -> Message:
        config = self.config
        self._log("User Agent", "Generating prompt...")
        prompt = render_template(config.user.prompt, _conversation_values(config, self._conversation))
        self._log("User Agent", f"Raw prompt:\n---\n{prompt}\n---")

        content = self._provider().generate_content(config.user.model, prompt)
        self._log("User Agent", f'Generated prompt: "{content}"', LogType.ACTION)
        return Message(role=MessageRole.USER, content=content)

    def _base_history(self, user_message: Message) -> list[HistoryEntry]:
        history: list[HistoryEntry] = []
        for turn in self._conversation:
            history.append(HistoryEntry(role="user", text=turn.user_prompt.content))
            history.append(HistoryEntry(role="model", text=turn.agent_response.content))
        history.append(HistoryEntry(role="user", text=user_message.content))
        return history

    def _run_tool(self, call: ToolCall, config: ProjectConfig) -> ToolResponse:
        tool = next(
            (t for t in config.available_tools if t.function_name == normalize_tool_name(call.name)),
            None,
        )
        if tool is None:
            self._log("Tool Executor", f"Tool not found: {call.name}", LogType.ERROR)
            return ToolResponse(call_id=call.id, name=call.name, error=f"Tool with name {call.name} not found.")

        self._log("Tool Executor", f"Executing tool: {tool.name}")
        try:
            result = self._executor.execute(tool.code, call.args, config)
        except ExecutionError as exc:
            return ToolResponse(call_id=call.id, name=call.name, error=str(exc))

        self._log(
            "Tool Executor",
            f"Result from {tool.name}: {json.dumps(result, default=str)}",
            LogType.ACTION,
        )
        return ToolResponse(call_id=call.id, name=call.name, result=result)

    def _generate_agent_response(self, user_message: Message, cancel: threading.Event) -> Message | None:
        """
        Tool-augmented response loop.

        Returns None when the run is stopped between tool rounds; the
        partial turn is then discarded.
        """
        self._log("Agent LLM", "Thinking...")
        history = self._base_history(user_message)
        last_calls: list[ToolCall] | None = None

        for _ in range(self.max_tool_rounds):
            config = self.config
            system_instruction = render_template(
                config.agent_llm.prompt, _conversation_values(config, self._conversation)
            )
            result = self._provider().generate_content_with_tools(
                config.agent_llm.model,
                history,
                config.available_tools,
                system_instruction=system_instruction,
            )

            # Text wins even when tool calls came along with it.
            if result.text:
                if result.grounding_metadata:
                    self._log("Agent LLM", "Retrieved web search results.", LogType.ACTION)
                self._log("Agent LLM", f'Responded: "{result.text}"', LogType.ACTION)
                return Message(
                    role=MessageRole.ASSISTANT,
                    content=result.text,
                    tool_calls=last_calls,
                    grounding_metadata=result.grounding_metadata,
                )

            if not result.tool_calls:
                raise GenerationError("Agent LLM returned an empty response with no text or tool calls.")

            self._log(
                "Agent LLM",
                f"Requested to call {len(result.tool_calls)} tool(s).",
                LogType.ACTION,
            )
            history.append(HistoryEntry(role="model", tool_calls=result.tool_calls))
            responses = [self._run_tool(call, config) for call in result.tool_calls]
            history.append(HistoryEntry(role="tool", tool_responses=responses))
            last_calls = result.tool_calls

            if cancel.is_set():
                return None

        raise GenerationError(
            f"Agent LLM did not produce a final response within {self.max_tool_rounds} tool rounds."
        )

    def _score_turn(self, user_message: Message, agent_message: Message) -> float:
        config = self.config
        self._log("Watcher Agent", "Evaluating quality...")
        prompt = render_template(
            WATCHER_QUALITY_PROMPT_TEMPLATE,
            {
                "PROJECT_GOAL": config.project_description,
                "USER_PROMPT": user_message.content,
                "AGENT_RESPONSE": agent_message.content,
            },
        )
        self._log("Watcher Agent", f"Raw prompt:\n---\n{prompt}\n---")

        raw = self._provider().generate_json_content(config.watcher.model, prompt, SchemaType.WATCHER_AGENT)
        score = extract_quality_score(raw)
        if score is None:
            self._log(
                "Watcher Agent",
                f"Could not get a valid quality score. Raw response: {json.dumps(raw, default=str)}. "
                "Defaulting to 0.",
                LogType.WARNING,
            )
            return 0.0

        if not QUALITY_MIN <= score <= QUALITY_MAX:
            clamped = min(max(score, QUALITY_MIN), QUALITY_MAX)
            self._log(
                "Watcher Agent",
                f"Quality score {score:g} is outside 0-100. Clamping to {clamped:g}.",
                LogType.WARNING,
            )
            score = clamped

        self._log("Watcher Agent", f"Quality score: {score:g}", LogType.ACTION)
        return score

    def _run_turn(self, cancel: threading.Event) -> bool:
        """One full turn. Returns False when the run was stopped or discarded mid-turn."""
        user_message = self._generate_user_prompt()
        if cancel.is_set():
            return False

        agent_message = self._generate_agent_response(user_message, cancel)
        if agent_message is None:
            return False

        score = self._score_turn(user_message, agent_message)
        turn = ConversationTurn(user_prompt=user_message, agent_response=agent_message, quality_score=score)
        with self._status_lock:
            # A run detached by reset() never writes into the buffer again.
            if cancel is not self._cancel:
                return False
            self._conversation.append(turn)

        display.turn_committed(self.turn_count, self.max_turns, turn)
        if self._on_turn is not None:
            self._on_turn(self.turn_count, turn)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        """True while a run's thread is still executing, including after stop()."""
        return not self._idle.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the current run's thread has exited. Returns False on timeout."""
        return self._idle.wait(timeout)

    def _begin(self) -> threading.Event:
        with self._status_lock:
            if self.is_active:
                raise GenerationStateError("A generation run is still in progress.")
            self._idle.clear()
            self._cancel = threading.Event()
            self._conversation.clear()
            self._last_error = None
            self.events.clear()
            self._set_status(GenerationStatus.RUNNING)
            return self._cancel

    def run(self) -> GenerationStatus:
        """
        Execute a full run on the calling thread and return the final status.

        Any error aborts the run: it is logged, kept as last_error, and the
        status becomes ERROR. No partial turn is committed.
        """
        return self._execute(self._begin())

    def _execute(self, cancel: threading.Event) -> GenerationStatus:
        try:
            display.banner(self.config)
            self._log("System", "Generation process started.")

            try:
                self._prime_models()
                while not cancel.is_set():
                    if not self._run_turn(cancel):
                        break
                    if self.turn_count >= self.max_turns:
                        with self._status_lock:
                            if not cancel.is_set():
                                self._log(
                                    "System",
                                    f"Generation complete. {self.max_turns} turns generated.",
                                    LogType.SUCCESS,
                                )
                                self._set_status(GenerationStatus.COMPLETED)
                        break
                    # Yield between turns; wakes early on stop().
                    if cancel.wait(self.turn_delay):
                        break
            except Exception as exc:
                self._fail(exc, cancel)

            if cancel is self._cancel:
                display.run_summary(self._conversation, self._status)
            return self._status
        finally:
            self._idle.set()

    def _fail(self, exc: Exception, cancel: threading.Event) -> None:
        message = f"An error occurred during generation: {exc}"
        with self._status_lock:
            if cancel is not self._cancel:
                display.warning(f"Discarded run ended with an error: {exc}")
                return
            cancel.set()
            self._last_error = message
            self._log("System", message, LogType.ERROR)
            # A run the operator already stopped stays STOPPED.
            if self._status != GenerationStatus.STOPPED:
                self._set_status(GenerationStatus.ERROR)

    def start_in_background(self) -> threading.Thread:
        """Start a run on a daemon thread. Raises GenerationStateError while a run is active."""
        cancel = self._begin()
        thread = threading.Thread(target=self._execute, args=(cancel,), name="generation-cycle", daemon=True)
        thread.start()
        return thread

    def stop(self) -> None:
        """
        Request a stop. Committed turns are kept.

        The status becomes STOPPED at once; the run's thread exits at its next
        suspension point. Use wait() before starting another run or saving.
        """
        with self._status_lock:
            if self._status != GenerationStatus.RUNNING:
                return
            self._cancel.set()
            self._log("System", "Generation stopped by user.", LogType.WARNING)
            self._set_status(GenerationStatus.STOPPED)

    def save_dataset(self, name: str | None = None) -> Dataset:
        """Snapshot the live buffer into a Dataset owned by the workspace."""
        if self.is_active:
            raise GenerationStateError("Wait for the generation to finish before saving a dataset.")
        if not self._conversation:
            raise GenerationStateError("There is no conversation to save.")

        dataset = Dataset(
            name=name or f"{self.config.project_name} - {datetime.now():%Y-%m-%d %H:%M:%S}",
            turns=list(self._conversation),
        )
        self.workspace.datasets.append(dataset)
        self._log("System", f'Dataset "{dataset.name}" saved!', LogType.SUCCESS)
        self._set_status(GenerationStatus.IDLE)
        return dataset

    def reset(self) -> None:
        """
        Drop all transient run state, e.g. when switching workspaces.

        A run still in flight is stopped and detached: it can no longer commit
        turns or change the status.
        """
        self.stop()
        with self._status_lock:
            self._cancel.set()
            self._cancel = threading.Event()
            self._conversation.clear()
            self._last_error = None
            self.events.clear()
            self._set_status(GenerationStatus.IDLE)
