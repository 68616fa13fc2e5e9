import pytest

from dataset_studio.defaults import create_workspace
from dataset_studio.events import EventLog
from dataset_studio.models import GenerationResult
from dataset_studio.providers import AIProvider, ProviderError


class FakeProvider(AIProvider):
    """
    Scripted AIProvider. Each queue is consumed in order; once empty, a
    fixed fallback is returned so long runs need no scripting.
    """

    def __init__(self, user_prompts=None, agent_results=None, json_responses=None, texts=None):
        self.user_prompts = list(user_prompts or [])
        self.agent_results = list(agent_results or [])
        self.json_responses = list(json_responses or [])
        self.texts = list(texts or [])
        self.fail_priming: set[str] = set()

        self.prompts: list[str] = []
        self.tool_requests: list[dict] = []
        self.json_prompts: list[str] = []
        self.primed: list[str] = []

    def generate_content(self, model, prompt):
        self.prompts.append(prompt)
        if self.texts:
            return self.texts.pop(0)
        if self.user_prompts:
            return self.user_prompts.pop(0)
        return f"Question {len(self.prompts)}"

    def generate_content_with_tools(self, model, history, tools, system_instruction=None):
        self.tool_requests.append(
            {
                "model": model,
                "history": list(history),
                "tools": list(tools),
                "system_instruction": system_instruction,
            }
        )
        if self.agent_results:
            return self.agent_results.pop(0)
        return GenerationResult(text="Answer")

    def generate_json_content(self, model, prompt, schema_type):
        self.json_prompts.append(prompt)
        if self.json_responses:
            return self.json_responses.pop(0)
        return {"qualityScore": 80}

    def list_models(self):
        return ["fake-model"]

    def prime_model(self, model):
        if model in self.fail_priming:
            raise ProviderError(f"Failed to wake up model '{model}'.")
        self.primed.append(model)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def events():
    return EventLog(echo=False)


@pytest.fixture
def workspace():
    return create_workspace()
