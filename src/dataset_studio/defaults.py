# defaults.py
# Default configuration and the bundled example workspaces.
#
# Example tool code is written to run inside the sandbox: no imports,
# no underscore names, every capability reached through `sdk`.

from dataset_studio.models import (
    AgentConfig,
    AgentRole,
    LocalAIConfig,
    Message,
    MessageRole,
    ProjectConfig,
    ProviderType,
    RAGAction,
    ToolDefinition,
    Workspace,
)
from dataset_studio.prompts import DEFAULT_PROMPTS

DEFAULT_MODEL = "local-model"


def create_initial_config(**overrides) -> ProjectConfig:
    values = {
        "project_name": "New Dataset Project",
        "project_description": "A new fine-tuning dataset generated by the studio.",
        "scenario": "A general conversation between a user and an AI assistant.",
        "reference_data": "No reference data provided. Agents will rely on general knowledge.",
        "ai_provider": ProviderType.LOCAL_OPENAI,
        "local_ai": LocalAIConfig(),
        "unsafe_code_execution": False,
        **{
            role.value: AgentConfig(prompt=DEFAULT_PROMPTS[role], model=DEFAULT_MODEL)
            for role in AgentRole
        },
    }
    values.update(overrides)
    return ProjectConfig(**values)


def create_workspace(workspace_id: str = "default", **overrides) -> Workspace:
    return Workspace(id=workspace_id, config=create_initial_config(**overrides))


# ---------------------------------------------------------------------------
# Hacker News Q&A
# ---------------------------------------------------------------------------

HN_SEARCH_CODE = '''\
def tool(sdk, args):
    query = args.get("query")
    if not query:
        return "A query is required to search Hacker News."

    sdk.log(f'Searching Hacker News for: "{query}"')
    try:
        response = sdk.http.get(
            "https://hn.algolia.com/api/v1/search",
            params={"query": query, "tags": "story", "hitsPerPage": 5},
        )
    except Exception as error:
        sdk.log(f"Error fetching data from Hacker News API: {error}", "error")
        return "There was an error trying to search Hacker News."

    hits = response.get("hits") or []
    if not hits:
        sdk.log("No results found on Hacker News.")
        return f'No results found on Hacker News for "{query}".'

    sdk.log(f"Found {len(hits)} results.")
    lines = []
    for position, hit in enumerate(hits, 1):
        lines.append(
            f'{position}. "{hit.get("title")}" by {hit.get("author")} '
            f'(Points: {hit.get("points")}, Comments: {hit.get("num_comments")})\\n'
            f'URL: {hit.get("url")}'
        )
    return f'Found the following top {len(hits)} results on Hacker News for "{query}":\\n\\n' + "\\n\\n".join(lines)
'''

HEALTH_CHECK_CODE = '''\
PROTO_CONTENT = """
syntax = "proto3";

package health;

service HealthCheck {
  rpc GetVersion(VersionRequest) returns (VersionResponse);
}

message VersionRequest {}

message VersionResponse {
  string version = 1;
}
"""

SERVICE_URL = "localhost:8080"


def tool(sdk, args):
    sdk.log("Attempting to call gRPC health check...")
    try:
        response = sdk.grpc.call(
            service_url=SERVICE_URL,
            proto_content=PROTO_CONTENT,
            service_name="health.HealthCheck",
            method_name="GetVersion",
            request_payload={},
        )
    except Exception as error:
        sdk.log(f"gRPC call failed: {error}", "error")
        return f"Failed to check system health: {error}"

    sdk.log(f"gRPC response received: {response}")
    return f"System is healthy. Version: {response.get('version')}"
'''

LOCAL_SEARCH_CODE = '''\
def tool(sdk, args):
    query = args.get("query") or ""
    sdk.log(f'Searching local documents for: "{query}"')

    if query.lower() in sdk.get_reference_data().lower():
        result = f'Found a mention of "{query}" in the local documents.'
    else:
        result = f'Could not find any mention of "{query}" in the local documents.'
    sdk.log(result)
    return result
'''


def hn_qa_workspace() -> Workspace:
    config = create_initial_config(
        project_name="Hacker News Q&A Agent",
        project_description=(
            "An agent that answers questions by searching for relevant discussions on Hacker News."
        ),
        scenario=(
            "A user asks a question about technology, startups, or programming trends. "
            "The agent should use its tool to search Hacker News."
        ),
        reference_data=(
            "This is a local document the RAG action can search. The secret keyword is 'syzygy'. "
            "Use the `search_local_documents` tool for questions about secret keywords."
        ),
        tools=[
            ToolDefinition(
                id="tool-hn-search-example",
                name="search_hacker_news",
                description=(
                    "Searches Hacker News for discussions and comments related to a query. "
                    "Use this for questions about tech, startups, and programming."
                ),
                code=HN_SEARCH_CODE,
            ),
            ToolDefinition(
                id="tool-grpc-health-check-example",
                name="check_system_health",
                description=(
                    "Checks the health of a remote system using gRPC. "
                    "Use this to get status or version info."
                ),
                code=HEALTH_CHECK_CODE,
            ),
        ],
        rag_actions=[
            RAGAction(
                id="rag-local-search-example",
                name="search_local_documents",
                description=(
                    "Searches through the local reference data provided in the configuration. "
                    "Use this for specific, internal knowledge."
                ),
                code=LOCAL_SEARCH_CODE,
            ),
        ],
    )
    welcome = (
        "Welcome! This is an example workspace for a Hacker News Q&A Agent. "
        "It's configured with three tools:\n"
        "1.  An API tool 'search_hacker_news' to find real-time discussions on Hacker News.\n"
        "2.  A custom 'search_local_documents' RAG tool to search the text in the Reference Data.\n"
        "3.  A 'check_system_health' gRPC tool to demonstrate communication with a gRPC backend.\n\n"
        "Start a generation run and try asking:\n"
        '- "What are the latest discussions about React?" (to test the API tool)\n'
        '- "What is the secret keyword?" (to test local RAG)'
    )
    return Workspace(
        id="example-hn-qa-agent",
        config=config,
        builder_messages=[Message(role=MessageRole.ASSISTANT, content=welcome)],
    )


# ---------------------------------------------------------------------------
# GameDev assistant
# ---------------------------------------------------------------------------

AETHELGARD_GDD = """\
--- Aethelgard Game Design Document (Snippet) ---

## World Lore

Aethelgard is a realm fractured by a past cataclysm known as "The Sundering". Magic is wild and \
dangerous, and ancient ruins of a precursor civilization dot the landscape.

## Factions

1.  **The Silver Hand Order:**
    *   **Description:** A knightly order dedicated to protecting the innocent and restoring order. \
They are generally seen as heroic, but can be rigid and dogmatic in their views. They are wary of \
uncontrolled magic.
    *   **Leader:** High Commander Valerius
    *   **Base:** The Citadel of Dawn, a mountain fortress.

2.  **The Circle of Whispers:**
    *   **Description:** A secretive cabal of mages and scholars who believe that the wild magic of \
The Sundering can be controlled and mastered. They operate in the shadows and are often viewed with \
suspicion.
    *   **Goal:** To unlock the secrets of the precursors.
    *   **Notable Members:** Arch-Scribe Elara.

3.  **The Rustfang Clans:**
    *   **Description:** A loose confederation of goblin and orc tribes who inhabit the blasted \
lowlands. They are opportunistic scavengers and raiders, not inherently evil, but driven by survival. \
They possess a surprising talent for mechanical contraptions.
    *   **Secret:** They secretly trade precursor artifacts with the Circle of Whispers.
"""

PYTHON_SNIPPET_CODE = '''\
INVENTORY_SNIPPET = """class Inventory:
    def __init__(self):
        self.items = {}

    def add_item(self, item_name, quantity=1):
        self.items[item_name] = self.items.get(item_name, 0) + quantity

    def remove_item(self, item_name, quantity=1):
        if item_name not in self.items:
            return False
        self.items[item_name] -= quantity
        if self.items[item_name] <= 0:
            del self.items[item_name]
        return True

    def __str__(self):
        return str(self.items)


player_inventory = Inventory()
player_inventory.add_item("Health Potion", 5)
print(player_inventory)
"""


def tool(sdk, args):
    query = args.get("query") or ""
    sdk.log(f'Generating Python code for: "{query}"')

    if "inventory" in query.lower():
        return INVENTORY_SNIPPET
    return "Could not generate code for that request. Try asking for a 'simple inventory class'."
'''

SERVER_STATUS_CODE = '''\
PROTO_CONTENT = """
syntax = "proto3";

package gamedev;

service GameServer {
  rpc GetStatus(StatusRequest) returns (StatusResponse);
}

message StatusRequest {}

message StatusResponse {
  string status = 1;
  int32 player_count = 2;
  string server_version = 3;
}
"""

SERVICE_URL = "localhost:8081"


def tool(sdk, args):
    sdk.log("Pinging game development server via gRPC...")
    try:
        response = sdk.grpc.call(
            service_url=SERVICE_URL,
            proto_content=PROTO_CONTENT,
            service_name="gamedev.GameServer",
            method_name="GetStatus",
            request_payload={},
        )
    except Exception as error:
        sdk.log(f"gRPC call failed: {error}", "error")
        return "The server appears to be OFFLINE. (Could not connect to the gRPC endpoint.)"

    sdk.log(f"gRPC response received: {response}")
    return (
        f"The server is ONLINE. Player count: {response.get('player_count', 0)}. "
        f"Version: {response.get('server_version')}"
    )
'''

LORE_CHECK_CODE = '''\
def tool(sdk, args):
    query = (args.get("query") or "").lower()
    sdk.log(f'Checking lore consistency for: "{query}"')

    document = sdk.get_reference_data()
    if query not in document.lower():
        result = f'Could not find any mention of "{query}" in the lore document.'
        sdk.log(result)
        return result

    relevant = [line for line in document.split("\\n") if query in line.lower()]
    result = f'Found a mention of "{query}" in the lore document.'
    if relevant:
        result += " Relevant info: \\n" + "\\n".join(relevant)
    sdk.log(result)
    return result
'''


def gamedev_workspace() -> Workspace:
    config = create_initial_config(
        project_name="GameDev AI Assistant",
        project_description=(
            "An AI assistant that helps with creative writing, code generation, and server "
            'management for a fantasy RPG project called "Aethelgard".'
        ),
        scenario=(
            "A game developer is asking for help with world-building, character creation, quest "
            "design, or needs a snippet of boilerplate code for their game engine."
        ),
        reference_data=AETHELGARD_GDD,
        tools=[
            ToolDefinition(
                id="tool-gamedev-python-gen",
                name="generate_python_code",
                description=(
                    "Generates a Python code snippet for a common game development task, like a "
                    "simple inventory system or a player movement controller. The query should "
                    "describe the desired functionality."
                ),
                code=PYTHON_SNIPPET_CODE,
            ),
            ToolDefinition(
                id="tool-gamedev-grpc-status",
                name="check_dev_server_status",
                description=(
                    "Pings the development game server to check its status and get the current "
                    "player count. Use this when asked 'is the server up?' or 'how many players "
                    "are online?'"
                ),
                code=SERVER_STATUS_CODE,
            ),
        ],
        rag_actions=[
            RAGAction(
                id="rag-gamedev-lore-check",
                name="check_lore_consistency",
                description=(
                    "Checks the provided query against the Game Design Document (reference data) "
                    "to ensure new ideas are consistent with established lore. Use this to verify "
                    "facts about factions, locations, or historical events."
                ),
                code=LORE_CHECK_CODE,
            ),
        ],
    )
    welcome = (
        'Welcome to the GameDev AI Assistant! This workspace is configured to help you build your '
        'fantasy RPG, "Aethelgard".\n\n'
        "It has several tools ready:\n"
        "1.  check_lore_consistency: A RAG tool to search the Game Design Document in Reference Data.\n"
        "2.  generate_python_code: A tool that can write some boilerplate Python code.\n"
        "3.  check_dev_server_status: A gRPC tool to check the status of a game server.\n\n"
        "Start a generation run and try asking:\n"
        '- "Is the Silver Hand Order a friendly faction?"\n'
        '- "Can you write me a python script for a simple inventory system?"\n'
        '- "Is the dev server online?"'
    )
    return Workspace(
        id="example-gamedev-assistant",
        config=config,
        builder_messages=[Message(role=MessageRole.ASSISTANT, content=welcome)],
    )


def example_workspaces() -> list[Workspace]:
    return [hn_qa_workspace(), gamedev_workspace()]
