import pytest
from concurrent import futures
from unittest.mock import patch

import grpc

from dataset_studio.events import EventLog
from dataset_studio.models import LogType
from dataset_studio.rpc import (
    ProtoParseError,
    RpcBridge,
    RpcNotFoundError,
    RpcStatusError,
    RpcValidationError,
    _channel_target,
    load_proto_registry,
)

HEALTH_PROTO = """
syntax = "proto3";

package health;

service HealthCheck {
  rpc GetVersion(VersionRequest) returns (VersionResponse);
  rpc Echo(EchoRequest) returns (EchoReply);
  rpc Watch(VersionRequest) returns (stream VersionResponse);
}

message VersionRequest {}

message VersionResponse {
  string version = 1;
}

message EchoRequest {
  string text = 1;
  int32 count = 2;
}

message EchoReply {
  string text = 1;
}
"""

REQUIRED_PROTO = """
syntax = "proto2";

package accounts;

service Accounts {
  rpc Create(CreateRequest) returns (CreateReply);
}

message CreateRequest {
  required string name = 1;
  optional int32 age = 2;
}

message CreateReply {
  optional string id = 1;
}
"""


def _handler(registry, method, behaviour):
    request_cls = registry.message_class(method.input_type.full_name)
    return grpc.unary_unary_rpc_method_handler(
        behaviour,
        request_deserializer=request_cls.FromString,
        response_serializer=lambda message: message.SerializeToString(),
    )


@pytest.fixture
def health_server():
    """In-process server built from the same runtime-parsed definition."""
    registry = load_proto_registry(HEALTH_PROTO)
    version_cls = registry.message_class("health.VersionResponse")
    echo_cls = registry.message_class("health.EchoReply")
    state = {"version": "1.2.3", "abort": None}

    def get_version(request, context):
        if state["abort"]:
            context.abort(*state["abort"])
        return version_cls(version=state["version"])

    def echo(request, context):
        return echo_cls(text=request.text * request.count)

    handler = grpc.method_handlers_generic_handler(
        "health.HealthCheck",
        {
            "GetVersion": _handler(registry, registry.find_method("health.HealthCheck", "GetVersion"), get_version),
            "Echo": _handler(registry, registry.find_method("health.HealthCheck", "Echo"), echo),
        },
    )

    server = grpc.server(futures.ThreadPoolExecutor(max_workers=2))
    server.add_generic_rpc_handlers((handler,))
    port = server.add_insecure_port("localhost:0")
    server.start()
    try:
        yield f"localhost:{port}", state
    finally:
        server.stop(None)


@pytest.fixture
def events():
    return EventLog(echo=False)


@pytest.fixture
def bridge(events):
    return RpcBridge(events.add, timeout=5.0)


# ---------------------------------------------------------------------------
# Successful Call Tests
# ---------------------------------------------------------------------------

def test_unary_call_returns_plain_dict(bridge, health_server, events):
    target, _ = health_server
    result = bridge.call(target, HEALTH_PROTO, "health.HealthCheck", "GetVersion", {})

    assert result == {"version": "1.2.3"}
    assert any(e.type == LogType.ACTION for e in events if e.source == "SDK.gRPC")

def test_request_payload_is_encoded(bridge, health_server):
    target, _ = health_server
    result = bridge.call(
        f"http://{target}", HEALTH_PROTO, "health.HealthCheck", "Echo", {"text": "ab", "count": 3}
    )
    assert result == {"text": "ababab"}

def test_empty_response_logs_warning(bridge, health_server, events):
    target, state = health_server
    state["version"] = ""

    assert bridge.call(target, HEALTH_PROTO, "health.HealthCheck", "GetVersion") == {}
    assert events.of_type(LogType.WARNING)


# ---------------------------------------------------------------------------
# Pre-network Failure Tests
# ---------------------------------------------------------------------------

@patch("dataset_studio.rpc.grpc.insecure_channel")
def test_unknown_service_fails_before_network(mock_channel, bridge, events):
    with pytest.raises(RpcNotFoundError, match="Service 'health.Missing' not found"):
        bridge.call("localhost:1", HEALTH_PROTO, "health.Missing", "GetVersion", {})

    mock_channel.assert_not_called()
    assert events.of_type(LogType.ERROR)

@patch("dataset_studio.rpc.grpc.insecure_channel")
def test_unknown_method_fails_before_network(mock_channel, bridge):
    with pytest.raises(RpcNotFoundError, match="Method 'Nope' not found"):
        bridge.call("localhost:1", HEALTH_PROTO, "health.HealthCheck", "Nope", {})
    mock_channel.assert_not_called()

@patch("dataset_studio.rpc.grpc.insecure_channel")
def test_missing_required_field_fails_validation(mock_channel, bridge):
    with pytest.raises(RpcValidationError, match="name"):
        bridge.call("localhost:1", REQUIRED_PROTO, "accounts.Accounts", "Create", {"age": 3})
    mock_channel.assert_not_called()

@patch("dataset_studio.rpc.grpc.insecure_channel")
def test_unknown_payload_field_fails_validation(mock_channel, bridge):
    with pytest.raises(RpcValidationError):
        bridge.call("localhost:1", HEALTH_PROTO, "health.HealthCheck", "Echo", {"bogus": 1})
    mock_channel.assert_not_called()

@patch("dataset_studio.rpc.grpc.insecure_channel")
def test_non_object_payload_fails_validation(mock_channel, bridge):
    with pytest.raises(RpcValidationError, match="expected an object"):
        bridge.call("localhost:1", HEALTH_PROTO, "health.HealthCheck", "Echo", ["text"])
    mock_channel.assert_not_called()

@patch("dataset_studio.rpc.grpc.insecure_channel")
def test_streaming_method_rejected(mock_channel, bridge):
    with pytest.raises(RpcValidationError, match="streaming"):
        bridge.call("localhost:1", HEALTH_PROTO, "health.HealthCheck", "Watch", {})
    mock_channel.assert_not_called()

def test_invalid_proto_fails_to_parse(bridge, events):
    with pytest.raises(ProtoParseError):
        bridge.call("localhost:1", "this is not a proto file", "x.Y", "Z", {})
    assert events.of_type(LogType.ERROR)


# ---------------------------------------------------------------------------
# Status Translation Tests
# ---------------------------------------------------------------------------

def test_non_ok_status_raises_with_code(bridge, health_server):
    target, state = health_server
    state["abort"] = (grpc.StatusCode.NOT_FOUND, "no such version")

    with pytest.raises(RpcStatusError) as excinfo:
        bridge.call(target, HEALTH_PROTO, "health.HealthCheck", "GetVersion", {})

    assert excinfo.value.code == grpc.StatusCode.NOT_FOUND
    assert str(excinfo.value) == "gRPC Error: no such version (Code: NOT_FOUND)"

def test_unreachable_server_is_status_error(events):
    bridge = RpcBridge(events.add, timeout=0.5)
    with pytest.raises(RpcStatusError):
        bridge.call("localhost:1", HEALTH_PROTO, "health.HealthCheck", "GetVersion", {})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "url, expected",
    [
        ("localhost:8080", ("localhost:8080", False)),
        ("http://localhost:8080", ("localhost:8080", False)),
        ("https://api.example.com:443", ("api.example.com:443", True)),
        ("grpcs://api.example.com", ("api.example.com", True)),
    ],
)
def test_channel_target(url, expected):
    assert _channel_target(url) == expected

def test_registry_is_cached_per_definition():
    assert load_proto_registry(HEALTH_PROTO) is load_proto_registry(HEALTH_PROTO)
